"""Input normalization for raw smart-link input."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from engine.errors import EmptyInputError
from metadata.platform_links import detect_platform
from metadata.types import Platform

_ISRC_RE = re.compile(r"^[A-Z]{2}[A-Z0-9]{3}\d{7}$")
_ARTIST_TITLE_RE = re.compile(r"^(.+?)\s+[-–—]\s+(.+)$")


class InputKind(Enum):
    URL = "url"
    ISRC = "isrc"
    FREE_TEXT = "free_text"


@dataclass
class TrackQuery:
    raw_input: str
    input_kind: InputKind
    artist_hint: Optional[str] = None
    title_hint: Optional[str] = None
    platform: Optional[Platform] = None  # set for URL input
    isrc: Optional[str] = None  # set for ISRC input

    @property
    def is_url(self) -> bool:
        return self.input_kind is InputKind.URL


def normalize(raw: str, artist: Optional[str] = None, title: Optional[str] = None) -> TrackQuery:
    """Classify user input without network calls.

    Rules:
    - URL if the text carries a known music platform domain.
    - ISRC if it matches the 12 character code once dashes and spaces are removed.
    - Otherwise free text; ``"Artist - Title"`` fills missing hints.
    """
    text = (raw or "").strip()
    if not text:
        raise EmptyInputError("Input is empty")

    artist_hint = _clean_hint(artist)
    title_hint = _clean_hint(title)

    platform = detect_platform(text)
    if platform is not None:
        return TrackQuery(
            raw_input=text,
            input_kind=InputKind.URL,
            artist_hint=artist_hint,
            title_hint=title_hint,
            platform=platform,
        )

    isrc = as_isrc(text)
    if isrc:
        return TrackQuery(
            raw_input=text,
            input_kind=InputKind.ISRC,
            artist_hint=artist_hint,
            title_hint=title_hint,
            isrc=isrc,
        )

    if not artist_hint or not title_hint:
        split = _split_artist_title(text)
        if split:
            artist_hint = artist_hint or split[0]
            title_hint = title_hint or split[1]

    return TrackQuery(
        raw_input=text,
        input_kind=InputKind.FREE_TEXT,
        artist_hint=artist_hint,
        title_hint=title_hint,
    )


def as_isrc(value: str) -> Optional[str]:
    candidate = re.sub(r"[\s-]+", "", value or "").upper()
    return candidate if _ISRC_RE.match(candidate) else None


def _split_artist_title(text: str) -> Optional[tuple[str, str]]:
    match = _ARTIST_TITLE_RE.match(text)
    if not match:
        return None
    artist, title = match.group(1).strip(), match.group(2).strip()
    if not artist or not title:
        return None
    return artist, title


def _clean_hint(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
