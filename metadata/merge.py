"""Merge per-platform links and track identity from input, recognition and search sources."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable

from metadata.types import PLATFORM_PRIORITY, BaseTrack, Platform, ProviderResult, RecognitionResult, ResultSource

_LOG = logging.getLogger(__name__)
_WS_RE = re.compile(r"\s+")


@dataclass
class MergedIdentity:
    artist: str
    title: str
    isrc: str | None
    cover_art_url: str | None


def merge_platform_links(
    input_result: ProviderResult | None,
    results: Iterable[ProviderResult],
) -> dict[Platform, ProviderResult]:
    """Pick one result per platform with an explicit ordered fold.

    Per platform the ordered sources are: the literal input URL, then the
    remaining results by descending confidence. The first present value is
    kept and later ones never overwrite it.
    """
    ranked = sorted(
        (result for result in results if result is not None and result.url),
        key=lambda result: -result.confidence,
    )
    merged: dict[Platform, ProviderResult] = {}
    for platform in PLATFORM_PRIORITY:
        ordered: list[ProviderResult] = []
        if input_result is not None and input_result.provider is platform and input_result.url:
            ordered.append(input_result)
        ordered.extend(result for result in ranked if result.provider is platform)
        for result in ordered:
            if _has_value(result.url):
                _LOG.info(
                    "platform_link_source platform=%s source=%s confidence=%.2f",
                    platform.value,
                    result.source.value,
                    result.confidence,
                )
                merged[platform] = result
                break
    return merged


def merge_identity(
    recognition: RecognitionResult | None,
    base: BaseTrack | None,
    *,
    artist_hint: str | None = None,
    title_hint: str | None = None,
    links: dict[Platform, ProviderResult] | None = None,
) -> MergedIdentity:
    """Merge identity fields with precedence recognition -> base track -> hints -> matched links.

    Matched links are consulted last, by descending confidence.
    """
    rec = recognition
    hints = {"artist": artist_hint, "title": title_hint}
    matched = sorted((links or {}).items(), key=lambda item: -item[1].confidence)

    def from_links(field: str) -> list[tuple[str, Any]]:
        return [(f"{result.source.value}:{platform.value}", getattr(result, field)) for platform, result in matched]

    def pick(field: str, sources: list[tuple[str, Any]]) -> Any:
        for source_name, value in sources:
            if _has_value(value):
                _LOG.info("identity_field_source field=%s source=%s", field, source_name)
                return value
        _LOG.info("identity_field_source field=%s source=missing", field)
        return None

    artist = pick(
        "artist",
        [
            ("recognition", rec.artist if rec else None),
            ("base_track", base.artist if base else None),
            ("hints", hints["artist"]),
            *from_links("artist"),
        ],
    )
    title = pick(
        "title",
        [
            ("recognition", rec.title if rec else None),
            ("base_track", base.title if base else None),
            ("hints", hints["title"]),
            *from_links("title"),
        ],
    )
    isrc = pick(
        "isrc",
        [
            ("recognition", rec.isrc if rec else None),
            ("base_track", base.isrc if base else None),
            *from_links("isrc"),
        ],
    )

    link_covers = [
        (f"{result.source.value}:{platform.value}", result.cover_art_url)
        for platform, result in (links or {}).items()
    ]
    cover = pick(
        "cover_art_url",
        [
            ("recognition", rec.cover_art_url if rec else None),
            ("base_track", base.cover_art_url if base else None),
            *link_covers,
        ],
    )

    return MergedIdentity(
        artist=_normalize_string(artist) or "",
        title=_normalize_string(title) or "",
        isrc=(_normalize_string(isrc) or "").upper() or None,
        cover_art_url=_normalize_string(cover),
    )


def recognition_links(
    recognition: RecognitionResult,
    *,
    confidence: float,
) -> list[ProviderResult]:
    return [
        ProviderResult(
            provider=platform,
            id="",
            url=url,
            confidence=confidence,
            source=ResultSource.RECOGNITION,
            cover_art_url=recognition.cover_art_url,
        )
        for platform, url in recognition.links.items()
        if _has_value(url)
    ]


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _normalize_string(value: Any) -> str | None:
    if value is None:
        return None
    text = _WS_RE.sub(" ", str(value)).strip()
    return text or None
