"""Structured track types shared by recognition, search, scoring and persistence."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Platform(Enum):
    SPOTIFY = "spotify"
    APPLE_MUSIC = "apple_music"
    YOUTUBE = "youtube"
    YOUTUBE_MUSIC = "youtube_music"
    TIDAL = "tidal"
    SOUNDCLOUD = "soundcloud"
    DEEZER = "deezer"
    AMAZON_MUSIC = "amazon_music"


# Fixed product order used for canonical destination selection. Do not reorder:
# previously shared links must keep redirecting to the same place.
PLATFORM_PRIORITY = (
    Platform.SPOTIFY,
    Platform.APPLE_MUSIC,
    Platform.YOUTUBE,
    Platform.YOUTUBE_MUSIC,
    Platform.TIDAL,
    Platform.SOUNDCLOUD,
    Platform.DEEZER,
    Platform.AMAZON_MUSIC,
)


class ResultSource(Enum):
    INPUT = "input"
    RECOGNITION = "recognition"
    SEARCH = "search"


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class BaseTrack:
    """Reference identity of a track once partially resolved."""

    title: str
    artist: str
    artists: list[str] = field(default_factory=list)
    isrc: str | None = None
    duration_seconds: int | None = None
    album: str | None = None
    release_date: str | None = None
    label: str | None = None
    cover_art_url: str | None = None

    def __post_init__(self) -> None:
        self.title = _clean(self.title) or ""
        self.artist = _clean(self.artist) or ""
        names = [name for name in (_clean(a) for a in self.artists) if name]
        if self.artist and self.artist not in names:
            names.insert(0, self.artist)
        if not self.artist and names:
            self.artist = names[0]
        self.artists = names
        isrc = _clean(self.isrc)
        self.isrc = isrc.upper() if isrc else None

    @property
    def search_text(self) -> str:
        return f"{self.artist} {self.title}".strip()


@dataclass
class Candidate(BaseTrack):
    """One platform search hit before scoring. Never persisted on its own."""

    platform: Platform = Platform.SPOTIFY
    platform_id: str = ""
    platform_url: str = ""


@dataclass(frozen=True)
class ProviderResult:
    provider: Platform
    id: str
    url: str
    confidence: float
    source: ResultSource = ResultSource.SEARCH
    cover_art_url: str | None = None
    title: str | None = None
    artist: str | None = None
    isrc: str | None = None


@dataclass
class RecognitionResult:
    """Provider-neutral output of the recognition gateway."""

    title: str | None = None
    artist: str | None = None
    artists: list[str] = field(default_factory=list)
    album: str | None = None
    isrc: str | None = None
    duration_seconds: int | None = None
    release_date: str | None = None
    cover_art_url: str | None = None
    score: float | None = None
    links: dict[Platform, str] = field(default_factory=dict)

    def to_base_track(self) -> BaseTrack | None:
        if not self.title or not (self.artist or self.artists):
            return None
        return BaseTrack(
            title=self.title,
            artist=self.artist or self.artists[0],
            artists=list(self.artists),
            isrc=self.isrc,
            duration_seconds=self.duration_seconds,
            album=self.album,
            release_date=self.release_date,
            cover_art_url=self.cover_art_url,
        )


@dataclass
class Resolution:
    """Merged outcome of one resolution, ready to persist."""

    artist: str
    title: str
    isrc: str | None = None
    links: dict[Platform, ProviderResult] = field(default_factory=dict)
    cover_art_url: str | None = None
    resolver_sources: list[str] = field(default_factory=list)

    @property
    def match_confidence(self) -> float:
        """Best corroborating confidence; the input's own link counts only when it is alone."""
        corroborating = [r.confidence for r in self.links.values() if r.source is not ResultSource.INPUT]
        if corroborating:
            return max(corroborating)
        return max((result.confidence for result in self.links.values()), default=0.0)
