"""Platform URL detection, id extraction and canonical URL builders."""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import parse_qs, urlparse

from metadata.types import Platform

# Order matters: YouTube Music and Apple Music hosts must win over the generic ones.
_PLATFORM_DOMAINS = (
    ("music.youtube.com", Platform.YOUTUBE_MUSIC),
    ("youtube.com", Platform.YOUTUBE),
    ("youtu.be", Platform.YOUTUBE),
    ("spotify.com", Platform.SPOTIFY),
    ("music.apple.com", Platform.APPLE_MUSIC),
    ("itunes.apple.com", Platform.APPLE_MUSIC),
    ("tidal.com", Platform.TIDAL),
    ("soundcloud.com", Platform.SOUNDCLOUD),
    ("deezer.com", Platform.DEEZER),
    ("music.amazon.", Platform.AMAZON_MUSIC),
)

_SPOTIFY_URI_RE = re.compile(r"^spotify:track:([A-Za-z0-9]+)$")
_SPOTIFY_ID_RE = re.compile(r"^[A-Za-z0-9]{22}$")
_YOUTUBE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
_DIGITS_RE = re.compile(r"^\d+$")


def detect_platform(value: str) -> Optional[Platform]:
    """Return the platform whose domain appears in ``value`` (substring match)."""
    lowered = (value or "").strip().lower()
    if not lowered:
        return None
    if lowered.startswith("spotify:"):
        return Platform.SPOTIFY
    for domain, platform in _PLATFORM_DOMAINS:
        if domain in lowered:
            return platform
    return None


def _path_parts(url: str) -> list[str]:
    parsed = urlparse(url)
    return [segment for segment in (parsed.path or "").split("/") if segment]


def _clean_identifier(value: str) -> str:
    return (value or "").split("?", 1)[0].strip().strip("/")


def extract_spotify_track_id(value: str) -> Optional[str]:
    raw = (value or "").strip()
    match = _SPOTIFY_URI_RE.match(raw)
    if match:
        return match.group(1)
    if "spotify.com" not in raw.lower():
        return None
    parts = _path_parts(raw)
    # open.spotify.com/intl-de/track/<id> is a valid share form
    for idx, segment in enumerate(parts[:-1]):
        if segment.lower() == "track":
            return _clean_identifier(parts[idx + 1]) or None
    return None


def extract_apple_music_id(value: str) -> Optional[str]:
    raw = (value or "").strip()
    if "apple.com" not in raw.lower():
        return None
    song_id = parse_qs(urlparse(raw).query).get("i")
    if song_id and _DIGITS_RE.match(song_id[0]):
        return song_id[0]
    parts = _path_parts(raw)
    if parts and _DIGITS_RE.match(parts[-1]):
        return parts[-1]
    if parts and parts[-1].startswith("id") and _DIGITS_RE.match(parts[-1][2:]):
        return parts[-1][2:]
    return None


def extract_youtube_video_id(value: str) -> Optional[str]:
    raw = (value or "").strip()
    lowered = raw.lower()
    parsed = urlparse(raw)
    if "youtu.be" in lowered:
        parts = _path_parts(raw)
        return _clean_identifier(parts[0]) if parts else None
    if "youtube.com" not in lowered:
        return None
    video = parse_qs(parsed.query).get("v")
    if video:
        return video[0]
    parts = _path_parts(raw)
    if len(parts) >= 2 and parts[0] in {"shorts", "embed", "live"}:
        return _clean_identifier(parts[1])
    return None


def extract_tidal_track_id(value: str) -> Optional[str]:
    raw = (value or "").strip()
    if "tidal.com" not in raw.lower():
        return None
    parts = _path_parts(raw)
    for idx, segment in enumerate(parts[:-1]):
        if segment.lower() == "track":
            return _clean_identifier(parts[idx + 1]) or None
    return None


def extract_deezer_track_id(value: str) -> Optional[str]:
    raw = (value or "").strip()
    if "deezer.com" not in raw.lower():
        return None
    parts = _path_parts(raw)
    for idx, segment in enumerate(parts[:-1]):
        if segment.lower() == "track":
            return _clean_identifier(parts[idx + 1]) or None
    return None


def extract_platform_id(platform: Platform, url: str) -> Optional[str]:
    extractors = {
        Platform.SPOTIFY: extract_spotify_track_id,
        Platform.APPLE_MUSIC: extract_apple_music_id,
        Platform.YOUTUBE: extract_youtube_video_id,
        Platform.YOUTUBE_MUSIC: extract_youtube_video_id,
        Platform.TIDAL: extract_tidal_track_id,
        Platform.DEEZER: extract_deezer_track_id,
    }
    extractor = extractors.get(platform)
    return extractor(url) if extractor else None


def canonical_url(platform: Platform, platform_id: object) -> Optional[str]:
    """Build the public track URL for a bare platform id, when the platform allows it."""
    track_id = str(platform_id or "").strip()
    if not track_id:
        return None
    if platform is Platform.SPOTIFY:
        uri = _SPOTIFY_URI_RE.match(track_id)
        if uri:
            track_id = uri.group(1)
        if track_id.startswith("http"):
            return track_id
        return f"https://open.spotify.com/track/{track_id}" if _SPOTIFY_ID_RE.match(track_id) else None
    if platform is Platform.APPLE_MUSIC:
        return f"https://music.apple.com/us/song/{track_id}" if _DIGITS_RE.match(track_id) else None
    if platform is Platform.YOUTUBE:
        return f"https://www.youtube.com/watch?v={track_id}" if _YOUTUBE_ID_RE.match(track_id) else None
    if platform is Platform.YOUTUBE_MUSIC:
        return f"https://music.youtube.com/watch?v={track_id}" if _YOUTUBE_ID_RE.match(track_id) else None
    if platform is Platform.TIDAL:
        return f"https://listen.tidal.com/track/{track_id}" if _DIGITS_RE.match(track_id) else None
    if platform is Platform.DEEZER:
        return f"https://www.deezer.com/track/{track_id}" if _DIGITS_RE.match(track_id) else None
    if platform is Platform.AMAZON_MUSIC:
        return f"https://music.amazon.com/tracks/{track_id}"
    # SoundCloud ids do not map to a public permalink.
    return None
