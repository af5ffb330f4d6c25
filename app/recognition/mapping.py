"""Map recognition provider track payloads onto per-platform smart-link URLs."""

from __future__ import annotations

from typing import Any

from metadata.platform_links import canonical_url
from metadata.types import Platform, RecognitionResult

# Provider key names per platform inside ``external_metadata``.
_METADATA_KEYS: dict[Platform, tuple[str, ...]] = {
    Platform.SPOTIFY: ("spotify",),
    Platform.APPLE_MUSIC: ("applemusic", "apple_music"),
    Platform.YOUTUBE: ("youtube",),
    Platform.DEEZER: ("deezer",),
    Platform.TIDAL: ("tidal",),
    Platform.AMAZON_MUSIC: ("amazonmusic", "amazon"),
    Platform.SOUNDCLOUD: ("soundcloud",),
}

_EXTERNAL_URL_KEYS: dict[Platform, tuple[str, ...]] = {
    Platform.SPOTIFY: ("spotify",),
    Platform.APPLE_MUSIC: ("applemusic", "apple_music"),
    Platform.YOUTUBE: ("youtube",),
}

_EXTERNAL_ID_KEYS: dict[Platform, tuple[str, ...]] = {
    Platform.SPOTIFY: ("spotify",),
    Platform.APPLE_MUSIC: ("applemusic", "apple_music"),
    Platform.YOUTUBE: ("youtube",),
}


def _first_entry(value: Any) -> dict[str, Any] | None:
    if isinstance(value, list):
        value = value[0] if value else None
    return value if isinstance(value, dict) else None


def _first_present(container: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = container.get(key)
        if value:
            return value
    return None


def _from_external_metadata(track: dict[str, Any], platform: Platform) -> str | None:
    metadata = track.get("external_metadata") or {}
    if not isinstance(metadata, dict):
        return None
    entry = _first_entry(_first_present(metadata, _METADATA_KEYS.get(platform, ())))
    if not entry:
        return None
    link = entry.get("link") or entry.get("url")
    if isinstance(link, str) and link.startswith("http"):
        return link
    nested = entry.get("track") if isinstance(entry.get("track"), dict) else {}
    # YouTube entries carry the video id as ``vid``.
    bare_id = nested.get("id") or entry.get("id") or entry.get("vid")
    return canonical_url(platform, bare_id)


def _from_external_urls(track: dict[str, Any], platform: Platform) -> str | None:
    urls = track.get("external_urls") or {}
    if not isinstance(urls, dict):
        return None
    value = _first_present(urls, _EXTERNAL_URL_KEYS.get(platform, ()))
    return value if isinstance(value, str) and value.startswith("http") else None


def _from_external_ids(track: dict[str, Any], platform: Platform) -> str | None:
    ids = track.get("external_ids") or {}
    if not isinstance(ids, dict):
        return None
    return canonical_url(platform, _first_present(ids, _EXTERNAL_ID_KEYS.get(platform, ())))


_LINK_SOURCES = (_from_external_metadata, _from_external_urls, _from_external_ids)


def extract_links(track: dict[str, Any]) -> dict[Platform, str]:
    """Fold each platform's link sources left to right; the first present value wins."""
    links: dict[Platform, str] = {}
    for platform in _METADATA_KEYS:
        for source in _LINK_SOURCES:
            value = source(track, platform)
            if value:
                links[platform] = value
                break
    return links


def _artist_names(track: dict[str, Any]) -> list[str]:
    names = []
    for artist in track.get("artists") or []:
        name = artist.get("name") if isinstance(artist, dict) else artist
        if isinstance(name, str) and name.strip():
            names.append(name.strip())
    return names


def _cover_url(track: dict[str, Any]) -> str | None:
    album = track.get("album") if isinstance(track.get("album"), dict) else {}
    covers = album.get("covers") if isinstance(album.get("covers"), dict) else {}
    images = album.get("images") or []
    first_image = images[0].get("url") if images and isinstance(images[0], dict) else None
    return covers.get("large") or album.get("cover") or first_image or album.get("cover_url") or track.get("cover_url")


def map_to_smart_links(track: dict[str, Any]) -> RecognitionResult:
    """Normalize one provider track object into a ``RecognitionResult``."""
    artists = _artist_names(track)
    album = track.get("album") if isinstance(track.get("album"), dict) else {}
    external_ids = track.get("external_ids") if isinstance(track.get("external_ids"), dict) else {}
    duration_ms = track.get("duration_ms")
    raw_score = track.get("score")

    return RecognitionResult(
        title=track.get("name") or track.get("title"),
        artist=artists[0] if artists else track.get("artist"),
        artists=artists,
        album=album.get("name"),
        isrc=external_ids.get("isrc") or track.get("isrc"),
        duration_seconds=int(round(duration_ms / 1000)) if isinstance(duration_ms, (int, float)) and duration_ms > 0 else None,
        release_date=track.get("release_date") or album.get("release_date"),
        cover_art_url=_cover_url(track),
        score=min(1.0, float(raw_score) / 100) if isinstance(raw_score, (int, float)) and raw_score > 0 else None,
        links=extract_links(track),
    )
