from __future__ import annotations

import pytest

from db.smart_links import LookupKey, SmartLinkStore, identity_key, slugify
from engine.errors import PersistenceConflict
from input.intent_router import normalize
from metadata.types import Platform, ProviderResult, Resolution, ResultSource


def _store(tmp_path) -> SmartLinkStore:
    return SmartLinkStore(str(tmp_path / "smart_links.sqlite"))


def _resolution(isrc: str | None = "USABC2400001", **links: tuple[str, float]) -> Resolution:
    results = {
        Platform(name): ProviderResult(provider=Platform(name), id="", url=url, confidence=confidence)
        for name, (url, confidence) in links.items()
    }
    return Resolution(artist="Jane Doe", title="Midnight Drive", isrc=isrc, links=results, resolver_sources=["search"])


def test_slugify_and_identity_key() -> None:
    assert slugify("Midnight Drive!") == "midnight-drive"
    assert slugify(None) == "track"
    assert slugify("  ") == "track"
    assert identity_key("usabc2400001", "Jane", "Song") == "isrc:USABC2400001"
    assert identity_key(None, "Jane Doe", "Midnight Drive") == "at:jane doe|midnight drive"
    assert identity_key(None, "", "", "https://x") == "url:https://x"


def test_upsert_inserts_and_reads_back(tmp_path) -> None:
    store = _store(tmp_path)
    query = normalize("https://open.spotify.com/track/abc123")
    record = store.upsert(
        query,
        _resolution(spotify=("https://open.spotify.com/track/abc123", 1.0), apple_music=("https://music.apple.com/us/song/1", 0.9)),
    )
    assert record.slug == "midnight-drive"
    assert record.url_for(Platform.SPOTIFY) == "https://open.spotify.com/track/abc123"
    assert record.confidences[Platform.APPLE_MUSIC] == 0.9
    assert record.match_confidence == 1.0
    assert record.needs_manual_review is False
    assert record.total_clicks == 0
    assert record.source_url == "https://open.spotify.com/track/abc123"
    assert record.resolver_sources == ["search"]
    assert store.get_by_slug("midnight-drive").id == record.id


def test_low_confidence_is_flagged_for_review(tmp_path) -> None:
    store = _store(tmp_path)
    record = store.upsert(normalize("USABC2400001"), _resolution(deezer=("https://www.deezer.com/track/1", 0.4)))
    assert record.needs_manual_review is True


def test_find_existing_by_isrc_artist_title_and_source_url(tmp_path) -> None:
    store = _store(tmp_path)
    url = "https://open.spotify.com/track/abc123"
    record = store.upsert(normalize(url), _resolution(isrc=None, spotify=(url, 1.0)))

    assert store.find_existing(LookupKey(artist="jane doe", title="MIDNIGHT DRIVE")).id == record.id
    assert store.find_existing(LookupKey.from_query(normalize(url))).id == record.id
    assert store.find_existing(LookupKey(isrc="GBAYE0601498")) is None


def test_same_identity_converges_on_one_row(tmp_path) -> None:
    store = _store(tmp_path)
    query = normalize("USABC2400001")
    first = store.upsert(query, _resolution(spotify=("https://open.spotify.com/track/a", 0.9)))
    second = store.upsert(query, _resolution(tidal=("https://listen.tidal.com/track/1", 0.8)))
    assert second.id == first.id
    assert second.slug == first.slug
    assert second.url_for(Platform.SPOTIFY) == "https://open.spotify.com/track/a"
    assert second.url_for(Platform.TIDAL) == "https://listen.tidal.com/track/1"


def test_update_in_place_keeps_id_slug_and_unknown_fields(tmp_path) -> None:
    store = _store(tmp_path)
    query = normalize("USABC2400001")
    first = store.upsert(query, _resolution(apple_music=("https://music.apple.com/us/song/1", 0.9)))
    resolution = _resolution(spotify=("https://open.spotify.com/track/a", 0.95))
    resolution.cover_art_url = None
    updated = store.upsert(query, resolution, existing=first)
    assert updated.id == first.id
    assert updated.slug == first.slug
    assert updated.url_for(Platform.APPLE_MUSIC) == "https://music.apple.com/us/song/1"
    assert updated.url_for(Platform.SPOTIFY) == "https://open.spotify.com/track/a"


def test_slug_collision_gets_timestamp_suffix(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr("db.smart_links.time.time", lambda: 1700000000.0)
    store = _store(tmp_path)
    first = store.upsert(normalize("USABC2400001"), _resolution(isrc="USABC2400001", deezer=("https://www.deezer.com/track/1", 0.9)))
    second = store.upsert(normalize("USABC2400002"), _resolution(isrc="USABC2400002", deezer=("https://www.deezer.com/track/2", 0.9)))
    assert first.slug == "midnight-drive"
    assert second.slug == "midnight-drive-1700000000000"
    assert second.id != first.id


def test_second_slug_collision_raises(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr("db.smart_links.time.time", lambda: 1700000000.0)
    store = _store(tmp_path)
    for isrc in ("USABC2400001", "USABC2400002"):
        store.upsert(normalize(isrc), _resolution(isrc=isrc, deezer=("https://www.deezer.com/track/1", 0.9)))
    with pytest.raises(PersistenceConflict):
        store.upsert(normalize("USABC2400003"), _resolution(isrc="USABC2400003", deezer=("https://www.deezer.com/track/3", 0.9)))


def test_resolution_match_confidence_ignores_input_when_corroborated() -> None:
    resolution = Resolution(
        artist="Jane Doe",
        title="Midnight Drive",
        links={
            Platform.SPOTIFY: ProviderResult(Platform.SPOTIFY, "abc", "https://open.spotify.com/track/abc", 1.0, ResultSource.INPUT),
            Platform.APPLE_MUSIC: ProviderResult(Platform.APPLE_MUSIC, "", "https://music.apple.com/us/song/1", 0.9, ResultSource.RECOGNITION),
        },
    )
    assert resolution.match_confidence == 0.9


def test_same_title_by_different_artists_gets_suffixed_slug(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr("db.smart_links.time.time", lambda: 1700000000.0)
    store = _store(tmp_path)
    slugs = []
    for isrc, artist in (("USABC2400010", "Jane Doe"), ("USXYZ2400020", "John Roe")):
        resolution = Resolution(
            artist=artist,
            title="Intro",
            isrc=isrc,
            links={
                Platform.DEEZER: ProviderResult(
                    provider=Platform.DEEZER, id="", url=f"https://www.deezer.com/track/{isrc}", confidence=0.9
                )
            },
        )
        slugs.append(store.upsert(normalize(isrc), resolution).slug)
    assert slugs == ["intro", "intro-1700000000000"]
