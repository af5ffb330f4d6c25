from __future__ import annotations

from db.smart_links import SmartLink
from engine.redirect import first_platform_url, resolve_destination
from metadata.types import Platform


def _record(slug: str = "midnight-drive", **urls: str) -> SmartLink:
    return SmartLink(
        id="1",
        slug=slug,
        artist="Jane Doe",
        title="Midnight Drive",
        isrc=None,
        urls={Platform(name): url for name, url in urls.items()},
    )


def test_priority_order_picks_spotify_over_others() -> None:
    record = _record(
        deezer="https://www.deezer.com/track/1",
        spotify="https://open.spotify.com/track/a",
        apple_music="https://music.apple.com/us/song/1",
    )
    assert resolve_destination(record, "https://ghoste.one") == "https://open.spotify.com/track/a"


def test_tidal_only_record_redirects_to_tidal() -> None:
    record = _record(tidal="https://listen.tidal.com/track/77646168")
    assert resolve_destination(record, "https://ghoste.one") == "https://listen.tidal.com/track/77646168"


def test_blank_urls_fall_through_to_short_link() -> None:
    record = _record(spotify="   ")
    assert first_platform_url(record) is None
    assert resolve_destination(record, "https://ghoste.one/") == "https://ghoste.one/s/midnight-drive"


def test_no_url_and_no_slug_is_empty() -> None:
    assert resolve_destination(_record(slug=""), "https://ghoste.one") == ""
    assert resolve_destination(None, "https://ghoste.one") == ""
