from __future__ import annotations

import pytest

from engine.errors import EmptyInputError
from input.intent_router import InputKind, as_isrc, normalize
from metadata.types import Platform


def test_normalize_spotify_track_url_with_query_string() -> None:
    query = normalize("https://open.spotify.com/track/6rqhFgbbKwnb9MLmUQDhG6?si=abc123")
    assert query.input_kind is InputKind.URL
    assert query.platform is Platform.SPOTIFY
    assert query.raw_input == "https://open.spotify.com/track/6rqhFgbbKwnb9MLmUQDhG6?si=abc123"


@pytest.mark.parametrize(
    ("raw", "platform"),
    [
        ("https://music.apple.com/us/album/midnight/1440857781?i=1440857786", Platform.APPLE_MUSIC),
        ("https://itunes.apple.com/us/album/id1440857781", Platform.APPLE_MUSIC),
        ("https://www.youtube.com/watch?v=dQw4w9WgXcQ", Platform.YOUTUBE),
        ("https://youtu.be/dQw4w9WgXcQ", Platform.YOUTUBE),
        ("https://music.youtube.com/watch?v=dQw4w9WgXcQ", Platform.YOUTUBE_MUSIC),
        ("https://tidal.com/browse/track/77646168", Platform.TIDAL),
        ("https://soundcloud.com/jane-doe/midnight-drive", Platform.SOUNDCLOUD),
        ("https://www.deezer.com/track/3135556", Platform.DEEZER),
        ("https://music.amazon.com/albums/B07?trackAsin=B08", Platform.AMAZON_MUSIC),
    ],
)
def test_normalize_detects_platform_domains(raw: str, platform: Platform) -> None:
    query = normalize(raw)
    assert query.input_kind is InputKind.URL
    assert query.platform is platform


def test_normalize_isrc_with_dashes_and_lowercase() -> None:
    query = normalize("  us-um7-19-00001 ")
    assert query.input_kind is InputKind.ISRC
    assert query.isrc == "USUM71900001"


def test_as_isrc_rejects_wrong_shape() -> None:
    assert as_isrc("USUM7190000") is None
    assert as_isrc("1SUM71900001") is None
    assert as_isrc("GBAYE0601498") == "GBAYE0601498"


def test_normalize_free_text_keeps_hints() -> None:
    query = normalize("midnight drive jane doe", artist="Jane Doe", title="Midnight Drive")
    assert query.input_kind is InputKind.FREE_TEXT
    assert query.artist_hint == "Jane Doe"
    assert query.title_hint == "Midnight Drive"


def test_normalize_free_text_splits_artist_title() -> None:
    query = normalize("Jane Doe – Midnight Drive")
    assert query.input_kind is InputKind.FREE_TEXT
    assert query.artist_hint == "Jane Doe"
    assert query.title_hint == "Midnight Drive"


def test_normalize_free_text_without_separator_has_no_hints() -> None:
    query = normalize("best synthwave tracks")
    assert query.input_kind is InputKind.FREE_TEXT
    assert query.artist_hint is None
    assert query.title_hint is None


@pytest.mark.parametrize("raw", ["", "   ", "\n\t"])
def test_normalize_rejects_empty_input(raw: str) -> None:
    with pytest.raises(EmptyInputError):
        normalize(raw)
