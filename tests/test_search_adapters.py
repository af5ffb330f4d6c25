from __future__ import annotations

import threading
from typing import Any

import requests

from config.settings import ResolverSettings
from engine.search_adapters import (
    AmazonMusicAdapter,
    AppleMusicAdapter,
    DeezerAdapter,
    SoundCloudAdapter,
    TidalAdapter,
    YouTubeAdapter,
    default_adapters,
    parse_iso_duration,
    split_video_title,
)
from metadata.types import BaseTrack, Platform


class _Response:
    def __init__(self, status_code: int, payload: Any = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = ""

    def json(self) -> Any:
        return self._payload


class _Session:
    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class _Request:
    def __init__(self, payload) -> None:
        self.payload = payload

    def execute(self):
        return self.payload


class _Resource:
    def __init__(self, payload) -> None:
        self.payload = payload
        self.kwargs = None

    def list(self, **kwargs):
        self.kwargs = kwargs
        return _Request(self.payload)


class _YouTubeService:
    def __init__(self, search_payload, videos_payload) -> None:
        self._search = _Resource(search_payload)
        self._videos = _Resource(videos_payload)

    def search(self):
        return self._search

    def videos(self):
        return self._videos


_BASE = BaseTrack(title="Midnight Drive", artist="Jane Doe")


def test_parse_iso_duration_and_video_title() -> None:
    assert parse_iso_duration("PT3M20S") == 200
    assert parse_iso_duration("PT1H") == 3600
    assert parse_iso_duration(None) is None
    assert split_video_title("Jane Doe - Midnight Drive (Official Video)") == (
        "Jane Doe",
        "Midnight Drive (Official Video)",
    )
    assert split_video_title("Midnight Drive") == (None, "Midnight Drive")


def test_itunes_search_without_developer_token() -> None:
    session = _Session(
        _Response(
            200,
            {
                "results": [
                    {
                        "trackId": 1440857786,
                        "trackName": "Midnight Drive",
                        "artistName": "Jane Doe",
                        "collectionName": "Night Roads",
                        "trackTimeMillis": 200000,
                        "trackViewUrl": "https://music.apple.com/us/album/night-roads/1440857781?i=1440857786",
                    },
                    {"trackId": 2, "trackName": "No Url"},
                ]
            },
        )
    )
    candidates = AppleMusicAdapter(session=session).search(_BASE)
    assert session.calls[0]["url"] == "https://itunes.apple.com/search"
    assert session.calls[0]["params"]["term"] == "Jane Doe Midnight Drive"
    assert len(candidates) == 1
    assert candidates[0].platform is Platform.APPLE_MUSIC
    assert candidates[0].platform_id == "1440857786"
    assert candidates[0].duration_seconds == 200


def test_apple_catalog_isrc_lookup_with_developer_token() -> None:
    session = _Session(
        _Response(
            200,
            {
                "data": [
                    {
                        "id": "1440857786",
                        "attributes": {
                            "name": "Midnight Drive",
                            "artistName": "Jane Doe",
                            "isrc": "USABC2400001",
                            "url": "https://music.apple.com/us/song/1440857786",
                            "artwork": {"url": "https://img/{w}x{h}.jpg"},
                        },
                    }
                ]
            },
        )
    )
    adapter = AppleMusicAdapter(developer_token="dev-token", session=session)
    candidates = adapter.search(BaseTrack(title="Midnight Drive", artist="Jane Doe", isrc="USABC2400001"))
    call = session.calls[0]
    assert call["url"] == "https://api.music.apple.com/v1/catalog/us/songs"
    assert call["params"] == {"filter[isrc]": "USABC2400001"}
    assert call["headers"]["Authorization"] == "Bearer dev-token"
    assert candidates[0].cover_art_url == "https://img/600x600.jpg"


def test_provider_failure_returns_empty() -> None:
    assert AppleMusicAdapter(session=_Session(_Response(503))).search(_BASE) == []
    assert DeezerAdapter(session=_Session(requests.ConnectionError("down"))).search(_BASE) == []


def test_deezer_isrc_endpoint() -> None:
    session = _Session(
        _Response(
            200,
            {
                "id": 3135556,
                "title": "Midnight Drive",
                "isrc": "USABC2400001",
                "link": "https://www.deezer.com/track/3135556",
                "duration": 200,
                "artist": {"name": "Jane Doe"},
                "album": {"title": "Night Roads", "cover_xl": "https://img/xl.jpg"},
            },
        )
    )
    candidates = DeezerAdapter(session=session).search(BaseTrack(title="x", artist="y", isrc="USABC2400001"))
    assert session.calls[0]["url"] == "https://api.deezer.com/track/isrc:USABC2400001"
    assert candidates[0].platform_url == "https://www.deezer.com/track/3135556"
    assert candidates[0].duration_seconds == 200


def test_deezer_isrc_miss_falls_back_to_search() -> None:
    session = _Session(
        _Response(200, {"error": {"type": "DataException"}}),
        _Response(200, {"data": [{"id": 7, "title": "Midnight Drive", "artist": {"name": "Jane Doe"}}]}),
    )
    candidates = DeezerAdapter(session=session).search(BaseTrack(title="Midnight Drive", artist="Jane Doe", isrc="USABC2400001"))
    assert session.calls[1]["url"] == "https://api.deezer.com/search/track"
    assert candidates[0].platform_url == "https://www.deezer.com/track/7"


def test_soundcloud_requires_client_id() -> None:
    session = _Session()
    assert SoundCloudAdapter(session=session).search(_BASE) == []
    assert session.calls == []


def test_soundcloud_search_maps_collection() -> None:
    session = _Session(
        _Response(
            200,
            {
                "collection": [
                    {
                        "id": 99,
                        "title": "Midnight Drive",
                        "permalink_url": "https://soundcloud.com/jane-doe/midnight-drive",
                        "duration": 200000,
                        "label_name": "Nocturne Records",
                        "user": {"username": "janedoe"},
                        "publisher_metadata": {"artist": "Jane Doe", "isrc": "USABC2400001"},
                    }
                ]
            },
        )
    )
    candidates = SoundCloudAdapter(client_id="cid", session=session).search(_BASE)
    assert candidates[0].artist == "Jane Doe"
    assert candidates[0].label == "Nocturne Records"
    assert candidates[0].isrc == "USABC2400001"


def test_youtube_search_merges_durations() -> None:
    service = _YouTubeService(
        {
            "items": [
                {
                    "id": {"videoId": "dQw4w9WgXcQ"},
                    "snippet": {"title": "Jane Doe - Midnight Drive", "channelTitle": "JaneDoeVEVO"},
                }
            ]
        },
        {"items": [{"id": "dQw4w9WgXcQ", "contentDetails": {"duration": "PT3M20S"}}]},
    )
    candidates = YouTubeAdapter(service=service).search(_BASE)
    assert service._search.kwargs["q"] == "Jane Doe Midnight Drive"
    assert service._search.kwargs["type"] == "video"
    candidate = candidates[0]
    assert candidate.platform is Platform.YOUTUBE
    assert candidate.platform_url == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
    assert candidate.artist == "Jane Doe"
    assert candidate.title == "Midnight Drive"
    assert candidate.duration_seconds == 200


def test_youtube_without_key_is_not_configured() -> None:
    assert YouTubeAdapter().search(_BASE) == []


def test_pass_through_platforms_never_search() -> None:
    assert TidalAdapter().search(_BASE) == []
    assert AmazonMusicAdapter().search(_BASE) == []
    assert TidalAdapter().is_configured() is False


def test_default_adapters_cover_every_searchable_platform() -> None:
    adapters = default_adapters(ResolverSettings(db_path=":memory:"))
    assert [adapter.platform for adapter in adapters] == [
        Platform.SPOTIFY,
        Platform.APPLE_MUSIC,
        Platform.YOUTUBE,
        Platform.SOUNDCLOUD,
        Platform.DEEZER,
        Platform.TIDAL,
        Platform.AMAZON_MUSIC,
    ]


def test_youtube_client_has_timeout_and_one_instance_per_thread(monkeypatch) -> None:
    built = []

    def _build(service_name, version, **kwargs):
        built.append(kwargs)
        return object()

    monkeypatch.setattr("engine.search_adapters.build", _build)
    adapter = YouTubeAdapter(api_key="key", timeout_sec=3.0)

    first = adapter._youtube()
    assert adapter._youtube() is first

    other = []
    worker = threading.Thread(target=lambda: other.append(adapter._youtube()))
    worker.start()
    worker.join()

    assert other[0] is not first
    assert len(built) == 2
    assert built[0]["developerKey"] == "key"
    assert built[0]["http"].timeout == 3.0
    assert built[0]["http"] is not built[1]["http"]


def test_youtube_socket_timeout_returns_empty() -> None:
    class _TimingOut:
        def search(self):
            raise TimeoutError("timed out")

    assert YouTubeAdapter(service=_TimingOut()).search(_BASE) == []
