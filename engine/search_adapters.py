import logging
import re
import threading
from urllib.parse import urlparse

import httplib2
import requests
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from config.settings import PROVIDER_TIMEOUT_SECONDS, SEARCH_LIMIT
from engine.errors import ProviderSearchFailed
from engine.json_utils import log_event, truncate
from engine.token_cache import TokenCache
from metadata.platform_links import canonical_url
from metadata.types import Candidate, Platform
from spotify.client import SpotifyCatalogClient

logger = logging.getLogger(__name__)

_ISO_DURATION_RE = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")
_VIDEO_TITLE_RE = re.compile(r"^(.*?)\s*[-–]\s*(.+)$")

# Apple developer tokens are signed for up to six months; re-read well before that.
_APPLE_TOKEN_TTL_SECONDS = 12 * 60 * 60


def _is_http_url(value):
    if not value or not isinstance(value, str):
        return False
    try:
        return urlparse(value).scheme in ("http", "https")
    except ValueError:
        return False


def _ms_to_seconds(value):
    if isinstance(value, (int, float)) and value > 0:
        return int(round(value / 1000))
    return None


def parse_iso_duration(value):
    if not value:
        return None
    match = _ISO_DURATION_RE.match(str(value))
    if not match:
        return None
    hours, minutes, seconds = (int(part or 0) for part in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def split_video_title(raw_title):
    """Split ``"Artist - Title"`` video titles; returns ``(None, raw_title)`` otherwise."""
    match = _VIDEO_TITLE_RE.match(raw_title or "")
    if not match:
        return None, raw_title
    return match.group(1).strip() or None, match.group(2).strip()


class SearchAdapter:
    """One platform catalog. ``search`` returns candidates and never raises."""

    platform = None

    def __init__(self, timeout_sec=PROVIDER_TIMEOUT_SECONDS, session=None):
        self.timeout_sec = timeout_sec
        self._session = session or requests.Session()

    @property
    def source(self):
        return self.platform.value if self.platform else ""

    def is_configured(self):
        return True

    def search(self, base, limit=SEARCH_LIMIT):
        if not self.is_configured():
            return []
        try:
            return self._search(base, limit)
        except (ProviderSearchFailed, requests.RequestException, HttpError, httplib2.HttpLib2Error, OSError, ValueError) as exc:
            log_event(logging.WARNING, "provider_search_failed", logger=logger, provider=self.source, error=str(exc))
            return []

    def _search(self, base, limit):
        raise NotImplementedError

    def _get_json(self, url, params=None, headers=None):
        response = self._session.get(url, params=params, headers=headers, timeout=self.timeout_sec)
        if response.status_code != 200:
            log_event(
                logging.WARNING,
                "provider_request_failed",
                logger=logger,
                provider=self.source,
                status=response.status_code,
                body=truncate(response.text),
            )
            raise ProviderSearchFailed(self.source, f"request failed ({response.status_code})")
        return response.json()


class AppleMusicAdapter(SearchAdapter):
    platform = Platform.APPLE_MUSIC

    _ITUNES_SEARCH_URL = "https://itunes.apple.com/search"
    _CATALOG_URL = "https://api.music.apple.com/v1/catalog/{storefront}"

    def __init__(self, developer_token=None, storefront="us", timeout_sec=PROVIDER_TIMEOUT_SECONDS, session=None):
        super().__init__(timeout_sec=timeout_sec, session=session)
        self._developer_token = (developer_token or "").strip() or None
        self.storefront = storefront or "us"
        self._tokens = TokenCache(skew_seconds=0)

    def _token(self):
        if not self._developer_token:
            return None
        return self._tokens.get_or_refresh(lambda: (self._developer_token, _APPLE_TOKEN_TTL_SECONDS))

    def _search(self, base, limit):
        token = self._token()
        if token:
            return self._search_catalog(base, limit, token)
        return self._search_itunes(base, limit)

    def _search_catalog(self, base, limit, token):
        headers = {"Authorization": f"Bearer {token}"}
        catalog_url = self._CATALOG_URL.format(storefront=self.storefront)
        if base.isrc:
            payload = self._get_json(f"{catalog_url}/songs", params={"filter[isrc]": base.isrc}, headers=headers)
            songs = payload.get("data") or []
            if songs:
                return self._catalog_candidates(songs[:limit])
        query = base.search_text
        if not query:
            return []
        payload = self._get_json(
            f"{catalog_url}/search",
            params={"term": query, "types": "songs", "limit": limit},
            headers=headers,
        )
        songs = ((payload.get("results") or {}).get("songs") or {}).get("data") or []
        return self._catalog_candidates(songs)

    def _catalog_candidates(self, songs):
        candidates = []
        for song in songs:
            attributes = song.get("attributes") or {}
            url = attributes.get("url") or canonical_url(Platform.APPLE_MUSIC, song.get("id"))
            if not _is_http_url(url):
                continue
            artwork = (attributes.get("artwork") or {}).get("url")
            candidates.append(
                Candidate(
                    title=attributes.get("name") or "",
                    artist=attributes.get("artistName") or "",
                    isrc=attributes.get("isrc"),
                    duration_seconds=_ms_to_seconds(attributes.get("durationInMillis")),
                    album=attributes.get("albumName"),
                    release_date=attributes.get("releaseDate"),
                    cover_art_url=artwork.replace("{w}", "600").replace("{h}", "600") if artwork else None,
                    platform=self.platform,
                    platform_id=str(song.get("id") or ""),
                    platform_url=url,
                )
            )
        return candidates

    def _search_itunes(self, base, limit):
        query = base.search_text
        if not query:
            return []
        payload = self._get_json(
            self._ITUNES_SEARCH_URL,
            params={"term": query, "entity": "song", "limit": limit, "country": self.storefront},
        )
        candidates = []
        for result in payload.get("results") or []:
            url = result.get("trackViewUrl")
            if not _is_http_url(url):
                continue
            candidates.append(
                Candidate(
                    title=result.get("trackName") or "",
                    artist=result.get("artistName") or "",
                    isrc=result.get("isrc"),
                    duration_seconds=_ms_to_seconds(result.get("trackTimeMillis")),
                    album=result.get("collectionName"),
                    release_date=result.get("releaseDate"),
                    cover_art_url=result.get("artworkUrl100") or result.get("artworkUrl60"),
                    platform=self.platform,
                    platform_id=str(result.get("trackId") or ""),
                    platform_url=url,
                )
            )
        return candidates


class YouTubeAdapter(SearchAdapter):
    platform = Platform.YOUTUBE

    def __init__(self, api_key=None, timeout_sec=PROVIDER_TIMEOUT_SECONDS, service=None):
        super().__init__(timeout_sec=timeout_sec)
        self.api_key = (api_key or "").strip() or None
        self._service = service
        self._local = threading.local()

    def is_configured(self):
        return bool(self.api_key or self._service is not None)

    def _youtube(self):
        # httplib2 connections are not thread-safe: one client per worker thread.
        if self._service is not None:
            return self._service
        service = getattr(self._local, "service", None)
        if service is None:
            http = httplib2.Http(timeout=self.timeout_sec)
            service = build("youtube", "v3", developerKey=self.api_key, http=http, cache_discovery=False)
            self._local.service = service
        return service

    def video_details(self, video_id):
        """Title, channel and duration of one video, used to derive a reference track."""
        if not video_id or not self.is_configured():
            return None
        try:
            payload = self._youtube().videos().list(part="snippet,contentDetails", id=video_id).execute()
        except (HttpError, httplib2.HttpLib2Error, OSError) as exc:
            log_event(logging.WARNING, "youtube_video_lookup_failed", logger=logger, video_id=video_id, error=str(exc))
            return None
        items = payload.get("items") or []
        if not items:
            return None
        item = items[0]
        snippet = item.get("snippet") or {}
        raw_title = snippet.get("title") or ""
        artist, title = split_video_title(raw_title)
        return Candidate(
            title=title or raw_title,
            artist=artist or snippet.get("channelTitle") or "",
            duration_seconds=parse_iso_duration((item.get("contentDetails") or {}).get("duration")),
            cover_art_url=self._thumbnail(snippet),
            platform=self.platform,
            platform_id=video_id,
            platform_url=canonical_url(self.platform, video_id) or "",
        )

    def _thumbnail(self, snippet):
        thumbnails = snippet.get("thumbnails") or {}
        for size in ("high", "medium", "default"):
            url = (thumbnails.get(size) or {}).get("url")
            if url:
                return url
        return None

    def _search(self, base, limit):
        query = base.search_text
        if not query:
            return []
        youtube = self._youtube()
        search = youtube.search().list(part="snippet", type="video", maxResults=limit, q=query).execute()
        items = search.get("items") or []
        video_ids = [(item.get("id") or {}).get("videoId") for item in items]
        video_ids = [video_id for video_id in video_ids if video_id]
        if not video_ids:
            return []

        durations = {}
        try:
            videos = youtube.videos().list(part="contentDetails", id=",".join(video_ids)).execute()
            for video in videos.get("items") or []:
                durations[video.get("id")] = parse_iso_duration((video.get("contentDetails") or {}).get("duration"))
        except (HttpError, httplib2.HttpLib2Error, OSError) as exc:
            # Candidates still score without durations.
            log_event(logging.INFO, "youtube_duration_lookup_failed", logger=logger, error=str(exc))

        candidates = []
        for item in items:
            video_id = (item.get("id") or {}).get("videoId")
            if not video_id:
                continue
            snippet = item.get("snippet") or {}
            raw_title = snippet.get("title") or ""
            artist, title = split_video_title(raw_title)
            candidates.append(
                Candidate(
                    title=title or raw_title,
                    artist=artist or snippet.get("channelTitle") or "",
                    duration_seconds=durations.get(video_id),
                    cover_art_url=self._thumbnail(snippet),
                    platform=self.platform,
                    platform_id=video_id,
                    platform_url=canonical_url(self.platform, video_id) or f"https://www.youtube.com/watch?v={video_id}",
                )
            )
        return candidates


class SoundCloudAdapter(SearchAdapter):
    platform = Platform.SOUNDCLOUD

    _SEARCH_URL = "https://api-v2.soundcloud.com/search/tracks"

    def __init__(self, client_id=None, timeout_sec=PROVIDER_TIMEOUT_SECONDS, session=None):
        super().__init__(timeout_sec=timeout_sec, session=session)
        self.client_id = (client_id or "").strip() or None

    def is_configured(self):
        return bool(self.client_id)

    def _search(self, base, limit):
        query = base.search_text
        if not query:
            return []
        payload = self._get_json(self._SEARCH_URL, params={"q": query, "client_id": self.client_id, "limit": limit})
        candidates = []
        for track in payload.get("collection") or []:
            url = track.get("permalink_url")
            if not _is_http_url(url) or not track.get("id"):
                continue
            user = track.get("user") or {}
            publisher = track.get("publisher_metadata") or {}
            candidates.append(
                Candidate(
                    title=track.get("title") or "",
                    artist=publisher.get("artist") or user.get("username") or "",
                    artists=[user.get("username")] if user.get("username") else [],
                    isrc=publisher.get("isrc"),
                    duration_seconds=_ms_to_seconds(track.get("duration")),
                    release_date=track.get("release_date") or track.get("display_date"),
                    label=track.get("label_name"),
                    cover_art_url=track.get("artwork_url") or user.get("avatar_url"),
                    platform=self.platform,
                    platform_id=str(track.get("id")),
                    platform_url=url,
                )
            )
        return candidates


class DeezerAdapter(SearchAdapter):
    platform = Platform.DEEZER

    _API_URL = "https://api.deezer.com"

    def _search(self, base, limit):
        if base.isrc:
            payload = self._get_json(f"{self._API_URL}/track/isrc:{base.isrc}")
            if payload.get("id") and not payload.get("error"):
                candidate = self._to_candidate(payload)
                if candidate:
                    return [candidate]
        query = base.search_text
        if not query:
            return []
        payload = self._get_json(f"{self._API_URL}/search/track", params={"q": query, "limit": limit})
        candidates = []
        for track in payload.get("data") or []:
            candidate = self._to_candidate(track)
            if candidate:
                candidates.append(candidate)
        return candidates

    def _to_candidate(self, track):
        track_id = track.get("id")
        url = track.get("link") or canonical_url(self.platform, track_id)
        if not track_id or not _is_http_url(url):
            return None
        duration = track.get("duration")
        album = track.get("album") or {}
        return Candidate(
            title=track.get("title") or "",
            artist=(track.get("artist") or {}).get("name") or "",
            artists=[c.get("name") for c in (track.get("contributors") or []) if c.get("name")],
            isrc=track.get("isrc"),
            duration_seconds=int(duration) if isinstance(duration, (int, float)) and duration > 0 else None,
            album=album.get("title"),
            release_date=track.get("release_date"),
            cover_art_url=album.get("cover_xl") or album.get("cover_big"),
            platform=self.platform,
            platform_id=str(track_id),
            platform_url=url,
        )


class _PassThroughAdapter(SearchAdapter):
    """Platforms without a public catalog search; links arrive via recognition or input only."""

    def is_configured(self):
        return False

    def _search(self, base, limit):
        return []


class TidalAdapter(_PassThroughAdapter):
    platform = Platform.TIDAL


class AmazonMusicAdapter(_PassThroughAdapter):
    platform = Platform.AMAZON_MUSIC


def default_adapters(settings, spotify_client=None):
    """Build one search client per platform from resolver settings."""
    timeout = settings.provider_timeout_sec
    spotify_client = spotify_client or SpotifyCatalogClient(
        client_id=settings.spotify_client_id,
        client_secret=settings.spotify_client_secret,
        timeout_sec=timeout,
    )
    return [
        spotify_client,
        AppleMusicAdapter(
            developer_token=settings.apple_developer_token,
            storefront=settings.apple_storefront,
            timeout_sec=timeout,
        ),
        YouTubeAdapter(api_key=settings.youtube_api_key, timeout_sec=timeout),
        SoundCloudAdapter(client_id=settings.soundcloud_client_id, timeout_sec=timeout),
        DeezerAdapter(timeout_sec=timeout),
        TidalAdapter(timeout_sec=timeout),
        AmazonMusicAdapter(timeout_sec=timeout),
    ]
