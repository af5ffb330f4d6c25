"""Spotify Web API client for catalog search and track lookup."""

from __future__ import annotations

import base64
import logging
import time
import urllib.parse
from typing import Any, Callable

import requests

from config.settings import PROVIDER_TIMEOUT_SECONDS, SEARCH_LIMIT
from engine.errors import ProviderSearchFailed
from engine.json_utils import log_event, truncate
from engine.token_cache import TokenCache
from metadata.platform_links import canonical_url, extract_spotify_track_id
from metadata.types import BaseTrack, Candidate, Platform

logger = logging.getLogger(__name__)


def _artist_names(payload: dict[str, Any]) -> list[str]:
    return [
        str(artist.get("name")).strip()
        for artist in (payload.get("artists") or [])
        if isinstance(artist, dict) and artist.get("name")
    ]


def _cover_url(album: dict[str, Any]) -> str | None:
    images = album.get("images") or []
    if images and isinstance(images[0], dict):
        return images[0].get("url") or None
    return None


def _duration_seconds(duration_ms: Any) -> int | None:
    if isinstance(duration_ms, (int, float)) and duration_ms > 0:
        return int(round(duration_ms / 1000))
    return None


class SpotifyCatalogClient:
    """Client-credentials Spotify client used as a search provider and base-track source."""

    platform = Platform.SPOTIFY

    _TOKEN_URL = "https://accounts.spotify.com/api/token"
    _SEARCH_URL = "https://api.spotify.com/v1/search"
    _TRACK_URL = "https://api.spotify.com/v1/tracks/{track_id}"
    _OEMBED_URL = "https://open.spotify.com/oembed"

    def __init__(
        self,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        timeout_sec: float = PROVIDER_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
        token_cache: TokenCache | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client_id = (client_id or "").strip() or None
        self.client_secret = (client_secret or "").strip() or None
        self.timeout_sec = timeout_sec
        self._session = session or requests.Session()
        self._tokens = token_cache or TokenCache(skew_seconds=30)
        self._sleep = sleep

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _fetch_token(self) -> tuple[str, float]:
        auth_payload = f"{self.client_id}:{self.client_secret}".encode("utf-8")
        auth_header = base64.b64encode(auth_payload).decode("ascii")
        response = self._session.post(
            self._TOKEN_URL,
            data={"grant_type": "client_credentials"},
            headers={"Authorization": f"Basic {auth_header}"},
            timeout=self.timeout_sec,
        )
        if response.status_code != 200:
            raise ProviderSearchFailed("spotify", f"token request failed ({response.status_code})")

        payload = response.json()
        token = payload.get("access_token")
        if not token:
            raise ProviderSearchFailed("spotify", "token response missing access_token")
        return token, float(payload.get("expires_in") or 0)

    def _get_access_token(self) -> str:
        if not self.has_credentials:
            raise ProviderSearchFailed("spotify", "credentials are required")
        return self._tokens.get_or_refresh(self._fetch_token)

    def _request_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        *,
        max_rate_limit_retries: int = 3,
    ) -> dict[str, Any]:
        """GET with one token refresh on 401 and ``Retry-After`` backoff on 429.

        Total backoff never exceeds ``timeout_sec``; a longer ``Retry-After``
        fails the call at once.
        """
        unauthorized_retry_used = False
        attempts = 0
        slept = 0.0
        while True:
            attempts += 1
            token = self._get_access_token()
            response = self._session.get(
                url,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout_sec,
            )

            if response.status_code == 401 and not unauthorized_retry_used:
                unauthorized_retry_used = True
                self._tokens.clear()
                continue

            if response.status_code == 429:
                if attempts > max_rate_limit_retries:
                    raise ProviderSearchFailed("spotify", "request failed (429: rate limit exceeded retries)")
                retry_after = response.headers.get("Retry-After", "1")
                try:
                    sleep_sec = float(retry_after)
                except (TypeError, ValueError):
                    sleep_sec = 1.0
                sleep_sec = max(0.0, sleep_sec)
                # Backoff shares the per-provider deadline with the requests themselves.
                if slept + sleep_sec > self.timeout_sec:
                    raise ProviderSearchFailed("spotify", f"request failed (429: retry after {sleep_sec:g}s exceeds budget)")
                slept += sleep_sec
                self._sleep(sleep_sec)
                continue

            if response.status_code != 200:
                log_event(
                    logging.WARNING,
                    "spotify_request_failed",
                    logger=logger,
                    status=response.status_code,
                    body=truncate(response.text),
                )
                raise ProviderSearchFailed("spotify", f"request failed ({response.status_code})")
            return response.json()

    def _to_candidate(self, track: dict[str, Any]) -> Candidate | None:
        track_id = str(track.get("id") or "").strip()
        if not track_id:
            return None
        album = track.get("album") or {}
        artists = _artist_names(track)
        url = (track.get("external_urls") or {}).get("spotify") or canonical_url(Platform.SPOTIFY, track_id)
        return Candidate(
            title=track.get("name") or "",
            artist=artists[0] if artists else "",
            artists=artists,
            isrc=(track.get("external_ids") or {}).get("isrc"),
            duration_seconds=_duration_seconds(track.get("duration_ms")),
            album=album.get("name"),
            release_date=album.get("release_date"),
            cover_art_url=_cover_url(album),
            platform=Platform.SPOTIFY,
            platform_id=track_id,
            platform_url=url or "",
        )

    def _search_tracks(self, query: str, limit: int) -> list[Candidate]:
        payload = self._request_json(self._SEARCH_URL, params={"q": query, "type": "track", "limit": limit})
        items = (payload.get("tracks") or {}).get("items") or []
        candidates = []
        for item in items:
            if not isinstance(item, dict):
                continue
            candidate = self._to_candidate(item)
            if candidate:
                candidates.append(candidate)
        return candidates

    def search(self, base: BaseTrack, limit: int = SEARCH_LIMIT) -> list[Candidate]:
        """Search by ISRC first, then by ``"artist title"``. Never raises."""
        if not self.has_credentials:
            return []
        try:
            if base.isrc:
                candidates = self._search_tracks(f"isrc:{base.isrc}", limit)
                if candidates:
                    return candidates
            query = base.search_text
            if not query:
                return []
            return self._search_tracks(query, limit)
        except (ProviderSearchFailed, requests.RequestException, ValueError) as exc:
            log_event(logging.WARNING, "provider_search_failed", logger=logger, provider="spotify", error=str(exc))
            return []

    def get_track(self, track_id: str) -> BaseTrack | None:
        """Fetch full metadata for one Spotify track id."""
        cleaned = (track_id or "").strip()
        if not cleaned or not self.has_credentials:
            return None
        encoded_id = urllib.parse.quote(cleaned, safe="")
        try:
            payload = self._request_json(self._TRACK_URL.format(track_id=encoded_id))
        except (ProviderSearchFailed, requests.RequestException, ValueError) as exc:
            log_event(logging.WARNING, "spotify_track_fetch_failed", logger=logger, track_id=cleaned, error=str(exc))
            return None
        candidate = self._to_candidate(payload)
        if candidate is None or not candidate.title:
            return None
        return BaseTrack(
            title=candidate.title,
            artist=candidate.artist,
            artists=candidate.artists,
            isrc=candidate.isrc,
            duration_seconds=candidate.duration_seconds,
            album=candidate.album,
            release_date=candidate.release_date,
            cover_art_url=candidate.cover_art_url,
        )

    def lookup_isrc(self, isrc: str) -> BaseTrack | None:
        if not isrc or not self.has_credentials:
            return None
        try:
            candidates = self._search_tracks(f"isrc:{isrc}", 1)
        except (ProviderSearchFailed, requests.RequestException, ValueError) as exc:
            log_event(logging.WARNING, "spotify_isrc_lookup_failed", logger=logger, isrc=isrc, error=str(exc))
            return None
        if not candidates:
            return None
        return self.get_track(candidates[0].platform_id)

    def oembed(self, url: str) -> BaseTrack | None:
        """Public oEmbed lookup: title, artist and artwork only, no credentials needed."""
        try:
            response = self._session.get(self._OEMBED_URL, params={"url": url}, timeout=self.timeout_sec)
        except requests.RequestException as exc:
            log_event(logging.WARNING, "spotify_oembed_failed", logger=logger, error=str(exc))
            return None
        if response.status_code != 200:
            log_event(logging.WARNING, "spotify_oembed_failed", logger=logger, status=response.status_code)
            return None
        try:
            data = response.json()
        except ValueError:
            return None
        title = data.get("title")
        artist = data.get("author_name")
        if not title or not artist:
            return None
        return BaseTrack(title=title, artist=artist, cover_art_url=data.get("thumbnail_url"))

    def base_track_from_url(self, url: str) -> BaseTrack | None:
        track_id = extract_spotify_track_id(url)
        if not track_id:
            return None
        track = self.get_track(track_id)
        if track is not None:
            return track
        return self.oembed(canonical_url(Platform.SPOTIFY, track_id) or url)
