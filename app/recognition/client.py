import logging
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from app.recognition.mapping import map_to_smart_links
from config.settings import DEFAULT_RECOGNITION_BASE_URL, RECOGNITION_PLATFORMS, RECOGNITION_TIMEOUT_SECONDS
from engine.errors import RecognitionNoMatch, RecognitionUnavailable
from engine.json_utils import log_event, truncate
from input.intent_router import InputKind, TrackQuery
from metadata.types import RecognitionResult

logger = logging.getLogger(__name__)


class RecognitionClient:
    """Client for the recognition provider's external-metadata endpoint.

    One GET per call: ``isrc``, ``source_url`` or ``query`` plus a fixed
    platform list. The bearer token is sent as a header and never logged.
    """

    _ENDPOINT = "/api/external-metadata/tracks"

    def __init__(
        self,
        *,
        token: str | None,
        base_url: str = DEFAULT_RECOGNITION_BASE_URL,
        timeout_sec: float = RECOGNITION_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self._token = (token or "").strip() or None
        self.base_url = (base_url or DEFAULT_RECOGNITION_BASE_URL).rstrip("/")
        self.timeout_sec = timeout_sec
        if session is None:
            session = requests.Session()
            # One attempt per call: the timeout is the whole recognition budget.
            retry = Retry(total=0, connect=0, read=0, status=0, raise_on_status=False)
            adapter = HTTPAdapter(max_retries=retry)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self._session = session

    @property
    def is_configured(self) -> bool:
        return bool(self._token)

    def _get_tracks(self, mode: str, params: dict[str, Any]) -> RecognitionResult:
        if not self._token:
            raise RecognitionUnavailable("recognition token is not configured")

        query = dict(params)
        query["platforms"] = ",".join(RECOGNITION_PLATFORMS)
        try:
            resp = self._session.get(
                f"{self.base_url}{self._ENDPOINT}",
                params=query,
                headers={"Authorization": f"Bearer {self._token}", "Accept": "application/json"},
                timeout=self.timeout_sec,
            )
        except requests.RequestException as exc:
            log_event(logging.WARNING, "recognition_request_failed", logger=logger, mode=mode, error=str(exc))
            raise RecognitionUnavailable(f"recognition request failed: {exc}") from exc

        status = int(resp.status_code)
        if status != 200:
            log_event(
                logging.WARNING,
                "recognition_http_error",
                logger=logger,
                mode=mode,
                status=status,
                body=truncate(resp.text),
            )
            raise RecognitionUnavailable(f"recognition provider returned {status}", status_code=status)

        try:
            payload = resp.json()
        except ValueError as exc:
            log_event(logging.WARNING, "recognition_bad_json", logger=logger, mode=mode, body=truncate(resp.text))
            raise RecognitionUnavailable("recognition provider returned invalid JSON", status_code=status) from exc

        tracks = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(tracks, list) or not tracks or not isinstance(tracks[0], dict):
            log_event(logging.INFO, "recognition_no_match", logger=logger, mode=mode)
            raise RecognitionNoMatch(f"no track recognized for {mode}")

        result = map_to_smart_links(tracks[0])
        log_event(
            logging.INFO,
            "recognition_ok",
            logger=logger,
            mode=mode,
            title=result.title,
            has_isrc=bool(result.isrc),
            platforms=sorted(platform.value for platform in result.links),
        )
        return result

    def recognize_by_url(self, url: str) -> RecognitionResult:
        return self._get_tracks("source_url", {"source_url": url})

    def recognize_by_isrc(self, isrc: str) -> RecognitionResult:
        return self._get_tracks("isrc", {"isrc": isrc})

    def recognize_by_text(self, text: str) -> RecognitionResult:
        return self._get_tracks("query", {"query": text, "format": "text"})

    def recognize(self, query: TrackQuery) -> RecognitionResult | None:
        """Dispatch on input kind; provider failures degrade to ``None``."""
        if not self.is_configured:
            return None
        try:
            if query.input_kind is InputKind.URL:
                return self.recognize_by_url(query.raw_input)
            if query.input_kind is InputKind.ISRC:
                return self.recognize_by_isrc(query.isrc or query.raw_input)
            text = query.raw_input
            if query.artist_hint and query.title_hint:
                text = f"{query.artist_hint} - {query.title_hint}"
            return self.recognize_by_text(text)
        except (RecognitionUnavailable, RecognitionNoMatch) as exc:
            log_event(logging.INFO, "recognition_degraded", logger=logger, kind=query.input_kind, error=str(exc))
            return None
