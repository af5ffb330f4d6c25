"""Resolution coordinator: cache check, recognition, fan-out search, merge and persist."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from app.recognition.client import RecognitionClient
from config.settings import (
    FREE_TEXT_ISRC_CONFIDENCE,
    FREE_TEXT_NO_ISRC_CONFIDENCE,
    INPUT_URL_CONFIDENCE,
    MAX_PARALLEL_PROVIDERS,
    RECOGNITION_ISRC_CONFIDENCE,
    RECOGNITION_NO_ISRC_CONFIDENCE,
    ResolverSettings,
)
from db.smart_links import LookupKey, SmartLink, SmartLinkStore
from engine.errors import EmptyInputError, FatalResolutionError, ResolutionError
from engine.json_utils import log_event
from engine.search_adapters import YouTubeAdapter, default_adapters
from engine.search_scoring import select_best
from input.intent_router import InputKind, TrackQuery, normalize
from metadata.merge import merge_identity, merge_platform_links, recognition_links
from metadata.platform_links import canonical_url, extract_platform_id, extract_youtube_video_id
from metadata.types import BaseTrack, Platform, ProviderResult, RecognitionResult, Resolution, ResultSource
from spotify.client import SpotifyCatalogClient

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_MESSAGE = (
    "I couldn't confidently match that song. Please paste a Spotify, Apple Music, or YouTube link instead."
)
NO_INPUT_MESSAGE = "Missing input. Provide a music URL or Artist - Song text."
UNRESOLVED_MESSAGE = "No platform link could be found for this input."


class ResolutionOutcome(Enum):
    RESOLVED = "resolved"
    CACHED = "cached"
    LOW_CONFIDENCE = "low_confidence"
    NO_INPUT = "no_input"
    UNRESOLVED = "unresolved"


@dataclass
class SmartLinkResult:
    outcome: ResolutionOutcome
    record: SmartLink | None = None
    confidence: float | None = None
    message: str | None = None
    resolver_path: str | None = None
    resolver_sources: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome in (ResolutionOutcome.RESOLVED, ResolutionOutcome.CACHED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "outcome": self.outcome.value,
            "confidence": self.confidence,
            "message": self.message,
            "resolver_path": self.resolver_path,
            "resolver_sources": list(self.resolver_sources),
            "smart_link": self.record.to_dict() if self.record else None,
        }


def _sources_for(links: dict[Platform, ProviderResult]) -> list[str]:
    names: list[str] = []
    for platform, result in links.items():
        name = result.source.value if result.source is not ResultSource.SEARCH else f"search:{platform.value}"
        if name not in names:
            names.append(name)
    return names


class TrackResolver:
    """Turns one raw input into a persisted multi-platform smart link.

    CacheCheck runs before any network call and Persist runs only after
    Merge. Everything in between is request scoped; the only shared state
    is each client's token cache.
    """

    def __init__(
        self,
        settings: ResolverSettings,
        *,
        store: SmartLinkStore | None = None,
        recognition: RecognitionClient | None = None,
        spotify: SpotifyCatalogClient | None = None,
        adapters: list[Any] | None = None,
    ) -> None:
        self.settings = settings
        self.store = store or SmartLinkStore(settings.db_path, match_threshold=settings.match_threshold)
        self.recognition = recognition or RecognitionClient(
            token=settings.recognition_token,
            base_url=settings.recognition_base_url,
            timeout_sec=settings.recognition_timeout_sec,
        )
        self.spotify = spotify or SpotifyCatalogClient(
            client_id=settings.spotify_client_id,
            client_secret=settings.spotify_client_secret,
            timeout_sec=settings.provider_timeout_sec,
        )
        self.adapters = adapters if adapters is not None else default_adapters(settings, spotify_client=self.spotify)

    def resolve_track(
        self,
        raw: str,
        artist: str | None = None,
        title: str | None = None,
        *,
        force_refresh: bool = False,
    ) -> SmartLinkResult:
        try:
            query = normalize(raw, artist=artist, title=title)
        except EmptyInputError:
            log_event(logging.INFO, "resolve_no_input", logger=logger)
            return SmartLinkResult(outcome=ResolutionOutcome.NO_INPUT, message=NO_INPUT_MESSAGE)

        log_event(
            logging.INFO,
            "resolve_start",
            logger=logger,
            kind=query.input_kind,
            platform=query.platform,
            force_refresh=force_refresh,
        )
        try:
            result = self._resolve(query, force_refresh=force_refresh)
        except ResolutionError:
            raise
        except Exception as exc:
            logger.exception("Resolution failed kind=%s", query.input_kind.value)
            raise FatalResolutionError() from exc

        log_event(
            logging.INFO,
            "resolve_done",
            logger=logger,
            outcome=result.outcome,
            resolver_path=result.resolver_path,
            confidence=result.confidence,
            slug=result.record.slug if result.record else None,
        )
        return result

    def _resolve(self, query: TrackQuery, *, force_refresh: bool) -> SmartLinkResult:
        existing = self.store.find_existing(LookupKey.from_query(query))
        if existing is not None and not force_refresh and not existing.needs_manual_review:
            return SmartLinkResult(
                outcome=ResolutionOutcome.CACHED,
                record=existing,
                confidence=existing.match_confidence,
                resolver_path="cache",
                resolver_sources=list(existing.resolver_sources),
            )

        input_result = self._input_result(query)
        recognition = self.recognition.recognize(query) if self.recognition else None
        is_free_text = query.input_kind is InputKind.FREE_TEXT

        recognition_confidence = None
        if recognition is not None:
            if is_free_text:
                recognition_confidence = FREE_TEXT_ISRC_CONFIDENCE if recognition.isrc else FREE_TEXT_NO_ISRC_CONFIDENCE
                if recognition_confidence < self.settings.free_text_min_confidence:
                    log_event(logging.INFO, "free_text_rejected", logger=logger, confidence=recognition_confidence)
                    return SmartLinkResult(
                        outcome=ResolutionOutcome.LOW_CONFIDENCE,
                        confidence=recognition_confidence,
                        message=LOW_CONFIDENCE_MESSAGE,
                        resolver_path="recognition",
                    )
            else:
                recognition_confidence = self._recognition_confidence(recognition)

        results: list[ProviderResult] = []
        base: BaseTrack | None = None
        if recognition is not None and recognition.links:
            results.extend(recognition_links(recognition, confidence=recognition_confidence))
            base = recognition.to_base_track()
            resolver_path = "recognition"
            if self.settings.complete_missing_platforms:
                skip = {result.provider for result in results}
                if query.platform is not None:
                    skip.add(query.platform)
                base = base or self._derive_base_track(query, recognition)
                if base is not None:
                    searched = self._fan_out(base, skip=skip)
                    if searched:
                        resolver_path = "recognition_then_search"
                    results.extend(searched)
        else:
            base = self._derive_base_track(query, recognition)
            resolver_path = "recognition_then_search" if recognition is not None else "search_only"
            if base is not None:
                skip = {query.platform} if query.platform is not None else set()
                searched = self._fan_out(base, skip=skip)
                if is_free_text and recognition is None:
                    best = max((result.confidence for result in searched), default=0.0)
                    searched = [r for r in searched if r.confidence >= self.settings.free_text_min_confidence]
                    if not searched:
                        log_event(logging.INFO, "free_text_rejected", logger=logger, confidence=best)
                        return SmartLinkResult(
                            outcome=ResolutionOutcome.LOW_CONFIDENCE,
                            confidence=best,
                            message=LOW_CONFIDENCE_MESSAGE,
                            resolver_path=resolver_path,
                        )
                results.extend(searched)

        links = merge_platform_links(input_result, results)
        if not links:
            return SmartLinkResult(
                outcome=ResolutionOutcome.UNRESOLVED,
                confidence=0.0,
                message=UNRESOLVED_MESSAGE,
                resolver_path=resolver_path,
            )

        identity = merge_identity(
            recognition,
            base,
            artist_hint=query.artist_hint,
            title_hint=query.title_hint,
            links=links,
        )
        sources = _sources_for(links)
        resolution = Resolution(
            artist=identity.artist,
            title=identity.title,
            isrc=identity.isrc or query.isrc,
            links=links,
            cover_art_url=identity.cover_art_url,
            resolver_sources=sources,
        )
        record = self.store.upsert(query, resolution, existing=existing)
        return SmartLinkResult(
            outcome=ResolutionOutcome.RESOLVED,
            record=record,
            confidence=record.match_confidence,
            resolver_path=resolver_path,
            resolver_sources=sources,
        )

    def _recognition_confidence(self, recognition: RecognitionResult) -> float:
        if recognition.score is not None:
            return recognition.score
        return RECOGNITION_ISRC_CONFIDENCE if recognition.isrc else RECOGNITION_NO_ISRC_CONFIDENCE

    def _input_result(self, query: TrackQuery) -> ProviderResult | None:
        if query.input_kind is not InputKind.URL or query.platform is None:
            return None
        url = query.raw_input
        if url.lower().startswith("spotify:"):
            url = canonical_url(Platform.SPOTIFY, url) or url
        return ProviderResult(
            provider=query.platform,
            id=extract_platform_id(query.platform, url) or "",
            url=url,
            confidence=INPUT_URL_CONFIDENCE,
            source=ResultSource.INPUT,
        )

    def _youtube_adapter(self) -> YouTubeAdapter | None:
        for adapter in self.adapters:
            if isinstance(adapter, YouTubeAdapter):
                return adapter
        return None

    def _derive_base_track(self, query: TrackQuery, recognition: RecognitionResult | None) -> BaseTrack | None:
        """Reference track from recognition data, the input URL's platform, an ISRC lookup, or hints."""
        base = recognition.to_base_track() if recognition is not None else None

        if base is None and query.input_kind is InputKind.URL:
            if query.platform is Platform.SPOTIFY:
                base = self.spotify.base_track_from_url(query.raw_input)
            elif query.platform in (Platform.YOUTUBE, Platform.YOUTUBE_MUSIC):
                youtube = self._youtube_adapter()
                video_id = extract_youtube_video_id(query.raw_input)
                if youtube is not None and video_id:
                    base = youtube.video_details(video_id)

        if base is None and query.isrc:
            base = self.spotify.lookup_isrc(query.isrc)

        if base is None and query.artist_hint and query.title_hint:
            base = BaseTrack(title=query.title_hint, artist=query.artist_hint)

        if base is None and query.input_kind is InputKind.ISRC:
            base = BaseTrack(title="", artist="", isrc=query.isrc)

        if base is None and query.input_kind is InputKind.FREE_TEXT:
            base = BaseTrack(title=query.raw_input, artist="")

        if base is not None and not base.isrc and query.isrc:
            base.isrc = query.isrc
        return base

    def _search_platform(self, adapter: Any, base: BaseTrack) -> ProviderResult | None:
        candidates = adapter.search(base)
        return select_best(base, candidates)

    def _fan_out(self, base: BaseTrack, *, skip: set[Platform]) -> list[ProviderResult]:
        """Search every platform concurrently; a failing or late branch contributes nothing."""
        adapters = [adapter for adapter in self.adapters if adapter.platform not in skip]
        if not adapters:
            return []

        results: list[ProviderResult] = []
        pool = ThreadPoolExecutor(max_workers=min(MAX_PARALLEL_PROVIDERS, len(adapters)))
        futures = {pool.submit(self._search_platform, adapter, base): adapter.platform for adapter in adapters}
        try:
            for fut in as_completed(futures, timeout=self.settings.fan_out_timeout_sec):
                platform = futures[fut]
                try:
                    result = fut.result()
                except Exception as exc:
                    log_event(
                        logging.ERROR,
                        "provider_search_failed",
                        logger=logger,
                        provider=platform,
                        error=str(exc),
                    )
                    continue
                if result is not None:
                    results.append(result)
        except FuturesTimeoutError:
            log_event(
                logging.WARNING,
                "provider_search_timed_out",
                logger=logger,
                providers=[platform for fut, platform in futures.items() if not fut.done()],
                timeout=self.settings.fan_out_timeout_sec,
            )
        finally:
            # Late branches keep running on their own thread; nobody waits for them.
            pool.shutdown(wait=False, cancel_futures=True)
        log_event(
            logging.INFO,
            "fan_out_done",
            logger=logger,
            searched=[adapter.platform for adapter in adapters],
            matched=[result.provider for result in results],
        )
        return results
