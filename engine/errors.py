"""Error taxonomy for track resolution."""

from __future__ import annotations


class ResolutionError(Exception):
    """Base class for every error raised by the resolution engine."""


class EmptyInputError(ResolutionError, ValueError):
    """No usable input was supplied (empty or whitespace only)."""


class RecognitionUnavailable(ResolutionError):
    """Recognition provider is unreachable, misconfigured, or answered non-2xx."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RecognitionNoMatch(ResolutionError):
    """Recognition provider answered but did not identify a track."""


class ProviderSearchFailed(ResolutionError):
    """One platform search failed; callers treat it as "no result"."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class PersistenceConflict(ResolutionError):
    """Slug uniqueness could not be satisfied after one regeneration."""


class FatalResolutionError(ResolutionError):
    """Unexpected failure inside the coordinator. The message is safe to show."""

    def __init__(self, message: str = "Could not resolve track") -> None:
        super().__init__(message)
