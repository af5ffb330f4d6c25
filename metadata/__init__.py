from .types import PLATFORM_PRIORITY, BaseTrack, Candidate, Platform, ProviderResult, RecognitionResult

__all__ = [
    "PLATFORM_PRIORITY",
    "BaseTrack",
    "Candidate",
    "Platform",
    "ProviderResult",
    "RecognitionResult",
]
