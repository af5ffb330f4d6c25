from .errors import (
    EmptyInputError,
    FatalResolutionError,
    PersistenceConflict,
    ProviderSearchFailed,
    RecognitionNoMatch,
    RecognitionUnavailable,
    ResolutionError,
)

__all__ = [
    "EmptyInputError",
    "FatalResolutionError",
    "PersistenceConflict",
    "ProviderSearchFailed",
    "RecognitionNoMatch",
    "RecognitionUnavailable",
    "ResolutionError",
]
