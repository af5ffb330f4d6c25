"""Expiring bearer-token cache shared by the provider clients."""

from __future__ import annotations

import time
from typing import Callable, Optional


class TokenCache:
    """Holds one ``(token, expires_at)`` pair for a single client.

    Not locked: two threads may refresh at the same time and the last
    write wins, which only costs an extra token request.
    """

    def __init__(self, *, skew_seconds: int = 30, clock: Callable[[], float] = time.time) -> None:
        self._token: Optional[str] = None
        self._expires_at: float = 0.0
        self._skew = max(0, int(skew_seconds))
        self._clock = clock

    @property
    def token(self) -> Optional[str]:
        if self._token and self._clock() < self._expires_at:
            return self._token
        return None

    def store(self, token: str, expires_in: float) -> str:
        self._token = token
        self._expires_at = self._clock() + max(0.0, float(expires_in) - self._skew)
        return token

    def clear(self) -> None:
        self._token = None
        self._expires_at = 0.0

    def get_or_refresh(self, fetch: Callable[[], tuple[str, float]]) -> str:
        """Return the cached token, calling ``fetch`` for ``(token, expires_in)`` when stale."""
        cached = self.token
        if cached:
            return cached
        token, expires_in = fetch()
        return self.store(token, expires_in)
