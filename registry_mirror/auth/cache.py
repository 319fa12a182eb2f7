"""In-memory bearer token cache.

Entries expire ``expires_in`` seconds after they are stored. Expired entries
are dropped lazily on lookup and periodically by a background sweeper task.
A lookup never returns an expired token.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Token:
    """Bearer token issued by a token realm."""
    token: str
    expires_in: int = 0


@dataclass
class CacheEntry:
    """Cached token and its expiry deadline (clock seconds)."""
    token: Token
    deadline: float


class TokenCache:
    """Token cache keyed by an opaque string.

    All reads and writes are synchronous, so the cache is safe to share
    between concurrent requests on one event loop.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Token]:
        """Return the cached token for ``key`` unless it has expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.deadline <= self._clock():
            del self._entries[key]
            return None
        return entry.token

    def set(self, key: str, token: Token) -> bool:
        """Store ``token``; returns False when its lifetime is not positive."""
        if token.expires_in <= 0:
            self._entries.pop(key, None)
            return False
        self._entries[key] = CacheEntry(
            token=token, deadline=self._clock() + token.expires_in
        )
        return True

    def sweep(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.deadline <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def start(self, interval: float) -> None:
        """Start the background sweeper on the running loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_loop(interval))

    async def stop(self) -> None:
        """Cancel the background sweeper and drop all entries."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        self.clear()

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            removed = self.sweep()
            if removed:
                logger.debug(f"Swept {removed} expired token(s), {len(self)} cached")
