"""
In-process key/value store with per-entry expiry.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from shared.logging import get_logger


DEFAULT_TTL_SECONDS = 3600
DEFAULT_CLEANUP_INTERVAL = 300.0


@dataclass
class CacheEntry:
    """Stored value and its absolute expiry (epoch seconds)."""
    value: Any
    expires_at: float


class TTLStore:
    """Ephemeral cache backing throttling and usage counters.

    Entries are evicted lazily when read after expiry, and eagerly by a
    periodic sweep so keys that are never read again do not accumulate.
    Nothing here awaits, so every operation is atomic with respect to other
    coroutines on the same loop. The sweep runs as its own task; an entry
    rewritten between two sweep iterations simply survives it.
    """

    def __init__(
        self,
        cleanup_interval: float = DEFAULT_CLEANUP_INTERVAL,
        clock: Callable[[], float] = time.time,
    ):
        self.cleanup_interval = cleanup_interval
        self.logger = get_logger("bot.ttl_store")
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

    def _is_expired(self, entry: CacheEntry, now: Optional[float] = None) -> bool:
        return (self._clock() if now is None else now) > entry.expires_at

    def now(self) -> float:
        return self._clock()

    def set(self, key: str, value: Any, ttl_seconds: float = DEFAULT_TTL_SECONDS) -> None:
        """Store or overwrite ``key`` with an expiry of now + ttl."""
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl_seconds)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for ``key`` or ``default``."""
        entry = self._entries.get(key)
        if entry is None:
            return default

        if self._is_expired(entry):
            del self._entries[key]
            return default

        return entry.value

    def has(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False

        if self._is_expired(entry):
            del self._entries[key]
            return False

        return True

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def increment(
        self,
        key: str,
        amount: int = 1,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        keep_expiry: bool = False,
    ) -> int:
        """Add ``amount`` to a numeric entry and return the new value.

        A missing or expired entry counts as 0. With ``keep_expiry`` a live
        entry keeps its current deadline, which gives fixed-window counters.
        """
        now = self._clock()
        entry = self._entries.get(key)
        if entry is not None and self._is_expired(entry, now):
            entry = None

        value = (entry.value if entry is not None else 0) + amount
        if entry is not None and keep_expiry:
            expires_at = entry.expires_at
        else:
            expires_at = now + ttl_seconds

        self._entries[key] = CacheEntry(value=value, expires_at=expires_at)
        return value

    def clear(self) -> None:
        self._entries.clear()

    def cleanup(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def keys(self) -> List[str]:
        """All live keys, after a full sweep."""
        self.cleanup()
        return list(self._entries.keys())

    def size(self) -> int:
        self.cleanup()
        return len(self._entries)

    async def _cleanup_loop(self):
        while True:
            await asyncio.sleep(self.cleanup_interval)
            removed = self.cleanup()
            if removed:
                self.logger.debug("Expired cache entries removed", removed=removed, remaining=len(self._entries))

    async def start(self):
        """Start the periodic sweep."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        self.logger.info("TTL store sweep started", interval=self.cleanup_interval)

    async def stop(self):
        """Cancel the periodic sweep."""
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None
        self.logger.info("TTL store sweep stopped")

    async def shutdown(self):
        """Stop the sweep and release all entries."""
        await self.stop()
        self.clear()

    @property
    def running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()
