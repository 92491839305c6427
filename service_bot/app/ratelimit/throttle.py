"""
Per-chat fixed-window throttle for inbound updates.
"""

from typing import Union

from shared.logging import get_logger
from ..caching.ttl_store import TTLStore


DEFAULT_LIMIT = 10
DEFAULT_WINDOW_SECONDS = 60


class ChatThrottle:
    """Allow at most ``limit`` updates per chat per window.

    The window opens on the first accepted update and closes when its store
    entry expires. Throttled updates do not touch the counter, so a chat that
    keeps sending while over the limit is released on schedule.
    """

    def __init__(self, store: TTLStore, limit: int = DEFAULT_LIMIT, window_seconds: int = DEFAULT_WINDOW_SECONDS):
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self.logger = get_logger("bot.throttle")

    def _make_key(self, chat_id: Union[int, str]) -> str:
        return f"throttle:{chat_id}"

    def is_throttled(self, chat_id: Union[int, str]) -> bool:
        """Check the chat's budget and consume one slot if allowed."""
        key = self._make_key(chat_id)
        current_count = self.store.get(key, 0)

        if current_count >= self.limit:
            self.logger.warning(
                "Chat throttled",
                chat_id=chat_id,
                current_count=current_count,
                limit=self.limit
            )
            return True

        self.store.increment(key, ttl_seconds=self.window_seconds, keep_expiry=True)
        return False

    def remaining(self, chat_id: Union[int, str]) -> int:
        return max(0, self.limit - self.store.get(self._make_key(chat_id), 0))
