"""
Usage counters derived from the TTL store.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from shared.logging import get_logger
from ..caching.ttl_store import TTLStore
from ..webhook.updates import Update


TOTAL_MESSAGES_KEY = "stats:total_messages"
ERRORS_24H_KEY = "stats:errors_24h"
LAST_ACTIVITY_KEY = "stats:last_activity"
ACTIVE_USER_PREFIX = "stats:user:"

DAY_SECONDS = 86400
TOTAL_MESSAGES_TTL = DAY_SECONDS * 7
ERRORS_TTL = DAY_SECONDS
LAST_ACTIVITY_TTL = DAY_SECONDS
ACTIVE_USER_TTL = DAY_SECONDS
LAST_SEEN_TTL = DAY_SECONDS


def last_seen_key(user_id: str) -> str:
    return f"user:{user_id}:last_seen"


@dataclass(frozen=True)
class UsageSnapshot:
    """Point-in-time view of the usage counters."""
    total_messages: int
    active_users: int
    errors_24h: int
    last_activity: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalMessages": self.total_messages,
            "activeUsers": self.active_users,
            "errors24h": self.errors_24h,
            "lastActivity": self.last_activity,
        }


class UsageAggregator:
    """Records update volume and errors; reads are recomputed from the store.

    Nothing is kept outside the store: every counter expires on its own TTL,
    and the active-user count is a scan of ``stats:user:*`` keys, each of
    which lives for 24h after the user's latest update.
    """

    def __init__(self, store: TTLStore):
        self.store = store
        self.logger = get_logger("bot.usage")

    def record_update(self, update: Update):
        now = self.store.now()

        self.store.increment(TOTAL_MESSAGES_KEY, ttl_seconds=TOTAL_MESSAGES_TTL)

        if update.sender_id:
            self.store.set(f"{ACTIVE_USER_PREFIX}{update.sender_id}", now, ACTIVE_USER_TTL)
            self.store.set(last_seen_key(update.sender_id), now, LAST_SEEN_TTL)

        self.store.set(
            LAST_ACTIVITY_KEY,
            datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
            LAST_ACTIVITY_TTL,
        )

    def record_error(self):
        errors = self.store.increment(ERRORS_24H_KEY, ttl_seconds=ERRORS_TTL)
        self.logger.debug("Dispatch error recorded", errors_24h=errors)

    def get_snapshot(self) -> UsageSnapshot:
        active_users = sum(1 for key in self.store.keys() if key.startswith(ACTIVE_USER_PREFIX))
        return UsageSnapshot(
            total_messages=self.store.get(TOTAL_MESSAGES_KEY, 0),
            active_users=active_users,
            errors_24h=self.store.get(ERRORS_24H_KEY, 0),
            last_activity=self.store.get(LAST_ACTIVITY_KEY),
        )

    def to_dict(self) -> Dict[str, Any]:
        return self.get_snapshot().to_dict()
