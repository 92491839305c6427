"""
Adapters package for the Bot Service.

Contains the HTTP client wrapper for the Telegram Bot API. The adapter
encapsulates:

- Base URL, token and request shapes
- Retry policy and circuit breaker
- Mapping of every failure to a non-raising APIResult

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .telegram_client import APIResult, TelegramClient

__all__ = [
    "APIResult",
    "TelegramClient",
]
