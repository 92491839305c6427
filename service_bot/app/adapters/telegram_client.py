"""
Telegram Bot API client with retries, backoff and a circuit breaker.
"""

import asyncio
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerState
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, calculate_delay


DEFAULT_API_URL = "https://api.telegram.org"
DEFAULT_TIMEOUT_SECONDS = 10.0
RATE_LIMIT_ERROR_CODE = 429
DEFAULT_RETRY_AFTER = 1
CIRCUIT_OPEN_ERROR = "Circuit breaker is open"

_RETRY_AFTER_PATTERN = re.compile(r"retry after (\d+)", re.IGNORECASE)


@dataclass(frozen=True)
class APIResult:
    """Outcome of one logical Bot API call."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    retry_after: Optional[int] = None


def extract_retry_after(description: str) -> int:
    """Seconds to wait from a 429 description such as "Too Many Requests: retry after 5"."""
    match = _RETRY_AFTER_PATTERN.search(description or "")
    return int(match.group(1)) if match else DEFAULT_RETRY_AFTER


class TelegramClient:
    """Client for the Telegram Bot API.

    ``call`` never raises. Every failure path, including a fast-fail from an
    open breaker, comes back as an ``APIResult`` with ``success=False``.

    A logical call makes at most ``retry_config.max_attempts`` requests.
    Transport failures and API errors are followed by an exponential backoff
    sleep; a 429 response is followed by the server-advertised delay instead.
    Only the final outcome of the call is reported to the breaker.
    """

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_API_URL,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        retry_config: Optional[RetryConfig] = None,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.logger = get_logger("bot.telegram_client")
        self.metrics = metrics
        self.retry_config = retry_config or RetryConfig(
            max_attempts=3,
            base_delay=1.0,
            max_delay=5.0,
            exponential_base=2.0,
            jitter=False
        )
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            name="telegram_api",
            clock=clock,
            on_transition=self._on_breaker_transition,
        )
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def _on_breaker_transition(self, name: str, state: CircuitBreakerState):
        if self.metrics:
            self.metrics.increment_counter(
                "circuit_breaker_transitions_total", name=name, state=state.value
            )

    def _record_call(self, method: str, outcome: str):
        if self.metrics:
            self.metrics.increment_counter("telegram_api_calls_total", method=method, outcome=outcome)

    async def _sleep(self, seconds: float):
        await asyncio.sleep(seconds)

    async def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> APIResult:
        """Invoke a Bot API method."""
        # Identifies this call to the breaker so a half-open trial keeps its retries
        caller = object()
        try:
            result = await self._call_with_retries(method, params or {}, caller)
        except Exception as e:
            self.logger.error("Unexpected error calling Telegram API", method=method, error=str(e), exc_info=True)
            result = APIResult(success=False, error=str(e) or type(e).__name__)
        finally:
            self.circuit_breaker.release_trial(caller)

        if result.success:
            self._record_call(method, "success")
        elif result.error == CIRCUIT_OPEN_ERROR:
            self._record_call(method, "breaker_open")
        else:
            self._record_call(method, "failure")
        return result

    async def _call_with_retries(self, method: str, params: Dict[str, Any], caller: object) -> APIResult:
        max_attempts = self.retry_config.max_attempts
        last_error = "Unknown error"

        for attempt in range(1, max_attempts + 1):
            # Re-read before every attempt: another call may have opened the
            # breaker, or hold the half-open trial, while this one was sleeping.
            if not self.circuit_breaker.allow_request(caller):
                self.logger.warning("Circuit breaker open, skipping Telegram API call", method=method, attempt=attempt)
                return APIResult(success=False, error=CIRCUIT_OPEN_ERROR)

            try:
                response = await self._client.post(f"/bot{self.token}/{method}", json=params)
                data = response.json()
                if not isinstance(data, dict):
                    raise ValueError("response body is not an object")
            except httpx.TimeoutException as e:
                last_error = "Request timeout"
                self.logger.error(
                    "Request failed", method=method, attempt=attempt, error=str(e), type=type(e).__name__
                )
            except httpx.RequestError as e:
                last_error = "Connection error"
                self.logger.error(
                    "Request failed", method=method, attempt=attempt, error=str(e), type=type(e).__name__
                )
            except ValueError as e:
                last_error = "Invalid response from Telegram API"
                self.logger.error(
                    "Request failed", method=method, attempt=attempt, error=str(e), type=type(e).__name__
                )
            else:
                if data.get("ok"):
                    self.circuit_breaker.record_success()
                    if attempt > 1:
                        self.logger.info("Telegram API call succeeded after retry", method=method, attempt=attempt)
                    return APIResult(success=True, data=data.get("result"))

                description = data.get("description") or "Unknown API error"
                last_error = description

                if data.get("error_code") == RATE_LIMIT_ERROR_CODE:
                    retry_after = extract_retry_after(description)
                    self.logger.warning(
                        "Rate limited by Telegram API",
                        retry_after=retry_after,
                        attempt=attempt,
                        method=method
                    )

                    if attempt < max_attempts:
                        await self._sleep(retry_after)
                        continue

                    self.circuit_breaker.record_failure()
                    return APIResult(success=False, error=description, retry_after=retry_after)

                self.logger.error(
                    "Telegram API error",
                    method=method,
                    error_code=data.get("error_code"),
                    description=description,
                    attempt=attempt
                )

            if attempt < max_attempts:
                await self._sleep(calculate_delay(attempt, self.retry_config))

        self.circuit_breaker.record_failure()
        self.logger.error(
            "All Telegram API attempts exhausted",
            method=method,
            attempts=max_attempts,
            error=last_error,
            failure_count=self.circuit_breaker.failure_count
        )
        return APIResult(success=False, error=last_error)

    async def send_message(self, chat_id: Union[int, str], text: str, **options) -> APIResult:
        return await self.call("sendMessage", {"chat_id": chat_id, "text": text, **options})

    async def edit_message_text(
        self, chat_id: Union[int, str], message_id: int, text: str, **options
    ) -> APIResult:
        return await self.call(
            "editMessageText",
            {"chat_id": chat_id, "message_id": message_id, "text": text, **options},
        )

    async def answer_callback_query(
        self, callback_query_id: str, text: Optional[str] = None, show_alert: bool = False
    ) -> APIResult:
        params: Dict[str, Any] = {"callback_query_id": callback_query_id, "show_alert": show_alert}
        if text is not None:
            params["text"] = text
        return await self.call("answerCallbackQuery", params)

    async def answer_inline_query(
        self, inline_query_id: str, results: List[Dict[str, Any]], **options
    ) -> APIResult:
        return await self.call(
            "answerInlineQuery", {"inline_query_id": inline_query_id, "results": results, **options}
        )

    async def check_health(self) -> bool:
        """Check upstream reachability with ``getMe``."""
        result = await self.call("getMe")
        return result.success

    def get_breaker_state(self) -> Dict[str, Any]:
        return self.circuit_breaker.get_state()

    async def aclose(self):
        await self._client.aclose()
