"""
Telegram bot webhook service.
"""

import hmac
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
from fastapi import Body, Request
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import AuthenticationError, ValidationError
from shared.retry import RetryConfig

from .adapters.telegram_client import TelegramClient
from .caching.ttl_store import TTLStore
from .monitoring.health import HealthMonitor
from .ratelimit.throttle import ChatThrottle
from .stats.usage import UsageAggregator
from .webhook.dispatcher import UpdateDispatcher


SERVICE_NAME = "bot"
SERVICE_PORT = 3000


class BotService(BaseService):
    """Webhook receiver and Telegram gateway."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config=config or get_config(SERVICE_NAME, SERVICE_PORT))

        if not self.config.telegram_bot_token:
            self.logger.error("BOT_TELEGRAM_BOT_TOKEN is not set; Telegram API calls will fail")

        self.store = TTLStore(cleanup_interval=self.config.cache_cleanup_interval)
        self.health_monitor = HealthMonitor(
            warmup_seconds=self.config.health_warmup_seconds,
            max_memory_mb=self.config.max_memory_mb,
        )
        self.telegram = TelegramClient(
            self.config.telegram_bot_token,
            self.config.telegram_api_url,
            timeout=self.config.request_timeout_seconds,
            retry_config=RetryConfig(max_attempts=self.config.max_attempts, base_delay=1.0, max_delay=5.0),
            failure_threshold=self.config.breaker_failure_threshold,
            recovery_timeout=self.config.breaker_recovery_timeout,
            metrics=self.metrics,
            transport=transport,
        )
        self.usage = UsageAggregator(self.store)
        self.throttle = ChatThrottle(
            self.store,
            limit=self.config.throttle_limit,
            window_seconds=self.config.throttle_window_seconds,
        )
        self.dispatcher = UpdateDispatcher(
            self.telegram,
            self.usage,
            self.throttle,
            health=self.health_monitor,
            metrics=self.metrics,
        )

        self._setup_bot_routes()

    def _setup_bot_routes(self):
        """Set up bot-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Resilient Bot - Telegram Webhook Service",
                "version": "1.0.0",
                "capabilities": ["webhook", "retry", "circuit_breaker", "throttling", "stats"]
            }

        @self.app.get("/status")
        async def status():
            """Process health plus a live Telegram API check."""
            try:
                report = self.health_monitor.get_health()
                telegram_ok = await self.telegram.check_health()

                return {
                    **report.to_dict(),
                    "healthy": report.healthy and telegram_ok,
                    "telegramAPI": telegram_ok,
                    "circuitBreaker": self.telegram.get_breaker_state(),
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                }
            except Exception as e:
                self.logger.error("Status check failed", error=str(e))
                return JSONResponse(
                    status_code=500,
                    content={
                        "healthy": False,
                        "error": "Status check failed",
                        "timestamp": datetime.now(timezone.utc).isoformat(),
                    }
                )

        @self.app.get("/api/stats")
        async def stats():
            """Usage counters."""
            try:
                return self.usage.to_dict()
            except Exception as e:
                self.logger.error("Stats retrieval failed", error=str(e))
                return JSONResponse(status_code=500, content={"error": "Failed to retrieve stats"})

        @self.app.post("/test-delivery")
        async def test_delivery(body: Dict[str, Any] = Body(...)):
            """Send a message to an arbitrary chat through the resilient client."""
            chat_id = body.get("chatId")
            message = body.get("message")

            if not chat_id or not message:
                raise ValidationError("chatId and message are required")

            result = await self.telegram.send_message(chat_id, message)
            message_id = result.data.get("message_id") if isinstance(result.data, dict) else None

            return {
                "success": result.success,
                "error": result.error,
                "messageId": message_id,
            }

        @self.app.post("/webhook/{secret}")
        async def webhook(secret: str, request: Request):
            """Receive one update. Always 200 once the secret matches."""
            if not hmac.compare_digest(secret.encode(), self.config.webhook_secret.encode()):
                client_host = request.client.host if request.client else None
                self.logger.warning("Invalid webhook secret", ip=client_host)
                raise AuthenticationError()

            try:
                payload = await request.json()
            except ValueError as e:
                self.logger.error("Webhook body is not valid JSON", error=str(e))
                payload = None

            if payload is not None:
                await self.dispatcher.dispatch(payload)

            # 200 regardless of outcome so Telegram does not redeliver
            return {"ok": True}

    def on_request(self, request: Request):
        self.health_monitor.record_request()

    async def _check_dependencies(self) -> Dict[str, str]:
        return {
            "ttl_store": "ok" if self.store.running else "stopped",
            "telegram_api": self.telegram.circuit_breaker.state.value,
        }

    async def start(self):
        await self.store.start()
        self.logger.info("Bot service components started")

    async def stop(self):
        await self.store.shutdown()
        await self.telegram.aclose()
        self.logger.info("Bot service components stopped")


def create_app(config: Optional[ServiceConfig] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
    """Create bot service application."""
    service = BotService(config=config, transport=transport)
    return service.app


if __name__ == "__main__":
    service = BotService()
    service.run()
