"""
FastAPI scaffolding shared by the Resilient Bot services.
"""

import os
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST

from shared.config import ServiceConfig, get_config
from shared.errors import BotServiceException
from shared.logging import clear_context, configure_logging, get_logger, set_request_id
from shared.metrics import MetricsCollector, get_metrics_collector


REQUEST_ID_HEADER = "X-Request-ID"


def route_label(request: Request) -> str:
    """Path template of the matched route, e.g. ``/webhook/{secret}``.

    Used for logs and metric labels so path parameters (the webhook secret in
    particular) never leave the process.
    """
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class BaseService:
    """FastAPI app with lifespan hooks, request accounting and error mapping.

    Subclasses register their own routes and override ``start``/``stop`` for
    background components, ``_check_dependencies`` for ``/health`` and
    ``on_request`` to observe every served request.
    """

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)
        configure_logging(
            service_name,
            self.config.log_level,
            secrets=(self.config.telegram_bot_token, self.config.webhook_secret),
        )

        self.logger = get_logger(f"{service_name}.service")
        self.metrics: MetricsCollector = get_metrics_collector(service_name)
        self._start_time = time.time()

        self.app = self._create_app()
        self._install_middleware()
        self._install_routes()
        self._install_exception_handlers()

    def _create_app(self) -> FastAPI:
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await self.start()
            self.logger.info("Service started", port=self.port, env=self.config.env)
            try:
                yield
            finally:
                await self.stop()
                self.logger.info("Service stopped")

        local = self.config.env == "local"
        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description="Resilient Telegram webhook bot",
            version="1.0.0",
            docs_url="/docs" if local else None,
            redoc_url="/redoc" if local else None,
            lifespan=lifespan,
        )

    def _install_middleware(self):
        @self.app.middleware("http")
        async def account_request(request: Request, call_next):
            request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
            started = time.perf_counter()
            try:
                response = await call_next(request)
                elapsed = time.perf_counter() - started
                endpoint = route_label(request)

                self.on_request(request)
                self.metrics.record_http_request(request.method, endpoint, response.status_code, elapsed)
                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    endpoint=endpoint,
                    status_code=response.status_code,
                    duration_ms=round(elapsed * 1000, 2)
                )
                response.headers[REQUEST_ID_HEADER] = request_id
                return response
            finally:
                clear_context()

    def _install_routes(self):
        @self.app.get("/health")
        async def health():
            """Liveness and dependency summary."""
            try:
                dependencies = await self._check_dependencies()
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={"service": self.service_name, "status": "error", "error": str(e)},
                )

            self.metrics.record_health_check("ok")
            return {
                "service": self.service_name,
                "status": "ok",
                "uptime_seconds": round(self._get_uptime(), 3),
                "dependencies": dependencies,
                "version": "1.0.0",
                "commit": os.getenv("GIT_COMMIT", "unknown"),
            }

        @self.app.get("/metrics")
        async def metrics():
            """Prometheus exposition."""
            return Response(content=self.metrics.export(), media_type=CONTENT_TYPE_LATEST)

    def _install_exception_handlers(self):
        @self.app.exception_handler(BotServiceException)
        async def handle_service_error(request: Request, exc: BotServiceException):
            self.logger.warning(
                "Request rejected",
                endpoint=route_label(request),
                code=exc.code,
                message=exc.message,
                details=exc.details
            )
            self.metrics.record_error(exc.code)
            return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())

        @self.app.exception_handler(Exception)
        async def handle_unexpected_error(request: Request, exc: Exception):
            self.logger.error(
                "Unhandled exception", endpoint=route_label(request), error=str(exc), exc_info=True
            )
            self.metrics.record_error("INTERNAL_ERROR")
            return JSONResponse(
                status_code=500,
                content={"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}},
            )

    def on_request(self, request: Request):
        """Called once per served request."""

    async def _check_dependencies(self) -> Dict[str, Any]:
        return {}

    async def start(self):
        """Start background components."""

    async def stop(self):
        """Stop background components."""

    def _get_uptime(self) -> float:
        return time.time() - self._start_time

    def run(self):
        import uvicorn

        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
