"""
Structured logging for the Resilient Bot services.

Events are rendered as JSON lines on stdout. Every event carries the
service name, and, while set, the request ID and the update/chat being
dispatched. Configured secrets (the bot token, the webhook secret) are
masked in every string field before rendering, since Bot API URLs embed
the token.
"""

import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Iterable, Optional

import structlog

REDACTED = "***"

# Correlation IDs
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
update_id_var: ContextVar[Optional[str]] = ContextVar('update_id', default=None)
chat_id_var: ContextVar[Optional[str]] = ContextVar('chat_id', default=None)

_CORRELATION_VARS = (
    ("request_id", request_id_var),
    ("update_id", update_id_var),
    ("chat_id", chat_id_var),
)


class SecretRedactor:
    """structlog processor that masks known secret values."""

    def __init__(self, secrets: Iterable[str] = ()):
        self.secrets = [secret for secret in secrets if secret]

    def _mask(self, value: str) -> str:
        for secret in self.secrets:
            value = value.replace(secret, REDACTED)
        return value

    def __call__(self, logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        if not self.secrets:
            return event_dict
        for key, value in event_dict.items():
            if isinstance(value, str):
                event_dict[key] = self._mask(value)
        return event_dict


def configure_logging(service_name: str, log_level: str = "info", secrets: Iterable[str] = ()) -> None:
    """Configure structlog and the stdlib root logger for a service."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            add_correlation_context,
            add_timestamp,
            SecretRedactor(secrets),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    # Their request lines carry the bot token in the URL path
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Derive ``service`` from ``<service>.<component>`` logger names."""
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict["service"] = logger_name.split(".", 1)[0]
    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for field, var in _CORRELATION_VARS:
        value = var.get()
        if value:
            event_dict[field] = value
    return event_dict


def add_timestamp(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    # Epoch seconds alongside the ISO stamp, for log pipelines that sort numerically
    event_dict["timestamp"] = time.time()
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request ID, generating one when the caller sent none."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_update_context(update_id: Optional[Any] = None, chat_id: Optional[Any] = None):
    """Bind the update being dispatched to subsequent log lines."""
    if update_id is not None:
        update_id_var.set(str(update_id))
    if chat_id is not None:
        chat_id_var.set(str(chat_id))


def clear_update_context():
    """Unbind update correlation, keeping the request ID."""
    update_id_var.set(None)
    chat_id_var.set(None)


def clear_context():
    for _, var in _CORRELATION_VARS:
        var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)
