"""Logging and Sentry setup for the gateway.

structlog renders every record, including those from stdlib loggers such as
uvicorn and httpx, so request IDs and redaction apply to all output.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, cast

import sentry_sdk
import structlog
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.httpx import HttpxIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from chat_gateway.exceptions import StreamClosedError
from chat_gateway.middleware.logging_filter import redact_sensitive_data

if TYPE_CHECKING:
    from sentry_sdk.types import Event

DEV_TRACES_SAMPLE_RATE = 1.0

HEALTH_TRANSACTIONS = frozenset({"/health", "/metrics"})
SENSITIVE_HEADERS = ("authorization", "cookie", "x-api-key")
SENSITIVE_EXTRA_KEYS = ("password", "token", "secret", "api_key", "apikey", "credentials")

# Keys structlog adds itself; everything else is breadcrumb data
_LOG_METADATA_KEYS = frozenset({"event", "level", "timestamp", "logger", "filename", "lineno"})

NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.CallsiteParameterAdder(
            {
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
            }
        ),
        redact_sensitive_data,
    ]


def configure_logging(
    service_name: str,
    log_level: int = logging.INFO,
    json_format: bool | None = None,
    environment: str = "development",
) -> structlog.stdlib.BoundLogger:
    """
    Route structlog and stdlib logging through one structlog formatter.

    Call once at startup, after ``init_sentry()``. Console output in
    development, JSON everywhere else unless ``json_format`` says otherwise.
    """
    if json_format is None:
        json_format = environment != "development"

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    # Replace handlers so a reload does not print every line twice
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors(),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            add_sentry_breadcrumb,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return cast("structlog.stdlib.BoundLogger", structlog.get_logger(service_name))


def add_sentry_breadcrumb(
    _logger: Any,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Record the (already redacted) log event as a Sentry breadcrumb.

    Error events reach Sentry through ``LoggingIntegration``; this only keeps
    the trail leading up to them.
    """
    data = {k: v for k, v in event_dict.items() if k not in _LOG_METADATA_KEYS}
    sentry_sdk.add_breadcrumb(
        category="log",
        message=str(event_dict.get("event", "")),
        level=event_dict.get("level", "info"),
        data=data or None,
    )
    return event_dict


@dataclass
class SentryConfig:
    """Configuration for Sentry SDK initialization."""

    service_name: str
    dsn: str | None = None
    environment: str = "development"
    release: str | None = None
    traces_sample_rate: float | None = None
    profiles_sample_rate: float | None = None


def _scrub_event(event: Event, _hint: dict[str, Any]) -> Event | None:
    request = event.get("request")
    if request is not None:
        headers = request.get("headers")
        if isinstance(headers, dict):
            for header in SENSITIVE_HEADERS:
                if header in headers:
                    headers[header] = "[Filtered]"

    extra = event.get("extra")
    if isinstance(extra, dict):
        for key in list(extra.keys()):
            if any(sensitive in key.lower() for sensitive in SENSITIVE_EXTRA_KEYS):
                extra[key] = "[Filtered]"
    return event


def _drop_health_transactions(event: Event, _hint: dict[str, Any]) -> Event | None:
    if event.get("transaction", "") in HEALTH_TRANSACTIONS:
        return None
    return event


def init_sentry(config: SentryConfig) -> bool:
    """
    Initialize the Sentry SDK.

    Returns:
        True if Sentry was initialized, False if no DSN was configured
    """
    if not config.dsn:
        return False

    is_development = config.environment == "development"
    traces_rate = config.traces_sample_rate
    profiles_rate = config.profiles_sample_rate
    if is_development:
        traces_rate = DEV_TRACES_SAMPLE_RATE if traces_rate is None else traces_rate
        profiles_rate = DEV_TRACES_SAMPLE_RATE if profiles_rate is None else profiles_rate

    sentry_sdk.init(
        dsn=config.dsn,
        environment=config.environment,
        release=config.release or f"{config.service_name}@0.1.0",
        traces_sample_rate=traces_rate,
        profiles_sample_rate=profiles_rate,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
            HttpxIntegration(),
            AsyncioIntegration(),
            LoggingIntegration(level=None, event_level=logging.ERROR),
        ],
        before_send=_scrub_event,
        before_send_transaction=_drop_health_transactions,
        send_default_pii=False,
        attach_stacktrace=True,
        max_breadcrumbs=100,
        server_name=config.service_name,
        ignore_errors=[ConnectionResetError, StreamClosedError, asyncio.CancelledError],
    )
    sentry_sdk.set_tag("service", config.service_name)
    return True
