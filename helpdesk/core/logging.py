"""Logging and tracing utilities for the helpdesk API.

Log records are stamped with the ticket and actor bound to the running task,
so a line emitted deep inside the repository still says which ticket it was
about. Ticket operations open an OpenTelemetry span carrying the same ids.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from logging.config import dictConfig
from typing import Iterator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from helpdesk.core.config import Settings

_TRACER_INITIALISED = False
_NO_CONTEXT = "-"

_ticket_var: ContextVar[str] = ContextVar("helpdesk_ticket", default=_NO_CONTEXT)
_actor_var: ContextVar[str] = ContextVar("helpdesk_actor", default=_NO_CONTEXT)

_tracer = trace.get_tracer("helpdesk.tickets")


class TicketContextFilter(logging.Filter):
    """Adds ``ticket`` and ``actor`` attributes to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.ticket = _ticket_var.get()
        record.actor = _actor_var.get()
        return True


@contextmanager
def ticket_context(ticket: str | None = None, actor: str | None = None) -> Iterator[None]:
    """Bind ticket and actor ids to log records emitted inside the block."""

    tokens = []
    if ticket:
        tokens.append((_ticket_var, _ticket_var.set(ticket)))
    if actor:
        tokens.append((_actor_var, _actor_var.set(actor)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


@contextmanager
def ticket_operation(
    name: str,
    *,
    ticket: str | None = None,
    actor: str | None = None,
) -> Iterator[trace.Span]:
    """Run a ticket operation inside a span and a bound log context."""

    with _tracer.start_as_current_span(name) as span:
        if ticket:
            span.set_attribute("helpdesk.ticket", ticket)
        if actor:
            span.set_attribute("helpdesk.actor", actor)
        with ticket_context(ticket, actor):
            yield span


def _parse_headers(header_string: str | None) -> dict[str, str]:
    if not header_string:
        return {}
    headers: dict[str, str] = {}
    for item in header_string.split(","):
        key, sep, value = item.partition("=")
        if sep:
            headers[key.strip()] = value.strip()
    return headers


def configure_logging(settings: Settings) -> logging.Logger:
    """Configure the root handler, the ``helpdesk`` logger and SQL echo."""

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    sql_level = getattr(logging, settings.sql_log_level.upper(), logging.WARNING)
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "ticket_context": {"()": TicketContextFilter},
            },
            "formatters": {
                "default": {"format": settings.log_format},
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["ticket_context"],
                    "level": level,
                }
            },
            "loggers": {
                "helpdesk": {"level": level},
                "sqlalchemy.engine": {"level": sql_level},
            },
            "root": {
                "handlers": ["default"],
                "level": level,
            },
        }
    )
    return logging.getLogger("helpdesk")


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Install the OTLP tracer provider when tracing is enabled."""

    global _TRACER_INITIALISED

    if _TRACER_INITIALISED or not settings.otel_enabled:
        return None

    provider = TracerProvider(
        resource=Resource(
            attributes={
                "service.name": settings.otel_service_name,
                "deployment.environment": settings.environment,
            }
        )
    )
    exporter_kwargs: dict[str, object] = {}
    if settings.otel_exporter_otlp_endpoint:
        exporter_kwargs["endpoint"] = settings.otel_exporter_otlp_endpoint
    headers = _parse_headers(settings.otel_exporter_otlp_headers)
    if headers:
        exporter_kwargs["headers"] = headers
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**exporter_kwargs)))

    trace.set_tracer_provider(provider)
    _TRACER_INITIALISED = True
    return provider


def shutdown_tracer(provider: TracerProvider | None) -> None:
    if provider is None:
        return

    global _TRACER_INITIALISED
    provider.shutdown()
    _TRACER_INITIALISED = False
