import logging

from helpdesk.core.config import Settings
from helpdesk.core.logging import (
    TicketContextFilter,
    _parse_headers,
    configure_logging,
    init_tracer,
    ticket_context,
    ticket_operation,
)


def _record() -> logging.LogRecord:
    return logging.LogRecord("helpdesk.tickets", logging.INFO, __file__, 1, "hello", None, None)


def test_records_carry_bound_ticket_and_actor():
    context_filter = TicketContextFilter()

    with ticket_context("TKT-24120001", "agent-a"):
        record = _record()
        context_filter.filter(record)
    assert record.ticket == "TKT-24120001"
    assert record.actor == "agent-a"

    outside = _record()
    context_filter.filter(outside)
    assert outside.ticket == "-"
    assert outside.actor == "-"


def test_ticket_operation_binds_context_without_tracer():
    context_filter = TicketContextFilter()

    with ticket_operation("tickets.update", ticket="TKT-24120002"):
        record = _record()
        context_filter.filter(record)

    assert record.ticket == "TKT-24120002"
    assert record.actor == "-"


def test_parse_headers_skips_malformed_items():
    assert _parse_headers("a=1, b = 2,broken") == {"a": "1", "b": "2"}
    assert _parse_headers(None) == {}


def test_configure_logging_sets_levels():
    logger = configure_logging(Settings(log_level="DEBUG", sql_log_level="INFO"))

    assert logger.name == "helpdesk"
    assert logger.level == logging.DEBUG
    assert logging.getLogger("sqlalchemy.engine").level == logging.INFO


def test_tracer_disabled_by_default():
    assert init_tracer(Settings(otel_enabled=False)) is None
