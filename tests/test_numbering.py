import re
from datetime import datetime, timezone

from helpdesk.tickets.numbering import fallback_ticket_number, format_ticket_number, local_day_bounds


def test_ticket_number_uses_year_month_and_daily_sequence():
    moment = datetime(2024, 12, 20, 9, 0, tzinfo=timezone.utc)
    assert format_ticket_number(moment, 1) == "TKT-24120001"
    assert format_ticket_number(moment, 37, prefix="HD") == "HD-24120037"


def test_fallback_number_has_random_base36_suffix():
    moment = datetime(2025, 1, 3, tzinfo=timezone.utc)
    number = fallback_ticket_number(moment)
    assert re.fullmatch(r"TKT-2501[0-9A-Z]{3}", number)


def test_local_day_bounds_follow_configured_timezone():
    # 20:00 UTC on the 31st is already the 1st in Jakarta (UTC+7).
    moment = datetime(2024, 12, 31, 20, 0, tzinfo=timezone.utc)

    local, start, end = local_day_bounds(moment, "Asia/Jakarta")

    assert (local.year, local.month, local.day) == (2025, 1, 1)
    assert start == datetime(2024, 12, 31, 17, 0, tzinfo=timezone.utc)
    assert end == datetime(2025, 1, 1, 17, 0, tzinfo=timezone.utc)
    assert format_ticket_number(local, 1) == "TKT-25010001"
