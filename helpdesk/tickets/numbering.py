from __future__ import annotations

import secrets
import string
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

DEFAULT_PREFIX = "TKT"
SEQUENCE_WIDTH = 4
FALLBACK_SUFFIX_LENGTH = 3

_BASE36 = string.digits + string.ascii_uppercase


def _period(moment: datetime) -> str:
    return f"{moment.year % 100:02d}{moment.month:02d}"


def format_ticket_number(moment: datetime, sequence: int, *, prefix: str = DEFAULT_PREFIX) -> str:
    """``TKT-YYMM`` followed by the zero-padded daily sequence."""

    return f"{prefix}-{_period(moment)}{sequence:0{SEQUENCE_WIDTH}d}"


def fallback_ticket_number(moment: datetime, *, prefix: str = DEFAULT_PREFIX) -> str:
    """``TKT-YYMM`` followed by a random base-36 suffix, used after a collision."""

    suffix = "".join(secrets.choice(_BASE36) for _ in range(FALLBACK_SUFFIX_LENGTH))
    return f"{prefix}-{_period(moment)}{suffix}"


def local_day_bounds(moment: datetime, tz_name: str) -> tuple[datetime, datetime, datetime]:
    """Return the local moment plus the UTC start and end of its calendar day."""

    zone = ZoneInfo(tz_name)
    local = moment.astimezone(zone)
    start = datetime.combine(local.date(), time.min, tzinfo=zone)
    end = start + timedelta(days=1)
    return local, start.astimezone(timezone.utc), end.astimezone(timezone.utc)
