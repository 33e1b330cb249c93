"""SLA due dates and the read-side SLA indicator.

The stored ``due_date`` only ever comes from an active SLA policy row or an
explicit override. The display fallback target is used for progress rendering
and is never written back to a ticket.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable

from .models import SLAConfig, Ticket
from .state import TicketPriority, TicketStateMachine

DEFAULT_DISPLAY_TARGET_HOURS = 48
WARNING_RATIO = 0.75

_HOUR = timedelta(hours=1)


class SLABucket(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class SLAStatus:
    """Derived SLA view of a ticket at a given instant."""

    bucket: SLABucket
    elapsed_hours: int
    target_hours: int
    warning_hours: int
    critical_hours: int
    progress_percent: float
    uses_fallback_target: bool


def active_config_for(priority: TicketPriority, configs: Iterable[SLAConfig]) -> SLAConfig | None:
    for config in configs:
        if config.priority == priority and config.is_active:
            return config
    return None


def compute_due_date(
    created_at: datetime,
    priority: TicketPriority,
    configs: Iterable[SLAConfig],
) -> datetime | None:
    config = active_config_for(priority, configs)
    if config is None:
        return None
    return created_at + timedelta(hours=config.duration_hrs)


def _whole_hours(delta: timedelta) -> int:
    return math.floor(delta / _HOUR)


def evaluate_sla(
    ticket: Ticket,
    now: datetime,
    *,
    fallback_hours: int = DEFAULT_DISPLAY_TARGET_HOURS,
) -> SLAStatus:
    done = TicketStateMachine.is_done(ticket.status)
    end = now
    if done:
        end = ticket.resolved_at or ticket.closed_at or now
    elapsed = max(0, _whole_hours(end - ticket.created_at))

    if ticket.due_date is not None:
        target = max(1, _whole_hours(ticket.due_date - ticket.created_at))
        uses_fallback = False
    else:
        target = max(1, fallback_hours)
        uses_fallback = True

    warning = math.floor(target * WARNING_RATIO)
    critical = target

    if done:
        bucket = SLABucket.DONE
    elif elapsed >= critical:
        bucket = SLABucket.CRITICAL
    elif elapsed >= warning:
        bucket = SLABucket.WARNING
    else:
        bucket = SLABucket.NORMAL

    return SLAStatus(
        bucket=bucket,
        elapsed_hours=elapsed,
        target_hours=target,
        warning_hours=warning,
        critical_hours=critical,
        progress_percent=min(elapsed / target * 100.0, 100.0),
        uses_fallback_target=uses_fallback,
    )
