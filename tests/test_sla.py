from datetime import timedelta

from helpdesk.tickets.models import SLAConfig
from helpdesk.tickets.sla import SLABucket, active_config_for, compute_due_date, evaluate_sla
from helpdesk.tickets.state import TicketPriority, TicketStatus

from conftest import NOW, make_level, make_ticket


def _configs():
    return [
        SLAConfig(id="sla-high", priority=TicketPriority.HIGH, duration_hrs=8),
        SLAConfig(id="sla-low", priority=TicketPriority.LOW, duration_hrs=72, is_active=False),
    ]


def test_due_date_comes_from_active_policy():
    assert compute_due_date(NOW, TicketPriority.HIGH, _configs()) == NOW + timedelta(hours=8)


def test_inactive_or_missing_policy_leaves_due_date_empty():
    assert compute_due_date(NOW, TicketPriority.LOW, _configs()) is None
    assert compute_due_date(NOW, TicketPriority.URGENT, _configs()) is None
    assert active_config_for(TicketPriority.LOW, _configs()) is None


def test_buckets_follow_elapsed_hours():
    ticket = make_ticket(make_level("L1", 1), due_date=NOW + timedelta(hours=8))

    normal = evaluate_sla(ticket, NOW + timedelta(hours=5, minutes=59))
    assert normal.bucket == SLABucket.NORMAL
    assert normal.elapsed_hours == 5
    assert normal.warning_hours == 6

    assert evaluate_sla(ticket, NOW + timedelta(hours=6)).bucket == SLABucket.WARNING
    critical = evaluate_sla(ticket, NOW + timedelta(hours=20))
    assert critical.bucket == SLABucket.CRITICAL
    assert critical.progress_percent == 100.0


def test_done_tickets_stop_the_clock_at_resolution():
    ticket = make_ticket(
        make_level("L1", 1),
        status=TicketStatus.RESOLVED,
        due_date=NOW + timedelta(hours=8),
        resolved_at=NOW + timedelta(hours=3),
    )

    status = evaluate_sla(ticket, NOW + timedelta(days=5))

    assert status.bucket == SLABucket.DONE
    assert status.elapsed_hours == 3


def test_closed_without_resolution_uses_closing_time():
    ticket = make_ticket(
        make_level("L1", 1),
        status=TicketStatus.CLOSED,
        closed_at=NOW + timedelta(hours=2),
    )
    assert evaluate_sla(ticket, NOW + timedelta(days=1)).elapsed_hours == 2


def test_fallback_target_is_display_only():
    ticket = make_ticket(make_level("L1", 1))

    status = evaluate_sla(ticket, NOW + timedelta(hours=36), fallback_hours=48)

    assert status.uses_fallback_target
    assert status.target_hours == 48
    assert status.bucket == SLABucket.WARNING
    assert ticket.due_date is None


def test_target_is_at_least_one_hour():
    ticket = make_ticket(make_level("L1", 1), due_date=NOW + timedelta(minutes=10))
    status = evaluate_sla(ticket, NOW)
    assert status.target_hours == 1
    assert status.warning_hours == 0
