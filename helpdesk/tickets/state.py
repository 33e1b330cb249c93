from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Ticket


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(str, Enum):
    """Ticket urgency, also the key of the SLA policy table."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK: dict[TicketPriority, int] = {
    TicketPriority.LOW: 0,
    TicketPriority.NORMAL: 1,
    TicketPriority.HIGH: 2,
    TicketPriority.URGENT: 3,
}


class TicketSource(str, Enum):
    """Channel a ticket was raised through."""

    PHONE = "phone"
    EMAIL = "email"
    WALK_IN = "walk_in"
    WEB = "web"


class ActivityType(str, Enum):
    """Kinds of entries in a ticket's audit trail."""

    CREATED = "created"
    STATUS_CHANGE = "status_change"
    PRIORITY_CHANGE = "priority_change"
    LEVEL_CHANGE = "level_change"
    ASSIGN = "assign"
    ESCALATE = "escalate"
    REPLY = "reply"
    NOTE = "note"
    CUSTOMER_REPLY = "customer_reply"
    ATTACHMENT_ADDED = "attachment_added"


class TicketStateMachine:
    """Status rules for tickets.

    Explicit updates may move a ticket between any two states. New replies
    reopen tickets that were waiting, resolved or closed, and the first agent
    reply on an open ticket moves it into progress. The resolution and closing
    timestamps are stamped once and never cleared.
    """

    REOPEN_STATES: frozenset[TicketStatus] = frozenset(
        {TicketStatus.PENDING, TicketStatus.RESOLVED, TicketStatus.CLOSED}
    )
    DONE_STATES: frozenset[TicketStatus] = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED})

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.OPEN

    @classmethod
    def is_done(cls, status: TicketStatus) -> bool:
        return status in cls.DONE_STATES

    @classmethod
    def apply_status(cls, ticket: "Ticket", new_status: TicketStatus, now: datetime) -> "Ticket":
        """Return a copy of ``ticket`` moved to ``new_status`` with sticky stamps."""

        resolved_at = ticket.resolved_at
        closed_at = ticket.closed_at
        if new_status == TicketStatus.RESOLVED and resolved_at is None:
            resolved_at = now
        if new_status == TicketStatus.CLOSED and closed_at is None:
            closed_at = now
        return replace(ticket, status=new_status, resolved_at=resolved_at, closed_at=closed_at)

    @classmethod
    def status_after_agent_reply(cls, current: TicketStatus) -> TicketStatus:
        if current == TicketStatus.OPEN:
            return TicketStatus.IN_PROGRESS
        if current in cls.REOPEN_STATES:
            return TicketStatus.OPEN
        return current

    @classmethod
    def status_after_customer_reply(cls, current: TicketStatus) -> TicketStatus:
        if current in cls.REOPEN_STATES:
            return TicketStatus.OPEN
        return current

    @classmethod
    def reopens(cls, current: TicketStatus, new: TicketStatus) -> bool:
        return current in cls.REOPEN_STATES and new == TicketStatus.OPEN
