from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Sequence

from .state import ActivityType, TicketPriority, TicketSource, TicketStatus


class Role(str, Enum):
    """Roles an authenticated actor can hold."""

    ADMIN = "admin"
    AGENT = "agent"


@dataclass(frozen=True, slots=True)
class Capabilities:
    """Capability flags granted by a support level."""

    can_view_own_tickets: bool = True
    can_view_team_tickets: bool = False
    can_view_all_tickets: bool = False
    can_create_ticket: bool = True
    can_assign_ticket: bool = False
    can_escalate_ticket: bool = False
    can_resolve_ticket: bool = True
    can_close_ticket: bool = False


@dataclass(slots=True)
class SupportLevel:
    """A support tier; ``sort_order`` ranks tiers for visibility and escalation."""

    id: str
    code: str
    name: str
    sort_order: int
    is_active: bool = True
    description: str | None = None
    capabilities: Capabilities = field(default_factory=Capabilities)


@dataclass(slots=True)
class Actor:
    """An authenticated agent or admin acting on tickets."""

    id: str
    role: Role
    level: SupportLevel
    full_name: str = ""
    email: str = ""
    is_active: bool = True

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or self.id


@dataclass(slots=True)
class SLAConfig:
    """Target resolution time for one priority."""

    id: str
    priority: TicketPriority
    duration_hrs: int
    is_active: bool = True
    description: str | None = None


@dataclass(slots=True)
class Category:
    id: str
    name: str
    slug: str
    is_active: bool = True
    description: str | None = None
    color: str | None = None
    sort_order: int = 0


@dataclass(slots=True)
class Customer:
    name: str
    email: str
    phone: str | None = None
    company: str | None = None


@dataclass(slots=True)
class Ticket:
    """Aggregate root of the helpdesk."""

    id: str
    ticket_number: str
    subject: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    source: TicketSource
    level: SupportLevel
    category_id: str
    customer: Customer
    created_by_id: str
    created_at: datetime
    updated_at: datetime
    assignee_id: str | None = None
    due_date: datetime | None = None
    resolved_at: datetime | None = None
    closed_at: datetime | None = None
    version: int = 1


@dataclass(slots=True)
class AttachmentRef:
    """Metadata of a file kept by the external object store."""

    id: str
    file_name: str
    file_key: str
    file_url: str
    file_size: int
    file_type: str
    created_at: datetime
    uploaded_by_id: str | None = None
    ticket_id: str | None = None
    reply_id: str | None = None
    note_id: str | None = None


@dataclass(frozen=True, slots=True)
class AttachmentInput:
    file_name: str
    file_key: str
    file_url: str
    file_size: int
    file_type: str


@dataclass(slots=True)
class TicketReply:
    """Message visible to the customer; customer replies have no author."""

    id: str
    ticket_id: str
    message: str
    is_customer: bool
    created_at: datetime
    author_id: str | None = None
    attachments: Sequence[AttachmentRef] = field(default_factory=list)


@dataclass(slots=True)
class TicketNote:
    """Internal message, never shown to the customer."""

    id: str
    ticket_id: str
    content: str
    author_id: str
    created_at: datetime
    attachments: Sequence[AttachmentRef] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class TicketActivity:
    """Immutable audit entry describing one change on a ticket."""

    id: str
    ticket_id: str
    author_id: str | None
    type: ActivityType
    description: str
    created_at: datetime
    old_value: str | None = None
    new_value: str | None = None


@dataclass(slots=True)
class TicketAggregate:
    """Ticket bundled with its owned records."""

    ticket: Ticket
    replies: Sequence[TicketReply] = field(default_factory=list)
    notes: Sequence[TicketNote] = field(default_factory=list)
    activities: Sequence[TicketActivity] = field(default_factory=list)
    attachments: Sequence[AttachmentRef] = field(default_factory=list)
