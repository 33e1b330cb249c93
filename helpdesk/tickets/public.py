"""Customer-facing projection of a ticket.

Customers identify a ticket by the pair (ticket number, email). What they get
back never includes internal notes, agent identities, storage keys or
activity kinds outside :data:`activity.PUBLIC_ACTIVITY_TYPES`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from .activity import PUBLIC_ACTIVITY_TYPES
from .models import AttachmentRef, TicketAggregate
from .state import ActivityType, TicketPriority, TicketStatus


def normalize_lookup(ticket_number: str, email: str) -> tuple[str, str]:
    return ticket_number.strip().upper(), email.strip().lower()


@dataclass(frozen=True, slots=True)
class PublicAttachment:
    id: str
    file_name: str
    file_url: str
    file_size: int
    file_type: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class PublicReply:
    id: str
    message: str
    is_customer: bool
    created_at: datetime
    attachments: Sequence[PublicAttachment] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class PublicActivity:
    type: ActivityType
    description: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class PublicTicketView:
    id: str
    ticket_number: str
    subject: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    level_code: str
    level_name: str
    customer_name: str
    customer_email: str
    created_at: datetime
    updated_at: datetime
    resolved_at: datetime | None
    closed_at: datetime | None
    replies: Sequence[PublicReply]
    attachments: Sequence[PublicAttachment]
    activities: Sequence[PublicActivity]


def _public_attachment(attachment: AttachmentRef) -> PublicAttachment:
    return PublicAttachment(
        id=attachment.id,
        file_name=attachment.file_name,
        file_url=attachment.file_url,
        file_size=attachment.file_size,
        file_type=attachment.file_type,
        created_at=attachment.created_at,
    )


def build_public_view(aggregate: TicketAggregate) -> PublicTicketView:
    ticket = aggregate.ticket
    return PublicTicketView(
        id=ticket.id,
        ticket_number=ticket.ticket_number,
        subject=ticket.subject,
        description=ticket.description,
        status=ticket.status,
        priority=ticket.priority,
        level_code=ticket.level.code,
        level_name=ticket.level.name,
        customer_name=ticket.customer.name,
        customer_email=ticket.customer.email,
        created_at=ticket.created_at,
        updated_at=ticket.updated_at,
        resolved_at=ticket.resolved_at,
        closed_at=ticket.closed_at,
        replies=[
            PublicReply(
                id=reply.id,
                message=reply.message,
                is_customer=reply.is_customer,
                created_at=reply.created_at,
                attachments=[_public_attachment(item) for item in reply.attachments],
            )
            for reply in aggregate.replies
        ],
        attachments=[_public_attachment(item) for item in aggregate.attachments],
        activities=[
            PublicActivity(type=entry.type, description=entry.description, created_at=entry.created_at)
            for entry in aggregate.activities
            if entry.type in PUBLIC_ACTIVITY_TYPES
        ],
    )
