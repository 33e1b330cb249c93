"""Pure ticket operations.

Each function takes the current ticket and returns a :class:`TicketChange`
describing the new ticket state, the child records to insert, the audit
entries to append and the notifications to publish once the change has been
committed. Nothing here touches storage or checks permissions.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Iterable, Sequence

from . import activity
from .errors import InvalidTicketError, TicketServiceError
from .models import (
    Actor,
    AttachmentInput,
    AttachmentRef,
    Customer,
    SLAConfig,
    SupportLevel,
    Ticket,
    TicketActivity,
    TicketNote,
    TicketReply,
)
from .notifications import NotificationIntent, NotificationKind, Recipient
from .sla import compute_due_date
from .state import ActivityType, TicketPriority, TicketSource, TicketStateMachine, TicketStatus


class _Unset:
    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(slots=True)
class TicketDraft:
    """Input for opening a ticket."""

    subject: str
    description: str
    category_id: str
    level_id: str
    customer_name: str
    customer_email: str
    priority: TicketPriority = TicketPriority.NORMAL
    source: TicketSource = TicketSource.PHONE
    customer_phone: str | None = None
    customer_company: str | None = None
    assignee_id: str | None = None
    due_date: datetime | None = None
    attachments: Sequence[AttachmentInput] = ()

    def validate(self) -> None:
        required = {
            "subject": self.subject,
            "description": self.description,
            "category_id": self.category_id,
            "level_id": self.level_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
        }
        missing = sorted(name for name, value in required.items() if not (value or "").strip())
        if missing:
            raise InvalidTicketError(f"Missing required fields: {', '.join(missing)}")
        if "@" not in self.customer_email:
            raise InvalidTicketError("customer_email is not a valid email address")


@dataclass(slots=True)
class TicketPatch:
    """Partial update; fields left as ``UNSET`` are not touched."""

    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    level_id: str | None = None
    category_id: str | None = None
    subject: str | None = None
    description: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    customer_phone: Any = UNSET
    customer_company: Any = UNSET
    due_date: Any = UNSET


@dataclass(slots=True)
class TicketChange:
    """Everything one operation writes, applied in a single transaction."""

    ticket: Ticket
    expected_version: int | None
    activities: list[TicketActivity] = field(default_factory=list)
    notifications: list[NotificationIntent] = field(default_factory=list)
    attachments: list[AttachmentRef] = field(default_factory=list)
    reply: TicketReply | None = None
    note: TicketNote | None = None

    def created_reply(self) -> TicketReply:
        if self.reply is None:
            raise TicketServiceError(f"No reply was recorded on ticket {self.ticket.ticket_number}")
        return self.reply

    def created_note(self) -> TicketNote:
        if self.note is None:
            raise TicketServiceError(f"No note was recorded on ticket {self.ticket.ticket_number}")
        return self.note


def _new_id() -> str:
    return str(uuid.uuid4())


def _touch(ticket: Ticket, now: datetime) -> Ticket:
    return replace(ticket, updated_at=now, version=ticket.version + 1)


def _intent(
    kind: NotificationKind,
    ticket: Ticket,
    recipient: Recipient,
    actor_id: str | None,
    **payload: Any,
) -> NotificationIntent:
    return NotificationIntent(
        kind=kind,
        ticket_id=ticket.id,
        ticket_number=ticket.ticket_number,
        recipient=recipient,
        actor_id=actor_id,
        payload=payload,
    )


def _customer(ticket: Ticket) -> Recipient:
    return Recipient.customer(ticket.customer.email, ticket.customer.name)


def build_attachments(
    inputs: Iterable[AttachmentInput],
    uploaded_by_id: str | None,
    now: datetime,
    *,
    ticket_id: str | None = None,
    reply_id: str | None = None,
    note_id: str | None = None,
) -> list[AttachmentRef]:
    return [
        AttachmentRef(
            id=_new_id(),
            file_name=item.file_name,
            file_key=item.file_key,
            file_url=item.file_url,
            file_size=item.file_size,
            file_type=item.file_type,
            created_at=now,
            uploaded_by_id=uploaded_by_id,
            ticket_id=ticket_id,
            reply_id=reply_id,
            note_id=note_id,
        )
        for item in inputs
    ]


def open_ticket(
    draft: TicketDraft,
    actor: Actor,
    *,
    ticket_number: str,
    level: SupportLevel,
    sla_configs: Iterable[SLAConfig],
    now: datetime,
) -> TicketChange:
    ticket_id = _new_id()
    due_date = draft.due_date
    if due_date is None:
        due_date = compute_due_date(now, draft.priority, sla_configs)

    ticket = Ticket(
        id=ticket_id,
        ticket_number=ticket_number,
        subject=draft.subject.strip(),
        description=draft.description.strip(),
        status=TicketStateMachine.initial_state(),
        priority=draft.priority,
        source=draft.source,
        level=level,
        category_id=draft.category_id,
        customer=Customer(
            name=draft.customer_name.strip(),
            email=draft.customer_email.strip().lower(),
            phone=draft.customer_phone,
            company=draft.customer_company,
        ),
        created_by_id=actor.id,
        created_at=now,
        updated_at=now,
        assignee_id=draft.assignee_id,
        due_date=due_date,
    )
    change = TicketChange(ticket=ticket, expected_version=None)
    change.attachments = build_attachments(draft.attachments, actor.id, now, ticket_id=ticket_id)
    change.activities.append(
        activity.record(ticket_id, actor.id, ActivityType.CREATED, activity.describe_created(), now)
    )
    change.notifications.append(
        _intent(NotificationKind.TICKET_CREATED, ticket, _customer(ticket), actor.id)
    )
    if ticket.assignee_id is not None:
        change.notifications.append(
            _intent(NotificationKind.ASSIGNED, ticket, Recipient.agent(ticket.assignee_id), actor.id)
        )
    return change


def _status_intent(ticket: Ticket, actor_id: str, old: TicketStatus) -> NotificationIntent:
    kind = NotificationKind.STATUS_CHANGED
    if ticket.status == TicketStatus.RESOLVED:
        kind = NotificationKind.TICKET_RESOLVED
    elif ticket.status == TicketStatus.CLOSED:
        kind = NotificationKind.TICKET_CLOSED
    return _intent(
        kind,
        ticket,
        _customer(ticket),
        actor_id,
        old_status=old.value,
        new_status=ticket.status.value,
    )


def apply_update(
    ticket: Ticket,
    actor: Actor,
    patch: TicketPatch,
    *,
    now: datetime,
    new_level: SupportLevel | None = None,
) -> TicketChange:
    """Apply an explicit edit; the due date is never recomputed from priority."""

    updated = ticket
    activities: list[TicketActivity] = []
    notifications: list[NotificationIntent] = []

    if patch.status is not None and patch.status != ticket.status:
        updated = TicketStateMachine.apply_status(updated, patch.status, now)
        activities.append(
            activity.record(
                ticket.id,
                actor.id,
                ActivityType.STATUS_CHANGE,
                activity.describe_status_change(ticket.status, patch.status),
                now,
                old_value=ticket.status.value,
                new_value=patch.status.value,
            )
        )

    if patch.priority is not None and patch.priority != ticket.priority:
        updated = replace(updated, priority=patch.priority)
        activities.append(
            activity.record(
                ticket.id,
                actor.id,
                ActivityType.PRIORITY_CHANGE,
                activity.describe_priority_change(ticket.priority, patch.priority),
                now,
                old_value=ticket.priority.value,
                new_value=patch.priority.value,
            )
        )

    if new_level is not None and new_level.id != ticket.level.id:
        updated = replace(updated, level=new_level)
        activities.append(
            activity.record(
                ticket.id,
                actor.id,
                ActivityType.LEVEL_CHANGE,
                activity.describe_level_change(ticket.level, new_level),
                now,
                old_value=ticket.level.code,
                new_value=new_level.code,
            )
        )

    customer = updated.customer
    if patch.customer_name:
        customer = replace(customer, name=patch.customer_name.strip())
    if patch.customer_email:
        customer = replace(customer, email=patch.customer_email.strip().lower())
    if patch.customer_phone is not UNSET:
        customer = replace(customer, phone=patch.customer_phone)
    if patch.customer_company is not UNSET:
        customer = replace(customer, company=patch.customer_company)
    updated = replace(updated, customer=customer)

    if patch.category_id:
        updated = replace(updated, category_id=patch.category_id)
    if patch.subject:
        updated = replace(updated, subject=patch.subject.strip())
    if patch.description:
        updated = replace(updated, description=patch.description.strip())
    if patch.due_date is not UNSET:
        updated = replace(updated, due_date=patch.due_date)

    updated = _touch(updated, now)
    if updated.status != ticket.status:
        notifications.append(_status_intent(updated, actor.id, ticket.status))

    return TicketChange(
        ticket=updated,
        expected_version=ticket.version,
        activities=activities,
        notifications=notifications,
    )


def _require_text(value: str, field_name: str) -> str:
    text = (value or "").strip()
    if not text:
        raise InvalidTicketError(f"{field_name} is required")
    return text


def apply_agent_reply(
    ticket: Ticket,
    actor: Actor,
    message: str,
    attachments: Sequence[AttachmentInput],
    *,
    now: datetime,
) -> TicketChange:
    """Agent reply: may claim the ticket and moves its status forward or reopens it."""

    text = _require_text(message, "message")
    change = TicketChange(ticket=ticket, expected_version=ticket.version)
    updated = ticket

    if ticket.assignee_id is None and not actor.is_admin:
        updated = replace(updated, assignee_id=actor.id)
        change.activities.append(
            activity.record(
                ticket.id,
                actor.id,
                ActivityType.ASSIGN,
                activity.describe_auto_assignment(actor.display_name),
                now,
                new_value=actor.id,
            )
        )

    new_status = TicketStateMachine.status_after_agent_reply(ticket.status)
    if new_status != ticket.status:
        updated = TicketStateMachine.apply_status(updated, new_status, now)
        if TicketStateMachine.reopens(ticket.status, new_status):
            change.activities.append(
                activity.record(
                    ticket.id,
                    actor.id,
                    ActivityType.STATUS_CHANGE,
                    activity.describe_reopen(new_status, by_customer=False),
                    now,
                    old_value=ticket.status.value,
                    new_value=new_status.value,
                )
            )

    reply_id = _new_id()
    refs = build_attachments(attachments, actor.id, now, reply_id=reply_id)
    change.reply = TicketReply(
        id=reply_id,
        ticket_id=ticket.id,
        message=text,
        is_customer=False,
        created_at=now,
        author_id=actor.id,
        attachments=refs,
    )
    change.activities.append(
        activity.record(
            ticket.id,
            actor.id,
            ActivityType.REPLY,
            activity.describe_reply(len(refs)),
            now,
        )
    )
    change.ticket = _touch(updated, now)
    change.notifications.append(
        _intent(
            NotificationKind.NEW_REPLY,
            change.ticket,
            _customer(change.ticket),
            actor.id,
            reply_id=reply_id,
        )
    )
    return change


def apply_customer_reply(
    ticket: Ticket,
    message: str,
    attachments: Sequence[AttachmentInput],
    *,
    now: datetime,
) -> TicketChange:
    """Customer reply from the public page; logged under the ticket creator."""

    text = _require_text(message, "message")
    author_id = ticket.created_by_id
    change = TicketChange(ticket=ticket, expected_version=ticket.version)
    updated = ticket

    new_status = TicketStateMachine.status_after_customer_reply(ticket.status)
    if new_status != ticket.status:
        updated = TicketStateMachine.apply_status(updated, new_status, now)
        change.activities.append(
            activity.record(
                ticket.id,
                author_id,
                ActivityType.STATUS_CHANGE,
                activity.describe_reopen(new_status, by_customer=True),
                now,
                old_value=ticket.status.value,
                new_value=new_status.value,
            )
        )

    reply_id = _new_id()
    refs = build_attachments(attachments, None, now, reply_id=reply_id)
    change.reply = TicketReply(
        id=reply_id,
        ticket_id=ticket.id,
        message=text,
        is_customer=True,
        created_at=now,
        author_id=None,
        attachments=refs,
    )
    change.activities.append(
        activity.record(
            ticket.id,
            author_id,
            ActivityType.CUSTOMER_REPLY,
            activity.describe_customer_reply(),
            now,
        )
    )
    change.ticket = _touch(updated, now)
    recipient_id = ticket.assignee_id or ticket.created_by_id
    change.notifications.append(
        _intent(
            NotificationKind.CUSTOMER_REPLY,
            change.ticket,
            Recipient.agent(recipient_id),
            None,
            reply_id=reply_id,
        )
    )
    return change


def apply_note(
    ticket: Ticket,
    actor: Actor,
    content: str,
    attachments: Sequence[AttachmentInput],
    *,
    now: datetime,
) -> TicketChange:
    text = _require_text(content, "content")
    note_id = _new_id()
    refs = build_attachments(attachments, actor.id, now, note_id=note_id)
    change = TicketChange(ticket=_touch(ticket, now), expected_version=ticket.version)
    change.note = TicketNote(
        id=note_id,
        ticket_id=ticket.id,
        content=text,
        author_id=actor.id,
        created_at=now,
        attachments=refs,
    )
    change.activities.append(
        activity.record(ticket.id, actor.id, ActivityType.NOTE, activity.describe_note(len(refs)), now)
    )
    return change


def apply_attachments(
    ticket: Ticket,
    actor: Actor,
    attachments: Sequence[AttachmentInput],
    *,
    now: datetime,
) -> TicketChange:
    if not attachments:
        raise InvalidTicketError("No attachments provided")
    change = TicketChange(ticket=_touch(ticket, now), expected_version=ticket.version)
    change.attachments = build_attachments(attachments, actor.id, now, ticket_id=ticket.id)
    change.activities.append(
        activity.record(
            ticket.id,
            actor.id,
            ActivityType.ATTACHMENT_ADDED,
            activity.describe_attachments_added(len(change.attachments)),
            now,
        )
    )
    return change


def apply_assignment(
    ticket: Ticket,
    actor: Actor,
    new_assignee: Actor | None,
    *,
    previous_assignee: Actor | None,
    note: str | None,
    now: datetime,
) -> TicketChange:
    new_id = new_assignee.id if new_assignee is not None else None
    old_id = ticket.assignee_id
    old_name = None
    if old_id is not None:
        old_name = previous_assignee.display_name if previous_assignee is not None else old_id
    new_name = new_assignee.display_name if new_assignee is not None else None

    description = activity.describe_assignment(old_name, new_name)
    if note and note.strip():
        description = f"{description}: {note.strip()}"

    updated = _touch(replace(ticket, assignee_id=new_id), now)
    change = TicketChange(ticket=updated, expected_version=ticket.version)
    change.activities.append(
        activity.record(
            ticket.id,
            actor.id,
            ActivityType.ASSIGN,
            description,
            now,
            old_value=old_id,
            new_value=new_id,
        )
    )

    if new_id is not None and new_id != old_id:
        if old_id is None:
            change.notifications.append(
                _intent(
                    NotificationKind.ASSIGNED,
                    updated,
                    _customer(updated),
                    actor.id,
                    assignee_name=new_name,
                )
            )
        change.notifications.append(
            _intent(NotificationKind.ASSIGNED, updated, Recipient.agent(new_id), actor.id)
        )
    if old_id is not None and old_id != new_id:
        change.notifications.append(
            _intent(NotificationKind.UNASSIGNED, updated, Recipient.agent(old_id), actor.id)
        )
    return change


def apply_escalation(
    ticket: Ticket,
    actor: Actor,
    target: SupportLevel,
    *,
    reason: str | None,
    now: datetime,
) -> TicketChange:
    """Raise the ticket one level and release it for triage at that level."""

    reason_text = reason.strip() if reason else None
    updated = _touch(replace(ticket, level=target, assignee_id=None), now)
    change = TicketChange(ticket=updated, expected_version=ticket.version)
    change.activities.append(
        activity.record(
            ticket.id,
            actor.id,
            ActivityType.ESCALATE,
            activity.describe_escalation(target, reason_text),
            now,
            old_value=ticket.level.code,
            new_value=target.code,
        )
    )
    if ticket.assignee_id is not None:
        change.notifications.append(
            _intent(
                NotificationKind.UNASSIGNED,
                updated,
                Recipient.agent(ticket.assignee_id),
                actor.id,
                reason="escalated",
                level=target.code,
            )
        )
    return change
