"""Audit trail entries and their Indonesian descriptions.

Every mutating operation appends entries built here. The ``type`` field is the
structured code; ``description`` is the text the dashboard shows verbatim.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from .models import SupportLevel, TicketActivity
from .state import ActivityType, TicketPriority, TicketStatus

STATUS_LABELS: dict[TicketStatus, str] = {
    TicketStatus.OPEN: "Menunggu",
    TicketStatus.IN_PROGRESS: "Diproses",
    TicketStatus.PENDING: "Pending",
    TicketStatus.RESOLVED: "Selesai",
    TicketStatus.CLOSED: "Ditutup",
}

PRIORITY_LABELS: dict[TicketPriority, str] = {
    TicketPriority.LOW: "Rendah",
    TicketPriority.NORMAL: "Normal",
    TicketPriority.HIGH: "Tinggi",
    TicketPriority.URGENT: "Mendesak",
}

# Activity types the unauthenticated lookup page may show.
PUBLIC_ACTIVITY_TYPES: frozenset[ActivityType] = frozenset(
    {
        ActivityType.CREATED,
        ActivityType.STATUS_CHANGE,
        ActivityType.REPLY,
        ActivityType.ESCALATE,
        ActivityType.CUSTOMER_REPLY,
    }
)

NOBODY = "Tidak ada"


def record(
    ticket_id: str,
    author_id: str | None,
    type_: ActivityType,
    description: str,
    now: datetime,
    *,
    old_value: str | None = None,
    new_value: str | None = None,
) -> TicketActivity:
    return TicketActivity(
        id=str(uuid.uuid4()),
        ticket_id=ticket_id,
        author_id=author_id,
        type=type_,
        description=description,
        created_at=now,
        old_value=old_value,
        new_value=new_value,
    )


def describe_created() -> str:
    return "Tiket berhasil dibuat"


def describe_status_change(old: TicketStatus, new: TicketStatus) -> str:
    return f"Status diubah dari {STATUS_LABELS[old]} ke {STATUS_LABELS[new]}"


def describe_reopen(new: TicketStatus, *, by_customer: bool) -> str:
    reason = "balasan pelanggan" if by_customer else "balasan baru"
    return f"Status diubah ke {STATUS_LABELS[new]} ({reason})"


def describe_priority_change(old: TicketPriority, new: TicketPriority) -> str:
    return f"Prioritas diubah dari {PRIORITY_LABELS[old]} ke {PRIORITY_LABELS[new]}"


def describe_level_change(old: SupportLevel, new: SupportLevel) -> str:
    return f"Level diubah dari {old.code} - {old.name} ke {new.code} - {new.name}"


def describe_assignment(old_name: str | None, new_name: str | None) -> str:
    if new_name is None:
        return f"Tiket tidak lagi ditugaskan (sebelumnya {old_name or NOBODY})"
    if old_name is None:
        return f"Tiket ditugaskan ke {new_name}"
    return f"Tiket dialihkan dari {old_name} ke {new_name}"


def describe_auto_assignment(name: str) -> str:
    return f"Tiket otomatis diambil oleh {name} (via Balasan)"


def describe_escalation(level: SupportLevel, reason: str | None) -> str:
    base = f"Tiket dieskalasi ke {level.name} ({level.code})"
    if reason:
        return f"{base}: {reason}"
    return base


def describe_reply(attachment_count: int) -> str:
    if attachment_count > 0:
        return f"Balasan ditambahkan dengan {attachment_count} lampiran"
    return "Balasan ditambahkan"


def describe_note(attachment_count: int) -> str:
    if attachment_count > 0:
        return f"Catatan internal ditambahkan dengan {attachment_count} lampiran"
    return "Catatan internal ditambahkan"


def describe_customer_reply() -> str:
    return "Pelanggan memberikan balasan"


def describe_attachments_added(count: int) -> str:
    return f"{count} lampiran ditambahkan"
