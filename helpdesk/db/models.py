"""SQLModel table definitions for the helpdesk data layer."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    """Generate a random UUID string."""

    return str(uuid.uuid4())


def _flag(default: bool) -> Column:
    return Column(Boolean, nullable=False, default=default)


class SupportLevelTable(SQLModel, table=True):
    """Support tiers with their capability flags."""

    __tablename__ = "support_levels"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    code: str = Field(sa_column=Column(String(20), nullable=False, unique=True))
    name: str = Field(sa_column=Column(String(100), nullable=False))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    sort_order: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    is_active: bool = Field(default=True, sa_column=_flag(True))
    can_view_own_tickets: bool = Field(default=True, sa_column=_flag(True))
    can_view_team_tickets: bool = Field(default=False, sa_column=_flag(False))
    can_view_all_tickets: bool = Field(default=False, sa_column=_flag(False))
    can_create_ticket: bool = Field(default=True, sa_column=_flag(True))
    can_assign_ticket: bool = Field(default=False, sa_column=_flag(False))
    can_escalate_ticket: bool = Field(default=False, sa_column=_flag(False))
    can_resolve_ticket: bool = Field(default=True, sa_column=_flag(True))
    can_close_ticket: bool = Field(default=False, sa_column=_flag(False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class UserTable(SQLModel, table=True):
    """Agent and admin accounts; authentication is by hashed API token."""

    __tablename__ = "users"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    email: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
    full_name: str = Field(sa_column=Column(String(255), nullable=False))
    role: str = Field(sa_column=Column(String(20), nullable=False))
    level_id: str = Field(
        sa_column=Column(String(36), ForeignKey("support_levels.id"), nullable=False)
    )
    api_token_hash: str | None = Field(
        default=None, sa_column=Column(String(64), nullable=True, unique=True)
    )
    is_active: bool = Field(default=True, sa_column=_flag(True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class CategoryTable(SQLModel, table=True):
    """Ticket categories."""

    __tablename__ = "categories"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(100), nullable=False))
    slug: str = Field(sa_column=Column(String(120), nullable=False, unique=True))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    color: str | None = Field(default=None, sa_column=Column(String(20), nullable=True))
    is_active: bool = Field(default=True, sa_column=_flag(True))
    sort_order: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class SLAConfigTable(SQLModel, table=True):
    """One resolution target per priority."""

    __tablename__ = "sla_configs"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    priority: str = Field(sa_column=Column(String(20), nullable=False, unique=True))
    duration_hrs: int = Field(sa_column=Column(Integer, nullable=False))
    is_active: bool = Field(default=True, sa_column=_flag(True))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class AppSettingTable(SQLModel, table=True):
    """Global key/value settings; ``version`` increases on every write."""

    __tablename__ = "app_settings"

    key: str = Field(primary_key=True)
    value: str = Field(sa_column=Column(Text, nullable=False))
    version: int = Field(default=1, sa_column=Column(Integer, nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketTable(SQLModel, table=True):
    """Ticket records."""

    __tablename__ = "tickets"

    id: str = Field(primary_key=True, index=True)
    ticket_number: str = Field(sa_column=Column(String(32), nullable=False, unique=True, index=True))
    subject: str = Field(sa_column=Column(String(255), nullable=False))
    description: str = Field(sa_column=Column(Text, nullable=False))
    status: str = Field(sa_column=Column(String(20), nullable=False, index=True))
    priority: str = Field(sa_column=Column(String(20), nullable=False))
    source: str = Field(sa_column=Column(String(20), nullable=False))
    level_id: str = Field(
        sa_column=Column(String(36), ForeignKey("support_levels.id"), nullable=False)
    )
    category_id: str = Field(
        sa_column=Column(String(36), ForeignKey("categories.id"), nullable=False)
    )
    customer_name: str = Field(sa_column=Column(String(255), nullable=False))
    customer_email: str = Field(sa_column=Column(String(255), nullable=False, index=True))
    customer_phone: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))
    customer_company: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    created_by_id: str = Field(
        sa_column=Column(String(36), ForeignKey("users.id"), nullable=False)
    )
    assignee_id: str | None = Field(
        default=None, sa_column=Column(String(36), ForeignKey("users.id"), nullable=True)
    )
    due_date: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    resolved_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    closed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    version: int = Field(default=1, sa_column=Column(Integer, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketReplyTable(SQLModel, table=True):
    """Customer-visible messages on a ticket."""

    __tablename__ = "ticket_replies"

    id: str = Field(primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False)
    )
    author_id: str | None = Field(
        default=None, sa_column=Column(String(36), ForeignKey("users.id"), nullable=True)
    )
    message: str = Field(sa_column=Column(Text, nullable=False))
    is_customer: bool = Field(default=False, sa_column=_flag(False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketNoteTable(SQLModel, table=True):
    """Internal notes, never shown to customers."""

    __tablename__ = "ticket_notes"

    id: str = Field(primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False)
    )
    author_id: str = Field(
        sa_column=Column(String(36), ForeignKey("users.id"), nullable=False)
    )
    content: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class AttachmentTable(SQLModel, table=True):
    """File metadata owned by exactly one ticket, reply or note."""

    __tablename__ = "attachments"

    id: str = Field(primary_key=True, index=True)
    file_name: str = Field(sa_column=Column(String(255), nullable=False))
    file_key: str = Field(sa_column=Column(String(512), nullable=False))
    file_url: str = Field(sa_column=Column(String(1024), nullable=False))
    file_size: int = Field(sa_column=Column(Integer, nullable=False))
    file_type: str = Field(sa_column=Column(String(100), nullable=False))
    uploaded_by_id: str | None = Field(
        default=None, sa_column=Column(String(36), ForeignKey("users.id"), nullable=True)
    )
    ticket_id: str | None = Field(
        default=None,
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=True),
    )
    reply_id: str | None = Field(
        default=None,
        sa_column=Column(String(36), ForeignKey("ticket_replies.id", ondelete="CASCADE"), nullable=True),
    )
    note_id: str | None = Field(
        default=None,
        sa_column=Column(String(36), ForeignKey("ticket_notes.id", ondelete="CASCADE"), nullable=True),
    )
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketActivityTable(SQLModel, table=True):
    """Append-only audit trail of ticket changes."""

    __tablename__ = "ticket_activities"

    id: str = Field(primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    author_id: str | None = Field(
        default=None, sa_column=Column(String(36), ForeignKey("users.id"), nullable=True)
    )
    type: str = Field(sa_column=Column(String(30), nullable=False))
    description: str = Field(sa_column=Column(Text, nullable=False))
    old_value: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    new_value: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    position: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
