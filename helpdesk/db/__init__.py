"""Database models and utilities."""

from .models import (
    AppSettingTable,
    AttachmentTable,
    CategoryTable,
    SLAConfigTable,
    SupportLevelTable,
    TicketActivityTable,
    TicketNoteTable,
    TicketReplyTable,
    TicketTable,
    UserTable,
)

__all__ = [
    "AppSettingTable",
    "AttachmentTable",
    "CategoryTable",
    "SLAConfigTable",
    "SupportLevelTable",
    "TicketActivityTable",
    "TicketNoteTable",
    "TicketReplyTable",
    "TicketTable",
    "UserTable",
]
