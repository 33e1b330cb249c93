"""Ticket domain models and services."""

from .errors import (
    ConflictError,
    InvalidTicketError,
    NotFoundError,
    PermissionDeniedError,
    TerminalLevelError,
    TicketServiceError,
)
from .models import Actor, Capabilities, SupportLevel, Ticket, TicketActivity, TicketAggregate
from .reference import ReferenceDataService
from .repository import TicketFilters, TicketRepository
from .service import TicketDetail, TicketPage, TicketService
from .state import TicketPriority, TicketStateMachine, TicketStatus

__all__ = [
    "Actor",
    "Capabilities",
    "ConflictError",
    "InvalidTicketError",
    "NotFoundError",
    "PermissionDeniedError",
    "ReferenceDataService",
    "SupportLevel",
    "TerminalLevelError",
    "Ticket",
    "TicketActivity",
    "TicketAggregate",
    "TicketDetail",
    "TicketFilters",
    "TicketPage",
    "TicketPriority",
    "TicketRepository",
    "TicketService",
    "TicketServiceError",
    "TicketStateMachine",
    "TicketStatus",
]
