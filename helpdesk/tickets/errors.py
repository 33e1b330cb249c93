from __future__ import annotations

from enum import Enum


class DeniedAction(str, Enum):
    """Action an access check was evaluating when it failed."""

    VIEW = "view"
    MUTATE = "mutate"
    REPLY = "reply"
    ASSIGN = "assign"
    ESCALATE = "escalate"
    CREATE = "create"
    ADMIN = "admin"


class TicketServiceError(RuntimeError):
    """Base error for ticket service issues."""


class NotFoundError(TicketServiceError):
    """Raised when a ticket, level, category or actor could not be located."""


class PermissionDeniedError(TicketServiceError):
    """Raised when the access evaluator refuses an action."""

    def __init__(self, action: DeniedAction, message: str = "Forbidden") -> None:
        super().__init__(message)
        self.action = action


class InvalidTicketError(TicketServiceError):
    """Raised when required fields are missing or malformed."""


class TerminalLevelError(TicketServiceError):
    """Raised when escalating a ticket that already sits at the highest level."""


class ConflictError(TicketServiceError):
    """Raised on uniqueness violations and lost concurrent updates."""


class DuplicateTicketNumberError(ConflictError):
    """Raised when an insert loses the race for a ticket number."""
