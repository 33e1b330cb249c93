"""Access rules deciding who may view or act on a ticket.

Admins bypass every check. Agents are gated by the capability flags of their
support level and by their relationship to the ticket (assignee or creator).
All functions are side-effect free; the ``ensure_*`` helpers raise
:class:`PermissionDeniedError` carrying the denied action.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .errors import DeniedAction, PermissionDeniedError
from .models import Actor, Ticket

logger = logging.getLogger(__name__)


def is_admin(actor: Actor) -> bool:
    return actor.is_admin


def _is_owner(actor: Actor, ticket: Ticket) -> bool:
    return actor.id == ticket.assignee_id or actor.id == ticket.created_by_id


def can_view(actor: Actor, ticket: Ticket) -> bool:
    if actor.is_admin:
        return True
    capabilities = actor.level.capabilities
    if capabilities.can_view_all_tickets:
        return True
    if capabilities.can_view_team_tickets and ticket.level.sort_order <= actor.level.sort_order:
        return True
    return _is_owner(actor, ticket)


def can_mutate(actor: Actor, ticket: Ticket) -> bool:
    """Status, priority, field edits, notes and attachments."""

    if actor.is_admin:
        return True
    return _is_owner(actor, ticket)


def can_reply(actor: Actor, ticket: Ticket) -> bool:
    """Replies are also allowed on unassigned tickets, which claims them."""

    return can_mutate(actor, ticket) or ticket.assignee_id is None


def can_assign(actor: Actor) -> bool:
    if actor.is_admin:
        return True
    return actor.level.capabilities.can_assign_ticket


def can_escalate(actor: Actor, ticket: Ticket) -> bool:
    if actor.is_admin:
        return True
    related = ticket.assignee_id is None or _is_owner(actor, ticket)
    return related and actor.level.capabilities.can_escalate_ticket


def can_create(actor: Actor) -> bool:
    if actor.is_admin:
        return True
    return actor.level.capabilities.can_create_ticket


def _deny(actor: Actor, action: DeniedAction, message: str) -> PermissionDeniedError:
    logger.debug("Denied %s for actor %s: %s", action.value, actor.id, message)
    return PermissionDeniedError(action, message)


def ensure_can_view(actor: Actor, ticket: Ticket) -> None:
    if not can_view(actor, ticket):
        raise _deny(actor, DeniedAction.VIEW, "Forbidden")


def ensure_can_mutate(actor: Actor, ticket: Ticket) -> None:
    if not can_mutate(actor, ticket):
        raise _deny(actor, DeniedAction.MUTATE, "Forbidden")


def ensure_can_reply(actor: Actor, ticket: Ticket) -> None:
    if not can_reply(actor, ticket):
        raise _deny(actor, DeniedAction.REPLY, "Forbidden - Ticket is assigned to another agent")


def ensure_can_assign(actor: Actor) -> None:
    if not can_assign(actor):
        raise _deny(actor, DeniedAction.ASSIGN, "Tidak memiliki izin untuk menugaskan tiket")


def ensure_can_escalate(actor: Actor, ticket: Ticket) -> None:
    if actor.is_admin:
        return
    if ticket.assignee_id is not None and not _is_owner(actor, ticket):
        raise _deny(actor, DeniedAction.ESCALATE, "Forbidden - Ticket is assigned to another agent")
    if not actor.level.capabilities.can_escalate_ticket:
        raise _deny(actor, DeniedAction.ESCALATE, "Tidak memiliki izin untuk eskalasi tiket")


def ensure_can_create(actor: Actor) -> None:
    if not can_create(actor):
        raise _deny(actor, DeniedAction.CREATE, "Tidak memiliki izin untuk membuat tiket")


def ensure_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise _deny(actor, DeniedAction.ADMIN, "Forbidden")


class ScopeKind(str, Enum):
    ALL = "all"
    TEAM = "team"
    OWN = "own"


@dataclass(frozen=True, slots=True)
class VisibilityScope:
    """Query-side rendition of :func:`can_view` for ticket listings.

    ``TEAM`` means: owned tickets OR tickets whose level sort order is at most
    ``max_sort_order``. ``OWN`` means owned tickets only.
    """

    kind: ScopeKind
    actor_id: str
    max_sort_order: int | None = None


def visibility_scope(actor: Actor) -> VisibilityScope:
    capabilities = actor.level.capabilities
    if actor.is_admin or capabilities.can_view_all_tickets:
        return VisibilityScope(kind=ScopeKind.ALL, actor_id=actor.id)
    if capabilities.can_view_team_tickets:
        return VisibilityScope(
            kind=ScopeKind.TEAM,
            actor_id=actor.id,
            max_sort_order=actor.level.sort_order,
        )
    return VisibilityScope(kind=ScopeKind.OWN, actor_id=actor.id)
