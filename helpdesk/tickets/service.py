from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Sequence

from helpdesk.core.app_settings import AppSettings
from helpdesk.core.logging import ticket_operation

from . import access, lifecycle
from .errors import (
    ConflictError,
    DuplicateTicketNumberError,
    InvalidTicketError,
    NotFoundError,
    TerminalLevelError,
)
from .escalation import next_level
from .lifecycle import TicketChange, TicketDraft, TicketPatch
from .models import (
    Actor,
    AttachmentInput,
    AttachmentRef,
    Ticket,
    TicketActivity,
    TicketAggregate,
    TicketNote,
    TicketReply,
)
from .notifications import NotificationDispatcher
from .numbering import DEFAULT_PREFIX, fallback_ticket_number, format_ticket_number, local_day_bounds
from .public import PublicTicketView, build_public_view, normalize_lookup
from .repository import TicketFilters, TicketRepository
from .sla import SLAStatus, evaluate_sla

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class TicketDetail:
    """Ticket aggregate with its SLA evaluation at read time."""

    aggregate: TicketAggregate
    sla: SLAStatus

    @property
    def ticket(self) -> Ticket:
        return self.aggregate.ticket


@dataclass(slots=True)
class TicketPage:
    items: Sequence[Ticket]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        if self.total == 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


class TicketService:
    """High level orchestration for ticket lifecycle operations.

    Every mutation loads the ticket, checks access, computes the change with
    the pure functions in :mod:`helpdesk.tickets.lifecycle`, persists it in one
    transaction and only then hands notification intents to the dispatcher.
    """

    def __init__(
        self,
        repository: TicketRepository,
        *,
        dispatcher: NotificationDispatcher | None = None,
        ticket_number_prefix: str = DEFAULT_PREFIX,
        timezone_name: str = "UTC",
        clock: Clock | None = None,
    ) -> None:
        self._repository = repository
        self._dispatcher = dispatcher
        self._prefix = ticket_number_prefix
        self._timezone = timezone_name
        self._clock = clock or _utcnow

    async def _load(self, ticket_id: str) -> Ticket:
        ticket = await self._repository.get_ticket(ticket_id)
        if ticket is None:
            raise NotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def _commit(self, change: TicketChange) -> None:
        await self._repository.save_change(change)
        self._publish(change)

    def _publish(self, change: TicketChange) -> None:
        if self._dispatcher is not None and change.notifications:
            self._dispatcher.publish(change.notifications)

    async def _fallback_sla_hours(self) -> int:
        stored = await self._repository.get_app_settings()
        return AppSettings.from_mapping(stored).default_sla_hours

    async def next_ticket_number(self, now: datetime) -> str:
        number, _ = await self._allocate_number(now)
        return number

    async def _allocate_number(self, now: datetime) -> tuple[str, bool]:
        """Daily sequence number, or the random fallback when it is taken."""

        local, start, end = local_day_bounds(now, self._timezone)
        created_today = await self._repository.count_tickets_created_between(start, end)
        candidate = format_ticket_number(local, created_today + 1, prefix=self._prefix)
        if not await self._repository.ticket_number_exists(candidate):
            return candidate, False

        logger.warning("Ticket number %s already taken, using random suffix", candidate)
        return await self._fallback_number(local), True

    async def _fallback_number(self, local: datetime) -> str:
        candidate = fallback_ticket_number(local, prefix=self._prefix)
        if await self._repository.ticket_number_exists(candidate):
            raise ConflictError(f"Could not allocate a unique ticket number for {local:%y%m}")
        return candidate

    async def create_ticket(self, actor: Actor, draft: TicketDraft) -> TicketAggregate:
        access.ensure_can_create(actor)
        draft.validate()

        level = await self._repository.get_level(draft.level_id)
        if level is None:
            raise NotFoundError(f"Support level {draft.level_id} not found")
        category = await self._repository.get_category(draft.category_id)
        if category is None:
            raise NotFoundError(f"Category {draft.category_id} not found")
        if draft.assignee_id is not None:
            assignee = await self._repository.get_actor(draft.assignee_id)
            if assignee is None or not assignee.is_active:
                raise NotFoundError(f"Assignee {draft.assignee_id} not found")

        now = self._clock()
        ticket_number, used_fallback = await self._allocate_number(now)
        with ticket_operation("tickets.create", ticket=ticket_number, actor=actor.id):
            sla_configs = await self._repository.list_sla_configs()
            change = lifecycle.open_ticket(
                draft,
                actor,
                ticket_number=ticket_number,
                level=level,
                sla_configs=sla_configs,
                now=now,
            )
            try:
                await self._repository.create_ticket(change)
            except DuplicateTicketNumberError:
                if used_fallback:
                    raise
                # Another request inserted the same sequence number first.
                logger.warning("Ticket number %s lost an insert race, retrying", ticket_number)
                local, _, _ = local_day_bounds(now, self._timezone)
                ticket_number = await self._fallback_number(local)
                change = lifecycle.open_ticket(
                    draft,
                    actor,
                    ticket_number=ticket_number,
                    level=level,
                    sla_configs=sla_configs,
                    now=now,
                )
                await self._repository.create_ticket(change)
            self._publish(change)
            logger.info("Ticket %s created at level %s", ticket_number, level.code)
        return TicketAggregate(
            ticket=change.ticket,
            activities=list(change.activities),
            attachments=list(change.attachments),
        )

    async def get_ticket(self, actor: Actor, ticket_id: str) -> TicketDetail:
        aggregate = await self._repository.get_ticket_aggregate(ticket_id)
        if aggregate is None:
            raise NotFoundError(f"Ticket {ticket_id} not found")
        access.ensure_can_view(actor, aggregate.ticket)
        fallback_hours = await self._fallback_sla_hours()
        sla = evaluate_sla(aggregate.ticket, self._clock(), fallback_hours=fallback_hours)
        return TicketDetail(aggregate=aggregate, sla=sla)

    async def list_tickets(
        self,
        actor: Actor,
        filters: TicketFilters | None = None,
        *,
        assignee: str | None = None,
    ) -> TicketPage:
        """List visible tickets; ``assignee`` accepts ``me``, ``unassigned`` or an id."""

        filters = filters or TicketFilters()
        if assignee == "me":
            filters.assignee_id = actor.id
        elif assignee == "unassigned":
            filters.unassigned = True
        elif assignee:
            filters.assignee_id = assignee
        scope = access.visibility_scope(actor)
        items, total = await self._repository.list_tickets(filters, scope)
        return TicketPage(items=items, total=total, page=max(1, filters.page), limit=max(1, filters.limit))

    async def update_ticket(self, actor: Actor, ticket_id: str, patch: TicketPatch) -> Ticket:
        ticket = await self._load(ticket_id)
        access.ensure_can_mutate(actor, ticket)

        new_level = None
        if patch.level_id is not None and patch.level_id != ticket.level.id:
            new_level = await self._repository.get_level(patch.level_id)
            if new_level is None:
                raise NotFoundError(f"Support level {patch.level_id} not found")
        if patch.category_id and patch.category_id != ticket.category_id:
            if await self._repository.get_category(patch.category_id) is None:
                raise NotFoundError(f"Category {patch.category_id} not found")

        with ticket_operation("tickets.update", ticket=ticket.ticket_number, actor=actor.id):
            change = lifecycle.apply_update(ticket, actor, patch, now=self._clock(), new_level=new_level)
            await self._commit(change)
        return change.ticket

    async def add_reply(
        self,
        actor: Actor,
        ticket_id: str,
        message: str,
        attachments: Sequence[AttachmentInput] = (),
    ) -> TicketReply:
        ticket = await self._load(ticket_id)
        access.ensure_can_reply(actor, ticket)
        with ticket_operation("tickets.reply", ticket=ticket.ticket_number, actor=actor.id):
            change = lifecycle.apply_agent_reply(ticket, actor, message, attachments, now=self._clock())
            await self._commit(change)
            if change.ticket.assignee_id != ticket.assignee_id:
                logger.info("Ticket %s claimed through a reply", ticket.ticket_number)
        return change.created_reply()

    async def add_note(
        self,
        actor: Actor,
        ticket_id: str,
        content: str,
        attachments: Sequence[AttachmentInput] = (),
    ) -> TicketNote:
        ticket = await self._load(ticket_id)
        access.ensure_can_mutate(actor, ticket)
        with ticket_operation("tickets.note", ticket=ticket.ticket_number, actor=actor.id):
            change = lifecycle.apply_note(ticket, actor, content, attachments, now=self._clock())
            await self._commit(change)
        return change.created_note()

    async def add_attachments(
        self,
        actor: Actor,
        ticket_id: str,
        attachments: Sequence[AttachmentInput],
    ) -> list[AttachmentRef]:
        ticket = await self._load(ticket_id)
        access.ensure_can_mutate(actor, ticket)
        with ticket_operation("tickets.attachments", ticket=ticket.ticket_number, actor=actor.id):
            change = lifecycle.apply_attachments(ticket, actor, attachments, now=self._clock())
            await self._commit(change)
        return list(change.attachments)

    async def assign(
        self,
        actor: Actor,
        ticket_id: str,
        assignee_id: str | None,
        *,
        note: str | None = None,
    ) -> Ticket:
        access.ensure_can_assign(actor)
        ticket = await self._load(ticket_id)

        new_assignee = None
        if assignee_id:
            new_assignee = await self._repository.get_actor(assignee_id)
            if new_assignee is None:
                raise NotFoundError(f"Assignee {assignee_id} not found")
            if not new_assignee.is_active:
                raise InvalidTicketError(f"Assignee {assignee_id} is not active")
        previous = None
        if ticket.assignee_id is not None:
            previous = await self._repository.get_actor(ticket.assignee_id)

        with ticket_operation("tickets.assign", ticket=ticket.ticket_number, actor=actor.id):
            change = lifecycle.apply_assignment(
                ticket,
                actor,
                new_assignee,
                previous_assignee=previous,
                note=note,
                now=self._clock(),
            )
            await self._commit(change)
            logger.info(
                "Ticket %s assigned from %s to %s",
                ticket.ticket_number,
                ticket.assignee_id,
                change.ticket.assignee_id,
            )
        return change.ticket

    async def escalate(self, actor: Actor, ticket_id: str, *, reason: str | None = None) -> Ticket:
        ticket = await self._load(ticket_id)
        access.ensure_can_escalate(actor, ticket)

        levels = await self._repository.list_levels(active_only=True)
        target = next_level(ticket.level.sort_order, levels)
        if target is None:
            raise TerminalLevelError(
                f"Ticket {ticket.ticket_number} is already at the highest support level"
            )

        with ticket_operation("tickets.escalate", ticket=ticket.ticket_number, actor=actor.id) as span:
            span.set_attribute("helpdesk.level", target.code)
            change = lifecycle.apply_escalation(ticket, actor, target, reason=reason, now=self._clock())
            await self._commit(change)
            logger.info(
                "Ticket %s escalated from %s to %s",
                ticket.ticket_number,
                ticket.level.code,
                target.code,
            )
        return change.ticket

    async def get_activity(self, actor: Actor, ticket_id: str) -> list[TicketActivity]:
        ticket = await self._load(ticket_id)
        access.ensure_can_view(actor, ticket)
        return await self._repository.list_activities(ticket_id)

    async def lookup_public(self, ticket_number: str, email: str) -> PublicTicketView:
        number, normalized_email = normalize_lookup(ticket_number, email)
        ticket = await self._repository.get_ticket_by_number(number)
        if ticket is None or ticket.customer.email != normalized_email:
            raise NotFoundError("Tiket tidak ditemukan")
        aggregate = await self._repository.get_ticket_aggregate(ticket.id)
        if aggregate is None:
            raise NotFoundError("Tiket tidak ditemukan")
        return build_public_view(aggregate)

    async def add_customer_reply(
        self,
        ticket_id: str,
        ticket_number: str,
        email: str,
        message: str,
        attachments: Sequence[AttachmentInput] = (),
    ) -> TicketReply:
        number, normalized_email = normalize_lookup(ticket_number, email)
        ticket = await self._repository.get_ticket(ticket_id)
        if (
            ticket is None
            or ticket.ticket_number != number
            or ticket.customer.email != normalized_email
        ):
            raise NotFoundError("Tiket tidak ditemukan")
        with ticket_operation("tickets.customer_reply", ticket=ticket.ticket_number):
            change = lifecycle.apply_customer_reply(ticket, message, attachments, now=self._clock())
            await self._commit(change)
        return change.created_reply()
