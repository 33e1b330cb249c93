from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from helpdesk.tickets.errors import (
    ConflictError,
    DuplicateTicketNumberError,
    InvalidTicketError,
    NotFoundError,
    PermissionDeniedError,
    TerminalLevelError,
)
from helpdesk.tickets.lifecycle import TicketDraft, TicketPatch
from helpdesk.tickets.models import Category, Role, SLAConfig, TicketAggregate
from helpdesk.tickets.notifications import NotificationKind
from helpdesk.tickets.repository import TicketFilters
from helpdesk.tickets.service import TicketService
from helpdesk.tickets.sla import SLABucket
from helpdesk.tickets.state import ActivityType, TicketPriority, TicketStatus

from conftest import NOW, make_actor, make_ticket


class DummyRepository:
    def __init__(self, levels):
        self.get_ticket = AsyncMock(return_value=None)
        self.get_ticket_by_number = AsyncMock(return_value=None)
        self.get_ticket_aggregate = AsyncMock(return_value=None)
        self.get_level = AsyncMock(side_effect=lambda level_id: next(
            (level for level in levels.values() if level.id == level_id), None
        ))
        self.list_levels = AsyncMock(return_value=list(levels.values()))
        self.get_category = AsyncMock(
            return_value=Category(id="category-1", name="Teknis", slug="teknis")
        )
        self.get_actor = AsyncMock(return_value=None)
        self.list_sla_configs = AsyncMock(
            return_value=[SLAConfig(id="sla", priority=TicketPriority.HIGH, duration_hrs=8)]
        )
        self.get_app_settings = AsyncMock(return_value={})
        self.count_tickets_created_between = AsyncMock(return_value=0)
        self.ticket_number_exists = AsyncMock(return_value=False)
        self.create_ticket = AsyncMock()
        self.save_change = AsyncMock()
        self.list_tickets = AsyncMock(return_value=([], 0))
        self.list_activities = AsyncMock(return_value=[])


@pytest.fixture
def repository(levels):
    return DummyRepository(levels)


@pytest.fixture
def dispatcher():
    return MagicMock()


@pytest.fixture
def service(repository, dispatcher):
    return TicketService(repository, dispatcher=dispatcher, clock=lambda: NOW)


def _draft(**overrides) -> TicketDraft:
    values = dict(
        subject="Pembayaran tidak tercatat",
        description="Transfer sudah dilakukan",
        category_id="category-1",
        level_id="level-l1",
        customer_name="Siti",
        customer_email="siti@example.com",
        priority=TicketPriority.HIGH,
    )
    values.update(overrides)
    return TicketDraft(**values)


@pytest.mark.asyncio
async def test_create_ticket_numbers_and_persists(service, repository, dispatcher, levels):
    repository.count_tickets_created_between = AsyncMock(return_value=4)
    actor = make_actor(levels["L1"])

    aggregate = await service.create_ticket(actor, _draft())

    assert aggregate.ticket.ticket_number == "TKT-24120005"
    assert aggregate.ticket.due_date == NOW + timedelta(hours=8)
    assert aggregate.activities[0].type == ActivityType.CREATED
    repository.create_ticket.assert_awaited_once()
    published = dispatcher.publish.call_args.args[0]
    assert published[0].kind == NotificationKind.TICKET_CREATED


@pytest.mark.asyncio
async def test_create_ticket_falls_back_to_random_suffix(service, repository, levels):
    repository.ticket_number_exists = AsyncMock(side_effect=[True, False])

    aggregate = await service.create_ticket(make_actor(levels["L1"]), _draft())

    number = aggregate.ticket.ticket_number
    assert number.startswith("TKT-2412")
    assert number != "TKT-24120001"
    assert len(number) == len("TKT-2412") + 3


@pytest.mark.asyncio
async def test_create_ticket_conflicts_after_second_collision(service, repository, levels):
    repository.ticket_number_exists = AsyncMock(return_value=True)

    with pytest.raises(ConflictError):
        await service.create_ticket(make_actor(levels["L1"]), _draft())
    repository.create_ticket.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_ticket_retries_with_fallback_after_insert_race(
    service, repository, dispatcher, levels
):
    repository.create_ticket = AsyncMock(
        side_effect=[DuplicateTicketNumberError("Ticket number TKT-24120001 is already taken"), None]
    )

    aggregate = await service.create_ticket(make_actor(levels["L1"]), _draft())

    number = aggregate.ticket.ticket_number
    assert number.startswith("TKT-2412")
    assert number != "TKT-24120001"
    assert repository.create_ticket.await_count == 2
    retried = repository.create_ticket.await_args_list[1].args[0]
    assert retried.ticket.ticket_number == number
    dispatcher.publish.assert_called_once()


@pytest.mark.asyncio
async def test_create_ticket_conflicts_when_retry_also_loses(service, repository, dispatcher, levels):
    repository.create_ticket = AsyncMock(
        side_effect=DuplicateTicketNumberError("Ticket number is already taken")
    )

    with pytest.raises(ConflictError):
        await service.create_ticket(make_actor(levels["L1"]), _draft())
    assert repository.create_ticket.await_count == 2
    dispatcher.publish.assert_not_called()


@pytest.mark.asyncio
async def test_create_ticket_rejects_unknown_level(service, levels):
    with pytest.raises(NotFoundError):
        await service.create_ticket(make_actor(levels["L1"]), _draft(level_id="missing"))


@pytest.mark.asyncio
async def test_escalate_walks_up_until_terminal(service, repository, levels):
    admin = make_actor(levels["L3"], role=Role.ADMIN)
    ticket = make_ticket(levels["L1"], assignee_id="agent-a")
    repository.get_ticket = AsyncMock(return_value=ticket)

    first = await service.escalate(admin, ticket.id)
    assert first.level.code == "L2"
    assert first.assignee_id is None

    repository.get_ticket = AsyncMock(return_value=first)
    second = await service.escalate(admin, ticket.id)
    assert second.level.code == "L3"

    repository.get_ticket = AsyncMock(return_value=second)
    with pytest.raises(TerminalLevelError):
        await service.escalate(admin, ticket.id)
    assert repository.save_change.await_count == 2


@pytest.mark.asyncio
async def test_reply_by_unrelated_agent_claims_ticket(service, repository, dispatcher, levels):
    agent = make_actor(levels["L1"], actor_id="agent-a", full_name="Agent A")
    ticket = make_ticket(levels["L1"])
    repository.get_ticket = AsyncMock(return_value=ticket)

    reply = await service.add_reply(agent, ticket.id, "Sedang dicek")

    change = repository.save_change.await_args.args[0]
    assert change.ticket.status == TicketStatus.IN_PROGRESS
    assert change.ticket.assignee_id == "agent-a"
    assert [entry.type for entry in change.activities] == [ActivityType.ASSIGN, ActivityType.REPLY]
    assert change.expected_version == ticket.version
    assert reply.author_id == "agent-a"
    dispatcher.publish.assert_called_once()


@pytest.mark.asyncio
async def test_notifications_are_not_published_when_save_fails(service, repository, dispatcher, levels):
    agent = make_actor(levels["L1"], actor_id="agent-a")
    repository.get_ticket = AsyncMock(return_value=make_ticket(levels["L1"], assignee_id="agent-a"))
    repository.save_change = AsyncMock(side_effect=ConflictError("stale"))

    with pytest.raises(ConflictError):
        await service.add_reply(agent, "ticket-1", "Halo")
    dispatcher.publish.assert_not_called()


@pytest.mark.asyncio
async def test_update_requires_ownership(service, repository, levels):
    agent = make_actor(levels["L1"], actor_id="agent-a")
    repository.get_ticket = AsyncMock(return_value=make_ticket(levels["L1"], assignee_id="agent-b"))

    with pytest.raises(PermissionDeniedError):
        await service.update_ticket(agent, "ticket-1", TicketPatch(status=TicketStatus.CLOSED))
    repository.save_change.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_missing_ticket_raises_not_found(service, levels):
    with pytest.raises(NotFoundError):
        await service.update_ticket(make_actor(levels["L1"]), "nope", TicketPatch(priority=TicketPriority.LOW))


@pytest.mark.asyncio
async def test_assign_requires_active_assignee(service, repository, levels):
    admin = make_actor(levels["L3"], role=Role.ADMIN)
    repository.get_ticket = AsyncMock(return_value=make_ticket(levels["L1"]))

    with pytest.raises(NotFoundError):
        await service.assign(admin, "ticket-1", "ghost")

    inactive = replace(make_actor(levels["L1"], actor_id="agent-x"), is_active=False)
    repository.get_actor = AsyncMock(return_value=inactive)
    with pytest.raises(InvalidTicketError):
        await service.assign(admin, "ticket-1", "agent-x")


@pytest.mark.asyncio
async def test_get_ticket_embeds_sla_with_fallback_from_settings(service, repository, levels):
    admin = make_actor(levels["L3"], role=Role.ADMIN)
    ticket = make_ticket(levels["L1"], created_at=NOW - timedelta(hours=20))
    repository.get_ticket_aggregate = AsyncMock(return_value=TicketAggregate(ticket=ticket))
    repository.get_app_settings = AsyncMock(return_value={"defaultSlaHours": "24"})

    detail = await service.get_ticket(admin, ticket.id)

    assert detail.sla.target_hours == 24
    assert detail.sla.uses_fallback_target
    assert detail.sla.bucket == SLABucket.WARNING


@pytest.mark.asyncio
async def test_list_tickets_resolves_assignee_shortcuts(service, repository, levels):
    agent = make_actor(levels["L2"], actor_id="agent-b")

    await service.list_tickets(agent, TicketFilters(), assignee="me")
    filters, scope = repository.list_tickets.await_args.args
    assert filters.assignee_id == "agent-b"
    assert scope.max_sort_order == 2

    await service.list_tickets(agent, TicketFilters(), assignee="unassigned")
    filters, _ = repository.list_tickets.await_args.args
    assert filters.unassigned


@pytest.mark.asyncio
async def test_public_lookup_normalizes_number_and_email(service, repository, levels):
    ticket = make_ticket(levels["L1"], ticket_number="TKT-24120001")
    repository.get_ticket_by_number = AsyncMock(return_value=ticket)
    repository.get_ticket_aggregate = AsyncMock(return_value=TicketAggregate(ticket=ticket))

    view = await service.lookup_public(" tkt-24120001 ", "BUDI@example.com")

    assert view.ticket_number == "TKT-24120001"
    repository.get_ticket_by_number.assert_awaited_with("TKT-24120001")

    with pytest.raises(NotFoundError):
        await service.lookup_public("TKT-24120001", "other@example.com")


@pytest.mark.asyncio
async def test_customer_reply_requires_matching_triple(service, repository, levels):
    ticket = make_ticket(levels["L1"], status=TicketStatus.CLOSED, closed_at=NOW)
    repository.get_ticket = AsyncMock(return_value=ticket)

    with pytest.raises(NotFoundError):
        await service.add_customer_reply(ticket.id, "TKT-99999999", "budi@example.com", "Halo")

    reply = await service.add_customer_reply(ticket.id, "tkt-24120001", "budi@example.com", "Halo")

    assert reply.is_customer
    change = repository.save_change.await_args.args[0]
    assert change.ticket.status == TicketStatus.OPEN
    assert change.ticket.closed_at == NOW
