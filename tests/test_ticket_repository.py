from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest
import pytest_asyncio

from helpdesk.tickets import lifecycle
from helpdesk.tickets.access import visibility_scope
from helpdesk.tickets.errors import ConflictError, DuplicateTicketNumberError
from helpdesk.tickets.lifecycle import TicketDraft
from helpdesk.tickets.models import AttachmentInput, Category, Role, SLAConfig
from helpdesk.tickets.repository import TicketFilters
from helpdesk.tickets.service import TicketService
from helpdesk.tickets.state import ActivityType, TicketPriority, TicketStatus

from conftest import NOW, make_actor


@pytest_asyncio.fixture
async def seeded(repository, levels):
    for level in levels.values():
        await repository.save_level(level)
    await repository.add_category(Category(id="category-1", name="Teknis", slug="teknis"))
    await repository.save_sla_config(SLAConfig(id="sla-high", priority=TicketPriority.HIGH, duration_hrs=8))
    actors = {
        "l1": make_actor(levels["L1"], actor_id="agent-l1", full_name="Agent Satu"),
        "l2": make_actor(levels["L2"], actor_id="agent-l2", full_name="Agent Dua"),
        "admin": make_actor(levels["L3"], actor_id="admin-1", role=Role.ADMIN, full_name="Admin"),
    }
    for actor in actors.values():
        await repository.add_actor(actor, token_hash=f"hash-{actor.id}")
    return actors


async def _open(repository, levels, actor, *, number, level_code="L1", created_at=NOW, **overrides):
    values = dict(
        subject="Printer kantor mati",
        description="Tidak menyala sejak pagi",
        category_id="category-1",
        level_id=levels[level_code].id,
        customer_name="Rina",
        customer_email="rina@example.com",
    )
    values.update(overrides)
    change = lifecycle.open_ticket(
        TicketDraft(**values),
        actor,
        ticket_number=number,
        level=levels[level_code],
        sla_configs=await repository.list_sla_configs(),
        now=created_at,
    )
    await repository.create_ticket(change)
    return change.ticket


@pytest.mark.asyncio
async def test_create_and_fetch_ticket(repository, levels, seeded):
    created = await _open(
        repository, levels, seeded["l1"], number="TKT-24120001", priority=TicketPriority.HIGH
    )

    fetched = await repository.get_ticket(created.id)
    assert fetched is not None
    assert fetched.ticket_number == "TKT-24120001"
    assert fetched.level.code == "L1"
    assert fetched.due_date == NOW + timedelta(hours=8)
    assert fetched.created_at == NOW

    by_number = await repository.get_ticket_by_number("TKT-24120001")
    assert by_number is not None and by_number.id == created.id
    assert await repository.ticket_number_exists("TKT-24120001")
    assert not await repository.ticket_number_exists("TKT-24120002")


@pytest.mark.asyncio
async def test_duplicate_ticket_number_conflicts(repository, levels, seeded):
    await _open(repository, levels, seeded["l1"], number="TKT-24120001")

    with pytest.raises(ConflictError):
        await _open(repository, levels, seeded["l1"], number="TKT-24120001")


@pytest.mark.asyncio
async def test_stale_version_is_rejected(repository, levels, seeded):
    ticket = await _open(repository, levels, seeded["l1"], number="TKT-24120001")

    first = lifecycle.apply_note(ticket, seeded["l1"], "Cek kabel", [], now=NOW + timedelta(minutes=5))
    await repository.save_change(first)

    stale = lifecycle.apply_note(ticket, seeded["l1"], "Cek ulang", [], now=NOW + timedelta(minutes=6))
    with pytest.raises(ConflictError):
        await repository.save_change(stale)

    stored = await repository.get_ticket(ticket.id)
    assert stored.version == first.ticket.version


@pytest.mark.asyncio
async def test_aggregate_orders_children(repository, levels, seeded):
    admin = seeded["admin"]
    ticket = await _open(repository, levels, admin, number="TKT-24120001")
    attachment = AttachmentInput(
        file_name="log.txt",
        file_key="uploads/log.txt",
        file_url="https://files.example.com/log.txt",
        file_size=120,
        file_type="text/plain",
    )

    reply_change = lifecycle.apply_agent_reply(
        ticket, seeded["l1"], "Sedang kami cek", [attachment], now=NOW + timedelta(hours=1)
    )
    await repository.save_change(reply_change)
    note_change = lifecycle.apply_note(
        reply_change.ticket, seeded["l1"], "Butuh teknisi", [], now=NOW + timedelta(hours=2)
    )
    await repository.save_change(note_change)

    aggregate = await repository.get_ticket_aggregate(ticket.id)

    assert aggregate.ticket.assignee_id == "agent-l1"
    assert aggregate.ticket.status == TicketStatus.IN_PROGRESS
    assert [reply.message for reply in aggregate.replies] == ["Sedang kami cek"]
    assert aggregate.replies[0].attachments[0].file_name == "log.txt"
    assert aggregate.attachments == []
    assert [note.content for note in aggregate.notes] == ["Butuh teknisi"]
    assert [entry.type for entry in aggregate.activities] == [
        ActivityType.NOTE,
        ActivityType.REPLY,
        ActivityType.ASSIGN,
        ActivityType.CREATED,
    ]
    assert await repository.list_activities(ticket.id) == list(aggregate.activities)


@pytest.mark.asyncio
async def test_list_tickets_scope_search_and_priority_order(repository, levels, seeded):
    l1, l2, admin = seeded["l1"], seeded["l2"], seeded["admin"]
    low = await _open(
        repository, levels, admin, number="TKT-24120001", priority=TicketPriority.LOW, subject="Email lambat"
    )
    urgent = await _open(
        repository,
        levels,
        admin,
        number="TKT-24120002",
        priority=TicketPriority.URGENT,
        created_at=NOW + timedelta(minutes=1),
    )
    own = await _open(repository, levels, l1, number="TKT-24120003", created_at=NOW + timedelta(minutes=2))
    await _open(repository, levels, admin, number="TKT-24120004", level_code="L3")

    items, total = await repository.list_tickets(TicketFilters(), visibility_scope(admin))
    assert total == 4
    assert items[0].id == urgent.id
    assert items[-1].id == low.id

    items, total = await repository.list_tickets(TicketFilters(), visibility_scope(l1))
    assert total == 1
    assert items[0].id == own.id

    items, total = await repository.list_tickets(TicketFilters(), visibility_scope(l2))
    assert total == 3
    assert {ticket.level.code for ticket in items} == {"L1"}

    items, total = await repository.list_tickets(
        TicketFilters(search="EMAIL lambat"), visibility_scope(admin)
    )
    assert [ticket.id for ticket in items] == [low.id]

    items, total = await repository.list_tickets(TicketFilters(limit=2, page=2), visibility_scope(admin))
    assert total == 4
    assert len(items) == 2


@pytest.mark.asyncio
async def test_list_tickets_assignee_filters(repository, levels, seeded):
    admin = seeded["admin"]
    assigned = await _open(repository, levels, admin, number="TKT-24120001", assignee_id="agent-l1")
    unassigned = await _open(repository, levels, admin, number="TKT-24120002")

    items, _ = await repository.list_tickets(TicketFilters(unassigned=True), visibility_scope(admin))
    assert [ticket.id for ticket in items] == [unassigned.id]

    items, _ = await repository.list_tickets(TicketFilters(assignee_id="agent-l1"), visibility_scope(admin))
    assert [ticket.id for ticket in items] == [assigned.id]


@pytest.mark.asyncio
async def test_count_tickets_created_between(repository, levels, seeded):
    await _open(repository, levels, seeded["admin"], number="TKT-24120001")
    await _open(repository, levels, seeded["admin"], number="TKT-24120002", created_at=NOW + timedelta(days=1))

    assert await repository.count_tickets_created_between(NOW - timedelta(hours=9), NOW + timedelta(hours=15)) == 1


@pytest.mark.asyncio
async def test_actor_lookup_by_token_and_level_usage(repository, levels, seeded):
    actor = await repository.get_actor_by_token_hash("hash-agent-l2")
    assert actor is not None
    assert actor.id == "agent-l2"
    assert actor.level.capabilities.can_assign_ticket

    assert await repository.count_active_users_for_level(levels["L1"].id) == 1
    assert await repository.get_actor_by_email("AGENT-L1@tickethub.test") is not None


@pytest.mark.asyncio
async def test_app_settings_versioned_upsert(repository):
    await repository.put_app_settings({"companyName": "Acme"})
    await repository.put_app_settings({"companyName": "Acme Corp", "timezone": "Asia/Jakarta"})

    assert await repository.get_app_settings() == {"companyName": "Acme Corp", "timezone": "Asia/Jakarta"}


@pytest.mark.asyncio
async def test_seed_defaults_only_runs_once(repository, levels):
    seeded = await repository.seed_defaults(
        levels=list(levels.values()),
        sla_configs=[SLAConfig(id="sla-low", priority=TicketPriority.LOW, duration_hrs=72)],
        categories=[Category(id="category-x", name="Lainnya", slug="lainnya")],
    )
    again = await repository.seed_defaults(levels=[], sla_configs=[], categories=[])

    assert seeded is True
    assert again is False
    assert [level.code for level in await repository.list_levels()] == ["L1", "L2", "L3"]


@pytest.mark.asyncio
async def test_inactive_levels_are_hidden_by_default(repository, levels):
    for level in levels.values():
        await repository.save_level(level)
    await repository.save_level(replace(levels["L2"], is_active=False))

    assert [level.code for level in await repository.list_levels()] == ["L1", "L3"]
    assert len(await repository.list_levels(active_only=False)) == 3
    assert await repository.find_active_level_by_sort_order(2) is None


@pytest.mark.asyncio
async def test_service_numbers_tickets_sequentially_within_a_day(repository, levels, seeded):
    service = TicketService(repository, clock=lambda: NOW)
    draft = TicketDraft(
        subject="Printer kantor mati",
        description="Tidak menyala sejak pagi",
        category_id="category-1",
        level_id=levels["L1"].id,
        customer_name="Rina",
        customer_email="rina@example.com",
    )

    numbers = []
    for _ in range(5):
        aggregate = await service.create_ticket(seeded["l1"], draft)
        numbers.append(aggregate.ticket.ticket_number)

    assert numbers == [f"TKT-2412{seq:04d}" for seq in range(1, 6)]
    for number in numbers:
        assert await repository.ticket_number_exists(number)


@pytest.mark.asyncio
async def test_duplicate_ticket_number_is_reported_as_number_race(repository, levels, seeded):
    await _open(repository, levels, seeded["l1"], number="TKT-24120001")

    with pytest.raises(DuplicateTicketNumberError):
        await _open(repository, levels, seeded["l1"], number="TKT-24120001")
