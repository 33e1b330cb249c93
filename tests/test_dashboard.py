from __future__ import annotations

from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from helpdesk.dependencies import auth as auth_deps
from helpdesk.dependencies import tickets as ticket_deps
from helpdesk.main import create_app
from helpdesk.tickets import lifecycle
from helpdesk.tickets.dashboard import AgentStats, DashboardService, DashboardStats
from helpdesk.tickets.lifecycle import TicketDraft, TicketPatch
from helpdesk.tickets.models import Category, Role, SLAConfig
from helpdesk.tickets.state import TicketPriority, TicketStatus

from conftest import NOW, make_actor, make_ticket


@pytest_asyncio.fixture
async def seeded(repository, levels):
    for level in levels.values():
        await repository.save_level(level)
    await repository.add_category(
        Category(id="category-1", name="Teknis", slug="teknis", color="#EF4444")
    )
    await repository.add_category(
        Category(id="category-2", name="Arsip", slug="arsip", is_active=False)
    )
    await repository.save_sla_config(
        SLAConfig(id="sla-high", priority=TicketPriority.HIGH, duration_hrs=8)
    )
    actors = {
        "agent": make_actor(levels["L1"], actor_id="agent-l1", full_name="Agent Satu"),
        "admin": make_actor(levels["L3"], actor_id="admin-1", role=Role.ADMIN, full_name="Admin"),
    }
    for actor in actors.values():
        await repository.add_actor(actor, token_hash=f"hash-{actor.id}")
    return actors


async def _open(repository, levels, creator, number, *, created_at, priority, assignee_id=None):
    change = lifecycle.open_ticket(
        TicketDraft(
            subject=f"Masalah {number}",
            description="Detail masalah",
            category_id="category-1",
            level_id=levels["L1"].id,
            customer_name="Rina",
            customer_email="rina@example.com",
            priority=priority,
            assignee_id=assignee_id,
        ),
        creator,
        ticket_number=number,
        level=levels["L1"],
        sla_configs=await repository.list_sla_configs(),
        now=created_at,
    )
    await repository.create_ticket(change)
    return change.ticket


async def _set_status(repository, ticket, actor, status, *, now):
    change = lifecycle.apply_update(ticket, actor, TicketPatch(status=status), now=now)
    await repository.save_change(change)
    return change.ticket


@pytest_asyncio.fixture
async def tickets(repository, levels, seeded):
    admin = seeded["admin"]
    agent = seeded["agent"]
    urgent = await _open(
        repository, levels, admin, "TKT-24120001",
        created_at=NOW - timedelta(hours=2), priority=TicketPriority.URGENT, assignee_id=agent.id,
    )
    late = await _open(
        repository, levels, admin, "TKT-24120002",
        created_at=NOW - timedelta(days=3), priority=TicketPriority.HIGH, assignee_id=agent.id,
    )
    late = await _set_status(
        repository, late, agent, TicketStatus.IN_PROGRESS, now=NOW - timedelta(days=2)
    )
    solved = await _open(
        repository, levels, admin, "TKT-24120003",
        created_at=NOW - timedelta(days=1), priority=TicketPriority.NORMAL, assignee_id=agent.id,
    )
    solved = await _set_status(
        repository, solved, agent, TicketStatus.RESOLVED, now=NOW - timedelta(hours=1)
    )
    backlog = await _open(
        repository, levels, admin, "TKT-24120004",
        created_at=NOW - timedelta(days=10), priority=TicketPriority.LOW,
    )
    return {"urgent": urgent, "late": late, "solved": solved, "backlog": backlog}


@pytest.fixture
def service(repository):
    return DashboardService(repository, clock=lambda: NOW)


@pytest.mark.asyncio
async def test_agent_dashboard_is_scoped_to_own_tickets(service, seeded, tickets):
    stats = await service.get_stats(seeded["agent"])

    assert stats.my_stats == AgentStats(open=1, in_progress=1, pending=0, resolved_today=1)
    assert [t.ticket_number for t in stats.urgent_tickets] == ["TKT-24120001", "TKT-24120002"]
    assert [t.ticket_number for t in stats.overdue_tickets] == ["TKT-24120002"]
    assert [t.ticket_number for t in stats.recent_tickets] == ["TKT-24120001", "TKT-24120002"]
    assert stats.recent_activities[0].ticket_number == "TKT-24120003"
    assert {item.ticket_number for item in stats.recent_activities} <= {
        "TKT-24120001",
        "TKT-24120002",
        "TKT-24120003",
    }
    assert stats.is_admin is False
    assert stats.global_stats is None
    assert stats.chart_data is None
    assert stats.team_performance == []


@pytest.mark.asyncio
async def test_admin_dashboard_adds_global_figures(service, seeded, tickets):
    stats = await service.get_stats(seeded["admin"])

    assert stats.is_admin is True
    assert {t.ticket_number for t in stats.recent_tickets} == {
        "TKT-24120001",
        "TKT-24120002",
        "TKT-24120004",
    }
    global_stats = stats.global_stats
    assert global_stats.total == 4
    assert global_stats.open == 2
    assert global_stats.in_progress == 1
    assert global_stats.resolved == 1
    assert global_stats.unassigned == 1
    assert global_stats.overdue == 1

    charts = stats.chart_data
    assert [day.day for day in charts.tickets_by_day] == [
        date(2024, 12, 14) + timedelta(days=offset) for offset in range(7)
    ]
    by_day = {day.day: (day.created, day.resolved) for day in charts.tickets_by_day}
    assert by_day[date(2024, 12, 20)] == (1, 1)
    assert by_day[date(2024, 12, 19)] == (1, 0)
    assert by_day[date(2024, 12, 17)] == (1, 0)
    assert sum(created for created, _ in by_day.values()) == 3

    assert [(c.category_id, c.count) for c in charts.tickets_by_category] == [("category-1", 4)]
    assert [(p.label, p.count) for p in charts.tickets_by_priority] == [
        ("Rendah", 1),
        ("Normal", 1),
        ("Tinggi", 1),
        ("Mendesak", 1),
    ]
    assert {s.key: s.count for s in charts.tickets_by_source}["phone"] == 4

    [performance] = stats.team_performance
    assert performance.agent_id == "agent-l1"
    assert performance.open_count == 1
    assert performance.in_progress_count == 1
    assert performance.resolved_count == 1
    assert performance.avg_resolution_hours == 23.0


def test_dashboard_route_returns_stats(levels):
    app = create_app()
    actor = make_actor(levels["L1"], actor_id="agent-l1")
    service = AsyncMock()
    service.get_stats = AsyncMock(
        return_value=DashboardStats(
            my_stats=AgentStats(open=2, in_progress=0, pending=1, resolved_today=0),
            urgent_tickets=[make_ticket(levels["L1"], priority=TicketPriority.URGENT)],
            overdue_tickets=[],
            recent_tickets=[],
            recent_activities=[],
            is_admin=False,
            generated_at=NOW,
        )
    )

    async def override_service():
        return service

    app.dependency_overrides[ticket_deps.get_dashboard_service] = override_service
    app.dependency_overrides[auth_deps.get_current_actor] = lambda: actor
    try:
        response = TestClient(app).get("/dashboard/stats")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    body = response.json()
    assert body["my_stats"]["open"] == 2
    assert body["urgent_tickets"][0]["priority"] == "urgent"
    assert body["global_stats"] is None
    service.get_stats.assert_awaited_once_with(actor)
