from __future__ import annotations

import uuid
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from helpdesk.tickets.models import Actor, Capabilities, Customer, Role, SupportLevel, Ticket
from helpdesk.tickets.repository import TicketRepository
from helpdesk.tickets.state import TicketPriority, TicketSource, TicketStatus

NOW = datetime(2024, 12, 20, 9, 0, tzinfo=timezone.utc)


def make_level(code: str, sort_order: int, **capabilities: bool) -> SupportLevel:
    return SupportLevel(
        id=f"level-{code.lower()}",
        code=code,
        name=f"Level {code}",
        sort_order=sort_order,
        capabilities=Capabilities(**capabilities),
    )


def make_actor(
    level: SupportLevel,
    *,
    actor_id: str | None = None,
    role: Role = Role.AGENT,
    full_name: str = "Agent",
) -> Actor:
    actor_id = actor_id or f"user-{uuid.uuid4().hex[:8]}"
    return Actor(
        id=actor_id,
        role=role,
        level=level,
        full_name=full_name,
        email=f"{actor_id}@tickethub.test",
    )


def make_ticket(
    level: SupportLevel,
    *,
    created_by_id: str = "creator",
    assignee_id: str | None = None,
    status: TicketStatus = TicketStatus.OPEN,
    priority: TicketPriority = TicketPriority.NORMAL,
    created_at: datetime = NOW,
    **overrides,
) -> Ticket:
    values = dict(
        id=f"ticket-{uuid.uuid4().hex[:8]}",
        ticket_number="TKT-24120001",
        subject="Tidak bisa login",
        description="Sudah reset password tapi tetap gagal.",
        status=status,
        priority=priority,
        source=TicketSource.PHONE,
        level=level,
        category_id="category-1",
        customer=Customer(name="Budi Santoso", email="budi@example.com"),
        created_by_id=created_by_id,
        created_at=created_at,
        updated_at=created_at,
        assignee_id=assignee_id,
    )
    values.update(overrides)
    return Ticket(**values)


@pytest.fixture
def levels() -> dict[str, SupportLevel]:
    return {
        "L1": make_level("L1", 1, can_escalate_ticket=True),
        "L2": make_level(
            "L2",
            2,
            can_view_team_tickets=True,
            can_assign_ticket=True,
            can_escalate_ticket=True,
        ),
        "L3": make_level(
            "L3",
            3,
            can_view_team_tickets=True,
            can_view_all_tickets=True,
            can_assign_ticket=True,
            can_escalate_ticket=True,
            can_close_ticket=True,
        ),
    }


@pytest_asyncio.fixture
async def repository():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    repo = TicketRepository(session_factory, engine=engine)
    await repo.ensure_schema()
    try:
        yield repo
    finally:
        await engine.dispose()
