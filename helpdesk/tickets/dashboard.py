"""Dashboard statistics for the signed-in agent, plus global figures for admins."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from . import access
from .models import Actor, Role, Ticket, TicketActivity
from .numbering import local_day_bounds
from .repository import TicketRepository
from .state import TicketPriority, TicketSource, TicketStatus

logger = logging.getLogger(__name__)

ACTIVE_STATUSES: tuple[TicketStatus, ...] = (
    TicketStatus.OPEN,
    TicketStatus.IN_PROGRESS,
    TicketStatus.PENDING,
)

PRIORITY_LABELS: dict[TicketPriority, str] = {
    TicketPriority.LOW: "Rendah",
    TicketPriority.NORMAL: "Normal",
    TicketPriority.HIGH: "Tinggi",
    TicketPriority.URGENT: "Mendesak",
}

SOURCE_LABELS: dict[TicketSource, str] = {
    TicketSource.PHONE: "Phone",
    TicketSource.EMAIL: "Email",
    TicketSource.WEB: "Web",
    TicketSource.WALK_IN: "Walk-in",
}

TREND_DAYS = 7
URGENT_LIMIT = 5
OVERDUE_LIMIT = 5
RECENT_LIMIT = 10


@dataclass(slots=True)
class AgentStats:
    open: int
    in_progress: int
    pending: int
    resolved_today: int


@dataclass(slots=True)
class ActivityFeedItem:
    activity: TicketActivity
    ticket_number: str
    subject: str


@dataclass(slots=True)
class GlobalStats:
    total: int
    open: int
    in_progress: int
    pending: int
    resolved: int
    closed: int
    unassigned: int
    overdue: int


@dataclass(slots=True)
class DayCount:
    day: date
    created: int = 0
    resolved: int = 0


@dataclass(slots=True)
class CategoryCount:
    category_id: str
    name: str
    color: str | None
    count: int


@dataclass(slots=True)
class LabeledCount:
    key: str
    label: str
    count: int


@dataclass(slots=True)
class ChartData:
    tickets_by_day: list[DayCount]
    tickets_by_category: list[CategoryCount]
    tickets_by_priority: list[LabeledCount]
    tickets_by_source: list[LabeledCount]


@dataclass(slots=True)
class AgentPerformance:
    agent_id: str
    agent_name: str
    agent_email: str
    level_code: str
    level_name: str
    open_count: int = 0
    in_progress_count: int = 0
    resolved_count: int = 0
    avg_resolution_hours: float | None = None


@dataclass(slots=True)
class DashboardStats:
    my_stats: AgentStats
    urgent_tickets: list[Ticket]
    overdue_tickets: list[Ticket]
    recent_tickets: list[Ticket]
    recent_activities: list[ActivityFeedItem]
    is_admin: bool
    generated_at: datetime
    global_stats: GlobalStats | None = None
    chart_data: ChartData | None = None
    team_performance: list[AgentPerformance] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DashboardService:
    """Builds the dashboard payload.

    Ticket lists and the activity feed honour the caller's visibility scope.
    Day boundaries ("resolved today", the seven day trend) follow the
    configured business timezone.
    """

    def __init__(
        self,
        repository: TicketRepository,
        *,
        timezone_name: str = "UTC",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._timezone = timezone_name
        self._clock = clock or _utcnow

    async def get_stats(self, actor: Actor) -> DashboardStats:
        now = self._clock()
        scope = access.visibility_scope(actor)
        _, today_start, today_end = local_day_bounds(now, self._timezone)

        my_stats = AgentStats(
            open=await self._repository.count_tickets(
                statuses=[TicketStatus.OPEN], assignee_id=actor.id
            ),
            in_progress=await self._repository.count_tickets(
                statuses=[TicketStatus.IN_PROGRESS], assignee_id=actor.id
            ),
            pending=await self._repository.count_tickets(
                statuses=[TicketStatus.PENDING], assignee_id=actor.id
            ),
            resolved_today=await self._repository.count_tickets(
                statuses=[TicketStatus.RESOLVED],
                assignee_id=actor.id,
                resolved_between=(today_start, today_end),
            ),
        )
        urgent = await self._repository.dashboard_tickets(
            scope,
            statuses=ACTIVE_STATUSES,
            priorities=[TicketPriority.HIGH, TicketPriority.URGENT],
            order="urgency",
            limit=URGENT_LIMIT,
        )
        overdue = await self._repository.dashboard_tickets(
            scope, statuses=ACTIVE_STATUSES, due_before=now, order="due", limit=OVERDUE_LIMIT
        )
        recent = await self._repository.dashboard_tickets(
            scope, statuses=ACTIVE_STATUSES, order="recent", limit=RECENT_LIMIT
        )
        activities = [
            ActivityFeedItem(activity=activity, ticket_number=number, subject=subject)
            for activity, number, subject in await self._repository.recent_activities(
                scope, limit=RECENT_LIMIT
            )
        ]

        stats = DashboardStats(
            my_stats=my_stats,
            urgent_tickets=urgent,
            overdue_tickets=overdue,
            recent_tickets=recent,
            recent_activities=activities,
            is_admin=actor.is_admin,
            generated_at=now,
        )
        if actor.is_admin:
            stats.global_stats = await self._global_stats(now)
            stats.chart_data = await self._chart_data(now)
            stats.team_performance = await self._team_performance()
        logger.debug("Dashboard computed for %s (admin=%s)", actor.id, actor.is_admin)
        return stats

    async def _global_stats(self, now: datetime) -> GlobalStats:
        by_status = await self._repository.count_tickets_by("status")
        return GlobalStats(
            total=sum(by_status.values()),
            open=by_status.get(TicketStatus.OPEN.value, 0),
            in_progress=by_status.get(TicketStatus.IN_PROGRESS.value, 0),
            pending=by_status.get(TicketStatus.PENDING.value, 0),
            resolved=by_status.get(TicketStatus.RESOLVED.value, 0),
            closed=by_status.get(TicketStatus.CLOSED.value, 0),
            unassigned=await self._repository.count_tickets(
                statuses=ACTIVE_STATUSES, unassigned=True
            ),
            overdue=await self._repository.count_tickets(
                statuses=ACTIVE_STATUSES, due_before=now
            ),
        )

    async def _chart_data(self, now: datetime) -> ChartData:
        by_priority = await self._repository.count_tickets_by("priority")
        by_source = await self._repository.count_tickets_by("source")
        by_category = await self._repository.count_tickets_by("category_id")
        categories = await self._repository.list_categories(active_only=True)
        return ChartData(
            tickets_by_day=await self._tickets_by_day(now),
            tickets_by_category=[
                CategoryCount(
                    category_id=category.id,
                    name=category.name,
                    color=category.color,
                    count=by_category.get(category.id, 0),
                )
                for category in categories
            ],
            tickets_by_priority=[
                LabeledCount(key=priority.value, label=label, count=by_priority.get(priority.value, 0))
                for priority, label in PRIORITY_LABELS.items()
            ],
            tickets_by_source=[
                LabeledCount(key=source.value, label=label, count=by_source.get(source.value, 0))
                for source, label in SOURCE_LABELS.items()
            ],
        )

    async def _tickets_by_day(self, now: datetime) -> list[DayCount]:
        zone = ZoneInfo(self._timezone)
        today = now.astimezone(zone).date()
        days = [DayCount(day=today - timedelta(days=offset)) for offset in range(TREND_DAYS - 1, -1, -1)]
        buckets = {entry.day: entry for entry in days}
        window_start = datetime.combine(days[0].day, time.min, tzinfo=zone).astimezone(timezone.utc)

        for created_at, resolved_at in await self._repository.ticket_timestamps_since(window_start):
            created_day = buckets.get(created_at.astimezone(zone).date())
            if created_day is not None:
                created_day.created += 1
            if resolved_at is not None:
                resolved_day = buckets.get(resolved_at.astimezone(zone).date())
                if resolved_day is not None:
                    resolved_day.resolved += 1
        return days

    async def _team_performance(self) -> list[AgentPerformance]:
        agents, _ = await self._repository.list_actors(roles=[Role.AGENT])
        rows: dict[str, AgentPerformance] = {
            agent.id: AgentPerformance(
                agent_id=agent.id,
                agent_name=agent.display_name,
                agent_email=agent.email,
                level_code=agent.level.code,
                level_name=agent.level.name,
            )
            for agent in sorted(agents, key=lambda agent: agent.display_name.lower())
        }
        resolution_hours: dict[str, list[float]] = {}
        for assignee_id, status, created_at, resolved_at in await self._repository.assigned_ticket_stats():
            row = rows.get(assignee_id)
            if row is None:
                continue
            if status == TicketStatus.OPEN:
                row.open_count += 1
            elif status == TicketStatus.IN_PROGRESS:
                row.in_progress_count += 1
            elif status in (TicketStatus.RESOLVED, TicketStatus.CLOSED):
                row.resolved_count += 1
            if resolved_at is not None:
                hours = (resolved_at - created_at).total_seconds() / 3600
                resolution_hours.setdefault(assignee_id, []).append(hours)

        for agent_id, hours in resolution_hours.items():
            rows[agent_id].avg_resolution_hours = round(sum(hours) / len(hours), 1)
        return list(rows.values())
