from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict

from helpdesk.api.schemas import ActivityResponse, TicketResponse
from helpdesk.dependencies.auth import CurrentActor
from helpdesk.dependencies.tickets import DashboardServiceDep

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


class _FromAttributes(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class AgentStatsResponse(_FromAttributes):
    open: int
    in_progress: int
    pending: int
    resolved_today: int


class ActivityFeedResponse(_FromAttributes):
    activity: ActivityResponse
    ticket_number: str
    subject: str


class GlobalStatsResponse(_FromAttributes):
    total: int
    open: int
    in_progress: int
    pending: int
    resolved: int
    closed: int
    unassigned: int
    overdue: int


class DayCountResponse(_FromAttributes):
    day: date
    created: int
    resolved: int


class CategoryCountResponse(_FromAttributes):
    category_id: str
    name: str
    color: str | None
    count: int


class LabeledCountResponse(_FromAttributes):
    key: str
    label: str
    count: int


class ChartDataResponse(_FromAttributes):
    tickets_by_day: list[DayCountResponse]
    tickets_by_category: list[CategoryCountResponse]
    tickets_by_priority: list[LabeledCountResponse]
    tickets_by_source: list[LabeledCountResponse]


class AgentPerformanceResponse(_FromAttributes):
    agent_id: str
    agent_name: str
    agent_email: str
    level_code: str
    level_name: str
    open_count: int
    in_progress_count: int
    resolved_count: int
    avg_resolution_hours: float | None


class DashboardStatsResponse(_FromAttributes):
    my_stats: AgentStatsResponse
    urgent_tickets: list[TicketResponse]
    overdue_tickets: list[TicketResponse]
    recent_tickets: list[TicketResponse]
    recent_activities: list[ActivityFeedResponse]
    is_admin: bool
    generated_at: datetime
    global_stats: GlobalStatsResponse | None = None
    chart_data: ChartDataResponse | None = None
    team_performance: list[AgentPerformanceResponse] = []


@router.get("/stats", response_model=DashboardStatsResponse)
async def dashboard_stats(service: DashboardServiceDep, actor: CurrentActor) -> DashboardStatsResponse:
    """Personal counters and ticket lists; admins also get global figures."""

    stats = await service.get_stats(actor)
    return DashboardStatsResponse.model_validate(stats)
