from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from helpdesk.tickets.agents import AgentService
from helpdesk.tickets.dashboard import DashboardService
from helpdesk.tickets.reference import ReferenceDataService
from helpdesk.tickets.service import TicketService


async def get_ticket_service(request: Request) -> TicketService:
    service = getattr(request.app.state, "ticket_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Ticket service is not configured")
    return service


async def get_reference_service(request: Request) -> ReferenceDataService:
    service = getattr(request.app.state, "reference_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Reference data service is not configured")
    return service


async def get_agent_service(request: Request) -> AgentService:
    service = getattr(request.app.state, "agent_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Agent service is not configured")
    return service


async def get_dashboard_service(request: Request) -> DashboardService:
    service = getattr(request.app.state, "dashboard_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Dashboard service is not configured")
    return service


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
ReferenceServiceDep = Annotated[ReferenceDataService, Depends(get_reference_service)]
AgentServiceDep = Annotated[AgentService, Depends(get_agent_service)]
DashboardServiceDep = Annotated[DashboardService, Depends(get_dashboard_service)]
