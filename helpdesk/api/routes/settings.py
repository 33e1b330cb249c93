from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body
from pydantic import BaseModel, ConfigDict, Field

from helpdesk.api.errors import to_http_exception
from helpdesk.dependencies.auth import AdminActor, CurrentActor
from helpdesk.dependencies.tickets import ReferenceServiceDep
from helpdesk.tickets.errors import TicketServiceError
from helpdesk.tickets.state import TicketPriority

router = APIRouter(prefix="/settings", tags=["settings"])


class SLAConfigResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    priority: TicketPriority
    duration_hrs: int
    is_active: bool
    description: str | None


class SLAConfigUpdateRequest(BaseModel):
    duration_hrs: int = Field(..., ge=1)
    is_active: bool = True
    description: str | None = Field(default=None, max_length=500)


@router.get("/sla", response_model=list[SLAConfigResponse])
async def list_sla_configs(service: ReferenceServiceDep, _: CurrentActor) -> list[SLAConfigResponse]:
    configs = await service.list_sla_configs()
    return [SLAConfigResponse.model_validate(config) for config in configs]


@router.put("/sla/{priority}", response_model=SLAConfigResponse)
async def update_sla_config(
    priority: TicketPriority,
    payload: SLAConfigUpdateRequest,
    service: ReferenceServiceDep,
    actor: AdminActor,
) -> SLAConfigResponse:
    try:
        config = await service.update_sla_config(
            actor,
            priority,
            duration_hrs=payload.duration_hrs,
            is_active=payload.is_active,
            description=payload.description,
        )
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return SLAConfigResponse.model_validate(config)


@router.get("/general", response_model=dict[str, str])
async def get_general_settings(service: ReferenceServiceDep, _: CurrentActor) -> dict[str, str]:
    return await service.get_app_settings()


@router.put("/general", response_model=dict[str, str])
async def update_general_settings(
    service: ReferenceServiceDep,
    actor: AdminActor,
    payload: dict[str, Any] = Body(...),
) -> dict[str, str]:
    try:
        return await service.update_app_settings(actor, payload)
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
