from __future__ import annotations

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from helpdesk.api.errors import to_http_exception
from helpdesk.api.schemas import CapabilitiesModel, SupportLevelResponse
from helpdesk.dependencies.auth import AdminActor, CurrentActor
from helpdesk.dependencies.tickets import ReferenceServiceDep
from helpdesk.tickets.errors import TicketServiceError
from helpdesk.tickets.models import Capabilities, SupportLevel

router = APIRouter(prefix="/support-levels", tags=["support-levels"])


class SupportLevelCreateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=100)
    sort_order: int = Field(default=0, ge=0)
    description: str | None = Field(default=None, max_length=500)
    capabilities: CapabilitiesModel = Field(default_factory=CapabilitiesModel)


class SupportLevelUpdateRequest(BaseModel):
    code: str | None = Field(default=None, min_length=1, max_length=20)
    name: str | None = Field(default=None, min_length=1, max_length=100)
    sort_order: int | None = Field(default=None, ge=0)
    description: str | None = Field(default=None, max_length=500)
    is_active: bool | None = None
    capabilities: dict[str, bool] | None = None


def _to_response(level: SupportLevel) -> SupportLevelResponse:
    return SupportLevelResponse.model_validate(level)


@router.get("", response_model=list[SupportLevelResponse])
async def list_levels(
    service: ReferenceServiceDep,
    _: CurrentActor,
    include_inactive: bool = Query(default=False),
) -> list[SupportLevelResponse]:
    levels = await service.list_levels(active_only=not include_inactive)
    return [_to_response(level) for level in levels]


@router.get("/{level_id}", response_model=SupportLevelResponse)
async def get_level(level_id: str, service: ReferenceServiceDep, _: CurrentActor) -> SupportLevelResponse:
    try:
        level = await service.get_level(level_id)
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(level)


@router.post("", response_model=SupportLevelResponse, status_code=status.HTTP_201_CREATED)
async def create_level(
    payload: SupportLevelCreateRequest,
    service: ReferenceServiceDep,
    actor: AdminActor,
) -> SupportLevelResponse:
    try:
        level = await service.create_level(
            actor,
            code=payload.code,
            name=payload.name,
            sort_order=payload.sort_order,
            description=payload.description,
            capabilities=Capabilities(**payload.capabilities.model_dump()),
        )
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(level)


@router.put("/{level_id}", response_model=SupportLevelResponse)
async def update_level(
    level_id: str,
    payload: SupportLevelUpdateRequest,
    service: ReferenceServiceDep,
    actor: AdminActor,
) -> SupportLevelResponse:
    known = set(CapabilitiesModel.model_fields)
    capabilities = {
        key: value for key, value in (payload.capabilities or {}).items() if key in known
    }
    try:
        level = await service.update_level(
            actor,
            level_id,
            code=payload.code,
            name=payload.name,
            sort_order=payload.sort_order,
            description=payload.description,
            is_active=payload.is_active,
            capabilities=capabilities,
        )
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(level)


@router.delete("/{level_id}", response_model=SupportLevelResponse)
async def deactivate_level(
    level_id: str,
    service: ReferenceServiceDep,
    actor: AdminActor,
) -> SupportLevelResponse:
    try:
        level = await service.deactivate_level(actor, level_id)
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(level)
