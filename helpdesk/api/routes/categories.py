from __future__ import annotations

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, ConfigDict, Field

from helpdesk.api.errors import to_http_exception
from helpdesk.dependencies.auth import AdminActor, CurrentActor
from helpdesk.dependencies.tickets import ReferenceServiceDep
from helpdesk.tickets.errors import TicketServiceError

router = APIRouter(prefix="/categories", tags=["categories"])


class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    description: str | None
    color: str | None
    is_active: bool
    sort_order: int


class CategoryCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    color: str | None = Field(default=None, max_length=20)
    sort_order: int = Field(default=0, ge=0)


class CategoryUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    color: str | None = Field(default=None, max_length=20)
    is_active: bool | None = None
    sort_order: int | None = Field(default=None, ge=0)


@router.get("", response_model=list[CategoryResponse])
async def list_categories(
    service: ReferenceServiceDep,
    _: CurrentActor,
    include_inactive: bool = Query(default=False),
) -> list[CategoryResponse]:
    categories = await service.list_categories(active_only=not include_inactive)
    return [CategoryResponse.model_validate(category) for category in categories]


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreateRequest,
    service: ReferenceServiceDep,
    actor: AdminActor,
) -> CategoryResponse:
    try:
        category = await service.create_category(
            actor,
            name=payload.name,
            description=payload.description,
            color=payload.color,
            sort_order=payload.sort_order,
        )
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return CategoryResponse.model_validate(category)


@router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(
    category_id: str,
    service: ReferenceServiceDep,
    _: CurrentActor,
) -> CategoryResponse:
    try:
        category = await service.get_category(category_id)
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return CategoryResponse.model_validate(category)


@router.put("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: str,
    payload: CategoryUpdateRequest,
    service: ReferenceServiceDep,
    actor: AdminActor,
) -> CategoryResponse:
    try:
        category = await service.update_category(
            actor,
            category_id,
            name=payload.name,
            description=payload.description,
            color=payload.color,
            is_active=payload.is_active,
            sort_order=payload.sort_order,
        )
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return CategoryResponse.model_validate(category)


@router.delete("/{category_id}", response_model=CategoryResponse)
async def deactivate_category(
    category_id: str,
    service: ReferenceServiceDep,
    actor: AdminActor,
) -> CategoryResponse:
    try:
        category = await service.deactivate_category(actor, category_id)
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return CategoryResponse.model_validate(category)
