from __future__ import annotations

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, ConfigDict, Field

from helpdesk.api.errors import to_http_exception
from helpdesk.api.schemas import SupportLevelResponse
from helpdesk.dependencies.auth import AdminActor, CurrentActor
from helpdesk.dependencies.tickets import AgentServiceDep
from helpdesk.tickets.errors import TicketServiceError
from helpdesk.tickets.models import Role

router = APIRouter(prefix="/users", tags=["users"])


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    full_name: str
    role: Role
    is_active: bool
    level: SupportLevelResponse


class UserListResponse(BaseModel):
    users: list[UserResponse]
    total: int
    page: int
    limit: int


class UserTokenResponse(BaseModel):
    """User plus the plain API token, shown only when it is issued."""

    user: UserResponse
    api_token: str | None = None


class UserCreateRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    role: str = Field(..., min_length=1)
    level_id: str = Field(..., min_length=1)
    full_name: str | None = Field(default=None, max_length=255)


class UserUpdateRequest(BaseModel):
    email: str | None = Field(default=None, min_length=3, max_length=255)
    full_name: str | None = Field(default=None, max_length=255)
    role: str | None = None
    level_id: str | None = None
    is_active: bool | None = None
    regenerate_token: bool = False


@router.get("", response_model=UserListResponse)
async def list_users(
    service: AgentServiceDep,
    actor: AdminActor,
    role: Role | None = Query(default=None),
    level_id: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> UserListResponse:
    try:
        users, total = await service.list_users(
            actor, role=role, level_id=level_id, page=page, limit=limit
        )
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return UserListResponse(
        users=[UserResponse.model_validate(user) for user in users],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/agents", response_model=list[UserResponse])
async def list_agents(service: AgentServiceDep, actor: CurrentActor) -> list[UserResponse]:
    agents = await service.list_agents(actor)
    return [UserResponse.model_validate(agent) for agent in agents]


@router.post("", response_model=UserTokenResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreateRequest,
    service: AgentServiceDep,
    actor: AdminActor,
) -> UserTokenResponse:
    try:
        user, token = await service.create_user(
            actor,
            email=payload.email,
            role=payload.role,
            level_id=payload.level_id,
            full_name=payload.full_name,
        )
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return UserTokenResponse(user=UserResponse.model_validate(user), api_token=token)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, service: AgentServiceDep, actor: AdminActor) -> UserResponse:
    try:
        user = await service.get_user(actor, user_id)
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return UserResponse.model_validate(user)


@router.put("/{user_id}", response_model=UserTokenResponse)
async def update_user(
    user_id: str,
    payload: UserUpdateRequest,
    service: AgentServiceDep,
    actor: AdminActor,
) -> UserTokenResponse:
    try:
        user, token = await service.update_user(
            actor,
            user_id,
            email=payload.email,
            full_name=payload.full_name,
            role=payload.role,
            level_id=payload.level_id,
            is_active=payload.is_active,
            regenerate_token=payload.regenerate_token,
        )
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return UserTokenResponse(user=UserResponse.model_validate(user), api_token=token)


@router.delete("/{user_id}", response_model=UserResponse)
async def deactivate_user(user_id: str, service: AgentServiceDep, actor: AdminActor) -> UserResponse:
    try:
        user = await service.deactivate_user(actor, user_id)
    except TicketServiceError as exc:
        raise to_http_exception(exc) from exc
    return UserResponse.model_validate(user)
