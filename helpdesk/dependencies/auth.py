from __future__ import annotations

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from helpdesk.tickets.models import Actor, Role
from helpdesk.tickets.reference import hash_token
from helpdesk.tickets.repository import TicketRepository

bearer_scheme = HTTPBearer(auto_error=False)


def get_repository(request: Request) -> TicketRepository:
    repository = getattr(request.app.state, "ticket_repository", None)
    if repository is None:
        raise HTTPException(status_code=503, detail="Ticket repository is not configured")
    return repository


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
) -> Actor:
    """Resolve the bearer token to an active agent or admin."""

    cached = getattr(request.state, "actor", None)
    if isinstance(cached, Actor):
        return cached

    if credentials is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    repository = get_repository(request)
    actor = await repository.get_actor_by_token_hash(hash_token(credentials.credentials))
    if actor is None or not actor.is_active:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    request.state.actor = actor
    return actor


def role_required(role: Role) -> Callable[[Actor], Actor]:
    """Dependency factory ensuring the current actor has the requested role."""

    async def dependency(actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
        if actor.role != role:
            raise HTTPException(status_code=403, detail={"error": "Forbidden", "action": "admin"})
        return actor

    return dependency


CurrentActor = Annotated[Actor, Depends(get_current_actor)]
AdminActor = Annotated[Actor, Depends(role_required(Role.ADMIN))]
