from fastapi import APIRouter

from helpdesk.dependencies.auth import CurrentActor

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public health probe")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/secure", summary="Authenticated health probe")
async def secure_ping(actor: CurrentActor) -> dict[str, str]:
    return {"status": "ok", "actor": actor.id, "role": actor.role.value}
