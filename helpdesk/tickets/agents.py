"""Agent and admin account management."""

from __future__ import annotations

import logging
import re
import secrets
import uuid
from dataclasses import replace

from . import access
from .errors import ConflictError, InvalidTicketError, NotFoundError
from .models import Actor, Role, SupportLevel
from .reference import hash_token
from .repository import TicketRepository

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _new_id() -> str:
    return str(uuid.uuid4())


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def _normalize_email(email: str | None) -> str:
    value = (email or "").strip().lower()
    if not _EMAIL_PATTERN.match(value):
        raise InvalidTicketError("Format email tidak valid")
    return value


def _parse_role(role: Role | str) -> Role:
    try:
        return Role(role)
    except ValueError as exc:
        raise InvalidTicketError("Role harus 'admin' atau 'agent'") from exc


class AgentService:
    """Creates, edits and lists the accounts that work tickets.

    Accounts are never hard deleted because tickets, replies and audit entries
    keep pointing at their authors; deactivation clears ``is_active`` and the
    API token stops authenticating.
    """

    def __init__(self, repository: TicketRepository) -> None:
        self._repository = repository

    async def _level(self, level_id: str) -> SupportLevel:
        level = await self._repository.get_level(level_id)
        if level is None or not level.is_active:
            raise InvalidTicketError("Level tidak ditemukan")
        return level

    async def _ensure_email_free(self, email: str, *, user_id: str | None = None) -> None:
        existing = await self._repository.get_actor_by_email(email)
        if existing is not None and existing.id != user_id:
            raise InvalidTicketError("Email sudah digunakan")

    async def list_users(
        self,
        actor: Actor,
        *,
        role: Role | None = None,
        level_id: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Actor], int]:
        access.ensure_admin(actor)
        page = max(1, page)
        limit = max(1, limit)
        return await self._repository.list_actors(
            roles=[role] if role is not None else None,
            level_id=level_id,
            offset=(page - 1) * limit,
            limit=limit,
        )

    async def list_agents(self, actor: Actor) -> list[Actor]:
        """Assignment candidates; open to every authenticated actor."""

        return await self._repository.list_assignable_actors()

    async def get_user(self, actor: Actor, user_id: str) -> Actor:
        access.ensure_admin(actor)
        user = await self._repository.get_actor(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def create_user(
        self,
        actor: Actor,
        *,
        email: str,
        role: Role | str,
        level_id: str,
        full_name: str | None = None,
        token: str | None = None,
    ) -> tuple[Actor, str]:
        """Create an account and return it with its plain API token.

        The token is only ever returned here; storage keeps its hash.
        """

        access.ensure_admin(actor)
        if not (email or "").strip() or not role or not level_id:
            raise InvalidTicketError("Email, role, dan level wajib diisi")
        normalized = _normalize_email(email)
        parsed_role = _parse_role(role)
        level = await self._level(level_id)
        await self._ensure_email_free(normalized)

        token = token or generate_token()
        user = Actor(
            id=_new_id(),
            role=parsed_role,
            level=level,
            full_name=(full_name or "").strip(),
            email=normalized,
        )
        try:
            await self._repository.add_actor(user, token_hash=hash_token(token))
        except ConflictError as exc:
            raise InvalidTicketError("Email sudah digunakan") from exc
        logger.info("User %s created as %s on level %s by %s", user.email, user.role.value, level.code, actor.id)
        return user, token

    async def update_user(
        self,
        actor: Actor,
        user_id: str,
        *,
        email: str | None = None,
        full_name: str | None = None,
        role: Role | str | None = None,
        level_id: str | None = None,
        is_active: bool | None = None,
        regenerate_token: bool = False,
    ) -> tuple[Actor, str | None]:
        """Partial update; returns the new plain token when one was issued."""

        access.ensure_admin(actor)
        current = await self.get_user(actor, user_id)
        updated = current
        if email is not None:
            normalized = _normalize_email(email)
            if normalized != current.email:
                await self._ensure_email_free(normalized, user_id=current.id)
                updated = replace(updated, email=normalized)
        if full_name is not None:
            updated = replace(updated, full_name=full_name.strip())
        if role is not None:
            updated = replace(updated, role=_parse_role(role))
        if level_id is not None and level_id != current.level.id:
            updated = replace(updated, level=await self._level(level_id))
        if is_active is not None:
            if not is_active and current.id == actor.id:
                raise InvalidTicketError("Tidak dapat menonaktifkan akun sendiri")
            updated = replace(updated, is_active=is_active)

        token = generate_token() if regenerate_token else None
        try:
            await self._repository.save_actor(
                updated, token_hash=hash_token(token) if token is not None else None
            )
        except ConflictError as exc:
            raise InvalidTicketError("Email sudah digunakan") from exc
        if token is not None:
            logger.info("API token of user %s rotated by %s", updated.email, actor.id)
        return updated, token

    async def deactivate_user(self, actor: Actor, user_id: str) -> Actor:
        """Soft delete; an admin cannot deactivate their own account."""

        access.ensure_admin(actor)
        if user_id == actor.id:
            raise InvalidTicketError("Tidak dapat menghapus akun sendiri")
        user = await self.get_user(actor, user_id)
        deactivated = replace(user, is_active=False)
        await self._repository.save_actor(deactivated)
        logger.info("User %s deactivated by %s", user.email, actor.id)
        return deactivated
