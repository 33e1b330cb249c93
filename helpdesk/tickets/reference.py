"""Admin-managed reference data: support levels, categories, SLA policy and
global application settings."""

from __future__ import annotations

import hashlib
import logging
import re
import unicodedata
import uuid
from dataclasses import replace
from typing import Any, Mapping

from helpdesk.core.app_settings import AppSettings, filter_updates, merge_with_defaults

from . import access
from .errors import ConflictError, InvalidTicketError, NotFoundError
from .models import Actor, Capabilities, Category, Role, SLAConfig, SupportLevel
from .repository import TicketRepository
from .state import TicketPriority

logger = logging.getLogger(__name__)

DEFAULT_LEVELS: tuple[SupportLevel, ...] = (
    SupportLevel(
        id="",
        code="L1",
        name="Support",
        sort_order=1,
        description="Handler pertama - masalah umum",
        capabilities=Capabilities(can_escalate_ticket=True),
    ),
    SupportLevel(
        id="",
        code="L2",
        name="Specialist",
        sort_order=2,
        description="Eskalasi - masalah kompleks",
        capabilities=Capabilities(
            can_view_team_tickets=True,
            can_assign_ticket=True,
            can_escalate_ticket=True,
        ),
    ),
    SupportLevel(
        id="",
        code="L3",
        name="Expert",
        sort_order=3,
        description="Spesialis teknis/bisnis",
        capabilities=Capabilities(
            can_view_team_tickets=True,
            can_view_all_tickets=True,
            can_assign_ticket=True,
            can_escalate_ticket=True,
            can_close_ticket=True,
        ),
    ),
)

DEFAULT_SLA_HOURS: dict[TicketPriority, int] = {
    TicketPriority.URGENT: 4,
    TicketPriority.HIGH: 8,
    TicketPriority.NORMAL: 24,
    TicketPriority.LOW: 72,
}

DEFAULT_CATEGORIES: tuple[tuple[str, str, str, str], ...] = (
    ("Akun & Akses", "akun-akses", "Masalah login, password, dan akses akun", "#3B82F6"),
    ("Pembayaran", "pembayaran", "Masalah pembayaran, invoice, dan billing", "#22C55E"),
    ("Teknis", "teknis", "Masalah teknis, bug, dan error sistem", "#EF4444"),
    ("Perubahan Data", "perubahan-data", "Permintaan perubahan atau update data", "#F97316"),
    ("Informasi", "informasi", "Pertanyaan umum dan permintaan informasi", "#6366F1"),
    ("Lainnya", "lainnya", "Kategori untuk tiket yang tidak termasuk kategori di atas", "#6B7280"),
)


def _new_id() -> str:
    return str(uuid.uuid4())


def hash_token(token: str) -> str:
    """SHA-256 hex digest under which API tokens are stored."""

    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def slugify(name: str) -> str:
    normalized = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug or "category"


class ReferenceDataService:
    def __init__(self, repository: TicketRepository) -> None:
        self._repository = repository

    # Support levels

    async def list_levels(self, *, active_only: bool = True) -> list[SupportLevel]:
        return await self._repository.list_levels(active_only=active_only)

    async def get_level(self, level_id: str) -> SupportLevel:
        level = await self._repository.get_level(level_id)
        if level is None:
            raise NotFoundError(f"Support level {level_id} not found")
        return level

    async def _check_unique(self, level: SupportLevel) -> None:
        same_code = await self._repository.get_level_by_code(level.code)
        if same_code is not None and same_code.id != level.id:
            raise ConflictError(f"Support level code {level.code} is already in use")
        if level.is_active:
            same_rank = await self._repository.find_active_level_by_sort_order(level.sort_order)
            if same_rank is not None and same_rank.id != level.id:
                raise ConflictError(
                    f"Sort order {level.sort_order} is already used by level {same_rank.code}"
                )

    async def create_level(
        self,
        actor: Actor,
        *,
        code: str,
        name: str,
        sort_order: int = 0,
        description: str | None = None,
        capabilities: Capabilities | None = None,
    ) -> SupportLevel:
        access.ensure_admin(actor)
        code = (code or "").strip()
        name = (name or "").strip()
        if not code or not name:
            raise InvalidTicketError("Code dan name wajib diisi")
        level = SupportLevel(
            id=_new_id(),
            code=code,
            name=name,
            sort_order=sort_order,
            description=description or None,
            capabilities=capabilities or Capabilities(),
        )
        await self._check_unique(level)
        await self._repository.save_level(level)
        logger.info("Support level %s created by %s", level.code, actor.id)
        return level

    async def update_level(
        self,
        actor: Actor,
        level_id: str,
        *,
        code: str | None = None,
        name: str | None = None,
        sort_order: int | None = None,
        description: str | None = None,
        is_active: bool | None = None,
        capabilities: Mapping[str, bool] | None = None,
    ) -> SupportLevel:
        access.ensure_admin(actor)
        current = await self.get_level(level_id)
        updated = current
        if code is not None and code.strip():
            updated = replace(updated, code=code.strip())
        if name is not None and name.strip():
            updated = replace(updated, name=name.strip())
        if sort_order is not None:
            updated = replace(updated, sort_order=sort_order)
        if description is not None:
            updated = replace(updated, description=description or None)
        if is_active is not None:
            if current.is_active and not is_active:
                await self._ensure_level_unused(current)
            updated = replace(updated, is_active=is_active)
        if capabilities:
            updated = replace(updated, capabilities=replace(current.capabilities, **dict(capabilities)))
        await self._check_unique(updated)
        await self._repository.save_level(updated)
        return updated

    async def _ensure_level_unused(self, level: SupportLevel) -> None:
        in_use = await self._repository.count_active_users_for_level(level.id)
        if in_use > 0:
            raise ConflictError(
                f"Level {level.code} masih digunakan oleh {in_use} user aktif"
            )

    async def deactivate_level(self, actor: Actor, level_id: str) -> SupportLevel:
        """Soft delete; refused while active users still sit on the level."""

        access.ensure_admin(actor)
        level = await self.get_level(level_id)
        await self._ensure_level_unused(level)
        deactivated = replace(level, is_active=False)
        await self._repository.save_level(deactivated)
        logger.info("Support level %s deactivated by %s", level.code, actor.id)
        return deactivated

    # Categories

    async def list_categories(self, *, active_only: bool = True) -> list[Category]:
        return await self._repository.list_categories(active_only=active_only)

    async def create_category(
        self,
        actor: Actor,
        *,
        name: str,
        description: str | None = None,
        color: str | None = None,
        sort_order: int = 0,
    ) -> Category:
        access.ensure_admin(actor)
        name = (name or "").strip()
        if not name:
            raise InvalidTicketError("Nama kategori wajib diisi")
        category = Category(
            id=_new_id(),
            name=name,
            slug=await self._unique_slug(name),
            description=description,
            color=color,
            sort_order=sort_order,
        )
        return await self._repository.add_category(category)

    async def get_category(self, category_id: str) -> Category:
        category = await self._repository.get_category(category_id)
        if category is None:
            raise NotFoundError(f"Category {category_id} not found")
        return category

    async def _unique_slug(self, name: str, *, exclude_id: str | None = None) -> str:
        base = slugify(name)
        slug = base
        suffix = 1
        while await self._repository.category_slug_exists(slug, exclude_id=exclude_id):
            suffix += 1
            slug = f"{base}-{suffix}"
        return slug

    async def update_category(
        self,
        actor: Actor,
        category_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        color: str | None = None,
        is_active: bool | None = None,
        sort_order: int | None = None,
    ) -> Category:
        """Partial update; a new name regenerates the slug."""

        access.ensure_admin(actor)
        current = await self.get_category(category_id)
        updated = current
        if name is not None:
            name = name.strip()
            if not name:
                raise InvalidTicketError("Nama kategori wajib diisi")
            if name != current.name:
                slug = await self._unique_slug(name, exclude_id=current.id)
                updated = replace(updated, name=name, slug=slug)
        if description is not None:
            updated = replace(updated, description=description or None)
        if color is not None:
            updated = replace(updated, color=color or None)
        if is_active is not None:
            updated = replace(updated, is_active=is_active)
        if sort_order is not None:
            updated = replace(updated, sort_order=sort_order)
        await self._repository.save_category(updated)
        return updated

    async def deactivate_category(self, actor: Actor, category_id: str) -> Category:
        """Soft delete; tickets keep pointing at the category."""

        access.ensure_admin(actor)
        category = await self.get_category(category_id)
        deactivated = replace(category, is_active=False)
        await self._repository.save_category(deactivated)
        logger.info("Category %s deactivated by %s", category.slug, actor.id)
        return deactivated

    # SLA policy

    async def list_sla_configs(self) -> list[SLAConfig]:
        return await self._repository.list_sla_configs()

    async def update_sla_config(
        self,
        actor: Actor,
        priority: TicketPriority,
        *,
        duration_hrs: int,
        is_active: bool = True,
        description: str | None = None,
    ) -> SLAConfig:
        access.ensure_admin(actor)
        if duration_hrs < 1:
            raise InvalidTicketError("duration_hrs must be at least 1")
        config = SLAConfig(
            id=_new_id(),
            priority=priority,
            duration_hrs=duration_hrs,
            is_active=is_active,
            description=description,
        )
        return await self._repository.save_sla_config(config)

    # Application settings

    async def get_app_settings(self) -> dict[str, str]:
        stored = await self._repository.get_app_settings()
        return merge_with_defaults(stored)

    async def get_typed_settings(self) -> AppSettings:
        return AppSettings.from_mapping(await self._repository.get_app_settings())

    async def update_app_settings(self, actor: Actor, payload: Mapping[str, Any]) -> dict[str, str]:
        access.ensure_admin(actor)
        updates = filter_updates(payload)
        if updates:
            await self._repository.put_app_settings(updates)
        return await self.get_app_settings()

    # Bootstrap

    async def seed_defaults(self) -> bool:
        levels = [replace(level, id=_new_id()) for level in DEFAULT_LEVELS]
        configs = [
            SLAConfig(id=_new_id(), priority=priority, duration_hrs=hours)
            for priority, hours in DEFAULT_SLA_HOURS.items()
        ]
        categories = [
            Category(
                id=_new_id(),
                name=name,
                slug=slug,
                description=description,
                color=color,
                sort_order=position,
            )
            for position, (name, slug, description, color) in enumerate(DEFAULT_CATEGORIES)
        ]
        return await self._repository.seed_defaults(
            levels=levels, sla_configs=configs, categories=categories
        )

    async def bootstrap_admin(self, email: str, token: str) -> Actor:
        """Create the first admin on the highest active level unless it exists."""

        existing = await self._repository.get_actor_by_email(email)
        if existing is not None:
            return existing
        levels = await self._repository.list_levels(active_only=True)
        if not levels:
            raise NotFoundError("No active support level to place the admin on")
        admin = Actor(
            id=_new_id(),
            role=Role.ADMIN,
            level=levels[-1],
            full_name="Administrator",
            email=email.strip().lower(),
        )
        await self._repository.add_actor(admin, token_hash=hash_token(token))
        logger.info("Bootstrapped admin account %s", admin.email)
        return admin
