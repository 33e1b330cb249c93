from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import case, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from helpdesk.db.models import (
    AppSettingTable,
    AttachmentTable,
    CategoryTable,
    SLAConfigTable,
    SupportLevelTable,
    TicketActivityTable,
    TicketNoteTable,
    TicketReplyTable,
    TicketTable,
    UserTable,
)

from .access import ScopeKind, VisibilityScope
from .errors import ConflictError, DuplicateTicketNumberError, NotFoundError
from .lifecycle import TicketChange
from .models import (
    Actor,
    AttachmentRef,
    Capabilities,
    Category,
    Customer,
    Role,
    SLAConfig,
    SupportLevel,
    Ticket,
    TicketActivity,
    TicketAggregate,
    TicketNote,
    TicketReply,
)
from .state import ActivityType, TicketPriority, TicketSource, TicketStatus

logger = logging.getLogger(__name__)

_CAPABILITY_FIELDS = (
    "can_view_own_tickets",
    "can_view_team_tickets",
    "can_view_all_tickets",
    "can_create_ticket",
    "can_assign_ticket",
    "can_escalate_ticket",
    "can_resolve_ticket",
    "can_close_ticket",
)

_GROUPABLE_FIELDS = frozenset({"status", "priority", "source", "category_id"})


@dataclass(slots=True)
class TicketFilters:
    """Listing filters after the caller resolved ``assignee=me``."""

    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    level_id: str | None = None
    category_id: str | None = None
    assignee_id: str | None = None
    unassigned: bool = False
    search: str | None = None
    page: int = 1
    limit: int = 20


class TicketRepository:
    """Persistence helper for tickets and the reference data they point at."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    # Support levels

    async def list_levels(self, *, active_only: bool = True) -> list[SupportLevel]:
        statement = select(SupportLevelTable).order_by(SupportLevelTable.sort_order.asc())
        if active_only:
            statement = statement.where(SupportLevelTable.is_active.is_(True))
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_level(row) for row in result.scalars().all()]

    async def get_level(self, level_id: str) -> SupportLevel | None:
        async with self._session_factory() as session:
            row = await session.get(SupportLevelTable, level_id)
            return self._table_to_level(row) if row is not None else None

    async def get_level_by_code(self, code: str) -> SupportLevel | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(SupportLevelTable).where(SupportLevelTable.code == code)
            )
            row = result.scalars().first()
            return self._table_to_level(row) if row is not None else None

    async def find_active_level_by_sort_order(self, sort_order: int) -> SupportLevel | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(SupportLevelTable).where(
                    SupportLevelTable.sort_order == sort_order,
                    SupportLevelTable.is_active.is_(True),
                )
            )
            row = result.scalars().first()
            return self._table_to_level(row) if row is not None else None

    async def save_level(self, level: SupportLevel) -> SupportLevel:
        """Insert or update a level row."""

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(SupportLevelTable, level.id)
                    if row is None:
                        row = SupportLevelTable(id=level.id, code=level.code, name=level.name)
                        session.add(row)
                    row.code = level.code
                    row.name = level.name
                    row.description = level.description
                    row.sort_order = level.sort_order
                    row.is_active = level.is_active
                    for name in _CAPABILITY_FIELDS:
                        setattr(row, name, getattr(level.capabilities, name))
                    row.updated_at = datetime.now(timezone.utc)
        except IntegrityError as exc:
            raise ConflictError(f"Support level code {level.code} already exists") from exc
        return level

    async def count_active_users_for_level(self, level_id: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(UserTable)
                .where(UserTable.level_id == level_id, UserTable.is_active.is_(True))
            )
            return int(result.scalar_one())

    # Actors

    async def get_actor(self, actor_id: str) -> Actor | None:
        statement = (
            select(UserTable, SupportLevelTable)
            .join(SupportLevelTable, UserTable.level_id == SupportLevelTable.id)
            .where(UserTable.id == actor_id)
        )
        return await self._fetch_actor(statement)

    async def get_actor_by_token_hash(self, token_hash: str) -> Actor | None:
        statement = (
            select(UserTable, SupportLevelTable)
            .join(SupportLevelTable, UserTable.level_id == SupportLevelTable.id)
            .where(UserTable.api_token_hash == token_hash)
        )
        return await self._fetch_actor(statement)

    async def get_actor_by_email(self, email: str) -> Actor | None:
        statement = (
            select(UserTable, SupportLevelTable)
            .join(SupportLevelTable, UserTable.level_id == SupportLevelTable.id)
            .where(UserTable.email == email.lower())
        )
        return await self._fetch_actor(statement)

    async def add_actor(self, actor: Actor, *, token_hash: str | None = None) -> Actor:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(
                        UserTable(
                            id=actor.id,
                            email=actor.email.lower(),
                            full_name=actor.full_name,
                            role=actor.role.value,
                            level_id=actor.level.id,
                            api_token_hash=token_hash,
                            is_active=actor.is_active,
                        )
                    )
        except IntegrityError as exc:
            raise ConflictError(f"User {actor.email} already exists") from exc
        return actor

    async def list_actors(
        self,
        *,
        roles: Sequence[Role] | None = None,
        level_id: str | None = None,
        active_only: bool = True,
        offset: int = 0,
        limit: int | None = None,
    ) -> tuple[list[Actor], int]:
        """Accounts newest first, with the total before paging."""

        clauses: list[Any] = []
        if roles:
            clauses.append(UserTable.role.in_([role.value for role in roles]))
        if level_id:
            clauses.append(UserTable.level_id == level_id)
        if active_only:
            clauses.append(UserTable.is_active.is_(True))
        statement = (
            select(UserTable, SupportLevelTable)
            .join(SupportLevelTable, UserTable.level_id == SupportLevelTable.id)
            .where(*clauses)
            .order_by(UserTable.created_at.desc(), UserTable.email.asc())
            .offset(offset)
        )
        if limit is not None:
            statement = statement.limit(limit)
        async with self._session_factory() as session:
            count_result = await session.execute(
                select(func.count()).select_from(UserTable).where(*clauses)
            )
            total = int(count_result.scalar_one())
            result = await session.execute(statement)
            rows = result.all()
        return [self._row_to_actor(user_row, level_row) for user_row, level_row in rows], total

    async def list_assignable_actors(self) -> list[Actor]:
        """Active admins and agents, admins first, then by name."""

        statement = (
            select(UserTable, SupportLevelTable)
            .join(SupportLevelTable, UserTable.level_id == SupportLevelTable.id)
            .where(
                UserTable.is_active.is_(True),
                UserTable.role.in_([Role.ADMIN.value, Role.AGENT.value]),
            )
            .order_by(UserTable.role.asc(), UserTable.full_name.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            rows = result.all()
        return [self._row_to_actor(user_row, level_row) for user_row, level_row in rows]

    async def save_actor(self, actor: Actor, *, token_hash: str | None = None) -> Actor:
        """Update an existing account; a ``token_hash`` replaces the stored one."""

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(UserTable, actor.id)
                    if row is None:
                        raise NotFoundError(f"User {actor.id} not found")
                    row.email = actor.email.lower()
                    row.full_name = actor.full_name
                    row.role = actor.role.value
                    row.level_id = actor.level.id
                    row.is_active = actor.is_active
                    if token_hash is not None:
                        row.api_token_hash = token_hash
                    row.updated_at = datetime.now(timezone.utc)
        except IntegrityError as exc:
            raise ConflictError(f"User {actor.email} already exists") from exc
        return actor

    async def _fetch_actor(self, statement: Any) -> Actor | None:
        async with self._session_factory() as session:
            result = await session.execute(statement)
            row = result.first()
        if row is None:
            return None
        return self._row_to_actor(*row)

    @classmethod
    def _row_to_actor(cls, user_row: UserTable, level_row: SupportLevelTable) -> Actor:
        return Actor(
            id=user_row.id,
            role=Role(user_row.role),
            level=cls._table_to_level(level_row),
            full_name=user_row.full_name,
            email=user_row.email,
            is_active=user_row.is_active,
        )

    # Categories

    async def list_categories(self, *, active_only: bool = True) -> list[Category]:
        statement = select(CategoryTable).order_by(
            CategoryTable.sort_order.asc(), CategoryTable.name.asc()
        )
        if active_only:
            statement = statement.where(CategoryTable.is_active.is_(True))
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_category(row) for row in result.scalars().all()]

    async def get_category(self, category_id: str) -> Category | None:
        async with self._session_factory() as session:
            row = await session.get(CategoryTable, category_id)
            return self._table_to_category(row) if row is not None else None

    async def category_slug_exists(self, slug: str, *, exclude_id: str | None = None) -> bool:
        clauses = [CategoryTable.slug == slug]
        if exclude_id is not None:
            clauses.append(CategoryTable.id != exclude_id)
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(CategoryTable).where(*clauses)
            )
            return int(result.scalar_one()) > 0

    async def add_category(self, category: Category) -> Category:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(
                        CategoryTable(
                            id=category.id,
                            name=category.name,
                            slug=category.slug,
                            description=category.description,
                            color=category.color,
                            is_active=category.is_active,
                            sort_order=category.sort_order,
                        )
                    )
        except IntegrityError as exc:
            raise ConflictError(f"Category slug {category.slug} already exists") from exc
        return category

    async def save_category(self, category: Category) -> Category:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(CategoryTable, category.id)
                    if row is None:
                        raise NotFoundError(f"Category {category.id} not found")
                    row.name = category.name
                    row.slug = category.slug
                    row.description = category.description
                    row.color = category.color
                    row.is_active = category.is_active
                    row.sort_order = category.sort_order
        except IntegrityError as exc:
            raise ConflictError(f"Category slug {category.slug} already exists") from exc
        return category

    # SLA policy

    async def list_sla_configs(self) -> list[SLAConfig]:
        async with self._session_factory() as session:
            result = await session.execute(select(SLAConfigTable))
            configs = [self._table_to_sla(row) for row in result.scalars().all()]
        return sorted(configs, key=lambda config: config.priority.rank)

    async def save_sla_config(self, config: SLAConfig) -> SLAConfig:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(SLAConfigTable).where(SLAConfigTable.priority == config.priority.value)
                )
                row = result.scalars().first()
                if row is None:
                    row = SLAConfigTable(
                        id=config.id,
                        priority=config.priority.value,
                        duration_hrs=config.duration_hrs,
                    )
                    session.add(row)
                row.duration_hrs = config.duration_hrs
                row.is_active = config.is_active
                row.description = config.description
                row.updated_at = datetime.now(timezone.utc)
                await session.flush()
                return self._table_to_sla(row)

    # Application settings

    async def get_app_settings(self) -> dict[str, str]:
        async with self._session_factory() as session:
            result = await session.execute(select(AppSettingTable))
            return {row.key: row.value for row in result.scalars().all()}

    async def put_app_settings(self, updates: Mapping[str, str]) -> None:
        now = datetime.now(timezone.utc)
        async with self._session_factory() as session:
            async with session.begin():
                for key, value in updates.items():
                    row = await session.get(AppSettingTable, key)
                    if row is None:
                        session.add(AppSettingTable(key=key, value=value, version=1, updated_at=now))
                        continue
                    row.value = value
                    row.version = row.version + 1
                    row.updated_at = now

    async def seed_defaults(
        self,
        *,
        levels: Iterable[SupportLevel],
        sla_configs: Iterable[SLAConfig],
        categories: Iterable[Category],
    ) -> bool:
        """Insert default reference data when no support level exists yet."""

        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(select(func.count()).select_from(SupportLevelTable))
                if int(result.scalar_one()) > 0:
                    return False
                for level in levels:
                    row = SupportLevelTable(
                        id=level.id,
                        code=level.code,
                        name=level.name,
                        description=level.description,
                        sort_order=level.sort_order,
                        is_active=level.is_active,
                    )
                    for name in _CAPABILITY_FIELDS:
                        setattr(row, name, getattr(level.capabilities, name))
                    session.add(row)
                for config in sla_configs:
                    session.add(
                        SLAConfigTable(
                            id=config.id,
                            priority=config.priority.value,
                            duration_hrs=config.duration_hrs,
                            is_active=config.is_active,
                            description=config.description,
                        )
                    )
                for category in categories:
                    session.add(
                        CategoryTable(
                            id=category.id,
                            name=category.name,
                            slug=category.slug,
                            description=category.description,
                            color=category.color,
                            is_active=category.is_active,
                            sort_order=category.sort_order,
                        )
                    )
        logger.info("Seeded default support levels, SLA policy and categories")
        return True

    # Tickets

    async def count_tickets_created_between(self, start: datetime, end: datetime) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(TicketTable)
                .where(TicketTable.created_at >= start, TicketTable.created_at < end)
            )
            return int(result.scalar_one())

    async def ticket_number_exists(self, ticket_number: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(TicketTable)
                .where(TicketTable.ticket_number == ticket_number)
            )
            return int(result.scalar_one()) > 0

    async def create_ticket(self, change: TicketChange) -> None:
        ticket = change.ticket
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(
                        TicketTable(
                            id=ticket.id,
                            ticket_number=ticket.ticket_number,
                            subject=ticket.subject,
                            description=ticket.description,
                            status=ticket.status.value,
                            priority=ticket.priority.value,
                            source=ticket.source.value,
                            level_id=ticket.level.id,
                            category_id=ticket.category_id,
                            customer_name=ticket.customer.name,
                            customer_email=ticket.customer.email,
                            customer_phone=ticket.customer.phone,
                            customer_company=ticket.customer.company,
                            created_by_id=ticket.created_by_id,
                            assignee_id=ticket.assignee_id,
                            due_date=ticket.due_date,
                            resolved_at=ticket.resolved_at,
                            closed_at=ticket.closed_at,
                            version=ticket.version,
                            created_at=ticket.created_at,
                            updated_at=ticket.updated_at,
                        )
                    )
                    await session.flush()
                    self._add_children(session, change)
                    await session.flush()
        except IntegrityError as exc:
            raise DuplicateTicketNumberError(
                f"Ticket number {ticket.ticket_number} is already taken"
            ) from exc

    async def save_change(self, change: TicketChange) -> None:
        """Write a ticket change guarded by the version the caller read."""

        ticket = change.ticket
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(TicketTable)
                    .where(
                        TicketTable.id == ticket.id,
                        TicketTable.version == change.expected_version,
                    )
                    .values(
                        subject=ticket.subject,
                        description=ticket.description,
                        status=ticket.status.value,
                        priority=ticket.priority.value,
                        source=ticket.source.value,
                        level_id=ticket.level.id,
                        category_id=ticket.category_id,
                        customer_name=ticket.customer.name,
                        customer_email=ticket.customer.email,
                        customer_phone=ticket.customer.phone,
                        customer_company=ticket.customer.company,
                        assignee_id=ticket.assignee_id,
                        due_date=ticket.due_date,
                        resolved_at=ticket.resolved_at,
                        closed_at=ticket.closed_at,
                        version=ticket.version,
                        updated_at=ticket.updated_at,
                    )
                )
                if result.rowcount != 1:
                    logger.warning(
                        "Stale write on ticket %s (expected version %s)",
                        ticket.ticket_number,
                        change.expected_version,
                    )
                    raise ConflictError(
                        f"Ticket {ticket.ticket_number} was modified concurrently, reload and retry"
                    )
                self._add_children(session, change)
                await session.flush()

    def _add_children(self, session: AsyncSession, change: TicketChange) -> None:
        attachments: list[AttachmentRef] = list(change.attachments)
        if change.reply is not None:
            reply = change.reply
            session.add(
                TicketReplyTable(
                    id=reply.id,
                    ticket_id=reply.ticket_id,
                    author_id=reply.author_id,
                    message=reply.message,
                    is_customer=reply.is_customer,
                    created_at=reply.created_at,
                )
            )
            attachments.extend(reply.attachments)
        if change.note is not None:
            note = change.note
            session.add(
                TicketNoteTable(
                    id=note.id,
                    ticket_id=note.ticket_id,
                    author_id=note.author_id,
                    content=note.content,
                    created_at=note.created_at,
                )
            )
            attachments.extend(note.attachments)
        for attachment in attachments:
            session.add(
                AttachmentTable(
                    id=attachment.id,
                    file_name=attachment.file_name,
                    file_key=attachment.file_key,
                    file_url=attachment.file_url,
                    file_size=attachment.file_size,
                    file_type=attachment.file_type,
                    uploaded_by_id=attachment.uploaded_by_id,
                    ticket_id=attachment.ticket_id,
                    reply_id=attachment.reply_id,
                    note_id=attachment.note_id,
                    created_at=attachment.created_at,
                )
            )
        for position, entry in enumerate(change.activities):
            session.add(
                TicketActivityTable(
                    id=entry.id,
                    position=position,
                    ticket_id=entry.ticket_id,
                    author_id=entry.author_id,
                    type=entry.type.value,
                    description=entry.description,
                    old_value=entry.old_value,
                    new_value=entry.new_value,
                    created_at=entry.created_at,
                )
            )

    def _ticket_query(self) -> Any:
        return select(TicketTable, SupportLevelTable).join(
            SupportLevelTable, TicketTable.level_id == SupportLevelTable.id
        )

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        async with self._session_factory() as session:
            result = await session.execute(self._ticket_query().where(TicketTable.id == ticket_id))
            row = result.first()
        if row is None:
            return None
        return self._table_to_ticket(*row)

    async def get_ticket_by_number(self, ticket_number: str) -> Ticket | None:
        async with self._session_factory() as session:
            result = await session.execute(
                self._ticket_query().where(TicketTable.ticket_number == ticket_number)
            )
            row = result.first()
        if row is None:
            return None
        return self._table_to_ticket(*row)

    async def get_ticket_aggregate(self, ticket_id: str) -> TicketAggregate | None:
        async with self._session_factory() as session:
            result = await session.execute(self._ticket_query().where(TicketTable.id == ticket_id))
            row = result.first()
            if row is None:
                return None

            reply_result = await session.execute(
                select(TicketReplyTable)
                .where(TicketReplyTable.ticket_id == ticket_id)
                .order_by(TicketReplyTable.created_at.asc())
            )
            note_result = await session.execute(
                select(TicketNoteTable)
                .where(TicketNoteTable.ticket_id == ticket_id)
                .order_by(TicketNoteTable.created_at.asc())
            )
            activity_result = await session.execute(
                select(TicketActivityTable)
                .where(TicketActivityTable.ticket_id == ticket_id)
                .order_by(TicketActivityTable.created_at.desc(), TicketActivityTable.position.desc())
            )
            reply_rows = reply_result.scalars().all()
            note_rows = note_result.scalars().all()
            owner_clauses = [AttachmentTable.ticket_id == ticket_id]
            if reply_rows:
                owner_clauses.append(AttachmentTable.reply_id.in_([r.id for r in reply_rows]))
            if note_rows:
                owner_clauses.append(AttachmentTable.note_id.in_([n.id for n in note_rows]))
            attachment_result = await session.execute(
                select(AttachmentTable)
                .where(or_(*owner_clauses))
                .order_by(AttachmentTable.created_at.asc())
            )
            attachment_rows = attachment_result.scalars().all()
            activities = [self._table_to_activity(entry) for entry in activity_result.scalars().all()]

        attachments = [self._table_to_attachment(entry) for entry in attachment_rows]
        by_reply: dict[str, list[AttachmentRef]] = {}
        by_note: dict[str, list[AttachmentRef]] = {}
        ticket_level: list[AttachmentRef] = []
        for attachment in attachments:
            if attachment.reply_id is not None:
                by_reply.setdefault(attachment.reply_id, []).append(attachment)
            elif attachment.note_id is not None:
                by_note.setdefault(attachment.note_id, []).append(attachment)
            else:
                ticket_level.append(attachment)

        return TicketAggregate(
            ticket=self._table_to_ticket(*row),
            replies=[self._table_to_reply(entry, by_reply.get(entry.id, [])) for entry in reply_rows],
            notes=[self._table_to_note(entry, by_note.get(entry.id, [])) for entry in note_rows],
            activities=activities,
            attachments=ticket_level,
        )

    async def list_activities(self, ticket_id: str) -> list[TicketActivity]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TicketActivityTable)
                .where(TicketActivityTable.ticket_id == ticket_id)
                .order_by(TicketActivityTable.created_at.desc(), TicketActivityTable.position.desc())
            )
            return [self._table_to_activity(row) for row in result.scalars().all()]

    async def list_tickets(
        self, filters: TicketFilters, scope: VisibilityScope
    ) -> tuple[list[Ticket], int]:
        clauses = self._filter_clauses(filters) + self._scope_clauses(scope)
        priority_rank = _priority_rank()
        page = max(1, filters.page)
        limit = max(1, filters.limit)

        async with self._session_factory() as session:
            count_result = await session.execute(
                select(func.count())
                .select_from(TicketTable)
                .join(SupportLevelTable, TicketTable.level_id == SupportLevelTable.id)
                .where(*clauses)
            )
            total = int(count_result.scalar_one())
            result = await session.execute(
                self._ticket_query()
                .where(*clauses)
                .order_by(priority_rank.desc(), TicketTable.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            rows = result.all()
        return [self._table_to_ticket(ticket_row, level_row) for ticket_row, level_row in rows], total

    # Dashboard

    async def count_tickets(
        self,
        *,
        statuses: Sequence[TicketStatus] | None = None,
        assignee_id: str | None = None,
        unassigned: bool = False,
        due_before: datetime | None = None,
        resolved_between: tuple[datetime, datetime] | None = None,
    ) -> int:
        clauses: list[Any] = []
        if statuses:
            clauses.append(TicketTable.status.in_([status.value for status in statuses]))
        if unassigned:
            clauses.append(TicketTable.assignee_id.is_(None))
        elif assignee_id:
            clauses.append(TicketTable.assignee_id == assignee_id)
        if due_before is not None:
            clauses.append(TicketTable.due_date < due_before)
        if resolved_between is not None:
            start, end = resolved_between
            clauses.append(TicketTable.resolved_at >= start)
            clauses.append(TicketTable.resolved_at < end)
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(TicketTable).where(*clauses)
            )
            return int(result.scalar_one())

    async def count_tickets_by(self, field: str) -> dict[str, int]:
        """Ticket totals grouped by ``status``, ``priority``, ``source`` or ``category_id``."""

        if field not in _GROUPABLE_FIELDS:
            raise ValueError(f"Cannot group tickets by {field}")
        column = getattr(TicketTable, field)
        async with self._session_factory() as session:
            result = await session.execute(
                select(column, func.count()).select_from(TicketTable).group_by(column)
            )
            return {str(key): int(count) for key, count in result.all()}

    async def dashboard_tickets(
        self,
        scope: VisibilityScope,
        *,
        statuses: Sequence[TicketStatus],
        priorities: Sequence[TicketPriority] | None = None,
        due_before: datetime | None = None,
        order: str = "recent",
        limit: int = 10,
    ) -> list[Ticket]:
        """Short visible ticket lists ordered by ``urgency``, ``due`` or ``recent``."""

        clauses = self._scope_clauses(scope)
        clauses.append(TicketTable.status.in_([status.value for status in statuses]))
        if priorities:
            clauses.append(TicketTable.priority.in_([priority.value for priority in priorities]))
        if due_before is not None:
            clauses.append(TicketTable.due_date < due_before)
        if order == "urgency":
            ordering = (_priority_rank().desc(), TicketTable.created_at.asc())
        elif order == "due":
            ordering = (TicketTable.due_date.asc(), TicketTable.created_at.asc())
        else:
            ordering = (TicketTable.created_at.desc(),)
        async with self._session_factory() as session:
            result = await session.execute(
                self._ticket_query().where(*clauses).order_by(*ordering).limit(limit)
            )
            rows = result.all()
        return [self._table_to_ticket(ticket_row, level_row) for ticket_row, level_row in rows]

    async def recent_activities(
        self, scope: VisibilityScope, *, limit: int = 10
    ) -> list[tuple[TicketActivity, str, str]]:
        """Latest visible audit entries with the ticket number and subject."""

        statement = (
            select(TicketActivityTable, TicketTable.ticket_number, TicketTable.subject)
            .join(TicketTable, TicketActivityTable.ticket_id == TicketTable.id)
            .join(SupportLevelTable, TicketTable.level_id == SupportLevelTable.id)
            .where(*self._scope_clauses(scope))
            .order_by(TicketActivityTable.created_at.desc(), TicketActivityTable.position.desc())
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            rows = result.all()
        return [(self._table_to_activity(row), number, subject) for row, number, subject in rows]

    async def ticket_timestamps_since(self, start: datetime) -> list[tuple[datetime, datetime | None]]:
        """``(created_at, resolved_at)`` of tickets created or resolved after ``start``."""

        async with self._session_factory() as session:
            result = await session.execute(
                select(TicketTable.created_at, TicketTable.resolved_at).where(
                    or_(TicketTable.created_at >= start, TicketTable.resolved_at >= start)
                )
            )
            rows = result.all()
        return [(_ensure_datetime(created), _optional_datetime(resolved)) for created, resolved in rows]

    async def assigned_ticket_stats(
        self,
    ) -> list[tuple[str, TicketStatus, datetime, datetime | None]]:
        """``(assignee_id, status, created_at, resolved_at)`` for every assigned ticket."""

        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    TicketTable.assignee_id,
                    TicketTable.status,
                    TicketTable.created_at,
                    TicketTable.resolved_at,
                ).where(TicketTable.assignee_id.is_not(None))
            )
            rows = result.all()
        return [
            (assignee, TicketStatus(status), _ensure_datetime(created), _optional_datetime(resolved))
            for assignee, status, created, resolved in rows
        ]

    @staticmethod
    def _filter_clauses(filters: TicketFilters) -> list[Any]:
        clauses: list[Any] = []
        if filters.status is not None:
            clauses.append(TicketTable.status == filters.status.value)
        if filters.priority is not None:
            clauses.append(TicketTable.priority == filters.priority.value)
        if filters.level_id:
            clauses.append(TicketTable.level_id == filters.level_id)
        if filters.category_id:
            clauses.append(TicketTable.category_id == filters.category_id)
        if filters.unassigned:
            clauses.append(TicketTable.assignee_id.is_(None))
        elif filters.assignee_id:
            clauses.append(TicketTable.assignee_id == filters.assignee_id)
        term = (filters.search or "").strip().lower()
        if term:
            pattern = f"%{term}%"
            clauses.append(
                or_(
                    func.lower(TicketTable.ticket_number).like(pattern),
                    func.lower(TicketTable.subject).like(pattern),
                    func.lower(TicketTable.customer_name).like(pattern),
                    func.lower(TicketTable.customer_email).like(pattern),
                )
            )
        return clauses

    @staticmethod
    def _scope_clauses(scope: VisibilityScope) -> list[Any]:
        if scope.kind == ScopeKind.ALL:
            return []
        owned = [
            TicketTable.assignee_id == scope.actor_id,
            TicketTable.created_by_id == scope.actor_id,
        ]
        if scope.kind == ScopeKind.TEAM and scope.max_sort_order is not None:
            owned.append(SupportLevelTable.sort_order <= scope.max_sort_order)
        return [or_(*owned)]

    @staticmethod
    def _table_to_level(row: SupportLevelTable) -> SupportLevel:
        return SupportLevel(
            id=row.id,
            code=row.code,
            name=row.name,
            sort_order=row.sort_order,
            is_active=row.is_active,
            description=row.description,
            capabilities=Capabilities(**{name: bool(getattr(row, name)) for name in _CAPABILITY_FIELDS}),
        )

    @staticmethod
    def _table_to_category(row: CategoryTable) -> Category:
        return Category(
            id=row.id,
            name=row.name,
            slug=row.slug,
            is_active=row.is_active,
            description=row.description,
            color=row.color,
            sort_order=row.sort_order,
        )

    @staticmethod
    def _table_to_sla(row: SLAConfigTable) -> SLAConfig:
        return SLAConfig(
            id=row.id,
            priority=TicketPriority(row.priority),
            duration_hrs=row.duration_hrs,
            is_active=row.is_active,
            description=row.description,
        )

    @classmethod
    def _table_to_ticket(cls, row: TicketTable, level_row: SupportLevelTable) -> Ticket:
        return Ticket(
            id=row.id,
            ticket_number=row.ticket_number,
            subject=row.subject,
            description=row.description,
            status=TicketStatus(row.status),
            priority=TicketPriority(row.priority),
            source=TicketSource(row.source),
            level=cls._table_to_level(level_row),
            category_id=row.category_id,
            customer=Customer(
                name=row.customer_name,
                email=row.customer_email,
                phone=row.customer_phone,
                company=row.customer_company,
            ),
            created_by_id=row.created_by_id,
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
            assignee_id=row.assignee_id,
            due_date=_optional_datetime(row.due_date),
            resolved_at=_optional_datetime(row.resolved_at),
            closed_at=_optional_datetime(row.closed_at),
            version=row.version,
        )

    @staticmethod
    def _table_to_reply(row: TicketReplyTable, attachments: Sequence[AttachmentRef]) -> TicketReply:
        return TicketReply(
            id=row.id,
            ticket_id=row.ticket_id,
            message=row.message,
            is_customer=row.is_customer,
            created_at=_ensure_datetime(row.created_at),
            author_id=row.author_id,
            attachments=list(attachments),
        )

    @staticmethod
    def _table_to_note(row: TicketNoteTable, attachments: Sequence[AttachmentRef]) -> TicketNote:
        return TicketNote(
            id=row.id,
            ticket_id=row.ticket_id,
            content=row.content,
            author_id=row.author_id,
            created_at=_ensure_datetime(row.created_at),
            attachments=list(attachments),
        )

    @staticmethod
    def _table_to_attachment(row: AttachmentTable) -> AttachmentRef:
        return AttachmentRef(
            id=row.id,
            file_name=row.file_name,
            file_key=row.file_key,
            file_url=row.file_url,
            file_size=row.file_size,
            file_type=row.file_type,
            created_at=_ensure_datetime(row.created_at),
            uploaded_by_id=row.uploaded_by_id,
            ticket_id=row.ticket_id,
            reply_id=row.reply_id,
            note_id=row.note_id,
        )

    @staticmethod
    def _table_to_activity(row: TicketActivityTable) -> TicketActivity:
        return TicketActivity(
            id=row.id,
            ticket_id=row.ticket_id,
            author_id=row.author_id,
            type=ActivityType(row.type),
            description=row.description,
            created_at=_ensure_datetime(row.created_at),
            old_value=row.old_value,
            new_value=row.new_value,
        )


def _priority_rank() -> Any:
    return case(
        *((TicketTable.priority == priority.value, priority.rank) for priority in TicketPriority),
        else_=-1,
    )


def _ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")


def _optional_datetime(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return _ensure_datetime(value)
