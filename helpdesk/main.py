from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from helpdesk.api.routes import categories, dashboard, ping, public, support_levels, tickets, users
from helpdesk.api.routes import settings as settings_routes
from helpdesk.core.config import get_settings, to_async_dsn
from helpdesk.core.logging import configure_logging, init_tracer, shutdown_tracer
from helpdesk.tickets.agents import AgentService
from helpdesk.tickets.dashboard import DashboardService
from helpdesk.tickets.notifications import NotificationDispatcher
from helpdesk.tickets.reference import ReferenceDataService
from helpdesk.tickets.repository import TicketRepository
from helpdesk.tickets.service import TicketService


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider

    db_engine = create_async_engine(to_async_dsn(settings.database_url), future=True)
    session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
    dispatcher = NotificationDispatcher(
        max_queue=settings.notification_queue_size,
        timeout=settings.notification_timeout_seconds,
    )
    try:
        ticket_repository = TicketRepository(session_factory, engine=db_engine)
        await ticket_repository.ensure_schema()

        reference_service = ReferenceDataService(ticket_repository)
        if settings.seed_defaults:
            await reference_service.seed_defaults()
        if settings.bootstrap_admin_email and settings.bootstrap_admin_token:
            await reference_service.bootstrap_admin(
                settings.bootstrap_admin_email, settings.bootstrap_admin_token
            )

        await dispatcher.start()
        app.state.db_engine = db_engine
        app.state.db_session_factory = session_factory
        app.state.ticket_repository = ticket_repository
        app.state.reference_service = reference_service
        app.state.notification_dispatcher = dispatcher
        app.state.ticket_service = TicketService(
            ticket_repository,
            dispatcher=dispatcher,
            ticket_number_prefix=settings.ticket_number_prefix,
            timezone_name=settings.timezone,
        )
        app.state.agent_service = AgentService(ticket_repository)
        app.state.dashboard_service = DashboardService(
            ticket_repository, timezone_name=settings.timezone
        )
        logger.info("Helpdesk API started (%s)", settings.environment)
        yield
    finally:
        await dispatcher.stop()
        await db_engine.dispose()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    app.include_router(public.router)
    app.include_router(support_levels.router)
    app.include_router(settings_routes.router)
    app.include_router(categories.router)
    app.include_router(users.router)
    app.include_router(dashboard.router)
    return app


app = create_app()
