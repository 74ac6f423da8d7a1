"""Application entry point for the Flancer negotiation service.

Configures:
- **structlog** with JSON rendering (production) or colored console (development),
  forwarding errors to Sentry when a DSN is configured
- **Record store** (SQLite) shared by the directory, notification sink and engine
- **Audit logging** of every negotiation transition
- **Notification dispatcher** delivering events in the background
- **FastAPI** routes, health probes, request ids and Prometheus metrics
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from flancer.api import notifications_router, register_error_handlers, router, services_router
from flancer.audit.logger import AuditLogger
from flancer.audit.store import close_audit_db, init_audit_db
from flancer.config import Settings, get_settings
from flancer.directory.listings import ServiceCatalog
from flancer.directory.service import SQLiteDirectory
from flancer.engine.negotiation import NegotiationEngine
from flancer.health import register_health_routes
from flancer.notifications.dispatcher import NotificationDispatcher
from flancer.notifications.inbox import NotificationInbox
from flancer.notifications.sink import SQLiteNotificationSink
from flancer.observability.metrics import setup_metrics
from flancer.observability.middleware import RequestIdMiddleware
from flancer.observability.sentry import get_sentry_processor, init_sentry
from flancer.state.schema import open_database
from flancer.state.store import SQLiteRecordStore

logger = structlog.get_logger()


def configure_logging(production: bool = False, sentry_enabled: bool = False) -> None:
    """Configure structlog for production (JSON) or development (console).

    Production mode (*production=True*): JSON rendering at INFO level.
    Development mode: colored console rendering at DEBUG level.

    Args:
        production: Enable production mode if ``True``.
        sentry_enabled: Forward ERROR events to Sentry if ``True``.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
    ]
    if sentry_enabled:
        shared_processors.append(get_sentry_processor())
    shared_processors += [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if production:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        log_level = logging.INFO
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer()
        log_level = logging.DEBUG

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service="flancer")


def initialize_services(settings: Settings | None = None) -> dict[str, Any]:
    """Set up all shared services for the application.

    Opens the record store and audit database, then wires the directory and
    service catalog, the notification sink, dispatcher and inbox, and the
    negotiation engine.

    Args:
        settings: Application settings.  If ``None``, ``get_settings()`` is used.

    Returns:
        A dict of initialized service instances keyed by name.
    """
    if settings is None:
        settings = get_settings()

    services: dict[str, Any] = {"_settings": settings}

    for path in (settings.database_path, settings.audit_db_path):
        if str(path) != ":memory:":
            path.parent.mkdir(parents=True, exist_ok=True)

    db_conn = open_database(settings.database_path)
    services["db_conn"] = db_conn
    store = SQLiteRecordStore(db_conn)
    services["store"] = store

    audit_conn = init_audit_db(settings.audit_db_path)
    services["audit_conn"] = audit_conn
    audit_logger = AuditLogger(audit_conn)
    services["audit_logger"] = audit_logger

    directory = SQLiteDirectory(store)
    services["directory"] = directory

    dispatcher = NotificationDispatcher(
        SQLiteNotificationSink(store, directory),
        attempts=settings.notification_retry_attempts,
    )
    services["dispatcher"] = dispatcher
    services["inbox"] = NotificationInbox(
        store, call_timeout=settings.collaborator_timeout_seconds
    )
    services["catalog"] = ServiceCatalog(
        store, directory, call_timeout=settings.collaborator_timeout_seconds
    )

    services["engine"] = NegotiationEngine(
        store,
        directory,
        dispatcher,
        audit_logger=audit_logger,
        call_timeout=settings.collaborator_timeout_seconds,
        default_deadline_days=settings.default_deadline_days,
        allow_self_agreement=settings.allow_self_agreement,
    )
    logger.info(
        "Services initialized",
        database=str(settings.database_path),
        allow_self_agreement=settings.allow_self_agreement,
    )
    return services


def close_services(services: dict[str, Any]) -> None:
    """Close database connections opened by ``initialize_services``."""
    db_conn = services.get("db_conn")
    if db_conn is not None:
        db_conn.close()
    audit_conn = services.get("audit_conn")
    if audit_conn is not None:
        close_audit_db(audit_conn)
    logger.info("Database connections closed")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Lifespan context manager for FastAPI startup and shutdown.

    On shutdown: waits for queued notifications, then closes the databases.
    """
    logger.info("FastAPI application starting")
    yield
    services = app.state.services
    dispatcher = services.get("dispatcher")
    if dispatcher is not None:
        await dispatcher.drain()
    close_services(services)


def create_app(services: dict[str, Any], *, instrument: bool = True) -> FastAPI:
    """Create the FastAPI app with negotiation routes, probes and metrics.

    Args:
        services: The initialized services dict from ``initialize_services``.
        instrument: Expose Prometheus ``/metrics`` if ``True``.

    Returns:
        The configured FastAPI application.
    """
    app = FastAPI(title="Flancer Negotiation Service", lifespan=lifespan)
    app.state.services = services
    app.state.settings = services.get("_settings") or get_settings()
    app.add_middleware(RequestIdMiddleware)
    app.include_router(router)
    app.include_router(notifications_router)
    app.include_router(services_router)
    register_error_handlers(app)
    register_health_routes(app)
    if instrument:
        setup_metrics(app)
    return app


def main() -> None:
    """Main entry point: configure logging, wire services and serve the API."""
    settings = get_settings()
    sentry_enabled = init_sentry(
        settings.sentry_dsn.get_secret_value(),
        environment="production" if settings.production else "development",
    )
    configure_logging(production=settings.production, sentry_enabled=sentry_enabled)
    logger.info("Application starting")

    services = initialize_services(settings)
    app = create_app(services)

    uvicorn.run(app, host="0.0.0.0", port=settings.api_port, log_level="info")


if __name__ == "__main__":
    main()
