"""
FastAPI application factory.

create_app wires already-built services so tests can pass in-memory ones;
create_production_app builds them from Vault, PostgreSQL and Valkey.
"""

import logging

from fastapi import FastAPI, Request

from api.actions import create_actions_router
from api.base import success_response
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from auth.api import create_auth_router
from auth.security_middleware import AuthMiddleware
from auth.session import SessionManager
from core.notifications import NotificationSink
from core.services import Services

logger = logging.getLogger(__name__)


def create_app(
    services: Services,
    session_manager: SessionManager,
    notifications: NotificationSink
) -> FastAPI:
    """Build the HTTP app over the given services."""
    app = FastAPI(title="Auto Shop Scheduling API")

    # Last added runs first, so request ids exist before auth rejects
    app.add_middleware(AuthMiddleware, session_manager=session_manager)
    app.add_middleware(RequestIDMiddleware)

    register_error_handlers(app)

    @app.get("/health")
    async def health(request: Request):
        return success_response({"status": "ok"}, request)

    app.include_router(create_data_router(services, notifications), prefix="/api")
    app.include_router(create_actions_router(services), prefix="/api")
    app.include_router(create_auth_router(session_manager, services.profiles), prefix="/auth")
    return app


def create_production_app() -> FastAPI:
    """
    Wire the app against Vault-provided PostgreSQL and Valkey.

    Usage:
        uvicorn api.app:create_production_app --factory
    """
    from auth.config import load_auth_config
    from clients.postgres_client import PostgresClient
    from clients.valkey_client import ValkeyClient
    from clients.vault_client import get_database_url, get_valkey_url
    from core.config import load_config
    from core.event_bus import EventBus
    from core.handlers import register_notification_handlers
    from core.notifications import ValkeyNotificationSink
    from core.repositories import PostgresStore
    from core.services import build_services

    config = load_config()
    valkey = ValkeyClient(get_valkey_url())
    store = PostgresStore(PostgresClient(get_database_url()))

    sink = ValkeyNotificationSink(valkey)
    bus = EventBus()
    register_notification_handlers(bus, sink)

    services = build_services(store, bus, config)
    session_manager = SessionManager(valkey, load_auth_config())
    logger.info("Starting in %s booking mode", config.booking_mode.value)
    return create_app(services, session_manager, sink)
