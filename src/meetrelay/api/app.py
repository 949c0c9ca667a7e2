"""ASGI application: FastAPI for HTTP routes, Socket.IO for the relay."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from meetrelay.backend.client import BackendClient
from meetrelay.config.settings import Settings, configure_logging, get_settings
from meetrelay.connection.socketio_server import RelayServer, create_socketio_app
from meetrelay.rooms.registry import RoomRegistry
from meetrelay.rooms.store import BackendMembershipStore, MembershipStore, MemoryMembershipStore

logger = logging.getLogger(__name__)


def build_store(settings: Settings, registry: RoomRegistry) -> tuple:
    """Return (store, backend client or None) for the configured room store."""
    if settings.uses_backend:
        client = BackendClient(settings.backend_url, timeout=settings.backend_timeout)
        return BackendMembershipStore(registry, client), client
    return MemoryMembershipStore(registry), None


def create_app(settings: Optional[Settings] = None, store: Optional[MembershipStore] = None) -> FastAPI:
    """Create the FastAPI app and attach a RelayServer to ``app.state.relay``."""
    settings = settings or get_settings()
    client = None
    if store is None:
        store, client = build_store(settings, RoomRegistry())

    relay = RelayServer(settings, store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Relay started (store=%s)", settings.room_store)
        yield
        if client is not None:
            await client.close()
        logger.info("Relay stopped")

    app = FastAPI(title="meetrelay", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.state.relay = relay
    app.state.settings = settings

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "room_store": settings.room_store,
            "auth_required": settings.auth_required,
            "rooms": len(relay.registry.rooms()),
            "connections": len(relay.sessions),
        }

    return app


def create_asgi_app(settings: Optional[Settings] = None):
    """Uvicorn factory: FastAPI wrapped by the Socket.IO ASGI app."""
    settings = settings or get_settings()
    configure_logging(settings)
    app = create_app(settings)
    return create_socketio_app(app.state.relay, app)
