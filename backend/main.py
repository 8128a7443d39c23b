# main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tripsync.auth.binder import IdentityBinder
from tripsync.auth.users import MongoUserDirectory, UserDirectory
from tripsync.core.config import settings
from tripsync.db import mongo
from tripsync.db.location_settings import LocationSettingsStore, MongoLocationSettingsStore
from tripsync.membership.oracle import MembershipOracle, MongoMembershipOracle
from tripsync.realtime.manager import WSManager
from tripsync.realtime.presence import PresenceRegistry
from tripsync.realtime.tracking import LocationTrackingService
from tripsync.routers import location, ws

logging.basicConfig(level=settings.LOG_LEVEL)
log = logging.getLogger(__name__)


def create_app(
    oracle: Optional[MembershipOracle] = None,
    users: Optional[UserDirectory] = None,
    location_settings: Optional[LocationSettingsStore] = None,
) -> FastAPI:
    """Build the API. Collaborators default to the Mongo-backed ones."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # presence lives only as long as this process; clients re-share after reconnect
        registry = PresenceRegistry()
        ws_manager = WSManager()

        app.state.oracle = oracle or MongoMembershipOracle()
        app.state.binder = IdentityBinder(users or MongoUserDirectory())
        app.state.location_settings = location_settings or MongoLocationSettingsStore()
        app.state.registry = registry
        app.state.ws_manager = ws_manager
        app.state.tracking = LocationTrackingService(registry, ws_manager, app.state.oracle)
        log.info("location tracking ready")
        yield
        trips, users_sharing = registry.stats()
        log.info("shutting down with %d sharer(s) in %d trip(s)", users_sharing, trips)
        registry.clear()
        mongo.close()

    app = FastAPI(title="TripSync live location", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=settings.CORS_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root():
        return {"message": "API is running. Go to /docs"}

    @app.get("/health")
    async def health():
        return {"ok": True}

    app.include_router(location.router)
    app.include_router(ws.router)
    return app


app = create_app()
