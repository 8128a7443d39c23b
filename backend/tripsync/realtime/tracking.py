"""Live location sharing between members of a trip.

Lifecycle of one (trip, user) pair::

    absent --start-sharing--> sharing --stop-sharing / disconnect--> absent

Each mutation runs under the registry lock for its (trip, user) key,
including the membership lookup it awaits. Outgoing payloads are built
while the lock is held and delivered after it is released.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from tripsync.core.errors import AccessDenied, InvalidLocation, InvalidPayload, TripSyncError
from tripsync.membership.oracle import MembershipOracle
from tripsync.realtime import events
from tripsync.realtime.manager import Connection, WSManager, trip_group
from tripsync.realtime.presence import Location, PresenceEntry, PresenceRegistry
from tripsync.realtime.reaper import DisconnectReaper, entry_user
from tripsync.schemas.location import (
    ActiveMember,
    ActiveMembersSnapshot,
    ErrorEvent,
    LocationEvent,
    LocationOut,
    MemberLocation,
    SendLocationIn,
    SharingStatusOut,
    TrackingStatsOut,
    TripEventIn,
    UserEvent,
)

log = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def validate_coordinates(latitude: Any, longitude: Any) -> Tuple[float, float]:
    for value, limit in ((latitude, 90), (longitude, 180)):
        # bool is an int subclass; a JSON true is not a coordinate
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidLocation()
        # range first: huge JSON integers overflow float conversion
        if not -limit <= value <= limit or not math.isfinite(value):
            raise InvalidLocation()

    return float(latitude), float(longitude)


def to_active_member(entry: PresenceEntry) -> ActiveMember:
    loc = entry.last_location
    return ActiveMember(
        id=entry.user_id,
        name=entry.display_name,
        avatar=entry.avatar,
        last_update=entry.last_update,
        location=MemberLocation(
            latitude=loc.latitude,
            longitude=loc.longitude,
            accuracy=loc.accuracy,
        ) if loc else None,
    )


@dataclass
class Joined:
    created: bool
    started: dict
    snapshot: dict


class LocationTrackingService:
    def __init__(self, registry: PresenceRegistry, router: WSManager, oracle: MembershipOracle):
        self.registry = registry
        self.router = router
        self.oracle = oracle
        self.reaper = DisconnectReaper(registry, router)

        self._handlers: Dict[str, Tuple[Callable[[Connection, Any], Awaitable[None]], str]] = {
            events.START_SHARING: (self._on_start, "Failed to start location sharing"),
            events.SEND_LOCATION: (self._on_location, "Failed to send location update"),
            events.STOP_SHARING: (self._on_stop, "Failed to stop location sharing"),
        }

    # -------------------------
    # event dispatch
    # -------------------------
    async def dispatch(self, conn: Connection, event: Optional[str], data: Any):
        """Run one client event. Errors go back to *conn* only."""
        handler = self._handlers.get(event or "")
        if handler is None:
            await self._error(conn, f"Unknown event: {event}")
            return

        fn, failure = handler
        try:
            await fn(conn, data)
        except TripSyncError as e:
            log.info("%s from %s rejected: %s", event, conn.identity.name, e.message)
            await self._error(conn, e.message)
        except Exception:
            log.exception("%s from %s failed", event, conn.identity.name)
            await self._error(conn, failure)

    async def _on_start(self, conn: Connection, data: Any):
        payload = self._parse(TripEventIn, data, events.START_SHARING)
        await self.start_sharing(conn, payload.trip_id)

    async def _on_location(self, conn: Connection, data: Any):
        payload = self._parse(SendLocationIn, data, events.SEND_LOCATION)
        await self.update_location(conn, payload)

    async def _on_stop(self, conn: Connection, data: Any):
        payload = self._parse(TripEventIn, data, events.STOP_SHARING)
        await self.stop_sharing(conn, payload.trip_id)

    @staticmethod
    def _parse(model: Type[M], data: Any, event: str) -> M:
        try:
            return model.model_validate(data if data is not None else {})
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) or "payload" for err in e.errors())
            raise InvalidPayload(f"Invalid {event} payload: {fields}")

    async def _error(self, conn: Connection, message: str):
        await self.router.emit_to_connection(conn, events.LOCATION_ERROR, ErrorEvent(message=message).wire())

    # -------------------------
    # registry protocol
    # -------------------------
    async def start_sharing(self, conn: Connection, trip_id: str):
        async with self.registry.lock(trip_id, conn.user_id):
            joined = await self._join(conn, trip_id)
        if joined is not None:
            await self._announce(conn, trip_id, joined)

    async def update_location(self, conn: Connection, payload: SendLocationIn):
        latitude, longitude = validate_coordinates(payload.latitude, payload.longitude)
        trip_id = payload.trip_id
        uid = conn.user_id

        joined = None
        async with self.registry.lock(trip_id, uid):
            entry = self.registry.get(trip_id, uid)
            if entry is None or entry.connection_id != conn.id:
                joined = await self.recover_missing_entry(conn, trip_id)
                if joined is None:
                    return

            entry = self.registry.record_location(
                trip_id, uid,
                Location(latitude=latitude, longitude=longitude, accuracy=payload.accuracy),
                payload.timestamp,
            )
            update = LocationEvent(
                user=entry_user(entry),
                location=LocationOut(
                    latitude=latitude,
                    longitude=longitude,
                    accuracy=payload.accuracy,
                    timestamp=entry.last_update,
                ),
            ).wire()

        if joined is not None:
            await self._announce(conn, trip_id, joined)

        log.debug("location from %s in trip %s: %s, %s", conn.identity.name, trip_id, latitude, longitude)
        await self.router.emit_to_group(trip_group(trip_id), events.RECEIVE_LOCATION, update, exclude=conn)

    async def recover_missing_entry(self, conn: Connection, trip_id: str) -> Optional[Joined]:
        """Start sharing on behalf of a location update that beat its start-sharing.

        Clients fire start-sharing and their first fix back to back, and a
        reconnected socket may send a fix before re-announcing itself. Both
        are treated as an implicit start: membership is checked again and
        AccessDenied propagates if it fails. Call with the key lock held.
        """
        log.info(
            "location from %s for trip %s arrived before start-sharing, starting implicitly",
            conn.identity.name, trip_id,
        )
        return await self._join(conn, trip_id)

    async def stop_sharing(self, conn: Connection, trip_id: str):
        async with self.registry.lock(trip_id, conn.user_id):
            entry = self.registry.remove(trip_id, conn.user_id)
            if entry is None:
                return
            self.router.leave(conn, trip_group(trip_id))
            owner = self.router.connections.get(entry.connection_id)
            if owner is not None and owner is not conn:
                self.router.leave(owner, trip_group(trip_id))
            stopped = UserEvent(
                user=entry_user(entry),
                message=f"{entry.display_name} stopped sharing location",
            ).wire()

        await self.router.emit_to_group(trip_group(trip_id), events.USER_STOPPED_SHARING, stopped, exclude=conn)
        log.info("%s stopped location sharing in trip %s", conn.identity.name, trip_id)

    async def on_disconnect(self, conn: Connection) -> int:
        return await self.reaper.reap(conn)

    async def _join(self, conn: Connection, trip_id: str) -> Optional[Joined]:
        await self.check_membership(trip_id, conn.user_id)

        if conn.closed:
            # the socket went away while we waited on the lookup
            return None

        self.router.join(conn, trip_group(trip_id))
        entry, created = self.registry.join(trip_id, conn.identity, conn.id)

        others = self.registry.active_members(trip_id, exclude_user=conn.user_id)
        return Joined(
            created=created,
            started=UserEvent(
                user=entry_user(entry),
                message=f"{entry.display_name} started sharing location",
            ).wire(),
            snapshot=ActiveMembersSnapshot(active_members=[to_active_member(e) for e in others]).wire(),
        )

    async def _announce(self, conn: Connection, trip_id: str, joined: Joined):
        if joined.created:
            await self.router.emit_to_group(
                trip_group(trip_id), events.USER_STARTED_SHARING, joined.started, exclude=conn,
            )
            log.info("%s started location sharing in trip %s", conn.identity.name, trip_id)
        await self.router.emit_to_connection(conn, events.ACTIVE_MEMBERS_SNAPSHOT, joined.snapshot)

    async def check_membership(self, trip_id: str, user_id: str):
        # raises TripNotFound for a missing trip
        members = await self.oracle.get_members(trip_id)
        if user_id not in members:
            raise AccessDenied()

    # -------------------------
    # queries
    # -------------------------
    def active_members(self, trip_id: str) -> List[ActiveMember]:
        return [to_active_member(e) for e in self.registry.active_members(trip_id)]

    def is_sharing(self, trip_id: str, user_id: str) -> bool:
        return self.registry.get(trip_id, user_id) is not None

    def sharing_status(self, trip_id: str, user_id: str, trip_members_count: int) -> SharingStatusOut:
        return SharingStatusOut(
            trip_id=trip_id,
            user_id=user_id,
            is_sharing=self.is_sharing(trip_id, user_id),
            trip_members_count=trip_members_count,
            active_location_members_count=len(self.registry.active_members(trip_id)),
        )

    def stats(self) -> TrackingStatsOut:
        trips, users = self.registry.stats()
        return TrackingStatsOut(
            total_active_trips=trips,
            total_active_users=users,
            timestamp=datetime.now(timezone.utc),
        )
