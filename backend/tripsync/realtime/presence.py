"""In-memory registry of who is sharing their location in which trip.

Layout is ``trip_id -> user_id -> PresenceEntry``. A trip key exists only
while at least one member is sharing; removing the last entry removes the
trip. Nothing here is persisted: a restarted server starts empty and
clients re-establish sharing when they reconnect.

The registry methods are synchronous and never await, so each one is
atomic on the event loop. Operations that need an await in the middle
(the membership lookup) hold ``registry.lock(trip_id, user_id)`` for the
whole read-check-write sequence.
"""
import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from tripsync.auth.users import Identity


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Location:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None


@dataclass
class PresenceEntry:
    user_id: str
    display_name: str
    avatar: Optional[str]
    connection_id: str
    last_update: datetime = field(default_factory=utcnow)
    last_location: Optional[Location] = None
    # kept for pause support; every entry in the registry is active today
    active: bool = True


TripPresenceSet = Dict[str, PresenceEntry]


class KeyedLocks:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: Dict[Tuple[str, str], Tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def hold(self, key: Tuple[str, str]):
        lock, users = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    def __len__(self):
        return len(self._locks)


class PresenceRegistry:
    def __init__(self):
        self._trips: Dict[str, TripPresenceSet] = {}
        self._locks = KeyedLocks()

    def lock(self, trip_id: str, user_id: str):
        return self._locks.hold((trip_id, user_id))

    def get(self, trip_id: str, user_id: str) -> Optional[PresenceEntry]:
        return self._trips.get(trip_id, {}).get(user_id)

    def join(self, trip_id: str, identity: Identity, connection_id: str,
             now: Optional[datetime] = None) -> Tuple[PresenceEntry, bool]:
        """Insert or refresh the (trip, user) entry. Returns ``(entry, created)``."""
        now = now or utcnow()
        members = self._trips.setdefault(trip_id, {})

        entry = members.get(identity.user_id)
        if entry is not None:
            # reconnect or repeated start: same entry, new socket
            entry.connection_id = connection_id
            entry.last_update = now
            entry.active = True
            return entry, False

        entry = PresenceEntry(
            user_id=identity.user_id,
            display_name=identity.name,
            avatar=identity.avatar,
            connection_id=connection_id,
            last_update=now,
        )
        members[identity.user_id] = entry
        return entry, True

    def record_location(self, trip_id: str, user_id: str, location: Location,
                        timestamp: Optional[datetime] = None) -> Optional[PresenceEntry]:
        entry = self.get(trip_id, user_id)
        if entry is None:
            return None
        entry.last_location = location
        entry.last_update = timestamp or utcnow()
        return entry

    def remove(self, trip_id: str, user_id: str) -> Optional[PresenceEntry]:
        members = self._trips.get(trip_id)
        if not members:
            return None
        entry = members.pop(user_id, None)
        if not members:
            self._trips.pop(trip_id, None)
        return entry

    def entries_for_connection(self, connection_id: str) -> List[Tuple[str, PresenceEntry]]:
        return [
            (trip_id, entry)
            for trip_id, members in self._trips.items()
            for entry in members.values()
            if entry.connection_id == connection_id
        ]

    def active_members(self, trip_id: str, exclude_user: Optional[str] = None) -> List[PresenceEntry]:
        return [
            entry
            for entry in self._trips.get(trip_id, {}).values()
            if entry.active and entry.user_id != exclude_user
        ]

    def trip_ids(self) -> List[str]:
        return list(self._trips)

    def stats(self) -> Tuple[int, int]:
        return len(self._trips), sum(len(m) for m in self._trips.values())

    def clear(self):
        self._trips.clear()

    def __contains__(self, trip_id: str) -> bool:
        return trip_id in self._trips
