"""Trip membership lookups.

Trips are owned by the trip CRUD service; this module only reads them.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol, Set

from tripsync.core.errors import TripNotFound
from tripsync.db.mongo import db, doc_id

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TripRef:
    trip_id: str
    creator_id: Optional[str]
    members: Set[str] = field(default_factory=set)


class MembershipOracle(Protocol):
    async def get_trip(self, trip_id: str) -> Optional[TripRef]:
        ...

    async def get_members(self, trip_id: str) -> Set[str]:
        """Return member user ids, raising TripNotFound if the trip is missing."""
        ...

    async def is_member(self, trip_id: str, user_id: str) -> bool:
        """A missing trip has no members."""
        ...


class MongoMembershipOracle:
    def __init__(self, collection: str = "trips"):
        self.collection = collection

    async def get_trip(self, trip_id: str) -> Optional[TripRef]:
        doc = await db()[self.collection].find_one(
            {"_id": doc_id(trip_id)},
            {"members": 1, "createdBy": 1},
        )
        if not doc:
            return None

        creator = doc.get("createdBy")
        return TripRef(
            trip_id=str(doc["_id"]),
            creator_id=str(creator) if creator is not None else None,
            members={str(m) for m in doc.get("members") or []},
        )

    async def get_members(self, trip_id: str) -> Set[str]:
        trip = await self.get_trip(trip_id)
        if trip is None:
            raise TripNotFound()
        return set(trip.members)

    async def is_member(self, trip_id: str, user_id: str) -> bool:
        try:
            members = await self.get_members(trip_id)
        except TripNotFound:
            log.debug("membership check for missing trip %s", trip_id)
            return False
        return str(user_id) in members
