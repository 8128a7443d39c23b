import logging
from typing import List, Tuple

from tripsync.realtime import events
from tripsync.realtime.manager import Connection, WSManager, trip_group
from tripsync.realtime.presence import PresenceEntry, PresenceRegistry
from tripsync.schemas.location import UserEvent, UserRef

log = logging.getLogger(__name__)


def entry_user(entry: PresenceEntry) -> UserRef:
    return UserRef(id=entry.user_id, name=entry.display_name, avatar=entry.avatar)


class DisconnectReaper:
    """Removes a lost connection from every trip it was sharing in."""

    def __init__(self, registry: PresenceRegistry, router: WSManager):
        self.registry = registry
        self.router = router

    async def reap(self, conn: Connection) -> int:
        if conn.closed:
            return 0
        # set before anything awaits: a start for this connection that is still
        # waiting on its membership lookup will see it and back out
        conn.closed = True

        removed: List[Tuple[str, PresenceEntry]] = []
        for trip_id, entry in self.registry.entries_for_connection(conn.id):
            async with self.registry.lock(trip_id, entry.user_id):
                current = self.registry.get(trip_id, entry.user_id)
                # a reconnect may have taken the entry over in the meantime
                if current is None or current.connection_id != conn.id:
                    continue
                self.registry.remove(trip_id, entry.user_id)
            removed.append((trip_id, current))

        self.router.disconnect(conn)

        for trip_id, entry in removed:
            payload = UserEvent(
                user=entry_user(entry),
                message=f"{entry.display_name} disconnected",
            ).wire()
            try:
                await self.router.emit_to_group(trip_group(trip_id), events.USER_DISCONNECTED, payload)
            except Exception:
                log.exception("could not notify trip %s about %s disconnecting", trip_id, entry.user_id)

        log.info(
            "connection %s of %s closed, removed from %d trip(s)",
            conn.id, conn.identity.name, len(removed),
        )
        return len(removed)
