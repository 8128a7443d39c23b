import logging
from typing import Any, Dict, Optional, Set
from uuid import uuid4

from fastapi import WebSocket

from tripsync.auth.users import Identity

log = logging.getLogger(__name__)


def trip_group(trip_id: str) -> str:
    return f"trip_{trip_id}"


class Connection:
    """One authenticated socket. ``id`` is the key every other component uses."""

    def __init__(self, websocket: WebSocket, identity: Identity):
        self.id = uuid4().hex
        self.websocket = websocket
        self.identity = identity
        self.groups: Set[str] = set()
        self.closed = False

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    async def send(self, event: str, data: Any) -> bool:
        if self.closed:
            return False
        try:
            await self.websocket.send_json({"event": event, "data": data})
            return True
        except Exception:
            log.warning("send of %s to connection %s failed", event, self.id, exc_info=True)
            return False

    def __repr__(self):
        return f"<Connection {self.id} user={self.user_id}>"


class WSManager:
    def __init__(self):
        self.connections: Dict[str, Connection] = {}
        self.rooms: Dict[str, Set[str]] = {}

    def register(self, websocket: WebSocket, identity: Identity) -> Connection:
        conn = Connection(websocket, identity)
        self.connections[conn.id] = conn
        return conn

    async def connect(self, websocket: WebSocket, identity: Identity) -> Connection:
        await websocket.accept()
        return self.register(websocket, identity)

    def disconnect(self, conn: Connection):
        for group in list(conn.groups):
            self.leave(conn, group)
        self.connections.pop(conn.id, None)

    def join(self, conn: Connection, group: str):
        self.rooms.setdefault(group, set()).add(conn.id)
        conn.groups.add(group)

    def leave(self, conn: Connection, group: str):
        conn.groups.discard(group)
        if group in self.rooms:
            self.rooms[group].discard(conn.id)
            if not self.rooms[group]:
                self.rooms.pop(group, None)

    def members(self, group: str) -> Set[str]:
        return set(self.rooms.get(group, set()))

    async def emit_to_connection(self, conn: Connection, event: str, data: Any):
        if not await conn.send(event, data):
            self._drop(conn)

    async def emit_to_group(self, group: str, event: str, data: Any, exclude: Optional[Connection] = None):
        skip = exclude.id if exclude else None
        for conn_id in list(self.rooms.get(group, set())):
            if conn_id == skip:
                continue
            conn = self.connections.get(conn_id)
            if conn is None:
                continue
            if not await conn.send(event, data):
                self._drop(conn)

    def _drop(self, conn: Connection):
        # its receive loop will notice the dead socket and run the reaper
        for group in list(conn.groups):
            self.leave(conn, group)
