import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from tripsync.auth.binder import credential_from_websocket
from tripsync.core.errors import AuthError
from tripsync.realtime import events
from tripsync.schemas.location import ErrorEvent

log = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/location")
async def location_ws(ws: WebSocket):
    state = ws.app.state

    try:
        identity = await state.binder.bind(credential_from_websocket(ws))
    except AuthError as e:
        log.warning("websocket refused: %s", e.reason)
        await ws.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
        return
    except Exception:
        log.exception("websocket auth lookup failed")
        await ws.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    conn = await state.ws_manager.connect(ws, identity)
    log.info("%s connected with connection id %s", identity.name, conn.id)

    try:
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))

            # binary frames carry no "text" and are malformed like bad JSON
            frame = None
            raw = message.get("text")
            if raw is not None:
                try:
                    frame = json.loads(raw)
                except ValueError:
                    frame = None

            if not isinstance(frame, dict):
                await state.ws_manager.emit_to_connection(
                    conn, events.LOCATION_ERROR, ErrorEvent(message="Malformed message").wire()
                )
                continue

            await state.tracking.dispatch(conn, frame.get("event"), frame.get("data"))
    except WebSocketDisconnect:
        log.info("%s disconnected (%s)", identity.name, conn.id)
    finally:
        await state.tracking.on_disconnect(conn)
