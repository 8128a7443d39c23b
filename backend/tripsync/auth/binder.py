"""Connection identity binding.

A WebSocket is bound to exactly one user, once, before any trip-scoped
event is accepted. The credential is the same bearer JWT the REST API
takes; it can arrive as a ``token`` query parameter (browsers cannot set
headers on a WebSocket handshake) or as an ``Authorization`` header.
"""
import logging
from typing import Optional

from fastapi import WebSocket
from jose import jwt, JWTError
from jose.exceptions import ExpiredSignatureError

from tripsync.auth.users import Identity, UserDirectory
from tripsync.core.config import settings
from tripsync.core.errors import AuthError

log = logging.getLogger(__name__)


def decode_token(token: Optional[str]) -> str:
    """Verify *token* and return the user id from its ``sub`` claim."""
    if not token:
        raise AuthError(AuthError.MISSING)

    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except ExpiredSignatureError:
        raise AuthError(AuthError.EXPIRED)
    except JWTError:
        raise AuthError(AuthError.INVALID)

    sub = payload.get("sub")
    if not sub:
        raise AuthError(AuthError.INVALID)
    return str(sub)


def credential_from_websocket(ws: WebSocket) -> Optional[str]:
    token = ws.query_params.get("token")
    if token:
        return token.strip()

    auth = ws.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth.split(" ", 1)[1].strip()
    return None


class IdentityBinder:
    def __init__(self, users: UserDirectory):
        self.users = users

    async def bind(self, credential: Optional[str]) -> Identity:
        user_id = decode_token(credential)

        user = await self.users.get_user(user_id)
        if user is None or not user.is_active:
            log.warning("refusing connection for unknown or inactive user %s", user_id)
            raise AuthError(AuthError.INACTIVE)

        return user.identity()
