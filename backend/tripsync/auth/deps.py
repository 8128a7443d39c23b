from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tripsync.auth.binder import IdentityBinder
from tripsync.auth.users import Identity
from tripsync.core.errors import AuthError

bearer = HTTPBearer(auto_error=False)


def get_binder(request: Request) -> IdentityBinder:
    return request.app.state.binder


def get_tracking(request: Request):
    return request.app.state.tracking


def get_oracle(request: Request):
    return request.app.state.oracle


def get_settings_store(request: Request):
    return request.app.state.location_settings


async def get_current_identity(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    binder: IdentityBinder = Depends(get_binder),
) -> Identity:
    token = creds.credentials if creds else None
    try:
        return await binder.bind(token)
    except AuthError as e:
        raise HTTPException(
            status_code=401,
            detail=e.reason,
            headers={"WWW-Authenticate": "Bearer"},
        )
