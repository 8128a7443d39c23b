from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from tripsync.core.config import settings


def create_access_token(user_id: str, expire_min: Optional[int] = None, extra: Optional[dict] = None) -> str:
    # token issuance belongs to the auth service; this mints compatible tokens for dev + tests
    now = datetime.now(timezone.utc)
    minutes = settings.JWT_EXPIRE_MIN if expire_min is None else expire_min

    payload = dict(extra or {})
    payload["sub"] = str(user_id)
    payload["iat"] = int(now.timestamp())
    payload["exp"] = int((now + timedelta(minutes=minutes)).timestamp())

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)
