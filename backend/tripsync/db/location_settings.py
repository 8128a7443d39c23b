import math
import time
from typing import Any, Optional, Protocol

from tripsync.core.config import settings
from tripsync.db.mongo import db
from tripsync.schemas.location import LocationSettings, LocationSettingsIn


def default_settings() -> LocationSettings:
    return LocationSettings(update_interval=settings.LOCATION_UPDATE_INTERVAL_MS)


def _as_number(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    except OverflowError:
        # integers past float range clamp like infinities
        return math.inf if value > 0 else -math.inf
    if number != number or number == 0:  # NaN and 0 fall back to the default
        return None
    return number


def clamp_settings(body: LocationSettingsIn) -> LocationSettings:
    interval = _as_number(body.update_interval)
    if interval is None:
        interval = settings.LOCATION_UPDATE_INTERVAL_MS

    interval = max(
        settings.LOCATION_UPDATE_INTERVAL_MIN_MS,
        min(settings.LOCATION_UPDATE_INTERVAL_MAX_MS, interval),
    )

    return LocationSettings(
        location_sharing_enabled=bool(body.location_sharing_enabled),
        update_interval=int(interval),
        high_accuracy_enabled=bool(body.high_accuracy_enabled),
    )


class LocationSettingsStore(Protocol):
    async def get(self, trip_id: str) -> LocationSettings:
        ...

    async def save(self, trip_id: str, value: LocationSettings) -> LocationSettings:
        ...


class MongoLocationSettingsStore:
    def __init__(self, collection: str = "trip_location_settings"):
        self.collection = collection

    async def get(self, trip_id: str) -> LocationSettings:
        doc = await db()[self.collection].find_one({"trip_id": trip_id}, {"_id": 0, "trip_id": 0, "updated_at_ms": 0})
        if not doc:
            return default_settings()
        return LocationSettings.model_validate(doc)

    async def save(self, trip_id: str, value: LocationSettings) -> LocationSettings:
        doc = value.model_dump()
        doc["updated_at_ms"] = int(time.time() * 1000)

        await db()[self.collection].update_one(
            {"trip_id": trip_id},
            {"$set": {"trip_id": trip_id, **doc}},
            upsert=True,
        )
        return value
