from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# -------------------------
# client -> server events
# -------------------------
class TripEventIn(CamelModel):
    trip_id: str = Field(min_length=1)


class SendLocationIn(TripEventIn):
    # coordinates are checked by validate_coordinates so that bools, strings
    # and NaN are all reported as invalid locations rather than schema errors
    latitude: Any = None
    longitude: Any = None
    accuracy: Optional[float] = Field(default=None, ge=0)
    timestamp: Optional[datetime] = None

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


# -------------------------
# server -> client payloads
# -------------------------
class UserRef(CamelModel):
    id: str
    name: str
    avatar: Optional[str] = None


class MemberLocation(CamelModel):
    latitude: float
    longitude: float
    accuracy: Optional[float] = None


class LocationOut(MemberLocation):
    timestamp: datetime


class ActiveMember(UserRef):
    last_update: datetime
    location: Optional[MemberLocation] = None


class UserEvent(CamelModel):
    user: UserRef
    message: Optional[str] = None


class LocationEvent(CamelModel):
    user: UserRef
    location: LocationOut


class ActiveMembersSnapshot(CamelModel):
    active_members: List[ActiveMember]


class ErrorEvent(CamelModel):
    message: str


# -------------------------
# HTTP query surface
# -------------------------
class ActiveMembersOut(CamelModel):
    trip_id: str
    active_members: List[ActiveMember]
    count: int


class SharingStatusOut(CamelModel):
    trip_id: str
    user_id: str
    is_sharing: bool
    trip_members_count: int
    active_location_members_count: int


class TrackingStatsOut(CamelModel):
    total_active_trips: int
    total_active_users: int
    timestamp: datetime


class LocationSettings(CamelModel):
    location_sharing_enabled: bool = True
    update_interval: int
    high_accuracy_enabled: bool = True
    background_tracking: bool = False


class LocationSettingsIn(CamelModel):
    # coerced and clamped by clamp_settings, never rejected
    location_sharing_enabled: Any = None
    update_interval: Any = None
    high_accuracy_enabled: Any = None


class TripSettingsOut(CamelModel):
    trip_id: str
    settings: LocationSettings
