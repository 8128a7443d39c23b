import logging

from fastapi import APIRouter, Depends, HTTPException

from tripsync.auth.deps import get_current_identity, get_oracle, get_settings_store, get_tracking
from tripsync.auth.users import Identity
from tripsync.db.location_settings import LocationSettingsStore, clamp_settings
from tripsync.membership.oracle import MembershipOracle, TripRef
from tripsync.realtime.tracking import LocationTrackingService
from tripsync.schemas.location import (
    ActiveMembersOut,
    LocationSettingsIn,
    SharingStatusOut,
    TrackingStatsOut,
    TripSettingsOut,
)

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/location", tags=["location"])


async def load_trip_for_member(trip_id: str, user: Identity, oracle: MembershipOracle) -> TripRef:
    trip = await oracle.get_trip(trip_id)
    if not trip:
        raise HTTPException(status_code=404, detail="Trip not found")

    if user.user_id not in trip.members:
        raise HTTPException(status_code=403, detail="Access denied to this trip")
    return trip


@router.get("/trip/{trip_id}/active", response_model=ActiveMembersOut)
async def get_active_members(
    trip_id: str,
    user: Identity = Depends(get_current_identity),
    oracle: MembershipOracle = Depends(get_oracle),
    tracking: LocationTrackingService = Depends(get_tracking),
):
    await load_trip_for_member(trip_id, user, oracle)

    members = tracking.active_members(trip_id)
    return ActiveMembersOut(trip_id=trip_id, active_members=members, count=len(members))


@router.get("/trip/{trip_id}/status", response_model=SharingStatusOut)
async def get_sharing_status(
    trip_id: str,
    user: Identity = Depends(get_current_identity),
    oracle: MembershipOracle = Depends(get_oracle),
    tracking: LocationTrackingService = Depends(get_tracking),
):
    trip = await load_trip_for_member(trip_id, user, oracle)
    return tracking.sharing_status(trip_id, user.user_id, len(trip.members))


@router.get("/trip/{trip_id}/settings", response_model=TripSettingsOut)
async def get_location_settings(
    trip_id: str,
    user: Identity = Depends(get_current_identity),
    oracle: MembershipOracle = Depends(get_oracle),
    store: LocationSettingsStore = Depends(get_settings_store),
):
    await load_trip_for_member(trip_id, user, oracle)
    return TripSettingsOut(trip_id=trip_id, settings=await store.get(trip_id))


@router.put("/trip/{trip_id}/settings", response_model=TripSettingsOut)
async def update_location_settings(
    trip_id: str,
    body: LocationSettingsIn,
    user: Identity = Depends(get_current_identity),
    oracle: MembershipOracle = Depends(get_oracle),
    store: LocationSettingsStore = Depends(get_settings_store),
):
    trip = await oracle.get_trip(trip_id)
    if not trip:
        raise HTTPException(status_code=404, detail="Trip not found")

    if trip.creator_id != user.user_id:
        raise HTTPException(status_code=403, detail="Only trip creator can modify location settings")

    saved = await store.save(trip_id, clamp_settings(body))
    log.info("location settings for trip %s updated by %s", trip_id, user.user_id)
    return TripSettingsOut(trip_id=trip_id, settings=saved)


@router.get("/stats", response_model=TrackingStatsOut)
async def get_tracking_stats(
    user: Identity = Depends(get_current_identity),
    tracking: LocationTrackingService = Depends(get_tracking),
):
    return tracking.stats()
