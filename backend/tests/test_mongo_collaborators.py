"""Tests for the Mongo-backed trip, user and settings lookups (database mocked)."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from bson import ObjectId

from tripsync.auth.users import MongoUserDirectory
from tripsync.core.errors import TripNotFound
from tripsync.db.location_settings import MongoLocationSettingsStore, clamp_settings
from tripsync.db.mongo import doc_id
from tripsync.membership.oracle import MongoMembershipOracle
from tripsync.schemas.location import LocationSettingsIn

TRIP_ID = ObjectId()
CREATOR = ObjectId()
MEMBER = ObjectId()


def mock_collection(module: str, **methods):
    collection = MagicMock()
    for name, value in methods.items():
        setattr(collection, name, value)
    database = MagicMock()
    database.__getitem__.return_value = collection
    return patch(f"{module}.db", return_value=database), collection


def test_doc_id_converts_object_id_strings_only():
    assert doc_id(str(TRIP_ID)) == TRIP_ID
    assert doc_id("trip-1") == "trip-1"


class TestMongoMembershipOracle:
    @pytest.mark.asyncio
    async def test_get_trip_reads_members_and_creator(self):
        doc = {"_id": TRIP_ID, "createdBy": CREATOR, "members": [CREATOR, MEMBER]}
        patcher, collection = mock_collection("tripsync.membership.oracle", find_one=AsyncMock(return_value=doc))

        with patcher:
            trip = await MongoMembershipOracle().get_trip(str(TRIP_ID))

        assert trip.trip_id == str(TRIP_ID)
        assert trip.creator_id == str(CREATOR)
        assert trip.members == {str(CREATOR), str(MEMBER)}
        query = collection.find_one.call_args.args[0]
        assert query == {"_id": TRIP_ID}

    @pytest.mark.asyncio
    async def test_is_member(self):
        doc = {"_id": TRIP_ID, "createdBy": CREATOR, "members": [CREATOR, MEMBER]}
        patcher, _ = mock_collection("tripsync.membership.oracle", find_one=AsyncMock(return_value=doc))

        with patcher:
            oracle = MongoMembershipOracle()
            assert await oracle.is_member(str(TRIP_ID), str(MEMBER)) is True
            assert await oracle.is_member(str(TRIP_ID), str(ObjectId())) is False

    @pytest.mark.asyncio
    async def test_missing_trip(self):
        patcher, _ = mock_collection("tripsync.membership.oracle", find_one=AsyncMock(return_value=None))

        with patcher:
            oracle = MongoMembershipOracle()
            assert await oracle.get_trip("nope") is None
            assert await oracle.is_member("nope", str(MEMBER)) is False
            with pytest.raises(TripNotFound):
                await oracle.get_members("nope")


class TestMongoUserDirectory:
    @pytest.mark.asyncio
    async def test_reads_identity_fields(self):
        doc = {"_id": MEMBER, "name": "Bob", "avatar": "bob.png", "isActive": False}
        patcher, _ = mock_collection("tripsync.auth.users", find_one=AsyncMock(return_value=doc))

        with patcher:
            user = await MongoUserDirectory().get_user(str(MEMBER))

        assert user.user_id == str(MEMBER)
        assert user.is_active is False
        assert user.identity().name == "Bob"
        assert user.identity().avatar == "bob.png"

    @pytest.mark.asyncio
    async def test_missing_user(self):
        patcher, _ = mock_collection("tripsync.auth.users", find_one=AsyncMock(return_value=None))

        with patcher:
            assert await MongoUserDirectory().get_user("ghost") is None


class TestMongoLocationSettingsStore:
    @pytest.mark.asyncio
    async def test_defaults_when_nothing_stored(self):
        patcher, _ = mock_collection("tripsync.db.location_settings", find_one=AsyncMock(return_value=None))

        with patcher:
            value = await MongoLocationSettingsStore().get("trip-1")

        assert value.update_interval == 10000
        assert value.location_sharing_enabled is True

    @pytest.mark.asyncio
    async def test_save_upserts_by_trip(self):
        patcher, collection = mock_collection("tripsync.db.location_settings", update_one=AsyncMock())
        value = clamp_settings(LocationSettingsIn(update_interval=7000, location_sharing_enabled=True))

        with patcher:
            await MongoLocationSettingsStore().save("trip-1", value)

        query, update = collection.update_one.call_args.args
        assert query == {"trip_id": "trip-1"}
        assert update["$set"]["update_interval"] == 7000
        assert update["$set"]["trip_id"] == "trip-1"
        assert collection.update_one.call_args.kwargs == {"upsert": True}

    @pytest.mark.asyncio
    async def test_stored_document_round_trips(self):
        stored = {
            "location_sharing_enabled": False,
            "update_interval": 20000,
            "high_accuracy_enabled": True,
            "background_tracking": False,
        }
        patcher, _ = mock_collection("tripsync.db.location_settings", find_one=AsyncMock(return_value=stored))

        with patcher:
            value = await MongoLocationSettingsStore().get("trip-1")

        assert value.location_sharing_enabled is False
        assert value.update_interval == 20000
