import certifi
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient

from tripsync.core.config import settings

_client = None


def db():
    global _client
    if _client is None:
        url = settings.MONGO_URL
        if not url:
            raise RuntimeError("MONGO_URL not set. Create backend/.env with MONGO_URL=...")
        # Atlas (srv) needs the certifi bundle; a local mongod usually has no TLS
        if url.startswith("mongodb+srv://"):
            _client = AsyncIOMotorClient(url, tlsCAFile=certifi.where())
        else:
            _client = AsyncIOMotorClient(url)
    return _client[settings.MONGO_DB]


def doc_id(value: str):
    # documents created by the CRUD service use ObjectId keys; seeded fixtures may use plain strings
    if ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def close():
    global _client
    if _client is not None:
        _client.close()
        _client = None
