from dataclasses import dataclass
from typing import Optional, Protocol

from tripsync.db.mongo import db, doc_id


@dataclass(frozen=True)
class Identity:
    user_id: str
    name: str
    avatar: Optional[str] = None


@dataclass(frozen=True)
class UserRecord:
    user_id: str
    name: str
    avatar: Optional[str]
    is_active: bool

    def identity(self) -> Identity:
        return Identity(user_id=self.user_id, name=self.name, avatar=self.avatar)


class UserDirectory(Protocol):
    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...


class MongoUserDirectory:
    def __init__(self, collection: str = "users"):
        self.collection = collection

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        doc = await db()[self.collection].find_one(
            {"_id": doc_id(user_id)},
            {"name": 1, "avatar": 1, "isActive": 1},
        )
        if not doc:
            return None

        return UserRecord(
            user_id=str(doc["_id"]),
            name=doc.get("name") or "",
            avatar=doc.get("avatar"),
            is_active=doc.get("isActive", True),
        )
