from abc import ABC, abstractmethod
from datetime import datetime

from pymongo import ReturnDocument, ASCENDING

from repositories.base import update_ops


class AssetRepository(ABC):

    @abstractmethod
    async def get(self, object_key: str) -> dict | None: ...

    @abstractmethod
    async def upsert(self, object_key: str, doc: dict) -> dict:
        """Record (or re-record) the metadata of an uploaded object."""

    @abstractmethod
    async def update_if(self, object_key: str, expected: dict, changes: dict) -> dict | None: ...

    @abstractmethod
    async def delete(self, object_key: str) -> bool: ...

    @abstractmethod
    async def list_by_status(self, status: str, updated_before: datetime, limit: int) -> list: ...


class MongoAssetRepository(AssetRepository):
    def __init__(self, db):
        self.collection = db.assets

    async def get(self, object_key):
        return await self.collection.find_one({"object_key": object_key})

    async def upsert(self, object_key, doc):
        now = datetime.utcnow()
        return await self.collection.find_one_and_update(
            {"object_key": object_key},
            {
                "$set": {**doc, "object_key": object_key, "updated_at": now},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    async def update_if(self, object_key, expected, changes):
        return await self.collection.find_one_and_update(
            {"object_key": object_key, **expected},
            update_ops(changes),
            return_document=ReturnDocument.AFTER,
        )

    async def delete(self, object_key):
        result = await self.collection.delete_one({"object_key": object_key})
        return result.deleted_count == 1

    async def list_by_status(self, status, updated_before, limit):
        cursor = (
            self.collection.find({"status": status, "updated_at": {"$lt": updated_before}})
            .sort("updated_at", ASCENDING)
            .limit(limit)
        )
        return await cursor.to_list(length=limit)
