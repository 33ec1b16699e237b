from abc import ABC, abstractmethod
from datetime import datetime

from pymongo import ReturnDocument


class EntitlementRepository(ABC):

    @abstractmethod
    async def grant(self, buyer_id: str, product_id: str, granted_by: str) -> dict:
        """Idempotent: granting twice keeps the first grant."""

    @abstractmethod
    async def has(self, buyer_id: str, product_id: str) -> bool: ...


class MongoEntitlementRepository(EntitlementRepository):
    def __init__(self, db):
        self.collection = db.entitlements

    async def grant(self, buyer_id, product_id, granted_by):
        return await self.collection.find_one_and_update(
            {"buyer_id": buyer_id, "product_id": product_id},
            {"$setOnInsert": {"granted_by": granted_by, "granted_at": datetime.utcnow()}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    async def has(self, buyer_id, product_id):
        doc = await self.collection.find_one(
            {"buyer_id": buyer_id, "product_id": product_id}, {"_id": 1}
        )
        return doc is not None
