from abc import ABC, abstractmethod
from datetime import datetime

from pymongo import ReturnDocument, DESCENDING


class OtpRepository(ABC):

    @abstractmethod
    async def delete_unused(self, email: str, purpose: str) -> int: ...

    @abstractmethod
    async def create(self, doc: dict) -> dict: ...

    @abstractmethod
    async def find_live(self, email: str, purpose: str, now: datetime) -> dict | None:
        """Newest unused, unexpired code for (email, purpose)."""

    @abstractmethod
    async def claim(self, otp_id) -> dict | None:
        """Flip is_used False -> True. None if someone else got there first."""

    @abstractmethod
    async def release(self, otp_id) -> None:
        """Undo a claim whose password change failed."""

    @abstractmethod
    async def record_failure(self, otp_id) -> int:
        """Count one wrong guess. Returns the attempts so far (0 if the code is gone)."""

    @abstractmethod
    async def discard(self, otp_id) -> None: ...


class MongoOtpRepository(OtpRepository):
    def __init__(self, db):
        self.collection = db.otp_codes

    async def delete_unused(self, email, purpose):
        result = await self.collection.delete_many(
            {"email": email, "purpose": purpose, "is_used": False}
        )
        return result.deleted_count

    async def create(self, doc):
        doc = dict(doc)
        doc.setdefault("created_at", datetime.utcnow())
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    async def find_live(self, email, purpose, now):
        return await self.collection.find_one(
            {
                "email": email,
                "purpose": purpose,
                "is_used": False,
                "expires_at": {"$gt": now},
            },
            sort=[("created_at", DESCENDING)],
        )

    async def claim(self, otp_id):
        return await self.collection.find_one_and_update(
            {"_id": otp_id, "is_used": False},
            {"$set": {"is_used": True, "used_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )

    async def release(self, otp_id):
        await self.collection.update_one(
            {"_id": otp_id, "is_used": True},
            {"$set": {"is_used": False}, "$unset": {"used_at": ""}},
        )

    async def record_failure(self, otp_id):
        doc = await self.collection.find_one_and_update(
            {"_id": otp_id},
            {"$inc": {"attempts": 1}},
            return_document=ReturnDocument.AFTER,
        )
        return doc["attempts"] if doc else 0

    async def discard(self, otp_id):
        await self.collection.delete_one({"_id": otp_id})
