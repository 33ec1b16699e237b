from abc import ABC, abstractmethod
from datetime import datetime

from pymongo import ReturnDocument, DESCENDING

from repositories.base import unique_guard, update_ops
from utils.guards import parse_object_id


class AccountRepository(ABC):

    @abstractmethod
    async def get(self, account_id: str) -> dict | None: ...

    @abstractmethod
    async def find_by_email(self, email: str) -> dict | None: ...

    @abstractmethod
    async def find_by_account_id(self, user_account_id: str) -> dict | None: ...

    @abstractmethod
    async def account_id_exists(self, user_account_id: str) -> bool: ...

    @abstractmethod
    async def create(self, doc: dict) -> dict:
        """Raises UniqueConstraintViolation on a taken email."""

    @abstractmethod
    async def update_if(
        self,
        account_id: str,
        expected: dict,
        changes: dict,
        unset=(),
        session=None,
    ) -> dict | None:
        """
        Apply changes only while the stored document matches `expected`.
        Returns the updated document, or None when the guard did not hold.
        Raises UniqueConstraintViolation when a unique field collides.
        """

    @abstractmethod
    async def find_page(self, filters: dict, skip: int, limit: int) -> tuple[list, int]: ...

    @abstractmethod
    async def count(self, filters: dict) -> int: ...

    @abstractmethod
    async def emails_for_role(self, role: str) -> list[str]: ...


class MongoAccountRepository(AccountRepository):
    def __init__(self, db):
        self.collection = db.users

    async def get(self, account_id):
        return await self.collection.find_one({"_id": parse_object_id(account_id, "account id")})

    async def find_by_email(self, email):
        return await self.collection.find_one({"email": email.lower()})

    async def find_by_account_id(self, user_account_id):
        return await self.collection.find_one({"user_account_id": user_account_id})

    async def account_id_exists(self, user_account_id):
        doc = await self.collection.find_one({"user_account_id": user_account_id}, {"_id": 1})
        return doc is not None

    async def create(self, doc):
        doc = {**doc, "email": doc["email"].lower()}
        doc.setdefault("created_at", datetime.utcnow())
        doc.setdefault("updated_at", doc["created_at"])
        with unique_guard("email"):
            result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    async def update_if(self, account_id, expected, changes, unset=(), session=None):
        query = {"_id": parse_object_id(account_id, "account id"), **expected}
        with unique_guard("user_account_id"):
            return await self.collection.find_one_and_update(
                query,
                update_ops(changes, unset),
                return_document=ReturnDocument.AFTER,
                session=session,
            )

    async def find_page(self, filters, skip, limit):
        cursor = (
            self.collection.find(filters, {"password_hash": 0})
            .sort("created_at", DESCENDING)
            .skip(skip)
            .limit(limit)
        )
        items = await cursor.to_list(length=limit)
        total = await self.collection.count_documents(filters)
        return items, total

    async def count(self, filters):
        return await self.collection.count_documents(filters)

    async def emails_for_role(self, role):
        cursor = self.collection.find({"role": role}, {"email": 1})
        return [doc["email"] async for doc in cursor if doc.get("email")]
