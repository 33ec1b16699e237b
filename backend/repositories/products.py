from abc import ABC, abstractmethod
from datetime import datetime

from pymongo import ReturnDocument, DESCENDING

from repositories.base import unique_guard, update_ops
from utils.guards import parse_object_id


class ProductRepository(ABC):

    @abstractmethod
    async def get(self, product_id: str) -> dict | None: ...

    @abstractmethod
    async def get_by_slug(self, slug: str) -> dict | None: ...

    @abstractmethod
    async def slug_exists(self, slug: str) -> bool: ...

    @abstractmethod
    async def create(self, doc: dict) -> dict:
        """Raises UniqueConstraintViolation on a taken slug."""

    @abstractmethod
    async def update_if(
        self,
        product_id: str,
        expected: dict,
        changes: dict,
        unset=(),
        session=None,
    ) -> dict | None:
        """Conditional write; None when the product is absent or the guard failed."""

    @abstractmethod
    async def append(self, product_id: str, field: str, value) -> dict | None:
        """Push onto a list field."""

    @abstractmethod
    async def set_status_for_seller(
        self,
        seller_id: str,
        status: str,
        only_status: str | None = None,
        changes: dict | None = None,
        unset=(),
        session=None,
    ) -> int:
        """
        Set status on every product of the seller (or only those currently
        in `only_status`). Returns the number of products matched.
        """

    @abstractmethod
    async def remove_file_references(self, object_key: str) -> int:
        """Drop every image/file reference to the object. Returns products touched."""

    @abstractmethod
    async def find_page(self, filters: dict, skip: int, limit: int) -> tuple[list, int]: ...

    @abstractmethod
    async def find_many(self, product_ids: list, filters: dict | None = None) -> list: ...


class MongoProductRepository(ProductRepository):
    def __init__(self, db):
        self.collection = db.products

    async def get(self, product_id):
        return await self.collection.find_one({"_id": parse_object_id(product_id, "product id")})

    async def get_by_slug(self, slug):
        return await self.collection.find_one({"slug": slug})

    async def slug_exists(self, slug):
        return await self.collection.find_one({"slug": slug}, {"_id": 1}) is not None

    async def create(self, doc):
        doc = dict(doc)
        doc.setdefault("created_at", datetime.utcnow())
        doc.setdefault("updated_at", doc["created_at"])
        with unique_guard("slug"):
            result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    async def update_if(self, product_id, expected, changes, unset=(), session=None):
        query = {"_id": parse_object_id(product_id, "product id"), **expected}
        return await self.collection.find_one_and_update(
            query,
            update_ops(changes, unset),
            return_document=ReturnDocument.AFTER,
            session=session,
        )

    async def append(self, product_id, field, value):
        return await self.collection.find_one_and_update(
            {"_id": parse_object_id(product_id, "product id")},
            {"$push": {field: value}, "$set": {"updated_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )

    async def set_status_for_seller(
        self,
        seller_id,
        status,
        only_status=None,
        changes=None,
        unset=(),
        session=None,
    ):
        query = {"seller_id": seller_id}
        if only_status:
            query["status"] = only_status
        result = await self.collection.update_many(
            query,
            update_ops({"status": status, **(changes or {})}, unset),
            session=session,
        )
        return result.matched_count

    async def remove_file_references(self, object_key):
        touched = 0
        now = datetime.utcnow()

        result = await self.collection.update_many(
            {"images.key": object_key},
            {"$pull": {"images": {"key": object_key}}, "$set": {"updated_at": now}},
        )
        touched += result.modified_count

        result = await self.collection.update_many(
            {"kit_files.key": object_key},
            {"$pull": {"kit_files": {"key": object_key}}, "$set": {"updated_at": now}},
        )
        touched += result.modified_count

        for field in ("kit_main_file", "details.zip_file", "details.preview_file"):
            result = await self.collection.update_many(
                {f"{field}.key": object_key},
                {"$unset": {field: ""}, "$set": {"updated_at": now}},
            )
            touched += result.modified_count

        return touched

    async def find_page(self, filters, skip, limit):
        cursor = (
            self.collection.find(filters)
            .sort("created_at", DESCENDING)
            .skip(skip)
            .limit(limit)
        )
        items = await cursor.to_list(length=limit)
        total = await self.collection.count_documents(filters)
        return items, total

    async def find_many(self, product_ids, filters=None):
        ids = [parse_object_id(pid, "product id") for pid in product_ids]
        cursor = self.collection.find({"_id": {"$in": ids}, **(filters or {})})
        return await cursor.to_list(length=len(ids))
