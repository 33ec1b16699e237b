import logging
import re
from datetime import datetime

from bson import ObjectId

from models.asset import AssetRole, AttachAssetRequest, MediaKind, StorageRealm
from models.product import (
    ProductCreate,
    ProductStatus,
    ProductType,
    ProductUpdate,
    SELLER_SETTABLE_STATUSES,
    validate_placement,
    validate_pricing,
)
from models.user import Role
from repositories.accounts import AccountRepository
from repositories.products import ProductRepository
from services.assets import AssetAccessController
from services.notifications import NotificationKind, Notifier, deliver
from utils.errors import (
    AlreadyApproved,
    AlreadyRejected,
    BadRequest,
    ExhaustedRetries,
    IncompatibleAsset,
    InvalidPlacement,
    NotFound,
    StateConflict,
    UniqueConstraintViolation,
    Unauthorized,
)
from utils.guards import assert_active_seller, parse_object_id, require_reason
from utils.slug import generate_unique_slug, make_slug

logger = logging.getLogger(__name__)

SLUG_INSERT_ATTEMPTS = 3

# set only through attach_asset
FILE_SLOTS = ("zip_file", "preview_file")

PUBLIC_FILTER = {
    "status": ProductStatus.ACTIVE.value,
    "is_admin_approved": True,
}

# query param -> stored field; all of these only narrow
NARROWING_FIELDS = {
    "category_id": "category_id",
    "sub_category_id": "sub_category_id",
    "item_id": "item_id",
    "kit_id": "kit_id",
    "seller_id": "seller_id",
    "type": "type",
}


def build_product_query(filters: dict, base: dict | None = None) -> dict:
    query = dict(base or {})
    for param, field in NARROWING_FIELDS.items():
        value = filters.get(param)
        if value:
            query[field] = value
    if filters.get("name"):
        query["name"] = {"$regex": re.escape(filters["name"]), "$options": "i"}
    return query


class CatalogService:
    def __init__(
        self,
        products: ProductRepository,
        accounts: AccountRepository,
        assets: AssetAccessController,
        notifier: Notifier,
        audit,
    ):
        self.products = products
        self.accounts = accounts
        self.assets = assets
        self.notifier = notifier
        self.audit = audit

    # =====================================================
    # CREATE
    # =====================================================
    async def create_product(self, seller: dict, data: ProductCreate) -> dict:
        assert_active_seller(seller)
        is_kit = validate_placement(data)
        validate_pricing(data)

        details = data.details.model_dump(mode="json")
        product_type = details.pop("type")

        doc = data.model_dump(mode="json", exclude={"details", "is_kit_product"})
        doc.update({
            "type": product_type,
            "details": details,
            "is_kit_product": is_kit,
            "seller_id": str(seller["_id"]),
            "status": ProductStatus.PENDING.value,
            "is_admin_approved": False,
            "is_admin_rejected": False,
            "images": [],
            "related_product_ids": [],
        })
        if is_kit:
            doc["kit_files"] = []

        base_slug = make_slug(data.name)
        for _ in range(SLUG_INSERT_ATTEMPTS):
            doc["slug"] = await generate_unique_slug(base_slug, self.products.slug_exists)
            try:
                product = await self.products.create(doc)
            except UniqueConstraintViolation:
                logger.warning("PRODUCT_SLUG_CONFLICT slug=%s", doc["slug"])
                continue
            logger.info("PRODUCT_CREATED product=%s seller=%s", product["_id"], doc["seller_id"])
            return product

        raise ExhaustedRetries("Could not allocate a unique product slug")

    # =====================================================
    # EDIT (content changes go back to moderation)
    # =====================================================
    async def update_product(self, seller: dict, product_id: str, data: ProductUpdate) -> dict:
        assert_active_seller(seller)
        product = await self._owned_product(seller, product_id)
        if product.get("status") == ProductStatus.DELETED.value:
            raise StateConflict("Deleted products cannot be edited")

        merged = ProductCreate.model_validate({
            **self._editable_fields(product),
            **data.model_dump(mode="json", exclude_unset=True),
        })
        is_kit = validate_placement(merged)
        validate_pricing(merged)
        if is_kit != bool(product.get("is_kit_product")):
            raise InvalidPlacement("A product cannot switch between kit and standard placement")

        details = merged.details.model_dump(mode="json")
        if details.pop("type") != product.get("type"):
            raise BadRequest("Product type cannot change")
        stored_details = product.get("details") or {}
        for slot in FILE_SLOTS:
            if slot in stored_details:
                details[slot] = stored_details[slot]

        changes = merged.model_dump(mode="json", exclude={"details", "is_kit_product"})
        changes.update({
            "details": details,
            "status": ProductStatus.PENDING.value,
            "is_admin_approved": False,
            "is_admin_rejected": False,
        })
        updated = await self.products.update_if(
            product_id,
            {"seller_id": product["seller_id"]},
            changes,
            unset=(
                "admin_approved_at",
                "admin_approved_by",
                "admin_rejection_reason",
                "admin_rejected_at",
                "admin_rejected_by",
                "inactive_reason",
            ),
        )
        if updated is None:
            raise NotFound("Product not found")

        logger.info("PRODUCT_UPDATED product=%s seller=%s", product_id, product["seller_id"])
        return updated

    @staticmethod
    def _editable_fields(product: dict) -> dict:
        fields = {
            name: product[name]
            for name in ProductCreate.model_fields
            if name not in ("details", "is_kit_product") and product.get(name) is not None
        }
        details = {
            k: v for k, v in (product.get("details") or {}).items() if k not in FILE_SLOTS
        }
        fields["details"] = {**details, "type": product.get("type")}
        return fields

    # =====================================================
    # MODERATION
    # =====================================================
    async def approve_product(self, product_id: str, admin_id: str) -> dict:
        product = await self.products.get(product_id)
        if not product:
            raise NotFound("Product not found")
        if product.get("is_admin_approved"):
            raise AlreadyApproved("Product is already approved")

        updated = await self.products.update_if(
            product_id,
            {"is_admin_approved": {"$ne": True}},
            {
                "status": ProductStatus.ACTIVE.value,
                "is_admin_approved": True,
                "is_admin_rejected": False,
                "admin_approved_at": datetime.utcnow(),
                "admin_approved_by": admin_id,
            },
            unset=("admin_rejection_reason", "admin_rejected_at", "admin_rejected_by"),
        )
        if updated is None:
            raise AlreadyApproved("Product is already approved")

        await self.audit(admin_id, Role.ADMIN.value, "PRODUCT_APPROVED", {"product_id": product_id})
        sent = await self._notify_seller(updated, NotificationKind.PRODUCT_APPROVED, {})
        return {"product": updated, "notification_sent": sent}

    async def reject_product(self, product_id: str, admin_id: str, reason: str | None) -> dict:
        reason = require_reason(reason)
        product = await self.products.get(product_id)
        if not product:
            raise NotFound("Product not found")
        if product.get("is_admin_rejected"):
            raise AlreadyRejected("Product is already rejected")

        updated = await self.products.update_if(
            product_id,
            {"is_admin_rejected": {"$ne": True}},
            {
                "status": ProductStatus.REJECTED.value,
                "is_admin_rejected": True,
                "is_admin_approved": False,
                "admin_rejection_reason": reason,
                "admin_rejected_at": datetime.utcnow(),
                "admin_rejected_by": admin_id,
            },
            unset=("admin_approved_at", "admin_approved_by"),
        )
        if updated is None:
            raise AlreadyRejected("Product is already rejected")

        await self.audit(admin_id, Role.ADMIN.value, "PRODUCT_REJECTED", {
            "product_id": product_id,
            "reason": reason,
        })
        sent = await self._notify_seller(updated, NotificationKind.PRODUCT_REJECTED, {"reason": reason})
        return {"product": updated, "notification_sent": sent}

    async def _notify_seller(self, product: dict, kind: NotificationKind, extra: dict) -> bool:
        seller = await self.accounts.get(product["seller_id"])
        if not seller or not seller.get("email"):
            logger.warning("PRODUCT_SELLER_MISSING product=%s", product["_id"])
            return False
        return await deliver(self.notifier, kind, seller["email"], {
            "name": seller.get("name", ""),
            "product_name": product.get("name", ""),
            **extra,
        })

    # =====================================================
    # LISTINGS
    # =====================================================
    async def list_public(self, filters: dict, skip: int, limit: int):
        return await self.products.find_page(build_product_query(filters, PUBLIC_FILTER), skip, limit)

    async def get_public_product(self, id_or_slug: str) -> dict:
        product = await self.products.get_by_slug(id_or_slug)
        if product is None and re.fullmatch(r"[0-9a-f]{24}", id_or_slug):
            product = await self.products.get(id_or_slug)

        if (
            not product
            or product.get("status") != ProductStatus.ACTIVE.value
            or not product.get("is_admin_approved")
        ):
            raise NotFound("Product not found")
        return product

    async def list_for_moderation(self, filters: dict, skip: int, limit: int):
        base = {}
        if filters.get("status"):
            base["status"] = filters["status"]
        return await self.products.find_page(build_product_query(filters, base), skip, limit)

    async def list_for_seller(self, seller: dict, filters: dict, skip: int, limit: int):
        base = {"seller_id": str(seller["_id"])}
        if filters.get("status"):
            base["status"] = filters["status"]
        query = build_product_query({**filters, "seller_id": None}, base)
        return await self.products.find_page(query, skip, limit)

    # =====================================================
    # RELATED PRODUCTS
    # =====================================================
    async def set_related_products(self, actor: dict, product_id: str, related_ids: list) -> dict:
        await self._owned_product(actor, product_id)
        for related_id in related_ids:
            parse_object_id(related_id, "related product id")

        updated = await self.products.update_if(
            product_id, {}, {"related_product_ids": list(related_ids)}
        )
        if updated is None:
            raise NotFound("Product not found")
        return updated

    async def get_related_products(self, product_id: str) -> list:
        product = await self.get_public_product(product_id)
        ids = [i for i in product.get("related_product_ids") or [] if ObjectId.is_valid(i)]
        if not ids:
            return []
        return await self.products.find_many(ids, PUBLIC_FILTER)

    # =====================================================
    # SELLER STATUS CHANGES
    # =====================================================
    async def set_product_status(self, seller: dict, product_id: str, status: ProductStatus) -> dict:
        assert_active_seller(seller)
        product = await self._owned_product(seller, product_id)

        if status not in SELLER_SETTABLE_STATUSES:
            raise Unauthorized(f"Sellers cannot set status {status.value}")
        if status == ProductStatus.ACTIVE and not product.get("is_admin_approved"):
            raise StateConflict("Product must be approved before it can be activated")

        updated = await self.products.update_if(
            product_id,
            {"seller_id": str(seller["_id"])},
            {"status": status.value},
            unset=("inactive_reason",),
        )
        if updated is None:
            raise NotFound("Product not found")
        return updated

    # =====================================================
    # ASSET ATTACHMENT
    # =====================================================
    async def attach_asset(self, actor: dict, product_id: str, req: AttachAssetRequest) -> dict:
        product = await self._owned_product(actor, product_id)
        field, many = self._asset_slot(product, req)

        asset = await self.assets.report_uploaded(actor, req, product_id=product_id)
        ref = {
            "name": req.original_name,
            "key": req.object_key,
            "size": req.size,
        }
        if req.realm == StorageRealm.PUBLIC:
            ref["url"] = asset.get("url")
        if req.role == AssetRole.IMAGE:
            ref["is_thumbnail"] = req.is_thumbnail

        if many:
            updated = await self.products.append(product_id, field, ref)
        else:
            updated = await self.products.update_if(product_id, {}, {field: ref})
        if updated is None:
            raise NotFound("Product not found")
        return updated

    def _asset_slot(self, product: dict, req: AttachAssetRequest) -> tuple[str, bool]:
        """
        Where a file with this role goes on this product: (field, is_list).
        Raises IncompatibleAsset when the role does not fit the product.
        """
        is_kit = bool(product.get("is_kit_product"))
        product_type = product.get("type")
        if product_type not in {t.value for t in ProductType}:
            raise ValueError(f"Unknown product type: {product_type}")

        if req.role == AssetRole.IMAGE:
            if req.realm != StorageRealm.PUBLIC or req.kind != MediaKind.IMAGE:
                raise IncompatibleAsset("Product images must be public image files")
            return "images", True

        if req.role == AssetRole.PREVIEW:
            if req.realm != StorageRealm.PUBLIC:
                raise IncompatibleAsset("Preview files must be public")
            if is_kit:
                return "kit_files", True
            if product_type == ProductType.DIGITAL.value:
                return "details.preview_file", False
            raise IncompatibleAsset(f"{product_type} products have no preview file")

        if req.role == AssetRole.MAIN:
            if req.realm != StorageRealm.PRIVATE:
                raise IncompatibleAsset("Main files must be stored privately")
            if req.kind not in (MediaKind.ZIP, MediaKind.PDF, MediaKind.DOCUMENT):
                raise IncompatibleAsset("Main files must be archives or documents")
            if is_kit:
                return "kit_main_file", False
            if product_type == ProductType.DIGITAL.value:
                return "details.zip_file", False
            raise IncompatibleAsset(f"{product_type} products have no downloadable file")

        raise ValueError(f"Unknown asset role: {req.role}")

    async def _owned_product(self, actor: dict, product_id: str) -> dict:
        product = await self.products.get(product_id)
        if not product:
            raise NotFound("Product not found")
        if actor.get("role") == Role.ADMIN.value:
            return product
        if product.get("seller_id") != str(actor["_id"]):
            raise Unauthorized("Not your product")
        return product
