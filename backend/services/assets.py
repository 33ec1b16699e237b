import asyncio
import logging
import os
import re
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta

from config.constants import (
    DOWNLOAD_TICKET_TTL_SECONDS,
    REALM_CONTENT_TYPES,
    UPLOAD_TICKET_TTL_SECONDS,
)
from config.env import DOWNLOAD_ENTITLEMENT_POLICY, STORAGE_TIMEOUT_SECONDS
from models.asset import (
    AssetReport,
    AssetStatus,
    DownloadTicket,
    StorageRealm,
    UploadTicket,
    UploadTicketRequest,
)
from models.product import private_file_ref
from models.user import Role
from repositories.accounts import AccountRepository
from repositories.assets import AssetRepository
from repositories.entitlements import EntitlementRepository
from repositories.products import ProductRepository
from utils.errors import (
    BadRequest,
    NotFound,
    StateConflict,
    Unauthenticated,
    Unauthorized,
)
from utils.storage import StorageBackend, StorageError

logger = logging.getLogger(__name__)

SAFE_FOLDER = re.compile(r"^[A-Za-z0-9_-]+(/[A-Za-z0-9_-]+)*$")
UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
MAX_FILENAME_LENGTH = 100


def sanitize_filename(file_name: str) -> str:
    name = os.path.basename(file_name.replace("\\", "/")).strip()
    name = UNSAFE_FILENAME_CHARS.sub("-", name).strip(".-")
    if not name:
        raise BadRequest("Invalid file name")
    if len(name) > MAX_FILENAME_LENGTH:
        stem, ext = os.path.splitext(name)
        name = stem[: MAX_FILENAME_LENGTH - len(ext)] + ext
    return name


def build_object_key(folder: str, file_name: str) -> str:
    folder = (folder or "").strip().strip("/")
    if not SAFE_FOLDER.match(folder):
        raise BadRequest("Invalid folder")
    return f"{folder}/{uuid.uuid4().hex}-{sanitize_filename(file_name)}"


# =====================================================
# ENTITLEMENT POLICIES
# =====================================================

class EntitlementPolicy(ABC):

    @abstractmethod
    async def allows(self, requester: dict, product: dict) -> bool: ...


class AuthenticatedPolicy(EntitlementPolicy):
    """Any signed-in account may download."""

    async def allows(self, requester, product):
        return True


class PurchasePolicy(EntitlementPolicy):
    """Admins, the owning seller, and buyers holding an entitlement."""

    def __init__(self, entitlements: EntitlementRepository):
        self.entitlements = entitlements

    async def allows(self, requester, product):
        role = requester.get("role")
        if role == Role.ADMIN.value:
            return True
        if role == Role.SELLER.value:
            return product.get("seller_id") == str(requester["_id"])
        if role == Role.BUYER.value:
            return await self.entitlements.has(str(requester["_id"]), str(product["_id"]))
        return False


def build_entitlement_policy(
    entitlements: EntitlementRepository,
    name: str = DOWNLOAD_ENTITLEMENT_POLICY,
) -> EntitlementPolicy:
    if name == "authenticated":
        return AuthenticatedPolicy()
    if name == "purchase":
        return PurchasePolicy(entitlements)
    raise RuntimeError(f"Unknown DOWNLOAD_ENTITLEMENT_POLICY: {name}")


# =====================================================
# ACCESS CONTROLLER
# =====================================================

class AssetAccessController:
    def __init__(
        self,
        storage: StorageBackend,
        assets: AssetRepository,
        products: ProductRepository,
        accounts: AccountRepository,
        entitlements: EntitlementRepository,
        policy: EntitlementPolicy,
        audit,
        timeout: float = STORAGE_TIMEOUT_SECONDS,
    ):
        self.storage = storage
        self.assets = assets
        self.products = products
        self.accounts = accounts
        self.entitlements = entitlements
        self.policy = policy
        self.audit = audit
        self.timeout = timeout

    async def _storage_call(self, fn, *args, **kwargs):
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), self.timeout)
        except asyncio.TimeoutError as e:
            logger.error("STORAGE_TIMEOUT op=%s", fn.__name__)
            raise StorageError("Object storage timed out") from e

    # =====================================================
    # UPLOAD
    # =====================================================
    async def issue_upload_ticket(self, requester: dict, req: UploadTicketRequest) -> UploadTicket:
        if not req.file_name or not req.file_type or not req.folder:
            raise BadRequest("file_name, file_type and folder are required")

        realm = req.realm.value
        if req.file_type not in REALM_CONTENT_TYPES[realm]:
            raise BadRequest(f"Unsupported file type for {realm} storage: {req.file_type}")

        key = build_object_key(req.folder, req.file_name)
        metadata = {"uploaded-by": str(requester["_id"])}
        if req.realm == StorageRealm.PRIVATE:
            metadata["protected"] = "true"

        upload_url = await self._storage_call(
            self.storage.signed_put_url,
            realm,
            key,
            req.file_type,
            UPLOAD_TICKET_TTL_SECONDS,
            metadata,
        )
        final_url = None
        if req.realm == StorageRealm.PUBLIC:
            final_url = self.storage.object_url(realm, key)

        await self.assets.upsert(key, {
            "realm": realm,
            "original_name": req.file_name,
            "mimetype": req.file_type,
            "status": AssetStatus.PENDING.value,
            "uploaded_by": str(requester["_id"]),
        })

        return UploadTicket(
            upload_url=upload_url,
            object_key=key,
            final_url=final_url,
            expires_in=UPLOAD_TICKET_TTL_SECONDS,
        )

    async def report_uploaded(self, requester: dict, report: AssetReport, product_id: str | None = None) -> dict:
        """
        Record what the client says it uploaded. Not checked against storage,
        but the key must come from a ticket issued to the requester.
        """
        existing = await self.assets.get(report.object_key)
        if existing is None:
            raise NotFound("No upload ticket for this object")
        if existing.get("status") == AssetStatus.DELETING.value:
            raise StateConflict("Asset is being deleted")
        if not self._may_manage(requester, existing):
            raise Unauthorized("Asset belongs to another account")
        self._check_realm(existing, report.realm)

        doc = report.model_dump(exclude={"object_key"}, mode="json")
        doc["uploaded_by"] = str(requester["_id"])
        if report.realm == StorageRealm.PUBLIC and not report.url:
            doc["url"] = self.storage.object_url(report.realm.value, report.object_key)
        if report.realm == StorageRealm.PRIVATE:
            doc["url"] = None
        if product_id:
            doc["product_id"] = product_id
        return await self.assets.upsert(report.object_key, doc)

    # =====================================================
    # DOWNLOAD
    # =====================================================
    async def issue_download_ticket(self, product_id: str, requester: dict | None) -> DownloadTicket:
        if not requester:
            raise Unauthenticated("Authentication required to download")

        product = await self.products.get(product_id)
        if not product:
            raise NotFound("Product not found")

        ref = private_file_ref(product)
        if not ref or not ref.get("key"):
            raise NotFound("No downloadable file for this product")

        if not await self.policy.allows(requester, product):
            raise Unauthorized("No access to this product's files")

        url = await self._storage_call(
            self.storage.signed_get_url,
            StorageRealm.PRIVATE.value,
            ref["key"],
            DOWNLOAD_TICKET_TTL_SECONDS,
        )

        requester_id = str(requester["_id"])
        logger.info("DOWNLOAD_TICKET_ISSUED product=%s requester=%s", product_id, requester_id)
        await self.audit(requester_id, requester.get("role"), "ASSET_DOWNLOAD_ISSUED", {
            "product_id": product_id,
            "object_key": ref["key"],
            "issued_at": datetime.utcnow().isoformat(),
        })

        return DownloadTicket(download_url=url, expires_in=DOWNLOAD_TICKET_TTL_SECONDS)

    async def grant_entitlement(self, admin_id: str, product_id: str, buyer_id: str) -> dict:
        if not await self.products.get(product_id):
            raise NotFound("Product not found")
        buyer = await self.accounts.get(buyer_id)
        if not buyer or buyer.get("role") != Role.BUYER.value:
            raise NotFound("Buyer not found")

        grant = await self.entitlements.grant(buyer_id, product_id, admin_id)
        await self.audit(admin_id, Role.ADMIN.value, "ENTITLEMENT_GRANTED", {
            "product_id": product_id,
            "buyer_id": buyer_id,
        })
        return grant

    # =====================================================
    # DELETE (mark -> remove object -> remove records)
    # =====================================================
    async def delete_asset(self, requester: dict, object_key: str, realm: StorageRealm) -> dict:
        record = await self.assets.get(object_key)
        if record is None:
            raise NotFound("Asset not found")
        if not self._may_manage(requester, record):
            raise Unauthorized("Asset belongs to another account")
        self._check_realm(record, realm)
        stored_realm = record.get("realm") or realm.value

        marked = await self.assets.update_if(
            object_key,
            {"status": {"$ne": AssetStatus.DELETING.value}},
            {"status": AssetStatus.DELETING.value, "deleting_realm": stored_realm},
        )
        if marked is None:
            # already being deleted; finishing it is idempotent
            marked = record

        removed = await self._purge(object_key, marked.get("deleting_realm") or stored_realm)
        return {"object_key": object_key, "deleted": True, "references_removed": removed}

    @staticmethod
    def _check_realm(record: dict, realm: StorageRealm):
        if record.get("realm") and record["realm"] != realm.value:
            raise BadRequest(f"Asset is stored in the {record['realm']} realm")

    async def _purge(self, object_key: str, realm: str) -> int:
        # a StorageError here leaves the record in `deleting` for the cleanup worker
        await self._storage_call(self.storage.delete_object, realm, object_key)
        removed = await self.products.remove_file_references(object_key)
        await self.assets.delete(object_key)
        logger.info("ASSET_DELETED key=%s references=%s", object_key, removed)
        return removed

    async def finish_pending_deletes(self, grace_seconds: int = 300, limit: int = 100) -> int:
        cutoff = datetime.utcnow() - timedelta(seconds=grace_seconds)
        stale = await self.assets.list_by_status(AssetStatus.DELETING.value, cutoff, limit)

        finished = 0
        for record in stale:
            key = record["object_key"]
            realm = record.get("deleting_realm") or record.get("realm") or StorageRealm.PUBLIC.value
            try:
                await self._purge(key, realm)
                finished += 1
            except StorageError:
                logger.exception("ASSET_CLEANUP_ERROR key=%s", key)
        return finished

    def _may_manage(self, requester: dict, record: dict) -> bool:
        if requester.get("role") == Role.ADMIN.value:
            return True
        return record.get("uploaded_by") == str(requester["_id"])

    async def expire_abandoned_uploads(self, max_age_seconds: int, limit: int = 100) -> int:
        """Tickets that were never reported as uploaded go to `deleting`."""
        cutoff = datetime.utcnow() - timedelta(seconds=max_age_seconds)
        abandoned = await self.assets.list_by_status(AssetStatus.PENDING.value, cutoff, limit)

        marked = 0
        for record in abandoned:
            updated = await self.assets.update_if(
                record["object_key"],
                {"status": AssetStatus.PENDING.value},
                {
                    "status": AssetStatus.DELETING.value,
                    "deleting_realm": record.get("realm") or StorageRealm.PUBLIC.value,
                },
            )
            if updated is not None:
                marked += 1
        return marked
