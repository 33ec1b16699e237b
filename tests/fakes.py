"""In-memory stand-ins for the Mongo repositories and external services."""

import copy
import itertools
import re
from datetime import datetime

from bson import ObjectId

from repositories.accounts import AccountRepository
from repositories.assets import AssetRepository
from repositories.entitlements import EntitlementRepository
from repositories.otp import OtpRepository
from repositories.products import ProductRepository
from services.notifications import Notifier
from utils.errors import RateLimited, UniqueConstraintViolation
from utils.guards import parse_object_id
from utils.storage import StorageBackend, StorageError

MISSING = object()
_seq = itertools.count()


# =====================================================
# QUERY MATCHING (the subset of Mongo the services use)
# =====================================================

def get_path(doc, path):
    current = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return MISSING
        current = current[part]
    return current


def set_path(doc, path, value):
    parts = path.split(".")
    current = doc
    for part in parts[:-1]:
        current = current.setdefault(part, {})
    current[parts[-1]] = value


def unset_path(doc, path):
    parts = path.split(".")
    current = doc
    for part in parts[:-1]:
        current = current.get(part)
        if not isinstance(current, dict):
            return
    current.pop(parts[-1], None)


def _match_op(value, op, arg, options=""):
    if op == "$ne":
        return value is MISSING or value != arg
    if op == "$in":
        return value is not MISSING and value in arg
    if op == "$exists":
        return (value is not MISSING) == bool(arg)
    if op == "$lt":
        return value is not MISSING and value is not None and value < arg
    if op == "$gt":
        return value is not MISSING and value is not None and value > arg
    if op == "$gte":
        return value is not MISSING and value is not None and value >= arg
    if op == "$regex":
        flags = re.IGNORECASE if "i" in options else 0
        return isinstance(value, str) and re.search(arg, value, flags) is not None
    raise NotImplementedError(op)


def matches(doc, query):
    for key, cond in query.items():
        value = get_path(doc, key)
        if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
            options = cond.get("$options", "")
            for op, arg in cond.items():
                if op == "$options":
                    continue
                if not _match_op(value, op, arg, options):
                    return False
        elif value is MISSING or value != cond:
            return False
    return True


def apply_update(doc, changes, unset=()):
    for path, value in changes.items():
        set_path(doc, path, copy.deepcopy(value))
    for path in unset:
        unset_path(doc, path)
    doc["updated_at"] = datetime.utcnow()


class _Store:
    def __init__(self):
        self.docs = {}

    def insert(self, doc):
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", ObjectId())
        doc.setdefault("created_at", datetime.utcnow())
        doc.setdefault("updated_at", doc["created_at"])
        doc["_seq"] = next(_seq)
        self.docs[doc["_id"]] = doc
        return self.out(doc)

    @staticmethod
    def out(doc):
        if doc is None:
            return None
        doc = copy.deepcopy(doc)
        doc.pop("_seq", None)
        return doc

    def find(self, query):
        return [d for d in self.docs.values() if matches(d, query)]

    def page(self, query, skip, limit):
        found = sorted(self.find(query), key=lambda d: (d["created_at"], d["_seq"]), reverse=True)
        return [self.out(d) for d in found[skip:skip + limit]], len(found)


# =====================================================
# REPOSITORIES
# =====================================================

class FakeAccountRepository(AccountRepository):
    def __init__(self):
        self.store = _Store()
        self.forced_id_conflicts = 0

    def add(self, **doc):
        doc.setdefault("email", f"user{next(_seq)}@example.com")
        return self.store.insert(doc)

    def raw(self, account_id):
        return self.store.out(self.store.docs.get(parse_object_id(account_id)))

    async def get(self, account_id):
        return self.raw(account_id)

    async def find_by_email(self, email):
        found = self.store.find({"email": email.lower()})
        return self.store.out(found[0]) if found else None

    async def find_by_account_id(self, user_account_id):
        found = self.store.find({"user_account_id": user_account_id})
        return self.store.out(found[0]) if found else None

    async def account_id_exists(self, user_account_id):
        return bool(self.store.find({"user_account_id": user_account_id}))

    async def create(self, doc):
        if self.store.find({"email": doc["email"].lower()}):
            raise UniqueConstraintViolation("Duplicate email")
        return self.store.insert({**doc, "email": doc["email"].lower()})

    async def update_if(self, account_id, expected, changes, unset=(), session=None):
        doc = self.store.docs.get(parse_object_id(account_id))
        if doc is None or not matches(doc, expected):
            return None

        new_id = changes.get("user_account_id")
        if new_id:
            if self.forced_id_conflicts:
                self.forced_id_conflicts -= 1
                raise UniqueConstraintViolation("Duplicate user_account_id")
            clash = self.store.find({"user_account_id": new_id})
            if any(d["_id"] != doc["_id"] for d in clash):
                raise UniqueConstraintViolation("Duplicate user_account_id")

        apply_update(doc, changes, unset)
        return self.store.out(doc)

    async def find_page(self, filters, skip, limit):
        return self.store.page(filters, skip, limit)

    async def count(self, filters):
        return len(self.store.find(filters))

    async def emails_for_role(self, role):
        return [d["email"] for d in self.store.find({"role": role})]


class FakeProductRepository(ProductRepository):
    def __init__(self):
        self.store = _Store()

    def add(self, **doc):
        doc.setdefault("slug", f"product-{next(_seq)}")
        return self.store.insert(doc)

    def raw(self, product_id):
        return self.store.out(self.store.docs.get(parse_object_id(product_id)))

    async def get(self, product_id):
        return self.raw(product_id)

    async def get_by_slug(self, slug):
        found = self.store.find({"slug": slug})
        return self.store.out(found[0]) if found else None

    async def slug_exists(self, slug):
        return bool(self.store.find({"slug": slug}))

    async def create(self, doc):
        if self.store.find({"slug": doc["slug"]}):
            raise UniqueConstraintViolation("Duplicate slug")
        return self.store.insert(doc)

    async def update_if(self, product_id, expected, changes, unset=(), session=None):
        doc = self.store.docs.get(parse_object_id(product_id))
        if doc is None or not matches(doc, expected):
            return None
        apply_update(doc, changes, unset)
        return self.store.out(doc)

    async def append(self, product_id, field, value):
        doc = self.store.docs.get(parse_object_id(product_id))
        if doc is None:
            return None
        doc.setdefault(field, []).append(copy.deepcopy(value))
        doc["updated_at"] = datetime.utcnow()
        return self.store.out(doc)

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
        found = self.store.find(query)
        for doc in found:
            apply_update(doc, {"status": status, **(changes or {})}, unset)
        return len(found)

    async def remove_file_references(self, object_key):
        touched = 0
        for doc in self.store.docs.values():
            changed = False
            for field in ("images", "kit_files"):
                refs = doc.get(field) or []
                kept = [r for r in refs if r.get("key") != object_key]
                if len(kept) != len(refs):
                    doc[field] = kept
                    changed = True
            for path in ("kit_main_file", "details.zip_file", "details.preview_file"):
                ref = get_path(doc, path)
                if isinstance(ref, dict) and ref.get("key") == object_key:
                    unset_path(doc, path)
                    changed = True
            if changed:
                touched += 1
        return touched

    async def find_page(self, filters, skip, limit):
        return self.store.page(filters, skip, limit)

    async def find_many(self, product_ids, filters=None):
        ids = {parse_object_id(pid) for pid in product_ids}
        return [
            self.store.out(d)
            for d in self.store.find(filters or {})
            if d["_id"] in ids
        ]


class FakeAssetRepository(AssetRepository):
    def __init__(self):
        self.docs = {}

    async def get(self, object_key):
        return copy.deepcopy(self.docs.get(object_key))

    async def upsert(self, object_key, doc):
        now = datetime.utcnow()
        record = self.docs.setdefault(object_key, {"_id": ObjectId(), "created_at": now})
        record.update(copy.deepcopy(doc))
        record["object_key"] = object_key
        record["updated_at"] = now
        return copy.deepcopy(record)

    async def update_if(self, object_key, expected, changes):
        record = self.docs.get(object_key)
        if record is None or not matches(record, expected):
            return None
        apply_update(record, changes)
        return copy.deepcopy(record)

    async def delete(self, object_key):
        return self.docs.pop(object_key, None) is not None

    async def list_by_status(self, status, updated_before, limit):
        found = [
            copy.deepcopy(r) for r in self.docs.values()
            if r.get("status") == status and r["updated_at"] < updated_before
        ]
        return found[:limit]


class FakeOtpRepository(OtpRepository):
    def __init__(self):
        self.docs = {}

    async def delete_unused(self, email, purpose):
        doomed = [
            k for k, d in self.docs.items()
            if d["email"] == email and d["purpose"] == purpose and not d["is_used"]
        ]
        for k in doomed:
            del self.docs[k]
        return len(doomed)

    async def create(self, doc):
        doc = {**copy.deepcopy(doc), "_id": ObjectId(), "created_at": datetime.utcnow(), "_seq": next(_seq)}
        self.docs[doc["_id"]] = doc
        return copy.deepcopy(doc)

    async def find_live(self, email, purpose, now):
        live = [
            d for d in self.docs.values()
            if d["email"] == email and d["purpose"] == purpose
            and not d["is_used"] and d["expires_at"] > now
        ]
        if not live:
            return None
        return copy.deepcopy(max(live, key=lambda d: d["_seq"]))

    async def claim(self, otp_id):
        doc = self.docs.get(otp_id)
        if doc is None or doc["is_used"]:
            return None
        doc["is_used"] = True
        return copy.deepcopy(doc)

    async def release(self, otp_id):
        doc = self.docs.get(otp_id)
        if doc is not None:
            doc["is_used"] = False

    async def record_failure(self, otp_id):
        doc = self.docs.get(otp_id)
        if doc is None:
            return 0
        doc["attempts"] = doc.get("attempts", 0) + 1
        return doc["attempts"]

    async def discard(self, otp_id):
        self.docs.pop(otp_id, None)


class FakeEntitlementRepository(EntitlementRepository):
    def __init__(self):
        self.grants = {}

    async def grant(self, buyer_id, product_id, granted_by):
        key = (buyer_id, product_id)
        if key not in self.grants:
            self.grants[key] = {
                "_id": ObjectId(),
                "buyer_id": buyer_id,
                "product_id": product_id,
                "granted_by": granted_by,
                "granted_at": datetime.utcnow(),
            }
        return copy.deepcopy(self.grants[key])

    async def has(self, buyer_id, product_id):
        return (buyer_id, product_id) in self.grants


# =====================================================
# COLLABORATORS
# =====================================================

class FakeNotifier(Notifier):
    def __init__(self, fail=False, raises=None):
        self.fail = fail
        self.raises = raises
        self.sent = []

    async def send(self, kind, recipient, payload):
        if self.raises:
            raise self.raises
        self.sent.append((kind, recipient, payload))
        return not self.fail

    def kinds(self):
        return [kind for kind, _, _ in self.sent]


class FakeStorage(StorageBackend):
    def __init__(self, fail_deletes=0):
        self.calls = []
        self.deleted = []
        self.fail_deletes = fail_deletes

    def signed_put_url(self, realm, key, content_type, expires_in, metadata=None):
        self.calls.append(("put", realm, key, content_type, expires_in, metadata))
        return f"https://{realm}.storage.test/{key}?signature=put&expires={expires_in}"

    def signed_get_url(self, realm, key, expires_in):
        self.calls.append(("get", realm, key, expires_in))
        return f"https://{realm}.storage.test/{key}?signature=get&expires={expires_in}"

    def object_url(self, realm, key):
        return f"https://{realm}.storage.test/{key}"

    def delete_object(self, realm, key):
        if self.fail_deletes:
            self.fail_deletes -= 1
            raise StorageError("storage unavailable")
        self.deleted.append((realm, key))


class AuditRecorder:
    def __init__(self):
        self.entries = []

    async def __call__(self, actor_id, actor_role, action, metadata=None):
        self.entries.append({
            "actor_id": actor_id,
            "actor_role": actor_role,
            "action": action,
            "metadata": metadata or {},
        })

    def actions(self):
        return [e["action"] for e in self.entries]


class CountingLimiter:
    """Mirrors utils.rate_limit: raise once a key exceeds its budget."""

    def __init__(self):
        self.counts = {}

    async def __call__(self, key, max_requests, window_seconds):
        self.counts[key] = self.counts.get(key, 0) + 1
        if self.counts[key] > max_requests:
            raise RateLimited()
