import asyncio
import os
import sys
from pathlib import Path

# settings are read at import time
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("OTP_SECRET", "test-otp-secret")
os.environ["ENV"] = "test"
os.environ["MONGO_USE_TRANSACTIONS"] = "false"
os.environ["DOWNLOAD_ENTITLEMENT_POLICY"] = "purchase"
os.environ.pop("RESEND_API_KEY", None)
os.environ.pop("ADMIN_NOTIFICATION_EMAILS", None)

sys.path.insert(0, str(Path(__file__).resolve().parent))

import pytest

from models.user import ApprovalStatus, Role
from services.assets import AssetAccessController, PurchasePolicy
from services.auth import AuthService
from services.catalog import CatalogService
from services.moderation import ModerationService
from services.otp import OtpManager
from utils.hash import hash_password

from fakes import (
    AuditRecorder,
    CountingLimiter,
    FakeAccountRepository,
    FakeAssetRepository,
    FakeEntitlementRepository,
    FakeNotifier,
    FakeOtpRepository,
    FakeProductRepository,
    FakeStorage,
)


@pytest.fixture
def accounts():
    return FakeAccountRepository()


@pytest.fixture
def products():
    return FakeProductRepository()


@pytest.fixture
def asset_records():
    return FakeAssetRepository()


@pytest.fixture
def entitlements():
    return FakeEntitlementRepository()


@pytest.fixture
def otps():
    return FakeOtpRepository()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def audit():
    return AuditRecorder()


@pytest.fixture
def moderation(accounts, products, notifier, audit):
    return ModerationService(accounts, products, notifier, audit)


@pytest.fixture
def auth(accounts):
    return AuthService(accounts)


@pytest.fixture
def asset_controller(storage, asset_records, products, accounts, entitlements, audit):
    return AssetAccessController(
        storage=storage,
        assets=asset_records,
        products=products,
        accounts=accounts,
        entitlements=entitlements,
        policy=PurchasePolicy(entitlements),
        audit=audit,
        timeout=2,
    )


@pytest.fixture
def catalog(products, accounts, asset_controller, notifier, audit):
    return CatalogService(products, accounts, asset_controller, notifier, audit)


@pytest.fixture
def otp_manager(accounts, otps, notifier):
    return OtpManager(accounts, otps, notifier, CountingLimiter())


# =====================================================
# ACCOUNT FACTORIES
# =====================================================

@pytest.fixture
def admin(accounts):
    return accounts.add(role=Role.ADMIN.value, name="Admin", email="admin@example.com")


@pytest.fixture
def make_seller(accounts):
    def factory(**overrides):
        doc = {
            "role": Role.SELLER.value,
            "name": "Seller",
            "approval_status": ApprovalStatus.APPROVED.value,
            "is_blacklisted": False,
            "store_details": {"name": "Store"},
        }
        doc.update(overrides)
        return accounts.add(**doc)
    return factory


@pytest.fixture
def seller(make_seller):
    return make_seller(email="seller@example.com", password_hash=hash_password("seller-pass-1"))


@pytest.fixture
def make_buyer(accounts):
    def factory(**overrides):
        doc = {
            "role": Role.BUYER.value,
            "name": "Buyer",
            "approval_status": ApprovalStatus.PENDING.value,
        }
        doc.update(overrides)
        return accounts.add(**doc)
    return factory


@pytest.fixture
def make_product(products):
    def factory(seller, **overrides):
        doc = {
            "name": "Spring Planner",
            "type": "digital",
            "details": {"kind": "planner"},
            "is_kit_product": False,
            "category_id": "cat-1",
            "item_id": "item-1",
            "price": {"amount": 10.0, "currency": "USD"},
            "seller_id": str(seller["_id"]),
            "status": "pending",
            "is_admin_approved": False,
            "is_admin_rejected": False,
            "images": [],
            "related_product_ids": [],
        }
        doc.update(overrides)
        return products.add(**doc)
    return factory


@pytest.fixture
def make_ticket(asset_records):
    """A pending upload record, as issue_upload_ticket leaves it."""
    def factory(owner, key, realm="public"):
        asyncio.run(asset_records.upsert(key, {
            "realm": realm,
            "status": "pending",
            "uploaded_by": str(owner["_id"]),
        }))
        return key
    return factory
