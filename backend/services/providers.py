"""FastAPI dependency providers wiring repositories into services."""

from fastapi import Depends

from database import get_db
from repositories.accounts import MongoAccountRepository
from repositories.assets import MongoAssetRepository
from repositories.entitlements import MongoEntitlementRepository
from repositories.otp import MongoOtpRepository
from repositories.products import MongoProductRepository
from services.assets import AssetAccessController, build_entitlement_policy
from services.auth import AuthService
from services.catalog import CatalogService
from services.moderation import ModerationService
from services.notifications import build_notifier
from services.otp import OtpManager
from utils.audit import AuditTrail
from utils.rate_limit import MongoRateLimiter
from utils.storage import build_storage


def get_account_repository(db=Depends(get_db)):
    return MongoAccountRepository(db)


def get_product_repository(db=Depends(get_db)):
    return MongoProductRepository(db)


def get_audit_trail(db=Depends(get_db)):
    return AuditTrail(db)


def get_notifier():
    return build_notifier()


def get_auth_service(accounts=Depends(get_account_repository)):
    return AuthService(accounts)


def get_moderation_service(
    accounts=Depends(get_account_repository),
    products=Depends(get_product_repository),
    notifier=Depends(get_notifier),
    audit=Depends(get_audit_trail),
):
    return ModerationService(accounts, products, notifier, audit)


def build_asset_controller(db):
    entitlements = MongoEntitlementRepository(db)
    return AssetAccessController(
        storage=build_storage(),
        assets=MongoAssetRepository(db),
        products=MongoProductRepository(db),
        accounts=MongoAccountRepository(db),
        entitlements=entitlements,
        policy=build_entitlement_policy(entitlements),
        audit=AuditTrail(db),
    )


def get_asset_controller(db=Depends(get_db)):
    return build_asset_controller(db)


def get_catalog_service(
    accounts=Depends(get_account_repository),
    products=Depends(get_product_repository),
    assets=Depends(get_asset_controller),
    notifier=Depends(get_notifier),
    audit=Depends(get_audit_trail),
):
    return CatalogService(products, accounts, assets, notifier, audit)


def get_otp_manager(
    db=Depends(get_db),
    accounts=Depends(get_account_repository),
    notifier=Depends(get_notifier),
):
    return OtpManager(accounts, MongoOtpRepository(db), notifier, MongoRateLimiter(db))
