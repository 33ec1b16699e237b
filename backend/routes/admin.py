from typing import Optional

from fastapi import APIRouter, Depends, Query

from config.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from models.asset import EntitlementGrant
from models.product import ProductStatus, ProductType
from models.user import ApprovalStatus, BlacklistRequest, RejectRequest, Role, public_account
from services.providers import (
    get_asset_controller,
    get_catalog_service,
    get_moderation_service,
)
from utils.mongo import page_bounds, serialize_doc, serialize_docs
from utils.security import require_role

router = APIRouter(prefix="/admin", tags=["Admin"])


def _approval_response(result):
    """
    Approval outcome for the admin portal.

    The approved buyer's user_account_id is always in `user`. The generated
    password is returned under `credentials` only when the credentials email
    was not delivered, so the admin can pass it on by hand. Otherwise it
    travels by email alone.
    """
    response = {
        "user": serialize_doc(public_account(result.account)),
        "notification_sent": result.notification_sent,
    }
    if result.credentials and not result.notification_sent:
        response["credentials"] = result.credentials.model_dump()
    return response


# =====================================================
# SELLER / BUYER APPROVAL
# =====================================================
@router.post("/sellers/{seller_id}/approve")
async def approve_seller(
    seller_id: str,
    admin=Depends(require_role("admin")),
    moderation=Depends(get_moderation_service),
):
    result = await moderation.approve(Role.SELLER, seller_id, str(admin["_id"]))
    return _approval_response(result)


@router.post("/sellers/{seller_id}/reject")
async def reject_seller(
    seller_id: str,
    data: RejectRequest,
    admin=Depends(require_role("admin")),
    moderation=Depends(get_moderation_service),
):
    result = await moderation.reject(Role.SELLER, seller_id, str(admin["_id"]), data.reason)
    return _approval_response(result)


@router.post("/buyers/{buyer_id}/approve")
async def approve_buyer(
    buyer_id: str,
    admin=Depends(require_role("admin")),
    moderation=Depends(get_moderation_service),
):
    result = await moderation.approve(Role.BUYER, buyer_id, str(admin["_id"]))
    return _approval_response(result)


@router.post("/buyers/{buyer_id}/reject")
async def reject_buyer(
    buyer_id: str,
    data: RejectRequest,
    admin=Depends(require_role("admin")),
    moderation=Depends(get_moderation_service),
):
    result = await moderation.reject(Role.BUYER, buyer_id, str(admin["_id"]), data.reason)
    return _approval_response(result)


# =====================================================
# ACCOUNT LISTINGS
# =====================================================
@router.get("/accounts")
async def list_accounts(
    role: Role = Query(Role.SELLER),
    status: Optional[ApprovalStatus] = None,
    blacklisted: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    admin=Depends(require_role("admin")),
    moderation=Depends(get_moderation_service),
):
    skip, limit = page_bounds(page, limit, MAX_PAGE_SIZE)
    items, total = await moderation.list_accounts(role, status, blacklisted, search, skip, limit)
    return {
        "items": serialize_docs([public_account(a) for a in items]),
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.get("/stats/accounts")
async def account_stats(
    admin=Depends(require_role("admin")),
    moderation=Depends(get_moderation_service),
):
    return await moderation.account_stats()


# =====================================================
# BLACKLIST
# =====================================================
@router.post("/blacklist/{seller_id}")
async def blacklist_seller(
    seller_id: str,
    data: BlacklistRequest,
    admin=Depends(require_role("admin")),
    moderation=Depends(get_moderation_service),
):
    result = await moderation.blacklist(seller_id, str(admin["_id"]), data.reason, data.expiry_date)
    return {
        "seller": serialize_doc(public_account(result.seller)),
        "products_deactivated": result.affected_products,
        "notification_sent": result.notification_sent,
    }


@router.post("/blacklist/{seller_id}/remove")
async def remove_blacklist(
    seller_id: str,
    admin=Depends(require_role("admin")),
    moderation=Depends(get_moderation_service),
):
    result = await moderation.remove_blacklist(seller_id, str(admin["_id"]))
    return {
        "seller": serialize_doc(public_account(result.seller)),
        "products_reactivated": result.affected_products,
        "notification_sent": result.notification_sent,
    }


@router.get("/stats/blacklist")
async def blacklist_stats(
    admin=Depends(require_role("admin")),
    moderation=Depends(get_moderation_service),
):
    return await moderation.blacklist_stats()


# =====================================================
# PRODUCT MODERATION
# =====================================================
@router.get("/products")
async def moderation_products(
    status: Optional[ProductStatus] = None,
    seller_id: Optional[str] = None,
    category_id: Optional[str] = None,
    type: Optional[ProductType] = None,
    name: Optional[str] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    admin=Depends(require_role("admin")),
    catalog=Depends(get_catalog_service),
):
    skip, limit = page_bounds(page, limit, MAX_PAGE_SIZE)
    filters = {
        "status": status.value if status else None,
        "seller_id": seller_id,
        "category_id": category_id,
        "type": type.value if type else None,
        "name": name,
    }
    items, total = await catalog.list_for_moderation(filters, skip, limit)
    return {"items": serialize_docs(items), "total": total, "page": page, "limit": limit}


@router.post("/products/{product_id}/approve")
async def approve_product(
    product_id: str,
    admin=Depends(require_role("admin")),
    catalog=Depends(get_catalog_service),
):
    result = await catalog.approve_product(product_id, str(admin["_id"]))
    return {
        "product": serialize_doc(result["product"]),
        "notification_sent": result["notification_sent"],
    }


@router.post("/products/{product_id}/reject")
async def reject_product(
    product_id: str,
    data: RejectRequest,
    admin=Depends(require_role("admin")),
    catalog=Depends(get_catalog_service),
):
    result = await catalog.reject_product(product_id, str(admin["_id"]), data.reason)
    return {
        "product": serialize_doc(result["product"]),
        "notification_sent": result["notification_sent"],
    }


# =====================================================
# ENTITLEMENTS
# =====================================================
@router.post("/products/{product_id}/entitlements")
async def grant_entitlement(
    product_id: str,
    data: EntitlementGrant,
    admin=Depends(require_role("admin")),
    assets=Depends(get_asset_controller),
):
    grant = await assets.grant_entitlement(str(admin["_id"]), product_id, data.buyer_id)
    return serialize_doc(grant)
