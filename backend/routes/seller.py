from typing import Optional

from fastapi import APIRouter, Depends

from config.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from models.asset import AttachAssetRequest
from models.product import (
    ProductCreate,
    ProductStatus,
    ProductStatusUpdate,
    ProductUpdate,
    RelatedProductsUpdate,
)
from models.user import ReapplicationRequest, public_account
from services.providers import get_catalog_service, get_moderation_service
from utils.mongo import page_bounds, serialize_doc, serialize_docs
from utils.security import require_role

router = APIRouter(prefix="/seller", tags=["Seller"])


# =====================================================
# REAPPLY AFTER BLACKLIST
# =====================================================
@router.post("/reapply")
async def reapply(
    data: ReapplicationRequest,
    seller=Depends(require_role("seller")),
    moderation=Depends(get_moderation_service),
):
    result = await moderation.request_reapplication(str(seller["_id"]), data.reason)
    return {
        "message": "Reapplication submitted",
        "seller": serialize_doc(public_account(result.seller)),
        "admins_notified": result.admins_notified,
    }


# =====================================================
# PRODUCTS
# =====================================================
@router.post("/products", status_code=201)
async def create_product(
    data: ProductCreate,
    seller=Depends(require_role("seller")),
    catalog=Depends(get_catalog_service),
):
    product = await catalog.create_product(seller, data)
    return serialize_doc(product)


@router.get("/products")
async def my_products(
    status: Optional[ProductStatus] = None,
    name: Optional[str] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    seller=Depends(require_role("seller")),
    catalog=Depends(get_catalog_service),
):
    skip, limit = page_bounds(page, limit, MAX_PAGE_SIZE)
    filters = {"status": status.value if status else None, "name": name}
    items, total = await catalog.list_for_seller(seller, filters, skip, limit)
    return {"items": serialize_docs(items), "total": total, "page": page, "limit": limit}


@router.put("/products/{product_id}")
async def update_product(
    product_id: str,
    data: ProductUpdate,
    seller=Depends(require_role("seller")),
    catalog=Depends(get_catalog_service),
):
    product = await catalog.update_product(seller, product_id, data)
    return serialize_doc(product)


@router.patch("/products/{product_id}/status")
async def update_product_status(
    product_id: str,
    data: ProductStatusUpdate,
    seller=Depends(require_role("seller")),
    catalog=Depends(get_catalog_service),
):
    product = await catalog.set_product_status(seller, product_id, data.status)
    return serialize_doc(product)


@router.put("/products/{product_id}/related")
async def set_related_products(
    product_id: str,
    data: RelatedProductsUpdate,
    seller=Depends(require_role("seller")),
    catalog=Depends(get_catalog_service),
):
    product = await catalog.set_related_products(seller, product_id, data.related_ids)
    return serialize_doc(product)


@router.post("/products/{product_id}/assets")
async def attach_asset(
    product_id: str,
    data: AttachAssetRequest,
    seller=Depends(require_role("seller")),
    catalog=Depends(get_catalog_service),
):
    product = await catalog.attach_asset(seller, product_id, data)
    return serialize_doc(product)
