from typing import Optional

from fastapi import APIRouter, Depends

from config.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from models.product import ProductType
from services.providers import get_catalog_service
from utils.mongo import page_bounds, serialize_doc, serialize_docs

router = APIRouter(prefix="/products", tags=["Products"])


# =====================================================
# PUBLIC CATALOG (active + approved only)
# =====================================================
@router.get("")
async def list_products(
    category_id: Optional[str] = None,
    sub_category_id: Optional[str] = None,
    item_id: Optional[str] = None,
    kit_id: Optional[str] = None,
    seller_id: Optional[str] = None,
    type: Optional[ProductType] = None,
    name: Optional[str] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    catalog=Depends(get_catalog_service),
):
    skip, limit = page_bounds(page, limit, MAX_PAGE_SIZE)
    filters = {
        "category_id": category_id,
        "sub_category_id": sub_category_id,
        "item_id": item_id,
        "kit_id": kit_id,
        "seller_id": seller_id,
        "type": type.value if type else None,
        "name": name,
    }
    items, total = await catalog.list_public(filters, skip, limit)
    return {"items": serialize_docs(items), "total": total, "page": page, "limit": limit}


@router.get("/{id_or_slug}")
async def product_detail(id_or_slug: str, catalog=Depends(get_catalog_service)):
    return serialize_doc(await catalog.get_public_product(id_or_slug))


@router.get("/{product_id}/related")
async def related_products(product_id: str, catalog=Depends(get_catalog_service)):
    return {"items": serialize_docs(await catalog.get_related_products(product_id))}
