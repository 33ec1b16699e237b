from pydantic import BaseModel, Field
from typing import Annotated, List, Literal, Optional, Union
from enum import Enum

from utils.errors import InvalidPlacement, InvalidPricing


class ProductType(str, Enum):
    PHYSICAL = "physical"
    DIGITAL = "digital"
    SERVICE = "service"


class ProductStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    REJECTED = "rejected"
    ARCHIVED = "archived"
    DELETED = "deleted"


# statuses a seller may set directly on an own product
SELLER_SETTABLE_STATUSES = {
    ProductStatus.DRAFT,
    ProductStatus.INACTIVE,
    ProductStatus.ARCHIVED,
    ProductStatus.DELETED,
    ProductStatus.ACTIVE,
}


# =========================
# SHARED PIECES
# =========================

class Price(BaseModel):
    amount: Optional[float] = None
    currency: str = "USD"


class Discount(BaseModel):
    percentage: float = Field(..., ge=0, le=100)


class Seo(BaseModel):
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    meta_keywords: List[str] = []


# =========================
# VARIANT PAYLOADS
# =========================

class Dimensions(BaseModel):
    length: float
    width: float
    height: float
    unit: str = "cm"


class Weight(BaseModel):
    value: float
    unit: str = "kg"


class PhysicalDetails(BaseModel):
    type: Literal["physical"] = "physical"
    stock: int = Field(..., ge=0)
    dimensions: Optional[Dimensions] = None
    weight: Optional[Weight] = None


class DigitalDetails(BaseModel):
    type: Literal["digital"] = "digital"
    kind: str = Field(..., min_length=1)
    # zip_file / preview_file are only ever set by asset attachment


class DeliveryTime(BaseModel):
    min: int = Field(..., ge=0)
    max: int = Field(..., ge=0)
    unit: str = "days"


class Revisions(BaseModel):
    allowed: int = Field(..., ge=0)
    cost: float = Field(0, ge=0)
    unit: str = "USD"


class ServiceDetails(BaseModel):
    type: Literal["service"] = "service"
    delivery_time: DeliveryTime
    revisions: Revisions
    deliverables: List[str]
    requirements: List[str]
    consultation_required: bool = False


ProductDetails = Annotated[
    Union[PhysicalDetails, DigitalDetails, ServiceDetails],
    Field(discriminator="type"),
]


# =========================
# REQUEST SCHEMAS
# =========================

class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    tags: List[str] = []

    category_id: Optional[str] = None
    sub_category_id: Optional[str] = None
    item_id: Optional[str] = None
    kit_id: Optional[str] = None
    is_kit_product: Optional[bool] = None
    type_of_kit: Optional[Literal["premium", "basic"]] = None

    price: Optional[Price] = None
    credits_cost: Optional[float] = None
    discounted_credits_cost: Optional[float] = None
    discount: Optional[Discount] = None

    theme: Optional[str] = None
    season: Optional[str] = None
    occasion: Optional[str] = None
    featured: bool = False
    seo: Optional[Seo] = None

    details: ProductDetails


class ProductUpdate(BaseModel):
    """Partial edit. Unset fields keep their stored value."""
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    tags: Optional[List[str]] = None

    category_id: Optional[str] = None
    sub_category_id: Optional[str] = None
    item_id: Optional[str] = None
    kit_id: Optional[str] = None
    type_of_kit: Optional[Literal["premium", "basic"]] = None

    price: Optional[Price] = None
    credits_cost: Optional[float] = None
    discounted_credits_cost: Optional[float] = None
    discount: Optional[Discount] = None

    theme: Optional[str] = None
    season: Optional[str] = None
    occasion: Optional[str] = None
    featured: Optional[bool] = None
    seo: Optional[Seo] = None

    details: Optional[ProductDetails] = None


class ProductStatusUpdate(BaseModel):
    status: ProductStatus


class RelatedProductsUpdate(BaseModel):
    related_ids: List[str] = []


# =========================
# INVARIANTS
# =========================

def validate_placement(data: ProductCreate) -> bool:
    """
    Exactly one of {category_id AND item_id} or {kit_id}.
    Returns the resolved is_kit_product flag.
    """
    has_standard = bool(data.category_id) and bool(data.item_id)
    has_partial_standard = bool(data.category_id) or bool(data.item_id)
    has_kit = bool(data.kit_id)

    if has_kit and has_partial_standard:
        raise InvalidPlacement("Product cannot have both a kit and a category/item placement")
    if not has_kit and not has_standard:
        raise InvalidPlacement()

    if data.is_kit_product is not None and data.is_kit_product != has_kit:
        raise InvalidPlacement("is_kit_product must match presence of kit_id")

    return has_kit


def validate_pricing(data: ProductCreate) -> None:
    amount = data.price.amount if data.price else None
    has_amount = amount is not None and amount > 0
    has_credits = data.credits_cost is not None and data.credits_cost > 0

    if not (has_amount or has_credits):
        raise InvalidPricing()

    if amount is not None and amount < 0:
        raise InvalidPricing("Price amount cannot be negative")
    if data.credits_cost is not None and data.credits_cost < 0:
        raise InvalidPricing("Credits cost cannot be negative")


def private_file_ref(product: dict) -> dict | None:
    """The downloadable private asset reference of a product, if any."""
    if product.get("is_kit_product"):
        return product.get("kit_main_file")

    product_type = product.get("type")
    if product_type == ProductType.DIGITAL.value:
        return (product.get("details") or {}).get("zip_file")
    if product_type in (ProductType.PHYSICAL.value, ProductType.SERVICE.value):
        return None
    raise ValueError(f"Unknown product type: {product_type}")
