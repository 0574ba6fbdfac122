"""
Database Schemas

MongoDB collection schemas for the storefront, defined as Pydantic models.
These schemas are used for data validation in the application.

Each Pydantic model represents a collection in the database.
Model name is converted to lowercase for the collection name:
- Customer -> "customer" collection
- Product -> "product" collection
- Order -> "order" collection

The *Record variants carry the store-assigned id and timestamps and are what
the data access layer hands out.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    # pymongo hands back naive datetimes unless the client is tz aware
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _unique_variants(variants):
    if variants is not None:
        ids = [v.id for v in variants]
        if len(ids) != len(set(ids)):
            raise ValueError("variant ids must be unique within a product")
    return variants


class OrderStatus(str, Enum):
    PROCESSING = "processing"
    READY = "ready"
    DELIVERED = "delivered"
    PICKED_UP = "picked-up"


class DeliveryType(str, Enum):
    DELIVERY = "delivery"
    PICKUP = "pickup"


# -----------------------------
# Core Store Models
# -----------------------------

class Customer(BaseModel):
    """
    Customers collection schema
    Collection: "customer"
    """
    name: str = Field(..., min_length=1, description="Full name")
    email: Optional[EmailStr] = None
    phone: str = Field(..., description="Contact phone number")
    address: str = Field(..., description="Delivery address")


class Variant(BaseModel):
    """A purchasable option of a product (e.g. a color) with its own stock."""
    id: str = Field(..., min_length=1)
    name: str
    stock: int = Field(0, ge=0)


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product" (lowercase of class name)

    total_stock is derived from the variants when omitted. The data access
    layer rejects a supplied value that disagrees with the variants.
    """
    name: str = Field(..., min_length=1, description="Product name")
    description: Optional[str] = Field(None, description="Product description")
    price: float = Field(..., ge=0, description="Unit price")
    images: List[str] = Field(default_factory=list, description="Image URLs, first is the hero image")
    variants: List[Variant] = Field(default_factory=list)
    total_stock: Optional[int] = Field(None, ge=0)

    @field_validator("variants")
    @classmethod
    def unique_variant_ids(cls, variants: List[Variant]) -> List[Variant]:
        return _unique_variants(variants)

    def variant_stock(self) -> int:
        return sum(v.stock for v in self.variants)

    def find_variant(self, variant_id: str) -> Optional[Variant]:
        return next((v for v in self.variants if v.id == variant_id), None)


class LineItem(BaseModel):
    """
    A (product, variant, quantity, price snapshot) tuple.
    Used both in the cart and in a persisted order's item list.
    """
    product_id: str
    variant_id: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price captured when added to the cart")
    product_name: str = ""
    variant_name: str = ""
    product_image: Optional[str] = None

    @property
    def key(self):
        return (self.product_id, self.variant_id)

    @property
    def subtotal(self) -> float:
        return self.price * self.quantity


class Order(BaseModel):
    """
    Orders collection schema
    Collection: "order"
    """
    customer_id: str
    items: List[LineItem] = Field(..., min_length=1)
    total: float = Field(..., ge=0)
    status: OrderStatus = OrderStatus.PROCESSING
    delivery_type: DeliveryType = DeliveryType.DELIVERY
    shipping_address: Optional[str] = None
    notes: Optional[str] = None


# -----------------------------
# Stored records
# -----------------------------

class _Stamped(BaseModel):
    id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at")
    @classmethod
    def as_utc(cls, value):
        return _utc(value)


class CustomerRecord(_Stamped, Customer):
    pass


class ProductRecord(_Stamped, Product):
    pass


class OrderRecord(_Stamped, Order):
    pass


# -----------------------------
# Partial updates
# -----------------------------

# Omitted fields are left alone; an explicit null is only accepted where the
# stored schema allows one.

def _not_null(value):
    if value is None:
        raise ValueError("may be omitted but not null")
    return value


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    @field_validator("name", "phone", "address")
    @classmethod
    def required_not_null(cls, value):
        return _not_null(value)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    images: Optional[List[str]] = None
    variants: Optional[List[Variant]] = None

    @field_validator("name", "price", "images", "variants")
    @classmethod
    def required_not_null(cls, value):
        return _not_null(value)

    @field_validator("variants")
    @classmethod
    def unique_variant_ids(cls, variants: Optional[List[Variant]]) -> Optional[List[Variant]]:
        return _unique_variants(variants)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


# -----------------------------
# Analytics Models
# -----------------------------

class TrendPoint(BaseModel):
    date: str
    orders: int = Field(..., description="Orders created that day (measured)")
    visitors: int = Field(..., description="orders + synthetic jitter")
    page_views: int = Field(..., description="orders x 3 + synthetic jitter")


class TopPage(BaseModel):
    page: str
    label: str
    views: int
    unique_views: int


class DeviceShare(BaseModel):
    device: str
    visitors: int
    percentage: int


class AggregateReport(BaseModel):
    range_days: int
    visitors: int
    page_views_estimate: int = Field(..., description="Heuristic estimate, not a measured value")
    avg_session_seconds: int
    bounce_rate_pct: int
    new_customers: int
    returning_customers: int = Field(..., description="Counted per recent order, not per customer")
    trend: List[TrendPoint]
    top_pages: List[TopPage]
    devices: List[DeviceShare]


class TopProduct(BaseModel):
    product_id: str
    name: str
    quantity: int
    revenue: float


class SalesPoint(BaseModel):
    day: str
    revenue: float
    orders: int


class SalesOverview(BaseModel):
    range_days: int
    revenue: float
    orders: int
    avg_order_value: float
    orders_by_status: dict
    top_products: List[TopProduct]
    timeseries: List[SalesPoint]
