"""Pydantic models for the storefront catalog and orders."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, computed_field, field_validator

from .money import ZERO, to_money, to_percentage


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


class OrderStatus(str, Enum):
    """Order lifecycle statuses."""

    PENDING = "pending"
    APPROVED = "approved"
    SHIPPING = "shipping"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class DiscountTier(BaseModel):
    """A quantity price break owned by a product.

    Attributes:
        min_quantity (int): Line quantity from which the tier applies.
        discount_percentage (Decimal): Percentage taken off the base unit price.

    Range checks live in ``pricing.validate_discount_tiers`` so the catalog can
    report them as ``InvalidDiscountTier``.
    """

    model_config = ConfigDict(frozen=True)

    min_quantity: int
    discount_percentage: Decimal

    @field_validator("discount_percentage", mode="before")
    @classmethod
    def parse_percentage(cls, v):
        return to_percentage(v)


class Category(BaseModel):
    category_id: str = Field(default_factory=lambda: _new_id("cat"))
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    image: str = ""
    created_at: datetime = Field(default_factory=utcnow)


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    image: str = ""


class Subcategory(BaseModel):
    subcategory_id: str = Field(default_factory=lambda: _new_id("sub"))
    category_id: str
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    image: str = ""
    created_at: datetime = Field(default_factory=utcnow)


class SubcategoryCreate(BaseModel):
    category_id: str
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    image: str = ""


def _reject_null(v, info: ValidationInfo):
    if v is None:
        raise ValueError(f"{info.field_name} cannot be null")
    return v


class CategoryUpdate(BaseModel):
    """Partial category edit; unset fields are left alone."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    image: Optional[str] = None

    @field_validator("name", "description", "image", mode="before")
    @classmethod
    def reject_null(cls, v, info: ValidationInfo):
        return _reject_null(v, info)


class SubcategoryUpdate(BaseModel):
    """Partial subcategory edit; ``category_id`` moves it to another category."""

    category_id: Optional[str] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    image: Optional[str] = None

    @field_validator("category_id", "name", "description", "image", mode="before")
    @classmethod
    def reject_null(cls, v, info: ValidationInfo):
        return _reject_null(v, info)


class ProductCreate(BaseModel):
    """Product fields supplied by the admin when a product is created.

    Attributes:
        name (str): Display name.
        description (str): Free-text description.
        price (Decimal): Base unit price, rounded to cents.
        cost (Decimal): Purchase cost, rounded to cents.
        stock (int): Units on hand. Orders do not decrement it.
        subcategory_id (str | None): Owning subcategory.
        image (str): Main image URL.
        discount_tiers (list[DiscountTier]): Quantity price breaks.
    """

    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    price: Decimal = Field(..., ge=0)
    cost: Decimal = Field(default=ZERO, ge=0)
    stock: int = Field(default=0, ge=0)
    subcategory_id: Optional[str] = None
    image: str = ""
    discount_tiers: list[DiscountTier] = Field(default_factory=list)

    @field_validator("price", "cost", mode="before")
    @classmethod
    def parse_money(cls, v):
        return to_money(v)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "25W USB-C Charger",
                "price": "15.00",
                "stock": 150,
                "discount_tiers": [
                    {"min_quantity": 20, "discount_percentage": "10"},
                    {"min_quantity": 50, "discount_percentage": "25"},
                ],
            }
        }
    )


class Product(ProductCreate):
    product_id: str = Field(default_factory=lambda: _new_id("prod"))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ProductUpdate(BaseModel):
    """Partial product edit; unset fields are left alone.

    Only ``subcategory_id`` may be sent as null, which unassigns the product.
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    cost: Optional[Decimal] = Field(default=None, ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    subcategory_id: Optional[str] = None
    image: Optional[str] = None
    discount_tiers: Optional[list[DiscountTier]] = None

    @field_validator("name", "description", "price", "cost", "stock", "image", "discount_tiers", mode="before")
    @classmethod
    def reject_null(cls, v, info: ValidationInfo):
        return _reject_null(v, info)

    @field_validator("price", "cost", mode="before")
    @classmethod
    def parse_money(cls, v):
        return None if v is None else to_money(v)


class CartLine(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)


class OrderLine(BaseModel):
    """One product line of an order, priced at build time and never repriced."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    quantity: int = Field(..., ge=1)
    unit_price_at_purchase: Decimal

    @computed_field
    @property
    def line_total(self) -> Decimal:
        return self.unit_price_at_purchase * self.quantity


class PricedCartLine(OrderLine):
    """An order line plus the catalog data used to price it."""

    base_price: Decimal
    discount_percentage: Optional[Decimal] = None


class PricedCart(BaseModel):
    items: list[PricedCartLine]
    total: Decimal


class Order(BaseModel):
    """A placed order.

    Attributes:
        order_id (str): Unique order identifier, auto-generated.
        user_id (str): Owner of the order.
        status (OrderStatus): Current lifecycle status.
        items (list[OrderLine]): Price-frozen lines, at least one.
        total (Decimal): Sum of line totals, fixed at build time.
        created_at (datetime): Build timestamp (UTC).
        updated_at (datetime): Last lifecycle change (UTC).
        expected_delivery_time (datetime | None): Set when approving or shipping.
        version (int): Incremented on every stored change.
    """

    order_id: str = Field(default_factory=lambda: _new_id("ord"), description="Unique order identifier")
    user_id: str = Field(..., min_length=1)
    status: OrderStatus = OrderStatus.PENDING
    items: list[OrderLine] = Field(..., min_length=1)
    total: Decimal
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    expected_delivery_time: Optional[datetime] = None
    version: int = Field(default=1, ge=1)

    @property
    def short_ref(self) -> str:
        """Last six characters of the id, as shown to customers."""
        return self.order_id[-6:]

    @property
    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class OrderCreate(BaseModel):
    user_id: str = Field(..., min_length=1)
    items: list[CartLine]

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "user_id": "customer1",
                "items": [
                    {"product_id": "prod-1a2b3c4d", "quantity": 7},
                    {"product_id": "prod-5e6f7a8b", "quantity": 1},
                ],
            }
        }
    )


class CartPreviewRequest(BaseModel):
    items: list[CartLine]


class StatusChange(BaseModel):
    status: OrderStatus
    expected_delivery_time: Optional[datetime] = None


class CustomerMessage(BaseModel):
    message: str = Field(..., min_length=1, max_length=4096)


class BulkNotification(BaseModel):
    """One message for many customers."""

    user_ids: list[str] = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=4096)


class NotificationReport(BaseModel):
    results: dict[str, bool]
    sent: int
    failed: int


class OrderFilter(BaseModel):
    """Order listing filter.

    Attributes:
        user_id: Only orders placed by this user
        status: Only orders in this status
        search: Case-insensitive substring of the order id
    """

    user_id: Optional[str] = None
    status: Optional[OrderStatus] = None
    search: Optional[str] = None

    def matches(self, order: Order) -> bool:
        if self.user_id and order.user_id != self.user_id:
            return False
        if self.status and order.status != self.status:
            return False
        if self.search and self.search.lower() not in order.order_id.lower():
            return False
        return True


class OrderStatusEvent(BaseModel):
    """Payload published on ``orders.status_changed``."""

    order_id: str
    user_id: str
    previous_status: OrderStatus
    status: OrderStatus
    version: int
    forced: bool = False
    expected_delivery_time: Optional[datetime] = None
    occurred_at: datetime = Field(default_factory=utcnow)


class CustomerContact(BaseModel):
    """Where a customer's notifications are delivered."""

    user_id: str = Field(..., min_length=1)
    telegram_chat_id: Optional[str] = None
