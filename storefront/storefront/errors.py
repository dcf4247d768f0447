"""Storefront domain exceptions.

Raised synchronously by the pricing, order and catalog functions when a
business rule is violated. Nothing here is retried; the HTTP layer maps each
type to a status code.
"""

from typing import Optional


class StorefrontError(Exception):
    """Base class for every storefront failure."""


class OrderError(StorefrontError):
    """Base class for order build and lifecycle failures."""


class ProductNotFound(OrderError):
    """A cart line references a product that does not exist."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class OrderNotFound(OrderError):
    """The requested order does not exist."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class InvalidTransition(OrderError):
    """The requested status change is not reachable from the current status."""

    def __init__(self, order_id: str, current: str, requested: str, reason: Optional[str] = None):
        self.order_id = order_id
        self.current = current
        self.requested = requested
        message = f"Cannot move order {order_id} from {current} to {requested}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidCart(OrderError):
    """The cart cannot be turned into an order (e.g. it is empty)."""


class ConcurrentModification(OrderError):
    """Another writer updated the order first."""

    def __init__(self, order_id: str, expected_version: int, actual_version: int):
        self.order_id = order_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Order {order_id} was modified concurrently "
            f"(expected stored version {expected_version}, found {actual_version})"
        )


class InvalidQuantity(StorefrontError, ValueError):
    """A quantity below one was passed to the pricing functions."""


class CatalogError(StorefrontError):
    """Base class for catalog editing failures."""


class InvalidDiscountTier(CatalogError):
    """Malformed discount tier data, rejected when a product is created or edited."""


class CategoryNotFound(CatalogError):
    def __init__(self, category_id: str):
        self.category_id = category_id
        super().__init__(f"Category not found: {category_id}")


class SubcategoryNotFound(CatalogError):
    def __init__(self, subcategory_id: str):
        self.subcategory_id = subcategory_id
        super().__init__(f"Subcategory not found: {subcategory_id}")


class CategoryInUse(CatalogError):
    """A category still has subcategories (or a subcategory still has products)."""
