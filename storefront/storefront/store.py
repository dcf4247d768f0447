"""Storage collaborators used by the order functions."""

import threading
from typing import Optional, Protocol

from .errors import ConcurrentModification, OrderNotFound
from .logger import logger
from .schemas import Order, OrderFilter, Product


class ProductLookup(Protocol):
    """Read access to the catalog."""

    def get(self, product_id: str) -> Optional[Product]:
        """Return the product, or None when it does not exist."""
        ...


class OrderStore(Protocol):
    """Persistence for orders."""

    def save(self, order: Order) -> Order:
        """Insert a new order (version 1) or replace the stored one (stored version + 1)."""
        ...

    def find_by_id(self, order_id: str) -> Optional[Order]:
        ...

    def list(self, order_filter: Optional[OrderFilter] = None) -> list[Order]:
        ...

    def delete(self, order_id: str) -> None:
        ...


class InMemoryOrderStore:
    """Dict-backed order store with a compare-and-set on ``Order.version``.

    Callers get copies, so mutating a returned order never changes what is stored.
    """

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._lock = threading.Lock()

    def save(self, order: Order) -> Order:
        with self._lock:
            current = self._orders.get(order.order_id)
            current_version = current.version if current else 0
            if order.version != current_version + 1:
                raise ConcurrentModification(order.order_id, order.version - 1, current_version)
            self._orders[order.order_id] = order.model_copy(deep=True)
        logger.debug(f"Order saved | order_id={order.order_id} | version={order.version} | status={order.status.value}")
        return order

    def find_by_id(self, order_id: str) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            return order.model_copy(deep=True) if order else None

    def list(self, order_filter: Optional[OrderFilter] = None) -> list[Order]:
        """Return matching orders, newest first."""
        with self._lock:
            orders = [o.model_copy(deep=True) for o in self._orders.values()]
        if order_filter:
            orders = [o for o in orders if order_filter.matches(o)]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    def delete(self, order_id: str) -> None:
        with self._lock:
            if self._orders.pop(order_id, None) is None:
                raise OrderNotFound(order_id)
        logger.info(f"Order deleted | order_id={order_id}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)
