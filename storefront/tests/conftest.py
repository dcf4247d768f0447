"""Test fixtures for the storefront tests."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from storefront.catalog import InMemoryCatalog
from storefront.lifecycle import OrderLifecycle
from storefront.schemas import DiscountTier, ProductCreate
from storefront.store import InMemoryOrderStore


class FakeClock:
    """Deterministic clock that advances one minute per call."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(minutes=1)
        return current


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def catalog():
    return InMemoryCatalog()


@pytest.fixture
def order_store():
    return InMemoryOrderStore()


@pytest.fixture
def tiered_product(catalog):
    """Product priced 100 with a 5% tier at 5 units and a 10% tier at 10 units."""
    return catalog.add_product(
        ProductCreate(
            name="iPhone 14 Pro",
            price=Decimal("100"),
            stock=50,
            discount_tiers=[
                DiscountTier(min_quantity=5, discount_percentage=Decimal("5")),
                DiscountTier(min_quantity=10, discount_percentage=Decimal("10")),
            ],
        )
    )


@pytest.fixture
def plain_product(catalog):
    """Product without discount tiers."""
    return catalog.add_product(ProductCreate(name="Silicone Case", price=Decimal("15.00"), stock=150))


@pytest.fixture
def notifier():
    """Notification sender that always reports success."""
    sender = MagicMock()
    sender.send.return_value = True
    return sender


@pytest.fixture
def lifecycle(order_store, notifier, clock):
    return OrderLifecycle(order_store, notifier, clock=clock)
