"""Order building and the status transition rules."""

from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Optional

from .errors import InvalidCart, InvalidTransition, ProductNotFound
from .logger import logger
from .money import ZERO
from .pricing import line_total, resolve_unit_price, select_discount_tier
from .schemas import CartLine, Order, OrderLine, OrderStatus, PricedCart, PricedCartLine, utcnow
from .store import OrderStore, ProductLookup

Clock = Callable[[], datetime]

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.APPROVED, OrderStatus.CANCELLED}),
    OrderStatus.APPROVED: frozenset({OrderStatus.SHIPPING, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPING: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)

# Statuses whose transition may carry an expected delivery time.
DELIVERY_ESTIMATE_STATUSES = frozenset({OrderStatus.APPROVED, OrderStatus.SHIPPING})


def price_cart(lines: Iterable[CartLine], product_lookup: ProductLookup) -> PricedCart:
    """Price every cart line against live catalog data without persisting anything.

    Args:
        lines: Cart lines to price
        product_lookup: Catalog read access

    Returns:
        PricedCart: Priced lines and their total

    Raises:
        ProductNotFound: On the first line whose product does not exist
    """
    items = []
    total = ZERO
    for line in lines:
        product = product_lookup.get(line.product_id)
        if product is None:
            raise ProductNotFound(line.product_id)
        tier = select_discount_tier(product.discount_tiers, line.quantity)
        unit_price = resolve_unit_price(product.price, product.discount_tiers, line.quantity)
        items.append(
            PricedCartLine(
                product_id=product.product_id,
                quantity=line.quantity,
                unit_price_at_purchase=unit_price,
                base_price=product.price,
                discount_percentage=tier.discount_percentage if tier else None,
            )
        )
        total += line_total(unit_price, line.quantity)
    return PricedCart(items=items, total=total)


def build_order(
    user_id: str,
    lines: Iterable[CartLine],
    product_lookup: ProductLookup,
    order_store: OrderStore,
    clock: Optional[Clock] = None,
) -> Order:
    """Turn a cart into a persisted, price-frozen order.

    Every line is resolved and priced before anything is saved, so a missing
    product leaves the store untouched. Stock is not decremented and no
    notification is sent.

    Args:
        user_id: Owner of the new order
        lines: Cart lines, at least one
        product_lookup: Catalog read access
        order_store: Where the order is saved
        clock: Timestamp source, UTC ``now`` by default

    Returns:
        Order: The saved order in ``pending`` status

    Raises:
        InvalidCart: If the cart is empty
        ProductNotFound: If any line references an unknown product
    """
    lines = list(lines)
    if not lines:
        raise InvalidCart("Cannot place an order with an empty cart")

    priced = price_cart(lines, product_lookup)
    now = (clock or utcnow)()
    order = Order(
        user_id=user_id,
        status=OrderStatus.PENDING,
        items=[
            OrderLine(
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price_at_purchase=item.unit_price_at_purchase,
            )
            for item in priced.items
        ],
        total=priced.total,
        created_at=now,
        updated_at=now,
    )
    order_store.save(order)
    logger.info(
        f"Order created | order_id={order.order_id} | user_id={user_id} | lines={len(order.items)} | total={order.total}"
    )
    return order


def can_transition(current: OrderStatus, new_status: OrderStatus) -> bool:
    return new_status in ALLOWED_TRANSITIONS[current]


def apply_transition(
    order: Order,
    new_status: OrderStatus,
    expected_delivery_time: Optional[datetime] = None,
    clock: Optional[Clock] = None,
    enforce: bool = True,
) -> Order:
    """Return a copy of ``order`` moved to ``new_status``; the input is not modified.

    ``enforce=False`` skips the transition table. It exists for the explicit
    admin override and must not be used on the normal path.

    Raises:
        InvalidTransition: If the move is not in ``ALLOWED_TRANSITIONS``, or a
            delivery time is given for a status other than approved/shipping
    """
    new_status = OrderStatus(new_status)
    if enforce and not can_transition(order.status, new_status):
        raise InvalidTransition(order.order_id, order.status.value, new_status.value)
    if expected_delivery_time is not None and new_status not in DELIVERY_ESTIMATE_STATUSES:
        raise InvalidTransition(
            order.order_id,
            order.status.value,
            new_status.value,
            reason="expected delivery time can only be set when approving or shipping",
        )

    update = {
        "status": new_status,
        "updated_at": (clock or utcnow)(),
        "version": order.version + 1,
    }
    if expected_delivery_time is not None:
        update["expected_delivery_time"] = expected_delivery_time
    return order.model_copy(update=update, deep=True)
