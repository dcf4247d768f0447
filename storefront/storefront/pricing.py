"""Quantity discount resolution and line pricing."""

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from .errors import InvalidDiscountTier, InvalidQuantity
from .money import CENTS, to_money
from .schemas import DiscountTier

HUNDRED = Decimal("100")


def select_discount_tier(tiers: Iterable[DiscountTier], quantity: int) -> Optional[DiscountTier]:
    """Return the tier with the highest ``min_quantity`` that ``quantity`` reaches.

    Tiers are not cumulative: at most one applies.

    Args:
        tiers: The product's discount tiers, in any order
        quantity: Line quantity, at least 1

    Returns:
        The applicable tier, or None when the quantity is below every threshold
    """
    if quantity <= 0:
        raise InvalidQuantity(f"quantity must be at least 1, got {quantity}")
    for tier in sorted(tiers, key=lambda t: t.min_quantity, reverse=True):
        if tier.min_quantity <= quantity:
            return tier
    return None


def resolve_unit_price(base_price, tiers: Iterable[DiscountTier], quantity: int) -> Decimal:
    """Compute the effective unit price for a line of ``quantity`` units.

    Args:
        base_price: Catalog unit price (Decimal, int or str)
        tiers: The product's discount tiers
        quantity: Line quantity, at least 1

    Returns:
        Decimal: ``base_price * (1 - pct / 100)`` for the selected tier, rounded
        half-up to cents, or the base price when no tier applies

    Raises:
        InvalidQuantity: If quantity is below 1
    """
    price = to_money(base_price)
    tier = select_discount_tier(tiers, quantity)
    if tier is None:
        return price
    factor = (HUNDRED - tier.discount_percentage) / HUNDRED
    return (price * factor).quantize(CENTS, rounding=ROUND_HALF_UP)


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    return (unit_price * quantity).quantize(CENTS, rounding=ROUND_HALF_UP)


def validate_discount_tiers(tiers: Iterable[DiscountTier]) -> list[DiscountTier]:
    """Check a product's tier set before it is stored.

    A larger threshold may never carry a smaller discount, so the unit price
    never goes up as the quantity grows.

    Args:
        tiers: Candidate tier set

    Returns:
        list[DiscountTier]: The tiers sorted by ascending ``min_quantity``

    Raises:
        InvalidDiscountTier: On a non-positive threshold, a percentage outside
            [0, 100], two tiers with the same threshold, or a discount that
            shrinks as the threshold grows
    """
    seen: set[int] = set()
    checked = []
    for tier in tiers:
        if tier.min_quantity <= 0:
            raise InvalidDiscountTier(f"min_quantity must be positive, got {tier.min_quantity}")
        if not (0 <= tier.discount_percentage <= HUNDRED):
            raise InvalidDiscountTier(
                f"discount_percentage must be between 0 and 100, got {tier.discount_percentage}"
            )
        if tier.min_quantity in seen:
            raise InvalidDiscountTier(f"duplicate tier for min_quantity {tier.min_quantity}")
        seen.add(tier.min_quantity)
        checked.append(tier)

    ordered = sorted(checked, key=lambda t: t.min_quantity)
    for lower, higher in zip(ordered, ordered[1:]):
        if higher.discount_percentage < lower.discount_percentage:
            raise InvalidDiscountTier(
                f"tier at min_quantity {higher.min_quantity} ({higher.discount_percentage}%) discounts less than "
                f"the tier at {lower.min_quantity} ({lower.discount_percentage}%)"
            )
    return ordered
