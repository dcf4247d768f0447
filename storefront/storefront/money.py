"""Fixed-point money helpers."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Convert a number to a Decimal rounded to cents.

    Floats go through ``str()`` first so ``9.99`` stays ``9.99`` instead of
    picking up binary noise.
    """
    if isinstance(value, bool):
        raise ValueError("booleans are not money")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"not a monetary amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"not a monetary amount: {value!r}")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def to_percentage(value) -> Decimal:
    """Convert a discount percentage to Decimal without rounding it."""
    if isinstance(value, bool):
        raise ValueError("booleans are not percentages")
    if isinstance(value, float):
        value = str(value)
    try:
        pct = Decimal(value)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"not a percentage: {value!r}") from e
    if not pct.is_finite():
        raise ValueError(f"not a percentage: {value!r}")
    return pct
