from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

# smallest currency unit
CENT = Decimal("0.01")


def to_money(value: Decimal | int | float | str) -> Decimal:
    # str() first so floats like 99.995 keep their literal digits
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_commission(price: Decimal | int | float | str, rate: Decimal | int | float | str) -> Decimal:
    """
    price x rate, rounded half-up to the smallest currency unit.
    Price validation (must be > 0) is the caller's job.
    """
    exact = Decimal(str(price)) * Decimal(str(rate))
    return exact.quantize(CENT, rounding=ROUND_HALF_UP)
