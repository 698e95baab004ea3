from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal


@dataclass(frozen=True)
class PriceResult:
    original: int
    discounted: int
    discount_percent: float
    discount_amount: int


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_price_after_discount(
    price: int | float,
    discount_percent: float | None = None,
    discount_amount: int | float | None = None,
) -> PriceResult:
    """Price after discount, in integer currency units.

    An absolute ``discount_amount`` takes precedence over ``discount_percent``.
    Both are clamped so the result is never negative.
    """
    original = _round_half_up(Decimal(str(price or 0)))
    percent = Decimal("0")
    amount = 0

    if discount_amount is not None:
        amount = _round_half_up(Decimal(str(discount_amount or 0)))
        amount = max(0, min(amount, original))
        percent = (Decimal(amount) / Decimal(original) * 100) if original > 0 else Decimal("0")
    elif discount_percent is not None:
        percent = max(Decimal("0"), min(Decimal(str(discount_percent or 0)), Decimal("100")))
        amount = _round_half_up(percent / 100 * original)

    return PriceResult(
        original=original,
        discounted=max(0, original - amount),
        discount_percent=float(percent),
        discount_amount=amount,
    )
