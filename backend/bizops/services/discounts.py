# Overview: Pure discount arithmetic on integer cents.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from ..models.finance import DISCOUNT_FIXED, DISCOUNT_PERCENT, DISCOUNT_TYPES
"""
Discount rules (authoritative)

- fixed:   final = max(0, subtotal - discount)          discount is in cents
- percent: final = max(0, subtotal - subtotal*pct/100)  pct may carry decimals
- discount <= 0 is the identity.
- Percent cuts are rounded half-up to the cent; nothing else is rounded.
- final_amount is always within [0, subtotal] for subtotal >= 0.
"""


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def final_amount(subtotal_cents: int, discount, kind: str = DISCOUNT_FIXED) -> int:
    if kind not in DISCOUNT_TYPES:
        raise ValueError(f"unknown discount type: {kind}")

    subtotal_cents = max(0, int(subtotal_cents))
    discount_dec = _to_decimal(discount or 0)
    if discount_dec <= 0:
        return subtotal_cents

    if kind == DISCOUNT_PERCENT:
        cut = _round_cents(Decimal(subtotal_cents) * discount_dec / Decimal(100))
    else:
        cut = _round_cents(discount_dec)

    return max(0, subtotal_cents - cut)


def discount_amount(subtotal_cents: int, discount, kind: str = DISCOUNT_FIXED) -> int:
    """Complement of final_amount, clamped to [0, subtotal]."""
    subtotal_cents = max(0, int(subtotal_cents))
    cut = subtotal_cents - final_amount(subtotal_cents, discount, kind)
    return min(max(cut, 0), subtotal_cents)
