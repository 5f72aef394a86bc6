"""
Checkout pricing: coupon discount evaluation and cart settlement.

Amounts are plain ints in the smallest currency unit. Nothing here touches
the database; coupons are read through their attributes, so a `Coupon`
model instance or any object with the same fields works.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

PERCENTAGE = "percentage"
FIXED = "fixed"


class MixedStoreCartError(ValueError):
    """Raised when cart lines belong to more than one store."""


@dataclass(frozen=True)
class CartLine:
    product_id: int
    unit_price: int
    quantity: int
    store_id: int

    def __post_init__(self):
        if self.quantity < 1:
            raise ValueError("quantity must be at least 1")
        if self.unit_price < 0:
            raise ValueError("unit_price must be >= 0")

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class Settlement:
    total_amount: int
    discount_amount: int
    final_amount: int


def evaluate(subtotal: int, coupon) -> int:
    """
    Return the discount `coupon` grants on `subtotal`.

    The coupon must already be known to be active and inside its validity
    window. The result is floored to a whole currency unit, capped by the
    coupon's max discount, and never larger than the subtotal.
    """
    if subtotal < 0:
        raise ValueError("subtotal must be >= 0")

    min_order = coupon.min_order_amount
    if min_order is not None and subtotal < min_order:
        return 0

    if coupon.discount_type == PERCENTAGE:
        discount = subtotal * coupon.discount_value // 100
    elif coupon.discount_type == FIXED:
        discount = int(coupon.discount_value)
    else:
        raise ValueError(f"Unknown discount type: {coupon.discount_type!r}")

    cap = coupon.max_discount_amount
    if cap is not None and discount > cap:
        discount = cap

    return max(0, min(discount, subtotal))


def store_of(lines: Iterable[CartLine]) -> Optional[int]:
    """The single store id shared by `lines` (None when empty)."""
    store_ids = {line.store_id for line in lines}
    if len(store_ids) > 1:
        raise MixedStoreCartError("All cart items must come from the same store.")
    return next(iter(store_ids), None)


def settle(lines: Iterable[CartLine], coupon=None) -> Settlement:
    lines = list(lines)
    store_of(lines)

    total = sum(line.line_total for line in lines)
    discount = evaluate(total, coupon) if coupon is not None else 0
    return Settlement(total_amount=total, discount_amount=discount, final_amount=total - discount)
