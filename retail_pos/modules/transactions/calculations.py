"""
transactions/calculations.py

Pure checkout math: discount prices and amounts, change, loyalty points and
tier selection. Every amount is a Decimal; points are ints.

Do not import repos or open DB connections here.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_FLOOR
from typing import Iterable, Optional

from ...database.repositories.discounts_repo import Discount, DiscountType
from ...database.repositories.members_repo import MemberTier

__all__ = [
    "ZERO",
    "to_money",
    "clamp_non_negative",
    "discount_is_applicable",
    "discounted_unit_price",
    "transaction_discount_amount",
    "line_discount_amount",
    "change_due",
    "earned_points",
    "eligible_tier",
]

ZERO = Decimal("0")
_HUNDRED = Decimal("100")


# -----------------------------
# Core utilities
# -----------------------------

def to_money(x) -> Decimal:
    """Decimal from int/str/Decimal; floats go through str() to avoid binary noise."""
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


def clamp_non_negative(x: Decimal) -> Decimal:
    """Return x if x > 0, else 0."""
    return x if x > ZERO else ZERO


def _floor(x: Decimal) -> Decimal:
    return x.to_integral_value(rounding=ROUND_FLOOR)


# -----------------------------
# Discounts
# -----------------------------

def discount_is_applicable(
    discount: Discount,
    now: datetime,
    subtotal: Optional[Decimal] = None,
    pending_uses: int = 0,
) -> bool:
    """
    Active, inside [start_date, end_date], under its usage cap and, when a
    subtotal is given, at or above min_purchase.

    `pending_uses` counts uses already claimed by the same checkout; one more
    must still fit under max_uses.

    Line discounts are checked without a subtotal (min_purchase is a
    transaction-level condition).
    """
    if not discount.is_active:
        return False
    if now < discount.start_date or now > discount.end_date:
        return False
    if discount.max_uses is not None and discount.used_count + pending_uses >= discount.max_uses:
        return False
    if (
        subtotal is not None
        and discount.min_purchase is not None
        and subtotal < discount.min_purchase
    ):
        return False
    return True


def discounted_unit_price(price: Decimal, value: Decimal, type_: DiscountType | str | None) -> Decimal:
    """
    PERCENTAGE: price - price*value/100
    FIXED_AMOUNT: price - value
    No type: price unchanged. Never below zero.
    """
    if type_ is None:
        return price
    kind = DiscountType(type_)
    if kind is DiscountType.PERCENTAGE:
        reduced = price - (price * value / _HUNDRED)
    else:
        reduced = price - value
    return clamp_non_negative(reduced)


def transaction_discount_amount(value: Decimal, type_: DiscountType | str, subtotal: Decimal) -> Decimal:
    """
    Amount taken off a whole cart:
      PERCENTAGE   -> floor(value * subtotal / 100)
      FIXED_AMOUNT -> min(value, subtotal)
    Always within [0, subtotal].
    """
    kind = DiscountType(type_)
    if kind is DiscountType.PERCENTAGE:
        amount = _floor(value * subtotal / _HUNDRED)
    else:
        amount = min(value, subtotal)
    return min(clamp_non_negative(amount), clamp_non_negative(subtotal))


def line_discount_amount(basic_price: Decimal, discounted_price: Decimal, quantity: int) -> Decimal:
    """Money taken off one cart line: (basic - discounted) * quantity."""
    return clamp_non_negative(basic_price - discounted_price) * quantity


# -----------------------------
# Payment
# -----------------------------

def change_due(cash_amount: Decimal, final_amount: Decimal) -> Decimal:
    """cash - final; negative means the tender does not cover the bill."""
    return cash_amount - final_amount


# -----------------------------
# Loyalty
# -----------------------------

def earned_points(
    final_amount: Decimal,
    base_amount: Decimal,
    point_multiplier: Decimal,
    tier_multiplier: Optional[Decimal] = None,
) -> int:
    """
    base   = floor(final_amount / base_amount)
    earned = floor(base * point_multiplier * (tier_multiplier or 1))
    """
    if base_amount <= ZERO or final_amount <= ZERO:
        return 0
    base = _floor(final_amount / base_amount)
    multiplier = point_multiplier * (tier_multiplier if tier_multiplier is not None else Decimal("1"))
    return max(int(_floor(base * multiplier)), 0)


def eligible_tier(tiers: Iterable[MemberTier], points_earned: int) -> Optional[MemberTier]:
    """Highest tier whose min_points <= points_earned, or None."""
    best: Optional[MemberTier] = None
    for tier in tiers:
        if tier.min_points <= points_earned and (best is None or tier.min_points > best.min_points):
            best = tier
    return best
