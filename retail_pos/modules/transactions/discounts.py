from __future__ import annotations

from collections import Counter
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional
import sqlite3

from ...database.repositories.discounts_repo import Discount, DiscountsRepo
from ...database.repositories.members_repo import MembersRepo
from ...utils.loggers import get_logger
from .calculations import ZERO, discount_is_applicable, transaction_discount_amount
from .types import (
    DiscountInfo,
    MemberInfo,
    TransactionSummary,
    ValidatedCartItem,
    ValidationResult,
)

_log = get_logger(__name__)


def _info(discount: Discount, subtotal: Decimal) -> DiscountInfo:
    return DiscountInfo(
        discount_id=discount.discount_id,
        name=discount.name,
        value=discount.value,
        type=discount.type,
        amount=transaction_discount_amount(discount.value, discount.type, subtotal),
        code=discount.code,
    )


def _applicable(discount: Discount, now: datetime, subtotal: Decimal, line_uses: Optional[Counter]) -> bool:
    pending = line_uses[discount.discount_id] if line_uses else 0
    return discount_is_applicable(discount, now, subtotal, pending_uses=pending)


def count_discount_uses(
    items: Iterable[ValidatedCartItem],
    transaction_discount_id: Optional[int] = None,
) -> Counter:
    """
    {discount_id: uses} for one checkout: one use per cart line carrying the
    discount, plus one for the transaction-level discount.
    """
    uses: Counter = Counter()
    for item in items:
        if item.discount is not None:
            uses[item.discount.discount_id] += 1
    if transaction_discount_id is not None:
        uses[transaction_discount_id] += 1
    return uses


class DiscountResolver:
    """
    Resolves the single transaction-level discount a checkout asked for.

    Selection order: global code, then member discount id, then tier discount
    id; only the first one supplied is looked at. A selector that does not
    resolve, or resolves to a discount that is not applicable to the
    subtotal, gives None and the sale goes through at full price.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.discounts = DiscountsRepo(conn)
        self.members = MembersRepo(conn)

    # ------------------------------------------------------------------
    # Single lookups
    # ------------------------------------------------------------------
    def resolve_global(
        self, code: str, subtotal: Decimal, now: datetime, line_uses: Optional[Counter] = None
    ) -> Optional[DiscountInfo]:
        if not code or not code.strip():
            return None
        discount = self.discounts.get_global_by_code(code)
        if discount is None or not _applicable(discount, now, subtotal, line_uses):
            return None
        return _info(discount, subtotal)

    def resolve_member(
        self,
        member_id: int,
        discount_id: int,
        subtotal: Decimal,
        now: datetime,
        line_uses: Optional[Counter] = None,
    ) -> Optional[DiscountInfo]:
        discount = next(
            (d for d in self.discounts.list_for_member(member_id) if d.discount_id == discount_id),
            None,
        )
        if discount is None or not _applicable(discount, now, subtotal, line_uses):
            return None
        return _info(discount, subtotal)

    def resolve_tier(
        self,
        tier_id: int,
        discount_id: int,
        subtotal: Decimal,
        now: datetime,
        line_uses: Optional[Counter] = None,
    ) -> Optional[DiscountInfo]:
        discount = self.discounts.get_for_tier(tier_id, discount_id)
        if discount is None or not _applicable(discount, now, subtotal, line_uses):
            return None
        return _info(discount, subtotal)

    # ------------------------------------------------------------------
    # Transaction-level validation
    # ------------------------------------------------------------------
    def validate_transaction(
        self,
        items: list[ValidatedCartItem],
        member_id: Optional[int] = None,
        selected_member_discount_id: Optional[int] = None,
        selected_tier_discount_id: Optional[int] = None,
        global_discount_code: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ValidationResult[TransactionSummary]:
        now = now or datetime.now()
        subtotal = sum((i.subtotal for i in items), ZERO)

        member = self.members.get_with_relations(member_id) if member_id is not None else None
        # cart lines may already be using the same discount
        line_uses = count_discount_uses(items)

        applied: Optional[DiscountInfo] = None
        source: Optional[str] = None
        if global_discount_code:
            applied = self.resolve_global(global_discount_code, subtotal, now, line_uses)
            source = "global" if applied else None
        elif member is not None and selected_member_discount_id is not None:
            applied = self.resolve_member(
                member.member_id, selected_member_discount_id, subtotal, now, line_uses
            )
            source = "member" if applied else None
        elif member is not None and selected_tier_discount_id is not None and member.tier_id is not None:
            applied = self.resolve_tier(member.tier_id, selected_tier_discount_id, subtotal, now, line_uses)
            source = "tier" if applied else None

        member_info = None
        if member is not None:
            member_info = MemberInfo(
                member_id=member.member_id,
                name=member.name,
                tier_id=member.tier_id,
                tier_name=member.tier.name if member.tier else None,
                discount=applied if source in ("member", "tier") else None,
            )

        discount_amount = applied.amount if applied else ZERO
        summary = TransactionSummary(
            subtotal=subtotal,
            member=member_info,
            global_discount=applied if source == "global" else None,
            discount_source=source,
            final_amount=subtotal - discount_amount,
        )
        return ValidationResult(True, "Transaction validated successfully", summary)

    # ------------------------------------------------------------------
    # Discovery (what the cashier may pick)
    # ------------------------------------------------------------------
    def applicable_member_discounts(
        self, member_id: int, subtotal: Decimal, now: Optional[datetime] = None
    ) -> list[DiscountInfo]:
        now = now or datetime.now()
        out = []
        for d in self.discounts.list_for_member(member_id):
            if discount_is_applicable(d, now, subtotal):
                info = _info(d, subtotal)
                if info.amount > ZERO:
                    out.append(info)
        return out

    def applicable_global_discounts(
        self, subtotal: Decimal, now: Optional[datetime] = None
    ) -> list[DiscountInfo]:
        now = now or datetime.now()
        out = []
        for d in self.discounts.list_global():
            if discount_is_applicable(d, now, subtotal):
                info = _info(d, subtotal)
                if info.amount > ZERO:
                    out.append(info)
        return out
