from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
import sqlite3
from typing import Iterable

from ...utils.helpers import parse_timestamp


class DomainError(Exception):
    """Domain-level error suitable for surfacing to the caller."""
    pass


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


@dataclass
class Discount:
    discount_id: int
    name: str
    code: str | None
    value: Decimal
    type: DiscountType
    scope: str
    is_active: bool
    is_global: bool
    start_date: datetime
    end_date: datetime
    max_uses: int | None
    used_count: int
    min_purchase: Decimal | None


_COLUMNS = (
    "d.discount_id, d.name, d.code, d.value, d.type, d.scope, d.is_active, d.is_global, "
    "d.start_date, d.end_date, d.max_uses, d.used_count, d.min_purchase"
)


def row_to_discount(r: sqlite3.Row) -> Discount:
    return Discount(
        discount_id=int(r["discount_id"]),
        name=r["name"],
        code=r["code"],
        value=Decimal(str(r["value"])),
        type=DiscountType(r["type"]),
        scope=r["scope"],
        is_active=bool(r["is_active"]),
        is_global=bool(r["is_global"]),
        start_date=parse_timestamp(r["start_date"]),
        end_date=parse_timestamp(r["end_date"], end_of_day=True),
        max_uses=None if r["max_uses"] is None else int(r["max_uses"]),
        used_count=int(r["used_count"]),
        min_purchase=None if r["min_purchase"] is None else Decimal(str(r["min_purchase"])),
    )


class DiscountsRepo:
    """
    Discount lookups for the checkout pipeline plus the usage counter.

    Eligibility (active window, usage cap, minimum purchase) is evaluated by the
    caller against its own clock and subtotal; these queries only resolve
    *which* discount a selector points at.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ------------------------------------------------------------------
    # READ
    # ------------------------------------------------------------------
    def get(self, discount_id: int) -> Discount | None:
        r = self.conn.execute(
            f"SELECT {_COLUMNS} FROM discounts d WHERE d.discount_id=?",
            (discount_id,),
        ).fetchone()
        return row_to_discount(r) if r else None

    def get_global_by_code(self, code: str) -> Discount | None:
        r = self.conn.execute(
            f"SELECT {_COLUMNS} FROM discounts d WHERE d.code=? AND d.is_global=1",
            (code.strip(),),
        ).fetchone()
        return row_to_discount(r) if r else None

    def list_global(self) -> list[Discount]:
        rows = self.conn.execute(
            f"SELECT {_COLUMNS} FROM discounts d WHERE d.is_global=1 ORDER BY d.discount_id"
        ).fetchall()
        return [row_to_discount(r) for r in rows]

    def list_for_member(self, member_id: int) -> list[Discount]:
        rows = self.conn.execute(
            f"""
            SELECT {_COLUMNS}
              FROM discounts d
              JOIN discount_members dm ON dm.discount_id = d.discount_id
             WHERE dm.member_id = ?
             ORDER BY d.discount_id
            """,
            (member_id,),
        ).fetchall()
        return [row_to_discount(r) for r in rows]

    def get_for_tier(self, tier_id: int, discount_id: int) -> Discount | None:
        r = self.conn.execute(
            f"""
            SELECT {_COLUMNS}
              FROM discounts d
              JOIN discount_tiers dt ON dt.discount_id = d.discount_id
             WHERE dt.tier_id = ? AND d.discount_id = ?
            """,
            (tier_id, discount_id),
        ).fetchone()
        return row_to_discount(r) if r else None

    def list_for_products(self, product_ids: Iterable[int]) -> dict[int, list[Discount]]:
        """
        {product_id: [Discount, ...]} for every product in `product_ids` that
        has at least one linked discount. One query for the whole set.
        """
        ids = sorted({int(p) for p in product_ids})
        if not ids:
            return {}
        marks = ",".join("?" * len(ids))
        rows = self.conn.execute(
            f"""
            SELECT dp.product_id AS product_id, {_COLUMNS}
              FROM discounts d
              JOIN discount_products dp ON dp.discount_id = d.discount_id
             WHERE dp.product_id IN ({marks})
             ORDER BY dp.product_id, d.discount_id
            """,
            ids,
        ).fetchall()
        out: dict[int, list[Discount]] = {}
        for r in rows:
            out.setdefault(int(r["product_id"]), []).append(row_to_discount(r))
        return out

    # ------------------------------------------------------------------
    # WRITE (inside the checkout unit of work)
    # ------------------------------------------------------------------
    def increment_usage(self, discount_id: int, count: int = 1) -> None:
        """
        used_count += count, refusing to pass max_uses.

        The cap is part of the UPDATE itself so two checkouts racing for the
        last use cannot both succeed. Does not commit.
        """
        if count <= 0:
            return
        cur = self.conn.execute(
            """
            UPDATE discounts
               SET used_count = used_count + :n
             WHERE discount_id = :id
               AND (max_uses IS NULL OR used_count + :n <= max_uses)
            """,
            {"n": int(count), "id": int(discount_id)},
        )
        if cur.rowcount == 0:
            if self.get(discount_id) is None:
                raise DomainError(f"Discount with ID {discount_id} not found")
            raise DomainError(f"Discount {discount_id} has reached its usage limit")
