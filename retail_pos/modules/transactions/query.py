from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
import math
import sqlite3
from typing import Optional, Union

from ...constants import DEFAULT_PAGE_SIZE, TOP_PRODUCTS_LIMIT
from ...database.repositories.transactions_repo import TransactionsRepo
from ...utils.helpers import now_str, parse_timestamp
from .calculations import ZERO, to_money

DateLike = Union[str, date, datetime, None]


def _money(v) -> Decimal:
    return ZERO if v is None else to_money(v)


def _bound(value: DateLike, *, end_of_day: bool = False) -> Optional[str]:
    """Filter bound as a TIMESTAMP string; a bare date covers the whole day."""
    if value is None or value == "":
        return None
    return now_str(parse_timestamp(value, end_of_day=end_of_day))


class TransactionQueryService:
    """
    Read-only views over committed transactions.

    Every row comes with its discount breakdown: `member_discount` is the
    transaction-level amount (from whichever source), `product_discounts`
    the sum of the line discounts, `total_discount` both together.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.repo = TransactionsRepo(conn)

    # ------------------------------------------------------------------
    def get_paginated(
        self,
        page: int = 1,
        page_size: Optional[int] = None,
        sort_field: str = "created_at",
        sort_direction: str = "desc",
        search: str = "",
        cashier_id: Optional[int] = None,
        member_id: Optional[int] = None,
        payment_method: Optional[str] = None,
        start_date: DateLike = None,
        end_date: DateLike = None,
        min_amount: Optional[Decimal] = None,
        max_amount: Optional[Decimal] = None,
    ) -> dict:
        page = max(int(page or 1), 1)
        page_size = max(int(page_size or DEFAULT_PAGE_SIZE), 1)
        filters = dict(
            search=search.strip() if search else None,
            cashier_id=cashier_id,
            member_id=member_id,
            payment_method=payment_method,
            date_from=_bound(start_date),
            date_to=_bound(end_date, end_of_day=True),
            min_amount=min_amount,
            max_amount=max_amount,
        )
        total = self.repo.count(**filters)
        rows = self.repo.paginate(
            limit=page_size,
            offset=(page - 1) * page_size,
            sort_by=sort_field,
            sort_order=sort_direction,
            **filters,
        )
        return {
            "transactions": self._with_aggregates(rows),
            "pagination": {
                "total_count": total,
                "total_pages": math.ceil(total / page_size) if total else 0,
                "current_page": page,
                "page_size": page_size,
            },
        }

    def get_by_id(self, transaction_id: int) -> Optional[dict]:
        header = self.repo.get_header(transaction_id)
        if header is None:
            return None
        items = self.repo.list_items(transaction_id)
        points = self.repo.list_points(transaction_id)

        out = self._header_dict(header)
        out["items"] = [
            {
                "item_id": it["item_id"],
                "batch_id": it["batch_id"],
                "product_id": it["product_id"],
                "product_name": it["product_name"],
                "quantity": int(it["quantity"]),
                "unit_id": it["unit_id"],
                "unit_symbol": it["unit_symbol"],
                "cost": _money(it["cost"]),
                "price_per_unit": _money(it["price_per_unit"]),
                "discount_id": it["discount_id"],
                "discount_name": it["discount_name"],
                "discount_amount": _money(it["discount_amount"]),
                "subtotal": _money(it["subtotal"]),
            }
            for it in items
        ]
        member_discount = _money(header["discount_amount"])
        product_discounts = sum((i["discount_amount"] for i in out["items"]), ZERO)
        out["discounts"] = {
            "member_discount": member_discount,
            "product_discounts": product_discounts,
            "total_discount": member_discount + product_discounts,
        }
        out["points_earned"] = sum(int(p["points_earned"]) for p in points)
        out["item_count"] = len(items)
        return out

    def list_by_member(self, member_id: int, limit: Optional[int] = None) -> list[dict]:
        return self._with_aggregates(self.repo.list_by_member(member_id, limit=limit))

    def list_by_date_range(self, start: DateLike, end: DateLike) -> list[dict]:
        return self._with_aggregates(
            self.repo.list_by_date_range(_bound(start), _bound(end, end_of_day=True))
        )

    def get_summary(self, days: int = 30, now: Optional[datetime] = None) -> dict:
        """
        Totals over the last `days` days (today included): count, revenue,
        average sale and the top products by quantity.
        """
        start = (now or datetime.now()).date() - timedelta(days=max(int(days), 1) - 1)
        since = _bound(start)
        totals = self.repo.summary(since)
        count = totals["count"]
        revenue = totals["revenue"]
        top = self.repo.top_products(since, TOP_PRODUCTS_LIMIT)
        return {
            "days": int(days),
            "transaction_count": count,
            "total_revenue": revenue,
            "average_transaction": (revenue / count) if count else ZERO,
            "top_products": [
                {
                    "product_id": r["product_id"],
                    "product_name": r["product_name"],
                    "quantity": int(r["quantity"]),
                    "revenue": _money(r["revenue"]),
                }
                for r in top
            ],
        }

    # ------------------------------------------------------------------
    @staticmethod
    def _header_dict(r: sqlite3.Row) -> dict:
        return {
            "transaction_id": r["transaction_id"],
            "tran_id": r["tran_id"],
            "cashier_id": r["cashier_id"],
            "cashier_name": r["cashier_name"],
            "member_id": r["member_id"],
            "member_name": r["member_name"],
            "discount_id": r["discount_id"],
            "discount_name": r["discount_name"],
            "total_amount": _money(r["total_amount"]),
            "final_amount": _money(r["final_amount"]),
            "payment_method": r["payment_method"],
            "payment_amount": _money(r["payment_amount"]),
            "change_amount": _money(r["change_amount"]),
            "created_at": r["created_at"],
        }

    def _with_aggregates(self, rows: list[sqlite3.Row]) -> list[dict]:
        ids = [int(r["transaction_id"]) for r in rows]
        items = self.repo.list_items_for(ids)
        points = self.repo.points_for(ids)
        out = []
        for r in rows:
            tid = int(r["transaction_id"])
            d = self._header_dict(r)
            member_discount = _money(r["discount_amount"])
            product_discounts = sum((_money(i["discount_amount"]) for i in items.get(tid, [])), ZERO)
            d.update(
                member_discount=member_discount,
                product_discounts=product_discounts,
                total_discount=member_discount + product_discounts,
                item_count=len(items.get(tid, [])),
                points_earned=points.get(tid, 0),
            )
            out.append(d)
        return out
