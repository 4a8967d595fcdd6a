from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
import sqlite3
from typing import Iterable, Optional


class DomainError(Exception):
    """Domain-level error suitable for surfacing to the caller."""
    pass


@dataclass
class TransactionHeader:
    tran_id: str
    cashier_id: int
    member_id: int | None
    discount_id: int | None
    discount_amount: Decimal | None
    total_amount: Decimal
    final_amount: Decimal
    payment_method: str
    payment_amount: Decimal
    change_amount: Decimal
    created_at: str
    transaction_id: int | None = None


@dataclass
class TransactionItem:
    batch_id: int
    quantity: int
    unit_id: int
    cost: Decimal
    price_per_unit: Decimal
    discount_id: int | None
    discount_amount: Decimal | None
    subtotal: Decimal
    item_id: int | None = None
    transaction_id: int | None = None


# Column names a caller may sort by. Anything else falls back to created_at.
SORTABLE_COLUMNS = {
    "created_at": "t.created_at",
    "tran_id": "t.tran_id",
    "total_amount": "CAST(t.total_amount AS REAL)",
    "final_amount": "CAST(t.final_amount AS REAL)",
    "payment_method": "t.payment_method",
    "transaction_id": "t.transaction_id",
}

_HEADER_SELECT = """
    SELECT t.transaction_id, t.tran_id, t.cashier_id, u.full_name AS cashier_name,
           t.member_id, m.name AS member_name,
           t.discount_id, d.name AS discount_name,
           t.discount_amount, t.total_amount, t.final_amount,
           t.payment_method, t.payment_amount, t.change_amount, t.created_at
      FROM transactions t
      JOIN users u        ON u.user_id = t.cashier_id
      LEFT JOIN members m   ON m.member_id = t.member_id
      LEFT JOIN discounts d ON d.discount_id = t.discount_id
"""


def _build_where(
    *,
    search: str | None = None,
    cashier_id: int | None = None,
    member_id: int | None = None,
    payment_method: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
) -> tuple[str, list]:
    where: list[str] = []
    params: list = []
    if search:
        where.append("(t.tran_id LIKE ? OR m.name LIKE ? OR u.full_name LIKE ?)")
        params += [f"%{search}%"] * 3
    if cashier_id is not None:
        where.append("t.cashier_id = ?")
        params.append(cashier_id)
    if member_id is not None:
        where.append("t.member_id = ?")
        params.append(member_id)
    if payment_method:
        where.append("LOWER(t.payment_method) = LOWER(?)")
        params.append(payment_method)
    if date_from:
        where.append("t.created_at >= ?")
        params.append(date_from)
    if date_to:
        where.append("t.created_at <= ?")
        params.append(date_to)
    if min_amount is not None:
        where.append("CAST(t.final_amount AS REAL) >= ?")
        params.append(float(min_amount))
    if max_amount is not None:
        where.append("CAST(t.final_amount AS REAL) <= ?")
        params.append(float(max_amount))
    return (" WHERE " + " AND ".join(where)) if where else "", params


class TransactionsRepo:
    """
    Append-only checkout records.

    insert_transaction() runs inside the caller's unit of work; everything
    else is a read. The schema's triggers reject UPDATE/DELETE on the rows
    written here.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    def insert_transaction(self, header: TransactionHeader, items: Iterable[TransactionItem]) -> int:
        """
        Insert the header and all its item rows. Returns transaction_id and
        fills it (and item ids) back into the passed dataclasses. Does not commit.
        """
        items = list(items)
        if not items:
            raise DomainError("A transaction needs at least one item")

        cur = self.conn.execute(
            """
            INSERT INTO transactions(
                tran_id, cashier_id, member_id, discount_id, discount_amount,
                total_amount, final_amount, payment_method, payment_amount,
                change_amount, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                header.tran_id, header.cashier_id, header.member_id, header.discount_id,
                header.discount_amount, header.total_amount, header.final_amount,
                header.payment_method, header.payment_amount, header.change_amount,
                header.created_at,
            ),
        )
        transaction_id = int(cur.lastrowid)
        header.transaction_id = transaction_id

        for it in items:
            cur = self.conn.execute(
                """
                INSERT INTO transaction_items(
                    transaction_id, batch_id, quantity, unit_id, cost,
                    price_per_unit, discount_id, discount_amount, subtotal
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    transaction_id, it.batch_id, it.quantity, it.unit_id, it.cost,
                    it.price_per_unit, it.discount_id, it.discount_amount, it.subtotal,
                ),
            )
            it.item_id = int(cur.lastrowid)
            it.transaction_id = transaction_id
        return transaction_id

    def tran_id_exists(self, tran_id: str) -> bool:
        r = self.conn.execute("SELECT 1 FROM transactions WHERE tran_id=?", (tran_id,)).fetchone()
        return r is not None

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def paginate(
        self,
        *,
        limit: int,
        offset: int,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        **filters,
    ) -> list[sqlite3.Row]:
        where, params = _build_where(**filters)
        column = SORTABLE_COLUMNS.get(sort_by, SORTABLE_COLUMNS["created_at"])
        direction = "ASC" if str(sort_order).lower() == "asc" else "DESC"
        sql = (
            _HEADER_SELECT
            + where
            + f" ORDER BY {column} {direction}, t.transaction_id {direction}"
            + " LIMIT ? OFFSET ?"
        )
        return self.conn.execute(sql, [*params, int(limit), int(offset)]).fetchall()

    def count(self, **filters) -> int:
        where, params = _build_where(**filters)
        sql = """
            SELECT COUNT(*) AS n
              FROM transactions t
              JOIN users u        ON u.user_id = t.cashier_id
              LEFT JOIN members m ON m.member_id = t.member_id
        """ + where
        return int(self.conn.execute(sql, params).fetchone()["n"])

    def get_header(self, transaction_id: int) -> Optional[sqlite3.Row]:
        return self.conn.execute(
            _HEADER_SELECT + " WHERE t.transaction_id = ?", (transaction_id,)
        ).fetchone()

    def get_by_tran_id(self, tran_id: str) -> Optional[sqlite3.Row]:
        return self.conn.execute(_HEADER_SELECT + " WHERE t.tran_id = ?", (tran_id,)).fetchone()

    def list_items(self, transaction_id: int) -> list[sqlite3.Row]:
        sql = """
        SELECT ti.item_id, ti.transaction_id, ti.batch_id, b.product_id,
               p.name AS product_name, ti.quantity, ti.unit_id, un.symbol AS unit_symbol,
               ti.cost, ti.price_per_unit, ti.discount_id, d.name AS discount_name,
               ti.discount_amount, ti.subtotal
          FROM transaction_items ti
          JOIN product_batches b ON b.batch_id   = ti.batch_id
          JOIN products p        ON p.product_id = b.product_id
          JOIN units un          ON un.unit_id   = ti.unit_id
          LEFT JOIN discounts d  ON d.discount_id = ti.discount_id
         WHERE ti.transaction_id = ?
         ORDER BY ti.item_id
        """
        return self.conn.execute(sql, (transaction_id,)).fetchall()

    def list_items_for(self, transaction_ids: Iterable[int]) -> dict[int, list[sqlite3.Row]]:
        """list_items() for many transactions in one query."""
        ids = sorted({int(t) for t in transaction_ids})
        if not ids:
            return {}
        marks = ",".join("?" * len(ids))
        sql = f"""
        SELECT ti.item_id, ti.transaction_id, ti.batch_id, b.product_id,
               p.name AS product_name, ti.quantity, ti.unit_id, un.symbol AS unit_symbol,
               ti.cost, ti.price_per_unit, ti.discount_id, d.name AS discount_name,
               ti.discount_amount, ti.subtotal
          FROM transaction_items ti
          JOIN product_batches b ON b.batch_id   = ti.batch_id
          JOIN products p        ON p.product_id = b.product_id
          JOIN units un          ON un.unit_id   = ti.unit_id
          LEFT JOIN discounts d  ON d.discount_id = ti.discount_id
         WHERE ti.transaction_id IN ({marks})
         ORDER BY ti.transaction_id, ti.item_id
        """
        out: dict[int, list[sqlite3.Row]] = {i: [] for i in ids}
        for r in self.conn.execute(sql, ids).fetchall():
            out[int(r["transaction_id"])].append(r)
        return out

    def list_points(self, transaction_id: int) -> list[sqlite3.Row]:
        return self.conn.execute(
            """
            SELECT point_id, member_id, transaction_id, points_earned, date_earned, notes
              FROM member_points
             WHERE transaction_id = ?
             ORDER BY point_id
            """,
            (transaction_id,),
        ).fetchall()

    def points_for(self, transaction_ids: Iterable[int]) -> dict[int, int]:
        """{transaction_id: total points earned} for the given transactions."""
        ids = sorted({int(t) for t in transaction_ids})
        if not ids:
            return {}
        marks = ",".join("?" * len(ids))
        rows = self.conn.execute(
            f"""
            SELECT transaction_id, COALESCE(SUM(points_earned), 0) AS pts
              FROM member_points
             WHERE transaction_id IN ({marks})
             GROUP BY transaction_id
            """,
            ids,
        ).fetchall()
        out = {i: 0 for i in ids}
        for r in rows:
            out[int(r["transaction_id"])] = int(r["pts"])
        return out

    def list_by_member(self, member_id: int, *, limit: int | None = None) -> list[sqlite3.Row]:
        sql = _HEADER_SELECT + " WHERE t.member_id = ? ORDER BY t.created_at DESC, t.transaction_id DESC"
        params: list = [member_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        return self.conn.execute(sql, params).fetchall()

    def list_by_date_range(self, date_from: str, date_to: str) -> list[sqlite3.Row]:
        sql = (
            _HEADER_SELECT
            + " WHERE t.created_at >= ? AND t.created_at <= ?"
            + " ORDER BY t.created_at DESC, t.transaction_id DESC"
        )
        return self.conn.execute(sql, (date_from, date_to)).fetchall()

    def summary(self, since: str) -> dict:
        """
        {'count', 'revenue'} for transactions created at or after `since`.
        Revenue is summed as Decimal, not as SQLite REAL.
        """
        rows = self.conn.execute(
            "SELECT final_amount FROM transactions WHERE created_at >= ?",
            (since,),
        ).fetchall()
        revenue = sum((Decimal(str(r["final_amount"])) for r in rows), Decimal("0"))
        return {"count": len(rows), "revenue": revenue}

    def top_products(self, since: str, limit: int) -> list[sqlite3.Row]:
        sql = """
        SELECT b.product_id, p.name AS product_name,
               SUM(ti.quantity) AS quantity,
               SUM(CAST(ti.subtotal AS REAL)) AS revenue
          FROM transaction_items ti
          JOIN transactions t    ON t.transaction_id = ti.transaction_id
          JOIN product_batches b ON b.batch_id       = ti.batch_id
          JOIN products p        ON p.product_id     = b.product_id
         WHERE t.created_at >= ?
         GROUP BY b.product_id, p.name
         ORDER BY quantity DESC, b.product_id ASC
         LIMIT ?
        """
        return self.conn.execute(sql, (since, int(limit))).fetchall()
