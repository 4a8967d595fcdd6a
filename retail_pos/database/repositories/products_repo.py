# retail_pos/database/repositories/products_repo.py
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable
import sqlite3

from ...utils.helpers import parse_date
from .discounts_repo import Discount, DiscountsRepo


class DomainError(Exception):
    """Domain-level error the caller can surface (e.g. stock changed under us)."""
    pass


@dataclass
class ProductBatch:
    batch_id: int
    product_id: int
    buy_price: Decimal
    remaining_quantity: int
    expiry_date: date
    batch_code: str | None = None


@dataclass
class Product:
    product_id: int
    name: str
    price: Decimal
    current_stock: int
    is_active: bool
    unit_id: int
    batches: list[ProductBatch] = field(default_factory=list)
    discounts: list[Discount] = field(default_factory=list)


def _row_to_batch(r: sqlite3.Row) -> ProductBatch:
    return ProductBatch(
        batch_id=int(r["batch_id"]),
        product_id=int(r["product_id"]),
        buy_price=Decimal(str(r["buy_price"])),
        remaining_quantity=int(r["remaining_quantity"]),
        expiry_date=parse_date(r["expiry_date"]),
        batch_code=r["batch_code"],
    )


def _in_marks(ids: list[int]) -> str:
    return ",".join("?" * len(ids))


class ProductsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        # Use Row for named access; we normalize to dataclasses/dicts on the way out.
        self.conn.row_factory = sqlite3.Row

    # ---------------------------- Reads ----------------------------

    def get(self, product_id: int) -> Product | None:
        r = self.conn.execute(
            "SELECT product_id, name, price, current_stock, is_active, unit_id "
            "FROM products WHERE product_id=?",
            (product_id,),
        ).fetchone()
        if not r:
            return None
        return self._row_to_product(r)

    def fetch_for_cart(self, product_ids: Iterable[int]) -> dict[int, Product]:
        """
        Load every product in `product_ids` with its batches and linked
        discounts: three queries for the whole cart, not three per line.
        Unknown ids are simply absent from the result.
        """
        ids = sorted({int(p) for p in product_ids})
        if not ids:
            return {}
        marks = _in_marks(ids)

        rows = self.conn.execute(
            "SELECT product_id, name, price, current_stock, is_active, unit_id "
            f"FROM products WHERE product_id IN ({marks})",
            ids,
        ).fetchall()
        products = {int(r["product_id"]): self._row_to_product(r) for r in rows}
        if not products:
            return {}

        batch_rows = self.conn.execute(
            "SELECT batch_id, product_id, batch_code, buy_price, remaining_quantity, expiry_date "
            f"FROM product_batches WHERE product_id IN ({marks}) "
            "ORDER BY product_id, expiry_date, batch_id",
            ids,
        ).fetchall()
        for br in batch_rows:
            products[int(br["product_id"])].batches.append(_row_to_batch(br))

        discounts = DiscountsRepo(self.conn).list_for_products(products.keys())
        for pid, items in discounts.items():
            products[pid].discounts = items

        return products

    def get_batches(self, batch_ids: Iterable[int]) -> dict[int, ProductBatch]:
        ids = sorted({int(b) for b in batch_ids})
        if not ids:
            return {}
        rows = self.conn.execute(
            "SELECT batch_id, product_id, batch_code, buy_price, remaining_quantity, expiry_date "
            f"FROM product_batches WHERE batch_id IN ({_in_marks(ids)})",
            ids,
        ).fetchall()
        return {int(r["batch_id"]): _row_to_batch(r) for r in rows}

    def available_batches(self, product_ids: Iterable[int], on: date | None = None) -> list[ProductBatch]:
        """
        Sellable batches (remaining > 0, not expired on `on`) ordered FIFO:
        earliest expiry first.
        """
        ids = sorted({int(p) for p in product_ids})
        if not ids:
            return []
        day = (on or date.today()).isoformat()
        rows = self.conn.execute(
            "SELECT batch_id, product_id, batch_code, buy_price, remaining_quantity, expiry_date "
            "FROM product_batches "
            f"WHERE product_id IN ({_in_marks(ids)}) "
            "  AND remaining_quantity > 0 "
            "  AND DATE(expiry_date) >= DATE(?) "
            "ORDER BY expiry_date ASC, batch_id ASC",
            [*ids, day],
        ).fetchall()
        return [_row_to_batch(r) for r in rows]

    def check_availability(self, product_ids: Iterable[int]) -> dict[str, list[int]]:
        """
        Split ids into {'available': [...], 'unavailable': [...]} keeping the
        caller's order. Available means active with current_stock > 0.
        """
        requested = [int(p) for p in product_ids]
        ids = sorted(set(requested))
        ok: set[int] = set()
        if ids:
            rows = self.conn.execute(
                "SELECT product_id FROM products "
                f"WHERE product_id IN ({_in_marks(ids)}) AND is_active=1 AND current_stock > 0",
                ids,
            ).fetchall()
            ok = {int(r["product_id"]) for r in rows}
        return {
            "available": [p for p in requested if p in ok],
            "unavailable": [p for p in requested if p not in ok],
        }

    # ---------------------------- Stock writes ----------------------------
    # Both updates are compare-and-decrement: the WHERE clause re-checks the
    # quantity so concurrent checkouts cannot oversell. Neither commits.

    def decrement_batch(self, batch_id: int, quantity: int) -> None:
        cur = self.conn.execute(
            "UPDATE product_batches "
            "   SET remaining_quantity = remaining_quantity - :q "
            " WHERE batch_id = :id AND remaining_quantity >= :q",
            {"q": int(quantity), "id": int(batch_id)},
        )
        if cur.rowcount == 0:
            row = self.conn.execute(
                "SELECT remaining_quantity FROM product_batches WHERE batch_id=?",
                (batch_id,),
            ).fetchone()
            if row is None:
                raise DomainError(f"Batch with ID {batch_id} not found")
            raise DomainError(
                f"Insufficient quantity in batch {batch_id}: "
                f"requested {quantity}, remaining {int(row['remaining_quantity'])}"
            )

    def decrement_product_stock(self, product_id: int, quantity: int) -> None:
        cur = self.conn.execute(
            "UPDATE products "
            "   SET current_stock = current_stock - :q "
            " WHERE product_id = :id AND current_stock >= :q",
            {"q": int(quantity), "id": int(product_id)},
        )
        if cur.rowcount == 0:
            row = self.conn.execute(
                "SELECT current_stock FROM products WHERE product_id=?",
                (product_id,),
            ).fetchone()
            if row is None:
                raise DomainError(f"Product with ID {product_id} not found")
            raise DomainError(
                f"Insufficient stock for product {product_id}: "
                f"requested {quantity}, in stock {int(row['current_stock'])}"
            )

    # ---------------------------- Utilities ----------------------------

    @staticmethod
    def _row_to_product(r: sqlite3.Row) -> Product:
        return Product(
            product_id=int(r["product_id"]),
            name=r["name"],
            price=Decimal(str(r["price"])),
            current_stock=int(r["current_stock"]),
            is_active=bool(r["is_active"]),
            unit_id=int(r["unit_id"]),
        )
