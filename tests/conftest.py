# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - Every test gets its own in-memory SQLite DB built from schema.SQL
# - conn.row_factory = sqlite3.Row, PRAGMA foreign_keys=ON
# - Fixture rows are committed so the checkout commit starts a real
#   BEGIN IMMEDIATE transaction (same path as production)
# - `make` builds products/batches/discounts/tiers/members
# ---------------------------------------------------------------------

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
import logging
import sqlite3
from typing import Optional

import pytest

from retail_pos.constants import (
    SETTING_POINT_RULE_BASE_AMOUNT,
    SETTING_POINT_RULE_ENABLED,
    SETTING_POINT_RULE_MULTIPLIER,
)
from retail_pos.database.schema import init_schema
from retail_pos.modules.transactions.executor import TransactionExecutor

TS = "%Y-%m-%d %H:%M:%S"


@pytest.fixture()
def conn():
    con = sqlite3.connect(":memory:")
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA foreign_keys=ON;")
    init_schema(con)
    # plain-text hash is fine here; auth is exercised in test_settings_and_bootstrap
    con.execute(
        "INSERT INTO users(username, password_hash, full_name, role) VALUES ('cashier', 'x', 'Cashier One', 'cashier')"
    )
    con.execute("INSERT INTO units(name, symbol) VALUES ('Piece', 'pcs')")
    con.executemany(
        "INSERT INTO settings(key, value) VALUES (?, ?)",
        [
            (SETTING_POINT_RULE_ENABLED, "true"),
            (SETTING_POINT_RULE_BASE_AMOUNT, "1000"),
            (SETTING_POINT_RULE_MULTIPLIER, "1"),
        ],
    )
    con.commit()
    try:
        yield con
    finally:
        con.close()


@pytest.fixture()
def ids(conn):
    one = lambda sql: conn.execute(sql).fetchone()[0]  # noqa: E731
    return {
        "cashier": one("SELECT user_id FROM users WHERE username='cashier'"),
        "unit": one("SELECT unit_id FROM units WHERE symbol='pcs'"),
    }


class Factory:
    """Inserts fixture rows and commits after each one."""

    def __init__(self, conn: sqlite3.Connection, unit_id: int):
        self.conn = conn
        self.unit_id = unit_id

    def _insert(self, sql: str, params) -> int:
        cur = self.conn.execute(sql, params)
        self.conn.commit()
        return int(cur.lastrowid)

    def product(
        self,
        price="10000",
        stock: int = 10,
        *,
        name: str = "Widget",
        active: bool = True,
        batches: Optional[list] = None,
    ) -> int:
        """
        batches: list of (remaining_quantity, expiry_date, buy_price).
        Default: one batch holding all the stock, expiring in 30 days.
        """
        pid = self._insert(
            "INSERT INTO products(name, price, current_stock, is_active, unit_id) VALUES (?, ?, ?, ?, ?)",
            (name, str(price), stock, 1 if active else 0, self.unit_id),
        )
        if batches is None:
            batches = [(stock, date.today() + timedelta(days=30), "6000")]
        for qty, expiry, buy in batches:
            self.batch(pid, qty, expiry, buy)
        return pid

    def batch(self, product_id: int, qty: int, expiry: date, buy_price="6000") -> int:
        return self._insert(
            """
            INSERT INTO product_batches(product_id, batch_code, buy_price, initial_quantity,
                                        remaining_quantity, expiry_date)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (product_id, f"B-{product_id}-{expiry}", str(buy_price), qty, qty, expiry.isoformat()),
        )

    def discount(
        self,
        value="10",
        type_: str = "PERCENTAGE",
        *,
        scope: str = "product",
        code: Optional[str] = None,
        is_global: bool = False,
        active: bool = True,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        max_uses: Optional[int] = None,
        used_count: int = 0,
        min_purchase=None,
        products: tuple = (),
        members: tuple = (),
        tiers: tuple = (),
    ) -> int:
        now = datetime.now()
        did = self._insert(
            """
            INSERT INTO discounts(name, code, value, type, scope, is_active, is_global,
                                  start_date, end_date, max_uses, used_count, min_purchase)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                f"{type_} {value}", code, str(value), type_, scope,
                1 if active else 0, 1 if is_global else 0,
                (start or now - timedelta(days=1)).strftime(TS),
                (end or now + timedelta(days=1)).strftime(TS),
                max_uses, used_count,
                None if min_purchase is None else str(min_purchase),
            ),
        )
        for p in products:
            self._insert("INSERT INTO discount_products(discount_id, product_id) VALUES (?, ?)", (did, p))
        for m in members:
            self._insert("INSERT INTO discount_members(discount_id, member_id) VALUES (?, ?)", (did, m))
        for t in tiers:
            self._insert("INSERT INTO discount_tiers(discount_id, tier_id) VALUES (?, ?)", (did, t))
        return did

    def tier(self, name: str, min_points: int, multiplier="1") -> int:
        return self._insert(
            "INSERT INTO member_tiers(name, min_points, multiplier) VALUES (?, ?, ?)",
            (name, min_points, str(multiplier)),
        )

    def member(
        self,
        name: str = "Member",
        *,
        tier_id: Optional[int] = None,
        points: int = 0,
        earned: Optional[int] = None,
        banned: bool = False,
        ban_reason: Optional[str] = None,
    ) -> int:
        return self._insert(
            """
            INSERT INTO members(name, total_points, total_points_earned, is_banned, ban_reason, tier_id)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (name, points, points if earned is None else earned, 1 if banned else 0, ban_reason, tier_id),
        )

    def settings(self, *, enabled="true", base_amount="1000", multiplier="1") -> None:
        for key, value in (
            (SETTING_POINT_RULE_ENABLED, enabled),
            (SETTING_POINT_RULE_BASE_AMOUNT, base_amount),
            (SETTING_POINT_RULE_MULTIPLIER, multiplier),
        ):
            self.conn.execute("UPDATE settings SET value=? WHERE key=?", (value, key))
        self.conn.commit()


@pytest.fixture()
def make(conn, ids):
    return Factory(conn, ids["unit"])


@pytest.fixture()
def executor(conn):
    return TransactionExecutor(conn, events=logging.getLogger("tests.checkout.events"))


@pytest.fixture()
def checkout(executor, ids):
    """checkout(items, **extra) -> ExecutionResult, cash by default."""
    def _run(items, **extra):
        payload = {"cashierId": ids["cashier"], "paymentMethod": "cash", "items": items}
        payload.update(extra)
        return executor.process_transaction(payload)
    return _run


def scalar(conn, sql, *params):
    return conn.execute(sql, params).fetchone()[0]


def money(x) -> Decimal:
    return Decimal(str(x))
