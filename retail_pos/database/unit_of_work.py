# retail_pos/database/unit_of_work.py
from __future__ import annotations

from contextlib import contextmanager
import itertools
import sqlite3
from typing import Iterator

from .repositories import (
    DiscountsRepo,
    MembersRepo,
    ProductsRepo,
    SettingsRepo,
    TransactionsRepo,
)

_savepoint_ids = itertools.count(1)


class UnitOfWork:
    """
    One connection, one atomic write, every repository bound to it.

        with UnitOfWork(conn).begin() as uow:
            uow.products.decrement_batch(...)
            uow.transactions.insert_transaction(...)

    On a plain connection this is BEGIN IMMEDIATE ... COMMIT (write lock taken
    up front so a stalled checkout fails closed with "database is locked"
    instead of half-writing). If the connection is already inside a
    transaction, a SAVEPOINT is used so only this block is rolled back.
    Any exception rolls everything in the block back and is re-raised.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.products = ProductsRepo(conn)
        self.discounts = DiscountsRepo(conn)
        self.members = MembersRepo(conn)
        self.settings = SettingsRepo(conn)
        self.transactions = TransactionsRepo(conn)

    @contextmanager
    def begin(self) -> Iterator["UnitOfWork"]:
        if self.conn.in_transaction:
            name = f"uow_{next(_savepoint_ids)}"
            self.conn.execute(f"SAVEPOINT {name}")
            try:
                yield self
            except Exception:
                self.conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
                self.conn.execute(f"RELEASE SAVEPOINT {name}")
                raise
            else:
                self.conn.execute(f"RELEASE SAVEPOINT {name}")
            return

        cur = self.conn.cursor()
        try:
            cur.execute("BEGIN IMMEDIATE")
            yield self
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        finally:
            cur.close()
