from pathlib import Path
import logging
import sqlite3
import sys

_log = logging.getLogger(__name__)

SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== CORE TABLES ======================== */

/* -------- users (cashiers) -------- */
CREATE TABLE IF NOT EXISTS users (
    user_id       INTEGER PRIMARY KEY AUTOINCREMENT,
    username      TEXT UNIQUE NOT NULL,
    password_hash TEXT NOT NULL,
    full_name     TEXT NOT NULL,
    role          TEXT NOT NULL DEFAULT 'cashier',
    is_active     INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1))
);

/* -------- units & products -------- */
CREATE TABLE IF NOT EXISTS units (
    unit_id INTEGER PRIMARY KEY AUTOINCREMENT,
    name    TEXT UNIQUE NOT NULL,
    symbol  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS products (
    product_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    name          TEXT NOT NULL,
    price         NUMERIC NOT NULL CHECK (CAST(price AS REAL) >= 0),
    current_stock INTEGER NOT NULL DEFAULT 0 CHECK (current_stock >= 0),
    is_active     INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
    unit_id       INTEGER NOT NULL,
    FOREIGN KEY (unit_id) REFERENCES units(unit_id)
);

/* one lot per receipt; depleted FIFO by expiry */
CREATE TABLE IF NOT EXISTS product_batches (
    batch_id           INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id         INTEGER NOT NULL,
    batch_code         TEXT,
    buy_price          NUMERIC NOT NULL CHECK (CAST(buy_price AS REAL) >= 0),
    initial_quantity   INTEGER NOT NULL CHECK (initial_quantity >= 0),
    remaining_quantity INTEGER NOT NULL CHECK (remaining_quantity >= 0),
    expiry_date        DATE NOT NULL,
    received_date      DATE NOT NULL DEFAULT CURRENT_DATE,
    FOREIGN KEY (product_id) REFERENCES products(product_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_product_batches_fifo
ON product_batches(product_id, expiry_date);

/* -------- loyalty -------- */
CREATE TABLE IF NOT EXISTS member_tiers (
    tier_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    name       TEXT UNIQUE NOT NULL,
    min_points INTEGER NOT NULL CHECK (min_points >= 0),
    multiplier NUMERIC NOT NULL DEFAULT 1 CHECK (CAST(multiplier AS REAL) >= 1)
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_member_tiers_min_points
ON member_tiers(min_points);

CREATE TABLE IF NOT EXISTS members (
    member_id           INTEGER PRIMARY KEY AUTOINCREMENT,
    name                TEXT NOT NULL,
    phone               TEXT,
    total_points        INTEGER NOT NULL DEFAULT 0 CHECK (total_points >= 0),
    total_points_earned INTEGER NOT NULL DEFAULT 0 CHECK (total_points_earned >= 0),
    is_banned           INTEGER NOT NULL DEFAULT 0 CHECK (is_banned IN (0,1)),
    ban_reason          TEXT,
    tier_id             INTEGER,
    created_at          TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (tier_id) REFERENCES member_tiers(tier_id)
);

/* earned points never go back down */
DROP TRIGGER IF EXISTS trg_members_points_earned_monotonic;
CREATE TRIGGER trg_members_points_earned_monotonic
BEFORE UPDATE OF total_points_earned ON members
WHEN NEW.total_points_earned < OLD.total_points_earned
BEGIN
  SELECT RAISE(ABORT, 'total_points_earned cannot decrease');
END;

/* -------- discounts -------- */
CREATE TABLE IF NOT EXISTS discounts (
    discount_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    name         TEXT NOT NULL,
    code         TEXT UNIQUE,
    value        NUMERIC NOT NULL CHECK (CAST(value AS REAL) >= 0),
    type         TEXT NOT NULL CHECK (type IN ('PERCENTAGE','FIXED_AMOUNT')),
    scope        TEXT NOT NULL DEFAULT 'product'
                 CHECK (scope IN ('product','member','tier','global')),
    is_active    INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
    is_global    INTEGER NOT NULL DEFAULT 0 CHECK (is_global IN (0,1)),
    start_date   TIMESTAMP NOT NULL,
    end_date     TIMESTAMP NOT NULL,
    max_uses     INTEGER CHECK (max_uses IS NULL OR max_uses >= 0),
    used_count   INTEGER NOT NULL DEFAULT 0 CHECK (used_count >= 0),
    min_purchase NUMERIC CHECK (min_purchase IS NULL OR CAST(min_purchase AS REAL) >= 0),
    CHECK (is_global = 0 OR code IS NOT NULL),
    CHECK (max_uses IS NULL OR used_count <= max_uses)
);

CREATE TABLE IF NOT EXISTS discount_products (
    discount_id INTEGER NOT NULL,
    product_id  INTEGER NOT NULL,
    PRIMARY KEY (discount_id, product_id),
    FOREIGN KEY (discount_id) REFERENCES discounts(discount_id) ON DELETE CASCADE,
    FOREIGN KEY (product_id)  REFERENCES products(product_id)   ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS discount_members (
    discount_id INTEGER NOT NULL,
    member_id   INTEGER NOT NULL,
    PRIMARY KEY (discount_id, member_id),
    FOREIGN KEY (discount_id) REFERENCES discounts(discount_id) ON DELETE CASCADE,
    FOREIGN KEY (member_id)   REFERENCES members(member_id)     ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS discount_tiers (
    discount_id INTEGER NOT NULL,
    tier_id     INTEGER NOT NULL,
    PRIMARY KEY (discount_id, tier_id),
    FOREIGN KEY (discount_id) REFERENCES discounts(discount_id) ON DELETE CASCADE,
    FOREIGN KEY (tier_id)     REFERENCES member_tiers(tier_id)  ON DELETE CASCADE
);

/* -------- transactions (append-only) -------- */
CREATE TABLE IF NOT EXISTS transactions (
    transaction_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    tran_id         TEXT UNIQUE NOT NULL,
    cashier_id      INTEGER NOT NULL,
    member_id       INTEGER,
    discount_id     INTEGER,
    discount_amount NUMERIC CHECK (discount_amount IS NULL OR CAST(discount_amount AS REAL) >= 0),
    total_amount    NUMERIC NOT NULL CHECK (CAST(total_amount AS REAL) >= 0),
    final_amount    NUMERIC NOT NULL CHECK (CAST(final_amount AS REAL) >= 0),
    payment_method  TEXT NOT NULL,
    payment_amount  NUMERIC NOT NULL CHECK (CAST(payment_amount AS REAL) >= 0),
    change_amount   NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(change_amount AS REAL) >= 0),
    created_at      TIMESTAMP NOT NULL,
    FOREIGN KEY (cashier_id)  REFERENCES users(user_id),
    FOREIGN KEY (member_id)   REFERENCES members(member_id),
    FOREIGN KEY (discount_id) REFERENCES discounts(discount_id)
);
CREATE INDEX IF NOT EXISTS idx_transactions_created_at ON transactions(created_at);
CREATE INDEX IF NOT EXISTS idx_transactions_member     ON transactions(member_id);

CREATE TABLE IF NOT EXISTS transaction_items (
    item_id         INTEGER PRIMARY KEY AUTOINCREMENT,
    transaction_id  INTEGER NOT NULL,
    batch_id        INTEGER NOT NULL,
    quantity        INTEGER NOT NULL CHECK (quantity > 0),
    unit_id         INTEGER NOT NULL,
    cost            NUMERIC NOT NULL,
    price_per_unit  NUMERIC NOT NULL,
    discount_id     INTEGER,
    discount_amount NUMERIC,
    subtotal        NUMERIC NOT NULL CHECK (CAST(subtotal AS REAL) >= 0),
    FOREIGN KEY (transaction_id) REFERENCES transactions(transaction_id),
    FOREIGN KEY (batch_id)       REFERENCES product_batches(batch_id),
    FOREIGN KEY (unit_id)        REFERENCES units(unit_id),
    FOREIGN KEY (discount_id)    REFERENCES discounts(discount_id)
);
CREATE INDEX IF NOT EXISTS idx_transaction_items_tx ON transaction_items(transaction_id);

/* point history ledger; members.total_points* are the cached aggregate */
CREATE TABLE IF NOT EXISTS member_points (
    point_id       INTEGER PRIMARY KEY AUTOINCREMENT,
    member_id      INTEGER NOT NULL,
    transaction_id INTEGER NOT NULL,
    points_earned  INTEGER NOT NULL CHECK (points_earned > 0),
    date_earned    TIMESTAMP NOT NULL,
    notes          TEXT,
    FOREIGN KEY (member_id)      REFERENCES members(member_id),
    FOREIGN KEY (transaction_id) REFERENCES transactions(transaction_id)
);
CREATE INDEX IF NOT EXISTS idx_member_points_member ON member_points(member_id);

DROP TRIGGER IF EXISTS trg_transactions_no_update;
CREATE TRIGGER trg_transactions_no_update
BEFORE UPDATE ON transactions
BEGIN
  SELECT RAISE(ABORT, 'transactions are append-only');
END;

DROP TRIGGER IF EXISTS trg_transactions_no_delete;
CREATE TRIGGER trg_transactions_no_delete
BEFORE DELETE ON transactions
BEGIN
  SELECT RAISE(ABORT, 'transactions are append-only');
END;

DROP TRIGGER IF EXISTS trg_transaction_items_no_update;
CREATE TRIGGER trg_transaction_items_no_update
BEFORE UPDATE ON transaction_items
BEGIN
  SELECT RAISE(ABORT, 'transaction items are append-only');
END;

DROP TRIGGER IF EXISTS trg_member_points_no_update;
CREATE TRIGGER trg_member_points_no_update
BEFORE UPDATE ON member_points
BEGIN
  SELECT RAISE(ABORT, 'member point history is append-only');
END;

/* -------- settings (key/value) -------- */
CREATE TABLE IF NOT EXISTS settings (
    key        TEXT PRIMARY KEY,
    value      TEXT,
    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""


def init_schema(target: sqlite3.Connection | Path | str = "retail_pos.db") -> None:
    """
    Apply the (idempotent) schema to an open connection or to a database file.
    """
    if isinstance(target, sqlite3.Connection):
        target.executescript(SQL)
        return

    db_path = Path(target)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.executescript(SQL)
        conn.commit()
    _log.info("schema applied to %s", db_path)


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else Path(__file__).resolve().parents[1] / "data" / "retail_pos.db"
    init_schema(target)
