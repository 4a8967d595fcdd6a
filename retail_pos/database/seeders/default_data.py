from ...constants import (
    DEFAULT_POINT_RULE,
    SETTING_POINT_RULE_BASE_AMOUNT,
    SETTING_POINT_RULE_ENABLED,
    SETTING_POINT_RULE_MULTIPLIER,
)
from ...utils.auth import hash_password


def seed(conn):
    # if no users exist, create admin/admin and a demo cashier
    row = conn.execute("SELECT COUNT(*) AS n FROM users").fetchone()
    if row and row["n"] == 0:
        conn.execute("""
            INSERT INTO users(username, password_hash, full_name, role, is_active)
            VALUES (?, ?, ?, ?, 1)
        """, ("admin", hash_password("admin"), "Administrator", "admin"))
        conn.execute("""
            INSERT INTO users(username, password_hash, full_name, role, is_active)
            VALUES (?, ?, ?, ?, 1)
        """, ("cashier", hash_password("cashier"), "Cashier User", "cashier"))

    conn.execute(
        "INSERT OR IGNORE INTO units(name, symbol) VALUES ('Piece', 'pcs')"
    )

    # point rule defaults; never overwrite what an admin already configured
    defaults = (
        (SETTING_POINT_RULE_ENABLED, "true" if DEFAULT_POINT_RULE["enabled"] else "false"),
        (SETTING_POINT_RULE_BASE_AMOUNT, str(DEFAULT_POINT_RULE["base_amount"])),
        (SETTING_POINT_RULE_MULTIPLIER, str(DEFAULT_POINT_RULE["point_multiplier"])),
    )
    conn.executemany(
        "INSERT OR IGNORE INTO settings(key, value) VALUES (?, ?)",
        defaults,
    )
    conn.commit()
