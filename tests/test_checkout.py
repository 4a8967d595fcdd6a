# tests/test_checkout.py
from datetime import date, timedelta
from decimal import Decimal
import logging

from retail_pos.modules.transactions.executor import generate_transaction_id
from retail_pos.modules.transactions.types import TransactionRequest

from conftest import money, scalar


def _stock(conn, pid):
    return scalar(conn, "SELECT current_stock FROM products WHERE product_id=?", pid)


def _remaining(conn, pid):
    return scalar(conn, "SELECT SUM(remaining_quantity) FROM product_batches WHERE product_id=?", pid)


def _nothing_written(conn):
    for table in ("transactions", "transaction_items", "member_points"):
        assert scalar(conn, f"SELECT COUNT(*) FROM {table}") == 0, table


# --------------------------- scenarios ---------------------------

def test_cash_sale_with_change(conn, make, checkout):
    pid = make.product(price="10000", stock=10)

    res = checkout([{"productId": pid, "quantity": 2}], cashAmount=25000)

    assert res.success, res.message
    assert res.final_amount == Decimal("20000")
    assert res.change == Decimal("5000")
    assert res.cash_amount == Decimal("25000")
    assert res.transaction.total_amount == Decimal("20000")
    assert _remaining(conn, pid) == 8
    assert _stock(conn, pid) == 8

    row = conn.execute("SELECT * FROM transactions").fetchone()
    assert row["tran_id"] == res.transaction.tran_id
    assert Decimal(str(row["change_amount"])) == Decimal("5000")
    item = conn.execute("SELECT * FROM transaction_items").fetchone()
    assert item["quantity"] == 2
    assert Decimal(str(item["cost"])) == Decimal("6000")
    assert Decimal(str(item["price_per_unit"])) == Decimal("10000")


def test_line_discount_is_snapshotted_and_counted(conn, make, checkout):
    pid = make.product(price="10000", stock=5)
    did = make.discount("10", "PERCENTAGE", products=(pid,))

    res = checkout([{"productId": pid, "quantity": 1, "discountId": did}], cashAmount=9000)

    assert res.success, res.message
    assert res.final_amount == Decimal("9000")
    item = conn.execute("SELECT * FROM transaction_items").fetchone()
    assert item["discount_id"] == did
    assert Decimal(str(item["discount_amount"])) == Decimal("1000")
    assert Decimal(str(item["subtotal"])) == Decimal("9000")
    assert scalar(conn, "SELECT used_count FROM discounts WHERE discount_id=?", did) == 1


def test_member_earns_points_with_tier_multiplier(conn, make, checkout):
    make.settings(base_amount="10000", multiplier="1")
    tier = make.tier("Silver", 0, "2")
    mid = make.member("Ana", tier_id=tier)
    pid = make.product(price="25000", stock=3)

    res = checkout([{"productId": pid, "quantity": 1}], memberId=mid, cashAmount=25000)

    assert res.success, res.message
    assert res.points_earned == 4
    m = conn.execute("SELECT total_points, total_points_earned FROM members WHERE member_id=?", (mid,)).fetchone()
    assert (m["total_points"], m["total_points_earned"]) == (4, 4)
    ledger = conn.execute("SELECT * FROM member_points").fetchone()
    assert ledger["points_earned"] == 4
    assert ledger["transaction_id"] == res.transaction.transaction_id


def test_exhausted_global_code_proceeds_at_full_price(conn, make, checkout):
    pid = make.product(price="10000")
    did = make.discount("10", scope="global", code="ONCE", is_global=True, max_uses=1, used_count=1)

    res = checkout([{"productId": pid, "quantity": 1}], globalDiscountCode="ONCE", cashAmount=10000)

    assert res.success, res.message
    assert res.final_amount == Decimal("10000")
    assert res.transaction.discount_id is None
    assert scalar(conn, "SELECT used_count FROM discounts WHERE discount_id=?", did) == 1


def test_insufficient_cash_commits_nothing(conn, make, checkout):
    pid = make.product(price="10000", stock=4)

    res = checkout([{"productId": pid, "quantity": 1}], cashAmount=5000)

    assert not res.success
    assert "insufficient" in res.message
    _nothing_written(conn)
    assert _stock(conn, pid) == 4


def test_banned_member_aborts_with_reason(conn, make, checkout):
    pid = make.product(stock=4)
    mid = make.member("Ben", banned=True, ban_reason="Repeated fraudulent returns")

    res = checkout([{"productId": pid, "quantity": 1}], memberId=mid, cashAmount=999999)

    assert not res.success
    assert res.message == "Repeated fraudulent returns"
    _nothing_written(conn)
    assert _stock(conn, pid) == 4


# --------------------------- commit protocol ---------------------------

def test_failure_on_second_batch_update_rolls_everything_back(conn, make, checkout):
    mid = make.member("Ana")
    did = make.discount("10", products=())
    first = make.product(price="1000", stock=5, name="First")
    second = make.product(price="1000", stock=5, name="Second")
    conn.execute("INSERT INTO discount_products(discount_id, product_id) VALUES (?, ?)", (did, first))
    second_batch = scalar(conn, "SELECT batch_id FROM product_batches WHERE product_id=?", second)
    conn.execute(
        f"""
        CREATE TEMP TRIGGER fail_second_batch
        BEFORE UPDATE OF remaining_quantity ON product_batches
        WHEN NEW.batch_id = {second_batch}
        BEGIN
          SELECT RAISE(ABORT, 'injected batch failure');
        END;
        """
    )
    conn.commit()

    res = checkout(
        [
            {"productId": first, "quantity": 2, "discountId": did},
            {"productId": second, "quantity": 1},
        ],
        memberId=mid,
        cashAmount=10000,
    )

    assert not res.success
    assert "injected batch failure" in res.message
    _nothing_written(conn)
    assert _remaining(conn, first) == 5
    assert _stock(conn, first) == 5
    assert scalar(conn, "SELECT total_points FROM members WHERE member_id=?", mid) == 0
    assert scalar(conn, "SELECT used_count FROM discounts WHERE discount_id=?", did) == 0


def test_lines_sharing_a_batch_cannot_oversell(conn, make, checkout):
    pid = make.product(price="100", stock=5)

    # each line fits on its own; together they exceed the batch
    res = checkout(
        [{"productId": pid, "quantity": 3}, {"productId": pid, "quantity": 3}],
        cashAmount=1000,
    )

    assert not res.success
    assert res.message.startswith("Validation errors:")
    assert f"Insufficient stock for product {pid}" in res.message
    _nothing_written(conn)
    assert _remaining(conn, pid) == 5


def test_batch_and_stock_decrement_grouped(conn, make, checkout):
    pid = make.product(price="100", stock=10)

    res = checkout(
        [{"productId": pid, "quantity": 2}, {"productId": pid, "quantity": 3}],
        cashAmount=500,
    )

    assert res.success, res.message
    assert _remaining(conn, pid) == 5
    assert _stock(conn, pid) == 5
    assert res.change == Decimal("0")
    assert scalar(conn, "SELECT COUNT(*) FROM transaction_items") == 2


def test_global_and_line_discount_usage_counts(conn, make, checkout):
    pid = make.product(price="1000", stock=10)
    line = make.discount("100", "FIXED_AMOUNT", products=(pid,))
    glob = make.discount("10", scope="global", code="TEN", is_global=True, max_uses=5)

    res = checkout(
        [
            {"productId": pid, "quantity": 1, "discountId": line},
            {"productId": pid, "quantity": 1, "discountId": line},
        ],
        globalDiscountCode="TEN",
        cashAmount=5000,
    )

    assert res.success, res.message
    # subtotal 1800, 10% off -> 180
    assert res.transaction.discount_amount == Decimal("180")
    assert res.final_amount == Decimal("1620")
    assert scalar(conn, "SELECT used_count FROM discounts WHERE discount_id=?", line) == 2
    assert scalar(conn, "SELECT used_count FROM discounts WHERE discount_id=?", glob) == 1


def test_shared_line_discount_with_one_use_left_fails_validation(conn, make, checkout, caplog):
    a = make.product(name="A", price="10000")
    b = make.product(name="B", price="20000")
    did = make.discount("10", products=(a, b), max_uses=2, used_count=1)

    with caplog.at_level(logging.ERROR):
        res = checkout(
            [{"productId": a, "quantity": 1, "discountId": did}, {"productId": b, "quantity": 1, "discountId": did}],
            cashAmount=50000,
        )

    assert not res.success
    assert res.message.startswith("Validation errors:")
    assert "reached usage limit" in res.message
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]
    _nothing_written(conn)
    assert scalar(conn, "SELECT used_count FROM discounts WHERE discount_id=?", did) == 1


def test_global_code_used_up_by_lines_is_not_applied_again(conn, make, checkout):
    pid = make.product(price="1000", stock=5)
    did = make.discount(
        "10", scope="global", code="LAST", is_global=True, products=(pid,), max_uses=2, used_count=1
    )

    res = checkout([{"productId": pid, "quantity": 1, "discountId": did}], globalDiscountCode="LAST", cashAmount=1000)

    assert res.success, res.message
    assert res.transaction.discount_id is None
    assert res.final_amount == Decimal("900")
    assert scalar(conn, "SELECT used_count FROM discounts WHERE discount_id=?", did) == 2


def test_non_cash_payment_records_final_amount(conn, make, checkout):
    pid = make.product(price="7500", stock=2)

    res = checkout([{"productId": pid, "quantity": 1}], paymentMethod="card")

    assert res.success, res.message
    assert res.change == Decimal("0")
    assert res.cash_amount is None
    assert res.transaction.payment_amount == Decimal("7500")


def test_non_cash_payment_ignores_tendered_cash(conn, make, checkout):
    pid = make.product(price="20000", stock=2)

    res = checkout([{"productId": pid, "quantity": 1}], paymentMethod="card", cashAmount=50000)

    assert res.success, res.message
    assert res.cash_amount is None
    assert res.change == Decimal("0")
    assert money(scalar(conn, "SELECT payment_amount FROM transactions")) == Decimal("20000")


def test_cart_failure_reports_all_reasons(conn, make, checkout):
    pid = make.product(stock=1, batches=[(1, date.today() - timedelta(days=1), "1")])

    res = checkout([{"productId": 424242, "quantity": 1}, {"productId": pid, "quantity": 1}], cashAmount=100)

    assert not res.success
    assert "Product with ID 424242 not found" in res.message
    assert f"No valid batch available for product {pid}" in res.message


def test_resolver_error_is_reported_generically(conn, make, executor, ids, monkeypatch):
    pid = make.product()

    def boom(*a, **kw):
        raise RuntimeError("db hiccup")

    monkeypatch.setattr(executor.discounts, "validate_transaction", boom)
    res = executor.process_transaction(
        {"cashierId": ids["cashier"], "paymentMethod": "card", "items": [{"productId": pid, "quantity": 1}]}
    )

    assert not res.success
    assert res.message == "Failed to validate transaction"


def test_unknown_cashier_fails_the_commit(conn, make, checkout):
    pid = make.product(stock=3)

    res = checkout([{"productId": pid, "quantity": 1}], cashierId=9999, cashAmount=100000)

    assert not res.success
    assert "FOREIGN KEY" in res.message
    _nothing_written(conn)
    assert _stock(conn, pid) == 3


def test_malformed_payload(checkout):
    res = checkout([{"productId": "abc", "quantity": 1}])
    assert not res.success
    assert "productId" in res.message


# --------------------------- payload boundary ---------------------------

def test_request_from_payload_accepts_camel_case():
    req = TransactionRequest.from_payload(
        {
            "cashierId": "3",
            "memberId": 7,
            "selectedMemberDiscountId": None,
            "selectedTierDiscountId": "12",
            "globalDiscountCode": "  ",
            "paymentMethod": " cash ",
            "cashAmount": "25000.50",
            "items": [{"productId": 1, "quantity": 2, "unitId": 1, "discountId": 4}],
        }
    )

    assert req.cashier_id == 3
    assert req.member_id == 7
    assert req.selected_member_discount_id is None
    assert req.selected_tier_discount_id == 12
    assert req.global_discount_code is None
    assert req.payment_method == "cash"
    assert req.cash_amount == Decimal("25000.50")
    [line] = req.cart_lines()
    assert (line.product_id, line.quantity, line.selected_discount_id) == (1, 2, 4)


def test_result_payload_shape(conn, make, checkout):
    pid = make.product(price="10000", stock=10)
    res = checkout([{"productId": pid, "quantity": 2}], cashAmount=25000)

    body = res.to_payload()

    assert body["success"] is True
    data = body["data"]
    assert data["tranId"].startswith("T")
    assert data["finalAmount"] == "20000"
    assert data["change"] == "5000"
    assert data["items"][0]["quantity"] == 2
    assert res.to_payload() == body


def test_generate_transaction_id_format():
    tid = generate_transaction_id()
    head, suffix = tid.split("-")
    assert head.startswith("T") and head[1:].isdigit()
    assert len(suffix) == 5 and suffix.isalnum() and suffix.lower() == suffix
