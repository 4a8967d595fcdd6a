# tests/test_transaction_query.py
from datetime import date, timedelta
from decimal import Decimal
import sqlite3

import pytest

from retail_pos.modules.transactions.query import TransactionQueryService


@pytest.fixture()
def sales(conn, make, checkout):
    """Three committed sales: two for a member, one anonymous card sale."""
    make.settings(base_amount="1000")
    mid = make.member("Ana")
    apple = make.product(price="1000", stock=50, name="Apple")
    pear = make.product(price="500", stock=50, name="Pear")
    line = make.discount("100", "FIXED_AMOUNT", products=(apple,))
    member_d = make.discount("10", scope="member", members=(mid,))

    r1 = checkout(
        [{"productId": apple, "quantity": 3, "discountId": line}, {"productId": pear, "quantity": 1}],
        memberId=mid, selectedMemberDiscountId=member_d, cashAmount=10000,
    )
    r2 = checkout([{"productId": apple, "quantity": 1}], memberId=mid, cashAmount=1000)
    r3 = checkout([{"productId": pear, "quantity": 6}], paymentMethod="card")
    for r in (r1, r2, r3):
        assert r.success, r.message
    return {"member": mid, "apple": apple, "pear": pear, "results": (r1, r2, r3)}


def test_get_by_id_breakdown(conn, sales):
    r1 = sales["results"][0]
    detail = TransactionQueryService(conn).get_by_id(r1.transaction.transaction_id)

    # subtotal: 3 * 900 + 500 = 3200; member 10% -> 320
    assert detail["total_amount"] == Decimal("3200")
    assert detail["final_amount"] == Decimal("2880")
    assert detail["discounts"] == {
        "member_discount": Decimal("320"),
        "product_discounts": Decimal("300"),
        "total_discount": Decimal("620"),
    }
    assert detail["item_count"] == 2
    assert detail["points_earned"] == 2
    assert detail["member_name"] == "Ana"
    assert detail["cashier_name"] == "Cashier One"
    assert {i["product_name"] for i in detail["items"]} == {"Apple", "Pear"}


def test_get_by_id_missing(conn):
    assert TransactionQueryService(conn).get_by_id(404) is None


def test_pagination(conn, sales):
    svc = TransactionQueryService(conn)
    page1 = svc.get_paginated(page=1, page_size=2)
    page2 = svc.get_paginated(page=2, page_size=2)

    assert page1["pagination"] == {"total_count": 3, "total_pages": 2, "current_page": 1, "page_size": 2}
    assert len(page1["transactions"]) == 2
    assert len(page2["transactions"]) == 1
    seen = {t["transaction_id"] for t in page1["transactions"] + page2["transactions"]}
    assert len(seen) == 3


def test_filters_and_sort(conn, sales):
    svc = TransactionQueryService(conn)

    by_member = svc.get_paginated(member_id=sales["member"])
    assert by_member["pagination"]["total_count"] == 2

    card = svc.get_paginated(payment_method="CARD")["transactions"]
    assert [t["payment_method"] for t in card] == ["card"]
    assert card[0]["points_earned"] == 0

    big = svc.get_paginated(min_amount=Decimal("2000"))["transactions"]
    assert [t["final_amount"] for t in big] == [Decimal("3000"), Decimal("2880")]

    asc = svc.get_paginated(sort_field="final_amount", sort_direction="asc")["transactions"]
    assert [t["final_amount"] for t in asc] == [Decimal("1000"), Decimal("2880"), Decimal("3000")]

    # unknown sort fields fall back to created_at instead of reaching SQL
    assert svc.get_paginated(sort_field="1; DROP TABLE transactions")["pagination"]["total_count"] == 3


def test_search(conn, sales):
    svc = TransactionQueryService(conn)
    r2 = sales["results"][1]
    found = svc.get_paginated(search=r2.transaction.tran_id)["transactions"]
    assert [t["tran_id"] for t in found] == [r2.transaction.tran_id]
    assert svc.get_paginated(search="Ana")["pagination"]["total_count"] == 2


def test_list_by_member_and_date_range(conn, sales):
    svc = TransactionQueryService(conn)
    assert len(svc.list_by_member(sales["member"])) == 2
    assert len(svc.list_by_member(sales["member"], limit=1)) == 1

    today = date.today()
    assert len(svc.list_by_date_range(today, today)) == 3
    assert svc.list_by_date_range(today - timedelta(days=9), today - timedelta(days=1)) == []


def test_summary(conn, sales):
    s = TransactionQueryService(conn).get_summary(days=7)

    assert s["transaction_count"] == 3
    assert s["total_revenue"] == Decimal("6880")
    assert s["average_transaction"] == Decimal("6880") / 3
    top = s["top_products"]
    assert [(p["product_name"], p["quantity"]) for p in top] == [("Pear", 7), ("Apple", 4)]


def test_summary_empty(conn):
    s = TransactionQueryService(conn).get_summary(days=30)
    assert s["transaction_count"] == 0
    assert s["total_revenue"] == Decimal("0")
    assert s["average_transaction"] == Decimal("0")
    assert s["top_products"] == []


def test_transactions_are_append_only(conn, sales):
    tid = sales["results"][0].transaction.transaction_id
    with pytest.raises(sqlite3.IntegrityError, match="append-only"):
        conn.execute("UPDATE transactions SET final_amount=0 WHERE transaction_id=?", (tid,))
    with pytest.raises(sqlite3.IntegrityError, match="append-only"):
        conn.execute("DELETE FROM transactions WHERE transaction_id=?", (tid,))
    conn.rollback()
