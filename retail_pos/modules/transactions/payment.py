from __future__ import annotations

from decimal import Decimal
from typing import Optional

from ...constants import PAYMENT_METHOD_CASH
from .calculations import ZERO, change_due
from .types import PaymentValidationResult


def is_cash(payment_method: Optional[str]) -> bool:
    return (payment_method or "").strip().lower() == PAYMENT_METHOD_CASH


def validate_payment(
    payment_method: str,
    final_amount: Optional[Decimal],
    cash_amount: Optional[Decimal] = None,
) -> PaymentValidationResult:
    """
    Cash must be tendered and cover final_amount; change is cash - final.
    Any other method is taken as already authorized (change 0).
    """
    if final_amount is None or final_amount < ZERO:
        return PaymentValidationResult(False, "Invalid final amount")

    if not is_cash(payment_method):
        return PaymentValidationResult(True, "Payment validated successfully", ZERO)

    if cash_amount is None or cash_amount <= ZERO:
        return PaymentValidationResult(False, "Cash payment requires a valid cash amount")

    change = change_due(cash_amount, final_amount)
    if change < ZERO:
        return PaymentValidationResult(
            False,
            f"Cash amount is insufficient: {cash_amount} tendered, {final_amount} due",
            ZERO,
        )
    return PaymentValidationResult(True, "Payment validated successfully", change)
