"""
Checkout: cart -> member -> transaction discount -> payment -> one atomic write.

The four validation stages only read. Each is a hard gate: the first failure
is returned to the caller as ExecutionResult(success=False, message=...) and
nothing is written. The commit stage runs in a single UnitOfWork; any error
inside it (stock changed under us, a batch vanished, a usage cap was hit by a
concurrent checkout) rolls the whole sale back.
"""
from __future__ import annotations

from collections import Counter
from datetime import datetime
import logging
import secrets
import sqlite3
import string
import time
from typing import Any, Callable, Mapping, Optional, Union

from ...config import CHECKOUT_LOG_PATH
from ...database.repositories.products_repo import DomainError
from ...database.repositories.settings_repo import SettingsRepo
from ...database.repositories.transactions_repo import TransactionHeader, TransactionItem
from ...database.unit_of_work import UnitOfWork
from ...utils.helpers import now_str
from ...utils.loggers import get_event_logger, get_logger, log_event
from .calculations import line_discount_amount
from .cart import CartValidator
from .discounts import DiscountResolver, count_discount_uses
from .members import MemberService, process_points
from .payment import is_cash, validate_payment
from .types import ExecutionResult, TransactionRequest, TransactionSummary, ValidatedCartItem

_log = get_logger(__name__)

_OP = "checkout"
_ID_ALPHABET = string.digits + string.ascii_lowercase
_MAX_ID_ATTEMPTS = 5


def generate_transaction_id(now: Optional[datetime] = None) -> str:
    """T<epoch millis>-<5 random base36 chars>, e.g. 'T1760868000123-k3f9a'."""
    millis = int((now.timestamp() if now else time.time()) * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(5))
    return f"T{millis}-{suffix}"


class TransactionExecutor:
    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        events: Optional[logging.Logger] = None,
        id_factory: Callable[[Optional[datetime]], str] = generate_transaction_id,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.conn = conn
        self.events = events or get_event_logger(CHECKOUT_LOG_PATH)
        self.id_factory = id_factory
        self.clock = clock
        self.cart = CartValidator(conn)
        self.discounts = DiscountResolver(conn)
        self.members = MemberService(conn)
        self.settings = SettingsRepo(conn)

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------
    def process_transaction(self, data: Union[TransactionRequest, Mapping[str, Any]]) -> ExecutionResult:
        try:
            request = data if isinstance(data, TransactionRequest) else TransactionRequest.from_payload(data)
        except ValueError as e:
            log_event(self.events, _OP, "request", "Malformed checkout request", {"error": str(e)})
            return ExecutionResult(False, message=str(e))

        try:
            return self._run(request)
        except Exception as e:
            _log.exception("Transaction execution failed")
            log_event(
                self.events, _OP, "commit", "Transaction execution failed",
                {"cashier_id": request.cashier_id, "member_id": request.member_id, "error": str(e)},
                level=logging.ERROR, exc_info=True,
            )
            return ExecutionResult(False, message=str(e) or "Transaction execution failed")

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    def _run(self, request: TransactionRequest) -> ExecutionResult:
        now = self.clock()
        ctx = {"cashier_id": request.cashier_id, "member_id": request.member_id}

        # 1. cart
        cart = self.cart.validate_cart(request.cart_lines(), now)
        if not cart.success:
            log_event(self.events, _OP, "validate_cart", cart.message, ctx)
            return ExecutionResult(False, message=cart.message)
        items: list[ValidatedCartItem] = cart.data or []

        # 2. member
        if request.member_id is not None:
            status = self.members.validate_member_status(request.member_id)
            if not status.success:
                log_event(self.events, _OP, "member_status", status.message, ctx)
                return ExecutionResult(False, message=status.message)

        # 3. transaction-level discount and totals
        try:
            validated = self.discounts.validate_transaction(
                items,
                member_id=request.member_id,
                selected_member_discount_id=request.selected_member_discount_id,
                selected_tier_discount_id=request.selected_tier_discount_id,
                global_discount_code=request.global_discount_code,
                now=now,
            )
        except Exception:
            _log.exception("Transaction validation raised")
            validated = None
        if validated is None or not validated.success or validated.data is None:
            msg = "Failed to validate transaction"
            log_event(self.events, _OP, "validate_transaction", msg, ctx, level=logging.WARNING)
            return ExecutionResult(False, message=msg)
        summary = validated.data

        # 4. payment
        payment = validate_payment(request.payment_method, summary.final_amount, request.cash_amount)
        if not payment.success:
            log_event(
                self.events, _OP, "payment", payment.message,
                {**ctx, "final_amount": summary.final_amount, "cash_amount": request.cash_amount},
            )
            return ExecutionResult(False, message=payment.message)

        # 5. commit
        settings = self.settings.get_point_rule_settings()
        result = self._commit(request, items, summary, payment.change, settings, now)
        log_event(
            self.events, _OP, "commit", "Transaction committed",
            {
                **ctx,
                "tran_id": result.transaction.tran_id if result.transaction else None,
                "final_amount": result.final_amount,
                "change": result.change,
                "points_earned": result.points_earned,
            },
        )
        return result

    def _commit(self, request, items, summary: TransactionSummary, change, settings, now) -> ExecutionResult:
        applied = summary.applied_discount
        # non-cash tenders are recorded at the amount due; only cash carries change
        cash_amount = request.cash_amount if is_cash(request.payment_method) else None
        payment_amount = cash_amount if cash_amount is not None else summary.final_amount

        with UnitOfWork(self.conn).begin() as uow:
            header = TransactionHeader(
                tran_id=self._new_tran_id(uow, now),
                cashier_id=request.cashier_id,
                member_id=request.member_id,
                discount_id=applied.discount_id if applied else None,
                discount_amount=applied.amount if applied else None,
                total_amount=summary.subtotal,
                final_amount=summary.final_amount,
                payment_method=request.payment_method,
                payment_amount=payment_amount,
                change_amount=change,
                created_at=now_str(now),
            )
            rows = [
                TransactionItem(
                    batch_id=i.batch_id,
                    quantity=i.quantity,
                    unit_id=i.unit_id,
                    cost=i.buy_price,
                    price_per_unit=i.basic_price,
                    discount_id=i.discount.discount_id if i.discount else None,
                    discount_amount=(
                        line_discount_amount(i.basic_price, i.discounted_price, i.quantity)
                        if i.discount else None
                    ),
                    subtotal=i.subtotal,
                )
                for i in items
            ]
            transaction_id = uow.transactions.insert_transaction(header, rows)

            self._update_inventory(uow, items)

            points = 0
            if request.member_id is not None:
                member = uow.members.get_with_relations(request.member_id)
                if member is None:
                    raise DomainError(f"Member with ID {request.member_id} not found")
                points = process_points(uow, member, summary.final_amount, settings, transaction_id, now).earned

            uses = count_discount_uses(items, applied.discount_id if applied else None)
            for discount_id, n in sorted(uses.items()):
                uow.discounts.increment_usage(discount_id, n)

        return ExecutionResult(
            True,
            message="Transaction completed successfully",
            transaction=header,
            items=rows,
            final_amount=summary.final_amount,
            cash_amount=cash_amount,
            change=change,
            points_earned=points,
        )

    # ------------------------------------------------------------------
    # Commit helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _update_inventory(uow: UnitOfWork, items: list[ValidatedCartItem]) -> None:
        """Decrement batches and product stock, one conditional UPDATE per id."""
        by_batch: Counter = Counter()
        by_product: Counter = Counter()
        for i in items:
            by_batch[i.batch_id] += i.quantity
            by_product[i.product_id] += i.quantity

        existing = uow.products.get_batches(by_batch.keys())
        missing = sorted(set(by_batch) - set(existing))
        if missing:
            raise DomainError(f"Batch with ID {missing[0]} not found")

        for batch_id, qty in sorted(by_batch.items()):
            uow.products.decrement_batch(batch_id, qty)
        for product_id, qty in sorted(by_product.items()):
            uow.products.decrement_product_stock(product_id, qty)

    def _new_tran_id(self, uow: UnitOfWork, now: datetime) -> str:
        for _ in range(_MAX_ID_ATTEMPTS):
            tran_id = self.id_factory(now)
            if not uow.transactions.tran_id_exists(tran_id):
                return tran_id
        raise DomainError("Could not generate a unique transaction id")
