"""
Checkout pipeline.

    from retail_pos.modules.transactions import TransactionExecutor

    result = TransactionExecutor(conn).process_transaction(payload)
"""
from .cart import CartValidator
from .discounts import DiscountResolver
from .executor import TransactionExecutor, generate_transaction_id
from .members import MemberService, calculate_member_points, process_points
from .payment import validate_payment
from .query import TransactionQueryService
from .types import (
    CartLine,
    ExecutionResult,
    TransactionRequest,
    TransactionSummary,
    ValidatedCartItem,
    ValidationResult,
)

__all__ = [
    "CartValidator",
    "DiscountResolver",
    "TransactionExecutor",
    "generate_transaction_id",
    "MemberService",
    "calculate_member_points",
    "process_points",
    "validate_payment",
    "TransactionQueryService",
    "CartLine",
    "ExecutionResult",
    "TransactionRequest",
    "TransactionSummary",
    "ValidatedCartItem",
    "ValidationResult",
]
