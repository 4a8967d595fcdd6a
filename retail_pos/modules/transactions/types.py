from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Generic, Mapping, Optional, TypeVar

from ...database.repositories.discounts_repo import DiscountType
from ...database.repositories.transactions_repo import TransactionHeader, TransactionItem
from ...utils.validators import is_positive_int, parse_optional_decimal

T = TypeVar("T")


# ---------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    selected_discount_id: Optional[int] = None


@dataclass(frozen=True)
class AppliedDiscount:
    discount_id: int
    value: Decimal
    type: DiscountType


@dataclass(frozen=True)
class ValidatedCartItem:
    product_id: int
    batch_id: int
    unit_id: int
    basic_price: Decimal
    buy_price: Decimal
    quantity: int
    discount: Optional[AppliedDiscount]
    discounted_price: Decimal
    subtotal: Decimal


@dataclass
class ValidationResult(Generic[T]):
    success: bool
    message: str
    data: Optional[T] = None


# ---------------------------------------------------------------------
# Transaction-level discount and summary
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class DiscountInfo:
    discount_id: int
    name: str
    value: Decimal
    type: DiscountType
    amount: Decimal
    code: Optional[str] = None


@dataclass(frozen=True)
class MemberInfo:
    member_id: int
    name: str
    tier_id: Optional[int]
    tier_name: Optional[str]
    discount: Optional[DiscountInfo] = None


@dataclass(frozen=True)
class TransactionSummary:
    subtotal: Decimal
    member: Optional[MemberInfo]
    global_discount: Optional[DiscountInfo]
    discount_source: Optional[str]  # 'member' | 'tier' | 'global' | None
    final_amount: Decimal

    @property
    def applied_discount(self) -> Optional[DiscountInfo]:
        if self.discount_source == "global":
            return self.global_discount
        if self.member is not None:
            return self.member.discount
        return None

    @property
    def discount_amount(self) -> Decimal:
        d = self.applied_discount
        return d.amount if d is not None else Decimal("0")


@dataclass(frozen=True)
class MemberStatusResult:
    success: bool
    message: str


@dataclass(frozen=True)
class PaymentValidationResult:
    success: bool
    message: str
    change: Decimal = Decimal("0")


# ---------------------------------------------------------------------
# Inbound request / outbound result
# ---------------------------------------------------------------------
def _pick(payload: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in payload and payload[k] is not None and payload[k] != "":
            return payload[k]
    return None


def _optional_int(value: Any, name: str) -> Optional[int]:
    if value is None:
        return None
    if not is_positive_int(value):
        raise ValueError(f"{name} must be a positive whole number.")
    return int(Decimal(str(value)))


@dataclass(frozen=True)
class RequestItem:
    product_id: int
    quantity: int
    unit_id: Optional[int] = None
    discount_id: Optional[int] = None


@dataclass(frozen=True)
class TransactionRequest:
    cashier_id: int
    payment_method: str
    items: list[RequestItem] = field(default_factory=list)
    member_id: Optional[int] = None
    selected_member_discount_id: Optional[int] = None
    selected_tier_discount_id: Optional[int] = None
    global_discount_code: Optional[str] = None
    cash_amount: Optional[Decimal] = None

    def cart_lines(self) -> list[CartLine]:
        return [
            CartLine(product_id=i.product_id, quantity=i.quantity, selected_discount_id=i.discount_id)
            for i in self.items
        ]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TransactionRequest":
        """
        Build a request from the checkout JSON body. camelCase keys
        (cashierId, memberId, items[].productId, ...) and their snake_case
        spellings are both accepted. Raises ValueError on malformed input.
        """
        cashier_id = _optional_int(_pick(payload, "cashierId", "cashier_id"), "cashierId")
        if cashier_id is None:
            raise ValueError("cashierId is required.")

        method = _pick(payload, "paymentMethod", "payment_method")
        if method is None or not str(method).strip():
            raise ValueError("paymentMethod is required.")

        raw_items = payload.get("items") or []
        if not isinstance(raw_items, (list, tuple)):
            raise ValueError("items must be a list.")
        items: list[RequestItem] = []
        for idx, raw in enumerate(raw_items, start=1):
            if not isinstance(raw, Mapping):
                raise ValueError(f"items[{idx}] must be an object.")
            product_id = _optional_int(_pick(raw, "productId", "product_id"), f"items[{idx}].productId")
            if product_id is None:
                raise ValueError(f"items[{idx}].productId is required.")
            quantity = _optional_int(_pick(raw, "quantity"), f"items[{idx}].quantity")
            if quantity is None:
                raise ValueError(f"items[{idx}].quantity is required.")
            items.append(
                RequestItem(
                    product_id=product_id,
                    quantity=quantity,
                    unit_id=_optional_int(_pick(raw, "unitId", "unit_id"), f"items[{idx}].unitId"),
                    discount_id=_optional_int(
                        _pick(raw, "discountId", "discount_id", "selectedDiscountId"),
                        f"items[{idx}].discountId",
                    ),
                )
            )

        code = _pick(payload, "globalDiscountCode", "global_discount_code")
        return cls(
            cashier_id=cashier_id,
            payment_method=str(method).strip(),
            items=items,
            member_id=_optional_int(_pick(payload, "memberId", "member_id"), "memberId"),
            selected_member_discount_id=_optional_int(
                _pick(payload, "selectedMemberDiscountId", "selected_member_discount_id"),
                "selectedMemberDiscountId",
            ),
            selected_tier_discount_id=_optional_int(
                _pick(payload, "selectedTierDiscountId", "selected_tier_discount_id"),
                "selectedTierDiscountId",
            ),
            global_discount_code=None if code is None else str(code).strip() or None,
            cash_amount=parse_optional_decimal(_pick(payload, "cashAmount", "cash_amount")),
        )


def _money(x: Optional[Decimal]) -> Optional[str]:
    return None if x is None else str(x)


@dataclass
class ExecutionResult:
    success: bool
    message: Optional[str] = None
    transaction: Optional[TransactionHeader] = None
    items: list[TransactionItem] = field(default_factory=list)
    final_amount: Optional[Decimal] = None
    cash_amount: Optional[Decimal] = None
    change: Optional[Decimal] = None
    points_earned: int = 0

    def to_payload(self) -> dict:
        """
        Response body: {success, message?, data?}. Money is rendered as
        strings so no precision is lost in JSON.
        """
        out: dict[str, Any] = {"success": self.success}
        if self.message:
            out["message"] = self.message
        if self.transaction is None:
            return out
        t = self.transaction
        out["data"] = {
            "id": t.transaction_id,
            "tranId": t.tran_id,
            "cashierId": t.cashier_id,
            "memberId": t.member_id,
            "discountId": t.discount_id,
            "discountAmount": _money(t.discount_amount),
            "totalAmount": _money(t.total_amount),
            "paymentMethod": t.payment_method,
            "paymentAmount": _money(t.payment_amount),
            "createdAt": t.created_at,
            "items": [
                {
                    "id": it.item_id,
                    "batchId": it.batch_id,
                    "quantity": it.quantity,
                    "unitId": it.unit_id,
                    "cost": _money(it.cost),
                    "pricePerUnit": _money(it.price_per_unit),
                    "discountId": it.discount_id,
                    "discountAmount": _money(it.discount_amount),
                    "subtotal": _money(it.subtotal),
                }
                for it in self.items
            ],
            "pointsEarned": self.points_earned,
            "finalAmount": _money(self.final_amount),
            "cashAmount": _money(self.cash_amount),
            "change": _money(self.change),
        }
        return out
