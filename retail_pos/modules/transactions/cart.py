from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Iterable, Optional
import sqlite3

from ...database.repositories.products_repo import Product, ProductBatch, ProductsRepo
from ...utils.loggers import get_logger
from .calculations import discount_is_applicable, discounted_unit_price
from .types import AppliedDiscount, CartLine, ValidatedCartItem, ValidationResult

_log = get_logger(__name__)


def select_batch(product: Product, now: datetime, claimed: Optional[Counter] = None) -> Optional[ProductBatch]:
    """
    Earliest-expiring batch that is not expired on `now` and still has stock
    once `claimed` ({batch_id: qty} taken by earlier cart lines) is set aside.
    """
    today = now.date()
    claimed = claimed or Counter()
    usable = [
        b for b in product.batches
        if b.expiry_date >= today and b.remaining_quantity - claimed[b.batch_id] > 0
    ]
    if not usable:
        return None
    return min(usable, key=lambda b: (b.expiry_date, b.batch_id))


class CartValidator:
    """
    Turns raw cart lines into priced, batch-assigned items.

    Read-only: nothing here writes, so validating the same cart twice against
    the same data gives the same result. Lines are checked in order against
    what earlier lines already claimed (stock, batch quantity, discount uses).
    """

    def __init__(self, conn: sqlite3.Connection):
        self.products = ProductsRepo(conn)

    def validate_cart(
        self,
        lines: Iterable[CartLine],
        now: Optional[datetime] = None,
    ) -> ValidationResult[list[ValidatedCartItem]]:
        now = now or datetime.now()
        lines = list(lines)
        products = self.products.fetch_for_cart(line.product_id for line in lines)

        validated: list[ValidatedCartItem] = []
        errors: list[str] = []
        stock_claimed: Counter = Counter()
        batch_claimed: Counter = Counter()
        discount_uses: Counter = Counter()

        for line in lines:
            if line.quantity <= 0:
                errors.append(f"Quantity for product {line.product_id} must be greater than zero")
                continue

            product = products.get(line.product_id)
            if product is None:
                errors.append(f"Product with ID {line.product_id} not found")
                continue
            if product.current_stock <= 0 or not product.is_active:
                errors.append(f"Product {product.product_id} is out of stock or inactive")
                continue
            in_stock = product.current_stock - stock_claimed[product.product_id]
            if line.quantity > in_stock:
                errors.append(
                    f"Insufficient stock for product {product.product_id}: "
                    f"requested {line.quantity}, in stock {in_stock}"
                )
                continue

            batch = select_batch(product, now, batch_claimed)
            if batch is None:
                errors.append(f"No valid batch available for product {product.product_id}")
                continue
            remaining = batch.remaining_quantity - batch_claimed[batch.batch_id]
            if line.quantity > remaining:
                errors.append(
                    f"Insufficient quantity in batch {batch.batch_id} for product {product.product_id}: "
                    f"requested {line.quantity}, remaining {remaining}"
                )
                continue

            applied: Optional[AppliedDiscount] = None
            if line.selected_discount_id is not None:
                discount = next(
                    (d for d in product.discounts if d.discount_id == line.selected_discount_id),
                    None,
                )
                if discount is None or not discount_is_applicable(
                    discount, now, pending_uses=discount_uses[discount.discount_id]
                ):
                    errors.append(
                        f"Selected discount for product {product.product_id} "
                        "is not valid or has reached usage limit"
                    )
                    continue
                applied = AppliedDiscount(discount.discount_id, discount.value, discount.type)
                discount_uses[discount.discount_id] += 1

            stock_claimed[product.product_id] += line.quantity
            batch_claimed[batch.batch_id] += line.quantity

            if applied is not None:
                price = discounted_unit_price(product.price, applied.value, applied.type)
            else:
                price = product.price
            validated.append(
                ValidatedCartItem(
                    product_id=product.product_id,
                    batch_id=batch.batch_id,
                    unit_id=product.unit_id,
                    basic_price=product.price,
                    buy_price=batch.buy_price,
                    quantity=line.quantity,
                    discount=applied,
                    discounted_price=price,
                    subtotal=price * line.quantity,
                )
            )

        if errors:
            message = "Validation errors: " + "; ".join(errors)
        elif not validated:
            message = "No valid items in cart"
        else:
            message = "Validation successful"

        success = not errors and bool(validated)
        if not success:
            _log.info("Cart rejected: %s", message)
        return ValidationResult(success=success, message=message, data=validated)
