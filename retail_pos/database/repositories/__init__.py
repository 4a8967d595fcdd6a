# retail_pos/database/repositories/__init__.py
"""
Repository layer public API.

Usage:
    from retail_pos.database.repositories import (
        # Discounts
        DiscountsRepo, Discount, DiscountType, DiscountsDomainError,
        # Members
        MembersRepo, Member, MemberTier, MemberPoint, MembersDomainError,
        # Products
        ProductsRepo, Product, ProductBatch, ProductsDomainError,
        # Settings
        SettingsRepo, PointRuleSettings,
        # Transactions
        TransactionsRepo, TransactionHeader, TransactionItem, TransactionsDomainError,
    )
"""

# ---------------- Discounts ----------------
from .discounts_repo import (
    DiscountsRepo,
    Discount,
    DiscountType,
    DomainError as DiscountsDomainError,
)

# ----------------- Members -----------------
from .members_repo import (
    MembersRepo,
    Member,
    MemberTier,
    MemberPoint,
    DomainError as MembersDomainError,
)

# ---------------- Products -----------------
from .products_repo import (
    ProductsRepo,
    Product,
    ProductBatch,
    DomainError as ProductsDomainError,
)

# ---------------- Settings -----------------
from .settings_repo import SettingsRepo, PointRuleSettings

# -------------- Transactions ---------------
from .transactions_repo import (
    TransactionsRepo,
    TransactionHeader,
    TransactionItem,
    DomainError as TransactionsDomainError,
)

# Any repository-level domain failure; the checkout commit catches these together.
DOMAIN_ERRORS = (
    DiscountsDomainError,
    MembersDomainError,
    ProductsDomainError,
    TransactionsDomainError,
)

__all__ = [
    # discounts_repo
    "DiscountsRepo",
    "Discount",
    "DiscountType",
    "DiscountsDomainError",
    # members_repo
    "MembersRepo",
    "Member",
    "MemberTier",
    "MemberPoint",
    "MembersDomainError",
    # products_repo
    "ProductsRepo",
    "Product",
    "ProductBatch",
    "ProductsDomainError",
    # settings_repo
    "SettingsRepo",
    "PointRuleSettings",
    # transactions_repo
    "TransactionsRepo",
    "TransactionHeader",
    "TransactionItem",
    "TransactionsDomainError",
    "DOMAIN_ERRORS",
]
