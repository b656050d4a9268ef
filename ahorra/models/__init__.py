"""
Data Models Package

This package contains all Pydantic models used by the ledger core.
All data flowing between storage, services and callers conforms to these schemas.
"""

from ahorra.models.ledger import (
    Budget,
    Transaction,
    TransactionKind,
)
from ahorra.models.categories import (
    CATEGORY_COLORS,
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    all_categories,
    categories_for_kind,
    category_color,
)
from ahorra.models.periods import current_month, month_bounds, month_of
from ahorra.models.summary import (
    BudgetAlert,
    BudgetProgress,
    BudgetStatus,
    CategoryTotal,
    MonthlySummary,
)
from ahorra.models.user import User, utcnow

__all__ = [
    # Ledger models
    "Budget",
    "Transaction",
    "TransactionKind",
    # Categories
    "CATEGORY_COLORS",
    "EXPENSE_CATEGORIES",
    "INCOME_CATEGORIES",
    "all_categories",
    "categories_for_kind",
    "category_color",
    # Periods
    "current_month",
    "month_bounds",
    "month_of",
    # Derived models
    "BudgetAlert",
    "BudgetProgress",
    "BudgetStatus",
    "CategoryTotal",
    "MonthlySummary",
    # Users
    "User",
    "utcnow",
]
