"""
Transaction Categories

DESIGN DECISION: Categories are a fixed list partitioned by kind rather
than free text. This keeps per-category summaries and budgets reliable.
Budgets only require a non-empty category name, so a user can budget a
category that has no transactions yet.
"""

from ahorra.models.ledger import TransactionKind


INCOME_CATEGORIES: tuple[str, ...] = (
    "Salary",
    "Freelance",
    "Investments",
    "Other Income",
)

EXPENSE_CATEGORIES: tuple[str, ...] = (
    "Food",
    "Transport",
    "Housing",
    "Leisure",
    "Utilities",
    "Health",
    "Education",
    "Security",
    "Other Expenses",
)

# Chart colours per category
CATEGORY_COLORS: dict[str, str] = {
    "Salary": "#10b981",
    "Freelance": "#059669",
    "Investments": "#0ea5e9",
    "Other Income": "#3b82f6",
    "Food": "#ec4899",
    "Transport": "#ef4444",
    "Housing": "#f97316",
    "Leisure": "#eab308",
    "Utilities": "#8b5cf6",
    "Health": "#06b6d4",
    "Education": "#84cc16",
    "Security": "#6366f1",
    "Other Expenses": "#64748b",
}

DEFAULT_CATEGORY_COLOR = "#6b7280"


def categories_for_kind(kind: TransactionKind) -> tuple[str, ...]:
    """Get the categories a transaction of this kind may use."""
    if kind == TransactionKind.INCOME:
        return INCOME_CATEGORIES
    return EXPENSE_CATEGORIES


def all_categories() -> tuple[str, ...]:
    return INCOME_CATEGORIES + EXPENSE_CATEGORIES


def category_color(category: str) -> str:
    return CATEGORY_COLORS.get(category, DEFAULT_CATEGORY_COLOR)
