"""
Derived Models

Monthly summaries and budget progress are computed on demand from stored
transactions and budgets. They are never persisted.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ahorra.models.ledger import Budget


class CategoryTotal(BaseModel):
    """Total for one category and its share of the same-kind total."""

    category: str
    amount: Decimal
    percentage: int = Field(
        ...,
        ge=0,
        le=100,
        description="Rounded share of the income or expense total"
    )


class MonthlySummary(BaseModel):
    """Income, expense and per-category totals for one month."""

    month: str = Field(
        ...,
        pattern=r"^\d{4}-\d{2}$"
    )
    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    income_by_category: list[CategoryTotal] = Field(default_factory=list)
    expense_by_category: list[CategoryTotal] = Field(default_factory=list)
    transaction_count: int = Field(default=0, ge=0)

    def expense_for(self, category: str) -> Decimal:
        """Amount spent in a category this month (0 if none)."""
        for item in self.expense_by_category:
            if item.category == category:
                return item.amount
        return Decimal("0")

    @property
    def expense_totals(self) -> dict[str, Decimal]:
        return {item.category: item.amount for item in self.expense_by_category}

    @property
    def income_totals(self) -> dict[str, Decimal]:
        return {item.category: item.amount for item in self.income_by_category}


class BudgetStatus(str, Enum):
    """Where a budget stands against its cap."""
    OK = "ok"
    NEAR_LIMIT = "near_limit"
    EXCEEDED = "exceeded"


class BudgetProgress(BaseModel):
    """How much of a budget has been consumed."""

    budget: Budget
    spent: Decimal
    percentage: Decimal = Field(
        ...,
        description="Exact spent / cap * 100, 0 when the cap is 0"
    )
    remaining: Decimal = Field(
        ...,
        description="cap - spent, negative once exceeded"
    )
    status: BudgetStatus = BudgetStatus.OK


class BudgetAlert(BaseModel):
    """A user-facing alert for a budget near or over its cap."""

    budget_id: int
    category: str
    level: BudgetStatus
    percentage: Decimal
    message: str
    currency: Optional[str] = None
