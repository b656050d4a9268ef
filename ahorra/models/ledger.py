"""
Ledger Models

Transactions and budgets as they are persisted. Both are owned by exactly
one user (owner_id) and are never shared.

DESIGN DECISION: Amounts are Decimal end to end. Floats only appear at the
storage edge where a backend cannot hold a Decimal natively.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from ahorra.models.user import utcnow


class TransactionKind(str, Enum):
    """Whether money came in or went out."""
    INCOME = "income"
    EXPENSE = "expense"


class Transaction(BaseModel):
    """A single income or expense entry."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int
    kind: TransactionKind
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Positive amount"
    )
    category: str = Field(
        ...,
        min_length=1,
        max_length=50
    )
    description: str = Field(
        default="",
        max_length=200
    )
    date: dt.date = Field(
        ...,
        description="Calendar date of the transaction"
    )
    owner_id: int

    @property
    def is_income(self) -> bool:
        return self.kind == TransactionKind.INCOME

    @property
    def is_expense(self) -> bool:
        return self.kind == TransactionKind.EXPENSE


class Budget(BaseModel):
    """
    A monthly spending cap for one category.

    At most one budget exists per (owner_id, category, month).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int
    category: str = Field(
        ...,
        min_length=1,
        max_length=50
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Monthly cap"
    )
    month: str = Field(
        ...,
        pattern=r"^\d{4}-\d{2}$",
        description="Target month, YYYY-MM"
    )
    owner_id: int
    created_at: dt.datetime = Field(
        default_factory=utcnow
    )
