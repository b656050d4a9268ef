"""
Ledger Service

Transactions, budgets and the monthly numbers derived from them.

Writes validate first, then go through storage, then notify listeners.
Reads go straight to storage; summaries and progress are computed by the
pure functions in ahorra.reports.

DESIGN DECISION: The one-budget-per-(owner, category, month) rule is
checked here against budgets freshly read from storage, never against a
list a screen loaded earlier.
"""

import datetime as dt
from typing import Any, Callable, Optional, Union

import structlog

from ahorra.models.ledger import Budget, Transaction, TransactionKind
from ahorra.models.periods import current_month
from ahorra.models.summary import BudgetProgress, MonthlySummary
from ahorra.reports import budget_progress, build_monthly_summary
from ahorra.services.notifications import ChangeNotifier, Listener
from ahorra.services.storage import DuplicateError, StorageBackend, StorageError
from ahorra.validation import (
    validate_amount,
    validate_category,
    validate_category_for_kind,
    validate_description,
    validate_kind,
    validate_limit,
    validate_month,
    validate_month_format,
    validate_transaction_date,
)


logger = structlog.get_logger(__name__)


class LedgerService:
    """Transactions, budgets, summaries and budget progress for users."""

    def __init__(self, storage: StorageBackend):
        self._storage = storage
        self._notifier = ChangeNotifier("ledger")

    async def initialize(self) -> None:
        await self._storage.initialize()

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        return self._notifier.add_listener(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._notifier.remove_listener(listener)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def add_transaction(
        self,
        kind: Union[str, TransactionKind],
        amount: Any,
        category: str,
        description: Optional[str],
        date: Union[str, dt.date, dt.datetime],
        owner_id: int,
    ) -> Transaction:
        """
        Record an income or expense.

        Raises:
            ValidationError: Invalid kind, amount, category, description or date
        """
        kind = validate_kind(kind)
        amount = validate_amount(amount)
        category = validate_category_for_kind(category, kind)
        description = validate_description(description)
        date = validate_transaction_date(date)

        try:
            transaction = await self._storage.add_transaction(
                kind, amount, category, description, date, owner_id
            )
        except StorageError as e:
            logger.error("add_transaction_failed", owner_id=owner_id, error=str(e))
            raise

        logger.info(
            "transaction_added",
            owner_id=owner_id,
            transaction_id=transaction.id,
            kind=kind.value,
            category=category,
        )
        self._notifier.notify()
        return transaction

    async def list_transactions(
        self,
        owner_id: int,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        """
        Newest first, at most `limit` rows when a limit is given.

        Raises:
            ValidationError: limit is not a positive integer
        """
        limit = validate_limit(limit)
        return await self._storage.list_transactions(owner_id, limit=limit)

    async def delete_transaction(self, transaction_id: int, owner_id: int) -> None:
        """
        Raises:
            NotFoundError: No transaction with this ID belongs to owner_id
        """
        try:
            await self._storage.delete_transaction(transaction_id, owner_id)
        except StorageError as e:
            logger.warning(
                "delete_transaction_failed",
                owner_id=owner_id,
                transaction_id=transaction_id,
                error=str(e),
            )
            raise

        self._notifier.notify()

    async def get_monthly_summary(
        self,
        owner_id: int,
        month: Optional[str] = None,
    ) -> MonthlySummary:
        """Summary for a YYYY-MM month (the current month when omitted)."""
        month = validate_month_format(month or current_month())
        transactions = await self._storage.list_transactions_for_month(owner_id, month)
        return build_monthly_summary(transactions, month)

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    async def get_budgets(
        self,
        owner_id: int,
        month: Optional[str] = None,
    ) -> list[Budget]:
        if month is not None:
            month = validate_month_format(month)
        return await self._storage.list_budgets(owner_id, month=month)

    async def _ensure_unique_budget(
        self,
        owner_id: int,
        category: str,
        month: str,
        exclude_id: Optional[int] = None,
    ) -> None:
        existing = await self._storage.list_budgets(owner_id, month=month)
        for budget in existing:
            if budget.category == category and budget.id != exclude_id:
                raise DuplicateError(
                    f'A budget for "{category}" already exists in {month}'
                )

    async def add_budget(
        self,
        category: str,
        amount: Any,
        month: str,
        owner_id: int,
    ) -> Budget:
        """
        Create a monthly budget.

        Raises:
            ValidationError: Invalid category, amount or month
            DuplicateError: The owner already has a budget for this category and month
        """
        category = validate_category(category)
        amount = validate_amount(amount)
        month = validate_month(month)

        await self._ensure_unique_budget(owner_id, category, month)

        try:
            budget = await self._storage.add_budget(category, amount, month, owner_id)
        except StorageError as e:
            logger.error("add_budget_failed", owner_id=owner_id, error=str(e))
            raise

        logger.info("budget_added", owner_id=owner_id, budget_id=budget.id, month=month)
        self._notifier.notify()
        return budget

    async def update_budget(
        self,
        budget_id: int,
        category: str,
        amount: Any,
        month: str,
        owner_id: int,
    ) -> Budget:
        """
        Raises:
            ValidationError: Invalid category, amount or month
            DuplicateError: Another budget already covers this category and month
            NotFoundError: No budget with this ID belongs to owner_id
        """
        category = validate_category(category)
        amount = validate_amount(amount)
        month = validate_month(month)

        await self._ensure_unique_budget(owner_id, category, month, exclude_id=budget_id)

        try:
            budget = await self._storage.update_budget(
                budget_id, category, amount, month, owner_id
            )
        except StorageError as e:
            logger.warning(
                "update_budget_failed",
                owner_id=owner_id,
                budget_id=budget_id,
                error=str(e),
            )
            raise

        self._notifier.notify()
        return budget

    async def delete_budget(self, budget_id: int, owner_id: int) -> None:
        """
        Raises:
            NotFoundError: No budget with this ID belongs to owner_id
        """
        try:
            await self._storage.delete_budget(budget_id, owner_id)
        except StorageError as e:
            logger.warning(
                "delete_budget_failed",
                owner_id=owner_id,
                budget_id=budget_id,
                error=str(e),
            )
            raise

        self._notifier.notify()

    # -------------------------------------------------------------------------
    # Progress
    # -------------------------------------------------------------------------

    def get_budget_progress(
        self,
        budget: Budget,
        summary: MonthlySummary,
    ) -> BudgetProgress:
        return budget_progress(budget, summary)

    async def get_budgets_progress(
        self,
        owner_id: int,
        month: Optional[str] = None,
    ) -> list[BudgetProgress]:
        """Progress of every budget in a month against that month's spending."""
        month = validate_month_format(month or current_month())
        budgets = await self._storage.list_budgets(owner_id, month=month)
        if not budgets:
            return []

        summary = await self.get_monthly_summary(owner_id, month)
        return [budget_progress(budget, summary) for budget in budgets]
