"""
Monthly Aggregation

DESIGN DECISION: Aggregation is DETERMINISTIC and PURE.
Every number a screen shows (totals, category shares, budget progress,
alerts) is computed here from stored transactions and budgets. Nothing is
cached or persisted, so the same inputs always give the same summary.

All arithmetic is Decimal. Percentages of a category share are rounded
half-up to whole numbers. Budget percentages stay exact so status and
classification always agree; only alert messages round them.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from ahorra.config import get_settings
from ahorra.models.ledger import Budget, Transaction, TransactionKind
from ahorra.models.periods import month_of
from ahorra.models.summary import (
    BudgetAlert,
    BudgetProgress,
    BudgetStatus,
    CategoryTotal,
    MonthlySummary,
)


ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _share(amount: Decimal, total: Decimal) -> int:
    """Whole-number percentage of total, 0 when total is 0."""
    if total <= 0:
        return 0
    return int((amount / total * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _category_totals(
    transactions: list[Transaction],
    kind: TransactionKind,
) -> tuple[Decimal, list[CategoryTotal]]:
    # dict keeps first-seen order; sorted() is stable, so ties keep it too
    totals: dict[str, Decimal] = {}
    for tx in transactions:
        if tx.kind == kind:
            totals[tx.category] = totals.get(tx.category, ZERO) + tx.amount

    grand_total = sum(totals.values(), ZERO)
    ordered = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return grand_total, [
        CategoryTotal(
            category=category,
            amount=amount,
            percentage=_share(amount, grand_total),
        )
        for category, amount in ordered
    ]


def build_monthly_summary(
    transactions: Iterable[Transaction],
    month: str,
) -> MonthlySummary:
    """
    Summarise one month of transactions.

    Transactions dated outside the month are ignored.
    """
    in_month = [tx for tx in transactions if month_of(tx.date) == month]

    total_income, income_by_category = _category_totals(in_month, TransactionKind.INCOME)
    total_expense, expense_by_category = _category_totals(in_month, TransactionKind.EXPENSE)

    return MonthlySummary(
        month=month,
        total_income=total_income,
        total_expense=total_expense,
        balance=total_income - total_expense,
        income_by_category=income_by_category,
        expense_by_category=expense_by_category,
        transaction_count=len(in_month),
    )


def _status_for(
    percentage: Decimal,
    near_limit: Optional[float] = None,
    exceeded: Optional[float] = None,
) -> BudgetStatus:
    app = get_settings().app
    near_limit = app.near_limit_percentage if near_limit is None else near_limit
    exceeded = app.exceeded_percentage if exceeded is None else exceeded

    if percentage > exceeded:
        return BudgetStatus.EXCEEDED
    if percentage >= near_limit:
        return BudgetStatus.NEAR_LIMIT
    return BudgetStatus.OK


def budget_progress(
    budget: Budget,
    summary: MonthlySummary,
    near_limit: Optional[float] = None,
    exceeded: Optional[float] = None,
) -> BudgetProgress:
    """
    Compare a budget's cap with what the summary says was spent.

    A cap of 0 (or less) gives percentage 0 instead of dividing by zero;
    remaining is then simply -spent.
    """
    spent = summary.expense_for(budget.category)
    cap = budget.amount

    percentage = spent / cap * HUNDRED if cap > 0 else ZERO
    status = _status_for(percentage, near_limit, exceeded)

    return BudgetProgress(
        budget=budget,
        spent=spent,
        percentage=percentage,
        remaining=cap - spent,
        status=status,
    )


def classify_budget(
    progress: BudgetProgress,
    near_limit: Optional[float] = None,
    exceeded: Optional[float] = None,
) -> BudgetStatus:
    """
    Classify progress as ok, near_limit (near <= p <= exceeded) or
    exceeded (p > exceeded). Thresholds default to the app settings.
    """
    return _status_for(progress.percentage, near_limit, exceeded)


def format_currency(amount: Decimal, currency: Optional[str] = None) -> str:
    """Format an amount as '1,234.50 MXN'."""
    currency = currency or get_settings().app.default_currency
    return f"{Decimal(amount):,.2f} {currency}"


class BudgetAlertTracker:
    """
    Raise each (budget, level) alert once per view or session.

    Create one tracker per screen load; call reset() when the data is
    reloaded from scratch.
    """

    def __init__(
        self,
        near_limit: Optional[float] = None,
        exceeded: Optional[float] = None,
    ):
        self._near_limit = near_limit
        self._exceeded = exceeded
        self._raised: set[tuple[int, BudgetStatus]] = set()

    def reset(self) -> None:
        self._raised.clear()

    def already_raised(self, budget_id: int, level: BudgetStatus) -> bool:
        return (budget_id, level) in self._raised

    def collect(
        self,
        progress: Iterable[BudgetProgress],
        currency: Optional[str] = None,
    ) -> list[BudgetAlert]:
        """
        Return alerts not raised before, in input order.

        Budgets that are ok produce nothing.
        """
        alerts = []
        for item in progress:
            level = classify_budget(item, self._near_limit, self._exceeded)
            if level == BudgetStatus.OK:
                continue
            key = (item.budget.id, level)
            if key in self._raised:
                continue
            self._raised.add(key)
            alerts.append(
                BudgetAlert(
                    budget_id=item.budget.id,
                    category=item.budget.category,
                    level=level,
                    percentage=item.percentage,
                    message=_alert_message(item, level, currency),
                    currency=currency,
                )
            )
        return alerts


def _alert_message(
    progress: BudgetProgress,
    level: BudgetStatus,
    currency: Optional[str],
) -> str:
    category = progress.budget.category
    cap = format_currency(progress.budget.amount, currency)

    if level == BudgetStatus.EXCEEDED:
        over = format_currency(-progress.remaining, currency)
        return f'You have exceeded your "{category}" budget of {cap} by {over}'

    percent = progress.percentage.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    spent = format_currency(progress.spent, currency)
    return f'You have used {percent}% of your "{category}" budget ({spent} of {cap})'
