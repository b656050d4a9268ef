"""
Tests for the ledger service: transactions, summaries, budgets and
budget progress. Runs on both storage backends.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from ahorra.models import BudgetStatus, TransactionKind, current_month
from ahorra.reports import BudgetAlertTracker, classify_budget
from ahorra.services.accounts import AuthError
from ahorra.services.storage import DuplicateError, NotFoundError
from ahorra.validation import ValidationError

from tests.conftest import run


TODAY = date.today()
MONTH = current_month(TODAY)


def previous_month():
    return current_month(TODAY.replace(day=1) - timedelta(days=1))


class TestTransactions:
    """Tests for adding, listing and deleting transactions."""

    def test_add_and_list_round_trip(self, ledger, user):
        tx = run(ledger.add_transaction("expense", 1250.5, "Food", " groceries ", TODAY, user.id))

        listed = run(ledger.list_transactions(user.id))
        assert listed == [tx]
        assert listed[0].amount == Decimal("1250.5")
        assert listed[0].description == "groceries"
        assert listed[0].kind == TransactionKind.EXPENSE

    def test_iso_date_string(self, ledger, user):
        tx = run(ledger.add_transaction("income", 100, "Salary", None, TODAY.isoformat(), user.id))
        assert tx.date == TODAY
        assert tx.description == ""

    def test_category_must_match_kind(self, ledger, user):
        with pytest.raises(ValidationError) as exc:
            run(ledger.add_transaction("income", 100, "Food", "", TODAY, user.id))
        assert "Salary" in exc.value.message
        assert run(ledger.list_transactions(user.id)) == []

    def test_future_date_rejected(self, ledger, user):
        with pytest.raises(ValidationError):
            run(ledger.add_transaction(
                "expense", 100, "Food", "", TODAY + timedelta(days=1), user.id
            ))

    @pytest.mark.parametrize("amount", [0, -5, 1_000_000_001])
    def test_amount_bounds(self, ledger, user, amount):
        with pytest.raises(ValidationError):
            run(ledger.add_transaction("expense", amount, "Food", "", TODAY, user.id))

    def test_limit(self, ledger, user):
        for _ in range(3):
            run(ledger.add_transaction("expense", 1, "Food", "", TODAY, user.id))
        assert len(run(ledger.list_transactions(user.id, limit=2))) == 2

    @pytest.mark.parametrize("limit", [0, -1])
    def test_non_positive_limit_rejected(self, ledger, user, limit):
        for _ in range(3):
            run(ledger.add_transaction("expense", 1, "Food", "", TODAY, user.id))
        with pytest.raises(ValidationError) as exc:
            run(ledger.list_transactions(user.id, limit=limit))
        assert exc.value.field == "limit"

    def test_delete_someone_elses_transaction(self, ledger, accounts, user):
        bo = run(accounts.register("Bo", "bo@x.com", "secret1", "secret1"))
        tx = run(ledger.add_transaction("expense", 10, "Food", "", TODAY, user.id))

        with pytest.raises(NotFoundError):
            run(ledger.delete_transaction(tx.id, bo.id))
        assert run(ledger.list_transactions(user.id)) == [tx]

        run(ledger.delete_transaction(tx.id, user.id))
        assert run(ledger.list_transactions(user.id)) == []

    def test_listeners_fire_after_writes_only(self, ledger, user):
        calls = []
        ledger.add_listener(lambda: calls.append(1))

        tx = run(ledger.add_transaction("expense", 10, "Food", "", TODAY, user.id))
        with pytest.raises(ValidationError):
            run(ledger.add_transaction("expense", 0, "Food", "", TODAY, user.id))
        with pytest.raises(NotFoundError):
            run(ledger.delete_transaction(tx.id + 100, user.id))
        run(ledger.delete_transaction(tx.id, user.id))

        assert calls == [1, 1]


class TestMonthlySummary:
    """Tests for get_monthly_summary()."""

    def test_percentages(self, ledger, user):
        run(ledger.add_transaction("expense", 300, "Food", "", TODAY, user.id))
        run(ledger.add_transaction("expense", 700, "Housing", "", TODAY, user.id))

        summary = run(ledger.get_monthly_summary(user.id, MONTH))

        assert summary.total_expense == Decimal("1000")
        assert [(c.category, c.percentage) for c in summary.expense_by_category] == [
            ("Housing", 70),
            ("Food", 30),
        ]

    def test_defaults_to_current_month(self, ledger, user):
        run(ledger.add_transaction("income", 500, "Salary", "", TODAY, user.id))
        summary = run(ledger.get_monthly_summary(user.id))
        assert summary.month == MONTH
        assert summary.total_income == Decimal("500")

    def test_other_months_and_users_excluded(self, ledger, accounts, user):
        bo = run(accounts.register("Bo", "bo@x.com", "secret1", "secret1"))
        last_month_day = TODAY.replace(day=1) - timedelta(days=1)
        run(ledger.add_transaction("expense", 100, "Food", "", last_month_day, user.id))
        run(ledger.add_transaction("expense", 200, "Food", "", TODAY, bo.id))

        summary = run(ledger.get_monthly_summary(user.id, MONTH))
        assert summary.transaction_count == 0
        assert summary.expense_by_category == []

    def test_idempotent(self, ledger, user):
        run(ledger.add_transaction("expense", 300, "Food", "", TODAY, user.id))
        run(ledger.add_transaction("income", 1000, "Salary", "", TODAY, user.id))

        first = run(ledger.get_monthly_summary(user.id, MONTH))
        second = run(ledger.get_monthly_summary(user.id, MONTH))
        assert first == second

    def test_balance(self, ledger, user):
        run(ledger.add_transaction("income", Decimal("1000.50"), "Salary", "", TODAY, user.id))
        run(ledger.add_transaction("expense", Decimal("250.25"), "Transport", "", TODAY, user.id))

        summary = run(ledger.get_monthly_summary(user.id, MONTH))
        assert summary.balance == Decimal("750.25")
        assert summary.transaction_count == 2

    @pytest.mark.parametrize("month", ["2024-13", "abc", "2024-00"])
    def test_malformed_month_rejected(self, ledger, user, month):
        with pytest.raises(ValidationError) as exc:
            run(ledger.get_monthly_summary(user.id, month))
        assert exc.value.field == "month"

    def test_future_month_is_empty(self, ledger, user):
        run(ledger.add_transaction("expense", 10, "Food", "", TODAY, user.id))
        summary = run(ledger.get_monthly_summary(user.id, f"{TODAY.year + 1}-01"))
        assert summary.transaction_count == 0


class TestBudgets:
    """Tests for budget CRUD and the one-per-month rule."""

    def test_add_and_get(self, ledger, user):
        budget = run(ledger.add_budget(" Food ", 100000, MONTH, user.id))
        assert budget.category == "Food"
        assert run(ledger.get_budgets(user.id)) == [budget]
        assert run(ledger.get_budgets(user.id, MONTH)) == [budget]

    def test_duplicate_category_month(self, ledger, user):
        run(ledger.add_budget("Food", 100, MONTH, user.id))
        with pytest.raises(DuplicateError):
            run(ledger.add_budget("Food", 200, MONTH, user.id))

    def test_same_category_other_month_or_user(self, ledger, accounts, user):
        bo = run(accounts.register("Bo", "bo@x.com", "secret1", "secret1"))
        run(ledger.add_budget("Food", 100, MONTH, user.id))
        run(ledger.add_budget("Food", 100, previous_month(), user.id))
        run(ledger.add_budget("Food", 100, MONTH, bo.id))
        assert len(run(ledger.get_budgets(user.id))) == 2

    def test_update_excludes_itself(self, ledger, user):
        budget = run(ledger.add_budget("Food", 100, MONTH, user.id))
        updated = run(ledger.update_budget(budget.id, "Food", 150, MONTH, user.id))
        assert updated.amount == Decimal("150")

    def test_update_into_existing_category(self, ledger, user):
        run(ledger.add_budget("Food", 100, MONTH, user.id))
        health = run(ledger.add_budget("Health", 100, MONTH, user.id))
        with pytest.raises(DuplicateError):
            run(ledger.update_budget(health.id, "Food", 100, MONTH, user.id))

    def test_invalid_budget(self, ledger, user):
        with pytest.raises(ValidationError):
            run(ledger.add_budget("", 100, MONTH, user.id))
        with pytest.raises(ValidationError):
            run(ledger.add_budget("Food", 0, MONTH, user.id))
        with pytest.raises(ValidationError):
            run(ledger.add_budget("Food", 100, "2999-01", user.id))

    def test_delete_and_ownership(self, ledger, accounts, user):
        bo = run(accounts.register("Bo", "bo@x.com", "secret1", "secret1"))
        budget = run(ledger.add_budget("Food", 100, MONTH, user.id))

        with pytest.raises(NotFoundError):
            run(ledger.update_budget(budget.id, "Food", 1, MONTH, bo.id))
        with pytest.raises(NotFoundError):
            run(ledger.delete_budget(budget.id, bo.id))

        run(ledger.delete_budget(budget.id, user.id))
        assert run(ledger.get_budgets(user.id)) == []


class TestBudgetProgress:
    """Tests for progress and alert classification."""

    def test_near_limit(self, ledger, user):
        budget = run(ledger.add_budget("Food", 100000, MONTH, user.id))
        run(ledger.add_transaction("expense", 95000, "Food", "", TODAY, user.id))

        summary = run(ledger.get_monthly_summary(user.id, MONTH))
        progress = ledger.get_budget_progress(budget, summary)

        assert progress.percentage == 95
        assert progress.remaining == Decimal("5000")
        assert classify_budget(progress) == BudgetStatus.NEAR_LIMIT

    def test_exceeded(self, ledger, user):
        budget = run(ledger.add_budget("Food", 100000, MONTH, user.id))
        run(ledger.add_transaction("expense", 150000, "Food", "", TODAY, user.id))

        summary = run(ledger.get_monthly_summary(user.id, MONTH))
        progress = ledger.get_budget_progress(budget, summary)

        assert progress.percentage == 150
        assert progress.remaining == Decimal("-50000")
        assert classify_budget(progress) == BudgetStatus.EXCEEDED

    def test_all_budgets_of_month(self, ledger, user):
        run(ledger.add_budget("Food", 1000, MONTH, user.id))
        run(ledger.add_budget("Health", 1000, MONTH, user.id))
        run(ledger.add_budget("Food", 1000, previous_month(), user.id))
        run(ledger.add_transaction("expense", 500, "Food", "", TODAY, user.id))

        progress = run(ledger.get_budgets_progress(user.id))
        by_category = {p.budget.category: p for p in progress}

        assert len(progress) == 2
        assert by_category["Food"].spent == Decimal("500")
        assert by_category["Food"].status == BudgetStatus.OK
        assert by_category["Health"].spent == Decimal("0")

    def test_no_budgets(self, ledger, user):
        assert run(ledger.get_budgets_progress(user.id, MONTH)) == []

    @pytest.mark.parametrize("month", ["2024-13", "abc"])
    def test_malformed_month_rejected(self, ledger, user, month):
        with pytest.raises(ValidationError) as exc:
            run(ledger.get_budgets(user.id, month))
        assert exc.value.field == "month"
        with pytest.raises(ValidationError) as exc:
            run(ledger.get_budgets_progress(user.id, month))
        assert exc.value.field == "month"

    def test_just_over_cap(self, ledger, user):
        run(ledger.add_budget("Food", 100000, MONTH, user.id))
        run(ledger.add_transaction("expense", 100004, "Food", "", TODAY, user.id))

        [progress] = run(ledger.get_budgets_progress(user.id, MONTH))
        assert progress.status == BudgetStatus.EXCEEDED
        assert classify_budget(progress) == progress.status

        alerts = BudgetAlertTracker().collect([progress])
        assert [a.level for a in alerts] == [BudgetStatus.EXCEEDED]


class TestAnaScenario:
    """End to end: register, log in, spend, summarise, get alerted."""

    def test_scenario(self, accounts, ledger):
        ana = run(accounts.register("Ana", "ana@x.com", "secret1", "secret1"))

        with pytest.raises(AuthError):
            run(accounts.login("ana@x.com", "secret2"))
        logged_in = run(accounts.login("ana@x.com", "secret1"))
        assert logged_in.id == ana.id
        accounts.set_current_user(logged_in)

        run(ledger.add_transaction("expense", 50000, "Food", "", TODAY, ana.id))
        summary = run(ledger.get_monthly_summary(ana.id))

        assert summary.total_expense == Decimal("50000")
        assert summary.total_income == Decimal("0")
        assert summary.balance == Decimal("-50000")
        assert [(c.category, c.amount, c.percentage) for c in summary.expense_by_category] == [
            ("Food", Decimal("50000"), 100),
        ]

        run(ledger.add_budget("Food", 52000, MONTH, ana.id))
        tracker = BudgetAlertTracker()
        alerts = tracker.collect(run(ledger.get_budgets_progress(ana.id)), currency="MXN")
        assert [a.level for a in alerts] == [BudgetStatus.NEAR_LIMIT]
        assert tracker.collect(run(ledger.get_budgets_progress(ana.id))) == []
