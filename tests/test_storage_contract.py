"""
Storage contract tests.

The `storage` fixture is parametrised, so every test here runs against
both the SQL store and the document store.
"""

import json
from datetime import date
from decimal import Decimal

import pytest

from ahorra.models import TransactionKind
from ahorra.services.storage import (
    DocumentStorageBackend,
    DuplicateError,
    NotFoundError,
    SQLStorageBackend,
    StorageError,
)
from ahorra.validation import ValidationError

from tests.conftest import run


def add_expense(storage, owner_id, amount="100", category="Food", day=date(2024, 6, 10)):
    return run(storage.add_transaction(
        TransactionKind.EXPENSE, Decimal(amount), category, "", day, owner_id
    ))


class TestUsers:
    """User records, uniqueness and settings."""

    def test_create_and_fetch(self, storage):
        created = run(storage.create_user("Ana", "ana@x.com", "hash"))
        assert created.id > 0
        assert created.settings == {}

        by_id = run(storage.get_user_by_id(created.id))
        by_email = run(storage.get_user_by_email("  ANA@x.com "))
        assert by_id == created
        assert by_email == created

    def test_missing_user_lookups_return_none(self, storage):
        assert run(storage.get_user_by_id(999)) is None
        assert run(storage.get_user_by_email("nobody@x.com")) is None

    def test_duplicate_email_is_case_insensitive(self, storage):
        run(storage.create_user("Ana", "ana@x.com", "hash"))
        with pytest.raises(DuplicateError):
            run(storage.create_user("Other", " ANA@X.com", "hash"))

    def test_list_users_newest_first(self, storage):
        first = run(storage.create_user("Ana", "ana@x.com", "h"))
        second = run(storage.create_user("Bo", "bo@x.com", "h"))
        assert [u.id for u in run(storage.list_users())] == [second.id, first.id]

    def test_update_user(self, storage):
        user = run(storage.create_user("Ana", "ana@x.com", "h"))
        updated = run(storage.update_user(user.id, "Ana María", "Ana.M@x.com"))
        assert updated.name == "Ana María"
        assert updated.email == "ana.m@x.com"
        assert run(storage.get_user_by_email("ana.m@x.com")).id == user.id

    def test_update_user_keeps_own_email(self, storage):
        user = run(storage.create_user("Ana", "ana@x.com", "h"))
        assert run(storage.update_user(user.id, "Ana B", "ana@x.com")).name == "Ana B"

    def test_update_user_email_collision(self, storage):
        run(storage.create_user("Ana", "ana@x.com", "h"))
        bo = run(storage.create_user("Bo", "bo@x.com", "h"))
        with pytest.raises(DuplicateError):
            run(storage.update_user(bo.id, "Bo", "ana@x.com"))

    def test_update_missing_user(self, storage):
        with pytest.raises(NotFoundError):
            run(storage.update_user(42, "X", "x@x.com"))
        with pytest.raises(NotFoundError):
            run(storage.update_user_password(42, "h"))

    def test_update_password(self, storage):
        user = run(storage.create_user("Ana", "ana@x.com", "old"))
        assert run(storage.update_user_password(user.id, "new")).password == "new"
        assert run(storage.get_user_by_id(user.id)).password == "new"

    def test_settings_shallow_merge(self, storage):
        user = run(storage.create_user("Ana", "ana@x.com", "h"))
        run(storage.update_user_settings(user.id, {"currency": "MXN", "notifications": {"budget": True}}))
        merged = run(storage.update_user_settings(user.id, {"notifications": {"daily": False}}))

        assert merged == {"currency": "MXN", "notifications": {"daily": False}}
        assert run(storage.get_user_settings(user.id)) == merged
        assert run(storage.get_user_by_id(user.id)).settings == merged

    def test_settings_of_missing_user(self, storage):
        with pytest.raises(NotFoundError):
            run(storage.get_user_settings(42))
        with pytest.raises(NotFoundError):
            run(storage.update_user_settings(42, {"currency": "USD"}))

    def test_delete_user_cascades(self, storage):
        ana = run(storage.create_user("Ana", "ana@x.com", "h"))
        bo = run(storage.create_user("Bo", "bo@x.com", "h"))
        add_expense(storage, ana.id)
        add_expense(storage, bo.id)
        run(storage.add_budget("Food", Decimal("10"), "2024-06", ana.id))

        run(storage.delete_user(ana.id))

        assert run(storage.get_user_by_id(ana.id)) is None
        assert run(storage.list_transactions(ana.id)) == []
        assert run(storage.list_budgets(ana.id)) == []
        assert len(run(storage.list_transactions(bo.id))) == 1
        with pytest.raises(NotFoundError):
            run(storage.delete_user(ana.id))

    def test_email_free_after_delete(self, storage):
        ana = run(storage.create_user("Ana", "ana@x.com", "h"))
        run(storage.delete_user(ana.id))
        again = run(storage.create_user("Ana", "ana@x.com", "h"))
        assert again.id != ana.id


class TestTransactions:
    """Transaction round-trips, ordering and ownership."""

    def test_round_trip_preserves_fields(self, storage):
        created = run(storage.add_transaction(
            TransactionKind.INCOME,
            Decimal("1234.56"),
            "Salary",
            "June payroll",
            date(2024, 6, 1),
            1,
        ))
        listed = run(storage.list_transactions(1))
        assert listed == [created]
        assert listed[0].amount == Decimal("1234.56")
        assert listed[0].date == date(2024, 6, 1)
        assert listed[0].kind == TransactionKind.INCOME
        assert listed[0].description == "June payroll"

    def test_newest_first_then_by_id(self, storage):
        old = add_expense(storage, 1, day=date(2024, 5, 1))
        same_day_a = add_expense(storage, 1, day=date(2024, 6, 1))
        same_day_b = add_expense(storage, 1, day=date(2024, 6, 1))
        newest = add_expense(storage, 1, day=date(2024, 6, 20))

        ids = [t.id for t in run(storage.list_transactions(1))]
        assert ids == [newest.id, same_day_b.id, same_day_a.id, old.id]

    def test_limit(self, storage):
        for day in range(1, 6):
            add_expense(storage, 1, day=date(2024, 6, day))
        limited = run(storage.list_transactions(1, limit=2))
        assert [t.date.day for t in limited] == [5, 4]

    @pytest.mark.parametrize("limit", [0, -1])
    def test_non_positive_limit_rejected(self, storage, limit):
        for day in range(1, 4):
            add_expense(storage, 1, day=date(2024, 6, day))
        with pytest.raises(ValidationError):
            run(storage.list_transactions(1, limit=limit))

    def test_only_owner_sees_transactions(self, storage):
        add_expense(storage, 1)
        assert run(storage.list_transactions(2)) == []

    def test_month_filter_includes_bounds(self, storage):
        add_expense(storage, 1, day=date(2024, 5, 31))
        first = add_expense(storage, 1, day=date(2024, 6, 1))
        last = add_expense(storage, 1, day=date(2024, 6, 30))
        add_expense(storage, 1, day=date(2024, 7, 1))

        in_june = run(storage.list_transactions_for_month(1, "2024-06"))
        assert {t.id for t in in_june} == {first.id, last.id}

    def test_delete_requires_owner(self, storage):
        tx = add_expense(storage, 1)
        with pytest.raises(NotFoundError):
            run(storage.delete_transaction(tx.id, 2))
        assert len(run(storage.list_transactions(1))) == 1

        run(storage.delete_transaction(tx.id, 1))
        assert run(storage.list_transactions(1)) == []
        with pytest.raises(NotFoundError):
            run(storage.delete_transaction(tx.id, 1))


class TestBudgets:
    """Budget CRUD and ownership."""

    def test_add_and_list(self, storage):
        budget = run(storage.add_budget("Food", Decimal("100000"), "2024-06", 1))
        assert budget.amount == Decimal("100000")
        assert run(storage.list_budgets(1)) == [budget]
        assert run(storage.list_budgets(1, month="2024-06")) == [budget]
        assert run(storage.list_budgets(1, month="2024-05")) == []
        assert run(storage.list_budgets(2)) == []

    def test_list_orders_by_month_desc(self, storage):
        may = run(storage.add_budget("Food", Decimal("1"), "2024-05", 1))
        june = run(storage.add_budget("Food", Decimal("1"), "2024-06", 1))
        june_b = run(storage.add_budget("Health", Decimal("1"), "2024-06", 1))
        assert [b.id for b in run(storage.list_budgets(1))] == [june.id, june_b.id, may.id]

    def test_update(self, storage):
        budget = run(storage.add_budget("Food", Decimal("100"), "2024-06", 1))
        updated = run(storage.update_budget(budget.id, "Health", Decimal("250.50"), "2024-05", 1))
        assert updated.id == budget.id
        assert (updated.category, updated.amount, updated.month) == ("Health", Decimal("250.50"), "2024-05")
        assert run(storage.list_budgets(1)) == [updated]

    def test_update_and_delete_require_owner(self, storage):
        budget = run(storage.add_budget("Food", Decimal("100"), "2024-06", 1))
        with pytest.raises(NotFoundError):
            run(storage.update_budget(budget.id, "Food", Decimal("1"), "2024-06", 2))
        with pytest.raises(NotFoundError):
            run(storage.delete_budget(budget.id, 2))

        run(storage.delete_budget(budget.id, 1))
        assert run(storage.list_budgets(1)) == []


class TestDurability:
    """Data written by one backend instance is visible to the next."""

    def test_reopen_sees_data(self, storage, tmp_path):
        user = run(storage.create_user("Ana", "ana@x.com", "h"))
        tx = add_expense(storage, user.id, amount="99.99")
        run(storage.close())

        if isinstance(storage, SQLStorageBackend):
            reopened = SQLStorageBackend(url=f"sqlite:///{tmp_path / 'ahorra.db'}")
        else:
            reopened = DocumentStorageBackend(path=tmp_path / "ahorra.json")

        assert run(reopened.get_user_by_email("ana@x.com")) == user
        assert run(reopened.list_transactions(user.id)) == [tx]
        # IDs keep counting after a restart
        assert add_expense(reopened, user.id).id > tx.id
        run(reopened.close())


class TestDocumentStore:
    """Details specific to the keyed-blob store."""

    def test_namespaces_created(self, tmp_path):
        path = tmp_path / "store.json"
        backend = DocumentStorageBackend(path=path)
        run(backend.initialize())

        blobs = json.loads(path.read_text(encoding="utf-8"))
        assert set(blobs) == {"users", "transactions", "budgets", "sequences"}
        assert json.loads(blobs["users"]) == []

    def test_memory_only_without_path(self):
        backend = DocumentStorageBackend()
        user = run(backend.create_user("Ana", "ana@x.com", "h"))
        assert run(backend.get_user_by_id(user.id)) == user

    def test_corrupted_file(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("not json", encoding="utf-8")
        with pytest.raises(StorageError):
            run(DocumentStorageBackend(path=path).initialize())


class TestSQLStore:
    """Details specific to the SQL store."""

    def test_legacy_users_table_is_upgraded(self, tmp_path):
        from sqlalchemy import create_engine, text

        url = f"sqlite:///{tmp_path / 'legacy.db'}"
        engine = create_engine(url)
        with engine.begin() as conn:
            conn.execute(text(
                "CREATE TABLE users (id INTEGER PRIMARY KEY AUTOINCREMENT, "
                "name VARCHAR(50) NOT NULL, email VARCHAR(100) NOT NULL, "
                "password VARCHAR(255) NOT NULL)"
            ))
            conn.execute(text(
                "INSERT INTO users (name, email, password) VALUES ('Ana', 'ana@x.com', 'h')"
            ))
        engine.dispose()

        backend = SQLStorageBackend(url=url)
        user = run(backend.get_user_by_email("ana@x.com"))
        assert user.settings == {}
        assert user.registered_at is not None
        assert run(backend.update_user_settings(user.id, {"currency": "USD"})) == {"currency": "USD"}
        with pytest.raises(DuplicateError):
            run(backend.create_user("Other", "ana@x.com", "h"))
        run(backend.close())

    def test_amounts_are_exact(self, tmp_path):
        backend = SQLStorageBackend(url=f"sqlite:///{tmp_path / 'exact.db'}")
        run(backend.add_transaction(
            TransactionKind.EXPENSE, Decimal("0.10"), "Food", "", date(2024, 6, 1), 1
        ))
        run(backend.add_transaction(
            TransactionKind.EXPENSE, Decimal("0.20"), "Food", "", date(2024, 6, 1), 1
        ))
        total = sum(t.amount for t in run(backend.list_transactions(1)))
        assert total == Decimal("0.30")
        run(backend.close())
