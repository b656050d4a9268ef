"""
Flat Document Storage Implementation

DESIGN DECISION: Where no embedded database is available (the web build)
state lives in a flat keyed-blob store: one JSON blob per collection,
the same shape a browser's localStorage holds.

Keys:
- users, transactions, budgets: JSON arrays of records
- sequences: JSON object with the last ID handed out per collection

TRADEOFFS:
- Every write rewrites the affected blobs (fine for one person's data)
- Uniqueness and ownership are checked in Python before writing
- Filtering and sorting happen in Python

When a path is configured, every commit is written to a temp file and
atomically moved over the previous file before the call returns.
"""

import json
import os
import tempfile
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional, Union

import structlog

from ahorra.models.ledger import Budget, Transaction, TransactionKind
from ahorra.models.periods import month_bounds
from ahorra.models.user import User, utcnow
from ahorra.services.storage.interface import (
    EMAIL_TAKEN_MESSAGE,
    DuplicateError,
    NotFoundError,
    StorageBackend,
    StorageError,
    normalize_email,
)
from ahorra.validation import validate_limit


logger = structlog.get_logger(__name__)

COLLECTION_KEYS = ("users", "transactions", "budgets")
SEQUENCES_KEY = "sequences"


class BlobStore:
    """
    String blobs by key, optionally backed by a JSON file.

    Without a path the store lives in memory only.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self._path = Path(path) if path else None
        self._blobs: dict[str, str] = {}

    def load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read {self._path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Unexpected content in {self._path}")
        self._blobs = {str(key): str(value) for key, value in data.items()}

    def get(self, key: str) -> Optional[str]:
        return self._blobs.get(key)

    def commit(self, updates: dict[str, str]) -> None:
        """Apply several blob updates as one durable write."""
        blobs = {**self._blobs, **updates}
        if self._path is not None:
            self._write(blobs)
        self._blobs = blobs

    def _write(self, blobs: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.",
            dir=str(self._path.parent),
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(blobs, fh)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path)
        except OSError as e:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Failed to write {self._path}: {e}") from e


class DocumentStorageBackend(StorageBackend):
    """
    Keyed-blob implementation of the storage interface.

    Records are the models' JSON dumps; amounts keep their exact decimal text.
    """

    name = "document"

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        init_timeout: float = 10.0,
    ):
        super().__init__(init_timeout=init_timeout)
        self._store = BlobStore(path)

    async def _setup(self) -> None:
        self._store.load()
        missing = {
            key: "[]" for key in COLLECTION_KEYS if self._store.get(key) is None
        }
        if self._store.get(SEQUENCES_KEY) is None:
            missing[SEQUENCES_KEY] = "{}"
        if missing:
            self._store.commit(missing)
            logger.info("storage_namespaces_created", keys=sorted(missing))

    # -------------------------------------------------------------------------
    # Blob helpers
    # -------------------------------------------------------------------------

    def _load(self, key: str) -> list[dict[str, Any]]:
        blob = self._store.get(key)
        if not blob:
            return []
        try:
            return json.loads(blob)
        except ValueError as e:
            raise StorageError(f"Corrupted {key} data: {e}") from e

    def _dump(self, records: list[dict[str, Any]]) -> str:
        return json.dumps(records)

    def _next_id(self, collection: str) -> tuple[int, str]:
        """Reserve the next ID; returns it with the updated sequences blob."""
        sequences = json.loads(self._store.get(SEQUENCES_KEY) or "{}")
        next_id = int(sequences.get(collection, 0)) + 1
        sequences[collection] = next_id
        return next_id, json.dumps(sequences)

    def _find_index(self, records: list[dict[str, Any]], **match: Any) -> int:
        for idx, record in enumerate(records):
            if all(record.get(field) == value for field, value in match.items()):
                return idx
        return -1

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def list_users(self) -> list[User]:
        await self.initialize()
        found = [User.model_validate(record) for record in self._load("users")]
        found.sort(key=lambda u: u.id, reverse=True)
        return found

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        await self.initialize()
        records = self._load("users")
        idx = self._find_index(records, id=user_id)
        return User.model_validate(records[idx]) if idx >= 0 else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        await self.initialize()
        records = self._load("users")
        idx = self._find_index(records, email=normalize_email(email))
        return User.model_validate(records[idx]) if idx >= 0 else None

    async def create_user(self, name: str, email: str, password: str) -> User:
        await self.initialize()
        records = self._load("users")
        email = normalize_email(email)
        if self._find_index(records, email=email) >= 0:
            raise DuplicateError(EMAIL_TAKEN_MESSAGE)

        user_id, sequences = self._next_id("users")
        user = User(
            id=user_id,
            name=name.strip(),
            email=email,
            password=password,
            registered_at=utcnow(),
            settings={},
        )
        records.append(user.model_dump(mode="json"))
        self._store.commit({"users": self._dump(records), SEQUENCES_KEY: sequences})
        return user

    async def update_user(self, user_id: int, name: str, email: str) -> User:
        await self.initialize()
        records = self._load("users")
        idx = self._find_index(records, id=user_id)
        if idx < 0:
            raise NotFoundError(f"User not found: {user_id}")

        email = normalize_email(email)
        owner = self._find_index(records, email=email)
        if owner >= 0 and owner != idx:
            raise DuplicateError(EMAIL_TAKEN_MESSAGE)

        records[idx]["name"] = name.strip()
        records[idx]["email"] = email
        self._store.commit({"users": self._dump(records)})
        return User.model_validate(records[idx])

    async def update_user_password(self, user_id: int, password: str) -> User:
        await self.initialize()
        records = self._load("users")
        idx = self._find_index(records, id=user_id)
        if idx < 0:
            raise NotFoundError(f"User not found: {user_id}")

        records[idx]["password"] = password
        self._store.commit({"users": self._dump(records)})
        return User.model_validate(records[idx])

    async def get_user_settings(self, user_id: int) -> dict[str, Any]:
        await self.initialize()
        records = self._load("users")
        idx = self._find_index(records, id=user_id)
        if idx < 0:
            raise NotFoundError(f"User not found: {user_id}")
        return dict(records[idx].get("settings") or {})

    async def update_user_settings(
        self,
        user_id: int,
        partial: dict[str, Any],
    ) -> dict[str, Any]:
        await self.initialize()
        records = self._load("users")
        idx = self._find_index(records, id=user_id)
        if idx < 0:
            raise NotFoundError(f"User not found: {user_id}")

        merged = {**(records[idx].get("settings") or {}), **partial}
        records[idx]["settings"] = merged
        self._store.commit({"users": self._dump(records)})
        return dict(merged)

    async def delete_user(self, user_id: int) -> None:
        await self.initialize()
        records = self._load("users")
        idx = self._find_index(records, id=user_id)
        if idx < 0:
            raise NotFoundError(f"User not found: {user_id}")

        del records[idx]
        remaining_transactions = [
            t for t in self._load("transactions") if t.get("owner_id") != user_id
        ]
        remaining_budgets = [
            b for b in self._load("budgets") if b.get("owner_id") != user_id
        ]
        self._store.commit({
            "users": self._dump(records),
            "transactions": self._dump(remaining_transactions),
            "budgets": self._dump(remaining_budgets),
        })

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def _owned_transactions(self, owner_id: int) -> list[Transaction]:
        found = [
            Transaction.model_validate(record)
            for record in self._load("transactions")
            if record.get("owner_id") == owner_id
        ]
        # Sort by date descending (newest first), then newest ID
        found.sort(key=lambda t: (t.date, t.id), reverse=True)
        return found

    async def add_transaction(
        self,
        kind: TransactionKind,
        amount: Decimal,
        category: str,
        description: str,
        date: date,
        owner_id: int,
    ) -> Transaction:
        await self.initialize()
        records = self._load("transactions")
        transaction_id, sequences = self._next_id("transactions")
        transaction = Transaction(
            id=transaction_id,
            kind=TransactionKind(kind),
            amount=amount,
            category=category,
            description=description or "",
            date=date,
            owner_id=owner_id,
        )
        records.append(transaction.model_dump(mode="json"))
        self._store.commit({
            "transactions": self._dump(records),
            SEQUENCES_KEY: sequences,
        })
        return transaction

    async def list_transactions(
        self,
        owner_id: int,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        await self.initialize()
        limit = validate_limit(limit)
        found = self._owned_transactions(owner_id)
        return found if limit is None else found[:limit]

    async def list_transactions_for_month(
        self,
        owner_id: int,
        month: str,
    ) -> list[Transaction]:
        await self.initialize()
        first_day, last_day = month_bounds(month)
        return [
            t for t in self._owned_transactions(owner_id)
            if first_day <= t.date <= last_day
        ]

    async def delete_transaction(self, transaction_id: int, owner_id: int) -> None:
        await self.initialize()
        records = self._load("transactions")
        idx = self._find_index(records, id=transaction_id, owner_id=owner_id)
        if idx < 0:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

        del records[idx]
        self._store.commit({"transactions": self._dump(records)})

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    async def add_budget(
        self,
        category: str,
        amount: Decimal,
        month: str,
        owner_id: int,
    ) -> Budget:
        await self.initialize()
        records = self._load("budgets")
        budget_id, sequences = self._next_id("budgets")
        budget = Budget(
            id=budget_id,
            category=category,
            amount=amount,
            month=month,
            owner_id=owner_id,
            created_at=utcnow(),
        )
        records.append(budget.model_dump(mode="json"))
        self._store.commit({"budgets": self._dump(records), SEQUENCES_KEY: sequences})
        return budget

    async def update_budget(
        self,
        budget_id: int,
        category: str,
        amount: Decimal,
        month: str,
        owner_id: int,
    ) -> Budget:
        await self.initialize()
        records = self._load("budgets")
        idx = self._find_index(records, id=budget_id, owner_id=owner_id)
        if idx < 0:
            raise NotFoundError(f"Budget not found: {budget_id}")

        updated = Budget.model_validate(records[idx]).model_copy(
            update={"category": category, "amount": amount, "month": month}
        )
        records[idx] = updated.model_dump(mode="json")
        self._store.commit({"budgets": self._dump(records)})
        return updated

    async def delete_budget(self, budget_id: int, owner_id: int) -> None:
        await self.initialize()
        records = self._load("budgets")
        idx = self._find_index(records, id=budget_id, owner_id=owner_id)
        if idx < 0:
            raise NotFoundError(f"Budget not found: {budget_id}")

        del records[idx]
        self._store.commit({"budgets": self._dump(records)})

    async def list_budgets(
        self,
        owner_id: int,
        month: Optional[str] = None,
    ) -> list[Budget]:
        await self.initialize()
        found = [
            Budget.model_validate(record)
            for record in self._load("budgets")
            if record.get("owner_id") == owner_id
            and (month is None or record.get("month") == month)
        ]
        found.sort(key=lambda b: b.id)
        found.sort(key=lambda b: b.month, reverse=True)
        return found
