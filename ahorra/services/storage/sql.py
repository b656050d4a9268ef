"""
Embedded SQL Storage Implementation

DESIGN DECISION: On devices the ledger lives in an embedded SQLite file,
accessed through SQLAlchemy Core because:
1. One schema definition drives creation, indices and queries
2. Unique e-mail is enforced by the database, not by a read-then-write
3. The same code runs against any SQLAlchemy URL if the store ever moves

TRADEOFFS:
- Calls are synchronous inside async methods (local file, no network)
- Amounts are stored as exact decimal text; SQLite has no decimal type
- Aggregation happens in Python (see ahorra.reports), not in SQL
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

import structlog
from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    insert,
    inspect,
    select,
    text,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.types import TypeDecorator

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


class ExactDecimal(TypeDecorator):
    """Decimal stored as its exact text form."""

    impl = String(40)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(Decimal(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(50), nullable=False),
    Column("email", String(100), nullable=False),
    Column("password", String(255), nullable=False),
    Column("settings", JSON(none_as_null=True)),
    Column("registered_at", DateTime),
    Index("idx_users_email", "email", unique=True),
)

transactions = Table(
    "transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("kind", String(10), nullable=False),
    Column("amount", ExactDecimal, nullable=False),
    Column("category", String(50), nullable=False),
    Column("description", String(200), nullable=False, default=""),
    Column("date", Date, nullable=False),
    Column("owner_id", Integer, ForeignKey("users.id"), nullable=False),
    Index("idx_transactions_owner_date", "owner_id", "date"),
    Index("idx_transactions_category", "category"),
)

budgets = Table(
    "budgets",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("category", String(50), nullable=False),
    Column("amount", ExactDecimal, nullable=False),
    Column("month", String(7), nullable=False),
    Column("owner_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("created_at", DateTime),
    Index("idx_budgets_owner_month", "owner_id", "month"),
)

# Columns added after the first release; older databases get them on setup
LEGACY_USER_COLUMNS = ("email", "password", "settings", "registered_at")


class SQLStorageBackend(StorageBackend):
    """
    SQLAlchemy Core implementation of the storage interface.

    One row per user, transaction and budget. User settings are a JSON column.
    """

    name = "sql"

    def __init__(
        self,
        url: str = "sqlite:///ahorra.db",
        init_timeout: float = 10.0,
        engine: Optional[Engine] = None,
    ):
        super().__init__(init_timeout=init_timeout)
        if engine is None:
            connect_args = {}
            if url.startswith("sqlite"):
                connect_args = {"check_same_thread": False}
            engine = create_engine(url, connect_args=connect_args)
        self._engine = engine

    async def _setup(self) -> None:
        """Create tables and indices, then add any missing user columns."""
        try:
            metadata.create_all(self._engine)
            with self._engine.begin() as conn:
                self._migrate_users(conn)
            self._create_user_indexes()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create schema: {e}") from e

    def _migrate_users(self, conn: Connection) -> None:
        existing = {col["name"] for col in inspect(conn).get_columns("users")}

        for name in LEGACY_USER_COLUMNS:
            if name in existing:
                continue
            column_type = users.c[name].type.compile(dialect=conn.dialect)
            conn.execute(text(f"ALTER TABLE users ADD COLUMN {name} {column_type}"))
            logger.info("storage_column_added", table="users", column=name)

        conn.execute(
            update(users)
            .where(users.c.settings.is_(None))
            .values(settings={})
        )
        conn.execute(
            update(users)
            .where(users.c.registered_at.is_(None))
            .values(registered_at=utcnow())
        )

    def _create_user_indexes(self) -> None:
        try:
            with self._engine.begin() as conn:
                for index in users.indexes:
                    index.create(conn, checkfirst=True)
        except SQLAlchemyError as e:
            # Legacy data with duplicate e-mails; uniqueness stays app-enforced
            logger.warning("storage_unique_email_index_failed", error=str(e))

    async def close(self) -> None:
        self._engine.dispose()

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    def _row_to_user(self, row) -> User:
        return User(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            password=row["password"],
            registered_at=row["registered_at"] or utcnow(),
            settings=dict(row["settings"] or {}),
        )

    def _row_to_transaction(self, row) -> Transaction:
        return Transaction(
            id=row["id"],
            kind=TransactionKind(row["kind"]),
            amount=row["amount"],
            category=row["category"],
            description=row["description"] or "",
            date=row["date"],
            owner_id=row["owner_id"],
        )

    def _row_to_budget(self, row) -> Budget:
        return Budget(
            id=row["id"],
            category=row["category"],
            amount=row["amount"],
            month=row["month"],
            owner_id=row["owner_id"],
            created_at=row["created_at"] or utcnow(),
        )

    def _fetch_user(self, conn: Connection, user_id: int) -> Optional[User]:
        row = conn.execute(
            select(users).where(users.c.id == user_id)
        ).mappings().first()
        return self._row_to_user(row) if row else None

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def list_users(self) -> list[User]:
        await self.initialize()
        try:
            with self._engine.begin() as conn:
                rows = conn.execute(
                    select(users).order_by(users.c.id.desc())
                ).mappings().all()
            return [self._row_to_user(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list users: {e}") from e

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        await self.initialize()
        try:
            with self._engine.begin() as conn:
                return self._fetch_user(conn, user_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get user: {e}") from e

    async def get_user_by_email(self, email: str) -> Optional[User]:
        await self.initialize()
        try:
            with self._engine.begin() as conn:
                row = conn.execute(
                    select(users).where(users.c.email == normalize_email(email))
                ).mappings().first()
            return self._row_to_user(row) if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get user: {e}") from e

    async def create_user(self, name: str, email: str, password: str) -> User:
        await self.initialize()
        values = {
            "name": name.strip(),
            "email": normalize_email(email),
            "password": password,
            "settings": {},
            "registered_at": utcnow(),
        }
        try:
            with self._engine.begin() as conn:
                # Covers legacy databases where the unique index is missing
                taken = conn.execute(
                    select(users.c.id).where(users.c.email == values["email"])
                ).first()
                if taken:
                    raise DuplicateError(EMAIL_TAKEN_MESSAGE)
                result = conn.execute(insert(users).values(**values))
                user_id = result.inserted_primary_key[0]
        except IntegrityError as e:
            raise DuplicateError(EMAIL_TAKEN_MESSAGE) from e
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create user: {e}") from e

        return User(id=user_id, **values)

    async def update_user(self, user_id: int, name: str, email: str) -> User:
        await self.initialize()
        email = normalize_email(email)
        try:
            with self._engine.begin() as conn:
                taken = conn.execute(
                    select(users.c.id).where(
                        users.c.email == email,
                        users.c.id != user_id,
                    )
                ).first()
                if taken:
                    raise DuplicateError(EMAIL_TAKEN_MESSAGE)

                result = conn.execute(
                    update(users)
                    .where(users.c.id == user_id)
                    .values(name=name.strip(), email=email)
                )
                if result.rowcount == 0:
                    raise NotFoundError(f"User not found: {user_id}")
                return self._fetch_user(conn, user_id)
        except IntegrityError as e:
            raise DuplicateError(EMAIL_TAKEN_MESSAGE) from e
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update user: {e}") from e

    async def update_user_password(self, user_id: int, password: str) -> User:
        await self.initialize()
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    update(users)
                    .where(users.c.id == user_id)
                    .values(password=password)
                )
                if result.rowcount == 0:
                    raise NotFoundError(f"User not found: {user_id}")
                return self._fetch_user(conn, user_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update password: {e}") from e

    async def get_user_settings(self, user_id: int) -> dict[str, Any]:
        await self.initialize()
        try:
            with self._engine.begin() as conn:
                row = conn.execute(
                    select(users.c.settings).where(users.c.id == user_id)
                ).first()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get settings: {e}") from e

        if row is None:
            raise NotFoundError(f"User not found: {user_id}")
        return dict(row.settings or {})

    async def update_user_settings(
        self,
        user_id: int,
        partial: dict[str, Any],
    ) -> dict[str, Any]:
        await self.initialize()
        try:
            with self._engine.begin() as conn:
                row = conn.execute(
                    select(users.c.settings).where(users.c.id == user_id)
                ).first()
                if row is None:
                    raise NotFoundError(f"User not found: {user_id}")

                merged = {**(row.settings or {}), **partial}
                conn.execute(
                    update(users)
                    .where(users.c.id == user_id)
                    .values(settings=merged)
                )
            return merged
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update settings: {e}") from e

    async def delete_user(self, user_id: int) -> None:
        await self.initialize()
        try:
            with self._engine.begin() as conn:
                conn.execute(delete(transactions).where(transactions.c.owner_id == user_id))
                conn.execute(delete(budgets).where(budgets.c.owner_id == user_id))
                result = conn.execute(delete(users).where(users.c.id == user_id))
                if result.rowcount == 0:
                    raise NotFoundError(f"User not found: {user_id}")
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete user: {e}") from e

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

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
        values = {
            "kind": TransactionKind(kind).value,
            "amount": amount,
            "category": category,
            "description": description or "",
            "date": date,
            "owner_id": owner_id,
        }
        try:
            with self._engine.begin() as conn:
                result = conn.execute(insert(transactions).values(**values))
                transaction_id = result.inserted_primary_key[0]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save transaction: {e}") from e

        return Transaction(id=transaction_id, **values)

    async def list_transactions(
        self,
        owner_id: int,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        await self.initialize()
        limit = validate_limit(limit)
        stmt = (
            select(transactions)
            .where(transactions.c.owner_id == owner_id)
            .order_by(transactions.c.date.desc(), transactions.c.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            with self._engine.begin() as conn:
                rows = conn.execute(stmt).mappings().all()
            return [self._row_to_transaction(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list transactions: {e}") from e

    async def list_transactions_for_month(
        self,
        owner_id: int,
        month: str,
    ) -> list[Transaction]:
        await self.initialize()
        first_day, last_day = month_bounds(month)
        stmt = (
            select(transactions)
            .where(
                transactions.c.owner_id == owner_id,
                transactions.c.date >= first_day,
                transactions.c.date <= last_day,
            )
            .order_by(transactions.c.date.desc(), transactions.c.id.desc())
        )
        try:
            with self._engine.begin() as conn:
                rows = conn.execute(stmt).mappings().all()
            return [self._row_to_transaction(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list transactions: {e}") from e

    async def delete_transaction(self, transaction_id: int, owner_id: int) -> None:
        await self.initialize()
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    delete(transactions).where(
                        transactions.c.id == transaction_id,
                        transactions.c.owner_id == owner_id,
                    )
                )
                deleted = result.rowcount
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete transaction: {e}") from e

        if deleted == 0:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

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
        values = {
            "category": category,
            "amount": amount,
            "month": month,
            "owner_id": owner_id,
            "created_at": utcnow(),
        }
        try:
            with self._engine.begin() as conn:
                result = conn.execute(insert(budgets).values(**values))
                budget_id = result.inserted_primary_key[0]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save budget: {e}") from e

        return Budget(id=budget_id, **values)

    async def update_budget(
        self,
        budget_id: int,
        category: str,
        amount: Decimal,
        month: str,
        owner_id: int,
    ) -> Budget:
        await self.initialize()
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    update(budgets)
                    .where(budgets.c.id == budget_id, budgets.c.owner_id == owner_id)
                    .values(category=category, amount=amount, month=month)
                )
                if result.rowcount == 0:
                    raise NotFoundError(f"Budget not found: {budget_id}")
                row = conn.execute(
                    select(budgets).where(budgets.c.id == budget_id)
                ).mappings().first()
            return self._row_to_budget(row)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update budget: {e}") from e

    async def delete_budget(self, budget_id: int, owner_id: int) -> None:
        await self.initialize()
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    delete(budgets).where(
                        budgets.c.id == budget_id,
                        budgets.c.owner_id == owner_id,
                    )
                )
                deleted = result.rowcount
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete budget: {e}") from e

        if deleted == 0:
            raise NotFoundError(f"Budget not found: {budget_id}")

    async def list_budgets(
        self,
        owner_id: int,
        month: Optional[str] = None,
    ) -> list[Budget]:
        await self.initialize()
        stmt = select(budgets).where(budgets.c.owner_id == owner_id)
        if month is not None:
            stmt = stmt.where(budgets.c.month == month)
        stmt = stmt.order_by(budgets.c.month.desc(), budgets.c.id)
        try:
            with self._engine.begin() as conn:
                rows = conn.execute(stmt).mappings().all()
            return [self._row_to_budget(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list budgets: {e}") from e
