"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run on an embedded SQL database on devices
2. Run on a flat keyed-blob store where no database exists (web)
3. Run both against the same contract tests
4. Keep services decoupled from storage implementation

Callers validate before calling. Backends only normalise what they must
(e-mail casing, whitespace) and enforce uniqueness and ownership.

INITIALIZATION: initialize() is idempotent and guarded. The first caller
runs the setup; callers arriving while it is in flight wait on an event
that is set exactly when it finishes, up to init_timeout seconds.
Every operation initializes implicitly.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Any, Optional

import structlog

from ahorra.models.ledger import Budget, Transaction, TransactionKind
from ahorra.models.user import User


logger = structlog.get_logger(__name__)


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage (or not owned by the caller)."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class InitializationTimeoutError(StorageError):
    """Waited too long for another caller's initialization to finish."""
    pass


EMAIL_TAKEN_MESSAGE = "Email is already registered"


def normalize_email(email: str) -> str:
    return email.strip().lower()


class StorageBackend(ABC):
    """
    Abstract interface for all persistent state.

    Any storage implementation must implement the abstract methods.
    Setup goes in _setup(); callers always go through initialize().
    """

    name: str = "abstract"

    def __init__(self, init_timeout: float = 10.0):
        self._init_timeout = init_timeout
        self._initialized = False
        self._init_done: Optional[asyncio.Event] = None
        self._init_error: Optional[BaseException] = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Prepare the backend (schema creation / namespace preparation).

        Raises:
            InitializationTimeoutError: Another caller's setup did not
                finish within init_timeout seconds.
            StorageError: Setup failed.
        """
        if self._initialized:
            return

        if self._init_done is not None:
            await self._wait_for_initialization(self._init_done)
            return

        done = asyncio.Event()
        self._init_done = done
        self._init_error = None
        logger.info("storage_initializing", backend=self.name)
        try:
            await self._setup()
        except Exception as e:
            self._init_error = e
            # Let the next caller start a fresh attempt
            self._init_done = None
            done.set()
            logger.error("storage_initialization_failed", backend=self.name, error=str(e))
            if isinstance(e, StorageError):
                raise
            raise StorageError(f"Failed to initialize {self.name} storage: {e}") from e

        self._initialized = True
        done.set()
        logger.info("storage_initialized", backend=self.name)

    async def _wait_for_initialization(self, done: asyncio.Event) -> None:
        try:
            await asyncio.wait_for(done.wait(), timeout=self._init_timeout)
        except asyncio.TimeoutError:
            logger.error(
                "storage_initialization_timeout",
                backend=self.name,
                timeout=self._init_timeout,
            )
            raise InitializationTimeoutError(
                f"Timed out after {self._init_timeout}s waiting for "
                f"{self.name} storage initialization"
            )

        if not self._initialized:
            raise StorageError(
                f"{self.name} storage initialization failed: {self._init_error}"
            )

    @abstractmethod
    async def _setup(self) -> None:
        """Create schema / namespaces. Must be safe to run more than once."""
        pass

    # =========================================================================
    # USERS
    # =========================================================================

    @abstractmethod
    async def list_users(self) -> list[User]:
        """List all users, newest first."""
        pass

    @abstractmethod
    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        """
        Retrieve a user by ID.

        Returns:
            The user if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[User]:
        """
        Retrieve a user by e-mail (trimmed, case-insensitive).

        Returns:
            The user if found, None otherwise
        """
        pass

    @abstractmethod
    async def create_user(self, name: str, email: str, password: str) -> User:
        """
        Create a user with empty settings.

        Args:
            name: Display name (trimmed on write)
            email: E-mail (trimmed and lowercased on write)
            password: Value to store in the password field

        Raises:
            DuplicateError: If the e-mail is already registered
        """
        pass

    @abstractmethod
    async def update_user(self, user_id: int, name: str, email: str) -> User:
        """
        Update name and e-mail.

        Raises:
            DuplicateError: If the e-mail belongs to a different user
            NotFoundError: If the user doesn't exist
        """
        pass

    @abstractmethod
    async def update_user_password(self, user_id: int, password: str) -> User:
        """
        Replace the stored password value.

        Raises:
            NotFoundError: If the user doesn't exist
        """
        pass

    @abstractmethod
    async def get_user_settings(self, user_id: int) -> dict[str, Any]:
        """
        Get a user's settings map ({} when none stored).

        Raises:
            NotFoundError: If the user doesn't exist
        """
        pass

    @abstractmethod
    async def update_user_settings(
        self,
        user_id: int,
        partial: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Shallow-merge partial into the stored settings.

        Returns:
            The merged settings

        Raises:
            NotFoundError: If the user doesn't exist
        """
        pass

    @abstractmethod
    async def delete_user(self, user_id: int) -> None:
        """
        Delete a user together with their transactions and budgets.

        Raises:
            NotFoundError: If the user doesn't exist
        """
        pass

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    @abstractmethod
    async def add_transaction(
        self,
        kind: TransactionKind,
        amount: Decimal,
        category: str,
        description: str,
        date: date,
        owner_id: int,
    ) -> Transaction:
        """Persist a transaction and return it with its generated ID."""
        pass

    @abstractmethod
    async def list_transactions(
        self,
        owner_id: int,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        """
        List a user's transactions, newest first by date (then by ID).

        Args:
            owner_id: Owning user
            limit: Maximum number of results (all when None)

        Raises:
            ValidationError: limit is not a positive integer
        """
        pass

    @abstractmethod
    async def list_transactions_for_month(
        self,
        owner_id: int,
        month: str,
    ) -> list[Transaction]:
        """List a user's transactions dated within a YYYY-MM month."""
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: int, owner_id: int) -> None:
        """
        Delete a transaction owned by owner_id.

        Raises:
            NotFoundError: If no transaction has this ID and owner
        """
        pass

    # =========================================================================
    # BUDGETS
    # =========================================================================

    @abstractmethod
    async def add_budget(
        self,
        category: str,
        amount: Decimal,
        month: str,
        owner_id: int,
    ) -> Budget:
        """Persist a budget and return it with its generated ID."""
        pass

    @abstractmethod
    async def update_budget(
        self,
        budget_id: int,
        category: str,
        amount: Decimal,
        month: str,
        owner_id: int,
    ) -> Budget:
        """
        Replace a budget's category, amount and month.

        Raises:
            NotFoundError: If no budget has this ID and owner
        """
        pass

    @abstractmethod
    async def delete_budget(self, budget_id: int, owner_id: int) -> None:
        """
        Delete a budget owned by owner_id.

        Raises:
            NotFoundError: If no budget has this ID and owner
        """
        pass

    @abstractmethod
    async def list_budgets(
        self,
        owner_id: int,
        month: Optional[str] = None,
    ) -> list[Budget]:
        """List a user's budgets, optionally for one YYYY-MM month."""
        pass

    async def close(self) -> None:
        """Release backend resources. Default: nothing to release."""
        pass
