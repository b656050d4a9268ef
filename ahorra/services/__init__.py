"""
Services Package

Account and ledger services on top of the storage backends, plus the
session context, change notification and password recovery they use.
"""

from ahorra.services.accounts import AccountService, AuthError
from ahorra.services.ledger import LedgerService
from ahorra.services.notifications import ChangeNotifier, Listener
from ahorra.services.recovery import PasswordRecoveryFlow, RecoveryError, RecoveryStep
from ahorra.services.security import PasswordHasher
from ahorra.services.session import SessionContext
from ahorra.services.storage import (
    DuplicateError,
    InitializationTimeoutError,
    NotFoundError,
    StorageBackend,
    StorageError,
    create_storage_backend,
)

__all__ = [
    # Services
    "AccountService",
    "LedgerService",
    "PasswordRecoveryFlow",
    # Collaborators
    "ChangeNotifier",
    "Listener",
    "PasswordHasher",
    "RecoveryStep",
    "SessionContext",
    "StorageBackend",
    "create_storage_backend",
    # Exceptions
    "AuthError",
    "DuplicateError",
    "InitializationTimeoutError",
    "NotFoundError",
    "RecoveryError",
    "StorageError",
]
