"""
Composition Root for Ahorra

Builds one app instance: storage backend, session context and the two
services that share them. Screens receive these components instead of
reaching for module-level singletons.

DESIGN DECISION: Nothing here touches storage. Services initialize the
backend lazily on first use (or explicitly via initialize()), so creating
the components is cheap and never fails on I/O.
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from ahorra.config import Settings, get_settings
from ahorra.logging_config import configure_logging
from ahorra.services.accounts import AccountService
from ahorra.services.ledger import LedgerService
from ahorra.services.recovery import PasswordRecoveryFlow
from ahorra.services.security import PasswordHasher
from ahorra.services.session import SessionContext
from ahorra.services.storage import StorageBackend, create_storage_backend


logger = structlog.get_logger(__name__)


@dataclass
class AppComponents:
    """Everything one running app instance needs."""
    storage: StorageBackend
    session: SessionContext
    hasher: PasswordHasher
    accounts: AccountService
    ledger: LedgerService
    settings: Settings = field(repr=False, default_factory=get_settings)

    def new_recovery_flow(self) -> PasswordRecoveryFlow:
        """Start a password recovery flow sharing this app's storage."""
        return PasswordRecoveryFlow(self.storage, hasher=self.hasher)

    async def initialize(self) -> None:
        await self.storage.initialize()

    async def close(self) -> None:
        await self.storage.close()


def create_app_components(
    settings: Optional[Settings] = None,
    storage: Optional[StorageBackend] = None,
    configure_logs: bool = True,
) -> AppComponents:
    """
    Wire storage, session and services together.

    Args:
        settings: Settings to use. Defaults to the environment.
        storage: Pre-built backend (tests inject one). Selected from
            settings when omitted.
        configure_logs: Configure structlog from the settings.
    """
    settings = settings or get_settings()

    if configure_logs:
        configure_logging()

    storage = storage or create_storage_backend(settings.storage)
    session = SessionContext()
    hasher = PasswordHasher(rounds=settings.app.bcrypt_rounds)

    components = AppComponents(
        storage=storage,
        session=session,
        hasher=hasher,
        accounts=AccountService(storage, session=session, hasher=hasher),
        ledger=LedgerService(storage),
        settings=settings,
    )

    logger.info(
        "app_components_created",
        storage=type(storage).__name__,
        environment=settings.app.app_environment,
    )
    return components
