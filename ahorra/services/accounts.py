"""
Account Service

Registration, login, profile, password and preference management.

FLOW for every write:
1. Validate input (ValidationError names the field)
2. Write through the storage backend
3. Notify listeners (only after the write succeeded)

Errors propagate unchanged so screens can show the specific reason.
Login failures are the exception: AuthError is deliberately generic and
never says whether the e-mail or the password was wrong.
"""

from typing import Any, Callable, Optional

import structlog

from ahorra.models.user import User
from ahorra.services.notifications import ChangeNotifier, Listener
from ahorra.services.security import PasswordHasher
from ahorra.services.session import SessionContext
from ahorra.services.storage import NotFoundError, StorageBackend, StorageError
from ahorra.validation import (
    ValidationError,
    validate_currency_code,
    validate_email,
    validate_name,
    validate_password,
)


logger = structlog.get_logger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"


class AuthError(Exception):
    """Login failed. The message never says which credential was wrong."""

    def __init__(self, message: str = INVALID_CREDENTIALS_MESSAGE):
        super().__init__(message)


class AccountService:
    """
    Users, authentication, preferences and the current session.

    The session context is injected so the same service can back several
    independent app instances (and tests) without shared global state.
    """

    def __init__(
        self,
        storage: StorageBackend,
        session: Optional[SessionContext] = None,
        hasher: Optional[PasswordHasher] = None,
    ):
        self._storage = storage
        self._session = session or SessionContext()
        self._hasher = hasher or PasswordHasher()
        self._notifier = ChangeNotifier("accounts")

    @property
    def session(self) -> SessionContext:
        return self._session

    async def initialize(self) -> None:
        await self._storage.initialize()

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        return self._notifier.add_listener(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._notifier.remove_listener(listener)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def list_users(self) -> list[User]:
        return await self._storage.list_users()

    async def get_user(self, user_id: int) -> User:
        """
        Raises:
            NotFoundError: If the user doesn't exist
        """
        user = await self._storage.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        return user

    # -------------------------------------------------------------------------
    # Registration and login
    # -------------------------------------------------------------------------

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        confirm_password: str,
    ) -> User:
        """
        Register a new user with empty settings.

        Raises:
            ValidationError: Invalid field or passwords don't match
            DuplicateError: E-mail already registered
        """
        name = validate_name(name)
        email = validate_email(email)
        validate_password(password)
        if password != confirm_password:
            raise ValidationError("confirm_password", "Passwords do not match")

        try:
            user = await self._storage.create_user(
                name, email, self._hasher.hash(password)
            )
        except StorageError as e:
            logger.warning("register_failed", email=email, error=str(e))
            raise

        logger.info("user_registered", user_id=user.id)
        self._notifier.notify()
        return user

    async def login(self, email: str, password: str) -> User:
        """
        Check credentials and return the user.

        Does not start a session; call set_current_user() afterwards.

        Raises:
            ValidationError: Malformed e-mail or password
            AuthError: Unknown e-mail or wrong password
        """
        email = validate_email(email)
        validate_password(password)

        user = await self._storage.get_user_by_email(email)
        if user is None or not self._hasher.verify(password, user.password):
            logger.info("login_failed")
            raise AuthError()

        logger.info("login_succeeded", user_id=user.id)
        return user

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    def set_current_user(self, user: User) -> None:
        self._session.set_user(user)
        self._notifier.notify()

    def get_current_user(self) -> Optional[User]:
        return self._session.user

    def logout(self) -> None:
        self._session.clear()
        self._notifier.notify()

    # -------------------------------------------------------------------------
    # Profile
    # -------------------------------------------------------------------------

    async def update_profile(self, user_id: int, name: str, email: str) -> User:
        """
        Change name and e-mail.

        Raises:
            ValidationError: Invalid name or e-mail
            DuplicateError: E-mail belongs to another user
            NotFoundError: User doesn't exist
        """
        name = validate_name(name)
        email = validate_email(email)

        try:
            user = await self._storage.update_user(user_id, name, email)
        except StorageError as e:
            logger.warning("update_profile_failed", user_id=user_id, error=str(e))
            raise

        self._session.refresh(user)
        self._notifier.notify()
        return user

    async def change_password(
        self,
        user_id: int,
        new_password: str,
        confirm_password: str,
    ) -> User:
        """
        Raises:
            ValidationError: Invalid password or passwords don't match
            NotFoundError: User doesn't exist
        """
        validate_password(new_password)
        if new_password != confirm_password:
            raise ValidationError("confirm_password", "Passwords do not match")

        try:
            user = await self._storage.update_user_password(
                user_id, self._hasher.hash(new_password)
            )
        except StorageError as e:
            logger.warning("change_password_failed", user_id=user_id, error=str(e))
            raise

        logger.info("password_changed", user_id=user_id)
        self._session.refresh(user)
        self._notifier.notify()
        return user

    # -------------------------------------------------------------------------
    # Preferences
    # -------------------------------------------------------------------------

    async def get_preferences(self, user_id: int) -> dict[str, Any]:
        """
        Get the user's settings map.

        Preferences are not critical: a storage failure yields {}.
        A missing user still raises NotFoundError.
        """
        try:
            return await self._storage.get_user_settings(user_id)
        except NotFoundError:
            raise
        except StorageError as e:
            logger.warning("get_preferences_failed", user_id=user_id, error=str(e))
            return {}

    async def update_preferences(
        self,
        user_id: int,
        partial: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Shallow-merge partial into the user's settings.

        Returns:
            The merged settings
        """
        partial = dict(partial)
        if "currency" in partial:
            partial["currency"] = validate_currency_code(partial["currency"])

        try:
            merged = await self._storage.update_user_settings(user_id, partial)
        except StorageError as e:
            logger.warning("update_preferences_failed", user_id=user_id, error=str(e))
            raise

        current = self._session.user
        if current is not None and current.id == user_id:
            self._session.set_user(current.model_copy(update={"settings": merged}))
        self._notifier.notify()
        return merged

    async def delete_user(self, user_id: int) -> None:
        """
        Delete a user and everything they own.

        Raises:
            NotFoundError: User doesn't exist
        """
        await self._storage.delete_user(user_id)
        if self._session.is_current(user_id):
            self._session.clear()
        logger.info("user_deleted", user_id=user_id)
        self._notifier.notify()
