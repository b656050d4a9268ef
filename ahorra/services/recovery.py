"""
Password Recovery Flow

A linear, UI-driven flow:

    request_code -> verify_code -> set_new_password -> completed

The only way back is restart(). Code delivery (e-mail, SMS) is outside this
package; request_code() returns the code so the caller can send it.

DESIGN DECISION: Codes are 6 digits from the `secrets` module and are
compared in constant time. A code expires after
`recovery_code_ttl_minutes` and the flow locks after
`recovery_max_attempts` wrong guesses until restart().
"""

import secrets
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

import structlog

from ahorra.config import get_settings
from ahorra.models.user import User, utcnow
from ahorra.services.security import PasswordHasher
from ahorra.services.storage import NotFoundError, StorageBackend
from ahorra.validation import ValidationError, validate_email, validate_password


logger = structlog.get_logger(__name__)

CODE_LENGTH = 6


class RecoveryError(Exception):
    """The recovery flow cannot proceed (wrong step, expired, locked)."""
    pass


class RecoveryStep(str, Enum):
    """Steps of the recovery flow, in order."""
    REQUEST_CODE = "request_code"
    VERIFY_CODE = "verify_code"
    SET_NEW_PASSWORD = "set_new_password"
    COMPLETED = "completed"


def generate_code() -> str:
    return "".join(secrets.choice("0123456789") for _ in range(CODE_LENGTH))


class PasswordRecoveryFlow:
    """One recovery attempt for one e-mail address."""

    def __init__(
        self,
        storage: StorageBackend,
        hasher: Optional[PasswordHasher] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        settings = get_settings().app
        self._storage = storage
        self._hasher = hasher or PasswordHasher()
        self._clock = clock
        self._ttl = timedelta(minutes=settings.recovery_code_ttl_minutes)
        self._max_attempts = settings.recovery_max_attempts
        self._reset()

    def _reset(self) -> None:
        self._step = RecoveryStep.REQUEST_CODE
        self._user: Optional[User] = None
        self._code: Optional[str] = None
        self._expires_at: Optional[datetime] = None
        self._failed_attempts = 0

    @property
    def step(self) -> RecoveryStep:
        return self._step

    @property
    def attempts_left(self) -> int:
        return max(self._max_attempts - self._failed_attempts, 0)

    def _require_step(self, expected: RecoveryStep) -> None:
        if self._step != expected:
            raise RecoveryError(
                f"Cannot {expected.value.replace('_', ' ')} "
                f"while at step {self._step.value}"
            )

    def restart(self) -> None:
        """Discard any code and go back to the first step."""
        self._reset()

    async def request_code(self, email: str) -> str:
        """
        Issue a recovery code for a registered e-mail.

        Returns:
            The code, for the caller to deliver

        Raises:
            ValidationError: Malformed e-mail
            NotFoundError: No user with this e-mail
            RecoveryError: Not at the request step
        """
        self._require_step(RecoveryStep.REQUEST_CODE)
        email = validate_email(email)

        user = await self._storage.get_user_by_email(email)
        if user is None:
            raise NotFoundError("Email is not registered")

        self._user = user
        self._code = generate_code()
        self._expires_at = self._clock() + self._ttl
        self._failed_attempts = 0
        self._step = RecoveryStep.VERIFY_CODE

        logger.info("recovery_code_issued", user_id=user.id)
        return self._code

    def verify_code(self, code: str) -> None:
        """
        Check the code the user typed.

        Raises:
            RecoveryError: Wrong step, expired code, wrong code or too many attempts
        """
        self._require_step(RecoveryStep.VERIFY_CODE)

        if self._failed_attempts >= self._max_attempts:
            raise RecoveryError("Too many attempts, request a new code")
        if self._clock() > self._expires_at:
            raise RecoveryError("Recovery code has expired, request a new code")

        if not secrets.compare_digest(str(code).strip(), self._code):
            self._failed_attempts += 1
            logger.info(
                "recovery_code_rejected",
                user_id=self._user.id,
                attempts_left=self.attempts_left,
            )
            if self._failed_attempts >= self._max_attempts:
                raise RecoveryError("Too many attempts, request a new code")
            raise RecoveryError("Recovery code is incorrect")

        self._step = RecoveryStep.SET_NEW_PASSWORD

    async def set_new_password(self, new_password: str, confirm_password: str) -> User:
        """
        Store the new password and finish the flow.

        Raises:
            ValidationError: Invalid password or passwords don't match
            RecoveryError: Code not verified yet
            NotFoundError: The user was deleted meanwhile
        """
        self._require_step(RecoveryStep.SET_NEW_PASSWORD)
        validate_password(new_password)
        if new_password != confirm_password:
            raise ValidationError("confirm_password", "Passwords do not match")

        user = await self._storage.update_user_password(
            self._user.id, self._hasher.hash(new_password)
        )
        self._code = None
        self._step = RecoveryStep.COMPLETED

        logger.info("password_recovered", user_id=user.id)
        return user
