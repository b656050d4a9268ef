"""
Session Context

Holds the signed-in user for one app instance. The composition root
creates it and injects it into the account service; there is no module
level "current user".

Lifecycle is caller-driven: set after a successful login, cleared on
logout. There is no expiry.
"""

from typing import Optional

from ahorra.models.user import User


class SessionContext:
    """The current session's user snapshot."""

    def __init__(self, user: Optional[User] = None):
        self._user = user

    @property
    def user(self) -> Optional[User]:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    def set_user(self, user: User) -> None:
        self._user = user

    def clear(self) -> None:
        self._user = None

    def is_current(self, user_id: int) -> bool:
        return self._user is not None and self._user.id == user_id

    def refresh(self, user: User) -> None:
        """Replace the snapshot if it belongs to the same user."""
        if self.is_current(user.id):
            self._user = user
