"""
User Model

The password field holds a bcrypt hash, never the plaintext.
Callers receive it on the model but must not display it.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Naive UTC timestamp, the form both storage backends round-trip."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(BaseModel):
    """A registered user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int = Field(
        ...,
        description="Generated user ID"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Display name"
    )
    email: str = Field(
        ...,
        min_length=3,
        max_length=100,
        description="Unique e-mail, lowercased"
    )
    password: str = Field(
        ...,
        repr=False,
        description="Password hash"
    )
    registered_at: datetime = Field(
        default_factory=utcnow,
        description="Registration timestamp (UTC)"
    )
    settings: dict[str, Any] = Field(
        default_factory=dict,
        description="Open-ended preferences: currency, notification toggles"
    )

    @property
    def currency(self) -> Optional[str]:
        return self.settings.get("currency")
