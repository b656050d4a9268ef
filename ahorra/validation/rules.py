"""
Field Validation Rules

Pure functions, one per field. Each returns the normalised value or raises
ValidationError naming the field and the rule that failed.

IMPORTANT: Validation NEVER silently fixes values beyond normalisation
(trimming, lowercasing e-mails, parsing dates). Anything else is reported
to the caller so the user can correct it.
"""

import datetime as dt
import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from ahorra.config import get_settings
from ahorra.models.categories import categories_for_kind
from ahorra.models.ledger import TransactionKind
from ahorra.models.periods import current_month


NAME_MAX_LENGTH = 50
EMAIL_MAX_LENGTH = 100
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 50
CATEGORY_MAX_LENGTH = 50
DESCRIPTION_MAX_LENGTH = 200

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MONTH_PATTERN = re.compile(r"^\d{4}-\d{2}$")
CURRENCY_PATTERN = re.compile(r"^[A-Za-z]{3}$")


class ValidationError(ValueError):
    """A field failed validation. The message is safe to show to the user."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


def validate_name(name: Optional[str]) -> str:
    """Validate a display name and return it trimmed."""
    if name is None or not name.strip():
        raise ValidationError("name", "Name cannot be empty")
    name = name.strip()
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationError(
            "name", f"Name cannot be longer than {NAME_MAX_LENGTH} characters"
        )
    return name


def validate_email(email: Optional[str]) -> str:
    """Validate an e-mail address and return it trimmed and lowercased."""
    if email is None or not email.strip():
        raise ValidationError("email", "Email cannot be empty")
    email = email.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("email", "Email format is not valid")
    if len(email) > EMAIL_MAX_LENGTH:
        raise ValidationError(
            "email", f"Email cannot be longer than {EMAIL_MAX_LENGTH} characters"
        )
    return email


def validate_password(password: Optional[str]) -> str:
    """Validate password length (6 to 50 characters)."""
    if not password:
        raise ValidationError("password", "Password cannot be empty")
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(
            "password",
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters",
        )
    if len(password) > PASSWORD_MAX_LENGTH:
        raise ValidationError(
            "password",
            f"Password cannot be longer than {PASSWORD_MAX_LENGTH} characters",
        )
    return password


def validate_amount(amount: Any) -> Decimal:
    """
    Validate a money amount: numeric, positive, at most max_amount.

    Strings are rejected; callers parse user input before validating.
    """
    if amount is None:
        raise ValidationError("amount", "Amount cannot be empty")
    if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal)):
        raise ValidationError("amount", "Amount must be a number")
    if isinstance(amount, float) and not math.isfinite(amount):
        raise ValidationError("amount", "Amount must be a number")

    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValidationError("amount", "Amount must be a number")
    if not value.is_finite():
        raise ValidationError("amount", "Amount must be a number")

    if value <= 0:
        raise ValidationError("amount", "Amount must be greater than 0")

    max_amount = Decimal(str(get_settings().app.max_amount))
    if value > max_amount:
        raise ValidationError(
            "amount", f"Amount cannot be greater than {max_amount:,.0f}"
        )
    return value


def validate_kind(kind: Union[str, TransactionKind, None]) -> TransactionKind:
    try:
        return TransactionKind(kind)
    except ValueError:
        raise ValidationError("kind", 'Kind must be "income" or "expense"')


def validate_category(category: Optional[str]) -> str:
    if category is None or not category.strip():
        raise ValidationError("category", "Category cannot be empty")
    category = category.strip()
    if len(category) > CATEGORY_MAX_LENGTH:
        raise ValidationError(
            "category",
            f"Category cannot be longer than {CATEGORY_MAX_LENGTH} characters",
        )
    return category


def validate_category_for_kind(
    category: Optional[str],
    kind: Union[str, TransactionKind],
) -> str:
    """Validate a transaction category against the list for its kind."""
    category = validate_category(category)
    kind = validate_kind(kind)
    allowed = categories_for_kind(kind)
    if category not in allowed:
        raise ValidationError(
            "category",
            f'Category "{category}" is not valid for {kind.value} transactions. '
            f"Allowed categories: {', '.join(allowed)}",
        )
    return category


def validate_transaction_date(
    value: Union[str, dt.date, dt.datetime, None],
    today: Optional[dt.date] = None,
) -> dt.date:
    """Parse a transaction date and reject dates after today."""
    if value is None or value == "":
        raise ValidationError("date", "Date cannot be empty")

    if isinstance(value, dt.datetime):
        parsed = value.date()
    elif isinstance(value, dt.date):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = dt.datetime.fromisoformat(value.strip()).date()
        except ValueError:
            raise ValidationError("date", "Date is not valid")
    else:
        raise ValidationError("date", "Date is not valid")

    today = today or dt.date.today()
    if parsed > today:
        raise ValidationError("date", "Transactions cannot be dated in the future")
    return parsed


def validate_month_format(month: Optional[str]) -> str:
    """Validate a YYYY-MM month string. Any month, past or future, is accepted."""
    if not month or not isinstance(month, str):
        raise ValidationError("month", "Month cannot be empty")
    month = month.strip()
    if not MONTH_PATTERN.match(month):
        raise ValidationError("month", "Month must use the YYYY-MM format")

    month_num = int(month[5:7])
    if month_num < 1 or month_num > 12:
        raise ValidationError("month", "Month must be between 01 and 12")
    return month


def validate_month(month: Optional[str], today: Optional[dt.date] = None) -> str:
    """Validate a YYYY-MM budget month that is not in the future."""
    month = validate_month_format(month)

    # Zero-padded YYYY-MM strings order chronologically
    if month > current_month(today):
        raise ValidationError("month", "Budgets cannot be created for future months")
    return month


def validate_limit(limit: Optional[int]) -> Optional[int]:
    """A result limit is None (no limit) or a positive integer."""
    if limit is None:
        return None
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValidationError("limit", "Limit must be a positive whole number")
    return limit


def validate_description(description: Optional[str]) -> str:
    """Descriptions are optional; None becomes an empty string."""
    if description is None:
        return ""
    description = description.strip()
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            "description",
            f"Description cannot be longer than {DESCRIPTION_MAX_LENGTH} characters",
        )
    return description


def validate_currency_code(currency: Optional[str]) -> str:
    if not currency or not CURRENCY_PATTERN.match(currency.strip()):
        raise ValidationError(
            "currency", "Currency must be a 3-letter ISO 4217 code"
        )
    return currency.strip().upper()
