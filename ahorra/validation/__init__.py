"""Validation package."""

from ahorra.validation.rules import (
    ValidationError,
    validate_amount,
    validate_category,
    validate_category_for_kind,
    validate_currency_code,
    validate_description,
    validate_email,
    validate_kind,
    validate_limit,
    validate_month,
    validate_month_format,
    validate_name,
    validate_password,
    validate_transaction_date,
)

__all__ = [
    "ValidationError",
    "validate_amount",
    "validate_category",
    "validate_category_for_kind",
    "validate_currency_code",
    "validate_description",
    "validate_email",
    "validate_kind",
    "validate_limit",
    "validate_month",
    "validate_month_format",
    "validate_name",
    "validate_password",
    "validate_transaction_date",
]
