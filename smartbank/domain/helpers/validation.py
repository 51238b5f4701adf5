import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Type

from dateutil.parser import ParserError
from dateutil.parser import parse as parse_datetime

from smartbank.domain.errors import ValidationError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

CENT = Decimal("0.01")

# Numeric(14, 2) holds twelve integer digits
MAX_AMOUNT = Decimal("1e12")


def parse_amount(value, field: str = "amount") -> Decimal:
    """Coerce value to a two-place Decimal, rejecting NaN, infinities and junk."""
    if value is None or value == "":
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        # str() first so floats keep their printed value instead of binary noise
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if abs(amount) >= MAX_AMOUNT:
        raise ValidationError(f"{field} is too large")
    return amount.quantize(CENT)


def parse_positive_amount(value, field: str = "amount") -> Decimal:
    amount = parse_amount(value, field)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return amount


def parse_non_negative_amount(value, field: str = "amount") -> Decimal:
    amount = parse_amount(value, field)
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative")
    return amount


def parse_date(value, field: str = "date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        raise ValidationError(f"{field} is required")
    try:
        return parse_datetime(value).date()
    except (ParserError, ValueError, OverflowError):
        raise ValidationError(f"{field} is not a valid date: {value}")


def parse_enum(enum_cls: Type[Enum], value, field: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {field}: {value} (expected one of {allowed})")


def require_text(value, field: str) -> str:
    text = (value or "").strip() if isinstance(value, str) or value is None else None
    if not text:
        raise ValidationError(f"{field} is required")
    return text


def validate_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Please provide a valid email address")
    return email


def name_key(name) -> str:
    """Case-folded key used to match bank, category and subscription names."""
    return (name or "").strip().lower()
