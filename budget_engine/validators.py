"""Input validation applied before user data reaches the engine."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from .dates import parse_date, to_date_str
from .models import PRIORITY_HIGH, PRIORITY_LOW, parse_amount

MAX_AMOUNT = 1_000_000
MAX_QUANTITY = 10_000
MIN_QUANTITY = 1
CATEGORY_NAME_MIN = 2
CATEGORY_NAME_MAX = 50
GOAL_NAME_MAX = 100
DATE_PAST_YEARS = 10
DATE_FUTURE_YEARS = 5


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None
    value: Any = None

    def __bool__(self) -> bool:
        return self.valid


def _fail(message: str) -> ValidationResult:
    return ValidationResult(False, message)


def validate_amount(amount: Any) -> ValidationResult:
    """Amount must be a number in ``[0, MAX_AMOUNT]`` with at most 2 decimals."""
    if amount is None or (isinstance(amount, str) and not amount.strip()):
        return _fail("Amount is required")
    text = str(amount).strip().replace(',', '.')
    try:
        number = float(text)
    except ValueError:
        return _fail("Amount must be a number")
    if number != number:
        return _fail("Amount must be a number")
    if number < 0:
        return _fail("Amount cannot be negative")
    if number > MAX_AMOUNT:
        return _fail(f"Amount is too large (max {MAX_AMOUNT:,})")
    try:
        exponent = Decimal(text).as_tuple().exponent
    except InvalidOperation:
        return _fail("Amount must be a number")
    if isinstance(exponent, int) and exponent < -2:
        return _fail("Amount can have at most 2 decimal places")
    return ValidationResult(True, value=parse_amount(text))


def validate_quantity(quantity: Any) -> ValidationResult:
    try:
        number = float(str(quantity).strip().replace(',', '.'))
    except ValueError:
        return _fail("Quantity must be a number")
    if number != number:
        return _fail("Quantity must be a number")
    if number < MIN_QUANTITY:
        return _fail("Quantity must be at least 1")
    if number > MAX_QUANTITY:
        return _fail(f"Quantity is too large (max {MAX_QUANTITY:,})")
    return ValidationResult(True, value=number)


def validate_date(value: Any, today_str: str) -> ValidationResult:
    """Date must parse and lie within the accepted window around today."""
    if value is None or not str(value).strip():
        return _fail("Date is required")
    parsed = parse_date(value)
    if parsed is None:
        return _fail("Invalid date format")
    today = parse_date(today_str)
    if today is not None:
        earliest = _shift_years(today, -DATE_PAST_YEARS)
        latest = _shift_years(today, DATE_FUTURE_YEARS)
        if parsed < earliest:
            return _fail(f"Date cannot be more than {DATE_PAST_YEARS} years in the past")
        if parsed > latest:
            return _fail(f"Date cannot be more than {DATE_FUTURE_YEARS} years in the future")
    return ValidationResult(True, value=to_date_str(parsed))


def _shift_years(day, years: int):
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        # 29 February in a non-leap target year
        return day.replace(year=day.year + years, day=28)


def validate_category_name(name: Any) -> ValidationResult:
    trimmed = str(name).strip() if name is not None else ''
    if not trimmed:
        return _fail("Category name is required")
    if len(trimmed) < CATEGORY_NAME_MIN:
        return _fail(f"Category name must have at least {CATEGORY_NAME_MIN} characters")
    if len(trimmed) > CATEGORY_NAME_MAX:
        return _fail(f"Category name can have at most {CATEGORY_NAME_MAX} characters")
    return ValidationResult(True, value=trimmed)


def validate_goal_name(name: Any) -> ValidationResult:
    trimmed = str(name).strip() if name is not None else ''
    if not trimmed:
        return _fail("Goal name is required")
    if len(trimmed) > GOAL_NAME_MAX:
        return _fail(f"Goal name can have at most {GOAL_NAME_MAX} characters")
    return ValidationResult(True, value=trimmed)


def validate_target_amount(amount: Any) -> ValidationResult:
    result = validate_amount(amount)
    if not result.valid:
        return result
    if result.value <= 0:
        return _fail("Target amount must be greater than 0")
    return result


def validate_priority(priority: Any) -> ValidationResult:
    try:
        value = int(priority)
    except (TypeError, ValueError):
        return _fail("Priority must be 1, 2 or 3")
    if not PRIORITY_HIGH <= value <= PRIORITY_LOW:
        return _fail("Priority must be 1, 2 or 3")
    return ValidationResult(True, value=value)
