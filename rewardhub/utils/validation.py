"""
Request field parsing shared by the admin API.

Each helper returns the parsed value or raises ValidationError naming the
field, so handlers can let the app-level error handler answer with a 400.
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from .exceptions import ValidationError

TRUE_VALUES = ('true', '1', 'yes', 'on')
FALSE_VALUES = ('false', '0', 'no', 'off')


def parse_bool(value, field: str) -> bool:
    """Accept JSON booleans, 0/1 and the usual string spellings."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_VALUES:
            return True
        if lowered in FALSE_VALUES:
            return False
    raise ValidationError(f'{field} must be a boolean', field)


def parse_int(value, field: str, minimum: int = None) -> int:
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer', field)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer', field)
    if minimum is not None and number < minimum:
        raise ValidationError(f'{field} must be at least {minimum}', field)
    return number


def parse_decimal(value, field: str, minimum: Decimal = None) -> Decimal:
    """Finite Decimal from a number or numeric string."""
    if isinstance(value, bool) or value in (None, ''):
        raise ValidationError(f'{field} must be a number', field)
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be a number', field)
    if not number.is_finite():
        raise ValidationError(f'{field} must be a finite number', field)
    if minimum is not None and number < minimum:
        raise ValidationError(f'{field} must be at least {minimum}', field)
    return number


def parse_datetime(value, field: str):
    """
    Naive UTC datetime from an ISO 8601 string.

    Offsets are converted to UTC before the tzinfo is dropped; values
    without an offset are taken as UTC already.
    """
    if value in (None, ''):
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError(f'{field} must be an ISO 8601 datetime', field)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
