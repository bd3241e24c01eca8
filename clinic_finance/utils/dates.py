"""Date helpers for due-date arithmetic and request parsing."""
from calendar import monthrange
from datetime import date, datetime
from typing import Optional, Union

from clinic_finance.exceptions import ValidationError


def add_months(start: date, months: int) -> date:
    """
    Shift a date by a number of calendar months.

    The day of month is preserved when the target month has enough days,
    otherwise it is clamped to the last day of that month.

    Examples:
        add_months(date(2024, 1, 31), 1) -> date(2024, 2, 29)
        add_months(date(2024, 3, 15), 2) -> date(2024, 5, 15)
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = monthrange(year, month)[1]
    return date(year, month, min(start.day, last_day))


def parse_iso_date(value: Union[str, date, datetime, None], field: str = 'date') -> date:
    """
    Parse a required YYYY-MM-DD value.

    Raises:
        ValidationError: if the value is missing or malformed
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f'{field} is required', field=field)

    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    if not isinstance(value, str):
        raise ValidationError(f'{field} must be a date in YYYY-MM-DD format', field=field)

    try:
        return datetime.strptime(value.strip()[:10], '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f'{field} must be a date in YYYY-MM-DD format', field=field)


def parse_optional_date(value, field: str = 'date') -> Optional[date]:
    """Like parse_iso_date, but None/empty input yields None."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_iso_date(value, field)


def days_between(earlier: date, later: date) -> int:
    """Whole days from earlier to later (negative when reversed)."""
    return (later - earlier).days
