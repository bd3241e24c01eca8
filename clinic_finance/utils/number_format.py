"""Number parsing utilities for monetary input."""
import re
from decimal import Decimal, InvalidOperation

from clinic_finance.exceptions import ValidationError

BR_DECIMAL_PATTERN = re.compile(r"^(?:\d{1,3}(?:\.\d{3})+|\d+),\d{1,2}$")
CENT = Decimal('0.01')


def parse_br_decimal(value: str) -> Decimal:
    """
    Parse a monetary string in Brazilian format (e.g., 1.234,56) to Decimal.

    Rules:
    - Thousands separator: dot (.)
    - Decimal separator: comma (,)
    - One or two decimal digits
    - Proper thousand grouping (1.234,56 is valid; 1.2,00 is not)

    Raises:
        ValueError: if the value is invalid or empty.
    """
    if value is None:
        raise ValueError('Invalid format. Use 1.234,56')

    cleaned = value.strip()
    if not BR_DECIMAL_PATTERN.match(cleaned):
        raise ValueError('Invalid format. Use 1.234,56')

    normalized = cleaned.replace('.', '').replace(',', '.')
    try:
        decimal_value = Decimal(normalized)
    except (InvalidOperation, ValueError):
        raise ValueError('Invalid format. Use 1.234,56')

    return decimal_value.quantize(CENT)


def parse_amount(value, field: str = 'amount') -> Decimal:
    """
    Parse a strictly positive monetary amount.

    Accepts Decimal, int, float, plain numeric strings ("150.50") and
    Brazilian formatted strings ("1.250,50"). The result is quantized to cents.

    Raises:
        ValidationError: if the amount is missing, malformed or not positive
    """
    if value is None or value == '' or isinstance(value, bool):
        raise ValidationError(f'{field} is required', field=field)

    try:
        if isinstance(value, str) and ',' in value:
            amount = parse_br_decimal(value)
        else:
            amount = Decimal(str(value).strip())
        if not amount.is_finite():
            raise ValueError(value)
        amount = amount.quantize(CENT)
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be a number', field=field)

    if amount <= 0:
        raise ValidationError(f'{field} must be greater than 0', field=field)

    return amount


def parse_positive_int(value, field: str, default: int = None) -> int:
    """
    Parse a whole number >= 1.

    Integral strings ("3") are accepted; booleans and fractional values
    (1.5, "1.5") are rejected. Missing values fall back to ``default`` when
    one is given.

    Raises:
        ValidationError: if the value is missing, fractional or below 1
    """
    if value is None or value == '':
        if default is None:
            raise ValidationError(f'{field} is required', field=field)
        return default
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer', field=field)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer', field=field)
    if number != value and not isinstance(value, str):
        raise ValidationError(f'{field} must be an integer', field=field)
    if number < 1:
        raise ValidationError(f'{field} must be at least 1', field=field)
    return number
