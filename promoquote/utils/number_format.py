"""Number parsing utilities for JSON payloads."""
from decimal import Decimal, InvalidOperation


def parse_decimal(value, field='value', minimum=None, maximum=None, allow_zero=True):
    """
    Parse a JSON number or numeric string to Decimal.

    Floats go through str() so 0.1 stays 0.1. Booleans are rejected even
    though they are ints in Python.

    Raises:
        ValueError: if the value is missing, not numeric, or out of range.
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f'{field}: a number is required')

    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValueError(f'{field}: a number is required')

    try:
        decimal_value = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f'{field}: invalid number {value!r}')

    if not decimal_value.is_finite():
        raise ValueError(f'{field}: invalid number {value!r}')
    if minimum is not None and decimal_value < minimum:
        raise ValueError(f'{field}: must be at least {minimum}')
    if maximum is not None and decimal_value > maximum:
        raise ValueError(f'{field}: must be at most {maximum}')
    if not allow_zero and decimal_value == 0:
        raise ValueError(f'{field}: must be greater than 0')

    return decimal_value


def parse_optional_decimal(value, field='value', minimum=None, maximum=None):
    """Like parse_decimal, but None and empty strings mean "not set"."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_decimal(value, field, minimum=minimum, maximum=maximum)


def parse_int(value, field='value', minimum=None, maximum=None):
    """Parse an integral JSON value (int or digit string) to int."""
    if value is None or isinstance(value, bool):
        raise ValueError(f'{field}: an integer is required')
    try:
        decimal_value = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f'{field}: invalid integer {value!r}')
    if not decimal_value.is_finite() or decimal_value != decimal_value.to_integral_value():
        raise ValueError(f'{field}: invalid integer {value!r}')

    int_value = int(decimal_value)
    if minimum is not None and int_value < minimum:
        raise ValueError(f'{field}: must be at least {minimum}')
    if maximum is not None and int_value > maximum:
        raise ValueError(f'{field}: must be at most {maximum}')
    return int_value


def parse_optional_int(value, field='value', minimum=None, maximum=None):
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_int(value, field, minimum=minimum, maximum=maximum)
