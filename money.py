"""Decimal helpers for monetary amounts."""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from exceptions import ValidationError

CENTS = Decimal('0.01')
ZERO = Decimal('0.00')
# Money columns are Numeric(12, 2): ten integer digits.
MAX_AMOUNT = Decimal('10000000000')


def _check_range(amount, field):
    # Rounding to cents can carry 9999999999.995 over the limit.
    if abs(amount) >= MAX_AMOUNT or abs(quantize(amount, field)) >= MAX_AMOUNT:
        raise ValidationError(f'{field} must be smaller than {MAX_AMOUNT}.', {field: str(amount)})
    return amount


def to_decimal(value, default=None, strict=True, field='amount'):
    """
    Convert a client-supplied value into a Decimal.

    None and blank strings map to ``default``. Floats are converted through
    their shortest repr so 150.5 becomes Decimal('150.5') rather than the
    binary expansion. Numbers too large for the money columns are rejected
    even when ``strict`` is off.

    Raises:
        ValidationError: if the value is out of range, or cannot be parsed and
            ``strict`` is set
    """
    if value is None:
        return default
    if isinstance(value, bool):
        if strict:
            raise ValidationError(f'{field} must be a number.', {field: value})
        return default
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return default
    if isinstance(value, float):
        value = repr(value)
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        if strict:
            raise ValidationError(f'{field} must be a number.', {field: value})
        return default
    if not result.is_finite():
        if strict:
            raise ValidationError(f'{field} must be a finite number.', {field: str(value)})
        return default
    return _check_range(result, field)


def quantize(value, field='amount') -> Decimal:
    """Round to two decimal places; None counts as zero."""
    if value is None:
        return ZERO
    try:
        return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f'{field} is too large.', {field: str(value)})


def format_money(value):
    if value is None:
        return None
    return str(quantize(value))


def sum_breakdown(breakdown) -> Decimal:
    """Sum an expense breakdown, treating empty or non-numeric entries as 0."""
    total = Decimal(0)
    for key, amount in (breakdown or {}).items():
        total += to_decimal(amount, default=Decimal(0), strict=False, field=f'expenses.{key}')
    return _check_range(quantize(total, 'expenses'), 'expenses')
