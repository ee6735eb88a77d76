"""
Numeric boundary for the stock kernel.

Responsibility:
    The single place where caller-supplied numbers become ``Decimal``.
    Every engine converts its inputs here exactly once; nothing downstream
    branches on numeric type.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Imported by engines and services.

Invariants enforced:
    - No floats past the boundary.  Floats are converted through ``str``
      so that 25.5 becomes Decimal("25.5"), not its binary expansion.
    - Non-finite values (NaN, +/-Infinity) and booleans are rejected with
      a ValidationError naming the field.
    - Locked output precision: WAC 4 places, money 2 places, quantities
      4 places, percentages 2 places, ROUND_HALF_UP.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from stock_kernel.exceptions import ValidationError

Numeric = Union[Decimal, int, float, str]

WAC_PLACES = 4
MONEY_PLACES = 2
QUANTITY_PLACES = 4
PERCENT_PLACES = 2

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Numeric, field: str) -> Decimal:
    """
    Convert a caller-supplied number to a finite Decimal.

    Raises:
        ValidationError: value is None, a bool, unparseable, or non-finite.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(field, "must be a finite number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, (float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(field, "must be a finite number") from None
    else:
        raise ValidationError(field, "must be a finite number")

    if not result.is_finite():
        raise ValidationError(field, "must be a finite number")
    return result


def quantize(value: Decimal, places: int) -> Decimal:
    """Round to a fixed number of decimal places, ROUND_HALF_UP."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def round_money(value: Decimal) -> Decimal:
    return quantize(value, MONEY_PLACES)


def round_wac(value: Decimal) -> Decimal:
    return quantize(value, WAC_PLACES)


def round_quantity(value: Decimal) -> Decimal:
    return quantize(value, QUANTITY_PLACES)


def round_percent(value: Decimal) -> Decimal:
    return quantize(value, PERCENT_PLACES)
