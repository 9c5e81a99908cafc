"""
Module: estate_kernel.db.types
Responsibility: Annotated column aliases and the sanctioned rounding helpers
    for money and land area.
Architecture position: Kernel > DB.  Imported by models, engines and
    services; imports nothing from them.

Money is kept to two places at every business boundary (receipts,
schedules, settlements). Columns keep nine places so stored values never
lose precision relative to what the engines computed.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String

Money = Annotated[Decimal, Numeric(38, 9)]
Area = Annotated[Decimal, Numeric(38, 9)]
ShortCode = Annotated[str, String(50)]
LongText = Annotated[str, String(2000)]

MONEY_DECIMAL_PLACES = 2
AREA_DECIMAL_PLACES = 4
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def round_money(value: Decimal, decimal_places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """Quantize a monetary amount with ROUND_HALF_UP."""
    quantizer = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantizer, rounding=DEFAULT_ROUNDING)


def round_area(value: Decimal) -> Decimal:
    return round_money(value, AREA_DECIMAL_PLACES)


def to_decimal(value: object, field: str = "amount") -> Decimal:
    """
    Coerce request input (str/int/Decimal) to Decimal.

    Floats are refused outright; they carry binary rounding error.

    Raises:
        ValidationError: on float, bool, or unparseable input.
    """
    from estate_kernel.exceptions import ValidationError

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{field} must be a Decimal, int or str", field=field)
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation as exc:
            raise ValidationError(f"{field} is not a number: {value!r}", field=field) from exc
    else:
        raise ValidationError(f"{field} has unsupported type {type(value).__name__}", field=field)
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite", field=field)
    return result
