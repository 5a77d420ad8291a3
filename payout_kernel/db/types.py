"""
Module: payout_kernel.db.types
Responsibility: Column type aliases, money helpers and the persistence-side
    normalization of boolean flags.
Architecture position: Kernel > DB.  May be imported by models, engines and
    services.  MUST NOT import from any of those layers.

Invariants enforced:
    - round_money() is the only rounding function for money (ROUND_HALF_UP
      to cents by default).
    - Money outputs never carry a negative zero.
    - Flags read from storage are strict ``bool`` values: FlexibleBoolean
      and coerce_flag() accept True/False, 0/1 and the strings
      "true"/"false"/"1"/"0"/"yes"/"no"/"on"/"off" and nothing else.

Failure modes:
    - ValueError from coerce_flag() on an unrecognized representation.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import Boolean
from sqlalchemy.types import TypeDecorator


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")
CENTS = Decimal("0.01")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value; the result is never ``-0``."""
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    rounded = value.quantize(Decimal(quantize_str), rounding=rounding)
    if rounded.is_zero():
        return abs(rounded)
    return rounded


def to_decimal(value: Any) -> Decimal:
    """Coerce a stored or user-supplied number to Decimal (None -> 0)."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def to_cents(value: Decimal) -> int:
    """Integer minor units, as transfer APIs expect."""
    return int(round_money(value) * 100)


_TRUE_STRINGS = frozenset({"true", "1", "yes", "on", "t", "y"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off", "f", "n", ""})


def coerce_flag(value: Any) -> bool:
    """
    Normalize a heterogeneous truthy value to ``bool``.

    None is False.  Numbers are compared against zero.

    Raises:
        ValueError: If a string is not a recognized flag spelling.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise ValueError(f"Cannot interpret {value!r} as a boolean flag")


class FlexibleBoolean(TypeDecorator):
    """
    Boolean column that tolerates legacy representations on the way in.

    Imports and older rows store flags as 0/1 or "true"/"false"; both
    directions pass through coerce_flag() so the domain only sees bool.
    """

    impl = Boolean
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return coerce_flag(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return coerce_flag(value)
