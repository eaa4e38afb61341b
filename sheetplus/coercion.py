"""Value rendering between record fields and cell text."""

# Module responsibilities:
# - Render a record field as cell text and decide numeric vs text cells lexically.
# - Normalize raw cell values from either codec back to text.
# - Parse cell text into the declared field type on import.

from __future__ import annotations

import re
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional, Union

from .schema import FieldMapping

CellValue = Union[int, float, str, None]

_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")
_TRUE_TOKENS = frozenset({"true", "1", "yes"})
_FALSE_TOKENS = frozenset({"false", "0", "no"})


def is_number(text: str) -> bool:
    """Return True when *text* is a plain decimal real number (no separators, no exponent)."""

    return bool(_NUMBER_RE.match(text))


def value_to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        # Plain notation keeps the numeric inference working for e.g. Decimal("1E+2").
        return format(value, "f")
    return str(value)


def render_value(record: Any, mapping: FieldMapping) -> Optional[str]:
    """Return the mapped field of *record* rendered as text, or None when unset."""

    return value_to_text(getattr(record, mapping.source_field, None))


def to_cell_value(text: Optional[str]) -> CellValue:
    """Pick the value written into a cell for rendered *text*.

    Numeric literals become numbers (integers stay exact); anything else stays text.
    """

    if text is None:
        return None
    if not is_number(text):
        return text
    if "." in text:
        return float(text)
    return int(text)


def cell_to_text(value: Any) -> Optional[str]:
    """Normalize a value read from a cell back into text; blanks become None."""

    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    text = str(value)
    return text if text != "" else None


def _parse_bool(text: str) -> bool:
    token = text.strip().lower()
    if token in _TRUE_TOKENS:
        return True
    if token in _FALSE_TOKENS:
        return False
    raise ValueError(f"not a boolean: {text!r}")


def _parse_int(text: str) -> int:
    try:
        return int(text)
    except ValueError:
        number = Decimal(text)
        if number != number.to_integral_value():
            raise ValueError(f"not an integer: {text!r}") from None
        return int(number)


def _parse_decimal(text: str) -> Decimal:
    try:
        return Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"not a decimal: {text!r}") from exc


def _parse_date(text: str) -> date:
    return datetime.fromisoformat(text).date() if "T" in text or " " in text else date.fromisoformat(text)


_PARSERS: dict[Any, Callable[[str], Any]] = {
    bool: _parse_bool,
    int: _parse_int,
    float: float,
    Decimal: _parse_decimal,
    str: str,
    date: _parse_date,
    datetime: datetime.fromisoformat,
    time: time.fromisoformat,
}


def parse_text(text: str, converter: Callable[[str], Any]) -> Any:
    """Convert cell *text* with the field's declared converter.

    Builtin scalar types get lenient parsers (``"20.0"`` is a valid ``int``,
    ``"yes"`` a valid ``bool``); any other callable is applied as-is.
    """

    parser = _PARSERS.get(converter, converter)
    return parser(text)
