"""Cell styles and conditional row styling."""

# Module responsibilities:
# - Describe cell styles independently of the workbook codec.
# - Evaluate ordered (predicate, style) rules to pick a row-level style.
# - Provide the default title/header/column styles.

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from .backends import DocumentBuilder

StyleHandle = Any
StyleFactory = Callable[["DocumentBuilder"], StyleHandle]
TextPredicate = Callable[[str], bool]


@dataclass(frozen=True)
class CellStyle:
    """Codec-neutral cell style; usable directly as a :data:`StyleFactory`."""

    font_name: Optional[str] = None
    font_size: Optional[int] = None
    bold: bool = False
    italic: bool = False
    font_color: Optional[str] = None
    fill_color: Optional[str] = None
    horizontal: Optional[str] = None
    vertical: Optional[str] = None
    wrap_text: bool = False
    border: bool = False

    def __call__(self, builder: "DocumentBuilder") -> StyleHandle:
        return builder.create_style(self)


DEFAULT_TITLE_STYLE = CellStyle(font_size=16, bold=True, horizontal="center", vertical="center")
DEFAULT_HEADER_STYLE = CellStyle(
    font_size=12,
    bold=True,
    fill_color="D9D9D9",
    horizontal="center",
    vertical="center",
    border=True,
)
DEFAULT_COLUMN_STYLE = CellStyle(horizontal="left", vertical="center", border=True)


@dataclass(frozen=True)
class StyleRule:
    """Apply ``style`` to a whole row when ``predicate`` accepts any of its cells."""

    predicate: TextPredicate
    style: StyleFactory


def equals(expected: str) -> TextPredicate:
    return lambda text: text == expected


def match_row_style(values: Sequence[Optional[str]], rules: Sequence[Any]) -> Optional[Any]:
    """Return the style paired with the first matching rule, or None.

    Columns are scanned in schema order and, for each column, rules in declaration
    order; the first hit styles the entire row. ``rules`` holds anything exposing
    ``predicate`` and ``style`` so callers can pass resolved handles as well as
    :class:`StyleRule` factories. Blank cells are tested as ``""``.
    """

    if not rules:
        return None
    for value in values:
        text = "" if value is None else value
        for rule in rules:
            if rule.predicate(text):
                return rule.style
    return None
