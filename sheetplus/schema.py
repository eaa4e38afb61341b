"""Shared schemas for record <-> sheet layouts."""

# Module responsibilities:
# - Provide strongly typed containers for resolved column layouts.
# - Define the enumerations selecting container format and traversal strategy.

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

RawRow = Dict[int, Optional[str]]
"""Column index -> cell text (``None`` when blank) for one sheet row."""


class ExportFormat(str, Enum):
    """Container formats a new workbook can be created in."""

    XLS = "xls"
    XLSX = "xlsx"

    @property
    def suffix(self) -> str:
        return f".{self.value}"


class ParseMode(str, Enum):
    """Traversal strategies used when reading a workbook."""

    EAGER = "eager"
    STREAMING = "streaming"


@dataclass(frozen=True)
class FieldMapping:
    """One record field bound to one sheet column."""

    column_index: int
    column_name: str
    source_field: str
    converter: Callable[[str], Any] = str
    default: Any = None


@dataclass(frozen=True)
class RecordSchema:
    """Ordered field <-> column mapping for one record type."""

    record_type: type
    fields: Tuple[FieldMapping, ...]

    def __iter__(self) -> Iterator[FieldMapping]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    @property
    def column_indexes(self) -> Tuple[int, ...]:
        return tuple(mapping.column_index for mapping in self.fields)

    @property
    def max_column_index(self) -> int:
        return max(self.column_indexes)


@dataclass(frozen=True)
class WriteLayout:
    """Row placement computed for one export call."""

    title_row_present: bool
    header_row_index: Optional[int]
    body_start_row_index: int
    max_column_index: int

    @classmethod
    def plan(
        cls,
        schema: RecordSchema,
        *,
        title: Optional[str],
        start_row: int,
        use_template: bool,
    ) -> "WriteLayout":
        """Derive title/header/body placement from the schema and write options."""

        if use_template:
            # Template rows are kept verbatim; only the body is appended.
            return cls(
                title_row_present=False,
                header_row_index=None,
                body_start_row_index=start_row,
                max_column_index=schema.max_column_index,
            )
        shift = 1 if title is not None else 0
        return cls(
            title_row_present=bool(shift),
            header_row_index=shift,
            body_start_row_index=start_row + shift,
            max_column_index=schema.max_column_index,
        )
