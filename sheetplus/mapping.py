"""Column mapping declarations for record types."""

# Module responsibilities:
# - Describe per-field export metadata explicitly (in code or YAML) instead of reflecting on types.
# - Resolve an ordered RecordSchema per call and rebuild records from raw rows.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Type, TypeVar

import yaml

from .coercion import parse_text
from .errors import SchemaError
from .schema import FieldMapping, RawRow, RecordSchema

T = TypeVar("T")

SPEC_ATTR = "__sheet_spec__"

_YAML_TYPES: Dict[str, Callable[[str], Any]] = {
    "str": str,
    "int": int,
    "float": float,
    "decimal": Decimal,
    "bool": bool,
    "date": date,
    "datetime": datetime,
    "time": time,
}


@dataclass(frozen=True)
class Column:
    """Export metadata for one record field."""

    field: str
    index: int
    name: str
    type: Callable[[str], Any] = str
    included: bool = True
    default: Any = None


@dataclass(frozen=True)
class RecordSpec:
    """Declarative column layout of a record type.

    ``factory`` builds a record from keyword arguments and defaults to the record
    type itself, which suits dataclasses and plain ``__init__(**fields)`` classes.
    """

    record_type: type
    columns: Tuple[Column, ...]
    factory: Optional[Callable[..., Any]] = field(default=None, compare=False)

    def build(self, **values: Any) -> Any:
        return (self.factory or self.record_type)(**values)

    @classmethod
    def from_yaml(cls, path: Path, record_type: type) -> "RecordSpec":
        """Load column metadata for *record_type* from a YAML file.

        Expected layout::

            columns:
              card_type: {index: 0, name: Card type, type: int}
              secret: {index: 1, name: Secret}
        """

        try:
            with path.open("r", encoding="utf-8") as fh:
                payload = yaml.safe_load(fh)
        except OSError as exc:
            raise SchemaError(f"Cannot read record spec YAML: {path}") from exc
        except yaml.YAMLError as exc:
            raise SchemaError(f"Invalid record spec YAML: {path}") from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("columns"), dict):
            raise SchemaError("Record spec YAML must contain a 'columns' mapping")

        columns = []
        for field_name, meta in payload["columns"].items():
            if not isinstance(meta, dict):
                raise SchemaError(f"Column '{field_name}' must be a mapping")
            if missing := {"index", "name"} - meta.keys():
                raise SchemaError(
                    f"Column '{field_name}' missing keys: {', '.join(sorted(missing))}"
                )
            try:
                index = int(meta["index"])
            except (TypeError, ValueError) as exc:
                raise SchemaError(f"Column '{field_name}' index must be an integer") from exc
            type_name = str(meta.get("type", "str")).lower()
            if type_name not in _YAML_TYPES:
                raise SchemaError(f"Column '{field_name}' has unknown type '{type_name}'")
            columns.append(
                Column(
                    field=str(field_name),
                    index=index,
                    name=str(meta["name"]),
                    type=_YAML_TYPES[type_name],
                    included=bool(meta.get("included", True)),
                    default=meta.get("default"),
                )
            )
        return cls(record_type=record_type, columns=tuple(columns))


def sheet_record(*columns: Column, factory: Optional[Callable[..., Any]] = None):
    """Class decorator attaching a :class:`RecordSpec` built from *columns*."""

    def decorate(cls: Type[T]) -> Type[T]:
        setattr(cls, SPEC_ATTR, RecordSpec(record_type=cls, columns=tuple(columns), factory=factory))
        return cls

    return decorate


def spec_for(record_type: type) -> RecordSpec:
    """Return the spec attached to *record_type* by :func:`sheet_record`."""

    spec = getattr(record_type, SPEC_ATTR, None)
    if not isinstance(spec, RecordSpec):
        raise SchemaError(f"{record_type.__name__} declares no sheet columns")
    return spec


def resolve_schema(spec: RecordSpec) -> RecordSchema:
    """Compute the ordered column layout for one export/import call.

    Excluded columns are dropped and the rest sorted by column index; the sort is
    stable so declaration order is kept for equal indexes, which are rejected anyway.
    """

    included = [column for column in spec.columns if column.included]
    seen: Dict[int, str] = {}
    for column in included:
        if column.index < 0:
            raise SchemaError(f"Column '{column.field}' has negative index {column.index}")
        if column.index in seen:
            raise SchemaError(
                f"Columns '{seen[column.index]}' and '{column.field}' share index {column.index}"
            )
        seen[column.index] = column.field
    if not included:
        raise SchemaError(f"{spec.record_type.__name__} has no exportable fields")

    ordered = sorted(included, key=lambda column: column.index)
    return RecordSchema(
        record_type=spec.record_type,
        fields=tuple(
            FieldMapping(
                column_index=column.index,
                column_name=column.name,
                source_field=column.field,
                converter=column.type,
                default=column.default,
            )
            for column in ordered
        ),
    )


class RecordAssembler:
    """Rebuild records from raw rows using the spec's converters."""

    def __init__(self, spec: RecordSpec, schema: Optional[RecordSchema] = None) -> None:
        self.spec = spec
        self.schema = schema or resolve_schema(spec)

    def assemble(self, row: RawRow, row_index: Optional[int] = None) -> Any:
        values: Dict[str, Any] = {}
        for mapping in self.schema:
            text = row.get(mapping.column_index)
            if text is None:
                values[mapping.source_field] = mapping.default
                continue
            try:
                values[mapping.source_field] = parse_text(text, mapping.converter)
            except (ValueError, TypeError, ArithmeticError) as exc:
                raise SchemaError(
                    f"Cannot convert {text!r} for field '{mapping.source_field}' at row {row_index}"
                ) from exc
        try:
            return self.spec.build(**values)
        except TypeError as exc:
            raise SchemaError(
                f"Cannot build {self.spec.record_type.__name__} from row {row_index}"
            ) from exc


def columns_of(schema: RecordSchema) -> Sequence[str]:
    """Return the mapped field names in column order."""

    return [mapping.source_field for mapping in schema]
