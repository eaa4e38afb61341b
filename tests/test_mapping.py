"""Unit tests for column declarations, schema resolution and record assembly."""

# Module responsibilities:
# - Validate ordering/exclusion rules of resolve_schema and its failure modes.
# - Assert that raw rows are converted back into typed records.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path

import pytest

from sheetplus.errors import SchemaError
from sheetplus.mapping import Column, RecordAssembler, RecordSpec, resolve_schema, sheet_record, spec_for
from tests.models import CardSecret, Undeclared


@dataclass
class Ledger:
    account: str = ""
    balance: Decimal = Decimal("0")
    note: str = ""


def test_resolve_schema_orders_by_column_index() -> None:
    spec = RecordSpec(
        Ledger,
        (
            Column("note", index=5, name="Note"),
            Column("account", index=0, name="Account"),
            Column("balance", index=2, name="Balance", type=Decimal),
        ),
    )

    schema = resolve_schema(spec)

    assert [m.source_field for m in schema] == ["account", "balance", "note"]
    assert schema.column_indexes == (0, 2, 5)
    assert schema.max_column_index == 5


def test_resolve_schema_drops_excluded_columns() -> None:
    spec = RecordSpec(
        Ledger,
        (
            Column("account", index=0, name="Account"),
            Column("note", index=1, name="Note", included=False),
        ),
    )

    assert [m.source_field for m in resolve_schema(spec)] == ["account"]


def test_resolve_schema_returns_fresh_schema_per_call() -> None:
    spec = spec_for(CardSecret)

    first = resolve_schema(spec)
    second = resolve_schema(spec)

    assert first == second
    assert first is not second


@pytest.mark.parametrize(
    "columns",
    [
        (),
        (Column("account", index=0, name="Account", included=False),),
        (Column("account", index=-1, name="Account"),),
        (Column("account", index=1, name="Account"), Column("note", index=1, name="Note")),
    ],
)
def test_resolve_schema_rejects_invalid_layouts(columns) -> None:
    with pytest.raises(SchemaError):
        resolve_schema(RecordSpec(Ledger, tuple(columns)))


def test_spec_for_requires_declaration() -> None:
    with pytest.raises(SchemaError):
        spec_for(Undeclared)


def test_sheet_record_attaches_spec() -> None:
    @sheet_record(Column("account", index=0, name="Account"))
    @dataclass
    class Entry:
        account: str = ""

    spec = spec_for(Entry)
    assert spec.record_type is Entry
    assert spec.columns[0].name == "Account"


def test_from_yaml_loads_columns(tmp_path: Path) -> None:
    path = tmp_path / "ledger.yaml"
    path.write_text(
        "columns:\n"
        "  account: {index: 0, name: Account}\n"
        "  balance: {index: 1, name: Balance, type: decimal}\n"
        "  note: {index: 2, name: Note, included: false}\n",
        encoding="utf-8",
    )

    spec = RecordSpec.from_yaml(path, Ledger)
    schema = resolve_schema(spec)

    assert [m.source_field for m in schema] == ["account", "balance"]
    assert schema.fields[1].converter is Decimal


def test_from_yaml_rejects_unknown_type(tmp_path: Path) -> None:
    path = tmp_path / "ledger.yaml"
    path.write_text("columns:\n  account: {index: 0, name: Account, type: money}\n", encoding="utf-8")

    with pytest.raises(SchemaError):
        RecordSpec.from_yaml(path, Ledger)


def test_assembler_converts_declared_types() -> None:
    assembler = RecordAssembler(spec_for(CardSecret))

    record = assembler.assemble({0: "2", 1: "abc", 2: "10.5", 3: "false"}, row_index=1)

    assert record == CardSecret(2, "abc", Decimal("10.5"), False)


def test_assembler_keeps_blank_rows_as_default_records() -> None:
    assembler = RecordAssembler(spec_for(CardSecret))

    record = assembler.assemble({0: None, 1: None, 2: None, 3: None})

    assert record == CardSecret()


def test_assembler_reports_unconvertible_text() -> None:
    assembler = RecordAssembler(spec_for(CardSecret))

    with pytest.raises(SchemaError, match="card_type"):
        assembler.assemble({0: "one", 1: "abc", 2: "1", 3: "true"}, row_index=3)


def test_from_yaml_rejects_non_integer_index(tmp_path: Path) -> None:
    path = tmp_path / "ledger.yaml"
    path.write_text("columns:\n  account: {index: first, name: Account}\n", encoding="utf-8")

    with pytest.raises(SchemaError, match="account"):
        RecordSpec.from_yaml(path, Ledger)
