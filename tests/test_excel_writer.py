"""Unit tests for record export."""

# Module responsibilities:
# - Validate title/header/body placement for both container formats.
# - Assert whole-row conditional styling, template appends and sink handling on failure.

from __future__ import annotations

import io
from pathlib import Path

import pytest
import xlrd
import xlwt
from openpyxl import Workbook, load_workbook

from sheetplus.errors import CodecError, EmptyInputError, SchemaError, TemplateError
from sheetplus.excel_writer import export_to_bytes, export_to_file, write_records
from sheetplus.options import WriteOptions
from sheetplus.schema import ExportFormat
from sheetplus.styles import CellStyle, StyleRule, equals
from tests.models import Undeclared

PINK = CellStyle(fill_color="FCE4EC", font_name="Arial", font_size=12, wrap_text=True)
ROSE = CellStyle(fill_color="FFEBEE", font_name="Arial", font_size=13, wrap_text=True)
PLAIN = CellStyle(fill_color="FFFFFF")


class _CapturingStream(io.BytesIO):
    def __init__(self) -> None:
        super().__init__()
        self.close_calls = 0
        self.captured = b""

    def close(self) -> None:
        self.close_calls += 1
        if not self.closed:
            self.captured = self.getvalue()
        super().close()


def _rows(ws) -> list:
    return [list(row) for row in ws.iter_rows(values_only=True)]


def test_export_rejects_empty_input(tmp_path: Path) -> None:
    with pytest.raises(EmptyInputError):
        export_to_file([], tmp_path / "empty.xlsx", WriteOptions(format=ExportFormat.XLSX))
    assert not (tmp_path / "empty.xlsx").exists()


def test_export_requires_declared_columns() -> None:
    with pytest.raises(SchemaError):
        export_to_bytes([Undeclared("x")])


def test_xlsx_export_without_title(tmp_path: Path, card_secrets) -> None:
    out = export_to_file(card_secrets, tmp_path / "cards.xlsx", WriteOptions(format=ExportFormat.XLSX))

    ws = load_workbook(out).worksheets[0]
    rows = _rows(ws)
    assert ws.title == "Sheet0"
    assert rows[0] == ["Card type", "Secret", "Amount", "Used"]
    assert rows[1] == [1, "vlfdzepjmlz2y43z7er4", 20, "true"]
    assert [row[1] for row in rows[1:]] == [c.secret for c in card_secrets]
    assert len(rows) == 5
    assert ws["C2"].data_type == "n"
    assert ws["D2"].data_type == "s"
    assert not ws.merged_cells.ranges


def test_xlsx_export_with_title_merges_and_shifts(tmp_path: Path, card_secrets) -> None:
    options = WriteOptions(format=ExportFormat.XLSX, title="Card secrets, season one", sheet_name="Cards")
    out = export_to_file(card_secrets, tmp_path / "titled.xlsx", options)

    ws = load_workbook(out)["Cards"]
    rows = _rows(ws)
    assert [str(rng) for rng in ws.merged_cells.ranges] == ["A1:D1"]
    assert ws["A1"].value == "Card secrets, season one"
    assert rows[1] == ["Card type", "Secret", "Amount", "Used"]
    assert rows[2][1] == card_secrets[0].secret
    assert len(rows) == 6


def test_xls_export_with_title(tmp_path: Path, card_secrets) -> None:
    out = export_to_file(card_secrets, tmp_path / "cards.xls", WriteOptions(title="Cards"))

    book = xlrd.open_workbook(str(out), formatting_info=True)
    sheet = book.sheet_by_index(0)
    assert sheet.merged_cells == [(0, 1, 0, 4)]
    assert sheet.cell_value(0, 0) == "Cards"
    assert sheet.row_values(1) == ["Card type", "Secret", "Amount", "Used"]
    assert sheet.cell(2, 0).ctype == xlrd.XL_CELL_NUMBER
    assert sheet.cell(2, 3).ctype == xlrd.XL_CELL_TEXT
    assert sheet.nrows == 6


def test_special_rules_style_whole_rows(tmp_path: Path, card_secrets) -> None:
    options = WriteOptions(
        format=ExportFormat.XLSX,
        column_style=PLAIN,
        special_rules=(
            StyleRule(equals("vlfdzepjmlz2y43z7er4"), PINK),
            StyleRule(equals("rasefq2rzotsmx526z6g"), ROSE),
        ),
    )
    out = export_to_file(card_secrets, tmp_path / "styled.xlsx", options)

    ws = load_workbook(out).worksheets[0]
    fills = [[ws.cell(row=r, column=c).fill.fgColor.rgb[-6:] for c in range(1, 5)] for r in range(2, 6)]
    assert fills[0] == ["FCE4EC"] * 4
    assert fills[1] == ["FFEBEE"] * 4
    assert fills[2] == ["FFFFFF"] * 4
    assert fills[3] == ["FFFFFF"] * 4
    assert ws["B2"].font.name == "Arial"


def test_special_rules_in_xls(tmp_path: Path, card_secrets) -> None:
    options = WriteOptions(special_rules=(StyleRule(equals("rasefq2rzotsmx526z6g"), ROSE),))
    out = export_to_file(card_secrets, tmp_path / "styled.xls", options)

    book = xlrd.open_workbook(str(out), formatting_info=True)
    sheet = book.sheet_by_index(0)
    special = {sheet.cell_xf_index(2, col) for col in range(4)}
    plain = {sheet.cell_xf_index(1, col) for col in range(4)}
    assert len(special) == 1
    assert special.isdisjoint(plain)


def test_template_export_appends_body(tmp_path: Path, card_secrets) -> None:
    template = tmp_path / "tpl.xlsx"
    wb = Workbook()
    ws = wb.active
    ws.title = "Template"
    ws["A1"] = "Card list"
    ws.append(["Type", "Code", "Value", "Flag"])
    wb.save(template)

    options = WriteOptions(template=template, start_row=2, title="ignored")
    out = export_to_file(card_secrets, tmp_path / "from_tpl.xlsx", options)

    result = load_workbook(out)["Template"]
    rows = _rows(result)
    assert rows[0][0] == "Card list"
    assert rows[1] == ["Type", "Code", "Value", "Flag"]
    assert rows[2] == [1, "vlfdzepjmlz2y43z7er4", 20, "true"]
    assert len(rows) == 6
    assert not result.merged_cells.ranges


def test_missing_template_raises(tmp_path: Path, card_secrets) -> None:
    with pytest.raises(TemplateError):
        export_to_bytes(card_secrets, WriteOptions(template=tmp_path / "missing.xlsx"))


def test_xls_template_export_appends_body(tmp_path: Path, card_secrets) -> None:
    template = tmp_path / "tpl.xls"
    book = xlwt.Workbook(encoding="utf-8")
    sheet = book.add_sheet("Template")
    sheet.write_merge(0, 0, 0, 3, "Card list")
    for col, header in enumerate(["Type", "Code", "Value", "Flag"]):
        sheet.write(1, col, header)
    book.save(str(template))

    options = WriteOptions(format=ExportFormat.XLSX, template=template, start_row=2, title="ignored")
    out = export_to_file(card_secrets, tmp_path / "from_tpl.xls", options)

    assert out.read_bytes().startswith(b"\xd0\xcf\x11\xe0")
    result = xlrd.open_workbook(str(out), formatting_info=True).sheet_by_index(0)
    assert result.name == "Template"
    assert result.merged_cells == [(0, 1, 0, 4)]
    assert result.cell_value(0, 0) == "Card list"
    assert result.row_values(1) == ["Type", "Code", "Value", "Flag"]
    assert result.row_values(2) == [1.0, "vlfdzepjmlz2y43z7er4", 20.0, "true"]
    assert result.nrows == 6


def test_corrupt_template_raises(tmp_path: Path, card_secrets) -> None:
    template = tmp_path / "tpl.xls"
    template.write_bytes(b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1" + b"\x00" * 32)

    with pytest.raises(TemplateError):
        export_to_bytes(card_secrets, WriteOptions(template=template))


def test_stream_sink_is_closed_once(card_secrets) -> None:
    sink = _CapturingStream()

    write_records(card_secrets, sink, WriteOptions(format=ExportFormat.XLSX))

    assert sink.close_calls == 1
    assert sink.captured.startswith(b"PK")


def test_failure_leaves_no_output_file(tmp_path: Path, card_secrets) -> None:
    def broken_style(builder):
        raise RuntimeError("no styles today")

    target = tmp_path / "broken.xlsx"
    with pytest.raises(CodecError) as excinfo:
        export_to_file(card_secrets, target, WriteOptions(format=ExportFormat.XLSX, header_style=broken_style))

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert not target.exists()
    assert list(tmp_path.iterdir()) == []


def test_failure_closes_stream_sink(card_secrets) -> None:
    sink = _CapturingStream()

    with pytest.raises(EmptyInputError):
        write_records([], sink)

    assert sink.closed
    assert sink.captured == b""


def test_style_factory_receives_native_workbook(card_secrets) -> None:
    seen = []

    def header_style(builder):
        seen.append(builder.native)
        return builder.create_style(CellStyle(bold=True))

    export_to_bytes(card_secrets, WriteOptions(format=ExportFormat.XLSX, header_style=header_style))

    assert isinstance(seen[0], Workbook)
