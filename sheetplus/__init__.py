"""`sheetplus` maps typed records to spreadsheet rows and back."""

# Module responsibilities:
# - Re-export the export/import entry points, declaration helpers and options so consumers have a stable API surface.

from __future__ import annotations

from .errors import (
    CodecError,
    EmptyInputError,
    OptionsError,
    SchemaError,
    SheetIoError,
    SheetNotFoundError,
    SheetPlusError,
    TemplateError,
)
from .excel_reader import EagerTraversal, SheetInfo, StreamingTraversal, read_raw_rows, read_records
from .excel_writer import build_document, export_to_bytes, export_to_file, write_records
from .mapping import Column, RecordAssembler, RecordSpec, resolve_schema, sheet_record, spec_for
from .options import ReadOptions, WriteOptions, load_read_options, load_write_options
from .records import RecordStream
from .schema import ExportFormat, FieldMapping, ParseMode, RecordSchema, WriteLayout
from .styles import CellStyle, StyleRule, equals, match_row_style

__all__ = [
    "CellStyle",
    "CodecError",
    "Column",
    "EagerTraversal",
    "EmptyInputError",
    "ExportFormat",
    "FieldMapping",
    "OptionsError",
    "ParseMode",
    "ReadOptions",
    "RecordAssembler",
    "RecordSchema",
    "RecordSpec",
    "RecordStream",
    "SchemaError",
    "SheetInfo",
    "SheetIoError",
    "SheetNotFoundError",
    "SheetPlusError",
    "StreamingTraversal",
    "StyleRule",
    "TemplateError",
    "WriteLayout",
    "WriteOptions",
    "build_document",
    "equals",
    "export_to_bytes",
    "export_to_file",
    "load_read_options",
    "load_write_options",
    "match_row_style",
    "read_raw_rows",
    "read_records",
    "resolve_schema",
    "sheet_record",
    "spec_for",
    "write_records",
]

__version__ = "0.1.0"
