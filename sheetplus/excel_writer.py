"""Excel output helpers for exporting records."""

# Module responsibilities:
# - Lay out title, header and body rows for a sequence of records.
# - Apply header/title/column styles and whole-row conditional styles.
# - Serialize the finished workbook to a file or stream, leaving no partial output on failure.

from __future__ import annotations

import io
import os
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterable, List, NamedTuple, Optional, Sequence, Union

from .backends import DocumentBuilder, new_document, open_template
from .coercion import render_value, to_cell_value
from .errors import CodecError, EmptyInputError, SheetIoError, SheetPlusError
from .mapping import RecordSpec, resolve_schema, spec_for
from .options import WriteOptions
from .schema import RecordSchema, WriteLayout
from .styles import (
    DEFAULT_COLUMN_STYLE,
    DEFAULT_HEADER_STYLE,
    DEFAULT_TITLE_STYLE,
    StyleHandle,
    match_row_style,
)
from .utils.log import get_logger

logger = get_logger("excel_writer")

Sink = Union[str, Path, BinaryIO]


class _ResolvedRule(NamedTuple):
    predicate: Any
    style: StyleHandle


class _Styles(NamedTuple):
    title: Optional[StyleHandle]
    header: Optional[StyleHandle]
    column: Optional[StyleHandle]
    rules: List[_ResolvedRule]


def _resolve_styles(document: DocumentBuilder, options: WriteOptions, *, use_template: bool) -> _Styles:
    if use_template:
        # Template formatting wins unless a body style is asked for explicitly.
        title = header = None
        column = options.column_style(document) if options.column_style else None
    else:
        title = (options.title_style or DEFAULT_TITLE_STYLE)(document)
        header = (options.header_style or DEFAULT_HEADER_STYLE)(document)
        column = (options.column_style or DEFAULT_COLUMN_STYLE)(document)
    rules = [_ResolvedRule(rule.predicate, rule.style(document)) for rule in options.special_rules]
    return _Styles(title, header, column, rules)


def _write_header(
    document: DocumentBuilder,
    schema: RecordSchema,
    row: int,
    style: Optional[StyleHandle],
    widths: Dict[int, int],
) -> None:
    for mapping in schema:
        document.write_cell(row, mapping.column_index, mapping.column_name, style)
        widths[mapping.column_index] = max(widths.get(mapping.column_index, 0), len(mapping.column_name))


def _write_rows(
    document: DocumentBuilder,
    schema: RecordSchema,
    records: Sequence[Any],
    start_row: int,
    styles: _Styles,
    widths: Dict[int, int],
) -> int:
    row_idx = start_row
    for record in records:
        texts = [render_value(record, mapping) for mapping in schema]
        row_style = match_row_style(texts, styles.rules)
        if row_style is None:
            row_style = styles.column
        for mapping, text in zip(schema, texts):
            document.write_cell(row_idx, mapping.column_index, to_cell_value(text), row_style)
            if text is not None:
                widths[mapping.column_index] = max(widths.get(mapping.column_index, 0), len(text))
        row_idx += 1
    return row_idx


def build_document(
    records: Iterable[Any],
    options: Optional[WriteOptions] = None,
    spec: Optional[RecordSpec] = None,
) -> DocumentBuilder:
    """Lay out *records* into a new in-memory workbook without serializing it.

    Args:
        records: Non-empty sequence of records sharing one record type.
        options: Export settings; defaults to :class:`WriteOptions` defaults.
        spec: Column layout; defaults to the spec attached to the first record's type.

    Returns:
        The populated document builder.

    Raises:
        EmptyInputError: When *records* is empty.
        SchemaError: When the record type has no usable column layout.
        TemplateError: When the configured template cannot be opened.
        CodecError: When the workbook codec rejects a value or style.
    """

    options = options or WriteOptions()
    rows = list(records)
    if not rows:
        raise EmptyInputError("Export excel data is empty.")

    schema = resolve_schema(spec or spec_for(type(rows[0])))
    use_template = options.template is not None
    layout = WriteLayout.plan(
        schema, title=options.title, start_row=options.start_row, use_template=use_template
    )

    logger.info(
        "Starting Excel export",
        extra={
            "rows": len(rows),
            "columns": [mapping.source_field for mapping in schema],
            "format": options.format.value,
            "template": str(options.template) if use_template else None,
            "body_start_row": layout.body_start_row_index,
        },
    )

    try:
        if use_template:
            document: DocumentBuilder = open_template(options.template)  # type: ignore[arg-type]
        else:
            document = new_document(options.format, options.sheet_name)
        styles = _resolve_styles(document, options, use_template=use_template)

        widths: Dict[int, int] = {}
        if layout.title_row_present:
            document.merge_row(0, 0, layout.max_column_index, options.title, styles.title)
        if layout.header_row_index is not None:
            _write_header(document, schema, layout.header_row_index, styles.header, widths)
        _write_rows(document, schema, rows, layout.body_start_row_index, styles, widths)
        for col, chars in widths.items():
            document.set_column_width(col, chars)
    except SheetPlusError:
        raise
    except Exception as exc:  # pylint: disable=broad-except
        logger.error("Excel export failed", extra={"error": str(exc)})
        raise CodecError(f"Failed to build workbook: {exc}") from exc
    return document


def _serialize(document: DocumentBuilder, stream: BinaryIO) -> None:
    try:
        document.save(stream)
    except OSError:
        raise
    except Exception as exc:  # pylint: disable=broad-except
        raise CodecError(f"Failed to serialize workbook: {exc}") from exc


def _save_to_path(document: DocumentBuilder, path: Path) -> None:
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tmp_path.open("wb") as fh:
            _serialize(document, fh)
        os.replace(tmp_path, path)
    except OSError as exc:
        raise SheetIoError(f"Failed to write workbook: {path}") from exc
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def _save_to_stream(document: DocumentBuilder, stream: BinaryIO) -> None:
    try:
        _serialize(document, stream)
        stream.flush()
    except OSError as exc:
        raise SheetIoError("Failed to write workbook to stream") from exc
    finally:
        stream.close()


def write_records(
    records: Iterable[Any],
    sink: Sink,
    options: Optional[WriteOptions] = None,
    spec: Optional[RecordSpec] = None,
) -> None:
    """Export *records* into *sink*, a filesystem path or a binary stream.

    A path sink is replaced only after the workbook serialized successfully. A stream
    sink is owned by the call: it is closed on every exit path.
    """

    try:
        document = build_document(records, options, spec)
    except SheetPlusError:
        if not isinstance(sink, (str, Path)):
            sink.close()
        raise

    if isinstance(sink, (str, Path)):
        _save_to_path(document, Path(sink))
        logger.info("Excel export written", extra={"output": str(sink)})
    else:
        _save_to_stream(document, sink)
        logger.info("Excel export written to stream")


def export_to_file(
    records: Iterable[Any],
    path: Union[str, Path],
    options: Optional[WriteOptions] = None,
    spec: Optional[RecordSpec] = None,
) -> Path:
    """Export *records* to *path* and return it."""

    target = Path(path)
    write_records(records, target, options, spec)
    return target


def export_to_bytes(
    records: Iterable[Any],
    options: Optional[WriteOptions] = None,
    spec: Optional[RecordSpec] = None,
) -> bytes:
    """Export *records* and return the serialized workbook."""

    document = build_document(records, options, spec)
    buffer = io.BytesIO()
    try:
        _serialize(document, buffer)
    except OSError as exc:
        raise SheetIoError("Failed to serialize workbook") from exc
    return buffer.getvalue()
