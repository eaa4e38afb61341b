"""Excel input helpers for importing records."""

# Module responsibilities:
# - Acquire a workbook source (path or stream) and detect its container format.
# - Traverse the selected sheet either eagerly (whole workbook in memory) or as a stream.
# - Turn raw rows into records through the record spec, as a lazy single-pass stream.

from __future__ import annotations

import io
import zipfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Iterator, Optional, Sequence, Tuple, Union

import xlrd
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .backends import detect_format
from .coercion import cell_to_text
from .errors import CodecError, SheetIoError, SheetNotFoundError, SheetPlusError
from .mapping import RecordAssembler, RecordSpec, columns_of, resolve_schema, spec_for
from .options import ReadOptions
from .records import RecordStream
from .schema import ExportFormat, ParseMode, RawRow, RecordSchema
from .utils.log import get_logger

logger = get_logger("excel_reader")

Source = Union[str, Path, BinaryIO]
ValueRows = Iterator[Sequence[Any]]

_CODEC_ERRORS = (InvalidFileException, zipfile.BadZipFile, xlrd.XLRDError, KeyError, ValueError, EOFError)


@dataclass(frozen=True)
class SheetInfo:
    """Metadata of the sheet being traversed."""

    name: str
    index: int
    sheet_names: Tuple[str, ...]
    row_count: Optional[int] = None


@contextmanager
def _acquire(source: Source) -> Iterator[BinaryIO]:
    """Yield a seekable binary stream for *source*; the stream is closed on exit."""

    if isinstance(source, (str, Path)):
        try:
            handle: BinaryIO = open(source, "rb")
        except OSError as exc:
            raise SheetIoError(f"Cannot open workbook: {source}") from exc
    else:
        handle = source
    try:
        if not handle.seekable():
            # Zip containers need random access.
            buffered = io.BytesIO(handle.read())
            handle.close()
            handle = buffered
        yield handle
    except OSError as exc:
        raise SheetIoError("Failed to read workbook source") from exc
    finally:
        handle.close()


def _sniff(stream: BinaryIO) -> ExportFormat:
    head = stream.read(8)
    stream.seek(0)
    return detect_format(head)


def _xlrd_value(cell: Any, datemode: int) -> Any:
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR):
        return None
    if cell.ctype == xlrd.XL_CELL_BOOLEAN:
        return bool(cell.value)
    if cell.ctype == xlrd.XL_CELL_DATE:
        return xlrd.xldate.xldate_as_datetime(cell.value, datemode)
    return cell.value


def _xlrd_rows(book: Any, sheet: Any, start: int) -> ValueRows:
    for row_idx in range(start, sheet.nrows):
        yield [_xlrd_value(cell, book.datemode) for cell in sheet.row(row_idx)]


def _to_raw_row(values: Sequence[Any], columns: Sequence[int]) -> RawRow:
    return {col: cell_to_text(values[col]) if col < len(values) else None for col in columns}


class Traversal(ABC):
    """One strategy for walking the rows of the selected sheet."""

    mode: ParseMode

    def __init__(self, options: ReadOptions) -> None:
        self.options = options
        self.sheet: Optional[SheetInfo] = None

    @abstractmethod
    def _value_rows(self, source: Source) -> ValueRows:
        """Return cell values per row, starting at the configured start row."""

    def rows(self, source: Source, columns: Sequence[int]) -> Iterator[Tuple[int, RawRow]]:
        """Return ``(row_index, RawRow)`` pairs restricted to *columns*."""

        values = self._value_rows(source)
        return self._emit(values, columns)

    def _emit(self, values: ValueRows, columns: Sequence[int]) -> Iterator[Tuple[int, RawRow]]:
        start = self.options.start_row_index
        emitted = 0
        try:
            for offset, row in enumerate(values):
                emitted += 1
                yield start + offset, _to_raw_row(row, columns)
        finally:
            close = getattr(values, "close", None)
            if close is not None:
                close()
            logger.info(
                "Sheet traversal finished",
                extra={"mode": self.mode.value, "start_row": start, "rows_emitted": emitted},
            )


class EagerTraversal(Traversal):
    """Load the whole workbook first; sheets can be picked by name or index."""

    mode = ParseMode.EAGER

    def _value_rows(self, source: Source) -> ValueRows:
        try:
            with _acquire(source) as stream:
                if _sniff(stream) is ExportFormat.XLSX:
                    return self._load_xlsx(stream)
                return self._load_xls(stream)
        except SheetPlusError:
            raise
        except _CODEC_ERRORS as exc:
            raise CodecError(f"Failed to parse workbook: {exc}") from exc

    def _select(self, names: Sequence[str]) -> int:
        if self.options.sheet_name is not None:
            if self.options.sheet_name not in names:
                raise SheetNotFoundError(f"Sheet '{self.options.sheet_name}' not found")
            return list(names).index(self.options.sheet_name)
        if self.options.sheet_index >= len(names):
            raise SheetNotFoundError(
                f"Sheet index {self.options.sheet_index} out of range ({len(names)} sheets)"
            )
        return self.options.sheet_index

    def _load_xlsx(self, stream: BinaryIO) -> ValueRows:
        workbook = load_workbook(stream, data_only=True)
        index = self._select(workbook.sheetnames)
        worksheet = workbook.worksheets[index]
        self.sheet = SheetInfo(
            name=worksheet.title,
            index=index,
            sheet_names=tuple(workbook.sheetnames),
            row_count=worksheet.max_row,
        )
        return worksheet.iter_rows(min_row=self.options.start_row_index + 1, values_only=True)

    def _load_xls(self, stream: BinaryIO) -> ValueRows:
        # formatting_info keeps styled blank cells, so blank rows count as they do in xlsx.
        book = xlrd.open_workbook(file_contents=stream.read(), formatting_info=True)
        names = book.sheet_names()
        index = self._select(names)
        sheet = book.sheet_by_index(index)
        self.sheet = SheetInfo(name=sheet.name, index=index, sheet_names=tuple(names), row_count=sheet.nrows)
        return _xlrd_rows(book, sheet, self.options.start_row_index)


class StreamingTraversal(Traversal):
    """Read rows as the sheet is parsed, keeping memory independent of sheet size.

    The source is opened on the first pull, so open/parse failures surface while
    iterating. Only index-based sheet selection is available.
    """

    mode = ParseMode.STREAMING

    def _value_rows(self, source: Source) -> ValueRows:
        return self._stream(source)

    def _stream(self, source: Source) -> ValueRows:
        try:
            with _acquire(source) as stream:
                if _sniff(stream) is ExportFormat.XLSX:
                    yield from self._stream_xlsx(stream)
                else:
                    yield from self._stream_xls(stream)
        except SheetPlusError:
            raise
        except _CODEC_ERRORS as exc:
            raise CodecError(f"Failed to parse workbook: {exc}") from exc

    def _check_index(self, count: int) -> int:
        if self.options.sheet_index >= count:
            raise SheetNotFoundError(f"Sheet index {self.options.sheet_index} out of range ({count} sheets)")
        return self.options.sheet_index

    def _stream_xlsx(self, stream: BinaryIO) -> ValueRows:
        workbook = load_workbook(stream, read_only=True, data_only=True)
        try:
            index = self._check_index(len(workbook.worksheets))
            worksheet = workbook.worksheets[index]
            # Rely on the row events rather than a possibly stale <dimension> element.
            worksheet.reset_dimensions()
            self.sheet = SheetInfo(name=worksheet.title, index=index, sheet_names=tuple(workbook.sheetnames))
            yield from worksheet.iter_rows(min_row=self.options.start_row_index + 1, values_only=True)
        finally:
            workbook.close()

    def _stream_xls(self, stream: BinaryIO) -> ValueRows:
        # BIFF has no row-event API; on_demand keeps unselected sheets unparsed.
        book = xlrd.open_workbook(file_contents=stream.read(), formatting_info=True, on_demand=True)
        try:
            index = self._check_index(book.nsheets)
            sheet = book.sheet_by_index(index)
            self.sheet = SheetInfo(name=sheet.name, index=index, sheet_names=tuple(book.sheet_names()))
            yield from _xlrd_rows(book, sheet, self.options.start_row_index)
        finally:
            book.release_resources()


def traversal_for(options: ReadOptions) -> Traversal:
    """Return the traversal strategy selected by ``options.parse_mode``."""

    if options.parse_mode is ParseMode.STREAMING:
        return StreamingTraversal(options)
    return EagerTraversal(options)


def read_raw_rows(
    source: Source,
    schema: RecordSchema,
    options: Optional[ReadOptions] = None,
) -> Iterator[RawRow]:
    """Yield the RawRows of *source* for the columns of *schema*."""

    traversal = traversal_for(options or ReadOptions())
    rows = traversal.rows(source, schema.column_indexes)
    try:
        for _, raw in rows:
            yield raw
    finally:
        rows.close()


def _assemble(rows: Iterator[Tuple[int, RawRow]], assembler: RecordAssembler) -> Iterator[Any]:
    try:
        for row_index, raw in rows:
            yield assembler.assemble(raw, row_index)
    finally:
        rows.close()


def read_records(
    source: Source,
    record_type: Optional[type] = None,
    options: Optional[ReadOptions] = None,
    spec: Optional[RecordSpec] = None,
) -> RecordStream[Any]:
    """Read records of *record_type* from *source*.

    Args:
        source: Workbook path or binary stream; the stream is closed when the returned
            sequence is exhausted, fails or is closed.
        record_type: Type decorated with :func:`~sheetplus.mapping.sheet_record`.
        options: Parse mode, sheet selection and start row.
        spec: Explicit column layout, overriding the one attached to *record_type*.

    Returns:
        Lazy single-pass :class:`RecordStream`.

    Raises:
        SchemaError: When no column layout is available.
        CodecError: Eager mode only; streaming failures surface while iterating.
    """

    if spec is None:
        if record_type is None:
            raise TypeError("read_records needs a record_type or a spec")
        spec = spec_for(record_type)
    options = options or ReadOptions()
    schema = resolve_schema(spec)
    traversal = traversal_for(options)

    logger.info(
        "Starting Excel import",
        extra={
            "mode": options.parse_mode.value,
            "sheet_name": options.sheet_name,
            "sheet_index": options.sheet_index,
            "start_row": options.start_row_index,
            "record_type": spec.record_type.__name__,
        },
    )

    rows = traversal.rows(source, schema.column_indexes)
    records = _assemble(rows, RecordAssembler(spec, schema))

    def _close() -> None:
        records.close()
        # A stream handed in by the caller is released even if iteration never started.
        if not isinstance(source, (str, Path)):
            source.close()

    return RecordStream(records, closer=_close, columns=columns_of(schema), sheet=traversal.sheet)
