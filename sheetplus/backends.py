"""Workbook codec adapters used by the writer."""

# Module responsibilities:
# - Hide openpyxl (zip/XML) and xlwt (legacy binary) behind one DocumentBuilder interface.
# - Translate codec-neutral CellStyle values into codec styles, once per distinct style.
# - Acquire the target sheet: a fresh workbook or the first sheet of a template.

from __future__ import annotations

import zipfile
from abc import ABC, abstractmethod
from itertools import count
from pathlib import Path
from typing import Any, BinaryIO, Dict, Optional, Union

import xlrd
import xlwt
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Border, Font, NamedStyle, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException
from xlutils.copy import copy as copy_workbook

from .coercion import CellValue
from .errors import CodecError, TemplateError
from .schema import ExportFormat
from .styles import CellStyle, StyleHandle

DEFAULT_SHEET_NAME = "Sheet0"
MAX_COLUMN_WIDTH = 255

_ZIP_MAGIC = b"PK\x03\x04"
_OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


def detect_format(head: bytes) -> ExportFormat:
    """Identify the container format from the leading bytes of a workbook."""

    if head.startswith(_ZIP_MAGIC):
        return ExportFormat.XLSX
    if head.startswith(_OLE2_MAGIC):
        return ExportFormat.XLS
    raise CodecError("Unrecognized workbook container (expected xlsx or xls)")


class DocumentBuilder(ABC):
    """Write access to the single target sheet of an in-memory workbook."""

    format: ExportFormat

    def __init__(self) -> None:
        self._styles: Dict[CellStyle, StyleHandle] = {}

    @property
    @abstractmethod
    def native(self) -> Any:
        """Underlying codec workbook, for codec-specific style factories."""

    def create_style(self, style: CellStyle) -> StyleHandle:
        """Return the codec style for *style*, creating it on first use."""

        handle = self._styles.get(style)
        if handle is None:
            handle = self._build_style(style)
            self._styles[style] = handle
        return handle

    @abstractmethod
    def _build_style(self, style: CellStyle) -> StyleHandle:
        ...

    @abstractmethod
    def write_cell(self, row: int, col: int, value: CellValue, style: Optional[StyleHandle]) -> None:
        """Write one cell; ``row``/``col`` are zero-based."""

    @abstractmethod
    def merge_row(self, row: int, first_col: int, last_col: int, value: CellValue, style: StyleHandle) -> None:
        """Write *value* into ``(row, first_col)`` and merge the row span."""

    @abstractmethod
    def set_column_width(self, col: int, chars: int) -> None:
        ...

    @abstractmethod
    def save(self, stream: BinaryIO) -> None:
        ...


class XlsxDocument(DocumentBuilder):
    """openpyxl-backed builder for the zip/XML container."""

    format = ExportFormat.XLSX

    def __init__(self, workbook: Workbook, sheet_name: Optional[str] = None, *, fresh: bool = True) -> None:
        super().__init__()
        self.workbook = workbook
        if fresh:
            self.sheet = workbook.active
            self.sheet.title = sheet_name or DEFAULT_SHEET_NAME
        else:
            self.sheet = workbook.worksheets[0]
        self._names = count(1)

    @property
    def native(self) -> Workbook:
        return self.workbook

    def _build_style(self, style: CellStyle) -> NamedStyle:
        existing = set(self.workbook.named_styles)
        name = f"sheetplus_{next(self._names)}"
        while name in existing:
            name = f"sheetplus_{next(self._names)}"
        named = NamedStyle(name=name)
        named.font = Font(
            name=style.font_name or "Calibri",
            size=style.font_size or 11,
            bold=style.bold,
            italic=style.italic,
            color=style.font_color,
        )
        if style.fill_color:
            named.fill = PatternFill(fill_type="solid", fgColor=style.fill_color)
        named.alignment = Alignment(
            horizontal=style.horizontal, vertical=style.vertical, wrap_text=style.wrap_text
        )
        if style.border:
            thin = Side(style="thin")
            named.border = Border(left=thin, right=thin, top=thin, bottom=thin)
        self.workbook.add_named_style(named)
        return named

    def write_cell(self, row: int, col: int, value: CellValue, style: Optional[StyleHandle]) -> None:
        cell = self.sheet.cell(row=row + 1, column=col + 1, value=value)
        if style is not None:
            cell.style = style

    def merge_row(self, row: int, first_col: int, last_col: int, value: CellValue, style: StyleHandle) -> None:
        for col in range(first_col, last_col + 1):
            self.write_cell(row, col, value if col == first_col else None, style)
        if last_col > first_col:
            self.sheet.merge_cells(
                start_row=row + 1, start_column=first_col + 1, end_row=row + 1, end_column=last_col + 1
            )

    def set_column_width(self, col: int, chars: int) -> None:
        width = min(chars + 2, MAX_COLUMN_WIDTH)
        self.sheet.column_dimensions[get_column_letter(col + 1)].width = width

    def save(self, stream: BinaryIO) -> None:
        self.workbook.save(stream)


_XLS_HORIZONTAL = {
    "left": xlwt.Alignment.HORZ_LEFT,
    "center": xlwt.Alignment.HORZ_CENTER,
    "right": xlwt.Alignment.HORZ_RIGHT,
    "fill": xlwt.Alignment.HORZ_FILLED,
    "justify": xlwt.Alignment.HORZ_JUSTIFIED,
}
_XLS_VERTICAL = {
    "top": xlwt.Alignment.VERT_TOP,
    "center": xlwt.Alignment.VERT_CENTER,
    "bottom": xlwt.Alignment.VERT_BOTTOM,
    "justify": xlwt.Alignment.VERT_JUSTIFIED,
}
# Custom palette slots; lower indexes hold the builtin colours.
_XLS_FIRST_CUSTOM_COLOUR = 0x21
_XLS_LAST_CUSTOM_COLOUR = 0x3F


class XlsDocument(DocumentBuilder):
    """xlwt-backed builder for the legacy binary container."""

    format = ExportFormat.XLS

    def __init__(
        self,
        sheet_name: Optional[str] = None,
        *,
        workbook: Optional[xlwt.Workbook] = None,
    ) -> None:
        super().__init__()
        if workbook is not None:
            # Copied template: keep its sheets and write into the first one.
            self.workbook = workbook
            self.sheet = workbook.get_sheet(0)
        else:
            self.workbook = xlwt.Workbook(encoding="utf-8")
            try:
                self.sheet = self.workbook.add_sheet(sheet_name or DEFAULT_SHEET_NAME)
            except Exception as exc:  # xlwt raises bare Exception for bad sheet names
                raise CodecError(f"Invalid sheet name: {sheet_name!r}") from exc
        self._colours: Dict[str, int] = {}

    @property
    def native(self) -> xlwt.Workbook:
        return self.workbook

    def _colour_index(self, hex_colour: str) -> int:
        key = hex_colour.lstrip("#").upper()[-6:]
        if key in self._colours:
            return self._colours[key]
        index = _XLS_FIRST_CUSTOM_COLOUR + len(self._colours)
        if index > _XLS_LAST_CUSTOM_COLOUR:
            raise CodecError("Too many distinct colours for the xls palette")
        red, green, blue = (int(key[pos : pos + 2], 16) for pos in (0, 2, 4))
        self.workbook.set_colour_RGB(index, red, green, blue)
        self._colours[key] = index
        return index

    def _build_style(self, style: CellStyle) -> xlwt.XFStyle:
        xf = xlwt.XFStyle()
        font = xlwt.Font()
        if style.font_name:
            font.name = style.font_name
        if style.font_size:
            font.height = style.font_size * 20
        font.bold = style.bold
        font.italic = style.italic
        if style.font_color:
            font.colour_index = self._colour_index(style.font_color)
        xf.font = font
        if style.fill_color:
            pattern = xlwt.Pattern()
            pattern.pattern = xlwt.Pattern.SOLID_PATTERN
            pattern.pattern_fore_colour = self._colour_index(style.fill_color)
            xf.pattern = pattern
        alignment = xlwt.Alignment()
        if style.horizontal in _XLS_HORIZONTAL:
            alignment.horz = _XLS_HORIZONTAL[style.horizontal]
        if style.vertical in _XLS_VERTICAL:
            alignment.vert = _XLS_VERTICAL[style.vertical]
        alignment.wrap = 1 if style.wrap_text else 0
        xf.alignment = alignment
        if style.border:
            borders = xlwt.Borders()
            borders.left = borders.right = borders.top = borders.bottom = xlwt.Borders.THIN
            xf.borders = borders
        return xf

    def write_cell(self, row: int, col: int, value: CellValue, style: Optional[StyleHandle]) -> None:
        if style is None:
            self.sheet.write(row, col, value)
        else:
            self.sheet.write(row, col, value, style)

    def merge_row(self, row: int, first_col: int, last_col: int, value: CellValue, style: StyleHandle) -> None:
        if last_col > first_col:
            self.sheet.write_merge(row, row, first_col, last_col, value, style)
        else:
            self.write_cell(row, first_col, value, style)

    def set_column_width(self, col: int, chars: int) -> None:
        # xlwt widths are in 1/256 of a character.
        self.sheet.col(col).width = min(chars + 2, MAX_COLUMN_WIDTH) * 256

    def save(self, stream: BinaryIO) -> None:
        self.workbook.save(stream)


def new_document(export_format: ExportFormat, sheet_name: Optional[str] = None) -> DocumentBuilder:
    """Create an empty workbook of *export_format* with one named sheet."""

    if export_format is ExportFormat.XLSX:
        return XlsxDocument(Workbook(), sheet_name)
    return XlsDocument(sheet_name)


def _open_xlsx_template(path: Path) -> XlsxDocument:
    try:
        workbook = load_workbook(path)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise TemplateError(f"Failed to open template workbook: {path}") from exc
    if not workbook.worksheets:
        raise TemplateError(f"Template workbook has no sheets: {path}")
    return XlsxDocument(workbook, fresh=False)


def _open_xls_template(path: Path) -> XlsDocument:
    # formatting_info carries the template's styles and merges into the copy.
    # Malformed compound files surface as assorted xlrd and struct errors.
    try:
        book = xlrd.open_workbook(str(path), formatting_info=True)
    except Exception as exc:  # pylint: disable=broad-except
        raise TemplateError(f"Failed to open template workbook: {path}") from exc
    try:
        if book.nsheets == 0:
            raise TemplateError(f"Template workbook has no sheets: {path}")
        workbook = copy_workbook(book)
    finally:
        book.release_resources()
    return XlsDocument(workbook=workbook)


def open_template(template: Union[str, Path]) -> DocumentBuilder:
    """Load a template workbook; rows are appended to its first sheet.

    The output keeps the template's container format.
    """

    path = Path(template)
    if not path.is_file():
        raise TemplateError(f"Template workbook not found: {path}")
    with path.open("rb") as fh:
        head = fh.read(8)
    try:
        template_format = detect_format(head)
    except CodecError as exc:
        raise TemplateError(f"Template is not a workbook: {path}") from exc
    if template_format is ExportFormat.XLSX:
        return _open_xlsx_template(path)
    return _open_xls_template(path)
