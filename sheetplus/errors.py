"""Exceptions raised by sheetplus."""


class SheetPlusError(RuntimeError):
    """Base error; codec and I/O failures are chained on ``__cause__``."""


class EmptyInputError(SheetPlusError):
    """Raised when an export is requested with no records."""


class SchemaError(SheetPlusError):
    """Raised when a record type cannot be mapped to sheet columns."""


class OptionsError(SheetPlusError):
    """Raised when write/read options are invalid."""


class TemplateError(SheetPlusError):
    """Raised when a template workbook cannot be located or opened."""


class CodecError(SheetPlusError):
    """Raised when a workbook fails to parse or serialize."""


class SheetNotFoundError(CodecError):
    """Raised when the requested sheet is absent from the workbook."""


class SheetIoError(SheetPlusError):
    """Raised when a source or sink cannot be acquired, read or written."""
