"""Single-pass, lazily evaluated record sequences."""

# Module responsibilities:
# - Expose imported records as an iterator supporting filter/map/collect.
# - Release the underlying workbook source exactly once, on exhaustion, failure or close().

from __future__ import annotations

import dataclasses
from typing import Any, Callable, Dict, Generic, Iterator, List, Mapping, Optional, Sequence, TypeVar

import pandas as pd

T = TypeVar("T")
U = TypeVar("U")


def _as_frame_row(item: Any, columns: Sequence[str]) -> Dict[str, Any]:
    if isinstance(item, Mapping):
        return dict(item)
    if columns and all(hasattr(item, column) for column in columns):
        return {column: getattr(item, column) for column in columns}
    if dataclasses.is_dataclass(item) and not isinstance(item, type):
        return dataclasses.asdict(item)
    return {"value": item}


class RecordStream(Generic[T]):
    """Forward-only stream of records read from one workbook source.

    Derived streams from :meth:`filter` and :meth:`map` share the same pass over the
    source, so a stream can be consumed once; reading again needs a fresh source.
    """

    def __init__(
        self,
        items: Iterator[T],
        *,
        closer: Optional[Callable[[], None]] = None,
        columns: Sequence[str] = (),
        sheet: Any = None,
    ) -> None:
        self._items = items
        self._closer = closer
        self._closed = False
        self.columns = tuple(columns)
        self.sheet = sheet

    def __iter__(self) -> "RecordStream[T]":
        return self

    def __next__(self) -> T:
        if self._closed:
            raise StopIteration
        try:
            return next(self._items)
        except StopIteration:
            self.close()
            raise
        except Exception:
            self.close()
            raise

    def __enter__(self) -> "RecordStream[T]":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop reading and release the source; safe to call repeatedly."""

        if self._closed:
            return
        self._closed = True
        if self._closer is not None:
            self._closer()

    def _derive(self, items: Iterator[U]) -> "RecordStream[U]":
        return RecordStream(items, closer=self.close, columns=self.columns, sheet=self.sheet)

    def filter(self, predicate: Callable[[T], bool]) -> "RecordStream[T]":
        return self._derive(item for item in self if predicate(item))

    def map(self, func: Callable[[T], U]) -> "RecordStream[U]":
        return self._derive(func(item) for item in self)

    def first(self, default: Optional[T] = None) -> Optional[T]:
        """Return the next record (or *default*) and close the stream."""

        try:
            return next(self, default)
        finally:
            self.close()

    def as_list(self) -> List[T]:
        try:
            return list(self)
        finally:
            self.close()

    collect = as_list

    def to_frame(self) -> pd.DataFrame:
        """Collect the remaining records into a DataFrame keyed by mapped field names."""

        rows = [_as_frame_row(item, self.columns) for item in self.as_list()]
        if not rows:
            return pd.DataFrame(columns=list(self.columns))
        return pd.DataFrame(rows)
