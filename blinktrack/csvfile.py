"""A small semicolon-separated CSV writer with quoted strings."""

from __future__ import annotations

import os
from typing import Any, Iterable, Union

_QUOTE = '"'


def escape(value: str) -> str:
    """Quote ``value`` and double every quote character inside it."""
    return _QUOTE + value.replace(_QUOTE, _QUOTE + _QUOTE) + _QUOTE


def _format(value: Any) -> str:
    if isinstance(value, str):
        return escape(value)
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, float):
        return format(value, "g")
    return str(value)


class CsvFile:
    """Write rows cell by cell; strings are quoted, numbers are written bare."""

    def __init__(self, filename: Union[str, os.PathLike], separator: str = ";") -> None:
        self.separator = separator
        self._first = True
        self._file = open(filename, "w", encoding="utf-8", newline="")

    def __enter__(self) -> "CsvFile":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def write(self, value: Any) -> "CsvFile":
        """Append one cell to the current row."""
        if not self._first:
            self._file.write(self.separator)
        else:
            self._first = False
        self._file.write(_format(value))
        return self

    def write_row(self, values: Iterable[Any]) -> "CsvFile":
        """Write all ``values`` as cells and finish the row."""
        for value in values:
            self.write(value)
        return self.end_row()

    def end_row(self) -> "CsvFile":
        """Finish the current row and flush it to disk."""
        self._file.write("\n")
        self._file.flush()
        self._first = True
        return self

    def flush(self) -> "CsvFile":
        self._file.flush()
        return self

    def close(self) -> None:
        if not self._file.closed:
            self._file.flush()
            self._file.close()