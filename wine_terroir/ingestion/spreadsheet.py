"""
Tabular Source Reader
=====================

Reads batch import sources (CSV or XLSX) into a ``TabularSource``: a header
row followed by data rows. Header lookup is case-insensitive and row numbers
are 1-indexed spreadsheet rows, so the first data row is row 2.
"""

from __future__ import annotations

import csv
import io
import logging
import zipfile
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

logger = logging.getLogger(__name__)

CSV_EXTENSIONS = {".csv", ".txt"}
XLSX_EXTENSIONS = {".xlsx", ".xlsm"}


class SourceFormatError(ValueError):
    """The source could not be read as a table."""


class EmptySourceError(SourceFormatError):
    """The source has no header row."""


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class SourceRow:
    """One data row, with values keyed by the requested column names."""

    row_number: int
    values: dict[str, str | None] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return all(v is None for v in self.values.values())

    def get(self, column: str) -> str | None:
        return self.values.get(column)


@dataclass
class TabularSource:
    """A header row plus raw data rows."""

    columns: list[str]
    rows: list[list[Any]] = field(default_factory=list)
    name: str = ""

    def __post_init__(self) -> None:
        self._index: dict[str, int] = {}
        for idx, column in enumerate(self.columns):
            key = (column or "").strip().lower()
            if key and key not in self._index:
                self._index[key] = idx

    def has_column(self, column: str) -> bool:
        return column.strip().lower() in self._index

    def missing_columns(self, required: list[str] | tuple[str, ...]) -> list[str]:
        """Required columns absent from the header, in the order given."""
        return [c for c in required if not self.has_column(c)]

    def iter_rows(self, columns: list[str] | tuple[str, ...]) -> Iterator[SourceRow]:
        """
        Yield data rows projected onto ``columns``.

        Values are stripped; blank cells become None. Columns not present in
        the header are always None.
        """
        for offset, raw in enumerate(self.rows):
            values: dict[str, str | None] = {}
            for column in columns:
                idx = self._index.get(column.strip().lower())
                values[column] = _clean(raw[idx]) if idx is not None and idx < len(raw) else None
            yield SourceRow(row_number=offset + 2, values=values)

    def __len__(self) -> int:
        return len(self.rows)


def _from_rows(rows: Iterator[Any], name: str) -> TabularSource:
    header = next(rows, None)
    if header is None or all(_clean(h) is None for h in header):
        raise EmptySourceError(f"The file '{name}' does not contain any rows.")

    columns = [_clean(h) or "" for h in header]
    data = [list(r) for r in rows if r is not None]
    logger.debug(f"Read {len(data)} data rows from '{name}'")
    return TabularSource(columns=columns, rows=data, name=name)


def read_csv(source: Path | str | io.TextIOBase, name: str | None = None) -> TabularSource:
    """
    Read a CSV source.

    Args:
        source: File path, or an open text stream
        name: Display name used in messages

    Returns:
        Parsed table
    """
    if isinstance(source, (str, Path)):
        path = Path(source)
        with open(path, newline="", encoding="utf-8-sig") as f:
            return _from_rows(csv.reader(f), name or path.name)
    return _from_rows(csv.reader(source), name or "<stream>")


def read_xlsx(source: Path | str | bytes, name: str | None = None) -> TabularSource:
    """
    Read the active worksheet of an XLSX workbook.

    Args:
        source: File path, or the workbook bytes
        name: Display name used in messages

    Returns:
        Parsed table
    """
    if isinstance(source, bytes):
        handle: Any = io.BytesIO(source)
        display = name or "<workbook>"
    else:
        handle = str(source)
        display = name or Path(source).name

    try:
        wb = openpyxl.load_workbook(handle, read_only=True, data_only=True)
    except (OSError, KeyError, ValueError, zipfile.BadZipFile, InvalidFileException) as e:
        raise SourceFormatError(f"The file '{display}' is not a readable workbook: {e}") from e

    try:
        ws = wb.active
        if ws is None:
            raise EmptySourceError(f"The file '{display}' does not contain any rows.")
        return _from_rows(ws.iter_rows(values_only=True), display)
    finally:
        wb.close()


def load_source(path: Path | str) -> TabularSource:
    """
    Read a batch source, choosing the reader by file extension.

    Raises:
        FileNotFoundError: If the file does not exist
        SourceFormatError: If the extension is unsupported or the file is
            empty or unreadable
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    suffix = path.suffix.lower()
    if suffix in CSV_EXTENSIONS:
        return read_csv(path)
    if suffix in XLSX_EXTENSIONS:
        return read_xlsx(path)
    raise SourceFormatError(f"Unsupported file type '{suffix}'. Expected CSV or XLSX.")
