"""Batch source readers (CSV / XLSX)."""

from wine_terroir.ingestion.spreadsheet import (
    EmptySourceError,
    SourceFormatError,
    SourceRow,
    TabularSource,
    load_source,
    read_csv,
    read_xlsx,
)

__all__ = [
    "EmptySourceError",
    "SourceFormatError",
    "SourceRow",
    "TabularSource",
    "load_source",
    "read_csv",
    "read_xlsx",
]
