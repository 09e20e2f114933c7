"""Batch wine import.

Imports a tabular source (one wine per row) into the canonical taxonomy.
Every resolver call goes through a job-scoped ``BatchCache`` so repeated
rows reuse records resolved or created earlier in the job.

Rows are processed sequentially and committed one at a time. A row that
fails validation or resolution is recorded as a row error and skipped; only
a structurally invalid source (missing required columns) fails the job.

Unlike single intake, an existing wine whose color or sub-appellation
differs from the row is updated and counted, not reported as a conflict.
A same-named wine recorded under another appellation is a different wine.
"""

import logging
from pathlib import Path
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from wine_terroir.core.enums import ResolutionState, TaxonomyLevel, WineColor
from wine_terroir.core.failures import (
    Cancelled,
    EmptySource,
    MissingColumns,
    UnexpectedError,
    ValidationFailure,
)
from wine_terroir.core.matching import normalized_distance
from wine_terroir.core.schema import (
    ImportCounters,
    ImportPreviewResult,
    ImportPreviewRow,
    ImportRowError,
    Wine,
    WineImportResult,
)
from wine_terroir.db.repositories import (
    AppellationRepository,
    CountryRepository,
    RegionRepository,
    SubAppellationRepository,
    WineRepository,
)
from wine_terroir.ingestion.spreadsheet import (
    EmptySourceError,
    SourceFormatError,
    SourceRow,
    TabularSource,
    load_source,
)
from wine_terroir.resolution.cache import BatchCache
from wine_terroir.resolution.cancellation import CancellationToken, OperationCancelled, check
from wine_terroir.resolution.config import ResolutionConfig, get_default_config
from wine_terroir.resolution.hierarchy import ScopedHierarchyResolver
from wine_terroir.resolution.wine import WineResolver

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("Name", "Country", "Region", "Color", "Appellation", "SubAppellation")

# Required row values, checked in this order.
REQUIRED_VALUES = ("Name", "Country", "Region", "Appellation")


class RowRejected(Exception):
    """A row failed validation; the message is reported verbatim."""


def parse_row_color(raw: str | None) -> WineColor:
    """
    Parse a row's color cell.

    Raises:
        RowRejected: If the color is blank or unrecognised
    """
    if not raw:
        raise RowRejected("Color is required.")
    color = WineColor.parse(raw)
    if color is None:
        raise RowRejected(f"The color '{raw}' is not recognized. Expected Red, White, or Rose.")
    return color


def validate_row(row: SourceRow) -> WineColor:
    """Check required values and return the parsed color."""
    for column in REQUIRED_VALUES:
        if not row.get(column):
            raise RowRejected(f"{column} is required.")
    return parse_row_color(row.get("Color"))


class WineImportService:
    """Service for importing and previewing batch wine sources."""

    def __init__(self, session: Session, config: ResolutionConfig | None = None):
        """
        Initialize the import service.

        Args:
            session: SQLAlchemy session; the service commits each imported row
            config: Resolution thresholds (defaults to the global configuration)
        """
        self.session = session
        self.config = config or get_default_config()

        threshold = self.config.search_threshold
        self.countries = CountryRepository(session, threshold)
        self.regions = RegionRepository(session, threshold)
        self.appellations = AppellationRepository(session, threshold)
        self.sub_appellations = SubAppellationRepository(session, threshold)
        self.wines = WineRepository(session, threshold)

        self.resolvers = {
            TaxonomyLevel.COUNTRY: ScopedHierarchyResolver.from_config(
                TaxonomyLevel.COUNTRY, self.countries, self.config
            ),
            TaxonomyLevel.REGION: ScopedHierarchyResolver.from_config(
                TaxonomyLevel.REGION, self.regions, self.config
            ),
            TaxonomyLevel.APPELLATION: ScopedHierarchyResolver.from_config(
                TaxonomyLevel.APPELLATION, self.appellations, self.config
            ),
            TaxonomyLevel.SUB_APPELLATION: ScopedHierarchyResolver.from_config(
                TaxonomyLevel.SUB_APPELLATION, self.sub_appellations, self.config
            ),
        }
        self.wine_resolver = WineResolver.from_config(self.wines, self.config)

    # =========================================================================
    # Import
    # =========================================================================

    def import_source(
        self,
        source: TabularSource | Path | str,
        cancel: CancellationToken | None = None,
    ) -> WineImportResult:
        """
        Import every row of ``source``.

        Args:
            source: A parsed table, or the path of a CSV/XLSX file
            cancel: Optional cancellation token; rows processed before
                cancellation stay committed

        Returns:
            WineImportResult with counters and per-row errors
        """
        result = WineImportResult()

        table = self._open(source, result)
        if table is None:
            return result

        missing = table.missing_columns(REQUIRED_COLUMNS)
        if missing:
            logger.warning(f"Import aborted, missing columns: {', '.join(missing)}")
            return result.fail(MissingColumns(columns=missing))

        cache = BatchCache()
        try:
            for row in table.iter_rows(REQUIRED_COLUMNS):
                if cancel is not None and cancel.cancelled:
                    result.cancelled = True
                    break
                if row.is_empty:
                    continue

                result.total_rows += 1
                if not self._import_row(row, cache, result, cancel):
                    break
        except Exception as e:
            self.session.rollback()
            logger.exception("Unexpected error during wine import")
            return result.fail(UnexpectedError(detail=str(e), context="importing the file"))

        logger.info(
            f"Import finished: {result.imported_rows}/{result.total_rows} rows, "
            f"{len(result.row_errors)} errors, cache hits={cache.hits}"
        )
        if result.cancelled:
            result.fail(Cancelled())
            result.message = (
                f"Import cancelled after {result.imported_rows} of {result.total_rows} rows."
            )
        else:
            result.message = f"Imported {result.imported_rows} of {result.total_rows} rows."
        return result

    def _import_row(
        self,
        row: SourceRow,
        cache: BatchCache,
        result: WineImportResult,
        cancel: CancellationToken | None,
    ) -> bool:
        """Process one row in its own transaction. Returns False when cancelled."""
        counters = ImportCounters()
        try:
            color = validate_row(row)
            self._process_row(row, color, cache, counters, cancel)
            self.session.commit()
        except RowRejected as e:
            self._reject(result, row.row_number, str(e))
            return True
        except OperationCancelled:
            self.session.rollback()
            cache.rollback()
            result.cancelled = True
            logger.info(f"Import cancelled at row {row.row_number}")
            return False
        except Exception as e:
            self.session.rollback()
            cache.rollback()
            self._reject(result, row.row_number, str(e))
            return True

        cache.commit()
        result.counters.merge(counters)
        result.imported_rows += 1
        return True

    def _process_row(
        self,
        row: SourceRow,
        color: WineColor,
        cache: BatchCache,
        counters: ImportCounters,
        cancel: CancellationToken | None,
    ) -> Wine:
        country = self._resolve(
            TaxonomyLevel.COUNTRY, row.get("Country"), None, cache, counters, cancel
        )
        region = self._resolve(
            TaxonomyLevel.REGION, row.get("Region"), country.id, cache, counters, cancel
        )
        appellation = self._resolve(
            TaxonomyLevel.APPELLATION, row.get("Appellation"), region.id, cache, counters, cancel
        )
        sub_appellation = self._resolve(
            TaxonomyLevel.SUB_APPELLATION,
            row.get("SubAppellation") or "",
            appellation.id,
            cache,
            counters,
            cancel,
        )

        name = row.get("Name") or ""
        resolution = self.wine_resolver.resolve(name, appellation, sub_appellation, cancel, cache)
        if resolution.resolved and resolution.entity.sub_appellation_id != sub_appellation.id:
            # A wine never leaves its appellation; elsewhere it is a different wine.
            recorded = resolution.entity.appellation
            if recorded is None or recorded.id != appellation.id:
                resolution.state = ResolutionState.NOT_FOUND
                resolution.entity = None
        if not resolution.resolved:
            resolution = self.wine_resolver.create(
                resolution, color, sub_appellation, cancel=cancel, cache=cache
            )
            counters.record_created(TaxonomyLevel.WINE)
            return resolution.entity

        wine = resolution.entity
        if wine.color != color or wine.sub_appellation_id != sub_appellation.id:
            check(cancel)
            wine = self.wines.update(
                wine.model_copy(update={"color": color, "sub_appellation_id": sub_appellation.id})
            )
            cache.replace(wine)
            cache.put(TaxonomyLevel.WINE, sub_appellation.id, name, wine)
            counters.updated_wines += 1
            logger.info(f"Updated wine '{wine.name}' from row {row.row_number}")
        return wine

    def _resolve(
        self,
        level: TaxonomyLevel,
        name: str | None,
        parent_id: UUID | None,
        cache: BatchCache,
        counters: ImportCounters,
        cancel: CancellationToken | None,
    ) -> Any:
        resolution = self.resolvers[level].resolve_or_create(
            name, parent_id, cancel=cancel, cache=cache
        )
        if resolution.created:
            counters.record_created(level)
        return resolution.entity

    @staticmethod
    def _reject(result: WineImportResult, row_number: int, message: str) -> None:
        logger.warning(f"Row {row_number} skipped: {message}")
        result.row_errors.append(ImportRowError(row_number=row_number, message=message))

    # =========================================================================
    # Preview
    # =========================================================================

    def preview(
        self,
        source: TabularSource | Path | str,
        cancel: CancellationToken | None = None,
    ) -> ImportPreviewResult:
        """
        Report, per row, which records already exist, without writing anything.

        Args:
            source: A parsed table, or the path of a CSV/XLSX file
            cancel: Optional cancellation token

        Returns:
            ImportPreviewResult with one entry per valid row
        """
        preview = ImportPreviewResult()
        status = WineImportResult()

        table = self._open(source, status)
        if table is None:
            return self._preview_failed(preview, status)

        missing = table.missing_columns(REQUIRED_COLUMNS)
        if missing:
            return self._preview_failed(preview, status.fail(MissingColumns(columns=missing)))

        memo = BatchCache()
        wine_memo: dict[tuple[str, str, str], bool] = {}
        try:
            for row in table.iter_rows(REQUIRED_COLUMNS):
                if cancel is not None and cancel.cancelled:
                    preview.cancelled = True
                    break
                if row.is_empty:
                    continue

                preview.total_rows += 1
                try:
                    color = validate_row(row)
                except RowRejected as e:
                    preview.row_errors.append(
                        ImportRowError(row_number=row.row_number, message=str(e))
                    )
                    continue

                preview.rows.append(self._preview_row(row, color, memo, wine_memo, cancel))
                memo.commit()
        except OperationCancelled:
            preview.cancelled = True
        except Exception as e:
            logger.exception("Unexpected error during import preview")
            status.fail(UnexpectedError(detail=str(e), context="previewing the file"))
            return self._preview_failed(preview, status)
        finally:
            self.session.rollback()

        if preview.cancelled:
            preview.success = False
            preview.message = Cancelled().describe()
            preview.errors = Cancelled().errors()
        else:
            preview.message = f"Previewed {len(preview.rows)} of {preview.total_rows} rows."
        return preview

    def _preview_row(
        self,
        row: SourceRow,
        color: WineColor,
        memo: BatchCache,
        wine_memo: dict[tuple[str, str, str], bool],
        cancel: CancellationToken | None,
    ) -> ImportPreviewRow:
        country = self.resolvers[TaxonomyLevel.COUNTRY].resolve(
            row.get("Country"), None, cancel=cancel, cache=memo
        )
        region = None
        if country.resolved:
            region = self.resolvers[TaxonomyLevel.REGION].resolve(
                row.get("Region"), country.entity.id, cancel=cancel, cache=memo
            )
        appellation = None
        if region is not None and region.resolved:
            appellation = self.resolvers[TaxonomyLevel.APPELLATION].resolve(
                row.get("Appellation"), region.entity.id, cancel=cancel, cache=memo
            )

        return ImportPreviewRow(
            row_number=row.row_number,
            name=row.get("Name") or "",
            country=row.get("Country") or "",
            region=row.get("Region") or "",
            appellation=row.get("Appellation") or "",
            sub_appellation=row.get("SubAppellation") or "",
            color=color,
            wine_exists=self._wine_exists(row, wine_memo, cancel),
            country_exists=country.resolved,
            region_exists=region is not None and region.resolved,
            appellation_exists=appellation is not None and appellation.resolved,
        )

    def _wine_exists(
        self,
        row: SourceRow,
        wine_memo: dict[tuple[str, str, str], bool],
        cancel: CancellationToken | None,
    ) -> bool:
        name = row.get("Name") or ""
        sub_name = row.get("SubAppellation")
        appellation_name = row.get("Appellation")
        context_threshold = self.config.preview_context_threshold
        key = (name.lower(), (sub_name or "").lower(), (appellation_name or "").lower())
        if key in wine_memo:
            return wine_memo[key]

        def matches(candidate: Wine) -> bool:
            if normalized_distance(name, candidate.name) > self.config.wine_match_threshold:
                return False
            if sub_name:
                candidate_sub = candidate.sub_appellation
                if candidate_sub is None or candidate_sub.is_blank:
                    return False
                return normalized_distance(sub_name, candidate_sub.name) <= context_threshold
            if appellation_name:
                candidate_appellation = candidate.appellation
                if candidate_appellation is None:
                    return False
                return (
                    normalized_distance(appellation_name, candidate_appellation.name)
                    <= context_threshold
                )
            return True

        exists = any(matches(w) for w in self.wine_resolver.suggest(name, cancel))
        wine_memo[key] = exists
        return exists

    @staticmethod
    def _preview_failed(
        preview: ImportPreviewResult, status: WineImportResult
    ) -> ImportPreviewResult:
        preview.success = False
        preview.message = status.message
        preview.errors = status.errors
        return preview

    # =========================================================================
    # Source handling
    # =========================================================================

    def _open(
        self, source: TabularSource | Path | str, result: WineImportResult
    ) -> TabularSource | None:
        if isinstance(source, TabularSource):
            return source
        try:
            return load_source(source)
        except EmptySourceError:
            result.fail(EmptySource())
        except (SourceFormatError, FileNotFoundError) as e:
            result.fail(ValidationFailure(problems=[str(e)]))
        return None
