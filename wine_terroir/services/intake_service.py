"""Single-record wine intake.

Resolves one free-text wine description against the canonical taxonomy,
top-down (country, region, appellation, sub-appellation, wine), creating
missing records only when there is enough context to place them, and
reporting any disagreement with previously recorded attributes as a typed
failure rather than overwriting it.

The whole intake runs in one transaction: it is committed on success and
rolled back on any failure.
"""

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy.orm import Session

from wine_terroir.core.enums import ResolutionState, TaxonomyLevel, WineColor
from wine_terroir.core.failures import (
    Cancelled,
    ColorNotRecognized,
    EntityRef,
    Failure,
    RegionCountryMismatch,
    RegionCreationMissingCountry,
    UnexpectedError,
    ValidationFailure,
    WineAppellationMismatch,
    WineColorMismatch,
    WineCountryMismatch,
    WineCreationMissingAppellation,
    WineCreationMissingColor,
    WineCreationMissingRegion,
    WineRegionMismatch,
    WineSubAppellationMismatch,
)
from wine_terroir.core.matching import normalized_distance
from wine_terroir.core.schema import (
    Appellation,
    Country,
    IntakeRequest,
    IntakeResult,
    LevelOutcome,
    Region,
    SubAppellation,
    Wine,
)
from wine_terroir.db.repositories import (
    AppellationRepository,
    CountryRepository,
    RegionRepository,
    SubAppellationRepository,
    WineRepository,
)
from wine_terroir.resolution.cancellation import CancellationToken, OperationCancelled, check
from wine_terroir.resolution.config import ResolutionConfig, get_default_config
from wine_terroir.resolution.hierarchy import Resolution, ScopedHierarchyResolver
from wine_terroir.resolution.wine import WineResolver

logger = logging.getLogger(__name__)


class IntakeFailed(Exception):
    """Internal short-circuit carrying a typed failure."""

    def __init__(self, failure: Failure):
        super().__init__(failure.describe())
        self.failure = failure


def _ref(entity: Country | Region | Wine | None) -> EntityRef | None:
    if entity is None:
        return None
    return EntityRef(id=entity.id, name=entity.name)


class WineIntakeService:
    """Service for resolving and recording single wine descriptions."""

    def __init__(self, session: Session, config: ResolutionConfig | None = None):
        """
        Initialize the intake service.

        Args:
            session: SQLAlchemy session; the service commits or rolls it back
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

        self.country_resolver = ScopedHierarchyResolver.from_config(
            TaxonomyLevel.COUNTRY, self.countries, self.config
        )
        self.region_resolver = ScopedHierarchyResolver.from_config(
            TaxonomyLevel.REGION, self.regions, self.config
        )
        self.appellation_resolver = ScopedHierarchyResolver.from_config(
            TaxonomyLevel.APPELLATION, self.appellations, self.config
        )
        self.sub_appellation_resolver = ScopedHierarchyResolver.from_config(
            TaxonomyLevel.SUB_APPELLATION, self.sub_appellations, self.config
        )
        self.wine_resolver = WineResolver.from_config(self.wines, self.config)

    def intake(
        self,
        parameters: IntakeRequest | Mapping[str, Any] | None,
        cancel: CancellationToken | None = None,
    ) -> IntakeResult:
        """
        Resolve (and if needed create) the wine described by ``parameters``.

        Args:
            parameters: An IntakeRequest, or a parameter map with camelCase
                or snake_case keys
            cancel: Optional cancellation token

        Returns:
            IntakeResult; failures are returned, never raised
        """
        outcomes: list[LevelOutcome] = []
        try:
            request = (
                parameters
                if isinstance(parameters, IntakeRequest)
                else IntakeRequest.from_parameters(parameters)
            )
            result = self._intake(request, outcomes, cancel)
        except IntakeFailed as e:
            self.session.rollback()
            logger.info(f"Intake failed ({e.failure.type}): {e}")
            return IntakeResult.failed(e.failure, outcomes)
        except OperationCancelled:
            self.session.rollback()
            logger.info("Intake cancelled")
            return IntakeResult.failed(Cancelled(), outcomes)
        except Exception as e:
            self.session.rollback()
            logger.exception("Unexpected error during wine intake")
            return IntakeResult.failed(
                UnexpectedError(detail=str(e), context="processing the wine intake"), outcomes
            )

        self.session.commit()
        return result

    # =========================================================================
    # Flow
    # =========================================================================

    def _intake(
        self,
        request: IntakeRequest,
        outcomes: list[LevelOutcome],
        cancel: CancellationToken | None,
    ) -> IntakeResult:
        if not request.name:
            raise IntakeFailed(ValidationFailure(problems=["'name' is required."]))

        color = self._parse_color(request.color)
        country = self._resolve_country(request, outcomes, cancel)
        region = self._resolve_region(request, country, outcomes, cancel)
        if region is not None and country is None:
            country = region.country

        created = False
        updated = False
        appellation: Appellation | None = None
        sub_appellation: SubAppellation | None = None
        if region is not None and request.appellation:
            appellation = self._record(
                outcomes,
                self.appellation_resolver.resolve_or_create(request.appellation, region.id, cancel),
            )
            sub_appellation = self._record(
                outcomes,
                self.sub_appellation_resolver.resolve_or_create(
                    request.sub_appellation or "", appellation.id, cancel
                ),
            )
            wine, created, updated = self._resolve_wine_in_context(
                request, color, appellation, sub_appellation, outcomes, cancel
            )
        else:
            wine = self._find_wine_by_name(request, color, region, outcomes, cancel)

        if not created:
            self._check_conflicts(
                wine, request, color, country, region, appellation, sub_appellation
            )
            wine, backfilled = self._backfill(wine, request, cancel)
            updated = updated or backfilled

        if created:
            message = f"Created wine '{wine.name}'."
        elif updated:
            message = f"Resolved and updated wine '{wine.name}'."
        else:
            message = f"Resolved wine '{wine.name}'."

        logger.info(message)
        return IntakeResult.succeeded(
            message, wine, created=created, updated=updated, outcomes=outcomes
        )

    def _parse_color(self, value: str | None) -> WineColor | None:
        if not value:
            return None
        color = WineColor.parse(value)
        if color is None:
            raise IntakeFailed(ColorNotRecognized(query=value, suggestions=WineColor.options()))
        return color

    def _resolve_country(
        self,
        request: IntakeRequest,
        outcomes: list[LevelOutcome],
        cancel: CancellationToken | None,
    ) -> Country | None:
        if not request.country:
            return None
        return self._record(
            outcomes, self.country_resolver.resolve_or_create(request.country, None, cancel)
        )

    def _resolve_region(
        self,
        request: IntakeRequest,
        country: Country | None,
        outcomes: list[LevelOutcome],
        cancel: CancellationToken | None,
    ) -> Region | None:
        if not request.region:
            return None

        if country is None:
            resolution = self.region_resolver.resolve(request.region, None, cancel)
            if not resolution.resolved:
                self._record_failure(outcomes, resolution)
                raise IntakeFailed(
                    RegionCreationMissingCountry(
                        query=resolution.query, suggestions=resolution.suggestion_names()
                    )
                )
            return self._record(outcomes, resolution)

        resolution = self.region_resolver.resolve(request.region, country.id, cancel)
        if resolution.state == ResolutionState.NOT_FOUND:
            # A region's country is fixed once recorded.
            check(cancel)
            elsewhere = self.regions.find_exact(resolution.query)
            if elsewhere is not None and elsewhere.country_id != country.id:
                self._record_failure(outcomes, resolution)
                raise IntakeFailed(
                    RegionCountryMismatch(
                        region=_ref(elsewhere),
                        requested_country=_ref(country),
                        region_country=_ref(elsewhere.country),
                    )
                )
            resolution = self.region_resolver.create(resolution, cancel)
        return self._record(outcomes, resolution)

    def _resolve_wine_in_context(
        self,
        request: IntakeRequest,
        color: WineColor | None,
        appellation: Appellation,
        sub_appellation: SubAppellation,
        outcomes: list[LevelOutcome],
        cancel: CancellationToken | None,
    ) -> tuple[Wine, bool, bool]:
        resolution = self.wine_resolver.resolve(request.name, appellation, sub_appellation, cancel)
        if resolution.resolved:
            return self._record(outcomes, resolution), False, False

        if not sub_appellation.is_blank:
            # A wine recorded without a sub-appellation is moved to the named one.
            check(cancel)
            sentinel = self.sub_appellations.find_exact("", appellation.id)
            unplaced = (
                self.wines.find_in_sub_appellation(request.name, sentinel.id)
                if sentinel is not None
                else None
            )
            if unplaced is not None:
                moved = self.wines.update(
                    unplaced.model_copy(update={"sub_appellation_id": sub_appellation.id})
                )
                logger.info(f"Moved wine '{moved.name}' to sub-appellation '{sub_appellation.name}'")
                resolution.state = ResolutionState.FOUND_EXACT
                resolution.entity = moved
                return self._record(outcomes, resolution), False, True

        if color is None:
            self._record_failure(outcomes, resolution)
            raise IntakeFailed(
                WineCreationMissingColor(
                    query=resolution.query, suggestions=resolution.suggestion_names()
                )
            )

        resolution = self.wine_resolver.create(
            resolution, color, sub_appellation, request.grape_variety, cancel
        )
        return self._record(outcomes, resolution), True, False

    def _find_wine_by_name(
        self,
        request: IntakeRequest,
        color: WineColor | None,
        region: Region | None,
        outcomes: list[LevelOutcome],
        cancel: CancellationToken | None,
    ) -> Wine:
        """
        Look a wine up by name when there is not enough context to create it.

        The supplied (sub-)appellation narrows the lookup first; failing that,
        any wine with the name is returned so the conflict checks can report
        how it differs.
        """
        check(cancel)
        wine = self.wines.find_by_name_and_context(
            request.name, request.sub_appellation, request.appellation
        )
        if wine is None and (request.sub_appellation or request.appellation):
            check(cancel)
            wine = self.wines.find_by_name_and_context(request.name)
        if wine is not None:
            outcomes.append(
                LevelOutcome(
                    level=TaxonomyLevel.WINE,
                    query=request.name,
                    state=ResolutionState.FOUND_EXACT,
                    entity_id=wine.id,
                    entity_name=wine.name,
                )
            )
            return wine

        outcomes.append(
            LevelOutcome(level=TaxonomyLevel.WINE, query=request.name, state=ResolutionState.FAIL)
        )
        suggestions = [w.name for w in self.wine_resolver.suggest(request.name, cancel)]
        if color is None:
            raise IntakeFailed(WineCreationMissingColor(query=request.name, suggestions=suggestions))
        if region is None:
            raise IntakeFailed(WineCreationMissingRegion(query=request.name, suggestions=suggestions))
        raise IntakeFailed(WineCreationMissingAppellation(query=request.name, suggestions=suggestions))

    def _check_conflicts(
        self,
        wine: Wine,
        request: IntakeRequest,
        color: WineColor | None,
        country: Country | None,
        region: Region | None,
        appellation: Appellation | None = None,
        sub_appellation: SubAppellation | None = None,
    ) -> None:
        """
        Fail on the first supplied attribute that disagrees with the recorded wine.

        Checked in order: sub-appellation, appellation, color, country, region.
        Place names agree when they name the resolved record or are within the
        place-name threshold of each other.
        """
        wine_sub = wine.sub_appellation
        wine_appellation = wine.appellation
        wine_region = wine.region
        wine_country = wine.country

        recorded_sub = wine_sub.name if wine_sub and not wine_sub.is_blank else None
        if request.sub_appellation and not self._place_agrees(
            wine.sub_appellation_id, recorded_sub, request.sub_appellation, sub_appellation
        ):
            raise IntakeFailed(
                WineSubAppellationMismatch(
                    wine=_ref(wine), requested=request.sub_appellation, actual=recorded_sub
                )
            )

        recorded_appellation = wine_appellation.name if wine_appellation else None
        if request.appellation and not self._place_agrees(
            wine_appellation.id if wine_appellation else None,
            recorded_appellation,
            request.appellation,
            appellation,
        ):
            raise IntakeFailed(
                WineAppellationMismatch(
                    wine=_ref(wine), requested=request.appellation, actual=recorded_appellation
                )
            )

        if color is not None and wine.color != color:
            raise IntakeFailed(
                WineColorMismatch(wine=_ref(wine), requested=color.value, actual=wine.color.value)
            )

        if country is not None and (wine_country is None or wine_country.id != country.id):
            raise IntakeFailed(
                WineCountryMismatch(wine=_ref(wine), requested=_ref(country), actual=_ref(wine_country))
            )

        if region is not None and (wine_region is None or wine_region.id != region.id):
            raise IntakeFailed(
                WineRegionMismatch(wine=_ref(wine), requested=_ref(region), actual=_ref(wine_region))
            )

    def _place_agrees(
        self,
        recorded_id: Any,
        recorded_name: str | None,
        requested_name: str,
        resolved: Appellation | SubAppellation | None,
    ) -> bool:
        if resolved is not None and recorded_id == resolved.id:
            return True
        if recorded_name is None:
            return False
        names = [requested_name] + ([resolved.name] if resolved is not None else [])
        threshold = self.config.place_match_threshold
        return any(normalized_distance(recorded_name, n) <= threshold for n in names)

    def _backfill(
        self, wine: Wine, request: IntakeRequest, cancel: CancellationToken | None
    ) -> tuple[Wine, bool]:
        if request.grape_variety and not wine.grape_variety:
            check(cancel)
            wine = self.wines.update(wine.model_copy(update={"grape_variety": request.grape_variety}))
            logger.info(f"Backfilled grape variety for wine '{wine.name}'")
            return wine, True
        return wine, False

    # =========================================================================
    # Outcome bookkeeping
    # =========================================================================

    @staticmethod
    def _record(outcomes: list[LevelOutcome], resolution: Resolution) -> Any:
        entity = resolution.entity
        outcomes.append(
            LevelOutcome(
                level=resolution.level,
                query=resolution.query,
                state=resolution.state,
                entity_id=entity.id if entity is not None else None,
                entity_name=entity.name if entity is not None else None,
            )
        )
        return entity

    @staticmethod
    def _record_failure(outcomes: list[LevelOutcome], resolution: Resolution) -> None:
        outcomes.append(
            LevelOutcome(level=resolution.level, query=resolution.query, state=ResolutionState.FAIL)
        )
