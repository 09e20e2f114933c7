"""Repository classes for canonical taxonomy database operations.

Each place repository exposes the lookups the resolvers need
(``find_exact``, ``search_approximate``, ``get_or_create``); the wine
repository adds context-aware lookup and closest-match search.
"""

import logging
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wine_terroir.core.enums import TaxonomyLevel, WineColor
from wine_terroir.core.matching import rank_candidates
from wine_terroir.core.schema import Appellation, Country, Region, SubAppellation, Wine
from wine_terroir.db.models import (
    AppellationDB,
    CountryDB,
    RegionDB,
    SubAppellationDB,
    WineDB,
    name_key,
)

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_THRESHOLD = 0.45

ModelT = TypeVar("ModelT")
DomainT = TypeVar("DomainT")


# ============================================================================
# Domain conversion
# ============================================================================


def country_to_domain(db_item: CountryDB) -> Country:
    return Country(id=UUID(db_item.id), name=db_item.name)


def region_to_domain(db_item: RegionDB) -> Region:
    return Region(
        id=UUID(db_item.id),
        name=db_item.name,
        country_id=UUID(db_item.country_id),
        country=country_to_domain(db_item.country) if db_item.country else None,
    )


def appellation_to_domain(db_item: AppellationDB) -> Appellation:
    return Appellation(
        id=UUID(db_item.id),
        name=db_item.name,
        region_id=UUID(db_item.region_id),
        region=region_to_domain(db_item.region) if db_item.region else None,
    )


def sub_appellation_to_domain(db_item: SubAppellationDB) -> SubAppellation:
    return SubAppellation(
        id=UUID(db_item.id),
        name=db_item.name,
        appellation_id=UUID(db_item.appellation_id),
        appellation=appellation_to_domain(db_item.appellation) if db_item.appellation else None,
    )


def wine_to_domain(db_item: WineDB) -> Wine:
    return Wine(
        id=UUID(db_item.id),
        name=db_item.name,
        color=WineColor(db_item.color),
        grape_variety=db_item.grape_variety or "",
        sub_appellation_id=UUID(db_item.sub_appellation_id),
        sub_appellation=(
            sub_appellation_to_domain(db_item.sub_appellation) if db_item.sub_appellation else None
        ),
    )


# ============================================================================
# Place Repositories
# ============================================================================


class PlaceRepository(Generic[ModelT, DomainT]):
    """
    Shared lookups for one level of the place hierarchy.

    Subclasses set the ORM model, the parent foreign-key column (None for
    countries), the parent model and the domain converter.
    """

    level: TaxonomyLevel
    model: Any
    parent_model: Any = None
    parent_column: str | None = None
    allow_blank: bool = False

    def __init__(self, session: Session, search_threshold: float = DEFAULT_SEARCH_THRESHOLD):
        self.session = session
        self.search_threshold = search_threshold

    def _to_domain(self, db_item: Any) -> DomainT:
        raise NotImplementedError

    def _scoped(self, stmt: Any, parent_id: UUID | str | None) -> Any:
        if self.parent_column is not None and parent_id is not None:
            stmt = stmt.where(getattr(self.model, self.parent_column) == str(parent_id))
        return stmt

    def get_by_id(self, entity_id: UUID | str) -> DomainT | None:
        """Get an entity by ID."""
        stmt = select(self.model).where(self.model.id == str(entity_id))
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def find_exact(self, name: str, parent_id: UUID | str | None = None) -> DomainT | None:
        """
        Find an entity by case-insensitive name.

        Args:
            name: Name to look up
            parent_id: Optional parent scope; ignored for countries

        Returns:
            The matching entity, or None
        """
        key = name_key(name)
        if not key and not self.allow_blank:
            return None

        stmt = self._scoped(select(self.model).where(self.model.name_key == key), parent_id)
        stmt = stmt.order_by(self.model.created_at, self.model.id).limit(1)
        db_item = self.session.execute(stmt).scalars().first()
        return self._to_domain(db_item) if db_item else None

    def search_approximate(
        self,
        name: str,
        parent_id: UUID | str | None = None,
        limit: int = 5,
    ) -> list[DomainT]:
        """
        Find entities with names close to ``name`` within the parent scope.

        Args:
            name: Name to search for
            parent_id: Optional parent scope
            limit: Maximum number of candidates

        Returns:
            Candidates ranked by closeness
        """
        stmt = self._scoped(select(self.model).where(self.model.name_key != ""), parent_id)
        rows = self.session.execute(stmt).scalars().all()
        ranked = rank_candidates(
            rows,
            name,
            lambda row: row.name,
            max_results=limit,
            max_normalized_distance=self.search_threshold,
        )
        return [self._to_domain(row) for row in ranked]

    def get_or_create(self, name: str, parent_id: UUID | str | None = None) -> DomainT:
        """
        Return the entity named ``name`` in scope, creating it if missing.

        Creation runs inside a savepoint; a concurrent insert that trips the
        unique constraint is resolved by re-reading the winning row.

        Raises:
            ValueError: If the name is blank (where not allowed) or the parent
                is missing or unknown
        """
        trimmed = (name or "").strip()
        if not trimmed and not self.allow_blank:
            raise ValueError(f"{self.level.value} name cannot be empty")

        existing = self.find_exact(trimmed, parent_id)
        if existing is not None:
            return existing

        values: dict[str, Any] = {"name": trimmed, "name_key": name_key(trimmed)}
        if self.parent_column is not None:
            if parent_id is None:
                raise ValueError(f"A parent is required to create {self.level.value} '{trimmed}'")
            parent = self.session.get(self.parent_model, str(parent_id))
            if parent is None:
                raise ValueError(
                    f"Parent {parent_id} could not be found when creating "
                    f"{self.level.value} '{trimmed}'"
                )
            values[self.parent_column] = str(parent_id)

        db_item = self.model(**values)
        try:
            with self.session.begin_nested():
                self.session.add(db_item)
        except IntegrityError:
            existing = self.find_exact(trimmed, parent_id)
            if existing is None:
                raise
            return existing

        self.session.refresh(db_item)
        logger.info(f"Created {self.level.value}: '{trimmed}'")
        return self._to_domain(db_item)

    def list_all(self, parent_id: UUID | str | None = None) -> list[DomainT]:
        """List entities, optionally within a parent scope."""
        stmt = self._scoped(select(self.model), parent_id).order_by(self.model.name)
        return [self._to_domain(row) for row in self.session.execute(stmt).scalars().all()]

    def count(self) -> int:
        """Get total count of entities."""
        stmt = select(func.count()).select_from(self.model)
        return self.session.execute(stmt).scalar() or 0


class CountryRepository(PlaceRepository[CountryDB, Country]):
    """Repository for countries."""

    level = TaxonomyLevel.COUNTRY
    model = CountryDB

    def _to_domain(self, db_item: CountryDB) -> Country:
        return country_to_domain(db_item)


class RegionRepository(PlaceRepository[RegionDB, Region]):
    """Repository for regions, scoped by country."""

    level = TaxonomyLevel.REGION
    model = RegionDB
    parent_model = CountryDB
    parent_column = "country_id"

    def _to_domain(self, db_item: RegionDB) -> Region:
        return region_to_domain(db_item)


class AppellationRepository(PlaceRepository[AppellationDB, Appellation]):
    """Repository for appellations, scoped by region."""

    level = TaxonomyLevel.APPELLATION
    model = AppellationDB
    parent_model = RegionDB
    parent_column = "region_id"

    def _to_domain(self, db_item: AppellationDB) -> Appellation:
        return appellation_to_domain(db_item)


class SubAppellationRepository(PlaceRepository[SubAppellationDB, SubAppellation]):
    """Repository for sub-appellations, scoped by appellation."""

    level = TaxonomyLevel.SUB_APPELLATION
    model = SubAppellationDB
    parent_model = AppellationDB
    parent_column = "appellation_id"
    allow_blank = True

    def _to_domain(self, db_item: SubAppellationDB) -> SubAppellation:
        return sub_appellation_to_domain(db_item)

    def get_or_create_blank(self, appellation_id: UUID | str) -> SubAppellation:
        """Return the sentinel sub-appellation for an appellation."""
        return self.get_or_create("", appellation_id)


# ============================================================================
# Wine Repository
# ============================================================================


class WineRepository:
    """Repository for Wine CRUD and lookup operations."""

    def __init__(self, session: Session, search_threshold: float = DEFAULT_SEARCH_THRESHOLD):
        self.session = session
        self.search_threshold = search_threshold

    def get_by_id(self, wine_id: UUID | str) -> Wine | None:
        """Get a wine by ID."""
        stmt = select(WineDB).where(WineDB.id == str(wine_id))
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return wine_to_domain(db_item) if db_item else None

    def find_in_sub_appellation(self, name: str, sub_appellation_id: UUID | str) -> Wine | None:
        """Find the wine identified by (name, sub-appellation record)."""
        key = name_key(name)
        if not key:
            return None

        stmt = select(WineDB).where(
            WineDB.name_key == key, WineDB.sub_appellation_id == str(sub_appellation_id)
        )
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return wine_to_domain(db_item) if db_item else None

    def find_by_name_and_context(
        self,
        name: str,
        sub_appellation_name: str | None = None,
        appellation_name: str | None = None,
    ) -> Wine | None:
        """
        Find a wine by case-insensitive name within a hierarchy context.

        Args:
            name: Wine name
            sub_appellation_name: Sub-appellation name; "" selects wines in the
                blank sentinel, None does not filter on sub-appellation
            appellation_name: Appellation name; None does not filter

        Returns:
            The first matching wine, or None
        """
        key = name_key(name)
        if not key:
            return None

        stmt = (
            select(WineDB)
            .join(SubAppellationDB, WineDB.sub_appellation_id == SubAppellationDB.id)
            .join(AppellationDB, SubAppellationDB.appellation_id == AppellationDB.id)
            .where(WineDB.name_key == key)
        )
        if sub_appellation_name is not None:
            stmt = stmt.where(SubAppellationDB.name_key == name_key(sub_appellation_name))
        if appellation_name is not None and appellation_name.strip():
            stmt = stmt.where(AppellationDB.name_key == name_key(appellation_name))

        stmt = stmt.order_by(WineDB.created_at, WineDB.id).limit(1)
        db_item = self.session.execute(stmt).scalars().first()
        return wine_to_domain(db_item) if db_item else None

    def find_closest_matches(self, name: str, limit: int = 5) -> list[Wine]:
        """
        Find wines whose names are closest to ``name`` across the catalog.

        Args:
            name: Wine name to search for
            limit: Maximum number of results

        Returns:
            Wines ranked by name closeness
        """
        rows = self.session.execute(select(WineDB.id, WineDB.name)).all()
        ranked = rank_candidates(
            rows,
            name,
            lambda row: row.name,
            max_results=limit,
            max_normalized_distance=self.search_threshold,
        )
        if not ranked:
            return []

        ids = [row.id for row in ranked]
        stmt = select(WineDB).where(WineDB.id.in_(ids))
        by_id = {w.id: w for w in self.session.execute(stmt).scalars().all()}
        return [wine_to_domain(by_id[i]) for i in ids if i in by_id]

    def create(self, wine: Wine) -> Wine:
        """Create a new wine."""
        db_item = WineDB(
            id=str(wine.id),
            name=wine.name,
            name_key=name_key(wine.name),
            color=wine.color.value,
            grape_variety=wine.grape_variety,
            sub_appellation_id=str(wine.sub_appellation_id),
        )
        self.session.add(db_item)
        self.session.flush()
        self.session.refresh(db_item)
        logger.info(f"Created wine: '{wine.name}'")
        return wine_to_domain(db_item)

    def update(self, wine: Wine) -> Wine:
        """Update an existing wine."""
        stmt = select(WineDB).where(WineDB.id == str(wine.id))
        db_item = self.session.execute(stmt).scalar_one_or_none()
        if db_item is None:
            raise ValueError(f"Wine with id {wine.id} not found")

        db_item.name = wine.name
        db_item.name_key = name_key(wine.name)
        db_item.color = wine.color.value
        db_item.grape_variety = wine.grape_variety
        db_item.sub_appellation_id = str(wine.sub_appellation_id)

        self.session.flush()
        self.session.refresh(db_item)
        return wine_to_domain(db_item)

    def list_all(self, limit: int = 100, offset: int = 0) -> list[Wine]:
        """List wines with pagination."""
        stmt = select(WineDB).order_by(WineDB.name).limit(limit).offset(offset)
        return [wine_to_domain(w) for w in self.session.execute(stmt).scalars().all()]

    def count(self) -> int:
        """Get total count of wines."""
        stmt = select(func.count()).select_from(WineDB)
        return self.session.execute(stmt).scalar() or 0
