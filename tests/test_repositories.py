"""Tests for the taxonomy persistence layer."""

import tempfile
from pathlib import Path
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session, sessionmaker

from wine_terroir.core.enums import WineColor
from wine_terroir.core.schema import Wine
from wine_terroir.db.engine import create_db_engine
from wine_terroir.db.models import Base
from wine_terroir.db.repositories import (
    AppellationRepository,
    CountryRepository,
    RegionRepository,
    SubAppellationRepository,
    WineRepository,
)


@pytest.fixture
def temp_db_path():
    """Create a temporary database file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test_taxonomy.db"


@pytest.fixture
def engine(temp_db_path):
    """Create a test database engine."""
    engine = create_db_engine(temp_db_path)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    """Create a database session for testing."""
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def chablis_hierarchy(session: Session):
    """France > Burgundy > Chablis, with the blank sub-appellation."""
    france = CountryRepository(session).get_or_create("France")
    burgundy = RegionRepository(session).get_or_create("Burgundy", france.id)
    chablis = AppellationRepository(session).get_or_create("Chablis", burgundy.id)
    sentinel = SubAppellationRepository(session).get_or_create_blank(chablis.id)
    session.commit()
    return france, burgundy, chablis, sentinel


class TestCountryRepository:
    """Tests for CountryRepository."""

    def test_get_or_create_is_idempotent(self, session: Session) -> None:
        repo = CountryRepository(session)
        first = repo.get_or_create("France")
        second = repo.get_or_create("  FRANCE ")
        session.commit()

        assert first.id == second.id
        assert second.name == "France"
        assert repo.count() == 1

    def test_blank_name_rejected(self, session: Session) -> None:
        with pytest.raises(ValueError):
            CountryRepository(session).get_or_create("  ")

    def test_find_exact_case_insensitive(self, session: Session) -> None:
        repo = CountryRepository(session)
        repo.get_or_create("New Zealand")
        session.commit()

        assert repo.find_exact("new zealand").name == "New Zealand"
        assert repo.find_exact("Zealand") is None

    def test_search_approximate(self, session: Session) -> None:
        repo = CountryRepository(session)
        for name in ["France", "Italy", "Spain"]:
            repo.get_or_create(name)
        session.commit()

        results = repo.search_approximate("Frnace")

        assert [c.name for c in results] == ["France"]

    def test_get_by_id(self, session: Session) -> None:
        repo = CountryRepository(session)
        created = repo.get_or_create("Portugal")
        session.commit()

        assert repo.get_by_id(created.id).name == "Portugal"
        assert repo.get_by_id(uuid4()) is None


class TestScopedRepositories:
    """Tests for parent-scoped place repositories."""

    def test_region_requires_parent(self, session: Session) -> None:
        with pytest.raises(ValueError):
            RegionRepository(session).get_or_create("Burgundy")

    def test_region_requires_existing_parent(self, session: Session) -> None:
        with pytest.raises(ValueError):
            RegionRepository(session).get_or_create("Burgundy", uuid4())

    def test_same_name_in_different_parents(self, session: Session) -> None:
        countries = CountryRepository(session)
        regions = RegionRepository(session)
        usa = countries.get_or_create("USA")
        australia = countries.get_or_create("Australia")

        georgia_us = regions.get_or_create("Georgia", usa.id)
        georgia_au = regions.get_or_create("Georgia", australia.id)
        session.commit()

        assert georgia_us.id != georgia_au.id
        assert regions.count() == 2

    def test_find_exact_scoped(self, session: Session) -> None:
        countries = CountryRepository(session)
        regions = RegionRepository(session)
        france = countries.get_or_create("France")
        italy = countries.get_or_create("Italy")
        burgundy = regions.get_or_create("Burgundy", france.id)
        session.commit()

        assert regions.find_exact("burgundy", france.id).id == burgundy.id
        assert regions.find_exact("Burgundy", italy.id) is None
        assert regions.find_exact("Burgundy").country_id == france.id

    def test_search_approximate_scoped(self, session: Session) -> None:
        countries = CountryRepository(session)
        regions = RegionRepository(session)
        france = countries.get_or_create("France")
        italy = countries.get_or_create("Italy")
        regions.get_or_create("Burgundy", france.id)
        session.commit()

        assert [r.name for r in regions.search_approximate("Burgandy", france.id)] == ["Burgundy"]
        assert regions.search_approximate("Burgandy", italy.id) == []

    def test_domain_carries_parents(self, chablis_hierarchy) -> None:
        france, burgundy, chablis, _ = chablis_hierarchy

        assert chablis.region.name == "Burgundy"
        assert chablis.region.country.name == "France"

    def test_list_all_scoped(self, session: Session, chablis_hierarchy) -> None:
        _, burgundy, _, _ = chablis_hierarchy
        appellations = AppellationRepository(session)
        appellations.get_or_create("Beaune", burgundy.id)
        session.commit()

        assert [a.name for a in appellations.list_all(burgundy.id)] == ["Beaune", "Chablis"]


class TestSubAppellationRepository:
    """Tests for the blank sub-appellation."""

    def test_blank_is_idempotent(self, session: Session, chablis_hierarchy) -> None:
        _, _, chablis, sentinel = chablis_hierarchy
        repo = SubAppellationRepository(session)

        again = repo.get_or_create_blank(chablis.id)

        assert again.id == sentinel.id
        assert again.is_blank
        assert repo.count() == 1

    def test_find_exact_blank(self, session: Session, chablis_hierarchy) -> None:
        _, _, chablis, sentinel = chablis_hierarchy
        assert SubAppellationRepository(session).find_exact("", chablis.id).id == sentinel.id

    def test_search_excludes_blank(self, session: Session, chablis_hierarchy) -> None:
        _, _, chablis, _ = chablis_hierarchy
        repo = SubAppellationRepository(session)
        repo.get_or_create("Les Clos", chablis.id)
        session.commit()

        results = repo.search_approximate("Les", chablis.id)

        assert [s.name for s in results] == ["Les Clos"]


class TestWineRepository:
    """Tests for WineRepository."""

    def _create(self, session: Session, name: str, sub, color=WineColor.WHITE) -> Wine:
        wine = WineRepository(session).create(
            Wine(name=name, color=color, sub_appellation_id=sub.id)
        )
        session.commit()
        return wine

    def test_create_and_get(self, session: Session, chablis_hierarchy) -> None:
        _, _, _, sentinel = chablis_hierarchy
        created = self._create(session, "Chablis Village", sentinel)

        retrieved = WineRepository(session).get_by_id(created.id)

        assert retrieved.name == "Chablis Village"
        assert retrieved.color == WineColor.WHITE
        assert retrieved.appellation.name == "Chablis"
        assert retrieved.country.name == "France"

    def test_find_by_name_and_context(self, session: Session, chablis_hierarchy) -> None:
        _, _, chablis, sentinel = chablis_hierarchy
        les_clos = SubAppellationRepository(session).get_or_create("Les Clos", chablis.id)
        in_sentinel = self._create(session, "Grand Cru", sentinel)
        in_les_clos = self._create(session, "Grand Cru", les_clos)
        repo = WineRepository(session)

        assert repo.find_by_name_and_context("grand cru", "", "Chablis").id == in_sentinel.id
        assert repo.find_by_name_and_context("Grand Cru", "les clos", "chablis").id == in_les_clos.id
        assert repo.find_by_name_and_context("Grand Cru", "Les Clos", "Beaune") is None
        assert repo.find_by_name_and_context("Grand Cru") is not None
        assert repo.find_by_name_and_context("  ") is None

    def test_find_in_sub_appellation(self, session: Session, chablis_hierarchy) -> None:
        _, _, _, sentinel = chablis_hierarchy
        usa = CountryRepository(session).get_or_create("USA")
        california = RegionRepository(session).get_or_create("California", usa.id)
        us_chablis = AppellationRepository(session).get_or_create("Chablis", california.id)
        us_sentinel = SubAppellationRepository(session).get_or_create_blank(us_chablis.id)
        french = self._create(session, "Reserve", sentinel, WineColor.RED)
        american = self._create(session, "Reserve", us_sentinel, WineColor.RED)
        repo = WineRepository(session)

        assert repo.find_in_sub_appellation("reserve", us_sentinel.id).id == american.id
        assert repo.find_in_sub_appellation("Reserve", sentinel.id).id == french.id
        assert repo.find_in_sub_appellation("Reserva", sentinel.id) is None
        assert repo.find_in_sub_appellation(" ", sentinel.id) is None

    def test_find_closest_matches(self, session: Session, chablis_hierarchy) -> None:
        _, _, _, sentinel = chablis_hierarchy
        for name in ["Chablis Premier Cru", "Chablis Grand Cru", "Petit Chablis", "Montrachet"]:
            self._create(session, name, sentinel)

        results = WineRepository(session).find_closest_matches("Chablis Grand Cru", limit=2)

        assert len(results) == 2
        assert results[0].name == "Chablis Grand Cru"
        assert "Montrachet" not in [w.name for w in results]

    def test_update(self, session: Session, chablis_hierarchy) -> None:
        _, _, chablis, sentinel = chablis_hierarchy
        les_clos = SubAppellationRepository(session).get_or_create("Les Clos", chablis.id)
        wine = self._create(session, "Grand Cru", sentinel)
        repo = WineRepository(session)

        updated = repo.update(
            wine.model_copy(update={"color": WineColor.RED, "sub_appellation_id": les_clos.id})
        )
        session.commit()

        assert updated.color == WineColor.RED
        assert updated.sub_appellation.name == "Les Clos"
        assert repo.count() == 1

    def test_update_missing_wine(self, session: Session, chablis_hierarchy) -> None:
        _, _, _, sentinel = chablis_hierarchy
        wine = Wine(name="Ghost", color=WineColor.RED, sub_appellation_id=sentinel.id)
        with pytest.raises(ValueError):
            WineRepository(session).update(wine)
