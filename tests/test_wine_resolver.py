"""Tests for context-aware wine resolution."""

from uuid import uuid4

import pytest

from wine_terroir.core.enums import ResolutionState, WineColor
from wine_terroir.core.matching import rank_candidates
from wine_terroir.core.schema import Appellation, Country, Region, SubAppellation, Wine
from wine_terroir.resolution.cache import BatchCache
from wine_terroir.resolution.cancellation import CancellationToken, OperationCancelled
from wine_terroir.resolution.wine import WineResolver


class InMemoryWineStore:
    """Wine store over a plain list of domain wines."""

    def __init__(self, wines: list[Wine] | None = None):
        self.wines = list(wines or [])
        self.calls: list[str] = []

    def find_in_sub_appellation(self, name, sub_appellation_id):
        self.calls.append("find_in_sub_appellation")
        for wine in self.wines:
            same_name = wine.name.lower() == name.strip().lower()
            if same_name and wine.sub_appellation_id == sub_appellation_id:
                return wine
        return None

    def find_closest_matches(self, name, limit=5):
        self.calls.append("find_closest_matches")
        return rank_candidates(self.wines, name, lambda w: w.name, limit, 0.45)

    def create(self, wine):
        self.calls.append("create")
        self.wines.append(wine)
        return wine

    def update(self, wine):
        return wine


@pytest.fixture
def chablis() -> Appellation:
    country = Country(name="France")
    region = Region(name="Burgundy", country_id=country.id, country=country)
    return Appellation(name="Chablis", region_id=region.id, region=region)


@pytest.fixture
def gevrey() -> Appellation:
    return Appellation(name="Gevrey-Chambertin", region_id=uuid4())


def _sub(appellation: Appellation, name: str = "") -> SubAppellation:
    return SubAppellation(name=name, appellation_id=appellation.id, appellation=appellation)


def _wine(name: str, sub: SubAppellation, color: WineColor = WineColor.WHITE) -> Wine:
    return Wine(name=name, color=color, sub_appellation_id=sub.id, sub_appellation=sub)


@pytest.fixture
def californian_chablis() -> Appellation:
    country = Country(name="USA")
    region = Region(name="California", country_id=country.id, country=country)
    return Appellation(name="Chablis", region_id=region.id, region=region)


class TestResolve:
    """Tests for WineResolver.resolve()."""

    def test_exact_match_in_context(self, chablis) -> None:
        sentinel = _sub(chablis)
        wine = _wine("Domaine Laroche Chablis", sentinel)
        store = InMemoryWineStore([wine])

        resolution = WineResolver(store).resolve("domaine laroche chablis", chablis, sentinel)

        assert resolution.state == ResolutionState.FOUND_EXACT
        assert resolution.entity is wine
        assert "find_closest_matches" not in store.calls

    def test_same_name_under_another_region(self, chablis, californian_chablis) -> None:
        french = _wine("Reserve", _sub(chablis), WineColor.RED)
        sentinel = _sub(californian_chablis)
        american = _wine("Reserve", sentinel, WineColor.RED)
        store = InMemoryWineStore([french, american])

        resolution = WineResolver(store).resolve("Reserve", californian_chablis, sentinel)

        assert resolution.state == ResolutionState.FOUND_EXACT
        assert resolution.entity is american

    def test_same_named_appellation_elsewhere_rejected(self, chablis, californian_chablis) -> None:
        french = _wine("Reserve", _sub(chablis), WineColor.RED)
        store = InMemoryWineStore([french])

        resolution = WineResolver(store).resolve(
            "Reserve", californian_chablis, _sub(californian_chablis)
        )

        assert resolution.state == ResolutionState.NOT_FOUND
        assert resolution.candidates == [french]

    def test_same_sub_appellation_record(self, gevrey) -> None:
        sub = _sub(gevrey, "Les Cazetiers")
        wine = _wine("Clos Saint-Jacques", sub, WineColor.RED)
        store = InMemoryWineStore([wine])

        resolution = WineResolver(store).resolve("Clos Saint Jacques", gevrey, sub)

        assert resolution.state == ResolutionState.FOUND_APPROXIMATE
        assert resolution.entity is wine

    def test_both_in_blank_sentinel(self, chablis) -> None:
        recorded = _sub(chablis)
        wine = _wine("William Fevre Chablis", recorded)
        store = InMemoryWineStore([wine])
        target = _sub(chablis)
        assert target.id != recorded.id

        resolution = WineResolver(store).resolve("Wiliam Fevre Chablis", chablis, target)

        assert resolution.state == ResolutionState.FOUND_APPROXIMATE
        assert resolution.entity is wine

    def test_close_sub_appellation_names(self, gevrey) -> None:
        recorded = _sub(gevrey, "Les Cazetiers")
        wine = _wine("Clos Saint-Jacques", recorded, WineColor.RED)
        store = InMemoryWineStore([wine])
        target = _sub(gevrey, "Les Cazetier")

        resolution = WineResolver(store).resolve("Clos Saint Jacques", gevrey, target)

        assert resolution.state == ResolutionState.FOUND_APPROXIMATE
        assert resolution.entity is wine

    def test_different_appellation_rejected(self, chablis, gevrey) -> None:
        wine = _wine("Grand Cru Selection", _sub(gevrey))
        store = InMemoryWineStore([wine])

        resolution = WineResolver(store).resolve("Grand Cru Selection", chablis, _sub(chablis))

        assert resolution.state == ResolutionState.NOT_FOUND
        assert resolution.candidates == [wine]

    def test_blank_and_named_sub_appellations_rejected(self, gevrey) -> None:
        wine = _wine("Clos Saint-Jacques", _sub(gevrey), WineColor.RED)
        store = InMemoryWineStore([wine])

        resolution = WineResolver(store).resolve(
            "Clos Saint Jacques", gevrey, _sub(gevrey, "Les Cazetiers")
        )

        assert resolution.state == ResolutionState.NOT_FOUND

    def test_distant_sub_appellation_names_rejected(self, gevrey) -> None:
        wine = _wine("Premier Cru", _sub(gevrey, "Les Cazetiers"), WineColor.RED)
        store = InMemoryWineStore([wine])

        resolution = WineResolver(store).resolve("Premier Cru", gevrey, _sub(gevrey, "Lavaut"))

        assert resolution.state == ResolutionState.NOT_FOUND

    def test_name_beyond_threshold_rejected(self, chablis) -> None:
        sentinel = _sub(chablis)
        wine = _wine("Les Amoureuses", sentinel, WineColor.RED)
        store = InMemoryWineStore([wine])

        resolution = WineResolver(store).resolve("Les Amoureux", chablis, sentinel)

        assert resolution.state == ResolutionState.NOT_FOUND

    def test_blank_name_rejected(self, chablis) -> None:
        with pytest.raises(ValueError):
            WineResolver(InMemoryWineStore()).resolve(" ", chablis, _sub(chablis))

    def test_cache_hit(self, chablis) -> None:
        sentinel = _sub(chablis)
        wine = _wine("Chablis", sentinel)
        store = InMemoryWineStore([wine])
        resolver = WineResolver(store)
        cache = BatchCache()

        resolver.resolve("Chablis", chablis, sentinel, cache=cache)
        store.calls.clear()
        second = resolver.resolve("CHABLIS", chablis, sentinel, cache=cache)

        assert second.entity is wine
        assert second.from_cache
        assert store.calls == []

    def test_cancelled(self, chablis) -> None:
        token = CancellationToken()
        token.cancel()
        store = InMemoryWineStore()

        with pytest.raises(OperationCancelled):
            WineResolver(store).resolve("Chablis", chablis, _sub(chablis), cancel=token)
        assert store.calls == []


class TestCreate:
    """Tests for WineResolver.create()."""

    def test_create_from_not_found(self, chablis) -> None:
        sentinel = _sub(chablis)
        store = InMemoryWineStore()
        resolver = WineResolver(store)
        resolution = resolver.resolve("Petit Chablis", chablis, sentinel)

        created = resolver.create(resolution, WineColor.WHITE, sentinel, grape_variety=" Chardonnay ")

        assert created.state == ResolutionState.CREATED
        assert created.entity.name == "Petit Chablis"
        assert created.entity.grape_variety == "Chardonnay"
        assert created.entity.sub_appellation_id == sentinel.id
        assert store.wines == [created.entity]

    def test_create_from_found_rejected(self, chablis) -> None:
        sentinel = _sub(chablis)
        store = InMemoryWineStore([_wine("Chablis", sentinel)])
        resolver = WineResolver(store)
        resolution = resolver.resolve("Chablis", chablis, sentinel)

        with pytest.raises(ValueError):
            resolver.create(resolution, WineColor.WHITE, sentinel)

    def test_suggest_ignores_context(self, chablis, gevrey) -> None:
        wine = _wine("Chablis Grand Cru", _sub(gevrey))
        resolver = WineResolver(InMemoryWineStore([wine]))

        assert resolver.suggest("Chablis Grand Cru") == [wine]
