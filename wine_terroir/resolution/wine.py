"""
Wine Resolver
=============

Resolves a wine by name within its appellation / sub-appellation context.

A wine is identified by its name and its sub-appellation record, so an
exact (name, sub-appellation id) lookup is tried first. Failing that,
catalog-wide name candidates are accepted only when their recorded
hierarchy agrees with the target context:

a. same sub-appellation record
b. same appellation, and both sub-appellations are the blank sentinel
c. same appellation, both sub-appellations named, and the sub-appellation
   names are within the place-name threshold
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from wine_terroir.core.enums import ResolutionState, TaxonomyLevel, WineColor
from wine_terroir.core.matching import normalized_distance, rank_candidates
from wine_terroir.core.schema import Appellation, SubAppellation, Wine
from wine_terroir.resolution.cancellation import CancellationToken, check
from wine_terroir.resolution.hierarchy import Resolution

if TYPE_CHECKING:
    from wine_terroir.resolution.cache import BatchCache
    from wine_terroir.resolution.config import ResolutionConfig

logger = logging.getLogger(__name__)


class WineStore(Protocol):
    """Wine lookups and writes the resolver depends on."""

    def find_in_sub_appellation(self, name: str, sub_appellation_id: UUID) -> Wine | None: ...

    def find_closest_matches(self, name: str, limit: int = 5) -> list[Wine]: ...

    def create(self, wine: Wine) -> Wine: ...

    def update(self, wine: Wine) -> Wine: ...


class WineResolver:
    """
    Resolves wines against the catalog.

    Args:
        store: Wine persistence backend
        name_threshold: Maximum normalized distance between wine names
        place_threshold: Maximum normalized distance between sub-appellation
            names when both are named (rule c)
        candidate_limit: Number of name candidates requested
    """

    def __init__(
        self,
        store: WineStore,
        name_threshold: float = 0.2,
        place_threshold: float = 0.3,
        candidate_limit: int = 5,
    ) -> None:
        self.store = store
        self.name_threshold = name_threshold
        self.place_threshold = place_threshold
        self.candidate_limit = candidate_limit

    @classmethod
    def from_config(cls, store: WineStore, config: ResolutionConfig) -> WineResolver:
        """Create resolver from configuration."""
        return cls(
            store=store,
            name_threshold=config.wine_match_threshold,
            place_threshold=config.place_match_threshold,
            candidate_limit=config.candidate_limit,
        )

    def resolve(
        self,
        name: str,
        appellation: Appellation,
        sub_appellation: SubAppellation,
        cancel: CancellationToken | None = None,
        cache: BatchCache | None = None,
    ) -> Resolution[Wine]:
        """
        Find an existing wine in the given hierarchy context.

        Args:
            name: Requested wine name
            appellation: Resolved target appellation
            sub_appellation: Resolved target sub-appellation (possibly the
                blank sentinel)
            cancel: Cancellation token checked before each store call
            cache: Batch cache consulted before, and populated after, lookup

        Returns:
            Resolution in state FOUND_EXACT, FOUND_APPROXIMATE or NOT_FOUND
        """
        query = (name or "").strip()
        if not query:
            raise ValueError("A wine name is required")

        resolution: Resolution[Wine] = Resolution(
            level=TaxonomyLevel.WINE, query=query, parent_id=sub_appellation.id
        )

        if cache is not None:
            cached = cache.get(TaxonomyLevel.WINE, sub_appellation.id, query)
            if cached is not None:
                logger.debug(f"Cache hit for wine '{query}'")
                resolution.state = ResolutionState.FOUND_EXACT
                resolution.entity = cached
                resolution.from_cache = True
                return resolution

        check(cancel)
        exact = self.store.find_in_sub_appellation(query, sub_appellation.id)
        if exact is not None:
            resolution.state = ResolutionState.FOUND_EXACT
            resolution.entity = exact
        else:
            check(cancel)
            candidates = self.store.find_closest_matches(query, self.candidate_limit)
            resolution.candidates = candidates
            best = self._best_candidate(query, candidates, appellation, sub_appellation)
            if best is not None:
                logger.debug(f"Matched wine '{query}' to '{best.name}'")
                resolution.state = ResolutionState.FOUND_APPROXIMATE
                resolution.entity = best
            else:
                resolution.state = ResolutionState.NOT_FOUND

        if cache is not None and resolution.entity is not None:
            cache.put(TaxonomyLevel.WINE, sub_appellation.id, query, resolution.entity)
        return resolution

    def create(
        self,
        resolution: Resolution[Wine],
        color: WineColor,
        sub_appellation: SubAppellation,
        grape_variety: str | None = None,
        cancel: CancellationToken | None = None,
        cache: BatchCache | None = None,
    ) -> Resolution[Wine]:
        """Create the wine a NOT_FOUND resolution asked for."""
        if resolution.state != ResolutionState.NOT_FOUND:
            raise ValueError(f"Cannot create from state {resolution.state.value}")

        check(cancel)
        wine = Wine(
            name=resolution.query,
            color=color,
            grape_variety=(grape_variety or "").strip(),
            sub_appellation_id=sub_appellation.id,
        )
        resolution.entity = self.store.create(wine)
        resolution.state = ResolutionState.CREATED

        if cache is not None:
            cache.put(TaxonomyLevel.WINE, sub_appellation.id, resolution.query, resolution.entity)
        return resolution

    def suggest(self, name: str, cancel: CancellationToken | None = None) -> list[Wine]:
        """Nearby wines by name only, for disambiguation when context is missing."""
        check(cancel)
        return self.store.find_closest_matches(name, self.candidate_limit)

    def _best_candidate(
        self,
        query: str,
        candidates: list[Wine],
        appellation: Appellation,
        sub_appellation: SubAppellation,
    ) -> Wine | None:
        ranked = rank_candidates(
            candidates,
            query,
            lambda w: w.name,
            max_results=self.candidate_limit,
            max_normalized_distance=self.name_threshold,
        )
        for candidate in ranked:
            if normalized_distance(query, candidate.name) > self.name_threshold:
                continue
            if self._context_matches(candidate, appellation, sub_appellation):
                return candidate
        return None

    def _context_matches(
        self, candidate: Wine, appellation: Appellation, sub_appellation: SubAppellation
    ) -> bool:
        if candidate.sub_appellation_id == sub_appellation.id:
            return True

        candidate_sub = candidate.sub_appellation
        if candidate_sub is None or candidate_sub.appellation_id != appellation.id:
            return False

        if candidate_sub.is_blank and sub_appellation.is_blank:
            return True
        if candidate_sub.is_blank or sub_appellation.is_blank:
            return False
        return normalized_distance(candidate_sub.name, sub_appellation.name) <= self.place_threshold
