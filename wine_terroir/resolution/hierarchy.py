"""
Scoped Hierarchy Resolver
=========================

One resolution step for a single place level (country, region, appellation,
sub-appellation). The resolver is generic over a small store protocol and is
instantiated once per level.

Resolution order:
1. Exact case-insensitive match within the parent scope
2. Best approximate candidate within the parent scope, if close enough
3. Not found; the caller decides whether it has enough context to create
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, Protocol, TypeVar
from uuid import UUID

from wine_terroir.core.enums import ResolutionState, TaxonomyLevel
from wine_terroir.core.matching import normalized_distance, rank_candidates
from wine_terroir.resolution.cancellation import CancellationToken, check

if TYPE_CHECKING:
    from wine_terroir.resolution.cache import BatchCache
    from wine_terroir.resolution.config import ResolutionConfig

logger = logging.getLogger(__name__)


class NamedEntity(Protocol):
    id: UUID
    name: str


T = TypeVar("T", bound=NamedEntity)


class HierarchyStore(Protocol[T]):
    """Lookups one taxonomy level must provide."""

    def find_exact(self, name: str, parent_id: UUID | None = None) -> T | None: ...

    def search_approximate(
        self, name: str, parent_id: UUID | None = None, limit: int = 5
    ) -> list[T]: ...

    def get_or_create(self, name: str, parent_id: UUID | None = None) -> T: ...


_RESOLVED = (
    ResolutionState.FOUND_EXACT,
    ResolutionState.FOUND_APPROXIMATE,
    ResolutionState.CREATED,
)


@dataclass
class Resolution(Generic[T]):
    """Outcome of resolving one name at one level."""

    level: TaxonomyLevel
    query: str
    parent_id: UUID | None = None
    state: ResolutionState = ResolutionState.NOT_STARTED
    entity: T | None = None
    candidates: list[T] = field(default_factory=list)
    from_cache: bool = False

    @property
    def resolved(self) -> bool:
        return self.state in _RESOLVED and self.entity is not None

    @property
    def created(self) -> bool:
        return self.state == ResolutionState.CREATED and not self.from_cache

    def suggestion_names(self) -> list[str]:
        """Names of nearby candidates, for disambiguation messages."""
        return [c.name for c in self.candidates if c.name]


class ScopedHierarchyResolver(Generic[T]):
    """
    Resolves names for one level of the place hierarchy.

    Args:
        level: Taxonomy level handled by this resolver
        store: Lookup/creation backend for the level
        threshold: Maximum normalized distance for an approximate match
        candidate_limit: Number of approximate candidates requested
        allow_blank: Whether a blank name resolves to the level's sentinel
            record instead of being rejected
    """

    def __init__(
        self,
        level: TaxonomyLevel,
        store: HierarchyStore[T],
        threshold: float = 0.3,
        candidate_limit: int = 5,
        allow_blank: bool = False,
    ) -> None:
        self.level = level
        self.store = store
        self.threshold = threshold
        self.candidate_limit = candidate_limit
        self.allow_blank = allow_blank

    @classmethod
    def from_config(
        cls,
        level: TaxonomyLevel,
        store: HierarchyStore[T],
        config: ResolutionConfig,
    ) -> ScopedHierarchyResolver[T]:
        """Create resolver from configuration."""
        return cls(
            level=level,
            store=store,
            threshold=config.place_match_threshold,
            candidate_limit=config.candidate_limit,
            allow_blank=level == TaxonomyLevel.SUB_APPELLATION,
        )

    def resolve(
        self,
        name: str | None,
        parent_id: UUID | None = None,
        cancel: CancellationToken | None = None,
        cache: BatchCache | None = None,
    ) -> Resolution[T]:
        """
        Find an existing record for ``name`` within ``parent_id``'s scope.

        Args:
            name: Requested name
            parent_id: Parent scope, or None for unscoped lookup
            cancel: Cancellation token checked before each store call
            cache: Batch cache consulted before, and populated after, lookup

        Returns:
            Resolution in state FOUND_EXACT, FOUND_APPROXIMATE or NOT_FOUND

        Raises:
            ValueError: If ``name`` is blank and this level has no sentinel
        """
        query = (name or "").strip()
        if not query and not self.allow_blank:
            raise ValueError(f"A {self.level.value} name is required")

        resolution: Resolution[T] = Resolution(level=self.level, query=query, parent_id=parent_id)

        if cache is not None:
            cached = cache.get(self.level, parent_id, query)
            if cached is not None:
                logger.debug(f"Cache hit for {self.level.value} '{query}'")
                resolution.state = ResolutionState.FOUND_EXACT
                resolution.entity = cached
                resolution.from_cache = True
                return resolution

        check(cancel)
        exact = self.store.find_exact(query, parent_id)
        if exact is not None:
            resolution.state = ResolutionState.FOUND_EXACT
            resolution.entity = exact
        elif query:
            check(cancel)
            candidates = self.store.search_approximate(query, parent_id, self.candidate_limit)
            resolution.candidates = candidates
            best = self._best_candidate(query, candidates)
            if best is not None:
                logger.debug(f"Matched {self.level.value} '{query}' to '{best.name}'")
                resolution.state = ResolutionState.FOUND_APPROXIMATE
                resolution.entity = best
            else:
                resolution.state = ResolutionState.NOT_FOUND
        else:
            # Blank sentinel is never searched for by name.
            resolution.state = ResolutionState.NOT_FOUND

        if cache is not None and resolution.entity is not None:
            cache.put(self.level, parent_id, query, resolution.entity)
        return resolution

    def create(
        self,
        resolution: Resolution[T],
        cancel: CancellationToken | None = None,
        cache: BatchCache | None = None,
    ) -> Resolution[T]:
        """
        Create the record a NOT_FOUND resolution asked for.

        The caller is responsible for deciding that the parent context is
        sufficient; ``resolution.parent_id`` is used as the parent.
        """
        if resolution.state != ResolutionState.NOT_FOUND:
            raise ValueError(f"Cannot create from state {resolution.state.value}")

        check(cancel)
        resolution.entity = self.store.get_or_create(resolution.query, resolution.parent_id)
        resolution.state = ResolutionState.CREATED

        if cache is not None:
            cache.put(self.level, resolution.parent_id, resolution.query, resolution.entity)
        return resolution

    def resolve_or_create(
        self,
        name: str | None,
        parent_id: UUID | None,
        cancel: CancellationToken | None = None,
        cache: BatchCache | None = None,
    ) -> Resolution[T]:
        """Resolve ``name``, creating it under ``parent_id`` when not found."""
        resolution = self.resolve(name, parent_id, cancel=cancel, cache=cache)
        if resolution.state == ResolutionState.NOT_FOUND:
            resolution = self.create(resolution, cancel=cancel, cache=cache)
        return resolution

    def _best_candidate(self, query: str, candidates: list[T]) -> T | None:
        ranked = rank_candidates(
            candidates,
            query,
            lambda c: c.name,
            max_results=self.candidate_limit,
            max_normalized_distance=self.threshold,
        )
        for candidate in ranked:
            if normalized_distance(query, candidate.name) <= self.threshold:
                return candidate
        return None
