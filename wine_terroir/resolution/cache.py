"""
Batch Cache
===========

Job-scoped memo table for batch import. Entries are keyed by
(level, parent scope id, normalized name) so that repeated rows resolve
without touching the store again.

Writes made while a row is being processed are staged; the import service
commits them when the row's transaction commits and discards them when it
rolls back, so later rows never see records that no longer exist.

Not safe to share between concurrently running jobs.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from wine_terroir.core.enums import TaxonomyLevel

logger = logging.getLogger(__name__)

CacheKey = tuple[TaxonomyLevel, str, str]


def cache_key(level: TaxonomyLevel, parent_id: UUID | str | None, name: str | None) -> CacheKey:
    """Build the cache key for a name within a parent scope."""
    scope = str(parent_id) if parent_id is not None else ""
    return (level, scope, (name or "").strip().lower())


class BatchCache:
    """Memoizes resolved and created entities for one import job."""

    def __init__(self) -> None:
        self._entries: dict[CacheKey, Any] = {}
        self._staged: dict[CacheKey, Any] = {}
        self.hits = 0
        self.misses = 0

    def get(self, level: TaxonomyLevel, parent_id: UUID | str | None, name: str | None) -> Any:
        """Return the cached entity, or None."""
        key = cache_key(level, parent_id, name)
        entity = self._staged.get(key)
        if entity is None:
            entity = self._entries.get(key)
        if entity is None:
            self.misses += 1
        else:
            self.hits += 1
        return entity

    def put(
        self, level: TaxonomyLevel, parent_id: UUID | str | None, name: str | None, entity: Any
    ) -> None:
        """Stage an entity for the current row."""
        self._staged[cache_key(level, parent_id, name)] = entity

    def replace(self, entity: Any) -> None:
        """Swap every cached reference to ``entity.id`` for the updated entity."""
        for table in (self._entries, self._staged):
            for key, cached in table.items():
                if cached.id == entity.id:
                    table[key] = entity

    def commit(self) -> None:
        """Promote staged entries; called after the row's transaction commits."""
        self._entries.update(self._staged)
        self._staged.clear()

    def rollback(self) -> None:
        """Discard staged entries; called after the row's transaction rolls back."""
        if self._staged:
            logger.debug(f"Discarding {len(self._staged)} staged cache entries")
        self._staged.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries or key in self._staged
