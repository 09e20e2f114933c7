"""Entity resolution: hierarchy and wine resolvers, batch cache, configuration."""

from wine_terroir.resolution.cache import BatchCache
from wine_terroir.resolution.cancellation import CancellationToken, OperationCancelled
from wine_terroir.resolution.config import (
    ResolutionConfig,
    get_default_config,
    load_resolution_config,
    reset_default_config,
)
from wine_terroir.resolution.hierarchy import (
    HierarchyStore,
    Resolution,
    ScopedHierarchyResolver,
)
from wine_terroir.resolution.wine import WineResolver, WineStore

__all__ = [
    "BatchCache",
    "CancellationToken",
    "OperationCancelled",
    "ResolutionConfig",
    "get_default_config",
    "load_resolution_config",
    "reset_default_config",
    "HierarchyStore",
    "Resolution",
    "ScopedHierarchyResolver",
    "WineResolver",
    "WineStore",
]
