"""Database initialization and persistence layer."""

from wine_terroir.db.engine import (
    create_db_engine,
    get_database_url,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
    reset_engine,
)
from wine_terroir.db.models import (
    AppellationDB,
    Base,
    CountryDB,
    RegionDB,
    SubAppellationDB,
    WineDB,
)
from wine_terroir.db.repositories import (
    AppellationRepository,
    CountryRepository,
    RegionRepository,
    SubAppellationRepository,
    WineRepository,
)

__all__ = [
    # Engine
    "create_db_engine",
    "get_database_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "reset_engine",
    # Models
    "Base",
    "CountryDB",
    "RegionDB",
    "AppellationDB",
    "SubAppellationDB",
    "WineDB",
    # Repositories
    "CountryRepository",
    "RegionRepository",
    "AppellationRepository",
    "SubAppellationRepository",
    "WineRepository",
]
