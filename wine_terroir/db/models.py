"""SQLAlchemy ORM models for the canonical wine taxonomy.

Tables:
- countries, regions, appellations, sub_appellations (place hierarchy)
- wines

Every table carries a ``name_key`` column (trimmed, lower-cased name) so
case-insensitive uniqueness is enforced by the database.
"""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def _generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


def name_key(name: str | None) -> str:
    """Uniqueness key for a name."""
    return (name or "").strip().lower()


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class CountryDB(Base):
    """Database model for countries."""

    __tablename__ = "countries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    regions: Mapped[list["RegionDB"]] = relationship("RegionDB", back_populates="country")

    def __repr__(self) -> str:
        return f"<CountryDB(id={self.id}, name='{self.name}')>"


class RegionDB(Base):
    """Database model for regions, scoped to a country."""

    __tablename__ = "regions"
    __table_args__ = (UniqueConstraint("country_id", "name_key", name="uq_regions_country_name"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    country_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("countries.id"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    country: Mapped["CountryDB"] = relationship("CountryDB", back_populates="regions")
    appellations: Mapped[list["AppellationDB"]] = relationship(
        "AppellationDB", back_populates="region"
    )

    def __repr__(self) -> str:
        return f"<RegionDB(id={self.id}, name='{self.name}')>"


class AppellationDB(Base):
    """Database model for appellations, scoped to a region."""

    __tablename__ = "appellations"
    __table_args__ = (
        UniqueConstraint("region_id", "name_key", name="uq_appellations_region_name"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    region_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("regions.id"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    region: Mapped["RegionDB"] = relationship("RegionDB", back_populates="appellations")
    sub_appellations: Mapped[list["SubAppellationDB"]] = relationship(
        "SubAppellationDB", back_populates="appellation"
    )

    def __repr__(self) -> str:
        return f"<AppellationDB(id={self.id}, name='{self.name}')>"


class SubAppellationDB(Base):
    """
    Database model for sub-appellations, scoped to an appellation.

    The row with an empty name is the per-appellation sentinel.
    """

    __tablename__ = "sub_appellations"
    __table_args__ = (
        UniqueConstraint("appellation_id", "name_key", name="uq_sub_appellations_appellation_name"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    name_key: Mapped[str] = mapped_column(String(255), nullable=False, default="", index=True)
    appellation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("appellations.id"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    appellation: Mapped["AppellationDB"] = relationship(
        "AppellationDB", back_populates="sub_appellations"
    )
    wines: Mapped[list["WineDB"]] = relationship("WineDB", back_populates="sub_appellation")

    def __repr__(self) -> str:
        return f"<SubAppellationDB(id={self.id}, name='{self.name}')>"


class WineDB(Base):
    """Database model for canonical wines."""

    __tablename__ = "wines"
    __table_args__ = (
        UniqueConstraint("sub_appellation_id", "name_key", name="uq_wines_sub_appellation_name"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    color: Mapped[str] = mapped_column(String(20), nullable=False)
    grape_variety: Mapped[str] = mapped_column(String(255), default="")
    sub_appellation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sub_appellations.id"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    sub_appellation: Mapped["SubAppellationDB"] = relationship(
        "SubAppellationDB", back_populates="wines"
    )

    def __repr__(self) -> str:
        return f"<WineDB(id={self.id}, name='{self.name}')>"
