"""Pydantic v2 models for the canonical wine taxonomy.

These models define:
- Country, Region, Appellation, SubAppellation, Wine (canonical entities)
- IntakeRequest (single-record input)
- IntakeResult, WineImportResult, ImportPreviewResult (outputs)
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

from wine_terroir.core.enums import ResolutionState, TaxonomyLevel, WineColor
from wine_terroir.core.failures import Failure


def _require_name(v: str) -> str:
    if not v.strip():
        raise ValueError("name cannot be empty")
    return v.strip()


# ============================================================================
# Canonical Entities
# ============================================================================


class Country(BaseModel):
    """Canonical country. Name is unique case-insensitively."""

    id: UUID = Field(default_factory=uuid4)
    name: str

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        return _require_name(v)


class Region(BaseModel):
    """Canonical region, unique by name within its country."""

    id: UUID = Field(default_factory=uuid4)
    name: str
    country_id: UUID
    country: Country | None = None

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        return _require_name(v)


class Appellation(BaseModel):
    """Canonical appellation, unique by name within its region."""

    id: UUID = Field(default_factory=uuid4)
    name: str
    region_id: UUID
    region: Region | None = None

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        return _require_name(v)


class SubAppellation(BaseModel):
    """
    Canonical sub-appellation, unique by name within its appellation.

    The blank name is the sentinel meaning "no specific sub-appellation";
    at most one sentinel exists per appellation.
    """

    id: UUID = Field(default_factory=uuid4)
    name: str = ""
    appellation_id: UUID
    appellation: Appellation | None = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: str | None) -> str:
        return (v or "").strip()

    @property
    def is_blank(self) -> bool:
        """Whether this is the sentinel sub-appellation."""
        return self.name == ""


class Wine(BaseModel):
    """
    Canonical wine.

    Identity for resolution is (name, sub_appellation_id), name compared
    case-insensitively.
    """

    id: UUID = Field(default_factory=uuid4)
    name: str
    color: WineColor
    grape_variety: str = ""
    sub_appellation_id: UUID
    sub_appellation: SubAppellation | None = None

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        return _require_name(v)

    @property
    def appellation(self) -> Appellation | None:
        return self.sub_appellation.appellation if self.sub_appellation else None

    @property
    def region(self) -> Region | None:
        appellation = self.appellation
        return appellation.region if appellation else None

    @property
    def country(self) -> Country | None:
        region = self.region
        return region.country if region else None


# ============================================================================
# Intake
# ============================================================================


def _canonical_key(key: str) -> str:
    return key.replace("_", "").replace("-", "").lower()


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class IntakeRequest(BaseModel):
    """
    Single-record intake input.

    Blank values are treated as absent.
    """

    name: str | None = None
    color: str | None = None
    country: str | None = None
    region: str | None = None
    appellation: str | None = None
    sub_appellation: str | None = None
    grape_variety: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> str | None:
        return _clean(v)

    @classmethod
    def from_parameters(cls, parameters: Mapping[str, Any] | None) -> IntakeRequest:
        """
        Build a request from a loose parameter map.

        Keys are matched case-insensitively and in either camelCase or
        snake_case ("subAppellation", "sub_appellation", "SubAppellation").
        Unknown keys are ignored.
        """
        if not parameters:
            return cls()

        fields = {_canonical_key(name): name for name in cls.model_fields}
        values: dict[str, Any] = {}
        for key, value in parameters.items():
            field_name = fields.get(_canonical_key(str(key)))
            if field_name is not None and field_name not in values:
                values[field_name] = value
        return cls(**values)


class LevelOutcome(BaseModel):
    """How a single taxonomy level was resolved."""

    level: TaxonomyLevel
    query: str | None = None
    state: ResolutionState
    entity_id: UUID | None = None
    entity_name: str | None = None


class IntakeResult(BaseModel):
    """Result of a single-record intake."""

    success: bool
    message: str = ""
    errors: list[str] = Field(default_factory=list)
    suggestions: Failure | None = None
    wine: Wine | None = None
    created: bool = False
    updated: bool = False
    outcomes: list[LevelOutcome] = Field(default_factory=list)

    @classmethod
    def succeeded(
        cls,
        message: str,
        wine: Wine,
        created: bool,
        updated: bool = False,
        outcomes: list[LevelOutcome] | None = None,
    ) -> IntakeResult:
        return cls(
            success=True,
            message=message,
            wine=wine,
            created=created,
            updated=updated,
            outcomes=outcomes or [],
        )

    @classmethod
    def failed(cls, failure: Failure, outcomes: list[LevelOutcome] | None = None) -> IntakeResult:
        return cls(
            success=False,
            message=failure.describe(),
            errors=failure.errors(),
            suggestions=failure,
            outcomes=outcomes or [],
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        data = self.model_dump(mode="json", exclude={"suggestions"})
        data["suggestions"] = (
            self.suggestions.model_dump(mode="json", by_alias=True) if self.suggestions else None
        )
        return data


# ============================================================================
# Batch Import
# ============================================================================


class ImportRowError(BaseModel):
    """An error recorded against a single source row."""

    row_number: int
    message: str


class ImportCounters(BaseModel):
    """Creation and update counters for a batch import."""

    created_countries: int = 0
    created_regions: int = 0
    created_appellations: int = 0
    created_sub_appellations: int = 0
    created_wines: int = 0
    updated_wines: int = 0

    def record_created(self, level: TaxonomyLevel) -> None:
        attr = {
            TaxonomyLevel.COUNTRY: "created_countries",
            TaxonomyLevel.REGION: "created_regions",
            TaxonomyLevel.APPELLATION: "created_appellations",
            TaxonomyLevel.SUB_APPELLATION: "created_sub_appellations",
            TaxonomyLevel.WINE: "created_wines",
        }[level]
        setattr(self, attr, getattr(self, attr) + 1)

    def merge(self, other: ImportCounters) -> None:
        for name in ImportCounters.model_fields:
            setattr(self, name, getattr(self, name) + getattr(other, name))


class WineImportResult(BaseModel):
    """Result of a batch import job."""

    success: bool = True
    message: str = ""
    errors: list[str] = Field(default_factory=list)
    suggestions: Failure | None = None
    total_rows: int = 0
    imported_rows: int = 0
    counters: ImportCounters = Field(default_factory=ImportCounters)
    row_errors: list[ImportRowError] = Field(default_factory=list)
    cancelled: bool = False

    def fail(self, failure: Failure) -> WineImportResult:
        """Mark the whole job as failed."""
        self.success = False
        self.message = failure.describe()
        self.errors = failure.errors()
        self.suggestions = failure
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        data = self.model_dump(mode="json", exclude={"suggestions"})
        data["suggestions"] = (
            self.suggestions.model_dump(mode="json", by_alias=True) if self.suggestions else None
        )
        return data


class ImportPreviewRow(BaseModel):
    """Dry-run view of a single source row."""

    row_number: int
    name: str
    country: str
    region: str
    appellation: str
    sub_appellation: str = ""
    color: WineColor
    wine_exists: bool = False
    country_exists: bool = False
    region_exists: bool = False
    appellation_exists: bool = False


class ImportPreviewResult(BaseModel):
    """Result of previewing a batch source without writing."""

    success: bool = True
    message: str = ""
    errors: list[str] = Field(default_factory=list)
    total_rows: int = 0
    rows: list[ImportPreviewRow] = Field(default_factory=list)
    row_errors: list[ImportRowError] = Field(default_factory=list)
    cancelled: bool = False
