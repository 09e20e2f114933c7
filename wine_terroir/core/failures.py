"""Typed failure payloads returned by intake and import.

Every failure is a pydantic model with a literal ``type`` tag. The
``Failure`` union is discriminated on that tag, and payloads serialize
with camelCase keys (``model_dump(by_alias=True)``).
"""

from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _FailureBase(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def describe(self) -> str:
        """Human-readable summary."""
        raise NotImplementedError

    def errors(self) -> list[str]:
        """Individual error strings."""
        return [self.describe()]


class EntityRef(BaseModel):
    """Lightweight reference to a canonical entity."""

    id: UUID
    name: str


# ============================================================================
# Validation
# ============================================================================


class ValidationFailure(_FailureBase):
    """Required input is missing or malformed."""

    type: Literal["validation"] = "validation"
    problems: list[str] = Field(default_factory=list)

    def describe(self) -> str:
        return "Validation failed."

    def errors(self) -> list[str]:
        return list(self.problems)


class ColorNotRecognized(_FailureBase):
    type: Literal["color"] = "color"
    query: str
    suggestions: list[str] = Field(default_factory=list)

    def describe(self) -> str:
        return f"Color '{self.query}' is not recognised."


class MissingColumns(_FailureBase):
    """A batch source lacks required columns; nothing was processed."""

    type: Literal["missing_columns"] = "missing_columns"
    columns: list[str]

    def describe(self) -> str:
        return f"The file is missing the following required columns: {', '.join(self.columns)}."


class EmptySource(_FailureBase):
    type: Literal["empty_source"] = "empty_source"

    def describe(self) -> str:
        return "The file does not contain any rows."


# ============================================================================
# Ambiguous references
# ============================================================================


class RegionCreationMissingCountry(_FailureBase):
    type: Literal["region_creation_missing_country"] = "region_creation_missing_country"
    query: str
    suggestions: list[str] = Field(default_factory=list)

    def describe(self) -> str:
        return (
            f"Region '{self.query}' was not found. "
            "Provide a country so it can be created automatically."
        )

    def errors(self) -> list[str]:
        return ["Country is required to create a new region."]


class WineCreationMissingColor(_FailureBase):
    type: Literal["wine_creation_missing_color"] = "wine_creation_missing_color"
    query: str
    suggestions: list[str] = Field(default_factory=list)

    def describe(self) -> str:
        return f"Wine '{self.query}' does not exist. Provide a color so it can be created automatically."

    def errors(self) -> list[str]:
        return ["Color is required to create a new wine."]


class WineCreationMissingRegion(_FailureBase):
    type: Literal["wine_creation_missing_region"] = "wine_creation_missing_region"
    query: str
    suggestions: list[str] = Field(default_factory=list)

    def describe(self) -> str:
        return f"Wine '{self.query}' does not exist. Provide a region so it can be created automatically."

    def errors(self) -> list[str]:
        return ["Region is required to create a new wine."]


class WineCreationMissingAppellation(_FailureBase):
    type: Literal["wine_creation_missing_appellation"] = "wine_creation_missing_appellation"
    query: str
    suggestions: list[str] = Field(default_factory=list)

    def describe(self) -> str:
        return (
            f"Wine '{self.query}' does not exist. "
            "Provide an appellation so it can be created automatically."
        )

    def errors(self) -> list[str]:
        return ["Appellation is required to create a new wine."]


# ============================================================================
# Hierarchy conflicts
# ============================================================================


class RegionCountryMismatch(_FailureBase):
    type: Literal["region_country_mismatch"] = "region_country_mismatch"
    region: EntityRef
    requested_country: EntityRef
    region_country: EntityRef | None = None

    def describe(self) -> str:
        actual = self.region_country.name if self.region_country else "unknown"
        return f"Region '{self.region.name}' belongs to country '{actual}'."


class WineSubAppellationMismatch(_FailureBase):
    type: Literal["wine_sub_appellation_mismatch"] = "wine_sub_appellation_mismatch"
    wine: EntityRef
    requested: str
    actual: str | None = None

    def describe(self) -> str:
        return f"Wine '{self.wine.name}' is recorded for sub-appellation '{self.actual or 'unknown'}'."


class WineAppellationMismatch(_FailureBase):
    type: Literal["wine_appellation_mismatch"] = "wine_appellation_mismatch"
    wine: EntityRef
    requested: str
    actual: str | None = None

    def describe(self) -> str:
        return f"Wine '{self.wine.name}' is recorded for appellation '{self.actual or 'unknown'}'."


class WineColorMismatch(_FailureBase):
    type: Literal["wine_color_mismatch"] = "wine_color_mismatch"
    wine: EntityRef
    requested: str
    actual: str

    def describe(self) -> str:
        return f"Wine '{self.wine.name}' exists with color '{self.actual}'."


class WineCountryMismatch(_FailureBase):
    type: Literal["wine_country_mismatch"] = "wine_country_mismatch"
    wine: EntityRef
    requested: EntityRef
    actual: EntityRef | None = None

    def describe(self) -> str:
        actual = self.actual.name if self.actual else "unknown"
        return f"Wine '{self.wine.name}' is recorded for country '{actual}'."


class WineRegionMismatch(_FailureBase):
    type: Literal["wine_region_mismatch"] = "wine_region_mismatch"
    wine: EntityRef
    requested: EntityRef
    actual: EntityRef | None = None

    def describe(self) -> str:
        actual = self.actual.name if self.actual else "unknown"
        return f"Wine '{self.wine.name}' is recorded for region '{actual}'."


# ============================================================================
# Unexpected
# ============================================================================


class Cancelled(_FailureBase):
    type: Literal["cancelled"] = "cancelled"

    def describe(self) -> str:
        return "The operation was cancelled."


class UnexpectedError(_FailureBase):
    """An internal error captured at the orchestrator boundary."""

    type: Literal["exception"] = "exception"
    detail: str
    context: str = "processing the request"

    def describe(self) -> str:
        return f"An unexpected error occurred while {self.context}."

    def errors(self) -> list[str]:
        return [self.detail]


Failure = Annotated[
    Union[
        ValidationFailure,
        ColorNotRecognized,
        MissingColumns,
        EmptySource,
        RegionCreationMissingCountry,
        WineCreationMissingColor,
        WineCreationMissingRegion,
        WineCreationMissingAppellation,
        RegionCountryMismatch,
        WineSubAppellationMismatch,
        WineAppellationMismatch,
        WineColorMismatch,
        WineCountryMismatch,
        WineRegionMismatch,
        Cancelled,
        UnexpectedError,
    ],
    Field(discriminator="type"),
]
