"""Enums for the wine taxonomy and resolution workflow."""

from __future__ import annotations

from enum import Enum


class WineColor(str, Enum):
    """Wine color classification."""

    RED = "Red"
    WHITE = "White"
    ROSE = "Rose"

    @classmethod
    def parse(cls, value: str | None) -> WineColor | None:
        """
        Parse a free-text color.

        Matching is case-insensitive and accepts the accented spelling
        ("Rosé"). Returns None when the value is blank or unrecognised.
        """
        if value is None or not value.strip():
            return None

        candidate = value.strip().replace("é", "e").replace("É", "E").lower()
        for color in cls:
            if color.value.lower() == candidate:
                return color
        return None

    @classmethod
    def options(cls) -> list[str]:
        """Return the accepted color names."""
        return [color.value for color in cls]


class TaxonomyLevel(str, Enum):
    """Levels of the canonical taxonomy, outermost first."""

    COUNTRY = "country"
    REGION = "region"
    APPELLATION = "appellation"
    SUB_APPELLATION = "sub_appellation"
    WINE = "wine"


class ResolutionState(str, Enum):
    """State of a single resolution step."""

    NOT_STARTED = "not_started"
    FOUND_EXACT = "found_exact"
    FOUND_APPROXIMATE = "found_approximate"
    NOT_FOUND = "not_found"
    CREATED = "created"
    FAIL = "fail"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition is possible from this state."""
        return self in (
            ResolutionState.FOUND_EXACT,
            ResolutionState.FOUND_APPROXIMATE,
            ResolutionState.CREATED,
            ResolutionState.FAIL,
        )
