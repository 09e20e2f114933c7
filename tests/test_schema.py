"""Tests for domain models, request parsing and failure payloads."""

from uuid import uuid4

import pytest
from pydantic import TypeAdapter, ValidationError

from wine_terroir.core.enums import ResolutionState, TaxonomyLevel, WineColor
from wine_terroir.core.failures import (
    ColorNotRecognized,
    EntityRef,
    Failure,
    MissingColumns,
    RegionCountryMismatch,
    UnexpectedError,
    ValidationFailure,
    WineColorMismatch,
)
from wine_terroir.core.schema import (
    Appellation,
    Country,
    ImportCounters,
    IntakeRequest,
    IntakeResult,
    Region,
    SubAppellation,
    Wine,
    WineImportResult,
)


class TestWineColor:
    """Tests for color parsing."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Red", WineColor.RED),
            ("white", WineColor.WHITE),
            ("ROSE", WineColor.ROSE),
            ("Rosé", WineColor.ROSE),
            ("  red  ", WineColor.RED),
        ],
    )
    def test_parse(self, raw: str, expected: WineColor) -> None:
        assert WineColor.parse(raw) == expected

    @pytest.mark.parametrize("raw", ["", None, "Orange", "Sparkling"])
    def test_parse_unrecognised(self, raw) -> None:
        assert WineColor.parse(raw) is None

    def test_options(self) -> None:
        assert WineColor.options() == ["Red", "White", "Rose"]


class TestResolutionState:
    """Tests for the resolution state machine."""

    def test_terminal_states(self) -> None:
        terminal = {s for s in ResolutionState if s.is_terminal}
        assert terminal == {
            ResolutionState.FOUND_EXACT,
            ResolutionState.FOUND_APPROXIMATE,
            ResolutionState.CREATED,
            ResolutionState.FAIL,
        }


class TestCanonicalEntities:
    """Tests for canonical entity models."""

    def test_name_required(self) -> None:
        with pytest.raises(ValidationError):
            Country(name="   ")

    def test_name_trimmed(self) -> None:
        assert Country(name="  France ").name == "France"

    def test_blank_sub_appellation_allowed(self) -> None:
        sub = SubAppellation(name=None, appellation_id=uuid4())
        assert sub.name == ""
        assert sub.is_blank

    def test_wine_walks_hierarchy(self) -> None:
        country = Country(name="France")
        region = Region(name="Burgundy", country_id=country.id, country=country)
        appellation = Appellation(name="Chablis", region_id=region.id, region=region)
        sub = SubAppellation(appellation_id=appellation.id, appellation=appellation)
        wine = Wine(
            name="Chablis Grand Cru",
            color=WineColor.WHITE,
            sub_appellation_id=sub.id,
            sub_appellation=sub,
        )

        assert wine.appellation.name == "Chablis"
        assert wine.region.name == "Burgundy"
        assert wine.country.name == "France"

    def test_wine_without_hierarchy(self) -> None:
        wine = Wine(name="Solo", color=WineColor.RED, sub_appellation_id=uuid4())
        assert wine.appellation is None
        assert wine.region is None
        assert wine.country is None


class TestIntakeRequest:
    """Tests for loose parameter parsing."""

    def test_snake_case_keys(self) -> None:
        request = IntakeRequest.from_parameters(
            {"name": "Wine", "sub_appellation": "Les Cazetiers", "grape_variety": "Pinot Noir"}
        )
        assert request.sub_appellation == "Les Cazetiers"
        assert request.grape_variety == "Pinot Noir"

    def test_camel_case_keys(self) -> None:
        request = IntakeRequest.from_parameters(
            {"Name": "Wine", "subAppellation": "Les Cazetiers", "GrapeVariety": "Pinot Noir"}
        )
        assert request.name == "Wine"
        assert request.sub_appellation == "Les Cazetiers"
        assert request.grape_variety == "Pinot Noir"

    def test_blank_values_become_none(self) -> None:
        request = IntakeRequest.from_parameters({"name": "  ", "color": "", "region": None})
        assert request.name is None
        assert request.color is None
        assert request.region is None

    def test_values_trimmed_and_unknown_keys_ignored(self) -> None:
        request = IntakeRequest.from_parameters({"name": " Wine ", "vintage": 2019})
        assert request.name == "Wine"

    def test_empty_parameters(self) -> None:
        assert IntakeRequest.from_parameters(None) == IntakeRequest()


class TestFailures:
    """Tests for failure payloads."""

    def test_camel_case_serialization(self) -> None:
        region_id, requested_id, actual_id = uuid4(), uuid4(), uuid4()
        failure = RegionCountryMismatch(
            region=EntityRef(id=region_id, name="Burgundy"),
            requested_country=EntityRef(id=requested_id, name="Italy"),
            region_country=EntityRef(id=actual_id, name="France"),
        )

        data = failure.model_dump(mode="json", by_alias=True)

        assert data["type"] == "region_country_mismatch"
        assert data["requestedCountry"] == {"id": str(requested_id), "name": "Italy"}
        assert data["regionCountry"]["name"] == "France"
        assert failure.describe() == "Region 'Burgundy' belongs to country 'France'."

    def test_discriminated_union_round_trip(self) -> None:
        adapter = TypeAdapter(Failure)
        failure = adapter.validate_python(
            {"type": "wine_color_mismatch", "wine": {"id": str(uuid4()), "name": "X"},
             "requested": "Red", "actual": "White"}
        )
        assert isinstance(failure, WineColorMismatch)
        assert failure.requested == "Red"

    def test_color_failure_lists_options(self) -> None:
        failure = ColorNotRecognized(query="Orange", suggestions=WineColor.options())
        assert failure.describe() == "Color 'Orange' is not recognised."
        assert failure.errors() == [failure.describe()]

    def test_validation_errors(self) -> None:
        failure = ValidationFailure(problems=["'name' is required."])
        assert failure.errors() == ["'name' is required."]

    def test_unexpected_error_keeps_detail(self) -> None:
        failure = UnexpectedError(detail="disk full")
        assert failure.type == "exception"
        assert failure.errors() == ["disk full"]

    def test_missing_columns_message(self) -> None:
        failure = MissingColumns(columns=["Country", "Color"])
        assert "Country, Color" in failure.describe()


class TestResults:
    """Tests for result models."""

    def test_failed_intake_result(self) -> None:
        failure = ColorNotRecognized(query="Blue", suggestions=["Red", "White", "Rose"])
        result = IntakeResult.failed(failure)

        data = result.to_dict()
        assert data["success"] is False
        assert data["message"] == "Color 'Blue' is not recognised."
        assert data["suggestions"] == {
            "type": "color",
            "query": "Blue",
            "suggestions": ["Red", "White", "Rose"],
        }

    def test_counters(self) -> None:
        counters = ImportCounters()
        counters.record_created(TaxonomyLevel.COUNTRY)
        counters.record_created(TaxonomyLevel.WINE)
        other = ImportCounters(created_wines=2, updated_wines=1)

        counters.merge(other)

        assert counters.created_countries == 1
        assert counters.created_wines == 3
        assert counters.updated_wines == 1

    def test_import_result_fail(self) -> None:
        result = WineImportResult().fail(MissingColumns(columns=["Country"]))
        assert result.success is False
        assert result.errors == [result.message]
        assert result.to_dict()["suggestions"]["columns"] == ["Country"]
