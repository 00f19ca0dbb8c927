"""Tests for input validators."""

import pytest

from bus_tco.data.validators import (
    ensure_valid,
    validate_bus_count,
    validate_daily_miles,
    validate_discount_rate,
    validate_horizon,
    validate_mpg,
    validate_overrides,
    validate_park_out,
    validate_state_code,
    validate_tco_input,
)
from bus_tco.models.assumptions import DataPoint
from bus_tco.models.errors import ValidationError
from bus_tco.models.inputs import AnalysisParameters, FleetProfile, LocationProfile, TCOInput


class TestFieldValidators:
    def test_bus_count(self):
        assert validate_bus_count("Type C", 25)[0]
        assert validate_bus_count("Type C", 0)[0]
        assert not validate_bus_count("Type C", -1)[0]
        assert not validate_bus_count("Type C", 2.5)[0]
        assert not validate_bus_count("Type C", True)[0]

    def test_daily_miles_warning(self):
        valid, msg = validate_daily_miles(250)
        assert valid
        assert msg.startswith("Warning:")

    def test_daily_miles_out_of_range(self):
        assert not validate_daily_miles(-5)[0]
        assert not validate_daily_miles(float("nan"))[0]

    def test_park_out(self):
        assert validate_park_out(0)[0]
        assert validate_park_out(100)[0]
        assert not validate_park_out(101)[0]

    def test_optional_mpg(self):
        assert validate_mpg(None)[0]
        assert not validate_mpg(1.0)[0]

    def test_state_code(self):
        assert validate_state_code("tx")[0]
        assert not validate_state_code("Texas")[0]
        assert not validate_state_code("T1")[0]

    def test_horizon(self):
        assert validate_horizon(12)[0]
        assert not validate_horizon(0)[0]
        assert not validate_horizon(12.5)[0]

    def test_discount_rate(self):
        assert validate_discount_rate(0.0)[0]
        assert not validate_discount_rate(0.5)[0]


class TestValidateInput:
    def test_default_input_valid(self):
        valid, messages = validate_tco_input(TCOInput(fleet=FleetProfile(type_c_count=10)))
        assert valid
        assert messages == []

    def test_zero_bus_fleet_warns(self):
        valid, messages = validate_tco_input(TCOInput())
        assert valid
        assert any("no buses" in m for m in messages)

    def test_all_errors_reported(self):
        tco_input = TCOInput(
            fleet=FleetProfile(type_a_count=-1, operating_days_per_year=400),
            location=LocationProfile(state="XYZ"),
            parameters=AnalysisParameters(discount_rate=-0.1),
        )
        valid, messages = validate_tco_input(tco_input)
        assert not valid
        assert len(messages) == 4

    def test_ensure_valid_raises_with_errors_only(self):
        tco_input = TCOInput(fleet=FleetProfile(type_c_count=-3, avg_daily_miles=250))
        with pytest.raises(ValidationError) as exc:
            ensure_valid(tco_input)
        assert len(exc.value.errors) == 1
        assert "Type C" in str(exc.value)

    def test_ensure_valid_passes_warnings(self):
        ensure_valid(TCOInput(fleet=FleetProfile(type_c_count=5, avg_daily_miles=250)))


class TestOverrideRanges:
    def test_in_range_numeric_override(self):
        assert validate_overrides({"incentives": {"state_per_bus": 20000}}) == (True, [])

    def test_out_of_range_numeric_override(self):
        valid, errors = validate_overrides({"incentives": {"federal_per_bus": 2_000_000}})
        assert not valid
        assert errors[0].startswith("Override incentives.federal_per_bus:")
        assert "exceeds maximum" in errors[0]

    def test_below_minimum(self):
        valid, errors = validate_overrides({"electricity_rate_kwh": 0.01})
        assert not valid
        assert "below minimum" in errors[0]

    def test_datapoint_override_not_range_checked(self):
        overrides = {"incentives": {"federal_per_bus": DataPoint(2_000_000)}}
        assert validate_overrides(overrides) == (True, [])

    def test_unmapped_path_skipped(self):
        assert validate_overrides({"weather_derating_factor": 0.9}) == (True, [])

    def test_ensure_valid_rejects_out_of_range_override(self):
        tco_input = TCOInput(fleet=FleetProfile(type_c_count=10), overrides={"diesel_price_per_gallon": 50.0})
        with pytest.raises(ValidationError) as exc:
            ensure_valid(tco_input)
        assert "diesel_price_per_gallon" in str(exc.value)
