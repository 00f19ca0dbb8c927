"""Tests for the assumption registry, location defaults and assumption merging."""

import json

import pytest

from bus_tco.data.defaults import (
    DEFAULT_PARAMETERS,
    LocationDefaults,
    LocationTables,
    default_assumptions,
    get_fleet_scale_adjustment,
    resolve_assumptions,
)
from bus_tco.data.registry import (
    ASSUMPTION_PATHS,
    ASSUMPTION_REGISTRY,
    entries_requiring_confirmation,
    evidence_strength_for,
    export_registry_for_audit,
    get_entry,
    is_revenue_applicable,
    validate_registry_value,
)
from bus_tco.models.assumptions import (
    DataPoint,
    EvidenceClassification,
    TCOAssumptions,
    layer_overrides,
    merge_assumptions,
    override_at,
)
from bus_tco.models.errors import UnknownIdentifierError, ValidationError
from bus_tco.models.inputs import FleetProfile, LocationProfile, TCOInput
from bus_tco.models.results import EvidenceStrength, FleetTier


def _tables(**kwargs):
    data = dict(
        electricity_rates={"ZZ": 0.30},
        diesel_prices={"ZZ": 5.00},
        cold_weather_states={"ZZ"},
    )
    data.update(kwargs)
    return LocationTables(**data)


# ---- Registry ----

class TestRegistry:
    def test_registry_is_read_only(self):
        with pytest.raises(TypeError):
            ASSUMPTION_REGISTRY["new"] = None

    def test_get_entry(self):
        entry = get_entry("bus_price_type_c_diesel")
        assert entry.value == 110000
        assert entry.to_datapoint().value == 110000.0

    def test_unknown_entry_lists_available(self):
        with pytest.raises(UnknownIdentifierError) as exc:
            get_entry("nope")
        assert "nope" in str(exc.value)
        assert "bus_price_type_c_diesel" in exc.value.available

    def test_state_list_applicability(self):
        assert is_revenue_applicable("lcfs_credit_per_bus", "CA")[0] is True
        applicable, reason = is_revenue_applicable("lcfs_credit_per_bus", "tx")
        assert applicable is False
        assert "TX" in reason

    def test_federal_applies_everywhere(self):
        assert is_revenue_applicable("federal_carbon_credit_per_bus", "TX")[0] is True

    def test_utility_specific_needs_utility(self):
        assert is_revenue_applicable("vpp_per_bus", "TX")[0] is False
        assert is_revenue_applicable("vpp_per_bus", "TX", "Oncor")[0] is True

    def test_validate_registry_value(self):
        assert validate_registry_value("diesel_price_per_gallon", 4.0) == (True, [])
        ok, errors = validate_registry_value("diesel_price_per_gallon", 12.0)
        assert not ok
        assert "exceeds maximum" in errors[0]
        assert validate_registry_value("nope", 1.0)[0] is False

    def test_entries_requiring_confirmation(self):
        ids = {e.id for e in entries_requiring_confirmation()}
        assert "federal_incentive_per_bus" in ids
        assert "mobile_site_cost" in ids
        assert "diesel_price_per_gallon" not in ids

    def test_evidence_strength_mapping(self):
        assert evidence_strength_for(EvidenceClassification.VERIFIED) is EvidenceStrength.HIGH
        assert evidence_strength_for(EvidenceClassification.CONTINGENT) is EvidenceStrength.LOW
        assert evidence_strength_for(EvidenceClassification.UNVERIFIED) is EvidenceStrength.UNCERTAIN

    def test_assumed_and_not_applicable_strength(self):
        assert evidence_strength_for(EvidenceClassification.ASSUMED) is EvidenceStrength.MEDIUM
        assert evidence_strength_for(EvidenceClassification.NOT_APPLICABLE) is EvidenceStrength.HIGH
        assert get_entry("demand_charge_kw").to_dict()["evidence_strength"] == "MEDIUM"

    def test_assumption_paths_match_defaults(self):
        assumptions = default_assumptions()
        for path, entry_id in ASSUMPTION_PATHS.items():
            assert assumptions.get(path).value == get_entry(entry_id).value, path

    def test_audit_export(self):
        data = json.loads(export_registry_for_audit("2024-12-01"))
        assert data["exported_at"] == "2024-12-01"
        assert data["summary"]["total_entries"] == len(ASSUMPTION_REGISTRY)
        assert sum(data["summary"]["by_classification"].values()) == len(ASSUMPTION_REGISTRY)
        lcfs = next(e for e in data["entries"] if e["id"] == "lcfs_credit_per_bus")
        assert lcfs["applicable_states"] == ["CA", "OR", "WA"]


# ---- Location defaults ----

class TestLocationDefaults:
    def test_bundled_tables(self):
        defaults = LocationDefaults()
        assert defaults.electricity_rate("TX") == 0.11
        assert defaults.diesel_price("CA") == 4.80
        assert defaults.is_cold_weather("MN")
        assert not defaults.is_cold_weather("TX")

    def test_missing_state_uses_table_default(self):
        defaults = LocationDefaults()
        assert defaults.diesel_price("OH") == 3.50

    def test_tables_are_immutable(self):
        tables = LocationDefaults().tables
        with pytest.raises(TypeError):
            tables.electricity_rates["TX"] = 1.0

    def test_injected_tables(self):
        defaults = LocationDefaults(_tables())
        assert defaults.electricity_rate("zz") == 0.30
        assert defaults.electricity_rate("TX") == 0.12

    def test_ppa_states(self):
        assert LocationDefaults().is_ppa_state("va")
        assert not LocationDefaults().is_ppa_state("TX")
        assert not LocationDefaults(_tables()).is_ppa_state("VA")
        loaded = LocationTables.from_dict({"ppa_states": ["zz"]})
        assert loaded.ppa_states == frozenset({"ZZ"})

    def test_weather_derating(self):
        defaults = LocationDefaults()
        assert defaults.weather_derating("MN").value == 0.30
        assert defaults.weather_derating("TX").value == 0.10

    def test_location_patch_is_verified(self):
        patch = LocationDefaults().location_patch("tx")
        assert patch["electricity_rate_kwh"].value == 0.11
        assert patch["electricity_rate_kwh"].classification is EvidenceClassification.VERIFIED
        assert "(TX)" in patch["diesel_price_per_gallon"].source

    def test_tables_from_json(self, tmp_path):
        path = tmp_path / "tables.json"
        path.write_text(json.dumps({
            "electricity_rate_kwh": {"tx": 0.2},
            "cold_weather_states": ["tx"],
            "default_diesel_price_per_gallon": 4.0,
        }))
        tables = LocationTables.from_json(str(path))
        assert tables.electricity_rates["TX"] == 0.2
        assert "TX" in tables.cold_weather_states
        assert tables.default_diesel_price == 4.0

    def test_default_parameters(self):
        assert DEFAULT_PARAMETERS["planning_horizon_years"] == 12
        assert DEFAULT_PARAMETERS["discount_rate"] == 0.05


class TestFleetScale:
    @pytest.mark.parametrize("buses,tier,cost,revenue", [
        (0, FleetTier.SMALL, 1.15, 0.8),
        (39, FleetTier.SMALL, 1.15, 0.8),
        (40, FleetTier.MEDIUM, 1.0, 1.0),
        (99, FleetTier.MEDIUM, 1.0, 1.0),
        (100, FleetTier.LARGE, 0.92, 1.5),
    ])
    def test_tiers(self, buses, tier, cost, revenue):
        adj = get_fleet_scale_adjustment(buses)
        assert adj.tier is tier
        assert adj.cost_multiplier == cost
        assert adj.revenue_multiplier == revenue

    def test_break_even_reached_flag(self):
        assert not get_fleet_scale_adjustment(10).break_even_reached
        assert get_fleet_scale_adjustment(50).break_even_reached


# ---- Merging ----

class TestMergeAssumptions:
    def test_number_override_is_user_provided(self):
        merged = merge_assumptions(default_assumptions(), {"electricity_rate_kwh": 0.2})
        point = merged.electricity_rate_kwh
        assert point.value == 0.2
        assert point.classification is EvidenceClassification.USER_PROVIDED

    def test_partial_group_keeps_siblings(self):
        base = default_assumptions()
        merged = merge_assumptions(base, {"incentives": {"state_per_bus": 20000}})
        assert merged.incentives.state_per_bus.value == 20000
        assert merged.incentives.federal_per_bus == base.incentives.federal_per_bus

    def test_datapoint_override_taken_as_given(self):
        point = DataPoint(0.5, EvidenceClassification.UNVERIFIED, "test")
        merged = merge_assumptions(default_assumptions(), {"weather_derating_factor": point})
        assert merged.weather_derating_factor is point

    def test_point_dict_fills_from_current(self):
        merged = merge_assumptions(default_assumptions(), {
            "demand_charge_kw": {"value": 20, "classification": "VERIFIED"},
        })
        assert merged.demand_charge_kw.value == 20.0
        assert merged.demand_charge_kw.classification is EvidenceClassification.VERIFIED
        assert merged.demand_charge_kw.source == "Utility Rate Database"

    def test_base_not_modified(self):
        base = default_assumptions()
        merge_assumptions(base, {"diesel_price_per_gallon": 9.0})
        assert base.diesel_price_per_gallon.value == 3.50

    def test_errors_are_collected(self):
        with pytest.raises(ValidationError) as exc:
            merge_assumptions(default_assumptions(), {
                "bogus": 1,
                "lifecycle": {"residual_value_fraction": "high"},
            })
        assert len(exc.value.errors) == 2

    def test_empty_overrides_return_base(self):
        base = default_assumptions()
        assert merge_assumptions(base, {}) is base
        assert merge_assumptions(base, None) is base

    def test_get_by_path(self):
        assumptions = default_assumptions()
        assert assumptions.get("incentives.federal_per_bus").value == 250000
        with pytest.raises(KeyError):
            assumptions.get("incentives")
        with pytest.raises(KeyError):
            assumptions.get("incentives.nope")

    def test_dict_round_trip(self):
        assumptions = default_assumptions()
        assert TCOAssumptions.from_dict(assumptions.to_dict()) == assumptions

    def test_layer_overrides(self):
        lower = {"incentives": {"federal_per_bus": 1.0, "state_per_bus": 2.0}}
        upper = override_at("incentives.federal_per_bus", 5.0)
        assert upper == {"incentives": {"federal_per_bus": 5.0}}
        assert layer_overrides(lower, upper) == {"incentives": {"federal_per_bus": 5.0, "state_per_bus": 2.0}}

    def test_layer_point_dict_replaces(self):
        lower = {"demand_charge_kw": {"value": 10, "source": "a"}}
        upper = {"demand_charge_kw": {"value": 12}}
        assert layer_overrides(lower, upper) == upper


class TestResolveAssumptions:
    def test_precedence(self):
        tco_input = TCOInput(
            fleet=FleetProfile(type_c_count=10, diesel_price_per_gallon=4.25),
            location=LocationProfile(state="CA"),
            overrides={"diesel_price_per_gallon": 5.0},
        )
        assumptions = resolve_assumptions(tco_input)
        assert assumptions.diesel_price_per_gallon.value == 5.0
        assert assumptions.electricity_rate_kwh.value == 0.20

    def test_fleet_profile_overrides(self):
        tco_input = TCOInput(fleet=FleetProfile(
            type_c_count=10, avg_mpg=7.0, annual_maintenance_cost_per_bus=5400.0,
        ))
        assumptions = resolve_assumptions(tco_input)
        assert assumptions.diesel_mpg.type_a.value == 7.0
        assert assumptions.diesel_mpg.type_d.value == 7.0
        assert assumptions.maintenance_cost_per_mile.diesel.value == pytest.approx(0.5)

    def test_location_profile_overrides(self):
        tco_input = TCOInput(location=LocationProfile(state="TX", electricity_rate_kwh=0.09, demand_charge_kw=8.0))
        assumptions = resolve_assumptions(tco_input)
        assert assumptions.electricity_rate_kwh.value == 0.09
        assert assumptions.demand_charge_kw.value == 8.0

    def test_cold_state_derating(self):
        assumptions = resolve_assumptions(TCOInput(location=LocationProfile(state="MN")))
        assert assumptions.weather_derating_factor.value == 0.30

    def test_injected_defaults(self):
        assumptions = resolve_assumptions(TCOInput(location=LocationProfile(state="ZZ")), LocationDefaults(_tables()))
        assert assumptions.electricity_rate_kwh.value == 0.30
        assert assumptions.weather_derating_factor.value == 0.30
