"""Tests for applicability warnings and evidence strength."""

import pytest

from bus_tco.data.defaults import LocationDefaults, resolve_assumptions
from bus_tco.models.applicability import dedupe_warnings, generate_applicability_warnings
from bus_tco.models.assumptions import EvidenceClassification
from bus_tco.models.calculations import calculate_tco
from bus_tco.models.evidence import evidence_factors, rollup_evidence_strength, summarize_evidence
from bus_tco.models.inputs import FleetProfile, LocationProfile, ScenarioType, TCOInput
from bus_tco.models.results import (
    EvidenceFactor,
    EvidenceStrength,
    ImpactLevel,
    WarningSeverity,
)

C = EvidenceClassification


def _input(state="TX", scenario=ScenarioType.MOBILE_CHARGING, utility="", **fleet_kwargs):
    fleet = dict(type_c_count=25)
    fleet.update(fleet_kwargs)
    return TCOInput(
        fleet=FleetProfile(**fleet),
        location=LocationProfile(state=state, utility_name=utility),
        scenario_type=scenario,
    )


def _warnings(tco_input):
    defaults = LocationDefaults()
    return generate_applicability_warnings(tco_input, resolve_assumptions(tco_input, defaults), defaults)


def _ids(tco_input):
    return [w.id for w in _warnings(tco_input)]


class TestApplicabilityWarnings:
    def test_diesel_has_no_warnings(self):
        assert _warnings(_input(scenario=ScenarioType.DIESEL_BASELINE)) == []

    def test_ineligible_state_single_warning_zero_value(self):
        tco_input = _input("TX")
        lcfs = [w for w in _warnings(tco_input) if w.affected_parameter == "revenue_streams.lcfs_per_bus"]
        assert len(lcfs) == 1
        assert lcfs[0].id == "lcfs_not_applicable"
        assert lcfs[0].applied_value == 0.0
        assert lcfs[0].severity is WarningSeverity.WARNING
        assert all(a.carbon_credit_revenue == pytest.approx(400 * 25 * 0.7 * 0.8)
                   for a in calculate_tco(tco_input).annual_costs[1:])

    def test_eligible_state_contingent_warning(self):
        ids = _ids(_input("CA"))
        assert "lcfs_contingent" in ids
        assert "lcfs_not_applicable" not in ids

    def test_v2g_needs_utility(self):
        assert "vpp_not_applicable" in _ids(_input("TX"))
        ids = _ids(_input("TX", utility="Oncor"))
        assert "vpp_not_applicable" not in ids
        assert "vpp_contingent" in ids

    def test_federal_incentive_warning(self):
        assert "federal_incentive_contingent" in _ids(_input())
        tco_input = _input()
        tco_input.overrides = {"incentives": {"federal_per_bus": 0}}
        assert "federal_incentive_contingent" not in _ids(tco_input)

    def test_state_incentive_warning(self):
        tco_input = _input()
        tco_input.overrides = {"incentives": {"state_per_bus": 15000}}
        assert "state_incentive_unconfirmed" in _ids(tco_input)

    def test_cold_weather(self):
        assert "cold_weather_derating" in _ids(_input("MN"))
        assert "cold_weather_derating" not in _ids(_input("TX"))

    def test_mobile_contract_warning_only_for_mobile(self):
        assert "mobile_infrastructure_contract" in _ids(_input())
        assert "mobile_infrastructure_contract" not in _ids(_input(scenario=ScenarioType.EAAS))

    def test_park_out_depot_warning(self):
        assert "park_out_depot_charging" in _ids(_input(scenario=ScenarioType.SELF_MANAGED_EV, park_out_percentage=20))
        assert "park_out_depot_charging" not in _ids(_input(park_out_percentage=20))
        assert "park_out_depot_charging" not in _ids(_input(scenario=ScenarioType.EAAS))

    def test_deterministic_order(self):
        assert _ids(_input("CA", utility="PG&E")) == _ids(_input("CA", utility="PG&E"))

    def test_dedupe_keeps_first(self):
        warnings = _warnings(_input())
        doubled = warnings + list(reversed(warnings))
        assert dedupe_warnings(doubled) == warnings


def _factor(classification, impact=ImpactLevel.HIGH):
    return EvidenceFactor("f", classification, impact, "")


class TestEvidenceStrength:
    def test_high_requires_three_verified_and_no_contingent(self):
        factors = [_factor(C.VERIFIED)] * 3 + [_factor(C.ASSUMED)]
        assert rollup_evidence_strength(factors) is EvidenceStrength.HIGH

    def test_few_verified_is_medium(self):
        assert rollup_evidence_strength([_factor(C.VERIFIED), _factor(C.ASSUMED)]) is EvidenceStrength.MEDIUM

    def test_contingent_caps_at_medium(self):
        factors = [_factor(C.VERIFIED)] * 3 + [_factor(C.CONTINGENT)]
        assert rollup_evidence_strength(factors) is EvidenceStrength.MEDIUM

    def test_contingent_without_verified_is_low(self):
        assert rollup_evidence_strength([_factor(C.CONTINGENT), _factor(C.ASSUMED)]) is EvidenceStrength.LOW

    def test_unverified_high_impact_is_uncertain(self):
        factors = [_factor(C.UNVERIFIED), _factor(C.UNVERIFIED), _factor(C.VERIFIED)]
        assert rollup_evidence_strength(factors) is EvidenceStrength.UNCERTAIN

    def test_unverified_medium_impact_not_uncertain(self):
        factors = [_factor(C.UNVERIFIED, ImpactLevel.MEDIUM)] * 2
        assert rollup_evidence_strength(factors) is EvidenceStrength.MEDIUM

    def test_factor_names(self):
        tco_input = _input()
        names = [f.factor for f in evidence_factors(tco_input, resolve_assumptions(tco_input))]
        assert names == [
            "Vehicle Pricing", "Energy Rate", "Demand Charge", "Maintenance",
            "Federal Incentive", "Carbon Credit Revenue", "V2G Revenue",
        ]

    def test_diesel_excludes_incentive_and_revenue(self):
        tco_input = _input(scenario=ScenarioType.DIESEL_BASELINE)
        factors = {f.factor: f for f in evidence_factors(tco_input, resolve_assumptions(tco_input))}
        assert factors["Federal Incentive"].classification is C.NOT_APPLICABLE
        assert factors["V2G Revenue"].classification is C.NOT_APPLICABLE
        assert factors["Energy Rate"].classification is C.VERIFIED

    def test_summary_matches_result(self):
        tco_input = _input(scenario=ScenarioType.SELF_MANAGED_EV)
        strength, factors = summarize_evidence(tco_input, resolve_assumptions(tco_input))
        result = calculate_tco(tco_input)
        assert result.evidence_strength is strength
        assert result.evidence_factors == factors

    def test_not_applicable_vehicle_price_skipped(self):
        tco_input = _input(scenario=ScenarioType.SELF_MANAGED_EV)
        tco_input.overrides = {"bus_prices": {"type_a": {"electric": {"classification": "NOT_APPLICABLE"}}}}
        factors = {f.factor: f for f in calculate_tco(tco_input).evidence_factors}
        baseline = {f.factor: f for f in calculate_tco(_input(scenario=ScenarioType.SELF_MANAGED_EV)).evidence_factors}
        assert factors["Vehicle Pricing"].classification is baseline["Vehicle Pricing"].classification

    def test_all_vehicle_prices_not_applicable(self):
        tco_input = _input(scenario=ScenarioType.SELF_MANAGED_EV)
        tco_input.overrides = {
            "bus_prices": {
                t: {"electric": {"classification": "NOT_APPLICABLE"}} for t in ("type_a", "type_c", "type_d")
            }
        }
        factors = {f.factor: f for f in calculate_tco(tco_input).evidence_factors}
        assert factors["Vehicle Pricing"].classification is C.NOT_APPLICABLE

    def test_not_applicable_ppa_rate_on_mobile(self):
        tco_input = _input()
        tco_input.overrides = {"mobile_charging": {"ppa_power_rate": {"classification": "NOT_APPLICABLE"}}}
        factors = {f.factor: f for f in calculate_tco(tco_input).evidence_factors}
        assert factors["Energy Rate"].classification is not C.NOT_APPLICABLE
