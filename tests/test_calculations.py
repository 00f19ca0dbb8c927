"""Unit tests for the fleet TCO cost engine.

Tests cover NPV, IRR and payback helpers, the year-by-year projection, the
scenario aggregator and the comparison metrics. Literal values are
hand-computed from the bundled registry and TX location tables.
"""

import math
from dataclasses import replace

import pytest

from bus_tco.data.defaults import LocationDefaults, LocationTables, default_assumptions
from bus_tco.models.calculations import (
    RULE_CONSTANTS,
    calculate_irr,
    calculate_npv,
    calculate_payback,
    calculate_tco,
    charger_counts,
    compare_scenarios,
    infrastructure_cost,
    mobile_landed_cost_per_kwh,
)
from bus_tco.models.errors import ValidationError
from bus_tco.models.inputs import (
    AnalysisParameters,
    FleetProfile,
    LocationProfile,
    ScenarioType,
    TCOInput,
)
from bus_tco.models.results import FleetTier


def _tx_input(scenario=ScenarioType.DIESEL_BASELINE, **fleet_kwargs):
    fleet = dict(type_c_count=25, avg_daily_miles=60.0, operating_days_per_year=180)
    fleet.update(fleet_kwargs)
    return TCOInput(
        fleet=FleetProfile(**fleet),
        location=LocationProfile(state="TX"),
        parameters=AnalysisParameters(),
        scenario_type=scenario,
    )


# ---- Financial helper tests ----

class TestNPV:
    def test_npv_simple(self):
        """NPV of [-1000, 500, 500, 500] at 10% should be ~243.43."""
        result = calculate_npv([-1000, 500, 500, 500], 0.10)
        assert abs(result - 243.43) < 0.5

    def test_npv_zero_rate(self):
        """At 0% discount rate, NPV = sum of cash flows."""
        assert calculate_npv([-1000, 300, 300, 300, 300], 0.0) == pytest.approx(200.0)


class TestIRR:
    def test_irr_basic(self):
        """[-1000, 1100] has IRR of 10%."""
        assert calculate_irr([-1000, 1100]) == pytest.approx(0.10)

    def test_irr_all_zero(self):
        assert calculate_irr([0.0, 0.0, 0.0]) is None

    def test_irr_no_sign_change(self):
        assert calculate_irr([100, 100, 100]) is None


class TestPayback:
    def test_payback_basic(self):
        """1000 recovered at 250/year pays back in exactly 4 years."""
        assert calculate_payback(1000, [250] * 10) == pytest.approx(4.0)

    def test_payback_fractional(self):
        """1000 at 400/year: 2 years gives 800, then 200/400 of year 3."""
        assert calculate_payback(1000, [400] * 5) == pytest.approx(2.5)

    def test_payback_never(self):
        assert calculate_payback(1000, [10] * 5) is None

    def test_payback_no_incremental_capital(self):
        assert calculate_payback(0.0, [100] * 5) is None
        assert calculate_payback(-50.0, [100] * 5) is None


# ---- Fleet blend tests ----

class TestInfrastructure:
    def test_charger_counts(self):
        """25 buses need 13 chargers: floor(13*0.8)=10 Level 2 and 3 DCFC."""
        assert charger_counts(25) == (10, 3)

    def test_self_managed_infrastructure(self):
        """10 x 6000 + 3 x 75000 + 13 x 15000."""
        cost = infrastructure_cost(ScenarioType.SELF_MANAGED_EV, 25, default_assumptions())
        assert cost == 60000 + 225000 + 195000

    def test_diesel_has_no_infrastructure(self):
        assert infrastructure_cost(ScenarioType.DIESEL_BASELINE, 25, default_assumptions()) == 0.0

    def test_mobile_uses_site_cost(self):
        assert infrastructure_cost(ScenarioType.MOBILE_CHARGING, 25, default_assumptions()) == 0.0

    def test_mobile_landed_cost_ppa_state(self):
        """VA uses the PPA rate: 0.04 + transport 0.20."""
        assert mobile_landed_cost_per_kwh(default_assumptions(), "VA") == pytest.approx(0.24)

    def test_mobile_landed_cost_utility_state(self):
        """TX procures from the utility: 0.08 + transport 0.20."""
        assert mobile_landed_cost_per_kwh(default_assumptions(), "TX") == pytest.approx(0.28)

    def test_mobile_landed_cost_uses_injected_ppa_states(self):
        tables = LocationTables(electricity_rates={}, diesel_prices={}, cold_weather_states=set(), ppa_states={"TX"})
        defaults = LocationDefaults(tables)
        assert mobile_landed_cost_per_kwh(default_assumptions(), "TX", defaults) == pytest.approx(0.24)
        assert mobile_landed_cost_per_kwh(default_assumptions(), "VA", defaults) == pytest.approx(0.28)

    def test_injected_ppa_state_lowers_mobile_energy(self):
        bundled = LocationDefaults()
        ppa_tx = LocationDefaults(replace(bundled.tables, ppa_states={"TX"}))
        tco_input = _tx_input(ScenarioType.MOBILE_CHARGING)
        base = calculate_tco(tco_input, bundled).annual_costs[1].energy_cost
        cheaper = calculate_tco(tco_input, ppa_tx).annual_costs[1].energy_cost
        assert cheaper == pytest.approx(base * 0.24 / 0.28)


# ---- Single-scenario tests ----

class TestCalculateTCO:
    def test_annual_records_cover_horizon(self):
        result = calculate_tco(_tx_input())
        assert [a.year for a in result.annual_costs] == list(range(13))

    def test_tx_diesel_year0_capital(self):
        """25 Type C diesel buses at $110,000 each."""
        result = calculate_tco(_tx_input())
        assert result.annual_costs[0].capital_cost == 25 * 110000

    def test_tx_annual_miles(self):
        tco_input = _tx_input()
        assert tco_input.fleet.total_buses == 25
        assert tco_input.fleet.annual_miles_per_bus == 10800

    def test_year0_has_no_operating_costs(self):
        year0 = calculate_tco(_tx_input(ScenarioType.SELF_MANAGED_EV)).annual_costs[0]
        assert year0.energy_cost == 0
        assert year0.maintenance_cost == 0
        assert year0.insurance_cost == 0
        assert year0.total_revenue == 0

    def test_tx_diesel_year1_energy(self):
        """270,000 miles / 8 mpg x $3.20 (TX table) x 1.03 escalation."""
        year1 = calculate_tco(_tx_input()).annual_costs[1]
        assert year1.energy_cost == pytest.approx(270000 / 8 * 3.20 * 1.03)

    def test_totals_are_exact_sums(self):
        for scenario in ScenarioType:
            result = calculate_tco(_tx_input(scenario))
            assert result.total_tco == sum(a.total_cost for a in result.annual_costs)
            assert result.total_net_tco == result.total_tco - result.total_revenue - result.residual_value

    def test_electric_incentive_credited_in_year0(self):
        year0 = calculate_tco(_tx_input(ScenarioType.MOBILE_CHARGING)).annual_costs[0]
        assert year0.incentives_applied == 25 * 250000
        assert year0.net_cost == year0.capital_cost + year0.infrastructure_cost - year0.incentives_applied

    def test_battery_replacement_year(self):
        annual = calculate_tco(_tx_input(ScenarioType.SELF_MANAGED_EV)).annual_costs
        assert annual[8].capital_cost == 25 * 50000
        assert annual[7].capital_cost == 0

    def test_externalities_only_for_diesel(self):
        diesel = calculate_tco(_tx_input())
        electric = calculate_tco(_tx_input(ScenarioType.EAAS))
        assert diesel.total_external_cost > 0
        assert electric.total_external_cost == 0
        assert diesel.total_true_cost == pytest.approx(diesel.total_net_tco + diesel.total_external_cost)

    def test_budget_totals_exclude_externalities(self):
        diesel = calculate_tco(_tx_input())
        year1 = diesel.annual_costs[1]
        assert year1.total_cost == pytest.approx(
            year1.capital_cost + year1.energy_cost + year1.maintenance_cost
            + year1.infrastructure_cost + year1.insurance_cost - year1.incentives_applied
        )

    def test_tx_excludes_lcfs_revenue(self):
        """TX has only the federal carbon credit: 400 x 25 x 0.7 capture x 0.8 small-fleet."""
        year1 = calculate_tco(_tx_input(ScenarioType.MOBILE_CHARGING)).annual_costs[1]
        assert year1.carbon_credit_revenue == pytest.approx(400 * 25 * 0.7 * 0.8)
        assert year1.v2g_revenue == 0

    def test_ca_includes_lcfs_revenue(self):
        tco_input = _tx_input(ScenarioType.MOBILE_CHARGING)
        tco_input.location = LocationProfile(state="CA")
        year1 = calculate_tco(tco_input).annual_costs[1]
        assert year1.carbon_credit_revenue == pytest.approx((600 + 400) * 25 * 0.7 * 0.8)

    def test_utility_enables_v2g(self):
        tco_input = _tx_input(ScenarioType.SELF_MANAGED_EV)
        tco_input.location = LocationProfile(state="TX", utility_name="Oncor")
        year1 = calculate_tco(tco_input).annual_costs[1]
        assert year1.v2g_revenue == pytest.approx((300 + 400 + 225) * 25 * 0.7 * 0.8)

    def test_small_fleet_scale(self):
        result = calculate_tco(_tx_input())
        assert result.fleet_scale.tier is FleetTier.SMALL
        assert result.fleet_scale.cost_multiplier == 1.15

    def test_rule_constants_reported(self):
        result = calculate_tco(_tx_input(ScenarioType.SELF_MANAGED_EV))
        assert result.rule_constants == dict(RULE_CONSTANTS)
        assert result.rule_constants["simultaneous_charging_fraction"] == 0.40

    def test_override_changes_result(self):
        base = calculate_tco(_tx_input())
        tco_input = _tx_input()
        tco_input.overrides = {"diesel_price_per_gallon": 5.0}
        overridden = calculate_tco(tco_input)
        assert overridden.assumptions.diesel_price_per_gallon.value == 5.0
        assert overridden.total_tco > base.total_tco

    def test_unknown_override_raises(self):
        tco_input = _tx_input()
        tco_input.overrides = {"not_a_field": 1.0}
        with pytest.raises(ValidationError):
            calculate_tco(tco_input)

    def test_invalid_input_raises_before_compute(self):
        with pytest.raises(ValidationError) as exc:
            calculate_tco(_tx_input(type_c_count=-1, avg_daily_miles=900))
        assert len(exc.value.errors) == 2

    def test_result_to_dict(self):
        data = calculate_tco(_tx_input(ScenarioType.MOBILE_CHARGING)).to_dict()
        assert data["scenario_type"] == "MOBILE_CHARGING"
        assert len(data["annual_costs"]) == 13
        assert data["evidence_strength"] in ("HIGH", "MEDIUM", "LOW", "UNCERTAIN")


class TestEdgeCases:
    def test_zero_bus_fleet_does_not_raise(self):
        result = calculate_tco(_tx_input(type_c_count=0))
        assert result.total_tco == 0
        assert math.isnan(result.cost_per_mile)
        assert not math.isfinite(result.net_cost_per_mile)

    def test_zero_miles_gives_non_finite_per_mile(self):
        result = calculate_tco(_tx_input(ScenarioType.SELF_MANAGED_EV, avg_daily_miles=0.0))
        assert math.isinf(result.cost_per_mile)

    def test_idempotent(self):
        tco_input = _tx_input(ScenarioType.MOBILE_CHARGING)
        first = calculate_tco(tco_input)
        second = calculate_tco(tco_input)
        assert first.total_tco == second.total_tco
        assert first.total_net_tco == second.total_net_tco
        assert first.annual_costs == second.annual_costs
        assert first.applicability_warnings == second.applicability_warnings

    @pytest.mark.parametrize("scenario", list(ScenarioType))
    def test_energy_monotonic_in_daily_miles(self, scenario):
        low = calculate_tco(_tx_input(scenario, avg_daily_miles=40.0))
        high = calculate_tco(_tx_input(scenario, avg_daily_miles=80.0))
        for lo, hi in zip(low.annual_costs[1:], high.annual_costs[1:]):
            assert hi.energy_cost > lo.energy_cost

    @pytest.mark.parametrize("scenario", [ScenarioType.DIESEL_BASELINE, ScenarioType.MOBILE_CHARGING])
    def test_npv_decreases_with_discount_rate(self, scenario):
        results = []
        for rate in (0.0, 0.05, 0.10):
            tco_input = _tx_input(scenario)
            tco_input.parameters = AnalysisParameters(discount_rate=rate)
            results.append(calculate_tco(tco_input))
        assert results[0].npv > results[1].npv > results[2].npv
        assert results[0].total_tco == results[1].total_tco == results[2].total_tco
        assert results[0].npv == pytest.approx(results[0].total_tco)


# ---- Comparison tests ----

class TestCompareScenarios:
    def test_all_scenarios_present(self):
        comparison = compare_scenarios(_tx_input())
        assert list(comparison.results) == list(ScenarioType)

    def test_lowest_net_is_minimum(self):
        comparison = compare_scenarios(_tx_input())
        lowest = comparison.metrics.lowest_net_scenario
        assert comparison.results[lowest].total_net_tco == min(
            r.total_net_tco for r in comparison.results.values()
        )

    def test_savings_metrics(self):
        comparison = compare_scenarios(_tx_input())
        r = comparison.results
        m = comparison.metrics
        assert m.mobile_net_savings_vs_diesel == (
            r[ScenarioType.DIESEL_BASELINE].total_net_tco - r[ScenarioType.MOBILE_CHARGING].total_net_tco
        )
        assert m.mobile_savings_vs_self_managed == (
            r[ScenarioType.SELF_MANAGED_EV].total_tco - r[ScenarioType.MOBILE_CHARGING].total_tco
        )

    def test_fleet_scale_shared_across_scenarios(self):
        results = compare_scenarios(_tx_input(type_c_count=120)).results.values()
        scales = {r.fleet_scale for r in results}
        assert len(scales) == 1
        assert scales.pop().tier is FleetTier.LARGE

    def test_carbon_revenue_per_bus_equal_for_electric_scenarios(self):
        """TX counts only the federal carbon credit: 400 x 0.70 capture x 0.8 small-fleet multiplier."""
        results = compare_scenarios(_tx_input()).results
        electric = [ScenarioType.SELF_MANAGED_EV, ScenarioType.EAAS, ScenarioType.MOBILE_CHARGING]
        per_bus = {results[s].annual_costs[1].carbon_credit_revenue / 25 for s in electric}
        assert len(per_bus) == 1
        assert per_bus.pop() == pytest.approx(224.0)
        assert results[ScenarioType.DIESEL_BASELINE].annual_costs[1].carbon_credit_revenue == 0.0

    def test_payback_positive_or_none(self):
        payback = compare_scenarios(_tx_input()).metrics.payback_years
        assert payback is None or payback > 0

    def test_payback_none_when_no_incremental_capital(self):
        tco_input = _tx_input()
        tco_input.overrides = {"bus_prices": {"type_c": {"electric": 110000}}}
        assert compare_scenarios(tco_input).metrics.payback_years is None

    def test_tx_mobile_warnings(self):
        warnings = calculate_tco(_tx_input(ScenarioType.MOBILE_CHARGING)).applicability_warnings
        ids = [w.id for w in warnings]
        assert "lcfs_not_applicable" in ids
        assert "cold_weather_derating" not in ids

    def test_warnings_deduplicated(self):
        comparison = compare_scenarios(_tx_input())
        ids = [w.id for w in comparison.warnings]
        assert len(ids) == len(set(ids))
        assert "mobile_infrastructure_contract" in ids

    def test_input_scenario_ignored(self):
        a = compare_scenarios(_tx_input(ScenarioType.DIESEL_BASELINE))
        b = compare_scenarios(_tx_input(ScenarioType.EAAS))
        assert a.metrics.mobile_net_savings_vs_diesel == b.metrics.mobile_net_savings_vs_diesel

    def test_to_dict(self):
        data = compare_scenarios(_tx_input()).to_dict()
        assert set(data["results"]) == {s.value for s in ScenarioType}
        assert data["metrics"]["lowest_net_scenario"] in data["results"]
