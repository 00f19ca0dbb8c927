"""Year-by-year cost engine and scenario aggregation for fleet TCO.

Projects capital, energy, maintenance, infrastructure, insurance, incentive
and revenue flows for each year of the planning horizon, discounts them, and
compares the four operating scenarios. Diesel externalities are carried in a
separate societal-cost view and never enter the budget totals.

All sums are plain floats; rounding is a presentation concern.
"""

import logging
import math
from dataclasses import replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np
import numpy_financial as npf

from bus_tco.data.defaults import LocationDefaults, get_fleet_scale_adjustment, resolve_assumptions
from bus_tco.data.validators import ensure_valid
from bus_tco.models.applicability import dedupe_warnings, generate_applicability_warnings, revenue_eligibility
from bus_tco.models.assumptions import TCOAssumptions
from bus_tco.models.evidence import summarize_evidence
from bus_tco.models.inputs import SCENARIO_ORDER, AnalysisParameters, FleetProfile, ScenarioType, TCOInput
from bus_tco.models.results import (
    AnnualCosts,
    ComparisonMetrics,
    CostBreakdownItem,
    FleetScaleAdjustment,
    ScenarioComparison,
    TCOResult,
    YearExternalCosts,
)

logger = logging.getLogger(__name__)

# Rule constants: structural engine parameters, reported apart from assumptions
SIMULTANEOUS_CHARGING_FRACTION = 0.40
CHARGER_KW = 19.2
BUSES_PER_CHARGER = 2
LEVEL2_CHARGER_SHARE = 0.80
BILLING_MONTHS_PER_YEAR = 12

RULE_CONSTANTS: Mapping[str, float] = MappingProxyType({
    "simultaneous_charging_fraction": SIMULTANEOUS_CHARGING_FRACTION,
    "charger_kw_per_bus": CHARGER_KW,
    "buses_per_charger": BUSES_PER_CHARGER,
    "level2_charger_share": LEVEL2_CHARGER_SHARE,
    "billing_months_per_year": BILLING_MONTHS_PER_YEAR,
})

BUS_TYPES = ("type_a", "type_c", "type_d")
GRID_SCENARIOS = (ScenarioType.SELF_MANAGED_EV, ScenarioType.EAAS)


# =============================================================================
# Financial helpers
# =============================================================================

def calculate_npv(cash_flows: List[float], discount_rate: float) -> float:
    r"""Calculate net present value of a cash flow series.

    Formula:
        NPV = \sum_{t=0}^{N} CF_t (1+r)^{-t}

    Args:
        cash_flows: List of cash flows starting at year 0.
        discount_rate: Annual discount rate as decimal (e.g., 0.05 for 5%).

    Returns:
        Net present value in the same currency units as cash_flows.

    Source:
        Brealey, R., Myers, S., & Allen, F. (2020). Principles of Corporate
        Finance (13th ed.). McGraw-Hill. Chapter 2.
    """
    return sum(cf * discount_factor(t, discount_rate) for t, cf in enumerate(cash_flows))


def discount_factor(year: int, discount_rate: float) -> float:
    return (1 + discount_rate) ** (-year)


def calculate_irr(cash_flows: List[float]) -> Optional[float]:
    r"""Calculate internal rate of return for a cash flow series.

    The IRR is the discount rate r that makes NPV = 0:
        0 = \sum_{t=0}^{N} \frac{CF_t}{(1+IRR)^t}

    Args:
        cash_flows: List of cash flows starting at year 0.

    Returns:
        IRR as a decimal, or None if no real solution exists.
    """
    if not cash_flows or all(cf == 0 for cf in cash_flows):
        return None
    result = npf.irr(cash_flows)
    if np.isnan(result) or np.isinf(result):
        return None
    return float(result)


def calculate_payback(incremental_capital: float, annual_savings: List[float]) -> Optional[float]:
    """Calculate payback period of an incremental up-front investment.

    Finds the first year where cumulative savings reach the incremental
    capital, with linear interpolation within that year.

    Args:
        incremental_capital: Extra year-0 capital of the alternative.
        annual_savings: Savings for years 1..N.

    Returns:
        Payback period in years, or None if the incremental capital is not
        positive or is never recovered within the horizon.
    """
    if incremental_capital <= 0:
        return None
    cumulative = 0.0
    for year, saving in enumerate(annual_savings, start=1):
        prev_cumulative = cumulative
        cumulative += saving
        if cumulative >= incremental_capital:
            # Linear interpolation within the year
            return year - 1 + (incremental_capital - prev_cumulative) / saving
    return None


def _safe_ratio(numerator: float, denominator: float) -> float:
    """Divide like IEEE floats: x/0 is +/-inf and 0/0 is nan."""
    if denominator == 0:
        return math.nan if numerator == 0 else math.copysign(math.inf, numerator)
    return numerator / denominator


# =============================================================================
# Fleet blends
# =============================================================================

def _bus_counts(fleet: FleetProfile) -> Dict[str, int]:
    return {"type_a": fleet.type_a_count, "type_c": fleet.type_c_count, "type_d": fleet.type_d_count}


def _weighted(fleet: FleetProfile, group) -> float:
    """Fleet-composition weighted average of a per-type group.

    Falls back to the Type C value for an empty fleet.
    """
    counts = _bus_counts(fleet)
    total = sum(counts.values())
    if total == 0:
        return group.type_c.value
    return sum(getattr(group, t).value * counts[t] for t in BUS_TYPES) / total


def fleet_vehicle_cost(fleet: FleetProfile, assumptions: TCOAssumptions, electric: bool) -> float:
    """Total purchase price of the fleet for one fuel."""
    fuel = "electric" if electric else "diesel"
    counts = _bus_counts(fleet)
    return sum(getattr(getattr(assumptions.bus_prices, t), fuel).value * counts[t] for t in BUS_TYPES)


def charger_counts(total_buses: int) -> Tuple[int, int]:
    """Level 2 and DC fast charger counts for depot charging."""
    chargers = math.ceil(total_buses / BUSES_PER_CHARGER)
    level2 = math.floor(chargers * LEVEL2_CHARGER_SHARE)
    return level2, chargers - level2


def infrastructure_cost(scenario: ScenarioType, total_buses: int, assumptions: TCOAssumptions) -> float:
    """Year-0 charging infrastructure build-out cost borne by the district."""
    infra = assumptions.infrastructure
    if scenario is ScenarioType.DIESEL_BASELINE:
        return 0.0
    if scenario is ScenarioType.MOBILE_CHARGING:
        return infra.mobile_site_cost.value
    level2, dcfc = charger_counts(total_buses)
    return (
        level2 * infra.level2_charger_cost.value
        + dcfc * infra.dcfc_charger_cost.value
        + (level2 + dcfc) * infra.installation_cost_per_charger.value
    )


def mobile_landed_cost_per_kwh(
    assumptions: TCOAssumptions, state: str, defaults: Optional[LocationDefaults] = None
) -> float:
    """Internal landed cost of mobile-delivered energy, $/kWh.

    Power is procured under the PPA in the location tables' PPA states,
    otherwise from the utility; transport components are added on top.
    """
    defaults = defaults or LocationDefaults()
    mc = assumptions.mobile_charging
    procurement = mc.ppa_power_rate if defaults.is_ppa_state(state) else mc.utility_power_rate
    return procurement.value + mc.transport_cost()


def monthly_demand_kw(total_buses: int) -> float:
    return total_buses * SIMULTANEOUS_CHARGING_FRACTION * CHARGER_KW


# =============================================================================
# Year engine
# =============================================================================

def compute_year(
    year: int,
    tco_input: TCOInput,
    assumptions: TCOAssumptions,
    params: AnalysisParameters,
    total_buses: int,
    annual_miles_per_bus: float,
    fleet_scale: FleetScaleAdjustment,
    defaults: Optional[LocationDefaults] = None,
) -> AnnualCosts:
    r"""Compute one year's cost and revenue record for a scenario.

    Year 0 carries vehicle capital, infrastructure and incentive credit.
    Years >= 1 carry operating costs, revenue and externalities:

        energy_t = energy_0 (1 + e)^t
        maintenance_t = rate \cdot miles \cdot buses \cdot k_{scale} (1 + i)^t

    Args:
        year: Projection year, 0..horizon.
        tco_input: Input holding fleet, location and scenario.
        assumptions: Merged assumptions.
        params: Analysis parameters.
        total_buses: Fleet size.
        annual_miles_per_bus: Miles per bus per year.
        fleet_scale: Scale adjustment shared by all compared scenarios.
        defaults: Location tables used for PPA eligibility.

    Returns:
        AnnualCosts without cumulative or discounted fields.
    """
    scenario = tco_input.scenario_type
    fleet = tco_input.fleet
    electric = scenario.is_electric

    capital = energy = maintenance = infrastructure = insurance = incentives = 0.0
    carbon = v2g = 0.0
    external = YearExternalCosts()

    if year == 0:
        capital = fleet_vehicle_cost(fleet, assumptions, electric)
        infrastructure = infrastructure_cost(scenario, total_buses, assumptions)
        if electric:
            incentives = (
                assumptions.incentives.federal_per_bus.value + assumptions.incentives.state_per_bus.value
            ) * total_buses
    else:
        fleet_miles = annual_miles_per_bus * total_buses
        inflation = (1 + params.inflation_rate) ** year

        if electric:
            kwh = fleet_miles * _weighted(fleet, assumptions.ev_kwh_per_mile) * (
                1 + assumptions.weather_derating_factor.value
            )
            escalation = (1 + params.electricity_escalation_rate) ** year
            if scenario is ScenarioType.MOBILE_CHARGING:
                landed = mobile_landed_cost_per_kwh(assumptions, tco_input.location.state_code, defaults)
                energy = kwh * landed * escalation
            else:
                demand = (
                    monthly_demand_kw(total_buses) * assumptions.demand_charge_kw.value * BILLING_MONTHS_PER_YEAR
                )
                energy = (kwh * assumptions.electricity_rate_kwh.value + demand) * escalation
        else:
            gallons = _safe_ratio(fleet_miles, _weighted(fleet, assumptions.diesel_mpg))
            escalation = (1 + params.diesel_escalation_rate) ** year
            energy = gallons * assumptions.diesel_price_per_gallon.value * escalation

        rate = assumptions.maintenance_cost_per_mile.electric if electric else assumptions.maintenance_cost_per_mile.diesel
        maintenance = rate.value * fleet_miles * fleet_scale.cost_multiplier * inflation

        premium = assumptions.insurance.ev_premium_multiplier.value if electric else 1.0
        vehicle_cost = fleet_vehicle_cost(fleet, assumptions, electric)
        average_price = vehicle_cost / total_buses if total_buses else 0.0
        insurance = average_price * total_buses * assumptions.insurance.base_rate.value * premium * inflation

        if electric and year == int(assumptions.lifecycle.battery_replacement_year.value):
            capital = assumptions.lifecycle.battery_replacement_cost.value * total_buses

        if electric:
            streams = assumptions.revenue_streams
            scale = total_buses * streams.revenue_capture_rate.value * fleet_scale.revenue_multiplier
            for stream, applicable, _ in revenue_eligibility(tco_input.location):
                if not applicable:
                    continue
                amount = getattr(streams, stream.field).value * scale
                if stream.kind == "carbon":
                    carbon += amount
                else:
                    v2g += amount
        else:
            ext = assumptions.external_costs
            factor = total_buses * inflation
            external = YearExternalCosts(
                health=ext.health() * factor,
                climate=ext.climate() * factor,
                regulatory=ext.regulatory() * factor,
                operational_risk=ext.operational_risk() * factor,
            )

    total_cost = capital + energy + maintenance + infrastructure + insurance - incentives
    total_revenue = carbon + v2g
    net_cost = total_cost - total_revenue
    return AnnualCosts(
        year=year,
        capital_cost=capital,
        energy_cost=energy,
        maintenance_cost=maintenance,
        infrastructure_cost=infrastructure,
        insurance_cost=insurance,
        incentives_applied=incentives,
        carbon_credit_revenue=carbon,
        v2g_revenue=v2g,
        total_revenue=total_revenue,
        external_costs=external,
        total_cost=total_cost,
        total_true_cost=total_cost + external.total,
        net_cost=net_cost,
        true_cost=net_cost + external.total,
    )


def _cost_breakdown(annual: List[AnnualCosts]) -> List[CostBreakdownItem]:
    amounts = [
        ("Vehicle Capital", sum(a.capital_cost for a in annual)),
        ("Energy", sum(a.energy_cost for a in annual)),
        ("Maintenance", sum(a.maintenance_cost for a in annual)),
        ("Infrastructure", sum(a.infrastructure_cost for a in annual)),
        ("Insurance", sum(a.insurance_cost for a in annual)),
        ("Incentives", -sum(a.incentives_applied for a in annual)),
        ("Revenue", -sum(a.total_revenue for a in annual)),
    ]
    gross_spend = sum(amount for _, amount in amounts if amount > 0)
    return [
        CostBreakdownItem(category, amount, _safe_ratio(amount, gross_spend) * 100)
        for category, amount in amounts
    ]


# =============================================================================
# Scenario aggregation
# =============================================================================

def calculate_tco(tco_input: TCOInput, defaults: Optional[LocationDefaults] = None) -> TCOResult:
    """Project total cost of ownership for one scenario.

    Runs the year engine for years 0..horizon, accumulates cumulative and
    discounted totals, then subtracts the discounted residual value of the
    fleet from the net totals.

    Args:
        tco_input: Fleet, location, parameters, scenario and overrides.
        defaults: Location defaults; the bundled state tables if omitted.

    Returns:
        Complete TCOResult. Per-mile figures are nan/inf for an empty fleet.

    Raises:
        ValidationError: If the input or overrides are invalid.
    """
    ensure_valid(tco_input)
    defaults = defaults or LocationDefaults()
    assumptions = resolve_assumptions(tco_input, defaults)
    params = tco_input.parameters
    fleet = tco_input.fleet
    horizon = int(params.planning_horizon_years)
    rate = params.discount_rate
    total_buses = fleet.total_buses
    miles_per_bus = fleet.annual_miles_per_bus
    fleet_scale = get_fleet_scale_adjustment(total_buses)

    annual: List[AnnualCosts] = []
    cumulative = cumulative_net = cumulative_true = 0.0
    npv = npv_net = npv_true = 0.0
    for year in range(horizon + 1):
        record = compute_year(
            year, tco_input, assumptions, params, total_buses, miles_per_bus, fleet_scale, defaults
        )
        df = discount_factor(year, rate)
        cumulative += record.total_cost
        cumulative_net += record.net_cost
        cumulative_true += record.true_cost
        npv += record.total_cost * df
        npv_net += record.net_cost * df
        npv_true += record.true_cost * df
        annual.append(replace(
            record,
            cumulative_cost=cumulative,
            cumulative_net_cost=cumulative_net,
            cumulative_true_cost=cumulative_true,
            npv_cost=record.total_cost * df,
            npv_net_cost=record.net_cost * df,
            npv_true_cost=record.true_cost * df,
        ))

    vehicle_cost = fleet_vehicle_cost(fleet, assumptions, tco_input.scenario_type.is_electric)
    residual_value = (
        vehicle_cost * assumptions.lifecycle.residual_value_fraction.value * discount_factor(horizon, rate)
    )

    total_tco = sum(a.total_cost for a in annual)
    total_revenue = sum(a.total_revenue for a in annual)
    total_net_tco = total_tco - total_revenue - residual_value
    external = YearExternalCosts(
        health=sum(a.external_costs.health for a in annual),
        climate=sum(a.external_costs.climate for a in annual),
        regulatory=sum(a.external_costs.regulatory for a in annual),
        operational_risk=sum(a.external_costs.operational_risk for a in annual),
    )
    npv_external = sum(a.external_costs.total * discount_factor(a.year, rate) for a in annual)
    total_true_cost = total_net_tco + external.total
    npv_net_after_residual = npv_net - residual_value
    npv_true_cost = npv_net_after_residual + npv_external
    total_miles = miles_per_bus * total_buses * horizon

    warnings = generate_applicability_warnings(tco_input, assumptions, defaults)
    strength, factors = summarize_evidence(tco_input, assumptions)
    logger.debug(
        "%s: %d buses, total TCO %.0f, net TCO %.0f, %d warnings",
        tco_input.scenario_type.value, total_buses, total_tco, total_net_tco, len(warnings),
    )

    return TCOResult(
        scenario_type=tco_input.scenario_type,
        total_tco=total_tco,
        total_net_tco=total_net_tco,
        total_true_cost=total_true_cost,
        npv=npv,
        npv_net=npv_net_after_residual,
        npv_true_cost=npv_true_cost,
        residual_value=residual_value,
        average_annual_cost=total_tco / horizon,
        average_annual_net_cost=total_net_tco / horizon,
        average_annual_true_cost=total_true_cost / horizon,
        cost_per_mile=_safe_ratio(total_tco, total_miles),
        net_cost_per_mile=_safe_ratio(total_net_tco, total_miles),
        true_cost_per_mile=_safe_ratio(total_true_cost, total_miles),
        total_carbon_revenue=sum(a.carbon_credit_revenue for a in annual),
        total_v2g_revenue=sum(a.v2g_revenue for a in annual),
        total_revenue=total_revenue,
        external_costs=external,
        fleet_scale=fleet_scale,
        annual_costs=annual,
        cost_breakdown=_cost_breakdown(annual),
        rule_constants=dict(RULE_CONSTANTS),
        assumptions=assumptions,
        applicability_warnings=warnings,
        evidence_strength=strength,
        evidence_factors=factors,
        calculated_at=datetime.now(timezone.utc).isoformat(),
    )


def compare_scenarios(tco_input: TCOInput, defaults: Optional[LocationDefaults] = None) -> ScenarioComparison:
    """Run all four scenarios and derive comparison metrics.

    The input's own scenario_type is ignored.

    Args:
        tco_input: Fleet, location, parameters and overrides.
        defaults: Location defaults shared by every scenario run.

    Returns:
        ScenarioComparison with per-scenario results, metrics and
        warnings deduplicated by id (first occurrence kept).

    Raises:
        ValidationError: If the input or overrides are invalid.
    """
    defaults = defaults or LocationDefaults()
    results = {s: calculate_tco(tco_input.with_scenario(s), defaults) for s in SCENARIO_ORDER}
    diesel = results[ScenarioType.DIESEL_BASELINE]
    self_managed = results[ScenarioType.SELF_MANAGED_EV]
    mobile = results[ScenarioType.MOBILE_CHARGING]

    incremental_capital = mobile.annual_costs[0].capital_cost - diesel.annual_costs[0].capital_cost
    annual_savings = [
        d.net_cost - m.net_cost for d, m in zip(diesel.annual_costs[1:], mobile.annual_costs[1:])
    ]
    incremental_flows = [d.net_cost - m.net_cost for d, m in zip(diesel.annual_costs, mobile.annual_costs)]

    metrics = ComparisonMetrics(
        lowest_gross_scenario=min(SCENARIO_ORDER, key=lambda s: results[s].total_tco),
        lowest_net_scenario=min(SCENARIO_ORDER, key=lambda s: results[s].total_net_tco),
        mobile_savings_vs_diesel=diesel.total_tco - mobile.total_tco,
        mobile_savings_vs_self_managed=self_managed.total_tco - mobile.total_tco,
        mobile_net_savings_vs_diesel=diesel.total_net_tco - mobile.total_net_tco,
        mobile_net_savings_vs_self_managed=self_managed.total_net_tco - mobile.total_net_tco,
        payback_years=calculate_payback(incremental_capital, annual_savings),
        incremental_irr=calculate_irr(incremental_flows),
    )
    warnings = dedupe_warnings([w for s in SCENARIO_ORDER for w in results[s].applicability_warnings])
    logger.info(
        "Compared %d scenarios: lowest net TCO %s", len(results), metrics.lowest_net_scenario.label
    )
    return ScenarioComparison(results=results, metrics=metrics, warnings=warnings)
