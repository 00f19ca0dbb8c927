"""Applicability warnings for jurisdiction- and scenario-dependent assumptions.

Warnings flag incentive and revenue assumptions that do not legally or
practically apply to a fleet, or that are counted but not guaranteed. They
are data attached to a result, never errors. Checks run in a fixed order so
the same input always yields the same list.
"""

from dataclasses import dataclass
from typing import List, Tuple

from bus_tco.data.defaults import LocationDefaults
from bus_tco.data.registry import get_entry, is_revenue_applicable
from bus_tco.models.assumptions import EvidenceClassification, JurisdictionScope, TCOAssumptions
from bus_tco.models.inputs import LocationProfile, ScenarioType, TCOInput
from bus_tco.models.results import ApplicabilityWarning, WarningCategory, WarningSeverity


@dataclass(frozen=True)
class RevenueStreamSpec:
    field: str          # RevenueStreams attribute
    registry_id: str
    kind: str           # "carbon" or "v2g"
    warning_id: str


REVENUE_STREAMS: Tuple[RevenueStreamSpec, ...] = (
    RevenueStreamSpec("lcfs_per_bus", "lcfs_credit_per_bus", "carbon", "lcfs"),
    RevenueStreamSpec("federal_carbon_credit_per_bus", "federal_carbon_credit_per_bus", "carbon", "federal_carbon_credit"),
    RevenueStreamSpec("demand_response_per_bus", "v2g_demand_response_per_bus", "v2g", "v2g_demand_response"),
    RevenueStreamSpec("frequency_regulation_per_bus", "v2g_frequency_regulation_per_bus", "v2g", "v2g_frequency_regulation"),
    RevenueStreamSpec("vpp_per_bus", "vpp_per_bus", "v2g", "vpp"),
)

DEPOT_CHARGED_SCENARIOS = (ScenarioType.SELF_MANAGED_EV, ScenarioType.EAAS)


def revenue_eligibility(location: LocationProfile) -> List[Tuple[RevenueStreamSpec, bool, str]]:
    """Evaluate jurisdiction eligibility of every revenue stream for a location.

    Returns:
        (stream, applicable, reason) for each stream, in fixed order.
    """
    return [
        (stream, *is_revenue_applicable(stream.registry_id, location.state_code, location.utility_name))
        for stream in REVENUE_STREAMS
    ]


def generate_applicability_warnings(
    tco_input: TCOInput,
    assumptions: TCOAssumptions,
    defaults: LocationDefaults,
) -> List[ApplicabilityWarning]:
    """Generate applicability warnings for one scenario calculation.

    Args:
        tco_input: Input being calculated; its scenario_type selects the checks.
        assumptions: Merged assumptions used by the calculation.
        defaults: Location defaults, for the cold-weather state list.

    Returns:
        Warnings in deterministic order.
    """
    scenario = tco_input.scenario_type
    state = tco_input.location.state_code
    warnings: List[ApplicabilityWarning] = []
    if not scenario.is_electric:
        return warnings

    streams = assumptions.revenue_streams
    for stream, applicable, reason in revenue_eligibility(tco_input.location):
        point = getattr(streams, stream.field)
        entry = get_entry(stream.registry_id)
        parameter = f"revenue_streams.{stream.field}"
        if not applicable:
            state_gated = entry.jurisdiction is JurisdictionScope.STATE_LIST
            warnings.append(ApplicabilityWarning(
                id=f"{stream.warning_id}_not_applicable",
                category=WarningCategory.REVENUE,
                severity=WarningSeverity.WARNING if state_gated else WarningSeverity.INFO,
                title=f"{entry.name} not available",
                message=(
                    f"{entry.name} (${point.value:,.0f}/bus/year) is excluded for a fleet in {state}."
                    if state_gated else
                    f"{entry.name} is excluded until enrollment with the serving utility is confirmed."
                ),
                affected_parameter=parameter,
                applied_value=0.0,
                reason=reason,
            ))
        elif point.value > 0 and point.classification is EvidenceClassification.CONTINGENT:
            warnings.append(ApplicabilityWarning(
                id=f"{stream.warning_id}_contingent",
                category=WarningCategory.REVENUE,
                severity=WarningSeverity.INFO,
                title=f"{entry.name} is contingent",
                message=(
                    f"{entry.name} of ${point.value:,.0f}/bus/year is counted but depends on "
                    f"program enrollment and is not guaranteed income."
                ),
                affected_parameter=parameter,
                applied_value=point.value,
                reason=entry.contingency.condition if entry.contingency else reason,
            ))

    federal = assumptions.incentives.federal_per_bus
    if federal.value > 0:
        warnings.append(ApplicabilityWarning(
            id="federal_incentive_contingent",
            category=WarningCategory.INCENTIVE,
            severity=WarningSeverity.WARNING,
            title="Federal incentive not guaranteed",
            message=(
                f"A federal incentive of ${federal.value:,.0f}/bus is applied. Grant programs are "
                f"competitive; without an award the electric capital cost rises by this amount."
            ),
            affected_parameter="incentives.federal_per_bus",
            applied_value=federal.value,
            reason="Competitive grant award required",
        ))

    state_incentive = assumptions.incentives.state_per_bus
    if state_incentive.value > 0:
        warnings.append(ApplicabilityWarning(
            id="state_incentive_unconfirmed",
            category=WarningCategory.INCENTIVE,
            severity=WarningSeverity.INFO,
            title="State incentive requires confirmation",
            message=f"A state incentive of ${state_incentive.value:,.0f}/bus is applied for {state}.",
            affected_parameter="incentives.state_per_bus",
            applied_value=state_incentive.value,
            reason="State program eligibility and funding must be confirmed",
        ))

    if defaults.is_cold_weather(state):
        factor = assumptions.weather_derating_factor.value
        warnings.append(ApplicabilityWarning(
            id="cold_weather_derating",
            category=WarningCategory.OPERATIONAL,
            severity=WarningSeverity.INFO,
            title="Cold-weather energy penalty applied",
            message=f"{state} is a cold-climate state: energy use is increased by {factor:.0%}.",
            affected_parameter="weather_derating_factor",
            applied_value=factor,
            reason="Cabin heating and battery conditioning raise winter energy use",
        ))

    if scenario is ScenarioType.MOBILE_CHARGING:
        site_cost = assumptions.infrastructure.mobile_site_cost.value
        warnings.append(ApplicabilityWarning(
            id="mobile_infrastructure_contract",
            category=WarningCategory.COST,
            severity=WarningSeverity.WARNING,
            title="Infrastructure cost depends on charging contract",
            message=(
                f"District infrastructure cost of ${site_cost:,.0f} assumes the charging partner "
                f"supplies and maintains all charging equipment. Verify this in the contract."
            ),
            affected_parameter="infrastructure.mobile_site_cost",
            applied_value=site_cost,
            reason="Near-zero infrastructure cost is a contractual arrangement",
        ))

    park_out = tco_input.fleet.park_out_percentage
    if scenario in DEPOT_CHARGED_SCENARIOS and park_out > 0:
        warnings.append(ApplicabilityWarning(
            id="park_out_depot_charging",
            category=WarningCategory.OPERATIONAL,
            severity=WarningSeverity.INFO,
            title="Off-site buses cannot use depot chargers",
            message=(
                f"{park_out:.0f}% of the fleet parks off-site overnight and needs a separate "
                f"charging arrangement not priced in this scenario."
            ),
            affected_parameter="fleet.park_out_percentage",
            applied_value=park_out,
            reason="Depot chargers only serve buses parked at the depot",
        ))

    return warnings


def dedupe_warnings(warnings: List[ApplicabilityWarning]) -> List[ApplicabilityWarning]:
    """Drop repeated warning ids, keeping the first occurrence."""
    seen = set()
    unique = []
    for warning in warnings:
        if warning.id not in seen:
            seen.add(warning.id)
            unique.append(warning)
    return unique
