"""Evidence strength summary for a TCO result.

Rolls the evidence classification of a few high-impact factors up into one
categorical label (HIGH / MEDIUM / LOW / UNCERTAIN). No numeric confidence
score is produced: the inputs are provenance labels, not statistics.
"""

from typing import List, Tuple

from bus_tco.models.applicability import revenue_eligibility
from bus_tco.models.assumptions import DataPoint, EvidenceClassification, TCOAssumptions
from bus_tco.models.inputs import ScenarioType, TCOInput
from bus_tco.models.results import EvidenceFactor, EvidenceStrength, ImpactLevel

C = EvidenceClassification

# Ordered from least to most trustworthy, for picking the weakest label
_WEAKEST_FIRST = (
    C.UNVERIFIED,
    C.CONTINGENT,
    C.ASSUMED,
    C.USER_PROVIDED,
    C.SOURCE_PROVIDED,
    C.VERIFIED,
)


def _weakest(points: List[DataPoint]) -> EvidenceClassification:
    # NOT_APPLICABLE points carry no evidence and are skipped
    ranked = [p.classification for p in points if p.classification is not C.NOT_APPLICABLE]
    if not ranked:
        return C.NOT_APPLICABLE
    return min(ranked, key=_WEAKEST_FIRST.index)


def _revenue_factor(name: str, points: List[DataPoint], scenario: ScenarioType) -> EvidenceFactor:
    counted = [p for p in points if p.value > 0]
    if not scenario.is_electric or not counted:
        return EvidenceFactor(name, C.NOT_APPLICABLE, ImpactLevel.MEDIUM,
                              "No revenue of this kind is counted.")
    return EvidenceFactor(name, _weakest(counted), ImpactLevel.MEDIUM,
                          "Requires program enrollment; reduces net cost only if realized.")


def evidence_factors(tco_input: TCOInput, assumptions: TCOAssumptions) -> List[EvidenceFactor]:
    """Classify the high-impact factors behind one scenario's result."""
    scenario = tco_input.scenario_type
    fuel = "electric" if scenario.is_electric else "diesel"
    prices = assumptions.bus_prices
    vehicle_points = [getattr(getattr(prices, t), fuel) for t in ("type_a", "type_c", "type_d")]
    factors = [
        EvidenceFactor("Vehicle Pricing", _weakest(vehicle_points), ImpactLevel.HIGH,
                       f"{fuel.capitalize()} bus purchase prices."),
    ]

    if scenario is ScenarioType.DIESEL_BASELINE:
        energy = assumptions.diesel_price_per_gallon
        energy_note = f"Diesel price ${energy.value:.2f}/gal."
    elif scenario is ScenarioType.MOBILE_CHARGING:
        mc = assumptions.mobile_charging
        energy = DataPoint(0.0, _weakest([mc.ppa_power_rate, mc.utility_power_rate, mc.truck_energy,
                                          mc.labor, mc.depreciation, mc.maintenance]))
        energy_note = "Operator's internal landed cost of delivered energy."
    else:
        energy = assumptions.electricity_rate_kwh
        energy_note = f"Grid rate ${energy.value:.3f}/kWh."
    factors.append(EvidenceFactor("Energy Rate", energy.classification, ImpactLevel.HIGH, energy_note))

    if scenario in (ScenarioType.SELF_MANAGED_EV, ScenarioType.EAAS):
        factors.append(EvidenceFactor("Demand Charge", assumptions.demand_charge_kw.classification,
                                      ImpactLevel.MEDIUM, "Utility-specific tariff."))
    else:
        factors.append(EvidenceFactor("Demand Charge", C.NOT_APPLICABLE, ImpactLevel.MEDIUM,
                                      "No depot demand charge in this scenario."))

    maintenance = getattr(assumptions.maintenance_cost_per_mile, fuel)
    factors.append(EvidenceFactor("Maintenance", maintenance.classification, ImpactLevel.MEDIUM,
                                  f"${maintenance.value:.2f}/mile."))

    federal = assumptions.incentives.federal_per_bus
    if scenario.is_electric and federal.value > 0:
        factors.append(EvidenceFactor("Federal Incentive", federal.classification, ImpactLevel.HIGH,
                                      "Competitive grant; not guaranteed."))
    else:
        factors.append(EvidenceFactor("Federal Incentive", C.NOT_APPLICABLE, ImpactLevel.HIGH,
                                      "No federal incentive counted."))

    streams = assumptions.revenue_streams
    applied = {
        stream.field: getattr(streams, stream.field)
        for stream, applicable, _ in revenue_eligibility(tco_input.location)
        if applicable
    }
    carbon = [applied[f] for f in ("lcfs_per_bus", "federal_carbon_credit_per_bus") if f in applied]
    v2g = [applied[f] for f in ("demand_response_per_bus", "frequency_regulation_per_bus", "vpp_per_bus")
           if f in applied]
    factors.append(_revenue_factor("Carbon Credit Revenue", carbon, scenario))
    factors.append(_revenue_factor("V2G Revenue", v2g, scenario))
    return factors


def rollup_evidence_strength(factors: List[EvidenceFactor]) -> EvidenceStrength:
    """Reduce factor classifications to one categorical strength.

    HIGH requires at least three VERIFIED factors and no CONTINGENT factor.
    Any CONTINGENT factor caps the result at MEDIUM.
    """
    verified = sum(1 for f in factors if f.classification is C.VERIFIED)
    contingent = sum(1 for f in factors if f.classification is C.CONTINGENT)
    unverified_high = sum(
        1 for f in factors if f.classification is C.UNVERIFIED and f.impact is ImpactLevel.HIGH
    )
    if unverified_high >= 2:
        return EvidenceStrength.UNCERTAIN
    if contingent == 0:
        return EvidenceStrength.HIGH if verified >= 3 else EvidenceStrength.MEDIUM
    if verified >= 3 and contingent <= 2:
        return EvidenceStrength.MEDIUM
    return EvidenceStrength.LOW


def summarize_evidence(
    tco_input: TCOInput, assumptions: TCOAssumptions
) -> Tuple[EvidenceStrength, List[EvidenceFactor]]:
    factors = evidence_factors(tco_input, assumptions)
    return rollup_evidence_strength(factors), factors
