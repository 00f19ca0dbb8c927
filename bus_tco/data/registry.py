"""Assumption registry for the fleet TCO engine.

Catalog of every financial and physical parameter the engine uses, each with
its value, evidence classification, jurisdiction scope and provenance. The
built-in TCOAssumptions bundle is constructed from these entries, so every
default number in a calculation traces back to one registry record.

Incentive and revenue amounts that depend on a grant award, program
enrollment or special equipment are always classified CONTINGENT.
"""

import json
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, List, Mapping, Optional, Tuple

from bus_tco.models.assumptions import DataPoint, EvidenceClassification, JurisdictionScope
from bus_tco.models.errors import UnknownIdentifierError
from bus_tco.models.results import EvidenceStrength

C = EvidenceClassification
J = JurisdictionScope


class UpdatePolicy(Enum):
    REAL_TIME = "REAL_TIME"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    ANNUAL = "ANNUAL"
    MANUAL = "MANUAL"
    STATIC = "STATIC"


@dataclass(frozen=True)
class SourceInfo:
    name: str
    url: str = ""
    publisher: str = ""
    as_of: str = ""


@dataclass(frozen=True)
class Contingency:
    """What must happen for a contingent value to materialize."""

    condition: str
    probability: float
    fallback_value: float


@dataclass(frozen=True)
class RegistryEntry:
    """A single documented assumption.

    Attributes:
        id: Stable identifier.
        name: Display name.
        value: Default value.
        units: Units of value.
        classification: Evidence classification of the default.
        source: Provenance of the default.
        jurisdiction: Where the value applies.
        applicable_states: Eligible states for STATE_LIST entries.
        allowed_range: Inclusive (min, max) accepted for overrides.
        update_policy: How often the default should be refreshed.
        description: What the parameter means.
        impact_note: How the parameter moves the result.
        contingency: Condition and fallback for CONTINGENT entries.
    """

    id: str
    name: str
    value: float
    units: str
    classification: EvidenceClassification
    source: SourceInfo
    jurisdiction: JurisdictionScope = JurisdictionScope.US_ALL
    applicable_states: FrozenSet[str] = frozenset()
    allowed_range: Optional[Tuple[float, float]] = None
    update_policy: UpdatePolicy = UpdatePolicy.ANNUAL
    description: str = ""
    impact_note: str = ""
    contingency: Optional[Contingency] = None

    def to_datapoint(self) -> DataPoint:
        return DataPoint(
            value=float(self.value),
            classification=self.classification,
            source=self.source.name,
            url=self.source.url,
            as_of=self.source.as_of,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "value": self.value,
            "units": self.units,
            "classification": self.classification.value,
            "evidence_strength": evidence_strength_for(self.classification).value,
            "jurisdiction": self.jurisdiction.value,
            "applicable_states": sorted(self.applicable_states),
            "allowed_range": list(self.allowed_range) if self.allowed_range else None,
            "update_policy": self.update_policy.value,
            "source": {
                "name": self.source.name,
                "url": self.source.url,
                "publisher": self.source.publisher,
                "as_of": self.source.as_of,
            },
            "description": self.description,
            "impact_note": self.impact_note,
            "contingency": (
                {
                    "condition": self.contingency.condition,
                    "probability": self.contingency.probability,
                    "fallback_value": self.contingency.fallback_value,
                }
                if self.contingency
                else None
            ),
        }


# -- Sources ------------------------------------------------------------------

_SBF = SourceInfo("School Bus Fleet Industry Data", "https://www.schoolbusfleet.com",
                  "School Bus Fleet Magazine", "2024-01-01")
_OEM = SourceInfo("Electric school bus OEM specification sheets", "", "Vehicle manufacturers", "2024-06-01")
_EIA_DIESEL = SourceInfo("EIA Weekly Retail On-Highway Diesel", "https://www.eia.gov/petroleum/gasdiesel/",
                         "U.S. Energy Information Administration", "2024-12-01")
_EIA_POWER = SourceInfo("EIA Average Commercial Electricity Rate", "https://www.eia.gov/electricity/monthly/",
                        "U.S. Energy Information Administration", "2024-12-01")
_URDB = SourceInfo("Utility Rate Database", "https://openei.org/wiki/Utility_Rate_Database",
                   "OpenEI / NREL", "2024-06-01")
_AFDC = SourceInfo("AFDC Vehicle Cost Calculator", "https://afdc.energy.gov/calc/",
                   "U.S. Department of Energy", "2024-01-01")
_NREL_EVSE = SourceInfo("NREL Electric Vehicle Infrastructure Cost Survey", "https://www.nrel.gov/",
                        "National Renewable Energy Laboratory", "2024-01-01")
_OPERATOR = SourceInfo("Mobile charging operator cost model", "", "Charging operator", "2024-01-01")
_PPA = SourceInfo("Landfill-gas power purchase agreement", "", "Charging operator", "2024-01-01")
_USER = SourceInfo("User input required", "", "", "")
_EPA_CSB = SourceInfo("EPA Clean School Bus Program", "https://www.epa.gov/cleanschoolbus",
                      "U.S. Environmental Protection Agency", "2024-01-01")
_CARB = SourceInfo("California Air Resources Board LCFS",
                   "https://ww2.arb.ca.gov/our-work/programs/low-carbon-fuel-standard",
                   "California Air Resources Board", "2024-06-01")
_IRS_45Q = SourceInfo("IRS Section 45Q",
                      "https://www.irs.gov/credits-deductions/businesses/carbon-oxide-sequestration-credit",
                      "Internal Revenue Service", "2024-01-01")
_PJM_DR = SourceInfo("PJM Demand Response Programs", "https://www.pjm.com/markets-and-operations/demand-response",
                     "PJM Interconnection", "2024-06-01")
_PJM_REG = SourceInfo("PJM Frequency Regulation Market", "", "PJM Interconnection", "2024-06-01")
_VPP = SourceInfo("Utility virtual power plant programs", "", "", "2024-06-01")
_MODEL = SourceInfo("Model default", "", "", "2024-01-01")
_WEATHER = SourceInfo("Cold-climate electric bus field data", "", "", "2024-06-01")
_SCC = SourceInfo("EPA Interagency Working Group on Social Cost of Greenhouse Gases",
                  "https://www.epa.gov/environmental-economics/scghg",
                  "U.S. Environmental Protection Agency", "2024-01-01")
_HEALTH = SourceInfo("EPA diesel particulate health-impact estimates", "https://www.epa.gov/dera",
                     "U.S. Environmental Protection Agency", "2024-01-01")
_RISK = SourceInfo("Fleet risk model estimates", "", "", "2024-01-01")

_CONTINGENT_FEDERAL_GRANT = Contingency("Competitive grant award", 0.30, 0.0)


def _bus(id_, name, value, fuel_source=_SBF, classification=C.ASSUMED):
    return RegistryEntry(
        id_, name, value, "$/vehicle", classification, fuel_source,
        allowed_range=(50000.0, 600000.0),
        impact_note="Drives year-0 capital and residual value.",
    )


def _per_bus_year(id_, name, value, source, classification=C.ASSUMED, **kwargs):
    return RegistryEntry(id_, name, value, "$/bus/year", classification, source, **kwargs)


_ENTRIES: List[RegistryEntry] = [
    # Vehicle pricing
    _bus("bus_price_type_a_diesel", "Type A Diesel Bus Price", 90000),
    _bus("bus_price_type_a_electric", "Type A Electric Bus Price", 315000),
    _bus("bus_price_type_c_diesel", "Type C Diesel Bus Price", 110000),
    _bus("bus_price_type_c_electric", "Type C Electric Bus Price", 395000),
    _bus("bus_price_type_d_diesel", "Type D Diesel Bus Price", 140000),
    _bus("bus_price_type_d_electric", "Type D Electric Bus Price", 450000),
    # Energy
    RegistryEntry("diesel_price_per_gallon", "Diesel Price per Gallon", 3.50, "$/gallon", C.VERIFIED,
                  _EIA_DIESEL, allowed_range=(2.0, 8.0), update_policy=UpdatePolicy.MONTHLY,
                  impact_note="Primary driver of diesel baseline energy cost."),
    RegistryEntry("electricity_rate_kwh", "Electricity Rate", 0.12, "$/kWh", C.VERIFIED,
                  _EIA_POWER, allowed_range=(0.05, 0.40), update_policy=UpdatePolicy.MONTHLY,
                  impact_note="Primary driver of grid-charged energy cost."),
    RegistryEntry("demand_charge_kw", "Demand Charge Rate", 15.0, "$/kW/month", C.ASSUMED,
                  _URDB, J.UTILITY_SPECIFIC, allowed_range=(5.0, 50.0),
                  description="Monthly peak-demand charge on depot charging load.",
                  impact_note="Can exceed energy charges for depot charging."),
    # Efficiency
    RegistryEntry("diesel_mpg_type_a", "Type A Diesel MPG", 12.0, "mpg", C.ASSUMED, _AFDC,
                  allowed_range=(2.0, 20.0)),
    RegistryEntry("diesel_mpg_type_c", "Type C Diesel MPG", 8.0, "mpg", C.ASSUMED, _AFDC,
                  allowed_range=(2.0, 20.0)),
    RegistryEntry("diesel_mpg_type_d", "Type D Diesel MPG", 6.0, "mpg", C.ASSUMED, _AFDC,
                  allowed_range=(2.0, 20.0)),
    RegistryEntry("ev_kwh_per_mile_type_a", "Type A Electric Efficiency", 1.2, "kWh/mile",
                  C.SOURCE_PROVIDED, _OEM, allowed_range=(0.5, 4.0)),
    RegistryEntry("ev_kwh_per_mile_type_c", "Type C Electric Efficiency", 1.8, "kWh/mile",
                  C.SOURCE_PROVIDED, _OEM, allowed_range=(0.5, 4.0)),
    RegistryEntry("ev_kwh_per_mile_type_d", "Type D Electric Efficiency", 2.2, "kWh/mile",
                  C.SOURCE_PROVIDED, _OEM, allowed_range=(0.5, 4.0)),
    # Maintenance
    RegistryEntry("maintenance_diesel_per_mile", "Diesel Maintenance Cost", 0.42, "$/mile",
                  C.ASSUMED, _AFDC, allowed_range=(0.10, 2.0)),
    RegistryEntry("maintenance_electric_per_mile", "Electric Maintenance Cost", 0.20, "$/mile",
                  C.ASSUMED, _AFDC, allowed_range=(0.05, 2.0)),
    # Charging infrastructure
    RegistryEntry("charger_level2_cost", "Level 2 Charger Cost", 6000, "$/charger", C.ASSUMED,
                  _NREL_EVSE, allowed_range=(2000.0, 20000.0)),
    RegistryEntry("charger_dcfc_cost", "DC Fast Charger Cost", 75000, "$/charger", C.ASSUMED,
                  _NREL_EVSE, allowed_range=(30000.0, 200000.0)),
    RegistryEntry("charger_installation_cost", "Charger Installation Cost", 15000, "$/charger",
                  C.ASSUMED, _NREL_EVSE, allowed_range=(5000.0, 60000.0)),
    RegistryEntry("mobile_site_cost", "District Site Cost Under Mobile Charging", 0, "$",
                  C.USER_PROVIDED, _USER, update_policy=UpdatePolicy.MANUAL,
                  description="Depot preparation paid by the district when a partner supplies charging.",
                  impact_note="Zero only if the charging contract covers all site work."),
    # Mobile charging internal landed cost
    RegistryEntry("mobile_ppa_power_rate", "Power Procurement Rate (PPA)", 0.04, "$/kWh",
                  C.SOURCE_PROVIDED, _PPA, J.STATE_LIST, frozenset({"VA", "MD", "DC"}),
                  allowed_range=(0.02, 0.15), update_policy=UpdatePolicy.MANUAL),
    RegistryEntry("mobile_utility_power_rate", "Power Procurement Rate (Utility)", 0.08, "$/kWh",
                  C.SOURCE_PROVIDED, _OPERATOR, allowed_range=(0.04, 0.30)),
    RegistryEntry("mobile_truck_energy", "Delivery Truck Energy", 0.06, "$/kWh",
                  C.SOURCE_PROVIDED, _OPERATOR, allowed_range=(0.0, 0.20)),
    RegistryEntry("mobile_labor", "Delivery Labor", 0.08, "$/kWh",
                  C.SOURCE_PROVIDED, _OPERATOR, allowed_range=(0.0, 0.20)),
    RegistryEntry("mobile_depreciation", "Delivery Equipment Depreciation", 0.03, "$/kWh",
                  C.SOURCE_PROVIDED, _OPERATOR, allowed_range=(0.0, 0.10)),
    RegistryEntry("mobile_maintenance", "Delivery Equipment Maintenance", 0.03, "$/kWh",
                  C.SOURCE_PROVIDED, _OPERATOR, allowed_range=(0.0, 0.10)),
    # Incentives
    RegistryEntry("federal_incentive_per_bus", "EPA Clean School Bus Program Incentive", 250000,
                  "$/bus", C.CONTINGENT, _EPA_CSB, J.FEDERAL, allowed_range=(0.0, 400000.0),
                  update_policy=UpdatePolicy.QUARTERLY,
                  description="Competitive federal grant toward electric bus purchase.",
                  impact_note="Largest single offset to electric capital cost; not guaranteed.",
                  contingency=_CONTINGENT_FEDERAL_GRANT),
    RegistryEntry("state_incentive_per_bus", "State Electric Bus Incentive", 0, "$/bus",
                  C.USER_PROVIDED, _USER, J.STATE_LIST, allowed_range=(0.0, 400000.0),
                  update_policy=UpdatePolicy.MANUAL),
    # Revenue streams
    _per_bus_year("lcfs_credit_per_bus", "LCFS Carbon Credits", 600, _CARB, C.CONTINGENT,
                  jurisdiction=J.STATE_LIST, applicable_states=frozenset({"CA", "OR", "WA"}),
                  allowed_range=(0.0, 2000.0), update_policy=UpdatePolicy.QUARTERLY,
                  description="Low Carbon Fuel Standard credits for electric fueling.",
                  contingency=Contingency("Program registration and credit market price", 0.7, 0.0)),
    _per_bus_year("federal_carbon_credit_per_bus", "Federal 45Q Tax Credits", 400, _IRS_45Q,
                  C.CONTINGENT, jurisdiction=J.FEDERAL, allowed_range=(0.0, 1500.0),
                  contingency=Contingency("Qualifying sequestration arrangement", 0.5, 0.0)),
    _per_bus_year("v2g_demand_response_per_bus", "V2G Demand Response Revenue", 300, _PJM_DR,
                  C.CONTINGENT, jurisdiction=J.UTILITY_SPECIFIC, allowed_range=(0.0, 2000.0),
                  contingency=Contingency("Utility program enrollment and bidirectional chargers", 0.25, 0.0)),
    _per_bus_year("v2g_frequency_regulation_per_bus", "V2G Frequency Regulation Revenue", 400, _PJM_REG,
                  C.CONTINGENT, jurisdiction=J.UTILITY_SPECIFIC, allowed_range=(0.0, 2000.0),
                  contingency=Contingency("Market qualification and aggregator contract", 0.20, 0.0)),
    _per_bus_year("vpp_per_bus", "Virtual Power Plant Revenue", 225, _VPP,
                  C.CONTINGENT, jurisdiction=J.UTILITY_SPECIFIC, allowed_range=(0.0, 1500.0),
                  contingency=Contingency("Utility VPP program availability", 0.15, 0.0)),
    RegistryEntry("revenue_capture_rate", "Revenue Capture Rate", 0.70, "fraction", C.ASSUMED, _MODEL,
                  allowed_range=(0.0, 1.0), update_policy=UpdatePolicy.MANUAL,
                  description="Share of theoretical revenue realized. One value for every electric scenario.",
                  impact_note="Requires business-policy confirmation."),
    # Lifecycle
    RegistryEntry("residual_value_fraction", "Residual Value at Horizon", 0.10, "fraction",
                  C.ASSUMED, _MODEL, allowed_range=(0.0, 0.5)),
    RegistryEntry("battery_replacement_year", "Battery Replacement Year", 8, "year",
                  C.ASSUMED, _OEM, allowed_range=(1.0, 30.0)),
    RegistryEntry("battery_replacement_cost", "Battery Replacement Cost", 50000, "$/bus",
                  C.ASSUMED, _OEM, allowed_range=(10000.0, 150000.0)),
    # Insurance
    RegistryEntry("insurance_base_rate", "Insurance Rate", 0.02, "fraction of vehicle price/year",
                  C.ASSUMED, _MODEL, allowed_range=(0.0, 0.10)),
    RegistryEntry("ev_insurance_premium", "Electric Vehicle Insurance Premium", 1.10, "multiplier",
                  C.ASSUMED, _MODEL, allowed_range=(1.0, 2.0),
                  impact_note="Carrier surcharge on higher-value electric vehicles; confirm with insurer."),
    # Weather
    RegistryEntry("cold_weather_range_reduction", "Cold Weather Energy Penalty", 0.30, "fraction",
                  C.ASSUMED, _WEATHER, allowed_range=(0.10, 0.50),
                  description="Extra energy draw for cabin heating and battery conditioning."),
    RegistryEntry("mild_weather_adjustment", "Mild Weather Energy Buffer", 0.10, "fraction",
                  C.ASSUMED, _WEATHER, allowed_range=(0.05, 0.20)),
    # Diesel externalities
    _per_bus_year("ext_health_children", "Child Health Impact", 450, _HEALTH),
    _per_bus_year("ext_health_community", "Community Health Impact", 280, _HEALTH),
    _per_bus_year("ext_health_drivers", "Driver Health Impact", 120, _HEALTH),
    _per_bus_year("ext_climate_co2", "CO2 Social Cost", 780, _SCC, C.VERIFIED, jurisdiction=J.GLOBAL,
                  description="12 t CO2 per bus-year at $65/t social cost of carbon."),
    _per_bus_year("ext_climate_methane", "Methane and Black Carbon", 95, _SCC),
    _per_bus_year("ext_climate_local_air", "Local Air Quality", 185, _HEALTH),
    _per_bus_year("ext_regulatory_compliance", "Emissions Compliance", 320, _RISK),
    _per_bus_year("ext_regulatory_future_penalty", "Future Penalty Risk", 200, _RISK),
    _per_bus_year("ext_regulatory_carbon_tax", "Carbon Tax Risk", 150, _RISK),
    _per_bus_year("ext_risk_fuel_volatility", "Fuel Price Volatility", 180, _RISK),
    _per_bus_year("ext_risk_supply_chain", "Fuel Supply Chain Risk", 85, _RISK),
    _per_bus_year("ext_risk_reputational", "Reputational Risk", 100, _RISK),
]

ASSUMPTION_REGISTRY: Mapping[str, RegistryEntry] = MappingProxyType({e.id: e for e in _ENTRIES})

# Dotted TCOAssumptions path -> registry id, for range-checking overrides
ASSUMPTION_PATHS: Mapping[str, str] = MappingProxyType({
    **{
        f"bus_prices.{t}.{fuel}": f"bus_price_{t}_{fuel}"
        for t in ("type_a", "type_c", "type_d")
        for fuel in ("diesel", "electric")
    },
    **{f"diesel_mpg.{t}": f"diesel_mpg_{t}" for t in ("type_a", "type_c", "type_d")},
    **{f"ev_kwh_per_mile.{t}": f"ev_kwh_per_mile_{t}" for t in ("type_a", "type_c", "type_d")},
    "diesel_price_per_gallon": "diesel_price_per_gallon",
    "electricity_rate_kwh": "electricity_rate_kwh",
    "demand_charge_kw": "demand_charge_kw",
    "maintenance_cost_per_mile.diesel": "maintenance_diesel_per_mile",
    "maintenance_cost_per_mile.electric": "maintenance_electric_per_mile",
    "infrastructure.level2_charger_cost": "charger_level2_cost",
    "infrastructure.dcfc_charger_cost": "charger_dcfc_cost",
    "infrastructure.installation_cost_per_charger": "charger_installation_cost",
    "mobile_charging.ppa_power_rate": "mobile_ppa_power_rate",
    "mobile_charging.utility_power_rate": "mobile_utility_power_rate",
    "mobile_charging.truck_energy": "mobile_truck_energy",
    "mobile_charging.labor": "mobile_labor",
    "mobile_charging.depreciation": "mobile_depreciation",
    "mobile_charging.maintenance": "mobile_maintenance",
    "incentives.federal_per_bus": "federal_incentive_per_bus",
    "incentives.state_per_bus": "state_incentive_per_bus",
    "revenue_streams.lcfs_per_bus": "lcfs_credit_per_bus",
    "revenue_streams.federal_carbon_credit_per_bus": "federal_carbon_credit_per_bus",
    "revenue_streams.demand_response_per_bus": "v2g_demand_response_per_bus",
    "revenue_streams.frequency_regulation_per_bus": "v2g_frequency_regulation_per_bus",
    "revenue_streams.vpp_per_bus": "vpp_per_bus",
    "revenue_streams.revenue_capture_rate": "revenue_capture_rate",
    "lifecycle.residual_value_fraction": "residual_value_fraction",
    "lifecycle.battery_replacement_year": "battery_replacement_year",
    "lifecycle.battery_replacement_cost": "battery_replacement_cost",
    "insurance.base_rate": "insurance_base_rate",
    "insurance.ev_premium_multiplier": "ev_insurance_premium",
})


def get_entry(entry_id: str) -> RegistryEntry:
    """Return a registry entry by id.

    Raises:
        UnknownIdentifierError: If entry_id is not registered.
    """
    if entry_id not in ASSUMPTION_REGISTRY:
        raise UnknownIdentifierError("registry entry", entry_id, ASSUMPTION_REGISTRY.keys())
    return ASSUMPTION_REGISTRY[entry_id]


def is_revenue_applicable(entry_id: str, state: str, utility_name: str = "") -> Tuple[bool, str]:
    """Check whether a jurisdiction-gated value applies to a fleet's location.

    Args:
        entry_id: Registry id of the revenue stream or incentive.
        state: Two-letter state code of the fleet.
        utility_name: Serving utility, if known.

    Returns:
        (applicable, reason) tuple.
    """
    entry = get_entry(entry_id)
    state = state.strip().upper()
    scope = entry.jurisdiction
    if scope in (J.US_ALL, J.FEDERAL, J.GLOBAL):
        return True, f"{entry.name} applies nationwide."
    if scope is J.STATE_LIST:
        if not entry.applicable_states:
            return True, f"{entry.name} value is user-supplied for {state}."
        if state in entry.applicable_states:
            return True, f"{state} participates in {entry.name}."
        eligible = ", ".join(sorted(entry.applicable_states))
        return False, f"{entry.name} is only available in {eligible}; {state} is not eligible."
    if utility_name.strip():
        return True, f"{entry.name} assumed available through {utility_name.strip()}."
    return False, f"{entry.name} is utility-specific and requires verification with the serving utility."


def validate_registry_value(entry_id: str, value: float) -> Tuple[bool, List[str]]:
    """Check a proposed value against a registry entry's allowed range.

    Returns:
        (is_valid, errors) tuple. Unknown ids are reported as errors.
    """
    entry = ASSUMPTION_REGISTRY.get(entry_id)
    if entry is None:
        return False, [f"Unknown registry entry: {entry_id}"]
    errors = []
    if entry.allowed_range is not None:
        low, high = entry.allowed_range
        if value < low:
            errors.append(f"{entry.name} value {value} is below minimum {low} {entry.units}")
        if value > high:
            errors.append(f"{entry.name} value {value} exceeds maximum {high} {entry.units}")
    return not errors, errors


def entries_requiring_confirmation() -> List[RegistryEntry]:
    """Entries whose defaults need user or auditor confirmation before reliance."""
    needs_review = (C.CONTINGENT, C.USER_PROVIDED, C.SOURCE_PROVIDED)
    return [e for e in ASSUMPTION_REGISTRY.values() if e.classification in needs_review]


def evidence_strength_for(classification: EvidenceClassification) -> EvidenceStrength:
    if classification in (C.VERIFIED, C.NOT_APPLICABLE):
        return EvidenceStrength.HIGH
    if classification in (C.SOURCE_PROVIDED, C.USER_PROVIDED, C.ASSUMED):
        return EvidenceStrength.MEDIUM
    if classification is C.CONTINGENT:
        return EvidenceStrength.LOW
    return EvidenceStrength.UNCERTAIN


def export_registry_for_audit(exported_at: str = "") -> str:
    """Serialize the whole registry as an indented JSON document."""
    entries = [e.to_dict() for e in ASSUMPTION_REGISTRY.values()]
    summary = {
        "total_entries": len(entries),
        "by_classification": {
            c.value: sum(1 for e in ASSUMPTION_REGISTRY.values() if e.classification is c)
            for c in EvidenceClassification
        },
        "requiring_confirmation": [e.id for e in entries_requiring_confirmation()],
    }
    return json.dumps({"exported_at": exported_at, "summary": summary, "entries": entries}, indent=2)
