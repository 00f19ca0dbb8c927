"""Assumption data model for the fleet TCO engine.

Every number the cost engine consumes is a DataPoint: a value tagged with an
evidence classification and a provenance source. TCOAssumptions bundles the
DataPoints used by one calculation. merge_assumptions() layers a partial,
nested override mapping on top of a complete bundle, walking the fixed
dataclass schema field by field so that nothing is silently dropped.
"""

from dataclasses import dataclass, fields, is_dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from bus_tco.models.errors import ValidationError


class EvidenceClassification(Enum):
    """How trustworthy (or contingent) an assumption's value is."""

    VERIFIED = "VERIFIED"                # Authoritative public dataset
    SOURCE_PROVIDED = "SOURCE_PROVIDED"  # Vendor/contractor supplied, needs audit
    USER_PROVIDED = "USER_PROVIDED"
    ASSUMED = "ASSUMED"                  # Model default with stated rationale
    CONTINGENT = "CONTINGENT"            # Depends on a grant award or program enrollment
    NOT_APPLICABLE = "NOT_APPLICABLE"
    UNVERIFIED = "UNVERIFIED"


class JurisdictionScope(Enum):
    """Where an assumption legally or practically applies."""

    US_ALL = "US_ALL"
    STATE_LIST = "STATE_LIST"
    UTILITY_SPECIFIC = "UTILITY_SPECIFIC"
    FEDERAL = "FEDERAL"
    GLOBAL = "GLOBAL"


@dataclass(frozen=True)
class DataPoint:
    """A single assumption value with its provenance."""

    value: float
    classification: EvidenceClassification = EvidenceClassification.ASSUMED
    source: str = ""
    url: str = ""
    as_of: str = ""  # ISO date the value was current

    def with_value(
        self,
        value: float,
        classification: Optional[EvidenceClassification] = None,
        source: Optional[str] = None,
    ) -> "DataPoint":
        """Return a copy carrying a new value, optionally relabelled."""
        return replace(
            self,
            value=float(value),
            classification=classification or self.classification,
            source=source if source is not None else self.source,
        )

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "classification": self.classification.value,
            "source": self.source,
            "url": self.url,
            "as_of": self.as_of,
        }

    @classmethod
    def from_dict(cls, data: dict, fallback: Optional["DataPoint"] = None) -> "DataPoint":
        """Build a DataPoint from a dict, filling missing keys from fallback."""
        base = fallback or cls(value=0.0)
        classification = data.get("classification", base.classification)
        if not isinstance(classification, EvidenceClassification):
            classification = EvidenceClassification(classification)
        return cls(
            value=float(data.get("value", base.value)),
            classification=classification,
            source=data.get("source", base.source),
            url=data.get("url", base.url),
            as_of=data.get("as_of", base.as_of),
        )


@dataclass
class FuelPair:
    diesel: DataPoint
    electric: DataPoint


@dataclass
class PerBusType:
    type_a: DataPoint
    type_c: DataPoint
    type_d: DataPoint


@dataclass
class BusPrices:
    """Purchase price per vehicle, by size class and fuel."""

    type_a: FuelPair
    type_c: FuelPair
    type_d: FuelPair


@dataclass
class InfrastructureCosts:
    level2_charger_cost: DataPoint        # $ per Level 2 charger
    dcfc_charger_cost: DataPoint          # $ per DC fast charger
    installation_cost_per_charger: DataPoint
    mobile_site_cost: DataPoint           # District-borne site cost when a partner supplies charging


@dataclass
class MobileChargingCosts:
    """Internal landed cost components of delivered energy, $/kWh.

    This is the operator's cost structure, not its customer price list.
    """

    ppa_power_rate: DataPoint
    utility_power_rate: DataPoint
    truck_energy: DataPoint
    labor: DataPoint
    depreciation: DataPoint
    maintenance: DataPoint

    def transport_cost(self) -> float:
        return (
            self.truck_energy.value
            + self.labor.value
            + self.depreciation.value
            + self.maintenance.value
        )


@dataclass
class IncentiveAmounts:
    federal_per_bus: DataPoint
    state_per_bus: DataPoint


@dataclass
class RevenueStreams:
    """Revenue per electric bus per year, before capture and scale adjustment."""

    lcfs_per_bus: DataPoint
    federal_carbon_credit_per_bus: DataPoint
    demand_response_per_bus: DataPoint
    frequency_regulation_per_bus: DataPoint
    vpp_per_bus: DataPoint
    revenue_capture_rate: DataPoint  # Same fraction for every electric scenario


@dataclass
class LifecycleAssumptions:
    residual_value_fraction: DataPoint
    battery_replacement_year: DataPoint
    battery_replacement_cost: DataPoint  # $ per bus


@dataclass
class InsuranceAssumptions:
    base_rate: DataPoint              # Annual premium as a fraction of vehicle price
    ev_premium_multiplier: DataPoint


@dataclass
class ExternalCosts:
    """Diesel externality costs borne by third parties, $ per bus-year."""

    health_children: DataPoint
    health_community: DataPoint
    health_drivers: DataPoint
    climate_co2: DataPoint
    climate_methane: DataPoint
    climate_local_air: DataPoint
    regulatory_compliance: DataPoint
    regulatory_future_penalty: DataPoint
    regulatory_carbon_tax_risk: DataPoint
    risk_fuel_volatility: DataPoint
    risk_supply_chain: DataPoint
    risk_reputational: DataPoint

    def health(self) -> float:
        return self.health_children.value + self.health_community.value + self.health_drivers.value

    def climate(self) -> float:
        return self.climate_co2.value + self.climate_methane.value + self.climate_local_air.value

    def regulatory(self) -> float:
        return (
            self.regulatory_compliance.value
            + self.regulatory_future_penalty.value
            + self.regulatory_carbon_tax_risk.value
        )

    def operational_risk(self) -> float:
        return (
            self.risk_fuel_volatility.value
            + self.risk_supply_chain.value
            + self.risk_reputational.value
        )


@dataclass
class TCOAssumptions:
    """Complete set of DataPoints consumed by one TCO calculation."""

    bus_prices: BusPrices
    diesel_price_per_gallon: DataPoint
    electricity_rate_kwh: DataPoint
    demand_charge_kw: DataPoint          # $ per kW per month
    diesel_mpg: PerBusType
    ev_kwh_per_mile: PerBusType
    maintenance_cost_per_mile: FuelPair
    infrastructure: InfrastructureCosts
    mobile_charging: MobileChargingCosts
    incentives: IncentiveAmounts
    revenue_streams: RevenueStreams
    lifecycle: LifecycleAssumptions
    insurance: InsuranceAssumptions
    weather_derating_factor: DataPoint   # Extra energy draw from climate
    external_costs: ExternalCosts

    def get(self, path: str) -> DataPoint:
        """Look up a DataPoint by dotted path, e.g. 'incentives.federal_per_bus'."""
        node: Any = self
        for part in path.split("."):
            if not is_dataclass(node) or part not in {f.name for f in fields(node)}:
                raise KeyError(f"No assumption at path '{path}'")
            node = getattr(node, part)
        if not isinstance(node, DataPoint):
            raise KeyError(f"Assumption path '{path}' names a group, not a value")
        return node

    def to_dict(self) -> dict:
        return _group_to_dict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TCOAssumptions":
        return _group_from_dict(cls, data)


def _group_to_dict(group: Any) -> dict:
    result = {}
    for f in fields(group):
        value = getattr(group, f.name)
        result[f.name] = value.to_dict() if isinstance(value, DataPoint) else _group_to_dict(value)
    return result


def _group_from_dict(group_cls: type, data: dict) -> Any:
    kwargs = {}
    for f in fields(group_cls):
        if f.name not in data:
            raise KeyError(f"Missing assumption field '{f.name}'")
        if f.type is DataPoint:
            kwargs[f.name] = DataPoint.from_dict(data[f.name])
        else:
            kwargs[f.name] = _group_from_dict(f.type, data[f.name])
    return group_cls(**kwargs)


# =============================================================================
# Merging
# =============================================================================

USER_OVERRIDE_SOURCE = "User override"


def merge_assumptions(base: TCOAssumptions, overrides: Optional[Mapping[str, Any]]) -> TCOAssumptions:
    """Layer a partial override mapping onto a complete assumptions bundle.

    The mapping mirrors the TCOAssumptions schema. Leaves may be:

    - a DataPoint, taken as given;
    - a number, which replaces the value and marks it USER_PROVIDED;
    - a dict with DataPoint keys, whose missing keys keep the prior value.

    Groups that are only partially overridden keep every unspecified sibling.

    Args:
        base: Fully populated bundle. Not modified.
        overrides: Partial nested mapping, or None.

    Returns:
        A new TCOAssumptions with overrides applied.

    Raises:
        ValidationError: Listing every unknown key or non-numeric value.
    """
    if not overrides:
        return base
    errors: List[str] = []
    merged = _merge_group(base, overrides, "", errors)
    if errors:
        raise ValidationError(errors)
    return merged


def _merge_group(group: Any, overrides: Any, prefix: str, errors: List[str]) -> Any:
    if type(overrides) is type(group):
        return overrides
    if not isinstance(overrides, Mapping):
        errors.append(f"Override '{prefix.rstrip('.') or 'overrides'}' must be a mapping")
        return group

    known = [f.name for f in fields(group)]
    for key in overrides:
        if key not in known:
            errors.append(f"Unknown assumption override '{prefix}{key}'")

    changes = {}
    for name in known:
        if name not in overrides:
            continue
        current = getattr(group, name)
        if isinstance(current, DataPoint):
            changes[name] = _merge_point(current, overrides[name], prefix + name, errors)
        else:
            changes[name] = _merge_group(current, overrides[name], prefix + name + ".", errors)
    return replace(group, **changes)


def _merge_point(current: DataPoint, override: Any, path: str, errors: List[str]) -> DataPoint:
    if isinstance(override, DataPoint):
        return override
    if isinstance(override, Mapping):
        try:
            return DataPoint.from_dict(dict(override), fallback=current)
        except (TypeError, ValueError) as e:
            errors.append(f"Override '{path}' is not a valid data point: {e}")
            return current
    if isinstance(override, bool) or not isinstance(override, (int, float)):
        errors.append(f"Override '{path}' must be a number, got {override!r}")
        return current
    return current.with_value(
        override, EvidenceClassification.USER_PROVIDED, USER_OVERRIDE_SOURCE
    )


def layer_overrides(lower: Optional[Mapping[str, Any]], upper: Mapping[str, Any]) -> Dict[str, Any]:
    """Combine two override mappings; values in upper win on conflicts."""
    combined: Dict[str, Any] = dict(lower or {})
    for key, value in upper.items():
        below = combined.get(key)
        if isinstance(value, Mapping) and isinstance(below, Mapping) and not _is_point_dict(value):
            combined[key] = layer_overrides(below, value)
        else:
            combined[key] = value
    return combined


def _is_point_dict(value: Mapping[str, Any]) -> bool:
    return "value" in value


def override_at(path: str, value: Any) -> Dict[str, Any]:
    """Build a nested override mapping for a dotted assumption path."""
    parts = path.split(".")
    result: Dict[str, Any] = {parts[-1]: value}
    for part in reversed(parts[:-1]):
        result = {part: result}
    return result
