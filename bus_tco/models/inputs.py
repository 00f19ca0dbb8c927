"""Input data model for fleet TCO calculations.

Defines the fleet, location and analysis-parameter dataclasses supplied by a
caller on every request, plus the TCOInput that bundles them with a scenario
type and optional assumption overrides.
"""

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Optional


class ScenarioType(Enum):
    """The four fixed fleet operating models compared by the engine."""

    DIESEL_BASELINE = "DIESEL_BASELINE"
    SELF_MANAGED_EV = "SELF_MANAGED_EV"
    EAAS = "EAAS"
    MOBILE_CHARGING = "MOBILE_CHARGING"

    @property
    def label(self) -> str:
        return _SCENARIO_LABELS[self]

    @property
    def is_electric(self) -> bool:
        return self is not ScenarioType.DIESEL_BASELINE


_SCENARIO_LABELS = {
    ScenarioType.DIESEL_BASELINE: "Diesel (Baseline)",
    ScenarioType.SELF_MANAGED_EV: "Self-Managed EV",
    ScenarioType.EAAS: "Energy-as-a-Service",
    ScenarioType.MOBILE_CHARGING: "Mobile Charging",
}

# Order used by compare_scenarios and every report
SCENARIO_ORDER = (
    ScenarioType.DIESEL_BASELINE,
    ScenarioType.SELF_MANAGED_EV,
    ScenarioType.EAAS,
    ScenarioType.MOBILE_CHARGING,
)


def _known_fields(cls, data: dict) -> dict:
    valid = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid}


@dataclass
class FleetProfile:
    """Fleet composition and duty cycle.

    Attributes:
        type_a_count: Small (Type A) buses.
        type_c_count: Conventional (Type C) buses.
        type_d_count: Transit-style (Type D) buses.
        avg_daily_miles: Average miles driven per bus per operating day.
        operating_days_per_year: Days the fleet runs each year.
        park_out_percentage: Share of the fleet (0-100) parked and charged
            off-site overnight.
        diesel_price_per_gallon: Fleet's own diesel price, if known.
        avg_mpg: Fleet's measured diesel MPG, applied to every size class.
        annual_maintenance_cost_per_bus: Fleet's current diesel maintenance
            spend per bus per year.
    """

    type_a_count: int = 0
    type_c_count: int = 0
    type_d_count: int = 0
    avg_daily_miles: float = 60.0
    operating_days_per_year: int = 180
    park_out_percentage: float = 0.0
    diesel_price_per_gallon: Optional[float] = None
    avg_mpg: Optional[float] = None
    annual_maintenance_cost_per_bus: Optional[float] = None

    @property
    def total_buses(self) -> int:
        return self.type_a_count + self.type_c_count + self.type_d_count

    @property
    def annual_miles_per_bus(self) -> float:
        return self.avg_daily_miles * self.operating_days_per_year

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict) -> "FleetProfile":
        return cls(**_known_fields(cls, data))


@dataclass
class LocationProfile:
    """Where the fleet operates. The state code drives every jurisdiction rule."""

    state: str = "TX"
    zip_code: str = ""
    utility_name: str = ""
    electricity_rate_kwh: Optional[float] = None
    demand_charge_kw: Optional[float] = None

    @property
    def state_code(self) -> str:
        return self.state.strip().upper()

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict) -> "LocationProfile":
        return cls(**_known_fields(cls, data))


@dataclass
class AnalysisParameters:
    """Global financial parameters for the projection."""

    planning_horizon_years: int = 12
    discount_rate: float = 0.05
    inflation_rate: float = 0.025
    electricity_escalation_rate: float = 0.02
    diesel_escalation_rate: float = 0.03

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisParameters":
        return cls(**_known_fields(cls, data))


@dataclass
class TCOInput:
    """Everything a single TCO calculation needs.

    Attributes:
        fleet: Fleet composition and duty cycle.
        location: Operating jurisdiction and utility details.
        parameters: Horizon, discount and escalation rates.
        scenario_type: Operating model to project.
        overrides: Partial nested mapping over the TCOAssumptions schema.
            Applied last, so the caller always wins.
    """

    fleet: FleetProfile = field(default_factory=FleetProfile)
    location: LocationProfile = field(default_factory=LocationProfile)
    parameters: AnalysisParameters = field(default_factory=AnalysisParameters)
    scenario_type: ScenarioType = ScenarioType.DIESEL_BASELINE
    overrides: Dict[str, Any] = field(default_factory=dict)

    def with_scenario(self, scenario_type: ScenarioType) -> "TCOInput":
        return replace(self, scenario_type=scenario_type)

    def with_overrides(self, overrides: Dict[str, Any]) -> "TCOInput":
        return replace(self, overrides=overrides)

    def to_dict(self) -> dict:
        return {
            "fleet": self.fleet.to_dict(),
            "location": self.location.to_dict(),
            "parameters": self.parameters.to_dict(),
            "scenario_type": self.scenario_type.value,
            "overrides": _jsonable_overrides(self.overrides),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TCOInput":
        return cls(
            fleet=FleetProfile.from_dict(data.get("fleet", {})),
            location=LocationProfile.from_dict(data.get("location", {})),
            parameters=AnalysisParameters.from_dict(data.get("parameters", {})),
            scenario_type=ScenarioType(data.get("scenario_type", ScenarioType.DIESEL_BASELINE.value)),
            overrides=dict(data.get("overrides", {})),
        )


def _jsonable_overrides(overrides: Dict[str, Any]) -> Dict[str, Any]:
    result = {}
    for key, value in overrides.items():
        if hasattr(value, "to_dict"):
            result[key] = value.to_dict()
        elif isinstance(value, dict):
            result[key] = _jsonable_overrides(value)
        else:
            result[key] = value
    return result
