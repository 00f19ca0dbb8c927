"""Result data model produced by the TCO engine.

All result objects are created fresh by each calculation and are never
mutated afterwards. Each exposes to_dict() for JSON export.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from bus_tco.models.assumptions import EvidenceClassification, TCOAssumptions
from bus_tco.models.inputs import ScenarioType


class WarningCategory(Enum):
    REVENUE = "REVENUE"
    INCENTIVE = "INCENTIVE"
    COST = "COST"
    OPERATIONAL = "OPERATIONAL"


class WarningSeverity(Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class EvidenceStrength(Enum):
    """Categorical confidence label for a whole result."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    UNCERTAIN = "UNCERTAIN"


class ImpactLevel(Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class FleetTier(Enum):
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"


def to_jsonable(value: Any) -> Any:
    """Convert enums nested in dicts/lists to their string values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {
            (k.value if isinstance(k, Enum) else k): to_jsonable(v) for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class ApplicabilityWarning:
    """Flags an assumption that may not apply to this fleet or scenario.

    Attributes:
        id: Stable identifier used for deduplication.
        category: Which kind of assumption is affected.
        severity: How much the user should worry.
        title: Short heading.
        message: Human-readable explanation.
        affected_parameter: Dotted assumption path.
        applied_value: The value actually used in the calculation.
        reason: Why the rule fired.
    """

    id: str
    category: WarningCategory
    severity: WarningSeverity
    title: str
    message: str
    affected_parameter: str
    applied_value: float
    reason: str

    def to_dict(self) -> dict:
        return to_jsonable(asdict(self))


@dataclass(frozen=True)
class FleetScaleAdjustment:
    tier: FleetTier
    cost_multiplier: float
    revenue_multiplier: float
    break_even_reached: bool


@dataclass(frozen=True)
class EvidenceFactor:
    factor: str
    classification: EvidenceClassification
    impact: ImpactLevel
    note: str


@dataclass(frozen=True)
class YearExternalCosts:
    """Diesel externality costs for one year, $ (societal view only)."""

    health: float = 0.0
    climate: float = 0.0
    regulatory: float = 0.0
    operational_risk: float = 0.0

    @property
    def total(self) -> float:
        return self.health + self.climate + self.regulatory + self.operational_risk


@dataclass(frozen=True)
class AnnualCosts:
    """Cost and revenue record for a single projection year.

    Year 0 carries capital, infrastructure and incentives only.
    incentives_applied is a positive credit subtracted from total_cost.
    """

    year: int
    capital_cost: float
    energy_cost: float
    maintenance_cost: float
    infrastructure_cost: float
    insurance_cost: float
    incentives_applied: float
    carbon_credit_revenue: float
    v2g_revenue: float
    total_revenue: float
    external_costs: YearExternalCosts
    total_cost: float         # Gross budget cost
    total_true_cost: float    # Gross + externalities
    net_cost: float           # Gross - revenue
    true_cost: float          # Net + externalities
    cumulative_cost: float = 0.0
    cumulative_net_cost: float = 0.0
    cumulative_true_cost: float = 0.0
    npv_cost: float = 0.0
    npv_net_cost: float = 0.0
    npv_true_cost: float = 0.0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["external_costs"]["total"] = self.external_costs.total
        return data


@dataclass(frozen=True)
class CostBreakdownItem:
    category: str
    amount: float
    percentage: float


@dataclass(frozen=True)
class TCOResult:
    """One scenario's complete projection.

    Budget figures (total_tco, total_net_tco, npv, npv_net) exclude
    externalities. The *_true_cost figures add the diesel societal costs and
    are reported separately.
    """

    scenario_type: ScenarioType
    total_tco: float
    total_net_tco: float
    total_true_cost: float
    npv: float
    npv_net: float
    npv_true_cost: float
    residual_value: float
    average_annual_cost: float
    average_annual_net_cost: float
    average_annual_true_cost: float
    cost_per_mile: float
    net_cost_per_mile: float
    true_cost_per_mile: float
    total_carbon_revenue: float
    total_v2g_revenue: float
    total_revenue: float
    external_costs: YearExternalCosts
    fleet_scale: FleetScaleAdjustment
    annual_costs: List[AnnualCosts]
    cost_breakdown: List[CostBreakdownItem]
    rule_constants: Dict[str, float]
    assumptions: TCOAssumptions
    applicability_warnings: List[ApplicabilityWarning]
    evidence_strength: EvidenceStrength
    evidence_factors: List[EvidenceFactor]
    calculated_at: str

    @property
    def total_external_cost(self) -> float:
        return self.external_costs.total

    def to_dict(self) -> dict:
        data = {
            "scenario_type": self.scenario_type.value,
            "scenario_label": self.scenario_type.label,
            "total_tco": self.total_tco,
            "total_net_tco": self.total_net_tco,
            "total_true_cost": self.total_true_cost,
            "npv": self.npv,
            "npv_net": self.npv_net,
            "npv_true_cost": self.npv_true_cost,
            "residual_value": self.residual_value,
            "average_annual_cost": self.average_annual_cost,
            "average_annual_net_cost": self.average_annual_net_cost,
            "average_annual_true_cost": self.average_annual_true_cost,
            "cost_per_mile": self.cost_per_mile,
            "net_cost_per_mile": self.net_cost_per_mile,
            "true_cost_per_mile": self.true_cost_per_mile,
            "total_carbon_revenue": self.total_carbon_revenue,
            "total_v2g_revenue": self.total_v2g_revenue,
            "total_revenue": self.total_revenue,
            "external_costs": dict(asdict(self.external_costs), total=self.total_external_cost),
            "fleet_scale": to_jsonable(asdict(self.fleet_scale)),
            "annual_costs": [a.to_dict() for a in self.annual_costs],
            "cost_breakdown": [asdict(c) for c in self.cost_breakdown],
            "rule_constants": dict(self.rule_constants),
            "assumptions": self.assumptions.to_dict(),
            "applicability_warnings": [w.to_dict() for w in self.applicability_warnings],
            "evidence_strength": self.evidence_strength.value,
            "evidence_factors": [to_jsonable(asdict(f)) for f in self.evidence_factors],
            "calculated_at": self.calculated_at,
        }
        return data


@dataclass(frozen=True)
class ComparisonMetrics:
    """Cross-scenario metrics derived by compare_scenarios()."""

    lowest_gross_scenario: ScenarioType
    lowest_net_scenario: ScenarioType
    mobile_savings_vs_diesel: float
    mobile_savings_vs_self_managed: float
    mobile_net_savings_vs_diesel: float
    mobile_net_savings_vs_self_managed: float
    payback_years: Optional[float]
    incremental_irr: Optional[float]

    def to_dict(self) -> dict:
        return to_jsonable(asdict(self))


@dataclass(frozen=True)
class ScenarioComparison:
    results: Dict[ScenarioType, TCOResult]
    metrics: ComparisonMetrics
    warnings: List[ApplicabilityWarning] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "results": {s.value: r.to_dict() for s, r in self.results.items()},
            "metrics": self.metrics.to_dict(),
            "warnings": [w.to_dict() for w in self.warnings],
        }
