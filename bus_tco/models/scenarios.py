"""Stress tests, sensitivity sweeps, break-even search and Monte Carlo simulation.

Every analysis here re-invokes calculate_tco() with modified assumption
overrides layered on top of the caller's own overrides. Each re-invocation is
independent of the others; results are aggregated in a fixed order.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from bus_tco.data.defaults import LocationDefaults, resolve_assumptions
from bus_tco.data.validators import ensure_valid
from bus_tco.models.assumptions import (
    DataPoint,
    EvidenceClassification,
    TCOAssumptions,
    layer_overrides,
    override_at,
)
from bus_tco.models.calculations import _safe_ratio, calculate_tco
from bus_tco.models.errors import UnknownIdentifierError
from bus_tco.models.inputs import ScenarioType, TCOInput
from bus_tco.models.results import ImpactLevel, TCOResult

logger = logging.getLogger(__name__)

MATERIAL_IMPACT_PERCENT = 20.0


class RiskLevel(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


def risk_tier(impact_percentage: float) -> RiskLevel:
    """Qualitative tier for a worst-case percentage impact on net TCO."""
    impact = abs(impact_percentage)
    if impact < 10:
        return RiskLevel.LOW
    if impact < 25:
        return RiskLevel.MEDIUM
    if impact < 50:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL


# =============================================================================
# Stress tests
# =============================================================================

@dataclass(frozen=True)
class StressModifiers:
    """Declarative perturbation of specific assumptions."""

    federal_incentive_multiplier: float = 1.0
    state_incentive_multiplier: float = 1.0
    electricity_rate_multiplier: float = 1.0
    demand_charge_multiplier: float = 1.0
    battery_replacement_cost_multiplier: float = 1.0
    weather_derating_override: Optional[float] = None
    mobile_charging_available: bool = True


@dataclass(frozen=True)
class StressScenario:
    id: str
    name: str
    description: str
    modifiers: StressModifiers
    probability: float
    severity: RiskLevel


BASE_CASE = "BASE_CASE"

_STRESS_LIST = [
    StressScenario(BASE_CASE, "Base Case", "Default assumptions with no stress applied.",
                   StressModifiers(), 0.0, RiskLevel.LOW),
    StressScenario("EPA_FUNDING_FREEZE", "EPA Funding Freeze",
                   "Federal school bus grant funding is frozen or not awarded.",
                   StressModifiers(federal_incentive_multiplier=0.0), 0.15, RiskLevel.CRITICAL),
    StressScenario("ELECTRICITY_RATE_SPIKE", "Electricity Rate Spike",
                   "Energy and demand charges rise 50%.",
                   StressModifiers(electricity_rate_multiplier=1.5, demand_charge_multiplier=1.5),
                   0.20, RiskLevel.HIGH),
    StressScenario("OEM_BANKRUPTCY", "OEM Bankruptcy",
                   "Manufacturer failure doubles battery replacement cost.",
                   StressModifiers(battery_replacement_cost_multiplier=2.0), 0.10, RiskLevel.HIGH),
    StressScenario("COUNTERPARTY_FAILURE", "Charging Counterparty Failure",
                   "The mobile charging partner fails; the district falls back to self-managed charging.",
                   StressModifiers(mobile_charging_available=False), 0.08, RiskLevel.HIGH),
    StressScenario("COLD_WEATHER_HIGH", "Severe Cold Weather",
                   "Extended cold raises the energy penalty to 38%.",
                   StressModifiers(weather_derating_override=0.38), 0.25, RiskLevel.MEDIUM),
    StressScenario("DEMAND_CHARGE_SPIKE", "Demand Charge Spike",
                   "Utility demand charges double.",
                   StressModifiers(demand_charge_multiplier=2.0), 0.15, RiskLevel.MEDIUM),
]

STRESS_SCENARIOS: Mapping[str, StressScenario] = MappingProxyType({s.id: s for s in _STRESS_LIST})


@dataclass(frozen=True)
class StressTestResult:
    scenario: StressScenario
    base_result: TCOResult
    stressed_result: TCOResult
    impact_delta: float
    impact_percentage: float
    warnings: List[str]


@dataclass(frozen=True)
class StressTestSummary:
    results: List[StressTestResult]
    worst_case: Optional[StressTestResult]
    expected_value: float
    risk_tier: RiskLevel


def get_stress_scenario(stress_test_id: str) -> StressScenario:
    if stress_test_id not in STRESS_SCENARIOS:
        raise UnknownIdentifierError("stress test", stress_test_id, STRESS_SCENARIOS.keys())
    return STRESS_SCENARIOS[stress_test_id]


def stress_overrides(assumptions: TCOAssumptions, scenario: StressScenario) -> Dict[str, object]:
    """Translate a stress scenario's modifiers into assumption overrides.

    Stressed values are labelled UNVERIFIED.
    """
    mods = scenario.modifiers
    source = f"Stress test: {scenario.name}"

    def stressed(point: DataPoint, value: float) -> DataPoint:
        return point.with_value(value, EvidenceClassification.UNVERIFIED, source)

    patches = []
    scaled = (
        ("incentives.federal_per_bus", mods.federal_incentive_multiplier),
        ("incentives.state_per_bus", mods.state_incentive_multiplier),
        ("electricity_rate_kwh", mods.electricity_rate_multiplier),
        ("demand_charge_kw", mods.demand_charge_multiplier),
        ("lifecycle.battery_replacement_cost", mods.battery_replacement_cost_multiplier),
    )
    for path, multiplier in scaled:
        if multiplier != 1.0:
            point = assumptions.get(path)
            patches.append(override_at(path, stressed(point, point.value * multiplier)))
    if mods.weather_derating_override is not None:
        point = assumptions.weather_derating_factor
        patches.append({"weather_derating_factor": stressed(point, mods.weather_derating_override)})

    overrides: Dict[str, object] = {}
    for patch in patches:
        overrides = layer_overrides(overrides, patch)
    return overrides


def _stressed_input(tco_input: TCOInput, scenario: StressScenario, assumptions: TCOAssumptions) -> TCOInput:
    stressed = tco_input.with_overrides(
        layer_overrides(tco_input.overrides, stress_overrides(assumptions, scenario))
    )
    if not scenario.modifiers.mobile_charging_available and stressed.scenario_type is ScenarioType.MOBILE_CHARGING:
        stressed = stressed.with_scenario(ScenarioType.SELF_MANAGED_EV)
    return stressed


def _run_stress(
    tco_input: TCOInput, scenario: StressScenario, base: TCOResult, defaults: LocationDefaults
) -> StressTestResult:
    stressed_input = _stressed_input(tco_input, scenario, base.assumptions)
    stressed = calculate_tco(stressed_input, defaults)
    delta = stressed.total_net_tco - base.total_net_tco
    percentage = _safe_ratio(delta, abs(base.total_net_tco)) * 100

    warnings = []
    if stressed_input.scenario_type is not tco_input.scenario_type:
        warnings.append(
            f"{tco_input.scenario_type.label} is unavailable under this scenario; "
            f"costs reflect {stressed_input.scenario_type.label}."
        )
    if abs(percentage) > MATERIAL_IMPACT_PERCENT:
        warnings.append(
            f"{scenario.name} changes net TCO by {percentage:+.1f}%, above the "
            f"{MATERIAL_IMPACT_PERCENT:.0f}% materiality threshold."
        )
    if stressed_input.scenario_type.is_electric:
        diesel = calculate_tco(stressed_input.with_scenario(ScenarioType.DIESEL_BASELINE), defaults)
        if stressed.total_net_tco > diesel.total_net_tco:
            warnings.append(
                f"Under {scenario.name} the electric option costs more than the diesel baseline."
            )

    logger.info("Stress test %s: net TCO impact %+.0f (%+.1f%%)", scenario.id, delta, percentage)
    return StressTestResult(scenario, base, stressed, delta, percentage, warnings)


def run_stress_test(
    tco_input: TCOInput, stress_test_id: str, defaults: Optional[LocationDefaults] = None
) -> StressTestResult:
    """Run one named stress test against the input's scenario.

    Raises:
        UnknownIdentifierError: If stress_test_id is not registered.
        ValidationError: If the input is invalid.
    """
    scenario = get_stress_scenario(stress_test_id)
    defaults = defaults or LocationDefaults()
    base = calculate_tco(tco_input, defaults)
    return _run_stress(tco_input, scenario, base, defaults)


def run_all_stress_tests(
    tco_input: TCOInput, defaults: Optional[LocationDefaults] = None
) -> StressTestSummary:
    r"""Run every registered stress test and summarize downside risk.

    The expected value weights each stressed net TCO by its probability and
    assigns the residual probability mass to the base case:

        E = (1 - \sum p_i) \cdot base + \sum p_i \cdot stressed_i

    Raises:
        ValueError: If the stress probabilities sum to more than 1.
        ValidationError: If the input is invalid.
    """
    scenarios = [s for s in STRESS_SCENARIOS.values() if s.id != BASE_CASE]
    total_probability = sum(s.probability for s in scenarios)
    if total_probability > 1.0:
        raise ValueError(f"Stress scenario probabilities sum to {total_probability:.2f}, exceeding 1")

    defaults = defaults or LocationDefaults()
    base = calculate_tco(tco_input, defaults)
    results = [_run_stress(tco_input, s, base, defaults) for s in scenarios]
    worst = max(results, key=lambda r: r.impact_delta) if results else None
    expected = base.total_net_tco * (1 - total_probability) + sum(
        r.scenario.probability * r.stressed_result.total_net_tco for r in results
    )
    tier = risk_tier(worst.impact_percentage) if worst else RiskLevel.LOW
    return StressTestSummary(results, worst, expected, tier)


# =============================================================================
# Analysis variables
# =============================================================================

# Variable name -> dotted assumption path
ANALYSIS_VARIABLES: Mapping[str, str] = MappingProxyType({
    "electricity_rate_kwh": "electricity_rate_kwh",
    "diesel_price_per_gallon": "diesel_price_per_gallon",
    "federal_incentive_per_bus": "incentives.federal_per_bus",
    "demand_charge_kw": "demand_charge_kw",
    "battery_replacement_cost": "lifecycle.battery_replacement_cost",
    "weather_derating_factor": "weather_derating_factor",
    "revenue_capture_rate": "revenue_streams.revenue_capture_rate",
    "maintenance_electric_per_mile": "maintenance_cost_per_mile.electric",
})


def variable_path(name: str) -> str:
    if name not in ANALYSIS_VARIABLES:
        raise UnknownIdentifierError("analysis variable", name, ANALYSIS_VARIABLES.keys())
    return ANALYSIS_VARIABLES[name]


def with_variable(tco_input: TCOInput, name: str, value: float, assumptions: TCOAssumptions) -> TCOInput:
    """Return a copy of the input with one analysis variable set to value."""
    path = variable_path(name)
    point = assumptions.get(path).with_value(value)
    return tco_input.with_overrides(layer_overrides(tco_input.overrides, override_at(path, point)))


def sweep_values(min_value: float, max_value: float, step: float) -> List[float]:
    """Evenly spaced points from min_value up to max_value inclusive.

    Raises:
        ValueError: If step is not positive or min_value exceeds max_value.
    """
    if step <= 0:
        raise ValueError(f"step must be > 0, got {step}")
    if min_value > max_value:
        raise ValueError(f"min_value must be <= max_value, got {min_value} > {max_value}")
    count = int(math.floor((max_value - min_value) / step + 1e-9))
    return [min_value + i * step for i in range(count + 1)]


# =============================================================================
# Sensitivity
# =============================================================================

@dataclass(frozen=True)
class SensitivityVariable:
    name: str
    min_value: float
    max_value: float
    step: float
    unit: str = ""
    base_value: Optional[float] = None  # Defaults to the merged assumption


DEFAULT_SENSITIVITY_VARIABLES: Tuple[SensitivityVariable, ...] = (
    SensitivityVariable("electricity_rate_kwh", 0.08, 0.25, 0.02, "$/kWh"),
    SensitivityVariable("diesel_price_per_gallon", 2.5, 6.0, 0.5, "$/gal"),
    SensitivityVariable("federal_incentive_per_bus", 0.0, 375000.0, 50000.0, "$/bus"),
    SensitivityVariable("demand_charge_kw", 5.0, 30.0, 5.0, "$/kW"),
    SensitivityVariable("battery_replacement_cost", 25000.0, 100000.0, 12500.0, "$/bus"),
)


@dataclass(frozen=True)
class SensitivityResult:
    variable: SensitivityVariable
    base_value: float
    values: List[float]
    tco_results: List[float]   # Net TCO at each value
    npv_results: List[float]   # Net NPV at each value
    elasticity: float


@dataclass(frozen=True)
class TornadoBar:
    variable: str
    low_impact: float
    high_impact: float

    @property
    def span(self) -> float:
        return abs(self.high_impact - self.low_impact)


@dataclass(frozen=True)
class SensitivityAnalysis:
    base_case: TCOResult
    variables: List[SensitivityVariable]
    results: List[SensitivityResult]
    tornado: List[TornadoBar]


def run_sensitivity_analysis(
    tco_input: TCOInput,
    variables: Optional[Sequence[SensitivityVariable]] = None,
    defaults: Optional[LocationDefaults] = None,
) -> SensitivityAnalysis:
    r"""Sweep each variable across its range and measure net TCO response.

    Elasticity is a finite difference across the sweep endpoints:

        E = \frac{(TCO_{high} - TCO_{low}) / TCO_{base}}{(x_{high} - x_{low}) / x_{base}}

    Args:
        tco_input: Input whose scenario is analysed.
        variables: Variables to sweep. Defaults to DEFAULT_SENSITIVITY_VARIABLES.
        defaults: Location defaults.

    Returns:
        SensitivityAnalysis with per-variable sweeps and a tornado ranking
        sorted by impact span, largest first.

    Raises:
        UnknownIdentifierError: If any variable name is not registered.
        ValueError: If a sweep range is malformed.
    """
    variables = list(variables if variables is not None else DEFAULT_SENSITIVITY_VARIABLES)
    sweeps = []
    for variable in variables:
        variable_path(variable.name)
        sweeps.append(sweep_values(variable.min_value, variable.max_value, variable.step))

    defaults = defaults or LocationDefaults()
    base = calculate_tco(tco_input, defaults)
    base_tco = base.total_net_tco
    logger.debug("Sensitivity: %d variables, %d runs", len(variables), sum(len(s) for s in sweeps))

    results = []
    tornado = []
    for variable, values in zip(variables, sweeps):
        runs = [calculate_tco(with_variable(tco_input, variable.name, v, base.assumptions), defaults)
                for v in values]
        tcos = [r.total_net_tco for r in runs]
        base_value = (
            variable.base_value if variable.base_value is not None
            else base.assumptions.get(variable_path(variable.name)).value
        )
        elasticity = _safe_ratio(
            _safe_ratio(tcos[-1] - tcos[0], base_tco),
            _safe_ratio(values[-1] - values[0], base_value),
        )
        results.append(SensitivityResult(
            variable=variable,
            base_value=base_value,
            values=values,
            tco_results=tcos,
            npv_results=[r.npv_net for r in runs],
            elasticity=elasticity,
        ))
        tornado.append(TornadoBar(variable.name, tcos[0] - base_tco, tcos[-1] - base_tco))

    tornado.sort(key=lambda bar: bar.span, reverse=True)
    return SensitivityAnalysis(base, variables, results, tornado)


# =============================================================================
# Break-even
# =============================================================================

BREAK_EVEN_RANGES: Mapping[str, Tuple[float, float, float]] = MappingProxyType({
    "electricity_rate_kwh": (0.05, 0.40, 0.01),
    "diesel_price_per_gallon": (2.0, 8.0, 0.1),
    "federal_incentive_per_bus": (0.0, 400000.0, 10000.0),
})


@dataclass(frozen=True)
class BreakEvenResult:
    variable: str
    target: ScenarioType
    found: bool
    value: Optional[float]
    sensitivity_tier: ImpactLevel
    details: str


def _break_even_tier(value: float, low: float, high: float) -> ImpactLevel:
    position = _safe_ratio(value - low, high - low) if high != low else 0.5
    if position < 0.3:
        return ImpactLevel.HIGH
    if position > 0.7:
        return ImpactLevel.LOW
    return ImpactLevel.MEDIUM


def find_break_even_point(
    tco_input: TCOInput,
    variable_name: str,
    value_range: Tuple[float, float, float],
    target: ScenarioType = ScenarioType.MOBILE_CHARGING,
    defaults: Optional[LocationDefaults] = None,
) -> BreakEvenResult:
    """Find where the target scenario's net TCO crosses the diesel baseline.

    Scans the range, applying the variable to both scenarios, and detects a
    sign change of (target - diesel) between consecutive steps. The midpoint
    of the bracketing interval is reported. No extrapolation is attempted.

    Args:
        tco_input: Fleet, location, parameters and overrides.
        variable_name: Registered analysis variable.
        value_range: (min, max, step).
        target: Scenario compared against the diesel baseline.
        defaults: Location defaults.

    Returns:
        BreakEvenResult; found is False when no crossing occurs in range.

    Raises:
        UnknownIdentifierError: If variable_name is not registered.
        ValueError: If the range is malformed.
    """
    variable_path(variable_name)
    low, high, step = value_range
    values = sweep_values(low, high, step)
    ensure_valid(tco_input)
    defaults = defaults or LocationDefaults()
    assumptions = resolve_assumptions(tco_input, defaults)

    prev_value = prev_diff = None
    crossing = None
    for value in values:
        varied = with_variable(tco_input, variable_name, value, assumptions)
        target_tco = calculate_tco(varied.with_scenario(target), defaults).total_net_tco
        diesel_tco = calculate_tco(varied.with_scenario(ScenarioType.DIESEL_BASELINE), defaults).total_net_tco
        diff = target_tco - diesel_tco
        if diff == 0:
            crossing = value
            break
        if prev_diff is not None and (prev_diff < 0) != (diff < 0):
            crossing = (prev_value + value) / 2
            break
        prev_value, prev_diff = value, diff

    if crossing is None:
        logger.info("No break-even for %s in [%s, %s]", variable_name, low, high)
        return BreakEvenResult(
            variable_name, target, False, None, ImpactLevel.LOW,
            f"{target.label} and diesel net TCO do not cross for {variable_name} "
            f"between {low:g} and {high:g}.",
        )
    return BreakEvenResult(
        variable_name, target, True, crossing, _break_even_tier(crossing, low, high),
        f"{target.label} matches diesel net TCO at {variable_name} = {crossing:g}.",
    )


def find_all_break_even_points(
    tco_input: TCOInput,
    target: ScenarioType = ScenarioType.MOBILE_CHARGING,
    defaults: Optional[LocationDefaults] = None,
) -> Dict[str, BreakEvenResult]:
    """Run break-even search over the standard variable ranges."""
    return {
        name: find_break_even_point(tco_input, name, value_range, target, defaults)
        for name, value_range in BREAK_EVEN_RANGES.items()
    }


# =============================================================================
# Monte Carlo
# =============================================================================

class Distribution(Enum):
    NORMAL = "NORMAL"
    UNIFORM = "UNIFORM"
    TRIANGULAR = "TRIANGULAR"


@dataclass(frozen=True)
class MonteCarloVariable:
    """An analysis variable drawn from an independent distribution.

    NORMAL needs mean and std_dev; UNIFORM needs min_value and max_value;
    TRIANGULAR needs min_value, mode and max_value.
    """

    name: str
    distribution: Distribution
    mean: Optional[float] = None
    std_dev: Optional[float] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    mode: Optional[float] = None

    def validate(self) -> None:
        """Raise ValueError if the distribution parameters are incomplete."""
        required = {
            Distribution.NORMAL: ("mean", "std_dev"),
            Distribution.UNIFORM: ("min_value", "max_value"),
            Distribution.TRIANGULAR: ("min_value", "mode", "max_value"),
        }[self.distribution]
        missing = [p for p in required if getattr(self, p) is None]
        if missing:
            raise ValueError(f"{self.distribution.value} variable '{self.name}' requires {', '.join(missing)}")
        if self.std_dev is not None and self.std_dev < 0:
            raise ValueError(f"std_dev must be >= 0, got {self.std_dev}")
        if self.distribution is not Distribution.NORMAL and self.min_value > self.max_value:
            raise ValueError(f"min_value must be <= max_value for '{self.name}'")
        if self.distribution is Distribution.TRIANGULAR and not self.min_value <= self.mode <= self.max_value:
            raise ValueError(f"mode must lie within [min_value, max_value] for '{self.name}'")

    def sample(self, rng: np.random.Generator) -> float:
        if self.distribution is Distribution.NORMAL:
            # Box-Muller; u1 in (0, 1] keeps the log finite
            u1 = 1.0 - rng.random()
            u2 = rng.random()
            z = math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)
            return self.mean + self.std_dev * z
        low, high = self.min_value, self.max_value
        u = rng.random()
        if self.distribution is Distribution.UNIFORM:
            return low + (high - low) * u
        if high == low:
            return low
        split = (self.mode - low) / (high - low)
        if u < split:
            return low + math.sqrt(u * (high - low) * (self.mode - low))
        return high - math.sqrt((1 - u) * (high - low) * (high - self.mode))


@dataclass(frozen=True)
class MonteCarloResult:
    samples: List[float]          # Sorted net TCO per iteration
    mean: float
    std_dev: float
    percentiles: Dict[str, float]  # p5, p25, p50, p75, p95
    confidence_interval: Tuple[float, float]
    iterations: int


PERCENTILES = (("p5", 0.05), ("p25", 0.25), ("p50", 0.50), ("p75", 0.75), ("p95", 0.95))


def _empirical_percentile(sorted_samples: np.ndarray, p: float) -> float:
    n = len(sorted_samples)
    return float(sorted_samples[min(int(math.floor(n * p)), n - 1)])


def run_monte_carlo_simulation(
    tco_input: TCOInput,
    variables: Sequence[MonteCarloVariable],
    iterations: int = 1000,
    rng: Optional[np.random.Generator] = None,
    defaults: Optional[LocationDefaults] = None,
) -> MonteCarloResult:
    """Sample net TCO under independent variable distributions.

    Reports the empirical mean, population standard deviation, percentiles
    and a 95% percentile interval (2.5th to 97.5th) of the sorted sample.

    Args:
        tco_input: Input whose scenario is simulated.
        variables: Variables and their distributions.
        iterations: Number of draws (default 1000).
        rng: Random generator; a fresh unseeded one if omitted.
        defaults: Location defaults.

    Raises:
        UnknownIdentifierError: If a variable name is not registered.
        ValueError: If iterations < 1 or a distribution is incomplete.
    """
    if iterations < 1:
        raise ValueError(f"iterations must be >= 1, got {iterations}")
    for variable in variables:
        variable_path(variable.name)
        variable.validate()
    ensure_valid(tco_input)

    rng = rng if rng is not None else np.random.default_rng()
    defaults = defaults or LocationDefaults()
    assumptions = resolve_assumptions(tco_input, defaults)
    logger.debug("Monte Carlo: %d iterations over %d variables", iterations, len(variables))

    outcomes = []
    for _ in range(iterations):
        varied = tco_input
        for variable in variables:
            varied = with_variable(varied, variable.name, variable.sample(rng), assumptions)
        outcomes.append(calculate_tco(varied, defaults).total_net_tco)

    samples = np.sort(np.asarray(outcomes, dtype=float))
    return MonteCarloResult(
        samples=samples.tolist(),
        mean=float(np.mean(samples)),
        std_dev=float(np.std(samples)),
        percentiles={key: _empirical_percentile(samples, p) for key, p in PERCENTILES},
        confidence_interval=(_empirical_percentile(samples, 0.025), _empirical_percentile(samples, 0.975)),
        iterations=iterations,
    )
