"""
Fleet TCO CLI - school bus diesel-to-electric total cost of ownership

Compares the diesel baseline with self-managed electric, energy-as-a-service
and mobile-charging electric scenarios, and optionally runs stress tests,
sensitivity sweeps, break-even search and Monte Carlo simulation.

Usage:
    bus-tco --type-c 25 --state TX
    bus-tco --input fleet.json --stress --sensitivity
    bus-tco --type-c 40 --state CA --report summary.pdf --excel tco.xlsx
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np

from bus_tco.data.defaults import LocationDefaults, LocationTables
from bus_tco.data.storage import load_input, save_comparison, save_input
from bus_tco.models.assumptions import TCOAssumptions
from bus_tco.models.calculations import compare_scenarios
from bus_tco.models.errors import UnknownIdentifierError, ValidationError
from bus_tco.models.inputs import (
    SCENARIO_ORDER,
    AnalysisParameters,
    FleetProfile,
    LocationProfile,
    ScenarioType,
    TCOInput,
)
from bus_tco.models.results import ScenarioComparison
from bus_tco.models.scenarios import (
    Distribution,
    MonteCarloResult,
    MonteCarloVariable,
    SensitivityAnalysis,
    find_all_break_even_points,
    run_all_stress_tests,
    run_monte_carlo_simulation,
    run_sensitivity_analysis,
)
from bus_tco.utils.formatters import (
    format_currency,
    format_per_mile,
    format_percent,
    format_years,
)

logger = logging.getLogger(__name__)

EXIT_INPUT_ERROR = 2


# ============================================================================
# FORMATTING UTILITIES
# ============================================================================

def print_header(text: str, char: str = "=") -> None:
    """Print a formatted section header."""
    width = 70
    print(f"\n{char * width}")
    print(f" {text}")
    print(f"{char * width}")


def print_table(headers: List[str], rows: List[List[str]],
                col_widths: Optional[List[int]] = None) -> None:
    """Print a formatted ASCII table."""
    if col_widths is None:
        col_widths = [max(len(str(row[i])) for row in [headers] + rows) + 2
                      for i in range(len(headers))]

    header_line = "|".join(h.center(w) for h, w in zip(headers, col_widths))
    separator = "+".join("-" * w for w in col_widths)
    print(f"+{separator}+")
    print(f"|{header_line}|")
    print(f"+{separator}+")
    for row in rows:
        row_line = "|".join(str(cell).center(w) for cell, w in zip(row, col_widths))
        print(f"|{row_line}|")
    print(f"+{separator}+")


# ============================================================================
# SECTIONS
# ============================================================================

def print_comparison(comparison: ScenarioComparison) -> None:
    print_header("SCENARIO COMPARISON")
    rows = []
    for scenario in SCENARIO_ORDER:
        r = comparison.results[scenario]
        rows.append([
            scenario.label,
            format_currency(r.total_net_tco, 2),
            format_currency(r.total_tco, 2),
            format_currency(r.npv_net, 2),
            format_per_mile(r.cost_per_mile),
            format_currency(r.total_revenue, 1),
            r.evidence_strength.value,
        ])
    print_table(["Scenario", "Net TCO", "Gross TCO", "NPV (Net)", "Per Mile", "Revenue", "Evidence"], rows)

    m = comparison.metrics
    print(f"\n  Lowest net TCO:             {m.lowest_net_scenario.label}")
    print(f"  Mobile net savings vs diesel: {format_currency(m.mobile_net_savings_vs_diesel, 2)}")
    print(f"  Payback vs diesel:          {format_years(m.payback_years)}")
    print(f"  Incremental IRR:            "
          f"{format_percent(m.incremental_irr) if m.incremental_irr is not None else 'N/A'}")

    diesel = comparison.results[ScenarioType.DIESEL_BASELINE]
    print(f"\n  Diesel societal cost (not in budget figures): "
          f"{format_currency(diesel.total_external_cost, 2)}")


def print_warnings(comparison: ScenarioComparison) -> None:
    print_header("APPLICABILITY WARNINGS", "-")
    if not comparison.warnings:
        print("  None")
    for w in comparison.warnings:
        print(f"  [{w.severity.value}] {w.title}: {w.message}")


def print_evidence(comparison: ScenarioComparison) -> None:
    mobile = comparison.results[ScenarioType.MOBILE_CHARGING]
    print_header(f"EVIDENCE (Mobile Charging: {mobile.evidence_strength.value})", "-")
    rows = [[f.factor, f.classification.value, f.impact.value] for f in mobile.evidence_factors]
    print_table(["Factor", "Classification", "Impact"], rows)


def print_stress(tco_input: TCOInput, defaults: LocationDefaults) -> None:
    summary = run_all_stress_tests(tco_input, defaults)
    print_header(f"STRESS TESTS ({tco_input.scenario_type.label})")
    rows = [
        [r.scenario.name, f"{r.scenario.probability:.0%}", format_currency(r.impact_delta, 2),
         f"{r.impact_percentage:+.1f}%"]
        for r in summary.results
    ]
    print_table(["Scenario", "Probability", "Impact", "Change"], rows)
    if summary.worst_case:
        print(f"\n  Worst case:     {summary.worst_case.scenario.name}")
    print(f"  Expected value: {format_currency(summary.expected_value, 2)}")
    print(f"  Risk tier:      {summary.risk_tier.value}")
    for r in summary.results:
        for msg in r.warnings:
            print(f"  Warning: {msg}")


def print_sensitivity(analysis: SensitivityAnalysis) -> None:
    print_header(f"SENSITIVITY ({analysis.base_case.scenario_type.label})")
    elasticities = {r.variable.name: r.elasticity for r in analysis.results}
    rows = [
        [bar.variable, format_currency(bar.low_impact, 2), format_currency(bar.high_impact, 2),
         f"{elasticities[bar.variable]:.3f}"]
        for bar in analysis.tornado
    ]
    print_table(["Variable", "Low Impact", "High Impact", "Elasticity"], rows)


def print_break_even(tco_input: TCOInput, defaults: LocationDefaults) -> None:
    print_header("BREAK-EVEN VS DIESEL (Mobile Charging)")
    for name, result in find_all_break_even_points(tco_input, defaults=defaults).items():
        value = f"{result.value:g}" if result.found else "not in range"
        print(f"  {name:28s} {value:>14s}  sensitivity {result.sensitivity_tier.value}")


def print_monte_carlo(tco_input: TCOInput, base: TCOAssumptions, iterations: int,
                      defaults: LocationDefaults, seed: Optional[int] = None) -> MonteCarloResult:
    battery = base.lifecycle.battery_replacement_cost.value
    variables = [
        MonteCarloVariable("electricity_rate_kwh", Distribution.NORMAL,
                           mean=base.electricity_rate_kwh.value,
                           std_dev=base.electricity_rate_kwh.value * 0.15),
        MonteCarloVariable("diesel_price_per_gallon", Distribution.NORMAL,
                           mean=base.diesel_price_per_gallon.value,
                           std_dev=base.diesel_price_per_gallon.value * 0.15),
        MonteCarloVariable("battery_replacement_cost", Distribution.TRIANGULAR,
                           min_value=battery * 0.5, mode=battery, max_value=battery * 2.0),
    ]
    result = run_monte_carlo_simulation(
        tco_input, variables, iterations, rng=np.random.default_rng(seed), defaults=defaults
    )
    print_header(f"MONTE CARLO ({iterations:,} iterations, {tco_input.scenario_type.label})")
    print(f"  Mean:    {format_currency(result.mean, 2)}")
    print(f"  Std dev: {format_currency(result.std_dev, 2)}")
    for key, value in result.percentiles.items():
        print(f"  {key.upper():8s} {format_currency(value, 2)}")
    low, high = result.confidence_interval
    print(f"  95% CI:  {format_currency(low, 2)} to {format_currency(high, 2)}")
    return result


# ============================================================================
# INPUT
# ============================================================================

def build_input(args: argparse.Namespace) -> TCOInput:
    """Build a TCOInput from a JSON file or from command-line flags."""
    if args.input:
        tco_input = load_input(args.input)
    else:
        tco_input = TCOInput(
            fleet=FleetProfile(
                type_a_count=args.type_a,
                type_c_count=args.type_c,
                type_d_count=args.type_d,
                avg_daily_miles=args.daily_miles,
                operating_days_per_year=args.days,
                park_out_percentage=args.park_out,
                diesel_price_per_gallon=args.diesel_price,
            ),
            location=LocationProfile(
                state=args.state,
                zip_code=args.zip_code,
                utility_name=args.utility,
                electricity_rate_kwh=args.electricity_rate,
            ),
            parameters=AnalysisParameters(
                planning_horizon_years=args.years,
                discount_rate=args.discount_rate,
            ),
        )
    return tco_input.with_scenario(ScenarioType[args.scenario])


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bus-tco",
        description="School bus fleet electrification TCO analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bus-tco --type-c 25 --state TX                 # Compare all four scenarios
  bus-tco --input fleet.json --stress            # Stress-test mobile charging
  bus-tco --type-c 25 --monte-carlo 1000 --seed 7
  bus-tco --type-c 25 --report summary.pdf       # Generate PDF report
        """
    )

    fleet = parser.add_argument_group("fleet")
    fleet.add_argument("--input", type=str, help="Load the fleet input from a JSON file")
    fleet.add_argument("--type-a", type=int, default=0, help="Type A bus count (default: 0)")
    fleet.add_argument("--type-c", type=int, default=25, help="Type C bus count (default: 25)")
    fleet.add_argument("--type-d", type=int, default=0, help="Type D bus count (default: 0)")
    fleet.add_argument("--daily-miles", type=float, default=60.0, help="Average daily miles per bus")
    fleet.add_argument("--days", type=int, default=180, help="Operating days per year")
    fleet.add_argument("--park-out", type=float, default=0.0, help="Percent of fleet parked off-site")
    fleet.add_argument("--diesel-price", type=float, help="Diesel price override, $/gal")

    location = parser.add_argument_group("location")
    location.add_argument("--state", type=str, default="TX", help="Two-letter state code (default: TX)")
    location.add_argument("--zip-code", type=str, default="", help="ZIP code")
    location.add_argument("--utility", type=str, default="", help="Serving utility (enables V2G revenue)")
    location.add_argument("--electricity-rate", type=float, help="Electricity rate override, $/kWh")
    location.add_argument("--tables", type=str, help="Alternative location tables JSON file")

    analysis = parser.add_argument_group("analysis")
    analysis.add_argument("--years", type=int, default=12, help="Planning horizon (default: 12)")
    analysis.add_argument("--discount-rate", type=float, default=0.05,
                          help="Discount rate as decimal (default: 0.05)")
    analysis.add_argument("--scenario", choices=[s.name for s in ScenarioType], default="MOBILE_CHARGING",
                          help="Scenario for stress, sensitivity and Monte Carlo (default: MOBILE_CHARGING)")
    analysis.add_argument("--stress", action="store_true", help="Run all stress tests")
    analysis.add_argument("--sensitivity", "-s", action="store_true", help="Run sensitivity analysis")
    analysis.add_argument("--break-even", action="store_true", help="Find break-even points vs diesel")
    analysis.add_argument("--monte-carlo", type=int, metavar="N", help="Run N Monte Carlo iterations")
    analysis.add_argument("--seed", type=int, help="Random seed for Monte Carlo")

    output = parser.add_argument_group("output")
    output.add_argument("--csv", type=str, help="Export the comparison table to CSV")
    output.add_argument("--json", type=str, help="Export the comparison table to JSON")
    output.add_argument("--excel", type=str, nargs="?", const="Fleet_TCO.xlsx", help="Export to Excel workbook")
    output.add_argument("--report", type=str, nargs="?", const="Fleet_TCO_Report.pdf", help="Generate PDF report")
    output.add_argument("--charts", type=str, metavar="DIR", help="Write PNG charts to a directory")
    output.add_argument("--save", type=str, help="Save the input and full comparison as JSON")
    output.add_argument("--quiet", "-q", action="store_true", help="Suppress detailed output")
    output.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        defaults = LocationDefaults(LocationTables.from_json(args.tables) if args.tables else None)
        tco_input = build_input(args)
        logger.debug("Fleet of %d buses in %s, analysed scenario %s",
                     tco_input.fleet.total_buses, tco_input.location.state_code, tco_input.scenario_type.name)
        comparison = compare_scenarios(tco_input, defaults)

        if not args.quiet:
            print_comparison(comparison)
            print_warnings(comparison)
            print_evidence(comparison)

        if args.stress:
            print_stress(tco_input, defaults)
        sensitivity = None
        if args.sensitivity or args.charts:
            sensitivity = run_sensitivity_analysis(tco_input, defaults=defaults)
            if args.sensitivity:
                print_sensitivity(sensitivity)
        if args.break_even:
            print_break_even(tco_input, defaults)
        monte_carlo = None
        if args.monte_carlo:
            base = comparison.results[tco_input.scenario_type].assumptions
            monte_carlo = print_monte_carlo(tco_input, base, args.monte_carlo, defaults, args.seed)
    except (ValidationError, UnknownIdentifierError, ValueError, OSError) as e:
        # ValueError covers malformed analysis arguments and unreadable JSON; OSError missing files
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INPUT_ERROR

    if args.save:
        save_input(tco_input, args.save)
        save_comparison(comparison, str(Path(args.save).with_suffix(".results.json")))
        print(f"\nInput saved to {args.save}")
    if args.csv:
        from bus_tco.reports.export import export_csv
        export_csv(comparison, args.csv)
        print(f"\nCSV written: {args.csv}")
    if args.json:
        from bus_tco.reports.export import export_json
        export_json(comparison, args.json)
        print(f"\nJSON written: {args.json}")
    if args.excel:
        from bus_tco.reports.export import export_workbook
        path = export_workbook(comparison, args.excel)
        print(f"\nExcel workbook generated: {path}")
    if args.report:
        from bus_tco.reports.executive import generate_executive_summary
        generate_executive_summary(tco_input, comparison, args.report)
        print(f"\nPDF report generated: {args.report}")
    if args.charts:
        from bus_tco.reports import charts
        out = Path(args.charts)
        out.mkdir(parents=True, exist_ok=True)
        charts.create_cumulative_cost_chart(comparison, str(out / "cumulative_net_cost.png"))
        charts.create_tornado_chart(sensitivity.tornado, str(out / "tornado.png"))
        if monte_carlo is not None:
            charts.create_monte_carlo_histogram(monte_carlo, str(out / "monte_carlo.png"))
        print(f"\nCharts written to {out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
