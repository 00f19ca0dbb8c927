"""Chart generation for fleet TCO reports.

Creates matplotlib charts for cumulative scenario cost, sensitivity tornado
and Monte Carlo distribution. Charts are saved as PNG files for embedding in
PDF reports.
"""

from typing import List

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import matplotlib.ticker as mticker

from bus_tco.models.inputs import SCENARIO_ORDER, ScenarioType
from bus_tco.models.results import ScenarioComparison
from bus_tco.models.scenarios import MonteCarloResult, TornadoBar

SCENARIO_COLORS = {
    ScenarioType.DIESEL_BASELINE: "#4e342e",
    ScenarioType.SELF_MANAGED_EV: "#1565c0",
    ScenarioType.EAAS: "#6a1b9a",
    ScenarioType.MOBILE_CHARGING: "#2e7d32",
}

_MILLIONS = mticker.FuncFormatter(lambda x, _: f"${x:,.1f}M")


def _save(fig, output_path: str) -> None:
    fig.tight_layout()
    fig.savefig(output_path, bbox_inches="tight", facecolor="white")
    plt.close(fig)


def create_cumulative_cost_chart(comparison: ScenarioComparison, output_path: str) -> None:
    """Create a line chart of cumulative net cost per scenario.

    Args:
        comparison: Result of compare_scenarios().
        output_path: File path to save the PNG chart.
    """
    fig, ax = plt.subplots(figsize=(8, 4.5), dpi=150)
    for scenario in SCENARIO_ORDER:
        result = comparison.results.get(scenario)
        if result is None:
            continue
        years = [a.year for a in result.annual_costs]
        ax.plot(
            years,
            [a.cumulative_net_cost / 1e6 for a in result.annual_costs],
            label=scenario.label,
            color=SCENARIO_COLORS[scenario],
            linewidth=2,
            marker="o",
            markersize=3,
        )

    ax.set_xlabel("Year", fontsize=11)
    ax.set_ylabel("$ Millions", fontsize=11)
    ax.set_title("Cumulative Net Cost by Scenario", fontsize=13, fontweight="bold")
    ax.legend(fontsize=9)
    ax.yaxis.set_major_formatter(_MILLIONS)
    ax.grid(alpha=0.3)
    _save(fig, output_path)


def create_tornado_chart(tornado: List[TornadoBar], output_path: str) -> None:
    """Create a tornado chart of net TCO swing per sensitivity variable.

    Args:
        tornado: Bars sorted largest span first.
        output_path: File path to save the PNG chart.
    """
    if not tornado:
        return

    bars = list(reversed(tornado))  # Largest at the top
    labels = [b.variable.replace("_", " ") for b in bars]
    positions = list(range(len(bars)))

    fig, ax = plt.subplots(figsize=(8, 0.6 * len(bars) + 1.5), dpi=150)
    ax.barh(positions, [b.low_impact / 1e6 for b in bars], color="#2e7d32", alpha=0.8, label="Low value")
    ax.barh(positions, [b.high_impact / 1e6 for b in bars], color="#c62828", alpha=0.8, label="High value")
    ax.set_yticks(positions)
    ax.set_yticklabels(labels, fontsize=9)
    ax.axvline(x=0, color="black", linewidth=0.8)
    ax.xaxis.set_major_formatter(_MILLIONS)
    ax.set_xlabel("Change in Net TCO", fontsize=11)
    ax.set_title("Sensitivity of Net TCO", fontsize=13, fontweight="bold")
    ax.legend(fontsize=9)
    ax.grid(axis="x", alpha=0.3)
    _save(fig, output_path)


def create_monte_carlo_histogram(result: MonteCarloResult, output_path: str, bins: int = 40) -> None:
    """Create a histogram of simulated net TCO with the 95% interval marked."""
    fig, ax = plt.subplots(figsize=(8, 4.5), dpi=150)
    ax.hist([s / 1e6 for s in result.samples], bins=bins, color="#1565c0", alpha=0.8)
    low, high = result.confidence_interval
    for x in (low, high):
        ax.axvline(x=x / 1e6, color="#c62828", linestyle="--", linewidth=1)
    ax.axvline(x=result.mean / 1e6, color="black", linewidth=1.2, label="Mean")
    ax.xaxis.set_major_formatter(_MILLIONS)
    ax.set_xlabel("Net TCO", fontsize=11)
    ax.set_ylabel("Iterations", fontsize=11)
    ax.set_title(f"Monte Carlo Net TCO ({result.iterations:,} runs)", fontsize=13, fontweight="bold")
    ax.legend(fontsize=9)
    ax.grid(axis="y", alpha=0.3)
    _save(fig, output_path)
