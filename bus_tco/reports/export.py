"""Flat CSV/JSON export and Excel workbook generation for scenario comparisons.

The workbook contains:
- Summary: one row per scenario plus the comparison metrics
- One annual sheet per scenario: the full year-by-year record
- Warnings: deduplicated applicability warnings
- Assumptions: every merged assumption with its evidence classification
"""

import csv
import json
import logging
import math
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, List

import xlsxwriter

from bus_tco.models.assumptions import DataPoint, TCOAssumptions
from bus_tco.models.inputs import SCENARIO_ORDER
from bus_tco.models.results import AnnualCosts, ScenarioComparison

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = (
    "Scenario",
    "Net TCO",
    "Gross TCO",
    "NPV (Net)",
    "Cost Per Mile",
    "Total Revenue",
    "Evidence Strength",
)

ANNUAL_COLUMNS = (
    ("Year", "year"),
    ("Capital", "capital_cost"),
    ("Energy", "energy_cost"),
    ("Maintenance", "maintenance_cost"),
    ("Infrastructure", "infrastructure_cost"),
    ("Insurance", "insurance_cost"),
    ("Incentives", "incentives_applied"),
    ("Carbon Revenue", "carbon_credit_revenue"),
    ("V2G Revenue", "v2g_revenue"),
    ("Total Cost", "total_cost"),
    ("Net Cost", "net_cost"),
    ("Cumulative Net", "cumulative_net_cost"),
    ("PV Net", "npv_net_cost"),
)

# Excel sheet names are limited to 31 characters and exclude some symbols
_SHEET_NAMES = {
    "DIESEL_BASELINE": "Diesel",
    "SELF_MANAGED_EV": "Self-Managed EV",
    "EAAS": "EaaS",
    "MOBILE_CHARGING": "Mobile Charging",
}


def comparison_rows(comparison: ScenarioComparison) -> List[Dict[str, Any]]:
    """Project a comparison into one flat row per scenario, in scenario order."""
    rows = []
    for scenario in SCENARIO_ORDER:
        result = comparison.results.get(scenario)
        if result is None:
            continue
        rows.append({
            "Scenario": scenario.label,
            "Net TCO": result.total_net_tco,
            "Gross TCO": result.total_tco,
            "NPV (Net)": result.npv_net,
            "Cost Per Mile": result.cost_per_mile,
            "Total Revenue": result.total_revenue,
            "Evidence Strength": result.evidence_strength.value,
        })
    return rows


def export_csv(comparison: ScenarioComparison, filepath: str) -> None:
    """Write the flat comparison rows to a CSV file."""
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=SUMMARY_COLUMNS)
        writer.writeheader()
        writer.writerows(comparison_rows(comparison))
    logger.info("Wrote %s", path)


def export_json(comparison: ScenarioComparison, filepath: str) -> None:
    """Write the flat comparison rows plus metrics and warnings to JSON."""
    data = {
        "scenarios": comparison_rows(comparison),
        "metrics": comparison.metrics.to_dict(),
        "warnings": [w.to_dict() for w in comparison.warnings],
    }
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=str)
    logger.info("Wrote %s", path)


def flatten_assumptions(assumptions: TCOAssumptions) -> List[tuple]:
    """(dotted path, DataPoint) pairs for every leaf assumption, schema order."""
    leaves = []

    def walk(group, prefix):
        for f in fields(group):
            value = getattr(group, f.name)
            path = f"{prefix}{f.name}"
            if isinstance(value, DataPoint):
                leaves.append((path, value))
            else:
                walk(value, path + ".")

    walk(assumptions, "")
    return leaves


# =============================================================================
# WORKBOOK
# =============================================================================

def _create_formats(wb) -> dict:
    f = {}
    blue = '#1565C0'
    lblue = '#E3F2FD'

    f['title'] = wb.add_format({'bold': True, 'font_size': 16, 'font_color': blue})
    f['subtitle'] = wb.add_format({'italic': True, 'font_color': '#555555', 'font_size': 10})
    f['header'] = wb.add_format({'bold': True, 'font_color': 'white', 'bg_color': blue,
                                 'align': 'center', 'border': 1, 'valign': 'vcenter'})
    f['section'] = wb.add_format({'bold': True, 'font_size': 11, 'font_color': blue,
                                  'bg_color': lblue, 'border': 1})
    f['text'] = wb.add_format({'border': 1})
    f['wrap'] = wb.add_format({'border': 1, 'text_wrap': True, 'valign': 'top'})
    f['currency'] = wb.add_format({'num_format': '$#,##0', 'border': 1})
    f['cur_cents'] = wb.add_format({'num_format': '$#,##0.00', 'border': 1})
    f['number'] = wb.add_format({'num_format': '#,##0.000', 'border': 1})
    f['percent'] = wb.add_format({'num_format': '0.00%', 'border': 1})
    f['int'] = wb.add_format({'num_format': '0', 'border': 1})
    f['warn_fmt'] = wb.add_format({'bold': True, 'font_color': '#E65100', 'bg_color': '#FFE0B2', 'border': 1})
    return f


def _write_value(ws, row: int, col: int, value, fmt) -> None:
    # Excel has no representation for nan/inf
    if isinstance(value, float) and not math.isfinite(value):
        ws.write_string(row, col, "N/A", fmt)
    elif value is None:
        ws.write_string(row, col, "N/A", fmt)
    else:
        ws.write(row, col, value, fmt)


def _summary_sheet(ws, f, comparison: ScenarioComparison) -> None:
    ws.set_column('A:A', 24)
    ws.set_column('B:G', 18)
    ws.write('A1', 'Fleet TCO Scenario Comparison', f['title'])
    ws.write('A2', 'Budget figures exclude diesel externalities.', f['subtitle'])

    ws.write_row(3, 0, SUMMARY_COLUMNS, f['header'])
    formats = (f['text'], f['currency'], f['currency'], f['currency'], f['cur_cents'], f['currency'], f['text'])
    rows = comparison_rows(comparison)
    for i, row in enumerate(rows, start=4):
        for col, (name, fmt) in enumerate(zip(SUMMARY_COLUMNS, formats)):
            _write_value(ws, i, col, row[name], fmt)

    m = comparison.metrics
    start = 5 + len(rows)
    ws.merge_range(start, 0, start, 1, 'Comparison Metrics', f['section'])
    metrics = [
        ("Lowest Gross TCO", m.lowest_gross_scenario.label, f['text']),
        ("Lowest Net TCO", m.lowest_net_scenario.label, f['text']),
        ("Mobile Savings vs Diesel", m.mobile_savings_vs_diesel, f['currency']),
        ("Mobile Savings vs Self-Managed", m.mobile_savings_vs_self_managed, f['currency']),
        ("Mobile Net Savings vs Diesel", m.mobile_net_savings_vs_diesel, f['currency']),
        ("Mobile Net Savings vs Self-Managed", m.mobile_net_savings_vs_self_managed, f['currency']),
        ("Payback (years)", m.payback_years, f['number']),
        ("Incremental IRR", m.incremental_irr, f['percent']),
    ]
    for offset, (label, value, fmt) in enumerate(metrics, start=1):
        ws.write(start + offset, 0, label, f['text'])
        _write_value(ws, start + offset, 1, value, fmt)


def _annual_sheet(ws, f, annual: List[AnnualCosts]) -> None:
    ws.set_column(0, 0, 6)
    ws.set_column(1, len(ANNUAL_COLUMNS) - 1, 15)
    ws.write_row(0, 0, [label for label, _ in ANNUAL_COLUMNS], f['header'])
    ws.freeze_panes(1, 1)
    for row, record in enumerate(annual, start=1):
        for col, (_, attr) in enumerate(ANNUAL_COLUMNS):
            fmt = f['int'] if attr == "year" else f['currency']
            _write_value(ws, row, col, getattr(record, attr), fmt)


def _warnings_sheet(ws, f, comparison: ScenarioComparison) -> None:
    ws.set_column('A:A', 30)
    ws.set_column('B:C', 12)
    ws.set_column('D:D', 70)
    ws.set_column('E:E', 36)
    ws.write_row(0, 0, ("Id", "Severity", "Category", "Message", "Parameter"), f['header'])
    for row, w in enumerate(comparison.warnings, start=1):
        ws.write(row, 0, w.id, f['text'])
        ws.write(row, 1, w.severity.value, f['warn_fmt'] if w.severity.value != "INFO" else f['text'])
        ws.write(row, 2, w.category.value, f['text'])
        ws.write(row, 3, w.message, f['wrap'])
        ws.write(row, 4, w.affected_parameter, f['text'])


def _assumptions_sheet(ws, f, assumptions: TCOAssumptions) -> None:
    ws.set_column('A:A', 44)
    ws.set_column('B:B', 14)
    ws.set_column('C:C', 18)
    ws.set_column('D:D', 50)
    ws.write_row(0, 0, ("Assumption", "Value", "Classification", "Source"), f['header'])
    for row, (path, point) in enumerate(flatten_assumptions(assumptions), start=1):
        ws.write(row, 0, path, f['text'])
        _write_value(ws, row, 1, point.value, f['number'])
        ws.write(row, 2, point.classification.value, f['text'])
        ws.write(row, 3, point.source, f['text'])


def export_workbook(comparison: ScenarioComparison, output_path: str) -> str:
    """Write the comparison to an .xlsx workbook.

    Args:
        comparison: Result of compare_scenarios().
        output_path: Destination; the suffix is forced to .xlsx.

    Returns:
        The path actually written.
    """
    if not output_path.endswith('.xlsx'):
        output_path = str(Path(output_path).with_suffix('.xlsx'))
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)

    workbook = xlsxwriter.Workbook(output_path)
    fmt = _create_formats(workbook)

    _summary_sheet(workbook.add_worksheet('Summary'), fmt, comparison)
    for scenario in SCENARIO_ORDER:
        result = comparison.results.get(scenario)
        if result is not None:
            _annual_sheet(workbook.add_worksheet(_SHEET_NAMES[scenario.value]), fmt, result.annual_costs)
    _warnings_sheet(workbook.add_worksheet('Warnings'), fmt, comparison)
    assumptions = next(iter(comparison.results.values())).assumptions
    _assumptions_sheet(workbook.add_worksheet('Assumptions'), fmt, assumptions)

    workbook.close()
    logger.info("Workbook created: %s", output_path)
    return output_path
