"""Executive summary PDF report generation using ReportLab.

Generates a short PDF containing the fleet overview, the four-scenario
comparison, key metrics, applicability warnings, evidence factors and the
engine's rule constants.
"""

import tempfile
from pathlib import Path

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    Image,
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from bus_tco.models.inputs import SCENARIO_ORDER, ScenarioType, TCOInput
from bus_tco.models.results import ScenarioComparison
from bus_tco.reports.charts import create_cumulative_cost_chart
from bus_tco.utils.formatters import (
    format_currency,
    format_currency_exact,
    format_per_mile,
    format_percent,
    format_years,
)

_HEADER_STYLE = TableStyle([
    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1565c0")),
    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
    ("FONTSIZE", (0, 0), (-1, -1), 9),
    ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
    ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
    ("TOPPADDING", (0, 0), (-1, -1), 5),
    ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f5f5f5")]),
])


def _get_recommendation(comparison: ScenarioComparison) -> tuple:
    """Return headline text and color from the lowest net-cost scenario."""
    best = comparison.metrics.lowest_net_scenario
    if best is ScenarioType.DIESEL_BASELINE:
        return "Diesel remains lowest cost under current assumptions", colors.red
    if comparison.results[best].evidence_strength.value in ("LOW", "UNCERTAIN"):
        return f"{best.label} is lowest cost, but the evidence is weak", colors.orange
    return f"{best.label} is the lowest net-cost option", colors.green


def generate_executive_summary(
    tco_input: TCOInput, comparison: ScenarioComparison, output_path: str
) -> None:
    """Generate an executive summary PDF report.

    Args:
        tco_input: The input that produced the comparison.
        comparison: Result of compare_scenarios().
        output_path: File path for the output PDF.
    """
    doc = SimpleDocTemplate(
        output_path,
        pagesize=letter,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
        leftMargin=0.75 * inch,
        rightMargin=0.75 * inch,
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "CustomTitle", parent=styles["Title"], fontSize=18, spaceAfter=6
    )
    heading_style = ParagraphStyle(
        "CustomHeading", parent=styles["Heading2"], fontSize=14,
        spaceAfter=8, spaceBefore=12, textColor=colors.HexColor("#1565c0"),
    )
    body_style = styles["Normal"]
    small_style = ParagraphStyle(
        "Small", parent=body_style, fontSize=8, textColor=colors.grey,
    )

    fleet = tco_input.fleet
    params = tco_input.parameters
    location = tco_input.location
    metrics = comparison.metrics
    elements = []

    # --- PAGE 1: Overview & Key Findings ---
    elements.append(Paragraph("School Bus Fleet Electrification", title_style))
    elements.append(Paragraph("Total Cost of Ownership Summary", styles["Heading3"]))
    elements.append(Spacer(1, 12))

    info_data = [
        ["Fleet", f"{fleet.total_buses} buses (A: {fleet.type_a_count}, C: {fleet.type_c_count}, "
                  f"D: {fleet.type_d_count})"],
        ["Duty Cycle", f"{fleet.avg_daily_miles:,.0f} mi/day x {fleet.operating_days_per_year} days"],
        ["Location", f"{location.state_code}" + (f" ({location.utility_name})" if location.utility_name else "")],
        ["Planning Horizon", f"{params.planning_horizon_years} years"],
        ["Discount Rate", format_percent(params.discount_rate)],
    ]
    info_table = Table(info_data, colWidths=[2.5 * inch, 4.5 * inch])
    info_table.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 10),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("LINEBELOW", (0, -1), (-1, -1), 1, colors.grey),
    ]))
    elements.append(info_table)
    elements.append(Spacer(1, 16))

    elements.append(Paragraph("Scenario Comparison", heading_style))
    scenario_data = [["Scenario", "Net TCO", "Gross TCO", "NPV (Net)", "Per Mile", "Evidence"]]
    for scenario in SCENARIO_ORDER:
        r = comparison.results[scenario]
        scenario_data.append([
            scenario.label,
            format_currency(r.total_net_tco, decimals=2),
            format_currency(r.total_tco, decimals=2),
            format_currency(r.npv_net, decimals=2),
            format_per_mile(r.net_cost_per_mile),
            r.evidence_strength.value,
        ])
    scenario_table = Table(scenario_data, colWidths=[1.7 * inch, 1.1 * inch, 1.1 * inch, 1.1 * inch, 1 * inch, 1 * inch])
    scenario_table.setStyle(_HEADER_STYLE)
    scenario_table.setStyle(TableStyle([("ALIGN", (1, 1), (4, -1), "RIGHT")]))
    elements.append(scenario_table)
    elements.append(Spacer(1, 12))

    elements.append(Paragraph("Key Metrics", heading_style))
    metrics_data = [
        ["Metric", "Value"],
        ["Lowest Net TCO", metrics.lowest_net_scenario.label],
        ["Mobile Net Savings vs Diesel", format_currency_exact(metrics.mobile_net_savings_vs_diesel)],
        ["Mobile Net Savings vs Self-Managed", format_currency_exact(metrics.mobile_net_savings_vs_self_managed)],
        ["Payback vs Diesel", format_years(metrics.payback_years)],
        ["Incremental IRR",
         format_percent(metrics.incremental_irr) if metrics.incremental_irr is not None else "N/A"],
    ]
    metrics_table = Table(metrics_data, colWidths=[3.5 * inch, 3.5 * inch])
    metrics_table.setStyle(_HEADER_STYLE)
    elements.append(metrics_table)
    elements.append(Spacer(1, 12))

    rec_text, rec_color = _get_recommendation(comparison)
    elements.append(Paragraph(
        f'<b>Finding:</b> <font color="{rec_color.hexval()}">{rec_text}</font>', body_style
    ))

    with tempfile.TemporaryDirectory() as tmpdir:
        chart_path = str(Path(tmpdir) / "cumulative.png")
        create_cumulative_cost_chart(comparison, chart_path)
        elements.append(Spacer(1, 12))
        elements.append(Image(chart_path, width=6.5 * inch, height=3.6 * inch))

        # --- PAGE 2: Warnings & Evidence ---
        elements.append(PageBreak())
        elements.append(Paragraph("Applicability Warnings", heading_style))
        if comparison.warnings:
            for w in comparison.warnings:
                elements.append(Paragraph(f"<b>[{w.severity.value}] {w.title}.</b> {w.message}", body_style))
                elements.append(Spacer(1, 4))
        else:
            elements.append(Paragraph("No applicability warnings.", body_style))

        mobile = comparison.results[ScenarioType.MOBILE_CHARGING]
        elements.append(Paragraph("Evidence Factors (Mobile Charging)", heading_style))
        evidence_data = [["Factor", "Classification", "Impact", "Note"]]
        for factor in mobile.evidence_factors:
            evidence_data.append([
                factor.factor, factor.classification.value, factor.impact.value,
                Paragraph(factor.note, small_style),
            ])
        evidence_table = Table(evidence_data, colWidths=[1.6 * inch, 1.4 * inch, 0.8 * inch, 3.2 * inch])
        evidence_table.setStyle(_HEADER_STYLE)
        elements.append(evidence_table)

        elements.append(Paragraph("Methodology", heading_style))
        constants = ", ".join(f"{k} = {v:g}" for k, v in mobile.rule_constants.items())
        method_text = (
            f"Costs are projected year by year over {params.planning_horizon_years} years and "
            f"discounted at {format_percent(params.discount_rate)}. Year 0 carries vehicle capital, "
            f"charging infrastructure and incentives; later years carry energy, maintenance, "
            f"insurance and revenue. Net TCO subtracts revenue and the discounted residual value "
            f"of the fleet. Diesel externalities are reported separately as a societal cost and "
            f"are excluded from budget figures.<br/><br/>"
            f"<b>Rule constants:</b> {constants}"
        )
        elements.append(Paragraph(method_text, body_style))
        elements.append(Spacer(1, 20))
        elements.append(Paragraph(
            f"<i>Calculated {mobile.calculated_at}. Figures depend on the documented assumptions "
            f"and their evidence classifications.</i>",
            small_style,
        ))

        # Build PDF (must happen while tmpdir exists for chart images)
        doc.build(elements)
