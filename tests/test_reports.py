"""Tests for formatting, persistence and report exports."""

import csv
import json

import pytest

from bus_tco.data.storage import load_input, save_comparison, save_input, save_result
from bus_tco.models.calculations import compare_scenarios
from bus_tco.models.inputs import FleetProfile, LocationProfile, ScenarioType, TCOInput
from bus_tco.models.scenarios import SensitivityVariable, run_sensitivity_analysis
from bus_tco.reports.export import (
    SUMMARY_COLUMNS,
    comparison_rows,
    export_csv,
    export_json,
    export_workbook,
    flatten_assumptions,
)
from bus_tco.utils.formatters import (
    format_currency,
    format_currency_exact,
    format_per_mile,
    format_percent,
    format_years,
)


@pytest.fixture(scope="module")
def tco_input():
    return TCOInput(
        fleet=FleetProfile(type_c_count=25),
        location=LocationProfile(state="TX"),
        scenario_type=ScenarioType.MOBILE_CHARGING,
    )


@pytest.fixture(scope="module")
def comparison(tco_input):
    return compare_scenarios(tco_input)


class TestFormatters:
    def test_currency(self):
        assert format_currency(4_500_000, 1) == "$4.5M"
        assert format_currency(-120_000) == "-$120K"
        assert format_currency(950) == "$950"

    def test_currency_exact(self):
        assert format_currency_exact(1234567) == "$1,234,567"
        assert format_currency_exact(-12.5, 2) == "-$12.50"

    def test_per_mile(self):
        assert format_per_mile(1.234) == "$1.23/mi"

    def test_percent_and_years(self):
        assert format_percent(0.07) == "7.0%"
        assert format_years(7.24) == "7.2 years"

    @pytest.mark.parametrize("func", [format_currency, format_currency_exact, format_per_mile,
                                      format_percent, format_years])
    def test_undefined_values(self, func):
        assert func(float("nan")) == "N/A"
        assert func(None) == "N/A"


class TestStorage:
    def test_input_round_trip(self, tmp_path):
        original = TCOInput(
            fleet=FleetProfile(type_a_count=3, type_c_count=10, avg_mpg=7.5),
            location=LocationProfile(state="CA", utility_name="PG&E"),
            scenario_type=ScenarioType.EAAS,
            overrides={"incentives": {"state_per_bus": 20000}},
        )
        path = tmp_path / "nested" / "fleet.json"
        save_input(original, str(path))
        assert load_input(str(path)) == original

    def test_load_partial_file(self, tmp_path):
        path = tmp_path / "partial.json"
        path.write_text(json.dumps({"fleet": {"type_d_count": 4}}))
        loaded = load_input(str(path))
        assert loaded.fleet.type_d_count == 4
        assert loaded.scenario_type is ScenarioType.DIESEL_BASELINE

    def test_save_result(self, comparison, tmp_path):
        path = tmp_path / "mobile.json"
        save_result(comparison.results[ScenarioType.MOBILE_CHARGING], str(path))
        data = json.loads(path.read_text())
        assert data["scenario_type"] == "MOBILE_CHARGING"

    def test_save_comparison(self, comparison, tmp_path):
        path = tmp_path / "results.json"
        save_comparison(comparison, str(path))
        data = json.loads(path.read_text())
        assert set(data["results"]) == {s.value for s in ScenarioType}
        assert "metrics" in data


class TestExports:
    def test_rows_in_scenario_order(self, comparison):
        rows = comparison_rows(comparison)
        assert [r["Scenario"] for r in rows] == [s.label for s in ScenarioType]
        assert all(set(r) == set(SUMMARY_COLUMNS) for r in rows)

    def test_csv(self, comparison, tmp_path):
        path = tmp_path / "summary.csv"
        export_csv(comparison, str(path))
        with open(path, newline="") as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 4
        assert list(rows[0]) == list(SUMMARY_COLUMNS)
        diesel = comparison.results[ScenarioType.DIESEL_BASELINE]
        assert float(rows[0]["Net TCO"]) == pytest.approx(diesel.total_net_tco)

    def test_json(self, comparison, tmp_path):
        path = tmp_path / "summary.json"
        export_json(comparison, str(path))
        data = json.loads(path.read_text())
        assert len(data["scenarios"]) == 4
        assert len(data["warnings"]) == len(comparison.warnings)

    def test_flatten_assumptions(self, comparison):
        leaves = dict(flatten_assumptions(comparison.results[ScenarioType.DIESEL_BASELINE].assumptions))
        assert leaves["incentives.federal_per_bus"].value == 250000
        assert leaves["electricity_rate_kwh"].value == 0.11

    def test_workbook_forces_suffix(self, comparison, tmp_path):
        written = export_workbook(comparison, str(tmp_path / "fleet.xls"))
        assert written.endswith("fleet.xlsx")
        assert (tmp_path / "fleet.xlsx").stat().st_size > 0


class TestGraphics:
    def test_charts(self, tco_input, comparison, tmp_path):
        from bus_tco.reports.charts import create_cumulative_cost_chart, create_tornado_chart

        create_cumulative_cost_chart(comparison, str(tmp_path / "cumulative.png"))
        analysis = run_sensitivity_analysis(
            tco_input, [SensitivityVariable("battery_replacement_cost", 25000, 75000, 25000)]
        )
        create_tornado_chart(analysis.tornado, str(tmp_path / "tornado.png"))
        assert (tmp_path / "cumulative.png").exists()
        assert (tmp_path / "tornado.png").exists()

    def test_empty_tornado_writes_nothing(self, tmp_path):
        from bus_tco.reports.charts import create_tornado_chart

        create_tornado_chart([], str(tmp_path / "empty.png"))
        assert not (tmp_path / "empty.png").exists()

    def test_pdf_report(self, tco_input, comparison, tmp_path):
        from bus_tco.reports.executive import generate_executive_summary

        path = tmp_path / "report.pdf"
        generate_executive_summary(tco_input, comparison, str(path))
        assert path.read_bytes().startswith(b"%PDF")
