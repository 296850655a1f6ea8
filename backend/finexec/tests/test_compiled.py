"""Tests for the compiled multi-facility report and its tabular export."""

from __future__ import annotations

import pytest

from finexec.services.aggregation import AggregationService
from finexec.services.compiled import build_compiled_report, rows_to_frame


@pytest.fixture()
def result(multi_facility_records, hospital_catalog, health_center_catalog):
    catalogs = {"hospital": hospital_catalog, "health_center": health_center_catalog}
    return AggregationService().aggregate(multi_facility_records, catalogs)


class TestCompiledReport:
    def test_facility_columns(self, result):
        report = build_compiled_report(result)

        assert [f.id for f in report.facilities] == [1, 2, 3]
        assert report.facilities[1].name == "Kinoni HC"
        assert report.facilities[1].facility_type == "health_center"
        assert all(f.has_data for f in report.facilities)

    def test_section_summaries(self, result):
        sections = build_compiled_report(result).sections

        assert [s.code for s in sections] == ["A", "B", "C", "D", "E", "F", "G"]
        c = sections[2]
        assert c.total == 220
        assert c.is_computed is True
        assert c.computation_formula == "A - B"

    def test_totals_by_facility(self, result):
        totals = build_compiled_report(result).totals

        # A + B + C + D + E + F + G
        assert totals.by_facility == {"1": 3060, "2": 850, "3": 0}
        assert totals.grand_total == 3910

    def test_warnings_carried(self, result):
        report = build_compiled_report(result)
        assert len(report.warnings) == 1
        assert "Rusumo Dispensary" in report.warnings[0]

    def test_serialises_camel_case(self, result):
        dumped = build_compiled_report(result).model_dump(by_alias=True)
        assert "grandTotal" in dumped["totals"]
        assert dumped["activities"][0]["isSection"] is True
        assert dumped["facilities"][0]["facilityType"] == "hospital"


class TestRowsToFrame:
    def test_one_row_per_node(self, result):
        frame = rows_to_frame(result.rows)

        # 7 sections + 2 A + 2 B subsections + 2 B leaves + D + E + 2 G
        assert len(frame) == 17
        assert list(frame.columns[-4:]) == ["1", "2", "3", "total"]

    def test_depth_first_order(self, result):
        frame = rows_to_frame(result.rows)
        assert list(frame["code"][:5]) == [
            "A", "HIV_EXEC_HOSPITAL_A_1", "HIV_EXEC_HOSPITAL_A_2", "B", "B-01",
        ]

    def test_facility_values(self, result):
        frame = rows_to_frame(result.rows).set_index("code")
        assert frame.loc["F", "1"] == 600
        assert frame.loc["B-01", "2"] == 50

    def test_explicit_facility_subset(self, result):
        frame = rows_to_frame(result.rows, ["2"])
        assert "1" not in frame.columns
        assert frame["2"].iloc[0] == 100
