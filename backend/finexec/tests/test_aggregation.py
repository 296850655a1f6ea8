"""Tests for cross-facility aggregation and the report tree."""

from __future__ import annotations

import logging

import pytest

from finexec.core.quarters import ZERO_TOTALS, QuarterTotals
from finexec.io import form_data as form_data_module
from finexec.services.aggregation import (
    NET_FINANCIAL_ASSETS_KEY,
    SURPLUS_KEY,
    ActivityCatalogEntry,
    AggregationService,
)
from finexec.tests.conftest import catalog_row, make_activity, make_record


@pytest.fixture()
def service() -> AggregationService:
    return AggregationService()


@pytest.fixture()
def catalogs(hospital_catalog, health_center_catalog):
    return {"hospital": hospital_catalog, "health_center": health_center_catalog}


def _section(rows, code):
    return next(row for row in rows if row.code == code)


# ── Catalog unification ──────────────────────────────────────────────────────

class TestUnifiedCatalog:
    def test_merges_on_structure(self, service, catalogs):
        unified = service.build_unified_catalog(catalogs)

        assert len(unified) == 8
        assert all(a.facility_types == ("hospital", "health_center") for a in unified)
        assert unified[0].code == "HIV_EXEC_HOSPITAL_A_1"

    def test_sorted_by_category_then_order(self, service):
        unified = service.build_unified_catalog({
            "hospital": [
                catalog_row("X_Y_Z_D_1", "Cash", "D", 1),
                catalog_row("X_Y_Z_A_2", "Grants", "A", 2),
                catalog_row("X_Y_Z_A_1", "Other incomes", "A", 1),
            ],
        })
        assert [a.code for a in unified] == ["X_Y_Z_A_1", "X_Y_Z_A_2", "X_Y_Z_D_1"]

    def test_type_specific_activity_kept(self, service, hospital_catalog):
        extra = catalog_row("HIV_EXEC_HC_A_9", "Community contributions", "A", 9)
        unified = service.build_unified_catalog({"hospital": hospital_catalog, "health_center": [extra]})

        only_hc = [a for a in unified if a.facility_types == ("health_center",)]
        assert [a.code for a in only_hc] == ["HIV_EXEC_HC_A_9"]

    def test_entry_from_camel_case(self):
        entry = ActivityCatalogEntry.from_mapping({
            "code": "X_Y_Z_B_B-02_1", "name": "Supervision", "category": "B",
            "subcategory": "B-02", "displayOrder": "3", "isTotalRow": False,
        })
        assert entry.key == ("B", "B-02", 3)

    def test_total_row_detection(self):
        assert ActivityCatalogEntry("c", "A. Receipts", "A").is_summary_row is True
        assert ActivityCatalogEntry("c", "Total", "A", is_total_row=True).is_summary_row is True
        assert ActivityCatalogEntry("c", "Other incomes", "A").is_summary_row is False


# ── Matching and extraction ──────────────────────────────────────────────────

class TestMatching:
    def test_exact(self, service):
        assert service.match_activity_code("ABC_A_1", ["ABC_A_1", "abc_a_1"]) == "ABC_A_1"

    def test_case_insensitive(self, service):
        assert service.match_activity_code("abc_a_1", ["ABC_A_1"]) == "ABC_A_1"

    def test_no_partial_match(self, service):
        assert service.match_activity_code("HIV_EXEC_HOSPITAL_A_1", ["HIV_EXEC_HOSPITAL_A_10"]) is None
        assert service.match_activity_code("A_1", ["HIV_EXEC_HOSPITAL_A_1"]) is None


class TestExtractActivityValues:
    def test_stored_balance_is_total(self, service):
        form = {"activities": [make_activity("X_Y_Z_D_1", 5, 6, None, None, cumulativeBalance=6)]}
        assert service.extract_activity_values(form, "X_Y_Z_D_1") == QuarterTotals(5, 6, 0, 0, 6)

    def test_without_balance_sums_quarters(self, service):
        form = {"activities": {"X_Y_Z_A_1": make_activity("X_Y_Z_A_1", 1, "2", None, 4)}}
        assert service.extract_activity_values(form, "X_Y_Z_A_1").total == 7

    def test_missing_activity_is_zero(self, service):
        assert service.extract_activity_values({"activities": []}, "X_Y_Z_A_1") == ZERO_TOTALS
        assert service.extract_activity_values(None, "X_Y_Z_A_1") == ZERO_TOTALS

    def test_sum_keeps_totals(self, service):
        summed = service.sum_quarterly_values([
            QuarterTotals(10, 20, 30, 40, 40),
            QuarterTotals(1, 2, 3, 4, 4),
        ])
        assert summed == QuarterTotals(11, 22, 33, 44, 44)


# ── Aggregation ──────────────────────────────────────────────────────────────

class TestAggregateByActivity:
    def test_single_catalog(self, service, multi_facility_records, hospital_catalog):
        aggregated = service.aggregate_by_activity(multi_facility_records[:1], hospital_catalog)

        assert aggregated["HIV_EXEC_HOSPITAL_A_1"]["1"].total == 400
        assert aggregated["HIV_EXEC_HOSPITAL_D_1"]["1"].total == 800
        assert aggregated["HIV_EXEC_HOSPITAL_G_1"]["1"].total == 390

    def test_facility_without_code_gets_zero(self, service, multi_facility_records, hospital_catalog):
        aggregated = service.aggregate_by_activity(multi_facility_records[1:2], hospital_catalog)
        assert aggregated["HIV_EXEC_HOSPITAL_A_1"]["2"] == ZERO_TOTALS


class TestMultipleCatalogs:
    def test_reads_each_facility_under_its_own_codes(
        self, service, multi_facility_records, hospital_catalog, health_center_catalog, catalogs,
    ):
        unified = service.build_unified_catalog(catalogs)
        aggregated, warnings = service.aggregate_by_activity_with_multiple_catalogs(
            multi_facility_records[:2],
            {"1": hospital_catalog, "2": health_center_catalog},
            unified,
        )

        assert warnings == []
        assert aggregated["HIV_EXEC_HOSPITAL_A_1"]["1"].total == 400
        assert aggregated["HIV_EXEC_HOSPITAL_A_1"]["2"].total == 100
        assert aggregated["HIV_EXEC_HOSPITAL_D_1"]["2"].total == 300
        assert aggregated["HIV_EXEC_HOSPITAL_E_1"]["2"] == ZERO_TOTALS

    def test_facility_without_catalog_is_zero_with_warning(
        self, service, multi_facility_records, catalogs, hospital_catalog, caplog,
    ):
        unified = service.build_unified_catalog(catalogs)
        with caplog.at_level(logging.WARNING, logger="finexec.services.aggregation"):
            aggregated, warnings = service.aggregate_by_activity_with_multiple_catalogs(
                multi_facility_records, {"1": hospital_catalog}, unified,
            )

        assert len(warnings) == 2
        assert "Kinoni HC" in warnings[0]
        assert "Rusumo Dispensary" in warnings[1]
        assert all(aggregated[a.code]["3"] == ZERO_TOTALS for a in unified)
        assert "no activity catalog" in caplog.text

    def test_activities_normalised_once_per_facility(
        self, service, multi_facility_records, hospital_catalog, health_center_catalog, catalogs, monkeypatch,
    ):
        calls = []
        original = form_data_module.normalize_activities

        def counting(raw):
            calls.append(1)
            return original(raw)

        monkeypatch.setattr(form_data_module, "normalize_activities", counting)
        unified = service.build_unified_catalog(catalogs)
        aggregated, _ = service.aggregate_by_activity_with_multiple_catalogs(
            multi_facility_records[:2],
            {"1": hospital_catalog, "2": health_center_catalog},
            unified,
        )

        assert len(calls) == 2
        assert aggregated["HIV_EXEC_HOSPITAL_A_1"]["2"].total == 100

    def test_case_insensitive_lookup_in_batch(self, service):
        record = make_record(5, [make_activity("hiv_exec_hospital_a_1", 4)])
        catalog = [catalog_row("HIV_EXEC_HOSPITAL_A_1", "Other incomes", "A", 1)]
        unified = service.build_unified_catalog({"hospital": catalog})

        aggregated, _ = service.aggregate_by_activity_with_multiple_catalogs([record], {"5": catalog}, unified)
        assert aggregated["HIV_EXEC_HOSPITAL_A_1"]["5"].total == 4

    def test_large_batch_warning(self, multi_facility_records, catalogs, caplog):
        service = AggregationService(large_batch_threshold=2)
        unified = service.build_unified_catalog(catalogs)
        with caplog.at_level(logging.WARNING, logger="finexec.services.aggregation"):
            service.aggregate_by_activity_with_multiple_catalogs(multi_facility_records, {}, unified)
        assert "consider narrowing" in caplog.text


# ── Derived sections ─────────────────────────────────────────────────────────

class TestComputedValues:
    def test_surplus_and_net_financial_assets(self, service, multi_facility_records, catalogs):
        result = service.aggregate(multi_facility_records, catalogs)

        assert result.computed[SURPLUS_KEY]["1"].total == 170
        assert result.computed[SURPLUS_KEY]["2"].total == 50
        assert result.computed[NET_FINANCIAL_ASSETS_KEY]["1"].total == 600
        assert result.computed[NET_FINANCIAL_ASSETS_KEY]["2"].total == 300
        assert result.computed[SURPLUS_KEY]["3"] == ZERO_TOTALS

    def test_net_financial_assets_uses_latest_balances(self, service, multi_facility_records, catalogs):
        result = service.aggregate(multi_facility_records, catalogs)
        nfa = result.computed[NET_FINANCIAL_ASSETS_KEY]["1"]
        # quarters are raw differences; the total is the stock difference 800 - 200
        assert nfa.q1 == 400
        assert nfa.total == 600
        assert nfa.total != nfa.quarter_sum()

    def test_total_rows_excluded(self, service):
        catalog = [
            catalog_row("X_Y_Z_A_1", "Other incomes", "A", 1),
            catalog_row("X_Y_Z_A_99", "A. Receipts", "A", 99),
        ]
        aggregated = {
            "X_Y_Z_A_1": {"1": QuarterTotals(10, 0, 0, 0, 10)},
            "X_Y_Z_A_99": {"1": QuarterTotals(10, 0, 0, 0, 10)},
        }
        computed = service.calculate_computed_values(aggregated, catalog)
        assert computed[SURPLUS_KEY]["1"].total == 10


# ── Report tree ──────────────────────────────────────────────────────────────

class TestHierarchicalStructure:
    @pytest.fixture()
    def result(self, service, multi_facility_records, catalogs):
        return service.aggregate(multi_facility_records, catalogs)

    def test_section_order(self, result):
        assert [row.code for row in result.rows] == ["A", "B", "C", "D", "E", "F", "G"]
        assert [row.display_order for row in result.rows] == [100, 200, 300, 400, 500, 600, 700]

    def test_section_values_per_facility(self, result):
        a = _section(result.rows, "A")
        assert a.values == {"1": 450, "2": 100, "3": 0}
        assert a.total == 550
        assert [item.code for item in a.items] == ["HIV_EXEC_HOSPITAL_A_1", "HIV_EXEC_HOSPITAL_A_2"]

    def test_computed_sections_are_leafless(self, result):
        c = _section(result.rows, "C")
        f = _section(result.rows, "F")

        assert c.is_computed and c.computation_formula == "A - B"
        assert f.is_computed and f.computation_formula == "D - E"
        assert c.items == []
        assert c.values == {"1": 170, "2": 50, "3": 0}
        assert f.values == {"1": 600, "2": 300, "3": 0}

    def test_expenditure_subsections(self, result):
        b = _section(result.rows, "B")
        assert [sub.code for sub in b.items] == ["B-01", "B-04"]

        b01 = b.items[0]
        assert b01.is_subcategory is True
        assert b01.level == 1
        assert b01.name == "Human Resources + Bonus"
        assert b01.display_order == 1
        assert b01.values == {"1": 240, "2": 50, "3": 0}
        assert b01.items[0].level == 2
        assert b.values == {"1": 280, "2": 50, "3": 0}

    def test_subcategory_names_override(self, service, multi_facility_records, catalogs):
        result = service.aggregate(multi_facility_records, catalogs, {"B-04": "Overheads"})
        assert _section(result.rows, "B").items[1].name == "Overheads"

    def test_period_surplus_uses_computed_value(self, result):
        g = _section(result.rows, "G")
        accumulated, period = g.items

        assert accumulated.values == {"1": 390, "2": 0, "3": 0}
        assert period.values == {"1": 170, "2": 50, "3": 0}
        assert period.is_computed is True
        assert period.computation_formula == "A - B"
        assert g.values == {"1": 560, "2": 50, "3": 0}

    def test_empty_sections_omitted(self, service):
        catalog = [catalog_row("X_Y_Z_A_1", "Other incomes", "A", 1)]
        aggregated = {"X_Y_Z_A_1": {"1": QuarterTotals(1, 0, 0, 0, 1)}}
        computed = service.calculate_computed_values(aggregated, catalog)

        rows = service.build_hierarchical_structure(aggregated, computed, catalog)
        assert [row.code for row in rows] == ["A", "C", "F"]

    def test_deterministic(self, service, multi_facility_records, catalogs):
        first = service.aggregate(multi_facility_records, catalogs)
        second = service.aggregate(multi_facility_records, catalogs)
        assert first.rows == second.rows


# ── Whole pipeline ───────────────────────────────────────────────────────────

class TestAggregate:
    def test_cleanup_warnings_are_reported(self, service, catalogs, multi_facility_records):
        broken = make_record(4, [{"q1": 1}, make_activity("HIV_EXEC_HOSPITAL_A_1", 7)], name="Gisenyi")
        result = service.aggregate([*multi_facility_records, broken], catalogs)

        assert "Facility Gisenyi: Filtered out 1 invalid activities" in result.warnings
        assert _section(result.rows, "A").values["4"] == 7

    def test_accepts_mapping_records(self, service, catalogs):
        row = {
            "id": 1,
            "formData": {"activities": [make_activity("HIV_EXEC_HC_A_1", 3)]},
            "facilityId": 9,
            "facilityName": "Muhima HC",
            "facilityType": "health_center",
            "projectType": "HIV",
        }
        result = service.aggregate([row], catalogs)
        assert result.facility_ids == ["9"]
        assert _section(result.rows, "A").values == {"9": 3}
