"""Shared pytest fixtures for the execution engine tests.

Provides:
- make_activity / make_record: builders for activity dicts and execution records
- quarterly_form_data: the four-activity single-facility scenario
- hospital_catalog / health_center_catalog: two catalogs with different codes
  but the same (category, subcategory, display_order) structure
"""

from __future__ import annotations

from typing import Any

import pytest

from finexec.io.form_data import ExecutionRecord
from finexec.services.recalculation import enrich_form_data


# ── Builders ─────────────────────────────────────────────────────────────────

def make_activity(code: str, q1=None, q2=None, q3=None, q4=None, **extra: Any) -> dict[str, Any]:
    activity: dict[str, Any] = {"code": code, "q1": q1, "q2": q2, "q3": q3, "q4": q4}
    activity.update(extra)
    return activity


def make_record(
    facility_id: int,
    activities: Any,
    *,
    facility_type: str = "hospital",
    name: str | None = None,
) -> ExecutionRecord:
    return ExecutionRecord(
        id=facility_id * 10,
        form_data={"activities": activities},
        facility_id=facility_id,
        facility_name=name or f"Facility {facility_id}",
        facility_type=facility_type,
        project_type="HIV",
        year=2025,
        quarter="Q4",
    )


def catalog_row(
    code: str,
    name: str,
    category: str,
    display_order: int,
    subcategory: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    row: dict[str, Any] = {
        "code": code,
        "name": name,
        "category": category,
        "subcategory": subcategory,
        "displayOrder": display_order,
    }
    row.update(extra)
    return row


def _catalog(prefix: str) -> list[dict[str, Any]]:
    return [
        catalog_row(f"{prefix}_A_1", "Other incomes", "A", 1),
        catalog_row(f"{prefix}_A_2", "Transfers from SPIU/RBC", "A", 2),
        catalog_row(f"{prefix}_B_B-01_1", "Laboratory technician", "B", 1, "B-01"),
        catalog_row(f"{prefix}_B_B-04_1", "Communication - Airtime", "B", 4, "B-04"),
        catalog_row(f"{prefix}_D_1", "Cash at bank", "D", 1),
        catalog_row(f"{prefix}_E_1", "Payables", "E", 1),
        catalog_row(f"{prefix}_G_1", "Accumulated Surplus/Deficit", "G", 1),
        catalog_row(f"{prefix}_G_2", "Surplus/Deficit of the Period", "G", 2),
    ]


# ── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture()
def quarterly_form_data() -> dict[str, Any]:
    """A / B-01 / D / E with all four quarters reported."""
    return {
        "activities": [
            make_activity("HIV_EXEC_HOSPITAL_A_1", 100000, 150000, 120000, 180000),
            make_activity("HIV_EXEC_HOSPITAL_B_B-01_1", 80000, 120000, 100000, 140000),
            make_activity("HIV_EXEC_HOSPITAL_D_1", 50000, 65000, 48000, 72000),
            make_activity("HIV_EXEC_HOSPITAL_E_1", 8000, 10000, 9000, 12000),
        ],
    }


@pytest.fixture()
def hospital_catalog() -> list[dict[str, Any]]:
    return _catalog("HIV_EXEC_HOSPITAL")


@pytest.fixture()
def health_center_catalog() -> list[dict[str, Any]]:
    return _catalog("HIV_EXEC_HC")


@pytest.fixture()
def multi_facility_records() -> list[ExecutionRecord]:
    """
    Hospital (1) and health center (2) reporting under their own codes, plus
    a dispensary (3) whose facility type has no catalog.

        hospital:      A=450  B=280  D=800  E=200  G1=390
        health center: A=100  B=50   D=300  E=-
    """
    def enriched(*activities: dict[str, Any]) -> dict[str, Any]:
        return enrich_form_data({"activities": list(activities)})["activities"]

    hospital = enriched(
        make_activity("HIV_EXEC_HOSPITAL_A_1", 100, 100, 100, 100),
        make_activity("HIV_EXEC_HOSPITAL_A_2", 50),
        make_activity("HIV_EXEC_HOSPITAL_B_B-01_1", 60, 60, 60, 60),
        make_activity("HIV_EXEC_HOSPITAL_B_B-04_1", 10, 10, 10, 10),
        make_activity("HIV_EXEC_HOSPITAL_D_1", 500, 600, 700, 800),
        make_activity("HIV_EXEC_HOSPITAL_E_1", 100, 100, 100, 200),
        make_activity("HIV_EXEC_HOSPITAL_G_1", 390, name="Accumulated Surplus/Deficit"),
        make_activity("HIV_EXEC_HOSPITAL_G_2", 1, 1, 1, 1, name="Surplus/Deficit of the Period"),
    )
    health_center = enriched(
        make_activity("HIV_EXEC_HC_A_1", 10, 20, 30, 40),
        make_activity("HIV_EXEC_HC_B_B-01_1", 25, 25),
        make_activity("HIV_EXEC_HC_D_1", 300),
    )
    dispensary = enriched(make_activity("HIV_EXEC_DISP_A_1", 5, 5, 5, 5))

    return [
        make_record(1, hospital, facility_type="hospital", name="Butaro Hospital"),
        make_record(2, health_center, facility_type="health_center", name="Kinoni HC"),
        make_record(3, dispensary, facility_type="dispensary", name="Rusumo Dispensary"),
    ]
