"""
execution_config – Statement structure and activity classification.

**Single source of truth** for:
  - Statement sections A–G, their labels, display order and SectionKind
  - Expenditure subsection names (B-01 .. B-05)
  - Section G keyword lists used by the flow/stock heuristic

Quick start::

    from finexec.execution_config import parse_code, resolve_item_kind

    parsed = parse_code("HIV_EXEC_HOSPITAL_B_B-01_1")
    # parsed.section == "B", parsed.subsection == "B-01"

    resolve_item_kind("G", code="HIV_EXEC_HOSPITAL_G_1",
                      label="Accumulated Surplus/Deficit")
    # SectionKind.STOCK
"""

from finexec.execution_config.classifier import (
    ParsedCode,
    effective_section,
    is_flow_item,
    parse_code,
    resolve_item_kind,
    section_kind,
)
from finexec.execution_config.schema import (
    ALL_SECTIONS,
    SECTION_LABELS,
    SECTION_ORDER,
    SECTIONS_BY_CODE,
    SUBSECTION_LABELS,
    SectionDef,
    SectionKind,
)

__all__ = [
    "ParsedCode",
    "effective_section",
    "is_flow_item",
    "parse_code",
    "resolve_item_kind",
    "section_kind",
    "ALL_SECTIONS",
    "SECTION_LABELS",
    "SECTION_ORDER",
    "SECTIONS_BY_CODE",
    "SUBSECTION_LABELS",
    "SectionDef",
    "SectionKind",
]
