"""
Activity code classifier.

Maps a structured activity code to its statement section and decides how
its quarterly entries collapse into one cumulative balance.

Classification logic:
  1. Split the code on ``_``; token 3 is the section, token 4 is a
     subsection only when it looks like ``X-NN``.
  2. Resolve the effective section (subsection wins) to a SectionKind.
  3. Section G items are resolved per item by keyword rules
     (``is_flow_item``); ties and unknowns fall back to flow.
"""

from __future__ import annotations

from dataclasses import dataclass

from finexec.execution_config.schema import (
    G_ACCUMULATED_KEYWORD,
    G_ACCUMULATED_TARGETS,
    G_FLOW_KEYWORDS,
    G_OPENING_KEYWORDS,
    G_STOCK_KEYWORDS,
    SECTION_KINDS,
    SectionKind,
)


@dataclass(frozen=True)
class ParsedCode:
    """Output of parse_code()."""
    section: str | None      # "A" .. "G", or None for malformed codes
    subsection: str | None   # e.g. "B-01"; None when token 4 is a sequence number


# ── Code parsing ──────────────────────────────────────────────────────────

def parse_code(code: str | None) -> ParsedCode:
    """
    Split an activity code into (section, subsection).

    ``HIV_EXEC_HOSPITAL_B_B-04_1`` -> ("B", "B-04")
    ``HIV_EXEC_HOSPITAL_D_1``      -> ("D", None)
    ``garbage``                    -> (None, None)
    """
    if not isinstance(code, str):
        return ParsedCode(section=None, subsection=None)

    parts = code.split("_")
    section = parts[3] if len(parts) > 3 and parts[3] else None
    candidate = parts[4] if len(parts) > 4 and parts[4] else None
    subsection = candidate if candidate and "-" in candidate else None
    return ParsedCode(section=section, subsection=subsection)


def effective_section(section: str | None, subsection: str | None = None) -> str:
    """Subsection overrides section; result is stripped and upper-cased."""
    return (subsection or section or "").strip().upper()


def section_kind(section: str | None, subsection: str | None = None) -> SectionKind:
    """Map the effective section to its SectionKind (unknown -> UNCLASSIFIED)."""
    return SECTION_KINDS.get(
        effective_section(section, subsection),
        SectionKind.UNCLASSIFIED,
    )


# ── Section G heuristic ───────────────────────────────────────────────────

def _contains_any(haystacks: tuple[str, ...], keywords: tuple[str, ...]) -> bool:
    return any(kw in text for text in haystacks for kw in keywords)


def is_flow_item(code: str | None, label: str | None = None) -> bool:
    """
    Decide whether a Section G activity is a flow (True) or stock (False).

    Rules, first match wins:
      - "accumulated" together with "surplus"/"deficit" -> stock
      - "prior" / "opening"                                -> stock
      - flow keywords only                                 -> flow
      - stock keywords only                                -> stock
      - both or neither                                    -> flow

    Code and label are both searched, case-insensitively. This is a
    best-effort heuristic over human-entered labels, not ground truth.
    """
    texts = ((code or "").lower(), (label or "").lower())

    if _contains_any(texts, (G_ACCUMULATED_KEYWORD,)) and _contains_any(texts, G_ACCUMULATED_TARGETS):
        return False

    if _contains_any(texts, G_OPENING_KEYWORDS):
        return False

    has_flow = _contains_any(texts, G_FLOW_KEYWORDS)
    has_stock = _contains_any(texts, G_STOCK_KEYWORDS)

    if has_stock and not has_flow:
        return False
    return True


def resolve_item_kind(
    section: str | None,
    subsection: str | None = None,
    *,
    code: str | None = None,
    label: str | None = None,
) -> SectionKind:
    """
    Final FLOW / STOCK decision for one activity.

    MIXED is resolved through ``is_flow_item``; UNCLASSIFIED collapses to
    FLOW so that unknown sections are summed rather than dropped.
    """
    kind = section_kind(section, subsection)
    if kind is SectionKind.MIXED:
        return SectionKind.FLOW if is_flow_item(code, label) else SectionKind.STOCK
    if kind is SectionKind.UNCLASSIFIED:
        return SectionKind.FLOW
    return kind
