"""Value coercion helpers shared by the boundary normalisers and services."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import numpy as np


def to_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and np.isnan(value):
        return None

    text = str(value).strip()
    return text if text != "" else None


def to_float(value: Any) -> float | None:
    """
    Coerce a reported quarter value to float.

    None, blank strings, NaN and non-numeric text all mean "not reported"
    and come back as None. Booleans are rejected for the same reason.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if value == "":
            return None

    try:
        number = float(value)
    except (TypeError, ValueError):
        return None

    if np.isnan(number):
        return None
    return number


def to_float_or_zero(value: Any) -> float:
    number = to_float(value)
    return 0.0 if number is None else number


def first_present(data: Mapping[str, Any], *keys: str) -> Any:
    """Value of the first key present with a non-None value, else None."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def has_valid_code(activity: Any) -> bool:
    return (
        isinstance(activity, Mapping)
        and isinstance(activity.get("code"), str)
        and activity["code"] != ""
    )
