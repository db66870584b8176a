"""Field-based predicate evaluation for contacts and deals."""

from __future__ import annotations

import math
from typing import Any, Iterable, Mapping

from pydantic import BaseModel

from .contracts import Condition, ConditionLogic


def _as_mapping(record: Any) -> Any:
    if isinstance(record, BaseModel):
        return record.model_dump()
    return record


def get_field_value(record: Any, field: str) -> Any:
    """Resolve a dot-separated ``field`` path, returning ``None`` for missing segments."""
    value = _as_mapping(record)
    for part in field.split("."):
        if value is None:
            return None
        if isinstance(value, Mapping):
            value = value.get(part)
        else:
            value = getattr(value, part, None)
    return value


def _to_text(value: Any) -> str:
    return "" if value is None else str(value).lower()


def _to_number(value: Any) -> float:
    """Coerce to float. Missing and blank values count as 0; anything else
    non-numeric becomes NaN so comparisons against it are false."""
    if value is None:
        return 0.0
    if isinstance(value, (list, dict)):
        return math.nan
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    try:
        text = str(value).strip()
        return float(text) if text else 0.0
    except ValueError:
        return math.nan


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _loose_equals(value: Any, other: Any) -> bool:
    if value is None or other is None:
        return value is None and other is None
    if _is_number(value) != _is_number(other) and (_is_number(value) or _is_number(other)):
        return _to_number(value) == _to_number(other)
    return value == other


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def evaluate_single(condition: Condition, record: Any) -> bool:
    """Evaluate one condition against ``record``."""
    value = get_field_value(record, condition.field)
    expected = condition.value
    operator = condition.operator

    if operator == "equals":
        return _loose_equals(value, expected)
    if operator == "not_equals":
        return not _loose_equals(value, expected)
    if operator == "contains":
        return _to_text(expected) in _to_text(value)
    if operator == "not_contains":
        return _to_text(expected) not in _to_text(value)
    if operator == "starts_with":
        return _to_text(value).startswith(_to_text(expected))
    if operator == "ends_with":
        return _to_text(value).endswith(_to_text(expected))
    if operator == "greater_than":
        return _to_number(value) > _to_number(expected)
    if operator == "less_than":
        return _to_number(value) < _to_number(expected)
    if operator == "is_empty":
        return _is_empty(value)
    if operator == "is_not_empty":
        return not _is_empty(value)
    if operator == "in":
        return isinstance(expected, list) and value in expected
    if operator == "not_in":
        return not isinstance(expected, list) or value not in expected
    return False


def evaluate_conditions(
    conditions: Iterable[Condition], logic: ConditionLogic, record: Any
) -> bool:
    """Combine ``conditions`` with ``and``/``or`` logic. An empty list is true."""
    conditions = list(conditions)
    if not conditions:
        return True
    results = (evaluate_single(c, record) for c in conditions)
    if logic == "or":
        return any(results)
    return all(results)


def matches_filters(record: Any, filters: Iterable[Condition]) -> bool:
    """Trigger filters: every filter must hold."""
    return evaluate_conditions(filters, "and", record)
