"""
Patient matchers for comparison dimensions.

A matcher is built once per (dimension, source patient) and then asked, for
each candidate patient, whether the candidate matches the source on that
dimension. Column types map onto two matcher kinds:

- NUMERIC: candidate has a value within ``source ± pad``
- STRING_LIKE: candidate has every value of the match set

Both fail open: when the source patient carries no usable value (and no
explicit ``matchOn`` is configured) every candidate matches.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Hashable
from enum import Enum
from numbers import Number
from typing import Any, Callable, Dict

from .models import PatientRecord, first_present, is_present
from .schemas import ColumnType, ComparisonDimension

logger = logging.getLogger(__name__)


Matcher = Callable[[PatientRecord], bool]
MatcherFactory = Callable[[ComparisonDimension, PatientRecord], Matcher]


class ColumnKind(str, Enum):
    NUMERIC = "numeric"
    STRING_LIKE = "string_like"


def column_kind(column_type: ColumnType | None) -> ColumnKind:
    if column_type == ColumnType.NUMERIC:
        return ColumnKind.NUMERIC
    return ColumnKind.STRING_LIKE


def match_all(patient: PatientRecord) -> bool:
    return True


def as_number(value: Any) -> float | None:
    """Coerce a row value to float; None when it is not a finite number."""
    if isinstance(value, bool) or not is_present(value):
        return None
    if isinstance(value, Number):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def build_numeric_matcher(dim: ComparisonDimension, source: PatientRecord) -> Matcher:
    value = first_present(source.rows(dim.dataset_id), dim.column)
    base = as_number(value)
    if base is None:
        if value is not None:
            logger.debug(
                "Source value %r for %s.%s is not numeric; dimension not filtered",
                value,
                dim.dataset_id,
                dim.column,
            )
        return match_all

    low = base - dim.pad
    high = base + dim.pad

    def matcher(patient: PatientRecord) -> bool:
        rows = patient.rows(dim.dataset_id)
        if not rows:
            return False
        for row in rows:
            value = as_number(row.get(dim.column))
            if value is not None and low <= value <= high:
                return True
        return False

    return matcher


def build_string_matcher(dim: ComparisonDimension, source: PatientRecord) -> Matcher:
    configured = dim.match_on
    if configured:
        match_on = set(configured)
    else:
        value = first_present(source.rows(dim.dataset_id), dim.column)
        if value is None:
            return match_all
        match_on = {value}
    required = len(match_on)

    def matcher(patient: PatientRecord) -> bool:
        rows = patient.rows(dim.dataset_id)
        if not rows:
            return False
        matched = {
            value
            for value in (row.get(dim.column) for row in rows)
            if isinstance(value, Hashable) and value in match_on
        }
        return len(matched) == required

    return matcher


class MatcherRegistry:
    """Registry holding the matcher factory for each column kind."""

    def __init__(self) -> None:
        self._factories: Dict[ColumnKind, MatcherFactory] = {}

    def register(self, kind: ColumnKind, factory: MatcherFactory) -> None:
        self._factories[kind] = factory

    def get(self, kind: ColumnKind) -> MatcherFactory:
        try:
            return self._factories[kind]
        except KeyError as exc:
            raise KeyError(f"no matcher registered for column kind '{kind.value}'") from exc


registry = MatcherRegistry()
registry.register(ColumnKind.NUMERIC, build_numeric_matcher)
registry.register(ColumnKind.STRING_LIKE, build_string_matcher)


def build_matcher(
    dim: ComparisonDimension,
    source: PatientRecord,
    column_type: ColumnType | None,
) -> Matcher:
    """Select the matcher for the column's type and build it against `source`."""
    factory = registry.get(column_kind(column_type))
    return factory(dim, source)


__all__ = [
    "Matcher",
    "ColumnKind",
    "column_kind",
    "match_all",
    "as_number",
    "build_numeric_matcher",
    "build_string_matcher",
    "MatcherRegistry",
    "registry",
    "build_matcher",
]
