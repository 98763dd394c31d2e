"""Unit tests for patient matchers."""

import pytest

from cohort_engine.matchers import (
    ColumnKind,
    MatcherRegistry,
    as_number,
    build_matcher,
    build_numeric_matcher,
    build_string_matcher,
    column_kind,
    match_all,
)
from cohort_engine.models import PatientRecord
from cohort_engine.schemas import ColumnType, ComparisonDimension


def patient(person_id, dataset_id=None, column=None, values=()):
    record = PatientRecord(demographics={"personId": person_id})
    if dataset_id is not None:
        record.datasets[dataset_id] = [{column: v} for v in values]
    return record


def dim(dataset_id="weight", column="value", **args):
    payload = {"datasetId": dataset_id, "column": column}
    if args:
        payload["args"] = args
    return ComparisonDimension.model_validate(payload)


class TestNumericMatcher:
    """Candidates match when any value falls in the source range."""

    def test_zero_pad_requires_exact_value(self):
        source = patient("src", "weight", "value", [150])
        matcher = build_numeric_matcher(dim(), source)

        assert matcher(patient("a", "weight", "value", [150])) is True
        assert matcher(patient("b", "weight", "value", [150.5])) is False

    def test_pad_widens_inclusively(self):
        source = patient("src", "weight", "value", [150])
        matcher = build_numeric_matcher(dim(numeric={"pad": 10}), source)

        assert matcher(patient("low", "weight", "value", [140])) is True
        assert matcher(patient("high", "weight", "value", [160])) is True
        assert matcher(patient("out", "weight", "value", [160.01])) is False

    def test_any_row_in_range_matches(self):
        source = patient("src", "weight", "value", [150])
        matcher = build_numeric_matcher(dim(numeric={"pad": 5}), source)

        assert matcher(patient("a", "weight", "value", [100, 200, 152])) is True

    def test_uses_first_source_value(self):
        source = patient("src", "weight", "value", [None, 100, 200])
        matcher = build_numeric_matcher(dim(), source)

        assert matcher(patient("a", "weight", "value", [100])) is True
        assert matcher(patient("b", "weight", "value", [200])) is False

    def test_zero_is_a_source_value(self):
        source = patient("src", "weight", "value", [0])
        matcher = build_numeric_matcher(dim(), source)

        assert matcher is not match_all
        assert matcher(patient("a", "weight", "value", [0])) is True
        assert matcher(patient("b", "weight", "value", [1])) is False

    def test_numeric_strings_are_compared_as_numbers(self):
        source = patient("src", "weight", "value", ["150"])
        matcher = build_numeric_matcher(dim(numeric={"pad": 1}), source)

        assert matcher(patient("a", "weight", "value", ["150.5"])) is True

    def test_candidate_without_dataset_does_not_match(self):
        source = patient("src", "weight", "value", [150])
        matcher = build_numeric_matcher(dim(), source)

        assert matcher(patient("a")) is False

    @pytest.mark.parametrize("values", [(), (None,), ("",), ("n/a",)])
    def test_fails_open_without_usable_source_value(self, values):
        source = patient("src", "weight", "value", values)

        assert build_numeric_matcher(dim(), source) is match_all

    def test_fails_open_without_source_dataset(self):
        assert build_numeric_matcher(dim(), patient("src")) is match_all


class TestStringMatcher:
    """Candidates must carry every value of the match set."""

    def test_source_value_is_singleton_set(self):
        source = patient("src", "dx", "code", ["E11", "I10"])
        matcher = build_string_matcher(dim("dx", "code"), source)

        assert matcher(patient("a", "dx", "code", ["J45", "E11"])) is True
        assert matcher(patient("b", "dx", "code", ["I10"])) is False

    def test_match_on_requires_all_values(self):
        source = patient("src")
        matcher = build_string_matcher(dim("dx", "code", string={"matchOn": ["A", "B"]}), source)

        assert matcher(patient("both", "dx", "code", ["A", "C", "B"])) is True
        assert matcher(patient("only_a", "dx", "code", ["A", "A"])) is False
        assert matcher(patient("none", "dx", "code", ["C"])) is False

    def test_match_on_overrides_source_value(self):
        source = patient("src", "dx", "code", ["X"])
        matcher = build_string_matcher(dim("dx", "code", string={"matchOn": ["Y"]}), source)

        assert matcher(patient("a", "dx", "code", ["Y"])) is True
        assert matcher(patient("b", "dx", "code", ["X"])) is False

    def test_duplicate_match_on_values_count_once(self):
        matcher = build_string_matcher(
            dim("dx", "code", string={"matchOn": ["A", "A"]}), patient("src")
        )

        assert matcher(patient("a", "dx", "code", ["A"])) is True

    def test_empty_match_on_falls_back_to_source(self):
        source = patient("src", "dx", "code", ["E11"])
        matcher = build_string_matcher(dim("dx", "code", string={"matchOn": []}), source)

        assert matcher(patient("a", "dx", "code", ["E11"])) is True
        assert matcher(patient("b", "dx", "code", ["I10"])) is False

    def test_fails_open_without_source_value(self):
        source = patient("src", "dx", "code", ["", None])

        assert build_string_matcher(dim("dx", "code"), source) is match_all

    def test_unhashable_values_are_ignored(self):
        source = patient("src", "dx", "code", ["A"])
        matcher = build_string_matcher(dim("dx", "code"), source)

        assert matcher(patient("a", "dx", "code", [["A"], "A"])) is True


class TestDispatch:
    """Column types select the matcher kind."""

    @pytest.mark.parametrize(
        "column_type,expected",
        [
            (ColumnType.NUMERIC, ColumnKind.NUMERIC),
            (ColumnType.STRING, ColumnKind.STRING_LIKE),
            (ColumnType.DATETIME, ColumnKind.STRING_LIKE),
            (ColumnType.SPARKLINE, ColumnKind.STRING_LIKE),
            (None, ColumnKind.STRING_LIKE),
        ],
    )
    def test_column_kind(self, column_type, expected):
        assert column_kind(column_type) == expected

    def test_numeric_column_uses_range(self):
        source = patient("src", "weight", "value", [150])
        matcher = build_matcher(dim(numeric={"pad": 10}), source, ColumnType.NUMERIC)

        assert matcher(patient("a", "weight", "value", [155])) is True

    def test_string_column_uses_equality(self):
        source = patient("src", "weight", "value", [150])
        matcher = build_matcher(dim(numeric={"pad": 10}), source, ColumnType.STRING)

        assert matcher(patient("a", "weight", "value", [155])) is False

    def test_registry_without_factory_raises(self):
        with pytest.raises(KeyError, match="numeric"):
            MatcherRegistry().get(ColumnKind.NUMERIC)


class TestAsNumber:
    @pytest.mark.parametrize(
        "value,expected",
        [(1, 1.0), (2.5, 2.5), ("3", 3.0), (0, 0.0), (True, None), ("x", None), ("", None), (None, None), (float("nan"), None)],
    )
    def test_coercion(self, value, expected):
        assert as_number(value) == expected
