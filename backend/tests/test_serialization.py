"""Unit tests for JSON-ready cohort export."""

import json

import numpy as np

from cohort_engine.aggregator import get_cohort_mean
from cohort_engine.serialization import cohort_mean_to_dict, cohort_to_dict, to_jsonable
from cohort_engine.timestamps import SORT_KEY_FIELD
from cohort_engine.transformer import transform
from tests.utils.cohort_builders import demographics, weight_dataset


def build_cohort():
    return transform(
        [weight_dataset({"p1": [{"value": 150, "date": "2024-01-01T08:30:00"}]})],
        demographics("p1", p1={"gender": "F"}),
    )


class TestCohortToDict:
    def test_dates_become_iso_strings(self):
        data = cohort_to_dict(build_cohort())

        row = data["patients"]["p1"]["datasets"]["weight"][0]
        assert row["date"] == "2024-01-01T08:30:00"
        assert row[SORT_KEY_FIELD] == 1704097800000

    def test_metadata_uses_wire_names(self):
        data = cohort_to_dict(build_cohort())

        meta = data["metadata"]["weight"]
        assert meta["ref"] == {"id": "weight", "name": "Weight"}
        assert meta["schema"]["fields"][1] == {"name": "date", "type": "DateTime"}

    def test_output_is_json_serializable(self):
        loaded = json.loads(json.dumps(cohort_to_dict(build_cohort())))

        assert loaded["patients"]["p1"]["demographics"] == {"personId": "p1", "gender": "F"}


class TestCohortMeanToDict:
    def test_nan_means_become_null(self):
        result = get_cohort_mean(build_cohort(), [{"datasetId": "weight", "column": "missing"}], "p1")

        assert cohort_mean_to_dict(result) == {"weight": {"missing": None}}

    def test_present_means_are_kept(self):
        result = get_cohort_mean(build_cohort(), [{"datasetId": "weight", "column": "value"}], "p1")

        assert cohort_mean_to_dict(result) == {"weight": {"value": 150.0}}


class TestToJsonable:
    def test_numpy_scalars_become_python_values(self):
        assert to_jsonable({"n": np.int64(3), "x": np.float64(1.5), "gap": np.float64("nan")}) == {
            "n": 3,
            "x": 1.5,
            "gap": None,
        }
