import numpy as np
import pytest

from survival_eval.censoring import (
    CensoringType,
    censoring_summary,
    classify_censoring,
    classify_censoring_array,
    validate_bounds,
)
from survival_eval.errors import InputError

INF = np.inf


@pytest.mark.parametrize(
    "lower, upper, expected",
    [
        (100.0, 100.0, CensoringType.UNCENSORED),
        (0.0, 0.0, CensoringType.UNCENSORED),
        (60.0, INF, CensoringType.RIGHT),
        (0.0, 20.0, CensoringType.LEFT),
        (16.0, 200.0, CensoringType.INTERVAL),
        (0.0, INF, CensoringType.INTERVAL),
    ],
)
def test_classify_censoring(lower, upper, expected):
    assert classify_censoring(lower, upper) is expected


def test_exact_positive_label_is_uncensored_not_interval():
    assert classify_censoring(37.5, 37.5) is CensoringType.UNCENSORED
    codes = classify_censoring_array(np.array([37.5]), np.array([37.5]))
    assert codes[0] == CensoringType.UNCENSORED


def test_classify_both_infinite_raises():
    with pytest.raises(InputError, match="both \\+inf"):
        classify_censoring(INF, INF)


def test_array_classification_matches_scalar():
    lower = np.array([100.0, 0.0, 60.0, 16.0, 0.0, 5.0, 0.0])
    upper = np.array([100.0, 20.0, INF, 200.0, INF, 5.0, 0.0])
    codes = classify_censoring_array(lower, upper)
    expected = [classify_censoring(lo, hi) for lo, hi in zip(lower, upper)]
    assert codes.tolist() == [int(e) for e in expected]
    assert codes.dtype == np.int8
    assert codes[-1] == CensoringType.UNCENSORED


def test_censoring_summary_counts_every_regime():
    counts = censoring_summary(
        np.array([100.0, 0.0, 60.0, 16.0, 3.0]),
        np.array([100.0, 20.0, INF, 200.0, 3.0]),
    )
    assert counts == {"uncensored": 2, "right": 1, "left": 1, "interval": 1}


@pytest.mark.parametrize(
    "lower, upper, reason",
    [
        ([1.0, -2.0], [1.0, 3.0], "negative"),
        ([5.0], [4.0], "upper_bound < lower_bound"),
        ([INF], [INF], "== \\+inf"),
        ([np.nan], [3.0], "NaN"),
    ],
)
def test_validate_bounds_rejects_invalid_labels(lower, upper, reason):
    with pytest.raises(InputError, match=reason):
        validate_bounds(np.array(lower), np.array(upper))


def test_validate_bounds_rejects_length_mismatch():
    with pytest.raises(InputError, match="entries"):
        validate_bounds(np.array([1.0, 2.0]), np.array([1.0]))


def test_validate_bounds_accepts_valid_labels():
    validate_bounds(
        np.array([100.0, 0.0, 60.0, 16.0]),
        np.array([100.0, 20.0, INF, 200.0]),
    )
