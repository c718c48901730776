import math

import numpy as np
import pytest

from market_sim.statistics import (
    PERCENTILE_LEVELS,
    compute_stats,
    confidence_interval,
    nearest_rank_index,
    nearest_rank_quantile,
    validate_correlation_matrix,
)


@pytest.mark.parametrize(
    "n, confidence, expected",
    [
        (10, 0.5, 4),
        (10, 0.95, 9),
        (10, 1.0, 9),
        (10, 0.01, 0),
        (1, 0.95, 0),
        (100, 0.95, 94),
        (1000, 0.99, 989),
    ],
)
def test_nearest_rank_index(n, confidence, expected):
    assert nearest_rank_index(n, confidence) == expected


def test_nearest_rank_quantile_reads_sorted_array():
    arr = np.arange(1.0, 11.0)
    assert nearest_rank_quantile(arr, 0.5) == 5.0
    assert nearest_rank_quantile(arr, 0.95) == 10.0


def test_compute_stats_on_known_sample():
    summary = compute_stats(np.arange(10.0, 0.0, -1.0))
    assert summary["n"] == 10
    assert summary["mean"] == pytest.approx(5.5)
    assert summary["std"] == pytest.approx(math.sqrt(8.25))
    assert summary["min"] == 1.0
    assert summary["max"] == 10.0
    assert summary["p5"] == 1.0
    assert summary["p50"] == 5.0
    assert summary["p95"] == 10.0
    assert summary["skewness"] == pytest.approx(0.0, abs=1e-12)
    assert set(PERCENTILE_LEVELS) <= set(summary)


def test_compute_stats_percentiles_are_monotone():
    rng = np.random.default_rng(0)
    summary = compute_stats(rng.lognormal(size=501))
    levels = [summary[name] for name in PERCENTILE_LEVELS]
    assert levels == sorted(levels)
    assert summary["min"] <= levels[0] and levels[-1] <= summary["max"]
    assert summary["skewness"] > 0


def test_compute_stats_constant_sample_has_zero_shape():
    summary = compute_stats([3.0] * 20)
    assert summary["std"] == 0.0
    assert summary["skewness"] == 0.0
    assert summary["excess_kurtosis"] == 0.0
    assert summary["p99"] == 3.0


def test_compute_stats_empty_sample():
    summary = compute_stats([])
    assert summary["n"] == 0
    assert summary["mean"] == 0.0
    assert summary["p50"] == 0.0


def test_confidence_interval_width():
    summary = {"mean": 100.0, "std": 20.0, "n": 400}
    ci = confidence_interval(summary, 0.95)
    assert ci["se"] == pytest.approx(1.0)
    assert ci["margin"] == pytest.approx(1.959964, rel=1e-5)
    assert ci["lower"] == pytest.approx(100.0 - ci["margin"])
    assert ci["upper"] == pytest.approx(100.0 + ci["margin"])
    assert ci["width"] == pytest.approx(2.0 * ci["margin"])

    wider = confidence_interval(summary, 0.99)
    assert wider["width"] > ci["width"]


def test_validate_correlation_matrix():
    assert validate_correlation_matrix(np.eye(3))
    assert not validate_correlation_matrix(np.array([[1.0, 0.5], [0.2, 1.0]]))
    assert not validate_correlation_matrix(np.array([[1.0, 2.0], [2.0, 1.0]]))
    assert not validate_correlation_matrix(np.ones(3))
