"""
Statistical Estimation Module
==============================
Distributional summaries shared by the aggregator and the risk engine.

Mathematical Foundation:
    Nearest rank:  k = ⌈c · n⌉ − 1,  clamped to [0, n − 1]
    Mean:          μ = Σ xᵢ / n
    Std (pop.):    σ = √(Σ (xᵢ − μ)² / n)
    CI of mean:    μ ± z_c · σ / √n

Design note:
    Quantiles use the nearest-rank rule on the ascending sort rather than
    the linear interpolation of ``numpy.percentile``.  The same rank rule
    drives ``risk.value_at_risk``, so a p95 reported here always equals the
    95% VaR of the same sample.
"""

import math
from typing import Dict, Optional, Sequence, Union

import numpy as np
from scipy import stats as scipy_stats


# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────
PERCENTILE_LEVELS: Dict[str, float] = {
    "p5": 0.05,
    "p10": 0.10,
    "p25": 0.25,
    "p50": 0.50,
    "p75": 0.75,
    "p90": 0.90,
    "p95": 0.95,
    "p99": 0.99,
}

ArrayLike = Union[Sequence[float], np.ndarray]


def nearest_rank_index(n: int, confidence: float) -> int:
    """
    Index of the nearest-rank quantile in an ascending sample of size ``n``.

    Parameters
    ----------
    n : int
        Sample size (>= 1).
    confidence : float
        Quantile level.

    Returns
    -------
    int
        ``ceil(confidence * n) - 1`` clamped into ``[0, n - 1]``.
    """
    idx = math.ceil(confidence * n) - 1
    return min(max(idx, 0), n - 1)


def nearest_rank_quantile(sorted_values: np.ndarray, confidence: float) -> float:
    """Nearest-rank quantile of an already ascending array."""
    return float(sorted_values[nearest_rank_index(len(sorted_values), confidence)])


def empty_stats() -> Dict[str, float]:
    """Summary returned for an empty sample."""
    summary = {"n": 0, "mean": 0.0, "std": 0.0, "min": 0.0, "max": 0.0}
    summary.update({name: 0.0 for name in PERCENTILE_LEVELS})
    summary.update({"skewness": 0.0, "excess_kurtosis": 0.0})
    return summary


def compute_stats(values: ArrayLike) -> Dict[str, float]:
    """
    Compute descriptive statistics with nearest-rank percentiles.

    Parameters
    ----------
    values : array-like
        Sample of a single metric.

    Returns
    -------
    dict
        n, mean, std (population), min, max, p5 … p99, skewness and
        excess_kurtosis.  Shape statistics are 0 for a constant sample.
    """
    arr = np.sort(np.asarray(values, dtype=float))
    n = arr.size
    if n == 0:
        return empty_stats()

    mean = float(np.mean(arr))
    std = float(np.std(arr))

    summary: Dict[str, float] = {
        "n": int(n),
        "mean": mean,
        "std": std,
        "min": float(arr[0]),
        "max": float(arr[-1]),
    }
    for name, level in PERCENTILE_LEVELS.items():
        summary[name] = nearest_rank_quantile(arr, level)

    if std > 0:
        summary["skewness"] = float(scipy_stats.skew(arr))
        summary["excess_kurtosis"] = float(scipy_stats.kurtosis(arr))
    else:
        summary["skewness"] = 0.0
        summary["excess_kurtosis"] = 0.0

    return summary


def confidence_interval(
    summary: Dict[str, float],
    level: float = 0.95,
    n: Optional[int] = None,
) -> Dict[str, float]:
    """
    Normal-approximation confidence interval for the mean.

    Parameters
    ----------
    summary : dict
        Output of ``compute_stats`` (needs ``mean``, ``std`` and ``n``).
    level : float
        Two-sided confidence level.
    n : int, optional
        Sample size override.

    Returns
    -------
    dict
        lower, upper, width, margin, se, level.
    """
    size = n if n is not None else int(summary.get("n", 0))
    z = float(scipy_stats.norm.ppf(0.5 + level / 2.0))
    se = summary["std"] / math.sqrt(max(size, 1))
    margin = z * se
    return {
        "lower": summary["mean"] - margin,
        "upper": summary["mean"] + margin,
        "width": 2.0 * margin,
        "margin": margin,
        "se": se,
        "level": level,
    }


def validate_correlation_matrix(matrix: np.ndarray, atol: float = 1e-10) -> bool:
    """
    Check that a matrix is symmetric and positive semi-definite.

    Parameters
    ----------
    matrix : np.ndarray
        Candidate correlation matrix.
    atol : float
        Tolerance for symmetry and for negative eigenvalues.

    Returns
    -------
    bool
        True if valid, False otherwise.
    """
    matrix = np.asarray(matrix, dtype=float)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        return False

    if not np.allclose(matrix, matrix.T, atol=atol):
        return False

    eigenvalues = np.linalg.eigvalsh(matrix)
    return bool(np.all(eigenvalues >= -atol))
