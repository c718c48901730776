"""
Convergence Diagnostics
=======================
Running estimates of key outcome means and a stopping diagnostic based on
the relative standard error of each mean.

Mathematical Foundation:
    Welford update:   δ = x − μₙ₋₁,  μₙ = μₙ₋₁ + δ/n,  M₂ += δ · (x − μₙ)
    Variance (pop.):  σ² = M₂ / n
    SEM:              σ / √n
    CV of mean:       100 · SEM / |μ|      (converged when ≤ threshold, n ≥ 20)
"""

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from market_sim.market_model import TrialResult

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────
DEFAULT_KPIS = ("net_profit", "roi", "units_sold")
MIN_OBSERVATIONS: int = 20
CI_Z: float = 1.96


class RunningStats:
    """Welford's online mean and variance."""

    def __init__(self) -> None:
        self.n = 0
        self.mean = 0.0
        self._m2 = 0.0
        self.min = math.inf
        self.max = -math.inf

    def push(self, x: float) -> None:
        self.n += 1
        delta = x - self.mean
        self.mean += delta / self.n
        self._m2 += delta * (x - self.mean)
        self.min = min(self.min, x)
        self.max = max(self.max, x)

    @property
    def variance(self) -> float:
        return self._m2 / self.n if self.n > 1 else 0.0

    @property
    def std(self) -> float:
        return math.sqrt(self.variance)

    @property
    def sem(self) -> float:
        return self.std / math.sqrt(self.n) if self.n > 1 else math.inf

    @property
    def cv_mean(self) -> float:
        """Standard error as a percentage of |mean|; inf near a zero mean."""
        return (self.sem / abs(self.mean)) * 100.0 if abs(self.mean) > 1e-10 else math.inf


class ConvergenceTracker:
    """
    Track convergence of several KPIs as trial results arrive.

    Parameters
    ----------
    kpis : sequence of str
        ``TrialResult`` fields to track.
    check_interval : int
        A snapshot is taken every ``check_interval`` results.
    threshold : float
        Maximum CV of the mean (in %) for a KPI to count as converged.
    """

    def __init__(
        self,
        kpis: Sequence[str] = DEFAULT_KPIS,
        check_interval: int = 10,
        threshold: float = 1.0,
    ) -> None:
        if not kpis:
            raise ValueError("at least one KPI is required")
        if check_interval < 1:
            raise ValueError(f"check_interval must be >= 1, got {check_interval}")
        self.kpis = tuple(kpis)
        self.check_interval = check_interval
        self.threshold = threshold
        self.stats: Dict[str, RunningStats] = {k: RunningStats() for k in self.kpis}
        self.history: List[Dict[str, object]] = []
        self.converged = False
        self.converged_at: Optional[int] = None

    def record(self, result: TrialResult) -> Optional[Dict[str, object]]:
        """Add one result; returns a snapshot on check intervals, else None."""
        for kpi in self.kpis:
            value = getattr(result, kpi, None)
            if value is not None:
                self.stats[kpi].push(float(value))

        n = self.stats[self.kpis[0]].n
        if n == 0 or n % self.check_interval:
            return None

        snapshot = self._snapshot(n)
        self.history.append(snapshot)
        if not self.converged and snapshot["all_converged"]:
            self.converged = True
            self.converged_at = n
            logger.debug("All KPIs converged after %d results", n)
        return snapshot

    def _snapshot(self, iteration: int) -> Dict[str, object]:
        kpis: Dict[str, Dict[str, float]] = {}
        for kpi, s in self.stats.items():
            kpis[kpi] = {
                "mean": s.mean,
                "std": s.std,
                "sem": s.sem,
                "cv_mean": s.cv_mean,
                "n": s.n,
                "converged": s.cv_mean <= self.threshold and s.n >= MIN_OBSERVATIONS,
            }
        return {
            "iteration": iteration,
            "kpis": kpis,
            "all_converged": all(k["converged"] for k in kpis.values()),
        }

    def history_frame(self) -> pd.DataFrame:
        """
        Snapshot history in long form.

        Columns: iteration, kpi, mean, lower, upper, cv_mean.
        """
        rows = []
        for snap in self.history:
            for kpi, s in snap["kpis"].items():
                rows.append({
                    "iteration": snap["iteration"],
                    "kpi": kpi,
                    "mean": s["mean"],
                    "lower": s["mean"] - CI_Z * s["sem"],
                    "upper": s["mean"] + CI_Z * s["sem"],
                    "cv_mean": s["cv_mean"],
                })
        return pd.DataFrame(rows, columns=["iteration", "kpi", "mean", "lower", "upper", "cv_mean"])

    def summary(self) -> Dict[str, object]:
        return {
            "converged": self.converged,
            "converged_at": self.converged_at,
            "checks": len(self.history),
            "final": self.history[-1] if self.history else None,
        }


def track_convergence(
    results: Iterable[TrialResult],
    kpis: Sequence[str] = DEFAULT_KPIS,
    check_interval: int = 10,
    threshold: float = 1.0,
) -> ConvergenceTracker:
    """Replay results in order through a fresh tracker."""
    tracker = ConvergenceTracker(kpis, check_interval, threshold)
    for result in results:
        tracker.record(result)
    return tracker
