"""
Result Aggregation Module
=========================
Turns the raw per-trial results of a run into distributional summaries,
weekly average curves and the ``MonteCarloResults`` container.

Aggregated metrics (TrialResult field in brackets):
    sales [units_sold], revenue, gross_profit, net_profit, roi,
    margin [margin_pct], inventory_remaining, inventory_value, unsold_pct,
    break_even_week (only trials that break even; None if none do)
"""

from dataclasses import asdict, fields
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from market_sim.market_model import NEVER_BREAKS_EVEN, TrialResult
from market_sim.statistics import compute_stats, confidence_interval


# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────
METRIC_FIELDS: Dict[str, str] = {
    "sales": "units_sold",
    "revenue": "revenue",
    "gross_profit": "gross_profit",
    "net_profit": "net_profit",
    "roi": "roi",
    "margin": "margin_pct",
    "inventory_remaining": "inventory_remaining",
    "inventory_value": "inventory_value",
    "unsold_pct": "unsold_pct",
}

WEEKLY_COLUMNS: List[str] = [
    "units_sold",
    "cumulative_sold",
    "inventory",
    "revenue",
    "avg_conversion",
    "competitor_attractiveness",
    "effective_cogs",
]

_TRIAL_FIELDS = frozenset(f.name for f in fields(TrialResult)) - {"weekly", "seed"}


def results_frame(results: Sequence[TrialResult]) -> pd.DataFrame:
    """One row per trial, without the weekly series."""
    return pd.DataFrame([r.to_dict(include_weekly=False) for r in results])


def _summarise(values: np.ndarray, ci_level: float) -> Dict[str, object]:
    summary: Dict[str, object] = compute_stats(values)
    summary["ci"] = confidence_interval(summary, ci_level)
    return summary


def aggregate(
    results: Sequence[TrialResult],
    ci_level: float = 0.95,
) -> Dict[str, Optional[Dict[str, object]]]:
    """
    Compute per-metric statistics and confidence intervals.

    Parameters
    ----------
    results : sequence of TrialResult
        Raw results of a run.
    ci_level : float
        Level of the confidence interval attached to every metric.

    Returns
    -------
    dict
        ``metric -> stats`` (see ``compute_stats``) with a nested ``ci``.
        ``break_even_week`` is None when no trial breaks even.
    """
    if not results:
        return {}

    frame = results_frame(results)
    statistics: Dict[str, Optional[Dict[str, object]]] = {
        metric: _summarise(frame[column].to_numpy(dtype=float), ci_level)
        for metric, column in METRIC_FIELDS.items()
    }

    break_even = frame.loc[frame["break_even_week"] != NEVER_BREAKS_EVEN, "break_even_week"]
    statistics["break_even_week"] = (
        _summarise(break_even.to_numpy(dtype=float), ci_level) if len(break_even) else None
    )
    return statistics


def average_weekly(results: Sequence[TrialResult]) -> pd.DataFrame:
    """
    Per-week mean of every weekly series across trials.

    Returns
    -------
    pd.DataFrame
        Index ``week``; columns ``WEEKLY_COLUMNS``.  Empty when no trial
        carries a weekly series.
    """
    rows = [asdict(point) for r in results for point in r.weekly]
    if not rows:
        return pd.DataFrame(columns=WEEKLY_COLUMNS, index=pd.Index([], name="week"))
    frame = pd.DataFrame(rows)
    return frame.groupby("week")[WEEKLY_COLUMNS].mean()


# ─────────────────────────────────────────────────────────────
# Results Container
# ─────────────────────────────────────────────────────────────

class MonteCarloResults:
    """
    Outcome of one ``MonteCarloEngine.run``.

    Attributes
    ----------
    raw_results : list of TrialResult
        Every trial, in batch order.
    statistics : dict
        Output of ``aggregate``.
    weekly_averages : pd.DataFrame
        Output of ``average_weekly``.
    risk : dict or None
        Output of ``risk.build_risk_report`` when requested.
    seed : int
        Seed the run actually used.
    batches : int
        Number of batches dispatched.
    elapsed : float
        Wall-clock seconds spent in dispatch and aggregation.
    convergence : dict or None
        Summary of ``ConvergenceTracker`` over the run.
    """

    def __init__(
        self,
        raw_results: List[TrialResult],
        statistics: Dict[str, Optional[Dict[str, object]]],
        weekly_averages: pd.DataFrame,
        risk: Optional[Dict[str, object]] = None,
        seed: Optional[int] = None,
        batches: int = 0,
        elapsed: float = 0.0,
        convergence: Optional[Dict[str, object]] = None,
    ) -> None:
        self.raw_results = raw_results
        self.statistics = statistics
        self.weekly_averages = weekly_averages
        self.risk = risk
        self.seed = seed
        self.batches = batches
        self.elapsed = elapsed
        self.convergence = convergence

    @property
    def iterations(self) -> int:
        return len(self.raw_results)

    def get_statistics(self, metric: str) -> Optional[Dict[str, object]]:
        if metric not in self.statistics:
            raise KeyError(f"Unknown metric {metric!r}. Known: {sorted(self.statistics)}")
        return self.statistics[metric]

    def get_final_values(self, field: str) -> np.ndarray:
        """Per-trial values of a ``TrialResult`` field (or metric alias)."""
        column = METRIC_FIELDS.get(field, field)
        if column not in _TRIAL_FIELDS:
            raise KeyError(f"Unknown trial field {field!r}")
        return np.array([getattr(r, column) for r in self.raw_results], dtype=float)

    def probability(self, field: str, predicate: Callable[[np.ndarray], np.ndarray]) -> float:
        """
        Fraction of trials for which ``predicate`` holds.

        Examples
        --------
        >>> results.probability("net_profit", lambda v: v < 0)
        """
        values = self.get_final_values(field)
        if values.size == 0:
            return 0.0
        return float(np.mean(predicate(values)))

    def to_frame(self) -> pd.DataFrame:
        return results_frame(self.raw_results)

    def to_dict(self, include_raw: bool = True) -> Dict[str, object]:
        """
        External output contract.

        ``{<metric>: stats, "weeklyAverages": [...], "rawResults": [...], "risk": ...}``
        plus ``iterations`` and ``seed``.
        """
        output: Dict[str, object] = {"iterations": self.iterations, "seed": self.seed}
        output.update(self.statistics)
        output["weeklyAverages"] = self.weekly_averages.reset_index().to_dict("records")
        if include_raw:
            output["rawResults"] = [r.to_dict(include_weekly=False) for r in self.raw_results]
        output["risk"] = self.risk
        return output

    def __repr__(self) -> str:
        return (
            f"MonteCarloResults(iterations={self.iterations}, seed={self.seed}, "
            f"batches={self.batches}, elapsed={self.elapsed:.3f}s)"
        )
