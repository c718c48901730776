import math

import numpy as np
import pytest

from market_sim.convergence import ConvergenceTracker, RunningStats, track_convergence
from tests.helpers import make_result


def test_running_stats_matches_numpy():
    values = np.random.default_rng(4).normal(50.0, 7.0, size=333)
    stats = RunningStats()
    for v in values:
        stats.push(float(v))

    assert stats.n == 333
    assert stats.mean == pytest.approx(values.mean())
    assert stats.variance == pytest.approx(values.var())
    assert stats.min == values.min()
    assert stats.max == values.max()
    assert stats.sem == pytest.approx(values.std() / math.sqrt(333))


def test_running_stats_edge_cases():
    stats = RunningStats()
    assert stats.variance == 0.0
    stats.push(0.0)
    assert stats.sem == math.inf
    assert stats.cv_mean == math.inf


def _steady(i):
    bump = float(i % 2)
    return make_result(net_profit=100.0 + bump, roi=20.0 + bump, units_sold=200 + int(bump))


def test_tracker_snapshots_on_interval():
    tracker = ConvergenceTracker(check_interval=10)
    snapshots = [tracker.record(_steady(i)) for i in range(35)]
    taken = [s for s in snapshots if s is not None]

    assert [s["iteration"] for s in taken] == [10, 20, 30]
    assert len(tracker.history) == 3


def test_tracker_needs_twenty_observations():
    tracker = track_convergence([_steady(i) for i in range(30)])
    assert tracker.history[0]["all_converged"] is False
    assert tracker.converged
    assert tracker.converged_at == 20


def test_noisy_kpi_does_not_converge():
    results = [make_result(net_profit=(-1.0) ** i * 1000.0) for i in range(40)]
    tracker = track_convergence(results, kpis=("net_profit",))
    assert not tracker.converged
    assert tracker.summary()["converged_at"] is None


def test_history_frame_is_long_form():
    tracker = track_convergence([_steady(i) for i in range(20)], kpis=("net_profit", "roi"))
    frame = tracker.history_frame()
    assert len(frame) == 4
    assert set(frame["kpi"]) == {"net_profit", "roi"}
    assert (frame["lower"] <= frame["upper"]).all()


def test_tracker_rejects_bad_arguments():
    with pytest.raises(ValueError):
        ConvergenceTracker(kpis=())
    with pytest.raises(ValueError):
        ConvergenceTracker(check_interval=0)
