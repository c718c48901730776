"""
Risk Metrics Module
===================
Value-at-Risk and Conditional VaR over simulated outcome distributions,
and the inventory / profitability risk reports built from them.

Mathematical Foundation:
    Loss convention:   larger value = worse outcome
    VaR_c:             L_(k),  k = ⌈c · n⌉ − 1 on the ascending sort (nearest rank)
    CVaR_c:            mean(L_(k), …, L_(n−1))   (tail includes the VaR point)
    Parametric VaR_c:  μ_L + z_c · σ_L           (normal comparison only)

Profit-like quantities are negated before entering VaR and negated back on
the way out, so e.g. ``net_profit_var_95`` reads as the worst-case net
profit at 95% confidence.
"""

import logging
import math
from typing import Dict, Optional, Sequence, Union

import numpy as np
from scipy import stats

from market_sim.aggregator import results_frame
from market_sim.market_model import NEVER_BREAKS_EVEN, TrialResult
from market_sim.statistics import compute_stats, nearest_rank_index

logger = logging.getLogger(__name__)

ArrayLike = Union[Sequence[float], np.ndarray]


# ─────────────────────────────────────────────────────────────
# Empirical VaR / CVaR
# ─────────────────────────────────────────────────────────────

def _sorted_losses(losses: ArrayLike, confidence: float) -> np.ndarray:
    arr = np.asarray(losses, dtype=float).ravel()
    if arr.size == 0:
        raise ValueError("losses must contain at least one value")
    if not np.all(np.isfinite(arr)):
        raise ValueError("losses must be finite")
    if not (0.0 < confidence <= 1.0):
        raise ValueError(f"confidence must be in (0, 1], got {confidence}")
    return np.sort(arr)


def value_at_risk(losses: ArrayLike, confidence: float = 0.95) -> float:
    """
    Nearest-rank Value-at-Risk.

    Parameters
    ----------
    losses : array-like
        Loss sample (larger = worse).
    confidence : float
        Confidence level in (0, 1].

    Returns
    -------
    float
        The sample element at rank ``ceil(confidence * n) - 1``.

    Raises
    ------
    ValueError
        For an empty or non-finite sample, or a confidence outside (0, 1].
    """
    arr = _sorted_losses(losses, confidence)
    return float(arr[nearest_rank_index(arr.size, confidence)])


def conditional_value_at_risk(losses: ArrayLike, confidence: float = 0.95) -> float:
    """
    Conditional VaR: mean of the tail starting at the VaR rank.

    The VaR point itself belongs to the tail, so CVaR >= VaR for every
    sample and CVaR == VaR when the tail is flat.
    """
    arr = _sorted_losses(losses, confidence)
    idx = nearest_rank_index(arr.size, confidence)
    return max(float(np.mean(arr[idx:])), float(arr[idx]))


def parametric_value_at_risk(losses: ArrayLike, confidence: float = 0.95) -> float:
    """
    Normal (variance-covariance) VaR of a loss sample.

    VaR_c = μ + z_c · σ, with σ the population standard deviation.
    ``confidence`` must be in (0, 1); used only as a comparison with the
    empirical figure.
    """
    arr = _sorted_losses(losses, confidence)
    if confidence >= 1.0:
        raise ValueError("parametric VaR needs confidence < 1")
    z = stats.norm.ppf(confidence)
    return float(np.mean(arr) + z * np.std(arr))


def _probability(mask: np.ndarray) -> float:
    return float(np.mean(mask)) if mask.size else 0.0


# ─────────────────────────────────────────────────────────────
# Inventory Risk
# ─────────────────────────────────────────────────────────────

def analyze_inventory_risk(
    results: Sequence[TrialResult],
    unit_cost: float = 50.0,
) -> Optional[Dict[str, object]]:
    """
    Risk of carrying unsold stock.

    Loss series:
        inventory loss     = inventory_remaining · unit_cost
        unprofitable loss  = remaining · unit_cost           if avg margin < 0
                             remaining · max(0, unit_cost − 0.3 · avg margin)
        capital at risk    = inventory_value + marketing_spent
        margin loss        = −margin_pct

    Parameters
    ----------
    results : sequence of TrialResult
        Raw results of a run.
    unit_cost : float
        Cost per unsold unit.

    Returns
    -------
    dict or None
        None when ``results`` is empty.
    """
    if not results:
        return None

    frame = results_frame(results)
    remaining = frame["inventory_remaining"].to_numpy(dtype=float)
    units = frame["units_sold"].to_numpy(dtype=float)
    gross = frame["gross_profit"].to_numpy(dtype=float)
    margin = frame["margin_pct"].to_numpy(dtype=float)
    net = frame["net_profit"].to_numpy(dtype=float)
    unsold = frame["unsold_pct"].to_numpy(dtype=float)

    inventory_losses = remaining * unit_cost

    avg_unit_margin = np.divide(gross, units, out=np.zeros_like(gross), where=units > 0)
    unprofitable_losses = np.where(
        avg_unit_margin < 0,
        remaining * unit_cost,
        remaining * np.maximum(0.0, unit_cost - avg_unit_margin * 0.3),
    )

    capital_at_risk = (
        frame["inventory_value"].to_numpy(dtype=float)
        + frame["marketing_spent"].to_numpy(dtype=float)
    )
    margin_losses = -margin

    return {
        "inventory_var_95": value_at_risk(inventory_losses, 0.95),
        "inventory_var_99": value_at_risk(inventory_losses, 0.99),
        "inventory_cvar_95": conditional_value_at_risk(inventory_losses, 0.95),
        "inventory_cvar_99": conditional_value_at_risk(inventory_losses, 0.99),
        "unprofitable_var_95": value_at_risk(unprofitable_losses, 0.95),
        "unprofitable_var_99": value_at_risk(unprofitable_losses, 0.99),
        "unprofitable_cvar_95": conditional_value_at_risk(unprofitable_losses, 0.95),
        "margin_var_95": -value_at_risk(margin_losses, 0.95),
        "margin_min": float(np.min(margin)),
        "capital_var_99": value_at_risk(capital_at_risk, 0.99),
        "prob_inventory_excess_10pct": _probability(unsold > 10.0),
        "prob_inventory_excess_25pct": _probability(unsold > 25.0),
        "prob_negative_profit": _probability(net < 0.0),
        "prob_margin_below_15": _probability(margin < 15.0),
        "prob_margin_below_20": _probability(margin < 20.0),
        "inventory_loss_stats": compute_stats(inventory_losses),
        "unprofitable_loss_stats": compute_stats(unprofitable_losses),
        "margin_stats": compute_stats(margin),
        "capital_at_risk_stats": compute_stats(capital_at_risk),
    }


# ─────────────────────────────────────────────────────────────
# Profitability Risk
# ─────────────────────────────────────────────────────────────

def analyze_profitability_risk(results: Sequence[TrialResult]) -> Optional[Dict[str, object]]:
    """
    Risk on ROI, net profit and time to break even.

    Returns
    -------
    dict or None
        None when ``results`` is empty.  ``break_even_stats`` is None when
        no trial breaks even, in which case ``prob_no_break_even`` is 1.
    """
    if not results:
        return None

    frame = results_frame(results)
    roi = frame["roi"].to_numpy(dtype=float)
    net = frame["net_profit"].to_numpy(dtype=float)
    break_even = frame["break_even_week"].to_numpy()
    reached = break_even[break_even != NEVER_BREAKS_EVEN].astype(float)

    report: Dict[str, object] = {
        "roi_stats": compute_stats(roi),
        "roi_var_95": -value_at_risk(-roi, 0.95),
        "net_profit_stats": compute_stats(net),
        "net_profit_var_95": -value_at_risk(-net, 0.95),
        "net_profit_cvar_95": -conditional_value_at_risk(-net, 0.95),
        "break_even_stats": compute_stats(reached) if reached.size else None,
        "prob_no_break_even": _probability(break_even == NEVER_BREAKS_EVEN),
        "prob_roi_below_0": _probability(roi < 0.0),
        "prob_roi_above_100": _probability(roi > 100.0),
    }

    if net.size > 1 and np.std(net) > 0:
        report["net_profit_parametric_var_95"] = -parametric_value_at_risk(-net, 0.95)
    else:
        report["net_profit_parametric_var_95"] = report["net_profit_var_95"]

    return report


def build_risk_report(
    results: Sequence[TrialResult],
    unit_cost: float = 50.0,
) -> Optional[Dict[str, Dict[str, object]]]:
    """Combined ``{"inventory": ..., "profitability": ...}`` report, or None when empty."""
    if not results:
        logger.debug("No results; skipping risk report")
        return None
    if not math.isfinite(unit_cost) or unit_cost < 0:
        raise ValueError(f"unit_cost must be a finite non-negative number, got {unit_cost}")
    return {
        "inventory": analyze_inventory_risk(results, unit_cost),
        "profitability": analyze_profitability_risk(results),
    }
