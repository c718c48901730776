"""
Stress Testing Module
=====================
Re-runs a launch scenario under each correlation regime and measures how
the headline risk figures move relative to the base configuration.

Stress Scenarios:
    recession     demand and price elasticity fall together while
                  competitor aggression rises
    growth        demand expands with a muted competitive response
    independent   no co-movement between risk factors

All regimes share the base run's seed (common random numbers), so the
differences come from the regime rather than from sampling noise.
"""

import logging
from typing import Dict, Optional, Sequence

from market_sim.aggregator import MonteCarloResults
from market_sim.config import ScenarioOverrides, SimulationConfig
from market_sim.correlation import MARKET_CORRELATIONS
from market_sim.runner import MonteCarloEngine, resolve_seed

logger = logging.getLogger(__name__)


# (report section, key)
STRESS_METRICS: Dict[str, tuple] = {
    "net_profit_var_95": ("profitability", "net_profit_var_95"),
    "inventory_var_95": ("inventory", "inventory_var_95"),
    "inventory_cvar_95": ("inventory", "inventory_cvar_95"),
    "prob_negative_profit": ("inventory", "prob_negative_profit"),
}


def run_regime_scenario(
    config: SimulationConfig,
    preset: str,
    engine: MonteCarloEngine,
) -> MonteCarloResults:
    """
    Run Monte Carlo with correlated shocks drawn from ``preset``.

    Parameters
    ----------
    config : SimulationConfig
        Base configuration.
    preset : str
        Key of ``MARKET_CORRELATIONS``.
    engine : MonteCarloEngine
        Engine used for the run.

    Returns
    -------
    MonteCarloResults
        Results including the risk report.
    """
    stressed = config.with_overrides(ScenarioOverrides(correlation_preset=preset))
    return engine.run(stressed, include_risk=True)


def _headline(report: Optional[Dict[str, Dict[str, object]]]) -> Dict[str, float]:
    if report is None:
        raise ValueError("risk report is required for stress comparison")
    return {name: float(report[section][key]) for name, (section, key) in STRESS_METRICS.items()}


def compute_stress_impact(
    base_report: Dict[str, Dict[str, object]],
    stressed_report: Dict[str, Dict[str, object]],
) -> Dict[str, float]:
    """
    Compare base and stressed risk reports.

    Parameters
    ----------
    base_report : dict
        ``build_risk_report`` output of the base run.
    stressed_report : dict
        ``build_risk_report`` output of the stressed run.

    Returns
    -------
    dict
        ``<metric>_base``, ``<metric>_stressed`` and ``<metric>_pct_change``
        for every headline metric; the change is 0 when the base is 0.
    """
    base = _headline(base_report)
    stressed = _headline(stressed_report)
    impact = {}

    for m in STRESS_METRICS:
        base_val = base[m]
        stress_val = stressed[m]
        pct_change = ((stress_val - base_val) / abs(base_val)) * 100 if base_val != 0 else 0.0
        impact[f"{m}_base"] = base_val
        impact[f"{m}_stressed"] = stress_val
        impact[f"{m}_pct_change"] = pct_change

    return impact


def full_regime_analysis(
    config: SimulationConfig,
    engine: MonteCarloEngine,
    presets: Optional[Sequence[str]] = None,
) -> Dict[str, Dict[str, object]]:
    """
    Execute the base run and one run per correlation regime.

    Parameters
    ----------
    config : SimulationConfig
        Base configuration; its own preset defines the baseline.
    engine : MonteCarloEngine
        Engine shared by every run.
    presets : sequence of str, optional
        Regimes to test (default: every entry of ``MARKET_CORRELATIONS``).

    Returns
    -------
    dict
        ``"base"`` -> results, plus ``preset -> {"results", "impact"}``.
    """
    config = resolve_seed(config)
    presets = list(presets) if presets is not None else list(MARKET_CORRELATIONS)

    base = engine.run(config, include_risk=True)
    analysis: Dict[str, Dict[str, object]] = {"base": {"results": base}}

    for preset in presets:
        logger.info("Stress regime %r (seed=%d)", preset, config.seed)
        results = run_regime_scenario(config, preset, engine)
        analysis[preset] = {
            "results": results,
            "impact": compute_stress_impact(base.risk, results.risk),
        }

    return analysis
