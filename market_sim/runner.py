"""
Monte Carlo Simulation Engine
=============================
Runs many independent, seeded trials of the weekly market model and turns
them into aggregated statistics and a risk report.

Seed derivation:
    run seed  s                   (config.seed, or drawn from the clock)
    batch i   sᵢ = s + 1000 · i
    trial j   PRNG(sᵢ) master stream → ⌊u · 2147483647⌋

A trial is a pure function of (config, trial seed), and the batch plan
depends only on the run seed and the executor's unit count, so the same
config and unit count reproduce the same raw results on either executor.
"""

import logging
import time
from dataclasses import replace
from typing import List, Optional

from market_sim.aggregator import MonteCarloResults, aggregate, average_weekly
from market_sim.config import MAX_SEED, SimulationConfig
from market_sim.convergence import track_convergence
from market_sim.correlation import MarketScenario, apply_correlated_shocks
from market_sim.distributions import PRNG
from market_sim.exceptions import ConfigurationError, SimulationError
from market_sim.executor import (
    Batch,
    BatchExecutor,
    SequentialBatchExecutor,
    distribute,
    plan_batches,
)
from market_sim.market_model import MarketModel, TrialResult, WeeklyMarketModel
from market_sim.risk import build_risk_report

logger = logging.getLogger(__name__)

__all__ = [
    "Batch",
    "plan_batches",
    "run_trial",
    "run_batch",
    "resolve_seed",
    "MonteCarloEngine",
]


def run_trial(
    config: SimulationConfig,
    seed: int,
    model: Optional[MarketModel] = None,
) -> TrialResult:
    """
    Execute one trial from its own seed.

    Algorithm:
        1. Fresh PRNG(seed) and a neutral MarketScenario
        2. Correlated shocks when a correlation preset is configured
        3. Delegate the weekly loop to the market model

    Parameters
    ----------
    config : SimulationConfig
        Validated run configuration.
    seed : int
        Trial seed.
    model : MarketModel, optional
        Market model (default: ``WeeklyMarketModel``).

    Returns
    -------
    TrialResult
        Result tagged with the seed that produced it.
    """
    rng = PRNG(seed)
    scenario = MarketScenario()
    if config.market.correlation_preset is not None:
        apply_correlated_shocks(
            scenario, config.market.correlation_preset, rng, config.market.shock_intensity
        )
    result = (model or WeeklyMarketModel()).simulate_trial(config, scenario, rng)
    return replace(result, seed=seed)


def run_batch(
    batch: Batch,
    config: SimulationConfig,
    model: Optional[MarketModel] = None,
) -> List[TrialResult]:
    """Run every trial of a batch; trial seeds come from the batch master stream."""
    model = model or WeeklyMarketModel()
    master = PRNG(batch.seed)
    return [run_trial(config, master.next_seed(), model) for _ in range(batch.size)]


def resolve_seed(config: SimulationConfig) -> SimulationConfig:
    """Return ``config`` with a concrete seed, drawing one from the clock if unset."""
    if config.seed is not None:
        return config
    seed = int(time.time() * 1000) % MAX_SEED
    logger.info("No seed configured; using clock-derived seed %d", seed)
    return replace(config, seed=seed)


class MonteCarloEngine:
    """
    Simulation kernel: plan, dispatch, join, aggregate.

    The engine keeps no state between runs; the executor and market model
    are injected and may be shared.

    Parameters
    ----------
    executor : BatchExecutor, optional
        Execution strategy (default: ``SequentialBatchExecutor``).
    model : MarketModel, optional
        Per-trial market model (default: ``WeeklyMarketModel``).
    """

    def __init__(
        self,
        executor: Optional[BatchExecutor] = None,
        model: Optional[MarketModel] = None,
    ) -> None:
        self.executor = executor or SequentialBatchExecutor()
        self.model = model or WeeklyMarketModel()

    def run(self, config: SimulationConfig, include_risk: bool = True) -> MonteCarloResults:
        """
        Execute ``config.iterations`` trials.

        Parameters
        ----------
        config : SimulationConfig
            Validated configuration.
        include_risk : bool
            Attach the inventory / profitability risk report.

        Returns
        -------
        MonteCarloResults

        Raises
        ------
        ConfigurationError
            If ``config`` is not a ``SimulationConfig``.
        SimulationError
            If any trial fails; no partial result is returned.
        """
        if not isinstance(config, SimulationConfig):
            raise ConfigurationError(
                f"expected SimulationConfig, got {type(config).__name__}"
            )
        config = resolve_seed(config)

        start = time.perf_counter()
        batches = plan_batches(config.iterations, self.executor.unit_count, config.seed)
        logger.info(
            "Running %d trials in %d batches (seed=%d, executor=%s)",
            config.iterations, len(batches), config.seed, self.executor.kind,
        )

        raw_results = distribute(
            self.executor, config.iterations, config.seed, config, self.model
        )
        if len(raw_results) != config.iterations:
            raise SimulationError(
                f"expected {config.iterations} trial results, got {len(raw_results)}"
            )

        statistics = aggregate(raw_results)
        weekly = average_weekly(raw_results)
        risk = build_risk_report(raw_results, config.offer.cogs) if include_risk else None
        convergence = track_convergence(raw_results).summary()
        elapsed = time.perf_counter() - start

        logger.info(
            "Completed %d trials in %.2fs (mean net profit %.2f)",
            len(raw_results), elapsed, statistics["net_profit"]["mean"],
        )

        return MonteCarloResults(
            raw_results=raw_results,
            statistics=statistics,
            weekly_averages=weekly,
            risk=risk,
            seed=config.seed,
            batches=len(batches),
            elapsed=elapsed,
            convergence=convergence,
        )

    def run_single(self, config: SimulationConfig, trial_seed: int) -> TrialResult:
        """Run one trial in-process; useful for reproducing a single outlier."""
        return run_trial(config, trial_seed, self.model)
