"""
Monte Carlo Market Simulation Engine
====================================
Seeded Monte Carlo simulation of a product launch, implementing:
- Mulberry32 PRNG with normal, truncated-normal, beta, uniform, triangular
  and log-normal samplers
- Correlated market shocks via Cholesky factorisation of regime matrices
- Batch-parallel trial execution with a sequential fallback
- Nearest-rank statistics, confidence intervals and convergence tracking
- Inventory and profitability VaR / CVaR
- Correlation-regime stress testing
"""

from market_sim.aggregator import MonteCarloResults
from market_sim.config import ScenarioOverrides, SimulationConfig
from market_sim.exceptions import (
    ConfigurationError,
    ExecutionUnitError,
    MarketSimError,
    NumericalDegeneracyWarning,
    SimulationError,
)
from market_sim.executor import create_executor
from market_sim.runner import MonteCarloEngine

__version__ = "1.0.0"

__all__ = [
    "ConfigurationError",
    "ExecutionUnitError",
    "MarketSimError",
    "MonteCarloEngine",
    "MonteCarloResults",
    "NumericalDegeneracyWarning",
    "ScenarioOverrides",
    "SimulationConfig",
    "SimulationError",
    "create_executor",
]
