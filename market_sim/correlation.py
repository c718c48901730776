"""
Correlated Shock Module
=======================
Generates correlated market shocks from named correlation regimes using an
explicit Cholesky factorisation.

Mathematical Foundation:
    Cholesky:     A = L Lᵀ
                  L_ii = √max(0, a_ii − Σₖ L_ik²)
                  L_ij = (a_ij − Σₖ L_ik L_jk) / L_jj      (0 when L_jj = 0)
    Simulation:   x = L z,  z ~ N(0, I)
    Shock:        adjustment_f = x_f · intensity · 0.1
                  multiplier_f = 1 + adjustment_f

Negative diagonal residuals are clamped to zero rather than rejected, so a
slightly non positive semi-definite regime degrades the affected factor to
zero instead of producing NaN.
"""

import logging
import math
import warnings
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np

from market_sim.distributions import PRNG, standard_normals
from market_sim.exceptions import ConfigurationError, NumericalDegeneracyWarning
from market_sim.statistics import validate_correlation_matrix

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────
RISK_FACTORS: Tuple[str, ...] = (
    "demand",
    "price_elasticity",
    "competitor_aggression",
    "supply_risk",
)

SHOCK_SCALE: float = 0.1
DEFAULT_PRESET: str = "independent"


def cholesky(matrix: np.ndarray) -> np.ndarray:
    """
    Column-by-column Cholesky factorisation with clamped pivots.

    Parameters
    ----------
    matrix : np.ndarray
        Symmetric (n x n) correlation matrix.

    Returns
    -------
    np.ndarray
        Lower triangular factor L with A ≈ L Lᵀ.
    """
    a = np.asarray(matrix, dtype=float)
    n = a.shape[0]
    L = np.zeros((n, n), dtype=float)
    clamped = 0

    for i in range(n):
        for j in range(i + 1):
            s = float(np.dot(L[i, :j], L[j, :j]))
            if i == j:
                residual = a[i, i] - s
                if residual <= 0.0:
                    clamped += 1
                L[i, j] = math.sqrt(max(0.0, residual))
            else:
                L[i, j] = (a[i, j] - s) / L[j, j] if L[j, j] != 0.0 else 0.0

    if clamped:
        logger.warning(
            "Cholesky clamped %d non-positive pivot(s) to zero for a %dx%d matrix",
            clamped, n, n,
        )
        warnings.warn(
            f"{clamped} Cholesky pivot(s) clamped to zero; affected factors degenerate",
            NumericalDegeneracyWarning,
            stacklevel=2,
        )

    return L


def correlated_normals(matrix: np.ndarray, rng: PRNG) -> np.ndarray:
    """
    Draw one vector of standard normals with the given correlation.

    Algorithm:
        1. Factorise A = L Lᵀ
        2. Draw n independent standard normals z
        3. Return L z
    """
    L = cholesky(matrix)
    z = standard_normals(L.shape[0], rng)
    return L @ z


# ─────────────────────────────────────────────────────────────
# Correlation Regimes
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True, eq=False)
class CorrelationPreset:
    """A named correlation regime over the market risk factors."""

    name: str
    matrix: np.ndarray
    labels: Tuple[str, ...] = RISK_FACTORS
    description: str = ""

    def __post_init__(self) -> None:
        matrix = np.array(self.matrix, dtype=float)
        n = len(self.labels)
        if matrix.shape != (n, n):
            raise ConfigurationError(
                f"Preset {self.name!r}: matrix shape {matrix.shape} does not match {n} labels"
            )
        if not np.allclose(matrix, matrix.T):
            raise ConfigurationError(f"Preset {self.name!r}: matrix is not symmetric")
        if not np.allclose(np.diag(matrix), 1.0):
            raise ConfigurationError(f"Preset {self.name!r}: diagonal must be 1")
        matrix.setflags(write=False)
        object.__setattr__(self, "matrix", matrix)

    @property
    def is_positive_semidefinite(self) -> bool:
        return validate_correlation_matrix(self.matrix)


MARKET_CORRELATIONS: Dict[str, CorrelationPreset] = {
    "recession": CorrelationPreset(
        name="recession",
        description="Falling demand with rising competitor aggression",
        matrix=np.array([
            [1.00, 0.60, -0.50, 0.30],
            [0.60, 1.00, -0.30, 0.10],
            [-0.50, -0.30, 1.00, 0.20],
            [0.30, 0.10, 0.20, 1.00],
        ]),
    ),
    "growth": CorrelationPreset(
        name="growth",
        description="Expanding demand with muted competitive response",
        matrix=np.array([
            [1.00, 0.30, -0.20, -0.10],
            [0.30, 1.00, -0.10, 0.05],
            [-0.20, -0.10, 1.00, 0.10],
            [-0.10, 0.05, 0.10, 1.00],
        ]),
    ),
    "independent": CorrelationPreset(
        name="independent",
        description="No co-movement between risk factors",
        matrix=np.eye(len(RISK_FACTORS)),
    ),
}


def get_preset(name: str) -> CorrelationPreset:
    """Look up a regime by name, raising ``ConfigurationError`` if unknown."""
    try:
        return MARKET_CORRELATIONS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown correlation preset {name!r}. Known: {sorted(MARKET_CORRELATIONS)}"
        ) from None


# ─────────────────────────────────────────────────────────────
# Scenario Shocks
# ─────────────────────────────────────────────────────────────

@dataclass
class MarketScenario:
    """Per-trial multiplicative adjustments consumed by the market model."""

    demand_shock: float = 1.0
    price_elasticity_shock: float = 1.0
    competitor_aggression_shock: float = 1.0
    supply_shock: float = 1.0
    correlated_adjustments: Dict[str, float] = field(default_factory=dict)
    preset: Optional[str] = None


_FACTOR_FIELDS: Dict[str, str] = {
    "demand": "demand_shock",
    "price_elasticity": "price_elasticity_shock",
    "competitor_aggression": "competitor_aggression_shock",
    "supply_risk": "supply_shock",
}


def apply_correlated_shocks(
    scenario: MarketScenario,
    preset_name: str,
    rng: PRNG,
    intensity: float = 1.0,
) -> MarketScenario:
    """
    Draw a correlated shock vector and apply it to the scenario in place.

    Parameters
    ----------
    scenario : MarketScenario
        Scenario to adjust.
    preset_name : str
        Key of ``MARKET_CORRELATIONS``; unknown names fall back to
        ``independent``.
    rng : PRNG
        Trial stream.
    intensity : float
        Shock intensity; a unit draw at intensity 1 is a 10% move.

    Returns
    -------
    MarketScenario
        The same scenario, for chaining.
    """
    preset = MARKET_CORRELATIONS.get(preset_name)
    if preset is None:
        logger.warning(
            "Unknown correlation preset %r, using %r", preset_name, DEFAULT_PRESET
        )
        preset = MARKET_CORRELATIONS[DEFAULT_PRESET]

    shocks = correlated_normals(preset.matrix, rng)

    adjustments = {
        label: float(shocks[i]) * intensity * SHOCK_SCALE
        for i, label in enumerate(preset.labels)
    }

    for label, adjustment in adjustments.items():
        attr = _FACTOR_FIELDS.get(label)
        if attr is not None:
            setattr(scenario, attr, 1.0 + adjustment)

    scenario.correlated_adjustments = adjustments
    scenario.preset = preset.name
    return scenario
