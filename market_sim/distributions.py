"""
Probability Distribution Module
===============================
Seedable pseudo-random generator and the parametric samplers used to model
uncertainty in the weekly market model.

Mathematical Foundation:
    Uniform:      Mulberry32 recurrence on 32-bit unsigned state, u ∈ [0, 1)
    Normal:       Box–Muller   z = √(−2 ln u₁) · cos(2π u₂)
    Truncated:    normal draws rejected until inside [lo, hi]
    Beta:         Gₐ / (Gₐ + G_b), gamma variates by Marsaglia–Tsang
    Triangular:   inverse CDF, branch at F(c) = (c − a) / (b − a)
    Log-normal:   X = exp(μ + σ z), with moment matching
                  σ² = ln(1 + s²/m²),  μ = ln(m² / √(s² + m²))

Every sampler draws exclusively from a ``PRNG`` instance, so a given seed
reproduces the same stream in any process.
"""

import math
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import numpy as np
from scipy.special import betaln
from scipy.stats import norm, truncnorm

from market_sim.exceptions import ConfigurationError


# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────
UINT32_MASK: int = 0xFFFFFFFF
UINT32_RANGE: float = 4294967296.0
MAX_SEED: int = 2147483647
MIN_UNIFORM: float = 1e-10
MIN_TRUNCATION_MASS: float = 1e-4


class PRNG:
    """
    Mulberry32 deterministic uniform generator.

    Parameters
    ----------
    seed : int
        Any integer; reduced to its low 32 bits.
    """

    def __init__(self, seed: int) -> None:
        self._state = int(seed) & UINT32_MASK

    @property
    def state(self) -> int:
        return self._state

    def next(self) -> float:
        """Return the next uniform draw in [0, 1)."""
        self._state = (self._state + 0x6D2B79F5) & UINT32_MASK
        t = self._state
        t = ((t ^ (t >> 15)) * (t | 1)) & UINT32_MASK
        t ^= (t + (((t ^ (t >> 7)) * (t | 61)) & UINT32_MASK)) & UINT32_MASK
        return ((t ^ (t >> 14)) & UINT32_MASK) / UINT32_RANGE

    def next_seed(self) -> int:
        """Derive a child seed in [0, 2^31 − 1) from the stream."""
        return int(self.next() * MAX_SEED)

    def __repr__(self) -> str:
        return f"PRNG(state={self._state})"


def box_muller(rng: PRNG) -> float:
    """
    Draw one standard normal variate.

    The first uniform is clamped to ``MIN_UNIFORM`` so the logarithm is
    always finite.
    """
    u1 = max(MIN_UNIFORM, rng.next())
    u2 = rng.next()
    return math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)


def standard_normals(n: int, rng: PRNG) -> np.ndarray:
    """Draw ``n`` independent standard normals as an array."""
    return np.array([box_muller(rng) for _ in range(n)], dtype=float)


# ─────────────────────────────────────────────────────────────
# Distributions
# ─────────────────────────────────────────────────────────────

class Distribution(ABC):
    """Base class; subclasses implement ``sample``, ``mean``, ``variance`` and ``pdf``."""

    kind: str = "base"

    def __init__(self, **params: float) -> None:
        self.params: Dict[str, float] = dict(params)

    @abstractmethod
    def sample(self, rng: PRNG) -> float:
        """Draw one variate from ``rng``."""

    @abstractmethod
    def mean(self) -> float:
        """Analytic mean."""

    @abstractmethod
    def variance(self) -> float:
        """Analytic variance."""

    @abstractmethod
    def pdf(self, x: float) -> float:
        """Density at ``x``; 0 outside the support."""

    def std(self) -> float:
        return math.sqrt(self.variance())

    def sample_n(self, n: int, rng: PRNG) -> np.ndarray:
        """Generate ``n`` samples from a single stream."""
        return np.array([self.sample(rng) for _ in range(n)], dtype=float)

    def to_dict(self) -> Dict[str, object]:
        return {"type": self.kind, "params": dict(self.params)}

    def __repr__(self) -> str:
        args = ", ".join(f"{k}={v!r}" for k, v in self.params.items())
        return f"{type(self).__name__}({args})"


def _point_mass(x: float, at: float) -> float:
    return math.inf if x == at else 0.0


class NormalDistribution(Distribution):
    kind = "normal"

    def __init__(self, mu: float = 0.0, sigma: float = 1.0) -> None:
        if sigma < 0:
            raise ConfigurationError(f"sigma must be non-negative, got {sigma}")
        super().__init__(mu=mu, sigma=sigma)

    def sample(self, rng: PRNG) -> float:
        return self.params["mu"] + self.params["sigma"] * box_muller(rng)

    def mean(self) -> float:
        return self.params["mu"]

    def variance(self) -> float:
        return self.params["sigma"] ** 2

    def pdf(self, x: float) -> float:
        mu, sigma = self.params["mu"], self.params["sigma"]
        if sigma == 0:
            return _point_mass(x, mu)
        return float(norm.pdf(x, loc=mu, scale=sigma))


class TruncatedNormalDistribution(Distribution):
    """
    Normal(μ, σ) restricted to [lo, hi], sampled by rejection.

    Draws are repeated until one lands inside the bounds, so the interval
    must carry at least ``MIN_TRUNCATION_MASS`` of the untruncated
    probability.  Mean, variance and density are the exact truncated ones.
    """

    kind = "truncated_normal"

    def __init__(
        self,
        mu: float = 0.0,
        sigma: float = 1.0,
        lo: float = -math.inf,
        hi: float = math.inf,
    ) -> None:
        if sigma < 0:
            raise ConfigurationError(f"sigma must be non-negative, got {sigma}")
        if lo > hi:
            raise ConfigurationError(f"truncation bounds inverted: lo={lo} > hi={hi}")
        super().__init__(mu=mu, sigma=sigma, lo=lo, hi=hi)
        if sigma == 0:
            if not lo <= mu <= hi:
                raise ConfigurationError(f"degenerate mu={mu} lies outside [{lo}, {hi}]")
        elif self._mass() < MIN_TRUNCATION_MASS:
            raise ConfigurationError(
                f"[{lo}, {hi}] holds less than {MIN_TRUNCATION_MASS} of N({mu}, {sigma}²)"
            )

    def _standard_bounds(self) -> Tuple[float, float]:
        mu, sigma = self.params["mu"], self.params["sigma"]
        return (self.params["lo"] - mu) / sigma, (self.params["hi"] - mu) / sigma

    def _mass(self) -> float:
        a, b = self._standard_bounds()
        return float(norm.cdf(b) - norm.cdf(a))

    def sample(self, rng: PRNG) -> float:
        mu, sigma, lo, hi = (self.params[k] for k in ("mu", "sigma", "lo", "hi"))
        while True:
            x = mu + sigma * box_muller(rng)
            if lo <= x <= hi:
                return x

    def mean(self) -> float:
        if self.params["sigma"] == 0:
            return self.params["mu"]
        a, b = self._standard_bounds()
        return float(truncnorm.mean(a, b, loc=self.params["mu"], scale=self.params["sigma"]))

    def variance(self) -> float:
        if self.params["sigma"] == 0:
            return 0.0
        a, b = self._standard_bounds()
        return float(truncnorm.var(a, b, loc=self.params["mu"], scale=self.params["sigma"]))

    def pdf(self, x: float) -> float:
        mu, sigma = self.params["mu"], self.params["sigma"]
        if not self.params["lo"] <= x <= self.params["hi"]:
            return 0.0
        if sigma == 0:
            return _point_mass(x, mu)
        return float(norm.pdf(x, loc=mu, scale=sigma)) / self._mass()


def gamma_variate(shape: float, rng: PRNG) -> float:
    """
    Gamma(shape, 1) variate by Marsaglia–Tsang squeeze-and-reject.

    For ``shape < 1`` the boost ``G(k) = G(k + 1) · U^(1/k)`` is applied.
    """
    if shape < 1.0:
        return gamma_variate(shape + 1.0, rng) * rng.next() ** (1.0 / shape)
    d = shape - 1.0 / 3.0
    c = 1.0 / math.sqrt(9.0 * d)
    while True:
        x = box_muller(rng)
        v = 1.0 + c * x
        if v <= 0:
            continue
        v = v * v * v
        u = rng.next()
        if u < 1.0 - 0.0331 * x ** 4:
            return d * v
        if math.log(max(u, MIN_UNIFORM)) < 0.5 * x * x + d * (1.0 - v + math.log(v)):
            return d * v


class BetaDistribution(Distribution):
    """Beta(α, β) on (0, 1), drawn as Gₐ / (Gₐ + G_b) from two gamma variates."""

    kind = "beta"

    def __init__(self, alpha: float = 2.0, beta: float = 5.0) -> None:
        if alpha <= 0 or beta <= 0:
            raise ConfigurationError(f"beta shapes must be positive, got ({alpha}, {beta})")
        super().__init__(alpha=alpha, beta=beta)

    def sample(self, rng: PRNG) -> float:
        a = gamma_variate(self.params["alpha"], rng)
        b = gamma_variate(self.params["beta"], rng)
        return a / (a + b)

    def mean(self) -> float:
        return self.params["alpha"] / (self.params["alpha"] + self.params["beta"])

    def variance(self) -> float:
        a, b = self.params["alpha"], self.params["beta"]
        return (a * b) / ((a + b) ** 2 * (a + b + 1.0))

    def pdf(self, x: float) -> float:
        if x <= 0.0 or x >= 1.0:
            return 0.0
        a, b = self.params["alpha"], self.params["beta"]
        return math.exp((a - 1.0) * math.log(x) + (b - 1.0) * math.log1p(-x) - betaln(a, b))


class UniformDistribution(Distribution):
    kind = "uniform"

    def __init__(self, lo: float = 0.0, hi: float = 1.0) -> None:
        if lo > hi:
            raise ConfigurationError(f"uniform bounds inverted: lo={lo} > hi={hi}")
        super().__init__(lo=lo, hi=hi)

    def sample(self, rng: PRNG) -> float:
        lo, hi = self.params["lo"], self.params["hi"]
        return lo + rng.next() * (hi - lo)

    def mean(self) -> float:
        return (self.params["lo"] + self.params["hi"]) / 2.0

    def variance(self) -> float:
        return (self.params["hi"] - self.params["lo"]) ** 2 / 12.0

    def pdf(self, x: float) -> float:
        lo, hi = self.params["lo"], self.params["hi"]
        if hi == lo:
            return _point_mass(x, lo)
        return 1.0 / (hi - lo) if lo <= x <= hi else 0.0


class TriangularDistribution(Distribution):
    """
    Triangular distribution on [lo, hi] with peak at ``mode``.

    Sampled by inverting the piecewise CDF:

        x = lo + √(u (hi − lo)(mode − lo))        if u < F(mode)
        x = hi − √((1 − u)(hi − lo)(hi − mode))   otherwise
    """

    kind = "triangular"

    def __init__(self, lo: float = 0.0, mode: float = 0.5, hi: float = 1.0) -> None:
        if not lo <= mode <= hi:
            raise ConfigurationError(
                f"triangular requires lo <= mode <= hi, got ({lo}, {mode}, {hi})"
            )
        super().__init__(lo=lo, mode=mode, hi=hi)

    def sample(self, rng: PRNG) -> float:
        lo, mode, hi = self.params["lo"], self.params["mode"], self.params["hi"]
        if hi == lo:
            return lo
        u = rng.next()
        fc = (mode - lo) / (hi - lo)
        if u < fc:
            return lo + math.sqrt(u * (hi - lo) * (mode - lo))
        return hi - math.sqrt((1.0 - u) * (hi - lo) * (hi - mode))

    def mean(self) -> float:
        return (self.params["lo"] + self.params["mode"] + self.params["hi"]) / 3.0

    def variance(self) -> float:
        a, c, b = self.params["lo"], self.params["mode"], self.params["hi"]
        return (a * a + b * b + c * c - a * b - a * c - b * c) / 18.0

    def pdf(self, x: float) -> float:
        a, c, b = self.params["lo"], self.params["mode"], self.params["hi"]
        if b == a:
            return _point_mass(x, a)
        if x < a or x > b:
            return 0.0
        if x < c:
            return 2.0 * (x - a) / ((b - a) * (c - a))
        if x == c:
            return 2.0 / (b - a)
        return 2.0 * (b - x) / ((b - a) * (b - c))


class LogNormalDistribution(Distribution):
    """Log-normal distribution parametrised by the underlying normal (μ, σ)."""

    kind = "lognormal"

    def __init__(self, mu: float = 0.0, sigma: float = 1.0) -> None:
        if sigma < 0:
            raise ConfigurationError(f"sigma must be non-negative, got {sigma}")
        super().__init__(mu=mu, sigma=sigma)

    @classmethod
    def from_moments(cls, mean: float, std: float) -> "LogNormalDistribution":
        """
        Build a log-normal whose own mean and standard deviation match.

        Parameters
        ----------
        mean : float
            Target mean of X (must be > 0).
        std : float
            Target standard deviation of X (must be >= 0).

        Returns
        -------
        LogNormalDistribution
        """
        if mean <= 0:
            raise ConfigurationError(f"log-normal mean must be positive, got {mean}")
        if std < 0:
            raise ConfigurationError(f"log-normal std must be non-negative, got {std}")
        sigma = math.sqrt(math.log(1.0 + (std * std) / (mean * mean)))
        mu = math.log(mean * mean / math.sqrt(std * std + mean * mean))
        return cls(mu=mu, sigma=sigma)

    def sample(self, rng: PRNG) -> float:
        return math.exp(self.params["mu"] + self.params["sigma"] * box_muller(rng))

    def mean(self) -> float:
        return math.exp(self.params["mu"] + self.params["sigma"] ** 2 / 2.0)

    def variance(self) -> float:
        mu, sigma = self.params["mu"], self.params["sigma"]
        return (math.exp(sigma ** 2) - 1.0) * math.exp(2.0 * mu + sigma ** 2)

    def pdf(self, x: float) -> float:
        if x <= 0:
            return 0.0
        mu, sigma = self.params["mu"], self.params["sigma"]
        if sigma == 0:
            return _point_mass(x, math.exp(mu))
        z = (math.log(x) - mu) / sigma
        return math.exp(-0.5 * z * z) / (x * sigma * math.sqrt(2.0 * math.pi))


_DISTRIBUTIONS = {
    NormalDistribution.kind: NormalDistribution,
    TruncatedNormalDistribution.kind: TruncatedNormalDistribution,
    BetaDistribution.kind: BetaDistribution,
    UniformDistribution.kind: UniformDistribution,
    TriangularDistribution.kind: TriangularDistribution,
    LogNormalDistribution.kind: LogNormalDistribution,
}


def distribution_from_dict(payload: Dict[str, object]) -> Distribution:
    """
    Rebuild a distribution from ``{"type": ..., "params": {...}}``.

    Raises
    ------
    ConfigurationError
        If the type is unknown or the parameters are invalid.
    """
    kind: Optional[str] = payload.get("type")  # type: ignore[assignment]
    factory = _DISTRIBUTIONS.get(kind)
    if factory is None:
        raise ConfigurationError(
            f"Unknown distribution type: {kind!r}. Known: {sorted(_DISTRIBUTIONS)}"
        )
    params = payload.get("params") or {}
    try:
        return factory(**params)  # type: ignore[arg-type]
    except TypeError as exc:
        raise ConfigurationError(f"Invalid parameters for {kind}: {params}") from exc
