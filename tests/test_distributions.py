import math

import numpy as np
import pytest

from market_sim.distributions import (
    MAX_SEED,
    PRNG,
    BetaDistribution,
    Distribution,
    LogNormalDistribution,
    NormalDistribution,
    TriangularDistribution,
    TruncatedNormalDistribution,
    UniformDistribution,
    box_muller,
    distribution_from_dict,
    gamma_variate,
)
from market_sim.exceptions import ConfigurationError


def test_prng_same_seed_same_stream():
    a, b = PRNG(42), PRNG(42)
    assert [a.next() for _ in range(100)] == [b.next() for _ in range(100)]


def test_prng_different_seeds_diverge():
    a, b = PRNG(1), PRNG(2)
    assert [a.next() for _ in range(10)] != [b.next() for _ in range(10)]


def test_prng_draws_are_unit_interval():
    rng = PRNG(123)
    draws = np.array([rng.next() for _ in range(20_000)])
    assert draws.min() >= 0.0
    assert draws.max() < 1.0
    assert draws.mean() == pytest.approx(0.5, abs=0.01)


def test_prng_reduces_seed_to_32_bits():
    assert PRNG(2**32 + 5).state == PRNG(5).state
    assert PRNG(-1).state == 0xFFFFFFFF


def test_next_seed_range():
    rng = PRNG(7)
    seeds = [rng.next_seed() for _ in range(1000)]
    assert all(0 <= s < MAX_SEED for s in seeds)
    assert len(set(seeds)) > 990


def test_box_muller_is_finite_and_standard():
    rng = PRNG(99)
    z = np.array([box_muller(rng) for _ in range(20_000)])
    assert np.all(np.isfinite(z))
    assert z.mean() == pytest.approx(0.0, abs=0.03)
    assert z.std() == pytest.approx(1.0, abs=0.03)


def test_box_muller_clamps_zero_uniform():
    class ZeroRNG:
        def next(self):
            return 0.0

    value = box_muller(ZeroRNG())
    assert math.isfinite(value)
    assert value == pytest.approx(math.sqrt(-2.0 * math.log(1e-10)))


def test_normal_moments():
    dist = NormalDistribution(10.0, 2.0)
    samples = dist.sample_n(20_000, PRNG(5))
    assert samples.mean() == pytest.approx(10.0, abs=0.06)
    assert samples.std() == pytest.approx(2.0, abs=0.06)
    assert dist.std() == 2.0


def test_uniform_bounds():
    samples = UniformDistribution(3.0, 4.0).sample_n(5000, PRNG(11))
    assert samples.min() >= 3.0
    assert samples.max() < 4.0


def test_triangular_bounds_and_mean():
    dist = TriangularDistribution(1.0, 2.0, 5.0)
    samples = dist.sample_n(20_000, PRNG(3))
    assert samples.min() >= 1.0
    assert samples.max() <= 5.0
    assert samples.mean() == pytest.approx(dist.mean(), rel=0.02)


def test_triangular_degenerate_returns_lower_bound():
    dist = TriangularDistribution(4.0, 4.0, 4.0)
    rng = PRNG(1)
    assert dist.sample(rng) == 4.0
    # no draw is consumed
    assert rng.state == PRNG(1).state


def test_lognormal_from_moments_matches_targets():
    dist = LogNormalDistribution.from_moments(2500.0, 500.0)
    assert dist.mean() == pytest.approx(2500.0, rel=1e-9)
    assert dist.std() == pytest.approx(500.0, rel=1e-9)

    samples = dist.sample_n(20_000, PRNG(8))
    assert samples.min() > 0
    assert samples.mean() == pytest.approx(2500.0, rel=0.02)


@pytest.mark.parametrize(
    "factory",
    [
        lambda: NormalDistribution(0.0, -1.0),
        lambda: UniformDistribution(2.0, 1.0),
        lambda: TriangularDistribution(0.0, 2.0, 1.0),
        lambda: LogNormalDistribution.from_moments(0.0, 1.0),
    ],
)
def test_invalid_parameters_raise(factory):
    with pytest.raises(ConfigurationError):
        factory()


def test_distribution_from_dict():
    dist = distribution_from_dict({"type": "triangular", "params": {"lo": 0, "mode": 1, "hi": 3}})
    assert isinstance(dist, TriangularDistribution)
    assert dist.to_dict() == {"type": "triangular", "params": {"lo": 0, "mode": 1, "hi": 3}}

    with pytest.raises(ConfigurationError):
        distribution_from_dict({"type": "gamma", "params": {}})
    with pytest.raises(ConfigurationError):
        distribution_from_dict({"type": "normal", "params": {"scale": 1}})


def test_distribution_base_is_abstract():
    with pytest.raises(TypeError):
        Distribution()


def test_from_dict_builds_truncated_normal_and_beta():
    trunc = distribution_from_dict(
        {"type": "truncated_normal", "params": {"mu": 0.1, "sigma": 0.05, "lo": 0.0, "hi": 0.2}}
    )
    assert isinstance(trunc, TruncatedNormalDistribution)
    assert trunc.params == {"mu": 0.1, "sigma": 0.05, "lo": 0.0, "hi": 0.2}

    beta = distribution_from_dict({"type": "beta", "params": {"alpha": 3, "beta": 4}})
    assert isinstance(beta, BetaDistribution)
    assert beta.mean() == pytest.approx(3 / 7)
    assert isinstance(distribution_from_dict({"type": "beta", "params": {}}), BetaDistribution)


def test_truncated_normal_stays_in_bounds():
    dist = TruncatedNormalDistribution(mu=0.0, sigma=1.0, lo=-0.5, hi=1.5)
    samples = dist.sample_n(10_000, PRNG(21))
    assert samples.min() >= -0.5
    assert samples.max() <= 1.5
    assert samples.mean() == pytest.approx(dist.mean(), abs=0.02)
    assert samples.std() == pytest.approx(dist.std(), abs=0.02)


def test_truncated_normal_exact_half_normal_moments():
    dist = TruncatedNormalDistribution(mu=0.0, sigma=1.0, lo=0.0)
    assert dist.mean() == pytest.approx(math.sqrt(2.0 / math.pi))
    assert dist.variance() == pytest.approx(1.0 - 2.0 / math.pi)
    assert dist.pdf(-0.1) == 0.0
    assert dist.pdf(0.0) == pytest.approx(2.0 / math.sqrt(2.0 * math.pi))


def test_truncated_normal_unbounded_matches_normal():
    rng_a, rng_b = PRNG(4), PRNG(4)
    trunc = TruncatedNormalDistribution(mu=5.0, sigma=2.0)
    normal = NormalDistribution(5.0, 2.0)
    assert [trunc.sample(rng_a) for _ in range(50)] == [normal.sample(rng_b) for _ in range(50)]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"sigma": -1.0},
        {"lo": 2.0, "hi": 1.0},
        {"mu": 0.0, "sigma": 1.0, "lo": 10.0, "hi": 11.0},
        {"mu": 5.0, "sigma": 0.0, "lo": 0.0, "hi": 1.0},
    ],
)
def test_truncated_normal_rejects_bad_intervals(kwargs):
    with pytest.raises(ConfigurationError):
        TruncatedNormalDistribution(**kwargs)


@pytest.mark.parametrize("alpha, beta", [(2.0, 5.0), (0.5, 0.5), (8.0, 2.0)])
def test_beta_moments(alpha, beta):
    dist = BetaDistribution(alpha, beta)
    samples = dist.sample_n(20_000, PRNG(17))
    assert samples.min() > 0.0
    assert samples.max() < 1.0
    assert samples.mean() == pytest.approx(dist.mean(), abs=0.01)
    assert samples.var() == pytest.approx(dist.variance(), abs=0.01)


def test_gamma_variate_mean_matches_shape():
    rng = PRNG(12)
    for shape in (0.6, 3.0):
        draws = np.array([gamma_variate(shape, rng) for _ in range(20_000)])
        assert draws.min() > 0.0
        assert draws.mean() == pytest.approx(shape, rel=0.04)


@pytest.mark.parametrize("alpha, beta", [(0.0, 1.0), (1.0, -2.0)])
def test_beta_rejects_non_positive_shapes(alpha, beta):
    with pytest.raises(ConfigurationError):
        BetaDistribution(alpha, beta)


def test_pdf_known_values():
    assert NormalDistribution(0.0, 1.0).pdf(0.0) == pytest.approx(1.0 / math.sqrt(2.0 * math.pi))
    assert BetaDistribution(2.0, 5.0).pdf(0.3) == pytest.approx(30.0 * 0.3 * 0.7 ** 4)
    assert BetaDistribution(2.0, 5.0).pdf(1.0) == 0.0
    assert UniformDistribution(2.0, 6.0).pdf(3.0) == 0.25
    assert UniformDistribution(2.0, 6.0).pdf(7.0) == 0.0
    assert TriangularDistribution(0.0, 1.0, 4.0).pdf(1.0) == pytest.approx(0.5)
    assert TriangularDistribution(0.0, 1.0, 4.0).pdf(3.0) == pytest.approx(2.0 / 12.0)
    assert LogNormalDistribution(0.0, 1.0).pdf(1.0) == pytest.approx(1.0 / math.sqrt(2.0 * math.pi))
    assert LogNormalDistribution(0.0, 1.0).pdf(-1.0) == 0.0


@pytest.mark.parametrize(
    "dist, lo, hi",
    [
        (NormalDistribution(1.0, 0.5), -3.0, 5.0),
        (TruncatedNormalDistribution(0.0, 1.0, -1.0, 2.0), -1.0, 2.0),
        (BetaDistribution(2.0, 3.0), 0.0, 1.0),
        (TriangularDistribution(1.0, 2.0, 5.0), 1.0, 5.0),
        (LogNormalDistribution(0.0, 0.5), 0.0, 15.0),
    ],
)
def test_pdf_integrates_to_one(dist, lo, hi):
    xs = np.linspace(lo, hi, 20_001)
    dx = xs[1] - xs[0]
    density = np.array([dist.pdf(x) for x in xs])
    assert float(density.sum() * dx) == pytest.approx(1.0, abs=0.01)
