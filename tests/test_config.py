import dataclasses

import pytest

from market_sim.config import (
    DEFAULT_COMPETITORS,
    MAX_ITERATIONS,
    CompetitorProfile,
    MarketModelConfig,
    OfferConfig,
    PopulationConfig,
    ScenarioOverrides,
    SimulationConfig,
)
from market_sim.exceptions import ConfigurationError


def _payload(**overrides):
    payload = {
        "offer": {"basePrice": 199, "cogs": 80, "marketingBudget": 40_000, "qualityIndex": 0.8},
        "population": {"totalCustomers": 8000},
        "marketModel": {
            "competitors": [
                {"name": "rival", "marketShare": 0.3, "aggressiveness": 0.6, "basePrice": 189},
            ],
            "correlationPreset": "recession",
            "shockIntensity": 1.5,
        },
        "iterations": 250,
        "weeks": 20,
        "seed": 7,
    }
    payload.update(overrides)
    return payload


def test_defaults_are_valid():
    config = SimulationConfig()
    assert config.iterations == 1000
    assert config.weeks == 26
    assert config.seed == 42
    assert config.market.competitors == DEFAULT_COMPETITORS


@pytest.mark.parametrize(
    "kwargs",
    [
        {"iterations": 0},
        {"iterations": MAX_ITERATIONS + 1},
        {"iterations": 10.5},
        {"iterations": True},
        {"weeks": 0},
        {"weeks": 105},
        {"seed": -1},
        {"initial_inventory": 0},
    ],
)
def test_run_bounds(kwargs):
    with pytest.raises(ConfigurationError):
        SimulationConfig(**kwargs)


def test_seed_may_be_none():
    assert SimulationConfig(seed=None).seed is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"base_price": 0},
        {"cogs": 150.0, "base_price": 149.0},
        {"quality_index": 1.5},
        {"marketing_budget": -1},
        {"base_price": float("nan")},
    ],
)
def test_offer_bounds(kwargs):
    with pytest.raises(ConfigurationError):
        OfferConfig(**kwargs)


def test_population_and_competitor_bounds():
    with pytest.raises(ConfigurationError):
        PopulationConfig(total_customers=0)
    with pytest.raises(ConfigurationError):
        CompetitorProfile(name="x", market_share=1.2)
    with pytest.raises(ConfigurationError):
        MarketModelConfig(correlation_preset="stagflation")
    with pytest.raises(ConfigurationError):
        MarketModelConfig(shock_intensity=11)


def test_configuration_error_is_value_error():
    with pytest.raises(ValueError):
        SimulationConfig(iterations=-5)


def test_config_is_frozen():
    config = SimulationConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.iterations = 5


def test_with_overrides_returns_new_validated_config():
    base = SimulationConfig()
    changed = base.with_overrides(
        ScenarioOverrides(base_price=179.0, correlation_preset="growth", iterations=200)
    )
    assert changed is not base
    assert changed.offer.base_price == 179.0
    assert changed.offer.cogs == base.offer.cogs
    assert changed.market.correlation_preset == "growth"
    assert changed.iterations == 200
    assert base.offer.base_price == 149.0

    with pytest.raises(ConfigurationError):
        base.with_overrides(ScenarioOverrides(cogs=500.0))


def test_empty_overrides_keep_values():
    base = SimulationConfig()
    assert base.with_overrides(ScenarioOverrides()) == base


def test_from_dict_reads_camel_case_contract():
    config = SimulationConfig.from_dict(_payload())
    assert config.offer.base_price == 199
    assert config.offer.marketing_budget == 40_000
    assert config.population.total_customers == 8000
    assert config.market.correlation_preset == "recession"
    assert config.market.shock_intensity == 1.5
    assert len(config.market.competitors) == 1
    assert config.market.competitors[0].base_price == 189
    assert (config.iterations, config.weeks, config.seed) == (250, 20, 7)


def test_from_dict_requires_offer_and_population():
    payload = _payload()
    del payload["offer"]
    with pytest.raises(ConfigurationError):
        SimulationConfig.from_dict(payload)
    with pytest.raises(ConfigurationError):
        SimulationConfig.from_dict(_payload(population=None))


def test_from_dict_rejects_bad_competitor():
    payload = _payload()
    payload["marketModel"]["competitors"] = [{"marketShare": 0.2}]
    with pytest.raises(ConfigurationError):
        SimulationConfig.from_dict(payload)


def test_from_dict_null_preset_disables_shocks():
    payload = _payload()
    payload["marketModel"]["correlationPreset"] = None
    assert SimulationConfig.from_dict(payload).market.correlation_preset is None


def test_integral_floats_are_normalised_to_int():
    config = SimulationConfig(iterations=10.0, weeks=4.0, seed=3.0, initial_inventory=500.0)
    assert (config.iterations, config.weeks, config.seed, config.initial_inventory) == (10, 4, 3, 500)
    assert all(type(v) is int for v in (config.iterations, config.weeks, config.seed))
    assert type(PopulationConfig(total_customers=100.0).total_customers) is int
    assert type(CompetitorProfile(name="x", reaction_delay=2.0).reaction_delay) is int


def test_from_dict_accepts_integral_float_weeks():
    config = SimulationConfig.from_dict(_payload(weeks=12.0, iterations=30.0))
    assert config.weeks == 12
    assert isinstance(config.weeks, int)
    assert list(range(config.weeks))[-1] == 11


def test_run_with_integral_float_config_completes():
    from market_sim.runner import MonteCarloEngine

    results = MonteCarloEngine().run(SimulationConfig(iterations=10.0, weeks=4.0, seed=1))
    assert results.iterations == 10
    assert len(results.weekly_averages) == 4


def test_with_overrides_disable_shocks():
    base = SimulationConfig(market=MarketModelConfig(correlation_preset="recession"))
    off = base.with_overrides(ScenarioOverrides(disable_shocks=True))
    assert off.market.correlation_preset is None
    assert base.market.correlation_preset == "recession"
    # None still means "keep"
    assert base.with_overrides(ScenarioOverrides(correlation_preset=None)) == base

    with pytest.raises(ConfigurationError):
        base.with_overrides(ScenarioOverrides(disable_shocks=True, correlation_preset="growth"))
