import math

import pytest

from market_sim.config import OfferConfig, SimulationConfig
from market_sim.correlation import MarketScenario
from market_sim.distributions import PRNG
from market_sim.market_model import (
    NEVER_BREAKS_EVEN,
    WeeklyMarketModel,
    lifecycle_state,
)


def _simulate(config, seed=11, scenario=None):
    return WeeklyMarketModel().simulate_trial(config, scenario or MarketScenario(), PRNG(seed))


def test_trial_accounting_is_consistent(small_config):
    result = _simulate(small_config)

    assert len(result.weekly) == small_config.weeks
    assert result.units_sold + result.inventory_remaining == small_config.initial_inventory
    assert result.units_sold == sum(p.units_sold for p in result.weekly)
    assert result.revenue == pytest.approx(sum(p.revenue for p in result.weekly))
    assert result.gross_profit == pytest.approx(result.revenue - result.cost)
    assert result.net_profit == pytest.approx(result.gross_profit - result.marketing_spent)
    assert result.marketing_spent == pytest.approx(small_config.offer.marketing_budget)
    assert result.inventory_value == pytest.approx(
        result.inventory_remaining * small_config.offer.cogs
    )
    assert 0.0 <= result.unsold_pct <= 100.0


def test_weekly_series_is_monotone(small_config):
    result = _simulate(small_config)
    inventories = [p.inventory for p in result.weekly]
    cumulative = [p.cumulative_sold for p in result.weekly]
    assert inventories == sorted(inventories, reverse=True)
    assert cumulative == sorted(cumulative)
    assert all(p.inventory >= 0 for p in result.weekly)
    assert all(math.isfinite(p.avg_conversion) for p in result.weekly)


def test_same_seed_same_trial(small_config):
    assert _simulate(small_config, seed=5) == _simulate(small_config, seed=5)
    assert _simulate(small_config, seed=5) != _simulate(small_config, seed=6)


def test_sales_never_exceed_stock():
    config = SimulationConfig(weeks=20, initial_inventory=10, seed=1)
    result = _simulate(config)
    assert result.units_sold <= 10
    assert result.inventory_remaining >= 0


def test_break_even_week_matches_cumulative_profit(small_config):
    result = _simulate(small_config)
    weekly_marketing = small_config.offer.marketing_budget / small_config.weeks

    cumulative = 0.0
    first_positive = NEVER_BREAKS_EVEN
    for point in result.weekly:
        cumulative += point.revenue - point.units_sold * point.effective_cogs - weekly_marketing
        if first_positive == NEVER_BREAKS_EVEN and cumulative > 0:
            first_positive = point.week
    assert result.break_even_week == first_positive
    assert result.breaks_even == (first_positive != NEVER_BREAKS_EVEN)


def test_collapsed_demand_never_breaks_even(small_config):
    scenario = MarketScenario(demand_shock=0.0)
    result = _simulate(small_config, scenario=scenario)
    assert result.units_sold == 0
    assert result.break_even_week == NEVER_BREAKS_EVEN
    assert result.net_profit == pytest.approx(-small_config.offer.marketing_budget)
    assert result.margin_pct == 0.0


def test_zero_marketing_budget_gives_zero_roi():
    config = SimulationConfig(
        offer=OfferConfig(marketing_budget=0.0), weeks=8, seed=3,
    )
    result = _simulate(config)
    assert result.units_sold == 0
    assert result.roi == 0.0


def test_to_dict_optionally_drops_weekly(small_config):
    result = _simulate(small_config)
    assert "weekly" not in result.to_dict(include_weekly=False)
    assert len(result.to_dict()["weekly"]) == small_config.weeks


def test_lifecycle_progression():
    stages = [lifecycle_state(week, 26)[0] for week in range(26)]
    assert stages[0] == "launch"
    assert stages[-1] == "decline"
    order = ["launch", "growth", "maturity", "decline"]
    assert [order.index(s) for s in stages] == sorted(order.index(s) for s in stages)
