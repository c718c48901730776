"""Builders for hand-made trial results."""

from market_sim.market_model import NEVER_BREAKS_EVEN, TrialResult, WeeklyPoint


def make_result(
    net_profit=1000.0,
    roi=10.0,
    units_sold=100,
    inventory_remaining=50,
    margin_pct=40.0,
    break_even_week=NEVER_BREAKS_EVEN,
    unit_cost=50.0,
    price=150.0,
    weekly=(),
):
    revenue = units_sold * price
    cost = units_sold * unit_cost
    gross = revenue - cost
    marketing = gross - net_profit
    initial = units_sold + inventory_remaining
    return TrialResult(
        units_sold=units_sold,
        revenue=revenue,
        cost=cost,
        gross_profit=gross,
        net_profit=net_profit,
        roi=roi,
        margin_pct=margin_pct,
        inventory_remaining=inventory_remaining,
        inventory_value=inventory_remaining * unit_cost,
        unsold_pct=inventory_remaining / initial * 100.0,
        break_even_week=break_even_week,
        marketing_spent=marketing,
        weekly=tuple(weekly),
    )


def make_point(week, units_sold, revenue=0.0, inventory=0):
    return WeeklyPoint(
        week=week,
        units_sold=units_sold,
        cumulative_sold=units_sold,
        inventory=inventory,
        revenue=revenue,
        avg_conversion=0.01,
        competitor_attractiveness=0.2,
        effective_cogs=50.0,
    )
