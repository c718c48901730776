"""
Weekly Market Model
===================
Per-trial simulator of a product launch against rule-based competitors.

One call to ``WeeklyMarketModel.simulate_trial`` plays ``config.weeks`` weekly
steps and returns a single cumulative ``TrialResult``.  The kernel treats
the model as a black box behind the ``MarketModel`` interface; any other
implementation with the same signature can be injected into the engine.

Weekly step:
    1. Lifecycle novelty factor (launch → growth → maturity → decline)
    2. Competitor price / marketing / promotion decisions
    3. Competitor attractiveness  A = min(1, Σ share · (0.5·Δp + min(1, 0.3·m) + 0.5·promo))
    4. Supply disruption raises effective COGS for the week
    5. Buyers per customer cohort ~ N(r·p, r·p·(1 − p)), capped by stock

Purchase probability per cohort:
    p = base · (0.3 + 0.7·price) · (0.5 + 0.5·quality) · (1 + novelty)
          · (1 + social) · (1 − 0.5·A) · awareness · lifecycle · demand_shock
"""

import math
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, fields
from typing import Dict, List, Optional, Tuple

from market_sim.config import CompetitorProfile, SimulationConfig
from market_sim.correlation import MarketScenario
from market_sim.distributions import (
    PRNG,
    LogNormalDistribution,
    TriangularDistribution,
    UniformDistribution,
    box_muller,
)
from market_sim.exceptions import SimulationError


# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────
NEVER_BREAKS_EVEN: int = -1
MAX_PURCHASE_PROBABILITY: float = 0.95
PROMOTION_CONVERSION_THRESHOLD: float = 0.005

# (name, novelty multiplier, share of the horizon)
LIFECYCLE_STAGES: Tuple[Tuple[str, float, float], ...] = (
    ("launch", 1.30, 0.12),
    ("growth", 1.15, 0.27),
    ("maturity", 1.00, 0.38),
    ("decline", 0.70, 0.23),
)


@dataclass(frozen=True)
class WeeklyPoint:
    week: int
    units_sold: int
    cumulative_sold: int
    inventory: int
    revenue: float
    avg_conversion: float
    competitor_attractiveness: float
    effective_cogs: float


@dataclass(frozen=True)
class TrialResult:
    """Cumulative outcome of one trial."""

    units_sold: int
    revenue: float
    cost: float
    gross_profit: float
    net_profit: float
    roi: float
    margin_pct: float
    inventory_remaining: int
    inventory_value: float
    unsold_pct: float
    break_even_week: int
    marketing_spent: float
    weekly: Tuple[WeeklyPoint, ...] = ()
    seed: Optional[int] = None

    @property
    def breaks_even(self) -> bool:
        return self.break_even_week != NEVER_BREAKS_EVEN

    def to_dict(self, include_weekly: bool = True) -> Dict[str, object]:
        data = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "weekly"}
        if include_weekly:
            data["weekly"] = [asdict(p) for p in self.weekly]
        return data


def lifecycle_state(week: int, total_weeks: int) -> Tuple[str, float]:
    """
    Lifecycle stage and novelty factor for a 0-indexed week.

    The factor is interpolated linearly inside each stage toward the next
    stage's multiplier, so the demand curve has no steps.
    """
    pct = week / max(1, total_weeks)
    cumulative = 0.0
    for idx, (name, novelty, share) in enumerate(LIFECYCLE_STAGES):
        cumulative += share
        if pct < cumulative:
            progress = (pct - (cumulative - share)) / share
            if idx < len(LIFECYCLE_STAGES) - 1:
                next_novelty = LIFECYCLE_STAGES[idx + 1][1]
            else:
                next_novelty = novelty * 0.9
            return name, novelty + (next_novelty - novelty) * progress
    return "decline", 0.65


# ─────────────────────────────────────────────────────────────
# Customer Segments
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SegmentProfile:
    """Attribute ranges of one customer segment; each range is (lo, hi)."""

    name: str
    weight: float
    price_sensitivity: Tuple[float, float]
    quality_preference: Tuple[float, float]
    budget: Tuple[float, float]
    innovation: Tuple[float, float]
    purchase_prob: Tuple[float, float]


DEFAULT_SEGMENTS: Tuple[SegmentProfile, ...] = (
    SegmentProfile("price_hunters", 0.30, (0.70, 0.95), (0.2, 0.5), (200, 600), (0.2, 0.5), (0.010, 0.030)),
    SegmentProfile("brand_loyalists", 0.20, (0.10, 0.40), (0.5, 0.9), (400, 1200), (0.3, 0.6), (0.015, 0.040)),
    SegmentProfile("early_adopters", 0.15, (0.20, 0.50), (0.6, 0.9), (500, 1500), (0.7, 0.95), (0.020, 0.050)),
    SegmentProfile("mainstream", 0.25, (0.40, 0.60), (0.3, 0.7), (300, 800), (0.3, 0.6), (0.010, 0.025)),
    SegmentProfile("bargain_seekers", 0.10, (0.80, 0.99), (0.1, 0.4), (100, 400), (0.1, 0.3), (0.005, 0.020)),
)


class _Cohort:
    """Mutable per-trial state of one sampled segment."""

    def __init__(self, profile: SegmentProfile, size: int, rng: PRNG) -> None:
        def draw(bounds: Tuple[float, float]) -> float:
            return UniformDistribution(*bounds).sample(rng)

        self.name = profile.name
        self.size = size
        self.price_sensitivity = draw(profile.price_sensitivity)
        self.quality_preference = draw(profile.quality_preference)
        self.budget = draw(profile.budget)
        self.innovation = draw(profile.innovation)
        self.purchase_prob = draw(profile.purchase_prob)
        self.social_influence = 0.1 + rng.next() * 0.5
        self.awareness = 0.0
        self.bought = 0

    @property
    def remaining(self) -> int:
        return self.size - self.bought


# ─────────────────────────────────────────────────────────────
# Competitors
# ─────────────────────────────────────────────────────────────

class _Competitor:
    """Rule-based competitor with trial-level sampled cost and spend."""

    def __init__(self, profile: CompetitorProfile, rng: PRNG) -> None:
        self.profile = profile
        self.cogs = TriangularDistribution(
            profile.cogs * 0.9, profile.cogs, profile.cogs * 1.2
        ).sample(rng)
        if profile.weekly_marketing > 0:
            self.base_marketing = LogNormalDistribution.from_moments(
                profile.weekly_marketing, profile.weekly_marketing * 0.2
            ).sample(rng)
        else:
            self.base_marketing = 0.0
        self.price = profile.base_price
        self.marketing = self.base_marketing
        self.discount = 0.0
        self.steps = 0

    def decide(
        self,
        our_price: float,
        our_conversion: float,
        aggression_shock: float,
        rng: PRNG,
    ) -> None:
        self.steps += 1
        profile = self.profile
        agg = min(1.0, max(0.0, profile.aggressiveness * aggression_shock))

        price = profile.base_price
        marketing = self.base_marketing
        discount = 0.0

        if self.steps >= profile.reaction_delay and our_price < profile.base_price:
            gap = (profile.base_price - our_price) / profile.base_price
            if gap > 0.05:
                if agg > 0.6:
                    price = our_price * (1.0 - 0.02 * agg)
                elif agg > 0.3:
                    price = our_price
                marketing *= 1.0 + agg * 0.5

        if our_conversion > PROMOTION_CONVERSION_THRESHOLD and agg > 0.5:
            if rng.next() < agg * 0.3:
                discount = min(0.1 + rng.next() * 0.15, profile.max_price_reduction)

        if rng.next() < 0.05 * agg:
            marketing *= 1.5

        self.price = max(price, self.cogs * (1.0 + profile.min_margin))
        self.marketing = marketing
        self.discount = discount


# ─────────────────────────────────────────────────────────────
# Model Interface
# ─────────────────────────────────────────────────────────────

class MarketModel(ABC):
    """Black-box per-trial simulator consumed by the trial runner."""

    @abstractmethod
    def simulate_trial(
        self,
        config: SimulationConfig,
        scenario: MarketScenario,
        rng: PRNG,
    ) -> TrialResult:
        """Play ``config.weeks`` weekly steps and return the cumulative result."""


class WeeklyMarketModel(MarketModel):
    """
    Cohort-based launch model with lifecycle, competitors and supply risk.

    Parameters
    ----------
    segments : tuple of SegmentProfile, optional
        Customer segments; defaults to ``DEFAULT_SEGMENTS``.
    """

    def __init__(self, segments: Optional[Tuple[SegmentProfile, ...]] = None) -> None:
        self.segments = tuple(segments) if segments else DEFAULT_SEGMENTS

    def simulate_trial(
        self,
        config: SimulationConfig,
        scenario: MarketScenario,
        rng: PRNG,
    ) -> TrialResult:
        offer = config.offer
        market = config.market
        total_customers = config.population.total_customers

        cohorts = [
            _Cohort(seg, int(round(total_customers * seg.weight)), rng)
            for seg in self.segments
        ]
        competitors = [_Competitor(p, rng) for p in market.competitors]

        weekly_marketing = offer.marketing_budget / config.weeks
        reach = min(1.0, weekly_marketing / total_customers) * 0.2
        price = offer.base_price
        elasticity = max(0.0, scenario.price_elasticity_shock)
        demand = max(0.0, scenario.demand_shock)
        disruption_prob = min(1.0, max(0.0, market.supply_risk_probability * scenario.supply_shock))
        disruption = TriangularDistribution(
            0.0, market.supply_risk_impact, 2.0 * market.supply_risk_impact
        )

        inventory = config.initial_inventory
        units_sold = 0
        revenue = 0.0
        cost = 0.0
        marketing_spent = 0.0
        cumulative_profit = 0.0
        break_even_week = NEVER_BREAKS_EVEN
        conversion = 0.0
        weekly: List[WeeklyPoint] = []

        for week in range(config.weeks):
            stage, novelty_factor = lifecycle_state(week, config.weeks)
            is_new = stage == "launch"

            attractiveness = 0.0
            for comp in competitors:
                comp.decide(price, conversion, scenario.competitor_aggression_shock, rng)
                price_adv = max(0.0, (price - comp.price) / price)
                marketing_adv = comp.marketing / max(1.0, weekly_marketing)
                attractiveness += (
                    price_adv * 0.5 + min(1.0, marketing_adv * 0.3) + comp.discount * 0.5
                ) * comp.profile.market_share
            attractiveness = min(1.0, attractiveness)
            dampening = 1.0 - attractiveness * 0.5

            effective_cogs = offer.cogs
            if disruption_prob > 0 and rng.next() < disruption_prob:
                effective_cogs *= 1.0 + disruption.sample(rng)

            week_units = 0
            expected_buyers = 0.0
            for cohort in cohorts:
                remaining = cohort.remaining
                if remaining <= 0:
                    continue
                price_score = max(
                    0.0, 1.0 - (price / cohort.budget) * cohort.price_sensitivity * elasticity * 2.0
                )
                quality_score = offer.quality_index * cohort.quality_preference
                novelty_bonus = cohort.innovation * 0.3 if is_new else 0.0
                social_score = (cohort.bought / cohort.size) * cohort.social_influence
                cohort.awareness = min(1.0, cohort.awareness + reach + social_score * 0.1)

                prob = (
                    cohort.purchase_prob
                    * (0.3 + 0.7 * price_score)
                    * (0.5 + 0.5 * quality_score)
                    * (1.0 + novelty_bonus)
                    * (1.0 + social_score)
                    * dampening
                    * cohort.awareness
                    * novelty_factor
                    * demand
                )
                prob = min(max(prob, 0.0), MAX_PURCHASE_PROBABILITY)
                expected_buyers += prob * remaining

                mean = remaining * prob
                sd = math.sqrt(remaining * prob * (1.0 - prob))
                buyers = int(round(mean + sd * box_muller(rng)))
                buyers = min(max(buyers, 0), remaining, inventory - week_units)
                cohort.bought += buyers
                week_units += buyers

            inventory -= week_units
            week_revenue = week_units * price
            week_cost = week_units * effective_cogs
            units_sold += week_units
            revenue += week_revenue
            cost += week_cost
            marketing_spent += weekly_marketing
            cumulative_profit += week_revenue - week_cost - weekly_marketing
            conversion = expected_buyers / total_customers

            if inventory < 0 or not all(
                math.isfinite(v) for v in (revenue, cost, cumulative_profit, conversion)
            ):
                raise SimulationError(
                    f"Invalid market state in week {week}: inventory={inventory}, "
                    f"revenue={revenue}, cost={cost}"
                )

            if break_even_week == NEVER_BREAKS_EVEN and cumulative_profit > 0:
                break_even_week = week

            weekly.append(WeeklyPoint(
                week=week,
                units_sold=week_units,
                cumulative_sold=units_sold,
                inventory=inventory,
                revenue=week_revenue,
                avg_conversion=conversion,
                competitor_attractiveness=attractiveness,
                effective_cogs=effective_cogs,
            ))

        gross_profit = revenue - cost
        net_profit = gross_profit - marketing_spent
        roi = (net_profit / (cost + marketing_spent)) * 100.0 if marketing_spent > 0 else 0.0
        margin_pct = (gross_profit / revenue) * 100.0 if revenue > 0 else 0.0

        return TrialResult(
            units_sold=units_sold,
            revenue=revenue,
            cost=cost,
            gross_profit=gross_profit,
            net_profit=net_profit,
            roi=roi,
            margin_pct=margin_pct,
            inventory_remaining=inventory,
            inventory_value=inventory * offer.cogs,
            unsold_pct=(inventory / config.initial_inventory) * 100.0,
            break_even_week=break_even_week,
            marketing_spent=marketing_spent,
            weekly=tuple(weekly),
        )
