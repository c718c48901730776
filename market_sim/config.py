"""
Simulation Configuration
========================
Immutable, validated configuration for a Monte Carlo run.

A ``SimulationConfig`` is validated when it is constructed; an instance that
exists is always within bounds, so the runner never has to re-check it.
Parameter sweeps go through ``ScenarioOverrides`` which produces a new,
re-validated configuration.
"""

import math
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Optional, Tuple

from market_sim.correlation import MARKET_CORRELATIONS
from market_sim.exceptions import ConfigurationError


# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────
DEFAULT_ITERATIONS: int = 1000
DEFAULT_WEEKS: int = 26
DEFAULT_SEED: int = 42
DEFAULT_INITIAL_INVENTORY: int = 1500
DEFAULT_TOTAL_CUSTOMERS: int = 5000

MAX_ITERATIONS: int = 10_000
MAX_WEEKS: int = 104
MAX_SEED: int = 2_147_483_647
MAX_CUSTOMERS: int = 50_000
MAX_INVENTORY: int = 10_000_000


def _check_number(
    value: Any,
    name: str,
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
    integer: bool = False,
) -> Any:
    """
    Raise ``ConfigurationError`` unless ``value`` is a finite in-range number.

    Returns the value, as an ``int`` when ``integer`` is set, so integral
    floats from JSON (``12.0``) are normalised.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ConfigurationError(f"{name} must be finite, got {value!r}")
    if integer and int(value) != value:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if minimum is not None and value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum} (got {value})")
    if maximum is not None and value > maximum:
        raise ConfigurationError(f"{name} must be <= {maximum} (got {value})")
    return int(value) if integer else value


def _set_integer(instance: Any, attr: str, label: str, **bounds: float) -> None:
    """Validate an integer field of a frozen dataclass and store it as ``int``."""
    value = _check_number(getattr(instance, attr), label, integer=True, **bounds)
    object.__setattr__(instance, attr, value)


@dataclass(frozen=True)
class OfferConfig:
    """Commercial terms of the product being launched.

    Attributes:
        base_price: List price per unit.
        cogs: Unit cost of goods sold; must be below ``base_price``.
        marketing_budget: Marketing budget, spent evenly across the horizon.
        quality_index: Perceived quality in [0, 1].
    """

    base_price: float = 149.0
    cogs: float = 50.0
    marketing_budget: float = 60_000.0
    quality_index: float = 0.7
    name: str = "New Product"

    def __post_init__(self) -> None:
        _check_number(self.base_price, "base_price", minimum=0.01, maximum=1e8)
        _check_number(self.cogs, "cogs", minimum=0, maximum=1e8)
        _check_number(self.marketing_budget, "marketing_budget", minimum=0, maximum=1e10)
        _check_number(self.quality_index, "quality_index", minimum=0, maximum=1)
        if self.cogs >= self.base_price:
            raise ConfigurationError(
                f"cogs ({self.cogs}) must be lower than base_price ({self.base_price})"
            )


@dataclass(frozen=True)
class PopulationConfig:
    total_customers: int = DEFAULT_TOTAL_CUSTOMERS

    def __post_init__(self) -> None:
        _set_integer(
            self, "total_customers", "total_customers", minimum=1, maximum=MAX_CUSTOMERS
        )


@dataclass(frozen=True)
class CompetitorProfile:
    """Rule-based competitor description."""

    name: str
    market_share: float = 0.25
    aggressiveness: float = 0.5
    base_price: float = 140.0
    weekly_marketing: float = 2_500.0
    cogs: float = 50.0
    min_margin: float = 0.2
    max_price_reduction: float = 0.3
    reaction_delay: int = 2

    def __post_init__(self) -> None:
        _check_number(self.market_share, f"{self.name}.market_share", minimum=0, maximum=1)
        _check_number(self.aggressiveness, f"{self.name}.aggressiveness", minimum=0, maximum=1)
        _check_number(self.base_price, f"{self.name}.base_price", minimum=0.01)
        _check_number(self.weekly_marketing, f"{self.name}.weekly_marketing", minimum=0)
        _check_number(self.cogs, f"{self.name}.cogs", minimum=0)
        _check_number(self.min_margin, f"{self.name}.min_margin", minimum=0)
        _check_number(
            self.max_price_reduction, f"{self.name}.max_price_reduction", minimum=0, maximum=1
        )
        _set_integer(self, "reaction_delay", f"{self.name}.reaction_delay", minimum=0)


DEFAULT_COMPETITORS: Tuple[CompetitorProfile, ...] = (
    CompetitorProfile(
        name="incumbent", market_share=0.35, aggressiveness=0.7,
        base_price=139.0, weekly_marketing=3_000.0, cogs=48.0,
    ),
    CompetitorProfile(
        name="challenger", market_share=0.15, aggressiveness=0.4,
        base_price=129.0, weekly_marketing=1_500.0, cogs=45.0,
    ),
)


@dataclass(frozen=True)
class MarketModelConfig:
    """Descriptor for the weekly market model and its shock structure.

    Attributes:
        competitors: Competitor profiles acting every week.
        correlation_preset: Name of a regime in ``MARKET_CORRELATIONS``, or
            None to disable correlated shocks.
        shock_intensity: Multiplier on correlated shock draws.
        supply_risk_probability: Weekly chance of a supply disruption.
        supply_risk_impact: Mode of the COGS uplift when a disruption hits.
    """

    competitors: Tuple[CompetitorProfile, ...] = DEFAULT_COMPETITORS
    correlation_preset: Optional[str] = "independent"
    shock_intensity: float = 1.0
    supply_risk_probability: float = 0.05
    supply_risk_impact: float = 0.15

    def __post_init__(self) -> None:
        object.__setattr__(self, "competitors", tuple(self.competitors))
        if self.correlation_preset is not None and self.correlation_preset not in MARKET_CORRELATIONS:
            raise ConfigurationError(
                f"Unknown correlation preset {self.correlation_preset!r}. "
                f"Known: {sorted(MARKET_CORRELATIONS)}"
            )
        _check_number(self.shock_intensity, "shock_intensity", minimum=0, maximum=10)
        _check_number(self.supply_risk_probability, "supply_risk_probability", minimum=0, maximum=1)
        _check_number(self.supply_risk_impact, "supply_risk_impact", minimum=0, maximum=5)


@dataclass(frozen=True)
class ScenarioOverrides:
    """Typed optional overrides for parameter sweeps.

    ``None`` keeps the base value.  Since ``correlation_preset=None`` therefore
    cannot switch shocks off, ``disable_shocks=True`` does that explicitly.
    """

    base_price: Optional[float] = None
    cogs: Optional[float] = None
    marketing_budget: Optional[float] = None
    quality_index: Optional[float] = None
    correlation_preset: Optional[str] = None
    shock_intensity: Optional[float] = None
    iterations: Optional[int] = None
    weeks: Optional[int] = None
    seed: Optional[int] = None
    disable_shocks: bool = False


_OFFER_OVERRIDES = ("base_price", "cogs", "marketing_budget", "quality_index")
_MARKET_OVERRIDES = ("correlation_preset", "shock_intensity")
_RUN_OVERRIDES = ("iterations", "weeks", "seed")


@dataclass(frozen=True)
class SimulationConfig:
    """Complete, validated input of one Monte Carlo run."""

    offer: OfferConfig = field(default_factory=OfferConfig)
    population: PopulationConfig = field(default_factory=PopulationConfig)
    market: MarketModelConfig = field(default_factory=MarketModelConfig)
    iterations: int = DEFAULT_ITERATIONS
    weeks: int = DEFAULT_WEEKS
    seed: Optional[int] = DEFAULT_SEED
    initial_inventory: int = DEFAULT_INITIAL_INVENTORY

    def __post_init__(self) -> None:
        for name, kind in (
            ("offer", OfferConfig),
            ("population", PopulationConfig),
            ("market", MarketModelConfig),
        ):
            if not isinstance(getattr(self, name), kind):
                raise ConfigurationError(f"{name} must be a {kind.__name__}")
        _set_integer(self, "iterations", "iterations", minimum=1, maximum=MAX_ITERATIONS)
        _set_integer(self, "weeks", "weeks", minimum=1, maximum=MAX_WEEKS)
        if self.seed is not None:
            _set_integer(self, "seed", "seed", minimum=0, maximum=MAX_SEED)
        _set_integer(
            self, "initial_inventory", "initial_inventory", minimum=1, maximum=MAX_INVENTORY
        )

    def with_overrides(self, overrides: ScenarioOverrides) -> "SimulationConfig":
        """
        Resolve typed overrides into a new validated configuration.

        Parameters
        ----------
        overrides : ScenarioOverrides
            Fields left as None keep the current value.

        Returns
        -------
        SimulationConfig

        Raises
        ------
        ConfigurationError
            If ``disable_shocks`` is combined with a ``correlation_preset``,
            or the resolved configuration is out of bounds.
        """
        values = {f.name: getattr(overrides, f.name) for f in fields(overrides)}
        offer_changes = {k: values[k] for k in _OFFER_OVERRIDES if values[k] is not None}
        market_changes = {k: values[k] for k in _MARKET_OVERRIDES if values[k] is not None}
        run_changes = {k: values[k] for k in _RUN_OVERRIDES if values[k] is not None}

        if overrides.disable_shocks:
            if "correlation_preset" in market_changes:
                raise ConfigurationError(
                    "disable_shocks cannot be combined with a correlation_preset override"
                )
            market_changes["correlation_preset"] = None

        return replace(
            self,
            offer=replace(self.offer, **offer_changes),
            market=replace(self.market, **market_changes),
            **run_changes,
        )

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SimulationConfig":
        """
        Build a configuration from the external camelCase input contract.

        Expected shape::

            {
                "offer": {"basePrice", "cogs", "marketingBudget", "qualityIndex"},
                "population": {"totalCustomers"},
                "marketModel": {"competitors": [...], "correlationPreset",
                                "shockIntensity", "supplyRiskProbability",
                                "supplyRiskImpact"},
                "iterations", "weeks", "seed"?, "initialInventory"?
            }
        """
        if not isinstance(payload, Mapping):
            raise ConfigurationError("configuration payload must be a mapping")

        offer_raw = payload.get("offer")
        population_raw = payload.get("population")
        if not isinstance(offer_raw, Mapping):
            raise ConfigurationError("offer configuration is required")
        if not isinstance(population_raw, Mapping):
            raise ConfigurationError("population configuration is required")

        offer = OfferConfig(**_pick(offer_raw, {
            "basePrice": "base_price",
            "cogs": "cogs",
            "marketingBudget": "marketing_budget",
            "qualityIndex": "quality_index",
            "name": "name",
        }))
        population = PopulationConfig(**_pick(population_raw, {
            "totalCustomers": "total_customers",
        }))

        market_raw = payload.get("marketModel") or {}
        market_kwargs = _pick(market_raw, {
            "correlationPreset": "correlation_preset",
            "shockIntensity": "shock_intensity",
            "supplyRiskProbability": "supply_risk_probability",
            "supplyRiskImpact": "supply_risk_impact",
        })
        if "competitors" in market_raw:
            market_kwargs["competitors"] = tuple(
                _build(CompetitorProfile, _pick(c, {
                    "name": "name",
                    "marketShare": "market_share",
                    "aggressiveness": "aggressiveness",
                    "basePrice": "base_price",
                    "weeklyMarketing": "weekly_marketing",
                    "cogs": "cogs",
                    "minMargin": "min_margin",
                    "maxPriceReduction": "max_price_reduction",
                    "reactionDelay": "reaction_delay",
                }))
                for c in market_raw["competitors"]
            )
        market = MarketModelConfig(**market_kwargs)

        run_kwargs = _pick(payload, {
            "iterations": "iterations",
            "weeks": "weeks",
            "initialInventory": "initial_inventory",
        })
        if "seed" in payload:
            run_kwargs["seed"] = payload["seed"]

        return cls(offer=offer, population=population, market=market, **run_kwargs)


def _pick(raw: Mapping[str, Any], mapping: Dict[str, str]) -> Dict[str, Any]:
    """Translate the camelCase keys present in ``raw`` to keyword names."""
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"expected a mapping, got {type(raw).__name__}")
    return {mapping[k]: v for k, v in raw.items() if k in mapping}


def _build(kind: type, kwargs: Dict[str, Any]) -> Any:
    try:
        return kind(**kwargs)
    except TypeError as exc:
        raise ConfigurationError(f"invalid {kind.__name__}: {exc}") from exc
