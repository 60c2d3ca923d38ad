"""
Game Configuration

Centralizes all tunable parameters for the tycoon economy engine.
Growth curves, macro cycle timings, event pacing, stock volatility and
session pacing all live here instead of being scattered as magic numbers.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from dotenv import load_dotenv


@dataclass
class GlobalConfig:
    """Global multiplier composition constants."""
    multiplier_cap: float = 10.0  # Hard ceiling on the composed multiplier
    premium_bonus: float = 1.0  # Additive bonus while premium is active
    seconds_per_hour: float = 3600.0
    epsilon: float = 1e-9  # Floor for multiplier denominators


@dataclass
class PrestigeConfig:
    """Prestige tiers and requirement."""
    tier_one_rate: float = 1.25  # Applied for prestige levels 1-5
    tier_one_max_level: int = 5
    tier_two_rate: float = 1.18  # Applied for prestige levels 6-20
    tier_two_max_level: int = 20
    tier_three_rate: float = 1.12  # Applied past level 20
    requirement: float = 10_000_000.0  # Total earnings needed to prestige
    multiplier_increment: float = 0.5  # Added to the stored prestige multiplier


@dataclass
class PhaseSpec:
    """One step of the economic cycle."""
    name: str
    multiplier: float
    duration_minutes: float

    @property
    def duration_seconds(self) -> float:
        return self.duration_minutes * 60.0


def _default_phases() -> List[PhaseSpec]:
    return [
        PhaseSpec("expansion", 1.10, 10.0),
        PhaseSpec("peak", 1.20, 5.0),
        PhaseSpec("recession", 0.85, 8.0),
        PhaseSpec("trough", 0.90, 2.0),
        PhaseSpec("recovery", 1.05, 5.0),
    ]


@dataclass
class EconomicCycleConfig:
    """Forward-cycling phase machine (order matters)."""
    phases: List[PhaseSpec] = field(default_factory=_default_phases)
    update_interval: float = 30.0  # Seconds between phase checks

    def phase(self, name: str) -> PhaseSpec:
        for spec in self.phases:
            if spec.name == name:
                return spec
        raise KeyError(f"Unknown economic phase: {name}")

    def index_of(self, name: str) -> int:
        for idx, spec in enumerate(self.phases):
            if spec.name == name:
                return idx
        raise KeyError(f"Unknown economic phase: {name}")


@dataclass
class SentimentConfig:
    """Market sentiment random walk."""
    minimum: float = 0.0
    maximum: float = 100.0
    initial: float = 50.0  # Also the mean-reversion target
    mean_revert_strength: float = 0.02
    step_scale: float = 1.0  # Random step is uniform in [-step_scale, step_scale]
    update_interval: float = 10.0


@dataclass
class EfficiencyConfig:
    """Global efficiency multiplier random walk."""
    initial: float = 1.0
    target: float = 1.3
    floor: float = 0.5
    cap: float = 2.5
    volatility: float = 0.001
    mean_revert_strength: float = 0.01
    update_interval: float = 30.0


def _default_regional_drift() -> Dict[str, Tuple[float, float, float, float]]:
    # (housing, tourism, business rent demand, energy cost)
    return {
        "expansion": (0.002, 0.003, 0.0025, 0.001),
        "peak": (0.002, 0.003, 0.0025, 0.002),
        "recession": (-0.002, -0.003, -0.0025, -0.001),
        "trough": (-0.002, -0.003, -0.0025, -0.002),
        "recovery": (0.001, 0.0015, 0.001, 0.0),
    }


@dataclass
class RegionalConfig:
    """Regional market indices feeding property and industrial formulas."""
    initial_index: float = 1.0
    min_index: float = 0.5
    max_index: float = 2.0
    phase_drift: Dict[str, Tuple[float, float, float, float]] = field(
        default_factory=_default_regional_drift
    )
    # Full noise width per index; step is uniform in [-width/2, width/2]
    noise_width: Tuple[float, float, float, float] = (0.002, 0.004, 0.003, 0.003)
    update_interval: float = 30.0


@dataclass
class EventConfig:
    """Market event spawn pacing."""
    check_interval: float = 30.0
    spawn_chance: float = 0.10
    cooldown_minutes: float = 5.0
    entourage_favorable_bias: float = 0.5  # Extra weight on boom/holiday draws

    @property
    def cooldown_seconds(self) -> float:
        return self.cooldown_minutes * 60.0


@dataclass
class UpgradeTrackSpec:
    """
    Generic upgrade track shared by businesses, properties and luxury items.

    cost(level) = base_cost * cost_growth ** level, where base_cost is
    supplied by the entity kind. The benefit is benefit_per_level * level,
    clipped at benefit_cap when one is set.
    """
    key: str
    max_level: int
    cost_growth: float
    benefit_per_level: float
    benefit_cap: Optional[float] = None
    categories: Tuple[str, ...] = ()  # Empty means every category is eligible

    def benefit(self, level: int) -> float:
        value = self.benefit_per_level * level
        if self.benefit_cap is not None:
            value = min(self.benefit_cap, value)
        return value

    def applies_to(self, category: str) -> bool:
        return not self.categories or category in self.categories


@dataclass
class CategoryProfile:
    """Constant parameter bundle for one business category."""
    elasticity: float
    operations_base: float = 0.08
    cogs_ratio: float = 0.0
    spoilage_rate: float = 0.0
    shrinkage_rate: float = 0.0
    network_effect_per_tier: float = 0.0
    infra_cost_per_tier: float = 0.0
    tier_start_level: int = 10
    tier_span: int = 5
    logistics_surcharge: float = 0.0
    energy_surcharge_threshold: float = 1.1
    compliance_cost: float = 0.0


def _default_category_profiles() -> Dict[str, CategoryProfile]:
    return {
        "FOOD_BEV": CategoryProfile(elasticity=-0.8, cogs_ratio=0.28, spoilage_rate=0.02),
        "RETAIL_SERVICES": CategoryProfile(elasticity=-0.6, shrinkage_rate=0.02),
        "TECH_APPS": CategoryProfile(
            elasticity=-0.3, network_effect_per_tier=0.02, infra_cost_per_tier=0.005
        ),
        "INDUSTRIAL": CategoryProfile(
            elasticity=-0.4, operations_base=0.10, logistics_surcharge=0.03
        ),
        "REAL_ESTATE_SERVICES": CategoryProfile(elasticity=-0.4),
        "FINANCE_SERVICES": CategoryProfile(elasticity=-0.2, compliance_cost=0.02),
    }


def _default_business_tracks() -> Dict[str, UpgradeTrackSpec]:
    return {
        "efficiency": UpgradeTrackSpec("efficiency", 10, 2.35, 0.10),
        "quality": UpgradeTrackSpec("quality", 10, 2.35, 0.12),
        "marketing": UpgradeTrackSpec("marketing", 10, 2.35, 0.08),
        "automation": UpgradeTrackSpec("automation", 6, 2.35, 0.15, benefit_cap=0.70),
        "sustainability": UpgradeTrackSpec("sustainability", 6, 2.35, 0.05),
        "rnd": UpgradeTrackSpec("rnd", 10, 2.35, 0.06, categories=("TECH_APPS",)),
        "security": UpgradeTrackSpec(
            "security", 5, 2.35, 0.004, categories=("RETAIL_SERVICES",)
        ),
    }


def _default_dominance_thresholds() -> List[Tuple[float, float, float]]:
    # (share, revenue bonus, marketing upkeep reduction), ascending by share
    return [
        (0.25, 0.05, 0.0),
        (0.50, 0.12, 0.02),
        (0.75, 0.20, 0.05),
    ]


def _default_supply_contracts() -> Dict[str, Tuple[float, float]]:
    # contract type -> (cogs delta, signing cost as fraction of base cost)
    return {
        "short_term": (0.02, 0.05),
        "long_term": (-0.03, 0.25),
    }


@dataclass
class BusinessConfig:
    """Business cost curves and revenue/cost model."""
    revenue_growth: float = 1.17
    level_cost_growth: float = 1.15
    upgrade_base_revenue_factor: float = 2.0  # Track cost base = revenue/h * factor * growth^level

    employee_cost_base: float = 0.15
    operations_cost_base: float = 0.08
    marketing_cost_base: float = 0.02
    marketing_upkeep_slope: float = 0.05  # Per marketing track level
    employee_efficiency_per_level: float = 0.15  # Per efficiency track level

    elasticity_clamp: Tuple[float, float] = (0.6, 1.3)
    price_index_range: Tuple[float, float] = (0.5, 2.0)

    npc_baseline_revenue: float = 1_000_000.0
    dominance_thresholds: List[Tuple[float, float, float]] = field(
        default_factory=_default_dominance_thresholds
    )

    sale_depreciation: float = 0.7
    auto_generate_level: int = 1
    hiring_cost_fraction: float = 0.1  # Of base cost, per hire
    training_efficiency_per_level: float = 0.05
    training_cost_fraction: float = 0.15  # Of base cost, times (level + 1)
    max_training_level: int = 10
    supply_contracts: Dict[str, Tuple[float, float]] = field(
        default_factory=_default_supply_contracts
    )

    categories: Dict[str, CategoryProfile] = field(default_factory=_default_category_profiles)
    tracks: Dict[str, UpgradeTrackSpec] = field(default_factory=_default_business_tracks)


def _default_tenant_tiers() -> Dict[str, Tuple[float, float, float]]:
    # tier -> (rent multiplier, vacancy rate, maintenance add-on)
    return {
        "A": (1.10, 0.02, 0.00),
        "B": (1.00, 0.04, 0.01),
        "C": (0.90, 0.07, 0.03),
    }


def _default_amenities() -> Dict[str, Tuple[float, float, float, float]]:
    # amenity -> (rent bonus, maintenance add-on, vacancy reduction, cost fraction of base cost)
    return {
        "pool": (0.06, 0.01, 0.0, 0.08),
        "gym": (0.04, 0.005, 0.0, 0.05),
        "parking": (0.03, 0.002, 0.0, 0.03),
        "security": (0.02, 0.003, 0.01, 0.04),
    }


def _default_regional_formulas() -> Dict[str, Tuple[str, float, float]]:
    # category -> (regional index name, base, weight)
    return {
        "RESIDENTIAL": ("housing_price_index", 0.9, 0.2),
        "COMMERCIAL": ("business_rent_demand", 0.9, 0.2),
        "LUXURY_DEV": ("tourism_index", 0.8, 0.3),
    }


def _default_property_tracks() -> Dict[str, UpgradeTrackSpec]:
    return {
        "smart_management": UpgradeTrackSpec("smart_management", 10, 1.6, 0.08, benefit_cap=0.60),
        "renovation": UpgradeTrackSpec("renovation", 10, 1.6, 0.10),
        "screening": UpgradeTrackSpec("screening", 5, 1.6, 0.005, categories=("RESIDENTIAL",)),
        "fitout": UpgradeTrackSpec("fitout", 5, 1.8, 0.05, categories=("COMMERCIAL",)),
    }


@dataclass
class PropertyConfig:
    """Property rent model, upkeep and value."""
    level_cost_growth: float = 1.15
    maintenance_rate: float = 0.12
    tax_rate_monthly: float = 0.0008
    insurance_rate_monthly: float = 0.0004
    seconds_per_month: float = 30 * 24 * 3600.0
    value_upgrade_factor: float = 0.7  # Share of upgrade spend that becomes market value
    use_income_ratio: float = 0.6  # Owner-occupied income as a share of rent
    track_base_cost_fraction: float = 0.1  # Of base cost
    default_vacancy: float = 0.04  # Non-residential vacancy
    default_tenant_tier: str = "B"

    tenant_tiers: Dict[str, Tuple[float, float, float]] = field(default_factory=_default_tenant_tiers)
    tenant_change_cost_fraction: float = 0.02  # Of base cost
    amenities: Dict[str, Tuple[float, float, float, float]] = field(default_factory=_default_amenities)
    regional_formulas: Dict[str, Tuple[str, float, float]] = field(
        default_factory=_default_regional_formulas
    )
    tracks: Dict[str, UpgradeTrackSpec] = field(default_factory=_default_property_tracks)


def _default_luxury_tracks() -> Dict[str, UpgradeTrackSpec]:
    return {
        "polish": UpgradeTrackSpec("polish", 10, 1.5, 0.005, benefit_cap=0.05),
        "refit": UpgradeTrackSpec("refit", 10, 1.7, 0.01, benefit_cap=0.10),
    }


def _default_brand_thresholds() -> List[Tuple[float, float]]:
    # (brand score, global income bonus), ascending by score
    return [(3.0, 0.02), (7.0, 0.04), (12.0, 0.06)]


@dataclass
class LuxuryConfig:
    """Luxury items, brand influence and entourage."""
    track_base_cost_fraction: float = 0.2  # Of item cost
    entourage_cost_fraction: float = 0.5  # Of item cost
    tracks: Dict[str, UpgradeTrackSpec] = field(default_factory=_default_luxury_tracks)
    brand_thresholds: List[Tuple[float, float]] = field(default_factory=_default_brand_thresholds)
    mitigation_score: float = 12.0  # Brand score that halves negative event revenue effects
    mitigation_factor: float = 0.5


def _default_sigmas() -> Dict[str, float]:
    return {"LOW": 0.015, "MED": 0.03, "HIGH": 0.06}


def _default_phase_bias() -> Dict[str, float]:
    return {
        "peak": 0.002,
        "expansion": 0.001,
        "recovery": 0.0005,
        "trough": -0.001,
        "recession": -0.002,
    }


@dataclass
class StockConfig:
    """Stock market random walk."""
    unlock_lifetime_earnings: float = 250_000.0
    tick_interval: float = 5.0
    drift_daily: float = 0.0008
    floor_multiple: float = 0.1
    history_length: int = 20
    volatility: Dict[str, float] = field(default_factory=_default_sigmas)
    phase_bias: Dict[str, float] = field(default_factory=_default_phase_bias)
    event_bias: float = 0.01

    @property
    def drift_per_tick(self) -> float:
        return self.drift_daily * self.tick_interval / 86400.0


@dataclass
class SessionConfig:
    """Tick cadence, offline catch-up, tapping and ad pacing."""
    cash_tick_interval: float = 1.0
    save_interval: float = 5.0
    max_offline_seconds: float = 4 * 3600.0
    storage_key: str = "finance_tycoon_game_state_v2"
    schema_version: int = 2
    starting_cash: float = 0.0

    tap_cost_growth: float = 1.25
    tap_multiplier_step: float = 0.1
    multiplier_cost_growth: float = 1.35

    ad_cooldown: float = 300.0
    ad_progress_divisor: float = 100_000.0
    premium_ad_factor: float = 2.0
    forced_ad_interval: float = 180.0
    free_upgrade_cooldown: float = 180.0
    free_upgrade_offer_gap: float = 30.0
    initial_ad_delay: float = 150.0
    min_ad_gap: float = 60.0


@dataclass
class LoanConfig:
    """Amortized loan pricing."""
    base_rate: float = 0.05
    size_slope: float = 0.02  # Added per size_unit borrowed
    size_unit: float = 10_000_000.0
    min_months: int = 1
    max_months: int = 360
    max_principal: float = 1e12


@dataclass
class GameConfig:
    """Master configuration for the entire game economy."""

    # Sub-configurations
    global_caps: GlobalConfig = field(default_factory=GlobalConfig)
    prestige: PrestigeConfig = field(default_factory=PrestigeConfig)
    cycle: EconomicCycleConfig = field(default_factory=EconomicCycleConfig)
    sentiment: SentimentConfig = field(default_factory=SentimentConfig)
    efficiency: EfficiencyConfig = field(default_factory=EfficiencyConfig)
    regional: RegionalConfig = field(default_factory=RegionalConfig)
    events: EventConfig = field(default_factory=EventConfig)
    businesses: BusinessConfig = field(default_factory=BusinessConfig)
    properties: PropertyConfig = field(default_factory=PropertyConfig)
    luxury: LuxuryConfig = field(default_factory=LuxuryConfig)
    stocks: StockConfig = field(default_factory=StockConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    loans: LoanConfig = field(default_factory=LoanConfig)

    def __post_init__(self):
        """Validation of cross-field invariants."""
        if self.global_caps.multiplier_cap <= 0:
            raise ValueError("multiplier_cap must be positive")
        if self.global_caps.epsilon <= 0:
            raise ValueError("epsilon must be positive")

        if not self.cycle.phases:
            raise ValueError("economic cycle needs at least one phase")
        for spec in self.cycle.phases:
            if spec.duration_minutes <= 0:
                raise ValueError(f"phase {spec.name} must have a positive duration")
            if spec.multiplier < 0:
                raise ValueError(f"phase {spec.name} multiplier cannot be negative")

        if not (self.sentiment.minimum <= self.sentiment.initial <= self.sentiment.maximum):
            raise ValueError("sentiment initial value must be inside [minimum, maximum]")
        if not (self.efficiency.floor < self.efficiency.cap):
            raise ValueError("efficiency floor must be below cap")
        if not (self.efficiency.floor <= self.efficiency.target <= self.efficiency.cap):
            raise ValueError("efficiency target must be inside [floor, cap]")
        if not (self.regional.min_index < self.regional.max_index):
            raise ValueError("regional min_index must be below max_index")

        low, high = self.businesses.elasticity_clamp
        if low > high:
            raise ValueError("elasticity clamp min must not exceed max")
        if self.businesses.revenue_growth <= 1.0 or self.businesses.level_cost_growth <= 1.0:
            raise ValueError("business growth rates must exceed 1.0")
        for track in (
            list(self.businesses.tracks.values())
            + list(self.properties.tracks.values())
            + list(self.luxury.tracks.values())
        ):
            if track.cost_growth <= 1.0:
                raise ValueError(f"track {track.key} cost_growth must exceed 1.0")
            if track.max_level <= 0:
                raise ValueError(f"track {track.key} max_level must be positive")

        if not (0.0 < self.stocks.floor_multiple <= 1.0):
            raise ValueError("stock floor_multiple must be in (0, 1]")
        if self.stocks.history_length <= 0:
            raise ValueError("stock history_length must be positive")

        for name in (
            "cash_tick_interval",
            "save_interval",
            "max_offline_seconds",
        ):
            if getattr(self.session, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.events.check_interval <= 0 or self.sentiment.update_interval <= 0:
            raise ValueError("macro update intervals must be positive")
        if not (0.0 <= self.events.spawn_chance <= 1.0):
            raise ValueError("event spawn_chance must be in [0, 1]")


@dataclass
class RuntimeSettings:
    """Process-level settings read from the environment (.env supported)."""
    db_path: str = "tycoon.db"
    rng_seed: Optional[int] = None
    log_level: str = "INFO"


def load_runtime_settings() -> RuntimeSettings:
    load_dotenv()
    seed = os.getenv("TYCOON_RNG_SEED")
    return RuntimeSettings(
        db_path=os.getenv("TYCOON_DB_PATH", "tycoon.db"),
        rng_seed=int(seed) if seed else None,
        log_level=os.getenv("TYCOON_LOG_LEVEL", "INFO").upper(),
    )


# Global configuration instance
CONFIG = GameConfig()
