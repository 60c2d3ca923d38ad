"""
Global Multiplier Composition

Combines prestige, additive bonuses (luxury, premium, brand influence),
economic phase, sentiment, efficiency and events into the single bounded
multiplier applied to passive income. The cap is applied exactly once, to
the final product.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from config import CONFIG, GameConfig
from entities import MarketEvent


def prestige_multiplier(prestige_level: int, config: GameConfig = CONFIG) -> float:
    """Compound the tiered per-level rate once for every prestige level."""
    cfg = config.prestige
    multiplier = 1.0
    for level in range(1, max(0, prestige_level) + 1):
        if level <= cfg.tier_one_max_level:
            multiplier *= cfg.tier_one_rate
        elif level <= cfg.tier_two_max_level:
            multiplier *= cfg.tier_two_rate
        else:
            multiplier *= cfg.tier_three_rate
    return multiplier


def sentiment_multiplier(sentiment: float) -> float:
    return 0.5 + sentiment / 100.0


def event_multiplier(
    events: Iterable[MarketEvent],
    now: float,
    category: Optional[str] = None,
    mitigation: bool = False,
    config: GameConfig = CONFIG,
) -> float:
    """
    Product of revenue multipliers of live events targeting `category`.

    Events scoped to other categories contribute 1.0. With category=None
    only unscoped (global) events apply. Mitigation shrinks the downside of
    negative events by the configured factor.
    """
    multiplier = 1.0
    for event in events:
        if not event.is_live(now) or event.revenue_multiplier is None:
            continue
        if not event.targets_category(category):
            continue
        effect = event.revenue_multiplier
        if mitigation and effect < 1.0:
            effect = 1.0 - (1.0 - effect) * config.luxury.mitigation_factor
        multiplier *= effect
    return multiplier


def compose(
    prestige_level: int,
    luxury_bonus: float,
    premium_bonus: float,
    phase_multiplier: float,
    sentiment_mult: float,
    efficiency_multiplier: float,
    event_mult: float,
    brand_bonus: float = 0.0,
    config: GameConfig = CONFIG,
) -> float:
    """Return the composed multiplier clamped to [0, multiplier_cap]."""
    raw = prestige_multiplier(prestige_level, config)
    raw *= 1.0 + luxury_bonus + premium_bonus + brand_bonus
    raw *= phase_multiplier
    raw *= sentiment_mult
    raw *= efficiency_multiplier
    raw *= event_mult
    return max(0.0, min(config.global_caps.multiplier_cap, raw))


@dataclass(frozen=True)
class MultiplierBreakdown:
    """Every factor of the global multiplier, for display."""
    prestige: float
    additive: float
    phase: float
    sentiment: float
    efficiency: float
    events: float
    total: float
    capped: bool

    def to_dict(self) -> Dict[str, object]:
        return {
            "prestige": self.prestige,
            "additive": self.additive,
            "phase": self.phase,
            "sentiment": self.sentiment,
            "efficiency": self.efficiency,
            "events": self.events,
            "total": self.total,
            "capped": self.capped,
        }


def breakdown(
    prestige_level: int,
    luxury_bonus: float,
    premium_bonus: float,
    phase_multiplier: float,
    sentiment_mult: float,
    efficiency_multiplier: float,
    event_mult: float,
    brand_bonus: float = 0.0,
    config: GameConfig = CONFIG,
) -> MultiplierBreakdown:
    prestige = prestige_multiplier(prestige_level, config)
    additive = 1.0 + luxury_bonus + premium_bonus + brand_bonus
    raw = prestige * additive * phase_multiplier * sentiment_mult * efficiency_multiplier * event_mult
    total = compose(
        prestige_level, luxury_bonus, premium_bonus, phase_multiplier,
        sentiment_mult, efficiency_multiplier, event_mult, brand_bonus, config,
    )
    return MultiplierBreakdown(
        prestige=prestige,
        additive=additive,
        phase=phase_multiplier,
        sentiment=sentiment_mult,
        efficiency=efficiency_multiplier,
        events=event_mult,
        total=total,
        capped=raw > config.global_caps.multiplier_cap,
    )
