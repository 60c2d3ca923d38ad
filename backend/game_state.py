"""
Game State

The single aggregate of everything a session owns: entity collections,
cumulative counters, progression, macro state and session bookkeeping.

Also holds the load-side merge: persisted JSON is overlaid field by field on
a fresh default state, and entity collections are merged by id against the
current catalog so catalog changes between versions are tolerated.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from catalog import DEFAULT_CATALOG, Catalog, fresh_tap_power
from config import CONFIG, GameConfig, UpgradeTrackSpec
from entities import (
    Achievement,
    Business,
    EconomicPhase,
    Goal,
    Loan,
    LuxuryItem,
    MarketEvent,
    Multiplier,
    Property,
    RegionalModifiers,
    Stock,
    TapPower,
    coerce_value,
)

logger = logging.getLogger(__name__)

# Fields that survive a prestige reset. Everything else returns to fresh
# defaults, apart from prestige_level and prestige_multiplier.
PRESTIGE_CARRY_OVER = (
    "lifetime_taps",
    "achievements",
    "is_premium",
    "ads_watched",
    "luxury_items",
)

# Plain scalar fields overlaid directly from a save.
SCALAR_FIELDS = (
    "cash",
    "total_earnings",
    "total_spent",
    "realized_profit",
    "trade_count",
    "prestige_level",
    "prestige_multiplier",
    "lifetime_taps",
    "market_sentiment",
    "efficiency_multiplier",
    "last_event_time",
    "trading_unlocked",
    "is_premium",
    "ads_watched",
    "last_ad_watch_time",
    "free_upgrade_ads_watched",
    "last_free_upgrade_ad_time",
    "last_free_upgrade_available_time",
    "last_forced_ad_time",
    "user_actions_since_ad",
    "total_debt",
    "is_bankrupt",
    "bankruptcy_count",
    "last_save_time",
)


@dataclass
class GameState:
    """Canonical mutable state for one session."""

    # Entity collections
    businesses: List[Business] = field(default_factory=list)
    properties: List[Property] = field(default_factory=list)
    luxury_items: List[LuxuryItem] = field(default_factory=list)
    stocks: List[Stock] = field(default_factory=list)
    multipliers: List[Multiplier] = field(default_factory=list)
    achievements: List[Achievement] = field(default_factory=list)
    goals: List[Goal] = field(default_factory=list)

    # Cumulative counters
    cash: float = 0.0
    total_earnings: float = 0.0
    total_spent: float = 0.0
    realized_profit: float = 0.0  # Stock trading only
    trade_count: int = 0

    # Progression
    prestige_level: int = 0
    prestige_multiplier: float = 1.0  # Applied to tap earnings
    lifetime_taps: int = 0
    tap_power: TapPower = field(default_factory=fresh_tap_power)

    # Macro state
    economic_phase: Optional[EconomicPhase] = None
    market_sentiment: float = 50.0
    efficiency_multiplier: float = 1.0
    regional_modifiers: RegionalModifiers = field(default_factory=RegionalModifiers)
    active_market_events: List[MarketEvent] = field(default_factory=list)
    last_event_time: float = 0.0

    # Monetization and session pacing
    trading_unlocked: bool = False
    is_premium: bool = False
    ads_watched: int = 0
    last_ad_watch_time: float = 0.0
    free_upgrade_ads_watched: int = 0
    last_free_upgrade_ad_time: float = 0.0
    last_free_upgrade_available_time: float = 0.0
    last_forced_ad_time: float = 0.0
    user_actions_since_ad: int = 0
    session_start_time: float = 0.0

    # Debt
    loans: List[Loan] = field(default_factory=list)
    total_debt: float = 0.0

    # Solvency
    is_bankrupt: bool = False
    bankruptcy_count: int = 0

    last_save_time: float = 0.0
    schema_version: int = 2

    def get_business(self, business_id: str) -> Optional[Business]:
        return _by_id(self.businesses, business_id)

    def get_property(self, property_id: str) -> Optional[Property]:
        return _by_id(self.properties, property_id)

    def get_luxury_item(self, item_id: str) -> Optional[LuxuryItem]:
        return _by_id(self.luxury_items, item_id)

    def get_stock(self, stock_id: str) -> Optional[Stock]:
        return _by_id(self.stocks, stock_id)

    def get_multiplier(self, multiplier_id: str) -> Optional[Multiplier]:
        return _by_id(self.multipliers, multiplier_id)

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        return _by_id(self.loans, loan_id)

    def to_dict(self) -> Dict[str, object]:
        """Serialize the whole state to JSON-compatible types."""
        data: Dict[str, object] = {name: getattr(self, name) for name in SCALAR_FIELDS}
        data.update({
            "businesses": [b.to_dict() for b in self.businesses],
            "properties": [p.to_dict() for p in self.properties],
            "luxury_items": [item.to_dict() for item in self.luxury_items],
            "stocks": [s.to_dict() for s in self.stocks],
            "multipliers": [m.to_dict() for m in self.multipliers],
            "achievements": [a.to_dict() for a in self.achievements],
            "goals": [g.to_dict() for g in self.goals],
            "tap_power": self.tap_power.to_dict(),
            "economic_phase": self.economic_phase.to_dict() if self.economic_phase else None,
            "regional_modifiers": self.regional_modifiers.to_dict(),
            "active_market_events": [e.to_dict() for e in self.active_market_events],
            "loans": [loan.to_dict() for loan in self.loans],
            "session_start_time": self.session_start_time,
            "schema_version": self.schema_version,
        })
        return data


def _by_id(items, entity_id: str):
    for item in items:
        if item.id == entity_id:
            return item
    return None


def fresh_state(now: float, catalog: Catalog = DEFAULT_CATALOG, config: GameConfig = CONFIG) -> GameState:
    """Build the default state every new game (and every prestige) starts from."""
    first_phase = config.cycle.phases[0]
    return GameState(
        businesses=[t.create() for t in catalog.businesses],
        properties=[t.create() for t in catalog.properties],
        luxury_items=[t.create() for t in catalog.luxury_items],
        stocks=[t.create(config.stocks.history_length) for t in catalog.stocks],
        multipliers=[t.create() for t in catalog.multipliers],
        achievements=[t.create() for t in catalog.achievements],
        goals=[t.create() for t in catalog.goals],
        cash=config.session.starting_cash,
        market_sentiment=config.sentiment.initial,
        efficiency_multiplier=config.efficiency.initial,
        regional_modifiers=RegionalModifiers(*([config.regional.initial_index] * 4)),
        economic_phase=EconomicPhase(
            first_phase.name, now, first_phase.duration_seconds, first_phase.multiplier
        ),
        last_event_time=now,
        session_start_time=now,
        last_save_time=now,
        schema_version=config.session.schema_version,
    )


def _index_by_id(entries: object) -> Dict[str, Mapping[str, object]]:
    if not isinstance(entries, list):
        return {}
    return {
        str(entry["id"]): entry
        for entry in entries
        if isinstance(entry, Mapping) and "id" in entry
    }


def _track_limits(tracks: Mapping[str, UpgradeTrackSpec]) -> Dict[str, int]:
    return {key: spec.max_level for key, spec in tracks.items()}


def _merge_phase(data: object, fallback: EconomicPhase, config: GameConfig) -> EconomicPhase:
    if not isinstance(data, Mapping):
        return fallback
    try:
        spec = config.cycle.phase(str(data.get("phase")))
    except KeyError:
        return fallback
    start = coerce_value(data.get("start_time"), fallback.start_time)
    return EconomicPhase(spec.name, start, spec.duration_seconds, spec.multiplier)


def _merge_regional(data: object, fallback: RegionalModifiers, config: GameConfig) -> RegionalModifiers:
    if not isinstance(data, Mapping):
        return fallback
    low, high = config.regional.min_index, config.regional.max_index
    values = [
        min(high, max(low, coerce_value(data.get(name), fallback.index(name))))
        for name in RegionalModifiers.FIELDS
    ]
    return RegionalModifiers(*values)


def _merge_records(entries: object, factory) -> list:
    records = []
    if not isinstance(entries, list):
        return records
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        try:
            records.append(factory(entry))
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Dropping malformed persisted record: {entry!r}")
    return records


def merge_persisted(
    data: Mapping[str, object],
    now: float,
    catalog: Catalog = DEFAULT_CATALOG,
    config: GameConfig = CONFIG,
) -> GameState:
    """
    Overlay a persisted document on a fresh default state.

    Scalars fall back to the default when absent or malformed. Entity
    collections iterate the catalog: new catalog entries keep defaults and
    entries that no longer exist in the catalog are dropped.
    """
    if not isinstance(data, Mapping):
        raise ValueError("persisted state must be a JSON object")

    state = fresh_state(now, catalog, config)

    for name in SCALAR_FIELDS:
        if name in data:
            setattr(state, name, coerce_value(data[name], getattr(state, name)))
    if "session_start_time" in data:
        state.session_start_time = coerce_value(data["session_start_time"], state.session_start_time)

    business_tracks = _track_limits(config.businesses.tracks)
    saved = _index_by_id(data.get("businesses"))
    for business in state.businesses:
        if business.id in saved:
            business.apply_overrides(saved[business.id], business_tracks)

    property_tracks = _track_limits(config.properties.tracks)
    amenities = tuple(config.properties.amenities)
    tiers = tuple(config.properties.tenant_tiers)
    saved = _index_by_id(data.get("properties"))
    for prop in state.properties:
        if prop.id in saved:
            prop.apply_overrides(saved[prop.id], property_tracks, amenities, tiers)

    luxury_tracks = _track_limits(config.luxury.tracks)
    saved = _index_by_id(data.get("luxury_items"))
    for item in state.luxury_items:
        if item.id in saved:
            item.apply_overrides(saved[item.id], luxury_tracks)

    saved = _index_by_id(data.get("stocks"))
    for stock in state.stocks:
        if stock.id in saved:
            stock.apply_overrides(saved[stock.id], stock.base_price * config.stocks.floor_multiple)

    for collection, key in (
        (state.multipliers, "multipliers"),
        (state.achievements, "achievements"),
        (state.goals, "goals"),
    ):
        saved = _index_by_id(data.get(key))
        for entity in collection:
            if entity.id in saved:
                entity.apply_overrides(saved[entity.id])

    if isinstance(data.get("tap_power"), Mapping):
        state.tap_power.apply_overrides(data["tap_power"])

    state.economic_phase = _merge_phase(data.get("economic_phase"), state.economic_phase, config)
    state.regional_modifiers = _merge_regional(
        data.get("regional_modifiers"), state.regional_modifiers, config
    )
    state.active_market_events = _merge_records(data.get("active_market_events"), MarketEvent.from_dict)
    state.loans = _merge_records(data.get("loans"), Loan.from_dict)
    state.total_debt = sum(loan.payoff_amount for loan in state.loans)

    sentiment = config.sentiment
    state.market_sentiment = min(sentiment.maximum, max(sentiment.minimum, state.market_sentiment))
    efficiency = config.efficiency
    state.efficiency_multiplier = min(efficiency.cap, max(efficiency.floor, state.efficiency_multiplier))
    state.cash = max(0.0, state.cash)
    state.schema_version = config.session.schema_version
    return state
