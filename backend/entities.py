"""
Tycoon Entity Model

Mutable game entities (businesses, properties, luxury items, stocks) and the
small value objects that describe macro state. Static parameters come from
the catalog; only progress fields are persisted and overlaid on load.

Computed per-hour metrics are stored on the entities for display, but they
are always re-derived by the valuation functions and never edited in place.
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, Iterable, List, Mapping, Optional, Tuple


class BusinessCategory(str, Enum):
    FOOD_BEV = "FOOD_BEV"
    RETAIL_SERVICES = "RETAIL_SERVICES"
    TECH_APPS = "TECH_APPS"
    INDUSTRIAL = "INDUSTRIAL"
    REAL_ESTATE_SERVICES = "REAL_ESTATE_SERVICES"
    FINANCE_SERVICES = "FINANCE_SERVICES"


class PropertyCategory(str, Enum):
    RESIDENTIAL = "RESIDENTIAL"
    COMMERCIAL = "COMMERCIAL"
    LUXURY_DEV = "LUXURY_DEV"


class StockSector(str, Enum):
    FOOD = "Food"
    RETAIL = "Retail"
    TECH = "Tech"
    INDUSTRIAL = "Industrial"
    REAL_ESTATE = "RealEstate"
    SERVICES = "Services"
    TOURISM = "Tourism"
    ENERGY = "Energy"


class VolatilityTier(str, Enum):
    LOW = "LOW"
    MED = "MED"
    HIGH = "HIGH"


class EventType(str, Enum):
    BOOM = "boom"
    CRASH = "crash"
    EMERGENCY = "emergency"
    HOLIDAY = "holiday"


def coerce_value(value: object, default):
    """Cast a persisted value to the type of its default, keeping the default on failure."""
    if value is None:
        return default
    try:
        if isinstance(default, bool):
            return bool(value)
        if isinstance(default, int) and not isinstance(value, bool):
            return int(value)
        if isinstance(default, float):
            return float(value)
        if isinstance(default, str):
            return str(value)
    except (TypeError, ValueError):
        return default
    return value


def _coerce_levels(value: object, limits: Mapping[str, int]) -> Dict[str, int]:
    """Sanitize a persisted track-level mapping into [0, max_level] per known track."""
    levels: Dict[str, int] = {}
    if not isinstance(value, Mapping):
        return levels
    for key, level in value.items():
        if key in limits:
            levels[key] = min(limits[key], max(0, coerce_value(level, 0)))
    return levels


@dataclass(slots=True)
class Business:
    """
    A revenue-generating business.

    `level == 0` always means not owned. Upgrade tracks are kept in
    `upgrades` (track key -> level); the track specs live in config.
    """

    # Static catalog parameters
    id: str
    name: str
    category: BusinessCategory
    base_revenue_per_hour: float
    base_cost: float
    max_employees: int = 10
    foot_traffic_index: float = 1.0  # Retail only

    # Progress
    level: int = 0
    owned: bool = False
    auto_generate: bool = False
    upgrades: Dict[str, int] = field(default_factory=dict)
    price_index: float = 1.0  # Demand-elasticity input, 1.0 = market price
    employees: int = 0
    training_level: int = 0
    supply_contract: Optional[str] = None  # Food & beverage vendor contract type
    total_invested: float = 0.0

    # Derived per-hour metrics (recomputed, never edited)
    revenue_per_hour: float = 0.0
    employee_cost_per_hour: float = 0.0
    operations_cost_per_hour: float = 0.0
    marketing_cost_per_hour: float = 0.0
    total_costs_per_hour: float = 0.0
    net_income_per_hour: float = 0.0

    PERSISTED = (
        "level", "owned", "auto_generate", "upgrades", "price_index", "employees",
        "training_level", "supply_contract", "total_invested",
    )

    def __post_init__(self):
        """Validate invariants after initialization."""
        self.category = BusinessCategory(self.category)
        if self.base_revenue_per_hour < 0 or self.base_cost <= 0:
            raise ValueError(f"business {self.id} needs positive base cost and non-negative revenue")
        if self.level < 0:
            raise ValueError(f"business {self.id} level cannot be negative")
        if (self.level == 0) == self.owned:
            raise ValueError(f"business {self.id}: level 0 must mean not owned")

    def track_level(self, key: str) -> int:
        return self.upgrades.get(key, 0)

    def to_dict(self) -> Dict[str, object]:
        """Serialize all fields to basic Python types."""
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "base_revenue_per_hour": self.base_revenue_per_hour,
            "base_cost": self.base_cost,
            "max_employees": self.max_employees,
            "foot_traffic_index": self.foot_traffic_index,
            "level": self.level,
            "owned": self.owned,
            "auto_generate": self.auto_generate,
            "upgrades": dict(self.upgrades),
            "price_index": self.price_index,
            "employees": self.employees,
            "training_level": self.training_level,
            "supply_contract": self.supply_contract,
            "total_invested": self.total_invested,
            "revenue_per_hour": self.revenue_per_hour,
            "employee_cost_per_hour": self.employee_cost_per_hour,
            "operations_cost_per_hour": self.operations_cost_per_hour,
            "marketing_cost_per_hour": self.marketing_cost_per_hour,
            "total_costs_per_hour": self.total_costs_per_hour,
            "net_income_per_hour": self.net_income_per_hour,
        }

    def apply_overrides(
        self, overrides: Mapping[str, object], track_limits: Optional[Mapping[str, int]] = None
    ) -> None:
        """
        Overlay persisted progress onto a fresh catalog entity.

        Static catalog fields are never overwritten; unknown or malformed
        values keep the fresh default.
        """
        for key in self.PERSISTED:
            if key not in overrides:
                continue
            if key == "upgrades":
                self.upgrades = _coerce_levels(overrides[key], track_limits or {})
            elif key == "supply_contract":
                value = overrides[key]
                self.supply_contract = value if isinstance(value, str) else None
            else:
                setattr(self, key, coerce_value(overrides[key], getattr(self, key)))
        self.level = max(0, self.level)
        self.owned = self.level > 0


@dataclass(slots=True)
class Property:
    """A rentable (or owner-used) property."""

    # Static catalog parameters
    id: str
    name: str
    category: PropertyCategory
    base_income_per_hour: float
    base_cost: float

    # Progress
    level: int = 0
    owned: bool = False
    upgrades: Dict[str, int] = field(default_factory=dict)
    tenant_quality: str = "B"
    amenities: List[str] = field(default_factory=list)
    rented: bool = True
    total_upgrade_spend: float = 0.0

    # Cosmetic progress scores (0-100)
    condition_score: float = 50.0
    energy_efficiency: float = 50.0
    security_level: float = 50.0
    amenities_level: float = 0.0

    # Derived
    current_market_value: float = 0.0
    income_per_hour: float = 0.0
    maintenance_per_hour: float = 0.0
    taxes_per_sec: float = 0.0
    insurance_per_sec: float = 0.0
    net_income_per_hour: float = 0.0

    PERSISTED = (
        "level", "owned", "upgrades", "tenant_quality", "amenities", "rented",
        "total_upgrade_spend",
    )

    def __post_init__(self):
        """Validate invariants after initialization."""
        self.category = PropertyCategory(self.category)
        if self.base_cost <= 0 or self.base_income_per_hour < 0:
            raise ValueError(f"property {self.id} needs positive base cost and non-negative income")
        if (self.level == 0) == self.owned:
            raise ValueError(f"property {self.id}: level 0 must mean not owned")

    def track_level(self, key: str) -> int:
        return self.upgrades.get(key, 0)

    def refresh_scores(self) -> None:
        """Recompute cosmetic progress scores from upgrades and amenities."""
        self.condition_score = min(100.0, 50.0 + 5.0 * self.track_level("renovation"))
        self.energy_efficiency = min(100.0, 50.0 + 5.0 * self.track_level("smart_management"))
        security = 10.0 * self.track_level("screening") + (20.0 if "security" in self.amenities else 0.0)
        self.security_level = min(100.0, 50.0 + security)
        self.amenities_level = 25.0 * len(self.amenities)

    def to_dict(self) -> Dict[str, object]:
        """Serialize all fields to basic Python types."""
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "base_income_per_hour": self.base_income_per_hour,
            "base_cost": self.base_cost,
            "level": self.level,
            "owned": self.owned,
            "upgrades": dict(self.upgrades),
            "tenant_quality": self.tenant_quality,
            "amenities": list(self.amenities),
            "rented": self.rented,
            "total_upgrade_spend": self.total_upgrade_spend,
            "condition_score": self.condition_score,
            "energy_efficiency": self.energy_efficiency,
            "security_level": self.security_level,
            "amenities_level": self.amenities_level,
            "current_market_value": self.current_market_value,
            "income_per_hour": self.income_per_hour,
            "maintenance_per_hour": self.maintenance_per_hour,
            "taxes_per_sec": self.taxes_per_sec,
            "insurance_per_sec": self.insurance_per_sec,
            "net_income_per_hour": self.net_income_per_hour,
        }

    def apply_overrides(
        self,
        overrides: Mapping[str, object],
        track_limits: Optional[Mapping[str, int]] = None,
        amenity_keys: Iterable[str] = (),
        tenant_tiers: Iterable[str] = ("A", "B", "C"),
    ) -> None:
        """Overlay persisted progress onto a fresh catalog entity."""
        for key in self.PERSISTED:
            if key not in overrides:
                continue
            value = overrides[key]
            if key == "upgrades":
                self.upgrades = _coerce_levels(value, track_limits or {})
            elif key == "amenities":
                allowed = set(amenity_keys)
                if isinstance(value, list):
                    self.amenities = [a for a in dict.fromkeys(value) if a in allowed]
            elif key == "tenant_quality":
                if value in set(tenant_tiers):
                    self.tenant_quality = value
            else:
                setattr(self, key, coerce_value(value, getattr(self, key)))
        self.level = max(0, self.level)
        self.owned = self.level > 0
        self.refresh_scores()


@dataclass(slots=True)
class LuxuryItem:
    """A one-time purchase adding to the global additive bonus."""

    id: str
    name: str
    cost: float
    base_multiplier: float
    prestige_requirement: int = 0
    brand_score: float = 0.0

    owned: bool = False
    upgrades: Dict[str, int] = field(default_factory=dict)
    entourage: bool = False
    current_multiplier: float = 0.0  # Derived: base + track benefits

    PERSISTED = ("owned", "upgrades", "entourage")

    def __post_init__(self):
        if self.cost <= 0:
            raise ValueError(f"luxury item {self.id} needs a positive cost")
        if not self.current_multiplier:
            self.current_multiplier = self.base_multiplier

    def track_level(self, key: str) -> int:
        return self.upgrades.get(key, 0)

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "cost": self.cost,
            "base_multiplier": self.base_multiplier,
            "prestige_requirement": self.prestige_requirement,
            "brand_score": self.brand_score,
            "owned": self.owned,
            "upgrades": dict(self.upgrades),
            "entourage": self.entourage,
            "current_multiplier": self.current_multiplier,
        }

    def apply_overrides(
        self, overrides: Mapping[str, object], track_limits: Optional[Mapping[str, int]] = None
    ) -> None:
        for key in self.PERSISTED:
            if key not in overrides:
                continue
            if key == "upgrades":
                self.upgrades = _coerce_levels(overrides[key], track_limits or {})
            else:
                setattr(self, key, coerce_value(overrides[key], getattr(self, key)))


@dataclass(slots=True)
class Stock:
    """
    A tradable stock with a bounded price history.

    The current price never falls below base_price * floor_multiple; the
    simulator enforces this on every tick.
    """

    id: str
    name: str
    symbol: str
    sector: StockSector
    volatility: VolatilityTier
    base_price: float
    current_price: float = 0.0
    history_length: int = 20
    price_history: Deque[float] = field(default_factory=deque)
    shares_owned: int = 0
    average_buy_price: float = 0.0
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None

    PERSISTED = (
        "current_price", "price_history", "shares_owned", "average_buy_price",
        "stop_loss", "take_profit",
    )

    def __post_init__(self):
        """Validate invariants after initialization."""
        self.sector = StockSector(self.sector)
        self.volatility = VolatilityTier(self.volatility)
        if self.base_price <= 0:
            raise ValueError(f"stock {self.symbol} needs a positive base price")
        if self.current_price <= 0:
            self.current_price = self.base_price
        history = list(self.price_history) or [self.current_price]
        self.price_history = deque(history, maxlen=self.history_length)

    def record_price(self, price: float) -> None:
        self.current_price = price
        self.price_history.append(price)  # deque drops the oldest past maxlen

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "symbol": self.symbol,
            "sector": self.sector.value,
            "volatility": self.volatility.value,
            "base_price": self.base_price,
            "current_price": self.current_price,
            "price_history": list(self.price_history),
            "shares_owned": self.shares_owned,
            "average_buy_price": self.average_buy_price,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
        }

    def apply_overrides(self, overrides: Mapping[str, object], floor_price: float = 0.0) -> None:
        for key in self.PERSISTED:
            if key not in overrides:
                continue
            value = overrides[key]
            if key == "price_history":
                if isinstance(value, list):
                    prices = [coerce_value(p, 0.0) for p in value]
                    self.price_history = deque(
                        [max(floor_price, p) for p in prices if p > 0], maxlen=self.history_length
                    )
            elif key in ("stop_loss", "take_profit"):
                setattr(self, key, coerce_value(value, 0.0) if value is not None else None)
            else:
                setattr(self, key, coerce_value(value, getattr(self, key)))
        self.current_price = max(floor_price, self.current_price)
        self.shares_owned = max(0, self.shares_owned)
        if not self.price_history:
            self.price_history.append(self.current_price)


@dataclass(slots=True)
class MarketEvent:
    """An active (or expired) macro event."""

    id: str
    type: EventType
    title: str
    start_time: float
    duration: float  # seconds
    active: bool = True
    revenue_multiplier: Optional[float] = None
    costs_multiplier: Optional[float] = None
    affected_categories: Optional[Tuple[str, ...]] = None  # None = every category
    affected_sectors: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        self.type = EventType(self.type)
        if self.affected_categories is not None:
            self.affected_categories = tuple(self.affected_categories)
        if self.affected_sectors is not None:
            self.affected_sectors = tuple(self.affected_sectors)

    def is_live(self, now: float) -> bool:
        """Effects apply only while active and inside the duration window."""
        return self.active and (now - self.start_time) < self.duration

    def remaining(self, now: float) -> float:
        return max(0.0, self.duration - (now - self.start_time))

    def targets_category(self, category: Optional[str]) -> bool:
        if self.affected_categories is None:
            return True
        return category is not None and category in self.affected_categories

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "start_time": self.start_time,
            "duration": self.duration,
            "active": self.active,
            "revenue_multiplier": self.revenue_multiplier,
            "costs_multiplier": self.costs_multiplier,
            "affected_categories": list(self.affected_categories) if self.affected_categories else None,
            "affected_sectors": list(self.affected_sectors) if self.affected_sectors else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "MarketEvent":
        categories = data.get("affected_categories")
        sectors = data.get("affected_sectors")
        return cls(
            id=str(data["id"]),
            type=EventType(data["type"]),
            title=str(data.get("title", data["id"])),
            start_time=float(data["start_time"]),
            duration=float(data["duration"]),
            active=bool(data.get("active", True)),
            revenue_multiplier=data.get("revenue_multiplier"),
            costs_multiplier=data.get("costs_multiplier"),
            affected_categories=tuple(categories) if categories else None,
            affected_sectors=tuple(sectors) if sectors else None,
        )


@dataclass(slots=True)
class EconomicPhase:
    """Current position in the economic cycle."""
    phase: str
    start_time: float
    duration: float  # seconds
    multiplier: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "phase": self.phase,
            "start_time": self.start_time,
            "duration": self.duration,
            "multiplier": self.multiplier,
        }


@dataclass(slots=True)
class RegionalModifiers:
    """Regional market indices, each clamped to the configured range."""
    housing_price_index: float = 1.0
    tourism_index: float = 1.0
    business_rent_demand: float = 1.0
    energy_cost_index: float = 1.0

    FIELDS = ("housing_price_index", "tourism_index", "business_rent_demand", "energy_cost_index")

    def index(self, name: str) -> float:
        return getattr(self, name)

    def copy(self) -> "RegionalModifiers":
        return RegionalModifiers(
            self.housing_price_index,
            self.tourism_index,
            self.business_rent_demand,
            self.energy_cost_index,
        )

    def to_dict(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in self.FIELDS}


@dataclass(slots=True)
class MacroSnapshot:
    """
    Read-only macro context handed to the valuation functions.

    Built fresh by the store whenever metrics are recomputed so that the
    cash tick always sees the latest phase, sentiment and events.
    """
    now: float
    phase: str = "expansion"
    phase_multiplier: float = 1.0
    sentiment: float = 50.0
    efficiency: float = 1.0
    regional: RegionalModifiers = field(default_factory=RegionalModifiers)
    events: Tuple[MarketEvent, ...] = ()
    category_dominance: Dict[str, float] = field(default_factory=dict)

    def live_events(self) -> List[MarketEvent]:
        return [event for event in self.events if event.is_live(self.now)]


@dataclass(slots=True)
class Loan:
    """An amortized loan. Pay-off settles every remaining instalment."""
    id: str
    amount: float
    interest_rate: float
    monthly_payment: float
    remaining_months: int
    total_owed: float
    taken_at: float

    @property
    def payoff_amount(self) -> float:
        return self.monthly_payment * self.remaining_months

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "amount": self.amount,
            "interest_rate": self.interest_rate,
            "monthly_payment": self.monthly_payment,
            "remaining_months": self.remaining_months,
            "total_owed": self.total_owed,
            "taken_at": self.taken_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Loan":
        return cls(
            id=str(data["id"]),
            amount=float(data["amount"]),
            interest_rate=float(data["interest_rate"]),
            monthly_payment=float(data["monthly_payment"]),
            remaining_months=int(data["remaining_months"]),
            total_owed=float(data["total_owed"]),
            taken_at=float(data["taken_at"]),
        )


@dataclass(slots=True)
class Achievement:
    id: str
    name: str
    reward: float
    unlocked: bool = False
    unlocked_at: Optional[float] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "reward": self.reward,
            "unlocked": self.unlocked,
            "unlocked_at": self.unlocked_at,
        }

    def apply_overrides(self, overrides: Mapping[str, object]) -> None:
        self.unlocked = coerce_value(overrides.get("unlocked"), self.unlocked)
        unlocked_at = overrides.get("unlocked_at")
        self.unlocked_at = coerce_value(unlocked_at, 0.0) if unlocked_at is not None else None


@dataclass(slots=True)
class Goal:
    id: str
    title: str
    type: str  # earnings, businesses, properties, trading, trades, luxury, prestige
    target: float
    reward: float
    progress: float = 0.0
    completed: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "type": self.type,
            "target": self.target,
            "reward": self.reward,
            "progress": self.progress,
            "completed": self.completed,
        }

    def apply_overrides(self, overrides: Mapping[str, object]) -> None:
        self.progress = coerce_value(overrides.get("progress"), self.progress)
        self.completed = coerce_value(overrides.get("completed"), self.completed)


@dataclass(slots=True)
class TapPower:
    level: int = 1
    multiplier: float = 1.0
    base_cost: float = 100.0

    def to_dict(self) -> Dict[str, object]:
        return {"level": self.level, "multiplier": self.multiplier, "base_cost": self.base_cost}

    def apply_overrides(self, overrides: Mapping[str, object]) -> None:
        self.level = max(1, coerce_value(overrides.get("level"), self.level))
        self.multiplier = coerce_value(overrides.get("multiplier"), self.multiplier)


@dataclass(slots=True)
class Multiplier:
    """A purchasable tap-earnings multiplier, compounding per level."""
    id: str
    name: str
    base_cost: float
    multiplier_value: float
    level: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "base_cost": self.base_cost,
            "multiplier_value": self.multiplier_value,
            "level": self.level,
        }

    def apply_overrides(self, overrides: Mapping[str, object]) -> None:
        self.level = max(0, coerce_value(overrides.get("level"), self.level))
