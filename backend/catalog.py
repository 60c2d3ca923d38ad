"""
Static Catalogs

Read-only templates for every entity the game knows about. The engine never
mutates these; factory functions hand out fresh mutable entities and the
load path iterates the catalog to decide which entities exist.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

from entities import (
    Achievement,
    Business,
    BusinessCategory,
    EventType,
    Goal,
    LuxuryItem,
    Multiplier,
    Property,
    PropertyCategory,
    Stock,
    StockSector,
    TapPower,
    VolatilityTier,
)


@dataclass(frozen=True)
class BusinessTemplate:
    id: str
    name: str
    category: BusinessCategory
    base_revenue_per_hour: float
    base_cost: float
    max_employees: int = 10
    foot_traffic_index: float = 1.0

    def create(self) -> Business:
        return Business(
            id=self.id,
            name=self.name,
            category=self.category,
            base_revenue_per_hour=self.base_revenue_per_hour,
            base_cost=self.base_cost,
            max_employees=self.max_employees,
            foot_traffic_index=self.foot_traffic_index,
        )


@dataclass(frozen=True)
class PropertyTemplate:
    id: str
    name: str
    category: PropertyCategory
    base_cost: float
    base_income_per_hour: float

    def create(self) -> Property:
        return Property(
            id=self.id,
            name=self.name,
            category=self.category,
            base_income_per_hour=self.base_income_per_hour,
            base_cost=self.base_cost,
        )


@dataclass(frozen=True)
class LuxuryTemplate:
    id: str
    name: str
    cost: float
    base_multiplier: float
    prestige_requirement: int
    brand_score: float

    def create(self) -> LuxuryItem:
        return LuxuryItem(
            id=self.id,
            name=self.name,
            cost=self.cost,
            base_multiplier=self.base_multiplier,
            prestige_requirement=self.prestige_requirement,
            brand_score=self.brand_score,
        )


@dataclass(frozen=True)
class StockTemplate:
    id: str
    name: str
    symbol: str
    sector: StockSector
    volatility: VolatilityTier
    base_price: float

    def create(self, history_length: int = 20) -> Stock:
        return Stock(
            id=self.id,
            name=self.name,
            symbol=self.symbol,
            sector=self.sector,
            volatility=self.volatility,
            base_price=self.base_price,
            current_price=self.base_price,
            history_length=history_length,
        )


@dataclass(frozen=True)
class EventTemplate:
    id: str
    type: EventType
    title: str
    duration_minutes: float
    revenue_multiplier: Optional[float] = None
    costs_multiplier: Optional[float] = None
    affected_categories: Optional[Tuple[str, ...]] = None
    affected_sectors: Optional[Tuple[str, ...]] = None

    @property
    def favorable(self) -> bool:
        return self.type in (EventType.BOOM, EventType.HOLIDAY)


@dataclass(frozen=True)
class AchievementTemplate:
    id: str
    name: str
    reward: float
    condition: Callable[[object], bool] = field(compare=False)

    def create(self) -> Achievement:
        return Achievement(id=self.id, name=self.name, reward=self.reward)


@dataclass(frozen=True)
class GoalTemplate:
    id: str
    title: str
    type: str
    target: float
    reward: float

    def create(self) -> Goal:
        return Goal(id=self.id, title=self.title, type=self.type, target=self.target, reward=self.reward)


@dataclass(frozen=True)
class MultiplierTemplate:
    id: str
    name: str
    base_cost: float
    multiplier_value: float

    def create(self) -> Multiplier:
        return Multiplier(
            id=self.id, name=self.name, base_cost=self.base_cost, multiplier_value=self.multiplier_value
        )


F = BusinessCategory.FOOD_BEV
R = BusinessCategory.RETAIL_SERVICES
T = BusinessCategory.TECH_APPS
IND = BusinessCategory.INDUSTRIAL
RE = BusinessCategory.REAL_ESTATE_SERVICES
FI = BusinessCategory.FINANCE_SERVICES

BUSINESS_CATALOG: Tuple[BusinessTemplate, ...] = (
    BusinessTemplate("b1", "Lemonade Stand", F, 30, 100, max_employees=2),
    BusinessTemplate("b2", "Food Truck", F, 120, 600, max_employees=4),
    BusinessTemplate("b3", "Corner Store", R, 450, 3_200, max_employees=6, foot_traffic_index=1.05),
    BusinessTemplate("b4", "Coffee Chain", F, 1_200, 10_000),
    BusinessTemplate("b5", "Online Boutique", T, 3_500, 40_000),
    BusinessTemplate("b6", "FinTech App", T, 8_000, 120_000),
    BusinessTemplate("b7", "Small Factory", IND, 18_000, 320_000, max_employees=20),
    BusinessTemplate("b8", "Car Wash Chain", R, 25_000, 550_000, max_employees=15, foot_traffic_index=0.95),
    BusinessTemplate("b9", "SaaS Company", T, 42_000, 900_000),
    BusinessTemplate("b10", "Assembly Line", IND, 75_000, 1_800_000, max_employees=30),
    BusinessTemplate("b11", "Real Estate Brokerage", RE, 125_000, 3_500_000),
    BusinessTemplate("b12", "Mobile Game Studio", T, 220_000, 7_000_000, max_employees=25),
    BusinessTemplate("b13", "Warehouse Network", IND, 380_000, 14_000_000, max_employees=40),
    BusinessTemplate("b14", "Consultancy Firm", FI, 650_000, 28_000_000, max_employees=25),
    BusinessTemplate("b15", "Restaurant Chain", F, 1_100_000, 55_000_000, max_employees=50),
    BusinessTemplate("b16", "Accounting Network", FI, 1_900_000, 100_000_000, max_employees=40),
    BusinessTemplate("b17", "Recycling Plant", IND, 3_200_000, 200_000_000, max_employees=60),
    BusinessTemplate("b18", "Ad Network", T, 5_500_000, 380_000_000, max_employees=50),
    BusinessTemplate("b19", "Investment Bank", FI, 9_500_000, 750_000_000, max_employees=80),
    BusinessTemplate("b20", "Franchise Empire", F, 16_000_000, 1_500_000_000, max_employees=100),
)

PROPERTY_CATALOG: Tuple[PropertyTemplate, ...] = (
    PropertyTemplate("p1", "Studio Apartment", PropertyCategory.RESIDENTIAL, 10_000, 120),
    PropertyTemplate("p2", "Suburban Home", PropertyCategory.RESIDENTIAL, 35_000, 380),
    PropertyTemplate("p3", "City Apartment", PropertyCategory.RESIDENTIAL, 110_000, 1_200),
    PropertyTemplate("p4", "Retail Unit", PropertyCategory.COMMERCIAL, 260_000, 3_200),
    PropertyTemplate("p5", "Penthouse Suite", PropertyCategory.RESIDENTIAL, 550_000, 7_500),
    PropertyTemplate("p6", "Office Floor", PropertyCategory.COMMERCIAL, 1_200_000, 18_000),
    PropertyTemplate("p7", "Luxury Condo", PropertyCategory.LUXURY_DEV, 2_800_000, 42_000),
    PropertyTemplate("p8", "Logistics Warehouse", PropertyCategory.COMMERCIAL, 5_500_000, 85_000),
    PropertyTemplate("p9", "Boutique Hotel", PropertyCategory.LUXURY_DEV, 12_000_000, 180_000),
    PropertyTemplate("p10", "Beachfront Resort", PropertyCategory.LUXURY_DEV, 30_000_000, 450_000),
)

LUXURY_CATALOG: Tuple[LuxuryTemplate, ...] = (
    LuxuryTemplate("l1", "Designer Watch", 50_000, 0.02, 0, 1),
    LuxuryTemplate("l2", "Luxury Car", 250_000, 0.04, 1, 2),
    LuxuryTemplate("l3", "Private Yacht", 2_000_000, 0.12, 3, 4),
    LuxuryTemplate("l4", "Private Jet", 15_000_000, 0.50, 5, 8),
)

STOCK_CATALOG: Tuple[StockTemplate, ...] = (
    StockTemplate("s1", "FoodCorp", "FOOD", StockSector.FOOD, VolatilityTier.LOW, 50),
    StockTemplate("s2", "RetailMart", "RETL", StockSector.RETAIL, VolatilityTier.MED, 75),
    StockTemplate("s3", "TechGiant", "TECH", StockSector.TECH, VolatilityTier.HIGH, 200),
    StockTemplate("s4", "Industrial Motors", "IMOT", StockSector.INDUSTRIAL, VolatilityTier.MED, 120),
    StockTemplate("s5", "PropertyDev", "PROP", StockSector.REAL_ESTATE, VolatilityTier.LOW, 180),
    StockTemplate("s6", "ServicePro", "SERV", StockSector.SERVICES, VolatilityTier.LOW, 90),
    StockTemplate("s7", "Tourism Holdings", "TOUR", StockSector.TOURISM, VolatilityTier.HIGH, 65),
    StockTemplate("s8", "Energy Solutions", "ENGY", StockSector.ENERGY, VolatilityTier.HIGH, 250),
)

EVENT_TEMPLATES: Tuple[EventTemplate, ...] = (
    EventTemplate("boom_tech", EventType.BOOM, "Tech Boom", 15, revenue_multiplier=1.5,
                  affected_categories=("TECH_APPS",), affected_sectors=("Tech",)),
    EventTemplate("boom_food", EventType.BOOM, "Culinary Renaissance", 20, revenue_multiplier=1.6,
                  affected_categories=("FOOD_BEV",), affected_sectors=("Food",)),
    EventTemplate("boom_retail", EventType.BOOM, "Shopping Frenzy", 18, revenue_multiplier=1.55,
                  affected_categories=("RETAIL_SERVICES",), affected_sectors=("Retail",)),
    EventTemplate("crash_global", EventType.CRASH, "Market Crash", 25, revenue_multiplier=0.7),
    EventTemplate("crash_finance", EventType.CRASH, "Banking Crisis", 30, revenue_multiplier=0.65,
                  affected_categories=("FINANCE_SERVICES",)),
    EventTemplate("emergency_supply", EventType.EMERGENCY, "Supply Chain Disruption", 20,
                  revenue_multiplier=0.85, costs_multiplier=1.25,
                  affected_categories=("INDUSTRIAL", "RETAIL_SERVICES")),
    EventTemplate("emergency_energy", EventType.EMERGENCY, "Energy Crisis", 25, costs_multiplier=1.3,
                  affected_categories=("INDUSTRIAL", "TECH_APPS")),
    EventTemplate("holiday_season", EventType.HOLIDAY, "Holiday Season", 30, costs_multiplier=0.7),
    EventTemplate("holiday_tax", EventType.HOLIDAY, "Tax Holiday", 15, costs_multiplier=0.6),
)

MULTIPLIER_CATALOG: Tuple[MultiplierTemplate, ...] = (
    MultiplierTemplate("financial_advisor", "Financial Advisor", 15_000, 1.5),
    MultiplierTemplate("tax_consultant", "Tax Consultant", 100_000, 2.0),
    MultiplierTemplate("portfolio_manager", "Portfolio Manager", 1_000_000, 3.0),
    MultiplierTemplate("wealth_strategist", "Wealth Strategist", 15_000_000, 5.0),
)


def _owned(items) -> int:
    return sum(1 for item in items if item.owned)


ACHIEVEMENT_CATALOG: Tuple[AchievementTemplate, ...] = (
    AchievementTemplate("first_business", "First Business", 100, lambda s: _owned(s.businesses) >= 1),
    AchievementTemplate("first_property", "First Property", 500, lambda s: _owned(s.properties) >= 1),
    AchievementTemplate("first_luxury", "First Luxury", 1_000, lambda s: _owned(s.luxury_items) >= 1),
    AchievementTemplate("first_trade", "First Trade", 5_000, lambda s: s.trade_count >= 1),
    AchievementTemplate("tap_master", "Tap Master", 5_000, lambda s: s.lifetime_taps >= 1_000),
    AchievementTemplate("tap_legend", "Tap Legend", 50_000, lambda s: s.lifetime_taps >= 10_000),
    AchievementTemplate("millionaire", "Millionaire", 10_000, lambda s: s.total_earnings >= 1_000_000),
    AchievementTemplate("multimillionaire", "Multi-Millionaire", 100_000,
                        lambda s: s.total_earnings >= 10_000_000),
    AchievementTemplate("billionaire", "Billionaire", 1_000_000,
                        lambda s: s.total_earnings >= 1_000_000_000),
    AchievementTemplate("business_tycoon", "Business Tycoon", 50_000,
                        lambda s: all(b.owned for b in s.businesses)),
    AchievementTemplate("max_level", "Level 25", 100_000,
                        lambda s: any(b.level >= 25 for b in s.businesses)),
    AchievementTemplate("max_level_50", "Level 50", 500_000,
                        lambda s: any(b.level >= 50 for b in s.businesses)),
    AchievementTemplate("property_mogul", "Property Mogul", 25_000, lambda s: _owned(s.properties) >= 5),
    AchievementTemplate("luxury_collector", "Luxury Collector", 75_000,
                        lambda s: bool(s.luxury_items) and all(item.owned for item in s.luxury_items)),
    AchievementTemplate("portfolio_king", "Portfolio King", 200_000,
                        lambda s: bool(s.stocks) and all(st.shares_owned > 0 for st in s.stocks)),
    AchievementTemplate("prestige_master", "Prestige Master", 0, lambda s: s.prestige_level >= 1),
    AchievementTemplate("trading_expert", "Trading Expert", 500_000,
                        lambda s: s.realized_profit >= 1_000_000),
)

GOAL_CATALOG: Tuple[GoalTemplate, ...] = (
    GoalTemplate("earn_100k", "Six Figures", "earnings", 100_000, 25_000),
    GoalTemplate("earn_1m", "Seven Figures", "earnings", 1_000_000, 500_000),
    GoalTemplate("business_master", "Business Master", "businesses", 10, 50_000),
    GoalTemplate("business_empire", "Business Empire", "businesses", 20, 1_000_000),
    GoalTemplate("property_income", "Landlord", "properties", 10_000, 75_000),
    GoalTemplate("active_trader", "Active Trader", "trades", 5, 2_000),
    GoalTemplate("stock_king", "Stock Market King", "trading", 50_000, 100_000),
    GoalTemplate("collector", "Collector", "luxury", 2, 50_000),
    GoalTemplate("prestige_1", "New Beginnings", "prestige", 1, 0),
    GoalTemplate("prestige_5", "Seasoned Tycoon", "prestige", 5, 0),
    GoalTemplate("prestige_10", "Dynasty", "prestige", 10, 0),
)

INITIAL_TAP_POWER = TapPower(level=1, multiplier=1.0, base_cost=100.0)


@dataclass(frozen=True)
class Catalog:
    """Bundle of every static catalog; swap it out for tests or migrations."""
    businesses: Tuple[BusinessTemplate, ...] = BUSINESS_CATALOG
    properties: Tuple[PropertyTemplate, ...] = PROPERTY_CATALOG
    luxury_items: Tuple[LuxuryTemplate, ...] = LUXURY_CATALOG
    stocks: Tuple[StockTemplate, ...] = STOCK_CATALOG
    events: Tuple[EventTemplate, ...] = EVENT_TEMPLATES
    achievements: Tuple[AchievementTemplate, ...] = ACHIEVEMENT_CATALOG
    goals: Tuple[GoalTemplate, ...] = GOAL_CATALOG
    multipliers: Tuple[MultiplierTemplate, ...] = MULTIPLIER_CATALOG

    def business_template(self, business_id: str) -> Optional[BusinessTemplate]:
        return _find(self.businesses, business_id)

    def property_template(self, property_id: str) -> Optional[PropertyTemplate]:
        return _find(self.properties, property_id)

    def achievement_template(self, achievement_id: str) -> Optional[AchievementTemplate]:
        return _find(self.achievements, achievement_id)


def _find(templates, entity_id: str):
    for template in templates:
        if template.id == entity_id:
            return template
    return None


def fresh_tap_power() -> TapPower:
    return TapPower(
        level=INITIAL_TAP_POWER.level,
        multiplier=INITIAL_TAP_POWER.multiplier,
        base_cost=INITIAL_TAP_POWER.base_cost,
    )


DEFAULT_CATALOG = Catalog()
