"""
Unit tests for the valuation functions

Tests cover:
- Business revenue, cost lines and net income
- Automation cap, elasticity clamp and category add-ons
- Category dominance lookup
- Property rent, vacancy, maintenance, tax and insurance
- Luxury bonuses
- Cost curve monotonicity
"""

import math

import pytest

from config import CONFIG
from entities import (
    Business,
    BusinessCategory,
    LuxuryItem,
    MacroSnapshot,
    MarketEvent,
    Property,
    PropertyCategory,
    RegionalModifiers,
)
from valuation import (
    amenity_cost,
    brand_influence_bonus,
    business_level_cost,
    business_metrics,
    business_track_cost,
    category_dominance_shares,
    dominance_bonus,
    luxury_multiplier,
    property_level_cost,
    property_metrics,
    property_track_cost,
    total_luxury_bonus,
)


def make_business(category=BusinessCategory.REAL_ESTATE_SERVICES, level=1, **kwargs):
    return Business(
        id="t1",
        name="Test Co",
        category=category,
        base_revenue_per_hour=100.0,
        base_cost=50.0,
        level=level,
        owned=level > 0,
        **kwargs,
    )


def make_property(category=PropertyCategory.RESIDENTIAL, level=1, **kwargs):
    return Property(
        id="p1",
        name="Test Flat",
        category=category,
        base_income_per_hour=100.0,
        base_cost=10_000.0,
        level=level,
        owned=level > 0,
        **kwargs,
    )


class TestBusinessMetrics:
    """Test suite for per-business revenue and cost lines"""

    def test_unowned_business_earns_nothing(self):
        """Level 0 businesses report all-zero metrics"""
        metrics = business_metrics(make_business(level=0), MacroSnapshot(now=0.0))
        assert metrics.revenue_per_hour == 0.0
        assert metrics.net_income_per_hour == 0.0

    def test_first_level_cost_lines(self):
        """A level-1 business with no add-ons pays 15% + 8% + 2% of revenue"""
        metrics = business_metrics(make_business(), MacroSnapshot(now=0.0))

        assert abs(metrics.revenue_per_hour - 100.0) < 1e-9
        assert abs(metrics.employee_cost_per_hour - 15.0) < 1e-9
        assert abs(metrics.operations_cost_per_hour - 8.0) < 1e-9
        assert abs(metrics.marketing_cost_per_hour - 2.0) < 1e-9
        assert abs(metrics.total_costs_per_hour - 25.0) < 1e-9
        assert abs(metrics.net_income_per_hour - 75.0) < 1e-9

    def test_revenue_grows_per_level(self):
        """Gross revenue compounds at the revenue growth rate"""
        metrics = business_metrics(make_business(level=3), MacroSnapshot(now=0.0))
        expected = 100.0 * CONFIG.businesses.revenue_growth ** 2
        assert abs(metrics.revenue_per_hour - expected) < 1e-9

    def test_revenue_tracks_add_up(self):
        """Efficiency, quality and marketing bonuses are additive"""
        business = make_business(upgrades={"efficiency": 1, "quality": 1, "marketing": 1})
        metrics = business_metrics(business, MacroSnapshot(now=0.0))
        assert abs(metrics.revenue_per_hour - 100.0 * (1 + 0.10 + 0.12 + 0.08)) < 1e-9

    def test_automation_reduction_is_capped(self):
        """Automation never removes more than 70% of costs"""
        macro = MacroSnapshot(now=0.0)
        at_cap = business_metrics(make_business(upgrades={"automation": 5}), macro)
        beyond = business_metrics(make_business(upgrades={"automation": 6}), macro)

        assert abs(at_cap.total_costs_per_hour - 25.0 * 0.3) < 1e-9
        assert abs(beyond.total_costs_per_hour - at_cap.total_costs_per_hour) < 1e-9

    def test_elasticity_is_clamped(self):
        """A steep price increase cannot cut revenue below the clamp floor"""
        business = make_business(category=BusinessCategory.FOOD_BEV, price_index=2.0)
        metrics = business_metrics(business, MacroSnapshot(now=0.0))
        assert abs(metrics.revenue_per_hour - 60.0) < 1e-9

    def test_food_costs_include_cogs_and_spoilage(self):
        """Food & beverage operations add COGS and spoilage to the base rate"""
        metrics = business_metrics(make_business(category=BusinessCategory.FOOD_BEV), MacroSnapshot(now=0.0))
        assert abs(metrics.operations_cost_per_hour - 100.0 * (0.08 + 0.28 + 0.02)) < 1e-9

    def test_net_income_may_be_negative(self):
        """Cost events can push net income below zero and it is not floored"""
        event = MarketEvent(id="e", type="emergency", title="Costly", start_time=0.0,
                            duration=600.0, costs_multiplier=3.0)
        macro = MacroSnapshot(now=10.0, events=(event,))
        metrics = business_metrics(make_business(category=BusinessCategory.FOOD_BEV), macro)

        assert metrics.net_income_per_hour < 0
        assert abs(metrics.net_income_per_hour - (100.0 - 55.0 * 3.0)) < 1e-6

    def test_expired_event_costs_are_ignored(self):
        """An event past its duration no longer scales costs"""
        event = MarketEvent(id="e", type="emergency", title="Costly", start_time=0.0,
                            duration=600.0, costs_multiplier=3.0)
        macro = MacroSnapshot(now=600.0, events=(event,))
        metrics = business_metrics(make_business(), macro)
        assert abs(metrics.total_costs_per_hour - 25.0) < 1e-9

    def test_industrial_energy_surcharge(self):
        """Industrial operations pay a logistics surcharge when energy is expensive"""
        cheap = MacroSnapshot(now=0.0)
        pricey = MacroSnapshot(now=0.0, regional=RegionalModifiers(energy_cost_index=1.2))
        business = make_business(category=BusinessCategory.INDUSTRIAL)

        base = business_metrics(business, cheap).operations_cost_per_hour
        surcharged = business_metrics(business, pricey).operations_cost_per_hour
        assert abs(base - 10.0) < 1e-9
        assert abs(surcharged - 13.0) < 1e-9

    def test_valuation_is_idempotent(self):
        """Same inputs give bit-identical outputs"""
        business = make_business(category=BusinessCategory.TECH_APPS, level=17, upgrades={"rnd": 3})
        macro = MacroSnapshot(now=0.0, sentiment=71.0)
        assert business_metrics(business, macro) == business_metrics(business, macro)


class TestCategoryDominance:
    """Test suite for the dominance threshold table"""

    def test_highest_threshold_applies(self):
        """Only the highest tier met applies"""
        assert dominance_bonus(0.1) == (0.0, 0.0)
        assert dominance_bonus(0.3) == (0.05, 0.0)
        assert dominance_bonus(0.6) == (0.12, 0.02)
        assert dominance_bonus(0.9) == (0.20, 0.05)

    def test_shares_against_npc_baseline(self):
        """Share is player revenue over player revenue plus the NPC baseline"""
        business = Business(id="big", name="Big", category=BusinessCategory.FINANCE_SERVICES,
                            base_revenue_per_hour=1_000_000.0, base_cost=1.0, level=1, owned=True)
        shares = category_dominance_shares([business], MacroSnapshot(now=0.0))

        assert abs(shares["FINANCE_SERVICES"] - 0.5) < 1e-9
        assert shares["FOOD_BEV"] == 0.0

    def test_dominance_bonus_feeds_revenue(self):
        """A dominant category earns the revenue bonus and a marketing discount"""
        macro = MacroSnapshot(now=0.0, category_dominance={"REAL_ESTATE_SERVICES": 0.8})
        metrics = business_metrics(make_business(), macro)

        assert abs(metrics.revenue_per_hour - 120.0) < 1e-9
        assert abs(metrics.marketing_cost_per_hour - 120.0 * 0.02 * 0.95) < 1e-9


class TestPropertyMetrics:
    """Test suite for property income and upkeep"""

    def test_rented_residential(self):
        """Rent applies tenant tier, regional multiplier and vacancy"""
        prop = make_property()
        metrics = property_metrics(prop, MacroSnapshot(now=0.0))

        income = 100.0 * 1.0 * 1.1 * (1 - 0.04)
        maintenance = income * 0.12 * 1.01
        taxes = 0.0008 * 10_000.0 / (30 * 24 * 3600.0)
        insurance = 0.0004 * 10_000.0 / (30 * 24 * 3600.0)

        assert abs(metrics.income_per_hour - income) < 1e-9
        assert abs(metrics.maintenance_per_hour - maintenance) < 1e-9
        assert abs(metrics.taxes_per_sec - taxes) < 1e-15
        assert abs(metrics.insurance_per_sec - insurance) < 1e-15
        expected_net = income - maintenance - (taxes + insurance) * 3600
        assert abs(metrics.net_income_per_hour - expected_net) < 1e-9

    def test_unrented_earns_use_income(self):
        """Owner-occupied property earns a flat share with no vacancy"""
        prop = make_property(rented=False)
        metrics = property_metrics(prop, MacroSnapshot(now=0.0))

        assert abs(metrics.income_per_hour - 100.0 * 0.6 * 1.1) < 1e-9
        assert abs(metrics.maintenance_per_hour - 100.0 * 0.6 * 1.1 * 0.12) < 1e-9

    def test_amenities_and_screening_cut_vacancy(self):
        """Vacancy never goes below zero"""
        prop = make_property(tenant_quality="A", amenities=["security"], upgrades={"screening": 5})
        metrics = property_metrics(prop, MacroSnapshot(now=0.0))
        # Tier A vacancy 0.02 minus 0.01 (security) minus 0.025 (screening) floors at 0
        assert abs(metrics.income_per_hour - 100.0 * 1.10 * 1.02 * 1.1) < 1e-9

    def test_smart_management_reduces_maintenance(self):
        """Smart management trims maintenance up to its cap"""
        macro = MacroSnapshot(now=0.0)
        plain = property_metrics(make_property(), macro)
        managed = property_metrics(make_property(upgrades={"smart_management": 10}), macro)
        assert abs(managed.maintenance_per_hour - plain.maintenance_per_hour * 0.4) < 1e-9

    def test_regional_index_by_category(self):
        """Luxury developments follow the tourism index"""
        prop = make_property(category=PropertyCategory.LUXURY_DEV)
        macro = MacroSnapshot(now=0.0, regional=RegionalModifiers(tourism_index=2.0))
        metrics = property_metrics(prop, macro)
        assert abs(metrics.income_per_hour - 100.0 * (0.8 + 0.3 * 2.0) * 0.96) < 1e-9

    def test_amenities_are_residential_only(self):
        """Commercial units cannot install amenities"""
        assert math.isinf(amenity_cost(make_property(category=PropertyCategory.COMMERCIAL), "pool"))
        assert amenity_cost(make_property(), "pool") == 800.0


class TestLuxury:
    """Test suite for luxury bonuses"""

    def test_total_bonus_sums_owned_items(self):
        """Only owned items contribute, additively"""
        items = [
            LuxuryItem(id="a", name="A", cost=1.0, base_multiplier=0.02, owned=True),
            LuxuryItem(id="b", name="B", cost=1.0, base_multiplier=0.04, owned=True),
            LuxuryItem(id="c", name="C", cost=1.0, base_multiplier=0.50),
        ]
        assert abs(total_luxury_bonus(items) - 0.06) < 1e-9

    def test_polish_benefit_is_capped(self):
        """Polish adds at most 0.05 however many levels are bought"""
        item = LuxuryItem(id="a", name="A", cost=1.0, base_multiplier=0.02, upgrades={"polish": 10})
        assert abs(luxury_multiplier(item) - 0.07) < 1e-9

    def test_brand_influence_tiers(self):
        """Brand score maps to the highest tier reached"""
        assert brand_influence_bonus(2.0) == 0.0
        assert brand_influence_bonus(7.0) == 0.04
        assert brand_influence_bonus(15.0) == 0.06


class TestCostCurves:
    """Test suite for strictly increasing cost curves"""

    def test_business_level_cost_strictly_increases(self):
        """Every next level costs more than the last"""
        business = make_business(level=1)
        business.base_cost = 100.0
        costs = []
        for level in range(1, 80):
            business.level = level
            costs.append(business_level_cost(business))
        assert all(b > a for a, b in zip(costs, costs[1:]))

    def test_unowned_business_costs_base(self):
        """The first purchase costs exactly the base cost"""
        assert business_level_cost(make_business(level=0)) == 50.0

    def test_track_costs_strictly_increase_until_max(self):
        """Track costs grow per level and become unavailable at max level"""
        business = make_business(level=5)
        costs = []
        for level in range(CONFIG.businesses.tracks["quality"].max_level):
            business.upgrades["quality"] = level
            costs.append(business_track_cost(business, "quality"))
        assert all(b > a for a, b in zip(costs, costs[1:]))

        business.upgrades["quality"] = CONFIG.businesses.tracks["quality"].max_level
        assert math.isinf(business_track_cost(business, "quality"))

    def test_category_tracks_are_gated(self):
        """R&D is only available to tech businesses"""
        assert math.isinf(business_track_cost(make_business(), "rnd"))
        assert math.isfinite(business_track_cost(make_business(category=BusinessCategory.TECH_APPS), "rnd"))

    def test_property_costs_strictly_increase(self):
        """Property level and track costs grow strictly"""
        prop = make_property()
        level_costs, track_costs = [], []
        for level in range(1, 60):
            prop.level = level
            level_costs.append(property_level_cost(prop))
        for level in range(10):
            prop.upgrades["renovation"] = level
            track_costs.append(property_track_cost(prop, "renovation"))

        assert all(b > a for a, b in zip(level_costs, level_costs[1:]))
        assert all(b > a for a, b in zip(track_costs, track_costs[1:]))

    def test_unknown_category_rejected(self):
        """Entities only accept the closed category set"""
        with pytest.raises(ValueError):
            make_business(category="SPACE_MINING")
