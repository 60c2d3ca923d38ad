"""
Unit tests for the GameStateStore

Tests cover:
- Purchases: affordability, atomicity and silent no-ops
- Business, property, luxury and stock actions
- Cash accrual, bankruptcy and offline earnings
- Prestige, taps, ads, free upgrades and loans
- Macro and event ticks driven through the store
- Concurrent mutations through the single lock
"""

import json
import math
import threading

from catalog import Catalog, GoalTemplate, StockTemplate
from conftest import FLAT_CATALOG, StubRng
from entities import MarketEvent, StockSector, VolatilityTier
from persistence import MemorySaveStore
from valuation import business_level_cost, property_level_cost

TRADING_CATALOG = Catalog(
    stocks=(StockTemplate("t1", "Twenty Corp", "TWNY", StockSector.TECH, VolatilityTier.LOW, 20),),
    achievements=(),
    goals=(),
)


def owned_flat_store(make_store, **kwargs):
    """Store holding one level-1 business netting $1/s before multipliers."""
    store = make_store(catalog=FLAT_CATALOG, **kwargs)
    store.state.cash = 100.0
    assert store.buy_business("x1")
    return store


class TestBusinessPurchases:
    """Test suite for buying and upgrading businesses"""

    def test_buy_business(self, make_store):
        """Buying sets level 1, owned, and charges exactly the base cost"""
        store = make_store()
        store.state.cash = 100.0

        assert store.buy_business("b1")

        stand = store.state.get_business("b1")
        assert stand.level == 1
        assert stand.owned
        assert stand.auto_generate
        assert store.state.cash == 0.0
        assert store.state.total_spent == 100.0
        assert stand.total_invested == 100.0
        assert stand.net_income_per_hour != 0.0

    def test_buy_unaffordable_is_noop(self, make_store):
        """Too little cash leaves the state untouched"""
        store = make_store()
        store.state.cash = 99.0

        assert not store.buy_business("b1")
        assert store.state.cash == 99.0
        assert not store.state.get_business("b1").owned
        assert store.state.user_actions_since_ad == 0

    def test_unknown_id_is_noop(self, make_store):
        """Unknown ids are declined"""
        store = make_store()
        store.state.cash = 1e9
        assert not store.buy_business("nope")
        assert not store.upgrade_business("nope")
        assert store.state.cash == 1e9

    def test_upgrade_costs_grow(self, make_store):
        """The next level costs floor(base cost times 1.15^level)"""
        store = make_store()
        store.state.cash = 1_000.0
        store.buy_business("b1")
        stand = store.state.get_business("b1")
        cost = business_level_cost(stand)
        assert cost == math.floor(100 * 1.15)

        assert store.upgrade_business("b1")
        assert stand.level == 2
        assert store.state.cash == 900.0 - cost
        assert stand.total_invested == 100.0 + cost

    def test_double_buy_declined(self, make_store):
        """An owned business cannot be bought again"""
        store = make_store()
        store.state.cash = 1_000.0
        store.buy_business("b1")
        assert not store.buy_business("b1")
        assert store.state.cash == 900.0

    def test_track_upgrade(self, make_store):
        """Eligible tracks level up and ineligible ones are declined"""
        store = make_store()
        store.state.cash = 10_000.0
        store.buy_business("b1")

        assert not store.upgrade_business_track("b1", "rnd")
        before = store.state.cash
        assert store.upgrade_business_track("b1", "quality")
        stand = store.state.get_business("b1")
        assert stand.upgrades == {"quality": 1}
        assert store.state.cash < before

    def test_sell_business(self, make_store):
        """Selling refunds 70% of everything invested and resets the business"""
        store = make_store()
        store.state.cash = 100.0
        store.buy_business("b1")

        assert store.sell_business("b1")
        stand = store.state.get_business("b1")
        assert not stand.owned
        assert stand.level == 0
        assert stand.total_invested == 0.0
        assert store.state.cash == 70.0
        assert store.state.total_earnings == 70.0

    def test_staff_and_training(self, make_store):
        """Hiring stops at max employees and training needs staff"""
        store = make_store()
        store.state.cash = 1_000.0
        store.buy_business("b1")

        assert not store.train_workforce("b1")
        assert store.hire_employee("b1")
        assert store.hire_employee("b1")
        assert not store.hire_employee("b1")
        assert store.train_workforce("b1")

        stand = store.state.get_business("b1")
        assert stand.employees == 2
        assert stand.training_level == 1

    def test_price_index_clamped(self, make_store):
        """Price index is clamped to its range and NaN is declined"""
        store = make_store()
        store.state.cash = 100.0
        store.buy_business("b1")

        assert store.set_price_index("b1", 5.0)
        assert store.state.get_business("b1").price_index == 2.0
        assert not store.set_price_index("b1", float("nan"))

    def test_supply_contract(self, make_store):
        """Food businesses can sign a supply contract"""
        store = make_store()
        store.state.cash = 1_000.0
        store.buy_business("b1")

        assert store.sign_supply_contract("b1", "long_term")
        assert store.state.get_business("b1").supply_contract == "long_term"
        assert store.state.cash == 875.0
        assert not store.sign_supply_contract("b1", "long_term")


class TestPropertyActions:
    """Test suite for property purchases and management"""

    def test_buy_and_manage_residential(self, make_store):
        """Residential units accept tenant tiers, amenities and rent toggles"""
        store = make_store()
        store.state.cash = 20_000.0

        assert store.buy_property("p1")
        assert store.set_tenant_quality("p1", "A")
        assert store.add_amenity("p1", "pool")
        assert not store.add_amenity("p1", "pool")
        assert store.toggle_rent("p1")

        studio = store.state.get_property("p1")
        assert studio.tenant_quality == "A"
        assert studio.amenities == ["pool"]
        assert not studio.rented
        assert store.state.cash == 20_000.0 - 10_000.0 - 200.0 - 800.0
        assert studio.total_upgrade_spend == 800.0

    def test_commercial_has_no_tenant_tiers(self, make_store):
        """Tenant tiers are declined on commercial property"""
        store = make_store()
        store.state.cash = 1e6
        store.buy_property("p4")
        assert not store.set_tenant_quality("p4", "A")

    def test_upgrades_raise_market_value(self, make_store):
        """Level upgrades add 70% of their cost to market value"""
        store = make_store()
        store.state.cash = 30_000.0
        store.buy_property("p1")
        studio = store.state.get_property("p1")
        cost = property_level_cost(studio)

        assert store.upgrade_property("p1")
        assert studio.level == 2
        assert abs(studio.current_market_value - (10_000.0 + cost * 0.7)) < 1e-6

    def test_sell_property(self, make_store):
        """Selling pays the floored market value and resets the unit"""
        store = make_store()
        store.state.cash = 10_000.0
        store.buy_property("p1")

        assert store.sell_property("p1")
        assert store.state.cash == 10_000.0
        assert not store.state.get_property("p1").owned


class TestLuxuryActions:
    """Test suite for luxury purchases"""

    def test_prestige_gate(self, make_store):
        """Items above the player's prestige level are declined"""
        store = make_store()
        store.state.cash = 1e6
        assert not store.buy_luxury_item("l2")
        assert store.buy_luxury_item("l1")
        assert store.state.get_luxury_item("l1").owned

    def test_entourage(self, make_store):
        """An entourage costs half the item price and only once"""
        store = make_store()
        store.state.cash = 75_000.0
        store.buy_luxury_item("l1")

        assert store.buy_entourage("l1")
        assert not store.buy_entourage("l1")
        assert store.state.cash == 0.0

    def test_luxury_feeds_multiplier(self, make_store):
        """Owned luxury adds to the additive bracket of the multiplier"""
        store = make_store()
        store.state.cash = 50_000.0
        store.buy_luxury_item("l1")
        assert abs(store.multiplier_breakdown().additive - 1.02) < 1e-9


class TestStockTrading:
    """Test suite for buying and selling shares"""

    def test_trading_locked_until_unlocked(self, make_store):
        """Trades are declined before the earnings unlock"""
        store = make_store(catalog=TRADING_CATALOG)
        store.state.cash = 1_000.0
        assert not store.buy_stock("t1", 10)

    def test_unlock_on_lifetime_earnings(self, make_store):
        """Reaching the earnings threshold unlocks trading"""
        store = make_store(catalog=TRADING_CATALOG)
        store.state.total_earnings = 249_999.0
        store.tap()
        assert store.state.trading_unlocked

    def test_reward_unlocks_trading(self, make_store):
        """A goal reward that crosses the earnings threshold unlocks trading"""
        catalog = Catalog(
            stocks=TRADING_CATALOG.stocks,
            achievements=(),
            goals=(GoalTemplate("windfall", "Windfall", "prestige", 0, 300_000),),
        )
        store = make_store(catalog=catalog)

        assert store.purchase_premium()

        s = store.state
        assert s.total_earnings == 300_000.0
        assert s.cash == 300_000.0
        assert s.trading_unlocked
        assert store.buy_stock("t1", 10)

    def test_buy_then_sell(self, make_store):
        """Shares move cash at the current price and book realized profit"""
        store = make_store(catalog=TRADING_CATALOG)
        s = store.state
        s.trading_unlocked = True
        s.cash = 1_000.0

        assert store.buy_stock("t1", 10)
        stock = s.get_stock("t1")
        assert s.cash == 800.0
        assert stock.shares_owned == 10
        assert stock.average_buy_price == 20.0

        stock.current_price = 30.0
        assert store.sell_stock("t1", 5)
        assert s.cash == 950.0
        assert stock.shares_owned == 5
        assert s.realized_profit == 50.0
        assert s.trade_count == 2
        assert s.total_earnings == 0.0

    def test_invalid_share_counts(self, make_store):
        """Fractional, zero and oversized share counts are declined"""
        store = make_store(catalog=TRADING_CATALOG)
        store.state.trading_unlocked = True
        store.state.cash = 1_000.0

        assert not store.buy_stock("t1", 0)
        assert not store.buy_stock("t1", 1.5)
        assert not store.sell_stock("t1", 1)

    def test_stop_loss_executes_on_tick(self, make_store):
        """A tick through the stop-loss sells the whole position"""
        store = make_store(catalog=TRADING_CATALOG, rng=StubRng(normal=-0.5))
        s = store.state
        s.trading_unlocked = True
        s.cash = 200.0
        store.buy_stock("t1", 10)
        assert store.set_stock_orders("t1", stop_loss=15.0)

        triggered = store.tick_stocks()

        assert [order.kind for order in triggered] == ["stop_loss"]
        stock = s.get_stock("t1")
        assert stock.shares_owned == 0
        assert stock.stop_loss is None
        assert s.cash > 0
        assert s.realized_profit < 0

    def test_orders_must_bracket_price(self, make_store):
        """Stop-loss above the price or take-profit below it is declined"""
        store = make_store(catalog=TRADING_CATALOG)
        store.state.trading_unlocked = True
        store.state.cash = 200.0
        store.buy_stock("t1", 10)

        assert not store.set_stock_orders("t1", stop_loss=25.0)
        assert not store.set_stock_orders("t1", take_profit=10.0)


class TestCashAccrual:
    """Test suite for passive income and solvency"""

    def test_accrual_applies_global_multiplier(self, make_store):
        """$1/s of net income earns $1.10/s during expansion"""
        store = owned_flat_store(make_store)

        delta = store.accrue_cash(1.0)

        assert abs(delta - 1.1) < 1e-9
        assert abs(store.state.cash - 1.1) < 1e-9
        assert abs(store.state.total_earnings - 1.1) < 1e-9

    def test_income_per_second(self, make_store):
        """The displayed income rate matches the accrual"""
        store = owned_flat_store(make_store)
        assert abs(store.income_per_second() - 1.1) < 1e-9

    def test_negative_income_bankrupts(self, make_store, clock):
        """Cash stops at zero under negative net income and the flag clears later"""
        store = owned_flat_store(make_store)
        costly = MarketEvent(id="strike", type="emergency", title="Strike", start_time=clock.now,
                             duration=600.0, costs_multiplier=5.0)
        store.state.active_market_events.append(costly)

        delta = store.accrue_cash(10.0)

        assert delta < 0
        assert store.state.cash == 0.0
        assert store.state.is_bankrupt
        assert store.state.bankruptcy_count == 1

        store.accrue_cash(10.0)
        assert store.state.bankruptcy_count == 1

        store.state.active_market_events.clear()
        store.accrue_cash(1.0)
        assert not store.state.is_bankrupt

    def test_net_worth(self, make_store):
        """Net worth counts cash plus business sale value minus debt"""
        store = owned_flat_store(make_store)
        assert store.net_worth() == 70.0


class TestOfflineEarnings:
    """Test suite for catch-up income on load"""

    def test_two_hours_offline(self, make_store, clock):
        """Two hours away at $1/s credits 7200 once, without the global multiplier"""
        store = owned_flat_store(make_store)
        store.state.last_save_time = clock.now - 7200.0

        earned = store.apply_offline_earnings()

        assert abs(earned - 7200.0) < 1e-6
        assert abs(store.state.cash - 7200.0) < 1e-6
        assert abs(store.state.total_earnings - 7200.0) < 1e-6
        assert store.state.last_save_time == clock.now
        assert store.apply_offline_earnings() == 0.0

    def test_offline_is_capped(self, make_store, clock):
        """Time away beyond four hours is not paid"""
        store = owned_flat_store(make_store)
        store.state.last_save_time = clock.now - 20_000.0
        assert abs(store.apply_offline_earnings() - 14_400.0) < 1e-6

    def test_load_grants_offline_earnings(self, make_store, clock):
        """Saving, waiting and loading credits the time away"""
        saves = MemorySaveStore()
        store = owned_flat_store(make_store, save_store=saves)
        assert store.save()

        clock.advance(7200.0)
        restored = make_store(catalog=FLAT_CATALOG, save_store=saves)
        earned = restored.load()

        assert abs(earned - 7200.0) < 1e-6
        assert restored.state.get_business("x1").owned
        assert abs(restored.state.cash - 7200.0) < 1e-6

    def test_failed_save_reports_false(self, make_store):
        """A failing backend is logged and reported, never raised"""
        class BrokenStore:
            def read(self, key):
                return None

            def write(self, key, payload):
                raise OSError("disk full")

        store = make_store(save_store=BrokenStore())
        assert not store.save()


class TestPrestige:
    """Test suite for prestige resets"""

    def test_below_requirement_is_noop(self, make_store):
        """Prestige with too little lifetime earnings changes nothing"""
        store = make_store()
        store.state.total_earnings = 5_000_000.0
        store.state.cash = 123.0

        assert not store.prestige()
        assert store.state.prestige_level == 0
        assert store.state.cash == 123.0

    def test_prestige_resets_and_carries_over(self, make_store):
        """Progress resets while taps, premium, ads and luxury carry over"""
        store = make_store()
        s = store.state
        s.cash = 1e6
        store.buy_business("b1")
        store.buy_luxury_item("l1")
        s.total_earnings = 10_000_000.0
        s.lifetime_taps = 50
        s.is_premium = True
        s.ads_watched = 3

        assert store.prestige()

        n = store.state
        assert n is not s
        assert n.prestige_level == 1
        assert n.prestige_multiplier == 1.5
        assert n.cash == 0.0
        assert n.total_earnings == 0.0
        assert not n.get_business("b1").owned
        assert n.get_luxury_item("l1").owned
        assert n.lifetime_taps == 50
        assert n.is_premium
        assert n.ads_watched == 3
        assert abs(store.multiplier_breakdown().prestige - 1.25) < 1e-9

    def test_reset(self, make_store):
        """Reset returns to a brand new game"""
        store = make_store()
        store.state.cash = 500.0
        store.state.prestige_level = 2
        assert store.reset()
        assert store.state.cash == 0.0
        assert store.state.prestige_level == 0


class TestTapsAndMultipliers:
    """Test suite for tapping"""

    def test_tap_earns_one(self, make_store):
        """A fresh tap earns $1 and counts toward lifetime taps"""
        store = make_store()
        assert store.tap() == 1.0
        assert store.state.cash == 1.0
        assert store.state.lifetime_taps == 1

    def test_tap_power_upgrade(self, make_store):
        """Tap power level 2 with multiplier 1.1 floors to $2 per tap"""
        store = make_store()
        store.state.cash = 100.0

        assert store.upgrade_tap_power()
        assert store.state.cash == 0.0
        assert store.tap_value() == 2.0
        assert store.tap_power_cost() == 125.0

    def test_multiplier_upgrade(self, make_store):
        """Multipliers compound tap value and their cost grows by 1.35"""
        store = make_store()
        store.state.cash = 15_000.0

        assert store.upgrade_multiplier("financial_advisor")
        assert store.state.get_multiplier("financial_advisor").level == 1
        assert store.multiplier_cost("financial_advisor") == math.floor(15_000 * 1.35)
        assert not store.upgrade_multiplier("unknown")

    def test_concurrent_taps_are_serialized(self, make_store):
        """Taps from several threads never lose an update"""
        store = make_store()

        def tap_many():
            for _ in range(250):
                store.tap()

        workers = [threading.Thread(target=tap_many) for _ in range(4)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        assert store.state.lifetime_taps == 1_000
        assert store.state.cash == 1_000.0


class TestAdsAndFreeUpgrades:
    """Test suite for ad rewards and pacing"""

    def test_bonus_scales_with_progress(self, make_store):
        """The reward multiplies by floor(total_earnings / 100k)"""
        store = make_store()
        store.state.total_earnings = 250_000.0

        assert store.grant_bonus_cash(100.0)
        assert store.state.cash == 200.0
        assert store.state.ads_watched == 1

    def test_premium_doubles_bonus(self, make_store):
        """Premium players get twice the ad reward"""
        store = make_store()
        store.state.total_earnings = 250_000.0
        store.state.is_premium = True
        store.grant_bonus_cash(100.0)
        assert store.state.cash == 400.0

    def test_ad_cooldown(self, make_store, clock):
        """A second reward inside five minutes is declined"""
        store = make_store()
        assert store.grant_bonus_cash(100.0)
        assert not store.grant_bonus_cash(100.0)

        clock.advance(300.0)
        assert store.grant_bonus_cash(100.0)

    def test_free_upgrade_pacing(self, make_store, clock):
        """Free upgrades wait for the initial delay and then a cooldown"""
        store = owned_flat_store(make_store)

        assert not store.free_upgrade_business("x1")
        clock.advance(150.0)
        assert store.offer_free_upgrade()
        assert store.free_upgrade_business("x1")
        assert store.state.get_business("x1").level == 2
        assert not store.free_upgrade_business("x1")

    def test_forced_ad_needs_activity(self, make_store, clock):
        """Forced ads wait for the delay and at least one action"""
        store = make_store()
        clock.advance(200.0)
        assert not store.forced_ad_due()

        store.state.cash = 100.0
        store.buy_business("b1")
        assert store.record_forced_ad()
        assert store.state.user_actions_since_ad == 0
        assert not store.forced_ad_due()

    def test_premium_once(self, make_store):
        """Premium can only be bought once"""
        store = make_store()
        assert store.purchase_premium()
        assert not store.purchase_premium()
        assert store.multiplier_breakdown().additive == 2.0


class TestLoans:
    """Test suite for taking and paying off loans"""

    def test_take_loan(self, make_store):
        """A loan pays out the principal and records its payoff as debt"""
        store = make_store()

        assert store.take_loan(1_000_000.0, 12)

        loan = store.state.loans[0]
        assert abs(loan.interest_rate - 0.052) < 1e-12
        assert store.state.cash == 1_000_000.0
        assert abs(store.state.total_debt - loan.monthly_payment * 12) < 1e-6
        assert store.state.total_debt > 1_000_000.0

    def test_invalid_terms_declined(self, make_store):
        """Non-positive principals and out-of-range terms are declined"""
        store = make_store()
        assert not store.take_loan(-5.0, 12)
        assert not store.take_loan(1_000.0, 0)
        assert not store.take_loan(float("inf"), 12)
        assert store.state.loans == []

    def test_pay_loan(self, make_store):
        """Paying off needs the full payoff amount and clears the debt"""
        store = make_store()
        store.take_loan(1_000_000.0, 12)
        loan_id = store.state.loans[0].id

        assert not store.pay_loan(loan_id)

        store.state.cash += 100_000.0
        assert store.pay_loan(loan_id)
        assert store.state.loans == []
        assert store.state.total_debt == 0


class TestMacroTicks:
    """Test suite for phase and event ticks through the store"""

    def test_phase_advances_once(self, make_store, clock):
        """Eleven minutes into expansion the phase moves to peak only"""
        store = make_store()
        clock.advance(11 * 60.0)

        assert store.tick_macro()
        assert store.state.economic_phase.phase == "peak"
        assert not store.tick_macro()
        assert store.state.economic_phase.phase == "peak"

    def test_event_spawn_and_expiry(self, make_store, clock):
        """Events spawn after the cooldown and are removed once expired"""
        store = make_store(rng=StubRng(randoms=(0.05, 0.05, 0.9)))

        assert store.tick_events() is None
        clock.advance(301.0)
        assert store.tick_events() == "boom_tech"
        assert [e.id for e in store.state.active_market_events] == ["boom_tech"]

        clock.advance(901.0)
        assert store.tick_events() is None
        assert store.state.active_market_events == []

    def test_sentiment_and_efficiency_walk(self, make_store):
        """Ticks keep the walks inside their bounds"""
        store = make_store(rng=StubRng(randoms=(1.0,)))
        for _ in range(200):
            store.tick_sentiment()
            store.tick_efficiency()
        assert store.state.market_sentiment <= 100.0
        assert store.state.efficiency_multiplier <= 2.5


class TestViews:
    """Test suite for read-only views"""

    def test_business_view(self, make_store):
        """Views include costs, with unavailable tracks as None"""
        store = make_store()
        view = store.business_view("b1")
        assert view["next_level_cost"] == 100
        assert view["track_costs"]["rnd"] is None
        assert store.business_view("missing") is None

    def test_snapshot_is_json_serializable(self, make_store):
        """The full snapshot can be sent over the wire"""
        store = make_store()
        data = json.loads(json.dumps(store.snapshot()))
        assert data["derived"]["tap_value"] == 1.0
        assert data["economic_phase"]["phase"] == "expansion"
        assert "FOOD_BEV" in data["derived"]["category_multipliers"]
