"""
Game State Store

The single writer for a session's GameState. Player actions and periodic
ticks all go through one re-entrant lock, so a purchase landing in the same
instant as a cash tick always sees a consistent prior state.

Every purchase follows the same transaction:

    validate -> deduct -> mutate -> recompute -> record spend

and is a silent no-op (returns False) when a precondition fails. Nothing is
partially applied.
"""

import logging
import math
import threading
import time
import uuid
from typing import Callable, Dict, List, Optional

import numpy as np

from achievements import AchievementGoalEvaluator
from catalog import DEFAULT_CATALOG, Catalog
from config import CONFIG, GameConfig
from entities import (
    BusinessCategory,
    Loan,
    MacroSnapshot,
    PropertyCategory,
    Stock,
)
from game_state import PRESTIGE_CARRY_OVER, GameState, fresh_state
from macro import MacroEconomyDriver
from multipliers import MultiplierBreakdown, breakdown, event_multiplier, sentiment_multiplier
from persistence import SaveStore, dump_state, load_state
from stock_market import StockMarketSimulator, TriggeredOrder
from valuation import (
    amenity_cost,
    brand_influence_bonus,
    brand_influence_score,
    business_level_cost,
    business_metrics,
    business_sale_value,
    business_track_cost,
    category_dominance_shares,
    entourage_cost,
    hiring_cost,
    luxury_multiplier,
    luxury_track_cost,
    property_level_cost,
    property_metrics,
    property_track_cost,
    property_value,
    supply_contract_cost,
    tenant_change_cost,
    total_luxury_bonus,
    training_cost,
)

logger = logging.getLogger(__name__)


def _finite(value: float) -> Optional[float]:
    """JSON-friendly cost: None when the purchase is unavailable."""
    return value if math.isfinite(value) else None


class GameStateStore:
    """Owns the canonical state and applies every mutation to it."""

    def __init__(
        self,
        config: GameConfig = CONFIG,
        catalog: Catalog = DEFAULT_CATALOG,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], float] = time.time,
        save_store: Optional[SaveStore] = None,
    ):
        self.config = config
        self.catalog = catalog
        self.rng = rng if rng is not None else np.random.default_rng()
        self.clock = clock
        self.save_store = save_store

        self.macro = MacroEconomyDriver(config, self.rng, catalog.events)
        self.market = StockMarketSimulator(config, self.rng)
        self.evaluator = AchievementGoalEvaluator(catalog)

        self._lock = threading.RLock()
        self.state: GameState = fresh_state(self.clock(), catalog, config)
        self.recompute()

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    def macro_snapshot(self, now: Optional[float] = None) -> MacroSnapshot:
        """Current macro context, including category dominance shares."""
        now = self.clock() if now is None else now
        s = self.state
        snapshot = MacroSnapshot(
            now=now,
            phase=s.economic_phase.phase,
            phase_multiplier=s.economic_phase.multiplier,
            sentiment=s.market_sentiment,
            efficiency=s.efficiency_multiplier,
            regional=s.regional_modifiers.copy(),
            events=tuple(s.active_market_events),
        )
        snapshot.category_dominance = category_dominance_shares(s.businesses, snapshot, self.config)
        return snapshot

    def recompute(self, now: Optional[float] = None) -> MacroSnapshot:
        """Re-derive every entity's metrics from its defining formula."""
        with self._lock:
            snapshot = self.macro_snapshot(now)
            for business in self.state.businesses:
                metrics = business_metrics(business, snapshot, self.config)
                business.revenue_per_hour = metrics.revenue_per_hour
                business.employee_cost_per_hour = metrics.employee_cost_per_hour
                business.operations_cost_per_hour = metrics.operations_cost_per_hour
                business.marketing_cost_per_hour = metrics.marketing_cost_per_hour
                business.total_costs_per_hour = metrics.total_costs_per_hour
                business.net_income_per_hour = metrics.net_income_per_hour
            for prop in self.state.properties:
                prop.current_market_value = property_value(prop, self.config)
                prop.refresh_scores()
                metrics = property_metrics(prop, snapshot, self.config)
                prop.income_per_hour = metrics.income_per_hour
                prop.maintenance_per_hour = metrics.maintenance_per_hour
                prop.taxes_per_sec = metrics.taxes_per_sec
                prop.insurance_per_sec = metrics.insurance_per_sec
                prop.net_income_per_hour = metrics.net_income_per_hour
            for item in self.state.luxury_items:
                item.current_multiplier = luxury_multiplier(item, self.config)
            return snapshot

    def _bonus_terms(self):
        s = self.state
        luxury = total_luxury_bonus(s.luxury_items, self.config)
        premium = self.config.global_caps.premium_bonus if s.is_premium else 0.0
        score = brand_influence_score(s.luxury_items)
        return luxury, premium, brand_influence_bonus(score, self.config), score

    def multiplier_breakdown(
        self, category: Optional[str] = None, now: Optional[float] = None
    ) -> MultiplierBreakdown:
        now = self.clock() if now is None else now
        with self._lock:
            s = self.state
            luxury, premium, brand, score = self._bonus_terms()
            events = event_multiplier(
                s.active_market_events, now, category,
                mitigation=score >= self.config.luxury.mitigation_score,
                config=self.config,
            )
            return breakdown(
                s.prestige_level, luxury, premium, s.economic_phase.multiplier,
                sentiment_multiplier(s.market_sentiment), s.efficiency_multiplier,
                events, brand, self.config,
            )

    def global_multiplier(self, category: Optional[str] = None, now: Optional[float] = None) -> float:
        """Composed multiplier for one business category (None: properties and global)."""
        return self.multiplier_breakdown(category, now).total

    def base_income_per_hour(self) -> float:
        """Sum of owned auto-generating net rates, before the global multiplier."""
        with self._lock:
            s = self.state
            total = sum(b.net_income_per_hour for b in s.businesses if b.owned and b.auto_generate)
            total += sum(p.net_income_per_hour for p in s.properties if p.owned)
            return total

    def income_per_second(self, now: Optional[float] = None) -> float:
        """Passive income per second with every multiplier applied."""
        now = self.clock() if now is None else now
        hour = self.config.global_caps.seconds_per_hour
        with self._lock:
            s = self.state
            multipliers: Dict[Optional[str], float] = {}
            total = 0.0
            for business in s.businesses:
                if not (business.owned and business.auto_generate):
                    continue
                key = business.category.value
                if key not in multipliers:
                    multipliers[key] = self.global_multiplier(key, now)
                total += business.net_income_per_hour / hour * multipliers[key]
            property_income = sum(p.net_income_per_hour for p in s.properties if p.owned)
            if property_income:
                total += property_income / hour * self.global_multiplier(None, now)
            return total

    def tap_value(self) -> float:
        """Cash earned by one tap."""
        with self._lock:
            s = self.state
            value = s.tap_power.level * s.tap_power.multiplier
            for multiplier in s.multipliers:
                if multiplier.level > 0:
                    value *= multiplier.multiplier_value ** multiplier.level
            luxury, premium, _, _ = self._bonus_terms()
            value *= s.prestige_multiplier * (1.0 + luxury + premium)
            return float(max(1, math.floor(value)))

    def net_worth(self) -> float:
        with self._lock:
            s = self.state
            worth = s.cash
            worth += sum(business_sale_value(b, self.config) for b in s.businesses if b.owned)
            worth += sum(p.current_market_value for p in s.properties if p.owned)
            worth += StockMarketSimulator.portfolio_value(s.stocks)
            return worth - s.total_debt

    # ------------------------------------------------------------------
    # Transaction helpers
    # ------------------------------------------------------------------

    def can_afford(self, cost: float) -> bool:
        """The affordability predicate every purchase re-checks."""
        return math.isfinite(cost) and cost >= 0 and self.state.cash >= cost

    def _charge(self, cost: float) -> None:
        self.state.cash -= cost
        self.state.total_spent += cost

    def _credit_earnings(self, amount: float) -> None:
        self.state.cash += amount
        self.state.total_earnings += amount
        self._check_trading_unlock()

    def _check_trading_unlock(self) -> None:
        s = self.state
        if not s.trading_unlocked and s.total_earnings >= self.config.stocks.unlock_lifetime_earnings:
            s.trading_unlocked = True
            logger.info("Stock trading unlocked")

    def _award(self, now: float) -> None:
        reward = self.evaluator.apply(self.state, now)
        if reward > 0:
            self._credit_earnings(reward)

    def _accept(self, action: str, detail: str, now: float) -> bool:
        self.state.user_actions_since_ad += 1
        self.recompute(now)
        self._award(now)
        logger.info(f"{action}: {detail}")
        return True

    @staticmethod
    def _decline(action: str, reason: str) -> bool:
        logger.debug(f"{action} declined: {reason}")
        return False

    # ------------------------------------------------------------------
    # Businesses
    # ------------------------------------------------------------------

    def buy_business(self, business_id: str) -> bool:
        with self._lock:
            now = self.clock()
            business = self.state.get_business(business_id)
            if business is None:
                return self._decline("buy_business", f"unknown id {business_id}")
            if business.owned:
                return self._decline("buy_business", f"{business.name} already owned")
            cost = business_level_cost(business, self.config)
            if not self.can_afford(cost):
                return self._decline("buy_business", f"cannot afford ${cost:,.0f}")

            self._charge(cost)
            business.level = 1
            business.owned = True
            business.auto_generate = business.level >= self.config.businesses.auto_generate_level
            business.total_invested += cost
            return self._accept("buy_business", f"{business.name} for ${cost:,.0f}", now)

    def upgrade_business(self, business_id: str) -> bool:
        with self._lock:
            now = self.clock()
            business = self.state.get_business(business_id)
            if business is None or not business.owned:
                return self._decline("upgrade_business", f"{business_id} not owned")
            cost = business_level_cost(business, self.config)
            if not self.can_afford(cost):
                return self._decline("upgrade_business", f"cannot afford ${cost:,.0f}")

            self._charge(cost)
            business.level += 1
            business.auto_generate = business.level >= self.config.businesses.auto_generate_level
            business.total_invested += cost
            return self._accept("upgrade_business", f"{business.name} -> level {business.level}", now)

    def upgrade_business_track(self, business_id: str, track: str) -> bool:
        with self._lock:
            now = self.clock()
            business = self.state.get_business(business_id)
            if business is None or not business.owned:
                return self._decline("upgrade_business_track", f"{business_id} not owned")
            cost = business_track_cost(business, track, self.config)
            if not self.can_afford(cost):
                return self._decline("upgrade_business_track", f"{track} unavailable or unaffordable")

            self._charge(cost)
            business.upgrades[track] = business.track_level(track) + 1
            business.total_invested += cost
            return self._accept(
                "upgrade_business_track", f"{business.name} {track} -> {business.upgrades[track]}", now
            )

    def free_upgrade_business(self, business_id: str) -> bool:
        """Ad-rewarded level-up; same transition as a paid upgrade at zero cost."""
        with self._lock:
            now = self.clock()
            business = self.state.get_business(business_id)
            if business is None or not business.owned:
                return self._decline("free_upgrade_business", f"{business_id} not owned")
            if not self.free_upgrade_available(now):
                return self._decline("free_upgrade_business", "free upgrade on cooldown")

            business.level += 1
            self.state.free_upgrade_ads_watched += 1
            self.state.last_free_upgrade_ad_time = now
            return self._accept("free_upgrade_business", f"{business.name} -> level {business.level}", now)

    def sell_business(self, business_id: str) -> bool:
        with self._lock:
            now = self.clock()
            s = self.state
            business = s.get_business(business_id)
            template = self.catalog.business_template(business_id)
            if business is None or template is None or not business.owned:
                return self._decline("sell_business", f"{business_id} not owned")

            proceeds = business_sale_value(business, self.config)
            s.businesses[s.businesses.index(business)] = template.create()
            self._credit_earnings(proceeds)
            return self._accept("sell_business", f"{business.name} for ${proceeds:,.0f}", now)

    def hire_employee(self, business_id: str) -> bool:
        with self._lock:
            now = self.clock()
            business = self.state.get_business(business_id)
            if business is None or not business.owned:
                return self._decline("hire_employee", f"{business_id} not owned")
            if business.employees >= business.max_employees:
                return self._decline("hire_employee", f"{business.name} is fully staffed")
            cost = hiring_cost(business, self.config)
            if not self.can_afford(cost):
                return self._decline("hire_employee", f"cannot afford ${cost:,.0f}")

            self._charge(cost)
            business.employees += 1
            business.total_invested += cost
            return self._accept("hire_employee", f"{business.name} staff {business.employees}", now)

    def train_workforce(self, business_id: str) -> bool:
        with self._lock:
            now = self.clock()
            business = self.state.get_business(business_id)
            if business is None or not business.owned:
                return self._decline("train_workforce", f"{business_id} not owned")
            if business.employees <= 0:
                return self._decline("train_workforce", f"{business.name} has no staff to train")
            cost = training_cost(business, self.config)
            if not self.can_afford(cost):
                return self._decline("train_workforce", "training maxed or unaffordable")

            self._charge(cost)
            business.training_level += 1
            business.total_invested += cost
            return self._accept("train_workforce", f"{business.name} training {business.training_level}", now)

    def set_price_index(self, business_id: str, price_index: float) -> bool:
        with self._lock:
            now = self.clock()
            business = self.state.get_business(business_id)
            if business is None or not business.owned:
                return self._decline("set_price_index", f"{business_id} not owned")
            if not math.isfinite(price_index):
                return self._decline("set_price_index", "price index must be finite")

            low, high = self.config.businesses.price_index_range
            business.price_index = min(high, max(low, price_index))
            return self._accept("set_price_index", f"{business.name} -> {business.price_index:.2f}", now)

    def sign_supply_contract(self, business_id: str, contract: str) -> bool:
        with self._lock:
            now = self.clock()
            business = self.state.get_business(business_id)
            if business is None or not business.owned:
                return self._decline("sign_supply_contract", f"{business_id} not owned")
            if business.supply_contract == contract:
                return self._decline("sign_supply_contract", f"{contract} already signed")
            cost = supply_contract_cost(business, contract, self.config)
            if not self.can_afford(cost):
                return self._decline("sign_supply_contract", f"{contract} unavailable or unaffordable")

            self._charge(cost)
            business.supply_contract = contract
            business.total_invested += cost
            return self._accept("sign_supply_contract", f"{business.name} {contract}", now)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    def buy_property(self, property_id: str) -> bool:
        with self._lock:
            now = self.clock()
            prop = self.state.get_property(property_id)
            if prop is None:
                return self._decline("buy_property", f"unknown id {property_id}")
            if prop.owned:
                return self._decline("buy_property", f"{prop.name} already owned")
            cost = property_level_cost(prop, self.config)
            if not self.can_afford(cost):
                return self._decline("buy_property", f"cannot afford ${cost:,.0f}")

            self._charge(cost)
            prop.level = 1
            prop.owned = True
            return self._accept("buy_property", f"{prop.name} for ${cost:,.0f}", now)

    def upgrade_property(self, property_id: str) -> bool:
        with self._lock:
            now = self.clock()
            prop = self.state.get_property(property_id)
            if prop is None or not prop.owned:
                return self._decline("upgrade_property", f"{property_id} not owned")
            cost = property_level_cost(prop, self.config)
            if not self.can_afford(cost):
                return self._decline("upgrade_property", f"cannot afford ${cost:,.0f}")

            self._charge(cost)
            prop.level += 1
            prop.total_upgrade_spend += cost
            return self._accept("upgrade_property", f"{prop.name} -> level {prop.level}", now)

    def upgrade_property_track(self, property_id: str, track: str) -> bool:
        with self._lock:
            now = self.clock()
            prop = self.state.get_property(property_id)
            if prop is None or not prop.owned:
                return self._decline("upgrade_property_track", f"{property_id} not owned")
            cost = property_track_cost(prop, track, self.config)
            if not self.can_afford(cost):
                return self._decline("upgrade_property_track", f"{track} unavailable or unaffordable")

            self._charge(cost)
            prop.upgrades[track] = prop.track_level(track) + 1
            prop.total_upgrade_spend += cost
            return self._accept("upgrade_property_track", f"{prop.name} {track} -> {prop.upgrades[track]}", now)

    def add_amenity(self, property_id: str, amenity: str) -> bool:
        with self._lock:
            now = self.clock()
            prop = self.state.get_property(property_id)
            if prop is None or not prop.owned:
                return self._decline("add_amenity", f"{property_id} not owned")
            cost = amenity_cost(prop, amenity, self.config)
            if not self.can_afford(cost):
                return self._decline("add_amenity", f"{amenity} unavailable or unaffordable")

            self._charge(cost)
            prop.amenities.append(amenity)
            prop.total_upgrade_spend += cost
            return self._accept("add_amenity", f"{prop.name} + {amenity}", now)

    def set_tenant_quality(self, property_id: str, tier: str) -> bool:
        with self._lock:
            now = self.clock()
            prop = self.state.get_property(property_id)
            if prop is None or not prop.owned:
                return self._decline("set_tenant_quality", f"{property_id} not owned")
            if prop.category != PropertyCategory.RESIDENTIAL:
                return self._decline("set_tenant_quality", "tenant tiers apply to residential only")
            if tier not in self.config.properties.tenant_tiers or tier == prop.tenant_quality:
                return self._decline("set_tenant_quality", f"tier {tier} invalid or unchanged")
            cost = tenant_change_cost(prop, self.config)
            if not self.can_afford(cost):
                return self._decline("set_tenant_quality", f"cannot afford ${cost:,.0f}")

            self._charge(cost)
            prop.tenant_quality = tier
            return self._accept("set_tenant_quality", f"{prop.name} -> tier {tier}", now)

    def toggle_rent(self, property_id: str) -> bool:
        with self._lock:
            now = self.clock()
            prop = self.state.get_property(property_id)
            if prop is None or not prop.owned:
                return self._decline("toggle_rent", f"{property_id} not owned")
            prop.rented = not prop.rented
            return self._accept("toggle_rent", f"{prop.name} rented={prop.rented}", now)

    def sell_property(self, property_id: str) -> bool:
        with self._lock:
            now = self.clock()
            s = self.state
            prop = s.get_property(property_id)
            template = self.catalog.property_template(property_id)
            if prop is None or template is None or not prop.owned:
                return self._decline("sell_property", f"{property_id} not owned")

            proceeds = float(math.floor(property_value(prop, self.config)))
            s.properties[s.properties.index(prop)] = template.create()
            self._credit_earnings(proceeds)
            return self._accept("sell_property", f"{prop.name} for ${proceeds:,.0f}", now)

    # ------------------------------------------------------------------
    # Luxury
    # ------------------------------------------------------------------

    def buy_luxury_item(self, item_id: str) -> bool:
        with self._lock:
            now = self.clock()
            item = self.state.get_luxury_item(item_id)
            if item is None or item.owned:
                return self._decline("buy_luxury_item", f"{item_id} unknown or already owned")
            if self.state.prestige_level < item.prestige_requirement:
                return self._decline("buy_luxury_item", f"{item.name} needs prestige {item.prestige_requirement}")
            if not self.can_afford(item.cost):
                return self._decline("buy_luxury_item", f"cannot afford ${item.cost:,.0f}")

            self._charge(item.cost)
            item.owned = True
            return self._accept("buy_luxury_item", f"{item.name} for ${item.cost:,.0f}", now)

    def upgrade_luxury_track(self, item_id: str, track: str) -> bool:
        with self._lock:
            now = self.clock()
            item = self.state.get_luxury_item(item_id)
            if item is None or not item.owned:
                return self._decline("upgrade_luxury_track", f"{item_id} not owned")
            cost = luxury_track_cost(item, track, self.config)
            if not self.can_afford(cost):
                return self._decline("upgrade_luxury_track", f"{track} maxed or unaffordable")

            self._charge(cost)
            item.upgrades[track] = item.track_level(track) + 1
            return self._accept("upgrade_luxury_track", f"{item.name} {track} -> {item.upgrades[track]}", now)

    def buy_entourage(self, item_id: str) -> bool:
        with self._lock:
            now = self.clock()
            item = self.state.get_luxury_item(item_id)
            if item is None or not item.owned:
                return self._decline("buy_entourage", f"{item_id} not owned")
            cost = entourage_cost(item, self.config)
            if not self.can_afford(cost):
                return self._decline("buy_entourage", "entourage owned or unaffordable")

            self._charge(cost)
            item.entourage = True
            return self._accept("buy_entourage", f"{item.name} entourage", now)

    # ------------------------------------------------------------------
    # Stocks
    # ------------------------------------------------------------------

    def buy_stock(self, stock_id: str, shares: int) -> bool:
        with self._lock:
            now = self.clock()
            s = self.state
            stock = s.get_stock(stock_id)
            if stock is None or not s.trading_unlocked:
                return self._decline("buy_stock", f"{stock_id} unknown or trading locked")
            if not isinstance(shares, int) or shares <= 0:
                return self._decline("buy_stock", f"invalid share count {shares!r}")
            cost = stock.current_price * shares
            if not self.can_afford(cost):
                return self._decline("buy_stock", f"cannot afford ${cost:,.2f}")

            self._charge(cost)
            stock.average_buy_price = StockMarketSimulator.weighted_average_price(
                stock.shares_owned, stock.average_buy_price, shares, stock.current_price
            )
            stock.shares_owned += shares
            s.trade_count += 1
            return self._accept("buy_stock", f"{shares} {stock.symbol} @ {stock.current_price:.2f}", now)

    def _sell_shares(self, stock: Stock, shares: int, price: float) -> float:
        s = self.state
        proceeds = price * shares
        s.realized_profit += StockMarketSimulator.realized_profit(price, stock.average_buy_price, shares)
        s.cash += proceeds
        s.trade_count += 1
        stock.shares_owned -= shares
        if stock.shares_owned == 0:
            stock.average_buy_price = 0.0
            stock.stop_loss = None
            stock.take_profit = None
        return proceeds

    def sell_stock(self, stock_id: str, shares: int) -> bool:
        with self._lock:
            now = self.clock()
            stock = self.state.get_stock(stock_id)
            if stock is None or not self.state.trading_unlocked:
                return self._decline("sell_stock", f"{stock_id} unknown or trading locked")
            if not isinstance(shares, int) or shares <= 0 or shares > stock.shares_owned:
                return self._decline("sell_stock", f"cannot sell {shares!r} of {stock.shares_owned}")

            self._sell_shares(stock, shares, stock.current_price)
            return self._accept("sell_stock", f"{shares} {stock.symbol} @ {stock.current_price:.2f}", now)

    def set_stock_orders(
        self, stock_id: str, stop_loss: Optional[float] = None, take_profit: Optional[float] = None
    ) -> bool:
        """Arm (or clear, with None) the stop-loss and take-profit thresholds."""
        with self._lock:
            now = self.clock()
            stock = self.state.get_stock(stock_id)
            if stock is None or not self.state.trading_unlocked or stock.shares_owned <= 0:
                return self._decline("set_stock_orders", f"no position in {stock_id}")
            if stop_loss is not None and not (0 < stop_loss < stock.current_price):
                return self._decline("set_stock_orders", "stop-loss must sit below the current price")
            if take_profit is not None and not (take_profit > stock.current_price):
                return self._decline("set_stock_orders", "take-profit must sit above the current price")

            stock.stop_loss = stop_loss
            stock.take_profit = take_profit
            return self._accept("set_stock_orders", f"{stock.symbol} sl={stop_loss} tp={take_profit}", now)

    # ------------------------------------------------------------------
    # Session: taps, multipliers, prestige, monetization, loans
    # ------------------------------------------------------------------

    def tap(self) -> float:
        """Earn one tap's worth of cash; returns the amount."""
        with self._lock:
            now = self.clock()
            earned = self.tap_value()
            self.state.lifetime_taps += 1
            self._credit_earnings(earned)
            self._award(now)
            return earned

    def tap_power_cost(self) -> float:
        tap = self.state.tap_power
        return float(math.floor(tap.base_cost * self.config.session.tap_cost_growth ** (tap.level - 1)))

    def upgrade_tap_power(self) -> bool:
        with self._lock:
            now = self.clock()
            cost = self.tap_power_cost()
            if not self.can_afford(cost):
                return self._decline("upgrade_tap_power", f"cannot afford ${cost:,.0f}")

            self._charge(cost)
            tap = self.state.tap_power
            tap.level += 1
            tap.multiplier += self.config.session.tap_multiplier_step
            return self._accept("upgrade_tap_power", f"tap power -> {tap.level}", now)

    def multiplier_cost(self, multiplier_id: str) -> float:
        multiplier = self.state.get_multiplier(multiplier_id)
        if multiplier is None:
            return math.inf
        growth = self.config.session.multiplier_cost_growth
        return float(math.floor(multiplier.base_cost * growth ** multiplier.level))

    def upgrade_multiplier(self, multiplier_id: str) -> bool:
        with self._lock:
            now = self.clock()
            multiplier = self.state.get_multiplier(multiplier_id)
            if multiplier is None:
                return self._decline("upgrade_multiplier", f"unknown id {multiplier_id}")
            cost = self.multiplier_cost(multiplier_id)
            if not self.can_afford(cost):
                return self._decline("upgrade_multiplier", f"cannot afford ${cost:,.0f}")

            self._charge(cost)
            multiplier.level += 1
            return self._accept("upgrade_multiplier", f"{multiplier.name} -> {multiplier.level}", now)

    def prestige(self) -> bool:
        """
        Reset to fresh defaults, carrying over only PRESTIGE_CARRY_OVER.

        Achievements and goals are not re-evaluated here; the next cash tick
        picks up anything the new prestige level unlocks.
        """
        with self._lock:
            now = self.clock()
            old = self.state
            requirement = self.config.prestige.requirement
            if old.total_earnings < requirement:
                return self._decline("prestige", f"needs ${requirement:,.0f} total earnings")

            new = fresh_state(now, self.catalog, self.config)
            for name in PRESTIGE_CARRY_OVER:
                setattr(new, name, getattr(old, name))
            new.prestige_level = old.prestige_level + 1
            new.prestige_multiplier = old.prestige_multiplier + self.config.prestige.multiplier_increment
            self.state = new
            self.recompute(now)
            logger.info(f"Prestige {new.prestige_level} (tap multiplier {new.prestige_multiplier:.2f})")
            return True

    def reset(self) -> bool:
        with self._lock:
            now = self.clock()
            self.state = fresh_state(now, self.catalog, self.config)
            self.recompute(now)
            logger.info("Game reset to fresh defaults")
            return True

    def purchase_premium(self) -> bool:
        with self._lock:
            if self.state.is_premium:
                return self._decline("purchase_premium", "already premium")
            self.state.is_premium = True
            return self._accept("purchase_premium", "premium activated", self.clock())

    def ad_cooldown_remaining(self, now: Optional[float] = None) -> float:
        now = self.clock() if now is None else now
        elapsed = now - self.state.last_ad_watch_time
        return max(0.0, self.config.session.ad_cooldown - elapsed)

    def grant_bonus_cash(self, amount: float) -> bool:
        """Ad reward scaled by progress and doubled for premium players."""
        with self._lock:
            now = self.clock()
            s = self.state
            session = self.config.session
            if not math.isfinite(amount) or amount <= 0:
                return self._decline("grant_bonus_cash", f"invalid amount {amount!r}")
            if self.ad_cooldown_remaining(now) > 0:
                return self._decline("grant_bonus_cash", "ad reward on cooldown")

            bonus = amount * max(1, math.floor(s.total_earnings / session.ad_progress_divisor))
            if s.is_premium:
                bonus *= session.premium_ad_factor
            self._credit_earnings(bonus)
            s.ads_watched += 1
            s.last_ad_watch_time = now
            s.user_actions_since_ad = 0
            self.recompute(now)
            self._award(now)
            logger.info(f"grant_bonus_cash: ${bonus:,.0f}")
            return True

    def forced_ad_due(self, now: Optional[float] = None) -> bool:
        now = self.clock() if now is None else now
        s = self.state
        session = self.config.session
        return (
            now - s.session_start_time >= session.initial_ad_delay
            and now - s.last_forced_ad_time >= session.forced_ad_interval
            and now - s.last_free_upgrade_ad_time >= session.min_ad_gap
            and s.user_actions_since_ad > 0
        )

    def record_forced_ad(self) -> bool:
        with self._lock:
            now = self.clock()
            if not self.forced_ad_due(now):
                return self._decline("record_forced_ad", "no forced ad due")
            s = self.state
            s.last_forced_ad_time = now
            s.user_actions_since_ad = 0
            s.ads_watched += 1
            logger.info("Forced ad shown")
            return True

    def free_upgrade_available(self, now: Optional[float] = None) -> bool:
        now = self.clock() if now is None else now
        s = self.state
        session = self.config.session
        return (
            now - s.session_start_time >= session.initial_ad_delay
            and now - s.last_free_upgrade_ad_time >= session.free_upgrade_cooldown
            and now - s.last_forced_ad_time >= session.min_ad_gap
        )

    def offer_free_upgrade(self) -> bool:
        """Mark a free-upgrade prompt as shown; prompts are spaced by the offer gap."""
        with self._lock:
            now = self.clock()
            s = self.state
            if not self.free_upgrade_available(now):
                return False
            if now - s.last_free_upgrade_available_time < self.config.session.free_upgrade_offer_gap:
                return False
            s.last_free_upgrade_available_time = now
            return True

    def loan_terms(self, amount: float, months: int) -> Dict[str, float]:
        """Annual rate and level monthly payment of a standard amortized loan."""
        cfg = self.config.loans
        rate = cfg.base_rate + (amount / cfg.size_unit) * cfg.size_slope
        r = rate / 12.0
        if r > 0:
            growth = (1.0 + r) ** months
            payment = amount * r * growth / (growth - 1.0)
        else:
            payment = amount / months
        return {"interest_rate": rate, "monthly_payment": payment, "total_owed": payment * months}

    def take_loan(self, amount: float, months: int) -> bool:
        with self._lock:
            now = self.clock()
            cfg = self.config.loans
            if not math.isfinite(amount) or amount <= 0 or amount > cfg.max_principal:
                return self._decline("take_loan", f"invalid principal {amount!r}")
            if not isinstance(months, int) or not (cfg.min_months <= months <= cfg.max_months):
                return self._decline("take_loan", f"invalid term {months!r}")

            terms = self.loan_terms(amount, months)
            loan = Loan(
                id=f"loan_{uuid.uuid4().hex[:8]}",
                amount=amount,
                interest_rate=terms["interest_rate"],
                monthly_payment=terms["monthly_payment"],
                remaining_months=months,
                total_owed=terms["total_owed"],
                taken_at=now,
            )
            s = self.state
            s.loans.append(loan)
            s.cash += amount
            s.total_debt = sum(existing.payoff_amount for existing in s.loans)
            return self._accept("take_loan", f"${amount:,.0f} over {months} months at {loan.interest_rate:.2%}", now)

    def pay_loan(self, loan_id: str) -> bool:
        with self._lock:
            now = self.clock()
            s = self.state
            loan = s.get_loan(loan_id)
            if loan is None:
                return self._decline("pay_loan", f"unknown loan {loan_id}")
            payoff = loan.payoff_amount
            if not self.can_afford(payoff):
                return self._decline("pay_loan", f"cannot afford ${payoff:,.0f}")

            self._charge(payoff)
            s.loans.remove(loan)
            s.total_debt = sum(existing.payoff_amount for existing in s.loans)
            return self._accept("pay_loan", f"{loan_id} settled for ${payoff:,.0f}", now)

    # ------------------------------------------------------------------
    # Periodic ticks
    # ------------------------------------------------------------------

    def accrue_cash(self, elapsed: Optional[float] = None) -> float:
        """
        Add passive income for `elapsed` seconds at the current macro state.

        Negative net income can drain cash; it stops at zero and flags the
        state as bankrupt until income turns positive again.
        """
        elapsed = self.config.session.cash_tick_interval if elapsed is None else elapsed
        with self._lock:
            now = self.clock()
            s = self.state
            self.recompute(now)
            delta = self.income_per_second(now) * elapsed

            if delta >= 0:
                if delta > 0:
                    self._credit_earnings(delta)
                    if s.is_bankrupt:
                        s.is_bankrupt = False
                        logger.info("Cash flow positive again, bankruptcy cleared")
            else:
                s.cash += delta
                if s.cash < 0:
                    s.cash = 0.0
                    if not s.is_bankrupt:
                        s.is_bankrupt = True
                        s.bankruptcy_count += 1
                        logger.warning(f"Cash exhausted by negative net income (bankruptcy #{s.bankruptcy_count})")

            self._award(now)
            return delta

    def tick_stocks(self) -> List[TriggeredOrder]:
        """Advance stock prices; executes any stop-loss/take-profit crossed."""
        with self._lock:
            now = self.clock()
            s = self.state
            if not s.trading_unlocked:
                return []
            triggered = self.market.tick(s.stocks, s.economic_phase.phase, s.active_market_events, now)
            for order in triggered:
                stock = s.get_stock(order.stock_id)
                self._sell_shares(stock, order.shares, order.price)
                logger.info(f"{order.kind} executed: {order.shares} {stock.symbol} @ {order.price:.2f}")
            if triggered:
                self._award(now)
            return triggered

    def tick_sentiment(self) -> float:
        with self._lock:
            self.state.market_sentiment = self.macro.step_sentiment(self.state.market_sentiment)
            return self.state.market_sentiment

    def tick_efficiency(self) -> float:
        with self._lock:
            self.state.efficiency_multiplier = self.macro.step_efficiency(self.state.efficiency_multiplier)
            return self.state.efficiency_multiplier

    def tick_macro(self) -> bool:
        """Advance the economic phase (at most one step) and drift regional indices."""
        with self._lock:
            now = self.clock()
            s = self.state
            phase, changed = self.macro.advance_phase(s.economic_phase, now)
            if changed:
                logger.info(f"Economic phase: {s.economic_phase.phase} -> {phase.phase}")
                s.economic_phase = phase
            s.regional_modifiers = self.macro.step_regional(s.regional_modifiers, s.economic_phase.phase)
            self.recompute(now)
            return changed

    def tick_events(self) -> Optional[str]:
        """Expire finished events and roll for a new one; returns the spawned event id."""
        with self._lock:
            now = self.clock()
            s = self.state
            live, expired = self.macro.expire_events(s.active_market_events, now)
            for event in expired:
                logger.info(f"Market event ended: {event.title}")
            s.active_market_events = live

            favor = any(item.owned and item.entourage for item in s.luxury_items)
            event = self.macro.maybe_spawn_event(live, s.last_event_time, now, favor)
            if event is not None:
                s.active_market_events.append(event)
                s.last_event_time = now
                logger.info(f"Market event started: {event.title} ({event.duration / 60:.0f} min)")
            self.recompute(now)
            return event.id if event is not None else None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> bool:
        """Serialize under the lock, write outside it; failures are logged, never raised."""
        if self.save_store is None:
            return False
        with self._lock:
            self.state.last_save_time = self.clock()
            payload = dump_state(self.state)
        try:
            self.save_store.write(self.config.session.storage_key, payload)
        except Exception:
            logger.exception("Save failed, will retry on the next interval")
            return False
        return True

    def load(self) -> float:
        """Replace the state with the persisted one and grant offline earnings."""
        with self._lock:
            now = self.clock()
            if self.save_store is not None:
                self.state = load_state(self.save_store, now, self.catalog, self.config)
            self.recompute(now)
            return self.apply_offline_earnings(now)

    def apply_offline_earnings(self, now: Optional[float] = None) -> float:
        """
        Credit net income for the time since the last save, capped at
        max_offline_seconds. The global multiplier is not applied offline.
        """
        with self._lock:
            now = self.clock() if now is None else now
            s = self.state
            elapsed = max(0.0, now - s.last_save_time)
            capped = min(elapsed, self.config.session.max_offline_seconds)
            rate = self.base_income_per_hour() / self.config.global_caps.seconds_per_hour
            earned = max(0.0, rate * capped)
            if earned > 0:
                self._credit_earnings(earned)
                logger.info(f"Offline earnings: ${earned:,.0f} for {capped:,.0f}s away")
            s.last_save_time = now
            return earned

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def business_view(self, business_id: str) -> Optional[Dict[str, object]]:
        with self._lock:
            business = self.state.get_business(business_id)
            if business is None:
                return None
            view = business.to_dict()
            view.update({
                "next_level_cost": business_level_cost(business, self.config),
                "track_costs": {
                    track: _finite(business_track_cost(business, track, self.config))
                    for track in self.config.businesses.tracks
                },
                "hiring_cost": hiring_cost(business, self.config),
                "training_cost": _finite(training_cost(business, self.config)),
                "sale_value": business_sale_value(business, self.config),
                "global_multiplier": self.global_multiplier(business.category.value),
            })
            return view

    def property_view(self, property_id: str) -> Optional[Dict[str, object]]:
        with self._lock:
            prop = self.state.get_property(property_id)
            if prop is None:
                return None
            view = prop.to_dict()
            view.update({
                "next_level_cost": property_level_cost(prop, self.config),
                "track_costs": {
                    track: _finite(property_track_cost(prop, track, self.config))
                    for track in self.config.properties.tracks
                },
                "amenity_costs": {
                    amenity: _finite(amenity_cost(prop, amenity, self.config))
                    for amenity in self.config.properties.amenities
                },
                "sale_value": float(math.floor(property_value(prop, self.config))),
            })
            return view

    def cooldowns(self, now: Optional[float] = None) -> Dict[str, object]:
        now = self.clock() if now is None else now
        with self._lock:
            s = self.state
            session = self.config.session
            return {
                "ad_reward_remaining": self.ad_cooldown_remaining(now),
                "forced_ad_due": self.forced_ad_due(now),
                "free_upgrade_available": self.free_upgrade_available(now),
                "free_upgrade_remaining": max(
                    0.0, session.free_upgrade_cooldown - (now - s.last_free_upgrade_ad_time)
                ),
                "event_cooldown_remaining": max(
                    0.0, self.config.events.cooldown_seconds - (now - s.last_event_time)
                ),
                "phase_remaining": max(
                    0.0, s.economic_phase.duration - (now - s.economic_phase.start_time)
                ),
                "events": [
                    {"id": e.id, "title": e.title, "remaining": e.remaining(now)}
                    for e in s.active_market_events if e.is_live(now)
                ],
            }

    def snapshot(self) -> Dict[str, object]:
        """Full state plus derived display figures."""
        with self._lock:
            now = self.clock()
            data = self.state.to_dict()
            data["derived"] = {
                "income_per_second": self.income_per_second(now),
                "tap_value": self.tap_value(),
                "tap_power_cost": self.tap_power_cost(),
                "net_worth": self.net_worth(),
                "portfolio_value": StockMarketSimulator.portfolio_value(self.state.stocks),
                "unrealized_profit": StockMarketSimulator.unrealized_profit(self.state.stocks),
                "multiplier": self.multiplier_breakdown(None, now).to_dict(),
                "category_multipliers": {
                    category.value: self.global_multiplier(category.value, now)
                    for category in BusinessCategory
                },
                "cooldowns": self.cooldowns(now),
            }
            return data
