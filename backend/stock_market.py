"""
Stock Market Simulator

Independent per-stock random walk advanced on a fixed tick:

    next = current * (1 + drift + phase_bias + event_bias + N(0, sigma))

floored at base_price * floor_multiple. Also provides portfolio accounting
(weighted average cost, realized and unrealized profit) and evaluates
stop-loss / take-profit orders after each tick.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import numpy as np

from config import CONFIG, GameConfig
from entities import EventType, MarketEvent, Stock


@dataclass(frozen=True)
class TriggeredOrder:
    """A standing order whose threshold was crossed by the latest tick."""
    stock_id: str
    kind: str  # "stop_loss" or "take_profit"
    price: float
    shares: int


class StockMarketSimulator:
    def __init__(self, config: GameConfig = CONFIG, rng: Optional[np.random.Generator] = None):
        self.config = config
        self.rng = rng if rng is not None else np.random.default_rng()

    @property
    def drift_per_tick(self) -> float:
        return self.config.stocks.drift_per_tick

    def floor_price(self, stock: Stock) -> float:
        return stock.base_price * self.config.stocks.floor_multiple

    def phase_bias(self, phase: str) -> float:
        return self.config.stocks.phase_bias.get(phase, 0.0)

    def event_bias(self, stock: Stock, events: Iterable[MarketEvent], now: float) -> float:
        """Booms lift and crashes sink matching sectors; an unscoped crash sinks everything."""
        bias = 0.0
        step = self.config.stocks.event_bias
        sector = stock.sector.value
        for event in events:
            if not event.is_live(now):
                continue
            if event.affected_sectors is not None and sector in event.affected_sectors:
                if event.type == EventType.BOOM:
                    bias += step
                elif event.type == EventType.CRASH:
                    bias -= step
            elif event.affected_sectors is None and event.type == EventType.CRASH:
                bias -= step
        return bias

    def noise(self, stock: Stock) -> float:
        sigma = self.config.stocks.volatility[stock.volatility.value]
        return float(self.rng.normal(0.0, sigma))

    def next_price(
        self, stock: Stock, phase: str, events: Sequence[MarketEvent], now: float
    ) -> float:
        change = (
            self.drift_per_tick
            + self.phase_bias(phase)
            + self.event_bias(stock, events, now)
            + self.noise(stock)
        )
        return max(self.floor_price(stock), stock.current_price * (1.0 + change))

    def tick(
        self, stocks: Iterable[Stock], phase: str, events: Sequence[MarketEvent], now: float
    ) -> List[TriggeredOrder]:
        """Advance every stock one tick; return orders whose thresholds were crossed."""
        triggered: List[TriggeredOrder] = []
        for stock in stocks:
            price = self.next_price(stock, phase, events, now)
            stock.record_price(price)
            if stock.shares_owned <= 0:
                continue
            if stock.stop_loss is not None and price <= stock.stop_loss:
                triggered.append(TriggeredOrder(stock.id, "stop_loss", price, stock.shares_owned))
            elif stock.take_profit is not None and price >= stock.take_profit:
                triggered.append(TriggeredOrder(stock.id, "take_profit", price, stock.shares_owned))
        return triggered

    # ------------------------------------------------------------------
    # Portfolio accounting
    # ------------------------------------------------------------------

    @staticmethod
    def weighted_average_price(held: int, average: float, bought: int, price: float) -> float:
        total = held + bought
        if total <= 0:
            return 0.0
        return (held * average + bought * price) / total

    @staticmethod
    def realized_profit(sell_price: float, average: float, shares: int) -> float:
        return (sell_price - average) * shares

    @staticmethod
    def portfolio_value(stocks: Iterable[Stock]) -> float:
        return sum(stock.current_price * stock.shares_owned for stock in stocks)

    @staticmethod
    def cost_basis(stocks: Iterable[Stock]) -> float:
        return sum(stock.average_buy_price * stock.shares_owned for stock in stocks)

    @classmethod
    def unrealized_profit(cls, stocks: Sequence[Stock]) -> float:
        return cls.portfolio_value(stocks) - cls.cost_basis(stocks)
