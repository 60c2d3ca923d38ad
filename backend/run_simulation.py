"""
Headless balance run.

Drives a store on a simulated clock with a greedy player that always buys the
asset with the best income per dollar, and prints a progress table. Useful
for checking pacing after changing config values.
"""

import argparse
import logging
import time
from typing import Optional, Tuple

import numpy as np

from config import CONFIG, load_runtime_settings
from economy import GameStateStore
from persistence import SqliteSaveStore
from valuation import business_level_cost, property_level_cost


class SimulatedClock:
    """Manually advanced clock standing in for time.time()."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def best_purchase(store: GameStateStore) -> Optional[Tuple[str, str, float]]:
    """(kind, id, cost) of the affordable purchase with the highest added income per dollar."""
    cfg = store.config
    best, best_ratio = None, 0.0
    for business in store.state.businesses:
        cost = business_level_cost(business, cfg)
        if not store.can_afford(cost):
            continue
        if business.owned:
            gain = business.base_revenue_per_hour * (cfg.businesses.revenue_growth - 1.0) \
                * cfg.businesses.revenue_growth ** (business.level - 1)
        else:
            gain = business.base_revenue_per_hour
        if gain / cost > best_ratio:
            best, best_ratio = ("business", business.id, cost), gain / cost
    for prop in store.state.properties:
        cost = property_level_cost(prop, cfg)
        if store.can_afford(cost) and prop.base_income_per_hour / cost > best_ratio:
            best, best_ratio = ("property", prop.id, cost), prop.base_income_per_hour / cost
    return best


def play_greedy(store: GameStateStore, max_purchases: int = 10) -> int:
    bought = 0
    while bought < max_purchases:
        choice = best_purchase(store)
        if choice is None:
            break
        kind, entity_id, _ = choice
        if kind == "business":
            owned = store.state.get_business(entity_id).owned
            accepted = store.upgrade_business(entity_id) if owned else store.buy_business(entity_id)
        else:
            owned = store.state.get_property(entity_id).owned
            accepted = store.upgrade_property(entity_id) if owned else store.buy_property(entity_id)
        if not accepted:
            break
        bought += 1
    return bought


def main(seconds: int, taps_per_second: int, report_every: int, seed: Optional[int], db_path: Optional[str]):
    clock = SimulatedClock(start=time.time())
    save_store = SqliteSaveStore(db_path) if db_path else None
    store = GameStateStore(rng=np.random.default_rng(seed), clock=clock, save_store=save_store)

    print("=" * 80)
    print(f"TYCOON SIMULATION ({seconds:,} simulated seconds, {taps_per_second} taps/s, seed {seed})")
    print("=" * 80)
    print()
    print("   Time |           Cash |   Income/s | Phase      | Sent. | Owned | Net Worth")
    print("-" * 80)

    cfg = CONFIG
    start = time.time()
    purchases = 0
    for second in range(1, seconds + 1):
        clock.advance(1.0)
        for _ in range(taps_per_second):
            store.tap()
        store.accrue_cash(1.0)
        if second % int(cfg.stocks.tick_interval) == 0:
            store.tick_stocks()
        if second % int(cfg.sentiment.update_interval) == 0:
            store.tick_sentiment()
        if second % int(cfg.efficiency.update_interval) == 0:
            store.tick_efficiency()
        if second % int(cfg.cycle.update_interval) == 0:
            store.tick_macro()
        if second % int(cfg.events.check_interval) == 0:
            store.tick_events()
        if store.state.total_earnings >= cfg.prestige.requirement:
            store.prestige()
        purchases += play_greedy(store)

        if second % report_every == 0:
            s = store.state
            owned = sum(1 for b in s.businesses if b.owned) + sum(1 for p in s.properties if p.owned)
            print(f"{second:7d} | {s.cash:14,.0f} | {store.income_per_second():10,.1f} | "
                  f"{s.economic_phase.phase:10s} | {s.market_sentiment:5.1f} | {owned:5d} | "
                  f"{store.net_worth():,.0f}")

    if save_store is not None:
        store.save()

    s = store.state
    print()
    print("Simulation complete!")
    print(f"  Wall time: {time.time() - start:.2f} seconds")
    print(f"  Purchases: {purchases}")
    print(f"  Total earnings: ${s.total_earnings:,.0f}")
    print(f"  Prestige level: {s.prestige_level}")
    print(f"  Achievements: {sum(1 for a in s.achievements if a.unlocked)}/{len(s.achievements)}")
    if db_path:
        print(f"  Saved to: {db_path}")
    print()


if __name__ == "__main__":
    settings = load_runtime_settings()
    parser = argparse.ArgumentParser(description="Run a headless tycoon economy simulation.")
    parser.add_argument("--seconds", type=int, default=3600, help="Simulated seconds to run")
    parser.add_argument("--taps-per-second", type=int, default=3, help="Player taps per simulated second")
    parser.add_argument("--report-every", type=int, default=300, help="Progress row interval (seconds)")
    parser.add_argument("--seed", type=int, default=settings.rng_seed, help="RNG seed")
    parser.add_argument("--db", type=str, default=None, help="Save the final state to this SQLite file")
    parser.add_argument("--verbose", action="store_true", help="Log every accepted action")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    main(
        seconds=args.seconds,
        taps_per_second=args.taps_per_second,
        report_every=args.report_every,
        seed=args.seed,
        db_path=args.db,
    )
