"""
Achievement and goal evaluation.

Scans the state against static thresholds and marks newly met entries.
The caller credits the returned reward total, so each reward is paid once.
"""

import logging
from typing import Dict, List

from catalog import DEFAULT_CATALOG, Catalog
from game_state import GameState

logger = logging.getLogger(__name__)


class AchievementGoalEvaluator:
    def __init__(self, catalog: Catalog = DEFAULT_CATALOG):
        self.catalog = catalog

    def pending_achievements(self, state: GameState) -> List[str]:
        """Ids of locked achievements whose condition now holds."""
        met = []
        for achievement in state.achievements:
            if achievement.unlocked:
                continue
            template = self.catalog.achievement_template(achievement.id)
            if template is not None and template.condition(state):
                met.append(achievement.id)
        return met

    @staticmethod
    def goal_progress(state: GameState) -> Dict[str, float]:
        """Current value of every goal metric."""
        return {
            "earnings": state.total_earnings,
            "businesses": float(sum(1 for b in state.businesses if b.level >= 10)),
            "properties": sum(p.net_income_per_hour for p in state.properties if p.owned),
            "trades": float(state.trade_count),
            "trading": state.realized_profit,
            "luxury": float(sum(1 for item in state.luxury_items if item.owned)),
            "prestige": float(state.prestige_level),
        }

    def apply(self, state: GameState, now: float) -> float:
        """Unlock everything newly met; returns the reward total owed for them."""
        credited = 0.0

        pending = set(self.pending_achievements(state))
        for achievement in state.achievements:
            if achievement.id in pending:
                achievement.unlocked = True
                achievement.unlocked_at = now
                credited += achievement.reward
                logger.info(f"Achievement unlocked: {achievement.name} (+${achievement.reward:,.0f})")

        progress = self.goal_progress(state)
        for goal in state.goals:
            goal.progress = progress.get(goal.type, 0.0)
            if not goal.completed and goal.progress >= goal.target:
                goal.completed = True
                credited += goal.reward
                logger.info(f"Goal completed: {goal.title} (+${goal.reward:,.0f})")

        return credited
