"""
Macro Economy Driver

Advances the economic phase cycle, the sentiment and efficiency random
walks, regional indices, and the market event lifecycle. All randomness
comes from the injected numpy Generator so tests can pin it down.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from catalog import EVENT_TEMPLATES, EventTemplate
from config import CONFIG, GameConfig
from entities import EconomicPhase, MarketEvent, RegionalModifiers

logger = logging.getLogger(__name__)


class MacroEconomyDriver:
    """
    Tick-advance functions for macro state.

    Every method returns new values instead of mutating the game state; the
    store decides when to call them and writes the results back under its
    lock.
    """

    def __init__(
        self,
        config: GameConfig = CONFIG,
        rng: Optional[np.random.Generator] = None,
        templates: Sequence[EventTemplate] = EVENT_TEMPLATES,
    ):
        self.config = config
        self.rng = rng if rng is not None else np.random.default_rng()
        self.templates = tuple(templates)

    # ------------------------------------------------------------------
    # Economic phase
    # ------------------------------------------------------------------

    def initial_phase(self, now: float) -> EconomicPhase:
        spec = self.config.cycle.phases[0]
        return EconomicPhase(spec.name, now, spec.duration_seconds, spec.multiplier)

    def next_phase(self, current: EconomicPhase, now: float) -> EconomicPhase:
        phases = self.config.cycle.phases
        idx = (self.config.cycle.index_of(current.phase) + 1) % len(phases)
        spec = phases[idx]
        return EconomicPhase(spec.name, now, spec.duration_seconds, spec.multiplier)

    def advance_phase(self, current: EconomicPhase, now: float) -> Tuple[EconomicPhase, bool]:
        """
        Move to the next phase once the current one has run its duration.

        At most one transition happens per call, however much time passed.
        """
        if now - current.start_time > current.duration:
            return self.next_phase(current, now), True
        return current, False

    # ------------------------------------------------------------------
    # Random walks
    # ------------------------------------------------------------------

    def _uniform_step(self, scale: float) -> float:
        return (float(self.rng.random()) - 0.5) * 2.0 * scale

    def step_sentiment(self, current: float) -> float:
        cfg = self.config.sentiment
        step = self._uniform_step(cfg.step_scale)
        reversion = cfg.mean_revert_strength * (cfg.initial - current)
        return min(cfg.maximum, max(cfg.minimum, current + step + reversion))

    def step_efficiency(self, current: float) -> float:
        cfg = self.config.efficiency
        step = self._uniform_step(cfg.volatility)
        reversion = cfg.mean_revert_strength * (cfg.target - current)
        return min(cfg.cap, max(cfg.floor, current + step + reversion))

    def step_regional(self, current: RegionalModifiers, phase: str) -> RegionalModifiers:
        cfg = self.config.regional
        drifts = cfg.phase_drift.get(phase, (0.0, 0.0, 0.0, 0.0))
        values = []
        for name, drift, width in zip(RegionalModifiers.FIELDS, drifts, cfg.noise_width):
            change = drift + self._uniform_step(width / 2.0)
            values.append(min(cfg.max_index, max(cfg.min_index, current.index(name) + change)))
        return RegionalModifiers(*values)

    # ------------------------------------------------------------------
    # Market events
    # ------------------------------------------------------------------

    def expire_events(
        self, events: Sequence[MarketEvent], now: float
    ) -> Tuple[List[MarketEvent], List[MarketEvent]]:
        """Split events into (still live, expired); expired ones are marked inactive."""
        live, expired = [], []
        for event in events:
            if event.is_live(now):
                live.append(event)
            else:
                event.active = False
                expired.append(event)
        return live, expired

    def should_spawn(self, last_event_time: float, now: float) -> bool:
        if now - last_event_time < self.config.events.cooldown_seconds:
            return False
        return float(self.rng.random()) < self.config.events.spawn_chance

    def draw_template(self, favor_positive: bool = False) -> Optional[EventTemplate]:
        """Pick a template; an entourage tilts the draw toward booms and holidays."""
        if not self.templates:
            return None
        weights = np.ones(len(self.templates))
        if favor_positive:
            bias = self.config.events.entourage_favorable_bias
            weights = np.array([1.0 + bias if t.favorable else 1.0 for t in self.templates])
        idx = int(self.rng.choice(len(self.templates), p=weights / weights.sum()))
        return self.templates[idx]

    @staticmethod
    def spawn_event(template: EventTemplate, now: float) -> MarketEvent:
        return MarketEvent(
            id=template.id,
            type=template.type,
            title=template.title,
            start_time=now,
            duration=template.duration_minutes * 60.0,
            revenue_multiplier=template.revenue_multiplier,
            costs_multiplier=template.costs_multiplier,
            affected_categories=template.affected_categories,
            affected_sectors=template.affected_sectors,
        )

    def maybe_spawn_event(
        self,
        active: Sequence[MarketEvent],
        last_event_time: float,
        now: float,
        favor_positive: bool = False,
    ) -> Optional[MarketEvent]:
        """Roll for a new event subject to the cooldown; duplicates of a live event are skipped."""
        if not self.should_spawn(last_event_time, now):
            return None
        template = self.draw_template(favor_positive)
        if template is None:
            return None
        if any(event.id == template.id and event.is_live(now) for event in active):
            logger.debug(f"Skipping duplicate event {template.id}")
            return None
        return self.spawn_event(template, now)
