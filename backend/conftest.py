"""Shared fixtures: a manual clock, a scripted RNG and small catalogs."""

import pytest

from catalog import BusinessTemplate, Catalog
from economy import GameStateStore
from entities import BusinessCategory
from persistence import MemorySaveStore


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubRng:
    """Stands in for numpy's Generator: random() cycles a script, normal() is fixed."""

    def __init__(self, randoms=(0.5,), normal=0.0):
        self.randoms = list(randoms)
        self.calls = 0
        self.normal_value = normal

    def random(self) -> float:
        value = self.randoms[self.calls % len(self.randoms)]
        self.calls += 1
        return value

    def normal(self, loc=0.0, scale=1.0) -> float:
        return self.normal_value

    def choice(self, a, p=None) -> int:
        # Inverse CDF over the next scripted roll
        weights = list(p) if p is not None else [1.0 / a] * a
        roll = self.random()
        cumulative = 0.0
        for idx, weight in enumerate(weights):
            cumulative += weight
            if roll < cumulative:
                return idx
        return len(weights) - 1


# One real-estate-services business earning exactly 3600/h net at level 1
# (no category add-ons: costs are 25% of revenue).
FLAT_CATALOG = Catalog(
    businesses=(BusinessTemplate("x1", "Flat Earner", BusinessCategory.REAL_ESTATE_SERVICES, 4800, 100),),
    properties=(),
    luxury_items=(),
    stocks=(),
    achievements=(),
    goals=(),
    multipliers=(),
)

# Full catalog minus rewards, so cash checks are not disturbed by unlocks.
QUIET_CATALOG = Catalog(achievements=(), goals=())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def stub_rng():
    return StubRng


@pytest.fixture
def make_store(clock):
    def _make(catalog=QUIET_CATALOG, rng=None, save_store=None, config=None, **kwargs):
        options = {"catalog": catalog, "rng": rng or StubRng(), "clock": clock}
        if config is not None:
            options["config"] = config
        options["save_store"] = save_store if save_store is not None else MemorySaveStore()
        options.update(kwargs)
        return GameStateStore(**options)
    return _make


@pytest.fixture
def flat_catalog():
    return FLAT_CATALOG
