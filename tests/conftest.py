import pytest

from luckspin.animator import SpinAnimator
from luckspin.models import Sector


class ManualScheduler:
    """Collects scheduled completions so a test decides when the wheel stops."""

    def __init__(self):
        self.pending = []

    def __call__(self, delay, callback):
        self.pending.append((delay, callback))

    def run_all(self):
        while self.pending:
            _, callback = self.pending.pop(0)
            callback()


class StubRandom:
    """Fixed draw value and jitter choice ('low', 'high' or 'zero')."""

    def __init__(self, value=0.5, jitter='zero'):
        self.value = value
        self.jitter = jitter
        self.calls = 0

    def random(self):
        self.calls += 1
        return self.value

    def uniform(self, a, b):
        return {'low': a, 'high': b, 'zero': 0.0}[self.jitter]

    def choice(self, seq):
        return seq[0]


class ExplodingRandom:
    def random(self):
        raise AssertionError("random source must not be used")

    def uniform(self, a, b):
        raise AssertionError("random source must not be used")


def make_sectors(weights):
    return [Sector(id=str(i), name=f"Prize {i}", weight=w) for i, w in enumerate(weights)]


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def animator(scheduler):
    return SpinAnimator(rng=StubRandom(), scheduler=scheduler)
