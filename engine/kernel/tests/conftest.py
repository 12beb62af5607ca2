"""
Engine kernel test configuration.

Every kernel test runs on a FakeClock so phase timing is exact. The start
time and the default step (0.125 s) are both exactly representable, so
elapsed-time comparisons at phase boundaries never drift.
"""

import pytest

from engine.kernel.kernel import Kernel
from engine.kernel.types import Observation

T0 = 1_700_000_000.0
STEP = 0.125


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = T0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kernel(clock):
    k = Kernel(clock=clock)
    k.init()
    yield k
    k.dispose()


@pytest.fixture
def drive(kernel, clock):
    """
    drive(seconds, dt=STEP, **observation_fields)

    Advance the clock and tick the kernel in dt steps for `seconds`.
    """

    def _drive(seconds, dt=STEP, **obs_fields):
        steps = round(seconds / dt)
        for _ in range(steps):
            clock.advance(dt)
            kernel.tick(dt, Observation(timestamp=clock(), delta_time=dt, **obs_fields))

    return _drive
