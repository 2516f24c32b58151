"""
Tick schedulers for the cyber-range simulator.

The orchestrator never owns a timer directly. It asks a scheduler to call
its tick function every ``interval_ms`` and cancels that request on pause
or reset. Two schedulers exist:

- VirtualScheduler: fires callbacks only when the caller advances it.
  Tests and headless runs drive ticks synchronously with it.
- WallClockScheduler: a blocking loop that sleeps between fires, for
  watching a run unfold in real time.

Both advance the shared SimulationClock, so event timestamps follow
simulated time rather than the host clock.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable

from cyberrange.engine.clock import SimulationClock

logger = logging.getLogger(__name__)

TickCallback = Callable[[], None]


class Scheduler(ABC):
    """
    Base scheduler: one repeating callback at a fixed interval.
    """

    def __init__(self, clock: SimulationClock) -> None:
        self.clock = clock
        self._callback: TickCallback | None = None
        self._interval_ms: float = 0.0
        self._next_fire: float = 0.0

    @property
    def active(self) -> bool:
        return self._callback is not None

    @property
    def interval_ms(self) -> float:
        return self._interval_ms

    def start(self, interval_ms: float, callback: TickCallback) -> None:
        """
        Begin calling ``callback`` every ``interval_ms``.

        Starting an already active scheduler replaces the previous
        request, so the interval can change without losing the clock
        position.
        """
        if interval_ms <= 0:
            raise ValueError(f"Scheduler interval must be positive, got {interval_ms}")
        self._callback = callback
        self._interval_ms = float(interval_ms)
        self._next_fire = self.clock.now() + self._interval_ms
        logger.debug("Scheduler started at %.1f ms interval", self._interval_ms)

    def cancel(self) -> None:
        if self._callback is not None:
            logger.debug("Scheduler cancelled at t=%d ms", self.clock.now())
        self._callback = None

    @abstractmethod
    def run(self) -> int:
        """
        Fire callbacks until cancelled. Returns the number of fires.
        """

    def _fire(self) -> None:
        callback = self._callback
        if callback is None:
            return
        self.clock.advance_to(self._next_fire)
        self._next_fire += self._interval_ms
        callback()


class VirtualScheduler(Scheduler):
    """
    Scheduler driven entirely by the caller.

    Nothing happens until ``advance`` or ``step`` is called. A callback may
    cancel the scheduler mid-advance; no further fires happen after that.
    """

    def advance(self, duration_ms: float) -> int:
        """
        Move simulated time forward, firing every callback that falls due.

        Returns the number of callbacks fired.
        """
        deadline = self.clock.now() + duration_ms
        fired = 0
        while self.active and self._next_fire <= deadline:
            self._fire()
            fired += 1
        if deadline > self.clock.now():
            self.clock.advance_to(deadline)
        return fired

    def step(self, count: int = 1) -> int:
        """
        Fire the next ``count`` callbacks, jumping the clock to each.
        """
        fired = 0
        while self.active and fired < count:
            self._fire()
            fired += 1
        return fired

    def run_until_idle(self, max_fires: int = 1_000_000) -> int:
        """
        Fire callbacks until the scheduler is cancelled.

        ``max_fires`` guards against a callback that never cancels.
        """
        fired = 0
        while self.active:
            if fired >= max_fires:
                raise RuntimeError(f"Scheduler still active after {max_fires} fires")
            self._fire()
            fired += 1
        return fired

    def run(self) -> int:
        return self.run_until_idle()


class WallClockScheduler(Scheduler):
    """
    Scheduler that sleeps in the calling thread between fires.

    ``run`` blocks until a callback cancels the scheduler (for example when
    the simulation completes or is paused).
    """

    def __init__(self, clock: SimulationClock, sleep: Callable[[float], None] = time.sleep) -> None:
        super().__init__(clock)
        self._sleep = sleep

    def run(self) -> int:
        fired = 0
        while self.active:
            self._sleep(self._interval_ms / 1000.0)
            self._fire()
            fired += 1
        return fired
