"""
Simulation clock for the cyber-range simulator.

This clock exists to decouple tick execution from wall-clock time. A run
advances deterministically, regardless of how fast or slow the host
system happens to be, and every event timestamp is derived from it.

The clock does not sleep. It does not wait. It merely records and
advances simulated time.
"""

# 2024-01-01T00:00:00Z, so timestamps look like real epoch milliseconds.
DEFAULT_EPOCH_MS = 1_704_067_200_000


class SimulationClock:
    """
    A minimal simulated clock.

    Time is represented as integer milliseconds since the start of the
    run. ``timestamp()`` adds the configured epoch for event records.
    """

    def __init__(self, epoch_ms: int = DEFAULT_EPOCH_MS) -> None:
        self.epoch_ms = epoch_ms
        self._current_time: int = 0

    def now(self) -> int:
        """
        Return the elapsed simulated time in milliseconds.
        """
        return self._current_time

    def timestamp(self) -> int:
        """
        Return the current simulated time as epoch milliseconds.
        """
        return self.epoch_ms + self._current_time

    def advance_to(self, target_time: int | float) -> None:
        """
        Advance the clock to the specified elapsed time.

        The clock may only move forwards. Attempting to move backwards is
        treated as a scheduling error.
        """
        target = int(target_time)

        if target < self._current_time:
            raise ValueError(
                f"Cannot move clock backwards from {self._current_time} to {target}"
            )

        self._current_time = target

    def advance_by(self, delta: int | float) -> None:
        self.advance_to(self._current_time + delta)

    def reset(self) -> None:
        """
        Reset the clock to time zero.
        """
        self._current_time = 0
