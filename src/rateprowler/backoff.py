"""Escalating backoff across consecutive failures."""

from __future__ import annotations

from collections.abc import Sequence


class BackoffState:
    """Cursor into a fixed sequence of escalating wait intervals.

    Each failure advances the cursor by one step until the sequence is
    exhausted, after which the last reached wait repeats. A success moves the
    cursor back to the start but leaves ``current_wait`` alone; the next
    failure recomputes it from the first step.

    Attributes:
        intervals: Wait durations in seconds, in escalation order.
        wait_index: Index of the step the next failure will use.
        current_wait: Wait returned by the most recent escalating failure.
    """

    def __init__(self, intervals: Sequence[float]) -> None:
        self.intervals: tuple[float, ...] = tuple(intervals)
        self.wait_index = 0
        self.current_wait: float = 0.0

    @property
    def saturated(self) -> bool:
        """Whether every escalation step has been used."""
        return self.wait_index >= len(self.intervals)

    def on_failure(self) -> float:
        """Advance one step and return the wait to apply after this failure."""
        if self.wait_index < len(self.intervals):
            self.current_wait = self.intervals[self.wait_index]
            self.wait_index += 1
        return self.current_wait

    def on_success(self) -> None:
        """Restart escalation from the first step."""
        if self.wait_index > 0:
            self.wait_index = 0

    def __repr__(self) -> str:
        return (
            f"BackoffState(intervals={self.intervals!r}, wait_index={self.wait_index}, "
            f"current_wait={self.current_wait})"
        )


__all__ = ["BackoffState"]
