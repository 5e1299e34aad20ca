"""Per-endpoint observation counters shared between a probe and the reporter.

Each ObservationWindow has exactly one writer, the probe for its endpoint.
The reporter only ever calls ``snapshot()``. Mutations and snapshots take a
short internal lock so that a snapshot never observes a half-written value;
the reporter may still see a success count whose requests-per-second has not
been recomputed yet, because the probe updates them in separate calls.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field


@dataclass(frozen=True)
class WindowSnapshot:
    """Point-in-time copy of an ObservationWindow for rendering."""

    endpoint: str
    url: str
    requests: int
    successes: int
    errors: int
    requests_per_second: float
    sleeping: bool
    backoff_wait: float
    last_streak_duration: float


@dataclass
class ObservationWindow:
    """Running counters for one endpoint.

    Attributes:
        endpoint: Endpoint name.
        url: Endpoint URL.
        requests: Requests issued so far, classified or not.
        successes: Cumulative successful requests.
        errors: Cumulative failed requests.
        requests_per_second: Successes divided by seconds since probe start.
        sleeping: True while the probe sleeps after a failure.
        backoff_wait: Wait most recently returned by the backoff sequencer.
        last_streak_duration: Seconds spanned by the last completed error streak.
        streak_successes: Successes since the last batch.
        streak_errors: Failures since the last batch.
    """

    endpoint: str
    url: str
    requests: int = 0
    successes: int = 0
    errors: int = 0
    requests_per_second: float = 0.0
    sleeping: bool = False
    backoff_wait: float = 0.0
    last_streak_duration: float = 0.0
    streak_successes: int = 0
    streak_errors: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_request(self) -> None:
        """Count one issued request against the budget."""
        with self._lock:
            self.requests += 1

    def record_success(self) -> None:
        """Count one successful request."""
        with self._lock:
            self.successes += 1
            self.streak_successes += 1

    def update_rate(self, elapsed: float) -> None:
        """Recompute requests-per-second from the success count.

        Args:
            elapsed: Seconds since the probe started. Non-positive values
                leave the previous rate in place.
        """
        with self._lock:
            if elapsed > 0:
                self.requests_per_second = self.successes / elapsed

    def record_failure(self) -> None:
        """Count one failed request."""
        with self._lock:
            self.errors += 1
            self.streak_errors += 1

    def begin_sleep(self, wait: float) -> None:
        """Mark the probe as sleeping for ``wait`` seconds after a failure."""
        with self._lock:
            self.sleeping = True
            self.backoff_wait = wait

    def end_sleep(self) -> None:
        with self._lock:
            self.sleeping = False

    def close_streak(self, duration: float) -> tuple[int, int]:
        """Finish the current error streak and reset the streak counters.

        Args:
            duration: Seconds from the first failure of the streak to recovery.

        Returns:
            Tuple of (streak_successes, streak_errors) before the reset.
        """
        with self._lock:
            counts = (self.streak_successes, self.streak_errors)
            self.last_streak_duration = duration
            self.streak_successes = 0
            self.streak_errors = 0
            return counts

    def snapshot(self) -> WindowSnapshot:
        """Copy the current counters for the reporter."""
        with self._lock:
            return WindowSnapshot(
                endpoint=self.endpoint,
                url=self.url,
                requests=self.requests,
                successes=self.successes,
                errors=self.errors,
                requests_per_second=self.requests_per_second,
                sleeping=self.sleeping,
                backoff_wait=self.backoff_wait,
                last_streak_duration=self.last_streak_duration,
            )


__all__ = ["ObservationWindow", "WindowSnapshot"]
