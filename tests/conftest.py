"""Shared pytest fixtures for rateprowler tests.

FakeClock Usage
===============

Probes take a monotonic clock, a wall clock and a sleep function. Passing
the three methods of one FakeClock makes every duration deterministic::

    def test_example(fake_clock):
        probe = EndpointProbe(
            spec,
            sink,
            clock=fake_clock.monotonic,
            wall_clock=fake_clock.time,
            sleep=fake_clock.sleep,
        )

``sleep`` advances the clock instead of blocking and records each wait in
``fake_clock.sleeps``.
"""

from __future__ import annotations

import io
import threading

import pytest

from rateprowler.sink import MemorySink
from rateprowler.types import EndpointSpec


class FakeClock:
    """Deterministic clock whose sleeps advance time instantly."""

    # Unix time the wall clock starts at (2026-01-01 00:00:00 UTC)
    WALL_EPOCH = 1767225600.0

    def __init__(self, stop_event: threading.Event | None = None) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []
        self.stop_event = stop_event

    def monotonic(self) -> float:
        return self.now

    def time(self) -> float:
        return self.WALL_EPOCH + self.now

    def sleep(self, seconds: float) -> bool:
        self.sleeps.append(seconds)
        self.now += seconds
        return self.stop_event.is_set() if self.stop_event is not None else False

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a fresh FakeClock."""
    return FakeClock()


@pytest.fixture
def memory_sink() -> MemorySink:
    """Provide an empty in-memory sink."""
    return MemorySink()


@pytest.fixture
def output() -> io.StringIO:
    """Provide a stream to capture reporter output."""
    return io.StringIO()


@pytest.fixture
def make_spec():
    """Factory for EndpointSpec with test-friendly defaults."""

    def _make_spec(
        name: str = "api",
        url: str = "https://api.example.com/ping",
        rate: str = "1s",
        max_requests: int = 5,
        proxy: str | None = None,
        error_wait_intervals: tuple[float, ...] = (1, 2, 5),
    ) -> EndpointSpec:
        return EndpointSpec(
            name=name,
            url=url,
            rate=rate,
            max_requests=max_requests,
            proxy=proxy,
            error_wait_intervals=error_wait_intervals,
        )

    return _make_spec
