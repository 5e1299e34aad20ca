"""Rate expression parsing and request pacing.

A rate expression is a positive integer followed by a unit suffix:
``s`` (per second), ``m`` (per minute) or ``h`` (per hour). ``"10s"`` means
ten requests per second, ``"90m"`` ninety requests per minute.

The pacer turns the expression into a fixed delay that a probe sleeps before
every request. The delay is computed with integer nanosecond division, so
rates that do not divide the interval evenly are truncated (``"7m"`` gives
8.571428571 seconds, not a repeating fraction).

Usage:
    pacer = parse_rate("10s")
    pacer.wait_time()  # 0.1
"""

from __future__ import annotations

import re
from dataclasses import dataclass

NANOSECONDS_PER_SECOND = 1_000_000_000

UNIT_INTERVALS_NS: dict[str, int] = {
    "s": NANOSECONDS_PER_SECOND,
    "m": 60 * NANOSECONDS_PER_SECOND,
    "h": 3600 * NANOSECONDS_PER_SECOND,
}

_COUNT_PATTERN = re.compile(r"[+-]?[0-9]+")


class InvalidRateError(ValueError):
    """Raised when a rate expression cannot be parsed."""

    def __init__(self, expression: object) -> None:
        self.expression = expression
        super().__init__(f"invalid rate: {expression}")


@dataclass(frozen=True)
class RatePacer:
    """Fixed inter-request delay derived from a rate expression.

    Attributes:
        limit: Number of requests allowed per interval.
        interval_ns: Interval length in nanoseconds.
    """

    limit: int
    interval_ns: int

    @property
    def interval(self) -> float:
        """Interval length in seconds."""
        return self.interval_ns / NANOSECONDS_PER_SECOND

    def wait_time_ns(self) -> int:
        """Delay before each request, in whole nanoseconds."""
        return self.interval_ns // self.limit

    def wait_time(self) -> float:
        """Delay before each request, in seconds."""
        return self.wait_time_ns() / NANOSECONDS_PER_SECOND


def parse_rate(expression: str) -> RatePacer:
    """Parse a rate expression into a pacer.

    Args:
        expression: Rate such as "10s", "100m" or "5000h".

    Returns:
        RatePacer for the expression.

    Raises:
        InvalidRateError: If the expression is shorter than two characters,
            has an unknown unit, or its count is not a positive integer.
    """
    if not isinstance(expression, str) or len(expression) < 2:
        raise InvalidRateError(expression)

    interval_ns = UNIT_INTERVALS_NS.get(expression[-1])
    if interval_ns is None:
        raise InvalidRateError(expression)

    count = expression[:-1]
    if not _COUNT_PATTERN.fullmatch(count):
        raise InvalidRateError(expression)

    limit = int(count)
    if limit <= 0:
        raise InvalidRateError(expression)

    return RatePacer(limit=limit, interval_ns=interval_ns)


__all__ = ["InvalidRateError", "RatePacer", "parse_rate"]
