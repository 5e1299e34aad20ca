"""Periodic console report of every probe's observation window.

The reporter runs on its own daemon thread, wakes once per interval and
prints one line per endpoint. It only reads window snapshots; it never
touches probe state.

Line format:
    [2026-01-02 15:04:05] https://api.example.com/ping: 120 successful, 3 errors,
    9.87 requests/s, sleeping: false, backoff wait: 2s, last streak: 7.25s
"""

from __future__ import annotations

import sys
import threading
import time
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import TextIO

from rateprowler.logging import get_logger
from rateprowler.window import ObservationWindow, WindowSnapshot

logger = get_logger(__name__)

DEFAULT_REPORT_INTERVAL = 1.0
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_duration(seconds: float) -> str:
    """Render seconds compactly, e.g. 0.5 -> "500ms", 90 -> "1m30s"."""
    if seconds <= 0:
        return "0s"
    if seconds < 1:
        return f"{seconds * 1000:g}ms"
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(int(minutes), 60)
    secs_text = f"{round(secs, 3):g}s"
    if hours:
        return f"{hours}h{minutes}m{secs_text}"
    if minutes:
        return f"{minutes}m{secs_text}"
    return secs_text


def render_line(snapshot: WindowSnapshot, now: float) -> str:
    """Render one report line for an endpoint.

    Args:
        snapshot: Window snapshot to render.
        now: Unix timestamp printed at the start of the line.

    Returns:
        The formatted line without a trailing newline.
    """
    timestamp = datetime.fromtimestamp(now).strftime(TIMESTAMP_FORMAT)
    return (
        f"[{timestamp}] {snapshot.url}: "
        f"{snapshot.successes} successful, "
        f"{snapshot.errors} errors, "
        f"{snapshot.requests_per_second:.2f} requests/s, "
        f"sleeping: {str(snapshot.sleeping).lower()}, "
        f"backoff wait: {format_duration(snapshot.backoff_wait)}, "
        f"last streak: {format_duration(snapshot.last_streak_duration)}"
    )


class Reporter:
    """Prints a snapshot of every observation window once per interval.

    Usage:
        reporter = Reporter([probe.window for probe in probes])
        reporter.start()
        ...
        reporter.stop()
    """

    def __init__(
        self,
        windows: Sequence[ObservationWindow],
        interval: float = DEFAULT_REPORT_INTERVAL,
        stream: TextIO | None = None,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the reporter.

        Args:
            windows: Windows to report, in display order.
            interval: Seconds between reports.
            stream: Output stream. Defaults to stdout at write time.
            wall_clock: Clock for the line timestamps.
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.windows = list(windows)
        self.interval = interval
        self._stream = stream
        self._wall_clock = wall_clock
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def report_once(self) -> list[str]:
        """Render and print one line per window.

        Returns:
            The lines that were printed.
        """
        now = self._wall_clock()
        lines = [render_line(window.snapshot(), now) for window in self.windows]
        stream = self._stream or sys.stdout
        for line in lines:
            print(line, file=stream)
        stream.flush()
        return lines

    def run(self) -> None:
        """Report every interval until stopped."""
        while not self._stopped.wait(self.interval):
            self.report_once()

    def start(self) -> None:
        """Start reporting on a daemon thread."""
        if self.is_running:
            logger.warning("Reporter already running")
            return
        self._stopped.clear()
        self._thread = threading.Thread(target=self.run, name="rateprowler-reporter", daemon=True)
        self._thread.start()
        logger.debug("Reporter started with %.2fs interval", self.interval)

    def stop(self, final_report: bool = True) -> None:
        """Stop the reporting loop.

        Args:
            final_report: Print one last report after the loop has stopped.
        """
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval + 1.0)
            self._thread = None
        if final_report:
            self.report_once()


__all__ = ["DEFAULT_REPORT_INTERVAL", "Reporter", "format_duration", "render_line"]
