"""Signal-driven cooperative cancellation.

Probes and the reporter watch a shared ``threading.Event``. The handler in
this module sets that event on SIGINT (Ctrl+C) or SIGTERM, so every probe
stops at its next pacing sleep, backoff sleep, or before its next request.
"""

from __future__ import annotations

import signal
import threading
from types import FrameType

from rateprowler.logging import get_logger

logger = get_logger(__name__)


class ShutdownHandler:
    """Translates termination signals into a stop event."""

    def __init__(self, stop_event: threading.Event | None = None) -> None:
        """Initialize the shutdown handler.

        Args:
            stop_event: Event to set when shutdown is requested. A new event
                is created when omitted.
        """
        self.stop_event = stop_event or threading.Event()

    @property
    def shutdown_requested(self) -> bool:
        """Check if shutdown has been requested."""
        return self.stop_event.is_set()

    def request_shutdown(self) -> None:
        """Request cooperative shutdown of all probes."""
        logger.info("Shutdown requested, probes will stop at their next suspension point")
        self.stop_event.set()

    def handle_signal(self, signum: int, frame: FrameType | None) -> None:
        """Handle SIGINT and SIGTERM.

        Args:
            signum: The signal number received.
            frame: The current stack frame (unused).
        """
        signal_name = signal.Signals(signum).name
        logger.info("Received %s", signal_name)
        self.request_shutdown()

    def install_signal_handlers(self) -> None:
        """Install signal handlers for SIGINT and SIGTERM."""
        signal.signal(signal.SIGINT, self.handle_signal)
        signal.signal(signal.SIGTERM, self.handle_signal)
        logger.debug("Signal handlers installed for SIGINT and SIGTERM")


def create_shutdown_handler(stop_event: threading.Event | None = None) -> ShutdownHandler:
    """Create a ShutdownHandler and install its signal handlers.

    Args:
        stop_event: Event to set on shutdown.

    Returns:
        Configured ShutdownHandler with signal handlers installed.
    """
    handler = ShutdownHandler(stop_event)
    handler.install_signal_handlers()
    return handler


__all__ = [
    "ShutdownHandler",
    "create_shutdown_handler",
]
