"""Application entry point for rateprowler."""

from __future__ import annotations

from rateprowler.bootstrap import BootstrapContext, bootstrap
from rateprowler.cli import parse_args
from rateprowler.logging import get_logger
from rateprowler.probe import ProbeStatus
from rateprowler.runner import ProbeRunner
from rateprowler.shutdown import create_shutdown_handler

logger = get_logger(__name__)


def run_application(context: BootstrapContext) -> int:
    """Run every probe to completion.

    Args:
        context: Bootstrap context with settings, endpoints and sink.

    Returns:
        Exit code: 0 once all probes have finished.
    """
    settings = context.settings
    shutdown = create_shutdown_handler()
    runner = ProbeRunner(
        context.endpoints,
        context.sink,
        request_timeout=settings.request_timeout,
        tls_handshake_timeout=settings.tls_handshake_timeout,
        report_interval=settings.report_interval,
        stop_event=shutdown.stop_event,
    )

    with context.sink:
        statuses = runner.run()

    completed = sum(1 for status in statuses.values() if status is ProbeStatus.COMPLETED)
    logger.info("Finished: %d/%d probes completed their budget", completed, len(statuses))
    for name, status in statuses.items():
        if status is not ProbeStatus.COMPLETED:
            logger.warning("Probe %s ended with status %s", name, status.value)
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point.

    Args:
        args: Optional list of command-line arguments.

    Returns:
        Exit code for the application.
    """
    parsed = parse_args(args)

    context = bootstrap(parsed)
    if context is None:
        return 1

    return run_application(context)


__all__ = ["main", "run_application"]
