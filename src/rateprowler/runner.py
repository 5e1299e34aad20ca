"""Concurrent execution of all probes plus the reporter.

One worker thread per endpoint runs that endpoint's probe to completion.
The reporter runs alongside on its own daemon thread and is stopped once
every probe has finished. Probes never coordinate with each other; a probe
that crashes is logged and does not affect the rest.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import TextIO

from rateprowler.logging import get_logger
from rateprowler.probe import (
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_TLS_HANDSHAKE_TIMEOUT,
    EndpointProbe,
    ProbeStatus,
)
from rateprowler.reporter import DEFAULT_REPORT_INTERVAL, Reporter
from rateprowler.sink import Sink
from rateprowler.types import EndpointSpec

logger = get_logger(__name__)


class ProbeRunner:
    """Runs every configured probe in parallel and reports on them.

    Attributes:
        probes: One probe per endpoint, in configuration order.
        reporter: Console reporter reading the probes' windows.
    """

    def __init__(
        self,
        endpoints: Sequence[EndpointSpec],
        sink: Sink,
        *,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        tls_handshake_timeout: float = DEFAULT_TLS_HANDSHAKE_TIMEOUT,
        report_interval: float = DEFAULT_REPORT_INTERVAL,
        stop_event: threading.Event | None = None,
        stream: TextIO | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            endpoints: Endpoints to probe.
            sink: Shared sink for error events and batches.
            request_timeout: Per-request timeout for every probe.
            tls_handshake_timeout: Connect/TLS handshake timeout for every probe.
            report_interval: Seconds between reporter lines.
            stop_event: Optional cooperative cancellation signal.
            stream: Reporter output stream (stdout when None).
        """
        self.stop_event = stop_event or threading.Event()
        self.probes = [
            EndpointProbe(
                spec,
                sink,
                request_timeout=request_timeout,
                tls_handshake_timeout=tls_handshake_timeout,
                stop_event=self.stop_event,
            )
            for spec in endpoints
        ]
        self.reporter = Reporter(
            [probe.window for probe in self.probes],
            interval=report_interval,
            stream=stream,
        )

    def request_stop(self) -> None:
        """Ask every probe to stop at its next suspension point."""
        self.stop_event.set()

    def run(self) -> dict[str, ProbeStatus]:
        """Run all probes and wait for each to use up its request budget.

        Returns:
            Final status of each probe, keyed by endpoint name. A repeated
            name is keyed as "name#position", position counting from 1.
        """
        if not self.probes:
            logger.warning("No endpoints configured, nothing to probe")
            return {}

        logger.info("Starting %d probes", len(self.probes))
        self.reporter.start()
        try:
            with ThreadPoolExecutor(
                max_workers=len(self.probes),
                thread_name_prefix="rateprowler-probe",
            ) as pool:
                futures = [(probe, pool.submit(probe.run)) for probe in self.probes]
                wait([future for _, future in futures])
        finally:
            self.reporter.stop()

        statuses: dict[str, ProbeStatus] = {}
        for position, (probe, future) in enumerate(futures, start=1):
            key = probe.spec.name
            if key in statuses:
                key = f"{key}#{position}"
            statuses[key] = self._collect(probe, future)
        return statuses

    @staticmethod
    def _collect(probe: EndpointProbe, future: Future[ProbeStatus]) -> ProbeStatus:
        try:
            return future.result()
        except Exception:
            logger.exception("Probe for %s crashed", probe.spec.name)
            return ProbeStatus.CRASHED


__all__ = ["ProbeRunner"]
