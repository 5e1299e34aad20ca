"""Per-endpoint probe: the paced request loop.

A probe drives one endpoint until it has issued ``max_requests`` requests.
Each iteration:

1. Sleeps the pacer's fixed delay.
2. Issues one GET through an httpx client (proxy and timeouts applied).
3. Classifies the outcome:
   - transport error, or status in (400, 500): failure
   - status in [200, 300): success
   - anything else: unclassified, counted against the budget only
4. On failure, records an ErrorEvent, sleeps the backoff wait and counts the
   error. On success, counts it, refreshes requests-per-second, restarts the
   backoff and, if a failure streak was open, emits a Batch.

Probes share nothing with each other. The optional stop event is checked at
every suspension point so a run can be cancelled cooperatively.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from enum import StrEnum
from typing import Any

import httpx

from rateprowler.backoff import BackoffState
from rateprowler.logging import ContextAdapter, get_logger
from rateprowler.rate import InvalidRateError, RatePacer, parse_rate
from rateprowler.sink import Sink, SinkError
from rateprowler.types import Batch, EndpointSpec, ErrorEvent, ErrorKind, Outcome, classify_status
from rateprowler.window import ObservationWindow

logger = get_logger(__name__)

# Fixed per-request timeout (seconds)
DEFAULT_REQUEST_TIMEOUT = 5.0
# Connect timeout, which bounds the TCP connect and TLS handshake (seconds)
DEFAULT_TLS_HANDSHAKE_TIMEOUT = 10.0

ALLOWED_PROXY_SCHEMES = frozenset({"http", "https"})


class ProxyConfigError(ValueError):
    """Raised when an endpoint's proxy URL is malformed."""

    pass


class ProbeStatus(StrEnum):
    """How a probe run ended."""

    COMPLETED = "completed"  # Request budget used up
    CONFIG_ERROR = "config_error"  # Rate or proxy invalid, no request sent
    CANCELLED = "cancelled"  # Stop event set
    CRASHED = "crashed"  # Unexpected exception escaped the loop


def parse_proxy(proxy: str) -> httpx.URL:
    """Validate a proxy URL.

    Args:
        proxy: Proxy URL such as "http://127.0.0.1:8080".

    Returns:
        Parsed proxy URL.

    Raises:
        ProxyConfigError: If the URL cannot be parsed, lacks a host, or is not
            an HTTP/HTTPS proxy.
    """
    try:
        url = httpx.URL(proxy)
    except (httpx.InvalidURL, TypeError) as e:
        raise ProxyConfigError(f"invalid proxy URL {proxy!r}: {e}") from e
    if url.scheme not in ALLOWED_PROXY_SCHEMES:
        raise ProxyConfigError(f"unsupported proxy scheme in {proxy!r}")
    if not url.host:
        raise ProxyConfigError(f"proxy URL {proxy!r} has no host")
    return url


class EndpointProbe:
    """Paced request loop for a single endpoint.

    The probe is the only writer of its ObservationWindow and the only user
    of its BackoffState. Both are exposed so the reporter and tests can read
    them.

    Attributes:
        spec: The endpoint being probed.
        window: Live counters for the reporter.
        backoff: Escalating wait sequencer.
    """

    def __init__(
        self,
        spec: EndpointSpec,
        sink: Sink,
        *,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        tls_handshake_timeout: float = DEFAULT_TLS_HANDSHAKE_TIMEOUT,
        stop_event: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        sleep: Callable[[float], bool] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the probe.

        Args:
            spec: Endpoint to probe.
            sink: Destination for error events and batches.
            request_timeout: Fixed timeout applied to every request.
            tls_handshake_timeout: Connect/TLS handshake timeout.
            stop_event: Optional cooperative cancellation signal.
            clock: Monotonic clock used for all durations.
            wall_clock: Clock used for event timestamps.
            sleep: Sleep function returning True if the wait was cut short by
                cancellation. Defaults to waiting on the stop event.
            transport: Optional httpx transport, mainly for tests.
        """
        self.spec = spec
        self.sink = sink
        self.request_timeout = request_timeout
        self.tls_handshake_timeout = tls_handshake_timeout
        self.window = ObservationWindow(endpoint=spec.name, url=spec.url)
        self.backoff = BackoffState(spec.error_wait_intervals)

        self._stop_event = stop_event or threading.Event()
        self._clock = clock
        self._wall_clock = wall_clock
        self._sleep = sleep or self._stop_event.wait
        self._transport = transport
        self._log: ContextAdapter = logger.with_context(endpoint=spec.name, url=spec.url)

        # Streak bookkeeping; None means no failure streak is open
        self._started_at = 0.0
        self._success_run_started_at = 0.0
        self._streak_started_at: float | None = None
        self._success_duration = 0.0

    def build_client(self) -> httpx.Client:
        """Create the HTTP client for this endpoint.

        Raises:
            ProxyConfigError: If the configured proxy URL is invalid.
        """
        kwargs: dict[str, Any] = {
            "timeout": httpx.Timeout(self.request_timeout, connect=self.tls_handshake_timeout),
            "follow_redirects": True,
            # Only the configured proxy applies; ignore HTTP(S)_PROXY and .netrc
            "trust_env": False,
        }
        if self.spec.proxy:
            kwargs["proxy"] = parse_proxy(self.spec.proxy)
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.Client(**kwargs)

    def run(self) -> ProbeStatus:
        """Run the probe until its request budget is used up.

        Configuration problems are logged and end the probe before any
        request is sent. They never raise.

        Returns:
            How the run ended.
        """
        try:
            client = self.build_client()
        except ProxyConfigError as e:
            self._log.error("Error parsing proxy %s: %s", self.spec.proxy, e)
            return ProbeStatus.CONFIG_ERROR

        with client:
            try:
                pacer = parse_rate(self.spec.rate)
            except InvalidRateError as e:
                self._log.error("Error parsing rate value for endpoint %s: %s", self.spec.rate, e)
                return ProbeStatus.CONFIG_ERROR

            self._log.info(
                "Probe started: %d requests at one every %.3fs",
                self.spec.max_requests,
                pacer.wait_time(),
            )
            status = self._loop(client, pacer)

        snapshot = self.window.snapshot()
        self._log.info(
            "Probe %s after %d requests: %d successful, %d errors, %.2f requests/s",
            status.value,
            snapshot.requests,
            snapshot.successes,
            snapshot.errors,
            snapshot.requests_per_second,
        )
        return status

    def _loop(self, client: httpx.Client, pacer: RatePacer) -> ProbeStatus:
        self._started_at = self._clock()
        self._success_run_started_at = self._started_at
        request_count = 0

        while request_count < self.spec.max_requests:
            if self._pause(pacer.wait_time()) or self._stop_event.is_set():
                return ProbeStatus.CANCELLED

            outcome, event = self._send(client)
            cancelled = False
            if outcome is Outcome.FAILURE and event is not None:
                cancelled = self._handle_failure(event, request_count)
            elif outcome is Outcome.SUCCESS:
                self._handle_success()

            request_count += 1
            self.window.record_request()
            if cancelled:
                return ProbeStatus.CANCELLED

        return ProbeStatus.COMPLETED

    def _send(self, client: httpx.Client) -> tuple[Outcome, ErrorEvent | None]:
        """Issue one GET and classify it."""
        try:
            response = client.get(self.spec.url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return Outcome.FAILURE, ErrorEvent(
                endpoint=self.spec.name,
                kind=ErrorKind.TRANSPORT,
                timestamp=self._wall_clock(),
                error=str(e) or type(e).__name__,
            )

        outcome = classify_status(response.status_code)
        if outcome is Outcome.FAILURE:
            return outcome, ErrorEvent(
                endpoint=self.spec.name,
                kind=ErrorKind.HTTP,
                timestamp=self._wall_clock(),
                status=response.status_code,
            )
        return outcome, None

    def _handle_failure(self, event: ErrorEvent, request_count: int) -> bool:
        """Record a failure and sleep the backoff wait.

        Returns:
            True if the backoff sleep was interrupted by cancellation.
        """
        self._emit(self.sink.record_error, event)

        if request_count == 0:
            self._log.warning("Error on first request to endpoint: %s", event.detail)

        now = self._clock()
        if self._streak_started_at is None:
            self._streak_started_at = now
            self._success_duration = now - self._success_run_started_at

        wait = self.backoff.on_failure()
        self._log.debug(
            "Request failed (%s %s), sleeping %.2fs",
            event.kind.value,
            event.detail,
            wait,
            extra={"wait_seconds": wait, "backoff_step": self.backoff.wait_index},
        )

        self.window.begin_sleep(wait)
        cancelled = self._pause(wait)
        self.window.end_sleep()

        self.window.record_failure()
        return cancelled

    def _handle_success(self) -> None:
        self.window.record_success()
        self.window.update_rate(self._clock() - self._started_at)
        self.backoff.on_success()

        if self._streak_started_at is None:
            return

        now = self._clock()
        streak_duration = now - self._streak_started_at
        successes, failures = self.window.close_streak(streak_duration)
        batch = Batch(
            endpoint=self.spec.name,
            success_count=successes,
            success_duration=self._success_duration,
            failure_count=failures,
            failure_duration=streak_duration,
            # Read after on_success() has already reset the index
            backoff_step=self.backoff.wait_index,
            timestamp=self._wall_clock(),
        )
        self._streak_started_at = None
        self._success_run_started_at = now

        self._log.info(
            "Recovered after %d failures over %.2fs (%d successes before)",
            failures,
            streak_duration,
            successes,
        )
        self._emit(self.sink.record_batch, batch)

    def _emit(self, record: Callable[[Any], None], item: ErrorEvent | Batch) -> None:
        """Hand an item to the sink without letting sink failures escape."""
        try:
            record(item)
        except SinkError as e:
            self._log.error("Failed to record %s: %s", type(item).__name__, e)
        except Exception as e:
            # A sink must never stop a probe; unexpected errors are logged with traceback
            self._log.exception("Unexpected sink error recording %s: %s", type(item).__name__, e)

    def _pause(self, seconds: float) -> bool:
        """Sleep unless cancelled.

        Returns:
            True if the probe has been asked to stop.
        """
        if seconds <= 0:
            return self._stop_event.is_set()
        return self._sleep(seconds)


__all__ = [
    "DEFAULT_REQUEST_TIMEOUT",
    "DEFAULT_TLS_HANDSHAKE_TIMEOUT",
    "EndpointProbe",
    "ProbeStatus",
    "ProxyConfigError",
    "parse_proxy",
]
