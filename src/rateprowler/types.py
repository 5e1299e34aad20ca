"""Shared value types for rateprowler.

This module holds the records that flow between the probes, the reporter and
the sink: the immutable endpoint description, the per-failure error event,
the per-recovery batch, and the response classification.

Usage:
    from rateprowler.types import Outcome, classify_status

    if classify_status(response.status_code) is Outcome.FAILURE:
        ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

# Classification bounds. The failure range is open on both ends, so 400
# itself is neither a success nor a failure.
SUCCESS_STATUS_MIN = 200
SUCCESS_STATUS_MAX = 300  # exclusive
FAILURE_STATUS_LOW = 400  # exclusive
FAILURE_STATUS_HIGH = 500  # exclusive


class ErrorKind(StrEnum):
    """Kind of failure recorded in an ErrorEvent.

    Values:
        TRANSPORT: The request never produced a response ("transport")
        HTTP: The response status fell in the client-error range ("http")
    """

    TRANSPORT = "transport"
    HTTP = "http"


class Outcome(StrEnum):
    """Classification of a single request."""

    SUCCESS = "success"
    FAILURE = "failure"
    UNCLASSIFIED = "unclassified"


def classify_status(status_code: int) -> Outcome:
    """Classify an HTTP response status.

    Args:
        status_code: Status code of a response that was received.

    Returns:
        SUCCESS for [200, 300), FAILURE for (400, 500), UNCLASSIFIED otherwise.
    """
    if FAILURE_STATUS_LOW < status_code < FAILURE_STATUS_HIGH:
        return Outcome.FAILURE
    if SUCCESS_STATUS_MIN <= status_code < SUCCESS_STATUS_MAX:
        return Outcome.SUCCESS
    return Outcome.UNCLASSIFIED


@dataclass(frozen=True)
class EndpointSpec:
    """One configured endpoint.

    Attributes:
        name: Human-readable endpoint name, used as the sink key.
        url: Target URL for the GET requests.
        rate: Rate expression such as "10s", "600m" or "3600h".
        max_requests: Total number of requests the probe issues.
        proxy: Optional HTTP/HTTPS proxy URL.
        error_wait_intervals: Escalating backoff waits in seconds.
    """

    name: str
    url: str
    rate: str
    max_requests: int
    proxy: str | None = None
    error_wait_intervals: tuple[float, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ErrorEvent:
    """A single failed request.

    Exactly one of ``status`` and ``error`` is set, depending on ``kind``.
    """

    endpoint: str
    kind: ErrorKind
    timestamp: float
    status: int | None = None
    error: str | None = None

    @property
    def detail(self) -> str:
        """Status code or error message, whichever applies."""
        if self.kind is ErrorKind.HTTP:
            return str(self.status)
        return self.error or ""


@dataclass(frozen=True)
class Batch:
    """Summary of one success run paired with the failure streak around it.

    Attributes:
        endpoint: Endpoint name.
        success_count: Successes since the previous batch, including the
            success that ended the streak.
        success_duration: Seconds from the start of the success run to the
            first failure of the streak.
        failure_count: Failures in the streak.
        failure_duration: Seconds from the first failure to the recovery.
        backoff_step: Backoff index at the moment the batch was built. This
            is read after the success reset, so it is 0 in practice.
        timestamp: Unix time the batch was built.
    """

    endpoint: str
    success_count: int
    success_duration: float
    failure_count: int
    failure_duration: float
    backoff_step: int
    timestamp: float
