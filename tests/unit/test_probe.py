"""Tests for the endpoint probe state machine."""

from __future__ import annotations

import logging
import threading
from unittest.mock import MagicMock

import httpx
import pytest
import respx

from rateprowler.probe import (
    EndpointProbe,
    ProbeStatus,
    ProxyConfigError,
    parse_proxy,
)
from rateprowler.sink import MemorySink, Sink, SinkError
from rateprowler.types import ErrorKind

URL = "https://api.example.com/ping"


def _probe(spec, sink, clock, **kwargs) -> EndpointProbe:
    return EndpointProbe(
        spec,
        sink,
        clock=clock.monotonic,
        wall_clock=clock.time,
        sleep=clock.sleep,
        **kwargs,
    )


def _responses(*statuses: int) -> list[httpx.Response]:
    return [httpx.Response(status) for status in statuses]


class TestParseProxy:
    """Tests for parse_proxy."""

    @pytest.mark.parametrize("proxy", ["http://127.0.0.1:8080", "https://proxy.example.com"])
    def test_valid_proxy(self, proxy: str) -> None:
        assert parse_proxy(proxy).host

    @pytest.mark.parametrize("proxy", ["ftp://proxy.example.com", "http://", "not a proxy"])
    def test_invalid_proxy(self, proxy: str) -> None:
        with pytest.raises(ProxyConfigError):
            parse_proxy(proxy)


class TestProbeClassification:
    """Tests for how responses drive counters."""

    @respx.mock
    def test_all_successes(self, make_spec, memory_sink, fake_clock) -> None:
        route = respx.get(URL).mock(side_effect=_responses(200, 201, 204))
        probe = _probe(make_spec(max_requests=3), memory_sink, fake_clock)

        assert probe.run() is ProbeStatus.COMPLETED

        assert route.call_count == 3
        snapshot = probe.window.snapshot()
        assert snapshot.successes == 3
        assert snapshot.errors == 0
        assert snapshot.requests == 3
        # Pacing sleep before every request, including the first
        assert fake_clock.sleeps == [1.0, 1.0, 1.0]
        assert memory_sink.errors == []
        assert memory_sink.batches == []

    @respx.mock
    def test_status_400_is_unclassified_but_consumes_budget(
        self, make_spec, memory_sink, fake_clock
    ) -> None:
        respx.get(URL).mock(side_effect=_responses(400, 200))
        probe = _probe(make_spec(max_requests=2), memory_sink, fake_clock)

        probe.run()

        snapshot = probe.window.snapshot()
        assert snapshot.requests == 2
        assert snapshot.successes == 1
        assert snapshot.errors == 0
        assert memory_sink.errors == []
        assert probe.backoff.wait_index == 0
        assert fake_clock.sleeps == [1.0, 1.0]

    @respx.mock
    @pytest.mark.parametrize("status", [301, 500, 503])
    def test_other_statuses_are_unclassified(
        self, status: int, make_spec, memory_sink, fake_clock
    ) -> None:
        respx.get(URL).mock(side_effect=_responses(status))
        probe = _probe(make_spec(max_requests=1), memory_sink, fake_clock)

        assert probe.run() is ProbeStatus.COMPLETED

        snapshot = probe.window.snapshot()
        assert snapshot.requests == 1
        assert snapshot.successes == 0
        assert snapshot.errors == 0
        assert snapshot.requests_per_second == 0.0

    @respx.mock
    def test_client_error_records_http_event(self, make_spec, memory_sink, fake_clock) -> None:
        respx.get(URL).mock(side_effect=_responses(429))
        probe = _probe(make_spec(max_requests=1), memory_sink, fake_clock)

        probe.run()

        assert len(memory_sink.errors) == 1
        event = memory_sink.errors[0]
        assert event.endpoint == "api"
        assert event.kind is ErrorKind.HTTP
        assert event.status == 429
        assert event.timestamp == fake_clock.WALL_EPOCH + 1.0
        assert probe.window.snapshot().errors == 1

    @respx.mock
    def test_transport_error_records_transport_event(
        self, make_spec, memory_sink, fake_clock
    ) -> None:
        respx.get(URL).mock(side_effect=[httpx.ConnectError("connection refused")])
        probe = _probe(make_spec(max_requests=1), memory_sink, fake_clock)

        probe.run()

        event = memory_sink.errors[0]
        assert event.kind is ErrorKind.TRANSPORT
        assert event.status is None
        assert event.error == "connection refused"
        assert probe.window.snapshot().errors == 1

    @respx.mock
    def test_timeout_is_a_transport_failure(self, make_spec, memory_sink, fake_clock) -> None:
        respx.get(URL).mock(side_effect=[httpx.ReadTimeout("timed out")])
        probe = _probe(make_spec(max_requests=1), memory_sink, fake_clock)

        probe.run()

        assert memory_sink.errors[0].kind is ErrorKind.TRANSPORT


class TestProbeBackoffAndBatches:
    """Tests for backoff sleeps and batch emission."""

    @respx.mock
    def test_three_failures_then_success_emits_one_batch(
        self, make_spec, memory_sink, fake_clock
    ) -> None:
        respx.get(URL).mock(side_effect=_responses(429, 429, 429, 200))
        probe = _probe(make_spec(max_requests=4), memory_sink, fake_clock)

        probe.run()

        # pace, backoff 1, pace, backoff 2, pace, backoff 5, pace
        assert fake_clock.sleeps == [1.0, 1, 1.0, 2, 1.0, 5, 1.0]
        assert len(memory_sink.batches) == 1
        batch = memory_sink.batches[0]
        assert batch.endpoint == "api"
        assert batch.failure_count == 3
        assert batch.success_count == 1
        # First failure at t=1, recovery at t=12
        assert batch.failure_duration == pytest.approx(11.0)
        assert batch.success_duration == pytest.approx(1.0)
        assert batch.timestamp == fake_clock.WALL_EPOCH + 12.0

    @respx.mock
    def test_batch_records_reset_backoff_step(self, make_spec, memory_sink, fake_clock) -> None:
        respx.get(URL).mock(side_effect=_responses(429, 429, 200))
        probe = _probe(make_spec(max_requests=3), memory_sink, fake_clock)

        probe.run()

        # Index was 2 during the streak, but the batch is built after the reset
        assert memory_sink.batches[0].backoff_step == 0

    @respx.mock
    def test_backoff_saturates(self, make_spec, memory_sink, fake_clock) -> None:
        respx.get(URL).mock(side_effect=_responses(429, 429, 429, 429, 429))
        probe = _probe(make_spec(max_requests=5), memory_sink, fake_clock)

        probe.run()

        backoff_sleeps = fake_clock.sleeps[1::2]
        assert backoff_sleeps == [1, 2, 5, 5, 5]
        assert probe.backoff.wait_index == 3
        assert memory_sink.batches == []
        assert len(memory_sink.errors) == 5

    @respx.mock
    def test_success_restarts_escalation(self, make_spec, memory_sink, fake_clock) -> None:
        respx.get(URL).mock(side_effect=_responses(429, 429, 200, 429))
        probe = _probe(make_spec(max_requests=4), memory_sink, fake_clock)

        probe.run()

        assert fake_clock.sleeps == [1.0, 1, 1.0, 2, 1.0, 1.0, 1]

    @respx.mock
    def test_consecutive_streaks_emit_separate_batches(
        self, make_spec, memory_sink, fake_clock
    ) -> None:
        respx.get(URL).mock(side_effect=_responses(200, 429, 200, 200, 429, 200))
        probe = _probe(make_spec(max_requests=6), memory_sink, fake_clock)

        probe.run()

        first, second = memory_sink.batches
        assert (first.success_count, first.failure_count) == (2, 1)
        assert (second.success_count, second.failure_count) == (2, 1)
        # Second success run spans the first recovery (t=4) to the next failure (t=6)
        assert second.success_duration == pytest.approx(2.0)
        assert probe.window.snapshot().last_streak_duration == pytest.approx(2.0)

    @respx.mock
    def test_window_is_sleeping_during_backoff(self, make_spec, memory_sink, fake_clock) -> None:
        respx.get(URL).mock(side_effect=_responses(429))
        observed: list[tuple[float, bool]] = []
        probe: EndpointProbe

        def sleep(seconds: float) -> bool:
            observed.append((seconds, probe.window.snapshot().sleeping))
            return fake_clock.sleep(seconds)

        probe = EndpointProbe(
            make_spec(max_requests=1, error_wait_intervals=(3,)),
            memory_sink,
            clock=fake_clock.monotonic,
            wall_clock=fake_clock.time,
            sleep=sleep,
        )
        probe.run()

        assert observed == [(1.0, False), (3, True)]
        snapshot = probe.window.snapshot()
        assert snapshot.sleeping is False
        assert snapshot.backoff_wait == 3


class TestProbeRate:
    """Tests for requests-per-second."""

    @respx.mock
    def test_requests_per_second_after_successes(
        self, make_spec, memory_sink, fake_clock
    ) -> None:
        respx.get(URL).mock(side_effect=_responses(200, 200, 200, 200))
        probe = _probe(make_spec(rate="4s", max_requests=4), memory_sink, fake_clock)

        probe.run()

        # 4 successes over 1 second of pacing
        assert probe.window.snapshot().requests_per_second == pytest.approx(4.0)

    @respx.mock
    def test_rate_not_recomputed_on_failure(self, make_spec, memory_sink, fake_clock) -> None:
        respx.get(URL).mock(side_effect=_responses(200, 429, 503))
        probe = _probe(make_spec(max_requests=3), memory_sink, fake_clock)

        probe.run()

        # Only the success at t=1 updated the rate
        assert probe.window.snapshot().requests_per_second == pytest.approx(1.0)


class TestProbeConfiguration:
    """Tests for configuration errors and client setup."""

    @respx.mock
    def test_invalid_rate_aborts_without_requests(self, make_spec, memory_sink, fake_clock) -> None:
        route = respx.get(URL).mock(return_value=httpx.Response(200))
        probe = _probe(make_spec(rate="fast"), memory_sink, fake_clock)

        assert probe.run() is ProbeStatus.CONFIG_ERROR
        assert route.call_count == 0
        assert probe.window.snapshot().requests == 0
        assert fake_clock.sleeps == []

    @respx.mock
    def test_invalid_proxy_aborts_without_requests(
        self, make_spec, memory_sink, fake_clock
    ) -> None:
        route = respx.get(URL).mock(return_value=httpx.Response(200))
        probe = _probe(make_spec(proxy="ftp://proxy"), memory_sink, fake_clock)

        assert probe.run() is ProbeStatus.CONFIG_ERROR
        assert route.call_count == 0

    def test_invalid_rate_is_logged(self, make_spec, memory_sink, fake_clock, caplog) -> None:
        probe = _probe(make_spec(rate="0s"), memory_sink, fake_clock)
        with caplog.at_level(logging.ERROR, logger="rateprowler.probe"):
            probe.run()
        assert "Error parsing rate value" in caplog.text

    def test_build_client_applies_timeouts(self, make_spec, memory_sink) -> None:
        probe = EndpointProbe(
            make_spec(),
            memory_sink,
            request_timeout=2.0,
            tls_handshake_timeout=7.0,
        )
        with probe.build_client() as client:
            assert client.timeout.read == 2.0
            assert client.timeout.connect == 7.0
            assert client.follow_redirects is True

    def test_build_client_with_proxy(self, make_spec, memory_sink) -> None:
        probe = EndpointProbe(make_spec(proxy="http://127.0.0.1:3128"), memory_sink)
        with probe.build_client() as client:
            assert isinstance(client, httpx.Client)
            assert len(client._mounts) == 1

    @pytest.mark.parametrize("variable", ["HTTPS_PROXY", "HTTP_PROXY", "ALL_PROXY"])
    def test_build_client_ignores_environment_proxy(
        self, variable: str, make_spec, memory_sink, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv(variable, "http://10.9.9.9:3128")
        probe = EndpointProbe(make_spec(proxy=None), memory_sink)

        with probe.build_client() as client:
            assert client.trust_env is False
            assert client._mounts == {}

    @respx.mock
    def test_zero_budget_sends_nothing(self, make_spec, memory_sink, fake_clock) -> None:
        route = respx.get(URL).mock(return_value=httpx.Response(200))
        probe = _probe(make_spec(max_requests=0), memory_sink, fake_clock)

        assert probe.run() is ProbeStatus.COMPLETED
        assert route.call_count == 0


class TestProbeResilience:
    """Tests for sink failures, logging and cancellation."""

    @respx.mock
    def test_sink_failure_does_not_abort_probe(self, make_spec, fake_clock) -> None:
        respx.get(URL).mock(side_effect=_responses(429, 200, 200))
        sink = MagicMock(spec=Sink)
        sink.record_error.side_effect = SinkError("database is locked")
        sink.record_batch.side_effect = RuntimeError("unexpected")
        probe = _probe(make_spec(max_requests=3), sink, fake_clock)

        assert probe.run() is ProbeStatus.COMPLETED

        assert sink.record_error.call_count == 1
        assert sink.record_batch.call_count == 1
        assert probe.window.snapshot().requests == 3

    @respx.mock
    def test_first_request_failure_warns(self, make_spec, memory_sink, fake_clock, caplog) -> None:
        respx.get(URL).mock(side_effect=_responses(403, 403))
        probe = _probe(make_spec(max_requests=2), memory_sink, fake_clock)

        with caplog.at_level(logging.WARNING, logger="rateprowler.probe"):
            probe.run()

        warnings = [r for r in caplog.records if "Error on first request" in r.getMessage()]
        assert len(warnings) == 1
        assert warnings[0].endpoint == "api"

    @respx.mock
    def test_stop_event_set_before_start(self, make_spec, memory_sink) -> None:
        route = respx.get(URL).mock(return_value=httpx.Response(200))
        stop_event = threading.Event()
        stop_event.set()
        probe = EndpointProbe(make_spec(), memory_sink, stop_event=stop_event)

        assert probe.run() is ProbeStatus.CANCELLED
        assert route.call_count == 0

    @respx.mock
    def test_cancel_during_backoff_sleep(self, make_spec, memory_sink, fake_clock) -> None:
        respx.get(URL).mock(side_effect=_responses(429))
        stop_event = threading.Event()

        def sleep(seconds: float) -> bool:
            fake_clock.sleep(seconds)
            if seconds == 7:
                stop_event.set()
            return stop_event.is_set()

        probe = EndpointProbe(
            make_spec(max_requests=10, error_wait_intervals=(7,)),
            memory_sink,
            stop_event=stop_event,
            clock=fake_clock.monotonic,
            wall_clock=fake_clock.time,
            sleep=sleep,
        )

        assert probe.run() is ProbeStatus.CANCELLED
        snapshot = probe.window.snapshot()
        assert snapshot.requests == 1
        assert snapshot.errors == 1
        assert snapshot.sleeping is False
