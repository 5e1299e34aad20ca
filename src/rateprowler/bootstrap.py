"""Startup wiring for rateprowler.

Loads settings (environment plus CLI overrides), configures logging, loads
the endpoint configuration and opens the sink. Any failure here happens
before a single probe starts and is fatal to the process.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, replace

from rateprowler.config import Settings, load_settings
from rateprowler.endpoints import EndpointConfigError, load_endpoints
from rateprowler.logging import get_logger, setup_logging
from rateprowler.sink import Sink, SinkError, create_sink
from rateprowler.types import EndpointSpec

logger = get_logger(__name__)


@dataclass
class BootstrapContext:
    """Everything needed to start a run."""

    settings: Settings
    endpoints: list[EndpointSpec]
    sink: Sink


def apply_cli_overrides(settings: Settings, parsed: argparse.Namespace) -> Settings:
    """Return settings with any command-line overrides applied.

    Args:
        settings: Settings loaded from the environment.
        parsed: Parsed command-line arguments.

    Returns:
        New Settings instance.
    """
    overrides: dict[str, object] = {}
    if parsed.config is not None:
        overrides["config_file"] = parsed.config
    if parsed.database_url is not None:
        overrides["database_url"] = parsed.database_url
    if parsed.report_interval is not None:
        if parsed.report_interval > 0:
            overrides["report_interval"] = parsed.report_interval
        else:
            logger.warning(
                "Ignoring --report-interval %s: must be positive", parsed.report_interval
            )
    if parsed.log_level is not None:
        overrides["log_level"] = parsed.log_level
    return replace(settings, **overrides)  # type: ignore[arg-type]


def bootstrap(parsed: argparse.Namespace) -> BootstrapContext | None:
    """Load configuration and open the sink.

    Args:
        parsed: Parsed command-line arguments.

    Returns:
        BootstrapContext, or None if startup failed (already logged).
    """
    settings = apply_cli_overrides(load_settings(parsed.env_file), parsed)
    setup_logging(settings.log_level, json_format=settings.log_json)

    try:
        endpoints = load_endpoints(settings.config_file)
    except EndpointConfigError as e:
        logger.error("Error loading configuration: %s", e)
        return None

    try:
        sink = create_sink(settings.database_url)
    except SinkError as e:
        logger.error("Error opening sink: %s", e)
        return None

    return BootstrapContext(settings=settings, endpoints=endpoints, sink=sink)


__all__ = ["BootstrapContext", "apply_cli_overrides", "bootstrap"]
