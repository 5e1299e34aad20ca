"""Command-line interface argument parsing for rateprowler.

This module provides the CLI argument parser that handles:
- Endpoint configuration file override
- Sink database override
- Reporter interval override
- Log level override
- Environment file specification
"""

from __future__ import annotations

import argparse
from pathlib import Path


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Optional list of arguments to parse. If None, uses sys.argv.

    Returns:
        Parsed arguments namespace with the following attributes:
        - config: Path to the endpoint configuration file
        - database_url: Sink database URL
        - report_interval: Reporter interval in seconds
        - log_level: Logging level
        - env_file: Path to .env file
    """
    parser = argparse.ArgumentParser(
        prog="rateprowler",
        description="rateprowler - estimate the practical rate limit of HTTP endpoints",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the endpoint configuration file (default: ./config.json)",
    )

    parser.add_argument(
        "--database-url",
        default=None,
        help="Sink database URL, or memory:// (overrides RATEPROWLER_DATABASE_URL)",
    )

    parser.add_argument(
        "--report-interval",
        type=float,
        default=None,
        help="Seconds between report lines (overrides RATEPROWLER_REPORT_INTERVAL)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level (overrides RATEPROWLER_LOG_LEVEL)",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: ./.env)",
    )

    return parser.parse_args(args)


__all__ = ["parse_args"]
