"""Process settings loaded from environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Valid log levels
VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

DEFAULT_CONFIG_FILE = "config.json"
DEFAULT_DATABASE_URL = "sqlite:///rateprowler.db"


@dataclass(frozen=True)
class Settings:
    """Process settings loaded from the environment.

    This dataclass is frozen (immutable) to prevent accidental modification
    after creation. CLI overrides are applied with ``dataclasses.replace``.
    """

    # Endpoint configuration document (JSON or YAML)
    config_file: Path = Path(DEFAULT_CONFIG_FILE)

    # Sink database, any SQLAlchemy URL or "memory://"
    database_url: str = DEFAULT_DATABASE_URL

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Reporter tick in seconds
    report_interval: float = 1.0

    # HTTP timeouts in seconds
    request_timeout: float = 5.0
    tls_handshake_timeout: float = 10.0


def _parse_positive_float(value: str, name: str, default: float) -> float:
    """Parse a string as a strictly positive float with validation.

    Args:
        value: The string value to parse.
        name: The name of the setting (for error messages).
        default: The default value to use if parsing fails.

    Returns:
        The parsed positive float, or the default if invalid.

    Logs a warning if the value is invalid.
    """
    try:
        parsed = float(value)
        if parsed <= 0:
            logging.warning(
                "Invalid %s: %f is not positive, using default %f",
                name,
                parsed,
                default,
            )
            return default
        return parsed
    except ValueError:
        logging.warning(
            "Invalid %s: '%s' is not a valid number, using default %f",
            name,
            value,
            default,
        )
        return default


def _validate_log_level(value: str, default: str = "INFO") -> str:
    """Validate and normalize a log level string.

    Args:
        value: The log level string to validate.
        default: The default value to use if invalid.

    Returns:
        The validated log level (uppercase), or the default if invalid.
    """
    normalized = value.upper()
    if normalized not in VALID_LOG_LEVELS:
        logging.warning(
            "Invalid RATEPROWLER_LOG_LEVEL: '%s' is not valid, using default '%s'. Valid values: %s",
            value,
            default,
            ", ".join(sorted(VALID_LOG_LEVELS)),
        )
        return default
    return normalized


def _parse_bool(value: str) -> bool:
    """Return True for "true", "1" or "yes" (case-insensitive)."""
    return value.lower() in ("true", "1", "yes")


def load_settings(env_file: Path | None = None) -> Settings:
    """Load settings from environment variables.

    Args:
        env_file: Optional path to .env file. If not provided,
                  looks for .env in current directory.

    Returns:
        Settings object with loaded values. Invalid values fall back to
        their defaults with a warning.
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    log_level = _validate_log_level(os.getenv("RATEPROWLER_LOG_LEVEL", "INFO"))
    log_json = _parse_bool(os.getenv("RATEPROWLER_LOG_JSON", ""))

    report_interval = _parse_positive_float(
        os.getenv("RATEPROWLER_REPORT_INTERVAL", "1.0"),
        "RATEPROWLER_REPORT_INTERVAL",
        1.0,
    )
    request_timeout = _parse_positive_float(
        os.getenv("RATEPROWLER_REQUEST_TIMEOUT", "5.0"),
        "RATEPROWLER_REQUEST_TIMEOUT",
        5.0,
    )
    tls_handshake_timeout = _parse_positive_float(
        os.getenv("RATEPROWLER_TLS_HANDSHAKE_TIMEOUT", "10.0"),
        "RATEPROWLER_TLS_HANDSHAKE_TIMEOUT",
        10.0,
    )

    return Settings(
        config_file=Path(os.getenv("RATEPROWLER_CONFIG_FILE", DEFAULT_CONFIG_FILE)),
        database_url=os.getenv("RATEPROWLER_DATABASE_URL", DEFAULT_DATABASE_URL),
        log_level=log_level,
        log_json=log_json,
        report_interval=report_interval,
        request_timeout=request_timeout,
        tls_handshake_timeout=tls_handshake_timeout,
    )
