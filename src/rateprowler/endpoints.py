"""Loading the endpoint configuration document.

The document is JSON, or YAML when the file ends in ``.yaml``/``.yml``::

    {
      "testers": [
        {
          "name": "search",
          "url": "https://api.example.com/search?q=x",
          "rate": "10s",
          "maxRequests": 1000,
          "proxy": "http://127.0.0.1:3128",
          "errorWaitIntervals": [1, 5, 30, 60]
        }
      ]
    }

Keys are matched case-insensitively. Only the structure is validated here;
rate expressions and proxy URLs are checked by each probe when it starts, so
one bad endpoint does not prevent the others from running.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from rateprowler.logging import get_logger
from rateprowler.types import EndpointSpec

logger = get_logger(__name__)

YAML_SUFFIXES = frozenset({".yaml", ".yml"})


class EndpointConfigError(Exception):
    """Raised when the endpoint configuration document is invalid."""

    pass


def _lower_keys(data: dict[Any, Any]) -> dict[str, Any]:
    return {str(key).lower(): value for key, value in data.items()}


def _is_number(value: Any) -> bool:
    # bool is a subclass of int, reject it explicitly
    return isinstance(value, int | float) and not isinstance(value, bool)


def parse_endpoint(data: Any, index: int = 0) -> EndpointSpec:
    """Build an EndpointSpec from one ``testers`` entry.

    Args:
        data: The raw entry.
        index: Position of the entry, for error messages.

    Returns:
        EndpointSpec for the entry.

    Raises:
        EndpointConfigError: If a field is missing or has the wrong type.
    """
    if not isinstance(data, dict):
        raise EndpointConfigError(f"Endpoint #{index} must be an object")

    fields = _lower_keys(data)
    where = f"endpoint #{index}"

    for key in ("name", "url", "rate"):
        value = fields.get(key)
        if not isinstance(value, str) or not value.strip():
            raise EndpointConfigError(f"'{key}' must be a non-empty string in {where}")

    max_requests = fields.get("maxrequests", 0)
    if not isinstance(max_requests, int) or isinstance(max_requests, bool):
        raise EndpointConfigError(f"'maxRequests' must be an integer in {where}")
    if max_requests < 0:
        raise EndpointConfigError(f"'maxRequests' must not be negative in {where}")

    proxy = fields.get("proxy")
    if proxy is not None and not isinstance(proxy, str):
        raise EndpointConfigError(f"'proxy' must be a string in {where}")

    intervals = fields.get("errorwaitintervals")
    if intervals is None:
        intervals = []
    if not isinstance(intervals, list):
        raise EndpointConfigError(f"'errorWaitIntervals' must be a list in {where}")
    for interval in intervals:
        if not _is_number(interval) or interval < 0:
            raise EndpointConfigError(
                f"'errorWaitIntervals' must contain non-negative numbers in {where}, "
                f"got {interval!r}"
            )

    return EndpointSpec(
        name=fields["name"].strip(),
        url=fields["url"].strip(),
        rate=fields["rate"].strip(),
        max_requests=max_requests,
        proxy=proxy or None,
        error_wait_intervals=tuple(intervals),
    )


def parse_endpoints(data: Any, source: str = "<config>") -> list[EndpointSpec]:
    """Build EndpointSpecs from a decoded configuration document.

    Args:
        data: Decoded JSON/YAML document.
        source: Name of the document, for error messages.

    Returns:
        Endpoints in document order.

    Raises:
        EndpointConfigError: If the document is invalid.
    """
    if not isinstance(data, dict):
        raise EndpointConfigError(f"Configuration in {source} must be an object")

    testers = _lower_keys(data).get("testers")
    if testers is None:
        raise EndpointConfigError(f"Missing 'testers' list in {source}")
    if not isinstance(testers, list):
        raise EndpointConfigError(f"'testers' must be a list in {source}")

    endpoints = [parse_endpoint(entry, index) for index, entry in enumerate(testers)]

    seen: set[str] = set()
    for endpoint in endpoints:
        if endpoint.name in seen:
            logger.warning("Endpoint name '%s' appears more than once in %s", endpoint.name, source)
        seen.add(endpoint.name)

    return endpoints


def load_endpoints(file_path: Path) -> list[EndpointSpec]:
    """Load endpoints from a JSON or YAML file.

    Args:
        file_path: Path to the configuration document.

    Returns:
        Endpoints in document order.

    Raises:
        EndpointConfigError: If the file is missing, unreadable or invalid.
    """
    try:
        with open(file_path, encoding="utf-8") as f:
            if file_path.suffix.lower() in YAML_SUFFIXES:
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except FileNotFoundError:
        raise EndpointConfigError(f"Configuration file not found: {file_path}") from None
    except json.JSONDecodeError as e:
        raise EndpointConfigError(f"Invalid JSON in {file_path}: {e}") from e
    except yaml.YAMLError as e:
        raise EndpointConfigError(f"Invalid YAML in {file_path}: {e}") from e
    except OSError as e:
        raise EndpointConfigError(f"Cannot read {file_path}: {e}") from e

    endpoints = parse_endpoints(data, str(file_path))
    logger.info("Loaded %d endpoints from %s", len(endpoints), file_path)
    return endpoints


__all__ = ["EndpointConfigError", "load_endpoints", "parse_endpoint", "parse_endpoints"]
