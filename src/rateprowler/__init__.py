"""rateprowler - practical rate limit estimation for HTTP endpoints."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("rateprowler")
except PackageNotFoundError:
    # Package is not installed (e.g., running from source without pip install)
    __version__ = "0.0.0.dev0"

# Re-export core public API
from rateprowler.app import main
from rateprowler.probe import EndpointProbe
from rateprowler.runner import ProbeRunner

__all__ = [
    "__version__",
    "EndpointProbe",
    "ProbeRunner",
    "main",
]
