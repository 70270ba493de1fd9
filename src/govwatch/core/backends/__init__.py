"""Backend implementations for fetching pages and driving browsers."""

from .base import (
    Backend,
    BackendError,
    FetchError,
    FetchResult,
    ServerError,
    TransportError,
)
from .http_backend import (
    FallbackFetcher,
    LegacySslHttpBackend,
    ModernHttpBackend,
    build_legacy_ssl_context,
    requires_legacy_ssl,
)
from .executable import BrowserExecutable, is_serverless, resolve_browser_executable
from .playwright_backend import (
    ActionResult,
    AutomationError,
    AutomationReason,
    BrowserError,
    BrowserSession,
    NavigationTimeout,
)

__all__ = [
    # Base classes
    "Backend",
    "FetchResult",
    # Errors
    "BackendError",
    "TransportError",
    "FetchError",
    "ServerError",
    # HTTP backends
    "FallbackFetcher",
    "LegacySslHttpBackend",
    "ModernHttpBackend",
    "build_legacy_ssl_context",
    "requires_legacy_ssl",
    # Browser
    "BrowserExecutable",
    "is_serverless",
    "resolve_browser_executable",
    "ActionResult",
    "AutomationError",
    "AutomationReason",
    "BrowserError",
    "BrowserSession",
    "NavigationTimeout",
]
