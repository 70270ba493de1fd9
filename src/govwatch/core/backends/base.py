"""
Backend base classes and data structures.

Defines the interface contract for the HTTP retrieval backends and the
error hierarchy shared by HTTP and browser access.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class FetchResult:
    """Result of a fetch operation."""

    url: str
    final_url: str  # After redirects
    status_code: int
    html: str
    headers: dict[str, str]

    # Timing
    elapsed_ms: float
    fetched_at: datetime = field(default_factory=datetime.utcnow)

    backend: str | None = None


class Backend(ABC):
    """Abstract base class for HTTP retrieval backends."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier."""
        pass

    @abstractmethod
    async def fetch(self, url: str, headers: dict[str, str] | None = None) -> FetchResult:
        """Fetch a URL and return the response.

        Args:
            url: Absolute URL
            headers: Extra request headers

        Returns:
            FetchResult with response data

        Raises:
            TransportError: On unrecoverable fetch failure
        """
        pass

    async def close(self) -> None:
        """Clean up backend resources."""
        pass

    async def __aenter__(self) -> "Backend":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


class BackendError(Exception):
    """Base exception for backend errors."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.cause = cause


class TransportError(BackendError):
    """The page could not be retrieved."""
    pass


class FetchError(TransportError):
    """Network failure or unexpected status."""
    pass


class ServerError(TransportError):
    """The server answered 5xx. Worth retrying."""
    pass
