"""
HTTP Backend implementation using httpx.

Government portals in Peru run old TLS stacks that modern clients refuse
to talk to. Two backends share one interface:
- ``ModernHttpBackend``: default verification, any non-2xx is an error
- ``LegacySslHttpBackend``: TLS 1.2 only with a fixed cipher list and no
  certificate checks; pages below 500 are accepted as-is

``FallbackFetcher`` picks between them by host.
"""

from __future__ import annotations

import logging
import ssl
from datetime import datetime
from typing import Iterable
from urllib.parse import urlparse

import httpx

from ..config.models import FetchConfig
from .base import Backend, FetchError, FetchResult, ServerError

logger = logging.getLogger(__name__)


LEGACY_CIPHERS = ":".join([
    "ECDHE-RSA-AES128-GCM-SHA256",
    "ECDHE-RSA-AES256-GCM-SHA384",
    "ECDHE-RSA-AES128-SHA256",
    "ECDHE-RSA-AES256-SHA384",
    "AES128-GCM-SHA256",
    "AES256-GCM-SHA384",
    "AES128-SHA256",
    "AES256-SHA256",
    "HIGH",
    "!aNULL",
    "!eNULL",
    "!EXPORT",
    "!DES",
    "!RC4",
    "!MD5",
    "!PSK",
    "!SRP",
    "!CAMELLIA",
])


def build_legacy_ssl_context() -> ssl.SSLContext:
    """TLS 1.2 context without certificate verification."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.maximum_version = ssl.TLSVersion.TLSv1_2
    context.set_ciphers(LEGACY_CIPHERS)
    return context


def default_headers(config: FetchConfig) -> dict[str, str]:
    return {
        "User-Agent": config.user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": config.accept_language,
    }


def requires_legacy_ssl(url: str, domains: Iterable[str]) -> bool:
    """Check if the host of ``url`` contains one of the legacy domains."""
    try:
        hostname = (urlparse(url).hostname or "").lower()
    except ValueError:
        return False
    return any(domain in hostname for domain in domains)


# =============================================================================
# Backends
# =============================================================================


class _HttpxBackend(Backend):
    """Shared client management for the httpx backends."""

    def __init__(
        self,
        config: FetchConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize HTTP backend.

        Args:
            config: Timeout, redirect and header settings
            transport: Custom httpx transport (tests use ``httpx.MockTransport``)
        """
        self.config = config or FetchConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _verify(self) -> ssl.SSLContext | bool:
        return True

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout_seconds),
                follow_redirects=True,
                max_redirects=self.config.max_redirects,
                headers=default_headers(self.config),
                verify=self._verify(),
                transport=self._transport,
            )
        return self._client

    async def _get(self, url: str, headers: dict[str, str] | None) -> tuple[httpx.Response, float]:
        client = await self._ensure_client()
        start_time = datetime.utcnow()
        try:
            response = await client.get(url, headers=headers)
        except httpx.HTTPError as e:
            raise FetchError(f"{self.name} fetch failed: {e}", url=url, cause=e) from e
        elapsed_ms = (datetime.utcnow() - start_time).total_seconds() * 1000
        return response, elapsed_ms

    def _result(self, url: str, response: httpx.Response, elapsed_ms: float) -> FetchResult:
        return FetchResult(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            html=response.text,
            headers=dict(response.headers),
            elapsed_ms=elapsed_ms,
            backend=self.name,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


class ModernHttpBackend(_HttpxBackend):
    """Strict client: verified TLS, only 2xx accepted."""

    @property
    def name(self) -> str:
        return "modern"

    async def fetch(self, url: str, headers: dict[str, str] | None = None) -> FetchResult:
        response, elapsed_ms = await self._get(url, headers)

        if response.status_code >= 500:
            raise ServerError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                url=url,
                status_code=response.status_code,
            )
        if not response.is_success:
            raise FetchError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                url=url,
                status_code=response.status_code,
            )

        return self._result(url, response, elapsed_ms)


class LegacySslHttpBackend(_HttpxBackend):
    """Permissive client for portals with outdated TLS setups."""

    @property
    def name(self) -> str:
        return "legacy"

    def _verify(self) -> ssl.SSLContext | bool:
        return build_legacy_ssl_context()

    async def fetch(self, url: str, headers: dict[str, str] | None = None) -> FetchResult:
        response, elapsed_ms = await self._get(url, headers)

        if response.status_code >= 500:
            raise ServerError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                url=url,
                status_code=response.status_code,
            )

        return self._result(url, response, elapsed_ms)


# =============================================================================
# Selection
# =============================================================================


class FallbackFetcher:
    """Fetch pages through the backend appropriate for each host.

    Legacy-domain hosts go straight to the legacy client; everything else
    tries the modern client first and falls back to the legacy one on any
    transport error.
    """

    def __init__(
        self,
        config: FetchConfig | None = None,
        modern: Backend | None = None,
        legacy: Backend | None = None,
    ):
        self.config = config or FetchConfig()
        self.modern = modern or ModernHttpBackend(self.config)
        self.legacy = legacy or LegacySslHttpBackend(self.config)

    def select_backend(self, url: str) -> Backend | None:
        """Return the legacy backend for legacy hosts, None when fallback applies."""
        if requires_legacy_ssl(url, self.config.legacy_ssl_domains):
            return self.legacy
        return None

    async def fetch_result(self, url: str) -> FetchResult:
        backend = self.select_backend(url)
        if backend is not None:
            logger.debug("Using legacy SSL client for %s", urlparse(url).hostname)
            return await backend.fetch(url)

        try:
            return await self.modern.fetch(url)
        except (FetchError, ServerError) as e:
            logger.info("Modern fetch failed (%s), retrying with legacy client: %s", e, url)
            return await self.legacy.fetch(url)

    async def fetch(self, url: str) -> str:
        """Fetch a page body."""
        result = await self.fetch_result(url)
        return result.html

    async def close(self) -> None:
        await self.modern.close()
        await self.legacy.close()

    async def __aenter__(self) -> "FallbackFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
