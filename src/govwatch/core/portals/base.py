"""
Source job base classes and interfaces.

Defines the contract every portal job fulfils for the orchestrator, plus
the shared plumbing of the static (HTTP + HTML) portals.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..backends.base import ServerError, TransportError
from ..backends.http_backend import FallbackFetcher
from ..config.models import AlertType, FetchConfig, SourceName
from ..extract.base import ListingItem
from ..extract.pipeline import ExtractionPipeline
from ..fetch.retries import RetryConfig, retry_async
from ..normalize.parsing import parse_date_or_now
from ..normalize.records import NormalizedAlert
from ..sessions.bus import SessionLogger

# Leading characters of the normalized title compared when deduplicating
TITLE_DEDUPE_PREFIX = 50


@dataclass
class SourceOutput:
    """What a source job collected in one run."""

    alerts: list[NormalizedAlert] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.alerts)


class SourceJob(ABC):
    """Base class for portal-specific collection logic.

    Jobs only collect: scheduling checks, distribution and run bookkeeping
    belong to the orchestrator.
    """

    source: SourceName

    @property
    def name(self) -> str:
        return self.source.value

    @property
    def label(self) -> str:
        return self.source.label

    @abstractmethod
    async def collect(self, log: SessionLogger) -> SourceOutput:
        """Collect alerts from the portal.

        Args:
            log: Session logger bound to this source

        Returns:
            SourceOutput with the normalized alerts

        Raises:
            ConfigurationError: If the source cannot run as configured
            AutomationError: If a browser flow could not be completed
        """
        pass


class StaticSourceJob(SourceJob):
    """Job for portals readable with plain HTTP requests.

    A failing page is logged and skipped; the other pages of the source
    still produce alerts.
    """

    base_url: str

    def __init__(
        self,
        fetch_config: FetchConfig | None = None,
        fetcher: FallbackFetcher | None = None,
    ) -> None:
        """Initialize the job.

        Args:
            fetch_config: Timeouts, headers and retry settings
            fetcher: Pre-built fetcher (owned by the caller when given)
        """
        self.fetch_config = fetch_config or FetchConfig()
        self._fetcher = fetcher
        self.retry_config = RetryConfig(
            max_attempts=self.fetch_config.server_error_retries,
            min_wait=1,
            max_wait=5,
            retry_exceptions=(ServerError,),
        )

    async def collect(self, log: SessionLogger) -> SourceOutput:
        fetcher = self._fetcher or FallbackFetcher(self.fetch_config)
        try:
            return await self.collect_with(fetcher, log)
        finally:
            if self._fetcher is None:
                await fetcher.close()

    @abstractmethod
    async def collect_with(self, fetcher: FallbackFetcher, log: SessionLogger) -> SourceOutput:
        pass

    async def fetch_page(self, fetcher: FallbackFetcher, url: str) -> str:
        """Fetch a page, retrying 5xx answers."""
        return await retry_async(fetcher.fetch, url, config=self.retry_config)

    async def read_listing(
        self,
        fetcher: FallbackFetcher,
        url: str,
        pipeline: ExtractionPipeline,
        log: SessionLogger,
        *,
        collect_all: bool = False,
    ) -> list[ListingItem]:
        """Fetch a listing page and run an extraction pipeline over it.

        Returns an empty list when the page cannot be fetched.
        """
        html = await self.try_fetch(fetcher, url, log)
        if html is None:
            return []
        return self.run_pipeline(pipeline, html, url, log, collect_all=collect_all)

    async def try_fetch(self, fetcher: FallbackFetcher, url: str, log: SessionLogger) -> str | None:
        """Fetch a page, logging and returning None on transport failure."""
        try:
            return await self.fetch_page(fetcher, url)
        except TransportError as e:
            log.warning(f"No se pudo obtener {url}: {e}", {"status_code": e.status_code})
            return None

    def run_pipeline(
        self,
        pipeline: ExtractionPipeline,
        html: str,
        url: str,
        log: SessionLogger,
        *,
        collect_all: bool = False,
    ) -> list[ListingItem]:
        if collect_all:
            result = pipeline.extract_all(html, self.base_url)
        else:
            result = pipeline.extract(html, self.base_url)

        log.debug(
            f"{pipeline.name}: {result.count} elementos",
            {"url": url, "strategy": result.strategy, "confidence": result.confidence},
        )
        return result.items

    def to_alert(self, item: ListingItem, tipo: AlertType, now: datetime | None = None) -> NormalizedAlert:
        return NormalizedAlert(
            titulo=item.titulo,
            contenido=item.resumen or item.titulo,
            fuente=self.label,
            fecha_publicacion=parse_date_or_now(item.fecha_text, now),
            tipo=tipo.value,
            url_origen=item.url,
        )
