"""
Run orchestrator.

Coordinates one collection run: source jobs run concurrently inside a
single log session, their alerts are distributed to subscriptions, the
outcome is recorded per source and expired read alerts are purged.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping

from sqlalchemy.exc import SQLAlchemyError

from ...persistence.db import SessionScope, get_engine, get_session
from ...persistence.repo import AlertRepository, PurgeError
from ..config.models import AppConfig, SourceName
from ..config.store import ConfigStore
from ..distribution import SubscriptionDistributor
from ..portals import OsceSource, SeacePublicSource, SeaceSource, SourceJob, SunatSource
from ..sessions.bus import SessionLogBus, SessionLogger

logger = logging.getLogger(__name__)

SYSTEM_SOURCE = "orchestrator"


# =============================================================================
# Results
# =============================================================================


@dataclass
class SourceRunResult:
    """Outcome of one source job."""

    source: str
    success: bool = True
    alerts_found: int = 0
    alerts_distributed: int = 0
    error: str | None = None
    duration_ms: int = 0
    skipped: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "success": self.success,
            "alerts_found": self.alerts_found,
            "alerts_distributed": self.alerts_distributed,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "skipped": self.skipped,
            "metadata": self.metadata,
        }


@dataclass
class OrchestratorResult:
    """Aggregated outcome of a run."""

    session_id: str
    success: bool = True
    results: dict[str, SourceRunResult] = field(default_factory=dict)
    purge: dict[str, int] | None = None
    total_alerts_found: int = 0
    total_alerts_distributed: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "success": self.success,
            "timestamp": self.timestamp.isoformat(),
            "duration_ms": self.duration_ms,
            "scrapers": {name: r.to_dict() for name, r in self.results.items()},
            "purge": self.purge,
            "total_alerts_found": self.total_alerts_found,
            "total_alerts_distributed": self.total_alerts_distributed,
            "errors": self.errors,
        }


@dataclass
class RunOptions:
    """What a run should do.

    ``sources`` limits the run to the named sources (all when None).
    """

    force: bool = False
    run_purge: bool = True
    sources: list[str] | None = None

    def selected(self) -> list[SourceName]:
        if not self.sources:
            return list(SourceName)
        return [SourceName(s.lower()) for s in self.sources]


# =============================================================================
# Job construction
# =============================================================================


def build_jobs(sessions: SessionScope, config: AppConfig) -> dict[str, SourceJob]:
    """Create the source jobs from the application configuration."""
    public = SeacePublicSource(config.fetch, regions=config.heuristics.regions)
    return {
        SourceName.SEACE.value: SeaceSource(
            sessions,
            config.browser,
            max_candidates=config.orchestrator.max_candidates,
            heuristics=config.heuristics,
            public_source=public,
        ),
        SourceName.OSCE.value: OsceSource(config.fetch),
        SourceName.SUNAT.value: SunatSource(config.fetch),
    }


# =============================================================================
# Orchestrator
# =============================================================================


class Orchestrator:
    """Runs source jobs and keeps their bookkeeping.

    A run never raises: every failure ends up in the result's ``errors``.
    """

    def __init__(
        self,
        sessions: SessionScope,
        bus: SessionLogBus,
        config: AppConfig | None = None,
        *,
        jobs: Mapping[str, SourceJob] | None = None,
        distributor: SubscriptionDistributor | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            sessions: Session scope shared by stores and repositories
            bus: Log bus the run sessions are written to
            config: Application configuration (defaults when omitted)
            jobs: Source jobs keyed by source name (built from config when omitted)
            distributor: Alert distributor (default: subscription distributor)
        """
        self.config = config or AppConfig()
        self.sessions = sessions
        self.bus = bus
        self.store = ConfigStore(sessions)
        self.jobs = dict(jobs) if jobs is not None else build_jobs(sessions, self.config)
        self.distributor = distributor or SubscriptionDistributor(sessions)
        self._runs: dict[str, asyncio.Task[OrchestratorResult]] = {}

    # -------------------------------------------------------------------------
    # Running
    # -------------------------------------------------------------------------

    async def run(self, options: RunOptions | None = None, **kwargs: Any) -> OrchestratorResult:
        """Execute a run and wait for it.

        Args:
            options: Run options (keyword arguments build one when omitted)

        Returns:
            OrchestratorResult with per-source results and totals
        """
        options = options or RunOptions(**kwargs)
        session_id = self.bus.start_session(self._session_source(options))
        return await self._execute(session_id, options)

    def run_in_background(self, options: RunOptions | None = None, **kwargs: Any) -> str:
        """Start a run on the current loop and return its session id at once."""
        options = options or RunOptions(**kwargs)
        session_id = self.bus.start_session(self._session_source(options))
        task = asyncio.get_running_loop().create_task(self._execute(session_id, options))
        self._runs[session_id] = task
        task.add_done_callback(lambda _: self._runs.pop(session_id, None))
        return session_id

    def background_run(self, session_id: str) -> asyncio.Task[OrchestratorResult] | None:
        """Task of a background run that is still in flight."""
        return self._runs.get(session_id)

    async def wait_background(self) -> None:
        """Wait for every background run still in flight."""
        if self._runs:
            await asyncio.gather(*list(self._runs.values()), return_exceptions=True)

    async def _execute(self, session_id: str, options: RunOptions) -> OrchestratorResult:
        started = time.monotonic()
        result = OrchestratorResult(session_id=session_id)
        log = self.bus.logger(session_id, SYSTEM_SOURCE)

        try:
            await self._collect(session_id, options, result, log)
        except Exception as e:
            logger.exception("Run %s aborted", session_id)
            log.error(f"Error en la ejecución: {e}")
            result.errors.append(str(e))
        finally:
            result.total_alerts_found = sum(r.alerts_found for r in result.results.values())
            result.total_alerts_distributed = sum(
                r.alerts_distributed for r in result.results.values()
            )
            result.success = not result.errors
            result.duration_ms = int((time.monotonic() - started) * 1000)
            self.bus.end_session(session_id, result.success)

        logger.info(
            "Run %s completed in %dms - found: %d, distributed: %d, errors: %d",
            session_id,
            result.duration_ms,
            result.total_alerts_found,
            result.total_alerts_distributed,
            len(result.errors),
        )
        return result

    async def _collect(
        self,
        session_id: str,
        options: RunOptions,
        result: OrchestratorResult,
        log: SessionLogger,
    ) -> None:
        try:
            names = [s.value for s in options.selected()]
        except ValueError as e:
            result.errors.append(f"Fuente inválida: {e}")
            names = []

        runnable = [name for name in names if name in self.jobs]
        log.info(f"Ejecutando fuentes: {', '.join(n.upper() for n in runnable) or '-'}")

        outcomes = await asyncio.gather(
            *(self._run_job(self.jobs[name], session_id, options.force) for name in runnable)
        )
        for outcome in outcomes:
            result.results[outcome.source.lower()] = outcome
            if not outcome.success:
                result.errors.append(f"{outcome.source}: {outcome.error}")

        if options.run_purge:
            result.purge = self.purge(result.errors, log)

    async def _run_job(self, job: SourceJob, session_id: str, force: bool) -> SourceRunResult:
        started = time.monotonic()
        outcome = SourceRunResult(source=job.label)
        log = self.bus.logger(session_id, job.name)

        try:
            config = self.store.get(job.source)
            if not (config.enabled or force):
                log.info(f"{job.label} deshabilitado, omitiendo")
                outcome.skipped = True
                return outcome
            if not self.store.should_run(config, force=force):
                log.info(f"{job.label} no requiere ejecución todavía (frecuencia: {config.frequency})")
                outcome.skipped = True
                return outcome

            output = await job.collect(log)
            outcome.alerts_found = output.count
            outcome.metadata = output.metadata
            log.info(f"{job.label}: {output.count} alertas encontradas")

            outcome.alerts_distributed = self.distributor.distribute(output.alerts)
            log.success(
                f"{job.label}: {outcome.alerts_distributed} alertas distribuidas",
                {"found": outcome.alerts_found, "distributed": outcome.alerts_distributed},
            )
        except Exception as e:
            logger.exception("Source %s failed", job.label)
            log.error(f"Error en {job.label}: {e}")
            outcome.success = False
            outcome.error = str(e)
            outcome.alerts_found = 0
            outcome.alerts_distributed = 0
        finally:
            outcome.duration_ms = int((time.monotonic() - started) * 1000)

        self._record(outcome, log)
        return outcome

    def _record(self, outcome: SourceRunResult, log: SessionLogger) -> None:
        try:
            self.store.record_run(outcome)
        except Exception as e:
            logger.exception("Could not record run of %s", outcome.source)
            log.warning(f"No se pudo registrar la ejecución de {outcome.source}: {e}")

    # -------------------------------------------------------------------------
    # Purge
    # -------------------------------------------------------------------------

    def purge(self, errors: list[str] | None = None, log: SessionLogger | None = None) -> dict[str, int]:
        """Delete read alerts older than each source's retention window.

        Args:
            errors: List purge failures are appended to as ``"Purge: msg"``
            log: Session logger for progress lines

        Returns:
            Deleted rows per source
        """
        deleted: dict[str, int] = {}
        now = datetime.utcnow()

        for source in SourceName:
            try:
                config = self.store.get(source)
                if config.retention_days <= 0:
                    continue
                cutoff = now - timedelta(days=config.retention_days)
                with self.sessions() as session:
                    deleted[source.value] = AlertRepository(session).purge_read_older_than(
                        source.label, cutoff
                    )
            except (PurgeError, SQLAlchemyError) as e:
                logger.error("Purge failed for %s: %s", source.label, e)
                if errors is not None:
                    errors.append(f"Purge: {e}")
                continue

        total = sum(deleted.values())
        if log is not None:
            log.info(f"Depuración: {total} alertas leídas eliminadas", {"deleted": deleted})
        return deleted

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def status(self, now: datetime | None = None) -> dict[str, Any]:
        """Configuration and alert counts of every source."""
        now = now or datetime.utcnow()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)

        with self.sessions() as session:
            repo = AlertRepository(session)
            totals = repo.count_by_source()
            todays = repo.count_by_source(since=today)

        return {
            "scrapers": {
                name: config.model_dump(mode="json") for name, config in self.store.all().items()
            },
            "stats": {
                source.value: {
                    "total": totals.get(source.label, 0),
                    "today": todays.get(source.label, 0),
                }
                for source in SourceName
            },
        }

    @staticmethod
    def _session_source(options: RunOptions) -> str:
        if options.sources and len(options.sources) == 1:
            return options.sources[0].lower()
        return "all"


def run_sources(
    orchestrator: Orchestrator,
    *,
    force: bool = False,
    run_purge: bool = True,
    sources: Iterable[str] | None = None,
) -> OrchestratorResult:
    """Run the orchestrator to completion from synchronous code."""
    options = RunOptions(force=force, run_purge=run_purge, sources=list(sources) if sources else None)
    return asyncio.run(orchestrator.run(options))


def create_orchestrator(config: AppConfig, bus: SessionLogBus | None = None) -> Orchestrator:
    """Wire an orchestrator to the process-wide database engine.

    Args:
        config: Application configuration
        bus: Log bus to reuse (a new one is created when omitted)
    """
    get_engine(config.database.url, echo=config.database.echo, pool_size=config.database.pool_size)
    bus = bus or SessionLogBus(
        ttl_seconds=config.orchestrator.session_ttl_seconds,
        max_recent=config.orchestrator.recent_logs_limit,
    )
    return Orchestrator(get_session, bus, config)
