"""
Refresh orchestrator - runs one batch refresh cycle.

For every source (registration order) and every stay window (chronological
order) a unit is evaluated:

1. Resolve - tie the source to its company and validate its locator
2. Freshness - skip units whose stored points are within the ttl
3. Acquire - move the record to processing (per-key lock)
4. Fetch - call the provider client under a timeout
5. Upsert - replace stored points, then record the terminal status

Units run on a bounded pool of asyncio workers, each unit on its own
session. A failing unit becomes a `failed` result; only an unreadable source
registry aborts the cycle.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional
from uuid import UUID, uuid4
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from core.config import settings
from core.exceptions import (
    RefreshException,
    ResolutionError,
    SourceRegistryError,
    FetchTimeoutError,
    UpsertError,
)
from models.base import RefreshStatus, CycleStatus
from models.cycle_run import RefreshCycleRun
from refresh.clients.base import FetchClient
from refresh.freshness import FreshnessCache
from refresh.records import RefreshRecordStore
from refresh.registry import SourceRegistry
from refresh.upserter import DataPointUpserter
from refresh.windows import generate_windows
from schemas.refresh import (
    BatchReport,
    DroppedPoint,
    ExtractedPointOut,
    FetchResult,
    SourceInfo,
    UnitResult,
    Window,
)
import logging

logger = logging.getLogger(__name__)


@dataclass
class RefreshUnit:
    """One (source, window) pair scheduled in a cycle"""
    index: int
    source: SourceInfo
    window: Window
    company_id: Optional[UUID] = None
    skip_reason: Optional[str] = None


@dataclass
class UnitTracker:
    """Record id of the unit, kept outside the session for failure handling"""
    record_id: Optional[UUID] = None


class RefreshOrchestrator:
    """
    Batch refresh orchestrator.

    Responsibilities:
    - Enumerate units in (source, window) order
    - Decide skip vs. refetch per unit
    - Keep units isolated from each other's failures
    - Record a RefreshCycleRun audit row per cycle
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        clients: Dict[str, FetchClient],
        registry: Optional[SourceRegistry] = None,
        horizon_days: Optional[int] = None,
        ttl: Optional[timedelta] = None,
        max_workers: Optional[int] = None,
        fetch_timeout: Optional[float] = None,
        default_capacity: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.session_factory = session_factory
        self.clients = clients
        self.registry = registry or SourceRegistry(session_factory)
        self.horizon_days = settings.REFRESH_HORIZON_DAYS if horizon_days is None else horizon_days
        self.ttl = ttl or timedelta(hours=settings.REFRESH_TTL_HOURS)
        self.max_workers = max(1, max_workers or settings.REFRESH_MAX_WORKERS)
        self.fetch_timeout = fetch_timeout or settings.FETCH_TIMEOUT_SECONDS
        self.default_capacity = default_capacity or settings.DEFAULT_ROOM_CAPACITY
        self.clock = clock or datetime.utcnow

    async def run_cycle(
        self,
        sources: Optional[List[SourceInfo]] = None,
        horizon_days: Optional[int] = None,
        ttl: Optional[timedelta] = None,
        provider: Optional[str] = None
    ) -> BatchReport:
        """
        Run one refresh cycle.

        Args:
            sources: Sources to refresh; read from the registry when omitted
            horizon_days: Number of windows per source
            ttl: Freshness ttl for stored points
            provider: Only refresh sources of this provider

        Returns:
            BatchReport with one unit result per (source, window)

        Raises:
            SourceRegistryError: If the source registry cannot be read
        """
        horizon_days = self.horizon_days if horizon_days is None else horizon_days
        ttl = ttl or self.ttl

        report = BatchReport(
            run_id=uuid4(),
            provider=provider,
            horizon_days=horizon_days,
            ttl_seconds=ttl.total_seconds(),
            started_at=self.clock(),
        )
        await self._start_cycle_run(report)

        logger.info(
            f"Starting refresh cycle {report.run_id} "
            f"(horizon {horizon_days} days, ttl {ttl}, provider {provider or 'all'})"
        )

        # --------------------------------------------------
        # PHASE 1: SOURCES
        # --------------------------------------------------
        try:
            if sources is None:
                sources = await self.registry.list_sources(provider)
            elif provider:
                sources = [s for s in sources if s.provider == provider]
        except SourceRegistryError as e:
            logger.error(
                f"Refresh cycle {report.run_id} aborted: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            report.completed_at = self.clock()
            await self._finish_cycle_run(report, CycleStatus.FAILED, error_message=e.message)
            raise

        # --------------------------------------------------
        # PHASE 2: UNITS
        # --------------------------------------------------
        windows = generate_windows(horizon_days, today=report.started_at.date())
        units: List[RefreshUnit] = []
        for source in sources:
            company_id, skip_reason = await self._resolve(source)
            if skip_reason:
                logger.warning(f"Skipping source {source.source_id}: {skip_reason}")
            for window in windows:
                units.append(RefreshUnit(
                    index=len(units),
                    source=source,
                    window=window,
                    company_id=company_id,
                    skip_reason=skip_reason,
                ))

        # --------------------------------------------------
        # PHASE 3: REFRESH
        # --------------------------------------------------
        report.units = await self._run_units(units, ttl)
        report.completed_at = self.clock()

        status = CycleStatus.SUCCESS if report.failed == 0 else CycleStatus.PARTIAL
        await self._finish_cycle_run(report, status)

        summary = report.summary()
        logger.info(
            f"Refresh cycle {report.run_id} completed: {status.value} - "
            f"Units: {summary['total']}, Saved: {summary['saved']}, "
            f"Skipped: {summary['skipped']}, Failed: {summary['failed']}"
        )
        return report

    async def _resolve(self, source: SourceInfo):
        """Return (company_id, skip_reason) for a source"""
        try:
            client = self.clients.get(source.provider)
            if client is None:
                raise ResolutionError(
                    f"no fetch client for provider '{source.provider}'",
                    context={"source_id": str(source.source_id), "provider": source.provider}
                )

            locator_error = client.validate_locator(source.locator)
            if locator_error:
                raise ResolutionError(
                    locator_error,
                    context={"source_id": str(source.source_id), "locator": source.locator}
                )

            try:
                company_id = await self.registry.resolve_company(source.hotel_id)
            except SQLAlchemyError as e:
                raise ResolutionError(
                    "company lookup failed",
                    context={"source_id": str(source.source_id), "hotel_id": str(source.hotel_id)},
                    original_exception=e
                )

            if company_id is None:
                raise ResolutionError(
                    f"no company found for hotel {source.hotel_id}",
                    context={"source_id": str(source.source_id), "hotel_id": str(source.hotel_id)}
                )

        except ResolutionError as e:
            return None, e.message

        except Exception as e:
            logger.exception(f"Unexpected error resolving source {source.source_id}")
            return None, f"source resolution failed: {type(e).__name__}: {e}"

        return company_id, None

    async def _run_units(self, units: List[RefreshUnit], ttl: timedelta) -> List[UnitResult]:
        """Drain the units with a bounded worker pool, keeping input order"""
        if not units:
            return []

        queue: asyncio.Queue = asyncio.Queue()
        for unit in units:
            queue.put_nowait(unit)

        results: List[Optional[UnitResult]] = [None] * len(units)

        async def worker():
            while True:
                try:
                    unit = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                results[unit.index] = await self._run_unit_safely(unit, ttl)

        workers = min(self.max_workers, len(units))
        await asyncio.gather(*(worker() for _ in range(workers)))
        return results

    async def _run_unit_safely(self, unit: RefreshUnit, ttl: timedelta) -> UnitResult:
        """Run a unit, turning any exception into a failed result"""
        if unit.skip_reason:
            return self._result(unit, "skipped", error=unit.skip_reason)

        tracker = UnitTracker()
        try:
            async with self.session_factory() as session:
                return await self._run_unit(session, unit, ttl, tracker)

        except Exception as e:
            if isinstance(e, RefreshException):
                message = e.message
                logger.error(
                    f"Unit {unit.source.source_id} {unit.window} failed: {message}",
                    extra={"error_context": e.to_dict()}
                )
            else:
                message = f"{type(e).__name__}: {e}"
                logger.exception(f"Unexpected error in unit {unit.source.source_id} {unit.window}")

            record_status = None
            if tracker.record_id is not None:
                async with self.session_factory() as session:
                    store = RefreshRecordStore(session)
                    if await store.mark_failed_best_effort(tracker.record_id, message):
                        record_status = RefreshStatus.FAILED

            return self._result(
                unit,
                "failed",
                record_status=record_status,
                refresh_record_id=tracker.record_id,
                error=message,
            )

    async def _run_unit(
        self,
        session: AsyncSession,
        unit: RefreshUnit,
        ttl: timedelta,
        tracker: UnitTracker
    ) -> UnitResult:
        source, window = unit.source, unit.window
        now = self.clock()
        store = RefreshRecordStore(session)

        freshness = await FreshnessCache(session, store).check(source, window, ttl, now=now)
        if freshness.fresh:
            record = freshness.record
            await store.confirm_fresh(record, now=now)
            logger.info(f"Source {source.source_id} {window}: fresh, skipping fetch")
            return self._result(
                unit,
                "skipped",
                record_status=record.status,
                refresh_record_id=record.id,
                points=freshness.cached_points,
            )

        record = freshness.record
        if record is None:
            record = await store.create(source, window, unit.company_id)

        if not await store.acquire(record, stale_before=now - ttl, now=now):
            return self._result(
                unit,
                "skipped",
                record_status=record.status,
                refresh_record_id=record.id,
                error="refresh already in progress",
            )
        tracker.record_id = record.id

        fetch_result = await self._fetch(source, window)
        if not fetch_result.ok or not fetch_result.has_usable_fields:
            message = fetch_result.error_message or "provider returned no room label or rate"
            await store.complete(record, RefreshStatus.FAILED, error_message=message)
            logger.warning(f"Source {source.source_id} {window}: fetch failed: {message}")
            return self._result(
                unit,
                "failed",
                record_status=record.status,
                refresh_record_id=record.id,
                error=message,
            )

        upserter = DataPointUpserter(session, default_capacity=self.default_capacity)
        try:
            outcome = await upserter.replace(
                record,
                window,
                provider=source.provider,
                user_id=source.user_id,
                hotel_id=source.hotel_id,
                rooms=fetch_result.room_points(),
                now=self.clock(),
            )
        except UpsertError as e:
            logger.error(
                f"Source {source.source_id} {window}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            await store.complete(record, RefreshStatus.FAILED, error_message=e.message)
            return self._result(
                unit,
                "failed",
                record_status=record.status,
                refresh_record_id=record.id,
                error=e.message,
            )

        if not outcome.inserted:
            message = "no valid rates: " + "; ".join(d.reason for d in outcome.dropped)
            await store.complete(record, RefreshStatus.FAILED, error_message=message)
            return self._result(
                unit,
                "failed",
                record_status=record.status,
                refresh_record_id=record.id,
                dropped=outcome.dropped,
                error=message,
            )

        if outcome.dropped:
            await store.complete(
                record,
                RefreshStatus.PARTIALLY_SAVED,
                error_message=f"{len(outcome.dropped)} offers dropped"
            )
        else:
            await store.complete(record, RefreshStatus.SAVED)

        logger.info(
            f"Source {source.source_id} {window}: saved {len(outcome.inserted)} points "
            f"({len(outcome.dropped)} dropped)"
        )
        return self._result(
            unit,
            "saved",
            record_status=record.status,
            refresh_record_id=record.id,
            points=outcome.inserted,
            dropped=outcome.dropped,
        )

    async def _fetch(self, source: SourceInfo, window: Window) -> FetchResult:
        client = self.clients[source.provider]
        try:
            return await asyncio.wait_for(
                client.fetch(source.locator, window),
                timeout=self.fetch_timeout
            )
        except asyncio.TimeoutError as e:
            error = FetchTimeoutError(
                f"fetch timed out after {self.fetch_timeout} seconds",
                context={
                    "source_id": str(source.source_id),
                    "provider": source.provider,
                    "window": str(window),
                },
                original_exception=e
            )
            logger.warning(error.message, extra={"error_context": error.to_dict()})
            return FetchResult.failure(error.message)

    def _result(
        self,
        unit: RefreshUnit,
        status: str,
        record_status: Optional[RefreshStatus] = None,
        refresh_record_id: Optional[UUID] = None,
        points=None,
        dropped: Optional[List[DroppedPoint]] = None,
        error: Optional[str] = None
    ) -> UnitResult:
        return UnitResult(
            source_id=unit.source.source_id,
            hotel_id=unit.source.hotel_id,
            provider=unit.source.provider,
            window=unit.window,
            status=status,
            record_status=RefreshStatus(record_status) if record_status is not None else None,
            refresh_record_id=refresh_record_id,
            points=[ExtractedPointOut.model_validate(p) for p in points or []],
            dropped=dropped or [],
            error=error,
        )

    # --------------------------------------------------
    # Cycle audit trail
    # --------------------------------------------------

    async def _start_cycle_run(self, report: BatchReport) -> None:
        try:
            async with self.session_factory() as session:
                session.add(RefreshCycleRun(
                    run_id=report.run_id,
                    provider=report.provider,
                    status=CycleStatus.RUNNING,
                    started_at=report.started_at,
                    horizon_days=report.horizon_days,
                    ttl_seconds=report.ttl_seconds,
                ))
                await session.commit()
        except SQLAlchemyError:
            logger.exception(f"Could not record start of refresh cycle {report.run_id}")

    async def _finish_cycle_run(
        self,
        report: BatchReport,
        status: CycleStatus,
        error_message: Optional[str] = None
    ) -> None:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(RefreshCycleRun).where(RefreshCycleRun.run_id == report.run_id)
                )
                cycle_run = result.scalar_one_or_none()
                if cycle_run is None:
                    return
                cycle_run.status = status
                cycle_run.completed_at = report.completed_at
                cycle_run.duration_seconds = (report.completed_at - report.started_at).total_seconds()
                cycle_run.units_total = len(report.units)
                cycle_run.units_saved = report.saved
                cycle_run.units_failed = report.failed
                cycle_run.units_skipped = report.skipped
                cycle_run.error_message = error_message
                await session.commit()
        except SQLAlchemyError:
            logger.exception(f"Could not record completion of refresh cycle {report.run_id}")
