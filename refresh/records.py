"""
Refresh record store and status state machine.

Every status change is a single compare-and-set UPDATE guarded by the
record's current status and version, committed immediately. Acquiring
`processing` is therefore the per-key lock: two refresh attempts on the same
(source, window, provider) can never both win it.

    pending ──┐
    failed ───┼──> processing ──> saved | failed | partially_saved
    saved ────┤        │
    partially_saved ───┘   (stale processing may be reclaimed)
"""

from typing import Any, Dict, Optional
from datetime import datetime
from uuid import UUID
from sqlalchemy import select, update, and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from models.base import RefreshStatus, FileType
from models.refresh_record import RefreshRecord, MetaRecord
from schemas.refresh import SourceInfo, Window
from core.exceptions import StateTransitionError, InvalidTransitionError
import logging

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS = {
    RefreshStatus.PENDING: {RefreshStatus.PROCESSING},
    RefreshStatus.FAILED: {RefreshStatus.PROCESSING},
    RefreshStatus.SAVED: {RefreshStatus.PROCESSING},
    RefreshStatus.PARTIALLY_SAVED: {RefreshStatus.PROCESSING},
    RefreshStatus.PROCESSING: {
        RefreshStatus.SAVED,
        RefreshStatus.FAILED,
        RefreshStatus.PARTIALLY_SAVED,
    },
}

TERMINAL_STATUSES = {
    RefreshStatus.SAVED,
    RefreshStatus.FAILED,
    RefreshStatus.PARTIALLY_SAVED,
}


def check_transition(from_status: RefreshStatus, to_status: RefreshStatus) -> None:
    """Raise InvalidTransitionError unless the state machine allows the move"""
    if to_status not in ALLOWED_TRANSITIONS.get(from_status, set()):
        raise InvalidTransitionError(
            f"cannot move refresh record from {from_status.value} to {to_status.value}",
            context={"from_status": from_status.value, "to_status": to_status.value}
        )


class RefreshRecordStore:
    """
    Persistence and lifecycle of RefreshRecords.

    Responsibilities:
    - Lookup by (source, window, provider)
    - Creation of a record with its MetaRecord
    - Atomic status transitions
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def find(self, source: SourceInfo, window: Window) -> Optional[RefreshRecord]:
        """Find the record whose metadata matches the source and exact window"""
        result = await self.db.execute(
            select(RefreshRecord)
            .join(MetaRecord, MetaRecord.refresh_record_id == RefreshRecord.id)
            .where(
                and_(
                    MetaRecord.source_id == source.source_id,
                    MetaRecord.provider == source.provider,
                    MetaRecord.from_date == window.check_in,
                    MetaRecord.to_date == window.check_out,
                    RefreshRecord.provider == source.provider,
                )
            )
            .execution_options(populate_existing=True)
        )
        return result.unique().scalar_one_or_none()

    async def get(self, record_id: UUID) -> Optional[RefreshRecord]:
        return await self.db.get(RefreshRecord, record_id, populate_existing=True)

    async def create(
        self,
        source: SourceInfo,
        window: Window,
        company_id: UUID
    ) -> RefreshRecord:
        """
        Create a pending record and its metadata.

        If another worker created the same key first, the unique index on the
        metadata rejects this insert and the existing record is returned.
        """
        record = RefreshRecord(
            user_id=source.user_id,
            company_id=company_id,
            file_type=FileType.PROPERTY_PRICE_DATA,
            provider=source.provider,
            status=RefreshStatus.PENDING,
            version=0,
            attempt_count=0,
        )
        record.meta = MetaRecord(
            user_id=source.user_id,
            hotel_id=source.hotel_id,
            source_id=source.source_id,
            provider=source.provider,
            data_source_name=source.provider,
            from_date=window.check_in,
            to_date=window.check_out,
        )
        self.db.add(record)

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            existing = await self.find(source, window)
            if existing is None:
                raise StateTransitionError(
                    "failed to create refresh record",
                    context={
                        "source_id": str(source.source_id),
                        "window": str(window),
                    },
                    original_exception=e
                )
            logger.info(
                f"Refresh record for source {source.source_id} {window} "
                f"was created concurrently, reusing {existing.id}"
            )
            return existing

        logger.info(
            f"Created refresh record {record.id} for source {source.source_id} "
            f"({source.provider}) {window}"
        )
        return record

    async def _compare_and_set(
        self,
        record: RefreshRecord,
        from_status: RefreshStatus,
        to_status: RefreshStatus,
        values: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None
    ) -> bool:
        """Apply a guarded status update and commit it. Returns False if the guard failed."""
        stmt = (
            update(RefreshRecord)
            .where(
                and_(
                    RefreshRecord.id == record.id,
                    RefreshRecord.status == from_status,
                    RefreshRecord.version == record.version,
                )
            )
            .values(
                status=to_status,
                version=RefreshRecord.version + 1,
                updated_at=now or datetime.utcnow(),
                **(values or {})
            )
            .execution_options(synchronize_session=False)
        )

        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StateTransitionError(
                "status update failed",
                context={
                    "refresh_record_id": str(record.id),
                    "from_status": from_status.value,
                    "to_status": to_status.value,
                },
                original_exception=e
            )

        await self.db.refresh(record)
        return result.rowcount == 1

    async def acquire(
        self,
        record: RefreshRecord,
        stale_before: datetime,
        now: Optional[datetime] = None
    ) -> bool:
        """
        Move a record to processing ahead of a fetch.

        A record already in processing is only taken over when its attempt
        started before `stale_before`. Returns False when another attempt
        holds the record.
        """
        now = now or datetime.utcnow()
        current = RefreshStatus(record.status)

        if current == RefreshStatus.PROCESSING:
            started = record.processing_started_at
            if started is not None and started >= stale_before:
                logger.info(f"Refresh record {record.id} is already being processed")
                return False
            logger.warning(
                f"Reclaiming refresh record {record.id} stuck in processing "
                f"since {started}"
            )
        else:
            check_transition(current, RefreshStatus.PROCESSING)

        acquired = await self._compare_and_set(
            record,
            from_status=current,
            to_status=RefreshStatus.PROCESSING,
            values={
                "processing_started_at": now,
                "attempt_count": RefreshRecord.attempt_count + 1,
            },
            now=now
        )
        if not acquired:
            logger.info(f"Lost processing race for refresh record {record.id}")
        return acquired

    async def complete(
        self,
        record: RefreshRecord,
        to_status: RefreshStatus,
        error_message: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> RefreshRecord:
        """Move a processing record to a terminal status"""
        now = now or datetime.utcnow()
        await self.db.refresh(record)
        current = RefreshStatus(record.status)
        check_transition(current, to_status)

        values: Dict[str, Any] = {
            "processing_started_at": None,
            "error_message": error_message,
        }
        if to_status == RefreshStatus.FAILED:
            values["last_failure_at"] = now
        else:
            values["last_success_at"] = now

        if not await self._compare_and_set(record, current, to_status, values, now=now):
            raise StateTransitionError(
                "refresh record changed while processing",
                context={
                    "refresh_record_id": str(record.id),
                    "to_status": to_status.value,
                }
            )

        logger.info(f"Refresh record {record.id}: {current.value} -> {to_status.value}")
        return record

    async def confirm_fresh(self, record: RefreshRecord, now: Optional[datetime] = None) -> bool:
        """
        Mark a record with fresh data as saved.

        No-op for records that are already saved or currently being
        processed. Other records pass through processing so that saved is
        only ever entered from processing.
        """
        current = RefreshStatus(record.status)
        if current in (RefreshStatus.SAVED, RefreshStatus.PARTIALLY_SAVED, RefreshStatus.PROCESSING):
            return False

        now = now or datetime.utcnow()
        if not await self._compare_and_set(
            record,
            from_status=current,
            to_status=RefreshStatus.PROCESSING,
            values={"processing_started_at": now},
            now=now
        ):
            return False

        await self.complete(record, RefreshStatus.SAVED, now=now)
        return True

    async def mark_failed_best_effort(self, record_id: UUID, error_message: str) -> bool:
        """
        Flip a processing record to failed after an unexpected error.

        Never raises: the caller is already handling a failure.
        """
        now = datetime.utcnow()
        try:
            result = await self.db.execute(
                update(RefreshRecord)
                .where(
                    and_(
                        RefreshRecord.id == record_id,
                        RefreshRecord.status == RefreshStatus.PROCESSING,
                    )
                )
                .values(
                    status=RefreshStatus.FAILED,
                    version=RefreshRecord.version + 1,
                    error_message=error_message,
                    last_failure_at=now,
                    processing_started_at=None,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            return result.rowcount == 1
        except Exception:
            logger.exception(f"Could not mark refresh record {record_id} as failed")
            await self.db.rollback()
            return False
