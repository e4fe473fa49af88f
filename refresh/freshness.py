"""
Freshness decision: skip a unit or refetch it
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession
from models.refresh_record import RefreshRecord
from models.data_point import ExtractedDataPoint
from refresh.records import RefreshRecordStore
from schemas.refresh import SourceInfo, Window
import logging

logger = logging.getLogger(__name__)


@dataclass
class FreshnessResult:
    fresh: bool
    record: Optional[RefreshRecord] = None
    cached_points: List[ExtractedDataPoint] = field(default_factory=list)
    reason: str = ""


def point_scope(record_id, window: Window, provider: str):
    """Filter selecting the points of one (record, window, provider)"""
    return and_(
        ExtractedDataPoint.refresh_record_id == record_id,
        ExtractedDataPoint.check_in == window.check_in,
        ExtractedDataPoint.check_out == window.check_out,
        ExtractedDataPoint.provider == provider,
    )


class FreshnessCache:
    """
    Decide whether stored points for a unit are recent enough to skip a fetch.

    The check only reads. Status changes that follow from the decision are
    left to the caller.
    """

    def __init__(self, db_session: AsyncSession, store: Optional[RefreshRecordStore] = None):
        self.db = db_session
        self.store = store or RefreshRecordStore(db_session)

    async def check(
        self,
        source: SourceInfo,
        window: Window,
        ttl: timedelta,
        now: Optional[datetime] = None
    ) -> FreshnessResult:
        now = now or datetime.utcnow()

        record = await self.store.find(source, window)
        if record is None:
            return FreshnessResult(fresh=False, reason="no refresh record")

        scope = point_scope(record.id, window, source.provider)

        latest_result = await self.db.execute(
            select(ExtractedDataPoint.updated_at)
            .where(scope)
            .order_by(ExtractedDataPoint.updated_at.desc())
            .limit(1)
        )
        latest_update = latest_result.scalar_one_or_none()

        if latest_update is None:
            return FreshnessResult(fresh=False, record=record, reason="no stored points")

        age = now - latest_update
        if age >= ttl:
            return FreshnessResult(
                fresh=False,
                record=record,
                reason=f"stored points are {age} old (ttl {ttl})"
            )

        points_result = await self.db.execute(
            select(ExtractedDataPoint)
            .where(scope)
            .order_by(ExtractedDataPoint.created_at, ExtractedDataPoint.room_type)
        )
        cached_points = list(points_result.scalars().all())

        logger.debug(
            f"Source {source.source_id} {window}: {len(cached_points)} points "
            f"updated {age} ago, within ttl"
        )
        return FreshnessResult(
            fresh=True,
            record=record,
            cached_points=cached_points,
            reason="stored points are within ttl"
        )
