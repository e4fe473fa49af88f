"""
Replace the stored data points of a refresh record.

Delete-then-insert runs inside one transaction, so readers either see the
previous set of points or the new one, never a mix.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID
from sqlalchemy import select, delete, and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from models.hotel import RoomType
from models.data_point import ExtractedDataPoint
from models.refresh_record import RefreshRecord
from refresh.freshness import point_scope
from refresh.normalizer import RateNormalizer
from schemas.refresh import FetchedRoom, DroppedPoint, Window
from core.config import settings
from core.exceptions import UpsertError
import logging

logger = logging.getLogger(__name__)


@dataclass
class UpsertOutcome:
    inserted: List[ExtractedDataPoint] = field(default_factory=list)
    dropped: List[DroppedPoint] = field(default_factory=list)


class DataPointUpserter:
    """
    Persist a refetched set of points for one (record, window, provider).

    Ensures:
    - Every room label has a RoomType entry for the hotel
    - Only rates that parse to non-negative amounts are stored
    - The previous points of the scope are fully replaced
    """

    def __init__(
        self,
        db_session: AsyncSession,
        normalizer: Optional[RateNormalizer] = None,
        default_capacity: Optional[int] = None
    ):
        self.db = db_session
        self.normalizer = normalizer or RateNormalizer()
        self.default_capacity = default_capacity or settings.DEFAULT_ROOM_CAPACITY

    async def resolve_room_type(self, hotel_id: UUID, label: str) -> RoomType:
        """Find the catalog entry for an exact room label, creating it on first sighting"""
        room_type = await self._find_room_type(hotel_id, label)
        if room_type is not None:
            return room_type

        room_type = RoomType(hotel_id=hotel_id, name=label, capacity=self.default_capacity)
        self.db.add(room_type)
        try:
            await self.db.commit()
        except IntegrityError:
            # Another worker registered the same label first
            await self.db.rollback()
            room_type = await self._find_room_type(hotel_id, label)
            if room_type is None:
                raise
            return room_type

        logger.info(f"Created room type '{label}' (capacity {room_type.capacity}) for hotel {hotel_id}")
        return room_type

    async def _find_room_type(self, hotel_id: UUID, label: str) -> Optional[RoomType]:
        result = await self.db.execute(
            select(RoomType).where(
                and_(RoomType.hotel_id == hotel_id, RoomType.name == label)
            )
        )
        return result.scalar_one_or_none()

    async def replace(
        self,
        record: RefreshRecord,
        window: Window,
        provider: str,
        user_id: Optional[UUID],
        hotel_id: UUID,
        rooms: List[FetchedRoom],
        now: Optional[datetime] = None
    ) -> UpsertOutcome:
        """
        Replace the points of (record, window, provider) with the valid rooms.

        Malformed rates are dropped and reported. When no valid point remains
        the stored points are left untouched and nothing is inserted.

        Raises:
            UpsertError: If the database rejects any step
        """
        record_id = record.id
        now = now or datetime.utcnow()

        valid, dropped = self.normalizer.normalize(rooms)
        if not valid:
            logger.warning(
                f"No valid rates for refresh record {record_id} {window}; "
                f"{len(dropped)} offers dropped"
            )
            return UpsertOutcome(inserted=[], dropped=dropped)

        operation = "room_type"
        try:
            # Keep ids only; a rollback while resolving expires loaded rows
            room_type_ids: Dict[str, UUID] = {}
            for point in valid:
                if point.room_label not in room_type_ids:
                    room_type = await self.resolve_room_type(hotel_id, point.room_label)
                    room_type_ids[point.room_label] = room_type.id

            operation = "delete"
            delete_result = await self.db.execute(
                delete(ExtractedDataPoint)
                .where(point_scope(record_id, window, provider))
                .execution_options(synchronize_session=False)
            )

            operation = "insert"
            inserted = [
                ExtractedDataPoint(
                    refresh_record_id=record_id,
                    user_id=user_id,
                    check_in=window.check_in,
                    check_out=window.check_out,
                    stay_date=window.check_in,
                    room_type=point.room_label,
                    room_type_id=room_type_ids[point.room_label],
                    rate=point.rate,
                    provider=provider,
                    is_valid=True,
                    validation_errors=None,
                    created_at=now,
                    updated_at=now,
                )
                for point in valid
            ]
            self.db.add_all(inserted)

            operation = "commit"
            await self.db.commit()

        except SQLAlchemyError as e:
            await self.db.rollback()
            raise UpsertError(
                f"Failed to replace data points ({operation})",
                context={
                    "refresh_record_id": str(record_id),
                    "window": str(window),
                    "provider": provider,
                    "operation": operation,
                },
                original_exception=e
            )

        logger.info(
            f"Replaced points for refresh record {record_id} {window}: "
            f"removed {delete_result.rowcount}, inserted {len(inserted)}, dropped {len(dropped)}"
        )
        return UpsertOutcome(inserted=inserted, dropped=dropped)
