"""
Unit tests for the data point upserter
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import patch
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError
from refresh.upserter import DataPointUpserter
from refresh.records import RefreshRecordStore
from models.hotel import RoomType
from models.data_point import ExtractedDataPoint
from schemas.refresh import FetchedRoom, Window
from core.exceptions import UpsertError

WINDOW = Window(check_in=date(2025, 3, 2), check_out=date(2025, 3, 3))
NOW = datetime(2025, 3, 1, 12, 0, 0)


async def stored_points(session, record_id):
    result = await session.execute(
        select(ExtractedDataPoint)
        .where(ExtractedDataPoint.refresh_record_id == record_id)
        .order_by(ExtractedDataPoint.room_type)
    )
    return result.scalars().all()


async def make_record(session, seeded):
    return await RefreshRecordStore(session).create(
        seeded["source_info"], WINDOW, seeded["company"].id
    )


async def replace(session, seeded, record, rooms, now=NOW):
    source = seeded["source_info"]
    return await DataPointUpserter(session).replace(
        record,
        WINDOW,
        provider=source.provider,
        user_id=source.user_id,
        hotel_id=source.hotel_id,
        rooms=rooms,
        now=now,
    )


class TestDataPointUpserter:
    """Test point replacement"""

    @pytest.mark.asyncio
    async def test_inserts_point_and_room_type(self, db_session, seeded):
        record = await make_record(db_session, seeded)
        record_id = record.id

        outcome = await replace(
            db_session, seeded, record,
            [FetchedRoom(room_label="Deluxe King", rate_text="$199.00 nightly")]
        )

        assert len(outcome.inserted) == 1
        assert outcome.dropped == []

        points = await stored_points(db_session, record_id)
        assert len(points) == 1
        assert points[0].rate == Decimal("199.00")
        assert points[0].check_in == WINDOW.check_in
        assert points[0].updated_at == NOW

        room_type = (await db_session.execute(select(RoomType))).scalar_one()
        assert room_type.name == "Deluxe King"
        assert room_type.capacity == 2
        assert points[0].room_type_id == room_type.id

    @pytest.mark.asyncio
    async def test_replace_removes_previous_points(self, db_session, seeded):
        """After a replace only the new set is visible"""
        record = await make_record(db_session, seeded)
        record_id = record.id
        await replace(db_session, seeded, record, [
            FetchedRoom(room_label="Twin", rate_text="120"),
            FetchedRoom(room_label="Suite", rate_text="300"),
        ])

        await replace(db_session, seeded, record, [
            FetchedRoom(room_label="Deluxe King", rate_text="199"),
        ])

        points = await stored_points(db_session, record_id)
        assert [p.room_type for p in points] == ["Deluxe King"]

    @pytest.mark.asyncio
    async def test_room_types_are_reused(self, db_session, seeded):
        record = await make_record(db_session, seeded)
        await replace(db_session, seeded, record, [FetchedRoom(room_label="Twin", rate_text="120")])
        await replace(db_session, seeded, record, [FetchedRoom(room_label="Twin", rate_text="125")])

        count = (await db_session.execute(select(func.count(RoomType.id)))).scalar()
        assert count == 1

    @pytest.mark.asyncio
    async def test_malformed_rates_are_dropped(self, db_session, seeded):
        record = await make_record(db_session, seeded)

        outcome = await replace(db_session, seeded, record, [
            FetchedRoom(room_label="Twin", rate_text="120"),
            FetchedRoom(room_label="Suite", rate_text="Sold out"),
        ])

        assert [p.room_type for p in outcome.inserted] == ["Twin"]
        assert [d.room_label for d in outcome.dropped] == ["Suite"]

    @pytest.mark.asyncio
    async def test_nothing_valid_keeps_old_points(self, db_session, seeded):
        record = await make_record(db_session, seeded)
        record_id = record.id
        await replace(db_session, seeded, record, [FetchedRoom(room_label="Twin", rate_text="120")])

        outcome = await replace(db_session, seeded, record, [
            FetchedRoom(room_label="Twin", rate_text="-1"),
        ])

        assert outcome.inserted == []
        assert len(outcome.dropped) == 1
        points = await stored_points(db_session, record_id)
        assert [p.rate for p in points] == [Decimal("120.00")]

    @pytest.mark.asyncio
    async def test_storage_failure_rolls_back(self, db_session, seeded):
        """A failed commit leaves the previous points in place"""
        record = await make_record(db_session, seeded)
        record_id = record.id
        await replace(db_session, seeded, record, [FetchedRoom(room_label="Twin", rate_text="120")])

        with patch.object(
            db_session,
            "commit",
            side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error")),
        ):
            with pytest.raises(UpsertError) as exc_info:
                await replace(db_session, seeded, record, [FetchedRoom(room_label="Twin", rate_text="130")])

        assert exc_info.value.context["operation"] == "commit"
        points = await stored_points(db_session, record_id)
        assert [p.rate for p in points] == [Decimal("120.00")]
