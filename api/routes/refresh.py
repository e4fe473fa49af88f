"""
Refresh endpoints: trigger a cycle and inspect records, points and runs
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_
from api.dependencies import get_db, get_orchestrator
from schemas.api import (
    RefreshRecordResponse,
    RefreshRecordListResponse,
    RecordPointsResponse,
    PaginationMetadata,
    CycleRunResponse,
)
from schemas.refresh import BatchReport, ExtractedPointOut
from models.base import RefreshStatus
from models.refresh_record import RefreshRecord, MetaRecord
from models.data_point import ExtractedDataPoint
from models.cycle_run import RefreshCycleRun
from refresh.orchestrator import RefreshOrchestrator
from core.exceptions import SourceRegistryError
from typing import List, Optional
from datetime import timedelta
from uuid import UUID
import math
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/refresh", tags=["Refresh"])


@router.post("/run", response_model=BatchReport)
async def run_refresh(
    request: Request,
    provider: Optional[str] = Query(None, description="Only refresh sources of this provider"),
    horizon_days: Optional[int] = Query(None, ge=0, le=365, description="Number of stay windows"),
    ttl_hours: Optional[float] = Query(None, gt=0, description="Freshness ttl in hours"),
    orchestrator: RefreshOrchestrator = Depends(get_orchestrator)
):
    """Run one refresh cycle and return its report"""
    request_id = getattr(request.state, "request_id", None)
    logger.info(
        f"[{request_id}] POST /refresh/run - provider={provider}, "
        f"horizon_days={horizon_days}, ttl_hours={ttl_hours}"
    )

    try:
        return await orchestrator.run_cycle(
            provider=provider,
            horizon_days=horizon_days,
            ttl=timedelta(hours=ttl_hours) if ttl_hours else None,
        )
    except SourceRegistryError as e:
        raise HTTPException(status_code=503, detail=e.message)


@router.get("/records", response_model=RefreshRecordListResponse)
async def list_records(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=1000, description="Items per page"),
    status: Optional[RefreshStatus] = Query(None, description="Filter by status"),
    provider: Optional[str] = Query(None, description="Filter by provider"),
    hotel_id: Optional[UUID] = Query(None, description="Filter by hotel"),
    db: AsyncSession = Depends(get_db)
):
    """Paginated refresh records, most recently updated first"""
    filters = []

    if status:
        filters.append(RefreshRecord.status == status)

    if provider:
        filters.append(RefreshRecord.provider == provider)

    if hotel_id:
        filters.append(MetaRecord.hotel_id == hotel_id)

    query = select(RefreshRecord).outerjoin(MetaRecord, MetaRecord.refresh_record_id == RefreshRecord.id)
    count_query = select(func.count(RefreshRecord.id)).select_from(RefreshRecord).outerjoin(
        MetaRecord, MetaRecord.refresh_record_id == RefreshRecord.id
    )
    if filters:
        query = query.where(and_(*filters))
        count_query = count_query.where(and_(*filters))

    count_result = await db.execute(count_query)
    total_items = count_result.scalar()

    total_pages = math.ceil(total_items / page_size) if total_items > 0 else 0
    offset = (page - 1) * page_size

    query = query.order_by(RefreshRecord.updated_at.desc(), RefreshRecord.id).offset(offset).limit(page_size)
    result = await db.execute(query)
    records = result.unique().scalars().all()

    return RefreshRecordListResponse(
        items=[RefreshRecordResponse.from_record(record) for record in records],
        pagination=PaginationMetadata(
            current_page=page,
            page_size=page_size,
            total_items=total_items,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_previous=page > 1
        ),
        filters_applied={k: v for k, v in {
            "status": status.value if status else None,
            "provider": provider,
            "hotel_id": str(hotel_id) if hotel_id else None,
        }.items() if v is not None}
    )


@router.get("/records/{record_id}/points", response_model=RecordPointsResponse)
async def get_record_points(record_id: UUID, db: AsyncSession = Depends(get_db)):
    """Stored data points of one refresh record"""
    record = await db.get(RefreshRecord, record_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Refresh record {record_id} not found")

    result = await db.execute(
        select(ExtractedDataPoint)
        .where(ExtractedDataPoint.refresh_record_id == record_id)
        .order_by(ExtractedDataPoint.check_in, ExtractedDataPoint.room_type)
    )
    points = result.scalars().all()

    return RecordPointsResponse(
        refresh_record_id=record.id,
        status=record.status,
        points=[ExtractedPointOut.model_validate(point) for point in points],
    )


@router.get("/runs", response_model=List[CycleRunResponse])
async def list_runs(
    limit: int = Query(20, ge=1, le=200, description="Number of runs to return"),
    db: AsyncSession = Depends(get_db)
):
    """Most recent refresh cycles"""
    result = await db.execute(
        select(RefreshCycleRun)
        .order_by(RefreshCycleRun.started_at.desc(), RefreshCycleRun.id.desc())
        .limit(limit)
    )
    return [CycleRunResponse.model_validate(run) for run in result.scalars().all()]
