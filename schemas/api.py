"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any
from datetime import date, datetime
from uuid import UUID
from models.base import RefreshStatus, CycleStatus
from schemas.refresh import ExtractedPointOut


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    record_counts: Dict[str, int] = Field(default_factory=dict)
    total_records: int = 0
    failed_records: int = 0
    last_cycle_status: Optional[CycleStatus] = None
    last_cycle_at: Optional[datetime] = None
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")

    @validator("status", pre=True, always=True)
    def determine_status(cls, v, values):
        """Determine overall health status"""
        if not values.get("database_connected", False):
            return "unhealthy"

        failed = values.get("failed_records", 0)
        total = values.get("total_records", 0)

        if total == 0:
            return "healthy"  # Nothing refreshed yet

        if failed == 0:
            return "healthy"
        elif failed < total:
            return "degraded"
        else:
            return "unhealthy"

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "status": "degraded",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "record_counts": {"saved": 40, "failed": 2},
                "total_records": 42,
                "failed_records": 2,
                "last_cycle_status": "partial",
                "last_cycle_at": "2024-01-15T10:00:00Z"
            }
        }


# ============================================================================
# Refresh Record Schemas
# ============================================================================

class RefreshRecordResponse(BaseModel):
    """A refresh record together with the window it covers"""
    id: UUID
    user_id: Optional[UUID]
    company_id: Optional[UUID]
    hotel_id: Optional[UUID]
    source_id: Optional[UUID]
    provider: str
    status: RefreshStatus
    check_in: Optional[date]
    check_out: Optional[date]
    attempt_count: int
    error_message: Optional[str]
    last_success_at: Optional[datetime]
    last_failure_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record):
        meta = record.meta
        return cls(
            id=record.id,
            user_id=record.user_id,
            company_id=record.company_id,
            hotel_id=meta.hotel_id if meta else None,
            source_id=meta.source_id if meta else None,
            provider=record.provider,
            status=record.status,
            check_in=meta.from_date if meta else None,
            check_out=meta.to_date if meta else None,
            attempt_count=record.attempt_count or 0,
            error_message=record.error_message,
            last_success_at=record.last_success_at,
            last_failure_at=record.last_failure_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    class Config:
        use_enum_values = True


class PaginationMetadata(BaseModel):
    """Pagination metadata"""
    total_items: int
    total_pages: int
    current_page: int
    page_size: int
    has_next: bool
    has_previous: bool


class RefreshRecordListResponse(BaseModel):
    """Paginated refresh record response"""
    items: List[RefreshRecordResponse]
    pagination: PaginationMetadata
    filters_applied: Dict[str, Any] = Field(default_factory=dict)


class RecordPointsResponse(BaseModel):
    """Stored data points of one refresh record"""
    refresh_record_id: UUID
    status: RefreshStatus
    points: List[ExtractedPointOut]

    class Config:
        use_enum_values = True


# ============================================================================
# Cycle Run Schemas
# ============================================================================

class CycleRunResponse(BaseModel):
    """Refresh cycle audit entry"""
    run_id: UUID
    provider: Optional[str]
    status: CycleStatus
    started_at: datetime
    completed_at: Optional[datetime]
    duration_seconds: Optional[float]
    horizon_days: int
    ttl_seconds: float
    units_total: int
    units_saved: int
    units_failed: int
    units_skipped: int
    error_message: Optional[str] = None

    class Config:
        from_attributes = True
        use_enum_values = True
