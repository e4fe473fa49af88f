"""
Pydantic schemas for the refresh pipeline and the HTTP API.
"""

from schemas.refresh import (
    Window,
    SourceInfo,
    FetchedRoom,
    FetchResult,
    ExtractedPointOut,
    DroppedPoint,
    UnitResult,
    BatchReport,
)
from schemas.api import (
    HealthCheckResponse,
    RefreshRecordResponse,
    RefreshRecordListResponse,
    RecordPointsResponse,
    PaginationMetadata,
    CycleRunResponse,
)

__all__ = [
    "Window",
    "SourceInfo",
    "FetchedRoom",
    "FetchResult",
    "ExtractedPointOut",
    "DroppedPoint",
    "UnitResult",
    "BatchReport",
    "HealthCheckResponse",
    "RefreshRecordResponse",
    "RefreshRecordListResponse",
    "RecordPointsResponse",
    "PaginationMetadata",
    "CycleRunResponse",
]
