"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums (RefreshStatus, CycleStatus)
    hotel: Companies, hotels and the room-type catalog
    source: Tracked external listings (the source registry)
    refresh_record: Refresh unit-of-work records and their window metadata
    data_point: Extracted rate observations
    cycle_run: Refresh cycle audit trail

Relationships:
    - RefreshRecord → MetaRecord (one-to-one, owned)
    - RefreshRecord → ExtractedDataPoint (one-to-many, owned)
    - ExtractedDataPoint → RoomType (many-to-one, referenced)

Importing this package registers every table on Base.metadata.
"""

from models.base import Base, RefreshStatus, CycleStatus, FileType
from models.hotel import Company, Hotel, RoomType
from models.source import ScrapeSource
from models.refresh_record import RefreshRecord, MetaRecord
from models.data_point import ExtractedDataPoint
from models.cycle_run import RefreshCycleRun

__all__ = [
    "Base",
    "RefreshStatus",
    "CycleStatus",
    "FileType",
    "Company",
    "Hotel",
    "RoomType",
    "ScrapeSource",
    "RefreshRecord",
    "MetaRecord",
    "ExtractedDataPoint",
    "RefreshCycleRun",
]
