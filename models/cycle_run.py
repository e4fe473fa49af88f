from sqlalchemy import Column, Integer, String, Enum, DateTime, Float, Text, Index, Uuid
from datetime import datetime
import uuid
from models.base import Base, CycleStatus, enum_values


class RefreshCycleRun(Base):
    """
    Tracks metadata for each refresh cycle.

    Purpose:
    - Audit trail of all batch refreshes
    - Unit outcome counts per cycle
    - Error tracking for cycles that could not start
    """
    __tablename__ = "refresh_cycle_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(Uuid, default=uuid.uuid4, unique=True, nullable=False, index=True)

    provider = Column(String(100), nullable=True)  # None means every provider
    status = Column(
        Enum(CycleStatus, name="cycle_status", values_callable=enum_values),
        default=CycleStatus.RUNNING,
        nullable=False,
        index=True
    )

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Parameters
    horizon_days = Column(Integer, nullable=False)
    ttl_seconds = Column(Float, nullable=False)

    # Statistics
    units_total = Column(Integer, default=0)
    units_saved = Column(Integer, default=0)
    units_failed = Column(Integer, default=0)
    units_skipped = Column(Integer, default=0)

    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_cycle_run_status", "status", "started_at"),
    )
