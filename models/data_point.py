from sqlalchemy import Column, String, Boolean, DateTime, Date, Numeric, JSON, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from models.base import Base


class ExtractedDataPoint(Base):
    """
    One fetched rate observation for a refresh record.

    Rows are never updated in place: a successful refetch deletes every point
    of the (record, window, provider) scope and inserts the new set, so
    updated_at doubles as the fetch time used by the freshness check.
    """
    __tablename__ = "extracted_data_points"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    refresh_record_id = Column(
        Uuid,
        ForeignKey("refresh_records.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id = Column(Uuid, nullable=True)

    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    stay_date = Column(Date, nullable=True)

    room_type = Column(String(255), nullable=False)
    room_type_id = Column(Uuid, ForeignKey("room_types.id"), nullable=True)
    rate = Column(Numeric(10, 2), nullable=False)
    provider = Column(String(100), nullable=False)

    is_valid = Column(Boolean, nullable=False, default=True)
    validation_errors = Column(JSON, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    refresh_record = relationship("RefreshRecord", back_populates="points")

    __table_args__ = (
        Index(
            "idx_point_record_window",
            "refresh_record_id", "check_in", "check_out", "provider"
        ),
        Index("idx_point_updated", "refresh_record_id", "updated_at"),
    )
