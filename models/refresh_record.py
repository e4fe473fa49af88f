from sqlalchemy import Column, String, Integer, Enum, DateTime, Date, Text, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from models.base import Base, RefreshStatus, FileType, enum_values


class RefreshRecord(Base):
    """
    Unit-of-work record for one (source, window, provider) refresh.

    Purpose:
    - Persist the lifecycle status of each refresh unit
    - Serialize concurrent refresh attempts on the same key

    Design:
    - status changes are compare-and-set updates guarded by `version`
    - the window lives on the associated MetaRecord
    - failed records are kept and retried on a later cycle
    """
    __tablename__ = "refresh_records"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Ownership
    user_id = Column(Uuid, nullable=True, index=True)
    company_id = Column(Uuid, nullable=False, index=True)

    file_type = Column(
        Enum(FileType, name="file_type", values_callable=enum_values),
        nullable=False,
        default=FileType.PROPERTY_PRICE_DATA
    )
    provider = Column(String(100), nullable=False, index=True)

    # Lifecycle
    status = Column(
        Enum(RefreshStatus, name="refresh_status", values_callable=enum_values),
        nullable=False,
        default=RefreshStatus.PENDING,
        index=True
    )
    version = Column(Integer, nullable=False, default=0)
    attempt_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)

    processing_started_at = Column(DateTime, nullable=True)
    last_success_at = Column(DateTime, nullable=True)
    last_failure_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    meta = relationship(
        "MetaRecord",
        back_populates="refresh_record",
        uselist=False,
        lazy="joined",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    points = relationship(
        "ExtractedDataPoint",
        back_populates="refresh_record",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    __table_args__ = (
        Index("idx_refresh_record_owner", "user_id", "company_id", "provider"),
    )


class MetaRecord(Base):
    """
    Window and source metadata of a refresh record.

    Created together with its RefreshRecord and never modified afterwards.
    The unique index keeps one record per (source, provider, window).
    """
    __tablename__ = "refresh_record_meta"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    refresh_record_id = Column(
        Uuid,
        ForeignKey("refresh_records.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )
    user_id = Column(Uuid, nullable=True)
    hotel_id = Column(Uuid, ForeignKey("hotels.id"), nullable=False, index=True)
    source_id = Column(Uuid, ForeignKey("scrape_sources.id"), nullable=False)
    provider = Column(String(100), nullable=False)
    data_source_name = Column(String(100), nullable=True)

    from_date = Column(Date, nullable=False)
    to_date = Column(Date, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    refresh_record = relationship("RefreshRecord", back_populates="meta")

    __table_args__ = (
        Index(
            "idx_meta_source_window",
            "source_id", "provider", "from_date", "to_date",
            unique=True
        ),
    )
