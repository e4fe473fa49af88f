from sqlalchemy import Column, String, DateTime, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from models.base import Base


class ScrapeSource(Base):
    """
    A tracked external listing for one hotel.

    Design:
    - One row per (hotel, provider) listing, registered by an administrator
    - source_locator is provider specific (external hotel id, URL, ...)
    - Registration order (created_at, id) is the order a cycle visits sources
    """
    __tablename__ = "scrape_sources"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    hotel_id = Column(Uuid, ForeignKey("hotels.id"), nullable=False, index=True)
    user_id = Column(Uuid, nullable=True, index=True)  # Owning tenant user
    provider = Column(String(100), nullable=False, index=True)
    source_locator = Column(String(2048), nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    hotel = relationship("Hotel")

    __table_args__ = (
        Index("idx_scrape_source_registration", "created_at", "id"),
    )
