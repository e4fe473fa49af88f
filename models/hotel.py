from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from models.base import Base


class Company(Base):
    """Tenant that owns hotels. Read-only to the refresh pipeline."""
    __tablename__ = "companies"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    hotels = relationship("Hotel", back_populates="company")


class Hotel(Base):
    """Hotel property. Read-only to the refresh pipeline."""
    __tablename__ = "hotels"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    location = Column(String(255), nullable=True)
    hotel_type = Column(String(100), nullable=True)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    company = relationship("Company", back_populates="hotels")


class RoomType(Base):
    """
    Room-type catalog entry for a hotel.

    Keyed by (hotel, exact room label) and shared by every source of the
    hotel. Created on first sighting, never deleted by the pipeline.
    """
    __tablename__ = "room_types"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    hotel_id = Column(Uuid, ForeignKey("hotels.id"), nullable=False)
    name = Column(String(255), nullable=False)
    capacity = Column(Integer, nullable=False, default=2)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_room_type_hotel_name", "hotel_id", "name", unique=True),
    )
