"""
Pydantic schemas passed between the refresh pipeline components
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Literal, Tuple
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID
from models.base import RefreshStatus


UnitStatus = Literal["skipped", "saved", "failed"]


def offer_text(value) -> Optional[str]:
    """Provider value as stripped text; numbers are written out in fixed point"""
    if value is None:
        return None
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        value = format(Decimal(str(value)), "f")
    value = str(value).strip()
    return value or None


class Window(BaseModel):
    """A (check-in, check-out) stay-date pair"""
    check_in: date
    check_out: date

    @validator("check_out")
    def check_out_after_check_in(cls, v, values):
        check_in = values.get("check_in")
        if check_in and v <= check_in:
            raise ValueError("check_out must be after check_in")
        return v

    def as_tuple(self) -> Tuple[date, date]:
        return (self.check_in, self.check_out)

    def __str__(self) -> str:
        return f"{self.check_in.isoformat()}..{self.check_out.isoformat()}"

    class Config:
        frozen = True


class SourceInfo(BaseModel):
    """Read-only view of a registered source"""
    source_id: UUID
    hotel_id: UUID
    user_id: Optional[UUID] = None
    provider: str = Field(..., min_length=1, max_length=100)
    locator: str = Field(..., min_length=1)

    class Config:
        frozen = True


class FetchedRoom(BaseModel):
    """One room offer as returned by a provider"""
    room_label: Optional[str] = None
    rate_text: Optional[str] = None

    @validator("room_label", "rate_text", pre=True)
    def blank_to_none(cls, v):
        return offer_text(v)


class FetchResult(BaseModel):
    """
    Structured result of a provider fetch.

    `room_label`/`rate_text` describe the headline offer. Providers that list
    several offers also fill `rooms`; when they do not, the headline offer is
    the only point.
    """
    ok: bool
    room_label: Optional[str] = None
    rate_text: Optional[str] = None
    error_message: Optional[str] = None
    rooms: List[FetchedRoom] = Field(default_factory=list)

    @validator("room_label", "rate_text", pre=True)
    def blank_to_none(cls, v):
        return offer_text(v)

    @classmethod
    def failure(cls, message: str) -> "FetchResult":
        return cls(ok=False, error_message=message)

    @property
    def has_usable_fields(self) -> bool:
        return bool(self.room_label and self.rate_text)

    def room_points(self) -> List[FetchedRoom]:
        """Offers to hand to the upserter; incomplete ones are dropped there with a reason"""
        if self.rooms:
            return list(self.rooms)
        if self.has_usable_fields:
            return [FetchedRoom(room_label=self.room_label, rate_text=self.rate_text)]
        return []


class ExtractedPointOut(BaseModel):
    """Stored data point as reported to callers"""
    id: UUID
    refresh_record_id: UUID
    check_in: date
    check_out: date
    room_type: str
    room_type_id: Optional[UUID] = None
    rate: Decimal
    provider: str
    is_valid: bool = True
    updated_at: datetime

    class Config:
        from_attributes = True


class DroppedPoint(BaseModel):
    """A fetched offer that was not persisted"""
    room_label: Optional[str] = None
    rate_text: Optional[str] = None
    reason: str


class UnitResult(BaseModel):
    """Outcome of one (source, window) refresh unit"""
    source_id: UUID
    hotel_id: UUID
    provider: str
    window: Window
    status: UnitStatus
    record_status: Optional[RefreshStatus] = None
    refresh_record_id: Optional[UUID] = None
    points: List[ExtractedPointOut] = Field(default_factory=list)
    dropped: List[DroppedPoint] = Field(default_factory=list)
    error: Optional[str] = None

    class Config:
        use_enum_values = True


class BatchReport(BaseModel):
    """Ordered unit results of one refresh cycle"""
    run_id: UUID
    provider: Optional[str] = None
    horizon_days: int
    ttl_seconds: float
    started_at: datetime
    completed_at: Optional[datetime] = None
    units: List[UnitResult] = Field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for unit in self.units if unit.status == status)

    @property
    def saved(self) -> int:
        return self.count("saved")

    @property
    def failed(self) -> int:
        return self.count("failed")

    @property
    def skipped(self) -> int:
        return self.count("skipped")

    def summary(self) -> Dict[str, int]:
        return {
            "total": len(self.units),
            "saved": self.saved,
            "failed": self.failed,
            "skipped": self.skipped,
        }
