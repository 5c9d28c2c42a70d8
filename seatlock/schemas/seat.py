import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from seatlock.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (sqlite drops the offset)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SeatStatus(str, enum.Enum):
    AVAILABLE = "available"
    HELD = "held"
    BOOKED = "booked"


class SeatRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    trip_id: str
    seat_number: str
    row_number: int
    column_number: int
    status: SeatStatus = SeatStatus.AVAILABLE
    held_by: Optional[str] = None
    hold_expires_at: Optional[datetime] = None
    version: int = 1

    @field_validator("hold_expires_at")
    @classmethod
    def _coerce_utc(cls, value):
        return as_utc(value)

    def is_expired_hold(self, now: Optional[datetime] = None) -> bool:
        if self.status != SeatStatus.HELD:
            return False
        if self.hold_expires_at is None:
            return True
        return self.hold_expires_at <= (now or utcnow())

    def normalized(self, now: Optional[datetime] = None) -> "SeatRead":
        """Display projection: an expired hold reads as available."""
        if self.is_expired_hold(now):
            return self.model_copy(update={"status": SeatStatus.AVAILABLE, "held_by": None, "hold_expires_at": None})
        return self


class TripRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    route: str
    fare: Decimal
    total_seats: int
    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    bus_type: Optional[str] = None
    is_active: bool = True


class HoldSeatRequest(BaseModel):
    seat_id: str
    duration_seconds: Optional[int] = Field(None, gt=0, le=settings.SEAT_HOLD_MAX_SECONDS, description="Hold duration in seconds")


class ReleaseSeatRequest(BaseModel):
    seat_id: str


class ReleaseSeatResponse(BaseModel):
    released: bool
    seat: Optional[SeatRead] = None


class WriteOutcome(str, enum.Enum):
    SUCCESS = "success"
    CONFLICT = "conflict"
    NOOP = "noop"


class SeatWriteResult(BaseModel):
    outcome: WriteOutcome
    seat: Optional[SeatRead] = None

    @property
    def ok(self) -> bool:
        return self.outcome == WriteOutcome.SUCCESS


class SeatRowRead(BaseModel):
    row_number: int
    is_last: bool = False
    seats: List[Optional[SeatRead]]
