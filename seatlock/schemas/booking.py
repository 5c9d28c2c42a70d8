from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from seatlock.schemas.seat import as_utc


class PaymentMetadata(BaseModel):
    method: Optional[str] = Field(None, description="e.g. upi, card, cash")
    reference: Optional[str] = None
    status: str = "completed"
    contact_email: Optional[str] = None


class ConfirmBookingRequest(BaseModel):
    trip_id: str
    seat_ids: List[str] = Field(..., min_length=1)


class CheckoutRequest(BaseModel):
    trip_id: str
    seat_ids: List[str] = Field(..., min_length=1)
    payment: PaymentMetadata = Field(default_factory=PaymentMetadata)


class BookingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    reference: str
    trip_id: str
    holder_id: str
    seat_ids: List[str]
    total_amount: Decimal
    status: str
    payment_status: Optional[str] = None
    payment_method: Optional[str] = None
    payment_ref: Optional[str] = None
    booked_at: datetime

    @field_validator("booked_at")
    @classmethod
    def _coerce_utc(cls, value):
        return as_utc(value)
