import enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from seatlock.schemas.booking import BookingRead
from seatlock.schemas.seat import SeatRead


class ChangeType(str, enum.Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class SeatChanged(BaseModel):
    kind: Literal["seat"] = "seat"
    change: ChangeType = ChangeType.UPDATE
    trip_id: str
    # for deletes this is the last known row
    seat: SeatRead


class BookingChanged(BaseModel):
    kind: Literal["booking"] = "booking"
    change: ChangeType = ChangeType.INSERT
    trip_id: str
    booking: BookingRead


FeedEvent = Annotated[Union[SeatChanged, BookingChanged], Field(discriminator="kind")]

_event_adapter = TypeAdapter(FeedEvent)


def parse_event(raw: Union[str, bytes, dict]) -> Union[SeatChanged, BookingChanged]:
    if isinstance(raw, dict):
        return _event_adapter.validate_python(raw)
    return _event_adapter.validate_json(raw)


def dump_event(event: Union[SeatChanged, BookingChanged]) -> str:
    return event.model_dump_json()
