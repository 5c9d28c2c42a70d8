from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from seatlock.errors import CheckoutRejected
from seatlock.schemas.seat import SeatRead, SeatStatus, utcnow


def compute_total(selection: Iterable[str], fare_per_seat) -> Decimal:
    return Decimal(str(fare_per_seat)) * len(list(selection))


def blocked_seats(selection: Iterable[str], seat_map: Mapping[str, SeatRead], holder_id: str, now: Optional[datetime] = None) -> List[str]:
    """Seats in ``selection`` that this holder cannot pay for right now."""
    now = now or utcnow()
    blocked = []
    for seat_id in selection:
        seat = seat_map.get(seat_id)
        if seat is None:
            blocked.append(seat_id)
            continue
        seat = seat.normalized(now)
        if seat.status == SeatStatus.BOOKED:
            blocked.append(seat_id)
        elif seat.status == SeatStatus.HELD and seat.held_by != holder_id:
            blocked.append(seat_id)
    return blocked


def validate_checkout(selection: Iterable[str], seat_map: Mapping[str, SeatRead], holder_id: str, now: Optional[datetime] = None) -> None:
    blocked = blocked_seats(selection, seat_map, holder_id, now)
    if blocked:
        raise CheckoutRejected(blocked)


class SelectionCart:
    """Seats the user means to buy in this session.

    Selection is purely local: it does not hold anything in the store, and a
    seat can be selected whatever its current status. Availability is checked
    again at checkout.
    """

    def __init__(self, holder_id: str, trip_id: Optional[str] = None):
        self.holder_id = holder_id
        self.trip_id = trip_id
        self._selected: Dict[str, None] = {}

    @property
    def selected(self) -> List[str]:
        return list(self._selected)

    def __contains__(self, seat_id: str) -> bool:
        return seat_id in self._selected

    def __len__(self) -> int:
        return len(self._selected)

    def toggle_select(self, seat_id: str) -> bool:
        if seat_id in self._selected:
            del self._selected[seat_id]
            return False
        self._selected[seat_id] = None
        return True

    def clear_selection(self) -> None:
        self._selected.clear()

    def total(self, fare_per_seat) -> Decimal:
        return compute_total(self._selected, fare_per_seat)

    def current_selection(self, seat_map: Mapping[str, SeatRead]) -> List[str]:
        """Selected ids still present on the trip's seat map."""
        return [seat_id for seat_id in self._selected if seat_id in seat_map]

    def validate_checkout(self, seat_map: Mapping[str, SeatRead], now: Optional[datetime] = None) -> List[str]:
        if not self._selected:
            raise ValueError("Pick at least one seat to continue")
        validate_checkout(self._selected, seat_map, self.holder_id, now)
        return self.selected
