from dataclasses import dataclass
from typing import Iterable, List, Optional

from seatlock.schemas.seat import SeatRead

PAIR_COLUMNS = (1, 2, 3, 4)
LAST_ROW_COLUMNS = (1, 2, 3, 4, 5)


@dataclass
class SeatRow:
    row_number: int
    seats: List[Optional[SeatRead]]
    is_last: bool = False

    @property
    def left(self) -> List[Optional[SeatRead]]:
        return [] if self.is_last else self.seats[:2]

    @property
    def right(self) -> List[Optional[SeatRead]]:
        return [] if self.is_last else self.seats[2:]


def sort_seats(seats: Iterable[SeatRead]) -> List[SeatRead]:
    return sorted(seats, key=lambda s: (s.row_number, s.column_number))


def seat_rows(seats: Iterable[SeatRead]) -> List[SeatRow]:
    """Rows as drawn on the seat map.

    Every row but the last is two pairs split by the aisle (columns 1-2 and
    3-4); the back row is a bench of five. Empty positions are None.
    """
    by_position = {(s.row_number, s.column_number): s for s in seats}
    if not by_position:
        return []
    max_row = max(row for row, _ in by_position)
    rows = [
        SeatRow(row_number=row, seats=[by_position.get((row, col)) for col in PAIR_COLUMNS])
        for row in range(1, max_row)
    ]
    rows.append(SeatRow(row_number=max_row, seats=[by_position.get((max_row, col)) for col in LAST_ROW_COLUMNS], is_last=True))
    return rows
