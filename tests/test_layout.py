from seatlock.schemas.seat import SeatRead
from seatlock.services.layout import seat_rows, sort_seats


def _seat(row, col):
    return SeatRead(
        id=f"{row}-{col}",
        trip_id="T1",
        seat_number=f"{row}{col}",
        row_number=row,
        column_number=col,
    )


def _bus(rows=3):
    seats = [_seat(r, c) for r in range(1, rows) for c in range(1, 5)]
    seats += [_seat(rows, c) for c in range(1, 6)]
    return seats


def test_rows_of_pairs_and_back_bench():
    rows = seat_rows(list(reversed(_bus())))

    assert [r.row_number for r in rows] == [1, 2, 3]
    assert [r.is_last for r in rows] == [False, False, True]
    assert [s.id for s in rows[0].left] == ["1-1", "1-2"]
    assert [s.id for s in rows[0].right] == ["1-3", "1-4"]
    assert [s.id for s in rows[2].seats] == ["3-1", "3-2", "3-3", "3-4", "3-5"]
    assert rows[2].left == [] and rows[2].right == []


def test_missing_positions_are_gaps():
    seats = [s for s in _bus() if s.id != "2-3"]

    rows = seat_rows(seats)

    assert rows[1].seats[2] is None
    assert rows[1].seats[3].id == "2-4"


def test_no_seats_no_rows():
    assert seat_rows([]) == []


def test_single_row_is_the_back_bench():
    rows = seat_rows([_seat(1, c) for c in range(1, 6)])

    assert len(rows) == 1
    assert rows[0].is_last


def test_sort_seats():
    seats = [_seat(2, 1), _seat(1, 3), _seat(1, 1)]

    assert [s.id for s in sort_seats(seats)] == ["1-1", "1-3", "2-1"]
