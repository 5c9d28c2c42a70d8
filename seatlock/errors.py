from typing import Iterable, List


class SeatlockError(Exception):
    pass


class SeatNotFound(SeatlockError, LookupError):
    def __init__(self, seat_id: str):
        super().__init__(f"Seat not found: {seat_id}")
        self.seat_id = seat_id


class TripNotFound(SeatlockError, LookupError):
    def __init__(self, trip_id: str):
        super().__init__(f"Trip not found: {trip_id}")
        self.trip_id = trip_id


class BookingConflict(SeatlockError):
    """One or more seats could not be moved to booked; nothing was written."""

    def __init__(self, seat_ids: Iterable[str], message: str = "Seats no longer available"):
        self.seat_ids: List[str] = list(seat_ids)
        super().__init__(f"{message}: {', '.join(self.seat_ids)}")


class CheckoutRejected(SeatlockError):
    """The selection contains seats that are booked or held by someone else."""

    def __init__(self, seat_ids: Iterable[str]):
        self.seat_ids: List[str] = list(seat_ids)
        super().__init__(f"Seats unavailable for checkout: {', '.join(self.seat_ids)}")


class StoreUnavailable(SeatlockError):
    """The record store could not be reached.

    ``retryable`` is True for reads only; writes need an explicit user retry
    so that a booking is never submitted twice.
    """

    def __init__(self, message: str = "Seat store unavailable", retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class FeedDisconnected(SeatlockError):
    pass
