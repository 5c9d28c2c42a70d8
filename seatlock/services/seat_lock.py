import asyncio
import functools
import logging
import time
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Set, Union

from seatlock.config import settings
from seatlock.errors import BookingConflict, SeatNotFound, StoreUnavailable, TripNotFound
from seatlock.metrics import BOOKING_ATTEMPTS, CONFIRMATION_DISPATCH_FAILURES, SEAT_HOLD_ATTEMPTS, SEAT_HOLD_LATENCY, SEAT_RELEASES
from seatlock.schemas.booking import BookingRead, PaymentMetadata
from seatlock.schemas.seat import SeatRead, SeatStatus, SeatWriteResult, TripRead, WriteOutcome, utcnow
from seatlock.services.seat_store import SeatGuard, SeatStore

logger = logging.getLogger(__name__)

Notifier = Callable[[BookingRead, TripRead, str], object]


def _default_notifier(booking: BookingRead, trip: TripRead, email: str):
    from seatlock.notifications.tasks import enqueue_booking_confirmation

    return enqueue_booking_confirmation(booking, trip, email)


def _unique_seat_ids(seat_ids: Union[str, Iterable[str]]) -> List[str]:
    if isinstance(seat_ids, str):
        return [seat_ids]
    return list(dict.fromkeys(seat_ids))


class SeatLockEngine:
    """Seat state transitions: hold, release, book and expiry release.

    Every transition is a guarded write against the store, so two clients
    racing for the same seat are settled by the store and exactly one wins.
    Losing a race is an ordinary outcome, reported as ``WriteOutcome.CONFLICT``
    for holds and as ``BookingConflict`` for bookings.
    """

    def __init__(self, store: SeatStore, clock: Callable[[], datetime] = utcnow, hold_seconds: Optional[int] = None, notifier: Optional[Notifier] = None):
        self.store = store
        self._clock = clock
        self.hold_seconds = hold_seconds or settings.SEAT_HOLD_SECONDS
        self._notifier = notifier or _default_notifier
        self._pending: Set[asyncio.Future] = set()

    def now(self) -> datetime:
        return self._clock()

    def _hold_duration(self, duration: Optional[Union[int, float, timedelta]]) -> timedelta:
        if duration is None:
            return timedelta(seconds=self.hold_seconds)
        seconds = duration.total_seconds() if isinstance(duration, timedelta) else duration
        if seconds <= 0:
            raise ValueError("Hold duration must be positive")
        if seconds > settings.SEAT_HOLD_MAX_SECONDS:
            raise ValueError("Hold duration may not exceed %d seconds" % settings.SEAT_HOLD_MAX_SECONDS)
        return timedelta(seconds=seconds)

    async def _current(self, seat_id: str) -> SeatRead:
        seat = await self.store.read_seat(seat_id)
        if seat is None:
            raise SeatNotFound(seat_id)
        return seat

    async def hold_seat(self, seat_id: str, holder_id: str, duration: Optional[Union[int, float, timedelta]] = None) -> SeatWriteResult:
        duration = self._hold_duration(duration)
        now = self.now()
        start = time.perf_counter()
        seat = await self.store.conditional_update_seat(
            seat_id,
            [SeatGuard(SeatStatus.AVAILABLE), SeatGuard(SeatStatus.HELD, expired_by=now)],
            {"status": SeatStatus.HELD, "held_by": holder_id, "hold_expires_at": now + duration},
        )
        SEAT_HOLD_LATENCY.observe(time.perf_counter() - start)
        if seat is None:
            current = await self._current(seat_id)
            SEAT_HOLD_ATTEMPTS.labels(result="conflict").inc()
            logger.info("Hold on seat %s by %s lost: seat is %s", seat_id, holder_id, current.status.value)
            return SeatWriteResult(outcome=WriteOutcome.CONFLICT, seat=current)
        SEAT_HOLD_ATTEMPTS.labels(result="success").inc()
        logger.info("Seat %s held by %s until %s", seat_id, holder_id, seat.hold_expires_at.isoformat())
        return SeatWriteResult(outcome=WriteOutcome.SUCCESS, seat=seat)

    async def release_seat(self, seat_id: str, holder_id: str) -> SeatWriteResult:
        """Release a hold owned by ``holder_id``; a mismatch is a no-op."""
        seat = await self.store.conditional_update_seat(
            seat_id,
            SeatGuard(SeatStatus.HELD, held_by=holder_id),
            {"status": SeatStatus.AVAILABLE},
        )
        if seat is None:
            SEAT_RELEASES.labels(result="noop").inc()
            return SeatWriteResult(outcome=WriteOutcome.NOOP, seat=await self._current(seat_id))
        SEAT_RELEASES.labels(result="released").inc()
        logger.info("Seat %s released by %s", seat_id, holder_id)
        return SeatWriteResult(outcome=WriteOutcome.SUCCESS, seat=seat)

    async def release_expired(self, seat: SeatRead, now: Optional[datetime] = None) -> bool:
        """Return an expired hold to available, if the seat is still in that hold."""
        now = now or self.now()
        released = await self.store.conditional_update_seat(
            seat.id,
            SeatGuard(SeatStatus.HELD, held_by=seat.held_by, expired_by=now),
            {"status": SeatStatus.AVAILABLE},
        )
        return released is not None

    def _booking_guards(self, holder_id: str, now: datetime) -> List[SeatGuard]:
        return [
            SeatGuard(SeatStatus.AVAILABLE),
            SeatGuard(SeatStatus.HELD, held_by=holder_id),
            SeatGuard(SeatStatus.HELD, expired_by=now),
        ]

    async def _book(self, trip_id: str, seat_ids: List[str], holder_id: str, fare, payment: Optional[PaymentMetadata]) -> BookingRead:
        if not seat_ids:
            raise ValueError("At least one seat is required")
        now = self.now()
        try:
            booking = await self.store.book_seats(
                trip_id=trip_id,
                seat_ids=seat_ids,
                holder_id=holder_id,
                fare_per_seat=Decimal(str(fare)),
                expected=self._booking_guards(holder_id, now),
                now=now,
                payment=payment,
            )
        except BookingConflict as exc:
            BOOKING_ATTEMPTS.labels(result="conflict").inc()
            logger.info("Booking by %s on trip %s rejected, seats taken: %s", holder_id, trip_id, exc.seat_ids)
            raise
        except StoreUnavailable:
            BOOKING_ATTEMPTS.labels(result="error").inc()
            raise
        BOOKING_ATTEMPTS.labels(result="success").inc()
        logger.info("Booking %s confirmed for %s (%d seats)", booking.reference, holder_id, len(seat_ids))
        return booking

    async def confirm_booking(self, seat_ids: Union[str, Iterable[str]], holder_id: str, trip_id: str, fare) -> BookingRead:
        return await self._book(trip_id, _unique_seat_ids(seat_ids), holder_id, fare, None)

    async def bulk_confirm_booking(self, trip_id: str, seat_ids: Iterable[str], holder_id: str, payment: Optional[PaymentMetadata] = None) -> BookingRead:
        trip = await self.store.read_trip(trip_id)
        if trip is None:
            raise TripNotFound(trip_id)
        payment = payment or PaymentMetadata()
        booking = await self._book(trip_id, _unique_seat_ids(seat_ids), holder_id, trip.fare, payment)
        if payment.contact_email:
            self._dispatch_confirmation(booking, trip, payment.contact_email)
        return booking

    def _dispatch_confirmation(self, booking: BookingRead, trip: TripRead, email: str) -> None:
        loop = asyncio.get_running_loop()
        fut = loop.run_in_executor(None, functools.partial(self._notifier, booking, trip, email))
        self._pending.add(fut)
        fut.add_done_callback(functools.partial(self._notification_done, booking.reference))

    def _notification_done(self, reference: str, fut: asyncio.Future) -> None:
        self._pending.discard(fut)
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            CONFIRMATION_DISPATCH_FAILURES.inc()
            logger.error("Confirmation email for booking %s could not be queued", reference, exc_info=exc)

    async def wait_for_notifications(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
