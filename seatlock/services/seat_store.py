"""Seat and booking record store.

All seat mutations go through a compare-and-swap update: the row is written
only if it still matches one of the expected guards, and every successful
write bumps the row version. Committed writes are published to the change
feed so every subscribed client converges on the same seat map.
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Union
from uuid import uuid4

from sqlalchemy import and_, or_
from sqlalchemy import select as sa_select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seatlock.errors import BookingConflict, StoreUnavailable
from seatlock.models.models import Booking, BookingSeat, Seat, Trip
from seatlock.schemas.booking import BookingRead, PaymentMetadata
from seatlock.schemas.events import BookingChanged, ChangeType, SeatChanged
from seatlock.schemas.seat import SeatRead, SeatStatus, TripRead
from seatlock.services.audit import BOOKING_CONFIRMED, log_audit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeatGuard:
    """Expected current state of a seat row.

    ``held_by`` and ``expired_by`` only narrow the match further; a guard with
    just a status matches any row in that status.
    """

    status: SeatStatus
    held_by: Optional[str] = None
    expired_by: Optional[datetime] = None
    version: Optional[int] = None

    def clause(self):
        parts = [Seat.status == self.status.value]
        if self.held_by is not None:
            parts.append(Seat.held_by == self.held_by)
        if self.expired_by is not None:
            parts.append(Seat.hold_expires_at <= self.expired_by)
        if self.version is not None:
            parts.append(Seat.version == self.version)
        return and_(*parts)


Guards = Union[SeatGuard, Sequence[SeatGuard]]


def _seat_values(changes: dict) -> dict:
    status = SeatStatus(changes["status"])
    values = {"status": status.value, "held_by": None, "hold_expires_at": None}
    # hold metadata only survives on held seats
    if status == SeatStatus.HELD:
        values["held_by"] = changes["held_by"]
        values["hold_expires_at"] = changes["hold_expires_at"]
    return values


def new_booking_reference() -> str:
    return "BKG" + uuid4().hex[:10].upper()


class SeatStore:
    def __init__(self, session_factory: async_sessionmaker, feed=None):
        self._session_factory = session_factory
        self.feed = feed

    @asynccontextmanager
    async def _store_errors(self, retryable: bool):
        try:
            yield
        except IntegrityError:
            raise
        except (DBAPIError, OSError) as exc:
            logger.exception("Seat store operation failed")
            raise StoreUnavailable(retryable=retryable) from exc

    async def _publish(self, event) -> None:
        if self.feed is None:
            return
        try:
            await self.feed.publish(event)
        except Exception:
            # the write is committed; subscribers resync on their next refresh
            logger.exception("Failed to publish %s event for trip %s", event.kind, event.trip_id)

    # reads

    async def read_trip(self, trip_id: str) -> Optional[TripRead]:
        async with self._store_errors(retryable=True):
            async with self._session_factory() as session:
                trip = await session.get(Trip, trip_id)
                return TripRead.model_validate(trip) if trip else None

    async def read_seats(self, trip_id: str) -> List[SeatRead]:
        stmt = (
            sa_select(Seat)
            .where(Seat.trip_id == trip_id)
            .order_by(Seat.row_number, Seat.column_number)
        )
        async with self._store_errors(retryable=True):
            async with self._session_factory() as session:
                res = await session.execute(stmt)
                return [SeatRead.model_validate(s) for s in res.scalars().all()]

    async def read_seat(self, seat_id: str) -> Optional[SeatRead]:
        async with self._store_errors(retryable=True):
            async with self._session_factory() as session:
                seat = await session.get(Seat, seat_id)
                return SeatRead.model_validate(seat) if seat else None

    async def read_bookings_for_holder(self, holder_id: str) -> List[BookingRead]:
        stmt = (
            sa_select(Booking)
            .where(Booking.holder_id == holder_id)
            .order_by(Booking.booked_at.desc(), Booking.id.desc())
        )
        async with self._store_errors(retryable=True):
            async with self._session_factory() as session:
                res = await session.execute(stmt)
                return [BookingRead.model_validate(b) for b in res.scalars().all()]

    async def read_bookings_for_trip(self, trip_id: str, status: str = "confirmed") -> List[BookingRead]:
        stmt = sa_select(Booking).where(Booking.trip_id == trip_id, Booking.status == status).order_by(Booking.id)
        async with self._store_errors(retryable=True):
            async with self._session_factory() as session:
                res = await session.execute(stmt)
                return [BookingRead.model_validate(b) for b in res.scalars().all()]

    async def find_expired_holds(self, now: datetime, trip_id: Optional[str] = None, limit: int = 500) -> List[SeatRead]:
        stmt = (
            sa_select(Seat)
            .where(Seat.status == SeatStatus.HELD.value, Seat.hold_expires_at <= now)
            .order_by(Seat.hold_expires_at)
            .limit(limit)
        )
        if trip_id is not None:
            stmt = stmt.where(Seat.trip_id == trip_id)
        async with self._store_errors(retryable=True):
            async with self._session_factory() as session:
                res = await session.execute(stmt)
                return [SeatRead.model_validate(s) for s in res.scalars().all()]

    # writes

    async def _cas(self, session: AsyncSession, seat_id: str, expected: Guards, changes: dict, trip_id: Optional[str] = None) -> Optional[SeatRead]:
        guards = [expected] if isinstance(expected, SeatGuard) else list(expected)
        stmt = (
            sa_update(Seat)
            .where(Seat.id == seat_id)
            .where(or_(*[g.clause() for g in guards]))
            .values(version=Seat.version + 1, **_seat_values(changes))
            .execution_options(synchronize_session=False)
        )
        if trip_id is not None:
            stmt = stmt.where(Seat.trip_id == trip_id)
        result = await session.execute(stmt)
        if result.rowcount != 1:
            return None
        res = await session.execute(
            sa_select(Seat).where(Seat.id == seat_id).execution_options(populate_existing=True)
        )
        return SeatRead.model_validate(res.scalar_one())

    async def conditional_update_seat(self, seat_id: str, expected: Guards, changes: dict) -> Optional[SeatRead]:
        """Apply ``changes`` only if the row matches ``expected``.

        Returns the written row, or None when the guard did not match (the
        seat was changed by someone else, or does not exist).
        """
        async with self._store_errors(retryable=False):
            async with self._session_factory() as session:
                async with session.begin():
                    seat = await self._cas(session, seat_id, expected, changes)
        if seat is not None:
            await self._publish(SeatChanged(change=ChangeType.UPDATE, trip_id=seat.trip_id, seat=seat))
        return seat

    async def insert_booking(
        self,
        session: AsyncSession,
        *,
        trip_id: str,
        holder_id: str,
        seat_ids: List[str],
        total_amount: Decimal,
        booked_at: datetime,
        status: str = "confirmed",
        payment: Optional[PaymentMetadata] = None,
    ) -> Booking:
        """Insert a booking and its seat links; runs inside the caller's transaction."""
        booking = Booking(
            reference=new_booking_reference(),
            trip_id=trip_id,
            holder_id=holder_id,
            seat_ids=list(seat_ids),
            total_amount=total_amount,
            status=status,
            payment_status=payment.status if payment else None,
            payment_method=payment.method if payment else None,
            payment_ref=payment.reference if payment else None,
            booked_at=booked_at,
        )
        session.add(booking)
        await session.flush()
        for seat_id in seat_ids:
            session.add(BookingSeat(booking_id=booking.id, seat_id=seat_id))
        await session.flush()
        return booking

    async def book_seats(
        self,
        *,
        trip_id: str,
        seat_ids: Iterable[str],
        holder_id: str,
        fare_per_seat: Decimal,
        expected: Guards,
        now: datetime,
        payment: Optional[PaymentMetadata] = None,
    ) -> BookingRead:
        """Move every seat to booked and insert the booking in one transaction.

        If any seat fails its guard nothing is written and BookingConflict
        names the seats that were taken.
        """
        seat_ids = list(seat_ids)
        booked: List[SeatRead] = []
        taken: List[str] = []
        async with self._store_errors(retryable=False):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        for seat_id in seat_ids:
                            seat = await self._cas(session, seat_id, expected, {"status": SeatStatus.BOOKED}, trip_id=trip_id)
                            if seat is None:
                                taken.append(seat_id)
                            else:
                                booked.append(seat)
                        if taken:
                            raise BookingConflict(taken)
                        booking = await self.insert_booking(
                            session,
                            trip_id=trip_id,
                            holder_id=holder_id,
                            seat_ids=seat_ids,
                            total_amount=Decimal(fare_per_seat) * len(seat_ids),
                            booked_at=now,
                            payment=payment,
                        )
                        await log_audit(
                            session,
                            actor_id=holder_id,
                            action=BOOKING_CONFIRMED,
                            object_type="booking",
                            object_id=booking.reference,
                            detail={"trip_id": trip_id, "seat_ids": seat_ids},
                        )
                        result = BookingRead.model_validate(booking)
            except IntegrityError as exc:
                raise BookingConflict(seat_ids, "Seat already booked") from exc

        for seat in booked:
            await self._publish(SeatChanged(change=ChangeType.UPDATE, trip_id=trip_id, seat=seat))
        await self._publish(BookingChanged(change=ChangeType.INSERT, trip_id=trip_id, booking=result))
        return result
