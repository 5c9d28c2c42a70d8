import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from conftest import FARE, OTHER_TRIP_ID, TRIP_ID, RecordingNotifier, seat_id
from seatlock.db.session import make_engine, make_session_factory
from seatlock.deps import build_services
from seatlock.errors import BookingConflict, SeatNotFound, StoreUnavailable, TripNotFound
from seatlock.logging_setup import new_trace_id
from seatlock.models.models import AuditLog, Booking, BookingSeat, Seat
from seatlock.schemas.booking import PaymentMetadata
from seatlock.schemas.seat import SeatStatus, WriteOutcome
from seatlock.services.seat_store import SeatStore


async def _seat(store, number, trip_id=TRIP_ID):
    return await store.read_seat(seat_id(number, trip_id))


class TestHold:
    async def test_hold_available_seat(self, engine, store, clock):
        result = await engine.hold_seat(seat_id(5), "alice")

        assert result.outcome == WriteOutcome.SUCCESS
        assert result.seat.status == SeatStatus.HELD
        assert result.seat.held_by == "alice"
        assert result.seat.hold_expires_at == clock() + timedelta(seconds=600)
        assert result.seat.version == 2
        assert (await _seat(store, 5)).held_by == "alice"

    async def test_race_on_hold_has_one_winner(self, engine, store):
        holders = [f"user-{i}" for i in range(10)]

        results = await asyncio.gather(*[engine.hold_seat(seat_id(5), h) for h in holders])

        winners = [h for h, r in zip(holders, results) if r.outcome == WriteOutcome.SUCCESS]
        losers = [r for r in results if r.outcome == WriteOutcome.CONFLICT]
        assert len(winners) == 1
        assert len(losers) == len(holders) - 1
        seat = await _seat(store, 5)
        assert seat.status == SeatStatus.HELD
        assert seat.held_by == winners[0]
        assert seat.version == 2

    async def test_conflict_reports_current_state(self, engine):
        await engine.hold_seat(seat_id(3), "alice")

        result = await engine.hold_seat(seat_id(3), "bob")

        assert result.outcome == WriteOutcome.CONFLICT
        assert not result.ok
        assert result.seat.held_by == "alice"

    async def test_rehold_by_same_holder_is_a_conflict(self, engine):
        await engine.hold_seat(seat_id(3), "alice")

        result = await engine.hold_seat(seat_id(3), "alice")

        assert result.outcome == WriteOutcome.CONFLICT

    async def test_hold_on_booked_seat_conflicts(self, engine):
        await engine.confirm_booking([seat_id(4)], "alice", TRIP_ID, FARE)

        result = await engine.hold_seat(seat_id(4), "bob")

        assert result.outcome == WriteOutcome.CONFLICT
        assert result.seat.status == SeatStatus.BOOKED

    async def test_unknown_seat(self, engine):
        with pytest.raises(SeatNotFound):
            await engine.hold_seat("nope", "alice")

    @pytest.mark.parametrize("duration", [0, -5])
    async def test_non_positive_duration_rejected(self, engine, duration):
        with pytest.raises(ValueError):
            await engine.hold_seat(seat_id(1), "alice", duration)

    @pytest.mark.parametrize("duration", [10**12, timedelta(days=3650)])
    async def test_oversized_duration_rejected(self, engine, store, duration):
        with pytest.raises(ValueError):
            await engine.hold_seat(seat_id(4), "alice", duration)

        assert (await _seat(store, 4)).status == SeatStatus.AVAILABLE

    async def test_expired_hold_can_be_taken_over(self, engine, clock):
        await engine.hold_seat(seat_id(7), "alice", 60)
        clock.advance(61)

        result = await engine.hold_seat(seat_id(7), "bob")

        assert result.ok
        assert result.seat.held_by == "bob"

    async def test_hold_expiring_exactly_now_is_expired(self, engine, clock):
        await engine.hold_seat(seat_id(7), "alice", 60)
        clock.advance(60)

        result = await engine.hold_seat(seat_id(7), "bob")

        assert result.ok


class TestRelease:
    async def test_release_by_holder(self, engine, store):
        await engine.hold_seat(seat_id(2), "alice")

        result = await engine.release_seat(seat_id(2), "alice")

        assert result.outcome == WriteOutcome.SUCCESS
        seat = await _seat(store, 2)
        assert seat.status == SeatStatus.AVAILABLE
        assert seat.held_by is None
        assert seat.hold_expires_at is None

    async def test_release_is_idempotent(self, engine, store):
        await engine.hold_seat(seat_id(2), "alice")
        await engine.release_seat(seat_id(2), "alice")
        version = (await _seat(store, 2)).version

        again = await engine.release_seat(seat_id(2), "alice")

        assert again.outcome == WriteOutcome.NOOP
        assert (await _seat(store, 2)).version == version

    async def test_release_by_someone_else_is_noop(self, engine, store):
        await engine.hold_seat(seat_id(2), "alice")

        result = await engine.release_seat(seat_id(2), "bob")

        assert result.outcome == WriteOutcome.NOOP
        assert (await _seat(store, 2)).held_by == "alice"

    async def test_release_does_not_unbook(self, engine, store):
        await engine.confirm_booking(seat_id(2), "alice", TRIP_ID, FARE)

        result = await engine.release_seat(seat_id(2), "alice")

        assert result.outcome == WriteOutcome.NOOP
        assert (await _seat(store, 2)).status == SeatStatus.BOOKED

    async def test_release_unknown_seat(self, engine):
        with pytest.raises(SeatNotFound):
            await engine.release_seat("nope", "alice")


class TestBooking:
    async def test_single_successful_booking(self, engine, store):
        assert (await engine.hold_seat(seat_id(12), "user-u")).ok

        booking = await engine.confirm_booking([seat_id(12)], "user-u", TRIP_ID, 100)

        assert booking.total_amount == Decimal("100")
        assert booking.status == "confirmed"
        assert booking.seat_ids == [seat_id(12)]
        assert booking.reference.startswith("BKG")
        seat = await _seat(store, 12)
        assert seat.status == SeatStatus.BOOKED
        assert seat.held_by is None

    async def test_booking_seat_held_by_someone_else_fails(self, engine, store):
        await engine.hold_seat(seat_id(6), "bob")

        with pytest.raises(BookingConflict) as exc_info:
            await engine.confirm_booking([seat_id(6)], "alice", TRIP_ID, FARE)

        assert exc_info.value.seat_ids == [seat_id(6)]
        assert (await _seat(store, 6)).held_by == "bob"

    async def test_booking_over_expired_hold_succeeds(self, engine, clock):
        await engine.hold_seat(seat_id(6), "bob", 30)
        clock.advance(31)

        booking = await engine.confirm_booking([seat_id(6)], "alice", TRIP_ID, FARE)

        assert booking.holder_id == "alice"

    async def test_partial_failure_books_nothing(self, engine, store, session_factory):
        await engine.hold_seat(seat_id(1), "alice")
        # seat 2 is taken between selection and confirm
        await engine.hold_seat(seat_id(2), "bob")

        with pytest.raises(BookingConflict) as exc_info:
            await engine.confirm_booking([seat_id(1), seat_id(2)], "alice", TRIP_ID, FARE)

        assert exc_info.value.seat_ids == [seat_id(2)]
        seat_1 = await _seat(store, 1)
        assert seat_1.status == SeatStatus.HELD
        assert seat_1.held_by == "alice"
        assert seat_1.version == 2
        async with session_factory() as session:
            assert await session.scalar(select(func.count(Booking.id))) == 0
            assert await session.scalar(select(func.count(BookingSeat.id))) == 0

    async def test_concurrent_bookings_sell_a_seat_once(self, engine, session_factory):
        results = await asyncio.gather(
            *[engine.confirm_booking([seat_id(9)], f"user-{i}", TRIP_ID, FARE) for i in range(5)],
            return_exceptions=True,
        )

        bookings = [r for r in results if not isinstance(r, Exception)]
        conflicts = [r for r in results if isinstance(r, BookingConflict)]
        assert len(bookings) == 1
        assert len(conflicts) == 4
        async with session_factory() as session:
            assert await session.scalar(select(func.count(Booking.id))) == 1

    async def test_every_booked_seat_has_exactly_one_booking(self, engine, session_factory):
        await engine.confirm_booking([seat_id(1), seat_id(2)], "alice", TRIP_ID, FARE)
        await engine.hold_seat(seat_id(3), "bob")
        await engine.confirm_booking([seat_id(3)], "bob", TRIP_ID, FARE)
        with pytest.raises(BookingConflict):
            await engine.confirm_booking([seat_id(4), seat_id(3)], "carol", TRIP_ID, FARE)

        async with session_factory() as session:
            booked = set((await session.execute(select(Seat.id).where(Seat.status == "booked"))).scalars())
            links = (await session.execute(select(BookingSeat.seat_id))).scalars().all()
        assert booked == {seat_id(1), seat_id(2), seat_id(3)}
        assert sorted(links) == sorted(booked)

    async def test_duplicate_seat_ids_are_booked_once(self, engine):
        booking = await engine.confirm_booking([seat_id(5), seat_id(5)], "alice", TRIP_ID, FARE)

        assert booking.seat_ids == [seat_id(5)]
        assert booking.total_amount == FARE

    async def test_seat_from_another_trip_is_rejected(self, engine, store):
        with pytest.raises(BookingConflict):
            await engine.confirm_booking([seat_id(1, OTHER_TRIP_ID)], "alice", TRIP_ID, FARE)

        assert (await _seat(store, 1, OTHER_TRIP_ID)).status == SeatStatus.AVAILABLE

    async def test_empty_selection_rejected(self, engine):
        with pytest.raises(ValueError):
            await engine.confirm_booking([], "alice", TRIP_ID, FARE)

    async def test_booking_writes_audit_row(self, engine, session_factory):
        booking = await engine.confirm_booking([seat_id(8)], "alice", TRIP_ID, FARE)

        async with session_factory() as session:
            audit = (await session.execute(select(AuditLog))).scalars().one()
        assert audit.action == "booking_confirmed"
        assert audit.object_id == booking.reference
        assert audit.actor_id == "alice"
        assert audit.detail["seat_ids"] == [seat_id(8)]

    async def test_audit_row_carries_trace_id(self, engine, session_factory):
        new_trace_id("trace-123")

        await engine.confirm_booking([seat_id(8)], "alice", TRIP_ID, FARE)

        async with session_factory() as session:
            audit = (await session.execute(select(AuditLog))).scalars().one()
        assert audit.detail["trace_id"] == "trace-123"


class TestBulkConfirm:
    async def test_uses_trip_fare_and_records_payment(self, engine, notifier):
        payment = PaymentMetadata(method="upi", reference="UPI-778", contact_email="alice@example.edu")

        booking = await engine.bulk_confirm_booking(TRIP_ID, [seat_id(10), seat_id(11)], "alice", payment)
        await engine.wait_for_notifications()

        assert booking.total_amount == FARE * 2
        assert booking.payment_method == "upi"
        assert booking.payment_ref == "UPI-778"
        assert booking.payment_status == "completed"
        assert notifier.calls == [(booking.reference, TRIP_ID, "alice@example.edu")]

    async def test_no_email_without_contact(self, engine, notifier):
        await engine.bulk_confirm_booking(TRIP_ID, [seat_id(10)], "alice")
        await engine.wait_for_notifications()

        assert notifier.calls == []

    async def test_unknown_trip(self, engine):
        with pytest.raises(TripNotFound):
            await engine.bulk_confirm_booking("missing", [seat_id(1)], "alice")

    async def test_notifier_failure_does_not_fail_booking(self, session_factory, feed, clock, store):
        notifier = RecordingNotifier(fail=True)
        services = build_services(session_factory, feed, clock=clock, notifier=notifier)
        payment = PaymentMetadata(contact_email="alice@example.edu")

        booking = await services.engine.bulk_confirm_booking(TRIP_ID, [seat_id(13)], "alice", payment)
        await services.engine.wait_for_notifications()

        assert booking.status == "confirmed"
        assert len(notifier.calls) == 1
        assert (await _seat(store, 13)).status == SeatStatus.BOOKED


class TestStoreFailures:
    @pytest.fixture
    async def broken_store(self, tmp_path):
        engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'x.db'}", per_run=True)
        yield SeatStore(make_session_factory(engine))
        await engine.dispose()

    async def test_reads_are_retryable(self, broken_store):
        with pytest.raises(StoreUnavailable) as exc_info:
            await broken_store.read_seats(TRIP_ID)
        assert exc_info.value.retryable is True

    async def test_writes_are_not_retryable(self, broken_store):
        from seatlock.services.seat_lock import SeatLockEngine

        with pytest.raises(StoreUnavailable) as exc_info:
            await SeatLockEngine(broken_store).hold_seat(seat_id(1), "alice")
        assert exc_info.value.retryable is False
