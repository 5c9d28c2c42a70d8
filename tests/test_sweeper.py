import asyncio

from conftest import OTHER_TRIP_ID, TRIP_ID, seat_id
from seatlock.schemas.seat import SeatStatus


async def test_expired_lock_reclaim(engine, store, sweeper, clock):
    await engine.hold_seat(seat_id(7), "alice", 60)
    clock.advance(120)

    released = await sweeper.sweep_store(TRIP_ID)

    assert released == [seat_id(7)]
    seat = await store.read_seat(seat_id(7))
    assert seat.status == SeatStatus.AVAILABLE
    assert seat.held_by is None
    assert (await engine.hold_seat(seat_id(7), "bob")).ok


async def test_live_holds_are_left_alone(engine, store, sweeper, clock):
    await engine.hold_seat(seat_id(7), "alice", 600)
    clock.advance(10)

    assert await sweeper.sweep_store() == []
    assert (await store.read_seat(seat_id(7))).held_by == "alice"


async def test_sweep_store_scoped_to_trip(engine, sweeper, clock):
    await engine.hold_seat(seat_id(1), "alice", 5)
    await engine.hold_seat(seat_id(1, OTHER_TRIP_ID), "alice", 5)
    clock.advance(10)

    assert await sweeper.sweep_store(OTHER_TRIP_ID) == [seat_id(1, OTHER_TRIP_ID)]
    assert await sweeper.sweep_store() == [seat_id(1)]


async def test_sweep_skips_seat_rebooked_since_snapshot(engine, store, sweeper, clock):
    await engine.hold_seat(seat_id(3), "alice", 5)
    clock.advance(10)
    stale = await store.read_seat(seat_id(3))
    # bob takes the seat over after the snapshot was read
    assert (await engine.hold_seat(seat_id(3), "bob")).ok

    released = await sweeper.sweep([stale])

    assert released == []
    assert (await store.read_seat(seat_id(3))).held_by == "bob"


async def test_concurrent_sweeps_release_once(engine, store, sweeper, clock):
    await engine.hold_seat(seat_id(4), "alice", 5)
    clock.advance(10)
    expired = await store.find_expired_holds(clock())

    results = await asyncio.gather(sweeper.sweep(expired), sweeper.sweep(expired))

    assert sorted(len(r) for r in results) == [0, 1]
    assert (await store.read_seat(seat_id(4))).version == 3


async def test_sweep_ignores_non_held_seats(engine, store, sweeper):
    await engine.confirm_booking([seat_id(2)], "alice", TRIP_ID, 100)
    seats = await store.read_seats(TRIP_ID)

    assert await sweeper.sweep(seats) == []
    assert (await store.read_seat(seat_id(2))).status == SeatStatus.BOOKED


async def test_run_periodic_stops_on_event(engine, store, sweeper, clock):
    await engine.hold_seat(seat_id(5), "alice", 5)
    clock.advance(10)
    stop = asyncio.Event()

    task = asyncio.create_task(sweeper.run_periodic(0.01, stop))
    for _ in range(100):
        if (await store.read_seat(seat_id(5))).status == SeatStatus.AVAILABLE:
            break
        await asyncio.sleep(0.01)
    stop.set()
    await asyncio.wait_for(task, timeout=5)

    assert (await store.read_seat(seat_id(5))).status == SeatStatus.AVAILABLE
