"""Client-side seat map kept in step with the change feed.

An embedding client starts `SeatStateReconciler.run()` as a task, reads
`seat_map()` whenever it redraws, and awaits `stop()` when the view closes.
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from seatlock.config import settings
from seatlock.errors import FeedDisconnected, StoreUnavailable
from seatlock.metrics import FEED_EVENTS, FEED_RECONNECTS
from seatlock.schemas.events import BookingChanged, ChangeType, SeatChanged
from seatlock.schemas.seat import SeatRead, utcnow
from seatlock.services.change_feed import ChangeFeed
from seatlock.services.layout import sort_seats
from seatlock.services.seat_store import SeatStore
from seatlock.services.sweeper import ExpirySweeper

logger = logging.getLogger(__name__)


class SeatStateReconciler:
    """Local projection of one trip's seats.

    Rows are stored exactly as the store reported them; ``seat_map`` applies
    the expired-hold display correction on read. An incoming row replaces the
    local one only if its version is newer, which makes duplicate and
    out-of-order deliveries harmless.
    """

    def __init__(
        self,
        trip_id: str,
        store: SeatStore,
        feed: ChangeFeed,
        sweeper: Optional[ExpirySweeper] = None,
        clock: Callable[[], datetime] = utcnow,
        reconnect_delay: Optional[float] = None,
    ):
        self.trip_id = trip_id
        self.store = store
        self.feed = feed
        self.sweeper = sweeper
        self._clock = clock
        self.reconnect_delay = settings.FEED_RECONNECT_DELAY_SECONDS if reconnect_delay is None else reconnect_delay
        self._seats: Dict[str, SeatRead] = {}
        # versions of deleted rows, so a late update cannot resurrect them
        self._tombstones: Dict[str, int] = {}
        self.booked_by: Dict[str, str] = {}
        self._subscription = None
        self._stopped = asyncio.Event()
        self.ready = asyncio.Event()

    def seat_map(self, now: Optional[datetime] = None) -> Dict[str, SeatRead]:
        now = now or self._clock()
        return {seat_id: seat.normalized(now) for seat_id, seat in self._seats.items()}

    def seats(self, now: Optional[datetime] = None) -> List[SeatRead]:
        return sort_seats(self.seat_map(now).values())

    def raw_seat(self, seat_id: str) -> Optional[SeatRead]:
        return self._seats.get(seat_id)

    def expired_holds(self, now: Optional[datetime] = None) -> List[SeatRead]:
        now = now or self._clock()
        return [seat for seat in self._seats.values() if seat.is_expired_hold(now)]

    def apply(self, event) -> bool:
        """Merge one feed event; returns True if the local map changed."""
        if event.trip_id != self.trip_id:
            return False
        if isinstance(event, SeatChanged):
            changed = self._apply_seat(event)
        elif isinstance(event, BookingChanged):
            changed = self._apply_booking(event)
        else:
            return False
        if changed:
            FEED_EVENTS.labels(kind=event.kind).inc()
        return changed

    def _apply_seat(self, event: SeatChanged) -> bool:
        incoming = event.seat
        current = self._seats.get(incoming.id)
        known_version = current.version if current else self._tombstones.get(incoming.id, 0)
        if incoming.version <= known_version:
            return False
        if event.change == ChangeType.DELETE:
            self._seats.pop(incoming.id, None)
            self._tombstones[incoming.id] = incoming.version
            return current is not None
        self._seats[incoming.id] = incoming
        return True

    def _apply_booking(self, event: BookingChanged) -> bool:
        booking = event.booking
        if event.change != ChangeType.INSERT or booking.status != "confirmed":
            return False
        changed = False
        for seat_id in booking.seat_ids:
            if self.booked_by.get(seat_id) != booking.holder_id:
                self.booked_by[seat_id] = booking.holder_id
                changed = True
        return changed

    async def refresh(self) -> None:
        """Replace the local map with a full snapshot from the store."""
        seats = await self.store.read_seats(self.trip_id)
        bookings = await self.store.read_bookings_for_trip(self.trip_id)
        self._seats = {seat.id: seat for seat in seats}
        self._tombstones = {}
        self.booked_by = {}
        for booking in bookings:
            for seat_id in booking.seat_ids:
                self.booked_by[seat_id] = booking.holder_id
        logger.debug("Seat map for trip %s refreshed (%d seats)", self.trip_id, len(seats))

    async def _after_change(self) -> None:
        if self.sweeper is None:
            return
        expired = self.expired_holds()
        if expired:
            await self.sweeper.sweep(expired)

    async def handle(self, event) -> bool:
        changed = self.apply(event)
        if changed:
            await self._after_change()
        return changed

    async def _consume_once(self) -> None:
        # subscribe before the snapshot so no write slips between the two
        self._subscription = await self.feed.subscribe(self.trip_id)
        try:
            await self.refresh()
            self.ready.set()
            await self._after_change()
            async for event in self._subscription:
                await self.handle(event)
        finally:
            await self.feed.unsubscribe(self._subscription)
            self._subscription = None

    async def run(self) -> None:
        """Follow the feed until ``stop`` is called, resyncing after each drop."""
        while not self._stopped.is_set():
            try:
                await self._consume_once()
            except (FeedDisconnected, StoreUnavailable) as exc:
                if self._stopped.is_set():
                    break
                self.ready.clear()
                FEED_RECONNECTS.inc()
                logger.warning("Feed for trip %s lost (%s); resubscribing", self.trip_id, exc)
                try:
                    await asyncio.wait_for(self._stopped.wait(), timeout=self.reconnect_delay)
                except asyncio.TimeoutError:
                    pass
            else:
                # subscription closed without an error
                break

    async def stop(self) -> None:
        self._stopped.set()
        if self._subscription is not None:
            await self._subscription.close()
