import asyncio
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from seatlock.metrics import SWEEP_RELEASED, SWEEP_SKIPPED
from seatlock.schemas.seat import SeatRead
from seatlock.services.seat_lock import SeatLockEngine

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Turns expired holds back into available seats.

    ``sweep`` works on whatever seats the caller knows about (a client's local
    map); ``sweep_store`` asks the store for every expired hold, so it keeps
    converging even when nobody is watching a trip.
    """

    def __init__(self, engine: SeatLockEngine):
        self.engine = engine

    async def sweep(self, seats: Iterable[SeatRead], now: Optional[datetime] = None) -> List[str]:
        now = now or self.engine.now()
        released = []
        for seat in seats:
            if not seat.is_expired_hold(now):
                continue
            if await self.engine.release_expired(seat, now):
                released.append(seat.id)
                SWEEP_RELEASED.inc()
            else:
                # someone else moved the seat first
                SWEEP_SKIPPED.inc()
                logger.debug("Sweep skipped seat %s", seat.id)
        if released:
            logger.info("Released %d expired holds", len(released))
        return released

    async def sweep_store(self, trip_id: Optional[str] = None) -> List[str]:
        now = self.engine.now()
        expired = await self.engine.store.find_expired_holds(now, trip_id=trip_id)
        return await self.sweep(expired, now)

    async def run_periodic(self, interval: float, stop_event: Optional[asyncio.Event] = None) -> None:
        stop_event = stop_event or asyncio.Event()
        logger.info("Expiry sweeper started (interval=%ss)", interval)
        while not stop_event.is_set():
            try:
                await self.sweep_store()
            except Exception:
                logger.exception("Expiry sweep failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Expiry sweeper stopped")
