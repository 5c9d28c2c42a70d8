import asyncio

from celery.utils.log import get_task_logger
from redis import asyncio as aioredis

from seatlock.celery_app import celery_app
from seatlock.config import settings
from seatlock.db.session import make_engine, make_session_factory
from seatlock.logging_setup import new_trace_id
from seatlock.services.change_feed import build_feed
from seatlock.services.seat_lock import SeatLockEngine
from seatlock.services.seat_store import SeatStore
from seatlock.services.sweeper import ExpirySweeper

logger = get_task_logger(__name__)


async def _sweep(trip_id=None):
    # each task run gets its own event loop, so nothing pooled may outlive it
    engine = make_engine(per_run=True)
    client = aioredis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
    try:
        store = SeatStore(make_session_factory(engine), feed=build_feed(settings, client=client))
        return await ExpirySweeper(SeatLockEngine(store)).sweep_store(trip_id)
    finally:
        await client.aclose()
        await engine.dispose()


@celery_app.task(bind=True)
def sweep_expired_holds_task(self, trip_id: str = None):
    """Scheduled store-side sweep; runs whether or not anyone is viewing the trip."""
    new_trace_id(self.request.id)
    released = asyncio.run(_sweep(trip_id))
    if released:
        logger.info("Sweep released %d expired holds", len(released))
    return released
