from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from fastapi import Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import async_sessionmaker

from seatlock.schemas.seat import utcnow
from seatlock.services.change_feed import ChangeFeed
from seatlock.services.seat_lock import Notifier, SeatLockEngine
from seatlock.services.seat_store import SeatStore
from seatlock.services.sweeper import ExpirySweeper


@dataclass
class Services:
    store: SeatStore
    engine: SeatLockEngine
    sweeper: ExpirySweeper
    feed: ChangeFeed


def build_services(session_factory: async_sessionmaker, feed: ChangeFeed, clock: Callable[[], datetime] = utcnow, notifier: Optional[Notifier] = None, hold_seconds: Optional[int] = None) -> Services:
    store = SeatStore(session_factory, feed=feed)
    engine = SeatLockEngine(store, clock=clock, hold_seconds=hold_seconds, notifier=notifier)
    return Services(store=store, engine=engine, sweeper=ExpirySweeper(engine), feed=feed)


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_holder_id(x_user_id: Optional[str] = Header(None)) -> str:
    # identity is established upstream; we only need a stable holder id
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return x_user_id
