import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from seatlock.deps import Services, get_holder_id, get_services
from seatlock.errors import FeedDisconnected, SeatNotFound
from seatlock.schemas.events import dump_event
from seatlock.schemas.seat import (
    HoldSeatRequest,
    ReleaseSeatRequest,
    ReleaseSeatResponse,
    SeatRead,
    SeatRowRead,
)
from seatlock.services.layout import seat_rows

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/")
async def seats_root():
    return {"module": "seats", "status": "ok"}


async def _trip_seats(trip_id: str, services: Services) -> List[SeatRead]:
    if await services.store.read_trip(trip_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trip not found")
    now = services.engine.now()
    return [seat.normalized(now) for seat in await services.store.read_seats(trip_id)]


@router.get("/trips/{trip_id}", response_model=List[SeatRead])
async def list_seats(trip_id: str, services: Services = Depends(get_services)):
    """Current seat map; expired holds are shown as available."""
    return await _trip_seats(trip_id, services)


@router.get("/trips/{trip_id}/layout", response_model=List[SeatRowRead])
async def seat_layout(trip_id: str, services: Services = Depends(get_services)):
    rows = seat_rows(await _trip_seats(trip_id, services))
    return [SeatRowRead(row_number=r.row_number, is_last=r.is_last, seats=r.seats) for r in rows]


@router.post("/hold", response_model=SeatRead)
async def hold_seat(req: HoldSeatRequest, holder_id: str = Depends(get_holder_id), services: Services = Depends(get_services)):
    try:
        result = await services.engine.hold_seat(req.seat_id, holder_id, req.duration_seconds)
    except SeatNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Seat not found")
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if not result.ok:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="This seat was just taken")
    return result.seat


@router.post("/release", response_model=ReleaseSeatResponse)
async def release_seat(req: ReleaseSeatRequest, holder_id: str = Depends(get_holder_id), services: Services = Depends(get_services)):
    """Release a hold. Releasing a seat you no longer hold is not an error."""
    try:
        result = await services.engine.release_seat(req.seat_id, holder_id)
    except SeatNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Seat not found")
    return ReleaseSeatResponse(released=result.ok, seat=result.seat)


async def _watch_client(websocket: WebSocket, subscription) -> None:
    # feed clients never send; a disconnect frame ends the subscription right away
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            break
    await subscription.close()


@router.websocket("/trips/{trip_id}/feed")
async def seat_feed(websocket: WebSocket, trip_id: str):
    services: Services = websocket.app.state.services
    await websocket.accept()
    subscription = await services.feed.subscribe(trip_id)
    watcher = asyncio.create_task(_watch_client(websocket, subscription))
    try:
        async for event in subscription:
            await websocket.send_text(dump_event(event))
    except WebSocketDisconnect:
        logger.debug("Feed client for trip %s went away", trip_id)
    except FeedDisconnected:
        # client is expected to reconnect and reload the seat map
        logger.warning("Feed for trip %s dropped; closing client socket", trip_id)
        watcher.cancel()
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    finally:
        watcher.cancel()
        await services.feed.unsubscribe(subscription)
