from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from seatlock.deps import Services, get_holder_id, get_services
from seatlock.errors import BookingConflict, CheckoutRejected, TripNotFound
from seatlock.schemas.booking import BookingRead, CheckoutRequest, ConfirmBookingRequest
from seatlock.services.cart import validate_checkout

router = APIRouter()


def _conflict(message: str, seat_ids: List[str]) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail={"message": message, "seat_ids": seat_ids})


@router.get("/")
async def bookings_root():
    return {"module": "bookings", "status": "ok"}


@router.post("/confirm", response_model=BookingRead)
async def confirm_booking(req: ConfirmBookingRequest, holder_id: str = Depends(get_holder_id), services: Services = Depends(get_services)):
    """Book seats directly at the trip fare; all seats are booked or none are."""
    trip = await services.store.read_trip(req.trip_id)
    if trip is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trip not found")
    try:
        return await services.engine.confirm_booking(req.seat_ids, holder_id, req.trip_id, trip.fare)
    except BookingConflict as exc:
        raise _conflict("This seat was just taken", exc.seat_ids)


@router.post("/checkout", response_model=BookingRead)
async def checkout(req: CheckoutRequest, holder_id: str = Depends(get_holder_id), services: Services = Depends(get_services)):
    """Final checkout: re-validate the selection against fresh seat state, then book."""
    if await services.store.read_trip(req.trip_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trip not found")
    seat_map = {seat.id: seat for seat in await services.store.read_seats(req.trip_id)}
    try:
        validate_checkout(req.seat_ids, seat_map, holder_id, services.engine.now())
    except CheckoutRejected as exc:
        raise _conflict("Some selected seats are no longer available", exc.seat_ids)
    try:
        return await services.engine.bulk_confirm_booking(req.trip_id, req.seat_ids, holder_id, req.payment)
    except BookingConflict as exc:
        raise _conflict("This seat was just taken", exc.seat_ids)
    except TripNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trip not found")


@router.get("/mine", response_model=List[BookingRead])
async def my_bookings(holder_id: str = Depends(get_holder_id), services: Services = Depends(get_services)):
    return await services.store.read_bookings_for_holder(holder_id)
