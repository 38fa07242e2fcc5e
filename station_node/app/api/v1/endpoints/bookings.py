"""
Booking API Endpoints.

Counter (CASH) and central-server (ONLINE) bookings, seat availability
and ticket verification.
"""

from typing import List, Union

from fastapi import APIRouter, Body, Depends, status

from station_node.app.core.dependencies import get_booking_engine, unwrap
from station_node.app.schemas.booking import (
    AvailableSeats, BookingResponse, BookingResult, CashBookingRequest, DestinationAvailability,
    OnlineBookingRequest, PaymentStatusResult, PaymentStatusUpdate, VerificationOutcome, VerifyTicketRequest
)
from station_node.app.services.booking_engine import BookingEngine

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.get("/destinations", response_model=List[DestinationAvailability])
async def available_destinations(engine: BookingEngine = Depends(get_booking_engine)):
    return unwrap(await engine.available_destinations())


@router.get("/available/{destination_id}", response_model=AvailableSeats)
async def available_seats(destination_id: str, engine: BookingEngine = Depends(get_booking_engine)):
    """Bookable vehicles for a destination, in allocation order."""
    return unwrap(await engine.get_available_seats(destination_id))


@router.post("", response_model=BookingResult, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: Union[CashBookingRequest, OnlineBookingRequest] = Body(..., discriminator="booking_type"),
    engine: BookingEngine = Depends(get_booking_engine)
):
    """
    Book seats for a destination.

    The request is spread over vehicles in queue order; either every seat
    is booked or none is.
    """
    return unwrap(await engine.create_booking(payload))


@router.post("/verify", response_model=VerificationOutcome)
async def verify_ticket(payload: VerifyTicketRequest, engine: BookingEngine = Depends(get_booking_engine)):
    return unwrap(await engine.verify(payload.verification_code, payload.staff_id))


@router.put("/online/{online_ticket_id}/payment", response_model=PaymentStatusResult)
async def update_online_payment(
    online_ticket_id: str,
    payload: PaymentStatusUpdate,
    engine: BookingEngine = Depends(get_booking_engine)
):
    return unwrap(await engine.update_online_payment_status(online_ticket_id, payload.payment_status))


@router.get("/{verification_code}", response_model=BookingResponse)
async def get_booking(verification_code: str, engine: BookingEngine = Depends(get_booking_engine)):
    return unwrap(await engine.get_booking(verification_code))
