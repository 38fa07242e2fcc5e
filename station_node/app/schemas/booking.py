"""
Booking schemas.

Booking requests are a closed tagged union on `booking_type`: each source
carries exactly the fields it needs and is rejected at the boundary
otherwise.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from station_node.app.models.queue_enums import BookingType, PaymentStatus


class VehicleAllocation(BaseModel):
    """Seats taken from one queue entry."""
    queue_id: int
    seats_to_book: int = Field(..., gt=0)
    license_plate: Optional[str] = None


class CashBookingRequest(BaseModel):
    """Station counter sale. Priced at seats x base price."""
    booking_type: Literal["CASH"] = "CASH"
    destination_id: str = Field(..., min_length=1, max_length=100)
    seats_requested: int = Field(..., gt=0)
    staff_id: str = Field(..., min_length=1)
    payment_method: str = "CASH"
    customer_phone: Optional[str] = None


class OnlineBookingRequest(BaseModel):
    """Booking forwarded by the central server, which owns the price."""
    booking_type: Literal["ONLINE"] = "ONLINE"
    destination_id: str = Field(..., min_length=1, max_length=100)
    seats_requested: int = Field(..., gt=0)
    user_id: str = Field(..., min_length=1)
    customer_phone: str = Field(..., min_length=1, max_length=50)
    online_ticket_id: str = Field(..., min_length=1, max_length=100)
    total_amount: float = Field(..., ge=0)
    vehicle_allocations: Optional[List[VehicleAllocation]] = None

    @model_validator(mode="after")
    def allocations_match_request(self):
        if self.vehicle_allocations is not None:
            allocated = sum(a.seats_to_book for a in self.vehicle_allocations)
            if allocated != self.seats_requested:
                raise ValueError(
                    f"vehicle_allocations book {allocated} seats but {self.seats_requested} were requested"
                )
        return self


BookingRequest = Annotated[
    Union[CashBookingRequest, OnlineBookingRequest],
    Field(discriminator="booking_type")
]


class VehicleSeating(BaseModel):
    """One queue entry as seen by the seat allocator."""
    queue_id: int
    vehicle_id: int
    license_plate: str
    queue_type: str
    queue_position: int
    available_seats: int
    total_seats: int
    base_price: float
    status: str
    estimated_departure: Optional[datetime] = None


class AvailableSeats(BaseModel):
    destination_id: str
    destination_name: str
    total_available_seats: int
    vehicles: List[VehicleSeating]


class DestinationAvailability(BaseModel):
    destination_id: str
    destination_name: str
    total_available_seats: int
    vehicle_count: int


class BookingResponse(BaseModel):
    """Schema for a single booking row."""
    id: int
    queue_id: Optional[int]
    destination_id: str
    destination_name: str
    vehicle_license_plate: str
    seats_booked: int
    total_amount: float
    booking_type: BookingType
    payment_status: PaymentStatus
    verification_code: str
    is_verified: bool
    verified_at: Optional[datetime] = None
    customer_phone: Optional[str] = None
    online_ticket_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BookingResult(BaseModel):
    """Outcome of one booking request, possibly spread over several vehicles."""
    bookings: List[BookingResponse]
    total_amount: float
    verification_codes: List[str]
    ready_queue_ids: List[int] = []


class VerifyTicketRequest(BaseModel):
    verification_code: str = Field(..., min_length=1, max_length=32)
    staff_id: str = Field(..., min_length=1)


class VerificationOutcome(BaseModel):
    """already_verified is set when the ticket had been redeemed before this call."""
    booking: BookingResponse
    already_verified: bool = False


class PaymentStatusUpdate(BaseModel):
    payment_status: Literal["PAID", "FAILED", "CANCELLED"]


class PaymentStatusResult(BaseModel):
    online_ticket_id: str
    payment_status: PaymentStatus
    updated: int
