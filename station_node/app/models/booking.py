"""
Booking database model.

A booking holds seats on exactly one queue entry. Its seat count never
changes after creation.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from station_node.app.db.session import Base
from station_node.app.models.queue_enums import BookingType, PaymentStatus


class Booking(Base):
    """
    Booking model.

    Destination and plate are copied from the queue entry so the ticket
    stays readable after the vehicle departs and its queue row is removed.
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    queue_id = Column(Integer, ForeignKey("vehicle_queue.id", ondelete="SET NULL"), nullable=True, index=True)
    destination_id = Column(String(100), nullable=False, index=True)
    destination_name = Column(String(200), nullable=False)
    vehicle_license_plate = Column(String(50), nullable=False)

    seats_booked = Column(Integer, nullable=False)
    total_amount = Column(Float, nullable=False)

    booking_type = Column(Enum(BookingType), nullable=False)
    payment_status = Column(Enum(PaymentStatus), nullable=False, index=True)
    payment_method = Column(String(50), nullable=True)
    payment_processed_at = Column(DateTime(timezone=True), nullable=True)

    # Ticket redemption
    verification_code = Column(String(32), unique=True, nullable=False, index=True)
    is_verified = Column(Boolean, default=False, nullable=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    verified_by_id = Column(String(100), nullable=True)

    # Origin: staff member for CASH, central-server user for ONLINE
    created_by = Column(String(100), nullable=True)
    user_id = Column(String(100), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    online_ticket_id = Column(String(100), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Booking(id={self.id}, queue_id={self.queue_id}, seats={self.seats_booked}, code='{self.verification_code}')>"
