"""
Trip database model.

A trip-start record is written once, in the same transaction that moves a
queue entry to READY. Delivery to the central server happens elsewhere.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.sql import func
from station_node.app.db.session import Base
from station_node.app.models.queue_enums import TripSyncStatus


class Trip(Base):
    """
    Trip model.

    queue_id is a plain reference: the queue row is removed on departure
    but the trip record stays.
    """
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    vehicle_id = Column(Integer, nullable=False, index=True)
    license_plate = Column(String(50), nullable=False)
    destination_id = Column(String(100), nullable=False)
    destination_name = Column(String(200), nullable=False)
    queue_id = Column(Integer, nullable=False, unique=True)
    seats_booked = Column(Integer, nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=False)

    sync_status = Column(Enum(TripSyncStatus), default=TripSyncStatus.PENDING, nullable=False, index=True)
    synced_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Trip(id={self.id}, plate='{self.license_plate}', dest='{self.destination_id}', seats={self.seats_booked})>"
