"""
Vehicle master-data models.

Vehicles and their authorized destinations are synchronised from the
central server; the queue engine only reads them.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from station_node.app.db.session import Base


class Vehicle(Base):
    """
    Vehicle model.

    A vehicle is queue-eligible only when it is both active and available
    and holds at least one authorized destination other than this station.
    """
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identification
    license_plate = Column(String(50), unique=True, nullable=False, index=True)
    model = Column(String(100), nullable=True)
    color = Column(String(50), nullable=True)

    # Seat count; copied into every queue entry at creation
    capacity = Column(Integer, nullable=False, default=8)

    # Status
    is_active = Column(Boolean, default=True, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)

    # Preferred destination (must also be authorized to be used)
    default_destination_id = Column(String(100), nullable=True)
    default_destination_name = Column(String(200), nullable=True)

    # Driver (denormalised from the central driver registry)
    driver_first_name = Column(String(100), nullable=True)
    driver_last_name = Column(String(100), nullable=True)
    driver_phone = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    authorized_stations = relationship(
        "VehicleAuthorizedStation",
        back_populates="vehicle",
        order_by="VehicleAuthorizedStation.priority",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Vehicle(id={self.id}, plate='{self.license_plate}', capacity={self.capacity})>"


class VehicleAuthorizedStation(Base):
    """
    Station a vehicle may serve.

    Lower priority number means higher priority.
    """
    __tablename__ = "vehicle_authorized_stations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
    station_id = Column(String(100), nullable=False)
    station_name = Column(String(200), nullable=True)
    priority = Column(Integer, nullable=False, default=1)
    is_default = Column(Boolean, default=False, nullable=False)

    vehicle = relationship("Vehicle", back_populates="authorized_stations")

    __table_args__ = (
        UniqueConstraint("vehicle_id", "station_id", name="uq_vehicle_authorized_station"),
    )

    def __repr__(self):
        return f"<VehicleAuthorizedStation(vehicle_id={self.vehicle_id}, station='{self.station_id}', priority={self.priority})>"
