"""
Vehicle queue models.

VehicleQueue is the central entity of the station: one row per vehicle
waiting for a destination. QueuePartition holds one lock row per
(destination, queue type) so that structural changes in a partition
are serialised by the database.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Enum, Index
from sqlalchemy.sql import func
from station_node.app.db.session import Base
from station_node.app.models.queue_enums import QueueType, QueueStatus


class VehicleQueue(Base):
    """
    Vehicle queue entry.

    Rows only exist while the vehicle is active in a queue; departure,
    exit and move delete the row. The unique vehicle_id therefore
    enforces one active entry per vehicle at the database level.
    """
    __tablename__ = "vehicle_queue"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False, unique=True)
    license_plate = Column(String(50), nullable=False)

    # Partition
    destination_id = Column(String(100), nullable=False)
    destination_name = Column(String(200), nullable=False)
    queue_type = Column(Enum(QueueType), default=QueueType.REGULAR, nullable=False)
    queue_position = Column(Integer, nullable=False)

    status = Column(Enum(QueueStatus), default=QueueStatus.WAITING, nullable=False, index=True)

    # Seats
    available_seats = Column(Integer, nullable=False)
    total_seats = Column(Integer, nullable=False)
    base_price = Column(Float, nullable=False, default=0.0)

    # Timestamps
    entered_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    estimated_departure = Column(DateTime(timezone=True), nullable=True)
    actual_departure = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_vehicle_queue_partition", "destination_id", "queue_type", "queue_position"),
        # Queue ids are never reused, trip records key on them
        {"sqlite_autoincrement": True},
    )

    def __repr__(self):
        return (
            f"<VehicleQueue(id={self.id}, plate='{self.license_plate}', dest='{self.destination_id}', "
            f"type={self.queue_type.value}, pos={self.queue_position}, seats={self.available_seats}/{self.total_seats})>"
        )


class QueuePartition(Base):
    """
    Lock row for one (destination, queue type) partition.

    Locked with SELECT ... FOR UPDATE before positions are read or
    rewritten in that partition.
    """
    __tablename__ = "queue_partitions"

    destination_id = Column(String(100), primary_key=True)
    queue_type = Column(Enum(QueueType), primary_key=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<QueuePartition(dest='{self.destination_id}', type={self.queue_type.value})>"
