"""
Queue schemas.

Request and response models for the station queue.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Dict, List, Optional

from station_node.app.models.queue_enums import QueueStatus, QueueType


class QueueEnterRequest(BaseModel):
    """Schema for entering a vehicle into a destination queue."""
    license_plate: str = Field(..., min_length=1, max_length=50)
    destination_id: Optional[str] = Field(None, description="Omit to use the vehicle's default or highest-priority destination")
    queue_type: QueueType = QueueType.REGULAR


class QueueExitRequest(BaseModel):
    license_plate: str = Field(..., min_length=1, max_length=50)


class QueueMoveRequest(BaseModel):
    license_plate: str = Field(..., min_length=1, max_length=50)
    destination_id: str = Field(..., min_length=1, max_length=100)


class OvernightAddRequest(BaseModel):
    license_plate: str = Field(..., min_length=1, max_length=50)
    destination_id: Optional[str] = None


class QueueStatusUpdate(BaseModel):
    license_plate: str = Field(..., min_length=1, max_length=50)
    status: QueueStatus


class QueueEntryResponse(BaseModel):
    """Schema for a queue entry."""
    id: int
    vehicle_id: int
    license_plate: str
    destination_id: str
    destination_name: str
    queue_type: QueueType
    queue_position: int
    status: QueueStatus
    entered_at: datetime
    available_seats: int
    total_seats: int
    base_price: float
    estimated_departure: Optional[datetime] = None
    actual_departure: Optional[datetime] = None

    class Config:
        from_attributes = True


class QueueEnterResponse(BaseModel):
    queue_entry: QueueEntryResponse
    moved_from_queue: bool = False
    previous_destination: Optional[str] = None


class QueueExitResponse(BaseModel):
    license_plate: str
    destination_id: str
    queue_type: QueueType
    status: QueueStatus


class QueueSummary(BaseModel):
    """Per-destination counts across both queue types."""
    destination_id: str
    destination_name: str
    total_vehicles: int
    waiting_vehicles: int = 0
    loading_vehicles: int = 0
    ready_vehicles: int = 0
    estimated_next_departure: Optional[datetime] = None


class OvernightQueues(BaseModel):
    queues: Dict[str, List[QueueEntryResponse]]
