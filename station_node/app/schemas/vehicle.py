"""
Vehicle directory schemas.
"""

from pydantic import BaseModel
from typing import List, Optional


class AuthorizedDestination(BaseModel):
    station_id: str
    station_name: str
    priority: int
    is_default: bool = False


class VehicleInfo(BaseModel):
    """Read-only view of a vehicle as the queue engine needs it."""
    id: int
    license_plate: str
    capacity: int
    is_active: bool
    is_available: bool
    authorized_destinations: List[AuthorizedDestination]
    default_destination_id: Optional[str] = None
    default_destination_name: Optional[str] = None

    @property
    def is_queue_eligible(self) -> bool:
        return self.is_active and self.is_available


class DestinationOption(AuthorizedDestination):
    """Authorized destination with its current per-seat price."""
    base_price: float


class VehicleDestinations(BaseModel):
    license_plate: str
    destinations: List[DestinationOption]
    default_destination: Optional[AuthorizedDestination] = None
