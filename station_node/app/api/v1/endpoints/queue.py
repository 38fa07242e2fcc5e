"""
Queue API Endpoints.

Staff-facing operations on the regular destination queues.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from station_node.app.core.dependencies import get_queue_store, get_vehicle_directory, unwrap
from station_node.app.models.queue_enums import QueueType
from station_node.app.schemas.queue import (
    QueueEnterRequest, QueueEnterResponse, QueueEntryResponse, QueueExitRequest,
    QueueExitResponse, QueueMoveRequest, QueueStatusUpdate, QueueSummary
)
from station_node.app.schemas.vehicle import VehicleDestinations
from station_node.app.services.queue_store import QueueStore
from station_node.app.services.vehicle_directory import VehicleDirectory

router = APIRouter(prefix="/queue", tags=["Queue"])


@router.post("/enter", response_model=QueueEnterResponse, status_code=status.HTTP_201_CREATED)
async def enter_queue(
    payload: QueueEnterRequest,
    queue_store: QueueStore = Depends(get_queue_store)
):
    """
    Add a vehicle to a destination queue.

    Without destination_id the vehicle's default (or highest-priority)
    authorized destination is used.
    """
    return unwrap(await queue_store.enter(payload.license_plate, payload.destination_id, payload.queue_type))


@router.post("/exit", response_model=QueueExitResponse)
async def exit_queue(
    payload: QueueExitRequest,
    queue_store: QueueStore = Depends(get_queue_store)
):
    return unwrap(await queue_store.exit(payload.license_plate))


@router.post("/move", response_model=QueueEnterResponse)
async def move_queue(
    payload: QueueMoveRequest,
    queue_store: QueueStore = Depends(get_queue_store)
):
    """Move a vehicle to another destination's queue in one step."""
    return unwrap(await queue_store.move(payload.license_plate, payload.destination_id))


@router.post("/status", response_model=QueueEntryResponse)
async def update_queue_status(
    payload: QueueStatusUpdate,
    queue_store: QueueStore = Depends(get_queue_store)
):
    return unwrap(await queue_store.set_status(payload.license_plate, payload.status))


@router.get("/summaries", response_model=List[QueueSummary])
async def queue_summaries(queue_store: QueueStore = Depends(get_queue_store)):
    return unwrap(await queue_store.queue_summaries())


@router.get("/vehicles/{license_plate}/destinations", response_model=VehicleDestinations)
async def vehicle_destinations(
    license_plate: str,
    directory: VehicleDirectory = Depends(get_vehicle_directory)
):
    """Destinations a vehicle may queue for, with current prices."""
    return unwrap(await directory.get_available_destinations(license_plate))


@router.get("/{destination_id}", response_model=List[QueueEntryResponse])
async def list_queue(
    destination_id: str,
    queue_type: Optional[QueueType] = Query(None, description="Restrict to one queue type"),
    queue_store: QueueStore = Depends(get_queue_store)
):
    """Active entries of a destination, overnight first, by position."""
    return unwrap(await queue_store.list_queue(destination_id, queue_type))
