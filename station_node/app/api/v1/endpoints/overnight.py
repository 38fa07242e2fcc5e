"""
Overnight Queue API Endpoints.
"""

from fastapi import APIRouter, Depends, status

from station_node.app.core.dependencies import get_queue_store, get_transfer_scheduler, unwrap
from station_node.app.schemas.queue import (
    OvernightAddRequest, OvernightQueues, QueueEnterResponse, QueueExitRequest, QueueExitResponse
)
from station_node.app.schemas.transfer import TransferReport
from station_node.app.services.overnight_transfer import OvernightTransferScheduler
from station_node.app.services.queue_store import QueueStore

router = APIRouter(prefix="/overnight", tags=["Overnight Queue"])


@router.get("", response_model=OvernightQueues)
async def list_overnight_queues(queue_store: QueueStore = Depends(get_queue_store)):
    return unwrap(await queue_store.list_overnight_queues())


@router.post("/add", response_model=QueueEnterResponse, status_code=status.HTTP_201_CREATED)
async def add_to_overnight(
    payload: OvernightAddRequest,
    queue_store: QueueStore = Depends(get_queue_store)
):
    """Stage a vehicle for tomorrow's opening, or move it over from the regular queue."""
    return unwrap(await queue_store.add_to_overnight(payload.license_plate, payload.destination_id))


@router.post("/remove", response_model=QueueExitResponse)
async def remove_from_overnight(
    payload: QueueExitRequest,
    queue_store: QueueStore = Depends(get_queue_store)
):
    return unwrap(await queue_store.remove_from_overnight(payload.license_plate))


@router.post("/transfer", response_model=TransferReport)
async def trigger_transfer(scheduler: OvernightTransferScheduler = Depends(get_transfer_scheduler)):
    """
    Run the overnight -> regular transfer now.

    Returns a skipped report if a run is already in progress.
    """
    return unwrap(await scheduler.run_transfer())
