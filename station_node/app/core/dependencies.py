"""
FastAPI dependencies.

Services are built once at startup and kept on app.state; endpoints pull
them from there and unwrap ServiceResults into responses.
"""

from fastapi import Request

from station_node.app.core.exceptions import AppException
from station_node.app.domain.pricing.route_prices import RoutePriceLookup
from station_node.app.schemas.common import ServiceResult
from station_node.app.services.booking_engine import BookingEngine
from station_node.app.services.overnight_transfer import OvernightTransferScheduler
from station_node.app.services.queue_store import QueueStore
from station_node.app.services.vehicle_directory import VehicleDirectory


def get_queue_store(request: Request) -> QueueStore:
    return request.app.state.queue_store


def get_booking_engine(request: Request) -> BookingEngine:
    return request.app.state.booking_engine


def get_vehicle_directory(request: Request) -> VehicleDirectory:
    return request.app.state.vehicle_directory


def get_route_prices(request: Request) -> RoutePriceLookup:
    return request.app.state.route_prices


def get_transfer_scheduler(request: Request) -> OvernightTransferScheduler:
    return request.app.state.transfer_scheduler


def unwrap(result: ServiceResult):
    """
    Return the data of a successful result.

    Raises:
        AppException: Carrying the failure's code and status, rendered by
            the global exception handler
    """
    if not result.success:
        error = result.error
        raise AppException(
            message=error.message,
            error_code=error.error_code,
            status_code=error.status_code,
            details=error.details,
        )
    return result.data
