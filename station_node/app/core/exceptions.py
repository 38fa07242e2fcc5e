"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes for every recoverable queue/booking
outcome and the global FastAPI exception handlers.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger("station_node.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class StationError(AppException):
    """Recoverable, caller-visible outcome of a queue or booking operation."""


class ResourceNotFoundError(StationError):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


# Queue Store

class AlreadyQueuedError(StationError):
    """Raised when a vehicle already holds an active queue entry."""

    def __init__(self, license_plate: str, destination_name: str = None):
        message = f"Vehicle {license_plate} is already in a queue"
        if destination_name:
            message = f"Vehicle {license_plate} is already in queue for {destination_name}"
        super().__init__(
            message=message,
            error_code="ERR_QUEUE_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"license_plate": license_plate, "destination_name": destination_name}
        )


class NotAuthorizedError(StationError):
    """Raised when a vehicle may not serve the requested destination."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_QUEUE_002",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class HasActiveBookingsError(StationError):
    """Raised when a vehicle with paid or pending bookings tries to leave its queue."""

    def __init__(self, license_plate: str, seats_booked: int):
        super().__init__(
            message=f"Vehicle {license_plate} cannot leave its queue: {seats_booked} seats are already booked",
            error_code="ERR_QUEUE_003",
            status_code=status.HTTP_409_CONFLICT,
            details={"license_plate": license_plate, "seats_booked": seats_booked}
        )


class VehicleNotInQueueError(StationError):

    def __init__(self, license_plate: str, queue_type: str = None):
        message = f"Vehicle {license_plate} is not in any active queue"
        if queue_type:
            message = f"Vehicle {license_plate} is not in the {queue_type.lower()} queue"
        super().__init__(
            message=message,
            error_code="ERR_QUEUE_004",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"license_plate": license_plate}
        )


class InvalidStatusTransitionError(StationError):

    def __init__(self, current: str, requested: str, reason: str = None):
        message = f"Cannot change queue status from {current} to {requested}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            error_code="ERR_QUEUE_005",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"current": current, "requested": requested}
        )


class VehicleNotFoundError(StationError):

    def __init__(self, license_plate: str):
        super().__init__(
            message=f"Vehicle with license plate {license_plate} not found",
            error_code="ERR_VEHICLE_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"license_plate": license_plate}
        )


# Seat Allocation & Booking Engine

class InsufficientSeatsError(StationError):
    """Raised when the request cannot be served in full. No seats are taken."""

    def __init__(self, requested: int, available: int, queue_id: int = None):
        details = {"requested": requested, "available": available}
        if queue_id is not None:
            details["queue_id"] = queue_id
        super().__init__(
            message=f"Not enough seats available. Requested: {requested}, Available: {available}",
            error_code="ERR_BOOKING_001",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class NoVehiclesAvailableError(StationError):

    def __init__(self, destination_id: str):
        super().__init__(
            message=f"No vehicles available for destination {destination_id}",
            error_code="ERR_BOOKING_002",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"destination_id": destination_id}
        )


class SeatLimitExceededError(StationError):

    def __init__(self, requested: int, limit: int):
        super().__init__(
            message=f"A single booking may request at most {limit} seats (requested {requested})",
            error_code="ERR_BOOKING_003",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"requested": requested, "limit": limit}
        )


class InvalidVerificationCodeError(StationError):

    def __init__(self, verification_code: str):
        super().__init__(
            message="Invalid verification code",
            error_code="ERR_BOOKING_004",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"verification_code": verification_code}
        )


class AlreadyVerifiedError(StationError):
    """Soft signal: attached to a successful verify when the ticket was redeemed before."""

    def __init__(self, verification_code: str):
        super().__init__(
            message="Ticket already verified",
            error_code="ERR_BOOKING_005",
            status_code=status.HTTP_409_CONFLICT,
            details={"verification_code": verification_code}
        )


class OnlineTicketNotFoundError(StationError):

    def __init__(self, online_ticket_id: str):
        super().__init__(
            message="No bookings found for online ticket ID",
            error_code="ERR_BOOKING_006",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"online_ticket_id": online_ticket_id}
        )


class VerificationCodeExhaustedError(StationError):

    def __init__(self, attempts: int):
        super().__init__(
            message="Could not generate unique verification codes",
            error_code="ERR_BOOKING_007",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"attempts": attempts}
        )


# Concurrency

class ConcurrentUpdateError(StationError):
    """A concurrent transaction changed rows this one relied on. The operation may be retried."""

    def __init__(self, reason: str):
        super().__init__(
            message="Concurrent update, please retry",
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"reason": reason}
        )


# Overnight transfer

class TransferAlreadyRunning(StationError):
    """Soft signal: a transfer run is in flight, the trigger is a no-op."""

    def __init__(self):
        super().__init__(
            message="Overnight transfer already in progress",
            error_code="ERR_TRANSFER_001",
            status_code=status.HTTP_409_CONFLICT
        )


# Backing store

class StoreUnavailableError(AppException):
    """Raised when the database connection is lost. The transaction is rolled back."""

    def __init__(self, operation: str = None):
        super().__init__(
            message="Station database is unavailable",
            error_code="ERR_STORE_001",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"operation": operation} if operation else {}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": exc.errors()
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s: %s", type(exc).__name__, exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
