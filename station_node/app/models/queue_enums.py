"""
Queue and booking enumerations.
"""

import enum


class QueueType(str, enum.Enum):
    """Which waiting line of a destination a vehicle stands in."""
    REGULAR = "REGULAR"  # Daytime queue
    OVERNIGHT = "OVERNIGHT"  # Pre-staged queue, moved to REGULAR at opening time


class QueueStatus(str, enum.Enum):
    """Queue entry status. Transitions only move forward."""
    WAITING = "WAITING"
    LOADING = "LOADING"
    READY = "READY"  # Fully booked
    DEPARTED = "DEPARTED"  # Recorded right before the row is removed


ACTIVE_QUEUE_STATUSES = (QueueStatus.WAITING, QueueStatus.LOADING, QueueStatus.READY)

STATUS_ORDER = {
    QueueStatus.WAITING: 0,
    QueueStatus.LOADING: 1,
    QueueStatus.READY: 2,
    QueueStatus.DEPARTED: 3,
}


class BookingType(str, enum.Enum):
    """Where a booking originated."""
    CASH = "CASH"  # Sold at the station counter
    ONLINE = "ONLINE"  # Forwarded by the central server


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


# Bookings in these states hold seats and block a vehicle from leaving its queue
HOLDING_PAYMENT_STATUSES = (PaymentStatus.PAID, PaymentStatus.PENDING)


class TripSyncStatus(str, enum.Enum):
    """Delivery state of a trip-start record towards the central server."""
    PENDING = "PENDING"
    SYNCED = "SYNCED"
    FAILED = "FAILED"
