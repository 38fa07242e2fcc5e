"""
Change Notifier.

Fans queue and booking changes out to whoever listens (staff dashboards,
the central server bridge). Delivery is fire-and-forget: a failed publish
is logged and never reaches the operation that produced the event.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger("station_node.notifier")


class ChangeEventType:
    """Standardized change event names."""
    QUEUE_CHANGED = "queue_changed"
    OVERNIGHT_QUEUE_CHANGED = "overnight_queue_changed"
    BOOKING_CREATED = "booking_created"
    VEHICLE_BECAME_READY = "vehicle_became_ready"
    OVERNIGHT_TRANSFER_COMPLETED = "overnight_transfer_completed"
    PAYMENT_STATUS_CHANGED = "payment_status_changed"


@dataclass(frozen=True)
class ChangeEvent:
    event: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def queue_changed(cls, destination_id: str) -> "ChangeEvent":
        return cls(ChangeEventType.QUEUE_CHANGED, {"destination_id": destination_id})

    @classmethod
    def overnight_queue_changed(cls, destination_id: str) -> "ChangeEvent":
        return cls(ChangeEventType.OVERNIGHT_QUEUE_CHANGED, {"destination_id": destination_id})

    @classmethod
    def booking_created(cls, queue_id: int, verification_code: str, seats_booked: int, total_amount: float) -> "ChangeEvent":
        return cls(ChangeEventType.BOOKING_CREATED, {
            "queue_id": queue_id,
            "verification_code": verification_code,
            "seats_booked": seats_booked,
            "total_amount": total_amount,
        })

    @classmethod
    def vehicle_became_ready(cls, queue_id: int, license_plate: str) -> "ChangeEvent":
        return cls(ChangeEventType.VEHICLE_BECAME_READY, {"queue_id": queue_id, "license_plate": license_plate})

    @classmethod
    def overnight_transfer_completed(cls, destination_id: str, count: int) -> "ChangeEvent":
        return cls(ChangeEventType.OVERNIGHT_TRANSFER_COMPLETED, {"destination_id": destination_id, "count": count})

    @classmethod
    def payment_status_changed(cls, online_ticket_id: str, status: str) -> "ChangeEvent":
        return cls(ChangeEventType.PAYMENT_STATUS_CHANGED, {"online_ticket_id": online_ticket_id, "status": status})


class ChangeNotifier:
    """
    Base notifier.

    Subclasses override `publish`. `emit` and `emit_all` swallow and log
    publish failures.
    """

    def __init__(self, station_id: str):
        self.station_id = station_id

    async def publish(self, event: ChangeEvent) -> None:
        logger.debug("Change event %s %s", event.event, event.payload)

    async def emit(self, event: ChangeEvent) -> None:
        try:
            await self.publish(event)
        except Exception:
            logger.warning("Failed to publish %s event", event.event, exc_info=True)

    async def emit_all(self, events: Iterable[ChangeEvent]) -> None:
        for event in events:
            await self.emit(event)

    def envelope(self, event: ChangeEvent, timestamp: Optional[datetime] = None) -> Dict[str, Any]:
        return {
            "event": event.event,
            "station_id": self.station_id,
            "timestamp": (timestamp or datetime.utcnow()).isoformat(),
            "payload": event.payload,
        }


class RedisChangeNotifier(ChangeNotifier):
    """Publishes events as JSON on the station's Redis pub/sub channel."""

    def __init__(self, station_id: str, redis, channel_prefix: str = "station-events"):
        super().__init__(station_id)
        self.redis = redis
        self.channel = f"{channel_prefix}:{station_id}"

    async def publish(self, event: ChangeEvent) -> None:
        await self.redis.publish(self.channel, json.dumps(self.envelope(event)))
