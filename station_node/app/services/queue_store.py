"""
Queue Store.

Owns VehicleQueue rows and the ordering of every (destination, queue type)
partition: positions of active entries are always 1..N without gaps.
Each public operation is one transaction; structural changes lock the
affected partitions first.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from station_node.app.core.context import StationContext
from station_node.app.core.exceptions import (
    AlreadyQueuedError, ConcurrentUpdateError, HasActiveBookingsError, InvalidStatusTransitionError,
    NotAuthorizedError, VehicleNotInQueueError
)
from station_node.app.db.transaction import lock_partitions
from station_node.app.domain.pricing.route_prices import RoutePriceLookup
from station_node.app.models.booking import Booking
from station_node.app.models.queue_enums import (
    ACTIVE_QUEUE_STATUSES, HOLDING_PAYMENT_STATUSES, STATUS_ORDER, QueueStatus, QueueType
)
from station_node.app.models.vehicle import Vehicle
from station_node.app.models.vehicle_queue import VehicleQueue
from station_node.app.schemas.common import ServiceResult
from station_node.app.schemas.queue import (
    OvernightQueues, QueueEnterResponse, QueueEntryResponse, QueueExitResponse, QueueSummary
)
from station_node.app.schemas.vehicle import AuthorizedDestination, VehicleInfo
from station_node.app.services.base import StationService
from station_node.app.services.notifier import ChangeEvent
from station_node.app.services.vehicle_directory import VehicleDirectory

logger = logging.getLogger("station_node.queue")

Partition = Tuple[str, QueueType]


def queue_order_key(entry: VehicleQueue):
    """Overnight entries ahead of regular ones, then by position."""
    return (0 if entry.queue_type == QueueType.OVERNIGHT else 1, entry.queue_position, entry.id)


def partition_changed_event(destination_id: str, queue_type: QueueType) -> ChangeEvent:
    if queue_type == QueueType.OVERNIGHT:
        return ChangeEvent.overnight_queue_changed(destination_id)
    return ChangeEvent.queue_changed(destination_id)


class QueueStore(StationService):

    def __init__(self, ctx: StationContext, directory: VehicleDirectory = None, prices: RoutePriceLookup = None):
        super().__init__(ctx)
        self.prices = prices or RoutePriceLookup(ctx)
        self.directory = directory or VehicleDirectory(ctx, self.prices)

    # ------------------------------------------------------------------
    # Partition primitives (caller owns the transaction)
    # ------------------------------------------------------------------

    async def active_entry(self, session: AsyncSession, vehicle_id: int, for_update: bool = False) -> Optional[VehicleQueue]:
        stmt = select(VehicleQueue).where(
            VehicleQueue.vehicle_id == vehicle_id,
            VehicleQueue.status.in_(ACTIVE_QUEUE_STATUSES)
        ).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def locate_and_lock(
        self,
        session: AsyncSession,
        vehicle_id: int,
        extra: Callable[[VehicleQueue], Iterable[Partition]] = None
    ) -> Optional[VehicleQueue]:
        """
        Find a vehicle's active entry and lock its partition.

        `extra` may name more partitions to lock in the same sorted pass.
        The entry is re-read after locking; if it changed partition in the
        meantime the locks held are no longer the right ones, so the whole
        transaction is abandoned with ConcurrentUpdateError and rerun.
        """
        entry = await self.active_entry(session, vehicle_id)
        if entry is None:
            return None
        partition = (entry.destination_id, entry.queue_type)
        partitions = [partition] + list(extra(entry) if extra else [])
        await lock_partitions(session, *partitions)

        locked = await self.active_entry(session, vehicle_id, for_update=True)
        if locked is None:
            return None
        if (locked.destination_id, locked.queue_type) != partition:
            raise ConcurrentUpdateError(f"queue entry of vehicle {vehicle_id} moved")
        return locked

    async def next_position(self, session: AsyncSession, destination_id: str, queue_type: QueueType) -> int:
        result = await session.execute(
            select(func.max(VehicleQueue.queue_position)).where(
                VehicleQueue.destination_id == destination_id,
                VehicleQueue.queue_type == queue_type,
                VehicleQueue.status.in_(ACTIVE_QUEUE_STATUSES)
            )
        )
        return (result.scalar() or 0) + 1

    async def partition_entries(self, session: AsyncSession, destination_id: str, queue_type: QueueType) -> List[VehicleQueue]:
        result = await session.execute(
            select(VehicleQueue).where(
                VehicleQueue.destination_id == destination_id,
                VehicleQueue.queue_type == queue_type,
                VehicleQueue.status.in_(ACTIVE_QUEUE_STATUSES)
            ).order_by(
                VehicleQueue.queue_position.asc(),
                VehicleQueue.entered_at.asc(),
                VehicleQueue.id.asc()
            ).execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def resequence(self, session: AsyncSession, destination_id: str, queue_type: QueueType) -> int:
        """
        Renumber a partition's active entries 1..N, keeping their order.

        Returns:
            Number of entries left in the partition
        """
        entries = await self.partition_entries(session, destination_id, queue_type)
        for index, entry in enumerate(entries, start=1):
            if entry.queue_position != index:
                entry.queue_position = index
        await session.flush()
        return len(entries)

    async def seats_held(self, session: AsyncSession, queue_id: int) -> int:
        """Seats held by paid or pending bookings of one queue entry."""
        result = await session.execute(
            select(func.coalesce(func.sum(Booking.seats_booked), 0)).where(
                Booking.queue_id == queue_id,
                Booking.payment_status.in_(HOLDING_PAYMENT_STATUSES)
            )
        )
        return int(result.scalar() or 0)

    async def ensure_no_bookings(self, session: AsyncSession, entry: VehicleQueue) -> None:
        held = await self.seats_held(session, entry.id)
        if held > 0:
            raise HasActiveBookingsError(entry.license_plate, held)

    async def remove_entry(self, session: AsyncSession, entry: VehicleQueue) -> None:
        """Delete an entry and close the gap it leaves in its partition."""
        destination_id, queue_type = entry.destination_id, entry.queue_type
        await session.delete(entry)
        await session.flush()
        await self.resequence(session, destination_id, queue_type)

    async def insert_entry(
        self,
        session: AsyncSession,
        vehicle: Vehicle,
        destination: AuthorizedDestination,
        queue_type: QueueType
    ) -> VehicleQueue:
        """Append a new entry at the tail of a locked partition."""
        base_price = await self.prices.get_base_price(destination.station_id, session)
        destination_name = destination.station_name
        if not destination_name or destination_name == destination.station_id:
            destination_name = await self.prices.get_station_name(destination.station_id, session)

        position = await self.next_position(session, destination.station_id, queue_type)
        entry = VehicleQueue(
            vehicle_id=vehicle.id,
            license_plate=vehicle.license_plate,
            destination_id=destination.station_id,
            destination_name=destination_name,
            queue_type=queue_type,
            queue_position=position,
            status=QueueStatus.WAITING,
            entered_at=datetime.utcnow(),
            available_seats=vehicle.capacity,
            total_seats=vehicle.capacity,
            base_price=base_price,
            estimated_departure=None,
            actual_departure=None,
        )
        session.add(entry)
        try:
            await session.flush()
        except IntegrityError as exc:
            # Another transaction queued this vehicle first
            raise AlreadyQueuedError(vehicle.license_plate) from exc
        return entry

    def ensure_eligible(self, info: VehicleInfo) -> None:
        if not info.is_active:
            raise NotAuthorizedError(f"Vehicle {info.license_plate} is not active", {"license_plate": info.license_plate})
        if not info.is_available:
            raise NotAuthorizedError(
                f"Vehicle {info.license_plate} is not available for trips", {"license_plate": info.license_plate}
            )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def enter(
        self,
        license_plate: str,
        destination_id: Optional[str] = None,
        queue_type: QueueType = QueueType.REGULAR
    ) -> ServiceResult:
        """
        Append a vehicle to a destination queue.

        Fails with AlreadyQueued if the vehicle has an active entry anywhere
        and with NotAuthorized if the destination is not authorized.
        """
        async def _work(session: AsyncSession, events: List[ChangeEvent]) -> QueueEnterResponse:
            vehicle = await self.directory.load_vehicle(session, license_plate)
            info = self.directory.to_info(vehicle)
            self.ensure_eligible(info)
            destination = self.directory.resolve_destination(info, destination_id)

            existing = await self.active_entry(session, vehicle.id)
            if existing is not None:
                raise AlreadyQueuedError(license_plate, existing.destination_name)

            await lock_partitions(session, (destination.station_id, queue_type))
            entry = await self.insert_entry(session, vehicle, destination, queue_type)

            events.append(partition_changed_event(entry.destination_id, queue_type))
            logger.info(
                "Vehicle %s entered %s queue for %s at position %s",
                license_plate, queue_type.value, entry.destination_name, entry.queue_position
            )
            return QueueEnterResponse(queue_entry=QueueEntryResponse.model_validate(entry))

        return await self._execute("enter_queue", _work)

    async def exit(self, license_plate: str) -> ServiceResult:
        """Remove a vehicle without paid/pending bookings from its queue."""
        async def _work(session: AsyncSession, events: List[ChangeEvent]) -> QueueExitResponse:
            vehicle = await self.directory.load_vehicle(session, license_plate)
            entry = await self.locate_and_lock(session, vehicle.id)
            if entry is None:
                raise VehicleNotInQueueError(license_plate)

            await self.ensure_no_bookings(session, entry)
            response = QueueExitResponse(
                license_plate=license_plate,
                destination_id=entry.destination_id,
                queue_type=entry.queue_type,
                status=entry.status,
            )
            await self.remove_entry(session, entry)

            events.append(partition_changed_event(response.destination_id, response.queue_type))
            logger.info("Vehicle %s exited queue for %s", license_plate, response.destination_id)
            return response

        return await self._execute("exit_queue", _work)

    async def move(self, license_plate: str, new_destination_id: str) -> ServiceResult:
        """
        Move a vehicle to another destination's queue.

        Exit and re-entry happen in one transaction: either the vehicle
        ends up in the new queue or it stays where it was.
        """
        async def _work(session: AsyncSession, events: List[ChangeEvent]) -> QueueEnterResponse:
            vehicle = await self.directory.load_vehicle(session, license_plate)
            info = self.directory.to_info(vehicle)
            self.ensure_eligible(info)
            destination = self.directory.resolve_destination(info, new_destination_id)

            entry = await self.locate_and_lock(
                session, vehicle.id,
                extra=lambda e: [(destination.station_id, e.queue_type)]
            )
            if entry is None:
                raise VehicleNotInQueueError(license_plate)
            if entry.destination_id == destination.station_id:
                raise AlreadyQueuedError(license_plate, entry.destination_name)

            await self.ensure_no_bookings(session, entry)
            previous_destination_id = entry.destination_id
            previous_destination = entry.destination_name
            queue_type = entry.queue_type

            await self.remove_entry(session, entry)
            new_entry = await self.insert_entry(session, vehicle, destination, queue_type)

            events.append(partition_changed_event(previous_destination_id, queue_type))
            events.append(partition_changed_event(new_entry.destination_id, queue_type))
            logger.info(
                "Vehicle %s moved from %s to %s queue at position %s",
                license_plate, previous_destination, new_entry.destination_name, new_entry.queue_position
            )
            return QueueEnterResponse(
                queue_entry=QueueEntryResponse.model_validate(new_entry),
                moved_from_queue=True,
                previous_destination=previous_destination,
            )

        return await self._execute("move_queue", _work)

    async def set_status(self, license_plate: str, status: QueueStatus) -> ServiceResult:
        """
        Advance a queue entry's status.

        Status only moves forward. READY requires a full vehicle. DEPARTED
        records the departure time, then removes the entry and closes the gap.
        """
        status = QueueStatus(status)

        async def _work(session: AsyncSession, events: List[ChangeEvent]) -> QueueEntryResponse:
            vehicle = await self.directory.load_vehicle(session, license_plate)
            entry = await self.locate_and_lock(session, vehicle.id)
            if entry is None:
                raise VehicleNotInQueueError(license_plate)

            current = entry.status
            if STATUS_ORDER[status] < STATUS_ORDER[current]:
                raise InvalidStatusTransitionError(current.value, status.value, "status cannot move backwards")
            if status == QueueStatus.READY and current != QueueStatus.READY and entry.available_seats > 0:
                raise InvalidStatusTransitionError(
                    current.value, status.value, f"{entry.available_seats} seats are still available"
                )

            entry.status = status
            if status == QueueStatus.DEPARTED:
                entry.actual_departure = datetime.utcnow()
            await session.flush()
            response = QueueEntryResponse.model_validate(entry)

            if status == QueueStatus.DEPARTED:
                await self.remove_entry(session, entry)
                logger.info("Vehicle %s departed for %s", license_plate, entry.destination_name)
            else:
                logger.info("Vehicle %s status updated to %s", license_plate, status.value)

            events.append(partition_changed_event(response.destination_id, response.queue_type))
            return response

        return await self._execute("update_queue_status", _work)

    async def add_to_overnight(self, license_plate: str, destination_id: Optional[str] = None) -> ServiceResult:
        """
        Put a vehicle in its destination's overnight queue.

        A vehicle waiting in a regular queue without bookings is moved to
        the overnight queue of the same destination.
        """
        async def _work(session: AsyncSession, events: List[ChangeEvent]) -> QueueEnterResponse:
            vehicle = await self.directory.load_vehicle(session, license_plate)
            info = self.directory.to_info(vehicle)
            self.ensure_eligible(info)

            entry = await self.locate_and_lock(
                session, vehicle.id,
                extra=lambda e: [(e.destination_id, QueueType.OVERNIGHT)]
            )
            if entry is None:
                destination = self.directory.resolve_destination(info, destination_id)
                await lock_partitions(session, (destination.station_id, QueueType.OVERNIGHT))
                new_entry = await self.insert_entry(session, vehicle, destination, QueueType.OVERNIGHT)
                events.append(ChangeEvent.overnight_queue_changed(new_entry.destination_id))
                logger.info(
                    "Vehicle %s added to overnight queue for %s at position %s",
                    license_plate, new_entry.destination_name, new_entry.queue_position
                )
                return QueueEnterResponse(queue_entry=QueueEntryResponse.model_validate(new_entry))

            if entry.queue_type == QueueType.OVERNIGHT:
                raise AlreadyQueuedError(license_plate, entry.destination_name)
            if destination_id is not None and destination_id != entry.destination_id:
                raise AlreadyQueuedError(license_plate, entry.destination_name)

            await self.ensure_no_bookings(session, entry)
            destination = self.directory.resolve_destination(info, entry.destination_id)
            previous_destination = entry.destination_name
            await self.remove_entry(session, entry)
            new_entry = await self.insert_entry(session, vehicle, destination, QueueType.OVERNIGHT)

            events.append(ChangeEvent.queue_changed(new_entry.destination_id))
            events.append(ChangeEvent.overnight_queue_changed(new_entry.destination_id))
            logger.info(
                "Vehicle %s moved from regular to overnight queue for %s at position %s",
                license_plate, new_entry.destination_name, new_entry.queue_position
            )
            return QueueEnterResponse(
                queue_entry=QueueEntryResponse.model_validate(new_entry),
                moved_from_queue=True,
                previous_destination=previous_destination,
            )

        return await self._execute("add_to_overnight", _work)

    async def remove_from_overnight(self, license_plate: str) -> ServiceResult:
        async def _work(session: AsyncSession, events: List[ChangeEvent]) -> QueueExitResponse:
            vehicle = await self.directory.load_vehicle(session, license_plate)
            entry = await self.locate_and_lock(session, vehicle.id)
            if entry is None or entry.queue_type != QueueType.OVERNIGHT:
                raise VehicleNotInQueueError(license_plate, QueueType.OVERNIGHT.value)

            await self.ensure_no_bookings(session, entry)
            response = QueueExitResponse(
                license_plate=license_plate,
                destination_id=entry.destination_id,
                queue_type=entry.queue_type,
                status=entry.status,
            )
            await self.remove_entry(session, entry)

            events.append(ChangeEvent.overnight_queue_changed(response.destination_id))
            logger.info("Vehicle %s removed from overnight queue for %s", license_plate, response.destination_id)
            return response

        return await self._execute("remove_from_overnight", _work)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_queue(self, destination_id: str, queue_type: Optional[QueueType] = None) -> ServiceResult:
        """Active entries of a destination, overnight first, by position."""
        async def _work(session: AsyncSession) -> List[QueueEntryResponse]:
            stmt = select(VehicleQueue).where(
                VehicleQueue.destination_id == destination_id,
                VehicleQueue.status.in_(ACTIVE_QUEUE_STATUSES)
            )
            if queue_type is not None:
                stmt = stmt.where(VehicleQueue.queue_type == queue_type)
            result = await session.execute(stmt)
            entries = sorted(result.scalars().all(), key=queue_order_key)
            return [QueueEntryResponse.model_validate(e) for e in entries]

        return await self._read("list_queue", _work)

    async def list_overnight_queues(self) -> ServiceResult:
        async def _work(session: AsyncSession) -> OvernightQueues:
            result = await session.execute(
                select(VehicleQueue).where(
                    VehicleQueue.queue_type == QueueType.OVERNIGHT,
                    VehicleQueue.status.in_(ACTIVE_QUEUE_STATUSES)
                ).order_by(VehicleQueue.destination_id.asc(), VehicleQueue.queue_position.asc())
            )
            queues: Dict[str, List[QueueEntryResponse]] = defaultdict(list)
            for entry in result.scalars().all():
                queues[entry.destination_id].append(QueueEntryResponse.model_validate(entry))
            return OvernightQueues(queues=dict(queues))

        return await self._read("list_overnight_queues", _work)

    async def queue_summaries(self) -> ServiceResult:
        """Per-destination vehicle counts by status."""
        async def _work(session: AsyncSession) -> List[QueueSummary]:
            result = await session.execute(
                select(
                    VehicleQueue.destination_id,
                    VehicleQueue.destination_name,
                    VehicleQueue.status,
                    func.count(VehicleQueue.id),
                    func.min(VehicleQueue.estimated_departure),
                ).where(
                    VehicleQueue.status.in_(ACTIVE_QUEUE_STATUSES)
                ).group_by(
                    VehicleQueue.destination_id, VehicleQueue.destination_name, VehicleQueue.status
                )
            )

            summaries: Dict[str, QueueSummary] = {}
            for destination_id, destination_name, status, count, next_departure in result.all():
                summary = summaries.get(destination_id)
                if summary is None:
                    summary = QueueSummary(
                        destination_id=destination_id,
                        destination_name=destination_name,
                        total_vehicles=0,
                    )
                    summaries[destination_id] = summary
                summary.total_vehicles += count
                if status == QueueStatus.WAITING:
                    summary.waiting_vehicles += count
                elif status == QueueStatus.LOADING:
                    summary.loading_vehicles += count
                elif status == QueueStatus.READY:
                    summary.ready_vehicles += count
                if next_departure is not None and (
                    summary.estimated_next_departure is None or next_departure < summary.estimated_next_departure
                ):
                    summary.estimated_next_departure = next_departure

            return sorted(summaries.values(), key=lambda s: s.destination_name)

        return await self._read("queue_summaries", _work)
