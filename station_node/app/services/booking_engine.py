"""
Seat Allocation & Booking Engine.

Turns a (destination, seats) request into one or more bookings inside one
transaction. Seats are taken with a conditional decrement so concurrent
bookings on the same vehicle can never oversell it, and the READY flip is
conditional too so the trip-start record is written exactly once.
"""

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Dict, List, Union

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from station_node.app.core.context import StationContext
from station_node.app.core.exceptions import (
    AlreadyVerifiedError, ConcurrentUpdateError, InsufficientSeatsError, InvalidVerificationCodeError,
    NoVehiclesAvailableError, OnlineTicketNotFoundError, SeatLimitExceededError, VerificationCodeExhaustedError
)
from station_node.app.domain.booking.seat_allocation import (
    SeatAllocation, SeatCandidate, allocate_seats, apportion_amount, distinct_verification_codes
)
from station_node.app.domain.pricing.route_prices import RoutePriceLookup
from station_node.app.models.booking import Booking
from station_node.app.models.queue_enums import (
    ACTIVE_QUEUE_STATUSES, BookingType, PaymentStatus, QueueStatus, QueueType
)
from station_node.app.models.trip import Trip
from station_node.app.models.vehicle_queue import VehicleQueue
from station_node.app.schemas.booking import (
    AvailableSeats, BookingResponse, BookingResult, CashBookingRequest, DestinationAvailability,
    OnlineBookingRequest, PaymentStatusResult, VehicleSeating, VerificationOutcome
)
from station_node.app.schemas.common import ErrorDetail, ServiceResult
from station_node.app.services.base import StationService
from station_node.app.services.notifier import ChangeEvent
from station_node.app.services.queue_store import partition_changed_event, queue_order_key

logger = logging.getLogger("station_node.booking")

BOOKABLE_STATUSES = (QueueStatus.WAITING, QueueStatus.LOADING)


class BookingEngine(StationService):

    def __init__(self, ctx: StationContext, prices: RoutePriceLookup = None):
        super().__init__(ctx)
        self.prices = prices or RoutePriceLookup(ctx)

    # ------------------------------------------------------------------
    # Snapshot reads
    # ------------------------------------------------------------------

    async def bookable_entries(self, session: AsyncSession, destination_id: str) -> List[VehicleQueue]:
        """Entries with free seats, overnight first, each group by position."""
        result = await session.execute(
            select(VehicleQueue).where(
                VehicleQueue.destination_id == destination_id,
                VehicleQueue.status.in_(BOOKABLE_STATUSES),
                VehicleQueue.available_seats > 0
            ).execution_options(populate_existing=True)
        )
        return sorted(result.scalars().all(), key=queue_order_key)

    async def count_queued(self, session: AsyncSession, destination_id: str) -> int:
        result = await session.execute(
            select(func.count(VehicleQueue.id)).where(
                VehicleQueue.destination_id == destination_id,
                VehicleQueue.status.in_(ACTIVE_QUEUE_STATUSES)
            )
        )
        return result.scalar() or 0

    @staticmethod
    def to_seating(entry: VehicleQueue) -> VehicleSeating:
        return VehicleSeating(
            queue_id=entry.id,
            vehicle_id=entry.vehicle_id,
            license_plate=entry.license_plate,
            queue_type=entry.queue_type.value,
            queue_position=entry.queue_position,
            available_seats=entry.available_seats,
            total_seats=entry.total_seats,
            base_price=entry.base_price,
            status=entry.status.value,
            estimated_departure=entry.estimated_departure,
        )

    async def get_available_seats(self, destination_id: str) -> ServiceResult:
        """Snapshot of bookable vehicles for a destination in allocation order."""
        async def _work(session: AsyncSession) -> AvailableSeats:
            entries = await self.bookable_entries(session, destination_id)
            if entries:
                destination_name = entries[0].destination_name
            else:
                destination_name = await self.prices.get_station_name(destination_id, session)
            return AvailableSeats(
                destination_id=destination_id,
                destination_name=destination_name,
                total_available_seats=sum(e.available_seats for e in entries),
                vehicles=[self.to_seating(e) for e in entries],
            )

        return await self._read("get_available_seats", _work)

    async def available_destinations(self) -> ServiceResult:
        """Destinations that currently have bookable seats."""
        async def _work(session: AsyncSession) -> List[DestinationAvailability]:
            result = await session.execute(
                select(
                    VehicleQueue.destination_id,
                    func.min(VehicleQueue.destination_name),
                    func.sum(VehicleQueue.available_seats),
                    func.count(VehicleQueue.id),
                ).where(
                    VehicleQueue.status.in_(BOOKABLE_STATUSES),
                    VehicleQueue.available_seats > 0
                ).group_by(VehicleQueue.destination_id)
            )
            destinations = [
                DestinationAvailability(
                    destination_id=destination_id,
                    destination_name=destination_name,
                    total_available_seats=int(seats or 0),
                    vehicle_count=count,
                )
                for destination_id, destination_name, seats, count in result.all()
            ]
            return sorted(destinations, key=lambda d: d.destination_name)

        return await self._read("available_destinations", _work)

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    async def _take_seats(self, session: AsyncSession, queue_id: int, seats: int) -> bool:
        """Decrement seats only if enough remain. True on success."""
        result = await session.execute(
            update(VehicleQueue).where(
                VehicleQueue.id == queue_id,
                VehicleQueue.status.in_(BOOKABLE_STATUSES),
                VehicleQueue.available_seats >= seats
            ).values(
                available_seats=VehicleQueue.available_seats - seats
            ).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _mark_ready_if_full(self, session: AsyncSession, queue_id: int) -> bool:
        """Flip a full entry to READY. True only for the transaction that flipped it."""
        result = await session.execute(
            update(VehicleQueue).where(
                VehicleQueue.id == queue_id,
                VehicleQueue.available_seats == 0,
                VehicleQueue.status != QueueStatus.READY
            ).values(
                status=QueueStatus.READY
            ).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _reload_entry(self, session: AsyncSession, queue_id: int) -> VehicleQueue:
        result = await session.execute(
            select(VehicleQueue).where(VehicleQueue.id == queue_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _new_verification_codes(self, session: AsyncSession, count: int) -> List[str]:
        settings = self.ctx.settings
        for _ in range(settings.verification_code_attempts):
            codes = distinct_verification_codes(count, settings.verification_code_length)
            result = await session.execute(
                select(Booking.verification_code).where(Booking.verification_code.in_(codes))
            )
            if not result.scalars().first():
                return codes
        raise VerificationCodeExhaustedError(settings.verification_code_attempts)

    def _plan_allocation(
        self,
        request: Union[CashBookingRequest, OnlineBookingRequest],
        entries: List[VehicleQueue]
    ) -> List[SeatAllocation]:
        seats_requested = request.seats_requested
        total_available = sum(e.available_seats for e in entries)

        if isinstance(request, OnlineBookingRequest) and request.vehicle_allocations:
            by_id = {e.id: e for e in entries}
            plan = []
            for allocation in request.vehicle_allocations:
                entry = by_id.get(allocation.queue_id)
                available = entry.available_seats if entry else 0
                if available < allocation.seats_to_book:
                    raise InsufficientSeatsError(allocation.seats_to_book, available, allocation.queue_id)
                plan.append(SeatAllocation(queue_id=allocation.queue_id, seats_to_book=allocation.seats_to_book))
            return plan

        candidates = [
            SeatCandidate(
                queue_id=e.id,
                available_seats=e.available_seats,
                queue_position=e.queue_position,
                base_price=e.base_price,
                overnight=e.queue_type == QueueType.OVERNIGHT,
            )
            for e in entries
        ]
        plan = allocate_seats(candidates, seats_requested)
        if not plan:
            raise InsufficientSeatsError(seats_requested, total_available)
        return plan

    async def create_booking(self, request: Union[CashBookingRequest, OnlineBookingRequest]) -> ServiceResult:
        """
        Book seats for a destination across one or more vehicles.

        CASH bookings are priced at seats x the vehicle's base price and
        start PAID. ONLINE bookings carry the central server's total, which
        is apportioned across vehicles by seats, and start PENDING.

        All or nothing: if any vehicle lost its seats since the snapshot,
        the whole request fails with InsufficientSeats and nothing is written.
        """
        limit = self.ctx.settings.max_seats_per_request
        is_online = isinstance(request, OnlineBookingRequest)

        async def _work(session: AsyncSession, events: List[ChangeEvent]) -> BookingResult:
            if request.seats_requested > limit:
                raise SeatLimitExceededError(request.seats_requested, limit)

            entries = await self.bookable_entries(session, request.destination_id)
            if not entries and await self.count_queued(session, request.destination_id) == 0:
                raise NoVehiclesAvailableError(request.destination_id)

            plan = self._plan_allocation(request, entries)
            by_id = {e.id: e for e in entries}
            codes = await self._new_verification_codes(session, len(plan))

            if is_online:
                amounts = apportion_amount(request.total_amount, [a.seats_to_book for a in plan])
            else:
                amounts = [round(a.seats_to_book * by_id[a.queue_id].base_price, 3) for a in plan]

            now = datetime.utcnow()
            bookings: List[Booking] = []
            ready_queue_ids: List[int] = []
            touched: "OrderedDict[tuple, None]" = OrderedDict()

            for allocation, code, amount in zip(plan, codes, amounts):
                if not await self._take_seats(session, allocation.queue_id, allocation.seats_to_book):
                    current = await self._reload_entry(session, allocation.queue_id)
                    available = current.available_seats if current is not None else 0
                    raise InsufficientSeatsError(allocation.seats_to_book, available, allocation.queue_id)

                became_ready = await self._mark_ready_if_full(session, allocation.queue_id)
                entry = await self._reload_entry(session, allocation.queue_id)

                booking = Booking(
                    queue_id=entry.id,
                    destination_id=entry.destination_id,
                    destination_name=entry.destination_name,
                    vehicle_license_plate=entry.license_plate,
                    seats_booked=allocation.seats_to_book,
                    total_amount=amount,
                    booking_type=BookingType.ONLINE if is_online else BookingType.CASH,
                    payment_status=PaymentStatus.PENDING if is_online else PaymentStatus.PAID,
                    payment_method="ONLINE" if is_online else request.payment_method,
                    payment_processed_at=None if is_online else now,
                    verification_code=code,
                    is_verified=False,
                    verified_at=None,
                    created_by=None if is_online else request.staff_id,
                    user_id=request.user_id if is_online else None,
                    customer_phone=request.customer_phone,
                    online_ticket_id=request.online_ticket_id if is_online else None,
                    created_at=now,
                )
                session.add(booking)
                bookings.append(booking)
                touched[(entry.destination_id, entry.queue_type)] = None

                if became_ready:
                    session.add(Trip(
                        vehicle_id=entry.vehicle_id,
                        license_plate=entry.license_plate,
                        destination_id=entry.destination_id,
                        destination_name=entry.destination_name,
                        queue_id=entry.id,
                        seats_booked=entry.total_seats,
                        start_time=now,
                    ))
                    ready_queue_ids.append(entry.id)
                    events.append(ChangeEvent.vehicle_became_ready(entry.id, entry.license_plate))
                    logger.info("Vehicle %s is full and READY for %s", entry.license_plate, entry.destination_name)

            try:
                await session.flush()
            except IntegrityError as exc:
                # A concurrent booking committed one of the same codes
                raise ConcurrentUpdateError("verification code taken") from exc

            for booking in bookings:
                events.append(ChangeEvent.booking_created(
                    booking.queue_id, booking.verification_code, booking.seats_booked, booking.total_amount
                ))
            for destination_id, queue_type in touched:
                events.append(partition_changed_event(destination_id, queue_type))

            total_amount = round(sum(b.total_amount for b in bookings), 3)
            logger.info(
                "%s booking of %s seats for %s across %s vehicle(s), total %s",
                "ONLINE" if is_online else "CASH", request.seats_requested,
                request.destination_id, len(bookings), total_amount
            )
            return BookingResult(
                bookings=[BookingResponse.model_validate(b) for b in bookings],
                total_amount=total_amount,
                verification_codes=[b.verification_code for b in bookings],
                ready_queue_ids=ready_queue_ids,
            )

        return await self._execute("create_booking", _work)

    # ------------------------------------------------------------------
    # Tickets
    # ------------------------------------------------------------------

    async def verify(self, verification_code: str, staff_id: str) -> ServiceResult:
        """
        Redeem a ticket.

        A second call succeeds with already_verified=True, leaves verified_at
        untouched and carries ERR_BOOKING_005 as a soft signal.
        """
        async def _work(session: AsyncSession, events: List[ChangeEvent]) -> VerificationOutcome:
            result = await session.execute(
                select(Booking).where(Booking.verification_code == verification_code).with_for_update()
            )
            booking = result.scalar_one_or_none()
            if booking is None:
                raise InvalidVerificationCodeError(verification_code)

            if booking.is_verified:
                logger.info("Ticket %s was already verified at %s", verification_code, booking.verified_at)
                return VerificationOutcome(booking=BookingResponse.model_validate(booking), already_verified=True)

            booking.is_verified = True
            booking.verified_at = datetime.utcnow()
            booking.verified_by_id = staff_id
            await session.flush()

            logger.info("Ticket %s verified by %s", verification_code, staff_id)
            return VerificationOutcome(booking=BookingResponse.model_validate(booking))

        result = await self._execute("verify_ticket", _work)
        if result.success and result.data.already_verified:
            signal = AlreadyVerifiedError(verification_code)
            result.error = ErrorDetail(
                error_code=signal.error_code,
                message=signal.message,
                details=signal.details,
                status_code=signal.status_code,
            )
        return result

    async def get_booking(self, verification_code: str) -> ServiceResult:
        async def _work(session: AsyncSession) -> BookingResponse:
            result = await session.execute(select(Booking).where(Booking.verification_code == verification_code))
            booking = result.scalar_one_or_none()
            if booking is None:
                raise InvalidVerificationCodeError(verification_code)
            return BookingResponse.model_validate(booking)

        return await self._read("get_booking", _work)

    async def update_online_payment_status(self, online_ticket_id: str, payment_status: PaymentStatus) -> ServiceResult:
        """
        Settle the payment of an online ticket.

        Only PENDING bookings change. FAILED or CANCELLED bookings release
        their seats back to the vehicle if it is still queued.
        """
        payment_status = PaymentStatus(payment_status)

        async def _work(session: AsyncSession, events: List[ChangeEvent]) -> PaymentStatusResult:
            result = await session.execute(
                select(Booking).where(
                    Booking.online_ticket_id == online_ticket_id,
                    Booking.booking_type == BookingType.ONLINE
                ).order_by(Booking.id.asc()).with_for_update()
            )
            bookings = list(result.scalars().all())
            if not bookings:
                raise OnlineTicketNotFoundError(online_ticket_id)

            now = datetime.utcnow()
            released: Dict[int, int] = {}
            updated = 0
            for booking in bookings:
                if booking.payment_status != PaymentStatus.PENDING or payment_status == PaymentStatus.PENDING:
                    continue
                booking.payment_status = payment_status
                booking.payment_processed_at = now
                updated += 1
                if payment_status != PaymentStatus.PAID and booking.queue_id is not None:
                    released[booking.queue_id] = released.get(booking.queue_id, 0) + booking.seats_booked

            for queue_id, seats in released.items():
                await session.execute(
                    update(VehicleQueue).where(
                        VehicleQueue.id == queue_id,
                        VehicleQueue.available_seats + seats <= VehicleQueue.total_seats
                    ).values(
                        available_seats=VehicleQueue.available_seats + seats
                    ).execution_options(synchronize_session=False)
                )
                entry = await self._reload_entry(session, queue_id)
                if entry is not None:
                    events.append(partition_changed_event(entry.destination_id, entry.queue_type))
            await session.flush()

            if updated:
                events.append(ChangeEvent.payment_status_changed(online_ticket_id, payment_status.value))
            logger.info(
                "Online ticket %s: %s of %s booking(s) set to %s",
                online_ticket_id, updated, len(bookings), payment_status.value
            )
            return PaymentStatusResult(online_ticket_id=online_ticket_id, payment_status=payment_status, updated=updated)

        return await self._execute("update_online_payment_status", _work)
