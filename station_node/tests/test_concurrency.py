"""
Concurrency Tests.

Validates that racing writers cannot break queue positions, oversell a
vehicle or queue one vehicle twice.
"""

import asyncio
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from station_node.app.models.booking import Booking
from station_node.app.models.queue_enums import QueueStatus, QueueType
from station_node.app.models.trip import Trip
from station_node.app.models.vehicle_queue import VehicleQueue
from station_node.app.schemas.booking import CashBookingRequest
from station_node.tests.stations import MAHDIA, SOUSSE, TUNIS

pytestmark = pytest.mark.usefixtures("routes")


@pytest.mark.asyncio
async def test_concurrent_enters_get_distinct_positions(seed, queue_store):
    plates = [f"{n:03d}TU{n}" for n in range(1, 9)]
    for plate in plates:
        await seed.vehicle(plate)

    results = await asyncio.gather(*(queue_store.enter(plate, SOUSSE) for plate in plates))

    assert all(r.success for r in results)
    assert sorted(r.data.queue_entry.queue_position for r in results) == list(range(1, 9))
    rows = await seed.queue_rows(SOUSSE)
    assert [r.queue_position for r in rows] == list(range(1, 9))


@pytest.mark.asyncio
async def test_same_vehicle_two_destinations(seed, queue_store):
    await seed.vehicle("111TU1", destinations=((SOUSSE, "Sousse"), (MAHDIA, "Mahdia")))

    results = await asyncio.gather(
        queue_store.enter("111TU1", SOUSSE),
        queue_store.enter("111TU1", MAHDIA),
    )

    assert sorted(r.success for r in results) == [False, True]
    failed = next(r for r in results if not r.success)
    assert failed.error.error_code == "ERR_QUEUE_001"


@pytest.mark.asyncio
async def test_concurrent_moves_keep_single_entry(seed, queue_store, session_factory):
    everywhere = ((SOUSSE, "Sousse"), (MAHDIA, "Mahdia"), (TUNIS, "Tunis"))
    await seed.vehicle("111TU1", destinations=everywhere)
    for plate, destination_id in (("222TU2", SOUSSE), ("333TU3", MAHDIA), ("444TU4", TUNIS)):
        await seed.vehicle(plate, destinations=everywhere)
        await queue_store.enter(plate, destination_id)
    await queue_store.enter("111TU1", SOUSSE)

    results = await asyncio.gather(
        queue_store.move("111TU1", MAHDIA),
        queue_store.move("111TU1", TUNIS),
        queue_store.move("111TU1", SOUSSE),
    )

    assert any(r.success for r in results)
    assert {r.error.error_code for r in results if not r.success} <= {"ERR_QUEUE_001"}
    async with session_factory() as session:
        rows = (await session.execute(
            select(VehicleQueue).where(VehicleQueue.license_plate == "111TU1")
        )).scalars().all()
    assert len(rows) == 1
    for destination_id in (SOUSSE, MAHDIA, TUNIS):
        positions = [r.queue_position for r in await seed.queue_rows(destination_id, QueueType.REGULAR)]
        assert positions == list(range(1, len(positions) + 1))


@pytest.mark.asyncio
async def test_entry_moved_after_lookup_reruns_transaction(seed, queue_store, mocker):
    await seed.vehicle("111TU1")
    await queue_store.enter("111TU1", SOUSSE)
    lookup = queue_store.active_entry
    stale = []

    async def moved_once(session, vehicle_id, for_update=False):
        entry = await lookup(session, vehicle_id, for_update)
        if not for_update and not stale:
            stale.append(entry.destination_id)
            return SimpleNamespace(destination_id=MAHDIA, queue_type=entry.queue_type)
        return entry

    mocker.patch.object(queue_store, "active_entry", side_effect=moved_once)

    result = await queue_store.exit("111TU1")

    assert result.success
    assert stale == [SOUSSE]
    assert await seed.queue_rows(SOUSSE) == []


@pytest.mark.asyncio
async def test_entry_that_keeps_moving_gives_up(seed, queue_store, notifier, mocker):
    await seed.vehicle("111TU1")
    await queue_store.enter("111TU1", SOUSSE)
    notifier.events.clear()
    lookup = queue_store.active_entry

    async def always_stale(session, vehicle_id, for_update=False):
        entry = await lookup(session, vehicle_id, for_update)
        if not for_update:
            return SimpleNamespace(destination_id=MAHDIA, queue_type=entry.queue_type)
        return entry

    mocker.patch.object(queue_store, "active_entry", side_effect=always_stale)

    result = await queue_store.exit("111TU1")

    assert not result.success
    assert result.error.error_code == "ERR_CONFLICT_001"
    assert [r.license_plate for r in await seed.queue_rows(SOUSSE)] == ["111TU1"]
    assert notifier.events == []


@pytest.mark.asyncio
async def test_concurrent_bookings_never_oversell(seed, queue_store, booking_engine, session_factory):
    await seed.vehicle("AAA111", capacity=5)
    await queue_store.enter("AAA111", SOUSSE)

    results = await asyncio.gather(*(
        booking_engine.create_booking(
            CashBookingRequest(destination_id=SOUSSE, seats_requested=1, staff_id=f"staff-{i}")
        )
        for i in range(10)
    ))

    assert sum(r.success for r in results) == 5
    assert {r.error.error_code for r in results if not r.success} == {"ERR_BOOKING_001"}

    entry = await seed.entry("AAA111")
    assert entry.available_seats == 0
    assert entry.status == QueueStatus.READY
    async with session_factory() as session:
        seats = (await session.execute(select(func.sum(Booking.seats_booked)))).scalar()
        trips = (await session.execute(select(func.count()).select_from(Trip))).scalar()
    assert seats == entry.total_seats
    assert trips == 1


@pytest.mark.asyncio
async def test_exit_and_enter_interleaved_keep_positions_contiguous(seed, queue_store):
    plates = [f"{n:03d}TU{n}" for n in range(1, 7)]
    for plate in plates[:3]:
        await seed.vehicle(plate)
        await queue_store.enter(plate, SOUSSE)
    for plate in plates[3:]:
        await seed.vehicle(plate)

    await asyncio.gather(
        queue_store.exit(plates[0]),
        queue_store.enter(plates[3], SOUSSE),
        queue_store.set_status(plates[1], QueueStatus.DEPARTED),
        queue_store.enter(plates[4], SOUSSE),
        queue_store.enter(plates[5], SOUSSE),
    )

    rows = await seed.queue_rows(SOUSSE)
    assert len(rows) == 4
    assert [r.queue_position for r in rows] == [1, 2, 3, 4]
    assert rows[0].license_plate == plates[2]
