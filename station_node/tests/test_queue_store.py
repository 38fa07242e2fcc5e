"""
Queue Store Tests.

Validates entry, exit, move and status changes, and that positions stay
contiguous in every partition.
"""

import pytest

from station_node.app.models.queue_enums import QueueStatus, QueueType
from station_node.app.schemas.booking import CashBookingRequest
from station_node.app.services.notifier import ChangeEventType
from station_node.tests.stations import MAHDIA, SOUSSE, STATION_ID, TUNIS

pytestmark = pytest.mark.usefixtures("routes")


async def positions(seed, destination_id, queue_type=QueueType.REGULAR):
    rows = await seed.queue_rows(destination_id, queue_type)
    return [(r.license_plate, r.queue_position) for r in rows]


@pytest.mark.asyncio
async def test_enter_appends_at_tail(seed, queue_store):
    """Entries get positions 1..N in arrival order and seats from capacity."""
    for plate in ("111TU1", "222TU2", "333TU3"):
        await seed.vehicle(plate, capacity=8)

    results = [await queue_store.enter(plate, SOUSSE) for plate in ("111TU1", "222TU2", "333TU3")]

    assert all(r.success for r in results)
    assert [r.data.queue_entry.queue_position for r in results] == [1, 2, 3]
    entry = results[0].data.queue_entry
    assert entry.available_seats == entry.total_seats == 8
    assert entry.base_price == 10.0
    assert entry.destination_name == "Sousse"
    assert entry.status == QueueStatus.WAITING


@pytest.mark.asyncio
async def test_enter_twice_is_already_queued(seed, queue_store):
    await seed.vehicle("111TU1", destinations=((SOUSSE, "Sousse"), (MAHDIA, "Mahdia")))
    assert (await queue_store.enter("111TU1", SOUSSE)).success

    again = await queue_store.enter("111TU1", MAHDIA)

    assert not again.success
    assert again.error.error_code == "ERR_QUEUE_001"
    assert await positions(seed, MAHDIA) == []


@pytest.mark.asyncio
async def test_enter_unauthorized_destination(seed, queue_store):
    await seed.vehicle("111TU1", destinations=((SOUSSE, "Sousse"),))

    result = await queue_store.enter("111TU1", TUNIS)

    assert not result.success
    assert result.error.error_code == "ERR_QUEUE_002"


@pytest.mark.asyncio
async def test_enter_current_station_is_rejected(seed, queue_store):
    await seed.vehicle("111TU1", destinations=((STATION_ID, "Monastir"), (SOUSSE, "Sousse")))

    result = await queue_store.enter("111TU1", STATION_ID)

    assert not result.success
    assert result.error.error_code == "ERR_QUEUE_002"


@pytest.mark.asyncio
async def test_enter_resolves_default_then_priority(seed, queue_store):
    await seed.vehicle("111TU1", destinations=((SOUSSE, "Sousse"), (MAHDIA, "Mahdia")), default_destination_id=MAHDIA)
    await seed.vehicle("222TU2", destinations=((STATION_ID, "Monastir"), (TUNIS, "Tunis"), (SOUSSE, "Sousse")))

    first = await queue_store.enter("111TU1")
    second = await queue_store.enter("222TU2")

    assert first.data.queue_entry.destination_id == MAHDIA
    assert second.data.queue_entry.destination_id == TUNIS


@pytest.mark.asyncio
async def test_enter_unknown_or_inactive_vehicle(seed, queue_store):
    await seed.vehicle("111TU1", is_active=False)

    missing = await queue_store.enter("999TU9", SOUSSE)
    inactive = await queue_store.enter("111TU1", SOUSSE)

    assert missing.error.error_code == "ERR_VEHICLE_001"
    assert inactive.error.error_code == "ERR_QUEUE_002"


@pytest.mark.asyncio
async def test_exit_resequences_partition(seed, queue_store, notifier):
    for plate in ("111TU1", "222TU2", "333TU3", "444TU4"):
        await seed.vehicle(plate)
        await queue_store.enter(plate, SOUSSE)

    result = await queue_store.exit("222TU2")

    assert result.success
    assert await positions(seed, SOUSSE) == [("111TU1", 1), ("333TU3", 2), ("444TU4", 3)]
    assert notifier.named(ChangeEventType.QUEUE_CHANGED)[-1].payload == {"destination_id": SOUSSE}


@pytest.mark.asyncio
async def test_exit_not_in_queue(seed, queue_store):
    await seed.vehicle("111TU1")

    result = await queue_store.exit("111TU1")

    assert result.error.error_code == "ERR_QUEUE_004"


@pytest.mark.asyncio
async def test_exit_blocked_by_bookings(seed, queue_store, booking_engine):
    await seed.vehicle("111TU1", capacity=4)
    await queue_store.enter("111TU1", SOUSSE)
    booked = await booking_engine.create_booking(
        CashBookingRequest(destination_id=SOUSSE, seats_requested=1, staff_id="staff-1")
    )
    assert booked.success

    result = await queue_store.exit("111TU1")

    assert not result.success
    assert result.error.error_code == "ERR_QUEUE_003"
    assert await positions(seed, SOUSSE) == [("111TU1", 1)]


@pytest.mark.asyncio
async def test_move_is_exit_plus_enter(seed, queue_store, notifier):
    both = ((SOUSSE, "Sousse"), (MAHDIA, "Mahdia"))
    for plate in ("111TU1", "222TU2"):
        await seed.vehicle(plate, destinations=both)
        await queue_store.enter(plate, SOUSSE)
    await seed.vehicle("333TU3", destinations=both)
    await queue_store.enter("333TU3", MAHDIA)

    result = await queue_store.move("111TU1", MAHDIA)

    assert result.success
    assert result.data.moved_from_queue is True
    assert result.data.previous_destination == "Sousse"
    assert result.data.queue_entry.base_price == 7.5
    assert await positions(seed, SOUSSE) == [("222TU2", 1)]
    assert await positions(seed, MAHDIA) == [("333TU3", 1), ("111TU1", 2)]
    changed = {e.payload["destination_id"] for e in notifier.named(ChangeEventType.QUEUE_CHANGED)}
    assert {SOUSSE, MAHDIA} <= changed


@pytest.mark.asyncio
async def test_failed_move_leaves_vehicle_in_place(seed, queue_store, booking_engine):
    """A move rejected by the booking guard changes nothing."""
    await seed.vehicle("111TU1", capacity=4, destinations=((SOUSSE, "Sousse"), (MAHDIA, "Mahdia")))
    await queue_store.enter("111TU1", SOUSSE)
    await booking_engine.create_booking(CashBookingRequest(destination_id=SOUSSE, seats_requested=2, staff_id="s"))

    result = await queue_store.move("111TU1", MAHDIA)

    assert result.error.error_code == "ERR_QUEUE_003"
    assert await positions(seed, SOUSSE) == [("111TU1", 1)]
    assert await positions(seed, MAHDIA) == []


@pytest.mark.asyncio
async def test_move_to_unauthorized_destination_keeps_entry(seed, queue_store):
    await seed.vehicle("111TU1", destinations=((SOUSSE, "Sousse"),))
    await queue_store.enter("111TU1", SOUSSE)

    result = await queue_store.move("111TU1", TUNIS)

    assert result.error.error_code == "ERR_QUEUE_002"
    assert await positions(seed, SOUSSE) == [("111TU1", 1)]


@pytest.mark.asyncio
async def test_status_moves_forward_only(seed, queue_store):
    await seed.vehicle("111TU1")
    await queue_store.enter("111TU1", SOUSSE)

    loading = await queue_store.set_status("111TU1", QueueStatus.LOADING)
    backwards = await queue_store.set_status("111TU1", QueueStatus.WAITING)
    ready_with_seats = await queue_store.set_status("111TU1", QueueStatus.READY)

    assert loading.success and loading.data.status == QueueStatus.LOADING
    assert backwards.error.error_code == "ERR_QUEUE_005"
    assert ready_with_seats.error.error_code == "ERR_QUEUE_005"


@pytest.mark.asyncio
async def test_departure_removes_and_resequences(seed, queue_store):
    for plate in ("111TU1", "222TU2", "333TU3"):
        await seed.vehicle(plate)
        await queue_store.enter(plate, SOUSSE)

    result = await queue_store.set_status("111TU1", QueueStatus.DEPARTED)

    assert result.success
    assert result.data.status == QueueStatus.DEPARTED
    assert result.data.actual_departure is not None
    assert await seed.entry("111TU1") is None
    assert await positions(seed, SOUSSE) == [("222TU2", 1), ("333TU3", 2)]

    # The departed vehicle can queue again
    assert (await queue_store.enter("111TU1", SOUSSE)).data.queue_entry.queue_position == 3


@pytest.mark.asyncio
async def test_add_to_overnight_moves_regular_entry(seed, queue_store):
    await seed.vehicle("111TU1")
    await seed.vehicle("222TU2")
    await queue_store.enter("111TU1", SOUSSE)
    await queue_store.enter("222TU2", SOUSSE)

    result = await queue_store.add_to_overnight("111TU1")

    assert result.success
    assert result.data.moved_from_queue is True
    assert result.data.queue_entry.queue_type == QueueType.OVERNIGHT
    assert await positions(seed, SOUSSE) == [("222TU2", 1)]
    assert await positions(seed, SOUSSE, QueueType.OVERNIGHT) == [("111TU1", 1)]

    again = await queue_store.add_to_overnight("111TU1")
    assert again.error.error_code == "ERR_QUEUE_001"


@pytest.mark.asyncio
async def test_remove_from_overnight(seed, queue_store):
    await seed.vehicle("111TU1")
    await seed.vehicle("222TU2")
    await queue_store.add_to_overnight("111TU1", SOUSSE)
    await queue_store.add_to_overnight("222TU2", SOUSSE)
    regular_only = await seed.vehicle("333TU3")
    await queue_store.enter(regular_only.license_plate, SOUSSE)

    removed = await queue_store.remove_from_overnight("111TU1")
    not_overnight = await queue_store.remove_from_overnight("333TU3")

    assert removed.success
    assert await positions(seed, SOUSSE, QueueType.OVERNIGHT) == [("222TU2", 1)]
    assert not_overnight.error.error_code == "ERR_QUEUE_004"


@pytest.mark.asyncio
async def test_reads(seed, queue_store):
    await seed.vehicle("111TU1")
    await seed.vehicle("222TU2")
    await seed.vehicle("333TU3", destinations=((MAHDIA, "Mahdia"),))
    await queue_store.enter("111TU1", SOUSSE)
    await queue_store.add_to_overnight("222TU2", SOUSSE)
    await queue_store.enter("333TU3", MAHDIA)
    await queue_store.set_status("333TU3", QueueStatus.LOADING)

    listed = (await queue_store.list_queue(SOUSSE)).data
    overnight = (await queue_store.list_overnight_queues()).data
    summaries = {s.destination_id: s for s in (await queue_store.queue_summaries()).data}

    assert [e.license_plate for e in listed] == ["222TU2", "111TU1"]
    assert list(overnight.queues) == [SOUSSE]
    assert summaries[SOUSSE].total_vehicles == 2
    assert summaries[SOUSSE].waiting_vehicles == 2
    assert summaries[MAHDIA].loading_vehicles == 1
