"""
Overnight Transfer Scheduler.

Moves every OVERNIGHT entry into the REGULAR queue of its destination,
after the existing regular tail and in the original overnight order.

Triggered at station opening time and by a periodic safety sweep during
operating hours. At most one run is in flight per process; a trigger that
arrives while a run is going is skipped.
"""

import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from station_node.app.core.context import StationContext
from station_node.app.core.exceptions import TransferAlreadyRunning
from station_node.app.db.transaction import lock_partitions, run_in_transaction
from station_node.app.models.queue_enums import ACTIVE_QUEUE_STATUSES, QueueType
from station_node.app.models.vehicle_queue import VehicleQueue
from station_node.app.schemas.common import ErrorDetail, ServiceResult
from station_node.app.schemas.transfer import TransferReport
from station_node.app.services.base import StationService
from station_node.app.services.notifier import ChangeEvent
from station_node.app.services.queue_store import QueueStore

logger = logging.getLogger("station_node.transfer")


class OvernightTransferScheduler(StationService):

    def __init__(self, ctx: StationContext, queue_store: QueueStore = None):
        super().__init__(ctx)
        self.queue_store = queue_store or QueueStore(ctx)
        self._running = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._last_opening_run: Optional[date] = None
        self._last_sweep: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._running.locked()

    async def overnight_destinations(self) -> List[str]:
        async def _work(session: AsyncSession) -> List[str]:
            result = await session.execute(
                select(VehicleQueue.destination_id).where(
                    VehicleQueue.queue_type == QueueType.OVERNIGHT,
                    VehicleQueue.status.in_(ACTIVE_QUEUE_STATUSES)
                ).distinct().order_by(VehicleQueue.destination_id)
            )
            return list(result.scalars().all())

        return await run_in_transaction(self.ctx.session_factory, "list_overnight_destinations", _work)

    async def transfer_destination(self, destination_id: str) -> int:
        """
        Transfer one destination's overnight queue in its own transaction.

        Returns:
            Number of entries moved to the regular queue
        """
        async def _work(session: AsyncSession) -> int:
            await lock_partitions(session, (destination_id, QueueType.OVERNIGHT), (destination_id, QueueType.REGULAR))

            overnight = await self.queue_store.partition_entries(session, destination_id, QueueType.OVERNIGHT)
            if not overnight:
                return 0

            tail = await self.queue_store.next_position(session, destination_id, QueueType.REGULAR) - 1
            for offset, entry in enumerate(overnight, start=1):
                entry.queue_type = QueueType.REGULAR
                entry.queue_position = tail + offset
            await session.flush()
            return len(overnight)

        count = await run_in_transaction(self.ctx.session_factory, "overnight_transfer", _work)
        if count:
            await self.ctx.notifier.emit_all([
                ChangeEvent.overnight_transfer_completed(destination_id, count),
                ChangeEvent.overnight_queue_changed(destination_id),
                ChangeEvent.queue_changed(destination_id),
            ])
        return count

    async def run_transfer(self) -> ServiceResult:
        """
        Transfer all overnight queues.

        Each destination is handled independently: a failure is logged and
        the run continues with the next one. A call made while another run
        is in flight returns a skipped report without touching anything.
        """
        if self._running.locked():
            signal = TransferAlreadyRunning()
            logger.info("Overnight transfer trigger ignored: %s", signal.message)
            return ServiceResult(
                success=True,
                data=TransferReport(skipped=True),
                error=ErrorDetail(error_code=signal.error_code, message=signal.message),
            )

        async with self._running:
            report = TransferReport(started_at=datetime.utcnow())
            destinations = await self.overnight_destinations()

            for destination_id in destinations:
                try:
                    count = await self.transfer_destination(destination_id)
                except Exception:
                    logger.exception("Overnight transfer failed for destination %s", destination_id)
                    report.failed_destinations.append(destination_id)
                    continue
                if count:
                    report.destinations[destination_id] = count
                    report.transferred += count
                    logger.info("Transferred %s overnight vehicle(s) for %s", count, destination_id)

            report.finished_at = datetime.utcnow()
            if report.transferred or report.failed_destinations:
                logger.info(
                    "Overnight transfer finished: %s vehicle(s) across %s destination(s), %s failed",
                    report.transferred, len(report.destinations), len(report.failed_destinations)
                )
            return ServiceResult.ok(report)

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def _opening_due(self, now: datetime) -> bool:
        settings = self.ctx.settings
        if self._last_opening_run == now.date():
            return False
        opened = (now.hour, now.minute) >= (settings.station_open_hour, settings.station_open_minute)
        return opened and now.hour < settings.operating_hours_end

    def _sweep_due(self, now: datetime) -> bool:
        settings = self.ctx.settings
        if not settings.operating_hours_start <= now.hour < settings.operating_hours_end:
            return False
        if self._last_sweep is None:
            return True
        return now - self._last_sweep >= timedelta(minutes=settings.safety_sweep_interval_minutes)

    async def tick(self, now: datetime = None) -> Optional[TransferReport]:
        """
        One scheduler step.

        Runs the opening transfer once per day after opening time, and a
        safety sweep at most every sweep interval while overnight entries
        remain during operating hours.
        """
        now = now or datetime.now()

        if self._opening_due(now):
            logger.info("Station opening: running overnight transfer")
            outcome = await self.run_transfer()
            if not outcome.data.skipped:
                self._last_opening_run = now.date()
                self._last_sweep = now
            return outcome.data

        if self._sweep_due(now):
            self._last_sweep = now
            if await self.overnight_destinations():
                logger.info("Safety sweep: overnight entries remain, running transfer")
                outcome = await self.run_transfer()
                return outcome.data
        return None

    async def _loop(self) -> None:
        interval = self.ctx.settings.scheduler_tick_seconds
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Overnight transfer tick failed")
            await asyncio.sleep(interval)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())
            logger.info("Overnight transfer scheduler started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Overnight transfer scheduler stopped")
