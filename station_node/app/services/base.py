"""
Base class for station services.

Wraps one operation in one transaction, turns StationError and store
failures into a ServiceResult, and publishes change events only after
the transaction committed.
"""

import logging
from typing import Awaitable, Callable, List, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from station_node.app.core.context import StationContext
from station_node.app.core.exceptions import ConcurrentUpdateError, StationError, StoreUnavailableError
from station_node.app.db.transaction import run_in_transaction
from station_node.app.schemas.common import ServiceResult
from station_node.app.services.notifier import ChangeEvent

logger = logging.getLogger("station_node.services")

T = TypeVar("T")

Work = Callable[[AsyncSession, List[ChangeEvent]], Awaitable[T]]

# Reruns of a transaction that lost a race with a concurrent writer
TRANSACTION_ATTEMPTS = 3


class StationService:

    def __init__(self, ctx: StationContext):
        self.ctx = ctx

    async def _execute(self, operation: str, work: Work) -> ServiceResult:
        """
        Run `work(session, events)` as one transaction.

        `work` appends ChangeEvents to `events`; they are emitted after
        commit and dropped on rollback. A ConcurrentUpdateError rolls back
        and reruns the whole transaction, up to TRANSACTION_ATTEMPTS times.
        """
        for attempt in range(1, TRANSACTION_ATTEMPTS + 1):
            events: List[ChangeEvent] = []

            async def _work(session: AsyncSession):
                return await work(session, events)

            try:
                data = await run_in_transaction(self.ctx.session_factory, operation, _work)
            except ConcurrentUpdateError as exc:
                if attempt < TRANSACTION_ATTEMPTS:
                    logger.info("%s retried after concurrent update: %s", operation, exc.details.get("reason"))
                    continue
                logger.warning("%s gave up after %s attempts", operation, attempt, extra={"error_code": exc.error_code})
                return ServiceResult.fail(exc)
            except StationError as exc:
                logger.warning("%s rejected: %s", operation, exc.message, extra={"error_code": exc.error_code})
                return ServiceResult.fail(exc)
            except StoreUnavailableError as exc:
                return ServiceResult.fail(exc)

            await self.ctx.notifier.emit_all(events)
            return ServiceResult.ok(data)

    async def _read(self, operation: str, work: Callable[[AsyncSession], Awaitable[T]]) -> ServiceResult:
        """Run a read-only operation and wrap its outcome."""
        try:
            data = await run_in_transaction(self.ctx.session_factory, operation, work)
        except (StationError, StoreUnavailableError) as exc:
            return ServiceResult.fail(exc)
        return ServiceResult.ok(data)
