"""
Transaction helpers.

Every state-changing engine operation runs as exactly one database
transaction. A StationError raised inside rolls the transaction back and
propagates unchanged; a lost connection becomes StoreUnavailableError.
"""

import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from station_node.app.core.exceptions import StoreUnavailableError
from station_node.app.models.queue_enums import QueueType
from station_node.app.models.vehicle_queue import QueuePartition

logger = logging.getLogger("station_node.db")

T = TypeVar("T")


async def run_in_transaction(
    session_factory: async_sessionmaker,
    operation: str,
    work: Callable[[AsyncSession], Awaitable[T]]
) -> T:
    """
    Run `work` inside a single transaction and commit it.

    Args:
        session_factory: Session factory of the station store
        operation: Operation name, used for logging and error details
        work: Coroutine function receiving the session

    Returns:
        Whatever `work` returns

    Raises:
        StoreUnavailableError: If the store connection is lost
    """
    try:
        async with session_factory() as session:
            async with session.begin():
                return await work(session)
    except (OperationalError, InterfaceError) as exc:
        logger.error("Store unavailable during %s", operation, exc_info=exc)
        raise StoreUnavailableError(operation) from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            logger.error("Store connection lost during %s", operation, exc_info=exc)
            raise StoreUnavailableError(operation) from exc
        raise


async def lock_partitions(session: AsyncSession, *partitions: tuple[str, QueueType]) -> None:
    """
    Lock the given (destination_id, queue_type) partitions for this transaction.

    Lock rows are created on first use. Partitions are always locked in
    sorted order so two transactions touching the same pair cannot deadlock.
    """
    keys = sorted({(dest, QueueType(qtype)) for dest, qtype in partitions}, key=lambda k: (k[0], k[1].value))
    if not keys:
        return

    dialect = session.get_bind().dialect.name
    insert = pg_insert if dialect == "postgresql" else sqlite_insert
    stmt = insert(QueuePartition).values(
        [{"destination_id": dest, "queue_type": qtype} for dest, qtype in keys]
    ).on_conflict_do_nothing()
    await session.execute(stmt)

    for dest, qtype in keys:
        await session.execute(
            select(QueuePartition.destination_id).where(
                QueuePartition.destination_id == dest,
                QueuePartition.queue_type == qtype
            ).with_for_update()
        )
