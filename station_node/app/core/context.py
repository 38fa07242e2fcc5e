"""
Station context.

Everything a station-scoped service needs, built once per process (or per
test) and handed to each service at construction.
"""

from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

from sqlalchemy.ext.asyncio import async_sessionmaker

from station_node.app.core.config import Settings

if TYPE_CHECKING:
    from station_node.app.services.notifier import ChangeNotifier


@dataclass(frozen=True)
class StationContext:
    station_id: str
    station_name: str
    session_factory: async_sessionmaker
    redis: Any
    notifier: "ChangeNotifier"
    settings: Settings

    @classmethod
    def build(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker,
        redis: Any,
        notifier: "ChangeNotifier" = None,
    ) -> "StationContext":
        """Create a context, defaulting to a Redis pub/sub notifier."""
        if notifier is None:
            from station_node.app.services.notifier import RedisChangeNotifier
            notifier = RedisChangeNotifier(settings.station_id, redis, settings.events_channel_prefix)
        return cls(
            station_id=settings.station_id,
            station_name=settings.station_name,
            session_factory=session_factory,
            redis=redis,
            notifier=notifier,
            settings=settings,
        )
