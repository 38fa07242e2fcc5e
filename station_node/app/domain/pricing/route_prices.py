"""
Route Price Lookup.

Resolves a destination's per-seat base price and display name from the
routes table, with a bounded-TTL Redis cache in front. The cache is
best-effort: any cache failure falls back to the database.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from station_node.app.core.context import StationContext
from station_node.app.core.exceptions import ResourceNotFoundError
from station_node.app.core.reliability import CircuitBreaker
from station_node.app.models.route import Route
from station_node.app.schemas.common import ServiceResult
from station_node.app.schemas.route import RouteResponse
from station_node.app.services.base import StationService

logger = logging.getLogger("station_node.pricing")


def format_station_id(station_id: str) -> str:
    """Fallback display name: 'station-sidi-bouzid' -> 'Sidi Bouzid'."""
    name = station_id[len("station-"):] if station_id.startswith("station-") else station_id
    return " ".join(word[:1].upper() + word[1:] for word in name.split("-") if word)


class RoutePriceLookup(StationService):

    def __init__(self, ctx: StationContext):
        super().__init__(ctx)
        self.ttl_seconds = ctx.settings.route_price_cache_ttl_seconds
        self.cache_breaker = CircuitBreaker(failure_threshold=3, reset_timeout=30)

    @staticmethod
    def cache_key(station_id: str) -> str:
        return f"route:{station_id}"

    async def _cache_get(self, station_id: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await self.cache_breaker.call(self.ctx.redis.get, self.cache_key(station_id))
        except Exception as exc:
            logger.debug("Route cache read skipped for %s: %s", station_id, exc)
            return None
        return json.loads(raw) if raw else None

    async def _cache_set(self, station_id: str, entry: Dict[str, Any]) -> None:
        try:
            await self.cache_breaker.call(
                self.ctx.redis.set, self.cache_key(station_id), json.dumps(entry), ex=self.ttl_seconds
            )
        except Exception as exc:
            logger.debug("Route cache write skipped for %s: %s", station_id, exc)

    async def invalidate(self, station_id: str) -> None:
        """Drop the cached entry for a station (after a price change)."""
        try:
            await self.cache_breaker.call(self.ctx.redis.delete, self.cache_key(station_id))
        except Exception:
            logger.warning("Could not invalidate route cache for %s", station_id, exc_info=True)

    async def _lookup(self, station_id: str, session: AsyncSession = None) -> Optional[Dict[str, Any]]:
        cached = await self._cache_get(station_id)
        if cached is not None:
            return cached

        async def _load(db: AsyncSession) -> Optional[Route]:
            result = await db.execute(select(Route).where(Route.station_id == station_id))
            return result.scalar_one_or_none()

        if session is not None:
            route = await _load(session)
        else:
            async with self.ctx.session_factory() as db:
                route = await _load(db)

        if route is None:
            return None

        entry = {"base_price": route.base_price, "station_name": route.station_name}
        await self._cache_set(station_id, entry)
        return entry

    async def get_base_price(self, destination_id: str, session: AsyncSession = None) -> float:
        """
        Per-seat base price for a destination.

        Args:
            destination_id: Destination station ID
            session: Optional session to read within the caller's transaction

        Returns:
            The base price, or 0.0 if no route is known
        """
        entry = await self._lookup(destination_id, session)
        if entry is None:
            logger.warning("No route found for destination %s, using price 0", destination_id)
            return 0.0
        return float(entry["base_price"])

    async def get_station_name(self, station_id: str, session: AsyncSession = None) -> str:
        entry = await self._lookup(station_id, session)
        if entry is None or not entry.get("station_name"):
            return format_station_id(station_id)
        return entry["station_name"]

    async def list_routes(self) -> ServiceResult:
        async def _work(session: AsyncSession) -> List[RouteResponse]:
            result = await session.execute(select(Route).order_by(Route.station_name.asc()))
            return [RouteResponse.model_validate(r) for r in result.scalars().all()]

        return await self._read("list_routes", _work)

    async def update_price(self, station_id: str, base_price: float) -> ServiceResult:
        """Change a route's base price and invalidate its cache entry."""
        async def _work(session: AsyncSession, events) -> RouteResponse:
            result = await session.execute(
                select(Route).where(Route.station_id == station_id).with_for_update()
            )
            route = result.scalar_one_or_none()
            if route is None:
                raise ResourceNotFoundError("Route", station_id)
            route.base_price = base_price
            await session.flush()
            await session.refresh(route)
            return RouteResponse.model_validate(route)

        outcome = await self._execute("update_route_price", _work)
        if outcome.success:
            await self.invalidate(station_id)
            logger.info("Route price for %s updated to %s", station_id, base_price)
        return outcome

    async def upsert_route(self, station_id: str, station_name: str, base_price: float) -> ServiceResult:
        """Create or refresh a route row as received from the central server."""
        async def _work(session: AsyncSession, events) -> RouteResponse:
            result = await session.execute(select(Route).where(Route.station_id == station_id))
            route = result.scalar_one_or_none()
            if route is None:
                route = Route(station_id=station_id, station_name=station_name, base_price=base_price)
                session.add(route)
            else:
                route.station_name = station_name
                route.base_price = base_price
            await session.flush()
            await session.refresh(route)
            return RouteResponse.model_validate(route)

        outcome = await self._execute("upsert_route", _work)
        if outcome.success:
            await self.invalidate(station_id)
        return outcome
