"""
Vehicle Directory.

Read-only access to vehicles and the destinations they are authorized to
serve from this station.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from station_node.app.core.context import StationContext
from station_node.app.core.exceptions import NotAuthorizedError, VehicleNotFoundError
from station_node.app.domain.pricing.route_prices import RoutePriceLookup
from station_node.app.models.vehicle import Vehicle
from station_node.app.schemas.common import ServiceResult
from station_node.app.schemas.vehicle import (
    AuthorizedDestination, DestinationOption, VehicleDestinations, VehicleInfo
)
from station_node.app.services.base import StationService

logger = logging.getLogger("station_node.vehicles")


class VehicleDirectory(StationService):

    def __init__(self, ctx: StationContext, prices: RoutePriceLookup = None):
        super().__init__(ctx)
        self.prices = prices or RoutePriceLookup(ctx)

    async def load_vehicle(self, session: AsyncSession, license_plate: str) -> Vehicle:
        """
        Fetch a vehicle with its authorized stations.

        Raises:
            VehicleNotFoundError: If no vehicle has this plate
        """
        result = await session.execute(
            select(Vehicle).where(Vehicle.license_plate == license_plate)
        )
        vehicle = result.scalar_one_or_none()
        if vehicle is None:
            raise VehicleNotFoundError(license_plate)
        return vehicle

    def to_info(self, vehicle: Vehicle) -> VehicleInfo:
        return VehicleInfo(
            id=vehicle.id,
            license_plate=vehicle.license_plate,
            capacity=vehicle.capacity,
            is_active=vehicle.is_active,
            is_available=vehicle.is_available,
            authorized_destinations=[
                AuthorizedDestination(
                    station_id=auth.station_id,
                    station_name=auth.station_name or auth.station_id,
                    priority=auth.priority,
                    is_default=auth.is_default,
                )
                for auth in sorted(vehicle.authorized_stations, key=lambda a: a.priority)
            ],
            default_destination_id=vehicle.default_destination_id,
            default_destination_name=vehicle.default_destination_name,
        )

    def destinations_from_here(self, info: VehicleInfo) -> List[AuthorizedDestination]:
        """Authorized destinations other than this station, highest priority first."""
        return [d for d in info.authorized_destinations if d.station_id != self.ctx.station_id]

    def resolve_destination(self, info: VehicleInfo, requested_id: Optional[str] = None) -> AuthorizedDestination:
        """
        Pick the destination a vehicle queues for.

        An explicit request must be authorized. Without one, the vehicle's
        default destination wins, then the highest-priority authorized one.

        Raises:
            NotAuthorizedError: If no usable destination exists
        """
        candidates = self.destinations_from_here(info)

        if requested_id is not None:
            if requested_id == self.ctx.station_id:
                raise NotAuthorizedError(
                    f"Vehicle {info.license_plate} cannot queue for the current station",
                    details={"destination_id": requested_id}
                )
            for dest in candidates:
                if dest.station_id == requested_id:
                    return dest
            raise NotAuthorizedError(
                f"Vehicle {info.license_plate} is not authorized for destination {requested_id}",
                details={"license_plate": info.license_plate, "destination_id": requested_id}
            )

        if not candidates:
            raise NotAuthorizedError(
                f"Vehicle {info.license_plate} has no authorized destination stations (other than current station)",
                details={"license_plate": info.license_plate}
            )

        if info.default_destination_id:
            for dest in candidates:
                if dest.station_id == info.default_destination_id:
                    logger.debug("Using default destination %s for %s", dest.station_id, info.license_plate)
                    return dest

        return candidates[0]

    async def get_vehicle(self, license_plate: str) -> ServiceResult:
        async def _work(session: AsyncSession) -> VehicleInfo:
            return self.to_info(await self.load_vehicle(session, license_plate))

        return await self._read("get_vehicle", _work)

    async def get_available_destinations(self, license_plate: str) -> ServiceResult:
        """Destinations a vehicle may be queued for, with current prices."""
        async def _work(session: AsyncSession) -> VehicleDestinations:
            info = self.to_info(await self.load_vehicle(session, license_plate))

            destinations = []
            for dest in self.destinations_from_here(info):
                base_price = await self.prices.get_base_price(dest.station_id, session)
                destinations.append(DestinationOption(**dest.model_dump(), base_price=base_price))

            default = None
            if info.default_destination_id:
                default = AuthorizedDestination(
                    station_id=info.default_destination_id,
                    station_name=info.default_destination_name
                    or await self.prices.get_station_name(info.default_destination_id, session),
                    priority=0,
                    is_default=True,
                )
            return VehicleDestinations(
                license_plate=info.license_plate,
                destinations=destinations,
                default_destination=default,
            )

        return await self._read("get_available_destinations", _work)
