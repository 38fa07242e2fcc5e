"""
Route API Endpoints.
"""

from typing import List

from fastapi import APIRouter, Depends

from station_node.app.core.dependencies import get_route_prices, unwrap
from station_node.app.domain.pricing.route_prices import RoutePriceLookup
from station_node.app.schemas.route import RoutePriceUpdate, RouteResponse

router = APIRouter(prefix="/routes", tags=["Routes"])


@router.get("", response_model=List[RouteResponse])
async def list_routes(prices: RoutePriceLookup = Depends(get_route_prices)):
    return unwrap(await prices.list_routes())


@router.put("/{station_id}/price", response_model=RouteResponse)
async def update_route_price(
    station_id: str,
    payload: RoutePriceUpdate,
    prices: RoutePriceLookup = Depends(get_route_prices)
):
    """
    Change a route's per-seat price.

    Vehicles already queued keep the price they entered with.
    """
    return unwrap(await prices.update_price(station_id, payload.base_price))
