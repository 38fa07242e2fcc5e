"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from station_node.app.api.v1.endpoints import queue, overnight, bookings, routes

router = APIRouter()

# Queue Store
router.include_router(queue.router)
router.include_router(overnight.router)

# Seat Allocation & Booking Engine
router.include_router(bookings.router)

# Route Price Lookup
router.include_router(routes.router)
