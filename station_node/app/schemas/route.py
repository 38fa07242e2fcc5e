"""
Route schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class RoutePriceUpdate(BaseModel):
    base_price: float = Field(..., ge=0)


class RouteResponse(BaseModel):
    id: int
    station_id: str
    station_name: str
    base_price: float
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
