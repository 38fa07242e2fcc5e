"""
Route database model.

One row per destination station reachable from this station, holding the
per-seat base price.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime
from sqlalchemy.sql import func
from station_node.app.db.session import Base


class Route(Base):
    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    station_id = Column(String(100), unique=True, nullable=False, index=True)
    station_name = Column(String(200), nullable=False)
    base_price = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Route(station='{self.station_id}', base_price={self.base_price})>"
