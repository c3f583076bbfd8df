"""
Trip database model.

Drivers publish trips with a departure window and spare capacity.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Enum
from backend.app.db.session import Base
from backend.app.models.trip_enums import TripStatus
from backend.app.models.package_enums import PackageSize


class Trip(Base):
    """
    Trip model.

    A SCHEDULED trip can be attached to bids; it moves to IN_PROGRESS when
    one of those bids is accepted.
    """
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership - driver's user id
    driver_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    start_address = Column(String(255), nullable=True)
    start_lat = Column(Float, nullable=False)
    start_lng = Column(Float, nullable=False)
    end_address = Column(String(255), nullable=True)
    end_lat = Column(Float, nullable=False)
    end_lng = Column(Float, nullable=False)

    departure_time = Column(DateTime, nullable=False, index=True)
    available_capacity = Column(Enum(PackageSize), default=PackageSize.MEDIUM, nullable=False)

    status = Column(Enum(TripStatus), default=TripStatus.SCHEDULED, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Trip(id={self.id}, driver_id={self.driver_id}, status='{self.status.value}')>"
