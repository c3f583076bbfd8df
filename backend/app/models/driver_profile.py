"""
Driver profile database model.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey
from backend.app.db.session import Base


class DriverProfile(Base):
    """
    Driver-specific data attached to a DRIVER user.

    Rating (0-5) and delivery count feed the matching score and the
    global assignment priority.
    """
    __tablename__ = "driver_profiles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), unique=True, nullable=False, index=True)

    license_plate = Column(String(20), nullable=True)
    vehicle_type = Column(String(50), nullable=True)

    rating = Column(Float, default=0.0, nullable=False)
    total_deliveries = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<DriverProfile(user_id={self.user_id}, rating={self.rating})>"
