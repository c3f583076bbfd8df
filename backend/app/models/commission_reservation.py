"""
Commission reservation database model.

Two-phase hold of commission against a driver wallet.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, Enum
from backend.app.db.session import Base
from backend.app.models.billing_enums import ReservationStatus


class CommissionReservation(Base):
    """
    Commission reservation.

    PENDING → CONFIRMED | RELEASED. Each reservation moves out of PENDING
    exactly once; abandoned holds expire after the configured TTL.
    """
    __tablename__ = "commission_reservations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    driver_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    # Commission may be pre-authorized before the trip exists
    trip_id = Column(Integer, ForeignKey('trips.id'), nullable=True, index=True)

    amount = Column(Float, nullable=False)
    percentage = Column(Float, nullable=False)

    status = Column(Enum(ReservationStatus), default=ReservationStatus.PENDING, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<CommissionReservation(id={self.id}, driver_id={self.driver_id}, status='{self.status.value}', amount={self.amount})>"
