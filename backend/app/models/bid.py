"""
Bid database model.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, Float, Text, ForeignKey, DateTime, Enum, Index, text
from backend.app.db.session import Base
from backend.app.models.bid_enums import BidStatus


class Bid(Base):
    """
    Bid model.

    A driver's offer to carry one package, optionally on one of the
    driver's own trips.
    """
    __tablename__ = "bids"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    package_id = Column(Integer, ForeignKey('packages.id'), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    trip_id = Column(Integer, ForeignKey('trips.id'), nullable=True, index=True)

    amount = Column(Float, nullable=False)
    message = Column(Text, nullable=True)

    status = Column(Enum(BidStatus), default=BidStatus.PENDING, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('ix_bids_package_status', 'package_id', 'status'),
        # One PENDING bid per driver per package
        Index(
            'uq_bids_pending_driver_package', 'package_id', 'driver_id',
            unique=True,
            sqlite_where=text("status = 'PENDING'"),
            postgresql_where=text("status = 'PENDING'"),
        ),
    )

    def __repr__(self):
        return f"<Bid(id={self.id}, package_id={self.package_id}, status='{self.status.value}', amount={self.amount})>"
