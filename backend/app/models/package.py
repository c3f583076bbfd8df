"""
Package database model.

Customers post packages; drivers bid to carry them.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Enum
from backend.app.db.session import Base
from backend.app.models.package_enums import PackageStatus, PackageSize


class Package(Base):
    """
    Package model.

    A package is open for bids only while PENDING and carries at most one
    ACCEPTED bid over its lifetime.
    """
    __tablename__ = "packages"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership
    customer_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    description = Column(String(500), nullable=True)

    # Pickup / delivery
    pickup_address = Column(String(255), nullable=True)
    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    delivery_address = Column(String(255), nullable=True)
    delivery_lat = Column(Float, nullable=False)
    delivery_lng = Column(Float, nullable=False)

    # Physical properties
    size = Column(Enum(PackageSize), default=PackageSize.SMALL, nullable=False)
    weight_kg = Column(Float, nullable=True)

    price_offered = Column(Float, nullable=False)

    status = Column(Enum(PackageStatus), default=PackageStatus.PENDING, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Package(id={self.id}, customer_id={self.customer_id}, status='{self.status.value}')>"
