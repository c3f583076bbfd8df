"""
Wallet database model.

Balances are only ever changed with relative UPDATEs.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, CheckConstraint
from backend.app.db.session import Base


class Wallet(Base):
    """
    Driver wallet.

    ``reserved_balance`` is the part of ``available_balance`` held by
    PENDING commission reservations and can never exceed it.
    """
    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), unique=True, nullable=False, index=True)

    available_balance = Column(Float, default=0.0, nullable=False)
    reserved_balance = Column(Float, default=0.0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint('reserved_balance >= 0', name='ck_wallets_reserved_non_negative'),
        CheckConstraint('reserved_balance <= available_balance', name='ck_wallets_reserved_within_available'),
    )

    def __repr__(self):
        return f"<Wallet(user_id={self.user_id}, available={self.available_balance}, reserved={self.reserved_balance})>"
