"""
Wallet transaction database model.

Immutable record of money movement on a wallet.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, Enum, String
from backend.app.db.session import Base
from backend.app.models.billing_enums import TransactionType, TransactionStatus


class WalletTransaction(Base):
    """
    Wallet transaction.

    NO updates or deletions allowed.
    """
    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    type = Column(Enum(TransactionType), nullable=False)
    status = Column(Enum(TransactionStatus), default=TransactionStatus.COMPLETED, nullable=False)

    amount = Column(Float, nullable=False)
    balance_after = Column(Float, nullable=True)
    description = Column(String(255), nullable=True)
    reference = Column(String(100), nullable=True, index=True)  # e.g. reservation id

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<WalletTransaction(id={self.id}, type='{self.type.value}', amount={self.amount})>"
