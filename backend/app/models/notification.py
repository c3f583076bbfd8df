"""
Notification database model.

In-app copy of the bid events delivered to customers and drivers.
Rows are written by the database notification sink, never by request
handlers directly.
"""

import enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON, Enum, Index
from backend.app.db.session import Base


class NotificationType(str, enum.Enum):
    INFO = "INFO"
    BID_RECEIVED = "BID_RECEIVED"
    BID_ACCEPTED = "BID_ACCEPTED"
    BID_REJECTED = "BID_REJECTED"


class Notification(Base):
    """
    In-app notification for one recipient.

    ``event`` keeps the outbound event name (e.g. ``bid:accepted``);
    ``metadata_payload`` the full event body.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    event = Column(String(50), nullable=True)
    type = Column(Enum(NotificationType), default=NotificationType.INFO, nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    metadata_payload = Column(JSON, nullable=True)

    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        Index('ix_notifications_user_unread', 'user_id', 'is_read'),
    )

    def __repr__(self):
        return f"<Notification(id={self.id}, user={self.user_id}, event='{self.event}')>"
