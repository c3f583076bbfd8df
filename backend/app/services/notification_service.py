"""
Notification Service.

Fire-and-forget delivery of marketplace events (bid:received,
bid:accepted, bid:rejected) to customers and drivers.

Services only call ``NotificationDispatcher.emit``, which enqueues and
returns immediately. A background worker fans each event out to the
configured sinks; a failing sink is logged and isolated behind a circuit
breaker, never surfaced to the caller.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.config import settings
from backend.app.core.reliability import CircuitBreaker, CircuitOpenError
from backend.app.models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)

BID_RECEIVED = "bid:received"
BID_ACCEPTED = "bid:accepted"
BID_REJECTED = "bid:rejected"

EVENT_TYPES = {
    BID_RECEIVED: NotificationType.BID_RECEIVED,
    BID_ACCEPTED: NotificationType.BID_ACCEPTED,
    BID_REJECTED: NotificationType.BID_REJECTED,
}

EVENT_TITLES = {
    BID_RECEIVED: "New bid received",
    BID_ACCEPTED: "Your bid was accepted",
    BID_REJECTED: "Your bid was rejected",
}


class NotificationEvent(BaseModel):
    """Outbound event addressed to one user."""
    event: str
    user_id: int
    package_id: Optional[int] = None
    bid_id: Optional[int] = None
    driver_id: Optional[int] = None
    amount: Optional[float] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def describe(self) -> str:
        if self.event == BID_RECEIVED:
            return f"Bid #{self.bid_id} of {(self.amount or 0):.2f} received for package #{self.package_id}"
        if self.event == BID_ACCEPTED:
            return f"Your bid #{self.bid_id} on package #{self.package_id} was accepted"
        if self.event == BID_REJECTED:
            return f"Your bid #{self.bid_id} on package #{self.package_id} was rejected"
        return self.event


class DatabaseNotificationSink:
    """Stores an in-app Notification row for the recipient."""

    name = "database"

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def send(self, event: NotificationEvent) -> None:
        async with self.session_factory() as db:
            async with db.begin():
                db.add(Notification(
                    user_id=event.user_id,
                    event=event.event,
                    type=EVENT_TYPES.get(event.event, NotificationType.INFO),
                    title=EVENT_TITLES.get(event.event, event.event),
                    message=event.describe(),
                    metadata_payload=event.model_dump(mode="json"),
                ))


class RedisNotificationSink:
    """
    Publishes the JSON event on ``<prefix>:<user_id>``.

    Push and chat gateways subscribe per user.
    """

    name = "redis"

    def __init__(self, client, prefix: Optional[str] = None):
        self.client = client
        self.prefix = prefix or settings.notification_channel_prefix

    async def send(self, event: NotificationEvent) -> None:
        channel = f"{self.prefix}:{event.user_id}"
        await self.client.publish(channel, event.model_dump_json())


class NotificationDispatcher:
    """
    Bounded in-process queue plus one worker task.

    Usage:
        dispatcher = NotificationDispatcher([DatabaseNotificationSink(factory)])
        await dispatcher.start()
        dispatcher.emit("bid:accepted", user_id=driver_id, bid_id=bid.id)
        ...
        await dispatcher.stop()
    """

    def __init__(
        self,
        sinks: Optional[List[Any]] = None,
        maxsize: Optional[int] = None,
        failure_threshold: int = 5,
        reset_timeout: float = 60
    ):
        self._queue: asyncio.Queue = asyncio.Queue(
            maxsize=settings.notification_queue_size if maxsize is None else maxsize
        )
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._sinks: List[Any] = []
        self._failure_threshold = failure_threshold
        self._reset_timeout = reset_timeout
        self._worker: Optional[asyncio.Task] = None
        for sink in sinks or []:
            self.add_sink(sink)

    @property
    def sinks(self) -> List[Any]:
        return list(self._sinks)

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def add_sink(self, sink) -> None:
        name = getattr(sink, "name", type(sink).__name__)
        self._sinks.append(sink)
        self._breakers[name] = CircuitBreaker(
            failure_threshold=self._failure_threshold,
            reset_timeout=self._reset_timeout,
            name=f"notification-{name}",
        )

    def emit(self, event: str, user_id: int, **payload) -> bool:
        """
        Enqueue an event. Never blocks and never raises.

        Returns:
            False when the event was dropped
        """
        try:
            self._queue.put_nowait(NotificationEvent(event=event, user_id=user_id, **payload))
        except asyncio.QueueFull:
            logger.warning("Notification queue full, dropping %s for user %s", event, user_id)
            return False
        except Exception:
            logger.exception("Failed to enqueue notification %s for user %s", event, user_id)
            return False
        return True

    async def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._run(), name="notification-dispatcher")
        logger.info("Notification dispatcher started with %d sinks", len(self._sinks))

    async def join(self) -> None:
        """Wait until every queued event has been handed to the sinks."""
        await self._queue.join()

    async def stop(self) -> None:
        """Drain pending events, then stop the worker."""
        if not self.running:
            return
        await self.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Notification dispatcher stopped")

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._deliver(event)
            finally:
                self._queue.task_done()

    async def _deliver(self, event: NotificationEvent) -> None:
        for sink in self._sinks:
            name = getattr(sink, "name", type(sink).__name__)
            try:
                await self._breakers[name].call(sink.send, event)
            except CircuitOpenError:
                logger.warning("Skipping %s sink for %s: circuit open", name, event.event)
            except Exception:
                logger.exception("Notification sink %s failed for %s", name, event.event)


class NotificationInbox:
    """Read side of the in-app notifications written by DatabaseNotificationSink."""

    @staticmethod
    async def list_for_user(db: AsyncSession, user_id: int, unread_only: bool = False,
                            limit: int = 50) -> List[Notification]:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read == False)
        query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> bool:
        """Mark one of the user's notifications as read."""
        stmt = update(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).values(
            is_read=True,
            read_at=datetime.utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: int) -> int:
        stmt = update(Notification).where(
            Notification.user_id == user_id,
            Notification.is_read == False
        ).values(
            is_read=True,
            read_at=datetime.utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount
