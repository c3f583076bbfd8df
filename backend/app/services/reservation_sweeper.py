"""
Reservation expiry sweeper.

Background task that periodically releases commission reservations left
PENDING past their expiry, returning the held amount to the driver.
"""

import asyncio
import logging
from typing import Optional

from backend.app.core.config import settings
from backend.app.domain.billing.reservation_service import CommissionReservationService

logger = logging.getLogger(__name__)


class ReservationSweeper:

    def __init__(self, reservations: CommissionReservationService, interval_seconds: Optional[float] = None):
        self.reservations = reservations
        self.interval_seconds = (
            settings.reservation_sweep_interval_seconds if interval_seconds is None else interval_seconds
        )
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        """Single sweep. Returns the number of reservations released."""
        released = await self.reservations.cleanup_expired_reservations()
        logger.debug("Reservation sweep released %d", released)
        return released

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="reservation-sweeper")
        logger.info("Reservation sweeper started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        if not self.running:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Reservation sweeper stopped")

    async def _loop(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)
