"""
Commission Reservation Service (Domain Logic).

Two-phase commission hold against a driver wallet:
pre-authorize (hold) -> confirm (collect) or release (return).

Every transition is a compare-and-swap on the reservation status and every
balance change is a relative UPDATE, so concurrent callers can never
double-apply a transition or push reserved above available.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy import Numeric, cast, func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    AppException, BusinessRuleError, OperationFailedError, ResourceNotFoundError, ValidationError
)
from backend.app.domain.billing.commission import floor_cents
from backend.app.models.billing_enums import ReservationStatus, TransactionStatus, TransactionType
from backend.app.models.commission_reservation import CommissionReservation
from backend.app.models.wallet import Wallet
from backend.app.models.wallet_transaction import WalletTransaction

logger = logging.getLogger(__name__)


def _cents(expr):
    """Round a balance expression to the cent inside the UPDATE itself."""
    return func.round(cast(expr, Numeric(12, 2)), 2)


class CommissionReservationService:

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get_wallet(self, user_id: int) -> Wallet:
        async with self.session_factory() as db:
            result = await db.execute(select(Wallet).where(Wallet.user_id == user_id))
            wallet = result.scalar_one_or_none()
        if not wallet:
            raise ResourceNotFoundError("Wallet", user_id)
        return wallet

    async def get_reservation(self, reservation_id: int) -> CommissionReservation:
        async with self.session_factory() as db:
            reservation = await db.get(CommissionReservation, reservation_id)
        if not reservation:
            raise ResourceNotFoundError("Reservation", reservation_id)
        return reservation

    async def pre_authorize(
        self,
        driver_id: int,
        trip_id: Optional[int],
        commission_amount: float
    ) -> CommissionReservation:
        """
        Hold commission against the driver's wallet.

        The balance check is part of the UPDATE predicate: the hold is
        applied only if ``reserved + amount <= available`` at write time.

        Raises:
            ResourceNotFoundError: WALLET_NOT_FOUND
            ValidationError: non-positive amount
            BusinessRuleError: INSUFFICIENT_BALANCE
            OperationFailedError: COMMISSION_AUTHORIZATION_FAILED
        """
        if commission_amount is None or floor_cents(commission_amount) <= 0:
            raise ValidationError(
                "Commission amount must be greater than 0",
                details={"commission_amount": commission_amount}
            )
        commission_amount = floor_cents(commission_amount)

        try:
            await self.get_wallet(driver_id)

            async with self.session_factory() as db:
                async with db.begin():
                    result = await db.execute(
                        update(Wallet)
                        .where(
                            Wallet.user_id == driver_id,
                            _cents(Wallet.reserved_balance + commission_amount) <= Wallet.available_balance,
                        )
                        .values(
                            reserved_balance=_cents(Wallet.reserved_balance + commission_amount),
                            updated_at=datetime.utcnow(),
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        raise BusinessRuleError(
                            "Insufficient wallet balance for commission reservation",
                            "INSUFFICIENT_BALANCE",
                            details={"driver_id": driver_id, "commission_amount": commission_amount}
                        )

                    reservation = CommissionReservation(
                        driver_id=driver_id,
                        trip_id=trip_id,
                        amount=commission_amount,
                        percentage=round(settings.commission_rate * 100, 2),
                        status=ReservationStatus.PENDING,
                        expires_at=datetime.utcnow() + timedelta(hours=settings.reservation_ttl_hours),
                    )
                    db.add(reservation)
                    await db.flush()
        except AppException:
            raise
        except Exception as exc:
            logger.exception("Commission pre-authorization failed for driver %s", driver_id)
            raise OperationFailedError(
                "Failed to pre-authorize commission", "COMMISSION_AUTHORIZATION_FAILED"
            ) from exc

        logger.info(
            "Commission reserved",
            extra={"reservation_id": reservation.id, "driver_id": driver_id, "amount": commission_amount}
        )
        return reservation

    async def confirm(self, reservation_id: int) -> CommissionReservation:
        """
        Collect a held commission.

        PENDING -> CONFIRMED, removes the amount from the reserved balance
        and records a COMMISSION wallet transaction. The available balance
        is left as it is.
        """
        try:
            reservation = await self.get_reservation(reservation_id)

            async with self.session_factory() as db:
                async with db.begin():
                    swapped = await self._swap_status(
                        db, reservation_id, ReservationStatus.CONFIRMED
                    )
                    if not swapped:
                        current = await db.get(CommissionReservation, reservation_id)
                        raise BusinessRuleError(
                            "Reservation is not pending",
                            "INVALID_RESERVATION_STATUS",
                            details={"reservation_id": reservation_id, "status": current.status.value}
                        )

                    await db.execute(
                        update(Wallet)
                        .where(Wallet.user_id == reservation.driver_id)
                        .values(
                            reserved_balance=_cents(Wallet.reserved_balance - reservation.amount),
                            updated_at=datetime.utcnow(),
                        )
                        .execution_options(synchronize_session=False)
                    )
                    balance_after = (await db.execute(
                        select(Wallet.available_balance).where(Wallet.user_id == reservation.driver_id)
                    )).scalar_one()

                    db.add(WalletTransaction(
                        user_id=reservation.driver_id,
                        type=TransactionType.COMMISSION,
                        status=TransactionStatus.COMPLETED,
                        amount=reservation.amount,
                        balance_after=balance_after,
                        description="Commission collected",
                        reference=str(reservation_id),
                    ))
                    confirmed = await db.get(CommissionReservation, reservation_id)
        except AppException:
            raise
        except Exception as exc:
            logger.exception("Commission confirmation failed for reservation %s", reservation_id)
            raise OperationFailedError(
                "Failed to confirm commission", "COMMISSION_CONFIRMATION_FAILED"
            ) from exc

        logger.info("Commission confirmed", extra={"reservation_id": reservation_id})
        return confirmed

    async def release(self, reservation_id: int) -> CommissionReservation:
        """
        Return a held commission to the driver.

        Releasing an already RELEASED reservation is a no-op; the wallet is
        only ever decremented once. CONFIRMED reservations cannot be released.
        """
        released, _ = await self._release(reservation_id)
        return released

    async def _release(self, reservation_id: int) -> Tuple[CommissionReservation, bool]:
        """Release and report whether this call performed the PENDING -> RELEASED swap."""
        try:
            reservation = await self.get_reservation(reservation_id)
            if reservation.status == ReservationStatus.RELEASED:
                return reservation, False
            if reservation.status == ReservationStatus.CONFIRMED:
                raise BusinessRuleError(
                    "Confirmed reservations cannot be released",
                    "INVALID_RESERVATION_STATUS",
                    details={"reservation_id": reservation_id, "status": reservation.status.value}
                )

            async with self.session_factory() as db:
                async with db.begin():
                    swapped = await self._swap_status(
                        db, reservation_id, ReservationStatus.RELEASED
                    )
                    if swapped:
                        await db.execute(
                            update(Wallet)
                            .where(Wallet.user_id == reservation.driver_id)
                            .values(
                                reserved_balance=_cents(Wallet.reserved_balance - reservation.amount),
                                updated_at=datetime.utcnow(),
                            )
                            .execution_options(synchronize_session=False)
                        )
                    current = await db.get(CommissionReservation, reservation_id)

            # Lost the race: someone else moved it out of PENDING first
            if not swapped and current.status != ReservationStatus.RELEASED:
                raise BusinessRuleError(
                    "Confirmed reservations cannot be released",
                    "INVALID_RESERVATION_STATUS",
                    details={"reservation_id": reservation_id, "status": current.status.value}
                )
        except AppException:
            raise
        except Exception as exc:
            logger.exception("Commission release failed for reservation %s", reservation_id)
            raise OperationFailedError(
                "Failed to release commission", "COMMISSION_RELEASE_FAILED"
            ) from exc

        if swapped:
            logger.info("Commission released", extra={"reservation_id": reservation_id})
        return current, swapped

    async def cleanup_expired_reservations(self, now: Optional[datetime] = None) -> int:
        """
        Release every PENDING reservation past its expiry.

        Never raises: a failed scan returns 0 and a failed release is
        logged and skipped.

        Returns:
            Number of reservations this sweep moved to RELEASED
        """
        now = now or datetime.utcnow()
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(CommissionReservation.id).where(
                        CommissionReservation.status == ReservationStatus.PENDING,
                        CommissionReservation.expires_at < now,
                    ).order_by(CommissionReservation.expires_at.asc())
                )
                expired_ids = list(result.scalars().all())
        except Exception:
            logger.exception("Failed to scan for expired reservations")
            return 0

        released = 0
        for reservation_id in expired_ids:
            try:
                _, swapped = await self._release(reservation_id)
                if swapped:
                    released += 1
            except Exception:
                logger.exception("Failed to release expired reservation %s", reservation_id)

        if released:
            logger.info("Released %d expired commission reservations", released)
        return released

    async def _swap_status(self, db, reservation_id: int, new_status: ReservationStatus) -> bool:
        """PENDING -> new_status; False when the reservation was no longer PENDING."""
        result = await db.execute(
            update(CommissionReservation)
            .where(
                CommissionReservation.id == reservation_id,
                CommissionReservation.status == ReservationStatus.PENDING,
            )
            .values(status=new_status, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
