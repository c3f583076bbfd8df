"""
Bid Ledger.

Lifecycle of driver bids on packages:
    PENDING -> ACCEPTED | REJECTED | CANCELLED

Accepting a bid is atomic: the package, the winning bid, every sibling
PENDING bid and the bid's trip change together or not at all. Contended
transitions are compare-and-swap UPDATEs on the current status, so two
racing accepts on one package leave exactly one ACCEPTED bid.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    AppException,
    BusinessRuleError,
    InsufficientPermissionsError,
    OperationFailedError,
    ResourceNotFoundError,
    ValidationError,
)
from backend.app.domain.billing.commission import calculate_commission
from backend.app.models.bid import Bid
from backend.app.models.bid_enums import BidStatus
from backend.app.models.driver_profile import DriverProfile
from backend.app.models.package import Package
from backend.app.models.package_enums import PackageStatus
from backend.app.models.trip import Trip
from backend.app.models.trip_enums import TripStatus
from backend.app.models.user import User
from backend.app.schemas.bid import BidFilters, BidResponse, BidUpdate, BidWithCommission
from backend.app.schemas.commission import CommissionCalculation
from backend.app.services.notification_service import BID_ACCEPTED, BID_RECEIVED, BID_REJECTED

logger = logging.getLogger(__name__)


def _validate_amount(amount) -> None:
    if amount is None or not (settings.bid_min_amount <= amount <= settings.bid_max_amount):
        raise ValidationError(
            f"Bid amount must be between {settings.bid_min_amount} and {settings.bid_max_amount}",
            details={"amount": amount}
        )


class BidLedger:
    """Bid state machine over the persistent store."""

    def __init__(self, session_factory: async_sessionmaker, notifier=None):
        self.session_factory = session_factory
        self.notifier = notifier

    def calculate_commission(self, amount: float) -> CommissionCalculation:
        return calculate_commission(amount)

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    async def create_bid(
        self,
        package_id: int,
        driver_id: int,
        amount: float,
        trip_id: Optional[int] = None,
        message: Optional[str] = None
    ) -> BidWithCommission:
        """
        Place a PENDING bid on a PENDING package.

        Checks, in order: amount range, package availability, driver
        profile and identity verification, no self-bid, trip ownership and
        status, no duplicate PENDING bid. Emits ``bid:received`` to the
        package owner.
        """
        if package_id is None or driver_id is None:
            raise ValidationError("package_id and driver_id are required")
        _validate_amount(amount)

        try:
            async with self.session_factory() as db:
                package = await db.get(Package, package_id)
                if not package:
                    raise ResourceNotFoundError("Package", package_id)
                if package.status != PackageStatus.PENDING:
                    raise BusinessRuleError(
                        "Package is not available for bidding", "PACKAGE_NOT_AVAILABLE",
                        details={"package_id": package_id, "status": package.status.value}
                    )

                profile = (await db.execute(
                    select(DriverProfile).where(DriverProfile.user_id == driver_id)
                )).scalar_one_or_none()
                if not profile:
                    raise ResourceNotFoundError("Driver", driver_id)

                driver = await db.get(User, driver_id)
                if not driver or not driver.identity_verified:
                    raise InsufficientPermissionsError(
                        "Driver identity must be verified before bidding",
                        error_code="DRIVER_NOT_VERIFIED",
                        details={"driver_id": driver_id}
                    )

                if package.customer_id == driver_id:
                    raise BusinessRuleError(
                        "Cannot bid on your own package", "INVALID_BID",
                        details={"package_id": package_id}
                    )

                if trip_id is not None:
                    trip = await db.get(Trip, trip_id)
                    if not trip:
                        raise ResourceNotFoundError("Trip", trip_id)
                    if trip.driver_id != driver_id:
                        raise BusinessRuleError(
                            "Trip does not belong to this driver", "INVALID_TRIP",
                            details={"trip_id": trip_id}
                        )
                    if trip.status != TripStatus.SCHEDULED:
                        raise BusinessRuleError(
                            "Trip is not available", "TRIP_NOT_AVAILABLE",
                            details={"trip_id": trip_id, "status": trip.status.value}
                        )

                existing = (await db.execute(
                    select(Bid.id).where(
                        Bid.package_id == package_id,
                        Bid.driver_id == driver_id,
                        Bid.status == BidStatus.PENDING,
                    )
                )).first()
                if existing:
                    raise self._duplicate_bid(package_id, existing.id)

                bid = Bid(
                    package_id=package_id,
                    driver_id=driver_id,
                    trip_id=trip_id,
                    amount=amount,
                    message=message,
                    status=BidStatus.PENDING,
                )
                db.add(bid)
                try:
                    await db.commit()
                except IntegrityError:
                    # A concurrent bid by the same driver won the unique index
                    await db.rollback()
                    raise self._duplicate_bid(package_id)
                customer_id = package.customer_id
        except AppException:
            raise
        except Exception as exc:
            logger.exception("Bid creation failed for package %s by driver %s", package_id, driver_id)
            raise OperationFailedError("Failed to create bid", "BID_CREATION_FAILED") from exc

        logger.info("Bid created", extra={"bid_id": bid.id, "package_id": package_id, "driver_id": driver_id})
        self._notify(
            BID_RECEIVED, customer_id,
            package_id=package_id, bid_id=bid.id, driver_id=driver_id, amount=amount
        )

        commission = calculate_commission(amount)
        return BidWithCommission(
            **BidResponse.model_validate(bid).model_dump(),
            commission_amount=commission.commission_amount,
            driver_earnings=commission.driver_earnings,
            platform_fee=commission.platform_fee,
        )

    async def get_bids(self, filters: Optional[BidFilters] = None) -> Tuple[List[Bid], int]:
        """
        List bids, newest first.

        Returns:
            (page of bids, total matching the filters)
        """
        filters = filters or BidFilters()
        conditions = []
        if filters.package_id is not None:
            conditions.append(Bid.package_id == filters.package_id)
        if filters.driver_id is not None:
            conditions.append(Bid.driver_id == filters.driver_id)
        if filters.trip_id is not None:
            conditions.append(Bid.trip_id == filters.trip_id)
        if filters.status is not None:
            conditions.append(Bid.status == filters.status)
        if filters.min_amount is not None:
            conditions.append(Bid.amount >= filters.min_amount)
        if filters.max_amount is not None:
            conditions.append(Bid.amount <= filters.max_amount)
        if filters.start_date is not None:
            conditions.append(Bid.created_at >= filters.start_date)
        if filters.end_date is not None:
            conditions.append(Bid.created_at <= filters.end_date)

        try:
            async with self.session_factory() as db:
                total = (await db.execute(
                    select(func.count(Bid.id)).where(*conditions)
                )).scalar_one()
                result = await db.execute(
                    select(Bid)
                    .where(*conditions)
                    .order_by(Bid.created_at.desc(), Bid.id.desc())
                    .offset(filters.offset)
                    .limit(filters.limit)
                )
                bids = list(result.scalars().all())
        except Exception as exc:
            logger.exception("Bid listing failed")
            raise OperationFailedError("Failed to fetch bids", "BID_FETCH_FAILED") from exc

        return bids, total

    async def get_bids_by_driver(self, driver_id: int, limit: int = 20, offset: int = 0):
        return await self.get_bids(BidFilters(driver_id=driver_id, limit=limit, offset=offset))

    async def get_bids_by_package(self, package_id: int, limit: int = 20, offset: int = 0):
        return await self.get_bids(BidFilters(package_id=package_id, limit=limit, offset=offset))

    async def get_pending_bids(self, package_id: Optional[int] = None, limit: int = 20, offset: int = 0):
        return await self.get_bids(
            BidFilters(package_id=package_id, status=BidStatus.PENDING, limit=limit, offset=offset)
        )

    async def get_bid_by_id(self, bid_id: int) -> Bid:
        try:
            async with self.session_factory() as db:
                bid = await db.get(Bid, bid_id)
        except Exception as exc:
            logger.exception("Bid lookup failed for %s", bid_id)
            raise OperationFailedError("Failed to fetch bid", "BID_FETCH_FAILED") from exc
        if not bid:
            raise ResourceNotFoundError("Bid", bid_id)
        return bid

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def update_bid(self, bid_id: int, patch: BidUpdate, driver_id: int) -> Bid:
        """Change amount and/or message of the driver's own PENDING bid."""
        values = patch.model_dump(exclude_unset=True)
        if "amount" in values:
            _validate_amount(values["amount"])

        try:
            bid = await self.get_bid_by_id(bid_id)
            self._ensure_driver_owns(bid, driver_id)
            self._ensure_pending(bid)
            if not values:
                return bid

            async with self.session_factory() as db:
                async with db.begin():
                    if not await self._swap_status(db, bid_id, BidStatus.PENDING, **values):
                        raise self._not_pending(bid_id)
                    updated = await db.get(Bid, bid_id)
        except AppException:
            raise
        except Exception as exc:
            logger.exception("Bid update failed for %s", bid_id)
            raise OperationFailedError("Failed to update bid", "BID_UPDATE_FAILED") from exc

        logger.info("Bid updated", extra={"bid_id": bid_id, "fields": sorted(values)})
        return updated

    async def accept_bid(self, bid_id: int, customer_id: int) -> Bid:
        """
        Accept a bid on the customer's package.

        In one transaction:
            1. package PENDING -> ACCEPTED (compare-and-swap)
            2. bid PENDING -> ACCEPTED (compare-and-swap)
            3. every other PENDING bid on the package -> REJECTED
            4. the bid's trip, if any -> IN_PROGRESS

        Notifications go out only after commit.

        Raises:
            ResourceNotFoundError: BID_NOT_FOUND
            BusinessRuleError: BID_NOT_PENDING, PACKAGE_NOT_AVAILABLE, TRIP_NOT_AVAILABLE
            InsufficientPermissionsError: UNAUTHORIZED
            OperationFailedError: BID_ACCEPTANCE_FAILED
        """
        try:
            async with self.session_factory() as db:
                bid = await db.get(Bid, bid_id)
                if not bid:
                    raise ResourceNotFoundError("Bid", bid_id)
                self._ensure_pending(bid)
                package = await db.get(Package, bid.package_id)
                if not package:
                    raise ResourceNotFoundError("Package", bid.package_id)
                if package.customer_id != customer_id:
                    raise InsufficientPermissionsError(
                        "Only the package owner can accept bids",
                        details={"bid_id": bid_id, "package_id": package.id}
                    )
                if package.status != PackageStatus.PENDING:
                    raise self._package_not_available(package.id)

            async with self.session_factory() as db:
                async with db.begin():
                    result = await db.execute(
                        update(Package)
                        .where(Package.id == bid.package_id, Package.status == PackageStatus.PENDING)
                        .values(status=PackageStatus.ACCEPTED)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        raise self._package_not_available(bid.package_id)

                    if not await self._swap_status(db, bid_id, BidStatus.ACCEPTED):
                        raise self._not_pending(bid_id)

                    siblings = (await db.execute(
                        select(Bid.id, Bid.driver_id).where(
                            Bid.package_id == bid.package_id,
                            Bid.status == BidStatus.PENDING,
                            Bid.id != bid_id,
                        )
                    )).all()
                    if siblings:
                        await db.execute(
                            update(Bid)
                            .where(
                                Bid.id.in_([s.id for s in siblings]),
                                Bid.status == BidStatus.PENDING,
                            )
                            .values(status=BidStatus.REJECTED)
                            .execution_options(synchronize_session=False)
                        )

                    if bid.trip_id is not None:
                        trip_result = await db.execute(
                            update(Trip)
                            .where(
                                Trip.id == bid.trip_id,
                                Trip.status.in_([TripStatus.SCHEDULED, TripStatus.IN_PROGRESS]),
                            )
                            .values(status=TripStatus.IN_PROGRESS)
                            .execution_options(synchronize_session=False)
                        )
                        if trip_result.rowcount != 1:
                            raise BusinessRuleError(
                                "Trip is no longer available", "TRIP_NOT_AVAILABLE",
                                details={"bid_id": bid_id, "trip_id": bid.trip_id}
                            )

                    accepted = await db.get(Bid, bid_id)
        except AppException as exc:
            logger.info("Bid %s not accepted: %s", bid_id, exc.error_code)
            raise
        except Exception as exc:
            logger.exception("Bid acceptance failed for %s", bid_id)
            raise OperationFailedError("Failed to accept bid", "BID_ACCEPTANCE_FAILED") from exc

        logger.info(
            "Bid accepted",
            extra={"bid_id": bid_id, "package_id": accepted.package_id, "auto_rejected": len(siblings)}
        )
        self._notify(
            BID_ACCEPTED, accepted.driver_id,
            package_id=accepted.package_id, bid_id=bid_id, driver_id=accepted.driver_id, amount=accepted.amount
        )
        for sibling in siblings:
            self._notify(
                BID_REJECTED, sibling.driver_id,
                package_id=accepted.package_id, bid_id=sibling.id, driver_id=sibling.driver_id
            )
        return accepted

    async def reject_bid(self, bid_id: int, reason: Optional[str] = None,
                         customer_id: Optional[int] = None) -> Bid:
        """
        Reject a PENDING bid; the reason is appended to the bid message.

        When ``customer_id`` is given it must own the bid's package.
        """
        try:
            bid = await self.get_bid_by_id(bid_id)
            if customer_id is not None:
                async with self.session_factory() as db:
                    package = await db.get(Package, bid.package_id)
                if not package or package.customer_id != customer_id:
                    raise InsufficientPermissionsError(
                        "Only the package owner can reject bids",
                        details={"bid_id": bid_id}
                    )
            self._ensure_pending(bid)

            values = {}
            if reason:
                values["message"] = f"{bid.message or ''}\nRejection reason: {reason}".strip()

            async with self.session_factory() as db:
                async with db.begin():
                    if not await self._swap_status(db, bid_id, BidStatus.REJECTED, **values):
                        raise self._not_pending(bid_id)
                    rejected = await db.get(Bid, bid_id)
        except AppException:
            raise
        except Exception as exc:
            logger.exception("Bid rejection failed for %s", bid_id)
            raise OperationFailedError("Failed to reject bid", "BID_REJECTION_FAILED") from exc

        logger.info("Bid rejected", extra={"bid_id": bid_id})
        self._notify(
            BID_REJECTED, rejected.driver_id,
            package_id=rejected.package_id, bid_id=bid_id, driver_id=rejected.driver_id
        )
        return rejected

    async def cancel_bid(self, bid_id: int, driver_id: int) -> Bid:
        """Withdraw the driver's own PENDING bid."""
        try:
            bid = await self.get_bid_by_id(bid_id)
            self._ensure_driver_owns(bid, driver_id)
            self._ensure_pending(bid)

            async with self.session_factory() as db:
                async with db.begin():
                    if not await self._swap_status(db, bid_id, BidStatus.CANCELLED):
                        raise self._not_pending(bid_id)
                    cancelled = await db.get(Bid, bid_id)
        except AppException:
            raise
        except Exception as exc:
            logger.exception("Bid cancellation failed for %s", bid_id)
            raise OperationFailedError("Failed to cancel bid", "BID_CANCELLATION_FAILED") from exc

        logger.info("Bid cancelled", extra={"bid_id": bid_id, "driver_id": driver_id})
        return cancelled

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _swap_status(self, db, bid_id: int, new_status: BidStatus, **values) -> bool:
        """Apply ``values`` and move PENDING -> new_status; False if no longer PENDING."""
        result = await db.execute(
            update(Bid)
            .where(Bid.id == bid_id, Bid.status == BidStatus.PENDING)
            .values(status=new_status, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _notify(self, event: str, user_id: int, **payload) -> None:
        if self.notifier is None:
            return
        self.notifier.emit(event, user_id, **payload)

    @staticmethod
    def _ensure_driver_owns(bid: Bid, driver_id: int) -> None:
        if bid.driver_id != driver_id:
            raise InsufficientPermissionsError(
                "You can only modify your own bids",
                details={"bid_id": bid.id}
            )

    def _ensure_pending(self, bid: Bid) -> None:
        if bid.status != BidStatus.PENDING:
            raise self._not_pending(bid.id, bid.status)

    @staticmethod
    def _not_pending(bid_id: int, current: Optional[BidStatus] = None) -> BusinessRuleError:
        details = {"bid_id": bid_id}
        if current is not None:
            details["status"] = current.value
        return BusinessRuleError("Bid is not pending", "BID_NOT_PENDING", details=details)

    @staticmethod
    def _package_not_available(package_id: int) -> BusinessRuleError:
        return BusinessRuleError(
            "Package is no longer available", "PACKAGE_NOT_AVAILABLE",
            details={"package_id": package_id}
        )

    @staticmethod
    def _duplicate_bid(package_id: int, bid_id: Optional[int] = None) -> BusinessRuleError:
        details = {"package_id": package_id}
        if bid_id is not None:
            details["bid_id"] = bid_id
        return BusinessRuleError(
            "You already have a pending bid on this package", "DUPLICATE_BID", details=details
        )
