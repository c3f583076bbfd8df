"""
Matching engine.

Scores open packages against scheduled trips and proposes matches.
Read-only: it never changes package, trip or bid state, so calls can run
concurrently and be repeated freely.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import List, NamedTuple, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    AppException, BusinessRuleError, OperationFailedError, ResourceNotFoundError
)
from backend.app.models.driver_profile import DriverProfile
from backend.app.models.package import Package
from backend.app.models.package_enums import PackageStatus
from backend.app.models.trip import Trip
from backend.app.models.trip_enums import TripStatus
from backend.app.schemas.matching import (
    BidRecommendation, MatchingCriteria, MatchingResult, PackageTripMatch
)
from backend.app.services import geo_scoring

logger = logging.getLogger(__name__)

RECOMMENDATION_SAMPLE_SIZE = 10
RECOMMENDATION_DISCOUNT = 0.8


class _TripCandidate(NamedTuple):
    trip: Trip
    driver_rating: float
    total_deliveries: int


class _Thresholds(NamedTuple):
    max_distance: float
    time_window: float
    min_match_score: float


def _thresholds(criteria: MatchingCriteria) -> _Thresholds:
    return _Thresholds(
        max_distance=criteria.max_distance if criteria.max_distance is not None else settings.matching_max_distance_km,
        time_window=criteria.time_window if criteria.time_window is not None else settings.matching_time_window_hours,
        min_match_score=criteria.min_match_score if criteria.min_match_score is not None else settings.matching_min_score,
    )


class MatchingEngine:
    """Package/trip matching over the persistent store."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def find_matches_for_package(
        self,
        package_id: int,
        criteria: Optional[MatchingCriteria] = None,
        now: Optional[datetime] = None
    ) -> MatchingResult:
        """
        Rank scheduled trips for one PENDING package.

        Raises:
            ResourceNotFoundError: PACKAGE_NOT_FOUND
            BusinessRuleError: PACKAGE_NOT_AVAILABLE
            OperationFailedError: MATCHING_FAILED
        """
        criteria = criteria or MatchingCriteria()
        now = now or datetime.utcnow()
        limits = _thresholds(criteria)

        try:
            async with self.session_factory() as db:
                package = await db.get(Package, package_id)
                if not package:
                    raise ResourceNotFoundError("Package", package_id)
                if package.status != PackageStatus.PENDING:
                    raise BusinessRuleError(
                        "Package is not available for matching", "PACKAGE_NOT_AVAILABLE",
                        details={"package_id": package_id, "status": package.status.value}
                    )
                candidates = await self._load_trip_candidates(db, criteria, limits, now)
        except AppException:
            raise
        except Exception as exc:
            logger.exception("Matching failed for package %s", package_id)
            raise OperationFailedError("Failed to find matches", "MATCHING_FAILED") from exc

        matches = []
        for candidate in candidates:
            match = self._evaluate(package, candidate, limits, now)
            if match is not None:
                matches.append(match)

        matches.sort(key=lambda m: m.match_score, reverse=True)
        return MatchingResult(matches=matches, total_matches=len(matches), criteria=criteria)

    async def find_matches_for_trip(
        self,
        trip_id: int,
        criteria: Optional[MatchingCriteria] = None,
        now: Optional[datetime] = None
    ) -> MatchingResult:
        """
        Rank PENDING packages for one SCHEDULED trip.

        Raises:
            ResourceNotFoundError: TRIP_NOT_FOUND
            BusinessRuleError: TRIP_NOT_AVAILABLE
            OperationFailedError: MATCHING_FAILED
        """
        criteria = criteria or MatchingCriteria()
        now = now or datetime.utcnow()
        limits = _thresholds(criteria)

        try:
            async with self.session_factory() as db:
                trip = await db.get(Trip, trip_id)
                if not trip:
                    raise ResourceNotFoundError("Trip", trip_id)
                if trip.status != TripStatus.SCHEDULED:
                    raise BusinessRuleError(
                        "Trip is not available for matching", "TRIP_NOT_AVAILABLE",
                        details={"trip_id": trip_id, "status": trip.status.value}
                    )
                profile = (await db.execute(
                    select(DriverProfile).where(DriverProfile.user_id == trip.driver_id)
                )).scalar_one_or_none()
                packages = await self._load_open_packages(db)
        except AppException:
            raise
        except Exception as exc:
            logger.exception("Matching failed for trip %s", trip_id)
            raise OperationFailedError("Failed to find matches", "MATCHING_FAILED") from exc

        candidate = _TripCandidate(
            trip=trip,
            driver_rating=profile.rating if profile else 0.0,
            total_deliveries=profile.total_deliveries if profile else 0,
        )
        matches = []
        for package in packages:
            match = self._evaluate(package, candidate, limits, now)
            if match is not None:
                matches.append(match)

        matches.sort(key=lambda m: m.match_score, reverse=True)
        return MatchingResult(matches=matches, total_matches=len(matches), criteria=criteria)

    async def find_optimal_matches(
        self,
        criteria: Optional[MatchingCriteria] = None,
        now: Optional[datetime] = None
    ) -> MatchingResult:
        """Conflict-free global assignment scored with the basic profile."""
        return await self._assign(criteria, now, advanced=False)

    async def find_optimal_matches_with_ml(
        self,
        criteria: Optional[MatchingCriteria] = None,
        now: Optional[datetime] = None
    ) -> MatchingResult:
        """Conflict-free global assignment scored with the advanced profile (adds price fit)."""
        return await self._assign(criteria, now, advanced=True)

    async def recommend_bid(self, package_id: int) -> BidRecommendation:
        """
        Suggest a competitive bid amount for a package.

        Looks at recently accepted packages of the same size tier (and
        similar weight, when known) and recommends 80% of the lower of
        their average price and this package's offered price.
        """
        try:
            async with self.session_factory() as db:
                package = await db.get(Package, package_id)
                if not package:
                    raise ResourceNotFoundError("Package", package_id)

                query = select(Package).where(
                    Package.id != package.id,
                    Package.status == PackageStatus.ACCEPTED,
                    Package.size == package.size,
                )
                if package.weight_kg:
                    query = query.where(
                        Package.weight_kg >= package.weight_kg * 0.8,
                        Package.weight_kg <= package.weight_kg * 1.2,
                    )
                query = query.order_by(Package.created_at.desc()).limit(RECOMMENDATION_SAMPLE_SIZE)
                similar = (await db.execute(query)).scalars().all()
        except AppException:
            raise
        except Exception as exc:
            logger.exception("Bid recommendation failed for package %s", package_id)
            raise OperationFailedError("Failed to get recommended bids", "RECOMMENDATION_FAILED") from exc

        reasoning = []
        if similar:
            average_price = sum(p.price_offered for p in similar) / len(similar)
            reference = min(average_price * RECOMMENDATION_DISCOUNT, package.price_offered * RECOMMENDATION_DISCOUNT)
        else:
            average_price = None
            reference = package.price_offered * RECOMMENDATION_DISCOUNT
        amount = math.floor(reference * 100) / 100

        reasoning.append(f"Recommended bid: ${amount:.2f}")
        if average_price is not None:
            reasoning.append(
                f"Based on {len(similar)} similar packages with average price of ${average_price:.2f}"
            )
        else:
            reasoning.append("No similar packages found, using package offered price as reference")
        reasoning.append(f"Package size: {package.size.value}")
        if package.weight_kg:
            reasoning.append(f"Package weight: {package.weight_kg}kg")
        reasoning.append("Bid amount is 80% of reference price to remain competitive")

        return BidRecommendation(package_id=package.id, recommended_amount=amount, reasoning=reasoning)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _assign(self, criteria: Optional[MatchingCriteria], now: Optional[datetime],
                      advanced: bool) -> MatchingResult:
        """
        Greedy maximum-weight assignment.

        Every surviving package×trip pair gets a priority; pairs are
        stable-sorted by priority (descending) and committed only when
        neither side is already claimed. Not globally optimal, but
        deterministic for a given store snapshot.
        """
        criteria = criteria or MatchingCriteria()
        now = now or datetime.utcnow()
        limits = _thresholds(criteria)

        try:
            async with self.session_factory() as db:
                packages = await self._load_open_packages(db)
                candidates = await self._load_trip_candidates(db, criteria, limits, now)
        except Exception as exc:
            logger.exception("Optimal matching failed")
            raise OperationFailedError("Failed to find optimal matches", "OPTIMAL_MATCHING_FAILED") from exc

        scored: List[PackageTripMatch] = []
        for package in packages:
            for candidate in candidates:
                match = self._evaluate(package, candidate, limits, now, advanced=advanced)
                if match is None:
                    continue
                match.priority = geo_scoring.match_priority(
                    match.match_score, package.price_offered,
                    candidate.driver_rating, candidate.total_deliveries
                )
                scored.append(match)

        scored.sort(key=lambda m: m.priority, reverse=True)

        claimed_packages = set()
        claimed_trips = set()
        assignment = []
        for match in scored:
            if match.package_id in claimed_packages or match.trip_id in claimed_trips:
                continue
            assignment.append(match)
            claimed_packages.add(match.package_id)
            claimed_trips.add(match.trip_id)

        logger.info(
            "Global assignment (%s): %d packages x %d trips -> %d candidate pairs, %d assigned",
            "advanced" if advanced else "basic", len(packages), len(candidates), len(scored), len(assignment)
        )
        return MatchingResult(matches=assignment, total_matches=len(assignment), criteria=criteria)

    async def _load_trip_candidates(self, db, criteria: MatchingCriteria, limits: _Thresholds,
                                    now: datetime) -> List[_TripCandidate]:
        query = (
            select(Trip, DriverProfile)
            .outerjoin(DriverProfile, DriverProfile.user_id == Trip.driver_id)
            .where(
                Trip.status == TripStatus.SCHEDULED,
                Trip.departure_time >= now,
                Trip.departure_time <= now + timedelta(hours=limits.time_window),
            )
        )
        if criteria.capacity_required:
            query = query.where(Trip.available_capacity == criteria.capacity_required)
        if criteria.driver_rating:
            query = query.where(DriverProfile.rating >= criteria.driver_rating)
        query = query.order_by(Trip.departure_time.asc(), Trip.id.asc())

        rows = (await db.execute(query)).all()
        return [
            _TripCandidate(
                trip=trip,
                driver_rating=profile.rating if profile else 0.0,
                total_deliveries=profile.total_deliveries if profile else 0,
            )
            for trip, profile in rows
        ]

    async def _load_open_packages(self, db) -> List[Package]:
        result = await db.execute(
            select(Package)
            .where(Package.status == PackageStatus.PENDING)
            .order_by(Package.created_at.desc(), Package.id.desc())
        )
        return list(result.scalars().all())

    def _evaluate(self, package: Package, candidate: _TripCandidate, limits: _Thresholds,
                  now: datetime, advanced: bool = False) -> Optional[PackageTripMatch]:
        """Score one pair; None when it fails the distance, capacity or score filters."""
        trip = candidate.trip

        pickup_km = geo_scoring.distance_km(package.pickup_lat, package.pickup_lng, trip.start_lat, trip.start_lng)
        delivery_km = geo_scoring.distance_km(package.delivery_lat, package.delivery_lng, trip.end_lat, trip.end_lng)
        if pickup_km > limits.max_distance or delivery_km > limits.max_distance:
            return None

        capacity_ok = geo_scoring.capacity_compatible(package.size, trip.available_capacity)
        if not capacity_ok:
            return None

        time_score = geo_scoring.time_compatibility(package.created_at, trip.departure_time, now)
        trip_km = geo_scoring.distance_km(trip.start_lat, trip.start_lng, trip.end_lat, trip.end_lng)
        route_score = geo_scoring.route_compatibility(pickup_km, delivery_km, trip_km)

        if advanced:
            score = geo_scoring.advanced_match_score(
                pickup_km, delivery_km, time_score, capacity_ok, route_score,
                driver_rating=candidate.driver_rating,
                price_score=geo_scoring.price_compatibility(package.price_offered, trip.available_capacity),
            )
        else:
            score = geo_scoring.basic_match_score(
                pickup_km, delivery_km, time_score, capacity_ok, route_score,
                driver_rating=candidate.driver_rating,
            )

        if score < limits.min_match_score:
            return None

        return PackageTripMatch(
            package_id=package.id,
            trip_id=trip.id,
            driver_id=trip.driver_id,
            match_score=round(score, 4),
            distance=round(max(pickup_km, delivery_km), 3),
            time_compatibility=time_score,
            capacity_compatibility=capacity_ok,
            route_compatibility=round(route_score, 4),
            estimated_delivery_time=geo_scoring.estimated_delivery_time(trip.departure_time, pickup_km, delivery_km),
        )
