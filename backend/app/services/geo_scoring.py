"""
Geo-scoring utilities for package-trip matching.

Pure functions: no I/O, no state, and no exceptions for missing optional
inputs (a missing rating or price simply scores 0).
"""

import math
from datetime import datetime, timedelta
from typing import Dict, Optional

from backend.app.models.package_enums import PackageSize, SIZE_RANK


EARTH_RADIUS_KM = 6371.0

# Distance at which the distance sub-score reaches 0
DISTANCE_NORMALIZATION_KM = 50.0

# City-traffic assumptions for delivery ETA
AVERAGE_SPEED_KMH = 30.0
HANDLING_MINUTES = 30

BASE_EXPECTED_PRICE = 50.0
CAPACITY_PRICE_MULTIPLIER = {
    PackageSize.SMALL: 0.7,
    PackageSize.MEDIUM: 1.0,
    PackageSize.LARGE: 1.3,
    PackageSize.EXTRA_LARGE: 1.6,
}

# Used for single-package / single-trip lookups
BASIC_WEIGHTS = {
    "distance": 0.30,
    "time": 0.25,
    "capacity": 0.20,
    "route": 0.15,
    "rating": 0.10,
}

# Used for global assignment; adds price compatibility
ADVANCED_WEIGHTS = {
    "distance": 0.25,
    "time": 0.20,
    "capacity": 0.15,
    "route": 0.15,
    "rating": 0.15,
    "price": 0.10,
}


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in kilometers
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def _rank(tier) -> Optional[int]:
    try:
        return SIZE_RANK[PackageSize(tier)]
    except (ValueError, KeyError):
        return None


def capacity_compatible(package_tier, trip_tier) -> bool:
    """True when the trip's capacity tier is at least the package's size tier."""
    package_rank = _rank(package_tier)
    trip_rank = _rank(trip_tier)
    if package_rank is None or trip_rank is None:
        return False
    return trip_rank >= package_rank


def time_compatibility(package_created_at: datetime, departure_time: datetime,
                       now: Optional[datetime] = None) -> float:
    """
    Score urgency of the package against imminence of the trip.

    Returns:
        0.9 for a package older than 24h on a trip leaving within 2h
        0.7 for a package older than 12h on a trip leaving within 6h
        0.5 for a trip leaving more than 24h from now
        0.6 otherwise
    """
    now = now or datetime.utcnow()
    package_age = now - package_created_at
    hours_until_departure = (departure_time - now).total_seconds() / 3600

    if package_age > timedelta(hours=24) and hours_until_departure < 2:
        return 0.9
    if package_age > timedelta(hours=12) and hours_until_departure < 6:
        return 0.7
    if hours_until_departure > 24:
        return 0.5
    return 0.6


def route_compatibility(pickup_detour_km: float, delivery_detour_km: float,
                        trip_distance_km: float) -> float:
    """
    How little the package pulls the driver off the trip's direct path.

    1 - (pickup detour + delivery detour) / trip length, clamped to [0, 1].
    """
    detour = pickup_detour_km + delivery_detour_km
    if trip_distance_km <= 0:
        return 1.0 if detour <= 0 else 0.0
    return min(1.0, max(0.0, 1 - detour / trip_distance_km))


def price_compatibility(price_offered: Optional[float], trip_tier) -> float:
    """Compare the offered price with the expected price for the trip's capacity tier."""
    if not price_offered:
        return 0.3
    try:
        multiplier = CAPACITY_PRICE_MULTIPLIER[PackageSize(trip_tier)]
    except (ValueError, KeyError):
        multiplier = 1.0
    expected = BASE_EXPECTED_PRICE * multiplier

    if expected * 0.8 <= price_offered <= expected * 1.5:
        return 1.0
    if price_offered >= expected * 0.6:
        return 0.7
    return 0.3


def distance_score(pickup_km: float, delivery_km: float) -> float:
    """Closer endpoints score higher; 0 at DISTANCE_NORMALIZATION_KM or beyond."""
    return max(0.0, 1 - max(pickup_km, delivery_km) / DISTANCE_NORMALIZATION_KM)


def rating_score(driver_rating: Optional[float]) -> float:
    if not driver_rating or driver_rating < 0:
        return 0.0
    return min(1.0, driver_rating / 5)


def _weighted(components: Dict[str, float], weights: Dict[str, float]) -> float:
    total = sum(components[name] * weight for name, weight in weights.items())
    return min(1.0, max(0.0, total))


def basic_match_score(pickup_km: float, delivery_km: float, time_score: float,
                      capacity_ok: bool, route_score: float,
                      driver_rating: Optional[float] = None) -> float:
    """Weighted compatibility score used for per-package and per-trip lookups."""
    components = {
        "distance": distance_score(pickup_km, delivery_km),
        "time": time_score,
        "capacity": 1.0 if capacity_ok else 0.0,
        "route": route_score,
        "rating": rating_score(driver_rating),
    }
    return _weighted(components, BASIC_WEIGHTS)


def advanced_match_score(pickup_km: float, delivery_km: float, time_score: float,
                         capacity_ok: bool, route_score: float,
                         driver_rating: Optional[float] = None,
                         price_score: float = 0.0) -> float:
    """Weighted compatibility score used by the global assignment (adds price)."""
    components = {
        "distance": distance_score(pickup_km, delivery_km),
        "time": time_score,
        "capacity": 1.0 if capacity_ok else 0.0,
        "route": route_score,
        "rating": rating_score(driver_rating),
        "price": price_score,
    }
    return _weighted(components, ADVANCED_WEIGHTS)


def match_priority(match_score: float, price_offered: Optional[float],
                   driver_rating: Optional[float], total_deliveries: Optional[int]) -> float:
    """Ordering key for the greedy global assignment."""
    return (
        match_score * 100
        + ((price_offered or 0) / 100) * 10
        + (driver_rating or 0) * 5
        + ((total_deliveries or 0) / 100) * 2
    )


def estimated_delivery_time(departure_time: datetime, pickup_km: float, delivery_km: float) -> datetime:
    """Departure plus driving time for both legs plus handling."""
    driving_minutes = (pickup_km + delivery_km) / AVERAGE_SPEED_KMH * 60
    return departure_time + timedelta(minutes=driving_minutes + HANDLING_MINUTES)
