"""
FastAPI dependencies.

Service wiring (built once per application by the lifespan and kept on
``app.state``) plus JWT authentication for protected routes.
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select
from backend.app.core.jwt import decode_access_token
from backend.app.db.session import get_db
from backend.app.domain.billing.reservation_service import CommissionReservationService
from backend.app.models.user import User
from backend.app.services.bid_ledger import BidLedger
from backend.app.services.matching_engine import MatchingEngine
from backend.app.services.notification_service import NotificationDispatcher
from backend.app.services.reservation_sweeper import ReservationSweeper

# HTTP Bearer security scheme
security = HTTPBearer()


class Services:
    """Service container shared by all request handlers."""

    def __init__(
        self,
        matching: MatchingEngine,
        bids: BidLedger,
        reservations: CommissionReservationService,
        notifier: NotificationDispatcher,
        sweeper: ReservationSweeper,
    ):
        self.matching = matching
        self.bids = bids
        self.reservations = reservations
        self.notifier = notifier
        self.sweeper = sweeper


def build_services(session_factory: async_sessionmaker, notifier: NotificationDispatcher,
                   sweep_interval_seconds: float = None) -> Services:
    """Construct every service over one session factory and one notification dispatcher."""
    reservations = CommissionReservationService(session_factory)
    return Services(
        matching=MatchingEngine(session_factory),
        bids=BidLedger(session_factory, notifier),
        reservations=reservations,
        notifier=notifier,
        sweeper=ReservationSweeper(reservations, sweep_interval_seconds),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_matching_engine(services: Services = Depends(get_services)) -> MatchingEngine:
    return services.matching


def get_bid_ledger(services: Services = Depends(get_services)) -> BidLedger:
    return services.bids


def get_reservation_service(services: Services = Depends(get_services)) -> CommissionReservationService:
    return services.reservations


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    1. Validates JWT token signature and expiry
    2. Verifies user still exists and is active (real-time check)

    Returns:
        Decoded token payload containing ``sub``, ``user_id`` and ``role``

    Raises:
        HTTPException: 401 if authentication fails, 403 for inactive users
    """
    token = credentials.credentials

    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    return payload
