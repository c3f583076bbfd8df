"""
Commission API Endpoints.

Commission quotes for drivers, and the reservation lifecycle
(pre-authorize by the driver, confirm/release by operations).
"""

from fastapi import APIRouter, Depends, Path, Query, status

from backend.app.core.dependencies import get_current_user, get_reservation_service
from backend.app.core.guards import require_admin, require_driver
from backend.app.domain.billing.commission import calculate_commission
from backend.app.domain.billing.reservation_service import CommissionReservationService
from backend.app.schemas.commission import (
    CleanupResponse, CommissionCalculation, PreAuthorizeRequest, ReservationResponse, WalletResponse
)

router = APIRouter(prefix="/commission", tags=["Commission"])


@router.get("/calculate", response_model=CommissionCalculation)
async def calculate(
    amount: float = Query(..., gt=0),
    current_user: dict = Depends(get_current_user)
):
    """Commission split for an amount."""
    return calculate_commission(amount)


@router.get("/wallet", response_model=WalletResponse)
async def my_wallet(
    current_user: dict = Depends(require_driver),
    reservations: CommissionReservationService = Depends(get_reservation_service)
):
    return await reservations.get_wallet(current_user["user_id"])


@router.post("/reservations", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def pre_authorize(
    req: PreAuthorizeRequest,
    current_user: dict = Depends(require_driver),
    reservations: CommissionReservationService = Depends(get_reservation_service)
):
    """Hold commission against your wallet."""
    return await reservations.pre_authorize(current_user["user_id"], req.trip_id, req.commission_amount)


@router.post("/reservations/cleanup", response_model=CleanupResponse)
async def cleanup_reservations(
    current_user: dict = Depends(require_admin),
    reservations: CommissionReservationService = Depends(get_reservation_service)
):
    """Release every expired PENDING reservation now."""
    released = await reservations.cleanup_expired_reservations()
    return CleanupResponse(released=released)


@router.get("/reservations/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    reservation_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    reservations: CommissionReservationService = Depends(get_reservation_service)
):
    return await reservations.get_reservation(reservation_id)


@router.post("/reservations/{reservation_id}/confirm", response_model=ReservationResponse)
async def confirm_reservation(
    reservation_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    reservations: CommissionReservationService = Depends(get_reservation_service)
):
    return await reservations.confirm(reservation_id)


@router.post("/reservations/{reservation_id}/release", response_model=ReservationResponse)
async def release_reservation(
    reservation_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    reservations: CommissionReservationService = Depends(get_reservation_service)
):
    return await reservations.release(reservation_id)
