"""
Bid API Endpoints.

Drivers place, edit and withdraw bids; package owners accept or reject them.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status

from backend.app.core.dependencies import get_bid_ledger, get_current_user
from backend.app.core.guards import require_customer, require_driver
from backend.app.models.bid_enums import BidStatus
from backend.app.schemas.bid import (
    BidCreate, BidFilters, BidListResponse, BidReject, BidResponse, BidUpdate, BidWithCommission
)
from backend.app.services.bid_ledger import BidLedger

router = APIRouter(prefix="/bids", tags=["Bids"])


@router.post("", response_model=BidWithCommission, status_code=status.HTTP_201_CREATED)
async def create_bid(
    bid_in: BidCreate,
    current_user: dict = Depends(require_driver),
    ledger: BidLedger = Depends(get_bid_ledger)
):
    """
    Place a bid on a PENDING package.

    The response includes the commission split for the bid amount.
    """
    return await ledger.create_bid(
        package_id=bid_in.package_id,
        driver_id=current_user["user_id"],
        amount=bid_in.amount,
        trip_id=bid_in.trip_id,
        message=bid_in.message,
    )


@router.get("", response_model=BidListResponse)
async def list_bids(
    package_id: Optional[int] = Query(None),
    driver_id: Optional[int] = Query(None),
    trip_id: Optional[int] = Query(None),
    bid_status: Optional[BidStatus] = Query(None, alias="status"),
    min_amount: Optional[float] = Query(None),
    max_amount: Optional[float] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(get_current_user),
    ledger: BidLedger = Depends(get_bid_ledger)
):
    """List bids, newest first."""
    filters = BidFilters(
        package_id=package_id,
        driver_id=driver_id,
        trip_id=trip_id,
        status=bid_status,
        min_amount=min_amount,
        max_amount=max_amount,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    bids, total = await ledger.get_bids(filters)
    return BidListResponse(
        bids=[BidResponse.model_validate(b) for b in bids],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{bid_id}", response_model=BidResponse)
async def get_bid(
    bid_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    ledger: BidLedger = Depends(get_bid_ledger)
):
    return await ledger.get_bid_by_id(bid_id)


@router.patch("/{bid_id}", response_model=BidResponse)
async def update_bid(
    bid_update: BidUpdate,
    bid_id: int = Path(...),
    current_user: dict = Depends(require_driver),
    ledger: BidLedger = Depends(get_bid_ledger)
):
    """Edit amount and/or message of your own PENDING bid."""
    return await ledger.update_bid(bid_id, bid_update, current_user["user_id"])


@router.post("/{bid_id}/accept", response_model=BidResponse)
async def accept_bid(
    bid_id: int = Path(...),
    current_user: dict = Depends(require_customer),
    ledger: BidLedger = Depends(get_bid_ledger)
):
    """
    Accept a bid on your package.

    Every other pending bid on the package is rejected and the package
    leaves the market.
    """
    return await ledger.accept_bid(bid_id, current_user["user_id"])


@router.post("/{bid_id}/reject", response_model=BidResponse)
async def reject_bid(
    bid_id: int = Path(...),
    rejection: Optional[BidReject] = Body(None),
    current_user: dict = Depends(require_customer),
    ledger: BidLedger = Depends(get_bid_ledger)
):
    reason = rejection.reason if rejection else None
    return await ledger.reject_bid(bid_id, reason, customer_id=current_user["user_id"])


@router.post("/{bid_id}/cancel", response_model=BidResponse)
async def cancel_bid(
    bid_id: int = Path(...),
    current_user: dict = Depends(require_driver),
    ledger: BidLedger = Depends(get_bid_ledger)
):
    """Withdraw your own PENDING bid."""
    return await ledger.cancel_bid(bid_id, current_user["user_id"])
