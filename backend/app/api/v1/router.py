"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import bids, commission, matching, notifications

router = APIRouter()

# Matching (read-only proposals)
router.include_router(matching.router)

# Bid lifecycle
router.include_router(bids.router)

# Commission quotes and reservations
router.include_router(commission.router)

# In-app inbox
router.include_router(notifications.router)
