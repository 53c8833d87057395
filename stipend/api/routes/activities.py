"""
stipend.api.routes.activities — Activity listing, checks and rewards
======================================================================

Outcome → HTTP mapping:
  Ok               200
  ValidationError  400
  NotFound         404
  Unavailable      409  {"reason", "next_available_at"}
  Internal         500
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from stipend.api.deps import get_current_user, get_processor
from stipend.database.engine import run_db
from stipend.engine.outcomes import (
    Internal,
    NotFound,
    Ok,
    Outcome,
    Unavailable,
    ValidationError,
)
from stipend.engine.stores import UserSnapshot
from stipend.services.reward_service import RewardProcessor

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/activities", tags=["activities"])


class RewardRequest(BaseModel):
    activity_id: str | None = None
    args: dict[str, Any] | None = None


def _unwrap(outcome: Outcome) -> Any:
    """Return the Ok payload or raise the matching HTTPException."""
    if isinstance(outcome, Ok):
        return outcome.value
    if isinstance(outcome, ValidationError):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, outcome.message)
    if isinstance(outcome, NotFound):
        raise HTTPException(status.HTTP_404_NOT_FOUND, outcome.message)
    if isinstance(outcome, Unavailable):
        raise HTTPException(status.HTTP_409_CONFLICT, outcome.to_dict())
    if isinstance(outcome, Internal):
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
    raise TypeError(f"Unexpected outcome {outcome!r}")


# ---------------------------------------------------------------------------
# GET /activities
# ---------------------------------------------------------------------------
@router.get("")
async def list_activities(
    user: UserSnapshot = Depends(get_current_user),
    processor: RewardProcessor = Depends(get_processor),
):
    """Every activity with the caller's availability."""
    return _unwrap(await run_db(processor.list_activities, user.id))


# ---------------------------------------------------------------------------
# GET /activities/{activity_id}
# ---------------------------------------------------------------------------
@router.get("/{activity_id}")
async def get_activity(
    activity_id: str,
    referrer_code: str | None = Query(None),
    user: UserSnapshot = Depends(get_current_user),
    processor: RewardProcessor = Depends(get_processor),
):
    """Single-activity verdict.  ``referrer_code`` feeds the referral check."""
    args = {"referrer_code": referrer_code} if referrer_code else None
    return _unwrap(await run_db(processor.get_activity, user.id, activity_id, args))


# ---------------------------------------------------------------------------
# POST /activities/reward
# ---------------------------------------------------------------------------
@router.post("/reward")
async def reward_activity(
    body: RewardRequest,
    user: UserSnapshot = Depends(get_current_user),
    processor: RewardProcessor = Depends(get_processor),
):
    """Claim an activity for the caller."""
    outcome = await run_db(processor.reward, user.id, body.activity_id, body.args)
    receipt = _unwrap(outcome)
    return receipt.to_dict()
