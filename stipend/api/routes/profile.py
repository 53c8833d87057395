"""
stipend.api.routes.profile — The caller's balance and referral link
=====================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from stipend.api.deps import get_current_user
from stipend.engine.stores import UserSnapshot

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("")
def get_profile(user: UserSnapshot = Depends(get_current_user)):
    return user.to_dict()
