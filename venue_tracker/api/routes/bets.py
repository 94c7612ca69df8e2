"""
Fight outcome votes.

Base path: /api/bets
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request

from venue_tracker.api.deps import get_registry
from venue_tracker.core.errors import ValidationError
from venue_tracker.core.rate_limit import rate_limit_write
from venue_tracker.models import CamelModel, Prediction
from venue_tracker.services.registry import Registry

router = APIRouter(prefix="/bets", tags=["bets"])


class BetRequest(CamelModel):
    group_id: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    fight_id: Optional[str] = None
    prediction: Optional[Prediction] = None


@router.post("")
@rate_limit_write
async def place_bet(
    request: Request,
    body: BetRequest,
    registry: Registry = Depends(get_registry),
):
    """Cast or replace the caller's vote on a fight (last vote wins)."""
    if not body.group_id or not body.user_id or not body.fight_id or not body.prediction:
        raise ValidationError("Missing fields")

    bet = registry.add_bet(
        body.group_id,
        body.user_id,
        body.user_name,
        body.fight_id,
        body.prediction,
    )
    return {"success": True, "bet": bet.to_wire()}
