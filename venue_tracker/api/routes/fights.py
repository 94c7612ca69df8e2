"""
Static fight schedule.

Base path: /api/fights
"""
from fastapi import APIRouter, Request

from venue_tracker.core.rate_limit import rate_limit_general
from venue_tracker.models import FIGHTS

router = APIRouter(prefix="/fights", tags=["fights"])


@router.get("")
@rate_limit_general
async def list_fights(request: Request):
    """The event's fight card, in running order."""
    return {"fights": [f.to_wire() for f in FIGHTS]}
