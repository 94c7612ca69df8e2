"""
Location updates pushed by each member's device.

Base path: /api/location
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request

from venue_tracker.api.deps import get_registry
from venue_tracker.core.errors import ValidationError
from venue_tracker.core.rate_limit import rate_limit_write
from venue_tracker.models import CamelModel
from venue_tracker.services.registry import Registry

router = APIRouter(prefix="/location", tags=["location"])


class LocationRequest(CamelModel):
    user_id: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None


@router.post("")
@rate_limit_write
async def update_location(
    request: Request,
    body: LocationRequest,
    registry: Registry = Depends(get_registry),
):
    """Store the position and refresh liveness; 404 when the user is unknown."""
    if not body.user_id or body.lat is None or body.lng is None:
        raise ValidationError("Missing fields")
    if not (-90 <= body.lat <= 90 and -180 <= body.lng <= 180):
        raise ValidationError("Coordinates out of range")

    user = registry.update_location(body.user_id, body.lat, body.lng)
    return {"success": True, "user": user.to_wire()}
