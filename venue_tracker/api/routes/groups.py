"""
Group routes: join/create and the polling snapshot.

Base path: /api/groups
"""
import logging
import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Request

from venue_tracker.api.deps import get_registry
from venue_tracker.core.errors import ValidationError
from venue_tracker.core.rate_limit import rate_limit_join, rate_limit_poll
from venue_tracker.models import CamelModel, VenueCalibration
from venue_tracker.services.registry import Registry, group_name_for, normalize_code

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/groups", tags=["groups"])


class JoinGroupRequest(CamelModel):
    """
    Join an existing group or create one.

    ``action="create"`` with a ``groupCode`` recreates a lost group under that
    code, or attaches to it if someone already did. ``userId`` lets a
    returning client keep its identity; a new id is issued when absent.
    """
    name: Optional[str] = None
    group_code: Optional[str] = None
    action: Literal["create", "join"] = "join"
    calibration: Optional[VenueCalibration] = None
    user_id: Optional[str] = None


@router.post("/join")
@rate_limit_join
async def join_group(
    request: Request,
    body: JoinGroupRequest,
    registry: Registry = Depends(get_registry),
):
    """Join or create a group; returns ``{user, group}``."""
    name = (body.name or "").strip()
    if not name:
        raise ValidationError("Name is required")

    code = normalize_code(body.group_code) if body.group_code and body.group_code.strip() else None

    if body.action == "create":
        if code:
            group, created = registry.resurrect_group(code, group_name_for(name), body.calibration)
            if not created:
                logger.info(f"Create for live group {code}; attaching instead", extra={"group_id": code})
        else:
            group = registry.create_group(group_name_for(name), body.calibration)
    else:
        if not code:
            raise ValidationError("Group code required")
        group = registry.get_group(code)

    user_id = (body.user_id or "").strip() or str(uuid.uuid4())
    user = registry.join_group(group.id, user_id, name)

    return {
        "user": user.to_wire(),
        "group": registry.get_group(group.id).to_wire(),
    }


@router.get("/{code}")
@rate_limit_poll
async def get_group(request: Request, code: str, registry: Registry = Depends(get_registry)):
    """Group state and members with computed liveness; polled by every client."""
    group, members = registry.snapshot(code)
    return {
        "group": group.to_wire(),
        "members": [m.to_wire() for m in members],
    }
