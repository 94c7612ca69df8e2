"""
Group chat.

Base path: /api/chat
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request

from venue_tracker.api.deps import get_registry
from venue_tracker.core.errors import ValidationError
from venue_tracker.core.rate_limit import rate_limit_write
from venue_tracker.models import CamelModel
from venue_tracker.services.registry import Registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

MAX_MESSAGE_LENGTH = 1000


class ChatRequest(CamelModel):
    group_id: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    text: Optional[str] = None


@router.post("")
@rate_limit_write
async def send_message(
    request: Request,
    body: ChatRequest,
    registry: Registry = Depends(get_registry),
):
    """
    Append a message to the group chat.

    A message for a group that no longer exists is dropped and answered with
    ``message: null``; the client's next poll reports the missing group.
    """
    text = (body.text or "").strip()
    if not body.group_id or not body.user_id or not text:
        raise ValidationError("Missing fields")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message longer than {MAX_MESSAGE_LENGTH} characters")

    message = registry.add_message(body.group_id, body.user_id, body.user_name, text)
    return {"success": True, "message": message.to_wire() if message else None}
