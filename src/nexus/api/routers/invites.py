from __future__ import annotations

from fastapi import APIRouter, Depends

from ...domain.models import InviteEmailRequest
from ...security.auth import User, get_service_or_user
from ...services import invite_mailer


router = APIRouter(prefix="/invites", tags=["invites"])


@router.post("/email")
def send_invite_email(req: InviteEmailRequest, principal: User = Depends(get_service_or_user)):
    message_id = invite_mailer.send_invite_email(req)
    return {"success": True, "messageId": message_id}
