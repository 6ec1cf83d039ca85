from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from ...domain.chat_models import ChatRequest, CopilotRequest
from ...domain.triage_models import TriageRequest
from ...security.auth import User, get_current_user
from ...security.rate_limit import limit_ai_request
from ...services import ai_gateway
from ...services.action_router import stream_chat
from ...services.copilot import stream_copilot
from ...services.triage_engine import triage_ticket


router = APIRouter(prefix="/ai", tags=["ai"])

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post("/chat", response_class=StreamingResponse)
def chat(req: ChatRequest, user: User = Depends(get_current_user)):
    """Relay the model's event stream for a conversational turn."""
    limit_ai_request(user.id)
    body = stream_chat(req, ai_gateway.get_gateway(), actor=user.id)
    return StreamingResponse(body, media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/triage")
def triage(req: TriageRequest, user: User = Depends(get_current_user)):
    limit_ai_request(user.id)
    outcome = triage_ticket(req, ai_gateway.get_gateway(), actor=user.id)
    return outcome.to_body()


@router.post("/copilot", response_class=StreamingResponse)
def copilot(req: CopilotRequest, user: User = Depends(get_current_user)):
    limit_ai_request(user.id)
    body = stream_copilot(req, ai_gateway.get_gateway(), actor=user.id)
    return StreamingResponse(body, media_type="text/event-stream", headers=SSE_HEADERS)
