from __future__ import annotations

"""Builds the model request for the conversational chat endpoint.

The router is stateless: it maps an action identifier to a system prompt and
optional tool schema, annotates the trailing user turn with the caller's
organization/project context, and hands the payload to the gateway.
"""

from typing import Any, Dict, Iterator, List, Optional

import logging

from ..domain.chat_models import ActionType, ChatContext, ChatRequest
from .ai_gateway import AIGateway
from .prompts import CHAT_TRIAGE_TOOL, CREATE_TICKET_TOOL, SYSTEM_PROMPTS, forced_tool_choice
from .telemetry_sink import TelemetryEvent, record_event


logger = logging.getLogger(__name__)


def context_annotation(context: Optional[ChatContext]) -> str:
    if context is None:
        return ""
    parts: List[str] = []
    if context.organization_id:
        parts.append(f"Organization {context.organization_id}")
    if context.project_id:
        parts.append(f"Project {context.project_id}")
    if not parts:
        return ""
    return f"\n\n[Context: {', '.join(parts)}]"


def build_chat_payload(request: ChatRequest, model: str) -> Dict[str, Any]:
    action = ActionType.resolve(request.action)
    turns: List[Dict[str, str]] = [{"role": t.role, "content": t.content} for t in request.messages]

    annotation = context_annotation(request.context)
    if annotation and turns and turns[-1]["role"] == "user":
        turns[-1] = {**turns[-1], "content": turns[-1]["content"] + annotation}

    payload: Dict[str, Any] = {
        "model": model,
        "messages": [{"role": "system", "content": SYSTEM_PROMPTS[action]}, *turns],
        "stream": True,
    }
    if action is ActionType.CREATE_TICKET:
        payload["tools"] = [CREATE_TICKET_TOOL]
    elif action is ActionType.TRIAGE_TICKET:
        payload["tools"] = [CHAT_TRIAGE_TOOL]
        payload["tool_choice"] = forced_tool_choice("triage_ticket")
    return payload


def stream_chat(request: ChatRequest, gateway: AIGateway, *, actor: Optional[str] = None) -> Iterator[bytes]:
    """Open the backend stream for a chat request.

    Raises the gateway's errors before any byte is produced.
    """
    action = ActionType.resolve(request.action)
    payload = build_chat_payload(request, gateway.model)
    logger.info("chat_request", extra={"action": action.value, "turns": len(request.messages)})
    body = gateway.open_stream(payload)
    record_event(TelemetryEvent(name="ai.chat", properties={"action": action.value}, actor=actor))
    return body
