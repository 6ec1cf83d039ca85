from __future__ import annotations

"""Single-shot ticket triage.

One non-streaming completion with the ``triage_ticket`` tool forced. The tool
arguments are validated into a :class:`TriageResult`; when the backend answers
with prose instead, the prose is returned as a fallback message.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import json
import logging

from pydantic import ValidationError

from ..domain.triage_models import TriageRequest, TriageResult
from ..observability.metrics import AI_GATEWAY_ERRORS
from .ai_gateway import AIGateway
from .errors import BackendUnavailable
from .prompts import TRIAGE_SYSTEM_PROMPT, TRIAGE_TOOL, forced_tool_choice
from .telemetry_sink import TelemetryEvent, record_event


LOG = logging.getLogger("nexus.llm")


@dataclass(frozen=True)
class TriageOutcome:
    ticket_id: Optional[str]
    triage: Optional[TriageResult] = None
    message: Optional[str] = None

    def to_body(self) -> Dict[str, Any]:
        if self.triage is not None:
            return {"success": True, "triage": self.triage.model_dump(), "ticketId": self.ticket_id}
        return {"success": True, "message": self.message}


def build_triage_prompt(request: TriageRequest) -> str:
    text = (
        f"Analyze and triage this {request.type} ticket:\n\n"
        f"Title: {request.title}\n\n"
        f"Description:\n{request.description}"
    )
    ctx = request.project_context
    if ctx is not None:
        text += f"\n\nProject: {ctx.project_name}"
        if ctx.team_members:
            members = ", ".join(f"{m.name} ({m.role})" for m in ctx.team_members)
            text += f"\nTeam Members: {members}"
    return text


def build_triage_payload(request: TriageRequest, model: str) -> Dict[str, Any]:
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": TRIAGE_SYSTEM_PROMPT},
            {"role": "user", "content": build_triage_prompt(request)},
        ],
        "tools": [TRIAGE_TOOL],
        "tool_choice": forced_tool_choice("triage_ticket"),
    }


def parse_triage_response(data: Dict[str, Any], ticket_id: Optional[str] = None) -> TriageOutcome:
    """Extract the triage tool call from a completion body."""
    choices = data.get("choices") or [{}]
    message = (choices[0] or {}).get("message") or {}
    tool_calls = message.get("tool_calls") or []
    call = tool_calls[0] if tool_calls else None
    function = (call or {}).get("function") or {}

    if function.get("name") != "triage_ticket":
        return TriageOutcome(ticket_id=ticket_id, message=message.get("content"))

    raw = function.get("arguments")
    try:
        arguments = json.loads(raw) if isinstance(raw, str) else raw
        if not isinstance(arguments, dict):
            raise ValueError("tool arguments are not an object")
        triage = TriageResult.model_validate(arguments)
    except (ValueError, ValidationError) as exc:
        AI_GATEWAY_ERRORS.labels(reason="invalid_tool_payload").inc()
        LOG.warning("triage_invalid_tool_payload", extra={"err": str(exc)[:500]})
        raise BackendUnavailable() from exc
    return TriageOutcome(ticket_id=ticket_id, triage=triage)


def triage_ticket(request: TriageRequest, gateway: AIGateway, *, actor: Optional[str] = None) -> TriageOutcome:
    data = gateway.complete(build_triage_payload(request, gateway.model))
    outcome = parse_triage_response(data, request.ticket_id)
    record_event(
        TelemetryEvent(
            name="ai.triage",
            properties={"ticket_id": request.ticket_id, "structured": outcome.triage is not None},
            actor=actor,
        )
    )
    return outcome
