from __future__ import annotations

"""Manager copilot: streamed summaries over a caller-supplied data snapshot."""

from typing import Any, Dict, List, Optional

import logging

from ..domain.chat_models import CopilotAction, CopilotData, CopilotRequest, CopilotTicket
from .ai_gateway import AIGateway
from .prompts import COPILOT_PROMPTS
from .telemetry_sink import TelemetryEvent, record_event


logger = logging.getLogger(__name__)

MAX_TICKETS = 100
MAX_TICKETS_PER_STATUS = 10
MAX_ACTIVITY = 10


def _cut(value: Optional[str], limit: int, default: str = "") -> str:
    return str(value or default)[:limit]


def render_data_context(data: Optional[CopilotData]) -> str:
    """Render the snapshot as markdown, bounded in size whatever the input."""
    if data is None:
        return ""
    out: List[str] = []

    if data.sprint is not None:
        s = data.sprint
        out.append(
            "\n## Sprint Information"
            f"\nName: {_cut(s.name, 200)}"
            f"\nPeriod: {_cut(s.start_date, 20)} to {_cut(s.end_date, 20)}"
            f"\nGoal: {_cut(s.goal, 500, 'Not specified')}"
        )

    tickets = data.tickets[:MAX_TICKETS]
    if tickets:
        out.append(f"\n\n## Tickets ({len(tickets)} total)")
        by_status: Dict[str, List[CopilotTicket]] = {}
        for t in tickets:
            by_status.setdefault(_cut(t.status, 50, "unknown"), []).append(t)
        for status, group in by_status.items():
            out.append(f"\n\n### {status.replace('_', ' ').upper()} ({len(group)})")
            for t in group[:MAX_TICKETS_PER_STATUS]:
                assignee = f", assigned to {_cut(t.assignee, 100)}" if t.assignee else ""
                out.append(f"\n- [{_cut(t.key, 20)}] {_cut(t.title, 200)} ({t.priority}, {t.type}{assignee})")
            if len(group) > MAX_TICKETS_PER_STATUS:
                out.append(f"\n- ... and {len(group) - MAX_TICKETS_PER_STATUS} more")

    activity = data.recent_activity[:MAX_ACTIVITY]
    if activity:
        out.append("\n\n## Recent Activity")
        for a in activity:
            out.append(
                f"\n- {_cut(a.user, 100)} {_cut(a.action, 100)} {_cut(a.entity_type, 50)} ({_cut(a.timestamp, 30)})"
            )
    return "".join(out)


def build_copilot_payload(request: CopilotRequest, model: str) -> Dict[str, Any]:
    action: CopilotAction = request.action
    label = action.value.replace("_", " ")
    user_message = f"Analyze the following data and provide your {label}:{render_data_context(request.data)}"
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": COPILOT_PROMPTS[action]},
            {"role": "user", "content": user_message},
        ],
        "stream": True,
    }


def stream_copilot(request: CopilotRequest, gateway: AIGateway, *, actor: Optional[str] = None):
    logger.info(
        "copilot_request",
        extra={"action": request.action.value, "organization_id": request.organization_id},
    )
    body = gateway.open_stream(build_copilot_payload(request, gateway.model))
    record_event(
        TelemetryEvent(
            name="ai.copilot",
            properties={"action": request.action.value, "organization_id": request.organization_id},
            actor=actor,
        )
    )
    return body
