from __future__ import annotations

"""Typed argument schemas for the tools the chat endpoint exposes to the model.

Tool-call arguments arrive as untyped JSON. Before a tool call is handed to
application code it is validated against the schema registered for its name;
payloads that miss required fields, or name an unknown tool, are rejected.
"""

from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .triage_models import Priority, SlaRisk, TicketType


class CreateTicketArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str = Field(min_length=1, max_length=500)
    description: str = Field(max_length=10_000)
    type: TicketType
    priority: Priority
    labels: List[str] = Field(default_factory=list)
    estimate_hours: Optional[float] = Field(default=None, alias="estimateHours", ge=0)


class TriageArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    suggested_priority: Priority = Field(alias="suggestedPriority")
    priority_reasoning: str = Field(alias="priorityReasoning")
    suggested_assignee_role: Optional[str] = Field(default=None, alias="suggestedAssigneeRole")
    sla_risk: SlaRisk = Field(alias="slaRisk")
    sla_risk_reasoning: Optional[str] = Field(default=None, alias="slaRiskReasoning")
    suggested_labels: List[str] = Field(default_factory=list, alias="suggestedLabels")
    sprint_recommendation: Optional[str] = Field(default=None, alias="sprintRecommendation")


ToolArgs = Union[CreateTicketArgs, TriageArgs]

TOOL_SCHEMAS: Dict[str, Type[BaseModel]] = {
    "create_ticket": CreateTicketArgs,
    "triage_ticket": TriageArgs,
}


class InvalidToolCall(ValueError):
    pass


def parse_tool_arguments(name: str, arguments: Dict[str, Any]) -> ToolArgs:
    schema = TOOL_SCHEMAS.get(name)
    if schema is None:
        raise InvalidToolCall(f"Unknown tool: {name}")
    try:
        return schema.model_validate(arguments)  # type: ignore[return-value]
    except ValidationError as exc:
        raise InvalidToolCall(f"Invalid arguments for {name}: {exc.error_count()} error(s)") from exc
