from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


MAX_TITLE_CHARS = 500
MAX_DESCRIPTION_CHARS = 10_000
MAX_TEAM_MEMBERS = 50
MAX_LABELS = 10
MAX_LABEL_CHARS = 50
MAX_REASONING_CHARS = 2_000

TicketType = Literal["bug", "task", "story", "support"]
Priority = Literal["critical", "high", "medium", "low"]
SlaRisk = Literal["low", "medium", "high"]
ASSIGNEE_ROLES = ("frontend", "backend", "fullstack", "qa", "devops", "design")


class TeamMember(BaseModel):
    id: str = Field(max_length=100)
    name: str = Field(max_length=200)
    role: str = Field(max_length=100)


class ProjectContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_id: str = Field(alias="projectId", max_length=100)
    project_name: str = Field(alias="projectName", max_length=200)
    team_members: List[TeamMember] = Field(default_factory=list, alias="teamMembers", max_length=MAX_TEAM_MEMBERS)


class TriageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ticket_id: Optional[str] = Field(default=None, alias="ticketId", max_length=100)
    title: str = Field(min_length=1, max_length=MAX_TITLE_CHARS)
    description: str = Field(default="", max_length=MAX_DESCRIPTION_CHARS)
    type: TicketType
    project_context: Optional[ProjectContext] = Field(default=None, alias="projectContext")


def _clip(value: Optional[str], limit: int) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value[:limit]


class TriageResult(BaseModel):
    """Structured triage recommendation.

    Accepts both the snake_case field names and the camelCase names the
    model's tool call uses; always serializes snake_case. Frozen once built.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    suggested_priority: Priority = Field(alias="suggestedPriority")
    priority_reasoning: str = Field(alias="priorityReasoning")
    suggested_assignee_role: Optional[str] = Field(default=None, alias="suggestedAssigneeRole")
    assignment_reasoning: Optional[str] = Field(default=None, alias="assignmentReasoning")
    sla_risk: SlaRisk = Field(alias="slaRisk")
    sla_risk_reasoning: str = Field(alias="slaRiskReasoning")
    suggested_labels: List[str] = Field(alias="suggestedLabels")
    sprint_recommendation: str = Field(alias="sprintRecommendation")
    estimated_hours: Optional[float] = Field(default=None, alias="estimatedHours")

    @field_validator("suggested_priority", "sla_risk", mode="before")
    @classmethod
    def _lower_enum(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("priority_reasoning", "sla_risk_reasoning", "sprint_recommendation")
    @classmethod
    def _clip_text(cls, value: str) -> str:
        return _clip(value, MAX_REASONING_CHARS) or ""

    @field_validator("assignment_reasoning")
    @classmethod
    def _clip_optional_text(cls, value: Optional[str]) -> Optional[str]:
        return _clip(value, MAX_REASONING_CHARS)

    @field_validator("estimated_hours", mode="before")
    @classmethod
    def _non_negative_hours(cls, value):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return value if value >= 0 else None

    @field_validator("suggested_assignee_role", mode="before")
    @classmethod
    def _known_role(cls, value):
        # Unknown roles are dropped rather than rejected.
        if not isinstance(value, str):
            return None
        role = value.strip().lower()
        return role if role in ASSIGNEE_ROLES else None

    @field_validator("suggested_labels", mode="before")
    @classmethod
    def _label_set(cls, value):
        if not isinstance(value, (list, tuple)):
            return []
        labels: List[str] = []
        seen = set()
        for raw in value:
            if not isinstance(raw, str):
                continue
            label = raw.strip().lower()[:MAX_LABEL_CHARS]
            if not label or label in seen:
                continue
            seen.add(label)
            labels.append(label)
        return labels[:MAX_LABELS]
