from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


MAX_MESSAGES = 50
MAX_MESSAGE_CHARS = 10_000
MAX_ID_CHARS = 100


class ActionType(str, Enum):
    CREATE_TICKET = "create_ticket"
    TRIAGE_TICKET = "triage_ticket"
    ANALYZE_PROJECT = "analyze_project"
    SUMMARIZE_SPRINT = "summarize_sprint"
    GENERAL_CHAT = "general_chat"

    @classmethod
    def resolve(cls, value: Optional[str]) -> "ActionType":
        """Map a raw action identifier to a known action, defaulting to general chat."""
        try:
            return cls(value)
        except ValueError:
            return cls.GENERAL_CHAT


Role = Literal["user", "assistant"]


class ChatTurn(BaseModel):
    role: Role
    content: str = Field(max_length=MAX_MESSAGE_CHARS)


class ChatContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    organization_id: Optional[str] = Field(default=None, alias="organizationId", max_length=MAX_ID_CHARS)
    project_id: Optional[str] = Field(default=None, alias="projectId", max_length=MAX_ID_CHARS)
    sprint_id: Optional[str] = Field(default=None, alias="sprintId", max_length=MAX_ID_CHARS)
    ticket_id: Optional[str] = Field(default=None, alias="ticketId", max_length=MAX_ID_CHARS)


class ChatRequest(BaseModel):
    messages: List[ChatTurn] = Field(min_length=1, max_length=MAX_MESSAGES)
    # Unknown identifiers fall back to general chat.
    action: Optional[str] = None
    context: Optional[ChatContext] = None


class CopilotAction(str, Enum):
    SPRINT_SUMMARY = "sprint_summary"
    PROJECT_ANALYSIS = "project_analysis"
    TEAM_INSIGHTS = "team_insights"
    STANDUP_PREP = "standup_prep"


class CopilotTicket(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: Optional[str] = None
    title: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    type: Optional[str] = None
    assignee: Optional[str] = None
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")


class CopilotSprint(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    start_date: Optional[str] = Field(default=None, alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")
    goal: Optional[str] = None


class CopilotActivity(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user: Optional[str] = None
    action: Optional[str] = None
    entity_type: Optional[str] = Field(default=None, alias="entityType")
    timestamp: Optional[str] = None


class CopilotData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tickets: List[CopilotTicket] = Field(default_factory=list)
    sprint: Optional[CopilotSprint] = None
    recent_activity: List[CopilotActivity] = Field(default_factory=list, alias="recentActivity")


class CopilotRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: CopilotAction
    organization_id: str = Field(alias="organizationId", min_length=1, max_length=MAX_ID_CHARS)
    project_id: Optional[str] = Field(default=None, alias="projectId", max_length=MAX_ID_CHARS)
    sprint_id: Optional[str] = Field(default=None, alias="sprintId", max_length=MAX_ID_CHARS)
    data: Optional[CopilotData] = None
