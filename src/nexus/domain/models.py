from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


MAX_INVITES = 20

Template = Literal["startup", "enterprise"]
MemberRole = Literal["admin", "manager", "member"]
StepStatus = Literal["pending", "done", "error"]

# Fixed vocabulary of provisioning steps, in saga order. The invite step name
# carries a count ("3 invite(s) sent") and is matched by suffix.
STEP_ORGANIZATION_CREATED = "Organization created"
STEP_ADMIN_ASSIGNED = "Admin role assigned"
STEP_PROJECT_CREATED = "Default project created"
STEP_SPRINT_ACTIVATED = "Sprint activated"
STEP_DEMO_TICKETS_CREATED = "Demo tickets created"
STEP_INVITES_SUFFIX = "invite(s) sent"
STEP_RECOMMENDATIONS_GENERATED = "AI recommendations generated"
STEP_SETUP_COMPLETE = "Setup complete"

PROVISIONING_STEPS: List[str] = [
    STEP_ORGANIZATION_CREATED,
    STEP_ADMIN_ASSIGNED,
    STEP_PROJECT_CREATED,
    STEP_SPRINT_ACTIVATED,
    STEP_DEMO_TICKETS_CREATED,
    STEP_RECOMMENDATIONS_GENERATED,
    STEP_SETUP_COMPLETE,
]


def invites_step_name(count: int) -> str:
    return f"{count} {STEP_INVITES_SUFFIX}"


class InviteEntry(BaseModel):
    # Plain string: syntactically invalid addresses are skipped by the saga, not rejected.
    email: str = Field(max_length=320)
    role: MemberRole = "member"


class BootstrapRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(max_length=200)
    template: Template = "startup"
    is_demo: bool = Field(default=True, alias="isDemo")
    invites: List[InviteEntry] = Field(default_factory=list, max_length=MAX_INVITES)


class BootstrapResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    organization: Dict[str, Any]
    project: Dict[str, Any]
    sprint: Dict[str, Any]
    redirect_to: str = Field(alias="redirectTo")


class ProvisioningStep(BaseModel):
    id: Optional[str] = None
    organization_id: str
    step: str
    status: StepStatus = "done"
    created_at: Optional[str] = None


class InviteEmailRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    invite_id: Optional[str] = Field(default=None, alias="inviteId", max_length=100)
    email: str = Field(min_length=3, max_length=320)
    organization_name: str = Field(alias="organizationName", min_length=1, max_length=200)
    role: MemberRole = "member"
    token: str = Field(min_length=1, max_length=200)
    inviter_name: Optional[str] = Field(default=None, alias="inviterName", max_length=200)
