from __future__ import annotations

"""Organization bootstrap saga.

Runs the provisioning steps strictly in order for one request. Steps 1-4
(organization, admin membership, project, sprint) are critical: a failure
aborts with ``ProvisioningError`` and leaves whatever was already written in
place. Demo tickets, invites and recommendations are best effort. Every
successful step appends one ``org_provisioning_steps`` row; "Setup complete"
is written last and is the only completion signal.

The saga is not resumable. An aborted run leaves an orphaned organization
that has to be completed or deleted by an operator.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import logging
import re
import secrets

from email_validator import EmailNotValidError, validate_email

from ..domain.models import (
    BootstrapRequest,
    BootstrapResponse,
    InviteEmailRequest,
    InviteEntry,
    STEP_ADMIN_ASSIGNED,
    STEP_DEMO_TICKETS_CREATED,
    STEP_ORGANIZATION_CREATED,
    STEP_PROJECT_CREATED,
    STEP_RECOMMENDATIONS_GENERATED,
    STEP_SETUP_COMPLETE,
    STEP_SPRINT_ACTIVATED,
    invites_step_name,
)
from ..infrastructure.events import publish_step
from ..infrastructure.store import DataStore, StoreError, get_store
from ..observability.metrics import PROVISIONING_STEPS
from ..security.auth import User
from .errors import InvalidInput, NexusError, ProvisioningError
from .invite_mailer import send_invite_email
from .telemetry_sink import TelemetryEvent, record_event


logger = logging.getLogger("nexus.provisioning")

SLUG_MAX_CHARS = 50
PROJECT_KEY_LENGTH = 3
SPRINT_DAYS = 14

DEMO_TICKETS: List[Dict[str, Any]] = [
    {
        "title": "User cannot log in after password reset",
        "description": (
            "Users report being unable to log in after requesting a password reset. The reset email "
            "arrives, but after following the link and choosing a new password, login fails with "
            "'Invalid credentials'."
        ),
        "type": "bug",
        "priority": "high",
        "status": "todo",
        "labels": ["auth", "critical-path"],
    },
    {
        "title": "Set up CI/CD pipeline",
        "description": (
            "Configure a CI workflow for automated testing and deployment:\n"
            "- Unit test runner\n- Build verification\n- Staging deployment\n- Production deployment approval"
        ),
        "type": "task",
        "priority": "medium",
        "status": "in_progress",
        "labels": ["devops", "infrastructure"],
    },
    {
        "title": "Design user onboarding flow",
        "description": (
            "Create a first-time user experience that walks through:\n"
            "1. Account setup\n2. Team creation\n3. First project setup\n4. Tutorial walkthrough"
        ),
        "type": "story",
        "priority": "medium",
        "status": "review",
        "labels": ["ux", "onboarding"],
    },
    {
        "title": "Dashboard loading performance",
        "description": (
            "The main dashboard takes 3+ seconds to load. Investigate and optimize:\n"
            "- API response times\n- Bundle size\n- Lazy loading opportunities"
        ),
        "type": "bug",
        "priority": "low",
        "status": "todo",
        "labels": ["performance", "frontend"],
    },
]

ONBOARDING_RECOMMENDATIONS: List[str] = [
    "Create labels for better ticket organization",
    "Invite your team members to collaborate",
    "Set up your first milestone or epic",
    "Configure notification preferences",
]


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:SLUG_MAX_CHARS].strip("-") or "org"


def project_key(name: str) -> str:
    """Three upper-case letters from the start of the name; anything else becomes X."""
    head = name.strip()[:PROJECT_KEY_LENGTH].upper()
    key = re.sub(r"[^A-Z]", "X", head)
    return key.ljust(PROJECT_KEY_LENGTH, "X")


def normalize_invites(invites: List[InviteEntry]) -> List[InviteEntry]:
    """Keep syntactically valid addresses, lower-cased, first occurrence wins."""
    seen = set()
    result: List[InviteEntry] = []
    for entry in invites:
        raw = (entry.email or "").strip()
        try:
            validate_email(raw, check_deliverability=False)
        except EmailNotValidError:
            logger.info("Skipping invalid invite address")
            continue
        email = raw.lower()
        if email in seen:
            continue
        seen.add(email)
        result.append(InviteEntry(email=email, role=entry.role))
    return result


Mailer = Callable[[InviteEmailRequest], str]


@dataclass
class ProvisioningResult:
    organization: Dict[str, Any]
    project: Dict[str, Any]
    sprint: Dict[str, Any]

    def to_response(self) -> BootstrapResponse:
        return BootstrapResponse(
            success=True,
            organization=self.organization,
            project=self.project,
            sprint=self.sprint,
            redirectTo=f"/projects/{self.project['id']}",
        )


class ProvisioningOrchestrator:
    def __init__(
        self,
        store: Optional[DataStore] = None,
        mailer: Optional[Mailer] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store or get_store()
        self.mailer = mailer or send_invite_email
        self.clock = clock or (lambda: datetime.now(UTC))

    # --- step log ---
    def _log_step(self, organization_id: str, step: str, *, critical: bool) -> Dict[str, Any]:
        row = self.store.insert(
            "org_provisioning_steps",
            {"organization_id": organization_id, "step": step, "status": "done"},
        )[0]
        PROVISIONING_STEPS.labels(kind="critical" if critical else "optional", status="done").inc()
        publish_step(row)
        logger.info("step done: %s", step, extra={"organization_id": organization_id})
        return row

    def _critical(self, organization_id: Optional[str], step: str, action: Callable[[], Dict[str, Any]], error: str):
        try:
            result = action()
            if organization_id is None:
                organization_id = result["id"]
            self._log_step(organization_id, step, critical=True)
            return result
        except StoreError as exc:
            PROVISIONING_STEPS.labels(kind="critical", status="error").inc()
            logger.error("critical step failed: %s: %s", step, exc, extra={"organization_id": organization_id})
            raise ProvisioningError(error) from exc

    def _optional_failed(self, organization_id: str, step: str, exc: Exception) -> None:
        PROVISIONING_STEPS.labels(kind="optional", status="error").inc()
        logger.warning(
            "non-critical step failed: %s: %s", step, exc, extra={"organization_id": organization_id}
        )

    # --- saga ---
    def bootstrap(self, request: BootstrapRequest, user: User) -> ProvisioningResult:
        name = request.name.strip()
        if not name:
            raise InvalidInput("Organization name is required")
        now = self.clock()

        org = self._critical(
            None,
            STEP_ORGANIZATION_CREATED,
            lambda: self.store.insert(
                "organizations",
                {
                    "name": name,
                    "slug": f"{slugify(name)}-{int(now.timestamp() * 1000)}",
                    "template": request.template,
                    "is_demo": request.is_demo,
                    "created_by": user.id,
                },
            )[0],
            "Failed to create organization",
        )
        org_id = org["id"]

        self._critical(
            org_id,
            STEP_ADMIN_ASSIGNED,
            lambda: self.store.insert(
                "organization_memberships",
                {"organization_id": org_id, "user_id": user.id, "role": "admin"},
            )[0],
            "Failed to create membership",
        )

        key = project_key(name)
        project = self._critical(
            org_id,
            STEP_PROJECT_CREATED,
            lambda: self.store.insert(
                "projects",
                {
                    "organization_id": org_id,
                    "name": "Platform" if request.template == "enterprise" else "Core",
                    "key": key,
                    "description": "Auto-created starter project for your team",
                    "ticket_counter": 0,
                },
            )[0],
            "Failed to create project",
        )

        start = now.date()
        sprint = self._critical(
            org_id,
            STEP_SPRINT_ACTIVATED,
            lambda: self.store.insert(
                "sprints",
                {
                    "organization_id": org_id,
                    "project_id": project["id"],
                    "name": "Sprint 1",
                    "status": "active",
                    "start_date": start.isoformat(),
                    "end_date": (start + timedelta(days=SPRINT_DAYS)).isoformat(),
                    "goal": "Initial sprint - get started with your first tasks",
                },
            )[0],
            "Failed to create sprint",
        )

        if request.is_demo and request.template == "startup":
            project = self._seed_demo_tickets(org_id, project, sprint, user)

        if request.invites:
            self._send_invites(org_id, name, request.invites, user)

        self._write_recommendations(org_id)

        try:
            self._log_step(org_id, STEP_SETUP_COMPLETE, critical=True)
        except StoreError as exc:
            PROVISIONING_STEPS.labels(kind="critical", status="error").inc()
            logger.error("could not record completion: %s", exc, extra={"organization_id": org_id})
            raise ProvisioningError("Failed to complete organization setup") from exc

        record_event(
            TelemetryEvent(
                name="organization.bootstrapped",
                properties={"organization_id": org_id, "template": request.template},
                actor=user.id,
            )
        )
        return ProvisioningResult(organization=org, project=project, sprint=sprint)

    def _seed_demo_tickets(
        self, org_id: str, project: Dict[str, Any], sprint: Dict[str, Any], user: User
    ) -> Dict[str, Any]:
        rows = [
            {
                **ticket,
                "labels": list(ticket["labels"]),
                "organization_id": org_id,
                "project_id": project["id"],
                "sprint_id": sprint["id"],
                "reporter_id": user.id,
                "ai_generated": True,
                "key": f"{project['key']}-{index}",
            }
            for index, ticket in enumerate(DEMO_TICKETS, start=1)
        ]
        try:
            self.store.insert("tickets", rows)
        except StoreError as exc:
            self._optional_failed(org_id, STEP_DEMO_TICKETS_CREATED, exc)
            return project

        try:
            updated = self.store.update("projects", {"ticket_counter": len(rows)}, id=project["id"])
            if updated:
                project = updated[0]
        except StoreError as exc:
            # Tickets exist; only the counter is stale.
            logger.warning("ticket counter update failed: %s", exc, extra={"organization_id": org_id})

        try:
            self._log_step(org_id, STEP_DEMO_TICKETS_CREATED, critical=False)
        except StoreError as exc:
            self._optional_failed(org_id, STEP_DEMO_TICKETS_CREATED, exc)
        return project

    def _send_invites(self, org_id: str, org_name: str, invites: List[InviteEntry], user: User) -> None:
        entries = normalize_invites(invites)
        if not entries:
            return
        rows = [
            {
                "organization_id": org_id,
                "email": entry.email,
                "role": entry.role,
                "invited_by": user.id,
                "status": "pending",
                "token": secrets.token_urlsafe(32),
            }
            for entry in entries
        ]
        try:
            inserted = self.store.insert("organization_invites", rows)
        except StoreError as exc:
            self._optional_failed(org_id, "invites", exc)
            return

        for invite in inserted:
            try:
                self.mailer(
                    InviteEmailRequest(
                        inviteId=invite["id"],
                        email=invite["email"],
                        organizationName=org_name,
                        role=invite["role"],
                        token=invite["token"],
                        inviterName=user.name or None,
                    )
                )
            except NexusError as exc:
                # The invite record stays pending; it can be re-sent later.
                logger.warning(
                    "invite email failed: %s", exc.message, extra={"organization_id": org_id, "invite_id": invite["id"]}
                )

        try:
            self._log_step(org_id, invites_step_name(len(inserted)), critical=False)
        except StoreError as exc:
            self._optional_failed(org_id, "invites", exc)

    def _write_recommendations(self, org_id: str) -> None:
        try:
            self.store.insert(
                "org_ai_recommendations",
                {"organization_id": org_id, "recommendations": list(ONBOARDING_RECOMMENDATIONS)},
            )
            self._log_step(org_id, STEP_RECOMMENDATIONS_GENERATED, critical=False)
        except StoreError as exc:
            self._optional_failed(org_id, STEP_RECOMMENDATIONS_GENERATED, exc)


def provisioning_log(organization_id: str, store: Optional[DataStore] = None) -> List[Dict[str, Any]]:
    """Step rows for one organization in insertion order."""
    return (store or get_store()).select("org_provisioning_steps", organization_id=organization_id)
