from __future__ import annotations

from typing import Any, AsyncIterator, Dict, Set

import asyncio
import json

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from ...domain.models import BootstrapRequest, BootstrapResponse, STEP_SETUP_COMPLETE
from ...infrastructure.store import get_store
from ...security.auth import User, get_current_user, get_service_or_user
from ...services.errors import NotFound
from ...services.provisioning import ProvisioningOrchestrator, provisioning_log


router = APIRouter(prefix="/organizations", tags=["organizations"])

KEEPALIVE_SECONDS = 15.0


def _require_access(organization_id: str, user: User) -> None:
    store = get_store()
    if not store.select("organizations", id=organization_id):
        raise NotFound("Organization not found")
    if user.is_service:
        return
    if not store.select("organization_memberships", organization_id=organization_id, user_id=user.id):
        # Same answer as a missing organization; membership is not disclosed.
        raise NotFound("Organization not found")


@router.post("/bootstrap", response_model=BootstrapResponse, response_model_by_alias=True)
def bootstrap(req: BootstrapRequest, user: User = Depends(get_current_user)):
    """Create an organization with its starter project, sprint and invites."""
    result = ProvisioningOrchestrator().bootstrap(req, user)
    return result.to_response()


@router.get("/{organization_id}/provisioning")
def provisioning_steps(organization_id: str, user: User = Depends(get_service_or_user)) -> Dict[str, Any]:
    _require_access(organization_id, user)
    steps = provisioning_log(organization_id)
    return {
        "organizationId": organization_id,
        "steps": steps,
        "complete": any(s.get("step") == STEP_SETUP_COMPLETE for s in steps),
    }


def _frame(row: Dict[str, Any]) -> str:
    return f"data: {json.dumps(row, default=str)}\n\n"


@router.get("/{organization_id}/provisioning/stream", response_class=StreamingResponse)
async def provisioning_stream(organization_id: str, user: User = Depends(get_service_or_user)):
    """Push step rows as server-sent events until "Setup complete" is written."""
    _require_access(organization_id, user)
    store = get_store()
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def _on_insert(row: Dict[str, Any]) -> None:
        if row.get("organization_id") == organization_id:
            loop.call_soon_threadsafe(queue.put_nowait, row)

    async def event_stream() -> AsyncIterator[str]:
        seen: Set[str] = set()
        # Subscribe before reading the backlog so no row falls in between.
        subscription = store.subscribe("org_provisioning_steps", _on_insert)
        try:
            for row in provisioning_log(organization_id, store):
                seen.add(row["id"])
                yield _frame(row)
                if row.get("step") == STEP_SETUP_COMPLETE:
                    yield "data: [DONE]\n\n"
                    return
            while True:
                try:
                    row = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                if row["id"] in seen:
                    continue
                seen.add(row["id"])
                yield _frame(row)
                if row.get("step") == STEP_SETUP_COMPLETE:
                    yield "data: [DONE]\n\n"
                    return
        finally:
            subscription.close()

    headers = {"Cache-Control": "no-cache, no-transform", "Connection": "keep-alive", "X-Accel-Buffering": "no"}
    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=headers)
