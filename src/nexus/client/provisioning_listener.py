from __future__ import annotations

"""Follows an organization's provisioning step log as rows are inserted.

State is the set of step names seen, so rows arriving out of order or twice
change nothing. Completion is signalled only by the "Setup complete" step.
"""

from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import logging
import threading

from ..domain.models import (
    PROVISIONING_STEPS,
    STEP_DEMO_TICKETS_CREATED,
    STEP_INVITES_SUFFIX,
    STEP_SETUP_COMPLETE,
)
from ..infrastructure.store import DataStore, Subscription, get_store

logger = logging.getLogger(__name__)

STEP_TABLE = "org_provisioning_steps"


class ProvisioningListener:
    def __init__(
        self,
        store: Optional[DataStore] = None,
        *,
        organization_id: Optional[str] = None,
        on_step: Optional[Callable[[Dict[str, Any]], None]] = None,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> None:
        self.organization_id = organization_id
        self._on_step = on_step
        self._on_complete = on_complete
        self._steps: Set[str] = set()
        self._lock = threading.Lock()
        self._completed = threading.Event()
        self._subscription: Optional[Subscription] = (store or get_store()).subscribe(STEP_TABLE, self._on_insert)

    def _on_insert(self, row: Dict[str, Any]) -> None:
        if self.organization_id is not None and row.get("organization_id") != self.organization_id:
            return
        self.apply(row)

    def apply(self, row: Dict[str, Any]) -> bool:
        """Record one step row. Returns False when it was already known."""
        step = row.get("step")
        if not isinstance(step, str) or row.get("status", "done") != "done":
            return False
        with self._lock:
            if step in self._steps:
                return False
            self._steps.add(step)
            finished = step == STEP_SETUP_COMPLETE and not self._completed.is_set()
            if finished:
                self._completed.set()
        logger.debug("provisioning step observed: %s", step)
        if self._on_step is not None:
            self._on_step(row)
        if finished and self._on_complete is not None:
            self._on_complete()
        return True

    @property
    def steps(self) -> frozenset:
        with self._lock:
            return frozenset(self._steps)

    @property
    def is_complete(self) -> bool:
        return self._completed.is_set()

    def is_step_done(self, name: str) -> bool:
        with self._lock:
            if name == STEP_INVITES_SUFFIX:
                return any(s.endswith(STEP_INVITES_SUFFIX) for s in self._steps)
            return name in self._steps

    def checklist(self) -> List[Tuple[str, bool]]:
        """Display rows in saga order; the invite step only appears once seen."""
        with self._lock:
            seen = set(self._steps)
        invites = sorted(s for s in seen if s.endswith(STEP_INVITES_SUFFIX))
        rows: List[Tuple[str, bool]] = []
        for name in PROVISIONING_STEPS:
            rows.append((name, name in seen))
            if name == STEP_DEMO_TICKETS_CREATED:
                rows.extend((s, True) for s in invites)
        return rows

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._completed.wait(timeout)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
