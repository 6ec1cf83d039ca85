from __future__ import annotations

"""Redis fan-out of provisioning step rows.

Every row written to ``org_provisioning_steps`` is published as JSON on
``nexus.events.provisioning.step`` when ``REDIS_URL`` is set. Publishing never
raises: the step log in the store is the record, this is only a notification.
"""

from typing import Any, Dict, Optional

import json
import logging
import os

import redis

logger = logging.getLogger(__name__)

STEP_CHANNEL = "nexus.events.provisioning.step"
STEP_FIELDS = ("id", "organization_id", "step", "status", "created_at")


def step_message(row: Dict[str, Any]) -> str:
    return json.dumps({field: row.get(field) for field in STEP_FIELDS}, default=str)


class StepPublisher:
    def __init__(self, url: str) -> None:
        self.url = url
        self._client: Optional[redis.Redis] = None
        self._connect()

    def _connect(self) -> None:
        try:
            client = redis.Redis.from_url(self.url, socket_timeout=0.5)
            client.ping()
        except Exception as exc:
            logger.debug("Redis connect failed: %s", exc)
            self._client = None
            return
        self._client = client

    @property
    def connected(self) -> bool:
        return self._client is not None

    def publish_step(self, row: Dict[str, Any]) -> bool:
        """Publish one step row; reconnects lazily after a failure."""
        if self._client is None:
            self._connect()
        if self._client is None:
            return False
        try:
            self._client.publish(STEP_CHANNEL, step_message(row))
        except Exception as exc:
            logger.warning(
                "step event not published: %s",
                exc,
                extra={"organization_id": row.get("organization_id"), "step": row.get("step")},
            )
            self._client = None
            return False
        return True


_publisher: Optional[StepPublisher] = None


def get_step_publisher() -> Optional[StepPublisher]:
    global _publisher
    if _publisher is not None:
        return _publisher
    url = os.getenv("REDIS_URL")
    if not url:
        return None
    _publisher = StepPublisher(url)
    return _publisher


def publish_step(row: Dict[str, Any]) -> bool:
    publisher = get_step_publisher()
    if publisher is None:
        return False
    return publisher.publish_step(row)
