from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict

_logger = logging.getLogger("nexus.telemetry")


@dataclass
class TelemetryEvent:
    name: str
    properties: Dict[str, Any] = field(default_factory=dict)
    actor: str | None = None


def record_event(event: TelemetryEvent) -> None:
    """Emit one usage event (ai.chat, ai.triage, ai.copilot, organization.bootstrapped) on the telemetry logger."""

    _logger.info(
        "telemetry_event",
        extra={
            "telemetry_name": event.name,
            "telemetry_actor": event.actor,
            "telemetry_properties": event.properties,
        },
    )
