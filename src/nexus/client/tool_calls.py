from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import json
import logging

from .streaming import ToolCallFragment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolCall:
    name: str
    arguments: Dict[str, Any]


@dataclass
class _Slot:
    name: Optional[str] = None
    parts: List[str] = field(default_factory=list)
    exposed: Optional[Dict[str, Any]] = None


def _parse_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


class ToolCallAccumulator:
    """Merges streamed tool-call fragments for one assistant turn.

    Fragments are keyed by index. The first non-empty name wins; argument text
    is concatenated strictly in arrival order. A call is only handed out once
    the concatenated text parses as a JSON object.
    """

    def __init__(self) -> None:
        self._slots: Dict[int, _Slot] = {}

    def add(self, fragment: ToolCallFragment) -> Optional[ToolCall]:
        slot = self._slots.setdefault(fragment.index, _Slot())
        if fragment.name:
            if slot.name is None:
                slot.name = fragment.name
            elif fragment.name != slot.name:
                logger.debug("ignoring tool name change %s -> %s", slot.name, fragment.name)
        if fragment.arguments:
            slot.parts.append(fragment.arguments)
        if slot.name is None or not slot.parts:
            return None

        parsed = _parse_object("".join(slot.parts))
        if parsed is None or parsed == slot.exposed:
            return None
        slot.exposed = parsed
        return ToolCall(slot.name, parsed)

    def current(self, index: int = 0) -> Optional[ToolCall]:
        slot = self._slots.get(index)
        if slot is None or slot.name is None or slot.exposed is None:
            return None
        return ToolCall(slot.name, slot.exposed)

    def arguments_text(self, index: int = 0) -> str:
        slot = self._slots.get(index)
        return "".join(slot.parts) if slot else ""

    def finalize(self, index: int = 0) -> Optional[ToolCall]:
        """Resolve the call at stream end; ``None`` means the turn is content-only."""
        slot = self._slots.get(index)
        if slot is None or slot.name is None:
            return None
        text = "".join(slot.parts)
        if not text.strip():
            return ToolCall(slot.name, {})
        parsed = _parse_object(text)
        if parsed is None:
            logger.info("tool call %s never produced valid arguments", slot.name)
            return None
        return ToolCall(slot.name, parsed)

    def reset(self) -> None:
        self._slots.clear()
