from __future__ import annotations

"""Incremental decoder for the ``text/event-stream`` bodies of the AI endpoints.

Frames are ``data: <json>`` lines; ``data: [DONE]`` ends the stream. Each JSON
payload carries ``choices[0].delta`` with an optional ``content`` string and an
optional ``tool_calls`` list of ``{index, function: {name?, arguments?}}``.

The decoder is fed raw bytes in whatever chunks the transport delivers and
produces the same events for any chunking of the same body.
"""

from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import codecs
import json
import logging

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class ToolCallFragment:
    index: int
    name: Optional[str] = None
    arguments: Optional[str] = None


@dataclass(frozen=True)
class StreamEvent:
    content: Optional[str] = None
    tool_calls: Tuple[ToolCallFragment, ...] = ()


def _fragments(raw: Any) -> Tuple[ToolCallFragment, ...]:
    if not isinstance(raw, list):
        return ()
    out: List[ToolCallFragment] = []
    for position, item in enumerate(raw):
        if not isinstance(item, dict):
            continue
        fn = item.get("function")
        if not isinstance(fn, dict):
            fn = {}
        index = item.get("index")
        name = fn.get("name")
        arguments = fn.get("arguments")
        out.append(
            ToolCallFragment(
                index=index if isinstance(index, int) else position,
                name=name if isinstance(name, str) and name else None,
                arguments=arguments if isinstance(arguments, str) else None,
            )
        )
    return tuple(out)


def event_from_payload(payload: Dict[str, Any]) -> Optional[StreamEvent]:
    choices = payload.get("choices") if isinstance(payload, dict) else None
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    content = content if isinstance(content, str) and content else None
    tool_calls = _fragments(delta.get("tool_calls"))
    if content is None and not tool_calls:
        return None
    return StreamEvent(content=content, tool_calls=tool_calls)


class SSEDecoder:
    """One decoder per HTTP response."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._held: Optional[str] = None
        self.done = False

    def feed(self, chunk: bytes) -> List[StreamEvent]:
        if self.done:
            return []
        self._buffer += self._decoder.decode(chunk)
        return self._drain()

    def close(self) -> List[StreamEvent]:
        """Flush at end of body. A frame still unparseable here is dropped."""
        if self.done:
            return []
        self._buffer += self._decoder.decode(b"", final=True)
        events: List[StreamEvent] = []
        while True:
            if self._held is not None:
                self._drop_held()
            events.extend(self._drain())
            if self._held is None:
                break
        tail, self._buffer = self._buffer, ""
        if tail and not self.done:
            # Last line without a trailing newline.
            result = self._handle_line(tail, final=True)
            if isinstance(result, StreamEvent):
                events.append(result)
        self.done = True
        return events

    def _drop_held(self) -> None:
        line, _, rest = self._buffer.partition("\n")
        logger.warning("dropping unparseable stream frame", extra={"frame": line[:200]})
        self._buffer = rest
        self._held = None

    def _drain(self) -> List[StreamEvent]:
        events: List[StreamEvent] = []
        while not self.done:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline]
            retrying = self._held is not None and self._held == line
            result = self._handle_line(line, final=False)
            if result is _INCOMPLETE:
                if retrying:
                    # Second failure with newer bytes behind it: give up on this frame.
                    self._drop_held()
                    continue
                self._held = line
                break
            self._held = None
            self._buffer = self._buffer[newline + 1 :]
            if isinstance(result, StreamEvent):
                events.append(result)
        return events

    def _handle_line(self, line: str, *, final: bool):
        if line.endswith("\r"):
            line = line[:-1]
        if not line.strip() or line.startswith(":"):
            return None
        if not line.startswith(DATA_PREFIX):
            return None
        payload = line[len(DATA_PREFIX) :].strip()
        if payload == DONE_SENTINEL:
            self.done = True
            self._buffer = ""
            return None
        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError:
            if final:
                logger.debug("stream ended mid-frame")
                return None
            return _INCOMPLETE
        return event_from_payload(parsed)


_INCOMPLETE = object()


async def iter_events(chunks: AsyncIterator[bytes]) -> AsyncIterator[StreamEvent]:
    """Decode an async byte stream lazily, stopping at the end marker."""
    decoder = SSEDecoder()
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
        if decoder.done:
            return
    for event in decoder.close():
        yield event
