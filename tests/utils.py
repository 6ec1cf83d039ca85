from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Iterator, List, Optional

from src.nexus.security.auth import User, create_access_token


def auth_headers(user_id: str = "user-1", *, email: str = "ada@example.com", name: str = "Ada") -> Dict[str, str]:
    token = create_access_token(User(id=user_id, email=email, name=name))
    return {"Authorization": f"Bearer {token}"}


def sse_frame(payload: Any) -> bytes:
    if isinstance(payload, str):
        return f"data: {payload}\n\n".encode("utf-8")
    return f"data: {json.dumps(payload)}\n\n".encode("utf-8")


def content_frame(text: str) -> bytes:
    return sse_frame({"choices": [{"delta": {"content": text}}]})


def tool_frame(index: int = 0, *, name: Optional[str] = None, arguments: Optional[str] = None) -> bytes:
    function: Dict[str, Any] = {}
    if name is not None:
        function["name"] = name
    if arguments is not None:
        function["arguments"] = arguments
    return sse_frame({"choices": [{"delta": {"tool_calls": [{"index": index, "function": function}]}}]})


DONE = sse_frame("[DONE]")


class FakeGateway:
    """Stands in for AIGateway: records payloads and replays canned answers."""

    model = "test-model"

    def __init__(self, *, chunks: Iterable[bytes] = (), completion: Optional[Dict[str, Any]] = None, error=None):
        self.chunks: List[bytes] = list(chunks)
        self.completion = completion or {}
        self.error = error
        self.payloads: List[Dict[str, Any]] = []

    def open_stream(self, payload: Dict[str, Any]) -> Iterator[bytes]:
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        return iter(self.chunks)

    def complete(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        return self.completion
