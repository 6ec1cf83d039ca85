from __future__ import annotations

"""Client-side controller for one streaming AI chat conversation.

A session owns its message list and at most one in-flight turn. A second send
while a turn is running is rejected with ``ChatSessionBusyError``; cancel
first. Cancellation stops applying events and clears the loading flag at
once, but keeps whatever content already arrived and never raises a notice.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional

import asyncio
import itertools
import logging

import httpx

from ..domain.chat_models import ActionType
from ..domain.tool_models import InvalidToolCall, ToolArgs, parse_tool_arguments
from .config import ClientConfig, build_http_client
from .notices import CHAT_ERROR, NoticeHandler, SessionBusyError, log_notice, notice_for_status
from .streaming import StreamEvent, iter_events
from .tool_calls import ToolCall, ToolCallAccumulator

logger = logging.getLogger(__name__)

CHAT_PATH = "/ai/chat"


class ChatSessionBusyError(SessionBusyError):
    pass


@dataclass
class ChatMessage:
    id: int
    role: str
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    action: Optional[str] = None
    tool_call: Optional[ToolCall] = None
    tool_args: Optional[ToolArgs] = None


@dataclass
class _Turn:
    tools: ToolCallAccumulator = field(default_factory=ToolCallAccumulator)
    assistant: Optional[ChatMessage] = None
    cancelled: bool = False


class ChatSession:
    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        action: Optional[ActionType] = None,
        context: Optional[Dict[str, Any]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        on_notice: Optional[NoticeHandler] = None,
    ) -> None:
        self.config = config or ClientConfig.from_env()
        self.action = action
        self.context = context
        self.messages: List[ChatMessage] = []
        self.is_loading = False
        self._http = http_client
        self._on_notice = on_notice or log_notice
        self._ids = itertools.count(1)
        self._turn: Optional[_Turn] = None
        self._task: Optional[asyncio.Task] = None

    # --- public operations ---
    def start_message(self, text: str) -> asyncio.Task:
        """Append the user turn and start streaming the reply in a task.

        Must be called from a running event loop.
        """
        if self._turn is not None and not self._turn.cancelled:
            raise ChatSessionBusyError("A message is already being answered")

        action = (self.action or ActionType.GENERAL_CHAT).value
        user = ChatMessage(id=next(self._ids), role="user", content=text, action=action)
        self.messages.append(user)
        body: Dict[str, Any] = {
            "messages": [{"role": m.role, "content": m.content} for m in self.messages],
            "action": action,
        }
        if self.context:
            body["context"] = self.context

        turn = _Turn()
        self._turn = turn
        self.is_loading = True
        task = asyncio.get_running_loop().create_task(self._run_turn(turn, body))
        task.add_done_callback(lambda _t: self._finish(turn))
        self._task = task
        return task

    async def send_message(self, text: str) -> Optional[ChatMessage]:
        """Send ``text`` and wait for the reply; returns the assistant message, if any."""
        task = self.start_message(text)
        turn = self._turn
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            self.cancel_request()
            raise
        return turn.assistant if turn else None

    def cancel_request(self) -> None:
        turn, task = self._turn, self._task
        if turn is None or turn.cancelled:
            return
        turn.cancelled = True
        self.is_loading = False
        if task is not None and not task.done():
            task.cancel()
        logger.debug("chat request cancelled")

    def clear_messages(self) -> None:
        self.messages = []

    def add_system_message(self, text: str) -> ChatMessage:
        message = ChatMessage(id=next(self._ids), role="assistant", content=text)
        self.messages.append(message)
        return message

    # --- turn execution ---
    def _finish(self, turn: _Turn) -> None:
        if self._turn is turn:
            self._turn = None
            self._task = None
            self.is_loading = False

    async def _run_turn(self, turn: _Turn, body: Dict[str, Any]) -> None:
        client = self._http or build_http_client(self.config)
        try:
            async with client.stream(
                "POST", self.config.url(CHAT_PATH), json=body, headers=self.config.headers()
            ) as resp:
                if not resp.is_success:
                    await resp.aread()
                    logger.warning("chat request failed with status %s", resp.status_code)
                    self._notify(turn, notice_for_status(resp.status_code, CHAT_ERROR))
                    return
                async for event in iter_events(resp.aiter_bytes()):
                    if turn.cancelled:
                        return
                    self._apply(turn, event)
            if not turn.cancelled:
                final = turn.tools.finalize(0)
                if final is not None:
                    self._attach_tool_call(turn, final)
        except httpx.HTTPError as exc:
            logger.warning("chat transport error: %s", exc)
            self._notify(turn, CHAT_ERROR)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("chat turn failed")
            self._notify(turn, CHAT_ERROR)
        finally:
            if self._http is None:
                await client.aclose()

    def _notify(self, turn: _Turn, notice) -> None:
        if not turn.cancelled:
            self._on_notice(notice)

    def _assistant_for(self, turn: _Turn) -> ChatMessage:
        if turn.assistant is None or not self.messages or self.messages[-1] is not turn.assistant:
            turn.assistant = ChatMessage(id=next(self._ids), role="assistant", content="")
            self.messages.append(turn.assistant)
        return turn.assistant

    def _apply(self, turn: _Turn, event: StreamEvent) -> None:
        if event.content:
            self._assistant_for(turn).content += event.content
        for fragment in event.tool_calls:
            call = turn.tools.add(fragment)
            if call is not None and fragment.index == 0:
                self._attach_tool_call(turn, call)

    def _attach_tool_call(self, turn: _Turn, call: ToolCall) -> None:
        existing = turn.assistant.tool_call if turn.assistant is not None else None
        if existing is not None:
            if existing != call:
                logger.warning("ignoring second tool call payload for %s", call.name)
            return
        try:
            args = parse_tool_arguments(call.name, call.arguments)
        except InvalidToolCall as exc:
            logger.info("tool call not attached: %s", exc)
            return
        message = turn.assistant if turn.assistant is not None else self._assistant_for(turn)
        message.tool_call = call
        message.tool_args = args
