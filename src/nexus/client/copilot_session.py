from __future__ import annotations

from typing import Any, Dict, Optional, Union

import asyncio
import logging

import httpx

from ..domain.chat_models import CopilotAction, CopilotData
from .config import ClientConfig, build_http_client
from .notices import COPILOT_ERROR, NoticeHandler, SessionBusyError, log_notice, notice_for_status
from .streaming import iter_events

logger = logging.getLogger(__name__)

COPILOT_PATH = "/ai/copilot"


class CopilotSession:
    """Streams one copilot answer at a time into ``response``."""

    def __init__(
        self,
        organization_id: str,
        config: Optional[ClientConfig] = None,
        *,
        project_id: Optional[str] = None,
        sprint_id: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        on_notice: Optional[NoticeHandler] = None,
    ) -> None:
        self.organization_id = organization_id
        self.project_id = project_id
        self.sprint_id = sprint_id
        self.config = config or ClientConfig.from_env()
        self.response = ""
        self.is_loading = False
        self._http = http_client
        self._on_notice = on_notice or log_notice
        self._task: Optional[asyncio.Task] = None
        self._cancelled = False

    async def run_action(
        self, action: Union[CopilotAction, str], data: Optional[Union[CopilotData, Dict[str, Any]]] = None
    ) -> Optional[str]:
        """Return the full answer, or ``None`` on failure or cancellation."""
        if self._task is not None and not self._task.done():
            raise SessionBusyError("A copilot action is already running")
        if isinstance(data, CopilotData):
            data = data.model_dump(by_alias=True, exclude_none=True)
        body: Dict[str, Any] = {
            "action": CopilotAction(action).value,
            "organizationId": self.organization_id,
            "projectId": self.project_id,
            "sprintId": self.sprint_id,
            "data": data or {},
        }
        self.response = ""
        self.is_loading = True
        self._cancelled = False
        task = asyncio.get_running_loop().create_task(self._stream(body))
        self._task = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            self.cancel()
            raise
        finally:
            if self._task is task:
                self._task = None
                self.is_loading = False
        if task.cancelled():
            return None
        return task.result()

    def cancel(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        self._cancelled = True
        self.is_loading = False
        task.cancel()

    def clear(self) -> None:
        self.response = ""

    async def _stream(self, body: Dict[str, Any]) -> Optional[str]:
        client = self._http or build_http_client(self.config)
        try:
            async with client.stream(
                "POST", self.config.url(COPILOT_PATH), json=body, headers=self.config.headers()
            ) as resp:
                if not resp.is_success:
                    await resp.aread()
                    logger.warning("copilot request failed with status %s", resp.status_code)
                    self._on_notice(notice_for_status(resp.status_code, COPILOT_ERROR))
                    return None
                async for event in iter_events(resp.aiter_bytes()):
                    if self._cancelled:
                        return None
                    if event.content:
                        self.response += event.content
            return self.response
        except httpx.HTTPError as exc:
            logger.warning("copilot transport error: %s", exc)
            self._on_notice(COPILOT_ERROR)
            return None
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("copilot request failed")
            if not self._cancelled:
                self._on_notice(COPILOT_ERROR)
            return None
        finally:
            if self._http is None:
                await client.aclose()
