from __future__ import annotations

from typing import Any, Dict, Optional, Union

import logging

import httpx
from pydantic import ValidationError

from ..domain.triage_models import TriageRequest, TriageResult
from .config import ClientConfig, build_http_client
from .notices import TRIAGE_ERROR, NoticeHandler, log_notice, notice_for_status

logger = logging.getLogger(__name__)

TRIAGE_PATH = "/ai/triage"


class TriageClient:
    """Requests a triage recommendation and remembers the last one."""

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        on_notice: Optional[NoticeHandler] = None,
    ) -> None:
        self.config = config or ClientConfig.from_env()
        self._http = http_client
        self._on_notice = on_notice or log_notice
        self.is_triaging = False
        self.last_triage: Optional[TriageResult] = None
        self.last_message: Optional[str] = None

    async def triage_ticket(self, request: Union[TriageRequest, Dict[str, Any]]) -> Optional[TriageResult]:
        if isinstance(request, TriageRequest):
            body = request.model_dump(by_alias=True, exclude_none=True)
        else:
            body = dict(request)
        self.is_triaging = True
        self.last_message = None
        client = self._http or build_http_client(self.config)
        try:
            resp = await client.post(self.config.url(TRIAGE_PATH), json=body, headers=self.config.headers())
            if not resp.is_success:
                logger.warning("triage request failed with status %s", resp.status_code)
                self._on_notice(notice_for_status(resp.status_code, TRIAGE_ERROR))
                return None
            data = resp.json()
            if data.get("success") and data.get("triage"):
                result = TriageResult.model_validate(data["triage"])
                self.last_triage = result
                return result
            # Backend answered in prose instead of the forced tool call.
            self.last_message = data.get("message")
            return None
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            logger.warning("triage failed: %s", exc)
            self._on_notice(TRIAGE_ERROR)
            return None
        finally:
            self.is_triaging = False
            if self._http is None:
                await client.aclose()

    def clear_triage(self) -> None:
        self.last_triage = None
