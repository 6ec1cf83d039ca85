from __future__ import annotations

"""HTTP client for the OpenAI-compatible model backend.

Two call shapes are supported:

- ``open_stream``: POST with ``stream: true``; returns an iterator over the raw
  body bytes so the API layer can relay them untouched.
- ``complete``: single non-streaming POST returning the decoded JSON body.

Backend failures are translated into the service error taxonomy: 429 becomes
``RateLimited``, 402 ``QuotaExhausted``, everything else (including transport
errors) ``BackendUnavailable``. The backend status and body excerpt are only
logged.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

import logging
import os

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..observability.metrics import AI_GATEWAY_ERRORS
from .errors import BackendUnavailable, NexusError, QuotaExhausted, RateLimited, ServiceUnavailable


LOG = logging.getLogger("nexus.llm")

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"


@dataclass
class GatewayConfig:
    api_key: Optional[str]
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    connect_timeout: float = 5.0
    read_timeout: float = 120.0

    @staticmethod
    def from_env() -> "GatewayConfig":
        return GatewayConfig(
            api_key=(os.getenv("NEXUS_AI_API_KEY") or "").strip() or None,
            base_url=(os.getenv("NEXUS_AI_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
            model=os.getenv("NEXUS_AI_MODEL") or DEFAULT_MODEL,
            connect_timeout=float(os.getenv("NEXUS_AI_CONNECT_TIMEOUT", "5")),
            read_timeout=float(os.getenv("NEXUS_AI_READ_TIMEOUT", "120")),
        )


def _build_session() -> requests.Session:
    session = requests.Session()
    # Only gateway hiccups are retried; 429/402 must reach the caller as-is.
    retry = Retry(
        total=2,
        connect=2,
        read=0,
        backoff_factor=0.5,
        status_forcelist=(502, 503, 504),
        allowed_methods=frozenset(["POST"]),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def _fail(reason: str, exc: NexusError) -> NexusError:
    AI_GATEWAY_ERRORS.labels(reason=reason).inc()
    return exc


class AIGateway:
    def __init__(self, config: Optional[GatewayConfig] = None, session: Optional[requests.Session] = None) -> None:
        self.config = config or GatewayConfig.from_env()
        self._session = session or _build_session()

    @property
    def model(self) -> str:
        return self.config.model

    def _headers(self) -> Dict[str, str]:
        if not self.config.api_key:
            LOG.error("ai_gateway_not_configured", extra={"missing": "NEXUS_AI_API_KEY"})
            raise _fail("not_configured", ServiceUnavailable())
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def _post(self, payload: Dict[str, Any], *, stream: bool) -> requests.Response:
        headers = self._headers()
        url = f"{self.config.base_url}/chat/completions"
        LOG.debug("ai_gateway_request", extra={"model": payload.get("model"), "stream": stream})
        try:
            resp = self._session.post(
                url,
                json=payload,
                headers=headers,
                timeout=(self.config.connect_timeout, self.config.read_timeout),
                stream=stream,
            )
        except requests.exceptions.RequestException as exc:
            LOG.error("ai_gateway_transport_error", extra={"err": str(exc)})
            raise _fail("transport", BackendUnavailable()) from exc
        self._raise_for_status(resp)
        return resp

    @staticmethod
    def _raise_for_status(resp: requests.Response) -> None:
        code = resp.status_code
        if 200 <= code < 300:
            return
        excerpt = (resp.text or "")[:500]
        resp.close()
        LOG.warning("ai_gateway_error_status", extra={"status": code, "body": excerpt})
        if code == 429:
            raise _fail("rate_limited", RateLimited())
        if code == 402:
            raise _fail("quota_exhausted", QuotaExhausted())
        raise _fail("backend_error", BackendUnavailable())

    def open_stream(self, payload: Dict[str, Any]) -> Iterator[bytes]:
        """Start a streaming completion.

        The request is sent (and its status checked) before this returns, so
        error statuses surface as exceptions rather than as a broken stream.
        """
        resp = self._post({**payload, "stream": True}, stream=True)
        return _relay(resp)

    def complete(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        resp = self._post({**payload, "stream": False}, stream=False)
        try:
            return resp.json()
        except ValueError as exc:
            LOG.error("ai_gateway_invalid_json", extra={"err": str(exc)})
            raise _fail("invalid_body", BackendUnavailable()) from exc
        finally:
            resp.close()


def _relay(resp: requests.Response) -> Iterator[bytes]:
    try:
        for chunk in resp.iter_content(chunk_size=None):
            if chunk:
                yield chunk
    except requests.exceptions.RequestException as exc:
        # Headers are already sent; the caller sees a truncated stream.
        AI_GATEWAY_ERRORS.labels(reason="stream_interrupted").inc()
        LOG.warning("ai_gateway_stream_interrupted", extra={"err": str(exc)})
    finally:
        resp.close()


_GATEWAY: Optional[AIGateway] = None


def get_gateway() -> AIGateway:
    """Process-wide gateway built from the environment on first use."""
    global _GATEWAY
    if _GATEWAY is None:
        _GATEWAY = AIGateway()
    return _GATEWAY


def reset_gateway() -> None:
    global _GATEWAY
    _GATEWAY = None
