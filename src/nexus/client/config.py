from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

import os

import httpx


@dataclass
class ClientConfig:
    """Where the client sessions find the Nexus API and how they authenticate."""

    base_url: str = "http://localhost:8000"
    token: Optional[str] = None
    timeout: float = 120.0

    @staticmethod
    def from_env() -> "ClientConfig":
        return ClientConfig(
            base_url=(os.getenv("NEXUS_API_URL") or "http://localhost:8000").rstrip("/"),
            token=os.getenv("NEXUS_API_TOKEN") or None,
            timeout=float(os.getenv("NEXUS_API_TIMEOUT", "120")),
        )

    def headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"


def build_http_client(config: ClientConfig) -> httpx.AsyncClient:
    # Long read timeout: a streamed answer can stay open for minutes.
    return httpx.AsyncClient(timeout=httpx.Timeout(config.timeout, connect=10.0))
