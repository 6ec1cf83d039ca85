from __future__ import annotations

"""Per-user budget for the AI endpoints (chat, triage and copilot share it)."""

from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict

import logging
import math
import os
import time

from ..services.errors import RateLimited

logger = logging.getLogger(__name__)


class RateLimitExceeded(RateLimited):
    def __init__(self, retry_after_seconds: int) -> None:
        super().__init__(retry_after_seconds=retry_after_seconds)


@dataclass
class _Window:
    count: int
    ends_at: float


def _env_positive_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("ignoring non-numeric %s=%r", name, raw)
        return default
    return value if value > 0 else default


class AIRequestBudget:
    """Fixed window of ``limit`` AI requests per user.

    Limits are read from the environment on every call so they can be tuned
    without a restart. Windows that have ended are evicted as new requests
    arrive, so memory stays proportional to recently active users.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = Lock()

    @property
    def limit(self) -> int:
        return _env_positive_int("NEXUS_AI_RATE_LIMIT", 30)

    @property
    def window_seconds(self) -> int:
        return _env_positive_int("NEXUS_AI_RATE_WINDOW_SECONDS", 60)

    def __len__(self) -> int:
        return len(self._windows)

    def consume(self, user_id: str) -> None:
        now = self._clock()
        limit = self.limit
        with self._lock:
            self._evict_expired(now)
            window = self._windows.get(user_id)
            if window is None:
                self._windows[user_id] = _Window(count=1, ends_at=now + self.window_seconds)
                return
            if window.count >= limit:
                retry_after = max(math.ceil(window.ends_at - now), 1)
                logger.info("AI budget exhausted", extra={"user_id": user_id, "retry_after": retry_after})
                raise RateLimitExceeded(retry_after)
            window.count += 1

    def _evict_expired(self, now: float) -> None:
        expired = [user for user, window in self._windows.items() if window.ends_at <= now]
        for user in expired:
            del self._windows[user]

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


_budget = AIRequestBudget()


def _rate_limiting_disabled() -> bool:
    flag = os.getenv("NEXUS_RATE_LIMIT_DISABLED")
    if flag and flag.lower() in {"1", "true", "yes", "on"}:
        return True
    return bool(os.getenv("PYTEST_CURRENT_TEST"))


def limit_ai_request(user_id: str) -> None:
    """Count one AI request for ``user_id``; raises RateLimitExceeded when over budget."""
    if _rate_limiting_disabled():
        return
    _budget.consume(user_id)


def reset_rate_limits() -> None:
    _budget.reset()
