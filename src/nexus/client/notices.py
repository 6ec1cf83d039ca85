from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Literal

import logging

logger = logging.getLogger(__name__)

NoticeKind = Literal["rate_limited", "quota_exhausted", "error"]


@dataclass(frozen=True)
class Notice:
    """A user-facing failure message. Cancellation never produces one."""

    kind: NoticeKind
    title: str
    description: str


RATE_LIMITED = Notice("rate_limited", "Rate Limited", "Too many requests. Please wait a moment and try again.")
QUOTA_EXHAUSTED = Notice("quota_exhausted", "Credits Exhausted", "AI credits have been used up. Please add more credits.")
CHAT_ERROR = Notice("error", "AI Error", "Failed to get AI response. Please try again.")
COPILOT_ERROR = Notice("error", "Copilot Error", "Failed to generate insights. Please try again.")
TRIAGE_ERROR = Notice("error", "Triage Failed", "Failed to analyze ticket. Please try again.")

NoticeHandler = Callable[[Notice], None]


def notice_for_status(status_code: int, generic: Notice = CHAT_ERROR) -> Notice:
    if status_code == 429:
        return RATE_LIMITED
    if status_code == 402:
        return QUOTA_EXHAUSTED
    return generic


def log_notice(notice: Notice) -> None:
    logger.warning("%s: %s", notice.title, notice.description)


class SessionBusyError(RuntimeError):
    """A request is already in flight for this session."""
