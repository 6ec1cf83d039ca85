from __future__ import annotations

"""Organization invitation emails over SMTP.

Env vars:
- NEXUS_SMTP_HOST, NEXUS_SMTP_PORT (default 587)
- NEXUS_SMTP_USER, NEXUS_SMTP_PASSWORD (login is skipped when no user is set)
- NEXUS_SMTP_SENDER (defaults to the user)
- NEXUS_SMTP_USE_TLS (default 1), NEXUS_SMTP_USE_SSL (default 0)
- NEXUS_SMTP_TIMEOUT (default 10)
- NEXUS_APP_URL (base of the invite link)
"""

from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid
from html import escape
from typing import Optional

import logging
import os
import smtplib
import ssl

from ..domain.models import InviteEmailRequest
from .errors import BackendUnavailable, ServiceUnavailable


logger = logging.getLogger(__name__)

DEFAULT_APP_URL = "http://localhost:3000"

ROLE_DESCRIPTIONS = {
    "admin": "Full access to organization settings, members, and all projects.",
    "manager": "Can manage projects, sprints, and assign tickets.",
    "member": "Can view and work on assigned projects and tickets.",
}


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def app_url() -> str:
    return (os.getenv("NEXUS_APP_URL") or DEFAULT_APP_URL).rstrip("/")


@dataclass
class SmtpConfig:
    host: Optional[str]
    port: int = 587
    user: Optional[str] = None
    password: Optional[str] = None
    sender: Optional[str] = None
    use_tls: bool = True
    use_ssl: bool = False
    timeout: int = 10

    @staticmethod
    def from_env() -> "SmtpConfig":
        user = os.getenv("NEXUS_SMTP_USER") or None
        try:
            port = int(os.getenv("NEXUS_SMTP_PORT", "587"))
        except ValueError:
            port = 0
        return SmtpConfig(
            host=os.getenv("NEXUS_SMTP_HOST") or None,
            port=port,
            user=user,
            password=os.getenv("NEXUS_SMTP_PASSWORD") or None,
            sender=os.getenv("NEXUS_SMTP_SENDER") or user,
            use_tls=_flag("NEXUS_SMTP_USE_TLS", "1"),
            use_ssl=_flag("NEXUS_SMTP_USE_SSL", "0"),
            timeout=int(os.getenv("NEXUS_SMTP_TIMEOUT", "10")),
        )

    @property
    def configured(self) -> bool:
        if not self.host or not self.sender or self.port <= 0:
            return False
        # A login user without a password is a half-finished setup.
        if self.user and not self.password:
            return False
        return True


def invite_link(token: str) -> str:
    return f"{app_url()}/invite?token={token}"


def build_invite_message(invite: InviteEmailRequest, sender: str) -> EmailMessage:
    link = invite_link(invite.token)
    role_label = invite.role.capitalize()
    role_text = ROLE_DESCRIPTIONS.get(invite.role, "")
    who = f"{invite.inviter_name} has invited you" if invite.inviter_name else "You've been invited"

    message = EmailMessage()
    message["Subject"] = f"You're invited to join {invite.organization_name} on Nexus"
    message["From"] = sender
    message["To"] = invite.email
    message["Message-ID"] = make_msgid(domain=sender.split("@")[-1] if "@" in sender else None)
    message.set_content(
        f"{who} to join {invite.organization_name} on Nexus as a {role_label}.\n\n"
        f"Your role: {role_label}\n{role_text}\n\n"
        f"Accept the invitation: {link}\n\n"
        f"This invitation was sent to {invite.email}. "
        "If you didn't expect it, you can safely ignore this email.\n"
    )
    message.add_alternative(
        "<html><body>"
        f"<h1>You're Invited!</h1>"
        f"<p>{escape(who)} to join <strong>{escape(invite.organization_name)}</strong> "
        f"on Nexus as a <strong>{escape(role_label)}</strong>.</p>"
        f"<p><a href=\"{escape(link)}\">Accept Invitation</a></p>"
        f"<p>Your role: {escape(role_label)}<br>{escape(role_text)}</p>"
        f"<p>If the button doesn't work, copy this link into your browser:<br>{escape(link)}</p>"
        f"<p>This invitation was sent to {escape(invite.email)}.</p>"
        "</body></html>",
        subtype="html",
    )
    return message


def send_invite_email(invite: InviteEmailRequest, cfg: Optional[SmtpConfig] = None) -> str:
    """Send one invitation and return its Message-ID.

    Raises ServiceUnavailable when SMTP is not configured and
    BackendUnavailable when the relay rejects or cannot be reached.
    """
    cfg = cfg or SmtpConfig.from_env()
    if not cfg.configured:
        logger.warning("SMTP not fully configured; cannot send invite email")
        raise ServiceUnavailable("Email service is not configured")

    sender = cfg.sender or ""
    message = build_invite_message(invite, sender)
    try:
        context = ssl.create_default_context()
        if cfg.use_ssl:
            with smtplib.SMTP_SSL(cfg.host, cfg.port, timeout=cfg.timeout, context=context) as client:
                if cfg.user:
                    client.login(cfg.user, cfg.password)
                client.send_message(message)
        else:
            with smtplib.SMTP(cfg.host, cfg.port, timeout=cfg.timeout) as client:
                client.ehlo()
                if cfg.use_tls:
                    client.starttls(context=context)
                    client.ehlo()
                if cfg.user:
                    client.login(cfg.user, cfg.password)
                client.send_message(message)
    except (smtplib.SMTPException, OSError) as exc:
        logger.exception("Failed to send invite email to %s", invite.email)
        raise BackendUnavailable("Failed to send email") from exc
    logger.info("Sent invite email to %s via %s:%s", invite.email, cfg.host, cfg.port)
    return str(message["Message-ID"])
