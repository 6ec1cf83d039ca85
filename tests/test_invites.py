import smtplib

import pytest
from fastapi.testclient import TestClient

from src.nexus.api.main import app
from src.nexus.domain.models import InviteEmailRequest
from src.nexus.services.errors import BackendUnavailable, ServiceUnavailable
from src.nexus.services.invite_mailer import SmtpConfig, build_invite_message, send_invite_email
from .utils import auth_headers


client = TestClient(app)

INVITE = {
    "inviteId": "inv-1",
    "email": "new.hire@acme.io",
    "organizationName": "Acme <Labs>",
    "role": "manager",
    "token": "tok-123",
    "inviterName": "Ada",
}


class FakeSMTP:
    """Records the session instead of talking to a relay."""

    sessions = []
    fail_with = None

    def __init__(self, host, port, timeout=None, **kwargs):
        self.host = host
        self.port = port
        self.calls = []
        self.sent = []
        FakeSMTP.sessions.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def ehlo(self):
        self.calls.append("ehlo")

    def starttls(self, context=None):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(("login", user))

    def send_message(self, message):
        if FakeSMTP.fail_with is not None:
            raise FakeSMTP.fail_with
        self.sent.append(message)


@pytest.fixture
def smtp(monkeypatch):
    FakeSMTP.sessions = []
    FakeSMTP.fail_with = None
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    monkeypatch.setattr(smtplib, "SMTP_SSL", FakeSMTP)
    monkeypatch.setenv("NEXUS_SMTP_HOST", "smtp.acme.io")
    monkeypatch.setenv("NEXUS_SMTP_SENDER", "noreply@acme.io")
    monkeypatch.setenv("NEXUS_APP_URL", "https://app.acme.io/")
    monkeypatch.delenv("NEXUS_SMTP_USER", raising=False)
    monkeypatch.delenv("NEXUS_SMTP_PASSWORD", raising=False)
    monkeypatch.delenv("NEXUS_SMTP_USE_SSL", raising=False)
    return FakeSMTP


def test_invite_message_content(monkeypatch):
    monkeypatch.setenv("NEXUS_APP_URL", "https://app.acme.io/")
    message = build_invite_message(InviteEmailRequest.model_validate(INVITE), "noreply@acme.io")
    assert message["Subject"] == "You're invited to join Acme <Labs> on Nexus"
    assert message["To"] == "new.hire@acme.io"
    assert message["Message-ID"].endswith("@acme.io>")
    text = message.get_body(preferencelist=("plain",)).get_content()
    html = message.get_body(preferencelist=("html",)).get_content()
    assert "Ada has invited you to join Acme <Labs> on Nexus as a Manager." in text
    assert "https://app.acme.io/invite?token=tok-123" in text
    assert "Acme &lt;Labs&gt;" in html
    assert "Acme <Labs>" not in html


def test_send_uses_starttls_without_login(smtp):
    message_id = send_invite_email(InviteEmailRequest.model_validate(INVITE))
    session = smtp.sessions[0]
    assert (session.host, session.port) == ("smtp.acme.io", 587)
    assert session.calls == ["ehlo", "starttls", "ehlo"]
    assert session.sent[0]["Message-ID"] == message_id


def test_send_logs_in_when_user_configured(smtp, monkeypatch):
    monkeypatch.setenv("NEXUS_SMTP_USER", "mailer")
    monkeypatch.setenv("NEXUS_SMTP_PASSWORD", "secret")
    send_invite_email(InviteEmailRequest.model_validate(INVITE))
    assert ("login", "mailer") in smtp.sessions[0].calls


@pytest.mark.parametrize(
    "cfg",
    [
        SmtpConfig(host=None, sender="a@b.co"),
        SmtpConfig(host="smtp", sender=None),
        SmtpConfig(host="smtp", sender="a@b.co", port=0),
        SmtpConfig(host="smtp", sender="a@b.co", user="u", password=None),
    ],
)
def test_incomplete_config_is_service_unavailable(cfg):
    assert cfg.configured is False
    with pytest.raises(ServiceUnavailable):
        send_invite_email(InviteEmailRequest.model_validate(INVITE), cfg)


def test_relay_failure_is_backend_unavailable(smtp):
    smtp.fail_with = smtplib.SMTPRecipientsRefused({"new.hire@acme.io": (550, b"no such user")})
    with pytest.raises(BackendUnavailable):
        send_invite_email(InviteEmailRequest.model_validate(INVITE))


def test_invite_endpoint_with_service_key(smtp, monkeypatch):
    monkeypatch.setenv("NEXUS_SERVICE_ROLE_KEY", "svc-key")
    r = client.post("/invites/email", json=INVITE, headers={"Authorization": "Bearer svc-key"})
    assert r.status_code == 200
    data = r.json()
    assert data["success"] is True
    assert data["messageId"] == smtp.sessions[0].sent[0]["Message-ID"]


def test_invite_endpoint_with_user_token(smtp):
    r = client.post("/invites/email", json=INVITE, headers=auth_headers())
    assert r.status_code == 200


def test_invite_endpoint_requires_auth(smtp):
    r = client.post("/invites/email", json=INVITE)
    assert r.status_code == 401
    assert smtp.sessions == []


def test_invite_endpoint_not_configured(monkeypatch):
    monkeypatch.delenv("NEXUS_SMTP_HOST", raising=False)
    r = client.post("/invites/email", json=INVITE, headers=auth_headers())
    assert r.status_code == 503
    assert r.json() == {"success": False, "error": "Email service is not configured"}


def test_invite_endpoint_relay_failure(smtp):
    smtp.fail_with = OSError("connection reset")
    r = client.post("/invites/email", json=INVITE, headers=auth_headers())
    assert r.status_code == 502
    assert r.json() == {"success": False, "error": "Failed to send email"}


def test_invite_endpoint_validates_body(smtp):
    r = client.post("/invites/email", json={**INVITE, "role": "owner"}, headers=auth_headers())
    assert r.status_code == 400
    assert smtp.sessions == []
