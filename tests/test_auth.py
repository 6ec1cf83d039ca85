import jwt
import pytest
from fastapi.testclient import TestClient

from src.nexus.api.main import app
from src.nexus.security.auth import JwtConfig, User, create_access_token, decode_token
from src.nexus.services.errors import Unauthorized
from .utils import auth_headers


client = TestClient(app)


def test_token_round_trip():
    user = decode_token(create_access_token(User(id="u-7", email="lin@acme.io", name="Lin")))
    assert (user.id, user.email, user.name) == ("u-7", "lin@acme.io", "Lin")
    assert user.is_service is False


def test_expired_token_is_rejected():
    cfg = JwtConfig(secret="test-secret", expires_min=-1)
    token = create_access_token(User(id="u-1", email="a@b.co"), cfg)
    with pytest.raises(Unauthorized) as exc:
        decode_token(token, cfg)
    assert exc.value.message == "Token expired"


def test_token_signed_with_other_secret_is_rejected():
    token = create_access_token(User(id="u-1", email="a@b.co"), JwtConfig(secret="other"))
    with pytest.raises(Unauthorized):
        decode_token(token)


def test_token_without_subject_is_rejected():
    token = jwt.encode({"email": "a@b.co"}, "test-secret", algorithm="HS256")
    with pytest.raises(Unauthorized):
        decode_token(token)


def test_service_key_only_accepted_where_allowed(monkeypatch):
    monkeypatch.setenv("NEXUS_SERVICE_ROLE_KEY", "svc-key")
    service = {"Authorization": "Bearer svc-key"}
    # Provisioning log accepts the service credential.
    assert client.get("/organizations/none/provisioning", headers=service).status_code == 404
    # AI endpoints are user-only.
    r = client.post("/ai/chat", json={"messages": [{"role": "user", "content": "hi"}]}, headers=service)
    assert r.status_code == 401


def test_non_bearer_scheme_is_rejected():
    token = auth_headers()["Authorization"].split(" ", 1)[1]
    r = client.get("/organizations/none/provisioning", headers={"Authorization": f"Basic {token}"})
    assert r.status_code == 401
    assert r.json() == {"success": False, "error": "Unauthorized"}
