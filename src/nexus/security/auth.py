from __future__ import annotations

"""Bearer-token authentication.

Authentication is an opaque capability for the rest of the service: a
dependency resolves the caller to a :class:`User` or fails with 401.

- JWT encode/decode helpers (HS256)
- ``get_current_user`` for user-only endpoints
- ``get_service_or_user`` for endpoints that also accept the privileged
  service credential (server-to-server calls)

Env vars:
- JWT_SECRET (required in prod; default for dev)
- JWT_EXPIRES_MIN (default 60)
- NEXUS_SERVICE_ROLE_KEY (optional privileged credential)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import hmac
import logging
import os

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from ..services.errors import Unauthorized


logger = logging.getLogger(__name__)
bearer_scheme = HTTPBearer(auto_error=False)

SERVICE_PRINCIPAL_ID = "service"


def _get_env(name: str, default: Optional[str] = None) -> str:
    val = os.getenv(name, default)
    if val is None:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return val


@dataclass
class JwtConfig:
    secret: str
    algorithm: str = "HS256"
    expires_min: int = 60

    @staticmethod
    def from_env() -> "JwtConfig":
        secret = _get_env("JWT_SECRET", "dev-secret-change-me")
        expires = int(os.getenv("JWT_EXPIRES_MIN", "60"))
        return JwtConfig(secret=secret, expires_min=expires)


class User(BaseModel):
    id: str
    email: str
    name: str = ""
    is_service: bool = False


def create_access_token(user: User, cfg: Optional[JwtConfig] = None) -> str:
    cfg = cfg or JwtConfig.from_env()
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=cfg.expires_min)
    payload = {
        "sub": user.id,
        "email": user.email,
        "name": user.name,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, cfg.secret, algorithm=cfg.algorithm)


def decode_token(token: str, cfg: Optional[JwtConfig] = None) -> User:
    cfg = cfg or JwtConfig.from_env()
    try:
        data = jwt.decode(token, cfg.secret, algorithms=[cfg.algorithm])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.PyJWTError:
        raise Unauthorized()
    sub = data.get("sub")
    if not sub:
        raise Unauthorized()
    return User(id=str(sub), email=str(data.get("email", "")), name=str(data.get("name", "")))


def _bearer_token(creds: Optional[HTTPAuthorizationCredentials]) -> str:
    if creds is None or not creds.scheme or creds.scheme.lower() != "bearer" or not creds.credentials:
        raise Unauthorized()
    return creds.credentials


def get_current_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> User:
    """Resolve the authenticated end user from the bearer token."""
    return decode_token(_bearer_token(creds))


def _is_service_key(token: str) -> bool:
    service_key = os.getenv("NEXUS_SERVICE_ROLE_KEY")
    if not service_key:
        return False
    return hmac.compare_digest(token.encode("utf-8"), service_key.encode("utf-8"))


def get_service_or_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> User:
    """Accept either the privileged service credential or an end-user token."""
    token = _bearer_token(creds)
    if _is_service_key(token):
        return User(id=SERVICE_PRINCIPAL_ID, email="", name="Nexus", is_service=True)
    return decode_token(token)
