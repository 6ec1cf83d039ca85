import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)


@pytest.fixture(autouse=True)
def _isolate_state(monkeypatch):
    """Fresh store, gateway and rate limits per test; no real backend or Redis."""
    from src.nexus.infrastructure import store
    from src.nexus.security import rate_limit
    from src.nexus.services import ai_gateway

    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("NEXUS_SERVICE_ROLE_KEY", raising=False)
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    store.reset_store()
    ai_gateway.reset_gateway()
    rate_limit.reset_rate_limits()
    yield
    store.reset_store()
    ai_gateway.reset_gateway()
