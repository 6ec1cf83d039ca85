import importlib
import json
import sys
import types

from src.nexus.domain.models import BootstrapRequest, PROVISIONING_STEPS
from src.nexus.infrastructure.store import InMemoryDataStore
from src.nexus.security.auth import User
from src.nexus.services import provisioning

MODULE = "src.nexus.infrastructure.events"


def _reload_events(monkeypatch, *, url=None, redis_module=None):
    monkeypatch.delenv("REDIS_URL", raising=False)
    if url is not None:
        monkeypatch.setenv("REDIS_URL", url)
    if redis_module is None:
        redis_module = types.SimpleNamespace(Redis=types.SimpleNamespace(from_url=lambda *args, **kwargs: None))
    monkeypatch.setitem(sys.modules, "redis", redis_module)
    monkeypatch.delitem(sys.modules, MODULE, raising=False)
    return importlib.import_module(MODULE)


def test_publish_step_without_url_is_a_no_op(monkeypatch):
    module = _reload_events(monkeypatch)
    assert module.get_step_publisher() is None
    assert module.publish_step({"step": "Organization created"}) is False


class FakeRedisClient:
    attempt = 0
    published = []
    publish_should_fail = False

    def ping(self):
        if FakeRedisClient.attempt == 0:
            FakeRedisClient.attempt += 1
            raise Exception("connect failed")

    def publish(self, channel, payload):
        if FakeRedisClient.publish_should_fail:
            FakeRedisClient.publish_should_fail = False
            raise Exception("publish failed")
        FakeRedisClient.published.append((channel, payload))


def test_step_publisher_reconnects_and_survives_publish_failure(monkeypatch):
    FakeRedisClient.attempt = 0
    FakeRedisClient.published = []
    FakeRedisClient.publish_should_fail = False

    def from_url(url, socket_timeout=0.5):
        return FakeRedisClient()

    redis_module = types.SimpleNamespace(Redis=types.SimpleNamespace(from_url=staticmethod(from_url)))

    module = _reload_events(monkeypatch, url="redis://localhost", redis_module=redis_module)
    publisher = module.get_step_publisher()
    assert publisher is not None
    assert publisher.connected is False  # first ping failed

    row = {"id": "s1", "organization_id": "o1", "step": "Organization created", "status": "done", "extra": "x"}
    assert module.publish_step(row) is True
    channel, payload = FakeRedisClient.published[-1]
    assert channel == "nexus.events.provisioning.step"
    assert json.loads(payload) == {
        "id": "s1",
        "organization_id": "o1",
        "step": "Organization created",
        "status": "done",
        "created_at": None,
    }

    FakeRedisClient.publish_should_fail = True
    assert module.publish_step({"step": "Setup complete"}) is False
    assert publisher.connected is False
    assert module.publish_step({"step": "Setup complete"}) is True
    assert module.get_step_publisher() is publisher


def test_bootstrap_publishes_every_step_in_order(monkeypatch):
    published = []
    monkeypatch.setattr(provisioning, "publish_step", published.append)
    store = InMemoryDataStore()
    provisioning.ProvisioningOrchestrator(store, mailer=lambda invite: "").bootstrap(
        BootstrapRequest(name="Acme"), User(id="u-1", email="a@acme.io")
    )
    assert [row["step"] for row in published] == PROVISIONING_STEPS
    assert all(row["organization_id"] == published[0]["organization_id"] for row in published)
