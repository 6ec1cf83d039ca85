import copy

import pytest
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from src.nexus.domain.models import BootstrapRequest, PROVISIONING_STEPS
from src.nexus.infrastructure import store as store_module
from src.nexus.infrastructure.store import StoreError
from src.nexus.infrastructure.store_mongo import MongoDataStore
from src.nexus.security.auth import User
from src.nexus.services.provisioning import ProvisioningOrchestrator


def _matches(doc, query):
    for key, expected in query.items():
        if isinstance(expected, dict) and "$in" in expected:
            if doc.get(key) not in expected["$in"]:
                return False
        elif doc.get(key) != expected:
            return False
    return True


def _project(doc, projection):
    if projection and any(v == 1 for v in projection.values()):
        return {k: doc[k] for k, v in projection.items() if v == 1 and k in doc}
    hidden = {k for k, v in (projection or {}).items() if v == 0}
    return {k: v for k, v in doc.items() if k not in hidden}


class FakeCursor:
    def __init__(self, docs, projection):
        self._docs = docs
        self._projection = projection

    def sort(self, key, direction=1):
        ordered = sorted(self._docs, key=lambda d: d.get(key, 0), reverse=direction == -1)
        return FakeCursor(ordered, self._projection)

    def __iter__(self):
        return iter([_project(d, self._projection) for d in self._docs])


class FakeCollection:
    def __init__(self):
        self.docs = []
        self.unique = set()

    def create_index(self, keys, unique=False, sparse=False):
        if unique:
            self.unique.add(keys)

    def insert_many(self, documents, ordered=True):
        for doc in documents:
            for column in self.unique:
                if doc.get(column) is not None and any(d.get(column) == doc.get(column) for d in self.docs):
                    raise DuplicateKeyError(f"duplicate {column}")
            stored = copy.deepcopy(doc)
            stored["_id"] = object()
            self.docs.append(stored)

    def find(self, query, projection=None):
        return FakeCursor([d for d in self.docs if _matches(d, query)], projection)

    def update_many(self, query, update):
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(update["$set"])


class FakeDatabase:
    def __init__(self):
        self.collections = {}

    def __getitem__(self, table):
        return self.collections.setdefault(table, FakeCollection())


class FakeMongoClient:
    def __init__(self, available=True):
        self.available = available
        self.databases = {}

    def server_info(self):
        if not self.available:
            raise ServerSelectionTimeoutError("no servers")
        return {"version": "7.0"}

    def __getitem__(self, name):
        return self.databases.setdefault(name, FakeDatabase())


@pytest.fixture
def mongo():
    return MongoDataStore(client=FakeMongoClient())


def test_insert_select_keeps_order_and_hides_internal_fields(mongo):
    rows = mongo.insert("tickets", [{"key": "A-1"}, {"key": "A-2"}])
    mongo.insert("tickets", {"key": "A-3"})
    selected = mongo.select("tickets")
    assert [r["key"] for r in selected] == ["A-1", "A-2", "A-3"]
    assert selected[0]["id"] == rows[0]["id"]
    assert "_id" not in selected[0] and "_seq" not in selected[0]


def test_unique_constraint_becomes_store_error(mongo):
    mongo.insert("organizations", {"name": "A", "slug": "a-1"})
    with pytest.raises(StoreError):
        mongo.insert("organizations", {"name": "B", "slug": "a-1"})


def test_unknown_table_is_rejected(mongo):
    with pytest.raises(StoreError):
        mongo.insert("users", {"name": "x"})


def test_update_returns_changed_rows(mongo):
    project = mongo.insert("projects", {"name": "Core", "ticket_counter": 0})[0]
    updated = mongo.update("projects", {"ticket_counter": 4}, id=project["id"])
    assert updated[0]["ticket_counter"] == 4
    assert mongo.update("projects", {"ticket_counter": 1}, id="missing") == []
    with pytest.raises(StoreError):
        mongo.update("projects", {"ticket_counter": 1})


def test_listeners_fire_after_successful_insert(mongo):
    seen = []
    subscription = mongo.subscribe("org_provisioning_steps", seen.append)
    mongo.insert("org_provisioning_steps", {"organization_id": "o", "step": "Organization created"})
    subscription.close()
    mongo.insert("org_provisioning_steps", {"organization_id": "o", "step": "Admin role assigned"})
    assert [row["step"] for row in seen] == ["Organization created"]


def test_saga_runs_on_mongo_store(mongo):
    result = ProvisioningOrchestrator(mongo, mailer=lambda invite: "").bootstrap(
        BootstrapRequest(name="Acme"), User(id="u-1", email="a@acme.io")
    )
    steps = [r["step"] for r in mongo.select("org_provisioning_steps", organization_id=result.organization["id"])]
    assert steps == PROVISIONING_STEPS


def test_unreachable_mongo_falls_back_to_memory():
    store = MongoDataStore(client=FakeMongoClient(available=False))
    assert store.using_fallback is True
    store.insert("tickets", {"key": "A-1"})
    assert [r["key"] for r in store.select("tickets")] == ["A-1"]


def test_unreachable_mongo_is_fatal_when_required(monkeypatch):
    monkeypatch.setenv("NEXUS_STORE_REQUIRE_MONGO", "true")
    with pytest.raises(RuntimeError):
        MongoDataStore(client=FakeMongoClient(available=False))


def test_get_store_selects_mongo_impl(monkeypatch):
    created = []

    class Recorder:
        def __init__(self):
            created.append(self)

    from src.nexus.infrastructure import store_mongo

    monkeypatch.setenv("NEXUS_STORE_IMPL", "mongo")
    monkeypatch.setattr(store_mongo, "MongoDataStore", Recorder)
    store_module.reset_store()
    assert store_module.get_store() is created[0]


def test_health_reports_the_active_store(monkeypatch):
    from fastapi.testclient import TestClient

    from src.nexus.api.main import app

    client = TestClient(app)
    assert client.get("/health").json()["components"]["store"] == "in-memory"

    monkeypatch.setattr(store_module, "_store", MongoDataStore(client=FakeMongoClient()))
    assert client.get("/health").json()["components"]["store"] == "mongo"

    monkeypatch.setattr(store_module, "_store", MongoDataStore(client=FakeMongoClient(available=False)))
    assert client.get("/api/health").json()["components"]["store"] == "in-memory"
