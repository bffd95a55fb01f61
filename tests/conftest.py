import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

import planit.store.mongo as mongo_store
from planit.main import app
from planit.shared.security_config import limiter
from planit.shared.utils import settings

PASSWORD = "secret1"


class MockMongoClient(AsyncMongoMockClient):
    def close(self):
        pass


class RecordingBucket:
    """Stands in for the storage bucket and remembers every call."""

    name = "planit-test-bucket"

    def __init__(self, fail_on_put: bool = False):
        self.fail_on_put = fail_on_put
        self.calls = []
        self.objects = {}

    async def put(self, key, data, content_type):
        self.calls.append(("put", key))
        if self.fail_on_put:
            raise RuntimeError("bucket unavailable")
        self.objects[key] = (data, content_type)

    async def make_public(self, key):
        self.calls.append(("make_public", key))

    def public_url(self, key):
        return f"https://storage.googleapis.com/{self.name}/{key}"


@pytest.fixture(params=["sql", "mongo"])
def client(request, tmp_path, monkeypatch):
    backend = request.param
    monkeypatch.setattr(settings, "STORE_BACKEND", backend)
    monkeypatch.setattr(settings, "FIREBASE_STORAGE_BUCKET", None)
    if backend == "sql":
        monkeypatch.setattr(settings, "DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'planit.db'}")
    else:
        monkeypatch.setattr(mongo_store, "get_db_client", lambda url: MockMongoClient())
    limiter.reset()

    with TestClient(app) as c:
        yield c


@pytest.fixture
def bucket(client):
    recording = RecordingBucket()
    client.app.state.assets = recording
    return recording


def signup(client, email="a@x.com", password=PASSWORD, role="USER", **extra):
    body = {
        "firstName": "Ada",
        "lastName": "Obi",
        "email": email,
        "password": password,
        "role": role,
        **extra,
    }
    return client.post("/users/signup", json=body)


def login(client, email="a@x.com", password=PASSWORD):
    return client.post("/users/login", json={"email": email, "password": password})


def register(client, email="a@x.com", role="USER"):
    """Sign up and log in, returning (user, auth headers)."""
    user = signup(client, email=email, role=role).json()["data"]
    token = login(client, email=email).json()["data"]["token"]
    return user, {"Authorization": f"Bearer {token}"}


def onboard_planner(client, headers, user_id, **fields):
    body = {"userId": user_id, "companyName": "Bright Events", "businessAddress": "12 Marina Rd", **fields}
    return client.post("/planners/onboard", json=body, headers=headers)


def onboard_vendor(client, headers, user_id, **fields):
    body = {"userId": user_id, "companyName": "Sound Co", "businessAddress": "4 Allen Ave", **fields}
    return client.post("/vendors/onboard", json=body, headers=headers)
