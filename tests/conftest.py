from __future__ import annotations

import anyio
import pytest
from fastapi.testclient import TestClient

from jobshadow.config import Settings
from jobshadow.main import create_app
from jobshadow.seed_data import seed_reference_data
from jobshadow.storage.memory import MemStorage
from jobshadow.storage.sql import SqlStorage

MEMORY_SQLITE = "sqlite+aiosqlite://"


def make_storage(backend: str):
    if backend == "memory":
        return MemStorage()
    return SqlStorage(MEMORY_SQLITE)


@pytest.fixture(params=["memory", "sql"])
def backend(request) -> str:
    return request.param


@pytest.fixture
def run_with_storage(backend):
    """Run `scenario(storage)` on a freshly connected, seeded store."""

    def _run(scenario):
        async def _main():
            storage = make_storage(backend)
            await storage.connect()
            try:
                await seed_reference_data(storage)
                return await scenario(storage)
            finally:
                await storage.close()

        return anyio.run(_main)

    return _run


@pytest.fixture
def client(backend):
    settings = Settings(
        STORAGE_BACKEND=backend,
        DATABASE_URL=MEMORY_SQLITE,
        SEED_SAMPLE_DATA=True,
        SUPABASE_URL="https://example.supabase.co",
        SUPABASE_ANON_KEY="anon-key",
    )
    with TestClient(create_app(settings)) as c:
        yield c


class Api:
    """Small helpers over the HTTP surface."""

    def __init__(self, client: TestClient):
        self.client = client

    def org_id(self, name: str = "SEEK") -> int:
        orgs = self.client.get("/api/organisations").json()
        return next(o["id"] for o in orgs if o["name"] == name)

    def learning_area_ids(self, *names: str) -> list[int]:
        areas = {a["name"]: a["id"] for a in self.client.get("/api/learning-areas").json()}
        return [areas[name] for name in names]

    def user(self, email: str, name: str = "Test User", organisation: str | None = "SEEK") -> dict:
        body = {"email": email, "name": name}
        if organisation:
            body["organisationId"] = self.org_id(organisation)
        r = self.client.post("/api/auth/register", json=body)
        assert r.status_code in (200, 201), r.text
        return r.json()

    def opportunity(self, creator: dict, **overrides) -> dict:
        body = {
            "title": "Platform Product Management Shadowing",
            "description": "Spend two days with the platform product team.",
            "format": "In-Person",
            "durationLimit": "2 Days",
            "organisationId": creator["organisationId"],
            "createdByUserId": creator["id"],
            "hostDetails": "Principal Product Manager, Platforms",
            "learningOutcomes": "Platform strategy",
        }
        body.update(overrides)
        r = self.client.post("/api/opportunities", json=body)
        assert r.status_code == 201, r.text
        return r.json()

    def apply(self, user: dict, opportunity: dict, message: str | None = None):
        body = {"userId": user["id"], "opportunityId": opportunity["id"]}
        if message is not None:
            body["message"] = message
        return self.client.post("/api/applications", json=body)

    def accept(self, opportunity: dict, user: dict, actor: dict | None = None):
        headers = {"X-User-Id": str(actor["id"])} if actor else {}
        return self.client.post(
            "/api/applications/accept",
            json={"opportunityId": opportunity["id"], "userId": user["id"]},
            headers=headers,
        )


@pytest.fixture
def api(client) -> Api:
    return Api(client)
