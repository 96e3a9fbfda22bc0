import os
import tempfile

import pytest

_test_dir = tempfile.mkdtemp(prefix="sitesurvey-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_test_dir}/test.sqlite3"
os.environ["DATA_DIR"] = _test_dir
os.environ["AUTOSAVE_DELAY_SECONDS"] = "0.05"
os.environ["SURVEY_API_URL"] = "http://survey-api.test"


def make_camera_json() -> dict:
    """Two floors: Lobby (2 cameras) and Hall on A, Office on B."""
    return {
        "mapId": "map-001",
        "version": 3,
        "cameras": [
            {"id": "c1", "name": "Entrance", "room": "Lobby", "floorId": "A",
             "latitude": 50.8532, "longitude": 4.3542, "mountType": "wall", "height": 2.5},
            {"id": "c2", "name": "Reception", "room": "Lobby", "floorId": "A",
             "latitude": 50.8534, "longitude": 4.3541},
            {"id": "c3", "name": "Corridor", "room": "Hall", "floorId": "A",
             "latitude": 50.8536, "longitude": 4.3545},
            {"id": "c4", "name": "Desk", "room": "Office", "floorId": "B",
             "latitude": 50.8538, "longitude": 4.3547, "vendorTag": "x-17"},
        ],
    }


class FakeRemote:
    """In-memory survey store recording every call in order."""

    def __init__(self, fail_on: str | None = None, error: Exception | None = None):
        self.calls: list[tuple[str, str]] = []
        self.keys: list[str] = []
        self.fail_on = fail_on
        self.error = error

    def _record(self, step: str, name: str, key: str) -> None:
        if step == self.fail_on:
            raise self.error
        self.calls.append((step, name))
        self.keys.append(key)

    async def store_survey(self, destination, payload, idempotency_key):
        self._record("survey", payload["surveyId"], idempotency_key)
        return {"success": True}

    async def store_placements(self, destination, placements, idempotency_key):
        self._record("placements", destination.project_code, idempotency_key)
        return {"success": True}

    async def store_photo(self, destination, data_url, filename, idempotency_key):
        self._record("photo", filename, idempotency_key)
        return {"url": f"https://store.test/{filename}"}


@pytest.fixture
def camera_json():
    return make_camera_json()


@pytest.fixture(autouse=True, scope="session")
def setup_test_db():
    import asyncio

    from sitesurvey.config import settings
    settings.api_key = ""

    from sitesurvey.database import create_tables, engine

    async def _setup():
        await create_tables()
        # connections are bound to this loop, each test runs its own
        await engine.dispose()

    asyncio.run(_setup())
