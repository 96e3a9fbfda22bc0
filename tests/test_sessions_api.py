import asyncio

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from conftest import FakeRemote, make_camera_json
from sitesurvey.dependencies import get_session_manager, get_sync_coordinator
from sitesurvey.main import app
from sitesurvey.services.sessions import SessionManager
from sitesurvey.services.storage import SurveyStorage
from sitesurvey.services.sync import SyncCoordinator

DESTINATION = {"projectCode": "P-100", "projectName": "Head Office"}


@pytest.fixture
def manager():
    return SessionManager(SurveyStorage(), autosave_delay=0.05)


@pytest.fixture
def remote():
    return FakeRemote()


@pytest_asyncio.fixture
async def client(manager, remote):
    coordinator = SyncCoordinator(remote, manager.storage)
    app.dependency_overrides[get_session_manager] = lambda: manager
    app.dependency_overrides[get_sync_coordinator] = lambda: coordinator
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


async def _create(client, **overrides) -> str:
    body = {
        "siteName": "Head Office",
        "mapId": "map-001",
        "cameraJson": make_camera_json(),
        "destination": DESTINATION,
        **overrides,
    }
    response = await client.post("/api/v1/sessions", json=body)
    assert response.status_code == 201
    return response.json()["data"]["survey_id"]


@pytest.mark.asyncio
async def test_create_session(client):
    response = await client.post("/api/v1/sessions", json={
        "siteName": "Head Office",
        "cameraJson": make_camera_json(),
        "destination": DESTINATION,
    })

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "success"
    data = body["data"]
    assert data["survey_id"].startswith("survey_P-100_")
    assert data["total_rooms"] == 3
    assert data["total_cameras"] == 4
    assert data["progress_percent"] == 0
    assert data["save_status"] == "saved"
    assert data["upload_status"]["state"] == "idle"


@pytest.mark.asyncio
async def test_create_session_invalid_dataset(client):
    response = await client.post("/api/v1/sessions", json={
        "siteName": "Head Office",
        "cameraJson": {"cameras": [{"id": "c1", "room": "Lobby"}]},
    })
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_session_is_404(client):
    response = await client.get("/api/v1/sessions/survey_missing")
    assert response.status_code == 404
    assert response.json()["detail"] == "Survey not found"


@pytest.mark.asyncio
async def test_list_rooms(client):
    survey_id = await _create(client)
    response = await client.get(f"/api/v1/sessions/{survey_id}/rooms")

    rooms = response.json()["data"]
    assert [room["id"] for room in rooms] == ["A__Lobby", "A__Hall", "B__Office"]
    assert rooms[0]["floorId"] == "A"
    assert len(rooms[0]["cameras"]) == 2


@pytest.mark.asyncio
async def test_update_room_fields(client):
    survey_id = await _create(client)
    response = await client.patch(f"/api/v1/sessions/{survey_id}/rooms/A__Lobby", json={
        "ceilingHeight": "3.4",
        "mountingSurface": "drop-ceiling",
        "powerOutletLocation": "",
    })
    assert response.status_code == 200
    assert response.json()["data"]["result"] == "applied"

    room = (await client.get(f"/api/v1/sessions/{survey_id}/rooms/A__Lobby")).json()["data"]
    assert room["survey"]["ceilingHeight"] == "3.4"
    assert room["survey"]["mountingSurface"] == "drop-ceiling"
    assert room["survey"]["powerOutletLocation"] is None


@pytest.mark.asyncio
async def test_numeric_ceiling_height_is_accepted(client):
    survey_id = await _create(client)
    response = await client.patch(f"/api/v1/sessions/{survey_id}/rooms/A__Lobby", json={"ceilingHeight": 3})
    assert response.json()["data"]["result"] == "applied"

    room = (await client.get(f"/api/v1/sessions/{survey_id}/rooms/A__Lobby")).json()["data"]
    assert room["survey"]["ceilingHeight"] == "3"

    response = await client.patch(f"/api/v1/sessions/{survey_id}/rooms/A__Lobby", json={"ceilingHeight": True})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_update_unknown_room_is_tolerated(client):
    survey_id = await _create(client)
    response = await client.patch(f"/api/v1/sessions/{survey_id}/rooms/Z__Nowhere", json={"notes": "x"})

    assert response.status_code == 200
    assert response.json()["data"]["result"] == "no_op_unknown_id"


@pytest.mark.asyncio
async def test_invalid_ceiling_height_is_422(client):
    survey_id = await _create(client)
    response = await client.patch(f"/api/v1/sessions/{survey_id}/rooms/A__Lobby", json={"ceilingHeight": "high"})

    assert response.status_code == 422
    assert response.json()["status"] == "error"


@pytest.mark.asyncio
async def test_completion_drives_progress_and_next_room(client):
    survey_id = await _create(client)
    response = await client.post(f"/api/v1/sessions/{survey_id}/rooms/A__Lobby/complete", json={"completed": True})
    assert response.json()["data"]["completed"] is True
    assert response.json()["data"]["completed_at"].endswith("Z")

    progress = (await client.get(f"/api/v1/sessions/{survey_id}/progress")).json()["data"]
    assert progress["completed"] == 1
    assert progress["total"] == 3
    assert progress["percent"] == 33
    assert progress["incomplete_rooms"] == ["A__Hall", "B__Office"]
    assert progress["floors"][0] == {"floor_id": "A", "name": "Floor 1", "completed": 1, "total": 2}

    next_room = (await client.get(f"/api/v1/sessions/{survey_id}/rooms/A__Lobby/next")).json()["data"]
    assert next_room == {"next_room_id": "A__Hall", "all_complete": False}


@pytest.mark.asyncio
async def test_completion_toggles_without_body(client):
    survey_id = await _create(client)
    url = f"/api/v1/sessions/{survey_id}/rooms/A__Hall/complete"

    assert (await client.post(url)).json()["data"]["completed"] is True
    assert (await client.post(url)).json()["data"]["completed"] is False


@pytest.mark.asyncio
async def test_completion_policy_rejects_incomplete_room(remote):
    strict = SessionManager(SurveyStorage(), autosave_delay=0.05, require_complete_fields=True)
    coordinator = SyncCoordinator(remote, strict.storage)
    app.dependency_overrides[get_session_manager] = lambda: strict
    app.dependency_overrides[get_sync_coordinator] = lambda: coordinator
    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            survey_id = await _create(client)
            response = await client.post(
                f"/api/v1/sessions/{survey_id}/rooms/A__Lobby/complete", json={"completed": True},
            )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 422
    body = response.json()
    assert body["status"] == "error"
    assert body["data"]["missing_fields"] == [
        "ceiling_height", "power_outlet_location", "mounting_surface", "network_connectivity",
    ]


@pytest.mark.asyncio
async def test_photo_upload_and_removal(client):
    survey_id = await _create(client)
    url = f"/api/v1/sessions/{survey_id}/rooms/A__Lobby/photos"

    response = await client.post(
        url,
        files={"file": ("mount.jpg", b"\xff\xd8\xff\xe0fake", "image/jpeg")},
        data={"label": "Camera mount location"},
    )
    assert response.status_code == 201
    assert response.json()["data"] == {"result": "applied", "photo_count": 1}

    room = (await client.get(f"/api/v1/sessions/{survey_id}/rooms/A__Lobby")).json()["data"]
    photo = room["survey"]["photos"][0]
    assert photo["label"] == "Camera mount location"
    assert photo["dataUrl"].startswith("data:image/jpeg;base64,")

    response = await client.delete(f"{url}/0")
    assert response.json()["data"]["result"] == "applied"
    response = await client.delete(f"{url}/0")
    assert response.json()["data"]["result"] == "no_op_unknown_id"


@pytest.mark.asyncio
async def test_photo_upload_rejects_non_images(client):
    survey_id = await _create(client)
    response = await client.post(
        f"/api/v1/sessions/{survey_id}/rooms/A__Lobby/photos",
        files={"file": ("notes.txt", b"hello", "text/plain")},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_reposition_camera_shows_in_changes_and_placements(client):
    survey_id = await _create(client)
    response = await client.post(
        f"/api/v1/sessions/{survey_id}/rooms/A__Lobby/cameras/c1/reposition",
        json={"latitude": 50.8542, "longitude": 4.3542, "reason": "Pillar"},
    )
    assert response.json()["data"]["result"] == "applied"

    changes = (await client.get(f"/api/v1/sessions/{survey_id}/changes")).json()["data"]
    assert changes["repositioned"] == 1
    assert changes["unchanged"] == 3
    assert changes["changes"][0]["distanceMeters"] == 111.2

    placements = (await client.get(f"/api/v1/sessions/{survey_id}/placements")).json()["data"]
    assert [c["id"] for c in placements["cameras"]] == ["c1", "c2", "c3", "c4"]
    assert placements["cameras"][0]["latitude"] == 50.8542

    await client.delete(f"/api/v1/sessions/{survey_id}/rooms/A__Lobby/cameras/c1/reposition")
    changes = (await client.get(f"/api/v1/sessions/{survey_id}/changes")).json()["data"]
    assert changes["repositioned"] == 0


@pytest.mark.asyncio
async def test_camera_update_requires_coordinates(client):
    survey_id = await _create(client)
    response = await client.patch(
        f"/api/v1/sessions/{survey_id}/rooms/A__Lobby/cameras/c1", json={"repositioned": True},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_ceiling_default(client):
    survey_id = await _create(client)
    await client.patch(f"/api/v1/sessions/{survey_id}/rooms/A__Lobby", json={"ceilingHeight": "3"})

    response = await client.get(f"/api/v1/sessions/{survey_id}/rooms/A__Hall/ceiling-default")
    assert response.json()["data"] == {"height": "3", "unit": "meters"}


@pytest.mark.asyncio
async def test_export_download(client):
    survey_id = await _create(client)
    response = await client.get(f"/api/v1/sessions/{survey_id}/export")

    assert response.status_code == 200
    assert "site-survey_head-office_" in response.headers["content-disposition"]
    document = response.json()
    assert document["surveyId"] == survey_id
    assert document["siteName"] == "Head Office"
    assert document["summary"]["totalRooms"] == 3
    assert document["cameraChanges"]["totalCameras"] == 4


@pytest.mark.asyncio
async def test_submit_uploads_survey(client, remote):
    survey_id = await _create(client)
    await client.post(
        f"/api/v1/sessions/{survey_id}/rooms/B__Office/photos",
        files={"file": ("desk.png", b"\x89PNG", "image/png")},
        data={"label": "Network point"},
    )

    response = await client.post(f"/api/v1/sessions/{survey_id}/submit")
    assert response.status_code == 200
    assert response.json()["data"]["state"] == "done"
    assert [step for step, _ in remote.calls] == ["survey", "photo"]

    status = (await client.get(f"/api/v1/sessions/{survey_id}/upload-status")).json()["data"]
    assert status["state"] == "done"


@pytest.mark.asyncio
async def test_submit_offline_queues(client, remote):
    survey_id = await _create(client)
    response = await client.post(f"/api/v1/sessions/{survey_id}/submit", json={"online": False})

    data = response.json()["data"]
    assert data["state"] == "queued"
    assert data["pending_upload_id"].startswith("upload_")
    assert remote.calls == []
    await client.delete(f"/api/v1/uploads/pending/{data['pending_upload_id']}")


@pytest.mark.asyncio
async def test_submit_without_destination_is_400(client):
    survey_id = await _create(client, destination=None)
    response = await client.post(f"/api/v1/sessions/{survey_id}/submit")

    assert response.status_code == 400
    assert response.json()["status"] == "error"


@pytest.mark.asyncio
async def test_session_restored_from_storage(client, manager):
    survey_id = await _create(client)
    await client.patch(f"/api/v1/sessions/{survey_id}/rooms/A__Hall", json={"notes": "Exposed cabling"})
    saved = (await client.post(f"/api/v1/sessions/{survey_id}/save")).json()["data"]
    assert saved["save_status"] == "saved"

    fresh = SessionManager(manager.storage)
    app.dependency_overrides[get_session_manager] = lambda: fresh

    room = (await client.get(f"/api/v1/sessions/{survey_id}/rooms/A__Hall")).json()["data"]
    assert room["survey"]["notes"] == "Exposed cabling"
    summary = (await client.get(f"/api/v1/sessions/{survey_id}")).json()["data"]
    assert summary["last_saved"] == saved["last_saved"]


@pytest.mark.asyncio
async def test_discard_session(client):
    survey_id = await _create(client)

    response = await client.delete(f"/api/v1/sessions/{survey_id}")
    assert response.status_code == 200
    assert (await client.get(f"/api/v1/sessions/{survey_id}")).status_code == 404
    assert (await client.delete(f"/api/v1/sessions/{survey_id}")).status_code == 404


@pytest.mark.asyncio
async def test_resolve_floors(client):
    survey_id = await _create(client)
    response = await client.post(f"/api/v1/sessions/{survey_id}/floors/resolve", json={
        "floors": [{"id": "B", "name": "Upstairs"}, {"id": "ground", "name": "Ground"}],
    })

    matches = response.json()["data"]
    assert matches[0]["floor_id"] == "A"
    assert matches[0]["match"]["strategy"] == "first_floor"
    assert matches[0]["match"]["degraded"] is True
    assert matches[1]["match"]["floor"]["id"] == "B"
    assert matches[1]["match"]["strategy"] == "exact_id"


class SlowSaveStorage(SurveyStorage):
    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.release.set()

    async def save_progress(self, survey_id, state):
        self.started.set()
        await self.release.wait()
        return await super().save_progress(survey_id, state)


@pytest.mark.asyncio
async def test_discard_during_autosave_leaves_nothing_stored():
    storage = SlowSaveStorage()
    manager = SessionManager(storage, autosave_delay=0.01)
    session = await manager.create("Head Office", make_camera_json())
    storage.started.clear()
    storage.release.clear()

    session.autosaver.schedule()
    await asyncio.wait_for(storage.started.wait(), timeout=1)
    discarding = asyncio.create_task(manager.discard(session.survey_id))
    await asyncio.sleep(0.05)
    storage.release.set()

    assert await asyncio.wait_for(discarding, timeout=1) is True
    assert await storage.load_progress(session.survey_id) is None
    assert await manager.get(session.survey_id) is None
