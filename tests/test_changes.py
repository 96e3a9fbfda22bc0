import pytest

from sitesurvey.schemas.camera import CameraDataset
from sitesurvey.services.camera_data import build_survey_items, parse_camera_data
from sitesurvey.services.changes import build_camera_changes, haversine_distance, summarize_camera_changes
from sitesurvey.services.session_store import SessionStore


@pytest.fixture
def store(camera_json):
    parsed = parse_camera_data(CameraDataset.model_validate(camera_json).cameras)
    return SessionStore(build_survey_items(parsed))


def test_haversine_one_degree_of_longitude_at_equator():
    assert haversine_distance(0, 0, 0, 1) == pytest.approx(111195, abs=1)


def test_haversine_short_hop():
    # 0.0001 degrees each way at 50.85N
    assert haversine_distance(50.8532, 4.3542, 50.8533, 4.3543) == pytest.approx(13.15, abs=0.01)


def test_haversine_same_point_is_zero():
    assert haversine_distance(50.0, 4.0, 50.0, 4.0) == 0


def test_no_changes_when_nothing_moved(store, camera_json):
    summary = summarize_camera_changes(camera_json, store.items)
    assert summary == {"totalCameras": 4, "repositioned": 0, "unchanged": 4, "changes": []}


def test_change_entry_for_repositioned_camera(store, camera_json):
    store.reposition_camera("A__Lobby", "c1", 50.8542, 4.3542, "Pillar")
    changes = build_camera_changes(camera_json, store.items)

    assert changes == [{
        "id": "c1",
        "name": "Entrance",
        "room": "Lobby",
        "reason": "Pillar",
        "original": {"latitude": 50.8532, "longitude": 4.3542},
        "new": {"latitude": 50.8542, "longitude": 4.3542},
        "distanceMeters": 111.2,
    }]


def test_changes_follow_room_order(store, camera_json):
    store.reposition_camera("B__Office", "c4", 50.0, 4.0)
    store.reposition_camera("A__Lobby", "c2", 50.0, 4.0)

    summary = summarize_camera_changes(camera_json, store.items)
    assert [c["id"] for c in summary["changes"]] == ["c2", "c4"]
    assert summary["repositioned"] == 2
    assert summary["unchanged"] == 2


def test_camera_missing_from_original_has_no_distance(store):
    store.reposition_camera("A__Hall", "c3", 1.0, 1.0)
    change = build_camera_changes({"cameras": []}, store.items)[0]
    assert change["original"] is None
    assert change["distanceMeters"] is None


def test_reset_camera_drops_out_of_log(store, camera_json):
    store.reposition_camera("A__Hall", "c3", 1.0, 1.0)
    store.reset_camera("A__Hall", "c3")
    assert build_camera_changes(camera_json, store.items) == []
