"""Audit log of camera repositions against the imported placements."""
import math
from typing import Sequence

from sitesurvey.schemas.survey import RoomSurveyItem

EARTH_RADIUS_METERS = 6371000


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters between two lat/lng points."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _round_tenth(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def _original_positions(original_dataset: dict | None) -> dict[str, dict]:
    if not original_dataset:
        return {}
    positions = {}
    for camera in original_dataset.get("cameras") or []:
        if camera.get("latitude") is None or camera.get("longitude") is None:
            continue
        positions[str(camera.get("id"))] = {
            "latitude": camera["latitude"],
            "longitude": camera["longitude"],
        }
    return positions


def build_camera_changes(original_dataset: dict | None, items: Sequence[RoomSurveyItem]) -> list[dict]:
    """One entry per repositioned camera, in room order.

    ``original`` and ``distanceMeters`` are null when the camera is missing from
    the original dataset.
    """
    originals = _original_positions(original_dataset)
    changes = []
    for item in items:
        for camera in item.cameras:
            if not camera.repositioned:
                continue
            original = originals.get(camera.id)
            distance = None
            if original is not None:
                distance = _round_tenth(haversine_distance(
                    original["latitude"], original["longitude"],
                    camera.new_latitude, camera.new_longitude,
                ))
            changes.append({
                "id": camera.id,
                "name": camera.name or camera.id,
                "room": item.room_name,
                "reason": camera.reposition_reason or None,
                "original": original,
                "new": {"latitude": camera.new_latitude, "longitude": camera.new_longitude},
                "distanceMeters": distance,
            })
    return changes


def summarize_camera_changes(original_dataset: dict | None, items: Sequence[RoomSurveyItem]) -> dict:
    total = sum(len(item.cameras) for item in items)
    repositioned = sum(1 for item in items for camera in item.cameras if camera.repositioned)
    return {
        "totalCameras": total,
        "repositioned": repositioned,
        "unchanged": total - repositioned,
        "changes": build_camera_changes(original_dataset, items),
    }
