"""Build the export document submitted to the survey store or downloaded.

The document never carries photo bytes: photos are referenced by remote URL
or by the filename they are uploaded under.
"""
import copy
import json
import re
from datetime import datetime
from typing import Sequence

from pydantic import BaseModel

from sitesurvey.schemas.survey import Photo, RoomSurveyItem
from sitesurvey.schemas.upload import PhotoUpload
from sitesurvey.services.changes import summarize_camera_changes
from sitesurvey.utils.timestamps import isoformat_utc

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/heic": "heic",
}


class ExportMetadata(BaseModel):
    survey_id: str
    map_id: str | None = None
    site_name: str


def slugify(text: str) -> str:
    return re.sub(r"\s+", "-", text).lower()


def photo_filename(date_str: str, room_name: str, label: str | None, index: int, content_type: str = "image/jpeg") -> str:
    """``{date}_{room-slug}_{label}_{index}.{ext}``; ``index`` is 0-based, the name 1-based."""
    extension = _EXTENSIONS.get(content_type, "jpg")
    return f"{date_str}_{slugify(room_name)}_{label or 'photo'}_{index + 1}.{extension}"


def _photo_label(photo: Photo) -> str:
    return photo.label.value


def _export_camera(camera) -> dict:
    new_position = camera.new_position
    return {
        "id": camera.id,
        "name": camera.name,
        "mountType": camera.mount_type,
        "originalPosition": {"latitude": camera.latitude, "longitude": camera.longitude},
        "newPosition": new_position.model_dump() if new_position else None,
        "repositioned": camera.repositioned,
        "repositionReason": camera.reposition_reason or None,
        "height": camera.height,
        "rotation": camera.rotation,
        "fieldOfView": camera.field_of_view,
        "range": camera.range,
        "tilt": camera.tilt,
    }


def _export_room(item: RoomSurveyItem, date_str: str) -> dict:
    survey = item.survey
    return {
        "floorId": item.floor_id,
        "roomName": item.room_name,
        "cameras": [_export_camera(camera) for camera in item.cameras],
        "survey": {
            "ceilingHeight": survey.ceiling_height,
            "ceilingHeightUnit": survey.ceiling_height_unit.value,
            "powerOutletLocation": survey.power_outlet_location.value if survey.power_outlet_location else None,
            "mountingSurface": survey.mounting_surface.value if survey.mounting_surface else None,
            "networkConnectivity": survey.network_connectivity.value if survey.network_connectivity else None,
            "obstructions": survey.obstructions,
            "notes": survey.notes,
            "photoCount": len(survey.photos),
            "photos": [
                {
                    "label": _photo_label(photo),
                    "timestamp": photo.timestamp,
                    "url": photo.remote_url,
                    "filename": photo.upload_filename
                    or photo_filename(date_str, item.room_name, _photo_label(photo), i, photo.content_type),
                }
                for i, photo in enumerate(survey.photos)
            ],
            "completed": survey.completed,
            "completedAt": survey.completed_at,
        },
    }


def export_survey_payload(items: Sequence[RoomSurveyItem], metadata: ExportMetadata, exported_at: datetime) -> dict:
    """The base export document, without the camera change log."""
    date_str = isoformat_utc(exported_at)[:10]
    return {
        "surveyId": metadata.survey_id,
        "mapId": metadata.map_id,
        "siteName": metadata.site_name,
        "exportedAt": isoformat_utc(exported_at),
        "summary": {
            "totalRooms": len(items),
            "completedRooms": sum(1 for item in items if item.survey.completed),
            "totalCameras": sum(len(item.cameras) for item in items),
            "repositionedCameras": sum(1 for item in items for c in item.cameras if c.repositioned),
        },
        "rooms": [_export_room(item, date_str) for item in items],
    }


def build_payload(
    items: Sequence[RoomSurveyItem],
    metadata: ExportMetadata,
    original_dataset: dict | None,
    exported_at: datetime,
) -> dict:
    payload = export_survey_payload(items, metadata, exported_at)
    payload["cameraChanges"] = summarize_camera_changes(original_dataset, items)
    return payload


def with_photo_filenames(payload: dict) -> dict:
    """Copy of ``payload`` whose photos are referenced by upload filename.

    Photos uploaded by an earlier attempt keep their remote url.
    """
    document = copy.deepcopy(payload)
    for room in document["rooms"]:
        photos = []
        for p in room["survey"]["photos"]:
            entry = {"label": p["label"], "timestamp": p["timestamp"]}
            if p.get("url"):
                entry["url"] = p["url"]
            entry["filename"] = p["filename"]
            photos.append(entry)
        room["survey"]["photos"] = photos
    return document


def collect_photo_uploads(items: Sequence[RoomSurveyItem], exported_at: datetime) -> list[PhotoUpload]:
    """Photos still held as inline data, in room order."""
    date_str = isoformat_utc(exported_at)[:10]
    uploads = []
    for item in items:
        for i, photo in enumerate(item.survey.photos):
            if photo.data_url is None:
                continue
            uploads.append(PhotoUpload(
                room_id=item.id,
                index=i,
                filename=photo_filename(date_str, item.room_name, _photo_label(photo), i, photo.content_type),
                data_url=photo.data_url,
                content_type=photo.content_type,
            ))
    return uploads


def build_updated_placements(original_dataset: dict | None, items: Sequence[RoomSurveyItem]) -> dict | None:
    """The original dataset with coordinates overwritten for repositioned cameras."""
    if not original_dataset or original_dataset.get("cameras") is None:
        return None

    updates = {}
    for item in items:
        for camera in item.cameras:
            if camera.repositioned:
                updates[camera.id] = camera

    cameras = []
    for original in original_dataset["cameras"]:
        camera = copy.deepcopy(original)
        update = updates.get(str(original.get("id")))
        if update is not None:
            camera["latitude"] = update.new_latitude
            camera["longitude"] = update.new_longitude
        cameras.append(camera)

    document = {}
    for key, value in original_dataset.items():
        document[key] = cameras if key == "cameras" else copy.deepcopy(value)
    return document


def render_export_json(payload: dict) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)


def export_download_filename(site_name: str, exported_at: datetime) -> str:
    return f"site-survey_{slugify(site_name)}_{isoformat_utc(exported_at)[:10]}.json"
