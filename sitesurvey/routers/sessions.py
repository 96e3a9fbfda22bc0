import base64
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from sitesurvey.dependencies import get_session_manager, get_sync_coordinator
from sitesurvey.schemas.session import (
    CameraUpdate,
    CompletionUpdate,
    RepositionRequest,
    RoomUpdate,
    SessionCreate,
    SubmitRequest,
)
from sitesurvey.schemas.survey import Photo, PhotoLabel
from sitesurvey.services.export import export_download_filename, render_export_json
from sitesurvey.services.floor_match import MapFloor, resolve_floor
from sitesurvey.services.progress import (
    completed_count,
    floor_ceiling_default,
    floor_progress,
    next_incomplete_room,
    progress_percent,
)
from sitesurvey.services.session_store import UpdateResult
from sitesurvey.services.sessions import SessionManager, SurveySession
from sitesurvey.services.sync import SyncCoordinator
from sitesurvey.utils.exceptions import AppException
from sitesurvey.utils.response import success_response, update_response
from sitesurvey.utils.timestamps import isoformat_utc, utc_now

router = APIRouter(prefix="/sessions", tags=["sessions"])


class FloorResolveRequest(BaseModel):
    floors: list[MapFloor]


async def _get_session(manager: SessionManager, survey_id: str) -> SurveySession:
    session = await manager.get(survey_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Survey not found")
    return session


def _apply(operation, *args) -> dict:
    try:
        result: UpdateResult = operation(*args)
    except ValueError as e:
        raise AppException(str(e), status_code=422)
    return update_response(result)


def _session_summary(session: SurveySession) -> dict:
    items = session.items
    return {
        "survey_id": session.survey_id,
        "site_name": session.site_name,
        "map_id": session.map_id,
        "destination": session.destination.model_dump() if session.destination else None,
        "created_at": session.created_at,
        "total_rooms": len(items),
        "total_cameras": sum(len(item.cameras) for item in items),
        "completed_rooms": completed_count(items),
        "progress_percent": progress_percent(items),
        "save_status": session.autosaver.status.value,
        "last_saved": session.autosaver.last_saved,
        "upload_status": session.upload_status.model_dump(mode="json"),
    }


def _room_data(session: SurveySession, room_id: str) -> dict:
    item = session.store.get(room_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return item.model_dump(mode="json", by_alias=True)


@router.post("", status_code=201)
async def create_session(payload: SessionCreate, manager: SessionManager = Depends(get_session_manager)):
    session = await manager.create(
        site_name=payload.site_name,
        camera_json=payload.camera_json,
        map_id=payload.map_id,
        destination=payload.destination,
    )
    return success_response(data=_session_summary(session))


@router.get("/{survey_id}")
async def get_session(survey_id: str, manager: SessionManager = Depends(get_session_manager)):
    session = await _get_session(manager, survey_id)
    return success_response(data=_session_summary(session))


@router.delete("/{survey_id}")
async def discard_session(survey_id: str, manager: SessionManager = Depends(get_session_manager)):
    if not await manager.discard(survey_id):
        raise HTTPException(status_code=404, detail="Survey not found")
    return success_response(message="Survey discarded")


@router.post("/{survey_id}/save")
async def save_session(survey_id: str, manager: SessionManager = Depends(get_session_manager)):
    session = await _get_session(manager, survey_id)
    status = await session.autosaver.flush()
    return success_response(data={"save_status": status.value, "last_saved": session.autosaver.last_saved})


@router.get("/{survey_id}/rooms")
async def list_rooms(survey_id: str, manager: SessionManager = Depends(get_session_manager)):
    session = await _get_session(manager, survey_id)
    return success_response(data=[item.model_dump(mode="json", by_alias=True) for item in session.items])


@router.get("/{survey_id}/rooms/{room_id}")
async def get_room(survey_id: str, room_id: str, manager: SessionManager = Depends(get_session_manager)):
    session = await _get_session(manager, survey_id)
    return success_response(data=_room_data(session, room_id))


@router.patch("/{survey_id}/rooms/{room_id}")
async def update_room(
    survey_id: str,
    room_id: str,
    payload: RoomUpdate,
    manager: SessionManager = Depends(get_session_manager),
):
    session = await _get_session(manager, survey_id)
    return _apply(session.store.update_room, room_id, payload.model_dump(exclude_unset=True))


@router.post("/{survey_id}/rooms/{room_id}/complete")
async def complete_room(
    survey_id: str,
    room_id: str,
    payload: CompletionUpdate | None = None,
    manager: SessionManager = Depends(get_session_manager),
):
    session = await _get_session(manager, survey_id)
    if payload is None or payload.completed is None:
        result = session.store.toggle_completed(room_id)
    else:
        result = session.store.set_completed(room_id, payload.completed)
    item = session.store.get(room_id)
    return update_response(
        result,
        completed=item.survey.completed if item else None,
        completed_at=item.survey.completed_at if item else None,
    )


@router.post("/{survey_id}/rooms/{room_id}/photos", status_code=201)
async def add_photo(
    survey_id: str,
    room_id: str,
    file: UploadFile = File(...),
    label: PhotoLabel = Form(PhotoLabel.GENERAL),
    manager: SessionManager = Depends(get_session_manager),
):
    session = await _get_session(manager, survey_id)
    content_type = file.content_type or "image/jpeg"
    if not content_type.startswith("image/"):
        raise AppException(f"Unsupported photo type: {content_type}", status_code=422)

    content = await file.read()
    photo = Photo(
        label=label,
        timestamp=isoformat_utc(utc_now()),
        data_url=f"data:{content_type};base64,{base64.b64encode(content).decode('ascii')}",
        file_name=file.filename,
    )
    result = session.store.add_photos(room_id, [photo])
    item = session.store.get(room_id)
    return update_response(result, photo_count=len(item.survey.photos) if item else 0)


@router.delete("/{survey_id}/rooms/{room_id}/photos/{index}")
async def remove_photo(
    survey_id: str,
    room_id: str,
    index: int,
    manager: SessionManager = Depends(get_session_manager),
):
    session = await _get_session(manager, survey_id)
    return _apply(session.store.remove_photo, room_id, index)


@router.get("/{survey_id}/rooms/{room_id}/next")
async def next_room(survey_id: str, room_id: str, manager: SessionManager = Depends(get_session_manager)):
    session = await _get_session(manager, survey_id)
    item = next_incomplete_room(session.items, room_id)
    return success_response(data={
        "next_room_id": item.id if item else None,
        "all_complete": item is None,
    })


@router.get("/{survey_id}/rooms/{room_id}/ceiling-default")
async def ceiling_default(survey_id: str, room_id: str, manager: SessionManager = Depends(get_session_manager)):
    session = await _get_session(manager, survey_id)
    default = floor_ceiling_default(session.items, room_id)
    return success_response(data=default.model_dump(mode="json") if default else None)


@router.patch("/{survey_id}/rooms/{room_id}/cameras/{camera_id}")
async def update_camera(
    survey_id: str,
    room_id: str,
    camera_id: str,
    payload: CameraUpdate,
    manager: SessionManager = Depends(get_session_manager),
):
    session = await _get_session(manager, survey_id)
    return _apply(
        session.store.update_camera, room_id, camera_id, payload.model_dump(exclude_unset=True),
    )


@router.post("/{survey_id}/rooms/{room_id}/cameras/{camera_id}/reposition")
async def reposition_camera(
    survey_id: str,
    room_id: str,
    camera_id: str,
    payload: RepositionRequest,
    manager: SessionManager = Depends(get_session_manager),
):
    session = await _get_session(manager, survey_id)
    return _apply(
        session.store.reposition_camera, room_id, camera_id, payload.latitude, payload.longitude, payload.reason,
    )


@router.delete("/{survey_id}/rooms/{room_id}/cameras/{camera_id}/reposition")
async def reset_camera(
    survey_id: str,
    room_id: str,
    camera_id: str,
    manager: SessionManager = Depends(get_session_manager),
):
    session = await _get_session(manager, survey_id)
    return _apply(session.store.reset_camera, room_id, camera_id)


@router.get("/{survey_id}/progress")
async def get_progress(survey_id: str, manager: SessionManager = Depends(get_session_manager)):
    session = await _get_session(manager, survey_id)
    items = session.items
    return success_response(data={
        "completed": completed_count(items),
        "total": len(items),
        "percent": progress_percent(items),
        "floors": [floor.model_dump() for floor in floor_progress(items)],
        "incomplete_rooms": [item.id for item in items if not item.survey.completed],
        "save_status": session.autosaver.status.value,
    })


@router.get("/{survey_id}/changes")
async def get_changes(survey_id: str, manager: SessionManager = Depends(get_session_manager)):
    session = await _get_session(manager, survey_id)
    return success_response(data=session.camera_changes())


@router.get("/{survey_id}/export")
async def export_session(survey_id: str, manager: SessionManager = Depends(get_session_manager)):
    session = await _get_session(manager, survey_id)
    exported_at = utc_now()
    filename = export_download_filename(session.site_name, exported_at)
    return Response(
        content=render_export_json(session.export(exported_at)),
        media_type="application/json",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


@router.get("/{survey_id}/placements")
async def get_placements(survey_id: str, manager: SessionManager = Depends(get_session_manager)):
    session = await _get_session(manager, survey_id)
    return success_response(data=session.updated_placements())


@router.post("/{survey_id}/submit")
async def submit_session(
    survey_id: str,
    payload: SubmitRequest | None = None,
    manager: SessionManager = Depends(get_session_manager),
    coordinator: SyncCoordinator = Depends(get_sync_coordinator),
):
    session = await _get_session(manager, survey_id)
    status = await coordinator.submit(session, online=payload.online if payload else None)
    return success_response(data=status.model_dump(mode="json"))


@router.get("/{survey_id}/upload-status")
async def get_upload_status(survey_id: str, manager: SessionManager = Depends(get_session_manager)):
    session = await _get_session(manager, survey_id)
    return success_response(data=session.upload_status.model_dump(mode="json"))


@router.post("/{survey_id}/floors/resolve")
async def resolve_floors(
    survey_id: str,
    payload: FloorResolveRequest,
    manager: SessionManager = Depends(get_session_manager),
):
    session = await _get_session(manager, survey_id)
    matches = []
    for floor in floor_progress(session.items):
        match = resolve_floor(floor.floor_id, payload.floors)
        matches.append({
            "floor_id": floor.floor_id,
            "match": match.model_dump(mode="json") if match else None,
        })
    return success_response(data=matches)
