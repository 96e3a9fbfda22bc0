from fastapi import APIRouter, Depends, HTTPException

from sitesurvey.dependencies import get_sync_coordinator
from sitesurvey.services.sync import SyncCoordinator
from sitesurvey.utils.response import success_response

router = APIRouter(prefix="/uploads", tags=["uploads"])


@router.get("/pending")
async def list_pending_uploads(coordinator: SyncCoordinator = Depends(get_sync_coordinator)):
    entries = await coordinator.storage.get_pending_uploads()
    return success_response(data=[
        {
            "id": entry.id,
            "survey_id": entry.survey_id,
            "queued_at": entry.queued_at,
            "project_code": entry.bundle.destination.project_code,
            "photo_count": len(entry.bundle.photos),
            "repositioned_cameras": entry.bundle.repositioned_count,
        }
        for entry in entries
    ])


@router.post("/pending/replay")
async def replay_pending_uploads(coordinator: SyncCoordinator = Depends(get_sync_coordinator)):
    report = await coordinator.replay_pending()
    return success_response(data=report.model_dump())


@router.delete("/pending/{upload_id}")
async def remove_pending_upload(upload_id: str, coordinator: SyncCoordinator = Depends(get_sync_coordinator)):
    if not await coordinator.storage.remove_pending_upload(upload_id):
        raise HTTPException(status_code=404, detail="Pending upload not found")
    return success_response(message="Pending upload removed")
