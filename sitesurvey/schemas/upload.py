from enum import Enum

from pydantic import BaseModel


class UploadState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    UPLOADING_JSON = "uploading_json"
    UPLOADING_PLACEMENTS = "uploading_placements"
    UPLOADING_PHOTOS = "uploading_photos"
    DONE = "done"
    FAILED = "failed"
    QUEUED = "queued"


class UploadStatus(BaseModel):
    state: UploadState = UploadState.IDLE
    message: str | None = None
    error: str | None = None
    pending_upload_id: str | None = None

    @property
    def in_progress(self) -> bool:
        return self.state in (
            UploadState.PREPARING,
            UploadState.UPLOADING_JSON,
            UploadState.UPLOADING_PLACEMENTS,
            UploadState.UPLOADING_PHOTOS,
        )


class ProjectDestination(BaseModel):
    """Where a survey lands on the remote store. Opaque to the engine."""

    project_code: str
    project_name: str | None = None
    folders: dict[str, str] = {}


class PhotoUpload(BaseModel):
    room_id: str
    index: int
    filename: str
    data_url: str
    content_type: str


class UploadBundle(BaseModel):
    """Everything one submission needs, so it can be replayed after a restart."""

    survey_id: str
    idempotency_key: str
    destination: ProjectDestination
    payload: dict
    placements: dict | None = None
    photos: list[PhotoUpload] = []

    @property
    def repositioned_count(self) -> int:
        return self.payload.get("summary", {}).get("repositionedCameras", 0)


class PendingUploadEntry(BaseModel):
    id: str
    survey_id: str
    queued_at: str
    bundle: UploadBundle
