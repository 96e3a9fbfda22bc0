"""Submission of a finished survey to the remote store.

One attempt runs its steps strictly in order: survey JSON, then the updated
placements (only when a camera moved), then each photo one at a time. The
first failure stops the attempt; there is no per-step resume, the whole
attempt is retried. When the device turns out to be offline, the prepared
bundle goes to the pending upload queue instead and is replayed later.
"""
import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable

from pydantic import BaseModel

from sitesurvey.schemas.upload import (
    PhotoUpload,
    UploadBundle,
    UploadState,
    UploadStatus,
)
from sitesurvey.services.export import build_updated_placements, collect_photo_uploads, with_photo_filenames
from sitesurvey.services.remote import RemoteStore, RemoteStoreError, RemoteUnavailableError
from sitesurvey.services.sessions import SurveySession
from sitesurvey.services.storage import SurveyStorage
from sitesurvey.utils.exceptions import AppException
from sitesurvey.utils.timestamps import utc_now

logger = logging.getLogger(__name__)

StatusCallback = Callable[[UploadStatus], None]
PhotoCallback = Callable[[PhotoUpload, dict], None]


class ReplayFailure(BaseModel):
    id: str
    error: str


class ReplayReport(BaseModel):
    succeeded: list[str] = []
    failed: list[ReplayFailure] = []
    remaining: int = 0


class SyncCoordinator:
    def __init__(
        self,
        remote: RemoteStore,
        storage: SurveyStorage,
        is_online: Callable[[], Awaitable[bool]] | None = None,
    ):
        self.remote = remote
        self.storage = storage
        self._is_online = is_online
        self._replay_lock = asyncio.Lock()

    def prepare(self, session: SurveySession, now: datetime | None = None) -> UploadBundle:
        """Freeze the session into a self-contained upload bundle."""
        if session.destination is None:
            raise AppException("No upload destination configured for this survey", status_code=400)

        exported_at = now or utc_now()
        payload = session.export(exported_at)
        placements = None
        if payload["summary"]["repositionedCameras"] > 0:
            placements = build_updated_placements(session.original_dataset, session.items)

        return UploadBundle(
            survey_id=session.survey_id,
            idempotency_key=f"{session.survey_id}:{payload['exportedAt']}",
            destination=session.destination,
            payload=with_photo_filenames(payload),
            placements=placements,
            photos=collect_photo_uploads(session.items, exported_at),
        )

    async def upload(
        self,
        bundle: UploadBundle,
        report: StatusCallback,
        on_photo_uploaded: PhotoCallback | None = None,
    ) -> None:
        """Run one attempt. Raises the first RemoteStoreError encountered."""
        key = bundle.idempotency_key

        report(UploadStatus(state=UploadState.UPLOADING_JSON, message="Uploading survey data..."))
        await self.remote.store_survey(bundle.destination, bundle.payload, key)

        if bundle.repositioned_count > 0 and bundle.placements is not None:
            report(UploadStatus(
                state=UploadState.UPLOADING_PLACEMENTS,
                message="Uploading final camera placements...",
            ))
            await self.remote.store_placements(bundle.destination, bundle.placements, key)

        total = len(bundle.photos)
        for number, photo in enumerate(bundle.photos, start=1):
            report(UploadStatus(
                state=UploadState.UPLOADING_PHOTOS,
                message=f"Uploading photo {number} of {total}",
            ))
            response = await self.remote.store_photo(bundle.destination, photo.data_url, photo.filename, key)
            if on_photo_uploaded is not None:
                on_photo_uploaded(photo, response or {})

    async def _online(self) -> bool:
        if self._is_online is None:
            return True
        return await self._is_online()

    async def submit(
        self, session: SurveySession, online: bool | None = None, now: datetime | None = None
    ) -> UploadStatus:
        if session.upload_status.in_progress:
            raise AppException("A submission for this survey is already in progress", status_code=409)

        def report(status: UploadStatus) -> None:
            session.upload_status = status
            logger.info("Survey %s: %s (%s)", session.survey_id, status.state.value, status.message)

        report(UploadStatus(state=UploadState.PREPARING, message="Preparing survey data..."))
        try:
            bundle = self.prepare(session, now)
        except AppException as e:
            report(UploadStatus(state=UploadState.FAILED, error=e.message))
            raise

        if online is False:
            return await self._queue(session, bundle, report)

        try:
            await self.upload(bundle, report, lambda photo, response: self._mark_uploaded(session, photo, response))
        except RemoteStoreError as e:
            failed_step = session.upload_status.state
            offline = isinstance(e, RemoteUnavailableError) or not await self._online()
            if offline:
                logger.info("Survey %s: offline during %s, queueing", session.survey_id, failed_step.value)
                return await self._queue(session, bundle, report)
            logger.warning("Survey %s upload failed during %s: %s", session.survey_id, failed_step.value, e.message)
            report(UploadStatus(state=UploadState.FAILED, message=f"Failed during {failed_step.value}", error=e.message))
            return session.upload_status

        report(UploadStatus(state=UploadState.DONE, message="Uploaded successfully"))
        return session.upload_status

    async def _queue(self, session: SurveySession, bundle: UploadBundle, report: StatusCallback) -> UploadStatus:
        entry = await self.storage.queue_pending_upload(bundle)
        if entry is None:
            report(UploadStatus(state=UploadState.FAILED, error="Offline, and the upload could not be queued"))
        else:
            report(UploadStatus(
                state=UploadState.QUEUED,
                message="Queued, will upload when online",
                pending_upload_id=entry.id,
            ))
        return session.upload_status

    @staticmethod
    def _mark_uploaded(session: SurveySession, photo: PhotoUpload, response: dict) -> None:
        """Swap the inline photo data for the remote reference, if the store returned one."""
        remote_url = response.get("url")
        if not remote_url:
            return
        item = session.store.get(photo.room_id)
        if item is None or photo.index >= len(item.survey.photos):
            return
        current = item.survey.photos[photo.index]
        # The technician may have removed or replaced photos while uploading.
        if current.data_url != photo.data_url:
            return
        session.store.replace_photo(
            photo.room_id, photo.index,
            current.model_copy(update={
                "data_url": None,
                "remote_url": remote_url,
                "upload_filename": photo.filename,
            }),
        )

    async def replay_pending(self) -> ReplayReport:
        """Retry every queued submission; entries are removed only after success."""
        async with self._replay_lock:
            entries = await self.storage.get_pending_uploads()
            report = ReplayReport()
            for entry in entries:
                try:
                    await self.upload(
                        entry.bundle,
                        lambda status, upload_id=entry.id: logger.info(
                            "Replay %s: %s", upload_id, status.message,
                        ),
                    )
                except RemoteUnavailableError as e:
                    logger.warning("Replay stopped at %s, remote unreachable: %s", entry.id, e.message)
                    report.failed.append(ReplayFailure(id=entry.id, error=e.message))
                    break
                except RemoteStoreError as e:
                    logger.warning("Replay of %s failed: %s", entry.id, e.message)
                    report.failed.append(ReplayFailure(id=entry.id, error=e.message))
                    continue

                await self.storage.remove_pending_upload(entry.id)
                report.succeeded.append(entry.id)
                logger.info("Replayed pending upload %s for survey %s", entry.id, entry.survey_id)

            report.remaining = len(entries) - len(report.succeeded)
            return report
