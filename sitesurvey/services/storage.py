"""Durable local storage for in-progress surveys and deferred uploads.

Write failures are logged and reported through the return value; they never
propagate into the editing flow.
"""
import json
import logging
import uuid

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from sitesurvey.database import async_session
from sitesurvey.models.pending_upload import PendingUpload
from sitesurvey.models.survey_progress import SurveyProgress
from sitesurvey.schemas.upload import PendingUploadEntry, UploadBundle
from sitesurvey.utils.timestamps import epoch_millis, isoformat_utc, utc_now

logger = logging.getLogger(__name__)


class SurveyStorage:
    def __init__(self, session_factory: async_sessionmaker = async_session):
        self._session_factory = session_factory

    async def save_progress(self, survey_id: str, state: dict) -> str | None:
        """Store ``state`` under ``survey_id``; returns the saved timestamp, or None on failure."""
        last_saved = isoformat_utc(utc_now())
        try:
            async with self._session_factory() as db:
                row = await db.get(SurveyProgress, survey_id)
                if row is None:
                    row = SurveyProgress(id=survey_id)
                    db.add(row)
                row.site_name = state.get("site_name")
                row.state = json.dumps(state)
                row.last_saved = last_saved
                await db.commit()
        except (SQLAlchemyError, OSError, TypeError, ValueError):
            logger.exception("Failed to save survey progress %s", survey_id)
            return None
        return last_saved

    async def load_progress(self, survey_id: str) -> dict | None:
        try:
            async with self._session_factory() as db:
                row = await db.get(SurveyProgress, survey_id)
        except SQLAlchemyError:
            logger.exception("Failed to load survey progress %s", survey_id)
            return None
        if row is None:
            return None
        try:
            state = json.loads(row.state)
        except ValueError:
            logger.exception("Stored progress for survey %s is unreadable", survey_id)
            return None
        if not isinstance(state, dict):
            logger.error("Stored progress for survey %s is not an object", survey_id)
            return None
        state["last_saved"] = row.last_saved
        return state

    async def clear_progress(self, survey_id: str) -> bool:
        try:
            async with self._session_factory() as db:
                await db.execute(delete(SurveyProgress).where(SurveyProgress.id == survey_id))
                await db.commit()
        except SQLAlchemyError:
            logger.exception("Failed to clear survey progress %s", survey_id)
            return False
        return True

    async def queue_pending_upload(self, bundle: UploadBundle) -> PendingUploadEntry | None:
        now = utc_now()
        entry_id = f"upload_{epoch_millis(now)}"
        try:
            async with self._session_factory() as db:
                if await self._id_taken(db, entry_id):
                    entry_id = f"{entry_id}_{uuid.uuid4().hex[:6]}"
                row = PendingUpload(
                    id=entry_id,
                    survey_id=bundle.survey_id,
                    queued_at=isoformat_utc(now),
                    bundle=bundle.model_dump_json(),
                )
                db.add(row)
                await db.commit()
        except SQLAlchemyError:
            logger.exception("Failed to queue upload for survey %s", bundle.survey_id)
            return None
        logger.info("Queued upload %s for survey %s", entry_id, bundle.survey_id)
        return PendingUploadEntry(id=entry_id, survey_id=bundle.survey_id, queued_at=row.queued_at, bundle=bundle)

    @staticmethod
    async def _id_taken(db, entry_id: str) -> bool:
        result = await db.execute(select(PendingUpload.seq).where(PendingUpload.id == entry_id))
        return result.first() is not None

    async def get_pending_uploads(self) -> list[PendingUploadEntry]:
        try:
            async with self._session_factory() as db:
                result = await db.execute(select(PendingUpload).order_by(PendingUpload.seq))
                rows = result.scalars().all()
        except SQLAlchemyError:
            logger.exception("Failed to read pending uploads")
            return []
        entries = []
        for row in rows:
            try:
                bundle = UploadBundle.model_validate_json(row.bundle)
            except ValidationError:
                logger.exception("Skipping unreadable pending upload %s", row.id)
                continue
            entries.append(PendingUploadEntry(
                id=row.id, survey_id=row.survey_id, queued_at=row.queued_at, bundle=bundle,
            ))
        return entries

    async def remove_pending_upload(self, upload_id: str) -> bool:
        """Delete exactly one queued upload; False when it was not there."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(delete(PendingUpload).where(PendingUpload.id == upload_id))
                await db.commit()
        except SQLAlchemyError:
            logger.exception("Failed to remove pending upload %s", upload_id)
            return False
        return result.rowcount > 0

    async def clear_pending_uploads(self) -> None:
        try:
            async with self._session_factory() as db:
                await db.execute(delete(PendingUpload))
                await db.commit()
        except SQLAlchemyError:
            logger.exception("Failed to clear pending uploads")
