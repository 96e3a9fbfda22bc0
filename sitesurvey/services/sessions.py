"""Live survey sessions and their registry."""
import copy
import logging
from datetime import datetime, timedelta

from sitesurvey.schemas.camera import CameraDataset
from sitesurvey.schemas.survey import RoomSurveyItem
from sitesurvey.schemas.upload import ProjectDestination, UploadStatus
from sitesurvey.services.autosave import Autosaver
from sitesurvey.services.camera_data import build_survey_items, parse_camera_data
from sitesurvey.services.changes import summarize_camera_changes
from sitesurvey.services.export import ExportMetadata, build_payload, build_updated_placements
from sitesurvey.services.session_store import SessionStore
from sitesurvey.services.storage import SurveyStorage
from sitesurvey.utils.timestamps import epoch_millis, isoformat_utc, utc_now

logger = logging.getLogger(__name__)


def new_survey_id(project_code: str | None, now: datetime) -> str:
    if project_code:
        return f"survey_{project_code}_{epoch_millis(now)}"
    return f"survey_{epoch_millis(now)}"


class SurveySession:
    def __init__(
        self,
        survey_id: str,
        site_name: str,
        camera_json: dict,
        items: list[RoomSurveyItem],
        storage: SurveyStorage,
        map_id: str | None = None,
        destination: ProjectDestination | None = None,
        created_at: str | None = None,
        autosave_delay: float = 2.0,
        require_complete_fields: bool = False,
    ):
        self.survey_id = survey_id
        self.site_name = site_name
        self.map_id = map_id
        self.destination = destination
        self.created_at = created_at or isoformat_utc(utc_now())
        # Never mutated: the change log and placements diff are computed against it.
        self._camera_json = copy.deepcopy(camera_json)
        self.store = SessionStore(items, require_complete_fields=require_complete_fields)
        self.autosaver = Autosaver(survey_id, self.snapshot, storage, delay_seconds=autosave_delay)
        self.store.subscribe(self.autosaver.schedule)
        self.upload_status = UploadStatus()

    @property
    def original_dataset(self) -> dict:
        return self._camera_json

    @property
    def items(self) -> tuple[RoomSurveyItem, ...]:
        return self.store.items

    @property
    def metadata(self) -> ExportMetadata:
        return ExportMetadata(survey_id=self.survey_id, map_id=self.map_id, site_name=self.site_name)

    def export(self, exported_at: datetime | None = None) -> dict:
        return build_payload(self.items, self.metadata, self._camera_json, exported_at or utc_now())

    def updated_placements(self) -> dict | None:
        return build_updated_placements(self._camera_json, self.items)

    def camera_changes(self) -> dict:
        return summarize_camera_changes(self._camera_json, self.items)

    def snapshot(self) -> dict:
        return {
            "survey_id": self.survey_id,
            "site_name": self.site_name,
            "map_id": self.map_id,
            "destination": self.destination.model_dump() if self.destination else None,
            "created_at": self.created_at,
            "camera_json": self._camera_json,
            "items": [item.model_dump(mode="json") for item in self.items],
        }

    @classmethod
    def from_snapshot(cls, state: dict, storage: SurveyStorage, **options) -> "SurveySession":
        destination = state.get("destination")
        return cls(
            survey_id=state["survey_id"],
            site_name=state["site_name"],
            camera_json=state["camera_json"],
            items=[RoomSurveyItem.model_validate(item) for item in state["items"]],
            storage=storage,
            map_id=state.get("map_id"),
            destination=ProjectDestination.model_validate(destination) if destination else None,
            created_at=state.get("created_at"),
            **options,
        )


class SessionManager:
    def __init__(self, storage: SurveyStorage, autosave_delay: float = 2.0, require_complete_fields: bool = False):
        self.storage = storage
        self._options = {
            "autosave_delay": autosave_delay,
            "require_complete_fields": require_complete_fields,
        }
        self._sessions: dict[str, SurveySession] = {}

    async def create(
        self,
        site_name: str,
        camera_json: dict,
        map_id: str | None = None,
        destination: ProjectDestination | None = None,
        now: datetime | None = None,
    ) -> SurveySession:
        dataset = CameraDataset.model_validate(camera_json)
        parsed = parse_camera_data(dataset.cameras)
        items = build_survey_items(parsed)

        now = now or utc_now()
        survey_id = new_survey_id(destination.project_code if destination else None, now)
        while survey_id in self._sessions:
            now = now + timedelta(milliseconds=1)
            survey_id = new_survey_id(destination.project_code if destination else None, now)

        session = SurveySession(
            survey_id=survey_id,
            site_name=site_name,
            camera_json=camera_json,
            items=items,
            storage=self.storage,
            map_id=map_id,
            destination=destination,
            created_at=isoformat_utc(now),
            **self._options,
        )
        self._sessions[survey_id] = session
        await session.autosaver.flush()
        logger.info(
            "Created survey %s for %s: %d floors, %d rooms, %d cameras",
            survey_id, site_name, len(parsed.floors), parsed.total_rooms, parsed.total_cameras,
        )
        return session

    async def get(self, survey_id: str) -> SurveySession | None:
        session = self._sessions.get(survey_id)
        if session is not None:
            return session

        state = await self.storage.load_progress(survey_id)
        if state is None:
            return None
        try:
            session = SurveySession.from_snapshot(state, self.storage, **self._options)
        except (KeyError, TypeError, ValueError):
            logger.exception("Stored progress for survey %s could not be restored", survey_id)
            return None
        session.autosaver.last_saved = state.get("last_saved")
        self._sessions[survey_id] = session
        logger.info("Restored survey %s from local storage", survey_id)
        return session

    async def discard(self, survey_id: str) -> bool:
        session = self._sessions.pop(survey_id, None)
        if session is not None:
            await session.autosaver.aclose()
        existed = session is not None or await self.storage.load_progress(survey_id) is not None
        await self.storage.clear_progress(survey_id)
        if existed:
            logger.info("Discarded survey %s", survey_id)
        return existed
