"""The single owner of mutable survey state.

Rooms and cameras are fixed once the session starts. Every change goes through
``update_room`` or ``update_camera``, which swap in a new copy of exactly one
room and leave every other room object untouched.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable

from sitesurvey.schemas.survey import (
    MUTABLE_CAMERA_FIELDS,
    Camera,
    Photo,
    RoomKey,
    RoomSurveyItem,
    SurveyRecord,
)
from sitesurvey.utils.exceptions import AppException
from sitesurvey.utils.timestamps import isoformat_utc, utc_now

logger = logging.getLogger(__name__)


class UpdateResult(str, Enum):
    APPLIED = "applied"
    # Stale ids are expected when the UI navigates while an edit is in flight.
    UNKNOWN_ID = "no_op_unknown_id"


class IncompleteSurveyError(AppException):
    def __init__(self, room_id: str, missing: list[str]):
        super().__init__(
            f"Room {room_id} cannot be completed, missing: {', '.join(missing)}",
            status_code=422,
            data={"room_id": room_id, "missing_fields": missing},
        )
        self.missing = missing


class SessionStore:
    def __init__(self, items: Iterable[RoomSurveyItem], require_complete_fields: bool = False):
        self._items = list(items)
        self._listeners: list[Callable[[], None]] = []
        self.require_complete_fields = require_complete_fields

    @property
    def items(self) -> tuple[RoomSurveyItem, ...]:
        return tuple(self._items)

    def subscribe(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def _find(self, room_id: RoomKey | str) -> int | None:
        wanted = str(room_id)
        for position, item in enumerate(self._items):
            if item.id == wanted:
                return position
        return None

    def get(self, room_id: RoomKey | str) -> RoomSurveyItem | None:
        position = self._find(room_id)
        return None if position is None else self._items[position]

    def _replace(self, position: int, item: RoomSurveyItem) -> UpdateResult:
        self._items[position] = item
        for listener in self._listeners:
            listener()
        return UpdateResult.APPLIED

    def update_room(self, room_id: RoomKey | str, updates: dict) -> UpdateResult:
        """Merge ``updates`` into the room's survey record."""
        unknown = set(updates) - set(SurveyRecord.model_fields)
        if unknown:
            raise ValueError(f"unknown survey fields: {', '.join(sorted(unknown))}")

        position = self._find(room_id)
        if position is None:
            logger.debug("update_room ignored unknown room %s", room_id)
            return UpdateResult.UNKNOWN_ID

        item = self._items[position]
        survey = SurveyRecord.model_validate({**item.survey.model_dump(), **updates})
        return self._replace(position, item.model_copy(update={"survey": survey}))

    def update_camera(self, room_id: RoomKey | str, camera_id: str, updates: dict) -> UpdateResult:
        """Merge survey-time fields into one camera of one room."""
        forbidden = set(updates) - MUTABLE_CAMERA_FIELDS
        if forbidden:
            raise ValueError(f"camera fields are read-only: {', '.join(sorted(forbidden))}")

        position = self._find(room_id)
        if position is None:
            logger.debug("update_camera ignored unknown room %s", room_id)
            return UpdateResult.UNKNOWN_ID
        item = self._items[position]
        camera_position = item.find_camera(camera_id)
        if camera_position is None:
            logger.debug("update_camera ignored unknown camera %s in %s", camera_id, room_id)
            return UpdateResult.UNKNOWN_ID

        camera = item.cameras[camera_position]
        cameras = list(item.cameras)
        cameras[camera_position] = Camera.model_validate({**camera.model_dump(), **updates})
        return self._replace(position, item.model_copy(update={"cameras": cameras}))

    def set_completed(
        self, room_id: RoomKey | str, completed: bool, now: datetime | None = None
    ) -> UpdateResult:
        item = self.get(room_id)
        if item is None:
            return UpdateResult.UNKNOWN_ID
        if completed and self.require_complete_fields:
            missing = item.survey.missing_fields()
            if missing:
                raise IncompleteSurveyError(item.id, missing)
        completed_at = isoformat_utc(now or utc_now()) if completed else None
        return self.update_room(room_id, {"completed": completed, "completed_at": completed_at})

    def toggle_completed(self, room_id: RoomKey | str, now: datetime | None = None) -> UpdateResult:
        item = self.get(room_id)
        if item is None:
            return UpdateResult.UNKNOWN_ID
        return self.set_completed(room_id, not item.survey.completed, now)

    def add_photos(self, room_id: RoomKey | str, photos: list[Photo]) -> UpdateResult:
        item = self.get(room_id)
        if item is None:
            return UpdateResult.UNKNOWN_ID
        return self.update_room(room_id, {"photos": [*item.survey.photos, *photos]})

    def remove_photo(self, room_id: RoomKey | str, index: int) -> UpdateResult:
        item = self.get(room_id)
        if item is None or not 0 <= index < len(item.survey.photos):
            return UpdateResult.UNKNOWN_ID
        photos = [p for i, p in enumerate(item.survey.photos) if i != index]
        return self.update_room(room_id, {"photos": photos})

    def replace_photo(self, room_id: RoomKey | str, index: int, photo: Photo) -> UpdateResult:
        item = self.get(room_id)
        if item is None or not 0 <= index < len(item.survey.photos):
            return UpdateResult.UNKNOWN_ID
        photos = list(item.survey.photos)
        photos[index] = photo
        return self.update_room(room_id, {"photos": photos})

    def reposition_camera(
        self,
        room_id: RoomKey | str,
        camera_id: str,
        latitude: float,
        longitude: float,
        reason: str | None = None,
    ) -> UpdateResult:
        return self.update_camera(room_id, camera_id, {
            "new_latitude": latitude,
            "new_longitude": longitude,
            "repositioned": True,
            "reposition_reason": (reason or "").strip() or None,
        })

    def reset_camera(self, room_id: RoomKey | str, camera_id: str) -> UpdateResult:
        return self.update_camera(room_id, camera_id, {
            "new_latitude": None,
            "new_longitude": None,
            "repositioned": False,
            "reposition_reason": None,
        })
