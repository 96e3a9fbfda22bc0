"""Completion figures derived from the current room list.

Everything here is recomputed on each call; room counts stay in the hundreds.
"""
import math
from typing import Sequence

from pydantic import BaseModel

from sitesurvey.schemas.survey import CeilingHeightUnit, RoomKey, RoomSurveyItem


class FloorProgress(BaseModel):
    floor_id: str
    name: str
    completed: int
    total: int


class CeilingDefault(BaseModel):
    height: str
    unit: CeilingHeightUnit


def completed_count(items: Sequence[RoomSurveyItem]) -> int:
    return sum(1 for item in items if item.survey.completed)


def progress_percent(items: Sequence[RoomSurveyItem]) -> int:
    if not items:
        return 0
    # half-up, not banker's rounding
    return math.floor(100 * completed_count(items) / len(items) + 0.5)


def next_incomplete_room(
    items: Sequence[RoomSurveyItem], after_room_id: RoomKey | str | None
) -> RoomSurveyItem | None:
    """First incomplete room in ring order, starting just after ``after_room_id``.

    The starting room itself is checked last. Returns None when every room is
    complete, which is the caller's cue to move on to review.
    """
    start = -1
    wanted = str(after_room_id) if after_room_id is not None else None
    for position, item in enumerate(items):
        if item.id == wanted:
            start = position
            break

    total = len(items)
    for step in range(1, total + 1):
        candidate = items[(start + step) % total]
        if not candidate.survey.completed:
            return candidate
    return None


def floor_progress(items: Sequence[RoomSurveyItem]) -> list[FloorProgress]:
    floors: dict[str, FloorProgress] = {}
    for item in items:
        floor = floors.get(item.floor_id)
        if floor is None:
            floor = floors[item.floor_id] = FloorProgress(
                floor_id=item.floor_id, name=item.floor_name, completed=0, total=0,
            )
        floor.total += 1
        if item.survey.completed:
            floor.completed += 1
    return list(floors.values())


def floor_ceiling_default(items: Sequence[RoomSurveyItem], room_id: RoomKey | str) -> CeilingDefault | None:
    """Ceiling height already entered in another room on the same floor, if any."""
    wanted = str(room_id)
    current = next((item for item in items if item.id == wanted), None)
    if current is None:
        return None
    for item in items:
        if item.floor_id == current.floor_id and item.id != wanted and item.survey.ceiling_height:
            return CeilingDefault(height=item.survey.ceiling_height, unit=item.survey.ceiling_height_unit)
    return None
