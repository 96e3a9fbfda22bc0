"""Match a dataset floor id to a floor of the indoor map.

Strategies are tried in order; the last one just takes the map's first floor
and is reported as a degraded match.
"""
import logging
from enum import Enum
from typing import Callable, Sequence

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class MapFloor(BaseModel):
    id: str
    name: str | None = None


class MatchStrategy(str, Enum):
    EXACT_ID = "exact_id"
    NAME_CONTAINS = "name_contains"
    ID_SUFFIX = "id_suffix"
    FIRST_FLOOR = "first_floor"


class FloorMatch(BaseModel):
    floor_id: str
    floor: MapFloor
    strategy: MatchStrategy
    degraded: bool


def _exact_id(floor_id: str, floors: Sequence[MapFloor]) -> MapFloor | None:
    return next((f for f in floors if f.id == floor_id), None)


def _name_contains(floor_id: str, floors: Sequence[MapFloor]) -> MapFloor | None:
    return next((f for f in floors if f.name and floor_id in f.name), None)


def _id_suffix(floor_id: str, floors: Sequence[MapFloor]) -> MapFloor | None:
    return next((f for f in floors if f.id.endswith(floor_id) or floor_id.endswith(f.id)), None)


def _first_floor(floor_id: str, floors: Sequence[MapFloor]) -> MapFloor | None:
    return floors[0] if floors else None


MATCHERS: list[tuple[MatchStrategy, Callable[[str, Sequence[MapFloor]], MapFloor | None]]] = [
    (MatchStrategy.EXACT_ID, _exact_id),
    (MatchStrategy.NAME_CONTAINS, _name_contains),
    (MatchStrategy.ID_SUFFIX, _id_suffix),
    (MatchStrategy.FIRST_FLOOR, _first_floor),
]


def resolve_floor(floor_id: str, floors: Sequence[MapFloor]) -> FloorMatch | None:
    """None only when the map has no floors at all."""
    for strategy, matcher in MATCHERS:
        floor = matcher(floor_id, floors)
        if floor is None:
            continue
        degraded = strategy is MatchStrategy.FIRST_FLOOR
        if degraded:
            logger.warning("Floor %s not found on map, falling back to first floor %s", floor_id, floor.id)
        return FloorMatch(floor_id=floor_id, floor=floor, strategy=strategy, degraded=degraded)
    return None
