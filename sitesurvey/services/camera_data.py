"""Turn an imported camera placement dataset into survey work items."""
from sitesurvey.schemas.camera import CameraRecord, ParsedDataset, ParsedFloor, ParsedRoom
from sitesurvey.schemas.survey import Camera, RoomSurveyItem, SurveyRecord

UNKNOWN_FLOOR = "unknown"
SINGLE_FLOOR_NAME = "All Rooms"


def _room_key(camera: CameraRecord) -> str:
    return camera.room or camera.name or f"Camera {camera.id}"


def _floor_name(floor_cameras: list[CameraRecord], position: int, floor_total: int) -> str:
    for camera in floor_cameras:
        if camera.floor_name:
            return camera.floor_name
    if floor_total == 1:
        return SINGLE_FLOOR_NAME
    return f"Floor {position + 1}"


def parse_camera_data(cameras: list[CameraRecord]) -> ParsedDataset:
    """Group cameras by floor, then by room, keeping first-seen order at both levels."""
    by_floor: dict[str, list[CameraRecord]] = {}
    for camera in cameras:
        by_floor.setdefault(camera.floor_id or UNKNOWN_FLOOR, []).append(camera)

    floors = []
    for position, (floor_id, floor_cameras) in enumerate(by_floor.items()):
        by_room: dict[str, list[CameraRecord]] = {}
        for camera in floor_cameras:
            by_room.setdefault(_room_key(camera), []).append(camera)

        rooms = [
            ParsedRoom(name=room_name, cameras=room_cameras, center=room_cameras[0].position)
            for room_name, room_cameras in by_room.items()
        ]
        floors.append(ParsedFloor(
            floor_id=floor_id,
            name=_floor_name(floor_cameras, position, len(by_floor)),
            rooms=rooms,
            camera_count=len(floor_cameras),
        ))

    return ParsedDataset(
        floors=floors,
        total_cameras=len(cameras),
        total_rooms=sum(len(f.rooms) for f in floors),
    )


def build_survey_items(parsed: ParsedDataset) -> list[RoomSurveyItem]:
    """Flatten floors and rooms into one ordered list of empty room surveys."""
    items = []
    for floor in parsed.floors:
        for room in floor.rooms:
            items.append(RoomSurveyItem(
                index=len(items),
                floor_id=floor.floor_id,
                floor_name=floor.name,
                room_name=room.name,
                center=room.center,
                cameras=[
                    Camera.model_validate({
                        **camera.model_dump(),
                        "new_latitude": None,
                        "new_longitude": None,
                        "repositioned": False,
                        "reposition_reason": None,
                    })
                    for camera in room.cameras
                ],
                survey=SurveyRecord(),
            ))
    return items
