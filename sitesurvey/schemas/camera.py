from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class Coordinate(BaseModel):
    latitude: float
    longitude: float


class CameraRecord(BaseModel):
    """One camera as it appears in an imported placement dataset.

    Unknown keys are kept so the dataset can be written back unchanged.
    """

    id: str
    name: str | None = None
    room: str | None = None
    floor_id: str | None = None
    floor_name: str | None = None
    latitude: float
    longitude: float
    mount_type: str | None = None
    height: float | None = None
    rotation: float | None = None
    field_of_view: float | None = None
    range: float | None = None
    tilt: float | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    @field_validator("id", "floor_id", mode="before")
    @classmethod
    def _coerce_identifier(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def position(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude)


class CameraDataset(BaseModel):
    cameras: list[CameraRecord]

    model_config = ConfigDict(extra="allow")


class ParsedRoom(BaseModel):
    name: str
    cameras: list[CameraRecord]
    center: Coordinate


class ParsedFloor(BaseModel):
    floor_id: str
    name: str
    rooms: list[ParsedRoom]
    camera_count: int


class ParsedDataset(BaseModel):
    floors: list[ParsedFloor]
    total_cameras: int
    total_rooms: int
