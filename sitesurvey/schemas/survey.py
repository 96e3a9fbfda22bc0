from enum import Enum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from sitesurvey.schemas.camera import CameraRecord, Coordinate

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)

# Survey-time camera fields; everything else on a camera comes from the import.
MUTABLE_CAMERA_FIELDS = frozenset({"new_latitude", "new_longitude", "repositioned", "reposition_reason"})


class CeilingHeightUnit(str, Enum):
    METERS = "meters"
    FEET = "feet"


class PowerOutletLocation(str, Enum):
    WITHIN_1M = "within-1m"
    WITHIN_3M = "within-3m"
    WITHIN_5M = "within-5m"
    FAR = "far"
    NONE_VISIBLE = "none-visible"
    CEILING = "ceiling"


class MountingSurface(str, Enum):
    DRYWALL = "drywall"
    CONCRETE = "concrete"
    BRICK = "brick"
    WOOD = "wood"
    METAL = "metal"
    GLASS = "glass"
    DROP_CEILING = "drop-ceiling"
    EXPOSED_BEAM = "exposed-beam"
    OTHER = "other"


class NetworkConnectivity(str, Enum):
    ETHERNET_NEARBY = "ethernet-nearby"
    ETHERNET_FAR = "ethernet-far"
    WIFI_STRONG = "wifi-strong"
    WIFI_WEAK = "wifi-weak"
    NO_NETWORK = "no-network"
    POE_AVAILABLE = "poe-available"


class PhotoLabel(str, Enum):
    CAMERA_MOUNT = "Camera mount location"
    FIELD_OF_VIEW = "Field of view"
    POWER_OUTLET = "Power outlet"
    NETWORK_POINT = "Network point"
    OBSTRUCTION = "Obstruction"
    GENERAL = "General"


class RoomKey(NamedTuple):
    floor_id: str
    room_name: str

    def __str__(self) -> str:
        return f"{self.floor_id}__{self.room_name}"


class Camera(CameraRecord):
    new_latitude: float | None = None
    new_longitude: float | None = None
    repositioned: bool = False
    reposition_reason: str | None = None

    @model_validator(mode="after")
    def _repositioned_needs_position(self):
        if self.repositioned and (self.new_latitude is None or self.new_longitude is None):
            raise ValueError("a repositioned camera needs both new_latitude and new_longitude")
        return self

    @property
    def new_position(self) -> Coordinate | None:
        if not self.repositioned:
            return None
        return Coordinate(latitude=self.new_latitude, longitude=self.new_longitude)


class Photo(BaseModel):
    """A survey photo: inline data URL until uploaded, then a remote reference."""

    label: PhotoLabel = PhotoLabel.GENERAL
    timestamp: str
    data_url: str | None = None
    remote_url: str | None = None
    file_name: str | None = None
    # name the photo was stored under remotely, fixed once uploaded
    upload_filename: str | None = None

    model_config = _CAMEL

    @model_validator(mode="after")
    def _needs_payload(self):
        if self.data_url is None and self.remote_url is None:
            raise ValueError("a photo needs either data_url or remote_url")
        return self

    @property
    def content_type(self) -> str:
        if self.data_url and self.data_url.startswith("data:"):
            header = self.data_url.split(",", 1)[0]
            return header[5:].split(";", 1)[0] or "image/jpeg"
        return "image/jpeg"


class SurveyRecord(BaseModel):
    ceiling_height: str = ""
    ceiling_height_unit: CeilingHeightUnit = CeilingHeightUnit.METERS
    power_outlet_location: PowerOutletLocation | None = None
    mounting_surface: MountingSurface | None = None
    network_connectivity: NetworkConnectivity | None = None
    obstructions: str = ""
    notes: str = ""
    photos: list[Photo] = Field(default_factory=list)
    completed: bool = False
    completed_at: str | None = None

    model_config = _CAMEL

    @field_validator("ceiling_height", mode="before")
    @classmethod
    def _numeric_string(cls, value):
        if value is None:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return ""
            try:
                height = float(value)
            except ValueError:
                raise ValueError("ceiling_height must be numeric") from None
            if height < 0:
                raise ValueError("ceiling_height must not be negative")
        return value

    @field_validator("power_outlet_location", "mounting_surface", "network_connectivity", mode="before")
    @classmethod
    def _unselected_option(cls, value):
        # The form posts "" for "Select..."
        if value == "":
            return None
        return value

    def missing_fields(self) -> list[str]:
        """Form fields still empty, in form order."""
        missing = []
        if not self.ceiling_height:
            missing.append("ceiling_height")
        for name in ("power_outlet_location", "mounting_surface", "network_connectivity"):
            if getattr(self, name) is None:
                missing.append(name)
        return missing


class RoomSurveyItem(BaseModel):
    index: int
    floor_id: str
    floor_name: str
    room_name: str
    center: Coordinate
    cameras: list[Camera]
    survey: SurveyRecord = Field(default_factory=SurveyRecord)

    model_config = _CAMEL

    @property
    def key(self) -> RoomKey:
        return RoomKey(self.floor_id, self.room_name)

    @computed_field
    @property
    def id(self) -> str:
        return str(self.key)

    def find_camera(self, camera_id: str) -> int | None:
        for position, camera in enumerate(self.cameras):
            if camera.id == str(camera_id):
                return position
        return None
