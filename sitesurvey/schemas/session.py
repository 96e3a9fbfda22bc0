from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from sitesurvey.schemas.camera import CameraDataset
from sitesurvey.schemas.survey import (
    CeilingHeightUnit,
    MountingSurface,
    NetworkConnectivity,
    PowerOutletLocation,
)
from sitesurvey.schemas.upload import ProjectDestination

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionCreate(BaseModel):
    site_name: str
    map_id: str | None = None
    camera_json: dict
    destination: ProjectDestination | None = None

    model_config = _CAMEL

    @field_validator("camera_json")
    @classmethod
    def _valid_dataset(cls, value: dict) -> dict:
        try:
            CameraDataset.model_validate(value)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ValueError(f"invalid camera dataset ({problems})") from None
        return value


class RoomUpdate(BaseModel):
    ceiling_height: str | None = None
    ceiling_height_unit: CeilingHeightUnit | None = None
    power_outlet_location: PowerOutletLocation | None = None
    mounting_surface: MountingSurface | None = None
    network_connectivity: NetworkConnectivity | None = None
    obstructions: str | None = None
    notes: str | None = None

    model_config = _CAMEL

    @field_validator("power_outlet_location", "mounting_surface", "network_connectivity", mode="before")
    @classmethod
    def _unselected_option(cls, value):
        return None if value == "" else value

    @field_validator("ceiling_height", mode="before")
    @classmethod
    def _numeric_height(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class CompletionUpdate(BaseModel):
    completed: bool | None = None  # None toggles


class CameraUpdate(BaseModel):
    new_latitude: float | None = None
    new_longitude: float | None = None
    repositioned: bool | None = None
    reposition_reason: str | None = None

    model_config = _CAMEL


class RepositionRequest(BaseModel):
    latitude: float
    longitude: float
    reason: str | None = None


class SubmitRequest(BaseModel):
    online: bool | None = None


class TokenRequest(BaseModel):
    token: str
    expires_in: float | None = None

    model_config = _CAMEL
