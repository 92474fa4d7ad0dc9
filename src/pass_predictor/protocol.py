"""Worker message protocol schemas."""

from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, FiniteFloat, field_validator
from pydantic.alias_generators import to_camel

from .geometry import GroundStation
from .orbit import normalize_elements

JobId = Union[int, str]


class MessageType(str, Enum):
    PROPAGATE_POSITIONS = "PROPAGATE_POSITIONS"
    PROPAGATE_GEODETIC = "PROPAGATE_GEODETIC"
    COMPUTE_PASSES_ELEVATION = "COMPUTE_PASSES_ELEVATION"
    COMPUTE_PASSES_SWATH = "COMPUTE_PASSES_SWATH"
    CLEAR_CACHE = "CLEAR_CACHE"


class JobRequest(BaseModel):
    """Envelope sent to a worker."""

    id: JobId
    type: MessageType
    data: Dict[str, Any] = Field(default_factory=dict)


class JobResponse(BaseModel):
    """Envelope returned by a worker, matched to its request by id."""

    id: Optional[JobId] = None
    type: str
    success: bool
    result: Any = None
    error: Optional[str] = None

    def to_message(self) -> Dict[str, Any]:
        message: Dict[str, Any] = {"id": self.id, "type": self.type, "success": self.success}
        if self.success:
            message["result"] = self.result
        else:
            message["error"] = self.error
        return message


class WireModel(BaseModel):
    """Payload fields validate from snake_case or camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GroundStationModel(WireModel):
    latitude: float = Field(..., allow_inf_nan=False, description="Geodetic latitude (degrees)")
    longitude: float = Field(..., allow_inf_nan=False, description="Longitude (degrees)")
    height: float = Field(
        default=0.0, allow_inf_nan=False, description="Height above ellipsoid (metres)"
    )

    def to_station(self) -> GroundStation:
        return GroundStation(self.latitude, self.longitude, self.height)


class ElementsPayload(WireModel):
    """Base for payloads that name an element set."""

    elements: Union[str, List[str]] = Field(
        ..., description="Two- or three-line element text, as one string or a list of lines"
    )

    @field_validator("elements")
    @classmethod
    def _has_element_lines(cls, value: Union[str, List[str]]) -> Union[str, List[str]]:
        if len(normalize_elements(value)) < 2:
            raise ValueError("elements must contain two element lines")
        return value


class PropagatePositionsPayload(ElementsPayload):
    timestamps: List[FiniteFloat] = Field(..., description="Epoch milliseconds")


class PropagateGeodeticPayload(ElementsPayload):
    timestamp: float = Field(..., allow_inf_nan=False, description="Epoch milliseconds")


class PassWindowPayload(ElementsPayload):
    ground_station: GroundStationModel
    start_ms: float = Field(..., allow_inf_nan=False, description="Window start, epoch milliseconds")
    end_ms: float = Field(..., allow_inf_nan=False, description="Window end, epoch milliseconds")
    max_passes: int = Field(..., ge=1)
    collect_stats: bool = False
    intrinsic_magnitude: Optional[float] = Field(
        default=None,
        allow_inf_nan=False,
        description="Magnitude at 1000 km and 90 deg phase; enables apex magnitude",
    )


class ElevationPassesPayload(PassWindowPayload):
    min_elevation_deg: float = Field(..., ge=-90.0, le=90.0)


class SwathPassesPayload(PassWindowPayload):
    swath_km: float = Field(..., gt=0.0, allow_inf_nan=False, description="Full swath width (km)")


class ClearCachePayload(BaseModel):
    pass


PAYLOAD_MODELS: Dict[MessageType, Type[BaseModel]] = {
    MessageType.PROPAGATE_POSITIONS: PropagatePositionsPayload,
    MessageType.PROPAGATE_GEODETIC: PropagateGeodeticPayload,
    MessageType.COMPUTE_PASSES_ELEVATION: ElevationPassesPayload,
    MessageType.COMPUTE_PASSES_SWATH: SwathPassesPayload,
    MessageType.CLEAR_CACHE: ClearCachePayload,
}
