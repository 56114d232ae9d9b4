from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple
import base64
import binascii
import uuid

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

GRID_SIZE = 1000


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EncodedImage(CamelModel):
    data: bytes = Field(default=b"", repr=False, exclude=True)
    mime_type: str = "image/jpeg"
    image_id: str = Field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def size(self) -> int:
        return len(self.data)

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"

    @classmethod
    def from_data_url(cls, url: str) -> "EncodedImage":
        """
        Accepts `data:<mime>;base64,<payload>` or a bare base64 string.
        Raises ValueError when the payload is not valid base64.
        """
        mime_type = "image/jpeg"
        payload = (url or "").strip()
        if payload.startswith("data:") and "," in payload:
            header, payload = payload.split(",", 1)
            mime_type = header[len("data:"):].split(";", 1)[0] or mime_type
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("Invalid base64 image payload") from exc
        return cls(data=data, mime_type=mime_type)


class BoundingBox(CamelModel):
    ymin: float = Field(ge=0, le=GRID_SIZE)
    xmin: float = Field(ge=0, le=GRID_SIZE)
    ymax: float = Field(ge=0, le=GRID_SIZE)
    xmax: float = Field(ge=0, le=GRID_SIZE)

    @model_validator(mode="after")
    def _check_order(self) -> "BoundingBox":
        if self.ymin > self.ymax or self.xmin > self.xmax:
            raise ValueError("bounding box min edge exceeds max edge")
        return self


class PlateDetection(CamelModel):
    plate_number: str = Field(min_length=1)
    confidence: Confidence
    plate_bounding_box: BoundingBox
    # Owner and registration data are simulated upstream, never authoritative.
    vehicle_type: Optional[str] = None
    vehicle_model: Optional[str] = None
    color: Optional[str] = None
    region: Optional[str] = None
    owner_name: Optional[str] = None
    registration_date: Optional[str] = None

    @field_validator("plate_number", mode="before")
    @classmethod
    def _strip_plate_number(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value):
        if value is None:
            return value
        if isinstance(value, str):
            value = value.strip().lower()
        try:
            return Confidence(value)
        except ValueError:
            return Confidence.LOW

    @field_validator(
        "vehicle_type",
        "vehicle_model",
        "color",
        "region",
        "owner_name",
        "registration_date",
        mode="before",
    )
    @classmethod
    def _loose_text(cls, value):
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str):
            return value.strip() or None
        return None


class DetectionSet(CamelModel):
    plates: Tuple[PlateDetection, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.plates


class OverlayRect(CamelModel):
    """Percentages of the displayed image box."""

    top_pct: float
    left_pct: float
    width_pct: float
    height_pct: float


class PixelRect(CamelModel):
    x: int
    y: int
    w: int
    h: int


class PlateOverlay(CamelModel):
    plate_number: str
    confidence: Confidence
    rect: OverlayRect


class HistoryEntry(CamelModel):
    entry_id: str = Field(default_factory=lambda: uuid.uuid4().hex, alias="id")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    detections: DetectionSet
    image: EncodedImage

    @computed_field(alias="plateCount")
    @property
    def plate_count(self) -> int:
        return len(self.detections.plates)

    @computed_field(alias="headlinePlate")
    @property
    def headline_plate(self) -> str:
        if self.detections.plates:
            return self.detections.plates[0].plate_number
        return "N/A"

    @computed_field(alias="hasHighConfidence")
    @property
    def has_high_confidence(self) -> bool:
        return any(p.confidence == Confidence.HIGH for p in self.detections.plates)


class SessionStats(CamelModel):
    scan_count: int = 0
    throughput_pct: int = 0
    plates_detected: int = 0
    high_confidence_scans: int = 0


class PipelineState(str, Enum):
    IDLE = "idle"
    CAPTURING_LIVE = "capturing_live"
    READY = "ready"
    PROCESSING = "processing"
    ANNOTATED = "annotated"
    FAILED = "failed"


class PipelineView(CamelModel):
    state: PipelineState
    camera_active: bool = False
    image: Optional[EncodedImage] = None
    detections: Optional[DetectionSet] = None
    overlays: List[PlateOverlay] = Field(default_factory=list)
    history: List[HistoryEntry] = Field(default_factory=list)
    stats: SessionStats = Field(default_factory=SessionStats)
    error: Optional[str] = None
