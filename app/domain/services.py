import json
import logging
from typing import Iterable, List, Union

from pydantic import ValidationError

from app.domain.errors import RecognitionFailure, SchemaViolation
from app.domain.models import (
    GRID_SIZE,
    BoundingBox,
    Confidence,
    DetectionSet,
    HistoryEntry,
    OverlayRect,
    PixelRect,
    PlateDetection,
    PlateOverlay,
    SessionStats,
)

log = logging.getLogger(__name__)

# =========================
# DOMAIN LOGIC (Pure Python)
# =========================

PLATES_FIELD = "plates"


def parse_detection_payload(payload: Union[str, bytes, dict, None]) -> DetectionSet:
    """
    Turns the recognition service's structured output into a DetectionSet.

    - Unparsable JSON -> RecognitionFailure.
    - Missing wrapper object or `plates` array -> SchemaViolation.
    - Elements that fail validation are dropped; if every element is dropped
      the result is an empty DetectionSet, not an error.
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload or "{}")
        except ValueError as exc:
            raise RecognitionFailure("Failed to parse recognition response.") from exc

    if not isinstance(payload, dict):
        raise SchemaViolation("Recognition response is not a JSON object.")

    raw_plates = payload.get(PLATES_FIELD)
    if not isinstance(raw_plates, list):
        raise SchemaViolation(f"Recognition response has no '{PLATES_FIELD}' array.")

    plates: List[PlateDetection] = []
    for idx, item in enumerate(raw_plates):
        try:
            plates.append(PlateDetection.model_validate(item))
        except ValidationError as exc:
            log.debug("Dropping plate #%d: %s", idx, exc.errors(include_url=False))

    dropped = len(raw_plates) - len(plates)
    if dropped:
        log.info("Dropped %d of %d plate detections failing validation", dropped, len(raw_plates))

    return DetectionSet(plates=tuple(plates))


# =========================
# Coordinate mapping
# =========================

def to_overlay_rect(box: BoundingBox) -> OverlayRect:
    """
    Maps the 0-1000 grid to percentages of the displayed image.

    Assumes the image is displayed at its own aspect ratio; letterbox offsets
    are not corrected here.
    """
    return OverlayRect(
        top_pct=box.ymin / 10,
        left_pct=box.xmin / 10,
        width_pct=(box.xmax - box.xmin) / 10,
        height_pct=(box.ymax - box.ymin) / 10,
    )


def to_pixel_rect(box: BoundingBox, img_w: int, img_h: int) -> PixelRect:
    x1 = int(round(box.xmin * img_w / GRID_SIZE))
    y1 = int(round(box.ymin * img_h / GRID_SIZE))
    x2 = int(round(box.xmax * img_w / GRID_SIZE))
    y2 = int(round(box.ymax * img_h / GRID_SIZE))

    x1 = max(0, min(x1, img_w - 1))
    y1 = max(0, min(y1, img_h - 1))
    x2 = max(x1, min(x2, img_w - 1))
    y2 = max(y1, min(y2, img_h - 1))
    return PixelRect(x=x1, y=y1, w=x2 - x1, h=y2 - y1)


def build_overlays(detections: DetectionSet) -> List[PlateOverlay]:
    return [
        PlateOverlay(
            plate_number=plate.plate_number,
            confidence=plate.confidence,
            rect=to_overlay_rect(plate.plate_bounding_box),
        )
        for plate in detections.plates
    ]


# =========================
# Session statistics
# =========================

def summarize_session(entries: Iterable[HistoryEntry]) -> SessionStats:
    scan_count = 0
    plates_detected = 0
    high_confidence_scans = 0
    for entry in entries:
        scan_count += 1
        plates_detected += entry.plate_count
        if entry.has_high_confidence:
            high_confidence_scans += 1

    return SessionStats(
        scan_count=scan_count,
        throughput_pct=min(scan_count * 10, 100),
        plates_detected=plates_detected,
        high_confidence_scans=high_confidence_scans,
    )


def is_high(plate: PlateDetection) -> bool:
    return plate.confidence == Confidence.HIGH
