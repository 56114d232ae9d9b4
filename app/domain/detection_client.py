import asyncio
import logging
from typing import Optional

from app.domain import services
from app.domain.errors import Busy, PipelineError, RecognitionFailure
from app.domain.models import DetectionSet, EncodedImage
from app.ports.recognition_port import RecognitionPort

log = logging.getLogger(__name__)

RECOGNITION_PROMPT = """
Analyze this image and identify ALL vehicle license plates (number plates) visible.

For each plate detected, provide:
1. plateNumber: The exact alphanumeric characters on the plate.
2. confidence: "high", "medium", or "low".
3. vehicleType: e.g., Sedan, SUV, Truck, Bus, Motorcycle.
4. vehicleModel: Specific make and model if identifiable (e.g., Toyota Camry).
5. color: Primary color of the vehicle.
6. region: State or country of the plate.
7. ownerName: Identify or simulate a plausible owner name for this vehicle.
8. registrationDate: Identify or simulate a plausible registration date.
9. plateBoundingBox: CRITICAL - Provide the precise normalized bounding box [ymin, xmin, ymax, xmax] where each value is between 0 and 1000. Ensure the box tightly encloses ONLY the license plate itself.

Return the result as a JSON object with a "plates" array.
""".strip()

_TEXT = {"type": "STRING"}
_NUMBER = {"type": "NUMBER"}

DETECTION_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "plates": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "plateNumber": _TEXT,
                    "confidence": {"type": "STRING", "enum": ["high", "medium", "low"]},
                    "vehicleType": _TEXT,
                    "vehicleModel": _TEXT,
                    "color": _TEXT,
                    "region": _TEXT,
                    "ownerName": _TEXT,
                    "registrationDate": _TEXT,
                    "plateBoundingBox": {
                        "type": "OBJECT",
                        "properties": {
                            "ymin": _NUMBER,
                            "xmin": _NUMBER,
                            "ymax": _NUMBER,
                            "xmax": _NUMBER,
                        },
                        "required": ["ymin", "xmin", "ymax", "xmax"],
                    },
                },
                "required": ["plateNumber", "confidence", "plateBoundingBox"],
            },
        },
    },
    "required": ["plates"],
}


class DetectionClient:
    """
    Sends one image to the recognition service and validates the answer.
    Only one call may be in flight; a concurrent call raises Busy.
    """

    def __init__(self, port: RecognitionPort, timeout_s: Optional[float] = None):
        self.port = port
        self.timeout_s = timeout_s
        self._in_flight = False

    @property
    def busy(self) -> bool:
        return self._in_flight

    async def detect(self, image: EncodedImage) -> DetectionSet:
        if self._in_flight:
            raise Busy()

        self._in_flight = True
        try:
            raw = await self._request(image)
        finally:
            self._in_flight = False

        detections = services.parse_detection_payload(raw)
        log.info("Image %s: %d plate(s) detected", image.image_id, len(detections.plates))
        return detections

    async def _request(self, image: EncodedImage) -> str:
        call = self.port.generate(image, RECOGNITION_PROMPT, DETECTION_SCHEMA)
        try:
            if self.timeout_s:
                return await asyncio.wait_for(call, timeout=self.timeout_s)
            return await call
        except PipelineError:
            raise
        except asyncio.TimeoutError as exc:
            log.warning("Recognition request for %s timed out after %ss", image.image_id, self.timeout_s)
            raise RecognitionFailure("The recognition service did not respond in time.") from exc
        except Exception as exc:
            log.warning("Recognition request for %s failed: %s", image.image_id, exc)
            raise RecognitionFailure() from exc
