import asyncio
import logging
from typing import List, Optional

from app.domain import image_utils, services
from app.domain.detection_client import DetectionClient
from app.domain.errors import (
    Busy,
    DeviceUnavailable,
    InvalidImage,
    PipelineError,
    RecognitionFailure,
)
from app.domain.history import SessionHistory
from app.domain.models import (
    DetectionSet,
    EncodedImage,
    HistoryEntry,
    PipelineState,
    PipelineView,
    PlateOverlay,
)
from app.ports.camera_port import CameraPort, CameraStream

log = logging.getLogger(__name__)


class PipelineController:
    """
    Owns the current image and drives it through
    idle -> capturing/ready -> processing -> annotated/failed.

    Every failure ends up in `error` (one message at a time); nothing raised by
    acquisition or recognition escapes these methods. Results of a detect call
    are applied only if the request token still matches, so a clear or a new
    image while a call is in transit voids its effects.
    """

    def __init__(
        self,
        client: DetectionClient,
        camera: CameraPort,
        history: Optional[SessionHistory] = None,
        camera_facing: str = "environment",
        jpeg_quality: int = 92,
    ):
        self.client = client
        self.camera = camera
        self.history = history if history is not None else SessionHistory()
        self.camera_facing = camera_facing
        self.jpeg_quality = jpeg_quality

        self.state = PipelineState.IDLE
        self.image: Optional[EncodedImage] = None
        self.error: Optional[str] = None

        self._stream: Optional[CameraStream] = None
        self._entry: Optional[HistoryEntry] = None
        self._camera_token = 0
        self._request_token = 0

    # -------------------------
    # Acquisition
    # -------------------------

    async def upload(
        self,
        data: bytes,
        mime_type: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> PipelineView:
        try:
            image = await asyncio.to_thread(
                image_utils.from_file, data, mime_type=mime_type, filename=filename
            )
        except InvalidImage as exc:
            self._report(exc)
            return self.view()

        self.set_image(image)
        await self.process()
        return self.view()

    async def start_camera(self) -> PipelineView:
        self._release_camera()
        if self.state == PipelineState.CAPTURING_LIVE:
            # The previous stream is gone; live state resumes only if the new one opens.
            self._set_state(PipelineState.IDLE)
        self._camera_token += 1
        token = self._camera_token

        try:
            stream = await self.camera.open(self.camera_facing)
        except Exception as exc:
            if token == self._camera_token:
                self._report(self._as_pipeline_error(exc, DeviceUnavailable))
            return self.view()

        if token != self._camera_token:
            # Stopped or cleared while permission/device acquisition was pending.
            stream.stop()
            log.info("Camera acquisition cancelled; stream released")
            return self.view()

        self._stream = stream
        self._request_token += 1
        self.image = None
        self._entry = None
        self.error = None
        self._set_state(PipelineState.CAPTURING_LIVE)
        return self.view()

    async def snapshot(self) -> PipelineView:
        stream = self._stream
        if self.state != PipelineState.CAPTURING_LIVE or stream is None:
            self._report(DeviceUnavailable("Camera is not active."))
            return self.view()

        token = self._camera_token
        try:
            frame = await stream.read_frame()
        except Exception as exc:
            if token == self._camera_token:
                self._release_camera()
                self._set_state(PipelineState.IDLE)
                self._report(self._as_pipeline_error(exc, DeviceUnavailable))
            return self.view()

        if token != self._camera_token:
            log.info("Discarding frame captured after the camera was stopped")
            return self.view()

        self._release_camera()
        height, width = frame.shape[:2]
        try:
            image = await asyncio.to_thread(
                image_utils.from_camera_frame, frame, width, height, quality=self.jpeg_quality
            )
        except InvalidImage as exc:
            if token == self._camera_token:
                self._set_state(PipelineState.IDLE)
                self._report(exc)
            return self.view()

        if token != self._camera_token:
            log.info("Discarding snapshot encoded after the camera was stopped")
            return self.view()

        self.set_image(image)
        await self.process()
        return self.view()

    def stop_camera(self) -> PipelineView:
        self._camera_token += 1
        self._release_camera()
        if self.state == PipelineState.CAPTURING_LIVE:
            self._set_state(PipelineState.IDLE)
        return self.view()

    def set_image(self, image: EncodedImage) -> None:
        """Makes `image` current, discarding transient state but not history."""
        self._camera_token += 1
        self._release_camera()
        self._request_token += 1
        self.image = image
        self._entry = None
        self.error = None
        self._set_state(PipelineState.READY)

    # -------------------------
    # Processing
    # -------------------------

    async def process(self) -> PipelineView:
        """Runs detection on the current image; also the one-action retry."""
        image = self.image
        if image is None:
            self._report(InvalidImage("There is no image to process."))
            return self.view()

        if self.client.busy:
            self._report(Busy())
            if self.state != PipelineState.PROCESSING:
                self._set_state(PipelineState.FAILED)
            return self.view()

        self._request_token += 1
        token = self._request_token
        self._entry = None
        self.error = None
        self._set_state(PipelineState.PROCESSING)

        try:
            detections = await self.client.detect(image)
        except Exception as exc:
            if token != self._request_token:
                log.info("Ignoring failure for stale image %s", image.image_id)
                return self.view()
            self._set_state(PipelineState.FAILED)
            self._report(self._as_pipeline_error(exc, RecognitionFailure))
            return self.view()

        if token != self._request_token:
            log.info("Ignoring result for stale image %s", image.image_id)
            return self.view()

        self._entry = self.history.commit(detections, image)
        self.error = None
        self._set_state(PipelineState.ANNOTATED)
        return self.view()

    # -------------------------
    # User actions
    # -------------------------

    def clear(self) -> PipelineView:
        """Start a new scan: drop the current image, camera and pending result."""
        self._camera_token += 1
        self._release_camera()
        self._request_token += 1
        self.image = None
        self._entry = None
        self.error = None
        self._set_state(PipelineState.IDLE)
        return self.view()

    def clear_history(self) -> PipelineView:
        self.history.clear()
        if self.state == PipelineState.ANNOTATED:
            self._entry = None
            self._set_state(PipelineState.READY)
        return self.view()

    def dismiss_error(self) -> PipelineView:
        self.error = None
        return self.view()

    # -------------------------
    # Derived values
    # -------------------------

    @property
    def camera_active(self) -> bool:
        return self._stream is not None

    def current_entry(self) -> Optional[HistoryEntry]:
        """The entry whose overlays belong to the displayed image, if any."""
        if self.state != PipelineState.ANNOTATED or self._entry is None or self.image is None:
            return None
        if self._entry.image.image_id != self.image.image_id:
            return None
        return self._entry

    def current_detections(self) -> Optional[DetectionSet]:
        entry = self.current_entry()
        return entry.detections if entry is not None else None

    def overlays(self) -> List[PlateOverlay]:
        detections = self.current_detections()
        if detections is None:
            return []
        return services.build_overlays(detections)

    def view(self) -> PipelineView:
        return PipelineView(
            state=self.state,
            camera_active=self.camera_active,
            image=self.image,
            detections=self.current_detections(),
            overlays=self.overlays(),
            history=self.history.entries(),
            stats=self.history.stats(),
            error=self.error,
        )

    # -------------------------
    # Internals
    # -------------------------

    def _release_camera(self) -> None:
        if self._stream is not None:
            stream, self._stream = self._stream, None
            stream.stop()

    def _set_state(self, state: PipelineState) -> None:
        if state != self.state:
            log.info("Pipeline %s -> %s", self.state.value, state.value)
        self.state = state

    def _report(self, exc: PipelineError) -> None:
        log.warning("%s: %s", type(exc).__name__, exc.message)
        self.error = exc.message

    @staticmethod
    def _as_pipeline_error(exc: Exception, fallback) -> PipelineError:
        if isinstance(exc, PipelineError):
            return exc
        log.exception("Unexpected %s", type(exc).__name__, exc_info=exc)
        return fallback()
