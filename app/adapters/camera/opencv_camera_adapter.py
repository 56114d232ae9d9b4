import asyncio
import logging
import threading
from typing import Optional
import cv2
import numpy as np
from app.ports.camera_port import CameraPort, CameraStream
from app.domain.errors import DeviceUnavailable
from app.core.config import settings

log = logging.getLogger(__name__)


class OpenCvCameraStream(CameraStream):
    """
    The lock only guards bookkeeping; grab/read run without it so `stop()`
    never waits on a frame. A stop during a pending read hands the release
    to the reading thread.
    """
    def __init__(self, capture: "cv2.VideoCapture", warmup_frames: int = 0):
        self._capture: Optional[cv2.VideoCapture] = capture
        self._warmup_frames = max(0, warmup_frames)
        self._reading = False
        self._lock = threading.Lock()

    @property
    def active_tracks(self) -> int:
        with self._lock:
            return 0 if self._capture is None else 1

    def _read(self) -> np.ndarray:
        with self._lock:
            capture = self._capture
            if capture is None:
                raise DeviceUnavailable("Camera stream has been stopped.")
            self._reading = True
            warmup, self._warmup_frames = self._warmup_frames, 0

        ok, frame = False, None
        try:
            # Auto-exposure needs a few frames after opening.
            for _ in range(warmup):
                capture.grab()
            ok, frame = capture.read()
        finally:
            with self._lock:
                self._reading = False
                stopped = self._capture is None
            if stopped:
                capture.release()
                log.info("Camera released after pending read")

        if stopped:
            raise DeviceUnavailable("Camera stream has been stopped.")
        if not ok or frame is None:
            raise DeviceUnavailable("Could not read a frame from the camera.")
        return frame

    async def read_frame(self) -> np.ndarray:
        return await asyncio.to_thread(self._read)

    def stop(self) -> None:
        with self._lock:
            capture, self._capture = self._capture, None
            reading = self._reading
        if capture is None or reading:
            return
        capture.release()
        log.info("Camera released")


class OpenCvCameraAdapter(CameraPort):
    """
    Camera boundary on cv2.VideoCapture. OpenCV cannot select by facing mode,
    so the configured device index stands in for the environment-facing camera.
    """
    def __init__(self, index: Optional[int] = None, warmup_frames: Optional[int] = None):
        self.index = settings.camera_index if index is None else index
        self.warmup_frames = settings.camera_warmup_frames if warmup_frames is None else warmup_frames

    def _open(self) -> "cv2.VideoCapture":
        capture = cv2.VideoCapture(self.index)
        if not capture.isOpened():
            capture.release()
            raise DeviceUnavailable()
        return capture

    async def open(self, facing: str = "environment") -> OpenCvCameraStream:
        log.info("Opening camera %d (facing=%s)", self.index, facing)
        capture = await asyncio.to_thread(self._open)
        return OpenCvCameraStream(capture, warmup_frames=self.warmup_frames)
