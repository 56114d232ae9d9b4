from typing import Protocol
import numpy as np


class CameraStream(Protocol):
    @property
    def active_tracks(self) -> int:
        ...

    async def read_frame(self) -> np.ndarray:
        ...

    def stop(self) -> None:
        ...


class CameraPort(Protocol):
    async def open(self, facing: str = "environment") -> CameraStream:
        """Raises DeviceUnavailable when access is denied or no device exists."""
        ...
