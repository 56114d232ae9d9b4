import asyncio
import json

import numpy as np

from app.domain.detection_client import DetectionClient
from app.domain.errors import DeviceUnavailable
from app.domain.pipeline import PipelineController

ONE_PLATE = json.dumps({
    "plates": [
        {
            "plateNumber": "KA01AB1234",
            "confidence": "high",
            "vehicleType": "Sedan",
            "vehicleModel": "Toyota Camry",
            "color": "White",
            "region": "Karnataka",
            "ownerName": "R. Kumar",
            "registrationDate": "2019-04-12",
            "plateBoundingBox": {"ymin": 100, "xmin": 200, "ymax": 200, "xmax": 600},
        }
    ]
})


class FakeRecognitionPort:
    def __init__(self, response=ONE_PLATE, gated=False):
        self.response = response
        self.calls = 0
        self.images = []
        self.started = asyncio.Event()
        self.release = asyncio.Event() if gated else None

    async def generate(self, image, prompt, response_schema):
        self.calls += 1
        self.images.append(image)
        self.started.set()
        if self.release is not None:
            await self.release.wait()
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


class FakeCameraStream:
    def __init__(self, frame):
        self.frame = frame
        self.tracks = 1
        self.reads = 0

    @property
    def active_tracks(self):
        return self.tracks

    async def read_frame(self):
        self.reads += 1
        if isinstance(self.frame, Exception):
            raise self.frame
        return self.frame

    def stop(self):
        self.tracks = 0


class FakeCamera:
    def __init__(self, frame=None, denied=False, gated=False):
        self.frame = frame if frame is not None else np.full((48, 64, 3), 127, np.uint8)
        self.denied = denied
        self.streams = []
        self.started = asyncio.Event()
        self.release = asyncio.Event() if gated else None

    async def open(self, facing="environment"):
        self.started.set()
        if self.release is not None:
            await self.release.wait()
        if self.denied:
            raise DeviceUnavailable()
        stream = FakeCameraStream(self.frame)
        self.streams.append(stream)
        return stream


def make_controller(port=None, camera=None):
    port = port or FakeRecognitionPort()
    camera = camera or FakeCamera()
    return PipelineController(DetectionClient(port), camera)
