import cv2
import numpy as np
import pytest


@pytest.fixture
def jpeg_bytes():
    img = np.zeros((60, 100, 3), np.uint8)
    cv2.rectangle(img, (20, 10), (60, 20), (255, 255, 255), -1)
    ok, buffer = cv2.imencode(".jpg", img)
    assert ok
    return buffer.tobytes()


@pytest.fixture
def png_bytes():
    ok, buffer = cv2.imencode(".png", np.zeros((8, 8, 3), np.uint8))
    assert ok
    return buffer.tobytes()
