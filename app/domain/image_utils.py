import logging
import mimetypes
from typing import Iterable, Optional, Tuple, Union

import cv2
import numpy as np

from app.domain.errors import InvalidImage
from app.domain.models import EncodedImage, PixelRect

log = logging.getLogger(__name__)

FrameBuffer = Union[np.ndarray, bytes, bytearray, memoryview]

MAGIC_NUMBERS = (
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
)

HIGH_COLOR = (94, 197, 34)     # green (BGR)
OTHER_COLOR = (11, 158, 245)   # amber (BGR)


def sniff_mime_type(data: bytes) -> Optional[str]:
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    for magic, mime in MAGIC_NUMBERS:
        if data.startswith(magic):
            return mime
    return None


def resolve_mime_type(data: bytes, declared: Optional[str], filename: Optional[str]) -> str:
    sniffed = sniff_mime_type(data)
    if sniffed:
        return sniffed
    if declared and declared.startswith("image/"):
        return declared
    if filename:
        guessed, _ = mimetypes.guess_type(filename)
        if guessed and guessed.startswith("image/"):
            return guessed
    return "image/jpeg"


def decode_bgr(data: bytes) -> Optional[np.ndarray]:
    if not data:
        return None
    img_array = np.frombuffer(data, np.uint8)
    return cv2.imdecode(img_array, cv2.IMREAD_COLOR)


def from_file(
    data: bytes,
    mime_type: Optional[str] = None,
    filename: Optional[str] = None,
) -> EncodedImage:
    """
    Wraps user-selected file bytes as an EncodedImage.
    The bytes are kept as-is; the only check is that OpenCV can decode them.
    """
    if not data:
        raise InvalidImage("The selected file is empty.")

    if decode_bgr(data) is None:
        raise InvalidImage("Could not decode image.")

    image = EncodedImage(data=bytes(data), mime_type=resolve_mime_type(data, mime_type, filename))
    log.debug("Encoded upload %s (%d bytes, %s)", filename or "<unnamed>", image.size, image.mime_type)
    return image


def _frame_to_array(frame_buffer: FrameBuffer, width: int, height: int) -> np.ndarray:
    if isinstance(frame_buffer, np.ndarray):
        frame = frame_buffer
    else:
        raw = np.frombuffer(frame_buffer, np.uint8)
        channels = raw.size // (width * height) if width > 0 and height > 0 else 0
        if channels not in (1, 3, 4) or raw.size != width * height * channels:
            raise InvalidImage("Frame buffer size does not match frame dimensions.")
        frame = raw.reshape((height, width, channels))

    if frame.size == 0 or frame.shape[0] != height or frame.shape[1] != width:
        raise InvalidImage("Frame buffer size does not match frame dimensions.")

    if frame.ndim == 3 and frame.shape[2] == 4:
        frame = cv2.cvtColor(frame, cv2.COLOR_BGRA2BGR)
    return frame


def from_camera_frame(
    frame_buffer: FrameBuffer,
    width: int,
    height: int,
    quality: int = 92,
) -> EncodedImage:
    """Rasterizes a BGR video frame to JPEG at the frame's native resolution."""
    frame = _frame_to_array(frame_buffer, width, height)

    success, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not success:
        raise InvalidImage("Could not encode camera frame.")

    return EncodedImage(data=buffer.tobytes(), mime_type="image/jpeg")


def draw_overlays(
    img_bgr: np.ndarray,
    boxes: Iterable[Tuple[PixelRect, str, bool]],
    thickness: int = 2,
) -> np.ndarray:
    """
    Draws (rect, label, high_confidence) triples on a copy of the image.
    """
    canvas = img_bgr.copy()
    for rect, label, high in boxes:
        color = HIGH_COLOR if high else OTHER_COLOR
        x2, y2 = rect.x + rect.w, rect.y + rect.h
        cv2.rectangle(canvas, (rect.x, rect.y), (x2, y2), color, thickness)
        if label:
            (tw, th), baseline = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, 0.5, 1)
            ty = rect.y - 6 if rect.y - th - 6 >= 0 else y2 + th + 6
            cv2.rectangle(canvas, (rect.x, ty - th - baseline), (rect.x + tw, ty + baseline), color, -1)
            cv2.putText(canvas, label, (rect.x, ty), cv2.FONT_HERSHEY_SIMPLEX, 0.5, (255, 255, 255), 1)
    return canvas


def encode_jpeg(img_bgr: np.ndarray, quality: int = 92) -> bytes:
    success, buffer = cv2.imencode(".jpg", img_bgr, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not success:
        raise ValueError("Could not encode image")
    return buffer.tobytes()
