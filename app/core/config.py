from pydantic import BaseModel
import os


class Settings(BaseModel):
    # Recognition service
    gemini_api_key: str = os.getenv("GEMINI_API_KEY", "")
    recognition_model: str = os.getenv("RECOGNITION_MODEL", "gemini-3-flash-preview")
    recognition_timeout_s: float = float(os.getenv("RECOGNITION_TIMEOUT_S", "60"))

    # Camera
    camera_index: int = int(os.getenv("CAMERA_INDEX", "0"))
    camera_facing: str = os.getenv("CAMERA_FACING", "environment")
    camera_warmup_frames: int = int(os.getenv("CAMERA_WARMUP_FRAMES", "2"))

    jpeg_quality: int = int(os.getenv("JPEG_QUALITY", "92"))
    max_upload_bytes: int = int(os.getenv("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024)))

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()
