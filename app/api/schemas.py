from pydantic import BaseModel, Field


class DataUrlScanRequest(BaseModel):
    image_base64: str = Field(..., description='Image as base64 or data URL')
