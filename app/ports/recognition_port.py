from typing import Protocol
from app.domain.models import EncodedImage


class RecognitionPort(Protocol):
    async def generate(self, image: EncodedImage, prompt: str, response_schema: dict) -> str:
        """Returns the service's raw JSON text. Transport errors propagate."""
        ...
