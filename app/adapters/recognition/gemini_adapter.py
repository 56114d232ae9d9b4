from typing import Optional
from google import genai
from google.genai import types
from app.ports.recognition_port import RecognitionPort
from app.domain.models import EncodedImage
from app.core.config import settings


class GeminiAdapter(RecognitionPort):
    """
    Multimodal recognition through the Gemini API with structured JSON output.
    """
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key or settings.gemini_api_key
        self.model = model or settings.recognition_model
        self._client: Optional[genai.Client] = None

    @property
    def client(self) -> genai.Client:
        # Created on first use so a missing key surfaces as a request failure.
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key or None)
        return self._client

    async def generate(self, image: EncodedImage, prompt: str, response_schema: dict) -> str:
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=[
                types.Content(
                    role="user",
                    parts=[
                        types.Part.from_text(text=prompt),
                        types.Part.from_bytes(data=image.data, mime_type=image.mime_type),
                    ],
                )
            ],
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=response_schema,
            ),
        )
        return response.text or "{}"
