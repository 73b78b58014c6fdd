# clinicdesk/services/generative_client.py
import logging
from typing import List, Dict, Optional

from fastapi import status
from google import genai
from google.genai import types

from ..config import get_settings
from ..exceptions import ApiError

logger = logging.getLogger(__name__)


class GenerativeTextClient:
    """Thin wrapper over the Gemini text API.

    ``messages`` is a list of ``{"role": "user" | "assistant", "content": str}``
    dicts; the assistant role is sent to Gemini as ``model``.
    """

    def __init__(self, api_key: Optional[str], model: str):
        self.model = model
        self.enabled = bool(api_key)
        self._client = genai.Client(api_key=api_key) if api_key else None

    def generate(self, system_prompt: str, messages: List[Dict[str, str]]) -> str:
        if not self.enabled:
            raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "AI assistant is not configured")

        contents = [
            types.Content(
                role="model" if message["role"] == "assistant" else "user",
                parts=[types.Part(text=message["content"])],
            )
            for message in messages
        ]
        try:
            response = self._client.models.generate_content(
                model=self.model,
                contents=contents,
                config=types.GenerateContentConfig(system_instruction=system_prompt),
            )
        except Exception as e:
            logger.error(f"Gemini request failed: {e}")
            raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, f"AI service error: {e}")

        return response.text or ""


def get_ai_client() -> GenerativeTextClient:
    settings = get_settings()
    return GenerativeTextClient(settings.gemini_api_key, settings.ai_model)
