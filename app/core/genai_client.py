# app/core/genai_client.py
import logging
from typing import Optional, Dict, Any, List, Union
import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from app.core.exceptions import ProviderError

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"

DEFAULT_VISION_GENERATION_CONFIG: Dict[str, Any] = {
    "temperature": 0.1,
    "top_p": 0.85,
    "top_k": 40,
    "max_output_tokens": 16384,
}

# Failures that retrying within the same chain run cannot fix.
_CRITICAL_EXCEPTIONS = (
    google_exceptions.Unauthenticated,
    google_exceptions.PermissionDenied,
    google_exceptions.ResourceExhausted,
)


class GeminiVisionClient:
    """Single-attempt Gemini client. Errors come back as ``ProviderError``."""

    DEFAULT_SAFETY_SETTINGS = [
        {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
        {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
        {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
        {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    ]

    def __init__(
        self,
        api_key: Optional[str],
        model_name: str = DEFAULT_GEMINI_MODEL,
        max_output_tokens: Optional[int] = None,
        provider_name: str = "gemini",
    ):
        self.provider_name = provider_name
        self.model_name = model_name
        self.generation_config = DEFAULT_VISION_GENERATION_CONFIG.copy()
        if max_output_tokens:
            self.generation_config["max_output_tokens"] = max_output_tokens
        self._api_key = api_key
        self._model: Optional[genai.GenerativeModel] = None

    def _get_model(self) -> genai.GenerativeModel:
        if self._model is None:
            if not self._api_key:
                raise ProviderError.critical("GOOGLE_API_KEY is not configured", self.provider_name)
            genai.configure(api_key=self._api_key)
            self._model = genai.GenerativeModel(self.model_name)
        return self._model

    async def generate_content_async(self, prompt: Union[str, List[Any]]) -> str:
        """
        Generate content once and return the response text.

        Raises:
            ProviderError: critical for auth/quota failures, transient otherwise
        """
        model = self._get_model()
        try:
            response = await model.generate_content_async(
                prompt,
                generation_config=self.generation_config,
                safety_settings=self.DEFAULT_SAFETY_SETTINGS,
            )
        except _CRITICAL_EXCEPTIONS as e:
            logger.error(f"Gemini API {type(e).__name__}: {str(e)}")
            raise ProviderError.critical(f"{type(e).__name__}: {e}", self.provider_name) from e
        except google_exceptions.GoogleAPIError as e:
            logger.warning(f"Gemini API {type(e).__name__}: {str(e)}")
            raise ProviderError.transient(f"{type(e).__name__}: {e}", self.provider_name) from e

        return self._validate_response(response)

    def _validate_response(self, response: Any) -> str:
        # .text raises ValueError when the candidate was blocked or has no parts
        try:
            text = response.text if response is not None else None
        except ValueError as e:
            raise ProviderError.transient(f"Gemini returned no text: {e}", self.provider_name) from e
        if not text or not text.strip():
            raise ProviderError.transient("Empty response from Gemini API", self.provider_name)
        return text
