#app\services\gemini.py
import logging
import requests
from app.core.config import settings

logger = logging.getLogger(__name__)

CAPACITY_STATUSES = {503}


class UpstreamError(Exception):
    """The generative API could not produce an answer."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def is_capacity_error(exc: BaseException) -> bool:
    return isinstance(exc, UpstreamError) and exc.status_code in CAPACITY_STATUSES


class GeminiClient:
    """Minimal REST client for the Gemini generateContent endpoint."""

    def __init__(self, api_key: str | None, model: str, api_base: str, timeout: float = 30,
                 temperature: float = 0.3, max_output_tokens: int = 200):
        self.api_key = api_key
        self.model = model
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    @classmethod
    def from_settings(cls) -> "GeminiClient":
        return cls(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            api_base=settings.gemini_api_base,
            timeout=settings.gemini_timeout,
        )

    @property
    def url(self) -> str:
        return f"{self.api_base}/models/{self.model}:generateContent"

    def build_request(self, prompt: str, image_b64: str, mime_type: str) -> dict:
        return {
            "contents": [
                {
                    "parts": [
                        {"text": prompt},
                        {"inline_data": {"mime_type": mime_type, "data": image_b64}},
                    ]
                }
            ],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
            },
        }

    def generate(self, prompt: str, image_b64: str, mime_type: str) -> str:
        """Send one request and return the first candidate's text."""
        if not self.api_key:
            raise UpstreamError("GEMINI_API_KEY is not configured")
        try:
            r = requests.post(
                self.url,
                params={"key": self.api_key},
                json=self.build_request(prompt, image_b64, mime_type),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Gemini request failed: {e}") from e

        if not r.ok:
            logger.error("Gemini API error: %s %s", r.status_code, r.text[:500])
            raise UpstreamError(f"Gemini API returned {r.status_code}", status_code=r.status_code)

        try:
            data = r.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamError("Invalid response from Gemini API") from e
        if not isinstance(text, str):
            raise UpstreamError("Invalid response from Gemini API")
        logger.info("Gemini API response received")
        return text
