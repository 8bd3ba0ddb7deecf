#app\services\moderation.py
"""Image moderation gate for report photos.

The gate asks a vision model whether a photo shows a civic issue, retries
while the model is over capacity and reads its answer tolerantly. When the
model cannot be reached the photo is let through with a ``fallback`` verdict
so a moderation outage never blocks a report.
"""
import json
import logging
import re

from pydantic import ValidationError

from app.core.config import settings
from app.schemas.moderation import Verdict
from app.services.gemini import GeminiClient, UpstreamError, is_capacity_error
from app.services.retry import retry_with_backoff

logger = logging.getLogger(__name__)

PROMPT = """Please analyze this image to determine if it's appropriate for a civic issue report.

Valid civic issues include:
- Infrastructure problems (broken roads, sidewalks, streetlights)
- Public safety concerns (damaged signs, hazardous conditions)
- Environmental issues (illegal dumping, water leaks)
- Public facilities problems (broken benches, graffiti on public property)

Invalid images include:
- Private property issues
- Personal photos unrelated to civic issues
- Inappropriate or offensive content
- Screenshots, memes, or non-photographic content
- Completely unrelated images (food, pets, selfies, etc.)

Respond with a JSON object containing:
- "isValid": boolean (true if the image shows a legitimate civic issue)
- "reason": string (brief explanation of why it's valid/invalid)
- "confidence": number (0-100, how confident you are in this assessment)

Be strict but fair in your assessment. Only approve images that clearly show civic infrastructure or public space issues."""

DATA_URL_PREFIX = re.compile(r"^data:[\w.+-]+/[\w.+-]+;base64,", re.IGNORECASE)
JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
CIVIC_TERMS = ("civic", "infrastructure", "public")

KEYWORD_CONFIDENCE = 75
CIVIC_TERMS_CONFIDENCE = 60
FALLBACK_CONFIDENCE = 50
REASON_LIMIT = 200

CAPACITY_FALLBACK_REASON = (
    "AI validation service is temporarily unavailable. Image uploaded without AI validation."
)
ERROR_FALLBACK_REASON = (
    "AI validation temporarily unavailable. Please ensure your image shows a civic issue."
)


class MissingImageError(ValueError):
    pass


def strip_data_url(image_b64: str) -> str:
    return DATA_URL_PREFIX.sub("", image_b64.strip(), count=1)


def _keyword_verdict(text: str) -> Verdict:
    lowered = text.lower()
    is_valid = "valid" in lowered and "invalid" not in lowered and "not valid" not in lowered
    return Verdict(is_valid=is_valid, reason=text[:REASON_LIMIT], confidence=KEYWORD_CONFIDENCE)


def _civic_terms_verdict(text: str) -> Verdict:
    lowered = text.lower()
    return Verdict(
        is_valid=any(term in lowered for term in CIVIC_TERMS),
        reason="AI analysis completed with basic text parsing",
        confidence=CIVIC_TERMS_CONFIDENCE,
    )


def parse_verdict(text: str) -> Verdict:
    """Read the model's answer: embedded JSON first, keyword heuristics otherwise."""
    match = JSON_OBJECT.search(text)
    if match is None:
        return _keyword_verdict(text)
    try:
        verdict = Verdict.model_validate(json.loads(match.group(0)))
    except (json.JSONDecodeError, ValidationError, TypeError, OverflowError) as e:
        logger.warning("Could not parse verdict JSON from model answer: %s", e)
        return _civic_terms_verdict(text)
    # the model does not get to mark its own answer as a fallback
    verdict.fallback = False
    return verdict


def fallback_verdict(exc: BaseException) -> Verdict:
    reason = CAPACITY_FALLBACK_REASON if is_capacity_error(exc) else ERROR_FALLBACK_REASON
    return Verdict(is_valid=True, reason=reason, confidence=FALLBACK_CONFIDENCE, fallback=True)


class ImageModerator:
    def __init__(self, client: GeminiClient, max_retries: int = 3, base_delay: float = 2.0):
        self.client = client
        self.max_retries = max_retries
        self.base_delay = base_delay

    @classmethod
    def from_settings(cls) -> "ImageModerator":
        return cls(
            GeminiClient.from_settings(),
            max_retries=settings.moderation_max_retries,
            base_delay=settings.moderation_base_delay,
        )

    def _ask_model(self, image_b64: str, mime_type: str) -> str:
        @retry_with_backoff(
            is_capacity_error,
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            exception=UpstreamError,
        )
        def ask_gemini():
            return self.client.generate(PROMPT, image_b64, mime_type)

        return ask_gemini()

    def validate(self, image_b64: str | None, mime_type: str | None = None) -> Verdict:
        payload = strip_data_url(image_b64 or "")
        if not payload:
            raise MissingImageError("Image data is required")
        logger.info("Sending image to Gemini for validation (%s, %d chars)", mime_type or "image/jpeg", len(payload))
        try:
            text = self._ask_model(payload, mime_type or "image/jpeg")
        except UpstreamError as e:
            logger.warning("Image validation failed open: %s", e)
            return fallback_verdict(e)

        verdict = parse_verdict(text)
        logger.info("Validation result: valid=%s confidence=%s", verdict.is_valid, verdict.confidence)
        return verdict


def get_moderator() -> ImageModerator:
    return ImageModerator.from_settings()
