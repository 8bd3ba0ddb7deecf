import math
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ValidateImageIn(BaseModel):
    # optional so a missing image is answered with our own 400, not a 422
    imageBase64: Optional[str] = None
    imageType: Optional[str] = None


class Verdict(BaseModel):
    """Moderation answer for one image.

    Field names follow the JSON the model is asked to produce, so a decoded
    answer validates straight into this model.
    """
    model_config = ConfigDict(populate_by_name=True)

    is_valid: bool = Field(alias="isValid")
    reason: str = ""
    confidence: int = Field(default=0, ge=0, le=100)
    fallback: bool = False

    @field_validator("reason", mode="before")
    @classmethod
    def _reason_text(cls, v: Any):
        return "" if v is None else str(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: Any):
        if v is None:
            return 0
        if isinstance(v, bool):
            raise ValueError("confidence must be a number")
        v = float(v)
        if not math.isfinite(v):
            raise ValueError("confidence must be a finite number")
        return max(0, min(100, round(v)))
