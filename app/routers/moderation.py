# File: app/routers/moderation.py
from fastapi import APIRouter, Depends, HTTPException, Request

from app.core.ratelimit import limiter
from app.schemas.moderation import ValidateImageIn, Verdict
from app.services.moderation import ImageModerator, MissingImageError, get_moderator

router = APIRouter(tags=["moderation"])


@router.post("/validate-image", response_model=Verdict, response_model_by_alias=True)
@limiter.limit("20/minute")
def validate_image(
    request: Request,
    body: ValidateImageIn,
    moderator: ImageModerator = Depends(get_moderator),
):
    try:
        return moderator.validate(body.imageBase64, body.imageType)
    except MissingImageError as e:
        raise HTTPException(status_code=400, detail=str(e))
