# File: app/routers/issues.py
import base64
import logging
from datetime import datetime, timedelta, timezone
from math import radians, cos, sin, asin, sqrt
from typing import Optional, Union

import requests
from fastapi import (
    APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, Request,
    Response, UploadFile, WebSocket, WebSocketDisconnect,
)
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.ratelimit import limiter
from app.core.security import get_optional_user, is_admin, require_role
from app.db.session import get_db
from app.models.issue import Issue, IssueStatus, parse_status
from app.models.user import User
from app.schemas.issue import (
    ChangeEvent,
    DuplicateIssueResponse,
    IssueOut,
    IssueStatusPatch,
    IssueUpdate,
    PaginatedIssuesOut,
    SortKey,
)
from app.services.changes import feed
from app.services.moderation import ImageModerator, get_moderator
from app.services.storage import make_object_key, upload_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/issues", tags=["issues"])

MAX_BYTES = 5 * 1024 * 1024
ALLOWED = {"image/jpeg", "image/png", "image/webp", "image/gif"}
DUPLICATE_RADIUS_M = 50
DUPLICATE_WINDOW = timedelta(hours=2)

SORTS = {
    "newest": (Issue.created_at.desc(), Issue.id.desc()),
    "oldest": (Issue.created_at.asc(), Issue.id.asc()),
    "priority": (Issue.priority_score.desc(), Issue.created_at.desc()),
    "upvotes": (Issue.upvotes.desc(), Issue.created_at.desc()),
}

admin_only = require_role("admin")


def _utcnow_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_utc(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def haversine(lat1, lon1, lat2, lon2):
    R = 6371000
    lat1, lon1, lat2, lon2 = map(radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * asin(sqrt(a))
    return R * c


def _record(obj: Issue) -> dict:
    return IssueOut.model_validate(obj).model_dump(mode="json")


def _publish(background_tasks: BackgroundTasks, event: str, record=None, old_record=None):
    background_tasks.add_task(
        feed.broadcast,
        ChangeEvent(event=event, record=record, old_record=old_record),
    )


def _get_issue(db: Session, issue_id: int) -> Issue:
    obj = db.query(Issue).filter(Issue.id == issue_id).first()
    if not obj:
        raise HTTPException(status_code=404, detail="Issue not found")
    return obj


def _status_or_400(raw: str) -> IssueStatus:
    try:
        return parse_status(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid status")


def _find_duplicate(db: Session, category: str, lat: float, lng: float) -> Optional[Issue]:
    since = _utcnow_naive() - DUPLICATE_WINDOW
    candidates = (
        db.query(Issue)
        .filter(
            Issue.category == category,
            Issue.created_at >= since,
            Issue.is_spam.is_(False),
            Issue.lat.isnot(None),
            Issue.lng.isnot(None),
        )
        .order_by(Issue.created_at.desc())
        .all()
    )
    for existing in candidates:
        if haversine(lat, lng, existing.lat, existing.lng) <= DUPLICATE_RADIUS_M:
            return existing
    return None


@router.websocket("/changes")
async def issue_changes(websocket: WebSocket):
    await feed.connect(websocket)
    try:
        while True:
            # clients never send anything useful; reading just notices the close
            await websocket.receive_text()
    except WebSocketDisconnect:
        feed.disconnect(websocket)


@router.post("", response_model=Union[IssueOut, DuplicateIssueResponse], status_code=201)
@limiter.limit("10/minute")
def create_issue(
    request: Request,
    background_tasks: BackgroundTasks,
    title: str = Form(...),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    lat: Optional[float] = Form(None),
    lng: Optional[float] = Form(None),
    location_name: Optional[str] = Form(None),
    bypass_duplicate_check: Optional[str] = Form(None),
    photo: Optional[UploadFile] = File(default=None),
    db: Session = Depends(get_db),
    auth: Optional[User] = Depends(get_optional_user),
    moderator: ImageModerator = Depends(get_moderator),
):
    title = title.strip()
    if not 3 <= len(title) <= 200:
        raise HTTPException(status_code=400, detail="Title must be between 3 and 200 characters")
    if (lat is None) != (lng is None):
        raise HTTPException(status_code=400, detail="Both lat and lng are required for a location")
    if lat is not None and not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise HTTPException(status_code=400, detail="Invalid coordinates")

    data = None
    if photo is not None:
        if photo.content_type not in ALLOWED:
            raise HTTPException(status_code=400, detail="Unsupported image type")
        data = photo.file.read()
        if not data:
            raise HTTPException(status_code=400, detail="Image is empty")
        if len(data) > MAX_BYTES:
            raise HTTPException(status_code=400, detail="Image exceeds 5MB")

    # Duplicate detection: same category within 50 m in the last 2 hours
    category = (category or "").strip() or None
    if lat is not None and category and bypass_duplicate_check != "true":
        existing = _find_duplicate(db, category, lat, lng)
        if existing:
            return DuplicateIssueResponse(
                duplicate=True,
                existing_issue_id=existing.id,
                message=(
                    f"A similar issue (#{existing.id}) was reported recently at this location. "
                    "Would you like to view it instead?"
                ),
            )

    if data is not None and settings.moderate_uploads:
        verdict = moderator.validate(base64.b64encode(data).decode("ascii"), photo.content_type)
        if not verdict.is_valid:
            raise HTTPException(status_code=400, detail=verdict.reason or "Image rejected by moderation")

    obj = Issue(
        title=title,
        description=description,
        category=category,
        lat=lat,
        lng=lng,
        location_name=(location_name or "").strip() or None,
        status=IssueStatus.pending,
        created_by_id=auth.id if auth else None,
    )
    db.add(obj)
    db.flush()

    if data is not None:
        key = make_object_key(obj.id, photo.filename or "upload.jpg")
        try:
            obj.image_url = upload_image(data, photo.content_type, key)
        except requests.RequestException as e:
            db.rollback()
            logger.error("Photo upload failed for new issue: %s", e, exc_info=True)
            raise HTTPException(status_code=502, detail="Image upload failed")

    db.commit()
    db.refresh(obj)
    logger.info("Issue #%s created (category=%s)", obj.id, obj.category)

    out = IssueOut.model_validate(obj)
    _publish(background_tasks, "INSERT", record=out.model_dump(mode="json"))
    return out


@router.get("", response_model=PaginatedIssuesOut)
def list_issues(
    db: Session = Depends(get_db),
    status: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    bbox: Optional[str] = Query(default=None, description="minLng,minLat,maxLng,maxLat"),
    include_spam: int = Query(default=0, ge=0, le=1),
    sort: SortKey = Query(default="newest"),
    limit: int = Query(default=20, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    auth: Optional[User] = Depends(get_optional_user),
):
    q = db.query(Issue)

    if status and status != "all":
        q = q.filter(Issue.status == _status_or_400(status))
    if category and category != "all":
        q = q.filter(Issue.category == category)

    if not (include_spam and is_admin(auth)):
        q = q.filter(Issue.is_spam.is_(False))

    if search:
        term = f"%{search}%"
        text_match = (
            Issue.title.ilike(term)
            | Issue.description.ilike(term)
            | Issue.location_name.ilike(term)
        )
        if search.isdigit():
            text_match = (Issue.id == int(search)) | text_match
        q = q.filter(text_match)

    if bbox:
        try:
            min_lng, min_lat, max_lng, max_lat = [float(x) for x in bbox.split(",")]
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid bbox format")
        q = q.filter(
            Issue.lng >= min_lng,
            Issue.lng <= max_lng,
            Issue.lat >= min_lat,
            Issue.lat <= max_lat,
        )

    total = q.count()
    items = q.order_by(*SORTS[sort]).offset(offset).limit(limit).all()
    return {
        "items": [IssueOut.model_validate(i) for i in items],
        "total": total,
        "offset": offset,
        "limit": limit,
    }


@router.get("/{issue_id}", response_model=IssueOut)
def get_issue(issue_id: int, db: Session = Depends(get_db)):
    return _get_issue(db, issue_id)


@router.patch("/{issue_id}/status", response_model=IssueOut)
def update_status(
    issue_id: int,
    body: IssueStatusPatch,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    new_status = _status_or_400(body.status)
    obj = _get_issue(db, issue_id)
    before = _record(obj)

    now = datetime.now(timezone.utc)
    if new_status != obj.status:
        if new_status == IssueStatus.in_progress:
            obj.in_progress_at = now
        if new_status == IssueStatus.resolved:
            obj.resolved_at = now
            elapsed = now - _as_utc(obj.created_at)
            obj.response_time_hours = round(max(elapsed.total_seconds(), 0) / 3600, 2)
        elif obj.status == IssueStatus.resolved:
            # reopened
            obj.resolved_at = None
            obj.response_time_hours = None
        obj.status = new_status
        obj.updated_at = now

    db.commit()
    db.refresh(obj)
    logger.info("Issue #%s set to %s by user %s", obj.id, obj.status.value, current_user.id)

    _publish(background_tasks, "UPDATE", record=_record(obj), old_record=before)
    return obj


@router.patch("/{issue_id}", response_model=IssueOut)
def update_issue(
    issue_id: int,
    body: IssueUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    obj = _get_issue(db, issue_id)
    changes = body.model_dump(exclude_unset=True)

    if changes.get("title") is not None:
        changes["title"] = changes["title"].strip()
        if not 3 <= len(changes["title"]) <= 200:
            raise HTTPException(status_code=400, detail="Title must be between 3 and 200 characters")
    if changes.get("assigned_to_id") is not None:
        if not db.query(User).filter(User.id == changes["assigned_to_id"]).first():
            raise HTTPException(status_code=400, detail="Assignee not found")
    if changes.get("duplicate_of_id") is not None:
        if changes["duplicate_of_id"] == obj.id:
            raise HTTPException(status_code=400, detail="An issue cannot duplicate itself")
        if not db.query(Issue).filter(Issue.id == changes["duplicate_of_id"]).first():
            raise HTTPException(status_code=400, detail="Duplicate target not found")
    for field in ("title", "is_spam", "priority_score"):
        if field in changes and changes[field] is None:
            raise HTTPException(status_code=400, detail=f"{field} cannot be null")

    before = _record(obj)
    for field, value in changes.items():
        setattr(obj, field, value.strip() if isinstance(value, str) else value)
    if changes:
        obj.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(obj)

    if changes:
        _publish(background_tasks, "UPDATE", record=_record(obj), old_record=before)
    return obj


@router.post("/{issue_id}/upvote", response_model=IssueOut)
@limiter.limit("30/minute")
def upvote_issue(
    request: Request,
    issue_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    obj = _get_issue(db, issue_id)
    before = _record(obj)
    db.query(Issue).filter(Issue.id == issue_id).update(
        {Issue.upvotes: Issue.upvotes + 1}, synchronize_session=False
    )
    db.commit()
    db.refresh(obj)

    _publish(background_tasks, "UPDATE", record=_record(obj), old_record=before)
    return obj


@router.delete("/{issue_id}", status_code=204)
def delete_issue(
    issue_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    obj = _get_issue(db, issue_id)
    before = _record(obj)
    db.query(Issue).filter(Issue.duplicate_of_id == issue_id).update(
        {Issue.duplicate_of_id: None}, synchronize_session=False
    )
    db.delete(obj)
    db.commit()
    logger.info("Issue #%s deleted by user %s", issue_id, current_user.id)

    _publish(background_tasks, "DELETE", old_record=before)
    return Response(status_code=204)
