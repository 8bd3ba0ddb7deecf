# app/routers/issues_stats.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from datetime import date, datetime, timedelta, timezone
from sqlalchemy import func
from typing import Optional
from app.db.session import get_db
from app.models.issue import Issue, IssueStatus

router = APIRouter(prefix="/issues/stats", tags=["issues:stats"])

STATUS_KEYS = [s.value for s in IssueStatus]

def range_to_dt(range_key: str) -> Optional[datetime]:
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    if range_key == "today": return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if range_key == "7d": return now - timedelta(days=7)
    if range_key == "30d": return now - timedelta(days=30)
    if range_key == "90d": return now - timedelta(days=90)
    if range_key == "year": return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return None

def _since(q, range_key: str):
    since = range_to_dt(range_key)
    if since:
        q = q.filter(Issue.created_at >= since)
    return q

def _day(value) -> str:
    # func.date() comes back as a string on SQLite and a date on Postgres
    return value.isoformat() if isinstance(value, date) else str(value)

@router.get("/summary")
def summary(range: str = Query("7d"), db: Session = Depends(get_db)):
    base = _since(db.query(Issue), range)
    spam = base.filter(Issue.is_spam.is_(True)).count()
    q = base.filter(Issue.is_spam.is_(False))

    counts = dict.fromkeys(STATUS_KEYS, 0)
    for status_obj, n in q.with_entities(Issue.status, func.count(Issue.id)).group_by(Issue.status):
        counts[status_obj.value] = n

    avg_hours = (
        q.filter(Issue.status == IssueStatus.resolved, Issue.response_time_hours.isnot(None))
        .with_entities(func.avg(Issue.response_time_hours))
        .scalar()
    )
    return {
        "total": sum(counts.values()),
        **counts,
        "spam": spam,
        "avg_response_hours": round(float(avg_hours), 2) if avg_hours is not None else None,
    }

@router.get("/by-category")
def by_category(range: str = Query("7d"), db: Session = Depends(get_db)):
    q = _since(db.query(Issue.category, func.count(Issue.id)), range)
    q = q.filter(Issue.is_spam.is_(False))
    q = q.group_by(Issue.category).order_by(func.count(Issue.id).desc())
    return [{"category": c or "unknown", "count": n} for c, n in q.all()]

@router.get("/by-category-status")
def by_category_status(range: str = Query("7d"), db: Session = Depends(get_db)):
    q = db.query(Issue.category, Issue.status, func.count(Issue.id).label("count"))
    q = _since(q, range).filter(Issue.is_spam.is_(False))
    q = q.group_by(Issue.category, Issue.status)

    by_cat: dict[str, dict[str, int]] = {}
    for cat, status_obj, count in q.all():
        row = by_cat.setdefault(cat or "unknown", dict.fromkeys(STATUS_KEYS, 0))
        row[status_obj.value] += count

    return [
        {"category": cat, **data}
        for cat, data in sorted(by_cat.items(), key=lambda x: sum(x[1].values()), reverse=True)
    ]

@router.get("/trend")
def trend(days: int = Query(30, ge=1, le=365), db: Session = Depends(get_db)):
    today = datetime.now(timezone.utc).date()
    first = today - timedelta(days=days - 1)
    since = datetime.combine(first, datetime.min.time())

    created = (
        db.query(func.date(Issue.created_at), func.count(Issue.id))
        .filter(Issue.created_at >= since, Issue.is_spam.is_(False))
        .group_by(func.date(Issue.created_at))
        .all()
    )
    resolved = (
        db.query(func.date(Issue.resolved_at), func.count(Issue.id))
        .filter(Issue.resolved_at.isnot(None), Issue.resolved_at >= since, Issue.is_spam.is_(False))
        .group_by(func.date(Issue.resolved_at))
        .all()
    )
    created_by_day = {_day(d): n for d, n in created}
    resolved_by_day = {_day(d): n for d, n in resolved}

    out = []
    for i in range(days):
        key = (first + timedelta(days=i)).isoformat()
        out.append({"date": key, "created": created_by_day.get(key, 0), "resolved": resolved_by_day.get(key, 0)})
    return out
