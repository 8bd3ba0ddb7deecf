# File: app/models/issue.py
from __future__ import annotations
from enum import Enum as PyEnum
from sqlalchemy import String, Float, Enum, Integer, Boolean, DateTime, ForeignKey, func, Index
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base

class IssueStatus(PyEnum):
    pending = "pending"
    in_progress = "in_progress"
    resolved = "resolved"

# spellings used by the public site and the older dashboard
STATUS_ALIASES = {
    "new": IssueStatus.pending,
    "in-progress": IssueStatus.in_progress,
}

def parse_status(raw: str | None) -> IssueStatus:
    value = (raw or "").strip().lower()
    if value in STATUS_ALIASES:
        return STATUS_ALIASES[value]
    return IssueStatus(value)

class Issue(Base):
    __tablename__ = "issues"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), index=True)
    description: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    category: Mapped[str | None] = mapped_column(String(120), index=True, nullable=True)
    status: Mapped[IssueStatus] = mapped_column(Enum(IssueStatus), default=IssueStatus.pending, index=True)

    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    upvotes: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    is_spam: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", index=True)
    duplicate_of_id: Mapped[int | None] = mapped_column(ForeignKey("issues.id", ondelete="SET NULL"), nullable=True)
    priority_score: Mapped[float] = mapped_column(Float, default=0.0, server_default="0")

    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assigned_to_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True)

    created_at: Mapped["DateTime"] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at: Mapped["DateTime | None"] = mapped_column(DateTime(timezone=True), nullable=True)

    in_progress_at: Mapped["DateTime | None"] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped["DateTime | None"] = mapped_column(DateTime(timezone=True), nullable=True)
    response_time_hours: Mapped[float | None] = mapped_column(Float, nullable=True)

Index("ix_issues_lat_lng", Issue.lat, Issue.lng)
