from enum import Enum
from pydantic import BaseModel, Field, field_validator
from typing import Optional, Literal, Any
from datetime import datetime

Status = Literal["pending", "in_progress", "resolved"]
SortKey = Literal["newest", "oldest", "priority", "upvotes"]


class IssueOut(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    status: Status

    lat: Optional[float] = None
    lng: Optional[float] = None
    location_name: Optional[str] = None
    image_url: Optional[str] = None

    upvotes: int = 0
    is_spam: bool = False
    duplicate_of_id: Optional[int] = None
    priority_score: float = 0.0

    created_by_id: Optional[int] = None
    assigned_to_id: Optional[int] = None

    created_at: datetime
    updated_at: Optional[datetime] = None
    in_progress_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    response_time_hours: Optional[float] = None

    class Config:
        from_attributes = True

    @field_validator("status", mode="before")
    @classmethod
    def _enum_value(cls, v: Any):
        return v.value if isinstance(v, Enum) else v


class IssueStatusPatch(BaseModel):
    # aliases such as "new" / "in-progress" are resolved by the router
    status: str


class IssueUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None
    assigned_to_id: Optional[int] = None
    priority_score: Optional[float] = Field(default=None, ge=0)
    is_spam: Optional[bool] = None
    duplicate_of_id: Optional[int] = None


class PaginatedIssuesOut(BaseModel):
    items: list[IssueOut]
    total: int
    offset: int
    limit: int


class DuplicateIssueResponse(BaseModel):
    duplicate: bool = True
    existing_issue_id: int
    message: str


class ChangeEvent(BaseModel):
    event: Literal["INSERT", "UPDATE", "DELETE"]
    table: str = "issues"
    record: Optional[dict] = None
    old_record: Optional[dict] = None
