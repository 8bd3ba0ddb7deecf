from app.models.user import User, UserRole
from app.models.issue import Issue, IssueStatus

__all__ = ["User", "UserRole", "Issue", "IssueStatus"]
