from app.models.ai import AiRateLimit, IssueAiCache
from app.models.issue import Issue
from app.models.label import Label, label_issues
from app.models.project import Project
from app.models.team import Team, TeamMember
from app.models.user import User

__all__ = [
    "AiRateLimit",
    "Issue",
    "IssueAiCache",
    "Label",
    "Project",
    "Team",
    "TeamMember",
    "User",
    "label_issues",
]
