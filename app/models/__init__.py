"""Database models"""

from app.models.base import Base
from app.models.issue import Issue
from app.models.label import Label
from app.models.project import Project
from app.models.rate import Rate
from app.models.sync_log import SyncLog
from app.models.team import Team

__all__ = [
    "Base",
    "Team",
    "Project",
    "Issue",
    "Label",
    "Rate",
    "SyncLog",
]
