"""Full reconciliation of the local mirror against Linear"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.models import Issue, Label, Project, Team
from app.services.cleanup_sync import CleanupSync
from app.services.errors import StorageError
from app.services.issue_sync import IssueSync
from app.services.linear_client import LinearClient
from app.services.project_sync import ProjectSync
from app.services.publisher import IssueEventPublisher, LoggingPublisher, publish_all
from app.services.team_sync import TeamSync

logger = logging.getLogger(__name__)


class SyncService:
    """Run teams -> projects -> issues -> cleanup as one transaction"""

    def __init__(
        self,
        db: Session,
        client: Optional[LinearClient] = None,
        publisher: Optional[IssueEventPublisher] = None,
    ):
        self.db = db
        self.client = client
        self.publisher = publisher if publisher is not None else LoggingPublisher()
        self._owns_client = False

    def _get_client(self) -> LinearClient:
        if self.client is None:
            self.client = LinearClient.from_settings(settings)
            self._owns_client = True
        return self.client

    def close(self):
        """Close the upstream client if this service created it"""
        if self._owns_client and self.client is not None:
            self.client.close()
            self.client = None
            self._owns_client = False

    def run_full(self) -> Dict[str, Any]:
        """Reconcile everything. Either all changes commit or none do."""
        client = self._get_client()
        logger.info("Starting full synchronization")

        teams = TeamSync(client)
        projects = ProjectSync(client)
        issues = IssueSync(client)
        cleanup = CleanupSync(client)

        try:
            teams.synchronize(self.db)
            projects.synchronize(self.db)
            issues.synchronize(self.db)
            cleanup.synchronize(self.db)
            stats = self._collect_stats(teams, projects, issues, cleanup)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Full synchronization failed, rolled back: {e}")
            raise StorageError(f"Database error during full synchronization: {e}") from e
        except Exception as e:
            self.db.rollback()
            logger.error(f"Full synchronization failed, rolled back: {e}")
            raise

        events: List[Dict[str, Any]] = issues.events + cleanup.events
        stats["events_published"] = publish_all(self.publisher, events)
        logger.info(f"Full synchronization completed: {stats}")
        return stats

    def _collect_stats(
        self, teams: TeamSync, projects: ProjectSync, issues: IssueSync, cleanup: CleanupSync
    ) -> Dict[str, Any]:
        def count(column) -> int:
            return self.db.query(func.count(column)).scalar() or 0

        return {
            "teams": count(Team.id),
            "projects": count(Project.id),
            "issues": count(Issue.id),
            "labels": count(Label.id),
            "teams_created": teams.stats["created"],
            "teams_updated": teams.stats["updated"],
            "projects_created": projects.stats["created"],
            "projects_updated": projects.stats["updated"],
            "issues_created": issues.stats["created"],
            "issues_updated": issues.stats["updated"],
            "skipped": (
                projects.stats["skipped_invalid"]
                + projects.stats["skipped_missing_team"]
                + issues.stats["skipped_no_project"]
                + issues.stats["skipped_missing_project"]
                + issues.stats["skipped_invalid"]
            ),
            "deleted": (
                cleanup.stats["projects_deleted"]
                + cleanup.stats["teams_deleted"]
                + cleanup.stats["rates_deleted"]
            ),
            "issues_detached": cleanup.stats["issues_detached"],
            "teams_retained": cleanup.stats["teams_retained"],
        }
