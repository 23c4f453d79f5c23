"""Apply single change notifications to the local mirror"""

import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.models import Project, SyncLog, Team
from app.models.sync_log import SyncKind, SyncStatus
from app.services import sanitizer
from app.services.errors import DependencyMissingError
from app.services.issue_sync import IssueSync
from app.services.linear_client import LinearClient
from app.services.project_sync import ProjectSync
from app.services.publisher import IssueEventPublisher, LoggingPublisher, issue_event, publish_all
from app.services.sanitizer import IssueRecord, ProjectRecord
from app.services.team_sync import TeamSync

logger = logging.getLogger(__name__)

APPLIED = "applied"
DROPPED = "dropped"
IGNORED = "ignored"
FAILED = "failed"


class DeltaService:
    """Apply `{action, type, data}` notifications, one transaction each.

    Only Project and Issue notifications are handled. A notification that fails
    is rolled back on its own and reported; it never affects other notifications.
    """

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

    def _get_client(self) -> Optional[LinearClient]:
        if self.client is None and settings.linear_api_key:
            self.client = LinearClient.from_settings(settings)
            self._owns_client = True
        return self.client

    def close(self):
        """Close the upstream client if this service created it"""
        if self._owns_client and self.client is not None:
            self.client.close()
            self.client = None
            self._owns_client = False

    def apply(self, notification: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(notification, dict):
            logger.warning(f"Ignoring malformed notification: {notification!r}")
            return {"status": IGNORED}

        entity = notification.get("type")
        action = notification.get("action")
        data = notification.get("data")
        result = {"type": entity, "action": action}

        handlers = {
            ("Project", "create"): self._apply_project_upsert,
            ("Project", "update"): self._apply_project_upsert,
            ("Project", "remove"): self._apply_project_remove,
            ("Issue", "create"): self._apply_issue_upsert,
            ("Issue", "update"): self._apply_issue_upsert,
            ("Issue", "remove"): self._apply_issue_remove,
        }
        handler = handlers.get((entity, action))
        if handler is None:
            logger.debug(f"Ignoring notification {entity}/{action}")
            return {**result, "status": IGNORED}

        events: List[Dict[str, Any]] = []
        try:
            outcome = handler(data, events)
            if outcome["status"] == APPLIED:
                self.db.commit()
            else:
                self.db.rollback()
                self._log(SyncStatus.SKIPPED, f"{entity}/{action} dropped: {outcome.get('reason')}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to apply {entity}/{action} notification: {e}")
            self._log(SyncStatus.FAILED, f"{entity}/{action} failed: {e}", {"error": type(e).__name__})
            return {**result, "status": FAILED, "error": type(e).__name__}

        if outcome["status"] == APPLIED:
            publish_all(self.publisher, events)
        return {**result, **outcome}

    def _log(self, status: SyncStatus, message: str, details: Optional[Dict[str, Any]] = None):
        """Record a dropped or failed notification in its own transaction"""
        try:
            self.db.add(
                SyncLog(
                    kind=SyncKind.DELTA,
                    status=status,
                    message=message,
                    details=json.dumps(details) if details else None,
                )
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to persist sync log entry: {e}")

    # Projects

    def _apply_project_upsert(self, data: Any, events: List[Dict[str, Any]]) -> Dict[str, Any]:
        record = sanitizer.project_record(data)
        if not record.team_ids:
            logger.warning(f"Dropping project {record.id}: no team reference")
            return {"status": DROPPED, "id": record.id, "reason": "no team reference"}

        team_id = record.team_ids[0]
        if not self._ensure_team(team_id):
            err = DependencyMissingError(f"Team {team_id} is not stored locally")
            logger.warning(f"Dropping project {record.id}: {err}")
            return {"status": DROPPED, "id": record.id, "reason": str(err)}

        _, created = ProjectSync(self.client).upsert(self.db, record, team_id)
        self.db.flush()
        logger.info(f"{'Created' if created else 'Updated'} project {record.id} from notification")
        return {"status": APPLIED, "id": record.id}

    def _ensure_team(self, team_id: str) -> bool:
        """True if the team is stored locally, refreshing teams from upstream once if not."""
        if self.db.get(Team, team_id) is not None:
            return True
        client = self._get_client()
        if client is None:
            return False
        logger.info(f"Team {team_id} unknown locally, refreshing teams from Linear")
        TeamSync(client).synchronize(self.db)
        return self.db.get(Team, team_id) is not None

    def _apply_project_remove(self, data: Any, events: List[Dict[str, Any]]) -> Dict[str, Any]:
        project_id = sanitizer.identifier(data.get("id") if isinstance(data, dict) else data, "project.id")
        deleted, detached = ProjectSync.delete(self.db, project_id)
        if not deleted:
            logger.info(f"Project {project_id} already absent, nothing to remove")
        events.extend(issue_event(issue, "update") for issue in detached)
        return {"status": APPLIED, "id": project_id}

    # Issues

    def _apply_issue_upsert(self, data: Any, events: List[Dict[str, Any]]) -> Dict[str, Any]:
        record = sanitizer.issue_record(data)
        project_id = self._resolve_project(record)
        if project_id is None:
            return {"status": DROPPED, "id": record.id, "reason": "no project could be resolved"}

        issues = IssueSync(self.client)
        _, created = issues.upsert(
            self.db, record, project_id=project_id, replace_labels="labels" in data
        )
        events.extend(issues.events)
        logger.info(f"{'Created' if created else 'Updated'} issue {record.id} from notification")
        return {"status": APPLIED, "id": record.id}

    def _resolve_project(self, record: IssueRecord) -> Optional[str]:
        """Pick the project an issue notification belongs to.

        An explicit reference must exist locally. Without one, fall back to the
        newest project of the issue's team, then the newest project overall,
        then the fallback project.
        """
        if record.project_id:
            if self.db.get(Project, record.project_id) is not None:
                return record.project_id
            logger.warning(
                f"Dropping issue {record.id}: project {record.project_id} is not stored locally"
            )
            return None

        if record.team_id:
            project = (
                self.db.query(Project)
                .filter(Project.team_id == record.team_id)
                .order_by(Project.created_at.desc())
                .first()
            )
            if project is not None:
                logger.info(f"Issue {record.id} assigned to newest project {project.id} of its team")
                return project.id

        project = self.db.query(Project).order_by(Project.created_at.desc()).first()
        if project is not None:
            logger.info(f"Issue {record.id} assigned to newest project {project.id}")
            return project.id

        fallback = self._fallback_project(record)
        if fallback is None:
            logger.warning(f"Dropping issue {record.id}: no project or team to place it in")
            return None
        return fallback.id

    def _fallback_project(self, record: IssueRecord) -> Optional[Project]:
        project = self.db.get(Project, settings.fallback_project_id)
        if project is not None:
            return project

        team = self.db.get(Team, record.team_id) if record.team_id else None
        if team is None:
            team = self.db.query(Team).order_by(Team.created_at, Team.id).first()
        if team is None:
            return None

        fallback = ProjectRecord(
            id=settings.fallback_project_id,
            name=settings.fallback_project_name,
            description="",
            state="Active",
            start_date=None,
            target_date=None,
            created_at=None,
            updated_at=None,
            team_ids=(team.id,),
        )
        project, _ = ProjectSync(self.client).upsert(self.db, fallback, team.id)
        self.db.flush()
        logger.warning(f"Created fallback project {project.id} owned by team {team.id}")
        return project

    def _apply_issue_remove(self, data: Any, events: List[Dict[str, Any]]) -> Dict[str, Any]:
        issue_id = sanitizer.identifier(data.get("id") if isinstance(data, dict) else data, "issue.id")
        issues = IssueSync(self.client)
        if not issues.delete(self.db, issue_id):
            logger.info(f"Issue {issue_id} already absent, nothing to remove")
        events.extend(issues.events)
        return {"status": APPLIED, "id": issue_id}
