"""Project reconciliation"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Set, Tuple

from sqlalchemy.orm import Session

from app.models import Issue, Project, Team
from app.models.base import update_columns
from app.services import sanitizer
from app.services.errors import DependencyMissingError, ValidationError
from app.services.linear_client import LinearClient
from app.services.sanitizer import ProjectRecord

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ProjectSync:
    """Mirror upstream projects, team by team.

    A project belongs to the team whose listing it appeared under; the upstream
    guarantees that listing is authoritative.
    """

    def __init__(self, client: LinearClient):
        self.client = client
        self.stats: Dict[str, int] = {
            "created": 0,
            "updated": 0,
            "skipped_invalid": 0,
            "skipped_missing_team": 0,
        }
        # Projects shared by several teams are owned by the first team listing them.
        self.seen: Set[str] = set()

    def synchronize(self, tx: Session) -> None:
        logger.info("Fetching projects from Linear team by team")
        team_ids = [sanitizer.identifier(t, "team.id") for t in self.client.list_team_ids()]
        logger.info(f"Fetched {len(team_ids)} teams to process projects for")

        for team_id in team_ids:
            self._synchronize_team(tx, team_id)

        logger.info(f"Project synchronization step completed: {self.stats}")

    def _synchronize_team(self, tx: Session, team_id: str) -> None:
        if tx.get(Team, team_id) is None:
            err = DependencyMissingError(f"Team {team_id} is not stored locally")
            logger.warning(f"Skipping projects of team {team_id}: {err}")
            self.stats["skipped_missing_team"] += 1
            return

        for page in self.client.iter_team_projects(team_id):
            logger.debug(f"Processing {len(page.nodes)} projects for team {team_id}")
            for node in page.nodes:
                try:
                    record = sanitizer.project_record(node)
                except ValidationError as e:
                    project_id = node.get("id") if isinstance(node, dict) else None
                    logger.warning(f"Skipping project {project_id!r} of team {team_id}: {e}")
                    self.stats["skipped_invalid"] += 1
                    continue
                if record.id in self.seen:
                    logger.debug(f"Project {record.id} already assigned to another team in this run")
                    continue
                self.seen.add(record.id)
                self.upsert(tx, record, team_id)
            tx.flush()

    def upsert(self, tx: Session, record: ProjectRecord, team_id: str) -> Tuple[Project, bool]:
        """Insert or update a project by id, owned by `team_id`. Returns (project, created)."""
        values = {
            "name": record.name,
            "description": record.description or None,
            "state": record.state,
            "start_date": record.start_date.date() if record.start_date else None,
            "target_date": record.target_date.date() if record.target_date else None,
            "team_id": team_id,
            "updated_at": record.updated_at,
        }
        project = tx.get(Project, record.id)
        if project is None:
            project = Project(id=record.id, created_at=record.created_at or _utcnow(), **values)
            tx.add(project)
            tx.flush()
            self.stats["created"] += 1
            return project, True

        if record.created_at is not None:
            values["created_at"] = record.created_at
        if update_columns(project, values):
            self.stats["updated"] += 1
        return project, False

    @staticmethod
    def delete(tx: Session, project_id: str) -> Tuple[bool, List[Issue]]:
        """Delete a project; its issues lose the reference but stay.

        Returns (deleted, detached_issues). A missing project is a no-op.
        """
        project = tx.get(Project, project_id)
        if project is None:
            return False, []

        detached = tx.query(Issue).filter(Issue.project_id == project_id).all()
        for issue in detached:
            issue.project_id = None
        tx.flush()
        tx.delete(project)
        tx.flush()
        return True, detached
