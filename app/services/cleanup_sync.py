"""Orphan cleanup, the last step of a full reconciliation"""

import logging
from typing import Any, Dict, List, Set

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models import Issue, Project, Rate, Team
from app.services.linear_client import LinearClient
from app.services.project_sync import ProjectSync
from app.services.publisher import issue_event

logger = logging.getLogger(__name__)


class CleanupSync:
    """Remove local rows that upstream no longer justifies.

    Runs projects -> teams -> rates so that each dependent count reflects the
    deletions made just before it. Id sets are fetched fresh rather than reused
    from earlier steps, to pick up upstream changes made during the run.
    """

    def __init__(self, client: LinearClient):
        self.client = client
        self.events: List[Dict[str, Any]] = []
        self.stats: Dict[str, int] = {
            "projects_deleted": 0,
            "teams_deleted": 0,
            "teams_retained": 0,
            "rates_deleted": 0,
            "issues_detached": 0,
        }

    def synchronize(self, tx: Session) -> None:
        logger.info("Cleaning up orphaned records")
        upstream_team_ids = set(self.client.list_team_ids())
        upstream_project_ids = set(self.client.list_project_ids())

        touched: Dict[str, Issue] = {}
        self.cleanup_projects(tx, upstream_project_ids, touched)
        self.cleanup_teams(tx, upstream_team_ids)
        self.detach_issues_from_missing_teams(tx, touched)
        self.cleanup_rates(tx)

        self.stats["issues_detached"] = len(touched)
        self.events.extend(issue_event(issue, "update") for issue in touched.values())
        logger.info(f"Orphaned records cleanup completed: {self.stats}")

    def cleanup_projects(
        self, tx: Session, upstream_project_ids: Set[str], touched: Dict[str, Issue]
    ) -> None:
        orphaned = [p for p in tx.query(Project).all() if p.id not in upstream_project_ids]
        if orphaned:
            logger.warning(f"Deleting {len(orphaned)} orphaned projects")
        for project in orphaned:
            deleted, detached = ProjectSync.delete(tx, project.id)
            if deleted:
                self.stats["projects_deleted"] += 1
            for issue in detached:
                touched[issue.id] = issue

    def cleanup_teams(self, tx: Session, upstream_team_ids: Set[str]) -> None:
        orphaned = [t for t in tx.query(Team).all() if t.id not in upstream_team_ids]
        for team in orphaned:
            project_count = tx.query(func.count(Project.id)).filter(Project.team_id == team.id).scalar()
            rate_count = tx.query(func.count(Rate.id)).filter(Rate.team_id == team.id).scalar()
            if project_count == 0 and rate_count == 0:
                logger.warning(f"Deleting orphaned team {team.id}")
                tx.delete(team)
                self.stats["teams_deleted"] += 1
            else:
                logger.warning(
                    f"Orphaned team {team.id} has local data "
                    f"({project_count} projects, {rate_count} rates). Keeping it."
                )
                self.stats["teams_retained"] += 1
        tx.flush()

    def detach_issues_from_missing_teams(self, tx: Session, touched: Dict[str, Issue]) -> None:
        valid_team_ids = {team_id for (team_id,) in tx.query(Team.id).all()}
        for issue in tx.query(Issue).filter(Issue.team_key.isnot(None)).all():
            if issue.team_key not in valid_team_ids:
                issue.team_key = None
                touched[issue.id] = issue
        tx.flush()

    def cleanup_rates(self, tx: Session) -> None:
        valid_team_ids = {team_id for (team_id,) in tx.query(Team.id).all()}
        orphaned = [r for r in tx.query(Rate).all() if r.team_id not in valid_team_ids]
        if orphaned:
            logger.warning(f"Deleting {len(orphaned)} orphaned rates")
        for rate in orphaned:
            tx.delete(rate)
            self.stats["rates_deleted"] += 1
        tx.flush()
