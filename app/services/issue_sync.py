"""Issue reconciliation"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from app.models import Issue, Label, Project, Team
from app.models.base import update_columns
from app.services import sanitizer
from app.services.errors import DependencyMissingError, ValidationError
from app.services.linear_client import LinearClient
from app.services.publisher import issue_event
from app.services.sanitizer import IssueRecord, LabelRecord

logger = logging.getLogger(__name__)


def _label_key(label) -> Tuple[str, str, Optional[str], Optional[str]]:
    return (label.id, label.name, label.color, label.parent_id)


class IssueSync:
    """Mirror every upstream issue that is anchored to a locally stored project.

    Unanchored issues and issues of unknown projects are skipped with a warning;
    an issue that fails sanitization is skipped on its own, the run goes on.
    """

    def __init__(self, client: Optional[LinearClient] = None):
        self.client = client
        self.events: List[Dict[str, Any]] = []
        self.stats: Dict[str, int] = {
            "processed": 0,
            "created": 0,
            "updated": 0,
            "deleted": 0,
            "skipped_no_project": 0,
            "skipped_missing_project": 0,
            "skipped_invalid": 0,
        }

    def synchronize(self, tx: Session) -> None:
        logger.info("Fetching issues from Linear")
        for page in self.client.iter_issues():
            for node in page.nodes:
                self.process(tx, node)
            tx.flush()
            logger.debug(f"Processed {len(page.nodes)} issues (total: {self.stats['processed']})")
        logger.info(f"Issue synchronization step completed: {self.stats}")

    def process(self, tx: Session, node: Dict[str, Any]) -> Optional[Issue]:
        """Reconcile one upstream issue node."""
        self.stats["processed"] += 1
        if not isinstance(node, dict):
            logger.warning(f"Skipping malformed issue node: {node!r}")
            self.stats["skipped_invalid"] += 1
            return None

        issue_id = node.get("id")
        try:
            project = sanitizer.nested(node, "project") or {}
        except ValidationError as e:
            logger.warning(f"Skipping issue {issue_id!r}: failed to sanitize issue data: {e}")
            self.stats["skipped_invalid"] += 1
            return None
        project_ref = project.get("id") or node.get("projectId")
        if not project_ref:
            # Known data loss: issues must belong to a project to be stored.
            logger.warning(f"Skipping issue {issue_id!r}: no project reference")
            self.stats["skipped_no_project"] += 1
            return None

        if not isinstance(project_ref, str) or tx.get(Project, project_ref) is None:
            err = DependencyMissingError(f"Project {project_ref!r} is not stored locally")
            logger.warning(f"Skipping issue {issue_id!r}: {err}")
            self.stats["skipped_missing_project"] += 1
            return None

        try:
            record = sanitizer.issue_record(node)
        except ValidationError as e:
            logger.warning(f"Skipping issue {issue_id!r}: failed to sanitize issue data: {e}")
            self.stats["skipped_invalid"] += 1
            return None

        issue, _ = self.upsert(tx, record)
        return issue

    def upsert(
        self,
        tx: Session,
        record: IssueRecord,
        *,
        project_id: Optional[str] = None,
        replace_labels: bool = True,
    ) -> Tuple[Issue, bool]:
        """Insert or update an issue and (by default) replace its label set.

        `project_id` overrides the record's own reference (used when a change
        notification had its project resolved by fallback).
        Returns (issue, created).
        """
        project_id = project_id or record.project_id
        project = tx.get(Project, project_id) if project_id else None
        if project is None:
            project_id = None

        # team_key must resolve to a local team, otherwise it stays empty.
        team_key = record.team_id if record.team_id and tx.get(Team, record.team_id) else None

        values = {
            "identifier": record.identifier or None,
            "title": record.title,
            "description": record.description or None,
            "state": record.state,
            "assignee_name": record.assignee_name,
            "priority_label": record.priority_label,
            "due_date": record.due_date.date() if record.due_date else None,
            "project_id": project_id,
            "project_name": record.project_name or (project.name if project else None),
            "team_key": team_key,
            "team_name": record.team_name,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
        }

        issue = tx.get(Issue, record.id)
        created = issue is None
        if created:
            issue = Issue(id=record.id, **values)
            tx.add(issue)
            changed = True
        else:
            changed = update_columns(issue, values)

        if replace_labels:
            changed = self.replace_labels(tx, issue, record.labels) or changed

        if created:
            self.stats["created"] += 1
        elif changed:
            self.stats["updated"] += 1
        if changed:
            tx.flush()
            self.events.append(issue_event(issue, "create" if created else "update"))
        return issue, created

    @staticmethod
    def replace_labels(tx: Session, issue: Issue, labels: Sequence[LabelRecord]) -> bool:
        """Delete every label of the issue, then recreate them from `labels`.

        Returns True if the resulting label set differs from the previous one.
        """
        unique: Dict[str, LabelRecord] = {}
        for label in labels:
            if label.id in unique:
                logger.warning(f"Duplicate label {label.id} on issue {issue.id}; keeping the first")
                continue
            unique[label.id] = label

        before = sorted(_label_key(label) for label in issue.labels)
        issue.labels.clear()
        tx.flush()
        issue.labels.extend(
            Label(id=label.id, name=label.name, color=label.color, parent_id=label.parent_id)
            for label in unique.values()
        )
        tx.flush()
        return before != sorted(_label_key(label) for label in unique.values())

    def delete(self, tx: Session, issue_id: str) -> bool:
        """Delete an issue by id. A missing issue is a no-op (returns False)."""
        issue = tx.get(Issue, issue_id)
        if issue is None:
            return False
        event = issue_event(issue, "remove")
        tx.delete(issue)
        tx.flush()
        self.stats["deleted"] += 1
        self.events.append(event)
        return True
