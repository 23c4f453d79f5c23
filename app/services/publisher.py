"""Issue change events for the real-time fan-out layer"""

import logging
from typing import Any, Dict, List, Optional

from app.models import Issue

logger = logging.getLogger(__name__)


class IssueEventPublisher:
    """Sink for issue change events. Subclasses deliver them to subscribers."""

    def publish(self, event: Dict[str, Any]) -> None:
        raise NotImplementedError


class LoggingPublisher(IssueEventPublisher):
    """Default sink: records events in the log only."""

    def publish(self, event: Dict[str, Any]) -> None:
        logger.info(f"Issue event: {event.get('action')} {event.get('id')}")


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def issue_event(issue: Issue, action: str) -> Dict[str, Any]:
    """Build the event payload for an issue row."""
    if action == "remove":
        return {"id": issue.id, "action": action}
    return {
        "id": issue.id,
        "action": action,
        "title": issue.title,
        "state": issue.state,
        "assignee_name": issue.assignee_name,
        "priority_label": issue.priority_label,
        "team_name": issue.team_name,
        "project_id": issue.project_id,
        "project_name": issue.project_name,
        "identifier": issue.identifier,
        "due_date": _iso(issue.due_date),
        "created_at": _iso(issue.created_at),
        "updated_at": _iso(issue.updated_at),
        "labels": [
            {"id": label.id, "name": label.name, "color": label.color, "parent_id": label.parent_id}
            for label in issue.labels
        ],
    }


def publish_all(publisher: Optional[IssueEventPublisher], events: List[Dict[str, Any]]) -> int:
    """Fire-and-forget delivery: a failing sink is logged, never raised."""
    if publisher is None:
        return 0
    delivered = 0
    for event in events:
        try:
            publisher.publish(event)
            delivered += 1
        except Exception as e:
            logger.warning(f"Failed to publish {event.get('action')} event for issue {event.get('id')}: {e}")
    return delivered
