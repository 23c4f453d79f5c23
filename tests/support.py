"""Shared fixtures: in-memory database and an in-memory upstream"""

from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.models.base import init_db
from app.services.linear_client import Page
from app.services.publisher import IssueEventPublisher


def make_session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def make_session():
    return make_session_factory()()


def _pages(nodes: List[Dict[str, Any]], page_size: int) -> Iterator[Page]:
    if not nodes:
        yield Page()
        return
    for start in range(0, len(nodes), page_size):
        chunk = nodes[start : start + page_size]
        has_next = start + page_size < len(nodes)
        yield Page(
            nodes=[dict(n) for n in chunk],
            end_cursor=f"cursor-{start + page_size}" if has_next else None,
            has_next_page=has_next,
        )


class FakeUpstream:
    """Stand-in for LinearClient serving a fixed snapshot."""

    api_key = "test-key"

    def __init__(self, teams=None, projects=None, issues=None, page_size: int = 2):
        self.teams = list(teams or [])
        self.projects = list(projects or [])
        self.issues = list(issues or [])
        self.page_size = page_size
        self.calls: List[str] = []

    def list_teams(self):
        self.calls.append("list_teams")
        return [dict(t) for t in self.teams]

    def list_team_ids(self):
        self.calls.append("list_team_ids")
        return [t["id"] for t in self.teams]

    def iter_team_projects(self, team_id):
        self.calls.append(f"iter_team_projects:{team_id}")
        return _pages([p for p in self.projects if p.get("teamId") == team_id], self.page_size)

    def list_project_ids(self):
        self.calls.append("list_project_ids")
        return [p["id"] for p in self.projects]

    def iter_issues(self):
        self.calls.append("iter_issues")
        return _pages(self.issues, self.page_size)

    def close(self):
        return None


class RecordingPublisher(IssueEventPublisher):
    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def publish(self, event):
        self.events.append(event)


class FailingPublisher(IssueEventPublisher):
    def publish(self, event):
        raise RuntimeError("sink unavailable")


def team(team_id: str, name: str, key: Optional[str] = None) -> Dict[str, Any]:
    return {"id": team_id, "name": name, "key": key or name[:3].upper()}


def project(project_id: str, name: str, team_id: str, created_at: str = "2024-01-01T00:00:00.000Z"):
    return {
        "id": project_id,
        "name": name,
        "description": "",
        "state": "started",
        "teamId": team_id,
        "createdAt": created_at,
        "updatedAt": created_at,
    }


def label(label_id: str, name: str, color: str = "#ff0000") -> Dict[str, Any]:
    return {"id": label_id, "name": name, "color": color}


def issue(
    issue_id: str,
    title: str,
    project_id: Optional[str],
    team_id: Optional[str] = None,
    labels: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    node: Dict[str, Any] = {
        "id": issue_id,
        "identifier": f"ENG-{issue_id}",
        "title": title,
        "description": "<p>Details</p>",
        "priorityLabel": "High",
        "dueDate": "2024-02-01",
        "createdAt": "2024-01-02T00:00:00.000Z",
        "updatedAt": "2024-01-03T00:00:00.000Z",
        "state": {"id": "s1", "name": "Todo"},
        "assignee": {"id": "u1", "name": "Alex Doe", "email": "Alex@Example.com"},
        "labels": {"nodes": list(labels or [])},
    }
    if project_id is not None:
        node["project"] = {"id": project_id, "name": f"Project {project_id}"}
    if team_id is not None:
        node["team"] = {"id": team_id, "key": "ENG", "name": "Engineering"}
    return node
