"""Validation and normalization of untrusted upstream data.

Every value coming from the upstream (full runs and change notifications
alike) passes through here before it reaches the database. Field functions
raise ``ValidationError`` instead of coercing bad input.
"""

import html
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from html.parser import HTMLParser
from typing import Any, Dict, List, Optional, Tuple

from email_validator import EmailNotValidError, validate_email

from app.services.errors import ValidationError

logger = logging.getLogger(__name__)

ID_MAX_LENGTH = 255
TITLE_MAX_LENGTH = 500
IDENTIFIER_MAX_LENGTH = 50
NAME_MAX_LENGTH = 200
SHORT_NAME_MAX_LENGTH = 100
KEY_MAX_LENGTH = 50

_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_COLOR_RE = re.compile(r"^#(?:[0-9A-Fa-f]{3}|[0-9A-Fa-f]{6})$")

RICH_TEXT_TAGS = frozenset({"b", "i", "em", "strong", "a", "p", "br", "ul", "ol", "li"})
_VOID_TAGS = frozenset({"br"})
_DROP_CONTENT_TAGS = frozenset({"script", "style", "iframe", "object", "template", "noscript"})
_SAFE_URL_SCHEMES = ("http://", "https://", "mailto:")


def _as_text(field_name: str, value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(field_name, value, f"expected a string, got {type(value).__name__}")
    return value


class _MarkupFilter(HTMLParser):
    """Re-serializes HTML keeping only allowed tags (and `href` on links)."""

    def __init__(self, allowed_tags=frozenset()):
        super().__init__(convert_charrefs=True)
        self.allowed_tags = allowed_tags
        self.parts: List[str] = []
        self._open: List[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in _DROP_CONTENT_TAGS:
            self._skip_depth += 1
            return
        if self._skip_depth or tag not in self.allowed_tags:
            return
        rendered = ""
        if tag == "a":
            href = dict(attrs).get("href")
            if href and href.strip().lower().startswith(_SAFE_URL_SCHEMES):
                rendered = f' href="{html.escape(href.strip(), quote=True)}"'
        self.parts.append(f"<{tag}{rendered}>")
        if tag not in _VOID_TAGS:
            self._open.append(tag)

    def handle_startendtag(self, tag, attrs):
        if tag in _VOID_TAGS:
            self.handle_starttag(tag, attrs)

    def handle_endtag(self, tag):
        if tag in _DROP_CONTENT_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
            return
        if self._skip_depth or tag not in self.allowed_tags or tag not in self._open:
            return
        # Close anything left open inside this element first.
        while self._open:
            current = self._open.pop()
            self.parts.append(f"</{current}>")
            if current == tag:
                break

    def handle_data(self, data):
        if self._skip_depth:
            return
        self.parts.append(html.escape(data, quote=False))

    def render(self) -> str:
        self.close()
        while self._open:
            self.parts.append(f"</{self._open.pop()}>")
        return "".join(self.parts)


def identifier(value: Any, field_name: str = "id") -> str:
    """Upstream identifier: `[A-Za-z0-9_-]+`, at most 255 characters."""
    text = _as_text(field_name, value)
    if text is None or not text.strip():
        raise ValidationError(field_name, value, "identifier is required")
    text = text.strip()
    if len(text) > ID_MAX_LENGTH:
        raise ValidationError(field_name, value, f"identifier too long ({len(text)} characters)")
    if not _ID_RE.match(text):
        raise ValidationError(field_name, value, "identifier contains forbidden characters")
    return text


def plain_text(value: Any, max_len: int = 1000, field_name: str = "text") -> str:
    """Strip all markup, trim, and enforce `max_len`. Absent input becomes ''.

    Entities are decoded while parsing, so the remaining text is escaped again;
    encoded markup never comes back out as live markup.
    """
    text = _as_text(field_name, value)
    if not text:
        return ""
    parser = _MarkupFilter()
    parser.feed(text)
    cleaned = parser.render().strip()
    if len(cleaned) > max_len:
        raise ValidationError(
            field_name, value, f"text too long ({len(cleaned)} characters, max {max_len})"
        )
    return cleaned


def rich_text(value: Any, field_name: str = "description") -> str:
    """Reduce HTML to basic inline/structural tags; only link targets survive as attributes."""
    text = _as_text(field_name, value)
    if not text or not text.strip():
        return ""
    parser = _MarkupFilter(RICH_TEXT_TAGS)
    parser.feed(text.strip())
    return parser.render().strip()


def color(value: Any, field_name: str = "color") -> str:
    """Hex color `#RGB` / `#RRGGBB`, normalized to lowercase."""
    text = _as_text(field_name, value)
    if text is None or not _COLOR_RE.match(text.strip()):
        raise ValidationError(field_name, value, "expected a #RGB or #RRGGBB hex color")
    return text.strip().lower()


def iso_date(value: Any, field_name: str = "date") -> Optional[datetime]:
    """Parse an ISO 8601 date/datetime into a UTC-naive datetime.

    Empty or absent input yields None; anything malformed is an error.
    """
    text = _as_text(field_name, value)
    if text is None or not text.strip():
        return None
    text = text.strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValidationError(field_name, value, f"not a valid ISO 8601 date ({e})") from e
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def email(value: Any, field_name: str = "email") -> str:
    """Syntactically valid email address, lowercased."""
    text = _as_text(field_name, value)
    if text is None or not text.strip():
        raise ValidationError(field_name, value, "email is required")
    try:
        result = validate_email(text.strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(field_name, value, str(e)) from e
    return result.normalized.lower()


@dataclass(frozen=True)
class TeamRecord:
    id: str
    name: str
    key: str


@dataclass(frozen=True)
class ProjectRecord:
    id: str
    name: str
    description: str
    state: str
    start_date: Optional[datetime]
    target_date: Optional[datetime]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    team_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class LabelRecord:
    id: str
    name: str
    color: str
    parent_id: Optional[str] = None


@dataclass(frozen=True)
class IssueRecord:
    id: str
    identifier: str
    title: str
    description: str
    state: Optional[str]
    priority_label: str
    assignee_name: Optional[str]
    assignee_email: Optional[str]
    due_date: Optional[datetime]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    project_id: Optional[str]
    project_name: Optional[str]
    team_id: Optional[str]
    team_key: Optional[str]
    team_name: Optional[str]
    labels: Tuple[LabelRecord, ...] = field(default_factory=tuple)


def nested(data: Dict[str, Any], name: str) -> Optional[Dict[str, Any]]:
    value = data.get(name)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationError(name, value, "expected an object")
    return value


def team_record(data: Dict[str, Any]) -> TeamRecord:
    if not isinstance(data, dict):
        raise ValidationError("team", data, "expected an object")
    name = plain_text(data.get("name"), NAME_MAX_LENGTH, "team.name")
    if not name:
        raise ValidationError("team.name", data.get("name"), "team name is required")
    return TeamRecord(
        id=identifier(data.get("id"), "team.id"),
        name=name,
        key=plain_text(data.get("key"), KEY_MAX_LENGTH, "team.key"),
    )


def project_record(data: Dict[str, Any]) -> ProjectRecord:
    if not isinstance(data, dict):
        raise ValidationError("project", data, "expected an object")
    name = plain_text(data.get("name"), NAME_MAX_LENGTH, "project.name")
    if not name:
        raise ValidationError("project.name", data.get("name"), "project name is required")

    team_ids = data.get("teamIds") or []
    if not isinstance(team_ids, list):
        raise ValidationError("project.teamIds", team_ids, "expected a list")
    if data.get("teamId"):
        team_ids = [data["teamId"], *team_ids]
    teams = nested(data, "teams")
    if teams:
        team_ids = [*team_ids, *(t.get("id") for t in teams.get("nodes") or [] if isinstance(t, dict))]

    start_date = iso_date(data.get("startDate"), "project.startDate")
    target_date = iso_date(data.get("targetDate"), "project.targetDate")
    project_id = identifier(data.get("id"), "project.id")
    if start_date and target_date and start_date > target_date:
        logger.warning(f"Project {project_id} starts after its target date; storing as is")

    return ProjectRecord(
        id=project_id,
        name=name,
        description=rich_text(data.get("description"), "project.description"),
        state=plain_text(data.get("state"), KEY_MAX_LENGTH, "project.state") or "Active",
        start_date=start_date,
        target_date=target_date,
        created_at=iso_date(data.get("createdAt"), "project.createdAt"),
        updated_at=iso_date(data.get("updatedAt"), "project.updatedAt"),
        team_ids=tuple(identifier(t, "project.teamIds") for t in team_ids),
    )


def label_record(data: Dict[str, Any]) -> LabelRecord:
    if not isinstance(data, dict):
        raise ValidationError("label", data, "expected an object")
    parent_id = data.get("parentId")
    if parent_id is None and isinstance(data.get("parent"), dict):
        parent_id = data["parent"].get("id")
    name = plain_text(data.get("name"), SHORT_NAME_MAX_LENGTH, "label.name")
    if not name:
        raise ValidationError("label.name", data.get("name"), "label name is required")
    return LabelRecord(
        id=identifier(data.get("id"), "label.id"),
        name=name,
        color=color(data.get("color"), "label.color"),
        parent_id=identifier(parent_id, "label.parentId") if parent_id else None,
    )


def _label_nodes(labels: Any) -> List[Any]:
    """Labels arrive as `{"nodes": [...]}` from queries and as a list from notifications."""
    if labels is None:
        return []
    if isinstance(labels, dict):
        labels = labels.get("nodes") or []
    if not isinstance(labels, list):
        raise ValidationError("issue.labels", labels, "expected a list of labels")
    return labels


def issue_record(data: Dict[str, Any]) -> IssueRecord:
    """Sanitize a full issue.

    Any invalid required field fails the whole record. Labels are validated one
    at a time; an invalid label is logged and dropped. An invalid assignee
    email is logged and left empty.
    """
    if not isinstance(data, dict):
        raise ValidationError("issue", data, "expected an object")

    issue_id = identifier(data.get("id"), "issue.id")
    title = plain_text(data.get("title"), TITLE_MAX_LENGTH, "issue.title")
    if not title:
        raise ValidationError("issue.title", data.get("title"), "title is required")

    assignee = nested(data, "assignee") or {}
    project = nested(data, "project") or {}
    team = nested(data, "team") or {}
    state = nested(data, "state") or {}

    assignee_email = None
    if assignee.get("email"):
        try:
            assignee_email = email(assignee.get("email"), "issue.assignee.email")
        except ValidationError as e:
            logger.warning(f"Dropping invalid assignee email on issue {issue_id}: {e}")

    project_id = data.get("projectId") or project.get("id")
    team_id = data.get("teamId") or team.get("id")

    labels: List[LabelRecord] = []
    for raw in _label_nodes(data.get("labels")):
        try:
            labels.append(label_record(raw))
        except ValidationError as e:
            logger.warning(
                f"Skipping invalid label {raw.get('id') if isinstance(raw, dict) else raw!r} "
                f"on issue {issue_id}: {e}"
            )

    return IssueRecord(
        id=issue_id,
        identifier=plain_text(data.get("identifier"), IDENTIFIER_MAX_LENGTH, "issue.identifier"),
        title=title,
        description=rich_text(data.get("description"), "issue.description"),
        state=plain_text(state.get("name"), SHORT_NAME_MAX_LENGTH, "issue.state") or None,
        priority_label=(
            plain_text(data.get("priorityLabel"), SHORT_NAME_MAX_LENGTH, "issue.priorityLabel")
            or "No priority"
        ),
        assignee_name=plain_text(assignee.get("name"), NAME_MAX_LENGTH, "issue.assignee.name")
        or None,
        assignee_email=assignee_email,
        due_date=iso_date(data.get("dueDate"), "issue.dueDate"),
        created_at=iso_date(data.get("createdAt"), "issue.createdAt"),
        updated_at=iso_date(data.get("updatedAt"), "issue.updatedAt"),
        project_id=identifier(project_id, "issue.projectId") if project_id else None,
        project_name=plain_text(project.get("name"), NAME_MAX_LENGTH, "issue.project.name")
        or None,
        team_id=identifier(team_id, "issue.teamId") if team_id else None,
        team_key=plain_text(team.get("key"), KEY_MAX_LENGTH, "issue.team.key") or None,
        team_name=plain_text(team.get("name"), NAME_MAX_LENGTH, "issue.team.name") or None,
        labels=tuple(labels),
    )
