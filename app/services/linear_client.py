"""Linear GraphQL API client"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

import httpx

from app.services.errors import ConfigurationError, TransportError, UpstreamProtocolError

logger = logging.getLogger(__name__)

DEFAULT_URL = "https://api.linear.app/graphql"

TEAMS_QUERY = """
query Teams {
  teams {
    nodes {
      id
      name
      key
    }
  }
}
"""

TEAM_IDS_QUERY = """
query TeamIds {
  teams {
    nodes {
      id
    }
  }
}
"""

TEAM_PROJECTS_QUERY = """
query TeamProjects($teamId: String!, $first: Int!, $cursor: String) {
  team(id: $teamId) {
    projects(first: $first, after: $cursor) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        id
        name
        description
        state
        startDate
        targetDate
        createdAt
        updatedAt
      }
    }
  }
}
"""

PROJECT_IDS_QUERY = """
query ProjectIds($first: Int!, $cursor: String) {
  projects(first: $first, after: $cursor) {
    pageInfo {
      hasNextPage
      endCursor
    }
    nodes {
      id
    }
  }
}
"""

ISSUES_QUERY = """
query Issues($first: Int!, $cursor: String) {
  issues(first: $first, after: $cursor) {
    pageInfo {
      hasNextPage
      endCursor
    }
    nodes {
      id
      identifier
      title
      description
      priorityLabel
      dueDate
      createdAt
      updatedAt
      state {
        id
        name
        color
        type
      }
      assignee {
        id
        name
        email
      }
      project {
        id
        name
      }
      team {
        id
        key
        name
      }
      labels {
        nodes {
          id
          name
          color
          parent {
            id
          }
        }
      }
    }
  }
}
"""


@dataclass
class Page:
    """One page of a cursor-paginated connection."""

    nodes: List[Dict[str, Any]] = field(default_factory=list)
    end_cursor: Optional[str] = None
    has_next_page: bool = False


class LinearClient:
    """Single point of contact with the upstream GraphQL API.

    No call is retried here; retry and backoff are the caller's decision.
    """

    def __init__(
        self,
        api_key: Optional[str],
        *,
        url: str = DEFAULT_URL,
        timeout: float = 10.0,
        page_size: int = 100,
        page_delay: float = 0.5,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize Linear client"""
        self.api_key = api_key
        self.url = url
        self.timeout = timeout
        self.page_size = page_size
        self.page_delay = page_delay
        self._http = http_client or httpx.Client(timeout=timeout)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings) -> "LinearClient":
        return cls(
            settings.linear_api_key,
            url=settings.linear_api_url,
            timeout=settings.upstream_timeout_seconds,
            page_size=settings.upstream_page_size,
            page_delay=settings.upstream_page_delay_seconds,
        )

    def close(self):
        self._http.close()

    def fetch_all(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run one non-paginated query and return its `data` object."""
        if not self.api_key:
            raise ConfigurationError("LINEAR_API_KEY is not configured")

        logger.debug(f"Sending query to Linear API: {query.strip()[:60]}... variables={variables}")
        try:
            response = self._http.post(
                self.url,
                json={"query": query, "variables": variables or {}},
                headers={
                    "Authorization": self.api_key,
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            logger.error(f"Linear API request timed out after {self.timeout}s: {e}")
            raise TransportError(f"Linear API request timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"Linear API request failed, no response received: {e}")
            raise TransportError(f"Linear API request failed: {e}") from e

        messages = self._error_messages(response)
        if not response.is_success:
            logger.error(f"Linear API error response {response.status_code}: {messages}")
            raise UpstreamProtocolError(
                f"Linear API responded with HTTP {response.status_code}",
                status_code=response.status_code,
                messages=messages,
            )
        if messages:
            logger.error(f"GraphQL errors from Linear API: {messages}")
            raise UpstreamProtocolError(
                f"GraphQL errors: {', '.join(messages)}",
                status_code=response.status_code,
                messages=messages,
            )

        try:
            data = response.json().get("data")
        except (ValueError, AttributeError) as e:
            raise UpstreamProtocolError(
                "Linear API returned an unreadable body", status_code=response.status_code
            ) from e
        if not isinstance(data, dict):
            raise UpstreamProtocolError(
                "Linear API response carries no data", status_code=response.status_code
            )
        return data

    @staticmethod
    def _error_messages(response: httpx.Response) -> List[str]:
        """Collect `errors[].message` from a response body, if there is one."""
        try:
            body = response.json()
        except ValueError:
            return [] if response.is_success else [response.text[:500]]
        if not isinstance(body, dict):
            return []
        errors = body.get("errors") or []
        if not isinstance(errors, list):
            return [str(errors)]
        return [str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors]

    def fetch_page(
        self,
        query: str,
        connection: Sequence[str],
        variables: Optional[Dict[str, Any]] = None,
        cursor: Optional[str] = None,
    ) -> Page:
        """Fetch a single page of the connection found at `connection` in the response."""
        params = dict(variables or {})
        params.setdefault("first", self.page_size)
        params["cursor"] = cursor
        data = self.fetch_all(query, params)

        node: Any = data
        for key in connection:
            node = node.get(key) if isinstance(node, dict) else None
        if not isinstance(node, dict):
            logger.warning(f"No {'.'.join(connection)} data returned (variables={variables})")
            return Page()

        page_info = node.get("pageInfo") or {}
        return Page(
            nodes=list(node.get("nodes") or []),
            end_cursor=page_info.get("endCursor"),
            has_next_page=bool(page_info.get("hasNextPage")),
        )

    def paginate(
        self,
        query: str,
        connection: Sequence[str],
        variables: Optional[Dict[str, Any]] = None,
    ) -> Iterator[Page]:
        """Yield every page of a connection, pausing `page_delay` between pages."""
        cursor = None
        while True:
            page = self.fetch_page(query, connection, variables, cursor)
            yield page
            if not page.has_next_page or not page.end_cursor:
                return
            cursor = page.end_cursor
            if self.page_delay:
                self._sleep(self.page_delay)

    def iter_nodes(
        self,
        query: str,
        connection: Sequence[str],
        variables: Optional[Dict[str, Any]] = None,
    ) -> Iterator[Dict[str, Any]]:
        for page in self.paginate(query, connection, variables):
            yield from page.nodes

    def list_teams(self) -> List[Dict[str, Any]]:
        """All upstream teams (team counts are small, so this is not paginated)."""
        data = self.fetch_all(TEAMS_QUERY)
        return list(((data.get("teams") or {}).get("nodes")) or [])

    def list_team_ids(self) -> List[str]:
        data = self.fetch_all(TEAM_IDS_QUERY)
        return [n["id"] for n in ((data.get("teams") or {}).get("nodes") or []) if n.get("id")]

    def iter_team_projects(self, team_id: str) -> Iterator[Page]:
        return self.paginate(TEAM_PROJECTS_QUERY, ("team", "projects"), {"teamId": team_id})

    def list_project_ids(self) -> List[str]:
        return [
            n["id"] for n in self.iter_nodes(PROJECT_IDS_QUERY, ("projects",)) if n.get("id")
        ]

    def iter_issues(self) -> Iterator[Page]:
        return self.paginate(ISSUES_QUERY, ("issues",))
