"""Team reconciliation"""

import logging
from typing import Dict, List, Set, Tuple

from sqlalchemy.orm import Session

from app.models import Team
from app.models.base import update_columns
from app.services import sanitizer
from app.services.errors import ValidationError
from app.services.linear_client import LinearClient
from app.services.sanitizer import TeamRecord

logger = logging.getLogger(__name__)


class TeamSync:
    """Mirror the upstream team list.

    Teams are structurally important (projects and rates hang off them), so a
    single invalid team aborts the whole step instead of applying a partial set.
    Teams missing upstream are reported but left for the cleanup step.
    """

    def __init__(self, client: LinearClient):
        self.client = client
        self.stats: Dict[str, int] = {"created": 0, "updated": 0, "missing_upstream": 0}

    def synchronize(self, tx: Session) -> Set[str]:
        logger.info("Fetching teams from Linear")
        nodes = self.client.list_teams()
        logger.debug(f"Processing {len(nodes)} teams from Linear")

        records: List[TeamRecord] = []
        for node in nodes:
            try:
                records.append(sanitizer.team_record(node))
            except ValidationError as e:
                team_id = node.get("id") if isinstance(node, dict) else None
                logger.error(f"Failed to sanitize team {team_id!r} from Linear: {e}")
                raise

        local_ids = {team_id for (team_id,) in tx.query(Team.id).all()}
        for record in records:
            self.upsert(tx, record)
        tx.flush()

        missing = local_ids - {r.id for r in records}
        for team_id in sorted(missing):
            logger.warning(f"Team {team_id} no longer exists in Linear (left for cleanup)")
        self.stats["missing_upstream"] = len(missing)
        logger.info(f"Team synchronization step completed: {self.stats}")
        return missing

    def upsert(self, tx: Session, record: TeamRecord) -> Tuple[Team, bool]:
        """Insert or update a team by id. Returns (team, created)."""
        team = tx.get(Team, record.id)
        if team is None:
            team = Team(id=record.id, name=record.name, key=record.key or None)
            tx.add(team)
            tx.flush()
            self.stats["created"] += 1
            return team, True
        if update_columns(team, {"name": record.name, "key": record.key or None}):
            self.stats["updated"] += 1
        return team, False
