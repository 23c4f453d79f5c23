import unittest

from support import FakeUpstream, make_session, team

from app.models import Team
from app.services.errors import ValidationError
from app.services.team_sync import TeamSync


class TeamSyncTests(unittest.TestCase):
    def setUp(self):
        self.db = make_session()

    def tearDown(self):
        self.db.close()

    def test_single_team_into_empty_store(self):
        sync = TeamSync(FakeUpstream(teams=[{"id": "t1", "name": "Core"}]))
        sync.synchronize(self.db)
        self.db.commit()

        rows = self.db.query(Team).all()
        self.assertEqual([(t.id, t.name) for t in rows], [("t1", "Core")])
        self.assertEqual(sync.stats["created"], 1)

    def test_updates_name_in_place_and_counts_only_real_changes(self):
        self.db.add(Team(id="t1", name="Old", key="COR"))
        self.db.commit()

        sync = TeamSync(FakeUpstream(teams=[team("t1", "Core", "COR"), team("t2", "Design", "DES")]))
        sync.synchronize(self.db)
        self.db.commit()

        self.assertEqual(self.db.get(Team, "t1").name, "Core")
        self.assertEqual(sync.stats, {"created": 1, "updated": 1, "missing_upstream": 0})

        again = TeamSync(FakeUpstream(teams=[team("t1", "Core", "COR"), team("t2", "Design", "DES")]))
        again.synchronize(self.db)
        self.assertEqual(again.stats, {"created": 0, "updated": 0, "missing_upstream": 0})

    def test_teams_missing_upstream_are_reported_not_deleted(self):
        self.db.add(Team(id="gone", name="Gone"))
        self.db.commit()

        missing = TeamSync(FakeUpstream(teams=[team("t1", "Core")])).synchronize(self.db)
        self.db.commit()

        self.assertEqual(missing, {"gone"})
        self.assertIsNotNone(self.db.get(Team, "gone"))

    def test_one_invalid_team_aborts_the_step(self):
        upstream = FakeUpstream(teams=[team("t1", "Core"), {"id": "../etc", "name": "Evil"}])
        with self.assertRaises(ValidationError):
            TeamSync(upstream).synchronize(self.db)
        self.db.rollback()
        self.assertEqual(self.db.query(Team).count(), 0)


if __name__ == "__main__":
    unittest.main()
