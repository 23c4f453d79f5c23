import unittest
from decimal import Decimal

from support import FakeUpstream, make_session, project, team

from app.models import Issue, Project, Rate, Team
from app.services.cleanup_sync import CleanupSync


class CleanupSyncTests(unittest.TestCase):
    def setUp(self):
        self.db = make_session()

    def tearDown(self):
        self.db.close()

    def test_orphaned_team_with_rates_is_kept(self):
        self.db.add(Team(id="t1", name="Billing"))
        self.db.add(Rate(name="Standard", rate=Decimal("95.00"), team_id="t1"))
        self.db.commit()

        cleanup = CleanupSync(FakeUpstream(teams=[]))
        cleanup.synchronize(self.db)
        self.db.commit()

        self.assertIsNotNone(self.db.get(Team, "t1"))
        self.assertEqual(self.db.query(Rate).count(), 1)
        self.assertEqual(cleanup.stats["teams_retained"], 1)
        self.assertEqual(cleanup.stats["teams_deleted"], 0)

    def test_orphaned_team_without_dependents_is_deleted(self):
        self.db.add(Team(id="t1", name="Stale"))
        self.db.add(Team(id="t2", name="Live"))
        self.db.commit()

        cleanup = CleanupSync(FakeUpstream(teams=[team("t2", "Live")]))
        cleanup.synchronize(self.db)
        self.db.commit()

        self.assertEqual([t.id for t in self.db.query(Team).all()], ["t2"])
        self.assertEqual(cleanup.stats["teams_deleted"], 1)

    def test_team_freed_by_project_deletion_is_deleted_in_the_same_pass(self):
        self.db.add(Team(id="t1", name="Stale"))
        self.db.add(Project(id="p1", name="Old", team_id="t1"))
        self.db.commit()

        cleanup = CleanupSync(FakeUpstream())
        cleanup.synchronize(self.db)
        self.db.commit()

        self.assertEqual(self.db.query(Project).count(), 0)
        self.assertEqual(self.db.query(Team).count(), 0)

    def test_issues_of_deleted_project_are_detached_not_deleted(self):
        self.db.add(Team(id="t1", name="Core"))
        self.db.add(Project(id="p1", name="Keep", team_id="t1"))
        self.db.add(Project(id="p2", name="Gone", team_id="t1"))
        self.db.add(Issue(id="i1", title="Orphan", project_id="p2", team_key="t1"))
        self.db.add(Issue(id="i2", title="Fine", project_id="p1", team_key="t1"))
        self.db.commit()

        cleanup = CleanupSync(
            FakeUpstream(teams=[team("t1", "Core")], projects=[project("p1", "Keep", "t1")])
        )
        cleanup.synchronize(self.db)
        self.db.commit()

        orphan = self.db.get(Issue, "i1")
        self.assertIsNotNone(orphan)
        self.assertIsNone(orphan.project_id)
        self.assertEqual(orphan.team_key, "t1")
        self.assertEqual(self.db.get(Issue, "i2").project_id, "p1")
        self.assertEqual([(e["id"], e["action"]) for e in cleanup.events], [("i1", "update")])

    def test_issue_team_key_nulled_when_team_is_gone(self):
        self.db.add(Team(id="t1", name="Stale"))
        self.db.add(Project(id="p1", name="Old", team_id="t1"))
        self.db.add(Issue(id="i1", title="Orphan", project_id="p1", team_key="t1"))
        self.db.add(Issue(id="i2", title="Dangling", team_key="t-missing"))
        self.db.commit()

        cleanup = CleanupSync(FakeUpstream())
        cleanup.synchronize(self.db)
        self.db.commit()

        for issue_id in ("i1", "i2"):
            row = self.db.get(Issue, issue_id)
            self.assertIsNone(row.project_id)
            self.assertIsNone(row.team_key)
        # One event per issue even when both references were repaired.
        self.assertEqual(sorted(e["id"] for e in cleanup.events), ["i1", "i2"])
        self.assertEqual(cleanup.stats["issues_detached"], 2)

    def test_fetches_id_sets_fresh(self):
        upstream = FakeUpstream(teams=[team("t1", "Core")])
        CleanupSync(upstream).synchronize(self.db)
        self.assertEqual(upstream.calls, ["list_team_ids", "list_project_ids"])


if __name__ == "__main__":
    unittest.main()
