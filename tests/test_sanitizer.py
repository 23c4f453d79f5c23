import unittest
from datetime import datetime

from app.services import sanitizer
from app.services.errors import ValidationError


class FieldSanitizerTests(unittest.TestCase):
    def test_identifier_rejects_path_traversal(self):
        with self.assertRaises(ValidationError) as ctx:
            sanitizer.identifier("../etc")
        self.assertEqual(ctx.exception.field, "id")
        self.assertEqual(ctx.exception.value, "../etc")

    def test_identifier_trims_and_accepts_uuid_like_values(self):
        self.assertEqual(
            sanitizer.identifier("  9cfb482a-81e3-4154-b5b9-2c805e70a02d "),
            "9cfb482a-81e3-4154-b5b9-2c805e70a02d",
        )

    def test_identifier_rejects_missing_and_oversized_values(self):
        for bad in (None, "", "   ", "a" * 256, 42):
            with self.assertRaises(ValidationError):
                sanitizer.identifier(bad)

    def test_color_rejects_named_colors(self):
        with self.assertRaises(ValidationError):
            sanitizer.color("red")

    def test_color_normalizes_to_lowercase(self):
        self.assertEqual(sanitizer.color("#ABC"), "#abc")
        self.assertEqual(sanitizer.color("#A1B2C3"), "#a1b2c3")

    def test_email_rejects_malformed_address(self):
        with self.assertRaises(ValidationError):
            sanitizer.email("not-an-email")

    def test_email_is_lowercased(self):
        self.assertEqual(sanitizer.email("Alex.Doe@Example.COM"), "alex.doe@example.com")

    def test_plain_text_strips_markup_and_script_content(self):
        self.assertEqual(
            sanitizer.plain_text("  <b>Ship</b> it<script>alert(1)</script>  "),
            "Ship it",
        )
        self.assertEqual(sanitizer.plain_text(None), "")

    def test_plain_text_keeps_encoded_markup_escaped(self):
        self.assertEqual(
            sanitizer.plain_text("&lt;img src=x onerror=alert(1)&gt;"),
            "&lt;img src=x onerror=alert(1)&gt;",
        )
        self.assertEqual(
            sanitizer.plain_text("&lt;script&gt;alert(1)&lt;/script&gt;"),
            "&lt;script&gt;alert(1)&lt;/script&gt;",
        )

    def test_plain_text_ampersands_come_out_escaped_once(self):
        self.assertEqual(sanitizer.plain_text("Tom &amp; Jerry"), "Tom &amp; Jerry")
        self.assertEqual(sanitizer.plain_text("Tom & Jerry"), "Tom &amp; Jerry")

    def test_plain_text_enforces_max_length(self):
        with self.assertRaises(ValidationError):
            sanitizer.plain_text("x" * 11, max_len=10)

    def test_rich_text_keeps_basic_tags_and_safe_links_only(self):
        cleaned = sanitizer.rich_text(
            '<p onclick="x()">Hi <strong>there</strong> '
            '<a href="https://example.com" target="_blank">ok</a> '
            '<a href="javascript:alert(1)">bad</a>'
            "<img src=x onerror=alert(1)><script>alert(1)</script></p>"
        )
        self.assertEqual(
            cleaned,
            '<p>Hi <strong>there</strong> <a href="https://example.com">ok</a> <a>bad</a></p>',
        )

    def test_rich_text_escapes_text_and_closes_open_tags(self):
        self.assertEqual(sanitizer.rich_text("<ul><li>1 &lt; 2"), "<ul><li>1 &lt; 2</li></ul>")

    def test_iso_date_normalizes_to_naive_utc(self):
        self.assertEqual(
            sanitizer.iso_date("2024-01-15T10:30:00.000Z"), datetime(2024, 1, 15, 10, 30)
        )
        self.assertEqual(
            sanitizer.iso_date("2024-01-15T12:30:00+02:00"), datetime(2024, 1, 15, 10, 30)
        )
        self.assertEqual(sanitizer.iso_date("2024-03-01"), datetime(2024, 3, 1))
        self.assertIsNone(sanitizer.iso_date(""))
        self.assertIsNone(sanitizer.iso_date(None))

    def test_iso_date_rejects_garbage(self):
        with self.assertRaises(ValidationError):
            sanitizer.iso_date("next tuesday")


class RecordSanitizerTests(unittest.TestCase):
    def test_team_requires_a_name(self):
        with self.assertRaises(ValidationError):
            sanitizer.team_record({"id": "t1", "name": "  "})

    def test_team_record(self):
        record = sanitizer.team_record({"id": "t1", "name": "<i>Core</i>", "key": "COR"})
        self.assertEqual(record, sanitizer.TeamRecord(id="t1", name="Core", key="COR"))

    def test_project_record_collects_team_ids_and_defaults_state(self):
        record = sanitizer.project_record(
            {"id": "p1", "name": "Roadmap", "teamId": "t1", "teamIds": ["t2"]}
        )
        self.assertEqual(record.team_ids, ("t1", "t2"))
        self.assertEqual(record.state, "Active")
        self.assertIsNone(record.created_at)

    def test_project_record_reads_teams_connection(self):
        record = sanitizer.project_record(
            {"id": "p1", "name": "Roadmap", "teams": {"nodes": [{"id": "t1"}, {"id": "t2"}]}}
        )
        self.assertEqual(record.team_ids, ("t1", "t2"))

    def test_project_record_keeps_inverted_dates(self):
        record = sanitizer.project_record(
            {"id": "p1", "name": "Roadmap", "startDate": "2024-05-01", "targetDate": "2024-04-01"}
        )
        self.assertEqual(record.start_date, datetime(2024, 5, 1))
        self.assertEqual(record.target_date, datetime(2024, 4, 1))

    def test_issue_record_reads_nested_objects(self):
        record = sanitizer.issue_record(
            {
                "id": "i1",
                "identifier": "ENG-1",
                "title": "Fix login",
                "state": {"name": "In Progress"},
                "assignee": {"name": "Alex", "email": "ALEX@example.com"},
                "project": {"id": "p1", "name": "Auth"},
                "team": {"id": "t1", "key": "ENG", "name": "Engineering"},
                "labels": {"nodes": [{"id": "l1", "name": "Bug", "color": "#F00", "parent": {"id": "l0"}}]},
            }
        )
        self.assertEqual(record.state, "In Progress")
        self.assertEqual(record.assignee_email, "alex@example.com")
        self.assertEqual(record.project_id, "p1")
        self.assertEqual(record.team_id, "t1")
        self.assertEqual(record.priority_label, "No priority")
        self.assertEqual(record.labels, (sanitizer.LabelRecord("l1", "Bug", "#f00", "l0"),))

    def test_issue_record_prefers_top_level_references(self):
        record = sanitizer.issue_record(
            {
                "id": "i1",
                "title": "T",
                "projectId": "p2",
                "project": {"id": "p1"},
                "teamId": "t2",
                "labels": [],
            }
        )
        self.assertEqual(record.project_id, "p2")
        self.assertEqual(record.team_id, "t2")

    def test_issue_record_skips_individually_invalid_labels(self):
        record = sanitizer.issue_record(
            {
                "id": "i1",
                "title": "T",
                "labels": [
                    {"id": "l1", "name": "Bug", "color": "red"},
                    {"id": "l2", "name": "Feature", "color": "#00ff00"},
                ],
            }
        )
        self.assertEqual([label.id for label in record.labels], ["l2"])

    def test_issue_record_rejects_bad_required_field(self):
        with self.assertRaises(ValidationError):
            sanitizer.issue_record({"id": "../etc", "title": "T"})
        with self.assertRaises(ValidationError):
            sanitizer.issue_record({"id": "i1", "title": ""})
        with self.assertRaises(ValidationError):
            sanitizer.issue_record({"id": "i1", "title": "T", "project": "p1"})

    def test_issue_record_drops_invalid_assignee_email_only(self):
        record = sanitizer.issue_record(
            {"id": "i1", "title": "T", "assignee": {"name": "Alex", "email": "not-an-email"}}
        )
        self.assertIsNone(record.assignee_email)
        self.assertEqual(record.assignee_name, "Alex")

    def test_issue_record_escapes_encoded_markup_in_title(self):
        record = sanitizer.issue_record({"id": "i1", "title": "&lt;script&gt;alert(1)&lt;/script&gt;"})
        self.assertNotIn("<", record.title)
        self.assertEqual(record.title, "&lt;script&gt;alert(1)&lt;/script&gt;")


if __name__ == "__main__":
    unittest.main()
