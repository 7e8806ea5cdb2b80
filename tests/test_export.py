import sys
import unittest
from datetime import datetime, timezone
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from formpulse.export import format_value, render_submissions_csv  # noqa: E402
from formpulse.models import Submission  # noqa: E402


class CsvExportTests(unittest.TestCase):
    def test_value_formatting(self):
        self.assertEqual(format_value("plain"), "plain")
        self.assertEqual(format_value(True), "true")
        self.assertEqual(format_value(3.0), "3")
        self.assertEqual(format_value(2.5), "2.5")
        self.assertEqual(format_value(["a", "b"]), '["a","b"]')
        self.assertEqual(format_value(None), "null")

    def test_one_row_per_answer(self):
        submission = Submission(
            id="r1",
            form_id="f1",
            answers={"q1": "hi", "q2": 4},
            created_at=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        )
        lines = render_submissions_csv([submission]).splitlines()
        self.assertEqual(lines[0], "response_id,created_at,field_id,value")
        self.assertEqual(lines[1], "r1,2024-01-02T03:04:05+00:00,q1,hi")
        self.assertEqual(lines[2], "r1,2024-01-02T03:04:05+00:00,q2,4")


if __name__ == "__main__":
    unittest.main()
