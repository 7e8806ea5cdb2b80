import csv
import io
import json
from typing import Any, Iterable

from formpulse.models import Submission

CSV_HEADER = ["response_id", "created_at", "field_id", "value"]


def format_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def render_submissions_csv(submissions: Iterable[Submission]) -> str:
    """One row per answer entry, submissions in storage order."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADER)
    for submission in submissions:
        created_at = submission.created_at.isoformat()
        for field_id, value in submission.answers.items():
            writer.writerow([submission.id, created_at, field_id, format_value(value)])
    return buffer.getvalue()
