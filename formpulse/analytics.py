"""Aggregate statistics over a form's submission history.

The report is rebuilt from scratch for every request with one forward scan
over the submissions. Fields flagged as PII are left out of every structure
in the report.
"""
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from formpulse.answers import AnswerKind, classify
from formpulse.models import (
    AnalyticsReport,
    FieldDistribution,
    Form,
    SkippedField,
    Submission,
    TrendPoint,
)

logger = logging.getLogger(__name__)

TREND_DAYS = 7
NUMERIC_BUCKET = "value"
OTHER_BUCKET = "other"


def _day_key(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%d")


def _bucket_answer(buckets: Dict[str, int], kind: AnswerKind, value: Any) -> Optional[float]:
    """Count ``value`` into ``buckets``; return it when it feeds an average."""
    if kind is AnswerKind.STRING:
        buckets[value] = buckets.get(value, 0) + 1
    elif kind is AnswerKind.NUMBER:
        buckets[NUMERIC_BUCKET] = buckets.get(NUMERIC_BUCKET, 0) + 1
        return float(value)
    elif kind is AnswerKind.BOOL:
        key = "true" if value else "false"
        buckets[key] = buckets.get(key, 0) + 1
    elif kind is AnswerKind.LIST:
        for item in value:
            if isinstance(item, str):
                buckets[item] = buckets.get(item, 0) + 1
    else:
        buckets[OTHER_BUCKET] = buckets.get(OTHER_BUCKET, 0) + 1
    return None


def most_common(buckets: Dict[str, int]) -> Optional[str]:
    """Bucket with the strictly greatest count.

    Ties go to the bucket counted first; callers must not depend on which
    tied bucket wins.
    """
    best: Optional[str] = None
    best_count = 0
    for label, count in buckets.items():
        if count > best_count:
            best, best_count = label, count
    return best


def _trend(daily_counts: Dict[str, int], now: datetime) -> List[TrendPoint]:
    points: List[TrendPoint] = []
    for offset in range(TREND_DAYS - 1, -1, -1):
        key = _day_key(now - timedelta(days=offset))
        points.append(TrendPoint(date=key, count=daily_counts.get(key, 0)))
    return points


def build_report(
    form: Form, submissions: Iterable[Submission], now: Optional[datetime] = None
) -> AnalyticsReport:
    now = now or datetime.now(timezone.utc)
    tracked = [field for field in form.fields if not field.is_pii]

    total = 0
    breakdown: Dict[str, FieldDistribution] = {}
    sums: Dict[str, float] = defaultdict(float)
    numeric_counts: Dict[str, int] = defaultdict(int)
    skips: Dict[str, int] = defaultdict(int)
    daily_counts: Dict[str, int] = defaultdict(int)

    for submission in submissions:
        total += 1
        daily_counts[_day_key(submission.created_at)] += 1
        answers = submission.answers
        for field in tracked:
            value = answers.get(field.id)
            kind = classify(value)
            if kind is AnswerKind.EMPTY:
                skips[field.id] += 1
                continue
            distribution = breakdown.setdefault(field.id, FieldDistribution())
            number = _bucket_answer(distribution.buckets, kind, value)
            if number is not None:
                sums[field.id] += number
                numeric_counts[field.id] += 1

    report = AnalyticsReport(count=total, field_breakdown=breakdown)
    report.average_rating = {
        field_id: sums[field_id] / count for field_id, count in numeric_counts.items() if count
    }
    for field_id, distribution in breakdown.items():
        winner = most_common(distribution.buckets)
        if winner is not None:
            report.most_common_answers[field_id] = winner

    report.response_trends = _trend(daily_counts, now)

    answered_slots = 0
    for field in tracked:
        skip_count = skips[field.id]
        answered_slots += total - skip_count
        report.skipped_fields.append(
            SkippedField(
                field_id=field.id,
                field_name=field.label,
                skip_count=skip_count,
                skip_rate=skip_count / total * 100 if total else 0.0,
            )
        )

    if tracked and total:
        report.completion_rate = answered_slots / (len(tracked) * total) * 100

    logger.info(
        "Built analytics for form %s: %d submissions across %d tracked fields",
        form.id,
        total,
        len(tracked),
    )
    return report
