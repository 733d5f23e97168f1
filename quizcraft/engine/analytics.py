"""Aggregate results over a quiz's completed attempts."""

from __future__ import annotations

from datetime import datetime, timezone
import math
from statistics import median
from typing import Sequence

PASSING_RATIO = 0.6

TIME_BUCKETS = (
    ("Under 5 min", 5),
    ("5-10 min", 10),
    ("10-15 min", 15),
    ("15-30 min", 30),
    ("Over 30 min", math.inf),
)


def _percent(count: int, total: int) -> float:
    return round(count / total * 100, 2) if total else 0.0


def score_distribution(scores: Sequence[float], max_score: float) -> list[dict]:
    """Bucket scores into ranges of width 1 (small quizzes) or ``ceil(max / 5)``."""
    step = math.ceil(max_score / 5) if max_score > 10 else 1
    top = int(math.ceil(max_score))
    buckets = []
    for start in range(0, top + 1, step):
        end = min(start + step - 1, top)
        last = start + step > top
        count = sum(
            1 for s in scores
            if start <= s and (s <= end if last else s < start + step)
        )
        buckets.append({
            "range": f"{start}-{end}",
            "count": count,
            "percentage": _percent(count, len(scores)),
        })
    return buckets


def _minutes_between(start: datetime, end: datetime) -> float:
    # SQLite hands back naive datetimes while fresh objects may still be aware.
    if (start.tzinfo is None) != (end.tzinfo is None):
        start = start.astimezone(timezone.utc).replace(tzinfo=None) if start.tzinfo else start
        end = end.astimezone(timezone.utc).replace(tzinfo=None) if end.tzinfo else end
    return (end - start).total_seconds() / 60


def completion_times(attempts: Sequence) -> list[dict]:
    counts = {label: 0 for label, _ in TIME_BUCKETS}
    for attempt in attempts:
        if not attempt.completed_at or not attempt.started_at:
            continue
        minutes = _minutes_between(attempt.started_at, attempt.completed_at)
        label = next(label for label, upper in TIME_BUCKETS if minutes < upper)
        counts[label] += 1
    return [
        {"range": label, "count": count, "percentage": _percent(count, len(attempts))}
        for label, count in counts.items()
        if count > 0
    ]


def summarize(attempts: Sequence) -> dict:
    """Statistics over completed attempts (objects with score, max_score, started_at, completed_at)."""
    completed = [a for a in attempts if a.completed_at is not None]
    if not completed:
        return {
            "attempts": 0,
            "max_score": 0,
            "average_score": 0,
            "median_score": 0,
            "min_score": 0,
            "max_achieved": 0,
            "pass_rate": 0,
            "score_distribution": [],
            "completion_times": [],
        }

    scores = [a.score or 0 for a in completed]
    max_score = max(a.max_score or 0 for a in completed)
    passed = sum(1 for a in completed if (a.score or 0) >= (a.max_score or 0) * PASSING_RATIO)
    return {
        "attempts": len(completed),
        "max_score": max_score,
        "average_score": round(sum(scores) / len(scores), 2),
        "median_score": median(scores),
        "min_score": min(scores),
        "max_achieved": max(scores),
        "pass_rate": _percent(passed, len(completed)),
        "score_distribution": score_distribution(scores, max_score),
        "completion_times": completion_times(completed),
    }
