"""Outcome rules for a single accounting period.

Completed cells (1 or 2) are never touched. Everything else is settled
according to the bucket's unit:

* day   - a past cell that is still neutral or excused becomes failed.
* week/month, elapsed - exactly ``target - done`` of the open cells are failed,
  the rest excused. Cells already failed are picked first, then neutral ones,
  then anything else.
* week/month, still running - if the target can still be reached with the
  days that are left, past neutral cells are excused.
"""
from __future__ import annotations
import random
from datetime import date
from typing import List, Optional, Tuple

from .bucketing import period_key
from .models import COMPLETED, EXCUSED, FAILED, NEUTRAL, Bucket, BucketMember

TIE_BREAK_COLUMN = "column"
TIE_BREAK_RANDOM = "random"
TIE_BREAKS = (TIE_BREAK_COLUMN, TIE_BREAK_RANDOM)


def failure_score(value: int) -> int:
    if value == FAILED:
        return 0
    if value == NEUTRAL:
        return 1
    return 2


def is_period_past(bucket: Bucket, today: date) -> bool:
    return bucket.key < period_key(bucket.unit, today)


def evaluate_bucket(
    bucket: Bucket,
    today: date,
    tie_break: str = TIE_BREAK_COLUMN,
    rng: Optional[random.Random] = None,
) -> List[Tuple[BucketMember, int]]:
    """Return (member, new_value) pairs for members whose value must change."""
    if bucket.unit == "day":
        return _evaluate_day(bucket, today)
    if is_period_past(bucket, today):
        return _evaluate_elapsed(bucket, tie_break, rng)
    return _evaluate_open(bucket, today)


def _evaluate_day(bucket: Bucket, today: date) -> List[Tuple[BucketMember, int]]:
    changes = []
    for m in bucket.members:
        if m.day < today and m.value in (NEUTRAL, EXCUSED):
            changes.append((m, FAILED))
    return changes


def _evaluate_elapsed(bucket: Bucket, tie_break: str, rng: Optional[random.Random]) -> List[Tuple[BucketMember, int]]:
    done = sum(1 for m in bucket.members if m.value in COMPLETED)
    needed = max(0, bucket.target - done)
    candidates = [m for m in bucket.members if m.value not in COMPLETED]
    if tie_break == TIE_BREAK_RANDOM:
        candidates = list(candidates)
        (rng or random).shuffle(candidates)
    # sorted() is stable: equal scores keep column (or shuffled) order
    ranked = sorted(candidates, key=lambda m: failure_score(m.value))
    changes = []
    for idx, m in enumerate(ranked):
        new_value = FAILED if idx < needed else EXCUSED
        if m.value != new_value:
            changes.append((m, new_value))
    return changes


def _evaluate_open(bucket: Bucket, today: date) -> List[Tuple[BucketMember, int]]:
    done = sum(1 for m in bucket.members if m.value in COMPLETED)
    remaining = sum(1 for m in bucket.members if m.day >= today)
    if done + remaining < bucket.target:
        return []
    return [(m, EXCUSED) for m in bucket.members if m.day < today and m.value == NEUTRAL]
