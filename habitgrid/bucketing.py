from __future__ import annotations
from datetime import date
from typing import Any, List, Sequence

from .models import Bucket, BucketMember, HabitRow, SnapshotEntry
from .rules import resolve_rule


def period_key(unit: str, day: date) -> Any:
    """Grouping key of ``day`` for a rule unit.

    Weeks use ISO numbering (Monday start, week 1 holds the year's first
    Thursday), keyed as (iso_year, iso_week) so keys order correctly.
    """
    if unit == "week":
        iso = day.isocalendar()
        return (iso[0], iso[1])
    if unit == "month":
        return (day.year, day.month)
    return day


def build_buckets(habit: HabitRow, dates: Sequence[date], history: Sequence[SnapshotEntry] | None = None) -> List[Bucket]:
    """Split a habit row into accounting periods, oldest first.

    A date with no rule in force (habit did not exist yet) ends the open
    bucket and is skipped. Within one period the most recently resolved
    rule sets the target for the whole bucket.
    """
    buckets: List[Bucket] = []
    current: Bucket | None = None
    for column, day in sorted(enumerate(dates), key=lambda item: item[1]):
        rule = resolve_rule(habit.periodicity, day, history)
        if rule is None:
            if current is not None:
                buckets.append(current)
                current = None
            continue
        key = period_key(rule.unit, day)
        if current is None or current.unit != rule.unit or current.key != key:
            if current is not None:
                buckets.append(current)
            current = Bucket(unit=rule.unit, key=key, target=rule.count)
        else:
            current.target = rule.count
        current.members.append(BucketMember(day=day, column=column, value=habit.cell(day).value))
    if current is not None:
        buckets.append(current)
    return buckets
