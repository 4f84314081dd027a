"""Periodicity parsing and history-aware rule resolution."""
from __future__ import annotations
import re
from datetime import date
from typing import Sequence

from .models import DEFAULT_PERIODICITY, PeriodicityRule, SnapshotEntry

_RULE_RE = re.compile(r"^\s*(\d+)\s*/\s*([dwm])\s*$", re.IGNORECASE)
_UNITS = {"d": "day", "w": "week", "m": "month"}

DEFAULT_RULE = PeriodicityRule(count=1, unit="day")


def parse_rule(raw: str | None) -> PeriodicityRule | None:
    """Parse '<n>/<d|w|m>'.

    Empty input means "no rule" and returns None. Anything else that does not
    parse (including a zero count) falls back to once a day.
    """
    text = (raw or "").strip()
    if not text:
        return None
    m = _RULE_RE.match(text)
    if not m or int(m.group(1)) <= 0:
        return DEFAULT_RULE
    return PeriodicityRule(count=int(m.group(1)), unit=_UNITS[m.group(2).lower()])


def live_periodicity(raw: str | None) -> str:
    text = (raw or "").strip()
    return text or DEFAULT_PERIODICITY


def resolve_periodicity(live: str | None, day: date, history: Sequence[SnapshotEntry] | None) -> str:
    """Periodicity string in force on ``day``.

    ``history`` must be sorted ascending by effective date. Dates older than
    every snapshot use the oldest one, so editing the live value never rewrites
    the past. Without any history the live value applies.
    """
    if not history:
        return live_periodicity(live)
    chosen = history[0]
    for entry in history:
        if entry.effective_date > day:
            break
        chosen = entry
    return (chosen.periodicity or "").strip()


def resolve_rule(live: str | None, day: date, history: Sequence[SnapshotEntry] | None) -> PeriodicityRule | None:
    return parse_rule(resolve_periodicity(live, day, history))
