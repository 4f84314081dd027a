from __future__ import annotations
from datetime import date
from typing import Any, List

from .models import Grid, format_day
from .rules import resolve_periodicity


def project(grid: Grid, today: date) -> List[List[Any]]:
    """Serialize the grid into rows: a date header, then one row per habit.

    The periodicity column shows the rule in force today (history-aware), which
    may differ from the raw live value until the next snapshot is saved.
    """
    header: List[Any] = [None, None] + [format_day(d) for d in grid.dates]
    rows: List[List[Any]] = [header]
    for h in grid.habits:
        periodicity = resolve_periodicity(h.periodicity, today, grid.history.get(h.name))
        rows.append([h.name, periodicity] + [h.cell(d).to_wire() for d in grid.dates])
    return rows
