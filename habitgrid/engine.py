from __future__ import annotations
import random
from datetime import date, timedelta
from typing import Any, Callable, List, Optional
from loguru import logger

from .bucketing import build_buckets
from .evaluator import TIE_BREAK_COLUMN, TIE_BREAKS, evaluate_bucket
from .models import CellChange, Grid, HabitRow
from .projection import project
from .rules import live_periodicity


class HabitEngine:
    """Periodicity reconciliation over a habit store.

    Every pass recomputes the whole history: bucket each habit's dated cells,
    evaluate the buckets against today and write back only the cells whose
    value changes. A second pass without new input writes nothing.
    """

    def __init__(
        self,
        storage,
        tie_break: str = TIE_BREAK_COLUMN,
        rng: Optional[random.Random] = None,
        start_date: Optional[date] = None,
        days_ahead: int = 30,
        clock: Optional[Callable[[], date]] = None,
    ):
        if tie_break not in TIE_BREAKS:
            raise ValueError(f"Unknown tie-break policy: {tie_break}")
        self.storage = storage
        self.tie_break = tie_break
        self.rng = rng or random.Random()
        self.start_date = start_date
        self.days_ahead = days_ahead
        self._clock = clock or date.today

    def today(self) -> date:
        return self._clock()

    # --- Date index ---
    def extend_calendar(self, today: date | None = None) -> int:
        today = today or self.today()
        existing = self.storage.list_dates()
        start = self.start_date or (existing[0] if existing else today)
        end = today + timedelta(days=max(0, self.days_ahead))
        if start > end:
            return 0
        days = [start + timedelta(days=i) for i in range((end - start).days + 1)]
        return self.storage.ensure_dates(days)

    # --- Reconciliation ---
    def evaluate(self, grid: Grid, today: date) -> List[CellChange]:
        """Compute the cell changes for ``grid`` and apply them to it in memory."""
        changes: List[CellChange] = []
        for h in grid.habits:
            try:
                changes.extend(self._evaluate_habit(h, grid, today))
            except Exception:
                # one malformed row must not block the others
                logger.exception(f"Reconciliation failed for habit '{h.name}'")
        return changes

    def _evaluate_habit(self, habit: HabitRow, grid: Grid, today: date) -> List[CellChange]:
        out = []
        for bucket in build_buckets(habit, grid.dates, grid.history.get(habit.name)):
            for member, new_value in evaluate_bucket(bucket, today, self.tie_break, self.rng):
                out.append(CellChange(habit.habit_id, member.day, member.value, new_value))
                habit.cells.setdefault(member.day, habit.cell(member.day)).value = new_value
        return out

    def reconcile(self, today: date | None = None) -> List[CellChange]:
        return self._reconcile(today)[1]

    def _reconcile(self, today: date | None = None) -> tuple[Grid, List[CellChange]]:
        today = today or self.today()
        self.extend_calendar(today)
        grid = self.storage.load_grid()
        changes = self.evaluate(grid, today)
        if changes:
            self.storage.set_cell_values(changes)
        logger.info(f"Reconciled {len(grid.habits)} habits over {len(grid.dates)} days, {len(changes)} cells written")
        return grid, changes

    def read(self, today: date | None = None) -> List[List[Any]]:
        today = today or self.today()
        grid, _ = self._reconcile(today)
        return project(grid, today)

    # --- Mutations ---
    def set_value(self, habit_id: int, day: date, value: int):
        self.storage.set_cell_value(habit_id, day, value)

    def set_note(self, habit_id: int, day: date, note: str | None):
        self.storage.set_cell_note(habit_id, day, (note or "").strip() or None)

    def set_periodicity(self, habit_id: int, periodicity: str):
        self.storage.set_periodicity(habit_id, (periodicity or "").strip())

    def add_habit(self, name: str, periodicity: str = "") -> HabitRow:
        return self.storage.add_habit(name, (periodicity or "").strip())

    def delete_habit(self, habit_id: int):
        self.storage.delete_habit(habit_id)

    def rename_habit(self, habit_id: int, name: str):
        self.storage.rename_habit(habit_id, name)

    def move_habit(self, from_index: int, to_index: int):
        self.storage.move_habit(from_index, to_index)

    def save_snapshot(self, as_of: date | None = None) -> int:
        """Record every habit's live periodicity as the snapshot for ``as_of``."""
        as_of = as_of or self.today()
        habits = self.storage.list_habits()
        for h in habits:
            self.storage.upsert_snapshot(h.name, as_of, live_periodicity(h.periodicity))
        logger.info(f"Saved periodicity snapshot for {len(habits)} habits as of {as_of.isoformat()}")
        return len(habits)
