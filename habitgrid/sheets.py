"""Google Sheets backend.

Habits worksheet layout: row 1 is the header (two label cells followed by one
``YYYY-MM-DD`` cell per day), every further row is
``name | periodicity | value | value | ...`` with notes attached to the value
cells. The snapshots worksheet has ``Habit`` followed by one column per
snapshot date, and one row per habit.

Rows are addressed by habit name here and nowhere else; the rest of the
package only sees the integer ids handed out by this adapter.
"""
from __future__ import annotations
from datetime import date
from typing import Any, Dict, Iterable, List, Tuple

import gspread
from gspread.utils import rowcol_to_a1
from loguru import logger

from .models import Cell, CellChange, Grid, HabitRow, SnapshotEntry, normalize_value, parse_day

HEADER_COLUMNS = 2
SNAPSHOT_LABEL = "Habit"


def _at(row: List[Any], c: int) -> str:
    return str(row[c]).strip() if c < len(row) else ""


class SheetStorage:
    def __init__(self, spreadsheet, habits_worksheet: str = "Habits", snapshots_worksheet: str = "Snapshots"):
        self.spreadsheet = spreadsheet
        self.habits_ws = spreadsheet.worksheet(habits_worksheet)
        try:
            self.snapshots_ws = spreadsheet.worksheet(snapshots_worksheet)
        except gspread.exceptions.WorksheetNotFound:
            logger.info(f"Creating snapshot worksheet '{snapshots_worksheet}'")
            self.snapshots_ws = spreadsheet.add_worksheet(title=snapshots_worksheet, rows=100, cols=26)
            self.snapshots_ws.update_cell(1, 1, SNAPSHOT_LABEL)
        self._ids: Dict[str, int] = {}
        self._next_id = 1

    @classmethod
    def from_service_account(cls, credentials_file: str, sheet_id: str, **kwargs) -> "SheetStorage":
        client = gspread.service_account(filename=credentials_file)
        return cls(client.open_by_key(sheet_id), **kwargs)

    def _id_for(self, name: str) -> int:
        if name not in self._ids:
            self._ids[name] = self._next_id
            self._next_id += 1
        return self._ids[name]

    def _name_for(self, habit_id: int) -> str | None:
        for name, hid in self._ids.items():
            if hid == habit_id:
                return name
        return None

    # --- Habits ---
    def _habit_rows(self, rows: List[List[Any]]) -> List[HabitRow]:
        habits = []
        for pos, row in enumerate(rows[1:]):
            name = _at(row, 0)
            if not name:
                continue
            habits.append(
                HabitRow(
                    habit_id=self._id_for(name),
                    name=name,
                    periodicity=_at(row, 1),
                    position=pos,
                )
            )
        return habits

    def list_habits(self) -> List[HabitRow]:
        return self._habit_rows(self.habits_ws.get_all_values())

    def get_habit(self, habit_id: int) -> HabitRow | None:
        for h in self.list_habits():
            if h.habit_id == habit_id:
                return h
        return None

    def find_habit(self, name: str) -> HabitRow | None:
        for h in self.list_habits():
            if h.name == name:
                return h
        return None

    def _row_number(self, habit_id: int) -> int | None:
        h = self.get_habit(habit_id)
        return h.position + 2 if h else None

    def add_habit(self, name: str, periodicity: str = "") -> HabitRow:
        self.habits_ws.append_row([name, periodicity], value_input_option="RAW")
        logger.info(f"Appended habit row '{name}'")
        return self.find_habit(name) or HabitRow(habit_id=self._id_for(name), name=name, periodicity=periodicity)

    def delete_habit(self, habit_id: int):
        habit = self.get_habit(habit_id)
        if habit is None:
            return
        self.habits_ws.delete_rows(habit.position + 2)
        self._ids.pop(habit.name, None)
        snap_rows = self.snapshots_ws.get_all_values()
        # bottom-up so earlier row numbers stay valid
        for idx in reversed(range(2, len(snap_rows) + 1)):
            if _at(snap_rows[idx - 1], 0) == habit.name:
                self.snapshots_ws.delete_rows(idx)

    def rename_habit(self, habit_id: int, name: str):
        old = self._name_for(habit_id)
        row = self._row_number(habit_id)
        if row is None or old is None:
            return
        self.habits_ws.update_cell(row, 1, name)
        self._ids[name] = self._ids.pop(old)
        snap_rows = self.snapshots_ws.get_all_values()
        for idx, snap_row in enumerate(snap_rows[1:], start=2):
            if _at(snap_row, 0) == old:
                self.snapshots_ws.update_cell(idx, 1, name)

    def move_habit(self, from_index: int, to_index: int):
        if from_index == to_index:
            return
        habits = self.list_habits()
        # indexes count named habits only; blank rows in between keep their place
        source = habits[from_index].position + 1
        target = habits[to_index].position + 1
        # moveDimension destination is counted before the source rows are removed
        destination = target + 1 if to_index > from_index else target
        self.spreadsheet.batch_update({
            "requests": [{
                "moveDimension": {
                    "source": {
                        "sheetId": self.habits_ws.id,
                        "dimension": "ROWS",
                        "startIndex": source,
                        "endIndex": source + 1,
                    },
                    "destinationIndex": destination,
                }
            }]
        })

    def set_periodicity(self, habit_id: int, periodicity: str):
        row = self._row_number(habit_id)
        if row is not None:
            self.habits_ws.update_cell(row, 2, periodicity)

    # --- Date index ---
    def _date_columns(self, header: List[Any]) -> List[Tuple[int, date]]:
        """(1-based column, date) for every parseable header cell."""
        out = []
        for idx, raw in enumerate(header[HEADER_COLUMNS:], start=HEADER_COLUMNS + 1):
            day = parse_day(raw)
            if day is not None:
                out.append((idx, day))
        return out

    def list_dates(self) -> List[date]:
        return sorted(d for _, d in self._date_columns(self.habits_ws.row_values(1)))

    def ensure_dates(self, days: Iterable[date]) -> int:
        """Append missing days after the last header date.

        Days earlier than the last existing column are not inserted; the sheet
        keeps its columns in date order.
        """
        header = self.habits_ws.row_values(1)
        columns = self._date_columns(header)
        existing = {d for _, d in columns}
        last = max(existing) if existing else None
        missing = sorted(d for d in set(days) if d not in existing and (last is None or d > last))
        if not missing:
            return 0
        start_col = max(len(header), HEADER_COLUMNS) + 1
        needed = start_col + len(missing) - 1 - self.habits_ws.col_count
        if needed > 0:
            self.habits_ws.add_cols(needed)
        self.habits_ws.batch_update([
            {"range": rowcol_to_a1(1, start_col + i), "values": [[d.isoformat()]]}
            for i, d in enumerate(missing)
        ])
        logger.debug(f"Appended {len(missing)} date columns to the sheet")
        return len(missing)

    def _column_for(self, day: date) -> int | None:
        for col, d in self._date_columns(self.habits_ws.row_values(1)):
            if d == day:
                return col
        return None

    # --- Cells ---
    def load_cells(self) -> Dict[int, Dict[date, Cell]]:
        return {h.habit_id: h.cells for h in self.load_grid().habits}

    def set_cell_value(self, habit_id: int, day: date, value: int):
        row, col = self._row_number(habit_id), self._column_for(day)
        if row is not None and col is not None:
            self.habits_ws.update_cell(row, col, value)

    def set_cell_values(self, changes: Iterable[CellChange]):
        changes = list(changes)
        if not changes:
            return
        rows = self.habits_ws.get_all_values()
        row_of = {h.habit_id: h.position + 2 for h in self._habit_rows(rows)}
        col_of = {d: c for c, d in self._date_columns(rows[0] if rows else [])}
        data = []
        for c in changes:
            row, col = row_of.get(c.habit_id), col_of.get(c.day)
            if row is None or col is None:
                continue
            data.append({"range": rowcol_to_a1(row, col), "values": [[c.new_value]]})
        if data:
            self.habits_ws.batch_update(data)

    def set_cell_note(self, habit_id: int, day: date, note: str | None):
        row, col = self._row_number(habit_id), self._column_for(day)
        if row is None or col is None:
            return
        a1 = rowcol_to_a1(row, col)
        if note:
            self.habits_ws.update_note(a1, note)
        else:
            self.habits_ws.clear_note(a1)

    # --- Snapshots ---
    def upsert_snapshot(self, habit_name: str, day: date, periodicity: str):
        rows = self.snapshots_ws.get_all_values()
        header = rows[0] if rows else [SNAPSHOT_LABEL]
        col = None
        for idx, raw in enumerate(header[1:], start=2):
            if parse_day(raw) == day:
                col = idx
                break
        if col is None:
            col = max(len(header), 1) + 1
            if col > self.snapshots_ws.col_count:
                self.snapshots_ws.add_cols(col - self.snapshots_ws.col_count)
            self.snapshots_ws.update_cell(1, col, day.isoformat())
        row = None
        for idx, snap_row in enumerate(rows[1:], start=2):
            if _at(snap_row, 0) == habit_name:
                row = idx
                break
        if row is None:
            self.snapshots_ws.append_row([habit_name], value_input_option="RAW")
            row = max(len(rows), 1) + 1
        self.snapshots_ws.update_cell(row, col, periodicity)

    def load_history(self) -> Dict[str, List[SnapshotEntry]]:
        rows = self.snapshots_ws.get_all_values()
        if not rows:
            return {}
        columns = [(idx, parse_day(raw)) for idx, raw in enumerate(rows[0]) if idx > 0]
        columns = sorted(((idx, d) for idx, d in columns if d is not None), key=lambda item: item[1])
        history: Dict[str, List[SnapshotEntry]] = {}
        for row in rows[1:]:
            name = _at(row, 0)
            if not name:
                continue
            history[name] = [
                SnapshotEntry(name, d, _at(row, idx)) for idx, d in columns
            ]
        return history

    def list_history(self, habit_name: str) -> List[SnapshotEntry]:
        return self.load_history().get(habit_name, [])

    # --- Whole grid ---
    def load_grid(self) -> Grid:
        rows = self.habits_ws.get_all_values()
        notes = self.habits_ws.get_notes()
        habits = self._habit_rows(rows)
        columns = self._date_columns(rows[0] if rows else [])
        for h in habits:
            r = h.position + 1
            note_row = notes[r] if r < len(notes) else []
            for col, day in columns:
                h.cells[day] = Cell(
                    value=normalize_value(_at(rows[r], col - 1)),
                    note=_at(note_row, col - 1) or None,
                )
        return Grid(dates=sorted(d for _, d in columns), habits=habits, history=self.load_history())
