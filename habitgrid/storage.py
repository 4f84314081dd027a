from __future__ import annotations
import sqlite3
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, List
from loguru import logger

from .models import Cell, CellChange, Grid, HabitRow, SnapshotEntry, normalize_value, parse_day


class HabitStorage:
    """SQLite store holding the habit grid and the periodicity snapshot table."""

    def __init__(self, db_path: str = "habits.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self._ensure_schema()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    @contextmanager
    def _cursor(self):
        conn = self._get_conn()
        cur = conn.cursor()
        try:
            yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cur.close()

    def _ensure_schema(self):
        with self._get_conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS habits (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    periodicity TEXT NOT NULL DEFAULT '',
                    position INTEGER NOT NULL
                )
                """
            )
            conn.execute("CREATE TABLE IF NOT EXISTS dates (day TEXT PRIMARY KEY)")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cells (
                    habit_id INTEGER NOT NULL,
                    day TEXT NOT NULL,
                    value TEXT,
                    note TEXT,
                    PRIMARY KEY (habit_id, day),
                    FOREIGN KEY(habit_id) REFERENCES habits(id)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS snapshots (
                    habit_name TEXT NOT NULL,
                    day TEXT NOT NULL,
                    periodicity TEXT NOT NULL DEFAULT '',
                    PRIMARY KEY (habit_name, day)
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_cells_day ON cells(day)")

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # --- Habits ---
    def list_habits(self) -> List[HabitRow]:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM habits ORDER BY position, id")
            rows = cur.fetchall()
        return [self._row_to_habit(r) for r in rows]

    def get_habit(self, habit_id: int) -> HabitRow | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM habits WHERE id=?", (habit_id,))
            r = cur.fetchone()
        return self._row_to_habit(r) if r else None

    def find_habit(self, name: str) -> HabitRow | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM habits WHERE name=?", (name,))
            r = cur.fetchone()
        return self._row_to_habit(r) if r else None

    def add_habit(self, name: str, periodicity: str = "") -> HabitRow:
        with self._cursor() as cur:
            cur.execute("SELECT COALESCE(MAX(position), -1) + 1 FROM habits")
            position = cur.fetchone()[0]
            cur.execute(
                "INSERT INTO habits (name, periodicity, position) VALUES (?,?,?)",
                (name, periodicity, position),
            )
            habit_id = cur.lastrowid
        logger.info(f"Added habit '{name}' (id={habit_id})")
        return HabitRow(habit_id=habit_id, name=name, periodicity=periodicity, position=position)

    def delete_habit(self, habit_id: int):
        with self._cursor() as cur:
            cur.execute("SELECT name FROM habits WHERE id=?", (habit_id,))
            r = cur.fetchone()
            if not r:
                return
            cur.execute("DELETE FROM cells WHERE habit_id=?", (habit_id,))
            cur.execute("DELETE FROM snapshots WHERE habit_name=?", (r["name"],))
            cur.execute("DELETE FROM habits WHERE id=?", (habit_id,))
        logger.info(f"Deleted habit '{r['name']}' (id={habit_id}) with its snapshot history")
        self._renumber([h.habit_id for h in self.list_habits()])

    def rename_habit(self, habit_id: int, name: str):
        with self._cursor() as cur:
            cur.execute("SELECT name FROM habits WHERE id=?", (habit_id,))
            r = cur.fetchone()
            if not r:
                return
            cur.execute("UPDATE habits SET name=? WHERE id=?", (name, habit_id))
            cur.execute("UPDATE snapshots SET habit_name=? WHERE habit_name=?", (name, r["name"]))

    def move_habit(self, from_index: int, to_index: int):
        ids = [h.habit_id for h in self.list_habits()]
        moved = ids.pop(from_index)
        ids.insert(to_index, moved)
        self._renumber(ids)

    def set_periodicity(self, habit_id: int, periodicity: str):
        with self._cursor() as cur:
            cur.execute("UPDATE habits SET periodicity=? WHERE id=?", (periodicity, habit_id))

    def _renumber(self, ordered_ids: List[int]):
        with self._cursor() as cur:
            cur.executemany(
                "UPDATE habits SET position=? WHERE id=?",
                [(pos, hid) for pos, hid in enumerate(ordered_ids)],
            )

    @staticmethod
    def _row_to_habit(r: sqlite3.Row) -> HabitRow:
        return HabitRow(
            habit_id=r["id"],
            name=r["name"],
            periodicity=r["periodicity"] or "",
            position=r["position"],
        )

    # --- Date index ---
    def list_dates(self) -> List[date]:
        with self._cursor() as cur:
            cur.execute("SELECT day FROM dates")
            rows = cur.fetchall()
        days = [parse_day(r["day"]) for r in rows]
        return sorted(d for d in days if d is not None)

    def ensure_dates(self, days: Iterable[date]) -> int:
        with self._cursor() as cur:
            before = self._get_conn().total_changes
            cur.executemany(
                "INSERT OR IGNORE INTO dates (day) VALUES (?)",
                [(d.isoformat(),) for d in days],
            )
            added = self._get_conn().total_changes - before
        if added:
            logger.debug(f"Extended date index by {added} columns")
        return added

    # --- Cells ---
    def load_cells(self) -> Dict[int, Dict[date, Cell]]:
        with self._cursor() as cur:
            cur.execute("SELECT habit_id, day, value, note FROM cells")
            rows = cur.fetchall()
        out: Dict[int, Dict[date, Cell]] = {}
        for r in rows:
            day = parse_day(r["day"])
            if day is None:
                continue
            out.setdefault(r["habit_id"], {})[day] = Cell(value=normalize_value(r["value"]), note=r["note"] or None)
        return out

    def set_cell_value(self, habit_id: int, day: date, value: int):
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO cells (habit_id, day, value) VALUES (?,?,?)
                ON CONFLICT(habit_id, day) DO UPDATE SET value=excluded.value
                """,
                (habit_id, day.isoformat(), str(value)),
            )

    def set_cell_values(self, changes: Iterable[CellChange]):
        with self._cursor() as cur:
            cur.executemany(
                """
                INSERT INTO cells (habit_id, day, value) VALUES (?,?,?)
                ON CONFLICT(habit_id, day) DO UPDATE SET value=excluded.value
                """,
                [(c.habit_id, c.day.isoformat(), str(c.new_value)) for c in changes],
            )

    def set_cell_note(self, habit_id: int, day: date, note: str | None):
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO cells (habit_id, day, note) VALUES (?,?,?)
                ON CONFLICT(habit_id, day) DO UPDATE SET note=excluded.note
                """,
                (habit_id, day.isoformat(), note or None),
            )

    # --- Snapshots ---
    def upsert_snapshot(self, habit_name: str, day: date, periodicity: str):
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO snapshots (habit_name, day, periodicity) VALUES (?,?,?)
                ON CONFLICT(habit_name, day) DO UPDATE SET periodicity=excluded.periodicity
                """,
                (habit_name, day.isoformat(), periodicity),
            )

    def load_history(self) -> Dict[str, List[SnapshotEntry]]:
        """Snapshot history per habit, ascending by date.

        The table is rectangular: every snapshot date counts as a column, so a
        habit lacking a value on some snapshot date gets an empty entry there.
        """
        with self._cursor() as cur:
            cur.execute("SELECT habit_name, day, periodicity FROM snapshots")
            rows = cur.fetchall()
        values: Dict[str, Dict[date, str]] = {}
        all_days = set()
        for r in rows:
            day = parse_day(r["day"])
            if day is None:
                continue
            all_days.add(day)
            values.setdefault(r["habit_name"], {})[day] = r["periodicity"] or ""
        ordered_days = sorted(all_days)
        return {
            name: [SnapshotEntry(name, d, per_day.get(d, "")) for d in ordered_days]
            for name, per_day in values.items()
        }

    def list_history(self, habit_name: str) -> List[SnapshotEntry]:
        return self.load_history().get(habit_name, [])

    # --- Whole grid ---
    def load_grid(self) -> Grid:
        habits = self.list_habits()
        cells = self.load_cells()
        for h in habits:
            h.cells = cells.get(h.habit_id, {})
        return Grid(dates=self.list_dates(), habits=habits, history=self.load_history())
