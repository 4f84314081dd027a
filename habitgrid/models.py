from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

EXCUSED = -2
FAILED = -1
NEUTRAL = 0
DONE = 1
DONE_ALT = 2

CELL_VALUES = (EXCUSED, FAILED, NEUTRAL, DONE, DONE_ALT)
COMPLETED = (DONE, DONE_ALT)

DEFAULT_PERIODICITY = "1/d"


def normalize_value(raw: Any) -> int:
    """Coerce a stored cell value into one of CELL_VALUES (anything else -> 0)."""
    if raw is None or isinstance(raw, bool):
        return NEUTRAL
    try:
        number = float(str(raw).strip())
    except ValueError:
        return NEUTRAL
    if not number.is_integer() or int(number) not in CELL_VALUES:
        return NEUTRAL
    return int(number)


def format_day(day: date) -> str:
    return day.isoformat()


def parse_day(raw: Any) -> date | None:
    """Parse a YYYY-MM-DD header value; None when it is not a date."""
    if isinstance(raw, date):
        return raw
    if not raw:
        return None
    try:
        return date.fromisoformat(str(raw).strip()[:10])
    except ValueError:
        return None


@dataclass
class Cell:
    value: int = NEUTRAL
    note: Optional[str] = None

    @property
    def is_done(self) -> bool:
        return self.value in COMPLETED

    def to_wire(self) -> Dict[str, Any]:
        return {"val": self.value, "note": self.note or None}


@dataclass
class HabitRow:
    habit_id: int
    name: str
    periodicity: str = ""
    position: int = 0
    cells: Dict[date, Cell] = field(default_factory=dict)

    def cell(self, day: date) -> Cell:
        return self.cells.get(day) or Cell()


@dataclass(frozen=True)
class PeriodicityRule:
    count: int
    unit: str  # day|week|month


@dataclass(frozen=True)
class SnapshotEntry:
    habit_name: str
    effective_date: date
    periodicity: str


@dataclass
class BucketMember:
    day: date
    column: int
    value: int


@dataclass
class Bucket:
    unit: str
    key: Any
    target: int
    members: List[BucketMember] = field(default_factory=list)


@dataclass
class CellChange:
    habit_id: int
    day: date
    old_value: int
    new_value: int


@dataclass
class Grid:
    """In-memory view of the store: ordered dates and ordered habit rows."""
    dates: List[date]
    habits: List[HabitRow]
    history: Dict[str, List[SnapshotEntry]] = field(default_factory=dict)

    def find(self, name: str) -> HabitRow | None:
        for h in self.habits:
            if h.name == name:
                return h
        return None
