"""Action dispatcher for the single request endpoint.

Requests are flat objects ``{"action": ..., **payload}``. Habit names, row
indexes and date strings are resolved to store ids and dates here, inside the
request lock. Failures come back as ``{"status": "error", "message": ...}``;
nothing escapes to the transport.
"""
from __future__ import annotations
from datetime import date
from typing import Any, Callable, Dict
from loguru import logger

from .engine import HabitEngine
from .errors import DateLookupError, HabitGridError, HabitLookupError, InvalidRequestError
from .locking import RequestLock
from .models import HabitRow, normalize_value, parse_day


def success(message: str | None = None) -> Dict[str, Any]:
    out: Dict[str, Any] = {"status": "success"}
    if message:
        out["message"] = message
    return out


def error(message: str) -> Dict[str, Any]:
    return {"status": "error", "message": message}


class ActionDispatcher:
    def __init__(self, engine: HabitEngine, lock: RequestLock | None = None):
        self.engine = engine
        self.lock = lock or RequestLock()
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            "read": self._read,
            "update": self._update,
            "updateHabitPeriodicity": self._update_periodicity,
            "saveSnapshot": self._save_snapshot,
            "addHabit": self._add_habit,
            "deleteHabit": self._delete_habit,
            "renameHabit": self._rename_habit,
            "reorderHabit": self._reorder_habit,
        }

    def handle(self, request: Dict[str, Any]) -> Any:
        if not isinstance(request, dict):
            return error("Request body must be a JSON object")
        action = request.get("action")
        handler = self._handlers.get(action) if isinstance(action, str) else None
        if handler is None:
            return error(f"Unknown action: {action}")
        logger.debug(f"Dispatching action '{action}'")
        try:
            with self.lock.hold():
                return handler(request)
        except HabitGridError as e:
            logger.warning(f"Action '{action}' rejected: {e}")
            return error(str(e))
        except Exception as e:
            logger.exception(f"Action '{action}' failed")
            return error(f"Internal error: {e}")

    # --- Boundary lookups ---
    def _habit_by_name(self, request: Dict[str, Any]) -> HabitRow:
        name = request.get("habitName")
        if not name:
            raise InvalidRequestError("Missing habitName")
        habit = self.engine.storage.find_habit(str(name))
        if habit is None:
            raise HabitLookupError(f"Habit not found: {name}")
        return habit

    def _habit_by_index(self, request: Dict[str, Any], key: str = "rowIndex") -> HabitRow:
        index = _as_index(request.get(key), key)
        habits = self.engine.storage.list_habits()
        if not 0 <= index < len(habits):
            raise HabitLookupError(f"No habit at row {index}")
        return habits[index]

    def _day(self, request: Dict[str, Any]) -> date:
        raw = request.get("dateStr")
        day = parse_day(raw)
        if day is None or day not in self.engine.storage.list_dates():
            raise DateLookupError(f"Date not found: {raw}")
        return day

    @staticmethod
    def _name(request: Dict[str, Any]) -> str:
        name = str(request.get("name") or "").strip()
        if not name:
            raise InvalidRequestError("Missing habit name")
        return name

    # --- Handlers ---
    def _read(self, request: Dict[str, Any]):
        return self.engine.read()

    def _update(self, request: Dict[str, Any]):
        habit = self._habit_by_name(request)
        day = self._day(request)
        if "val" not in request and "note" not in request:
            raise InvalidRequestError("Nothing to update: expected val or note")
        if "val" in request:
            self.engine.set_value(habit.habit_id, day, normalize_value(request["val"]))
        if "note" in request:
            self.engine.set_note(habit.habit_id, day, request.get("note"))
        self.engine.reconcile()
        return success("Updated")

    def _update_periodicity(self, request: Dict[str, Any]):
        habit = self._habit_by_name(request)
        self.engine.set_periodicity(habit.habit_id, str(request.get("periodicity") or ""))
        self.engine.reconcile()
        return success("Periodicity updated")

    def _save_snapshot(self, request: Dict[str, Any]):
        as_of = None
        if request.get("date"):
            as_of = parse_day(request["date"])
            if as_of is None:
                raise InvalidRequestError(f"Invalid snapshot date: {request['date']}")
        count = self.engine.save_snapshot(as_of)
        return success(f"Snapshot saved for {count} habits")

    def _add_habit(self, request: Dict[str, Any]):
        name = self._name(request)
        if self.engine.storage.find_habit(name) is not None:
            raise InvalidRequestError(f"Habit already exists: {name}")
        self.engine.add_habit(name, str(request.get("periodicity") or ""))
        self.engine.reconcile()
        return success("Habit added")

    def _delete_habit(self, request: Dict[str, Any]):
        habit = self._habit_by_index(request)
        self.engine.delete_habit(habit.habit_id)
        self.engine.reconcile()
        return success(f"Deleted {habit.name}")

    def _rename_habit(self, request: Dict[str, Any]):
        habit = self._habit_by_index(request)
        name = self._name(request)
        if name != habit.name and self.engine.storage.find_habit(name) is not None:
            raise InvalidRequestError(f"Habit already exists: {name}")
        self.engine.rename_habit(habit.habit_id, name)
        self.engine.reconcile()
        return success("Habit renamed")

    def _reorder_habit(self, request: Dict[str, Any]):
        self._habit_by_index(request, "fromIndex")
        self._habit_by_index(request, "toIndex")
        self.engine.move_habit(_as_index(request["fromIndex"], "fromIndex"), _as_index(request["toIndex"], "toIndex"))
        self.engine.reconcile()
        return success("Habit moved")


def _as_index(raw: Any, key: str) -> int:
    if isinstance(raw, bool):
        raise InvalidRequestError(f"Invalid {key}: {raw}")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise InvalidRequestError(f"Invalid {key}: {raw}") from None
