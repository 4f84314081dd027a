from datetime import date

from habitgrid.models import CellChange, DONE, FAILED
from habitgrid.storage import HabitStorage
from habit_helpers import days


def test_habits_keep_insertion_order(storage):
    storage.add_habit("Read", "1/d")
    storage.add_habit("Gym", "3/w")
    storage.add_habit("Call mom", "")
    assert [(h.name, h.periodicity, h.position) for h in storage.list_habits()] == [
        ("Read", "1/d", 0),
        ("Gym", "3/w", 1),
        ("Call mom", "", 2),
    ]
    assert storage.find_habit("Gym").periodicity == "3/w"
    assert storage.find_habit("Swim") is None


def test_move_and_delete_renumber_positions(storage):
    for name in ("A", "B", "C", "D"):
        storage.add_habit(name)
    storage.move_habit(0, 2)
    assert [h.name for h in storage.list_habits()] == ["B", "C", "A", "D"]
    storage.move_habit(3, 0)
    assert [h.name for h in storage.list_habits()] == ["D", "B", "C", "A"]

    storage.delete_habit(storage.find_habit("B").habit_id)
    assert [(h.name, h.position) for h in storage.list_habits()] == [("D", 0), ("C", 1), ("A", 2)]


def test_delete_removes_cells(storage):
    storage.ensure_dates([date(2025, 6, 1)])
    habit = storage.add_habit("Read")
    storage.set_cell_value(habit.habit_id, date(2025, 6, 1), DONE)
    storage.delete_habit(habit.habit_id)
    assert storage.load_cells() == {}


def test_rename_carries_snapshot_history(storage):
    habit = storage.add_habit("Run", "2/w")
    storage.upsert_snapshot("Run", date(2025, 6, 1), "2/w")
    storage.rename_habit(habit.habit_id, "Jog")
    assert storage.list_history("Run") == []
    assert [s.periodicity for s in storage.list_history("Jog")] == ["2/w"]
    assert storage.get_habit(habit.habit_id).name == "Jog"


def test_dates_are_unique_and_sorted(storage):
    assert storage.ensure_dates([date(2025, 6, 3), date(2025, 6, 1)]) == 2
    assert storage.ensure_dates(days(date(2025, 6, 1), date(2025, 6, 3))) == 1
    assert storage.list_dates() == days(date(2025, 6, 1), date(2025, 6, 3))


def test_value_and_note_are_independent(storage):
    habit = storage.add_habit("Read")
    day = date(2025, 6, 1)
    storage.set_cell_note(habit.habit_id, day, "tired")
    storage.set_cell_value(habit.habit_id, day, DONE)
    cell = storage.load_cells()[habit.habit_id][day]
    assert (cell.value, cell.note) == (DONE, "tired")

    storage.set_cell_values([CellChange(habit.habit_id, day, DONE, FAILED)])
    cell = storage.load_cells()[habit.habit_id][day]
    assert (cell.value, cell.note) == (FAILED, "tired")


def test_unknown_stored_values_load_as_neutral(storage):
    habit = storage.add_habit("Read")
    with storage._cursor() as cur:
        cur.execute("INSERT INTO cells (habit_id, day, value) VALUES (?,?,?)", (habit.habit_id, "2025-06-01", "7"))
        cur.execute("INSERT INTO cells (habit_id, day, value) VALUES (?,?,?)", (habit.habit_id, "2025-06-02", "x"))
    cells = storage.load_cells()[habit.habit_id]
    assert cells[date(2025, 6, 1)].value == 0
    assert cells[date(2025, 6, 2)].value == 0


def test_history_is_rectangular_and_sorted(storage):
    storage.upsert_snapshot("Gym", date(2025, 6, 15), "3/w")
    storage.upsert_snapshot("Gym", date(2025, 6, 1), "2/w")
    storage.upsert_snapshot("Read", date(2025, 6, 15), "1/d")
    storage.upsert_snapshot("Gym", date(2025, 6, 15), "4/w")

    history = storage.load_history()

    assert [(s.effective_date, s.periodicity) for s in history["Gym"]] == [
        (date(2025, 6, 1), "2/w"),
        (date(2025, 6, 15), "4/w"),
    ]
    assert [(s.effective_date, s.periodicity) for s in history["Read"]] == [
        (date(2025, 6, 1), ""),
        (date(2025, 6, 15), "1/d"),
    ]


def test_data_survives_reopen(tmp_path):
    path = str(tmp_path / "nested" / "habits.db")
    st = HabitStorage(path)
    st.ensure_dates([date(2025, 6, 1)])
    habit = st.add_habit("Read", "1/d")
    st.set_cell_value(habit.habit_id, date(2025, 6, 1), DONE)
    st.close()

    reopened = HabitStorage(path)
    try:
        grid = reopened.load_grid()
        assert grid.dates == [date(2025, 6, 1)]
        assert grid.find("Read").cell(date(2025, 6, 1)).value == DONE
    finally:
        reopened.close()


def test_delete_drops_snapshot_history(storage):
    gym = storage.add_habit("Gym", "3/w")
    storage.add_habit("Read", "1/d")
    storage.upsert_snapshot("Gym", date(2025, 6, 1), "3/w")
    storage.upsert_snapshot("Read", date(2025, 6, 1), "1/d")

    storage.delete_habit(gym.habit_id)

    assert storage.list_history("Gym") == []
    assert [s.periodicity for s in storage.list_history("Read")] == ["1/d"]
