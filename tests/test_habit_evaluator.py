import random
from collections import Counter
from datetime import date

from habitgrid.evaluator import TIE_BREAK_RANDOM, evaluate_bucket, failure_score, is_period_past
from habitgrid.models import DONE, DONE_ALT, EXCUSED, FAILED, NEUTRAL
from habit_helpers import days, make_bucket


def _apply(bucket, changes):
    new = {m.day: m.value for m in bucket.members}
    for m, value in changes:
        new[m.day] = value
    return new


def test_failure_score_order():
    assert failure_score(FAILED) < failure_score(NEUTRAL) < failure_score(EXCUSED)


def test_day_bucket_past_neutral_or_excused_fails():
    for value in (NEUTRAL, EXCUSED):
        bucket = make_bucket("day", date(2025, 6, 9), 1, {date(2025, 6, 9): value})
        changes = evaluate_bucket(bucket, today=date(2025, 6, 10))
        assert [(m.day, v) for m, v in changes] == [(date(2025, 6, 9), FAILED)]


def test_day_bucket_today_and_future_untouched():
    for day in (date(2025, 6, 10), date(2025, 6, 11)):
        bucket = make_bucket("day", day, 1, {day: NEUTRAL})
        assert evaluate_bucket(bucket, today=date(2025, 6, 10)) == []


def test_day_bucket_done_and_failed_untouched():
    for value in (DONE, DONE_ALT, FAILED):
        bucket = make_bucket("day", date(2025, 6, 1), 1, {date(2025, 6, 1): value})
        assert evaluate_bucket(bucket, today=date(2025, 6, 10)) == []


def test_elapsed_week_two_per_week_one_done():
    week = days(date(2025, 6, 2), date(2025, 6, 8))
    values = {d: NEUTRAL for d in week}
    values[date(2025, 6, 4)] = DONE
    bucket = make_bucket("week", (2025, 23), 2, values)

    result = _apply(bucket, evaluate_bucket(bucket, today=date(2025, 6, 16)))

    counts = Counter(result.values())
    assert counts == {DONE: 1, FAILED: 1, EXCUSED: 5}
    # column order breaks the tie: the first neutral day is the failed one
    assert result[date(2025, 6, 2)] == FAILED


def test_elapsed_week_prefers_already_failed_cells():
    week = days(date(2025, 6, 2), date(2025, 6, 8))
    values = {d: NEUTRAL for d in week}
    values[date(2025, 6, 7)] = FAILED
    values[date(2025, 6, 3)] = EXCUSED
    bucket = make_bucket("week", (2025, 23), 2, values)

    result = _apply(bucket, evaluate_bucket(bucket, today=date(2025, 6, 20)))

    assert result[date(2025, 6, 7)] == FAILED
    assert result[date(2025, 6, 2)] == FAILED
    assert result[date(2025, 6, 3)] == EXCUSED
    assert Counter(result.values()) == {FAILED: 2, EXCUSED: 5}


def test_elapsed_week_target_met_excuses_everything_else():
    week = days(date(2025, 6, 2), date(2025, 6, 8))
    values = {d: NEUTRAL for d in week}
    values[date(2025, 6, 2)] = DONE
    values[date(2025, 6, 5)] = DONE_ALT
    values[date(2025, 6, 6)] = FAILED
    bucket = make_bucket("week", (2025, 23), 2, values)

    result = _apply(bucket, evaluate_bucket(bucket, today=date(2025, 7, 1)))

    assert result[date(2025, 6, 2)] == DONE
    assert result[date(2025, 6, 5)] == DONE_ALT
    # a past failure is excused once the period turned out fine
    assert result[date(2025, 6, 6)] == EXCUSED
    assert Counter(result.values()) == {DONE: 1, DONE_ALT: 1, EXCUSED: 5}


def test_elapsed_target_larger_than_bucket_fails_all_open_cells():
    values = {date(2025, 6, 7): NEUTRAL, date(2025, 6, 8): DONE}
    bucket = make_bucket("week", (2025, 23), 5, values)
    result = _apply(bucket, evaluate_bucket(bucket, today=date(2025, 6, 9)))
    assert result == {date(2025, 6, 7): FAILED, date(2025, 6, 8): DONE}


def test_elapsed_only_changed_cells_reported():
    values = {date(2025, 6, 2): FAILED, date(2025, 6, 3): EXCUSED, date(2025, 6, 4): DONE}
    bucket = make_bucket("week", (2025, 23), 2, values)
    assert evaluate_bucket(bucket, today=date(2025, 6, 9)) == []


def test_elapsed_month():
    june = days(date(2025, 6, 1), date(2025, 6, 30))
    values = {d: NEUTRAL for d in june}
    values[date(2025, 6, 15)] = DONE
    bucket = make_bucket("month", (2025, 6), 2, values)
    result = _apply(bucket, evaluate_bucket(bucket, today=date(2025, 7, 3)))
    assert Counter(result.values()) == {DONE: 1, FAILED: 1, EXCUSED: 28}


def test_open_week_past_neutral_excused_while_target_reachable():
    # Wednesday; Monday missed, Saturday still ahead
    values = {date(2025, 6, 2): NEUTRAL, date(2025, 6, 7): NEUTRAL}
    bucket = make_bucket("week", (2025, 23), 1, values)

    changes = evaluate_bucket(bucket, today=date(2025, 6, 4))

    assert [(m.day, v) for m, v in changes] == [(date(2025, 6, 2), EXCUSED)]


def test_open_week_not_excused_when_target_out_of_reach():
    values = {d: NEUTRAL for d in days(date(2025, 6, 2), date(2025, 6, 8))}
    bucket = make_bucket("week", (2025, 23), 4, values)
    # Friday: only Fri, Sat, Sun left for 4 completions
    assert evaluate_bucket(bucket, today=date(2025, 6, 6)) == []


def test_open_week_counts_today_as_remaining_and_leaves_non_neutral_alone():
    values = {
        date(2025, 6, 2): FAILED,
        date(2025, 6, 3): NEUTRAL,
        date(2025, 6, 4): DONE,
        date(2025, 6, 5): NEUTRAL,
    }
    bucket = make_bucket("week", (2025, 23), 2, values)
    changes = evaluate_bucket(bucket, today=date(2025, 6, 5))
    assert [(m.day, v) for m, v in changes] == [(date(2025, 6, 3), EXCUSED)]


def test_open_period_compares_iso_week_not_raw_dates():
    # the bucket's last column is in the past, but today is the same ISO week
    values = {date(2025, 6, 2): NEUTRAL, date(2025, 6, 3): NEUTRAL}
    bucket = make_bucket("week", (2025, 23), 1, values)
    assert not is_period_past(bucket, date(2025, 6, 8))
    # nothing left to complete in the bucket, so nothing is forced yet
    assert evaluate_bucket(bucket, today=date(2025, 6, 8)) == []


def test_completions_never_change():
    week = days(date(2025, 6, 2), date(2025, 6, 8))
    values = {d: DONE if i % 2 else DONE_ALT for i, d in enumerate(week)}
    for today in (date(2025, 6, 1), date(2025, 6, 5), date(2025, 7, 1)):
        for unit, key in (("week", (2025, 23)), ("month", (2025, 6))):
            bucket = make_bucket(unit, key, 10, values)
            assert evaluate_bucket(bucket, today=today) == []


def test_random_tie_break_fails_exactly_needed_and_is_stable_on_rerun():
    week = days(date(2025, 6, 2), date(2025, 6, 8))
    values = {d: NEUTRAL for d in week}
    bucket = make_bucket("week", (2025, 23), 3, values)

    result = _apply(bucket, evaluate_bucket(bucket, date(2025, 6, 16), TIE_BREAK_RANDOM, random.Random(7)))
    assert Counter(result.values()) == {FAILED: 3, EXCUSED: 4}

    again = make_bucket("week", (2025, 23), 3, result)
    assert evaluate_bucket(again, date(2025, 6, 16), TIE_BREAK_RANDOM, random.Random(99)) == []
