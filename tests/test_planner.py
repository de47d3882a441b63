# tests/test_planner.py

from __future__ import annotations

from datetime import date

import pytest

from daynote.core.errors import NotFound, ValidationError
from daynote.tasks.planner import (
    CompletionStats,
    build_month,
    completion_stats,
    history_stats,
    month_bounds,
    shift_month,
)
from daynote.tasks.task_models import Task

D1 = date(2024, 5, 1)


def _t(text: str, day: date = D1, completed: bool = False, created_at: int = 0) -> Task:
    return Task(id="", owner_id="", date=day, text=text, completed=completed, created_at=created_at)


def test_completion_stats_edges() -> None:
    assert completion_stats([]) == CompletionStats(0, 0, 0)
    assert completion_stats([_t("a", completed=True), _t("b")]) == CompletionStats(1, 2, 50)
    # half-up: 1/8 = 12.5% -> 13, 2/3 = 66.67% -> 67
    assert completion_stats([_t("a", completed=True)] + [_t("x")] * 7).percentage == 13
    assert completion_stats([_t("a", completed=True)] * 2 + [_t("x")]).percentage == 67


def test_history_stats() -> None:
    tasks = [
        _t("a", D1, True),
        _t("b", D1, False),
        _t("c", date(2024, 5, 3), True),
    ]
    h = history_stats(tasks)
    assert (h.total_days_with_plans, h.total_tasks, h.total_completed, h.average_completion_rate) == (2, 3, 2, 67)
    assert history_stats([]).average_completion_rate == 0


def test_tasks_for_date_sorted_by_created_at_stable(planner, task_store) -> None:
    task_store.create(_t("late", created_at=30))
    task_store.create(_t("early", created_at=10))
    task_store.create(_t("tie-first", created_at=20))
    task_store.create(_t("tie-second", created_at=20))

    assert [t.text for t in planner.tasks_for_date(D1)] == ["early", "tie-first", "tie-second", "late"]


def test_has_plan_never_errors(planner, task_store) -> None:
    assert planner.has_plan(date(1999, 1, 1)) is False
    task_store.create(_t("a"))
    assert planner.has_plan(D1) is True
    assert planner.has_plan(D1) == bool(planner.tasks_for_date(D1))


def test_plan_reminder_and_editing(planner, clock) -> None:
    assert planner.needs_plan_reminder() is True

    task = planner.add_task("  write tests  ")
    assert task.date == clock.today()
    assert task.text == "write tests"
    assert planner.needs_plan_reminder() is False

    done = planner.set_completed(task.id, True)
    assert done.completed is True
    tasks, stats = planner.day_summary(clock.today())
    assert [t.id for t in tasks] == [task.id]
    assert stats == CompletionStats(1, 1, 100)

    planner.remove_task(task.id)
    planner.remove_task(task.id)
    assert planner.needs_plan_reminder() is True

    with pytest.raises(NotFound):
        planner.set_completed("missing", True)


def test_plan_reminder_only_on_workdays(planner, clock) -> None:
    clock.day = date(2024, 5, 18)  # Saturday
    assert planner.needs_plan_reminder() is False
    clock.day = date(2024, 5, 19)  # Sunday
    assert planner.needs_plan_reminder() is False
    clock.day = date(2024, 5, 20)  # Monday
    assert planner.needs_plan_reminder() is True
    planner.add_task("standup")
    assert planner.needs_plan_reminder() is False


def test_clear_date_and_history(planner) -> None:
    planner.add_task("a", D1)
    planner.add_task("b", D1)
    planner.add_task("c", date(2024, 5, 2))
    assert planner.history().total_tasks == 3

    assert planner.clear_date(D1) == 2
    assert planner.history().total_days_with_plans == 1


def test_dates_with_plans_and_month_calendar(planner, clock) -> None:
    planner.add_task("a", D1)
    planner.add_task("b", date(2024, 5, 20))
    planner.add_task("c", date(2024, 6, 1))

    assert planner.dates_with_plans(2024, 5) == {D1, date(2024, 5, 20)}

    cal = planner.month_calendar(2024, 5, selected=date(2024, 5, 10))
    by_day = {d.date.day: d for d in cal.days}
    assert len(cal.days) == 31
    assert by_day[1].has_plan and by_day[20].has_plan and not by_day[2].has_plan
    assert by_day[15].is_today  # clock.today() == 2024-05-15
    assert by_day[10].selected
    assert not by_day[15].disabled
    assert by_day[16].disabled and by_day[20].disabled


def test_build_month_leading_blanks_sunday_first() -> None:
    # 2024-09-01 is a Sunday, 2024-05-01 a Wednesday, 2024-06-01 a Saturday
    assert build_month(2024, 9, date(2024, 9, 30)).leading_blanks == 0
    assert build_month(2024, 5, date(2024, 5, 1)).leading_blanks == 3
    assert build_month(2024, 6, date(2024, 6, 1)).leading_blanks == 6


def test_build_month_all_future_month_disabled() -> None:
    cal = build_month(2024, 7, date(2024, 6, 30))
    assert all(d.disabled for d in cal.days)
    assert not any(d.is_today for d in cal.days)


def test_month_helpers() -> None:
    assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    assert shift_month(2024, 12, 1) == (2025, 1)
    assert shift_month(2024, 1, -1) == (2023, 12)
    assert shift_month(2024, 5, -17) == (2022, 12)
    with pytest.raises(ValidationError):
        month_bounds(2024, 13)
