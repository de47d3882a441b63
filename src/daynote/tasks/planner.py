# src/daynote/tasks/planner.py

"""
Date-keyed aggregation over the task store.

Everything here works on calendar dates only (no times), so the results do
not shift with the host timezone or DST. "Today" always comes from the
injected clock.
"""

from __future__ import annotations

import calendar
import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date, timedelta

from ..core.errors import NotFound, ValidationError
from ..core.ports import Clock, TaskRepo
from .task_models import Task

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CompletionStats:
    completed: int
    total: int
    percentage: int


@dataclass(frozen=True, slots=True)
class HistoryStats:
    total_days_with_plans: int
    total_tasks: int
    total_completed: int
    average_completion_rate: int


@dataclass(frozen=True, slots=True)
class CalendarDay:
    date: date
    is_today: bool
    has_plan: bool
    disabled: bool  # after "today": not selectable
    selected: bool


@dataclass(frozen=True, slots=True)
class CalendarMonth:
    year: int
    month: int
    leading_blanks: int  # empty cells before day 1 in a Sunday-first week
    days: tuple[CalendarDay, ...]


def _percent(part: int, whole: int) -> int:
    # half-up rounding (12.5 -> 13), not banker's rounding
    if whole <= 0:
        return 0
    return int(math.floor(100 * part / whole + 0.5))


def completion_stats(tasks: Iterable[Task]) -> CompletionStats:
    items = list(tasks)
    done = sum(1 for t in items if t.completed)
    return CompletionStats(completed=done, total=len(items), percentage=_percent(done, len(items)))


def history_stats(all_tasks: Iterable[Task]) -> HistoryStats:
    items = list(all_tasks)
    done = sum(1 for t in items if t.completed)
    return HistoryStats(
        total_days_with_plans=len({t.date for t in items}),
        total_tasks=len(items),
        total_completed=done,
        average_completion_rate=_percent(done, len(items)),
    )


def month_bounds(year: int, month: int) -> tuple[date, date]:
    if not 1 <= month <= 12:
        raise ValidationError(f"month must be in 1..12: {month}", field="month")
    _, ndays = calendar.monthrange(year, month)
    return date(year, month, 1), date(year, month, ndays)


def shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    idx = year * 12 + (month - 1) + offset
    return idx // 12, idx % 12 + 1


def build_month(
    year: int,
    month: int,
    today: date,
    plan_dates: Iterable[date] = (),
    selected: date | None = None,
) -> CalendarMonth:
    """Pure calendar layout for (year, month) relative to `today`."""
    first, last = month_bounds(year, month)
    planned = set(plan_dates)
    # calendar.weekday(): Monday=0; the grid starts on Sunday
    leading = (first.weekday() + 1) % 7

    days = []
    day = first
    while day <= last:
        days.append(
            CalendarDay(
                date=day,
                is_today=day == today,
                has_plan=day in planned,
                disabled=day > today,
                selected=selected is not None and day == selected,
            )
        )
        day += timedelta(days=1)
    return CalendarMonth(year=year, month=month, leading_blanks=leading, days=tuple(days))


class Planner:
    """Per-date task views, statistics and calendar state on top of a TaskRepo."""

    def __init__(self, tasks: TaskRepo, *, clock: Clock) -> None:
        self._tasks = tasks
        self._clock = clock

    def today(self) -> date:
        return self._clock.today()

    def tasks_for_date(self, day: date) -> list[Task]:
        # sorted() is stable: equal createdAt keeps store order
        return sorted(self._tasks.find_by_date(day), key=lambda t: t.created_at)

    def has_plan(self, day: date) -> bool:
        return bool(self._tasks.find_by_date(day))

    def needs_plan_reminder(self) -> bool:
        """True on a workday (Mon-Fri) that has no plan yet."""
        today = self.today()
        if today.weekday() >= 5:
            return False
        return not self.has_plan(today)

    def day_summary(self, day: date) -> tuple[list[Task], CompletionStats]:
        tasks = self.tasks_for_date(day)
        return tasks, completion_stats(tasks)

    def dates_with_plans(self, year: int, month: int) -> set[date]:
        start, end = month_bounds(year, month)
        return self._tasks.plan_dates(start, end)

    def history(self) -> HistoryStats:
        return history_stats(self._tasks.list_records())

    def month_calendar(self, year: int, month: int, selected: date | None = None) -> CalendarMonth:
        return build_month(
            year,
            month,
            self.today(),
            plan_dates=self.dates_with_plans(year, month),
            selected=selected,
        )

    # ---- plan editing ----

    def add_task(self, text: str, day: date | None = None) -> Task:
        task = Task(id="", owner_id=self._tasks.owner_id, date=day or self.today(), text=text.strip())
        task_id = self._tasks.create(task)
        created = self._tasks.get_by_id(task_id)
        if created is None:
            raise NotFound("task", task_id)
        return created

    def set_completed(self, task_id: str, completed: bool) -> Task:
        task = self._tasks.get_by_id(task_id)
        if task is None:
            raise NotFound("task", task_id)
        updated = replace(task, completed=completed)
        self._tasks.update(updated)
        return updated

    def remove_task(self, task_id: str) -> None:
        self._tasks.delete(task_id)

    def clear_date(self, day: date) -> int:
        return self._tasks.delete_by_date(day)
