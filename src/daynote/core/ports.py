# src/daynote/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The reconciler and planner depend on Protocols instead of concrete stores.
This keeps backends (in-memory, SQLite, remote HTTP) swappable and makes
testing easier.
"""

from datetime import date
from typing import TYPE_CHECKING, Callable, Protocol

if TYPE_CHECKING:
    from ..notes.note_models import Note, NoteQuery, NoteType
    from ..tasks.task_models import Task, TaskQuery

IdGenerator = Callable[[], str]
# Zero-argument callable returning a fresh opaque id.


class Clock(Protocol):
    """Current time source. Injected so date-dependent logic stays testable."""

    def now_ms(self) -> int: ...
    def today(self) -> date: ...


class NoteRepo(Protocol):
    """
    Owner-scoped note collection.

    Every instance is bound to one owner; reads never return another owner's
    records and writes never touch them. `delete` of a missing id is a no-op.
    """

    owner_id: str

    def create(self, note: Note) -> str: ...
    def update(self, note: Note) -> None: ...
    def delete(self, note_id: str) -> None: ...
    def get_by_id(self, note_id: str) -> Note | None: ...
    def list_records(self, query: NoteQuery | None = None) -> list[Note]: ...
    def find_by_type(self, note_type: NoteType) -> list[Note]: ...
    def count(self) -> int: ...
    def clear(self) -> None: ...


class TaskRepo(Protocol):
    """Owner-scoped task collection with a date index."""

    owner_id: str

    def create(self, task: Task) -> str: ...
    def update(self, task: Task) -> None: ...
    def delete(self, task_id: str) -> None: ...
    def get_by_id(self, task_id: str) -> Task | None: ...
    def list_records(self, query: TaskQuery | None = None) -> list[Task]: ...
    def find_by_date(self, day: date) -> list[Task]: ...
    def delete_by_date(self, day: date) -> int: ...
    def plan_dates(self, start: date, end: date) -> set[date]: ...
    def count(self) -> int: ...
    def clear(self) -> None: ...
