# tests/test_task_store.py

from __future__ import annotations

from dataclasses import replace
from datetime import date
from pathlib import Path

import pytest

from daynote.core.errors import AlreadyExists, NotFound, ValidationError
from daynote.tasks.task_models import Task, TaskQuery, task_from_json
from daynote.tasks.task_store import InMemoryTaskStore, TaskStore

from .fakes import FixedClock, SequentialIds

D1 = date(2024, 5, 1)
D2 = date(2024, 5, 2)


def _task(text: str = "read", day: date = D1, **kw) -> Task:
    return Task(id=kw.pop("id", ""), owner_id="", date=day, text=text, **kw)


def test_task_create_get_and_find_by_date(task_store) -> None:
    a = task_store.create(_task("read"))
    b = task_store.create(_task("write"))
    c = task_store.create(_task("walk", D2))

    assert [t.id for t in task_store.find_by_date(D1)] == [a, b]
    assert [t.id for t in task_store.find_by_date(D2)] == [c]
    assert task_store.find_by_date(date(2030, 1, 1)) == []

    got = task_store.get_by_id(a)
    assert got is not None
    assert (got.text, got.date, got.completed, got.owner_id) == ("read", D1, False, "u1")
    assert got.created_at > 0


def test_task_create_duplicate_and_validation(task_store) -> None:
    task_store.create(_task(id="t1"))
    with pytest.raises(AlreadyExists):
        task_store.create(_task("other", D2, id="t1"))
    with pytest.raises(ValidationError):
        task_store.create(_task("  "))
    assert task_store.count() == 1


def test_task_update_moves_between_dates(task_store) -> None:
    tid = task_store.create(_task())
    current = task_store.get_by_id(tid)
    assert current is not None

    task_store.update(replace(current, date=D2, completed=True))
    assert task_store.find_by_date(D1) == []
    moved = task_store.find_by_date(D2)
    assert [t.id for t in moved] == [tid]
    assert moved[0].completed is True

    with pytest.raises(NotFound):
        task_store.update(_task(id="ghost"))


def test_task_list_records_query(task_store) -> None:
    task_store.create(_task("a", completed=True))
    task_store.create(_task("b"))
    task_store.create(_task("c", D2, completed=True))

    assert [t.text for t in task_store.list_records(TaskQuery(completed=True))] == ["a", "c"]
    assert [t.text for t in task_store.list_records(TaskQuery(date=D1, completed=False))] == ["b"]
    assert len(task_store.list_records()) == 3


def test_task_delete_idempotent_and_delete_by_date(task_store) -> None:
    a = task_store.create(_task("a"))
    task_store.create(_task("b"))
    task_store.create(_task("c", D2))

    task_store.delete(a)
    task_store.delete(a)
    task_store.delete("missing")
    assert task_store.count() == 2

    assert task_store.delete_by_date(D1) == 1
    assert task_store.delete_by_date(D1) == 0
    assert [t.text for t in task_store.list_records()] == ["c"]


def test_task_plan_dates_range(task_store) -> None:
    task_store.create(_task("x", date(2024, 4, 30)))
    task_store.create(_task("a", D1))
    task_store.create(_task("b", D1))
    task_store.create(_task("c", date(2024, 5, 31)))
    task_store.create(_task("d", date(2024, 6, 1)))

    assert task_store.plan_dates(date(2024, 5, 1), date(2024, 5, 31)) == {D1, date(2024, 5, 31)}

    task_store.delete_by_date(D1)
    assert task_store.plan_dates(date(2024, 5, 1), date(2024, 5, 31)) == {date(2024, 5, 31)}


def test_task_clear(task_store) -> None:
    task_store.create(_task("a"))
    task_store.create(_task("b", D2))
    task_store.clear()
    assert task_store.count() == 0
    assert task_store.plan_dates(date(2024, 1, 1), date(2024, 12, 31)) == set()


def test_sqlite_tasks_owner_isolation(tmp_path: Path) -> None:
    db = tmp_path / "plans.sqlite3"
    alice = TaskStore(db, owner_id="alice", clock=FixedClock(), new_id=SequentialIds())
    bob = TaskStore(db, owner_id="bob", clock=FixedClock(), new_id=SequentialIds())

    alice.create(_task("mine", id="t1"))
    assert bob.get_by_id("t1") is None
    assert bob.find_by_date(D1) == []
    assert bob.delete_by_date(D1) == 0
    bob.clear()
    assert alice.count() == 1


def test_in_memory_index_rebuilt_from_shared_backing() -> None:
    backing: dict = {}
    first = InMemoryTaskStore(owner_id="u1", clock=FixedClock(), new_id=SequentialIds(), backing=backing)
    first.create(_task("a"))
    first.create(_task("b", D2))

    second = InMemoryTaskStore(owner_id="u1", clock=FixedClock(), backing=backing)
    assert [t.text for t in second.find_by_date(D1)] == ["a"]
    assert second.plan_dates(D1, D2) == {D1, D2}


def test_task_from_json_accepts_both_spellings() -> None:
    client = task_from_json({"id": "1", "date": "2024-05-01", "task": "read", "completed": True, "createdAt": 5})
    server = task_from_json({"id": "1", "date": "2024-05-01", "text": "read", "completed": True, "createdAt": "5"})
    assert client == server
    assert client.to_json() == {"id": "1", "date": "2024-05-01", "task": "read", "completed": True, "createdAt": 5}

    with pytest.raises(ValidationError):
        task_from_json({"date": "2024-02-30", "task": "x"})
    with pytest.raises(ValidationError):
        task_from_json({"task": "no date"})
