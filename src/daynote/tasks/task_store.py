# src/daynote/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections import defaultdict
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any

from ..core.clock import SystemClock, TimestampIdGenerator
from ..core.errors import AlreadyExists, NotFound
from ..core.ports import Clock, IdGenerator
from .task_models import Task, TaskQuery, validate_task

logger = logging.getLogger(__name__)


class TaskStore:
    """
    SQLite task (daily plan) store bound to one owner.

    Thread-safety:
    - each method opens its own SQLite connection

    Dates are stored as ISO "YYYY-MM-DD" text, so lexical order equals
    calendar order and range queries can use the (owner_id, date) index.
    """

    def __init__(
        self,
        db_path: str | Path = "tasks.sqlite3",
        *,
        owner_id: str,
        clock: Clock | None = None,
        new_id: IdGenerator | None = None,
    ) -> None:
        self.owner_id = owner_id
        self._clock = clock or SystemClock()
        self._new_id = new_id or TimestampIdGenerator(self._clock)
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("TaskStore ready db=%s owner=%s total=%s", self._db_path, owner_id, self.count())

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.DatabaseError):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS daily_plans (
                    owner_id TEXT NOT NULL,
                    id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    text TEXT NOT NULL,
                    completed INTEGER NOT NULL DEFAULT 0,
                    created_at INTEGER NOT NULL,
                    PRIMARY KEY (owner_id, id)
                )
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_plans_owner_date ON daily_plans(owner_id, date)")
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            date=date.fromisoformat(row["date"]),
            text=str(row["text"]),
            completed=bool(row["completed"]),
            created_at=int(row["created_at"]),
        )

    def _params(self, task: Task) -> dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "id": task.id,
            "date": task.date.isoformat(),
            "text": task.text,
            "completed": 1 if task.completed else 0,
            "created_at": int(task.created_at),
        }

    def _select(self, where: str, params: list[Any]) -> list[Task]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                f"SELECT * FROM daily_plans WHERE owner_id = ? {where} ORDER BY rowid ASC",
                [self.owner_id, *params],
            ).fetchall()
            return [self._row_to_task(r) for r in rows]
        finally:
            conn.close()

    # ---- public API ----

    def count(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM daily_plans WHERE owner_id = ?", (self.owner_id,)).fetchone()
            return int(n)
        finally:
            conn.close()

    def create(self, task: Task) -> str:
        validate_task(task)
        task = replace(
            task,
            id=task.id or self._new_id(),
            owner_id=self.owner_id,
            created_at=task.created_at or self._clock.now_ms(),
        )
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO daily_plans(owner_id, id, date, text, completed, created_at)
                VALUES (:owner_id, :id, :date, :text, :completed, :created_at)
                """,
                self._params(task),
            )
            conn.commit()
        except sqlite3.IntegrityError:
            raise AlreadyExists("task", task.id) from None
        finally:
            conn.close()

        logger.debug("Task added id=%s date=%s owner=%s", task.id, task.date, self.owner_id)
        return task.id

    def update(self, task: Task) -> None:
        validate_task(task)
        conn = self._get_conn()
        try:
            cur = conn.execute(
                """
                UPDATE daily_plans
                SET date = :date, text = :text, completed = :completed, created_at = :created_at
                WHERE owner_id = :owner_id AND id = :id
                """,
                self._params(task),
            )
            conn.commit()
            if cur.rowcount == 0:
                raise NotFound("task", task.id)
        finally:
            conn.close()
        logger.debug("Task updated id=%s completed=%s", task.id, task.completed)

    def delete(self, task_id: str) -> None:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM daily_plans WHERE owner_id = ? AND id = ?", (self.owner_id, task_id))
            conn.commit()
            if cur.rowcount == 0:
                logger.debug("Task delete: id=%s not present (no-op)", task_id)
        finally:
            conn.close()

    def get_by_id(self, task_id: str) -> Task | None:
        found = self._select("AND id = ?", [task_id])
        return found[0] if found else None

    def list_records(self, query: TaskQuery | None = None) -> list[Task]:
        where = ""
        params: list[Any] = []
        if query is not None and query.date is not None:
            where += " AND date = ?"
            params.append(query.date.isoformat())
        if query is not None and query.completed is not None:
            where += " AND completed = ?"
            params.append(1 if query.completed else 0)
        return self._select(where, params)

    def find_by_date(self, day: date) -> list[Task]:
        return self._select("AND date = ?", [day.isoformat()])

    def delete_by_date(self, day: date) -> int:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "DELETE FROM daily_plans WHERE owner_id = ? AND date = ?",
                (self.owner_id, day.isoformat()),
            )
            conn.commit()
            logger.info("Deleted %s task(s) for date=%s owner=%s", cur.rowcount, day, self.owner_id)
            return int(cur.rowcount)
        finally:
            conn.close()

    def plan_dates(self, start: date, end: date) -> set[date]:
        """Distinct dates in [start, end] holding at least one task (index range scan)."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT DISTINCT date FROM daily_plans WHERE owner_id = ? AND date BETWEEN ? AND ?",
                (self.owner_id, start.isoformat(), end.isoformat()),
            ).fetchall()
            return {date.fromisoformat(r["date"]) for r in rows}
        finally:
            conn.close()

    def clear(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM daily_plans WHERE owner_id = ?", (self.owner_id,))
            conn.commit()
            logger.info("TaskStore cleared owner=%s removed=%s", self.owner_id, cur.rowcount)
        finally:
            conn.close()


class InMemoryTaskStore:
    """
    Process-local task store with a per-owner date index.

    `backing` is keyed by (owner_id, task_id) and may be shared between
    owner-bound instances; the date index is private to each instance.
    """

    def __init__(
        self,
        *,
        owner_id: str,
        clock: Clock | None = None,
        new_id: IdGenerator | None = None,
        backing: dict[tuple[str, str], Task] | None = None,
    ) -> None:
        self.owner_id = owner_id
        self._clock = clock or SystemClock()
        self._new_id = new_id or TimestampIdGenerator(self._clock)
        self._tasks: dict[tuple[str, str], Task] = backing if backing is not None else {}
        self._by_date: dict[date, list[str]] = defaultdict(list)
        for (owner, task_id), task in self._tasks.items():
            if owner == owner_id:
                self._by_date[task.date].append(task_id)

    def close(self) -> None:
        return

    def _unindex(self, task: Task) -> None:
        ids = self._by_date.get(task.date)
        if ids is None:
            return
        with contextlib.suppress(ValueError):
            ids.remove(task.id)
        if not ids:
            del self._by_date[task.date]

    def count(self) -> int:
        return sum(len(ids) for ids in self._by_date.values())

    def create(self, task: Task) -> str:
        validate_task(task)
        task = replace(
            task,
            id=task.id or self._new_id(),
            owner_id=self.owner_id,
            created_at=task.created_at or self._clock.now_ms(),
        )
        key = (self.owner_id, task.id)
        if key in self._tasks:
            raise AlreadyExists("task", task.id)
        self._tasks[key] = task
        self._by_date[task.date].append(task.id)
        logger.debug("Task added id=%s date=%s owner=%s", task.id, task.date, self.owner_id)
        return task.id

    def update(self, task: Task) -> None:
        validate_task(task)
        key = (self.owner_id, task.id)
        current = self._tasks.get(key)
        if current is None:
            raise NotFound("task", task.id)
        if current.date != task.date:
            self._unindex(current)
            self._by_date[task.date].append(task.id)
        self._tasks[key] = replace(task, owner_id=self.owner_id)

    def delete(self, task_id: str) -> None:
        task = self._tasks.pop((self.owner_id, task_id), None)
        if task is None:
            logger.debug("Task delete: id=%s not present (no-op)", task_id)
            return
        self._unindex(task)

    def get_by_id(self, task_id: str) -> Task | None:
        task = self._tasks.get((self.owner_id, task_id))
        return replace(task) if task else None

    def list_records(self, query: TaskQuery | None = None) -> list[Task]:
        own = [t for (owner, _), t in self._tasks.items() if owner == self.owner_id]
        return [replace(t) for t in own if query is None or query.matches(t)]

    def find_by_date(self, day: date) -> list[Task]:
        ids = self._by_date.get(day, [])
        return [replace(self._tasks[(self.owner_id, task_id)]) for task_id in ids]

    def delete_by_date(self, day: date) -> int:
        ids = self._by_date.pop(day, [])
        for task_id in ids:
            self._tasks.pop((self.owner_id, task_id), None)
        logger.info("Deleted %s task(s) for date=%s owner=%s", len(ids), day, self.owner_id)
        return len(ids)

    def plan_dates(self, start: date, end: date) -> set[date]:
        return {d for d, ids in self._by_date.items() if ids and start <= d <= end}

    def clear(self) -> None:
        for key in [k for k in self._tasks if k[0] == self.owner_id]:
            del self._tasks[key]
        self._by_date.clear()
