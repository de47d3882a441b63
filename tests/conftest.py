# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from daynote.cli.bootstrap import create_initial_state
from daynote.core.state import AppState
from daynote.notes.note_store import InMemoryNoteStore, NoteStore
from daynote.sync.reconciler import Reconciler
from daynote.tasks.planner import Planner
from daynote.tasks.task_store import InMemoryTaskStore, TaskStore

from .fakes import SequentialIds, TickingClock


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap and AppState.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    data_dir = tmp_path / "data"
    return SimpleNamespace(
        app_name="daynote-test",
        log_level="DEBUG",
        owner_id="u1",
        username="alice",
        timezone="UTC",
        backend="sqlite",
        # Paths (tmp per test run)
        data_dir=data_dir,
        notes_db_path=data_dir / "notes.sqlite3",
        tasks_db_path=data_dir / "plans.sqlite3",
        export_dir=tmp_path / "exports",
        api_base_url="http://testserver/api",
        api_token=None,
        api_timeout_seconds=1.0,
    )


@pytest.fixture()
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture()
def new_id() -> SequentialIds:
    return SequentialIds()


@pytest.fixture(params=["sqlite", "memory"])
def backend(request) -> str:
    return request.param


@pytest.fixture()
def note_store(backend: str, tmp_path: Path, clock, new_id):
    if backend == "sqlite":
        return NoteStore(tmp_path / "notes.sqlite3", owner_id="u1", clock=clock, new_id=new_id)
    return InMemoryNoteStore(owner_id="u1", clock=clock, new_id=new_id)


@pytest.fixture()
def task_store(backend: str, tmp_path: Path, clock, new_id):
    if backend == "sqlite":
        return TaskStore(tmp_path / "plans.sqlite3", owner_id="u1", clock=clock, new_id=new_id)
    return InMemoryTaskStore(owner_id="u1", clock=clock, new_id=new_id)


@pytest.fixture()
def reconciler(note_store, task_store, clock, new_id) -> Reconciler:
    return Reconciler(note_store, task_store, clock=clock, new_id=new_id)


@pytest.fixture()
def planner(task_store, clock) -> Planner:
    return Planner(task_store, clock=clock)


@pytest.fixture()
def state(settings: SimpleNamespace, clock) -> AppState:
    """
    AppState built through the real composition root.

    NOTE: We keep real SQLite stores here because their correctness
    is part of what we want to test.
    """
    return create_initial_state(settings=settings, clock=clock)
