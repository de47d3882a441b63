# src/daynote/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- picks the storage backend (sqlite / memory / remote REST),
- wires stores, planner and reconciler into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.clock import SystemClock, TimestampIdGenerator
from ..core.ports import Clock, IdGenerator, NoteRepo, TaskRepo
from ..core.state import AppState, User
from ..core.view import initial_view
from ..notes.note_store import InMemoryNoteStore, NoteStore
from ..remote.client import ApiClient, RemoteNoteStore, RemoteTaskStore
from ..sync.reconciler import Reconciler
from ..tasks.planner import Planner
from ..tasks.task_store import InMemoryTaskStore, TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.export_dir.mkdir(parents=True, exist_ok=True)
    if settings.backend == "sqlite":
        settings.notes_db_path.parent.mkdir(parents=True, exist_ok=True)
        settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def build_stores(settings, *, clock: Clock, new_id: IdGenerator) -> tuple[NoteRepo, TaskRepo]:
    owner_id = settings.owner_id
    backend = str(getattr(settings, "backend", "sqlite")).lower()

    if backend == "memory":
        return (
            InMemoryNoteStore(owner_id=owner_id, clock=clock, new_id=new_id),
            InMemoryTaskStore(owner_id=owner_id, clock=clock, new_id=new_id),
        )

    if backend == "remote":
        api = ApiClient(
            settings.api_base_url,
            settings.api_token,
            timeout_seconds=settings.api_timeout_seconds,
        )
        logger.info("Using remote backend at %s", settings.api_base_url)
        return (
            RemoteNoteStore(api, owner_id=owner_id, clock=clock, new_id=new_id),
            RemoteTaskStore(api, owner_id=owner_id, clock=clock, new_id=new_id),
        )

    return (
        NoteStore(settings.notes_db_path, owner_id=owner_id, clock=clock, new_id=new_id),
        TaskStore(settings.tasks_db_path, owner_id=owner_id, clock=clock, new_id=new_id),
    )


def create_initial_state(*, settings=None, clock: Clock | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    clock = clock or SystemClock(getattr(settings, "timezone", "UTC"))
    new_id = TimestampIdGenerator(clock)
    notes, tasks = build_stores(settings, clock=clock, new_id=new_id)

    state = AppState(
        settings=settings,
        user=User(id=settings.owner_id, username=getattr(settings, "username", settings.owner_id)),
        clock=clock,
        new_id=new_id,
        notes=notes,
        tasks=tasks,
        reconciler=Reconciler(notes, tasks, clock=clock, new_id=new_id),
        planner=Planner(tasks, clock=clock),
        view=initial_view(clock.today()),
    )
    logger.debug("AppState ready (backend=%s owner=%s)", getattr(settings, "backend", "sqlite"), settings.owner_id)
    return state
