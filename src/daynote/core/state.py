# src/daynote/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from .ports import Clock, IdGenerator, NoteRepo, TaskRepo
from .view import ViewState
from ..sync.reconciler import Reconciler
from ..tasks.planner import Planner


@dataclass(slots=True)
class User:
    id: str
    username: str
    # Authentication lives on the web server; the hash is only carried, never checked here.
    credential_hash: str | None = None


@dataclass(slots=True)
class AppState:
    """Runtime state shared by connectors and command handlers."""

    settings: object
    user: User
    clock: Clock
    new_id: IdGenerator

    notes: NoteRepo
    tasks: TaskRepo
    reconciler: Reconciler
    planner: Planner

    view: ViewState

    # Serializes command handling when more than one connector runs.
    lock: threading.RLock = field(default_factory=threading.RLock)
