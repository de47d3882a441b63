# src/daynote/sync/reconciler.py

"""
Import/export merge engine.

Every import is one pass of the same loop, parameterized per call by:

- ImportMode:      APPEND keeps the owner's collection, REPLACE clears it first
- MatchStrategy:   ById() or ByContentEquality(fields), which existing record
                   (if any) a candidate corresponds to
- CollisionPolicy: REASSIGN_ID (never match, always insert under a fresh id),
                   OVERWRITE (merge onto the match, candidate wins),
                   SKIP (leave the match alone, report already_exists)

Items are processed in input order and independently: a failing candidate
is reported in the ImportReport and the batch goes on. REPLACE is not
transactional; once the collection is cleared there is no rollback.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, Generic, TypeVar

from ..core.errors import DaynoteError, ValidationError
from ..core.ports import Clock, IdGenerator, NoteRepo, TaskRepo
from ..notes.note_models import Note, NoteQuery, NoteType, merge_details, note_fields_from_json, note_from_fields
from ..tasks.task_models import Task, task_fields_from_json
from .snapshot import Snapshot, SnapshotKind

logger = logging.getLogger(__name__)

R = TypeVar("R", Note, Task)


class ImportMode(StrEnum):
    APPEND = "append"
    REPLACE = "replace"


@dataclass(frozen=True, slots=True)
class ById:
    pass


@dataclass(frozen=True, slots=True)
class ByContentEquality:
    fields: tuple[str, ...]


MatchStrategy = ById | ByContentEquality


class CollisionPolicy(StrEnum):
    REASSIGN_ID = "reassign_id"
    OVERWRITE = "overwrite"
    SKIP = "skip"


class Outcome(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


ALREADY_EXISTS = "already_exists"

NOTE_CONTENT_FIELDS = ("title", "content")
TASK_CONTENT_FIELDS = ("date", "text")


@dataclass(frozen=True, slots=True)
class ItemResult:
    index: int
    outcome: Outcome
    record_id: str | None = None
    reason: str | None = None


@dataclass(slots=True)
class ImportReport:
    kind: str
    results: list[ItemResult] = field(default_factory=list)

    def _count(self, outcome: Outcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    @property
    def created(self) -> int:
        return self._count(Outcome.CREATED)

    @property
    def updated(self) -> int:
        return self._count(Outcome.UPDATED)

    @property
    def skipped(self) -> int:
        return self._count(Outcome.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(Outcome.FAILED)

    def summary(self) -> str:
        return (
            f"{self.kind}: {len(self.results)} processed, {self.created} created, "
            f"{self.updated} updated, {self.skipped} skipped, {self.failed} failed"
        )


class _Side(Generic[R]):
    """Entity-specific hooks used by the generic reconcile loop."""

    kind: str
    field_names: frozenset[str]

    def explicit_fields(self, raw: Any) -> dict[str, Any]:
        raise NotImplementedError

    def with_defaults(self, fields: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def build(self, fields: dict[str, Any]) -> R:
        raise NotImplementedError

    def match_scope(self, fields: dict[str, Any]) -> list[R]:
        raise NotImplementedError

    def find_by_id(self, record_id: str, fields: dict[str, Any]) -> R | None:
        raise NotImplementedError

    def merge(self, existing: R, fields: dict[str, Any]) -> R:
        return replace(existing, **{k: v for k, v in fields.items() if k != "id"})

    @property
    def store(self) -> Any:
        raise NotImplementedError


class _NoteSide(_Side[Note]):
    kind = "note"
    field_names = frozenset(
        {"id", "type", "title", "content", "rating", "tags", "date", "created_at", "last_modified"}
    )

    def __init__(self, store: NoteRepo, clock: Clock, force_type: NoteType | None) -> None:
        self._store = store
        self._clock = clock
        self._force_type = force_type

    @property
    def store(self) -> NoteRepo:
        return self._store

    def explicit_fields(self, raw: Any) -> dict[str, Any]:
        fields = note_fields_from_json(raw)
        if self._force_type is not None:
            fields["type"] = self._force_type
        return fields

    def with_defaults(self, fields: dict[str, Any]) -> dict[str, Any]:
        out = dict(fields)
        out.setdefault("title", "Untitled")
        out.setdefault("content", "")
        out.setdefault("date", self._clock.today())
        out.setdefault("type", NoteType.DAILY)
        return out

    def build(self, fields: dict[str, Any]) -> Note:
        return note_from_fields(fields, owner_id=self._store.owner_id)

    def match_scope(self, fields: dict[str, Any]) -> list[Note]:
        return self._store.list_records()

    def find_by_id(self, record_id: str, fields: dict[str, Any]) -> Note | None:
        return self._store.get_by_id(record_id)

    def merge(self, existing: Note, fields: dict[str, Any]) -> Note:
        merged = super().merge(existing, fields)
        if "details" in fields:
            merged.details = merge_details(existing.details, fields["details"])
        return merged


class _TaskSide(_Side[Task]):
    kind = "task"
    field_names = frozenset({"id", "date", "text", "completed", "created_at"})

    def __init__(self, store: TaskRepo) -> None:
        self._store = store

    @property
    def store(self) -> TaskRepo:
        return self._store

    def explicit_fields(self, raw: Any) -> dict[str, Any]:
        fields = task_fields_from_json(raw)
        if "date" not in fields:
            raise ValidationError("task date is required", field="date")
        if not fields.get("text", "").strip():
            raise ValidationError("task text is required", field="text")
        return fields

    def with_defaults(self, fields: dict[str, Any]) -> dict[str, Any]:
        out = dict(fields)
        out.setdefault("completed", False)
        return out

    def build(self, fields: dict[str, Any]) -> Task:
        return Task(
            id=fields.get("id", ""),
            owner_id=self._store.owner_id,
            date=fields["date"],
            text=fields["text"],
            completed=fields.get("completed", False),
            created_at=fields.get("created_at", 0),
        )

    def match_scope(self, fields: dict[str, Any]) -> list[Task]:
        return self._store.find_by_date(fields["date"])

    def find_by_id(self, record_id: str, fields: dict[str, Any]) -> Task | None:
        # id matches only count within the candidate's own date
        for task in self._store.find_by_date(fields["date"]):
            if task.id == record_id:
                return task
        return None


class Reconciler:
    """Decides create / update / skip for incoming notes and tasks, and builds exports."""

    def __init__(self, notes: NoteRepo, tasks: TaskRepo, *, clock: Clock, new_id: IdGenerator) -> None:
        self._notes = notes
        self._tasks = tasks
        self._clock = clock
        self._new_id = new_id

    # ---- generic engine ----

    def import_notes(
        self,
        candidates: Iterable[Any],
        *,
        mode: ImportMode = ImportMode.APPEND,
        match: MatchStrategy = ById(),
        policy: CollisionPolicy = CollisionPolicy.REASSIGN_ID,
        force_type: NoteType | str | None = None,
    ) -> ImportReport:
        forced = NoteType.parse(force_type) if force_type is not None else None
        side = _NoteSide(self._notes, self._clock, forced)
        return self._reconcile(side, list(candidates), mode=mode, match=match, policy=policy)

    def import_tasks(
        self,
        candidates: Iterable[Any],
        *,
        mode: ImportMode = ImportMode.APPEND,
        match: MatchStrategy = ByContentEquality(TASK_CONTENT_FIELDS),
        policy: CollisionPolicy = CollisionPolicy.OVERWRITE,
    ) -> ImportReport:
        side = _TaskSide(self._tasks)
        return self._reconcile(side, list(candidates), mode=mode, match=match, policy=policy)

    # ---- named entry points ----

    def import_note_file(
        self,
        candidates: Iterable[Any],
        *,
        replace_existing: bool = False,
        force_type: NoteType | str | None = None,
    ) -> ImportReport:
        """File import: append under fresh ids, or wipe and keep the file's ids."""
        if replace_existing:
            return self.import_notes(
                candidates,
                mode=ImportMode.REPLACE,
                match=ById(),
                policy=CollisionPolicy.OVERWRITE,
                force_type=force_type,
            )
        return self.import_notes(
            candidates,
            mode=ImportMode.APPEND,
            match=ById(),
            policy=CollisionPolicy.REASSIGN_ID,
            force_type=force_type,
        )

    def import_notes_deduplicated(self, candidates: Iterable[Any]) -> ImportReport:
        """Programmatic import: skip notes whose (title, content) already exist."""
        return self.import_notes(
            candidates,
            mode=ImportMode.APPEND,
            match=ByContentEquality(NOTE_CONTENT_FIELDS),
            policy=CollisionPolicy.SKIP,
        )

    def import_task_list(self, candidates: Iterable[Any]) -> ImportReport:
        """Same (date, text) updates the existing task; anything else is inserted."""
        return self.import_tasks(
            candidates,
            match=ByContentEquality(TASK_CONTENT_FIELDS),
            policy=CollisionPolicy.OVERWRITE,
        )

    def import_task_history(self, candidates: Iterable[Any]) -> ImportReport:
        """Whole-history import: same id on the same date updates; novel ids insert."""
        return self.import_tasks(candidates, match=ById(), policy=CollisionPolicy.OVERWRITE)

    # ---- export ----

    def export_notes(
        self,
        ids: Iterable[str] | None = None,
        *,
        note_type: NoteType | str | None = None,
    ) -> Snapshot:
        query = NoteQuery(type=NoteType.parse(note_type)) if note_type is not None else None
        notes = self._notes.list_records(query)
        if ids is not None:
            wanted = set(ids)
            notes = [n for n in notes if n.id in wanted]
            missing = len(wanted) - len(notes)
            if missing:
                logger.debug("export_notes: %d selected id(s) not found", missing)
        return Snapshot(
            kind=SnapshotKind.NOTES,
            exported_at=self._clock.now_ms(),
            items=tuple(n.to_json() for n in notes),
        )

    def export_tasks(self) -> Snapshot:
        return Snapshot(
            kind=SnapshotKind.PLANS,
            exported_at=self._clock.now_ms(),
            items=tuple(t.to_json() for t in self._tasks.list_records()),
        )

    # ---- internals ----

    def _reconcile(
        self,
        side: _Side[Any],
        candidates: Sequence[Any],
        *,
        mode: ImportMode,
        match: MatchStrategy,
        policy: CollisionPolicy,
    ) -> ImportReport:
        if isinstance(match, ByContentEquality):
            unknown = set(match.fields) - side.field_names
            if not match.fields or unknown:
                raise ValidationError(f"invalid {side.kind} match fields: {sorted(unknown) or '(empty)'}")

        if mode is ImportMode.REPLACE:
            logger.warning("Replace-mode %s import: clearing %d existing record(s)", side.kind, side.store.count())
            side.store.clear()

        report = ImportReport(kind=f"{side.kind} import")
        for index, raw in enumerate(candidates):
            try:
                result = self._reconcile_one(side, index, raw, match, policy)
            except DaynoteError as e:
                logger.warning("%s import item %d failed: %s", side.kind, index, e)
                result = ItemResult(index=index, outcome=Outcome.FAILED, reason=str(e))
            except Exception as e:
                logger.exception("%s import item %d crashed", side.kind, index)
                result = ItemResult(index=index, outcome=Outcome.FAILED, reason=f"{type(e).__name__}: {e}")
            report.results.append(result)

        logger.info(
            "%s (mode=%s match=%s policy=%s)",
            report.summary(),
            mode.value,
            type(match).__name__,
            policy.value,
        )
        return report

    def _reconcile_one(
        self,
        side: _Side[Any],
        index: int,
        raw: Any,
        match: MatchStrategy,
        policy: CollisionPolicy,
    ) -> ItemResult:
        explicit = side.explicit_fields(raw)
        full = side.with_defaults(explicit)

        if policy is CollisionPolicy.REASSIGN_ID:
            full["id"] = self._new_id()
            record_id = side.store.create(side.build(full))
            return ItemResult(index=index, outcome=Outcome.CREATED, record_id=record_id)

        # matched on the values the candidate carries; an absent field never matches
        existing = self._find_match(side, explicit, match)
        if existing is not None:
            if policy is CollisionPolicy.SKIP:
                return ItemResult(index=index, outcome=Outcome.SKIPPED, record_id=existing.id, reason=ALREADY_EXISTS)
            side.store.update(side.merge(existing, explicit))
            return ItemResult(index=index, outcome=Outcome.UPDATED, record_id=existing.id)

        full["id"] = self._claim_id(side, full.get("id"))
        record_id = side.store.create(side.build(full))
        return ItemResult(index=index, outcome=Outcome.CREATED, record_id=record_id)

    @staticmethod
    def _find_match(side: _Side[Any], fields: dict[str, Any], match: MatchStrategy) -> Any | None:
        if isinstance(match, ById):
            record_id = fields.get("id")
            return side.find_by_id(record_id, fields) if record_id else None

        wanted = tuple(fields.get(name) for name in match.fields)
        for record in side.match_scope(fields):
            if tuple(getattr(record, name) for name in match.fields) == wanted:
                return record
        return None

    def _claim_id(self, side: _Side[Any], candidate_id: str | None) -> str:
        """Keep the candidate's id while it is free in the owner's store."""
        if candidate_id and side.store.get_by_id(candidate_id) is None:
            return candidate_id
        return self._new_id()
