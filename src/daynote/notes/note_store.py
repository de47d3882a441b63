# src/daynote/notes/note_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any

from ..core.clock import SystemClock, TimestampIdGenerator
from ..core.errors import AlreadyExists, NotFound
from ..core.ports import Clock, IdGenerator
from .note_models import Note, NoteQuery, NoteType, validate_note

logger = logging.getLogger(__name__)


def _stamp_new(note: Note, *, owner_id: str, clock: Clock, new_id: IdGenerator) -> Note:
    now = clock.now_ms()
    created_at = note.created_at or now
    return replace(
        note,
        id=note.id or new_id(),
        owner_id=owner_id,
        tags=list(note.tags),
        details=dict(note.details),
        created_at=created_at,
        last_modified=note.last_modified or created_at,
    )


def _copy(note: Note) -> Note:
    return replace(note, tags=list(note.tags), details=dict(note.details))


def _next_modified(previous: int, now: int) -> int:
    # lastModified must strictly increase even when the clock does not move
    return max(now, previous + 1)


class NoteStore:
    """
    SQLite note store bound to one owner.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(
        self,
        db_path: str | Path = "notes.sqlite3",
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
        logger.info("NoteStore ready db=%s owner=%s total=%s", self._db_path, owner_id, self.count())

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
                CREATE TABLE IF NOT EXISTS notes (
                    owner_id TEXT NOT NULL,
                    id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL DEFAULT '',
                    rating INTEGER,
                    tags TEXT NOT NULL DEFAULT '[]',
                    created_at INTEGER NOT NULL,
                    last_modified INTEGER NOT NULL,
                    PRIMARY KEY (owner_id, id)
                )
                """
            )

            cur.execute("PRAGMA table_info(notes)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE notes ADD COLUMN {name} {decl}")
                logger.info("NoteStore migration: added column %s", name)

            add_col("date", "TEXT")
            add_col("details", "TEXT NOT NULL DEFAULT '{}'")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_notes_owner_type ON notes(owner_id, type)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_notes_owner_created ON notes(owner_id, created_at)")
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _tags_to_str(tags: list[str]) -> str:
        return json.dumps(list(tags), ensure_ascii=False)

    @staticmethod
    def _str_to_tags(s: str | None) -> list[str]:
        if not s:
            return []
        try:
            val = json.loads(s)
        except json.JSONDecodeError:
            logger.warning("Unreadable tags column %r; treating as empty.", s)
            return []
        return [str(t) for t in val] if isinstance(val, list) else []

    @staticmethod
    def _str_to_details(s: str | None) -> dict[str, str]:
        if not s:
            return {}
        try:
            val = json.loads(s)
        except json.JSONDecodeError:
            logger.warning("Unreadable details column %r; treating as empty.", s)
            return {}
        return {str(k): str(v) for k, v in val.items()} if isinstance(val, dict) else {}

    def _row_to_note(self, row: sqlite3.Row) -> Note:
        return Note(
            id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            type=NoteType.parse(row["type"]),
            title=str(row["title"]),
            content=str(row["content"] or ""),
            rating=int(row["rating"]) if row["rating"] is not None else None,
            tags=self._str_to_tags(row["tags"]),
            details=self._str_to_details(row["details"]),
            date=date.fromisoformat(row["date"]) if row["date"] else None,
            created_at=int(row["created_at"]),
            last_modified=int(row["last_modified"]),
        )

    def _params(self, note: Note) -> dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "id": note.id,
            "type": note.type.value,
            "title": note.title,
            "content": note.content or "",
            "rating": note.rating,
            "tags": self._tags_to_str(note.tags),
            "details": json.dumps(note.details, ensure_ascii=False),
            "date": note.date.isoformat() if note.date else None,
            "created_at": int(note.created_at),
            "last_modified": int(note.last_modified),
        }

    # ---- public API ----

    def count(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM notes WHERE owner_id = ?", (self.owner_id,)).fetchone()
            return int(n)
        finally:
            conn.close()

    def create(self, note: Note) -> str:
        validate_note(note)
        note = _stamp_new(note, owner_id=self.owner_id, clock=self._clock, new_id=self._new_id)

        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO notes(owner_id, id, type, title, content, rating, tags, details, date, created_at, last_modified)
                VALUES (:owner_id, :id, :type, :title, :content, :rating, :tags, :details, :date, :created_at, :last_modified)
                """,
                self._params(note),
            )
            conn.commit()
        except sqlite3.IntegrityError:
            raise AlreadyExists("note", note.id) from None
        finally:
            conn.close()

        logger.debug("Note added id=%s type=%s owner=%s", note.id, note.type.value, self.owner_id)
        return note.id

    def update(self, note: Note) -> None:
        validate_note(note)
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT last_modified FROM notes WHERE owner_id = ? AND id = ?",
                (self.owner_id, note.id),
            ).fetchone()
            if row is None:
                raise NotFound("note", note.id)

            stamped = replace(note, last_modified=_next_modified(int(row["last_modified"]), self._clock.now_ms()))
            conn.execute(
                """
                UPDATE notes
                SET type = :type, title = :title, content = :content, rating = :rating,
                    tags = :tags, details = :details, date = :date,
                    created_at = :created_at, last_modified = :last_modified
                WHERE owner_id = :owner_id AND id = :id
                """,
                self._params(stamped),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Note updated id=%s owner=%s", note.id, self.owner_id)

    def delete(self, note_id: str) -> None:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM notes WHERE owner_id = ? AND id = ?", (self.owner_id, note_id))
            conn.commit()
            if cur.rowcount == 0:
                logger.debug("Note delete: id=%s not present (no-op)", note_id)
        finally:
            conn.close()

    def get_by_id(self, note_id: str) -> Note | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM notes WHERE owner_id = ? AND id = ?",
                (self.owner_id, note_id),
            ).fetchone()
            return self._row_to_note(row) if row else None
        finally:
            conn.close()

    def list_records(self, query: NoteQuery | None = None) -> list[Note]:
        """Return the owner's notes in insertion order, filtered by `query`."""
        sql = "SELECT * FROM notes WHERE owner_id = ?"
        params: list[Any] = [self.owner_id]
        if query is not None and query.type is not None:
            sql += " AND type = ?"
            params.append(query.type.value)
        sql += " ORDER BY rowid ASC"

        conn = self._get_conn()
        try:
            notes = [self._row_to_note(r) for r in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()

        if query is not None and query.search:
            notes = [n for n in notes if query.matches(n)]
        return notes

    def find_by_type(self, note_type: NoteType) -> list[Note]:
        return self.list_records(NoteQuery(type=NoteType.parse(note_type)))

    def clear(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM notes WHERE owner_id = ?", (self.owner_id,))
            conn.commit()
            logger.info("NoteStore cleared owner=%s removed=%s", self.owner_id, cur.rowcount)
        finally:
            conn.close()


class InMemoryNoteStore:
    """
    Process-local note store.

    Several owner-bound instances may share one `backing` dict, which is keyed
    by (owner_id, note_id); dict order doubles as insertion order.
    """

    def __init__(
        self,
        *,
        owner_id: str,
        clock: Clock | None = None,
        new_id: IdGenerator | None = None,
        backing: dict[tuple[str, str], Note] | None = None,
    ) -> None:
        self.owner_id = owner_id
        self._clock = clock or SystemClock()
        self._new_id = new_id or TimestampIdGenerator(self._clock)
        self._notes: dict[tuple[str, str], Note] = backing if backing is not None else {}

    def close(self) -> None:
        return

    def _own(self) -> list[Note]:
        return [n for (owner, _), n in self._notes.items() if owner == self.owner_id]

    def count(self) -> int:
        return len(self._own())

    def create(self, note: Note) -> str:
        validate_note(note)
        note = _stamp_new(note, owner_id=self.owner_id, clock=self._clock, new_id=self._new_id)
        key = (self.owner_id, note.id)
        if key in self._notes:
            raise AlreadyExists("note", note.id)
        self._notes[key] = note
        logger.debug("Note added id=%s type=%s owner=%s", note.id, note.type.value, self.owner_id)
        return note.id

    def update(self, note: Note) -> None:
        validate_note(note)
        key = (self.owner_id, note.id)
        current = self._notes.get(key)
        if current is None:
            raise NotFound("note", note.id)
        self._notes[key] = replace(
            note,
            owner_id=self.owner_id,
            tags=list(note.tags),
            details=dict(note.details),
            last_modified=_next_modified(current.last_modified, self._clock.now_ms()),
        )

    def delete(self, note_id: str) -> None:
        if self._notes.pop((self.owner_id, note_id), None) is None:
            logger.debug("Note delete: id=%s not present (no-op)", note_id)

    def get_by_id(self, note_id: str) -> Note | None:
        note = self._notes.get((self.owner_id, note_id))
        return _copy(note) if note else None

    def list_records(self, query: NoteQuery | None = None) -> list[Note]:
        return [_copy(n) for n in self._own() if query is None or query.matches(n)]

    def find_by_type(self, note_type: NoteType) -> list[Note]:
        return self.list_records(NoteQuery(type=NoteType.parse(note_type)))

    def clear(self) -> None:
        for key in [k for k in self._notes if k[0] == self.owner_id]:
            del self._notes[key]
