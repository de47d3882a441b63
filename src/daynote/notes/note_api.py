# src/daynote/notes/note_api.py

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, timezone

from ..core.errors import NotFound
from ..core.ports import NoteRepo
from ..core.view import SortKey, ViewState
from .note_models import Note, NoteQuery, NoteType

logger = logging.getLogger(__name__)


def _sort_date(note: Note) -> date:
    # notes without a calendar date sort by their creation day
    if note.date is not None:
        return note.date
    return datetime.fromtimestamp(note.created_at / 1000, tz=timezone.utc).date() if note.created_at else date.min


def sort_notes(notes: list[Note], sort_by: SortKey) -> list[Note]:
    if sort_by is SortKey.DATE_DESC:
        return sorted(notes, key=_sort_date, reverse=True)
    if sort_by is SortKey.DATE_ASC:
        return sorted(notes, key=_sort_date)
    if sort_by is SortKey.TITLE_ASC:
        return sorted(notes, key=lambda n: n.title.casefold())
    return list(notes)


def visible_notes(store: NoteRepo, view: ViewState) -> list[Note]:
    """Notes for the list view: type filter, then keyword search, then sort."""
    query = NoteQuery(type=view.current_filter, search=view.search_keyword or None)
    return sort_notes(store.list_records(query), view.sort_by)


def note_counts(store: NoteRepo) -> dict[str, int]:
    notes = store.list_records()
    counts = {"total": len(notes)}
    for t in NoteType:
        counts[t.value] = sum(1 for n in notes if n.type is t)
    return counts


def add_note(
    store: NoteRepo,
    *,
    note_type: NoteType | str,
    title: str,
    content: str = "",
    rating: int | None = None,
    tags: list[str] | None = None,
    day: date | None = None,
) -> Note:
    note = Note(
        id="",
        owner_id=store.owner_id,
        type=NoteType.parse(note_type),
        title=title.strip(),
        content=content,
        rating=rating,
        tags=list(tags or []),
        date=day,
    )
    note_id = store.create(note)
    created = store.get_by_id(note_id)
    if created is None:
        raise NotFound("note", note_id)
    return created


def edit_note(store: NoteRepo, note_id: str, **changes) -> Note:
    """Apply attribute changes to an existing note (last write wins)."""
    note = store.get_by_id(note_id)
    if note is None:
        raise NotFound("note", note_id)
    store.update(replace(note, **changes))
    updated = store.get_by_id(note_id)
    if updated is None:
        raise NotFound("note", note_id)
    logger.debug("Note edited id=%s fields=%s", note_id, sorted(changes))
    return updated
