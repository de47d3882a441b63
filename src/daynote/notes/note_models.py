# src/daynote/notes/note_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum
from typing import Any

from ..core.errors import ValidationError
from ..tasks.task_models import parse_date


class NoteType(StrEnum):
    BOOK = "book"
    MOVIE = "movie"
    DAILY = "daily"

    @classmethod
    def parse(cls, raw: Any) -> NoteType:
        if isinstance(raw, NoteType):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            allowed = ", ".join(t.value for t in cls)
            raise ValidationError(f"note type must be one of {allowed}: {raw!r}", field="type") from None


# Per-type fields kept under their JSON names: book (bookTitle, author),
# movie (movieTitle, director, actors); itemTitle/subtitle mirror the
# book or movie title and author/director for list rendering.
NOTE_DETAIL_FIELDS = ("bookTitle", "author", "movieTitle", "director", "actors", "itemTitle", "subtitle")


@dataclass(slots=True)
class Note:
    id: str
    owner_id: str
    type: NoteType
    title: str
    content: str = ""
    rating: int | None = None
    tags: list[str] = field(default_factory=list)
    details: dict[str, str] = field(default_factory=dict)
    date: date | None = None
    created_at: int = 0
    last_modified: int = 0

    def to_json(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "content": self.content,
        }
        if self.rating is not None:
            out["rating"] = self.rating
        out["tags"] = list(self.tags)
        for key in NOTE_DETAIL_FIELDS:
            if key in self.details:
                out[key] = self.details[key]
        if self.date is not None:
            out["date"] = self.date.isoformat()
        out["createdAt"] = self.created_at
        out["lastModified"] = self.last_modified
        return out


@dataclass(frozen=True, slots=True)
class NoteQuery:
    type: NoteType | None = None
    search: str | None = None

    def matches(self, note: Note) -> bool:
        if self.type is not None and note.type != self.type:
            return False
        if self.search:
            return note_matches_keyword(note, self.search)
        return True


def note_matches_keyword(note: Note, keyword: str) -> bool:
    """Case-insensitive substring match over title, content and tags."""
    kw = keyword.strip().casefold()
    if not kw:
        return True
    if kw in note.title.casefold() or kw in (note.content or "").casefold():
        return True
    return any(kw in tag.casefold() for tag in note.tags)


def validate_note(note: Note) -> None:
    if not note.title or not note.title.strip():
        raise ValidationError("note title is required", field="title")
    if not isinstance(note.type, NoteType):
        NoteType.parse(note.type)
    if note.rating is not None:
        if isinstance(note.rating, bool) or not isinstance(note.rating, int) or not 1 <= note.rating <= 5:
            raise ValidationError(f"rating must be an integer in [1, 5]: {note.rating!r}", field="rating")
    for key, value in note.details.items():
        if key not in NOTE_DETAIL_FIELDS:
            raise ValidationError(f"unknown note detail: {key!r}", field="details")
        if not isinstance(value, str):
            raise ValidationError(f"note detail {key} must be a string", field="details")


def _parse_tags(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        # server stores tags as a comma-joined column
        return [t.strip() for t in raw.split(",") if t.strip()]
    if isinstance(raw, list):
        return [str(t) for t in raw]
    raise ValidationError("tags must be a list of strings", field="tags")


def _parse_rating(raw: Any) -> int | None:
    if raw is None or raw == "":
        return None
    bad = ValidationError(f"rating must be an integer in [1, 5]: {raw!r}", field="rating")
    if isinstance(raw, bool):
        raise bad
    if isinstance(raw, float):
        # integral floats only: 4.0 is 4, 4.5 is an error
        if not raw.is_integer():
            raise bad
        value = int(raw)
    elif isinstance(raw, int):
        value = raw
    elif isinstance(raw, str):
        try:
            value = int(raw.strip())
        except ValueError:
            raise bad from None
    else:
        raise bad
    if not 1 <= value <= 5:
        raise bad
    return value


def _parse_ms(raw: Any, name: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be epoch millis", field=name) from None


def note_fields_from_json(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Map a JSON note object onto Note attribute names (present keys only).

    Accepts both the client's `lastModified` and the server's `updatedAt`.
    """
    if not isinstance(raw, dict):
        raise ValidationError("note entry must be a JSON object")

    out: dict[str, Any] = {}
    if raw.get("id") not in (None, ""):
        out["id"] = str(raw["id"])
    if raw.get("type") not in (None, ""):
        out["type"] = NoteType.parse(raw["type"])
    if raw.get("title") not in (None, ""):
        out["title"] = str(raw["title"])
    if raw.get("content") is not None:
        out["content"] = str(raw["content"])
    if "rating" in raw:
        out["rating"] = _parse_rating(raw["rating"])
    if "tags" in raw:
        out["tags"] = _parse_tags(raw["tags"])
    present = [k for k in NOTE_DETAIL_FIELDS if k in raw]
    if present:
        # None marks a detail the candidate explicitly clears
        out["details"] = {k: None if raw[k] in (None, "") else str(raw[k]) for k in present}
    if raw.get("date") not in (None, ""):
        out["date"] = parse_date(raw["date"])
    if raw.get("createdAt") is not None:
        out["created_at"] = _parse_ms(raw["createdAt"], "created_at")

    modified = raw.get("lastModified", raw.get("updatedAt"))
    if modified is not None:
        out["last_modified"] = _parse_ms(modified, "last_modified")
    return out


def note_from_fields(fields: dict[str, Any], *, owner_id: str = "") -> Note:
    note = Note(
        id=fields.get("id", ""),
        owner_id=owner_id,
        type=fields.get("type", NoteType.DAILY),
        title=fields.get("title", ""),
        content=fields.get("content", ""),
        rating=fields.get("rating"),
        tags=list(fields.get("tags", [])),
        details=merge_details({}, fields.get("details")),
        date=fields.get("date"),
        created_at=fields.get("created_at", 0),
        last_modified=fields.get("last_modified", 0),
    )
    validate_note(note)
    return note


def note_from_json(raw: dict[str, Any], *, owner_id: str = "") -> Note:
    return note_from_fields(note_fields_from_json(raw), owner_id=owner_id)


def merge_details(current: dict[str, str], changes: dict[str, str | None] | None) -> dict[str, str]:
    """Apply parsed detail changes; a None value drops that key."""
    out = dict(current)
    for key, value in (changes or {}).items():
        if value is None:
            out.pop(key, None)
        else:
            out[key] = value
    return out
