# src/daynote/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any

from ..core.errors import ValidationError


def parse_date(raw: Any, *, field: str = "date") -> date:
    """Accept a `date` or a "YYYY-MM-DD" string; anything else is a ValidationError."""
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError(f"{field} is required", field=field)
    try:
        return date.fromisoformat(raw.strip()[:10])
    except ValueError:
        raise ValidationError(f"{field} is not a valid YYYY-MM-DD date: {raw!r}", field=field) from None


@dataclass(slots=True)
class Task:
    """One entry of a day's plan."""

    id: str
    owner_id: str
    date: date
    text: str
    completed: bool = False
    created_at: int = 0

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "task": self.text,
            "completed": self.completed,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True, slots=True)
class TaskQuery:
    date: date | None = None
    completed: bool | None = None

    def matches(self, task: Task) -> bool:
        if self.date is not None and task.date != self.date:
            return False
        if self.completed is not None and task.completed != self.completed:
            return False
        return True


def validate_task(task: Task) -> None:
    if not task.text or not task.text.strip():
        raise ValidationError("task text is required", field="text")
    if not isinstance(task.date, date):
        raise ValidationError("task date is required", field="date")


def _parse_completed(raw: Any) -> bool:
    if raw is None:
        return False
    if isinstance(raw, bool):
        return raw
    # SQL backends hand booleans back as 0/1
    if isinstance(raw, int) and raw in (0, 1):
        return bool(raw)
    if isinstance(raw, str) and raw.strip().lower() in ("true", "false"):
        return raw.strip().lower() == "true"
    raise ValidationError(f"completed must be true or false: {raw!r}", field="completed")


def task_fields_from_json(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Map a JSON task object onto Task attribute names.

    Only keys present in `raw` are returned, so callers can tell "absent" from
    "explicitly set" when merging. Both the client spelling ("task") and the
    server spelling ("text") are accepted.
    """
    if not isinstance(raw, dict):
        raise ValidationError("task entry must be a JSON object")

    out: dict[str, Any] = {}
    if raw.get("id") not in (None, ""):
        out["id"] = str(raw["id"])
    if "date" in raw:
        out["date"] = parse_date(raw["date"])

    text = raw.get("task", raw.get("text"))
    if text is not None:
        out["text"] = str(text)

    if "completed" in raw:
        out["completed"] = _parse_completed(raw["completed"])
    if raw.get("createdAt") is not None:
        try:
            out["created_at"] = int(raw["createdAt"])
        except (TypeError, ValueError):
            raise ValidationError("createdAt must be epoch millis", field="created_at") from None
    return out


def task_from_json(raw: dict[str, Any], *, owner_id: str = "") -> Task:
    fields = task_fields_from_json(raw)
    if "date" not in fields:
        raise ValidationError("task date is required", field="date")
    if not fields.get("text", "").strip():
        raise ValidationError("task text is required", field="text")
    return Task(
        id=fields.get("id", ""),
        owner_id=owner_id,
        date=fields["date"],
        text=fields["text"],
        completed=fields.get("completed", False),
        created_at=fields.get("created_at", 0),
    )
