# src/daynote/sync/snapshot.py

"""
Export envelopes and their JSON file format.

Wire shape (kept byte-compatible with files written by the web client):

    {"version": "1.0", "exportDate": "...Z", "totalNotes": N, "notes": [...]}
    {"version": "1.0", "exportDate": "...Z", "totalPlans": N, "plans": [...]}

A bare JSON array is also accepted on import and read as a list of notes.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from dataclasses import dataclass
from datetime import date
from enum import StrEnum
from pathlib import Path
from typing import Any

from ..core.clock import iso_utc_from_ms
from ..core.errors import SnapshotFormatError

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"


class SnapshotKind(StrEnum):
    NOTES = "notes"
    PLANS = "plans"

    @property
    def total_key(self) -> str:
        return "totalNotes" if self is SnapshotKind.NOTES else "totalPlans"


@dataclass(frozen=True, slots=True)
class Snapshot:
    kind: SnapshotKind
    exported_at: int  # epoch millis
    items: tuple[dict[str, Any], ...]
    version: str = FORMAT_VERSION

    @property
    def item_count(self) -> int:
        return len(self.items)

    def to_json(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "exportDate": iso_utc_from_ms(self.exported_at),
            self.kind.total_key: self.item_count,
            self.kind.value: list(self.items),
        }

    def dumps(self) -> str:
        return json.dumps(self.to_json(), ensure_ascii=False, indent=2)


@dataclass(frozen=True, slots=True)
class ParsedSnapshot:
    kind: SnapshotKind
    items: list[Any]
    version: str | None = None
    export_date: str | None = None


def parse_snapshot(data: Any, *, expect: SnapshotKind | None = None) -> ParsedSnapshot:
    """Recognize an envelope (or a bare notes array) in already-decoded JSON."""
    if isinstance(data, list):
        parsed = ParsedSnapshot(kind=SnapshotKind.NOTES, items=data)
    elif isinstance(data, dict):
        found = [k for k in SnapshotKind if isinstance(data.get(k.value), list)]
        if len(found) != 1:
            raise SnapshotFormatError("expected exactly one of 'notes' or 'plans' arrays in the snapshot")
        kind = found[0]
        parsed = ParsedSnapshot(
            kind=kind,
            items=list(data[kind.value]),
            version=str(data["version"]) if data.get("version") is not None else None,
            export_date=str(data["exportDate"]) if data.get("exportDate") is not None else None,
        )
    else:
        raise SnapshotFormatError("snapshot must be a JSON object or array")

    if expect is not None and parsed.kind is not expect:
        raise SnapshotFormatError(f"expected a {expect.value} snapshot, got {parsed.kind.value}")
    return parsed


def loads(text: str, *, expect: SnapshotKind | None = None) -> ParsedSnapshot:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SnapshotFormatError(f"not valid JSON: {e.msg} (line {e.lineno})") from e
    return parse_snapshot(data, expect=expect)


def read_snapshot_file(path: str | Path, *, expect: SnapshotKind | None = None) -> ParsedSnapshot:
    path = Path(path)
    parsed = loads(path.read_text("utf-8"), expect=expect)
    logger.info("Read %s snapshot: %d item(s) from %s", parsed.kind.value, len(parsed.items), path)
    return parsed


def write_snapshot_file(snapshot: Snapshot, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(snapshot.dumps(), "utf-8")
    os.replace(tmp, path)
    with contextlib.suppress(OSError):
        # Best-effort: exports contain personal notes, keep the file private on disk.
        os.chmod(path, 0o600)
    logger.info("Wrote %s snapshot: %d item(s) to %s", snapshot.kind.value, snapshot.item_count, path)
    return path


def default_filename(kind: SnapshotKind, today: date) -> str:
    if kind is SnapshotKind.NOTES:
        return f"notes-backup-{today.isoformat()}.json"
    return f"plans-history-{today.isoformat()}.json"
