# src/daynote/remote/client.py

"""
Stores backed by the notes web server's REST API.

Routes used (all under the configured base URL, bearer-token auth):

    GET    /notes?type=&search=&page=&limit=   -> data.notes, data.pagination
    GET    /notes/:id                          -> data.note
    POST   /notes, PUT /notes/:id, DELETE /notes/:id
    GET    /plans, GET /plans/:date            -> data.plans
    POST   /plans, PUT /plans/:id, DELETE /plans/:id, DELETE /plans/date/:date

Responses are wrapped as {"success": bool, "data": {...}, "message": str}.
The server scopes every route to the token's user, so owner scoping is
inherited rather than re-checked here.

Status mapping: 401/403 AuthFailure, 404 NotFound, 409 AlreadyExists,
400 ValidationError, anything else StoreError. The server reports a
duplicate id as 400 (notes) or 500 (plans); create() looks the id up after
such a failure and raises AlreadyExists when it is taken.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Any

import httpx

from ..core.clock import SystemClock, TimestampIdGenerator
from ..core.errors import AlreadyExists, AuthFailure, NotFound, StoreError, ValidationError
from ..core.ports import Clock, IdGenerator
from ..notes.note_models import Note, NoteQuery, NoteType, note_from_json, validate_note
from ..tasks.task_models import Task, TaskQuery, task_from_json, validate_task

logger = logging.getLogger(__name__)

_PAGE_SIZE = 100


class ApiClient:
    """Thin synchronous JSON client with error mapping onto daynote errors."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        timeout_seconds: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds, connect=min(5.0, timeout_seconds)),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            resp = self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path} failed: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        message = str(body.get("message") or resp.reason_phrase or "request failed") if isinstance(body, dict) else ""

        if resp.status_code in (401, 403):
            raise AuthFailure(message or "authentication failed")
        if resp.status_code == 404:
            raise NotFound("resource", path)
        if resp.status_code == 409:
            raise AlreadyExists("resource", path)
        if resp.status_code == 400:
            raise ValidationError(message)
        if resp.is_error:
            raise StoreError(f"{method} {path} -> HTTP {resp.status_code}: {message}")

        if not isinstance(body, dict):
            raise StoreError(f"{method} {path}: unexpected response body")
        data = body.get("data")
        return data if isinstance(data, dict) else {}


def _note_payload(note: Note) -> dict[str, Any]:
    return {
        "id": note.id,
        "type": note.type.value,
        "title": note.title,
        "content": note.content,
        "rating": note.rating,
        "tags": list(note.tags),
        # the server keeps only its own columns; details survive on local backends
        **note.details,
    }


class RemoteNoteStore:
    def __init__(
        self,
        api: ApiClient,
        *,
        owner_id: str,
        clock: Clock | None = None,
        new_id: IdGenerator | None = None,
    ) -> None:
        self.owner_id = owner_id
        self._api = api
        self._new_id = new_id or TimestampIdGenerator(clock or SystemClock())

    def close(self) -> None:
        self._api.close()

    def _note(self, raw: Any) -> Note:
        return note_from_json(raw, owner_id=self.owner_id)

    def _pages(self, params: dict[str, Any]) -> list[Note]:
        out: list[Note] = []
        page = 1
        while True:
            data = self._api.request("GET", "/notes", params={**params, "page": page, "limit": _PAGE_SIZE})
            batch = data.get("notes") or []
            out.extend(self._note(n) for n in batch)
            total = int((data.get("pagination") or {}).get("total", len(out)))
            if not batch or len(out) >= total:
                return out
            page += 1

    def count(self) -> int:
        data = self._api.request("GET", "/notes", params={"page": 1, "limit": 1})
        return int((data.get("pagination") or {}).get("total", 0))

    def create(self, note: Note) -> str:
        validate_note(note)
        note = replace(note, id=note.id or self._new_id())
        try:
            self._api.request("POST", "/notes", json=_note_payload(note))
        except ValidationError:
            # the server answers a duplicate id with a plain 400
            if self.get_by_id(note.id) is not None:
                raise AlreadyExists("note", note.id) from None
            raise
        logger.debug("Remote note added id=%s", note.id)
        return note.id

    def update(self, note: Note) -> None:
        validate_note(note)
        try:
            self._api.request("PUT", f"/notes/{note.id}", json=_note_payload(note))
        except NotFound:
            raise NotFound("note", note.id) from None

    def delete(self, note_id: str) -> None:
        try:
            self._api.request("DELETE", f"/notes/{note_id}")
        except NotFound:
            logger.debug("Remote note delete: id=%s not present (no-op)", note_id)

    def get_by_id(self, note_id: str) -> Note | None:
        try:
            data = self._api.request("GET", f"/notes/{note_id}")
        except NotFound:
            return None
        raw = data.get("note")
        return self._note(raw) if raw else None

    def list_records(self, query: NoteQuery | None = None) -> list[Note]:
        params: dict[str, Any] = {}
        if query is not None and query.type is not None:
            params["type"] = query.type.value
        notes = self._pages(params)
        # server search ignores tags; filter locally for the same semantics as other backends
        if query is not None and query.search:
            notes = [n for n in notes if query.matches(n)]
        return notes

    def find_by_type(self, note_type: NoteType) -> list[Note]:
        return self.list_records(NoteQuery(type=NoteType.parse(note_type)))

    def clear(self) -> None:
        notes = self.list_records()
        for note in notes:
            self.delete(note.id)
        logger.info("Remote notes cleared owner=%s removed=%s", self.owner_id, len(notes))


class RemoteTaskStore:
    def __init__(
        self,
        api: ApiClient,
        *,
        owner_id: str,
        clock: Clock | None = None,
        new_id: IdGenerator | None = None,
    ) -> None:
        self.owner_id = owner_id
        self._api = api
        self._new_id = new_id or TimestampIdGenerator(clock or SystemClock())

    def close(self) -> None:
        self._api.close()

    def _tasks(self, data: dict[str, Any]) -> list[Task]:
        return [task_from_json(raw, owner_id=self.owner_id) for raw in data.get("plans") or []]

    def count(self) -> int:
        return len(self.list_records())

    def create(self, task: Task) -> str:
        validate_task(task)
        task = replace(task, id=task.id or self._new_id())
        payload = {"id": task.id, "date": task.date.isoformat(), "text": task.text, "completed": task.completed}
        try:
            self._api.request("POST", "/plans", json=payload)
        except StoreError:
            # a duplicate plan id surfaces as a generic 500
            if self.get_by_id(task.id) is not None:
                raise AlreadyExists("task", task.id) from None
            raise
        logger.debug("Remote task added id=%s date=%s", task.id, task.date)
        return task.id

    def update(self, task: Task) -> None:
        # The server only accepts text/completed changes; date and createdAt are fixed at creation.
        validate_task(task)
        try:
            self._api.request("PUT", f"/plans/{task.id}", json={"text": task.text, "completed": task.completed})
        except NotFound:
            raise NotFound("task", task.id) from None

    def delete(self, task_id: str) -> None:
        try:
            self._api.request("DELETE", f"/plans/{task_id}")
        except NotFound:
            logger.debug("Remote task delete: id=%s not present (no-op)", task_id)

    def get_by_id(self, task_id: str) -> Task | None:
        for task in self.list_records():
            if task.id == task_id:
                return task
        return None

    def list_records(self, query: TaskQuery | None = None) -> list[Task]:
        if query is not None and query.date is not None:
            tasks = self.find_by_date(query.date)
        else:
            tasks = self._tasks(self._api.request("GET", "/plans"))
        return [t for t in tasks if query is None or query.matches(t)]

    def find_by_date(self, day: date) -> list[Task]:
        return self._tasks(self._api.request("GET", f"/plans/{day.isoformat()}"))

    def delete_by_date(self, day: date) -> int:
        n = len(self.find_by_date(day))
        self._api.request("DELETE", f"/plans/date/{day.isoformat()}")
        logger.info("Remote: deleted %s task(s) for date=%s", n, day)
        return n

    def plan_dates(self, start: date, end: date) -> set[date]:
        # no range route on the server; its (user_id, date) index serves the full listing
        return {t.date for t in self.list_records() if start <= t.date <= end}

    def clear(self) -> None:
        for day in {t.date for t in self.list_records()}:
            self.delete_by_date(day)
