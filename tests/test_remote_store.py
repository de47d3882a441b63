# tests/test_remote_store.py

from __future__ import annotations

import json
from datetime import date

import httpx
import pytest

from daynote.core.errors import AlreadyExists, AuthFailure, NotFound, StoreError, ValidationError
from daynote.notes.note_models import Note, NoteQuery, NoteType
from daynote.remote.client import ApiClient, RemoteNoteStore, RemoteTaskStore
from daynote.sync.reconciler import Outcome, Reconciler
from daynote.tasks.task_models import Task

from .fakes import FixedClock, SequentialIds

D1 = date(2024, 5, 1)
_NOTE_COLUMNS = ("id", "type", "title", "content", "rating", "tags")


class FakeServer:
    """
    In-process stand-in for the notes web server, wired through httpx.MockTransport.

    Mirrors the route table, response envelope and error statuses (duplicate
    note id is a 400, duplicate plan id a 500). Only the server's own note
    columns are kept; tags are stored as a list.
    """

    def __init__(self, token: str = "secret") -> None:
        self.token = token
        self.notes: dict[str, dict] = {}
        self.plans: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        self.now = 1_700_000_000_000

    def _ok(self, data: dict | None = None, status: int = 200, message: str = "ok") -> httpx.Response:
        return httpx.Response(status, json={"success": True, "data": data or {}, "message": message})

    def _err(self, status: int, message: str) -> httpx.Response:
        return httpx.Response(status, json={"success": False, "message": message})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("Authorization") != f"Bearer {self.token}":
            return self._err(401, "unauthorized")

        path = request.url.path.removeprefix("/api")
        parts = [p for p in path.split("/") if p]
        method = request.method
        body = json.loads(request.content) if request.content else {}

        if parts[:1] == ["notes"]:
            return self._notes(method, parts[1:], body, request.url.params)
        if parts[:1] == ["plans"]:
            return self._plans(method, parts[1:], body)
        return self._err(404, "no route")

    def _notes(self, method: str, rest: list[str], body: dict, params) -> httpx.Response:
        if not rest and method == "GET":
            items = list(self.notes.values())
            if params.get("type"):
                items = [n for n in items if n["type"] == params["type"]]
            page, limit = int(params.get("page", 1)), int(params.get("limit", 20))
            chunk = items[(page - 1) * limit : page * limit]
            return self._ok({"notes": chunk, "pagination": {"page": page, "limit": limit, "total": len(items)}})
        if not rest and method == "POST":
            if not body.get("title"):
                return self._err(400, "title is required")
            if body["id"] in self.notes:
                return self._err(400, "note id already exists")
            self.now += 1
            note = {k: body.get(k) for k in _NOTE_COLUMNS}
            note.update(createdAt=self.now, updatedAt=self.now)
            self.notes[body["id"]] = note
            return self._ok({"note": note}, status=201)

        note_id = rest[0]
        if note_id not in self.notes:
            return self._err(404, "note not found")
        if method == "GET":
            return self._ok({"note": self.notes[note_id]})
        if method == "PUT":
            self.now += 1
            self.notes[note_id].update({k: v for k, v in body.items() if k in _NOTE_COLUMNS}, updatedAt=self.now)
            return self._ok({"note": self.notes[note_id]})
        if method == "DELETE":
            del self.notes[note_id]
            return self._ok()
        return self._err(405, "method not allowed")

    def _plans(self, method: str, rest: list[str], body: dict) -> httpx.Response:
        if not rest and method == "GET":
            return self._ok({"plans": list(self.plans.values())})
        if not rest and method == "POST":
            if body["id"] in self.plans:
                return self._err(500, "server error")
            self.now += 1
            plan = {**body, "createdAt": str(self.now)}  # BIGINT columns arrive as strings
            self.plans[body["id"]] = plan
            return self._ok({"plan": plan}, status=201)
        if rest[0] == "date" and method == "DELETE":
            for pid in [k for k, p in self.plans.items() if p["date"] == rest[1]]:
                del self.plans[pid]
            return self._ok()
        if method == "GET":
            return self._ok({"plans": [p for p in self.plans.values() if p["date"] == rest[0]]})

        plan_id = rest[0]
        if plan_id not in self.plans:
            return self._err(404, "plan not found")
        if method == "PUT":
            self.plans[plan_id].update(body)
            return self._ok({"plan": self.plans[plan_id]})
        if method == "DELETE":
            del self.plans[plan_id]
            return self._ok()
        return self._err(405, "method not allowed")


@pytest.fixture()
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture()
def api(server: FakeServer) -> ApiClient:
    return ApiClient("http://testserver/api", "secret", transport=httpx.MockTransport(server))


@pytest.fixture()
def remote_notes(api: ApiClient) -> RemoteNoteStore:
    return RemoteNoteStore(api, owner_id="u1", new_id=SequentialIds("n-"))


@pytest.fixture()
def remote_tasks(api: ApiClient) -> RemoteTaskStore:
    return RemoteTaskStore(api, owner_id="u1", new_id=SequentialIds("t-"))


def test_remote_note_crud(remote_notes: RemoteNoteStore, server: FakeServer) -> None:
    note_id = remote_notes.create(Note(id="", owner_id="", type=NoteType.BOOK, title="Dune", tags=["scifi"], rating=5))
    assert note_id == "n-1"
    assert server.requests[-1].url.path == "/api/notes"
    assert server.requests[-1].headers["Authorization"] == "Bearer secret"

    got = remote_notes.get_by_id(note_id)
    assert got is not None
    assert (got.title, got.tags, got.rating, got.owner_id) == ("Dune", ["scifi"], 5, "u1")
    assert got.last_modified == got.created_at  # read from the server's updatedAt

    remote_notes.update(Note(id=note_id, owner_id="u1", type=NoteType.BOOK, title="Dune II"))
    updated = remote_notes.get_by_id(note_id)
    assert updated is not None
    assert updated.title == "Dune II"
    assert updated.last_modified > got.last_modified

    remote_notes.delete(note_id)
    remote_notes.delete(note_id)  # 404 is a no-op
    assert remote_notes.get_by_id(note_id) is None


def test_remote_note_listing_pages_and_search(remote_notes: RemoteNoteStore, server: FakeServer) -> None:
    for i in range(205):
        remote_notes.create(Note(id="", owner_id="", type=NoteType.DAILY, title=f"day {i}"))
    remote_notes.create(Note(id="", owner_id="", type=NoteType.MOVIE, title="Alien", tags=["Space"]))

    assert len(remote_notes.list_records()) == 206
    assert remote_notes.count() == 206
    assert [n.title for n in remote_notes.find_by_type(NoteType.MOVIE)] == ["Alien"]
    # tag search is applied client-side
    assert [n.title for n in remote_notes.list_records(NoteQuery(search="space"))] == ["Alien"]

    remote_notes.clear()
    assert server.notes == {}


def test_remote_note_error_mapping(remote_notes: RemoteNoteStore, server: FakeServer) -> None:
    with pytest.raises(NotFound):
        remote_notes.update(Note(id="ghost", owner_id="", type=NoteType.BOOK, title="x"))

    remote_notes.create(Note(id="dup", owner_id="", type=NoteType.BOOK, title="x"))
    with pytest.raises(AlreadyExists):
        remote_notes.create(Note(id="dup", owner_id="", type=NoteType.BOOK, title="y"))
    assert server.notes["dup"]["title"] == "x"


def test_remote_duplicate_plan_id_is_already_exists(remote_tasks: RemoteTaskStore, server: FakeServer) -> None:
    remote_tasks.create(Task(id="p1", owner_id="", date=D1, text="read"))
    with pytest.raises(AlreadyExists):
        remote_tasks.create(Task(id="p1", owner_id="", date=D1, text="again"))
    assert server.plans["p1"]["text"] == "read"


def test_remote_400_on_fresh_id_stays_validation_error(server: FakeServer) -> None:
    def reject(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(400, json={"success": False, "message": "bad payload"})
        return server(request)

    api = ApiClient("http://testserver/api", "secret", transport=httpx.MockTransport(reject))
    with pytest.raises(ValidationError, match="bad payload"):
        RemoteNoteStore(api, owner_id="u1").create(Note(id="fresh", owner_id="", type=NoteType.BOOK, title="x"))


def test_remote_note_details_are_dropped_by_server(remote_notes: RemoteNoteStore, server: FakeServer) -> None:
    remote_notes.create(
        Note(id="b1", owner_id="", type=NoteType.BOOK, title="Dune", details={"author": "Herbert"})
    )
    assert json.loads(server.requests[-1].content)["author"] == "Herbert"
    got = remote_notes.get_by_id("b1")
    assert got is not None and got.details == {}


def test_remote_status_mapping(server: FakeServer) -> None:
    def status(code: int):
        return httpx.MockTransport(lambda req: httpx.Response(code, json={"success": False, "message": "nope"}))

    for code, exc in [(400, ValidationError), (401, AuthFailure), (403, AuthFailure), (500, StoreError)]:
        api = ApiClient("http://testserver/api", "secret", transport=status(code))
        with pytest.raises(exc):
            api.request("GET", "/notes")

    bad_token = ApiClient("http://testserver/api", "wrong", transport=httpx.MockTransport(server))
    with pytest.raises(AuthFailure):
        RemoteNoteStore(bad_token, owner_id="u1").list_records()


def test_remote_transport_failure_is_store_error() -> None:
    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    api = ApiClient("http://testserver/api", "secret", transport=httpx.MockTransport(boom))
    with pytest.raises(StoreError):
        api.request("GET", "/plans")


def test_remote_task_store(remote_tasks: RemoteTaskStore, server: FakeServer) -> None:
    a = remote_tasks.create(Task(id="", owner_id="", date=D1, text="read"))
    remote_tasks.create(Task(id="", owner_id="", date=D1, text="write"))
    remote_tasks.create(Task(id="", owner_id="", date=date(2024, 6, 1), text="later"))

    assert server.plans[a]["text"] == "read"
    day = remote_tasks.find_by_date(D1)
    assert [t.text for t in day] == ["read", "write"]
    assert all(t.created_at > 0 for t in day)

    task = remote_tasks.get_by_id(a)
    assert task is not None
    remote_tasks.update(Task(id=a, owner_id="u1", date=D1, text="read", completed=True))
    refreshed = remote_tasks.get_by_id(a)
    assert refreshed is not None and refreshed.completed is True

    assert remote_tasks.plan_dates(date(2024, 5, 1), date(2024, 5, 31)) == {D1}
    assert remote_tasks.delete_by_date(D1) == 2
    remote_tasks.delete("missing")
    assert remote_tasks.count() == 1

    with pytest.raises(NotFound):
        remote_tasks.update(Task(id="ghost", owner_id="", date=D1, text="x"))


def test_reconciler_runs_unchanged_on_remote_backend(remote_notes, remote_tasks) -> None:
    rec = Reconciler(remote_notes, remote_tasks, clock=FixedClock(), new_id=SequentialIds("r-"))
    first = rec.import_task_list([{"date": "2024-05-01", "task": "read"}])
    second = rec.import_task_list([{"date": "2024-05-01", "task": "read", "completed": True}])
    assert [r.outcome for r in first.results + second.results] == [Outcome.CREATED, Outcome.UPDATED]
    assert remote_tasks.count() == 1

    report = rec.import_notes_deduplicated([{"title": "A", "content": "x"}, {"title": "A", "content": "x"}])
    assert [r.outcome for r in report.results] == [Outcome.CREATED, Outcome.SKIPPED]
