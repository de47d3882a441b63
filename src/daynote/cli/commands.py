# src/daynote/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import cast

from ..core import view as views
from ..core.errors import DaynoteError, ValidationError
from ..core.state import AppState
from ..notes.note_api import add_note, edit_note, note_counts, visible_notes
from ..notes.note_models import NOTE_DETAIL_FIELDS, Note, NoteType
from ..sync.reconciler import ImportReport, Outcome
from ..sync.snapshot import SnapshotKind, default_filename, read_snapshot_file, write_snapshot_file
from ..tasks.planner import CalendarMonth
from ..tasks.task_models import Task, parse_date

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /notes, /plan, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except DaynoteError as e:
            logger.debug("/%s rejected: %s", name, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- rendering ----


def _format_note(note: Note) -> str:
    parts = [f"[{note.type.value}] {note.title}"]
    if note.rating is not None:
        parts.append(f"({note.rating}/5)")
    if note.tags:
        parts.append(" ".join(f"#{t}" for t in note.tags))
    if note.date is not None:
        parts.append(note.date.isoformat())
    parts.append(f"id={note.id}")
    return "  ".join(parts)


def _format_task(task: Task) -> str:
    box = "[x]" if task.completed else "[ ]"
    return f"{box} {task.text}  id={task.id}"


def _format_day(state: AppState, day: date) -> str:
    tasks, stats = state.planner.day_summary(day)
    if not tasks:
        return f"No plan for {day.isoformat()}."
    lines = [f"Plan for {day.isoformat()} ({stats.completed}/{stats.total} done, {stats.percentage}%):"]
    lines.extend(f"  {_format_task(t)}" for t in tasks)
    return "\n".join(lines)


def _format_calendar(cal: CalendarMonth) -> str:
    """Sunday-first grid; `*` marks days with a plan, `<` today, `^` the selected day."""
    lines = [f"{cal.year:04d}-{cal.month:02d}", " ".join(f"{d:<4}" for d in ("Su", "Mo", "Tu", "We", "Th", "Fr", "Sa"))]
    cells = ["    "] * cal.leading_blanks
    for day in cal.days:
        plan = "*" if day.has_plan else " "
        pos = "^" if day.selected else "<" if day.is_today else " "
        cells.append(f"{day.date.day:>2}{plan}{pos}")
    for i in range(0, len(cells), 7):
        lines.append(" ".join(cells[i : i + 7]).rstrip())
    return "\n".join(lines)


def _format_report(report: ImportReport) -> str:
    lines = [report.summary()]
    for r in report.results:
        if r.outcome in (Outcome.FAILED, Outcome.SKIPPED):
            lines.append(f"  #{r.index}: {r.outcome.value} ({r.reason})")
    return "\n".join(lines)


# ---- id lookup ----


def _resolve_id(token: str, ids: list[str], kind: str) -> str:
    """Exact id, or a unique prefix of one."""
    if token in ids:
        return token
    found = [i for i in ids if i.startswith(token)]
    if len(found) == 1:
        return found[0]
    if not found:
        raise ValidationError(f"no {kind} with id {token!r}", field="id")
    raise ValidationError(f"ambiguous {kind} id prefix {token!r} ({len(found)} matches)", field="id")


def _note_id(state: AppState, token: str) -> str:
    return _resolve_id(token, [n.id for n in state.notes.list_records()], "note")


def _task_id(state: AppState, token: str) -> str:
    return _resolve_id(token, [t.id for t in state.tasks.list_records()], "task")


# ---- handlers ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    settings = state.settings
    v = state.view
    counts = note_counts(state.notes)
    reminder = "  No plan for today yet (/plan add <task>).\n" if state.planner.needs_plan_reminder() else ""
    return (
        "Status:\n"
        f"  User: {state.user.username} (owner={state.user.id})\n"
        f"  Backend: {getattr(settings, 'backend', 'sqlite')}\n"
        f"  Today: {state.clock.today().isoformat()} ({getattr(settings, 'timezone', 'UTC')})\n"
        f"  Notes: {counts['total']}  filter={v.current_filter or 'all'}  search={v.search_keyword or '-'}  sort={v.sort_by}\n"
        f"  Export selection: {len(v.selected_export)} note(s)\n"
        f"{reminder}"
    ).rstrip("\n")


def cmd_notes(state: AppState, args: list[str]) -> str:
    """
    /notes              -> list with the current filter/search/sort
    /notes all|book|... -> change the type filter, then list
    """
    if args:
        state.view = views.apply_filter(state.view, args[0].lower())
    else:
        state.view = views.switch_view(state.view, views.View.LIST)
    notes = visible_notes(state.notes, state.view)
    header = f"Notes ({state.view.current_filter or 'all'}, sort={state.view.sort_by}"
    if state.view.search_keyword:
        header += f", search={state.view.search_keyword!r}"
    header += f"): {len(notes)}"
    if not notes:
        return header + "\n  (none)"
    return "\n".join([header] + [f"  {_format_note(n)}" for n in notes])


def cmd_search(state: AppState, args: list[str]) -> str:
    """/search <keyword> sets the keyword; /search alone clears it."""
    state.view = views.apply_search(state.view, " ".join(args))
    return cmd_notes(state, [])


def cmd_sort(state: AppState, args: list[str]) -> str:
    if not args:
        return f"Sort is {state.view.sort_by}. Use /sort date-desc | date-asc | title-asc."
    state.view = views.apply_sort(state.view, args[0])
    return cmd_notes(state, [])


_NOTE_EDIT_USAGE = "Usage: /note edit <id> [type=book|movie|daily] [date=YYYY-MM-DD] [title] [| content]"


def _note_edit_changes(args: list[str]) -> dict[str, object]:
    """Leading type=/date= options, then an optional title and `| content`."""
    changes: dict[str, object] = {}
    rest = list(args)
    while rest and rest[0].lower().startswith(("type=", "date=")):
        key, _, value = rest.pop(0).partition("=")
        if key.lower() == "type":
            changes["type"] = NoteType.parse(value)
        else:
            changes["date"] = parse_date(value)
    text = " ".join(rest)
    title, bar, content = text.partition("|")
    if title.strip():
        changes["title"] = title.strip()
    if bar:
        changes["content"] = content.strip()
    return changes


def cmd_note(state: AppState, args: list[str]) -> str:
    """
    /note add <type> <title> [| content]
    /note show <id>
    /note edit <id> [type=<type>] [date=YYYY-MM-DD] [title] [| content]
    /note rm <id>
    /note rate <id> <1-5|none>
    /note tag <id> [tag1,tag2,...]
    """
    usage = (
        "Usage:\n"
        "  /note add <book|movie|daily> <title> [| content]\n"
        "  /note show <id>\n"
        f"  {_NOTE_EDIT_USAGE.removeprefix('Usage: ')}\n"
        "  /note rm <id>\n"
        "  /note rate <id> <1-5|none>\n"
        "  /note tag <id> [tag1,tag2,...]"
    )
    if not args:
        return usage

    sub = args[0].lower()

    if sub == "add":
        if len(args) < 3:
            return "Usage: /note add <book|movie|daily> <title> [| content]"
        title, _, content = " ".join(args[2:]).partition("|")
        note = add_note(
            state.notes,
            note_type=args[1],
            title=title,
            content=content.strip(),
            day=state.clock.today(),
        )
        return f"Note added: {_format_note(note)}"

    if len(args) < 2:
        return usage
    note_id = _note_id(state, args[1])

    if sub == "show":
        note = state.notes.get_by_id(note_id)
        if note is None:
            return f"No note with id {note_id}."
        state.view = views.open_note(state.view, note_id)
        body = note.content or "(no content)"
        details = "".join(f"\n  {k}: {note.details[k]}" for k in NOTE_DETAIL_FIELDS if k in note.details)
        return f"{_format_note(note)}{details}\n\n{body}"

    if sub in ("rm", "del", "delete"):
        state.notes.delete(note_id)
        state.view = views.switch_view(state.view, views.View.LIST)
        return f"Note {note_id} deleted."

    if sub == "edit":
        changes = _note_edit_changes(args[2:])
        if not changes:
            return _NOTE_EDIT_USAGE
        note = edit_note(state.notes, note_id, **changes)
        return f"Updated: {_format_note(note)}"

    if sub == "rate":
        if len(args) < 3:
            return "Usage: /note rate <id> <1-5|none>"
        raw = args[2].lower()
        if raw == "none":
            rating = None
        else:
            try:
                rating = int(raw)
            except ValueError:
                raise ValidationError(f"rating must be 1-5 or none: {raw!r}", field="rating") from None
        note = edit_note(state.notes, note_id, rating=rating)
        return f"Rated: {_format_note(note)}"

    if sub == "tag":
        tags = [t.strip() for t in " ".join(args[2:]).split(",") if t.strip()]
        note = edit_note(state.notes, note_id, tags=tags)
        return f"Tagged: {_format_note(note)}"

    return "Unknown /note subcommand.\n" + usage


def cmd_stats(state: AppState, args: list[str]) -> str:
    counts = note_counts(state.notes)
    h = state.planner.history()
    by_type = "  ".join(f"{t.value}={counts[t.value]}" for t in NoteType)
    return (
        "Stats:\n"
        f"  Notes: {counts['total']}  ({by_type})\n"
        f"  Days with plans: {h.total_days_with_plans}\n"
        f"  Tasks: {h.total_completed}/{h.total_tasks} done ({h.average_completion_rate}%)"
    )


def cmd_plan(state: AppState, args: list[str]) -> str:
    """
    /plan [YYYY-MM-DD]             -> show the plan (today by default)
    /plan add [YYYY-MM-DD] <text>  -> add a task
    /plan done|undo|rm <id>        -> edit a task
    /plan clear [YYYY-MM-DD]       -> delete a whole day's plan
    """
    planner = state.planner
    if not args:
        state.view = views.switch_view(state.view, views.View.DAILY_PLAN)
        return _format_day(state, planner.today())

    sub = args[0].lower()

    if sub == "add":
        rest = args[1:]
        day = None
        if rest:
            with contextlib.suppress(ValidationError):
                day = parse_date(rest[0])
                rest = rest[1:]
        if not rest:
            return "Usage: /plan add [YYYY-MM-DD] <text>"
        task = planner.add_task(" ".join(rest), day)
        return f"Added to {task.date.isoformat()}: {_format_task(task)}"

    if sub in ("done", "undo"):
        if len(args) < 2:
            return f"Usage: /plan {sub} <id>"
        task = planner.set_completed(_task_id(state, args[1]), sub == "done")
        return _format_day(state, task.date)

    if sub in ("rm", "del", "delete"):
        if len(args) < 2:
            return "Usage: /plan rm <id>"
        task_id = _task_id(state, args[1])
        planner.remove_task(task_id)
        return f"Task {task_id} deleted."

    if sub == "clear":
        day = parse_date(args[1]) if len(args) > 1 else planner.today()
        n = planner.clear_date(day)
        return f"Deleted {n} task(s) for {day.isoformat()}."

    return _format_day(state, parse_date(args[0]))


def cmd_history(state: AppState, args: list[str]) -> str:
    state.view = views.switch_view(state.view, views.View.HISTORY)
    h = state.planner.history()
    lines = [
        "History:",
        f"  Days with plans: {h.total_days_with_plans}",
        f"  Tasks: {h.total_completed}/{h.total_tasks} done",
        f"  Average completion: {h.average_completion_rate}%",
    ]
    if state.view.selected_date is not None:
        lines.append("")
        lines.append(_format_day(state, state.view.selected_date))
    return "\n".join(lines)


def cmd_calendar(state: AppState, args: list[str]) -> str:
    """/calendar [YYYY-MM | next | prev]"""
    if args:
        arg = args[0].lower()
        if arg == "next":
            state.view = views.navigate_month(state.view, 1)
        elif arg == "prev":
            state.view = views.navigate_month(state.view, -1)
        else:
            year_s, _, month_s = arg.partition("-")
            try:
                year, month = int(year_s), int(month_s)
            except ValueError:
                return "Usage: /calendar [YYYY-MM | next | prev]"
            state.view = views.show_month(state.view, year, month)
    v = state.view
    cal = state.planner.month_calendar(v.calendar_year, v.calendar_month, selected=v.selected_date)
    return _format_calendar(cal)


def cmd_select(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /select YYYY-MM-DD"
    day = parse_date(args[0])
    state.view = views.select_date(state.view, day, state.clock.today())
    return _format_day(state, day)


def cmd_export(state: AppState, args: list[str]) -> str:
    """
    /export notes [all|selected|book|movie|daily] [path]
    /export plans [path]
    /export pick <id>|all|none
    """
    usage = (
        "Usage:\n"
        "  /export notes [all|selected|book|movie|daily] [path]\n"
        "  /export plans [path]\n"
        "  /export pick <id>|all|none"
    )
    if not args:
        return usage

    sub = args[0].lower()
    export_dir = Path(getattr(state.settings, "export_dir", "."))
    today = state.clock.today()

    if sub == "pick":
        if len(args) < 2:
            return f"Selected for export: {len(state.view.selected_export)} note(s)."
        target = args[1].lower()
        if target == "all":
            state.view = views.select_all_export(state.view, [n.id for n in visible_notes(state.notes, state.view)])
        elif target == "none":
            state.view = views.clear_export(state.view)
        else:
            state.view = views.toggle_export(state.view, _note_id(state, args[1]))
        return f"Selected for export: {len(state.view.selected_export)} note(s)."

    if sub == "notes":
        rest = args[1:]
        scope = rest[0].lower() if rest and rest[0].lower() in ("all", "selected", *NoteType) else "all"
        if rest and rest[0].lower() == scope:
            rest = rest[1:]
        if scope == "selected":
            if not state.view.selected_export:
                return "No notes selected. Use /export pick <id>|all first."
            snapshot = state.reconciler.export_notes(state.view.selected_export)
        elif scope == "all":
            snapshot = state.reconciler.export_notes()
        else:
            snapshot = state.reconciler.export_notes(note_type=scope)
        path = Path(rest[0]) if rest else export_dir / default_filename(SnapshotKind.NOTES, today)
        written = write_snapshot_file(snapshot, path)
        return f"Exported {snapshot.item_count} note(s) to {written}."

    if sub == "plans":
        snapshot = state.reconciler.export_tasks()
        path = Path(args[1]) if len(args) > 1 else export_dir / default_filename(SnapshotKind.PLANS, today)
        written = write_snapshot_file(snapshot, path)
        return f"Exported {snapshot.item_count} task(s) to {written}."

    return usage


def cmd_import(
    state: AppState,
    args: list[str],
    emit: CommandEmitter | None = None,
) -> str:
    """
    /import notes <path> [replace [confirm]] [as=<type>]
    /import notes <path> dedupe
    /import plans <path> [history]
    """
    usage = (
        "Usage:\n"
        "  /import notes <path> [replace [confirm]] [as=book|movie|daily]\n"
        "  /import notes <path> dedupe\n"
        "  /import plans <path> [history]"
    )
    if len(args) < 2:
        return usage

    sub = args[0].lower()
    path = Path(args[1]).expanduser()
    flags = [a.lower() for a in args[2:]]
    if not path.exists():
        return f"File not found: {path}"

    if sub == "notes":
        force_type = None
        for f in flags:
            if f.startswith("as="):
                force_type = NoteType.parse(f[3:])
            elif f not in ("replace", "confirm", "dedupe"):
                return f"Unknown import flag: {f}\n{usage}"
        replace_existing = "replace" in flags
        if "dedupe" in flags and (replace_existing or force_type is not None):
            return f"dedupe cannot be combined with replace or as=<type>.\n{usage}"
        if "confirm" in flags and not replace_existing:
            return f"confirm only applies to replace.\n{usage}"
        if replace_existing and "confirm" not in flags:
            return (
                f"Replace mode deletes all {state.notes.count()} existing note(s) before importing "
                "and cannot be undone.\nRe-run with: /import notes <path> replace confirm"
            )
        parsed = read_snapshot_file(path, expect=SnapshotKind.NOTES)
        if emit and replace_existing:
            with contextlib.suppress(Exception):
                emit(f"[IMPORT] Replacing notes with {len(parsed.items)} item(s) from {path.name}...")
        if "dedupe" in flags:
            report = state.reconciler.import_notes_deduplicated(parsed.items)
        else:
            report = state.reconciler.import_note_file(
                parsed.items, replace_existing=replace_existing, force_type=force_type
            )
        return _format_report(report)

    if sub == "plans":
        extra = [f for f in flags if f != "history"]
        if extra:
            return f"Unknown import flag: {extra[0]}\n{usage}"
        parsed = read_snapshot_file(path, expect=SnapshotKind.PLANS)
        if "history" in flags:
            report = state.reconciler.import_task_history(parsed.items)
        else:
            report = state.reconciler.import_task_list(parsed.items)
        return _format_report(report)

    return usage


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show session, backend and view settings.")
registry.register("notes", cmd_notes, help_text="List notes: /notes [all|book|movie|daily].", aliases=["ls"])
registry.register("search", cmd_search, help_text="Filter notes by keyword: /search <text> (empty clears).")
registry.register("sort", cmd_sort, help_text="Sort notes: /sort date-desc | date-asc | title-asc.")
registry.register("note", cmd_note, help_text="Edit notes: /note add | show | edit | rm | rate | tag.")
registry.register("stats", cmd_stats, help_text="Note counts and plan completion statistics.")
registry.register("plan", cmd_plan, help_text="Daily plan: /plan [date] | add | done | undo | rm | clear.")
registry.register("history", cmd_history, help_text="Plan history statistics (and the selected day).")
registry.register("calendar", cmd_calendar, help_text="Plan calendar: /calendar [YYYY-MM | next | prev].", aliases=["cal"])
registry.register("select", cmd_select, help_text="Pick a past day: /select YYYY-MM-DD.")
registry.register("export", cmd_export, help_text="Write a JSON snapshot: /export notes | plans | pick.")
registry.register("import", cmd_import, help_text="Merge a JSON snapshot: /import notes | plans <path>.")
