# src/daynote/core/view.py

"""
UI state for the view controller.

ViewState is immutable; every user intent is a pure function from the
current state to the next one. Connectors keep the latest state on AppState.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from enum import StrEnum

from ..notes.note_models import NoteType
from ..tasks.planner import shift_month
from .errors import ValidationError


class View(StrEnum):
    LIST = "list"
    DETAIL = "detail"
    FORM = "form"
    EXPORT = "export"
    IMPORT = "import"
    DAILY_PLAN = "dailyPlan"
    HISTORY = "historyPlan"


class SortKey(StrEnum):
    DATE_DESC = "date-desc"
    DATE_ASC = "date-asc"
    TITLE_ASC = "title-asc"

    @classmethod
    def parse(cls, raw: str) -> SortKey:
        try:
            return cls(raw.strip().lower())
        except ValueError:
            allowed = ", ".join(k.value for k in cls)
            raise ValidationError(f"sort must be one of {allowed}: {raw!r}", field="sort") from None


@dataclass(frozen=True, slots=True)
class ViewState:
    current_view: View = View.LIST
    current_filter: NoteType | None = None  # None means "all"
    current_note_id: str | None = None
    search_keyword: str = ""
    sort_by: SortKey = SortKey.DATE_DESC
    selected_export: frozenset[str] = field(default_factory=frozenset)
    calendar_year: int = 1970
    calendar_month: int = 1
    selected_date: date | None = None


def initial_view(today: date) -> ViewState:
    return ViewState(calendar_year=today.year, calendar_month=today.month)


def switch_view(state: ViewState, view: View) -> ViewState:
    return replace(state, current_view=view)


def apply_filter(state: ViewState, note_type: NoteType | str | None) -> ViewState:
    if note_type is None or note_type == "all":
        return replace(state, current_filter=None, current_view=View.LIST)
    return replace(state, current_filter=NoteType.parse(note_type), current_view=View.LIST)


def apply_search(state: ViewState, keyword: str) -> ViewState:
    return replace(state, search_keyword=keyword.strip())


def apply_sort(state: ViewState, sort_by: SortKey | str) -> ViewState:
    key = sort_by if isinstance(sort_by, SortKey) else SortKey.parse(sort_by)
    return replace(state, sort_by=key)


def open_note(state: ViewState, note_id: str) -> ViewState:
    return replace(state, current_note_id=note_id, current_view=View.DETAIL)


def toggle_export(state: ViewState, note_id: str) -> ViewState:
    selected = set(state.selected_export)
    selected.symmetric_difference_update({note_id})
    return replace(state, selected_export=frozenset(selected))


def select_all_export(state: ViewState, note_ids: list[str]) -> ViewState:
    return replace(state, selected_export=state.selected_export | frozenset(note_ids))


def clear_export(state: ViewState) -> ViewState:
    return replace(state, selected_export=frozenset())


def navigate_month(state: ViewState, offset: int) -> ViewState:
    year, month = shift_month(state.calendar_year, state.calendar_month, offset)
    return replace(state, calendar_year=year, calendar_month=month, selected_date=None)


def show_month(state: ViewState, year: int, month: int) -> ViewState:
    if not 1 <= month <= 12:
        raise ValidationError(f"month must be in 1..12: {month}", field="month")
    return replace(state, calendar_year=year, calendar_month=month, selected_date=None)


def select_date(state: ViewState, day: date, today: date) -> ViewState:
    """Future days are not selectable, same as the calendar grid."""
    if day > today:
        raise ValidationError(f"{day.isoformat()} is in the future", field="date")
    return replace(
        state,
        selected_date=day,
        calendar_year=day.year,
        calendar_month=day.month,
        current_view=View.HISTORY,
    )
