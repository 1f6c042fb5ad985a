"""Logs panel: the log text of each attempt of one task instance.

The rows are LogAttempt entries, one per try. The global cycle-tab action
rotates which attempt is displayed; it never fetches anything.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass

from ..commands import FetchLogs
from ..events import Tick, UiEvent
from ..models import LogAttempt
from .base import HelpPopup, PanelState, PanelUpdate, begin, handle_popup

PAGE_LINES = 20


@dataclass
class LogsState(PanelState):
    job_id: str | None = None
    run_id: str | None = None
    task_id: str | None = None
    scroll: int = 0

    KEYS = (
        ("Tab", "Next attempt"),
        ("j / k", "Scroll down / up"),
        ("PgDn / PgUp", "Scroll a page"),
        ("g / G", "Top / bottom"),
        ("r", "Reload this attempt"),
        ("Esc / Left", "Back"),
        ("x", "Dismiss error"),
        ("?", "Help"),
        ("q", "Quit"),
    )

    @property
    def has_context(self) -> bool:
        return self.task_id is not None

    @property
    def tab_names(self) -> list[str]:
        return [f"Attempt {row.attempt}" for row in self.items]

    def matches(self, row) -> bool:
        return True

    def cycle_tab(self) -> None:
        if not self.items:
            return
        index = self.items.selected_index()
        next_index = 0 if index is None else (index + 1) % len(self.items)
        self.items.select_index(next_index)
        self.tab_index = next_index
        self.scroll = 0

    def is_for(self, job_id: str, run_id: str, task_id: str) -> bool:
        return (self.job_id, self.run_id, self.task_id) == (job_id, run_id, task_id)

    def reset(self, job_id: str, run_id: str, task_id: str) -> None:
        self.clear()
        self.job_id = job_id
        self.run_id = run_id
        self.task_id = task_id
        self.tab_index = 0
        self.scroll = 0

    def ensure_attempt(self, attempt: int) -> None:
        """Add an empty slot for ``attempt`` and show the newest attempt."""
        if self.find_row(attempt) is None:
            self.rows.append(LogAttempt(attempt))
            self.rows.sort(key=lambda row: row.attempt)
            self.refilter()
        self.items.select_last()
        self.tab_index = len(self.items) - 1

    def store_text(self, attempt: int, text: str) -> bool:
        index = self.find_row(attempt)
        if index is None:
            return False
        self.rows[index] = dataclasses.replace(self.rows[index], text=text)
        self.refilter()
        return True


def update(state: LogsState, event: UiEvent) -> PanelUpdate:
    state = begin(state)
    if isinstance(event, Tick):
        return PanelUpdate(state, event, [])

    handled = handle_popup(state, event)
    if handled is not None:
        return handled

    name = event.name
    if name in ("j", "down"):
        state.scroll += 1
    elif name in ("k", "up"):
        state.scroll = max(0, state.scroll - 1)
    elif name == "pagedown":
        state.scroll += PAGE_LINES
    elif name == "pageup":
        state.scroll = max(0, state.scroll - PAGE_LINES)
    elif name in ("g", "home"):
        state.scroll = 0
    elif name in ("G", "end"):
        current = state.items.selected()
        state.scroll = len((current.text or "").splitlines()) if current else 0
    elif name == "?":
        state.popup = HelpPopup()
    elif name == "r":
        current = state.items.selected()
        if current is None or not state.has_context:
            return PanelUpdate(state, None, [])
        return PanelUpdate(state, None, [
            FetchLogs(state.job_id, state.run_id, state.task_id, current.attempt),
        ])
    else:
        return PanelUpdate(state, event, [])
    return PanelUpdate(state, None, [])
