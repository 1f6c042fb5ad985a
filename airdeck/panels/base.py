"""Shared pieces of the panel state machine.

Every panel exposes a pure ``update(state, event)`` returning a
PanelUpdate: a new state (the input is never mutated), an optional event
that falls through to the event loop's global handling, and the commands to
queue for the worker.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, ClassVar, NamedTuple

from ..commands import Command
from ..container import StatefulContainer
from ..events import Key, Tick, UiEvent


class PanelKind(IntEnum):
    """The five views, in navigation order."""
    CONFIG = 0
    JOBS = 1
    JOB_RUNS = 2
    TASK_INSTANCES = 3
    LOGS = 4

    @property
    def title(self) -> str:
        return PANEL_TITLES[self]


PANEL_TITLES = {
    PanelKind.CONFIG: "Config",
    PanelKind.JOBS: "DAGs",
    PanelKind.JOB_RUNS: "DAG Runs",
    PanelKind.TASK_INSTANCES: "Tasks",
    PanelKind.LOGS: "Logs",
}


# ---------------------------------------------------------------------------
# Popups: while one is open it receives all key input
# ---------------------------------------------------------------------------

@dataclass
class HelpPopup:
    pass


@dataclass
class FilterPopup:
    text: str = ""


@dataclass
class ConfirmTriggerPopup:
    job_id: str


@dataclass
class MarkRunPopup:
    run_id: str
    choice: int = 0


@dataclass
class ConfirmClearPopup:
    """Confirm clearing a run (JobRuns) or a task instance (TaskInstances)."""
    key: str


@dataclass
class MarkTaskPopup:
    key: str
    choice: int = 0


@dataclass
class CodePopup:
    """DAG source viewer; ``text`` is None until the worker delivers it."""
    job_id: str
    text: str | None = None
    scroll: int = 0


Popup = HelpPopup | FilterPopup | ConfirmTriggerPopup | MarkRunPopup | ConfirmClearPopup | MarkTaskPopup | CodePopup


class PanelUpdate(NamedTuple):
    state: "PanelState"
    fallback: UiEvent | None
    commands: list[Command]


COMMON_KEYS = (
    ("j / Down", "Move selection down"),
    ("k / Up", "Move selection up"),
    ("g / G", "Jump to first / last"),
    ("/", "Filter"),
    ("r", "Refresh"),
    ("Tab", "Next tab"),
    ("Enter / Right", "Open"),
    ("Esc / Left", "Back"),
    ("x", "Dismiss error"),
    ("?", "Help"),
    ("q", "Quit"),
)


@dataclass
class PanelState:
    """State common to all panels: rows, visible rows, filter, tab, popup."""
    rows: list = field(default_factory=list)
    items: StatefulContainer = field(default_factory=StatefulContainer)
    filter_text: str = ""
    tab_index: int = 0
    popup: Any = None
    ticks: int = 0
    refresh_ticks: int = 10

    TABS: ClassVar[tuple[str, ...]] = ("All",)
    KEYS: ClassVar[tuple[tuple[str, str], ...]] = ()

    def search_text(self, row) -> str:
        return str(row.key)

    def matches(self, row) -> bool:
        if not self.filter_text:
            return True
        return self.filter_text.lower() in self.search_text(row).lower()

    def set_rows(self, rows) -> None:
        self.rows = list(rows)
        self.refilter()

    def refilter(self) -> None:
        self.items.set_items([row for row in self.rows if self.matches(row)])

    def find_row(self, key) -> int | None:
        for index, row in enumerate(self.rows):
            if row.key == key:
                return index
        return None

    def cycle_tab(self) -> None:
        self.tab_index = (self.tab_index + 1) % len(self.TABS)
        self.refilter()

    @property
    def has_context(self) -> bool:
        return True

    def clear(self) -> None:
        """Drop rows and transient input state, keep settings."""
        self.rows = []
        self.items = StatefulContainer()
        self.filter_text = ""
        self.popup = None
        self.ticks = 0


def begin(state: PanelState) -> PanelState:
    """Copy a panel state so an update never touches its input."""
    return copy.deepcopy(state)


def tick(state: PanelState, *commands: Command) -> PanelUpdate:
    """Count a tick and emit the refresh commands every ``refresh_ticks``."""
    state.ticks += 1
    emitted: list[Command] = []
    if state.has_context and state.refresh_ticks > 0 and state.ticks % state.refresh_ticks == 0:
        emitted = list(commands)
    return PanelUpdate(state, Tick(), emitted)


def handle_popup(state: PanelState, event: Key) -> PanelUpdate | None:
    """Route a key to the help or filter popup if one is open."""
    popup = state.popup
    if isinstance(popup, HelpPopup):
        if event.name in ("q", "esc", "?", "enter"):
            state.popup = None
        return PanelUpdate(state, None, [])
    if isinstance(popup, FilterPopup):
        if event.name == "enter":
            state.popup = None
        elif event.name == "esc":
            state.popup = None
            state.filter_text = ""
        elif event.name == "backspace":
            popup.text = popup.text[:-1]
            state.filter_text = popup.text
        elif len(event.name) == 1:
            popup.text += event.name
            state.filter_text = popup.text
        state.refilter()
        return PanelUpdate(state, None, [])
    return None


def move_choice(popup, event: Key, count: int) -> bool:
    """Move a mark popup's highlighted choice, clamped. True when consumed."""
    if event.name in ("j", "down"):
        popup.choice = min(count - 1, popup.choice + 1)
    elif event.name in ("k", "up"):
        popup.choice = max(0, popup.choice - 1)
    else:
        return False
    return True


def handle_list_keys(state: PanelState, event: Key) -> bool:
    """Handle selection, filter and help keys. Returns True when consumed."""
    name = event.name
    if name in ("j", "down"):
        state.items.select_next()
    elif name in ("k", "up"):
        state.items.select_previous()
    elif name in ("g", "home"):
        state.items.select_first()
    elif name in ("G", "end"):
        state.items.select_last()
    elif name == "/":
        state.popup = FilterPopup(state.filter_text)
    elif name == "?":
        state.popup = HelpPopup()
    else:
        return False
    return True
