"""Curses rendering of an AppState snapshot.

Rendering has no effect on state: everything drawn comes from the snapshot
passed to ``CursesRenderer.render``.
"""

import curses
from typing import Any, Callable, Optional

from .panels import (
    CodePopup,
    ConfirmClearPopup,
    ConfirmTriggerPopup,
    FilterPopup,
    HelpPopup,
    MarkRunPopup,
    MarkTaskPopup,
    PanelKind,
)
from .models import MARKABLE_RUN_STATES, MARKABLE_TASK_STATES
from .state import AppState

MIN_WIDTH = 40
MIN_HEIGHT = 10


# ---------------------------------------------------------------------------
# Color pairs
# ---------------------------------------------------------------------------

class Colors:
    DEFAULT = 0
    HEADER = 1
    RUNNING = 2
    SUCCESS = 3
    FAILURE = 4
    WARNING = 5
    PAUSED = 6
    BORDER = 7
    HIGHLIGHT = 8
    TAB_ACTIVE = 9
    TAB_INACTIVE = 10
    DIM = 11
    ERROR_BANNER = 12


def init_colors():
    curses.start_color()
    curses.use_default_colors()
    curses.init_pair(Colors.HEADER, curses.COLOR_CYAN, -1)
    curses.init_pair(Colors.RUNNING, curses.COLOR_GREEN, -1)
    curses.init_pair(Colors.SUCCESS, curses.COLOR_GREEN, -1)
    curses.init_pair(Colors.FAILURE, curses.COLOR_RED, -1)
    curses.init_pair(Colors.WARNING, curses.COLOR_YELLOW, -1)
    curses.init_pair(Colors.PAUSED, curses.COLOR_MAGENTA, -1)
    curses.init_pair(Colors.BORDER, curses.COLOR_BLUE, -1)
    curses.init_pair(Colors.HIGHLIGHT, curses.COLOR_WHITE, curses.COLOR_BLUE)
    curses.init_pair(Colors.TAB_ACTIVE, curses.COLOR_BLACK, curses.COLOR_CYAN)
    curses.init_pair(Colors.TAB_INACTIVE, curses.COLOR_CYAN, -1)
    curses.init_pair(Colors.DIM, curses.COLOR_WHITE, -1)
    curses.init_pair(Colors.ERROR_BANNER, curses.COLOR_WHITE, curses.COLOR_RED)


STATE_COLORS = {
    "success": Colors.SUCCESS,
    "running": Colors.RUNNING,
    "failed": Colors.FAILURE,
    "upstream_failed": Colors.FAILURE,
    "queued": Colors.WARNING,
    "scheduled": Colors.WARNING,
    "up_for_retry": Colors.WARNING,
    "up_for_reschedule": Colors.WARNING,
    "deferred": Colors.PAUSED,
    "skipped": Colors.DIM,
    "removed": Colors.DIM,
}


# ---------------------------------------------------------------------------
# Safe drawing helpers
# ---------------------------------------------------------------------------

def safe_addstr(win, y: int, x: int, text: str, attr: int = 0, max_x: int = 0):
    """Write text to window, clipping to max_x if provided."""
    try:
        max_y_win, max_x_win = win.getmaxyx()
        if y < 0 or y >= max_y_win or x < 0 or x >= max_x_win:
            return
        limit = (max_x if max_x > 0 else max_x_win) - x
        if limit <= 0:
            return
        win.addnstr(y, x, text, limit, attr)
    except curses.error:
        pass


def safe_hline(win, y: int, x: int, ch, width: int, attr: int = 0):
    try:
        if attr:
            win.attron(attr)
        win.hline(y, x, ch, width)
        if attr:
            win.attroff(attr)
    except curses.error:
        pass


def fit(text: Any, width: int) -> str:
    """Pad or truncate to exactly ``width`` columns."""
    text = "" if text is None else str(text)
    if len(text) > width:
        return text[: max(0, width - 1)] + "…" if width > 0 else ""
    return text.ljust(width)


def short_date(value: Optional[str]) -> str:
    """'2024-05-01T12:30:00+00:00' -> '2024-05-01 12:30:00'"""
    if not value:
        return ""
    return str(value).replace("T", " ")[:19]


def format_duration(seconds: Optional[float]) -> str:
    if seconds is None:
        return ""
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m{seconds % 60:02d}s"
    return f"{seconds // 3600}h{(seconds % 3600) // 60:02d}m"


# ---------------------------------------------------------------------------
# Table columns per panel: (header, width, value, colored-by-state)
# ---------------------------------------------------------------------------

Column = tuple[str, int, Callable[[Any], Any], bool]

COLUMNS: dict[PanelKind, list[Column]] = {
    PanelKind.CONFIG: [
        ("Name", 24, lambda s: s.name, False),
        ("Endpoint", 44, lambda s: s.endpoint, False),
        ("Airflow", 8, lambda s: s.airflow_version, False),
        ("Source", 12, lambda s: s.managed or "config", False),
    ],
    PanelKind.JOBS: [
        ("", 2, lambda j: "⏸" if j.is_paused else "▶", False),
        ("DAG", 32, lambda j: j.display_name or j.job_id, False),
        ("Schedule", 14, lambda j: j.schedule, False),
        ("Owners", 14, lambda j: ", ".join(j.owners), False),
        ("Tags", 18, lambda j: ", ".join(j.tags), False),
        ("Next run", 20, lambda j: short_date(j.next_run), False),
    ],
    PanelKind.JOB_RUNS: [
        ("Run", 40, lambda r: r.run_id, False),
        ("State", 10, lambda r: r.state, True),
        ("Type", 10, lambda r: r.run_type, False),
        ("Logical date", 20, lambda r: short_date(r.logical_date), False),
        ("Started", 20, lambda r: short_date(r.start_date), False),
        ("Ended", 20, lambda r: short_date(r.end_date), False),
    ],
    PanelKind.TASK_INSTANCES: [
        ("Task", 32, lambda t: t.key, False),
        ("State", 16, lambda t: t.state or "none", True),
        ("Tries", 6, lambda t: t.try_number, False),
        ("Operator", 22, lambda t: t.operator or "", False),
        ("Started", 20, lambda t: short_date(t.start_date), False),
        ("Duration", 10, lambda t: format_duration(t.duration), False),
    ],
}


class CursesRenderer:
    """Draws the header, breadcrumb, active panel, popups and error banner."""

    def __init__(self, stdscr, demo_mode: bool = False, colors: bool = True):
        self.stdscr = stdscr
        self.demo_mode = demo_mode
        if colors:
            curses.curs_set(0)
            init_colors()

    def render(self, state: AppState):
        self.stdscr.erase()
        max_y, max_x = self.stdscr.getmaxyx()

        if max_y < MIN_HEIGHT or max_x < MIN_WIDTH:
            safe_addstr(self.stdscr, 0, 0, f"Terminal too small! Need {MIN_WIDTH}x{MIN_HEIGHT} minimum.")
            self.stdscr.refresh()
            return

        self._render_header(state, max_x)
        safe_hline(self.stdscr, 1, 0, curses.ACS_HLINE, max_x, curses.color_pair(Colors.BORDER))
        self._render_tabs(state, max_x)

        bottom = max_y - 1
        if state.error_banner is not None:
            bottom -= 1
            safe_addstr(self.stdscr, bottom, 0, " " * max_x, curses.color_pair(Colors.ERROR_BANNER))
            safe_addstr(self.stdscr, bottom, 1, f"{state.error_banner}  [x] dismiss",
                        curses.color_pair(Colors.ERROR_BANNER) | curses.A_BOLD)

        top = 3
        if state.active_panel == PanelKind.LOGS:
            self._render_logs(state, top, bottom, max_x)
        else:
            self._render_table(state, top, bottom, max_x)

        self._render_status(state, max_y - 1, max_x)
        self._render_popup(state, max_y, max_x)
        self.stdscr.refresh()

    # -- pieces ---------------------------------------------------------------

    def _render_header(self, state: AppState, max_x: int):
        title = "AIRDECK"
        safe_addstr(self.stdscr, 0, 1, title, curses.color_pair(Colors.HEADER) | curses.A_BOLD)
        x = 1 + len(title) + 1
        if self.demo_mode:
            safe_addstr(self.stdscr, 0, x, "[DEMO]", curses.color_pair(Colors.WARNING) | curses.A_BOLD)
            x += len("[DEMO] ")

        for crumb, kind in breadcrumb(state):
            label = f" {crumb} "
            if kind == state.active_panel:
                attr = curses.color_pair(Colors.TAB_ACTIVE) | curses.A_BOLD
            else:
                attr = curses.color_pair(Colors.TAB_INACTIVE)
            safe_addstr(self.stdscr, 0, x, label, attr)
            x += len(label)
            if kind != PanelKind.LOGS:
                safe_addstr(self.stdscr, 0, x, "›", curses.color_pair(Colors.DIM))
                x += 1

        server = state.active_server_id or "no server"
        safe_addstr(self.stdscr, 0, max(x + 1, max_x - len(server) - 2), server,
                    curses.color_pair(Colors.HEADER))

    def _render_tabs(self, state: AppState, max_x: int):
        panel = state.active
        if state.active_panel == PanelKind.LOGS:
            names = panel.tab_names or ["(no attempts)"]
        else:
            names = list(panel.TABS)
        x = 1
        for index, name in enumerate(names):
            label = f" {name} "
            if index == panel.tab_index:
                attr = curses.color_pair(Colors.TAB_ACTIVE) | curses.A_BOLD
            else:
                attr = curses.color_pair(Colors.TAB_INACTIVE)
            safe_addstr(self.stdscr, 2, x, label, attr)
            x += len(label) + 1
        if panel.filter_text:
            text = f"filter: {panel.filter_text}"
            safe_addstr(self.stdscr, 2, max(x + 1, max_x - len(text) - 2), text,
                        curses.color_pair(Colors.WARNING))

    def _render_table(self, state: AppState, top: int, bottom: int, max_x: int):
        panel = state.active
        columns = COLUMNS[state.active_panel]

        x = 1
        for header, width, _, _ in columns:
            safe_addstr(self.stdscr, top, x, fit(header, width), curses.A_BOLD | curses.A_UNDERLINE)
            x += width + 1

        rows = list(panel.items)
        visible = max(0, bottom - top - 1)
        if not rows:
            if state.active_panel == PanelKind.CONFIG and not panel.rows:
                message = "No servers configured. Add one with: airdeck add NAME URL"
            elif panel.has_context and not panel.rows:
                message = "Loading..."
            else:
                message = "(nothing to show)"
            safe_addstr(self.stdscr, top + 1, 2, message, curses.color_pair(Colors.DIM))
            return

        selected = panel.items.selected_index() or 0
        offset = max(0, selected - visible + 1)
        for line, row in enumerate(rows[offset:offset + visible]):
            y = top + 1 + line
            is_selected = offset + line == selected
            base_attr = curses.color_pair(Colors.HIGHLIGHT) if is_selected else 0
            if is_selected:
                safe_addstr(self.stdscr, y, 0, " " * max_x, base_attr)
            x = 1
            for _, width, value, colored in columns:
                text = value(row)
                attr = base_attr
                if colored and not is_selected:
                    attr = curses.color_pair(STATE_COLORS.get(str(text), Colors.DEFAULT))
                safe_addstr(self.stdscr, y, x, fit(text, width), attr)
                x += width + 1

    def _render_logs(self, state: AppState, top: int, bottom: int, max_x: int):
        panel = state.logs
        attempt = panel.items.selected()
        title = f"{panel.job_id} › {panel.run_id} › {panel.task_id}"
        safe_addstr(self.stdscr, top, 1, title, curses.A_BOLD)
        if attempt is None:
            safe_addstr(self.stdscr, top + 1, 2, "(no attempts)", curses.color_pair(Colors.DIM))
            return
        if attempt.text is None:
            safe_addstr(self.stdscr, top + 1, 2, "Loading...", curses.color_pair(Colors.DIM))
            return
        lines = attempt.text.splitlines() or ["(no log output)"]
        height = max(0, bottom - top - 1)
        start = min(panel.scroll, max(0, len(lines) - height))
        for line, text in enumerate(lines[start:start + height]):
            attr = 0
            if " ERROR " in text or "ERROR -" in text:
                attr = curses.color_pair(Colors.FAILURE)
            elif " WARNING " in text or "WARNING -" in text:
                attr = curses.color_pair(Colors.WARNING)
            safe_addstr(self.stdscr, top + 1 + line, 1, text.expandtabs(4), attr, max_x - 1)

    def _render_status(self, state: AppState, y: int, max_x: int):
        panel = state.active
        hints = " · ".join(f"{key}: {action}" for key, action in panel.KEYS[:6])
        count = f"{len(panel.items)}/{len(panel.rows)}"
        safe_addstr(self.stdscr, y, 0, " " * max_x, curses.color_pair(Colors.HIGHLIGHT))
        safe_addstr(self.stdscr, y, 1, hints, curses.color_pair(Colors.HIGHLIGHT), max_x - len(count) - 3)
        safe_addstr(self.stdscr, y, max_x - len(count) - 2, count, curses.color_pair(Colors.HIGHLIGHT))

    def _render_popup(self, state: AppState, max_y: int, max_x: int):
        popup = state.active.popup
        if popup is None:
            return
        if isinstance(popup, HelpPopup):
            title = f"Help: {state.active_panel.title}"
            lines = [f"{key:<14} {action}" for key, action in state.active.KEYS]
        elif isinstance(popup, FilterPopup):
            title = "Filter"
            lines = [f"/{popup.text}_", "", "Enter: keep  Esc: clear"]
        elif isinstance(popup, ConfirmTriggerPopup):
            title = "Trigger DAG run"
            lines = [f"Trigger a new run of {popup.job_id}?", "", "y / Enter: trigger   n / Esc: cancel"]
        elif isinstance(popup, MarkRunPopup):
            title = f"Mark {popup.run_id}"
            lines = choice_lines(MARKABLE_RUN_STATES, popup.choice)
        elif isinstance(popup, MarkTaskPopup):
            title = f"Mark {popup.key}"
            lines = choice_lines(MARKABLE_TASK_STATES, popup.choice)
        elif isinstance(popup, ConfirmClearPopup):
            title = "Clear"
            if state.active_panel == PanelKind.TASK_INSTANCES:
                question = f"Clear {popup.key} and its downstream tasks?"
            else:
                question = f"Clear every task of {popup.key}?"
            lines = [question, "", "y / Enter: clear   n / Esc: cancel"]
        elif isinstance(popup, CodePopup):
            title = f"DAG code: {popup.job_id}"
            lines = code_lines(popup, max_y - 6)
        else:
            return
        draw_box(self.stdscr, title, lines, max_y, max_x)


def choice_lines(choices, selected: int) -> list[str]:
    lines = [("▸ " if index == selected else "  ") + choice for index, choice in enumerate(choices)]
    return lines + ["", "Enter: apply   Esc: cancel"]


def code_lines(popup: CodePopup, height: int) -> list[str]:
    """The visible, line-numbered window of a DAG source popup."""
    if popup.text is None:
        return ["Loading...", "", "Esc: close"]
    source = popup.text.expandtabs(4).splitlines() or ["(empty file)"]
    height = max(1, height)
    start = min(popup.scroll, max(0, len(source) - height))
    width = len(str(len(source)))
    lines = [
        f"{number:>{width}} {text}"
        for number, text in enumerate(source[start:start + height], start=start + 1)
    ]
    return lines + ["", "j/k: scroll   g/G: top/bottom   Esc: close"]


def breadcrumb(state: AppState) -> list[tuple[str, PanelKind]]:
    """Panel path up to the active panel, labelled with the selected ids."""
    crumbs = [("Config", PanelKind.CONFIG)]
    labels = {
        PanelKind.JOBS: "DAGs",
        PanelKind.JOB_RUNS: state.job_runs.job_id,
        PanelKind.TASK_INSTANCES: state.task_instances.run_id,
        PanelKind.LOGS: state.logs.task_id,
    }
    for kind in (PanelKind.JOBS, PanelKind.JOB_RUNS, PanelKind.TASK_INSTANCES, PanelKind.LOGS):
        if kind > state.active_panel:
            break
        crumbs.append((labels[kind] or kind.title, kind))
    return crumbs


def draw_box(win, title: str, lines: list[str], max_y: int, max_x: int):
    """Centered bordered box with a title."""
    width = min(max_x - 4, max([len(title) + 4] + [len(line) + 4 for line in lines]))
    height = min(max_y - 2, len(lines) + 2)
    y0 = max(0, (max_y - height) // 2)
    x0 = max(0, (max_x - width) // 2)
    border = curses.color_pair(Colors.BORDER)
    for row in range(height):
        safe_addstr(win, y0 + row, x0, " " * width)
    safe_hline(win, y0, x0, curses.ACS_HLINE, width, border)
    safe_hline(win, y0 + height - 1, x0, curses.ACS_HLINE, width, border)
    safe_addstr(win, y0, x0 + 2, f" {title} ", curses.color_pair(Colors.HEADER) | curses.A_BOLD)
    for row, line in enumerate(lines[: height - 2]):
        safe_addstr(win, y0 + 1 + row, x0 + 2, line, 0, x0 + width - 1)
