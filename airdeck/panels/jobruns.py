"""JobRuns panel: run history of one DAG, with trigger, mark, clear and
DAG source actions."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass

from ..commands import ClearJobRun, FetchJobCode, FetchJobRuns, FetchTaskInstances, SetJobRunState, TriggerJobRun
from ..events import Key, Tick, UiEvent
from ..models import CLEARED_RUN_STATE, MARKABLE_RUN_STATES, JobRun
from .base import (
    COMMON_KEYS,
    CodePopup,
    ConfirmClearPopup,
    ConfirmTriggerPopup,
    MarkRunPopup,
    PanelState,
    PanelUpdate,
    begin,
    handle_list_keys,
    handle_popup,
    move_choice,
    tick,
)

PLACEHOLDER_PREFIX = "manual__pending-"
CODE_PAGE_LINES = 20


@dataclass
class JobRunsState(PanelState):
    job_id: str | None = None
    trigger_seq: int = 0

    KEYS = (
        ("t", "Trigger a new run"),
        ("m", "Mark run as success / failed / queued"),
        ("c", "Clear run"),
        ("v", "Show DAG code"),
    ) + COMMON_KEYS

    @property
    def has_context(self) -> bool:
        return self.job_id is not None

    def search_text(self, row) -> str:
        return f"{row.run_id} {row.state} {row.run_type}"

    def set_run_state(self, run_id: str, run_state: str) -> bool:
        index = self.find_row(run_id)
        if index is None:
            return False
        self.rows[index] = dataclasses.replace(self.rows[index], state=run_state)
        self.refilter()
        return True

    def replace_run(self, run_id: str, run: JobRun) -> bool:
        index = self.find_row(run_id)
        if index is None:
            return False
        self.rows[index] = run
        if self.items.selected_key == run_id:
            self.items.selected_key = run.key
        self.refilter()
        return True

    def remove_run(self, run_id: str) -> bool:
        index = self.find_row(run_id)
        if index is None:
            return False
        del self.rows[index]
        self.refilter()
        return True

    def code_popup_for(self, job_id: str) -> CodePopup | None:
        popup = self.popup
        if isinstance(popup, CodePopup) and popup.job_id == job_id:
            return popup
        return None

    def reset(self, job_id: str) -> None:
        self.clear()
        self.job_id = job_id


def _is_placeholder(run: JobRun | None) -> bool:
    return run is not None and run.run_id.startswith(PLACEHOLDER_PREFIX)


def _update_code_popup(state: JobRunsState, popup: CodePopup, event: Key) -> PanelUpdate:
    name = event.name
    if name in ("j", "down"):
        popup.scroll += 1
    elif name in ("k", "up"):
        popup.scroll = max(0, popup.scroll - 1)
    elif name == "pagedown":
        popup.scroll += CODE_PAGE_LINES
    elif name == "pageup":
        popup.scroll = max(0, popup.scroll - CODE_PAGE_LINES)
    elif name in ("g", "home"):
        popup.scroll = 0
    elif name in ("G", "end"):
        popup.scroll = len((popup.text or "").splitlines())
    elif name in ("esc", "q", "v", "enter"):
        state.popup = None
    return PanelUpdate(state, None, [])


def _update_popup(state: JobRunsState, event: Key) -> PanelUpdate | None:
    popup = state.popup
    if isinstance(popup, ConfirmTriggerPopup):
        if event.name in ("y", "enter"):
            state.popup = None
            state.trigger_seq += 1
            placeholder = JobRun(
                job_id=popup.job_id,
                run_id=f"{PLACEHOLDER_PREFIX}{state.trigger_seq}",
                state="queued",
            )
            state.rows.insert(0, placeholder)
            state.refilter()
            state.items.select_key(placeholder.key)
            return PanelUpdate(state, None, [
                TriggerJobRun(popup.job_id, conf=None, placeholder_id=placeholder.run_id),
            ])
        if event.name in ("n", "esc", "q"):
            state.popup = None
        return PanelUpdate(state, None, [])

    if isinstance(popup, MarkRunPopup):
        if move_choice(popup, event, len(MARKABLE_RUN_STATES)):
            return PanelUpdate(state, None, [])
        if event.name == "enter":
            state.popup = None
            index = state.find_row(popup.run_id)
            if index is None:
                return PanelUpdate(state, None, [])
            run = state.rows[index]
            new_state = MARKABLE_RUN_STATES[popup.choice]
            if new_state == run.state:
                return PanelUpdate(state, None, [])
            state.set_run_state(run.run_id, new_state)
            return PanelUpdate(state, None, [
                SetJobRunState(run.job_id, run.run_id, new_state, prior_state=run.state),
            ])
        if event.name in ("esc", "q"):
            state.popup = None
        return PanelUpdate(state, None, [])

    if isinstance(popup, ConfirmClearPopup):
        if event.name in ("y", "enter"):
            state.popup = None
            index = state.find_row(popup.key)
            if index is None:
                return PanelUpdate(state, None, [])
            run = state.rows[index]
            state.set_run_state(run.run_id, CLEARED_RUN_STATE)
            return PanelUpdate(state, None, [
                ClearJobRun(run.job_id, run.run_id, prior_state=run.state),
            ])
        if event.name in ("n", "esc", "q"):
            state.popup = None
        return PanelUpdate(state, None, [])

    if isinstance(popup, CodePopup):
        return _update_code_popup(state, popup, event)

    return handle_popup(state, event)


def update(state: JobRunsState, event: UiEvent) -> PanelUpdate:
    state = begin(state)
    if isinstance(event, Tick):
        return tick(state, FetchJobRuns(state.job_id)) if state.job_id else tick(state)

    handled = _update_popup(state, event)
    if handled is not None:
        return handled
    if handle_list_keys(state, event):
        return PanelUpdate(state, None, [])

    if event.name == "r" and state.job_id:
        return PanelUpdate(state, None, [FetchJobRuns(state.job_id)])

    if event.name == "t" and state.job_id:
        state.popup = ConfirmTriggerPopup(state.job_id)
        return PanelUpdate(state, None, [])

    if event.name == "v" and state.job_id:
        state.popup = CodePopup(state.job_id)
        return PanelUpdate(state, None, [FetchJobCode(state.job_id)])

    run = state.items.selected()
    if event.name == "m":
        if run is not None and not _is_placeholder(run):
            state.popup = MarkRunPopup(run.run_id)
        return PanelUpdate(state, None, [])

    if event.name == "c":
        if run is not None and not _is_placeholder(run):
            state.popup = ConfirmClearPopup(run.run_id)
        return PanelUpdate(state, None, [])

    if event.name in ("enter", "right"):
        if run is None or _is_placeholder(run):
            return PanelUpdate(state, None, [])
        return PanelUpdate(state, Key("enter"), [FetchTaskInstances(run.job_id, run.run_id)])

    return PanelUpdate(state, event, [])
