"""TaskInstances panel: task status inside one DAG run, with mark and clear."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass

from ..commands import ClearTaskInstance, FetchLogs, FetchTaskInstances, SetTaskInstanceState
from ..events import Key, Tick, UiEvent
from ..models import CLEARED_TASK_STATE, MARKABLE_TASK_STATES
from .base import (
    COMMON_KEYS,
    ConfirmClearPopup,
    MarkTaskPopup,
    PanelState,
    PanelUpdate,
    begin,
    handle_list_keys,
    handle_popup,
    move_choice,
    tick,
)


@dataclass
class TaskInstancesState(PanelState):
    job_id: str | None = None
    run_id: str | None = None

    KEYS = (
        ("Enter", "Show logs of every attempt"),
        ("m", "Mark task as success / failed / skipped"),
        ("c", "Clear task and its downstream tasks"),
    ) + COMMON_KEYS

    @property
    def has_context(self) -> bool:
        return self.job_id is not None and self.run_id is not None

    def search_text(self, row) -> str:
        return f"{row.key} {row.state or ''} {row.operator or ''}"

    def is_for(self, job_id: str, run_id: str) -> bool:
        return (self.job_id, self.run_id) == (job_id, run_id)

    def set_task_state(self, key: str, task_state: str | None) -> bool:
        index = self.find_row(key)
        if index is None:
            return False
        self.rows[index] = dataclasses.replace(self.rows[index], state=task_state)
        self.refilter()
        return True

    def reset(self, job_id: str, run_id: str) -> None:
        self.clear()
        self.job_id = job_id
        self.run_id = run_id


def _update_popup(state: TaskInstancesState, event: Key) -> PanelUpdate | None:
    popup = state.popup
    if isinstance(popup, MarkTaskPopup):
        if move_choice(popup, event, len(MARKABLE_TASK_STATES)):
            return PanelUpdate(state, None, [])
        if event.name == "enter":
            state.popup = None
            index = state.find_row(popup.key)
            if index is None:
                return PanelUpdate(state, None, [])
            task = state.rows[index]
            new_state = MARKABLE_TASK_STATES[popup.choice]
            if new_state == task.state:
                return PanelUpdate(state, None, [])
            state.set_task_state(task.key, new_state)
            return PanelUpdate(state, None, [
                SetTaskInstanceState(
                    task.job_id, task.run_id, task.task_id, new_state,
                    map_index=task.map_index, prior_state=task.state,
                ),
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
            task = state.rows[index]
            state.set_task_state(task.key, CLEARED_TASK_STATE)
            return PanelUpdate(state, None, [
                ClearTaskInstance(
                    task.job_id, task.run_id, task.task_id,
                    map_index=task.map_index, prior_state=task.state,
                ),
            ])
        if event.name in ("n", "esc", "q"):
            state.popup = None
        return PanelUpdate(state, None, [])

    return handle_popup(state, event)


def update(state: TaskInstancesState, event: UiEvent) -> PanelUpdate:
    state = begin(state)
    if isinstance(event, Tick):
        if not state.has_context:
            return tick(state)
        return tick(state, FetchTaskInstances(state.job_id, state.run_id))

    handled = _update_popup(state, event)
    if handled is not None:
        return handled
    if handle_list_keys(state, event):
        return PanelUpdate(state, None, [])

    if event.name == "r" and state.has_context:
        return PanelUpdate(state, None, [FetchTaskInstances(state.job_id, state.run_id)])

    task = state.items.selected()
    if event.name == "m":
        if task is not None:
            state.popup = MarkTaskPopup(task.key)
        return PanelUpdate(state, None, [])

    if event.name == "c":
        if task is not None:
            state.popup = ConfirmClearPopup(task.key)
        return PanelUpdate(state, None, [])

    if event.name in ("enter", "right"):
        if task is None:
            return PanelUpdate(state, None, [])
        commands = [
            FetchLogs(task.job_id, task.run_id, task.task_id, attempt)
            for attempt in range(1, task.attempts + 1)
        ]
        return PanelUpdate(state, Key("enter"), commands)

    return PanelUpdate(state, event, [])
