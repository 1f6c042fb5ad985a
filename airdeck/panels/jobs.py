"""Jobs panel: the DAG list of the active server."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass

from ..commands import FetchJobRuns, FetchJobs, ToggleJobPause
from ..events import Key, Tick, UiEvent
from .base import COMMON_KEYS, PanelState, PanelUpdate, begin, handle_list_keys, handle_popup, tick

TAB_ALL = 0
TAB_ACTIVE = 1
TAB_PAUSED = 2


@dataclass
class JobsState(PanelState):
    TABS = ("All", "Active", "Paused")
    KEYS = (("P", "Pause / unpause DAG"),) + COMMON_KEYS

    def search_text(self, row) -> str:
        return " ".join((row.job_id, row.display_name, *row.owners, *row.tags))

    def matches(self, row) -> bool:
        if self.tab_index == TAB_ACTIVE and row.is_paused:
            return False
        if self.tab_index == TAB_PAUSED and not row.is_paused:
            return False
        return super().matches(row)

    def set_paused(self, job_id: str, paused: bool) -> bool:
        index = self.find_row(job_id)
        if index is None:
            return False
        self.rows[index] = dataclasses.replace(self.rows[index], is_paused=paused)
        self.refilter()
        return True


def update(state: JobsState, event: UiEvent) -> PanelUpdate:
    state = begin(state)
    if isinstance(event, Tick):
        return tick(state, FetchJobs())

    handled = handle_popup(state, event)
    if handled is not None:
        return handled
    if handle_list_keys(state, event):
        return PanelUpdate(state, None, [])

    if event.name == "r":
        return PanelUpdate(state, None, [FetchJobs()])

    if event.name == "P":
        job = state.items.selected()
        if job is None:
            return PanelUpdate(state, None, [])
        state.set_paused(job.job_id, not job.is_paused)
        command = ToggleJobPause(job.job_id, paused=not job.is_paused, prior_paused=job.is_paused)
        return PanelUpdate(state, None, [command])

    if event.name in ("enter", "right"):
        job = state.items.selected()
        if job is None:
            return PanelUpdate(state, None, [])
        return PanelUpdate(state, Key("enter"), [FetchJobRuns(job.job_id)])

    return PanelUpdate(state, event, [])
