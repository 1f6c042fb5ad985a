"""Panel state machine: one state type and one pure update per PanelKind."""

from . import config, jobruns, jobs, logs, taskinstances
from .base import (
    CodePopup,
    ConfirmClearPopup,
    ConfirmTriggerPopup,
    FilterPopup,
    HelpPopup,
    MarkRunPopup,
    MarkTaskPopup,
    PanelKind,
    PanelState,
    PanelUpdate,
)
from .config import ConfigState
from .jobruns import JobRunsState
from .jobs import JobsState
from .logs import LogsState
from .taskinstances import TaskInstancesState

PANEL_UPDATERS = {
    PanelKind.CONFIG: config.update,
    PanelKind.JOBS: jobs.update,
    PanelKind.JOB_RUNS: jobruns.update,
    PanelKind.TASK_INSTANCES: taskinstances.update,
    PanelKind.LOGS: logs.update,
}

PANEL_STATES = {
    PanelKind.CONFIG: ConfigState,
    PanelKind.JOBS: JobsState,
    PanelKind.JOB_RUNS: JobRunsState,
    PanelKind.TASK_INSTANCES: TaskInstancesState,
    PanelKind.LOGS: LogsState,
}

if set(PANEL_UPDATERS) != set(PanelKind) or set(PANEL_STATES) != set(PanelKind):
    raise ImportError("panel dispatch does not cover every PanelKind")


def update_panel(kind: PanelKind, state: PanelState, event) -> PanelUpdate:
    return PANEL_UPDATERS[kind](state, event)


__all__ = [
    "PanelKind",
    "PanelState",
    "PanelUpdate",
    "PANEL_STATES",
    "PANEL_UPDATERS",
    "update_panel",
    "ConfigState",
    "JobsState",
    "JobRunsState",
    "TaskInstancesState",
    "LogsState",
    "HelpPopup",
    "FilterPopup",
    "ConfirmTriggerPopup",
    "MarkRunPopup",
    "MarkTaskPopup",
    "ConfirmClearPopup",
    "CodePopup",
]
