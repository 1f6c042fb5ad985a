"""Shared application state and the single lock that guards it.

The event loop and the worker thread both mutate AppState, always through
SharedState.locked(). The lock is held for one already-computed mutation
or one snapshot copy, never across network I/O.
"""

from __future__ import annotations

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterable, Iterator

from .commands import Command, FetchJobRuns, FetchLogs, FetchTaskInstances, ServerContext, SwitchServer
from .exceptions import AppError, StatePoisonedError
from .panels import (
    PANEL_STATES,
    ConfigState,
    JobRunsState,
    JobsState,
    LogsState,
    PanelKind,
    PanelState,
    TaskInstancesState,
)

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    """Everything the renderer shows and the panels/worker mutate."""
    panels: dict[PanelKind, PanelState] = field(default_factory=dict)
    active_panel: PanelKind = PanelKind.CONFIG
    active_server_id: str | None = None
    generation: int = 0
    error_banner: AppError | None = None
    ticks: int = 0

    @classmethod
    def create(cls, servers: Iterable = (), refresh_ticks: int = 10) -> "AppState":
        panels = {kind: state_cls(refresh_ticks=refresh_ticks) for kind, state_cls in PANEL_STATES.items()}
        panels[PanelKind.CONFIG].set_rows(servers)
        return cls(panels=panels)

    # -- typed panel accessors ------------------------------------------------

    @property
    def config(self) -> ConfigState:
        return self.panels[PanelKind.CONFIG]

    @property
    def jobs(self) -> JobsState:
        return self.panels[PanelKind.JOBS]

    @property
    def job_runs(self) -> JobRunsState:
        return self.panels[PanelKind.JOB_RUNS]

    @property
    def task_instances(self) -> TaskInstancesState:
        return self.panels[PanelKind.TASK_INSTANCES]

    @property
    def logs(self) -> LogsState:
        return self.panels[PanelKind.LOGS]

    @property
    def active(self) -> PanelState:
        return self.panels[self.active_panel]

    # -- server context -------------------------------------------------------

    def context(self) -> ServerContext:
        return ServerContext(self.active_server_id, self.generation)

    def is_current(self, context: ServerContext | None) -> bool:
        return context is None or context == self.context()

    def switch_server(self, server_id: str) -> None:
        """Make ``server_id`` active; results tagged for any earlier context become stale."""
        self.generation += 1
        self.active_server_id = server_id
        self.error_banner = None
        for kind in (PanelKind.JOBS, PanelKind.JOB_RUNS, PanelKind.TASK_INSTANCES, PanelKind.LOGS):
            panel = self.panels[kind]
            self.panels[kind] = type(panel)(refresh_ticks=panel.refresh_ticks)

    # -- navigation -----------------------------------------------------------

    def can_enter(self, kind: PanelKind) -> bool:
        if kind == PanelKind.JOBS:
            return self.active_server_id is not None
        return self.panels[kind].has_context

    def next_panel(self) -> bool:
        if self.active_panel == PanelKind.LOGS:
            return False
        target = PanelKind(self.active_panel + 1)
        if not self.can_enter(target):
            return False
        self.active_panel = target
        return True

    def previous_panel(self) -> bool:
        if self.active_panel == PanelKind.CONFIG:
            return False
        self.active_panel = PanelKind(self.active_panel - 1)
        return True

    def cycle_tab(self) -> None:
        self.active.cycle_tab()

    # -- commands -------------------------------------------------------------

    def prime(self, command: Command) -> None:
        """Point the target panel at the command's resource before it is queued.

        Navigation and stale checks rely on the panel context being set as
        soon as the user picks a row, not when the worker gets to it.
        """
        if isinstance(command, SwitchServer):
            self.switch_server(command.server_id)
        elif isinstance(command, FetchJobRuns):
            if self.job_runs.job_id != command.job_id:
                self.job_runs.reset(command.job_id)
        elif isinstance(command, FetchTaskInstances):
            panel = self.task_instances
            if (panel.job_id, panel.run_id) != (command.job_id, command.run_id):
                panel.reset(command.job_id, command.run_id)
        elif isinstance(command, FetchLogs):
            if not self.logs.is_for(command.job_id, command.run_id, command.task_id):
                self.logs.reset(command.job_id, command.run_id, command.task_id)
            self.logs.ensure_attempt(command.attempt)

    def set_error(self, error: AppError) -> None:
        self.error_banner = error


class SharedState:
    """AppState behind one mutual-exclusion lock.

    If code raises while holding the lock the state may be half-updated, so
    the state is marked poisoned and every later acquisition raises
    StatePoisonedError.
    """

    def __init__(self, state: AppState | None = None):
        self._state = state if state is not None else AppState.create()
        self._lock = threading.Lock()
        self._poisoned: str | None = None

    @property
    def poisoned(self) -> str | None:
        return self._poisoned

    @contextmanager
    def locked(self) -> Iterator[AppState]:
        with self._lock:
            if self._poisoned is not None:
                raise StatePoisonedError(f"application state is unusable: {self._poisoned}")
            try:
                yield self._state
            except BaseException as exc:
                self._poisoned = f"{type(exc).__name__}: {exc}"
                logger.error("State lock poisoned by %s", self._poisoned)
                raise

    def snapshot(self) -> AppState:
        """A deep copy taken under the lock; safe to read without it."""
        with self.locked() as state:
            return copy.deepcopy(state)
