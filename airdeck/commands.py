"""Commands sent from the UI to the worker.

A command names one API operation plus the ids the worker needs to route
the result back to the right panel. The event loop stamps ``context`` with
the active server and its generation before queueing, so the worker can tell
when a result no longer belongs to what the user is looking at.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from .models import task_key as row_key


@dataclass(frozen=True)
class ServerContext:
    """Identifies which server (and which switch to it) a command belongs to."""
    server_id: str | None
    generation: int


@dataclass(frozen=True)
class Command:
    context: ServerContext | None = field(default=None, kw_only=True)

    operation = "Command"

    @property
    def target_id(self) -> str | None:
        return None

    def stamped(self, context: ServerContext) -> "Command":
        return replace(self, context=context)


@dataclass(frozen=True)
class FetchJobs(Command):
    operation = "FetchJobs"


@dataclass(frozen=True)
class FetchJobRuns(Command):
    job_id: str

    operation = "FetchJobRuns"

    @property
    def target_id(self) -> str:
        return self.job_id


@dataclass(frozen=True)
class TriggerJobRun(Command):
    job_id: str
    conf: dict[str, Any] | None = None
    # Key of the optimistic row inserted in the JobRuns panel
    placeholder_id: str | None = None

    operation = "TriggerJobRun"

    @property
    def target_id(self) -> str:
        return self.job_id


@dataclass(frozen=True)
class SetJobRunState(Command):
    job_id: str
    run_id: str
    state: str
    prior_state: str | None = None

    operation = "SetJobRunState"

    @property
    def target_id(self) -> str:
        return self.run_id


@dataclass(frozen=True)
class FetchTaskInstances(Command):
    job_id: str
    run_id: str

    operation = "FetchTaskInstances"

    @property
    def target_id(self) -> str:
        return self.run_id


@dataclass(frozen=True)
class FetchLogs(Command):
    job_id: str
    run_id: str
    task_id: str
    attempt: int = 1

    operation = "FetchLogs"

    @property
    def target_id(self) -> str:
        return self.task_id


@dataclass(frozen=True)
class ToggleJobPause(Command):
    job_id: str
    paused: bool
    prior_paused: bool | None = None

    operation = "ToggleJobPause"

    @property
    def target_id(self) -> str:
        return self.job_id


@dataclass(frozen=True)
class SwitchServer(Command):
    server_id: str

    operation = "SwitchServer"

    @property
    def target_id(self) -> str:
        return self.server_id


@dataclass(frozen=True)
class ClearJobRun(Command):
    job_id: str
    run_id: str
    prior_state: str | None = None

    operation = "ClearJobRun"

    @property
    def target_id(self) -> str:
        return self.run_id


@dataclass(frozen=True)
class SetTaskInstanceState(Command):
    job_id: str
    run_id: str
    task_id: str
    state: str
    map_index: int = -1
    prior_state: str | None = None

    operation = "SetTaskInstanceState"

    @property
    def target_id(self) -> str:
        return self.task_id

    @property
    def task_key(self) -> str:
        return row_key(self.task_id, self.map_index)


@dataclass(frozen=True)
class ClearTaskInstance(Command):
    job_id: str
    run_id: str
    task_id: str
    map_index: int = -1
    prior_state: str | None = None

    operation = "ClearTaskInstance"

    @property
    def target_id(self) -> str:
        return self.task_id

    @property
    def task_key(self) -> str:
        return row_key(self.task_id, self.map_index)


@dataclass(frozen=True)
class FetchJobCode(Command):
    job_id: str

    operation = "FetchJobCode"

    @property
    def target_id(self) -> str:
        return self.job_id
