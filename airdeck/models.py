"""Domain rows shown in the panels.

Each row type has a stable ``key`` used by StatefulContainer to keep the
selection on the same row across refreshes. ``from_api`` accepts both the
Airflow 2 (``/api/v1``) and Airflow 3 (``/api/v2``) response shapes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


RUN_STATES = ("queued", "running", "success", "failed")
MARKABLE_RUN_STATES = ("success", "failed", "queued")
MARKABLE_TASK_STATES = ("success", "failed", "skipped")
# Airflow re-queues a cleared run and resets its cleared tasks to no state
CLEARED_RUN_STATE = "queued"
CLEARED_TASK_STATE = None


def task_key(task_id: str, map_index: int = -1) -> str:
    """Row key of a task instance; mapped instances carry their index."""
    if map_index >= 0:
        return f"{task_id}[{map_index}]"
    return task_id


def _schedule_text(data: dict[str, Any]) -> str:
    schedule = data.get("schedule_interval")
    if isinstance(schedule, dict):
        return str(schedule.get("value") or "")
    if schedule:
        return str(schedule)
    return str(data.get("timetable_summary") or data.get("timetable_description") or "")


@dataclass(frozen=True)
class Job:
    """A DAG."""
    job_id: str
    display_name: str = ""
    is_paused: bool = False
    owners: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    schedule: str = ""
    next_run: str | None = None
    description: str | None = None

    @property
    def key(self) -> str:
        return self.job_id

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Job":
        return cls(
            job_id=data["dag_id"],
            display_name=data.get("dag_display_name") or data["dag_id"],
            is_paused=bool(data.get("is_paused") or False),
            owners=tuple(data.get("owners") or ()),
            tags=tuple(t.get("name", "") for t in data.get("tags") or ()),
            schedule=_schedule_text(data),
            next_run=data.get("next_dagrun") or data.get("next_dagrun_logical_date"),
            description=data.get("description"),
        )


@dataclass(frozen=True)
class JobRun:
    """One execution of a DAG."""
    job_id: str
    run_id: str
    state: str
    logical_date: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    run_type: str = "manual"
    conf: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def key(self) -> str:
        return self.run_id

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "JobRun":
        return cls(
            job_id=data["dag_id"],
            run_id=data["dag_run_id"],
            state=data.get("state") or "queued",
            logical_date=data.get("logical_date") or data.get("execution_date"),
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
            run_type=data.get("run_type") or "manual",
            conf=dict(data.get("conf") or {}),
        )


@dataclass(frozen=True)
class TaskInstance:
    """One task's execution inside a DAG run."""
    job_id: str
    run_id: str
    task_id: str
    state: str | None = None
    try_number: int = 0
    start_date: str | None = None
    end_date: str | None = None
    duration: float | None = None
    operator: str | None = None
    map_index: int = -1

    @property
    def key(self) -> str:
        return task_key(self.task_id, self.map_index)

    @property
    def attempts(self) -> int:
        """Number of log attempts available; a task that never ran still has one."""
        return max(1, self.try_number)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "TaskInstance":
        map_index = data.get("map_index")
        return cls(
            job_id=data["dag_id"],
            run_id=data["dag_run_id"],
            task_id=data["task_id"],
            state=data.get("state"),
            try_number=int(data.get("try_number") or 0),
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
            duration=data.get("duration"),
            operator=data.get("operator") or data.get("operator_name"),
            map_index=-1 if map_index is None else int(map_index),
        )


@dataclass(frozen=True)
class LogAttempt:
    """The log text of one task attempt; ``text`` is None while loading."""
    attempt: int
    text: str | None = None

    @property
    def key(self) -> int:
        return self.attempt
