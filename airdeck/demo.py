"""
Demo mode: an in-memory stand-in for AirflowClient with sample data.

Used by ``airdeck run --demo`` so the UI can be explored without a server.
Mutations (pause, trigger, mark, clear) are applied to the in-memory data so a
later refresh shows them.
"""

import random
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from .config import AuthConfig, ServerConfig
from .exceptions import NotFoundError
from .models import CLEARED_RUN_STATE, CLEARED_TASK_STATE, Job, JobRun, TaskInstance

DEMO_SERVER = ServerConfig(
    name="demo",
    endpoint="http://demo.invalid/",
    auth=AuthConfig(),
    airflow_version=2,
)

_DEMO_DAGS = [
    ("daily_sales_etl", "Load yesterday's sales into the warehouse", "@daily", ("data-eng",), ("etl", "sales"), False),
    ("hourly_clickstream", "Aggregate clickstream events", "@hourly", ("analytics",), ("streaming",), False),
    ("ml_feature_refresh", "Recompute model features", "0 3 * * *", ("ml-team",), ("ml",), False),
    ("weekly_report", "Email the weekly KPI report", "@weekly", ("bi",), ("reporting",), True),
    ("cleanup_tmp_tables", "Drop scratch tables older than 7 days", "0 1 * * *", ("data-eng",), ("maintenance",), False),
    ("legacy_import", "Import from the old CRM", None, ("data-eng",), ("legacy",), True),
]

_DEMO_TASKS = ["extract", "validate", "transform", "load", "notify"]

_OPERATORS = {
    "extract": "PythonOperator",
    "validate": "SQLCheckOperator",
    "transform": "SparkSubmitOperator",
    "load": "PostgresOperator",
    "notify": "EmailOperator",
}


def _iso(dt: datetime) -> str:
    return dt.isoformat(timespec="seconds")


class DemoClient:
    """Serves sample DAGs, runs, task instances and logs from memory."""

    def __init__(self, seed: int = 42, now: Optional[datetime] = None):
        self._rng = random.Random(seed)
        self._now = now or datetime.now(timezone.utc).replace(microsecond=0)
        self._lock = threading.Lock()
        self._jobs: Dict[str, Job] = {}
        self._runs: Dict[str, List[JobRun]] = {}
        self._trigger_count = 0
        # (job_id, run_id, task_id) -> state set by mark or clear
        self._task_states: Dict[Tuple[str, str, str], Optional[str]] = {}
        for dag_id, description, schedule, owners, tags, paused in _DEMO_DAGS:
            self._jobs[dag_id] = Job(
                job_id=dag_id,
                display_name=dag_id,
                is_paused=paused,
                owners=owners,
                tags=tags,
                schedule=schedule or "",
                description=description,
            )
            self._runs[dag_id] = self._generate_runs(dag_id)

    def _generate_runs(self, dag_id: str) -> List[JobRun]:
        runs = []
        for days_ago in range(8):
            logical = self._now - timedelta(days=days_ago + 1)
            state = "running" if days_ago == 0 else self._rng.choice(["success"] * 4 + ["failed"])
            start = logical + timedelta(days=1, minutes=self._rng.randint(0, 5))
            runs.append(JobRun(
                job_id=dag_id,
                run_id=f"scheduled__{_iso(logical)}",
                state=state,
                logical_date=_iso(logical),
                start_date=_iso(start),
                end_date=None if state == "running" else _iso(start + timedelta(minutes=self._rng.randint(2, 40))),
                run_type="scheduled",
            ))
        return runs

    def _find_run(self, job_id: str, run_id: str) -> JobRun:
        for run in self._runs.get(job_id, []):
            if run.run_id == run_id:
                return run
        raise NotFoundError(f"DAG run {job_id}/{run_id} not found")

    # -- AirflowClient interface ----------------------------------------------

    def list_jobs(self) -> List[Job]:
        with self._lock:
            return sorted(self._jobs.values(), key=lambda job: job.job_id)

    def set_job_paused(self, job_id: str, paused: bool) -> None:
        with self._lock:
            if job_id not in self._jobs:
                raise NotFoundError(f"DAG {job_id} not found")
            self._jobs[job_id] = replace(self._jobs[job_id], is_paused=paused)

    def list_job_runs(self, job_id: str, limit: int = 40) -> List[JobRun]:
        with self._lock:
            if job_id not in self._jobs:
                raise NotFoundError(f"DAG {job_id} not found")
            return list(self._runs[job_id][:limit])

    def trigger_job_run(self, job_id: str, conf: Optional[Dict[str, Any]] = None) -> JobRun:
        with self._lock:
            if job_id not in self._jobs:
                raise NotFoundError(f"DAG {job_id} not found")
            self._trigger_count += 1
            now = self._now + timedelta(seconds=self._trigger_count)
            run = JobRun(
                job_id=job_id,
                run_id=f"manual__{_iso(now)}",
                state="queued",
                logical_date=_iso(now),
                run_type="manual",
                conf=dict(conf or {}),
            )
            self._runs[job_id].insert(0, run)
            return run

    def set_job_run_state(self, job_id: str, run_id: str, state: str) -> None:
        with self._lock:
            run = self._find_run(job_id, run_id)
            runs = self._runs[job_id]
            runs[runs.index(run)] = replace(run, state=state)

    def clear_job_run(self, job_id: str, run_id: str) -> None:
        with self._lock:
            run = self._find_run(job_id, run_id)
            runs = self._runs[job_id]
            runs[runs.index(run)] = replace(run, state=CLEARED_RUN_STATE, end_date=None)
            for key in [k for k in self._task_states if k[:2] == (job_id, run_id)]:
                del self._task_states[key]

    def list_task_instances(self, job_id: str, run_id: str) -> List[TaskInstance]:
        with self._lock:
            run = self._find_run(job_id, run_id)
            overrides = dict(self._task_states)
        tasks = []
        for index, task_id in enumerate(_DEMO_TASKS):
            if run.state == "failed" and index == 2:
                state, tries = "failed", 2
            elif run.state == "failed" and index > 2:
                state, tries = "upstream_failed", 0
            elif run.state == "running" and index >= 2:
                state, tries = ("running", 1) if index == 2 else (None, 0)
            elif run.state == "queued":
                state, tries = None, 0
            else:
                state, tries = "success", 1
            override = (job_id, run_id, task_id)
            if override in overrides:
                state = overrides[override]
            tasks.append(TaskInstance(
                job_id=job_id,
                run_id=run_id,
                task_id=task_id,
                state=state,
                try_number=tries,
                start_date=run.start_date if tries else None,
                duration=float(30 * (index + 1)) if state == "success" else None,
                operator=_OPERATORS[task_id],
            ))
        return tasks

    def set_task_instance_state(
        self, job_id: str, run_id: str, task_id: str, state: str, map_index: int = -1,
    ) -> None:
        with self._lock:
            self._find_run(job_id, run_id)
            if task_id not in _DEMO_TASKS:
                raise NotFoundError(f"Task {task_id} not found in {job_id}")
            self._task_states[(job_id, run_id, task_id)] = state

    def clear_task_instance(self, job_id: str, run_id: str, task_id: str, map_index: int = -1) -> None:
        with self._lock:
            self._find_run(job_id, run_id)
            if task_id not in _DEMO_TASKS:
                raise NotFoundError(f"Task {task_id} not found in {job_id}")
            for downstream in _DEMO_TASKS[_DEMO_TASKS.index(task_id):]:
                self._task_states[(job_id, run_id, downstream)] = CLEARED_TASK_STATE

    def get_logs(self, job_id: str, run_id: str, task_id: str, attempt: int) -> str:
        lines = [
            f"[{_iso(self._now)}] INFO - Dependencies all met for {job_id}.{task_id} {run_id} [queued]",
            f"[{_iso(self._now)}] INFO - Starting attempt {attempt}",
            f"[{_iso(self._now)}] INFO - Executing <Task({_OPERATORS.get(task_id, 'Operator')}): {task_id}>",
        ]
        for step in range(1, 31):
            lines.append(f"[{_iso(self._now)}] INFO - {task_id}: processed batch {step}")
        if task_id == "transform" and attempt == 1:
            lines.append(f"[{_iso(self._now)}] ERROR - Task failed with exception: executor lost")
            lines.append(f"[{_iso(self._now)}] INFO - Marking task as UP_FOR_RETRY")
        else:
            lines.append(f"[{_iso(self._now)}] INFO - Marking task as SUCCESS")
        return "\n".join(lines)

    def get_job_code(self, job_id: str) -> str:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"DAG {job_id} not found")
        lines = [
            f'"""{job.description or job_id}"""',
            "",
            "from airflow import DAG",
            "",
            f'with DAG("{job_id}", schedule={job.schedule or None!r}, tags={list(job.tags)!r}) as dag:',
        ]
        for task_id in _DEMO_TASKS:
            lines.append(f'    {task_id} = {_OPERATORS[task_id]}(task_id="{task_id}")')
        lines.append("")
        lines.append("    " + " >> ".join(_DEMO_TASKS))
        return "\n".join(lines) + "\n"

    def close(self):
        pass
