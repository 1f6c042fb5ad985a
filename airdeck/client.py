"""
Airflow REST API client
Talks to the stable REST API of Airflow 2 (/api/v1) and Airflow 3 (/api/v2)
"""

from __future__ import annotations

import logging
import subprocess
from typing import Any, Dict, List, Optional

import requests

from .config import ServerConfig, expand_env_vars
from .exceptions import (
    ApiError,
    ApiTimeoutError,
    ConfigError,
    NetworkError,
    NotFoundError,
    ServerError,
    UnauthorizedError,
)
from .models import Job, JobRun, TaskInstance

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
JOB_RUNS_LIMIT = 40
TOKEN_CMD_TIMEOUT = 10


class AirflowClient:
    """
    Client for one Airflow server

    Usage:
        client = AirflowClient(server, timeout=5)
        jobs = client.list_jobs()

    Every call is bounded by ``timeout`` seconds and raises an ApiError
    subclass on failure.
    """

    def __init__(self, server: ServerConfig, timeout: float = 5.0):
        self.server = server
        self.timeout = timeout
        endpoint = server.endpoint.rstrip("/")
        self.base_url = f"{endpoint}/{server.api_path}"
        self.session = requests.Session()
        self.session.headers["Accept"] = "application/json"

        auth = server.auth
        if auth.method == "basic":
            self.session.auth = (expand_env_vars(auth.username or ""), expand_env_vars(auth.password or ""))
        elif auth.method in ("token", "astronomer") and auth.token and not auth.cmd:
            self.session.headers["Authorization"] = f"Bearer {expand_env_vars(auth.token.strip())}"

        if server.proxy:
            proxy = expand_env_vars(server.proxy)
            self.session.proxies = {"http": proxy, "https": proxy}
            logger.info("Using proxy %s for %s", proxy, server.name)

    def _dynamic_headers(self) -> Dict[str, str]:
        """Headers whose token must be fetched fresh for every request."""
        auth = self.server.auth
        if auth.method == "token" and auth.cmd:
            return {"Authorization": f"Bearer {self._run_token_cmd(auth.cmd)}"}
        if auth.method == "conveyor":
            from .managed import conveyor_token

            try:
                return {"Authorization": f"Bearer {conveyor_token()}"}
            except ConfigError as e:
                raise UnauthorizedError(str(e))
        return {}

    @staticmethod
    def _run_token_cmd(cmd: str) -> str:
        try:
            result = subprocess.run(
                ["sh", "-c", cmd], capture_output=True, text=True, timeout=TOKEN_CMD_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise UnauthorizedError(f"Token command failed: {e}")
        if result.returncode != 0:
            raise UnauthorizedError(
                f"Token command exited with {result.returncode}: {result.stderr.strip()}"
            )
        return result.stdout.strip().replace('"', "")

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict] = None,
        json: Optional[Dict] = None,
    ) -> Any:
        """Make HTTP request to API"""
        url = f"{self.base_url}/{path}"
        logger.debug("%s %s params=%s", method, url, params)

        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._dynamic_headers(),
                timeout=self.timeout,
            )
        except requests.Timeout:
            raise ApiTimeoutError(f"Request to {url} timed out after {self.timeout}s")
        except requests.RequestException as e:
            raise NetworkError(f"Request to {url} failed: {e}")

        if response.status_code in (401, 403):
            raise UnauthorizedError(f"{response.status_code} from {url}", status_code=response.status_code)
        if response.status_code == 404:
            raise NotFoundError(f"Not found: {url}")
        if not response.ok:
            raise ServerError(
                f"{response.status_code} from {url}: {response.text[:200]}",
                status_code=response.status_code,
            )

        if response.status_code == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError:
            return response.text

    def _expect_dict(self, payload: Any, url_hint: str) -> Dict[str, Any]:
        if not isinstance(payload, dict):
            raise ServerError(f"Unexpected response from {url_hint}: {str(payload)[:200]}")
        return payload

    def _parse(self, model, items, url_hint: str) -> list:
        """Map API payloads to rows; a reply missing expected fields is a ServerError."""
        try:
            return [model.from_api(item) for item in items]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ServerError(f"Malformed response from {url_hint}: {e!r}")

    # -- jobs -----------------------------------------------------------------

    def list_jobs(self) -> List[Job]:
        """List all active DAGs, following pagination"""
        jobs: List[Job] = []
        offset = 0
        while True:
            page = self._expect_dict(
                self._request("GET", "dags", params={
                    "limit": PAGE_SIZE,
                    "offset": offset,
                    "order_by": "dag_id",
                    "only_active": "true",
                }),
                "dags",
            )
            batch = page.get("dags") or []
            jobs.extend(self._parse(Job, batch, "dags"))
            offset += len(batch)
            if not batch or offset >= int(page.get("total_entries") or 0):
                break
        logger.debug("Fetched %d DAGs from %s", len(jobs), self.server.name)
        return jobs

    def set_job_paused(self, job_id: str, paused: bool) -> None:
        """Pause or unpause a DAG"""
        self._request(
            "PATCH",
            f"dags/{job_id}",
            params={"update_mask": "is_paused"},
            json={"is_paused": paused},
        )

    # -- job runs -------------------------------------------------------------

    def list_job_runs(self, job_id: str, limit: int = JOB_RUNS_LIMIT) -> List[JobRun]:
        """List the most recent runs of a DAG, newest first"""
        order_by = "-start_date" if self.server.airflow_version >= 3 else "-execution_date"
        page = self._expect_dict(
            self._request("GET", f"dags/{job_id}/dagRuns", params={
                "order_by": order_by,
                "offset": 0,
                "limit": limit,
            }),
            f"dags/{job_id}/dagRuns",
        )
        return self._parse(JobRun, page.get("dag_runs") or [], f"dags/{job_id}/dagRuns")

    def trigger_job_run(self, job_id: str, conf: Optional[Dict[str, Any]] = None) -> JobRun:
        """Trigger a new DAG run and return it as created by the server"""
        body: Dict[str, Any] = {}
        if self.server.airflow_version >= 3:
            body["logical_date"] = None
        if conf:
            body["conf"] = conf
        payload = self._expect_dict(
            self._request("POST", f"dags/{job_id}/dagRuns", json=body),
            f"dags/{job_id}/dagRuns",
        )
        return self._parse(JobRun, [payload], f"dags/{job_id}/dagRuns")[0]

    def set_job_run_state(self, job_id: str, run_id: str, state: str) -> None:
        """Mark a DAG run as success, failed or queued"""
        self._request("PATCH", f"dags/{job_id}/dagRuns/{run_id}", json={"state": state})

    def clear_job_run(self, job_id: str, run_id: str) -> None:
        """Clear every task of a DAG run so the scheduler runs it again"""
        self._request("POST", f"dags/{job_id}/dagRuns/{run_id}/clear", json={"dry_run": False})

    # -- task instances -------------------------------------------------------

    def list_task_instances(self, job_id: str, run_id: str) -> List[TaskInstance]:
        """List all task instances of a DAG run, following pagination"""
        tasks: List[TaskInstance] = []
        offset = 0
        path = f"dags/{job_id}/dagRuns/{run_id}/taskInstances"
        while True:
            page = self._expect_dict(
                self._request("GET", path, params={"limit": PAGE_SIZE, "offset": offset}),
                path,
            )
            batch = page.get("task_instances") or []
            tasks.extend(self._parse(TaskInstance, batch, path))
            offset += len(batch)
            if not batch or offset >= int(page.get("total_entries") or 0):
                break
        return tasks

    def set_task_instance_state(
        self, job_id: str, run_id: str, task_id: str, state: str, map_index: int = -1,
    ) -> None:
        """Mark one task instance as success, failed or skipped"""
        path = f"dags/{job_id}/dagRuns/{run_id}/taskInstances/{task_id}"
        if map_index >= 0:
            path = f"{path}/{map_index}"
        self._request("PATCH", path, json={"new_state": state, "dry_run": False})

    def clear_task_instance(self, job_id: str, run_id: str, task_id: str, map_index: int = -1) -> None:
        """Clear a task instance and everything downstream of it"""
        task = [task_id, map_index] if map_index >= 0 else task_id
        self._request("POST", f"dags/{job_id}/clearTaskInstances", json={
            "dry_run": False,
            "task_ids": [task],
            "dag_run_id": run_id,
            "include_downstream": True,
            "only_failed": False,
            "reset_dag_runs": True,
        })

    def get_logs(self, job_id: str, run_id: str, task_id: str, attempt: int) -> str:
        """Fetch the full log text of one task attempt"""
        payload = self._request(
            "GET",
            f"dags/{job_id}/dagRuns/{run_id}/taskInstances/{task_id}/logs/{attempt}",
            params={"full_content": "true"},
        )
        return log_text(payload)

    def get_job_code(self, job_id: str) -> str:
        """Fetch the Python source of a DAG"""
        if self.server.airflow_version >= 3:
            source = self._request("GET", f"dagSources/{job_id}")
        else:
            dag = self._expect_dict(self._request("GET", f"dags/{job_id}"), f"dags/{job_id}")
            file_token = dag.get("file_token")
            if not file_token:
                raise ServerError(f"DAG {job_id} has no file_token")
            source = self._request("GET", f"dagSources/{file_token}")
        if isinstance(source, dict):
            return str(source.get("content") or "")
        return source or ""

    def close(self):
        """Close the session"""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def log_text(payload: Any) -> str:
    """Flatten the log payload shapes of Airflow 2 and 3 into plain text."""
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload
    content = payload.get("content", "") if isinstance(payload, dict) else payload
    if isinstance(content, str):
        return content
    lines = []
    for entry in content or []:
        if isinstance(entry, dict):
            timestamp = entry.get("timestamp")
            event = entry.get("event", "")
            lines.append(f"[{timestamp}] {event}" if timestamp else str(event))
        else:
            lines.append(str(entry))
    return "\n".join(lines)


def create_client(server: ServerConfig, timeout: float = 5.0) -> AirflowClient:
    """Build the client for a server entry; ConfigError if its settings are unusable."""
    if not server.endpoint.startswith(("http://", "https://")):
        raise ConfigError(f"Invalid endpoint for '{server.name}': {server.endpoint}")
    return AirflowClient(server, timeout=timeout)


__all__ = ["AirflowClient", "ApiError", "create_client", "log_text"]
