"""Tests for AirflowClient request building and error mapping."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest
import requests

from airdeck.client import AirflowClient, create_client, log_text
from airdeck.config import AuthConfig, ServerConfig
from airdeck.exceptions import (
    ApiTimeoutError,
    ConfigError,
    NetworkError,
    NotFoundError,
    ServerError,
    UnauthorizedError,
)


def _response(status=200, payload=None, text=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 400
    if payload is None and text is None:
        resp.content = b""
    else:
        resp.content = b"x"
    if payload is not None:
        resp.json.return_value = payload
    else:
        resp.json.side_effect = ValueError("not json")
    resp.text = text or ""
    return resp


def _client(version=2, auth=None, **kwargs):
    server = ServerConfig(
        name="local",
        endpoint="http://localhost:8080/",
        auth=auth or AuthConfig(),
        airflow_version=version,
        **kwargs,
    )
    client = AirflowClient(server, timeout=5)
    client.session.request = MagicMock()
    return client


def _dag(dag_id, paused=False):
    return {"dag_id": dag_id, "is_paused": paused, "owners": ["airflow"], "tags": [{"name": "etl"}]}


class TestPaths:

    def test_v1_base_url(self):
        assert _client(2).base_url == "http://localhost:8080/api/v1"

    def test_v2_base_url(self):
        assert _client(3).base_url == "http://localhost:8080/api/v2"

    def test_timeout_passed(self):
        client = _client()
        client.session.request.return_value = _response(payload={"dag_runs": []})
        client.list_job_runs("etl")
        assert client.session.request.call_args.kwargs["timeout"] == 5


class TestJobs:

    def test_list_jobs_paginates(self):
        client = _client()
        client.session.request.side_effect = [
            _response(payload={"dags": [_dag("a"), _dag("b")], "total_entries": 3}),
            _response(payload={"dags": [_dag("c", paused=True)], "total_entries": 3}),
        ]
        jobs = client.list_jobs()
        assert [j.job_id for j in jobs] == ["a", "b", "c"]
        assert jobs[2].is_paused is True
        assert jobs[0].tags == ("etl",)
        offsets = [c.kwargs["params"]["offset"] for c in client.session.request.call_args_list]
        assert offsets == [0, 2]

    def test_list_jobs_stops_on_empty_page(self):
        client = _client()
        client.session.request.return_value = _response(payload={"dags": [], "total_entries": 10})
        assert client.list_jobs() == []
        assert client.session.request.call_count == 1

    def test_set_paused(self):
        client = _client()
        client.session.request.return_value = _response(payload=_dag("a", paused=True))
        client.set_job_paused("a", True)
        args, kwargs = client.session.request.call_args
        assert args == ("PATCH", "http://localhost:8080/api/v1/dags/a")
        assert kwargs["json"] == {"is_paused": True}


class TestJobRuns:

    def test_v1_orders_by_execution_date(self):
        client = _client(2)
        client.session.request.return_value = _response(payload={"dag_runs": [
            {"dag_id": "etl", "dag_run_id": "r1", "state": "success", "execution_date": "2024-01-01"},
        ]})
        runs = client.list_job_runs("etl")
        params = client.session.request.call_args.kwargs["params"]
        assert params["order_by"] == "-execution_date"
        assert params["limit"] == 40
        assert runs[0].logical_date == "2024-01-01"

    def test_v2_orders_by_start_date(self):
        client = _client(3)
        client.session.request.return_value = _response(payload={"dag_runs": []})
        client.list_job_runs("etl")
        assert client.session.request.call_args.kwargs["params"]["order_by"] == "-start_date"

    def test_trigger_v1(self):
        client = _client(2)
        client.session.request.return_value = _response(
            payload={"dag_id": "etl", "dag_run_id": "manual__1", "state": "queued"})
        run = client.trigger_job_run("etl")
        assert run.run_id == "manual__1"
        assert client.session.request.call_args.kwargs["json"] == {}

    def test_trigger_v2_sends_logical_date(self):
        client = _client(3)
        client.session.request.return_value = _response(
            payload={"dag_id": "etl", "dag_run_id": "manual__1", "state": "queued"})
        client.trigger_job_run("etl", {"x": 1})
        assert client.session.request.call_args.kwargs["json"] == {"logical_date": None, "conf": {"x": 1}}

    def test_set_state(self):
        client = _client()
        client.session.request.return_value = _response(payload={})
        client.set_job_run_state("etl", "run123", "failed")
        args, kwargs = client.session.request.call_args
        assert args == ("PATCH", "http://localhost:8080/api/v1/dags/etl/dagRuns/run123")
        assert kwargs["json"] == {"state": "failed"}

    def test_clear_run(self):
        client = _client()
        client.session.request.return_value = _response(payload={"task_instances": []})
        client.clear_job_run("etl", "run123")
        args, kwargs = client.session.request.call_args
        assert args == ("POST", "http://localhost:8080/api/v1/dags/etl/dagRuns/run123/clear")
        assert kwargs["json"] == {"dry_run": False}


class TestTasksAndLogs:

    def test_list_task_instances(self):
        client = _client()
        client.session.request.return_value = _response(payload={"task_instances": [
            {"dag_id": "etl", "dag_run_id": "r1", "task_id": "load", "state": "failed", "try_number": 2},
        ], "total_entries": 1})
        tasks = client.list_task_instances("etl", "r1")
        assert tasks[0].attempts == 2

    def test_get_logs_v1(self):
        client = _client()
        client.session.request.return_value = _response(payload={"content": "line1\nline2"})
        assert client.get_logs("etl", "r1", "load", 2) == "line1\nline2"
        args, kwargs = client.session.request.call_args
        assert args[1].endswith("/dags/etl/dagRuns/r1/taskInstances/load/logs/2")
        assert kwargs["params"] == {"full_content": "true"}

    def test_log_text_structured(self):
        payload = {"content": [
            {"timestamp": "2024-01-01T00:00:00Z", "event": "starting"},
            {"event": "no timestamp"},
            "plain",
        ]}
        assert log_text(payload) == "[2024-01-01T00:00:00Z] starting\nno timestamp\nplain"

    def test_log_text_plain_body(self):
        assert log_text("raw text") == "raw text"
        assert log_text(None) == ""

    def test_mark_task(self):
        client = _client()
        client.session.request.return_value = _response(payload={})
        client.set_task_instance_state("etl", "r1", "load", "skipped")
        args, kwargs = client.session.request.call_args
        assert args == ("PATCH", "http://localhost:8080/api/v1/dags/etl/dagRuns/r1/taskInstances/load")
        assert kwargs["json"] == {"new_state": "skipped", "dry_run": False}

    def test_mark_mapped_task(self):
        client = _client(3)
        client.session.request.return_value = _response(payload={})
        client.set_task_instance_state("etl", "r1", "load", "success", map_index=4)
        assert client.session.request.call_args.args[1].endswith("/taskInstances/load/4")

    def test_clear_task_includes_downstream(self):
        client = _client()
        client.session.request.return_value = _response(payload={"task_instances": []})
        client.clear_task_instance("etl", "r1", "load")
        args, kwargs = client.session.request.call_args
        assert args == ("POST", "http://localhost:8080/api/v1/dags/etl/clearTaskInstances")
        assert kwargs["json"] == {
            "dry_run": False,
            "task_ids": ["load"],
            "dag_run_id": "r1",
            "include_downstream": True,
            "only_failed": False,
            "reset_dag_runs": True,
        }

    def test_clear_mapped_task(self):
        client = _client()
        client.session.request.return_value = _response(payload={})
        client.clear_task_instance("etl", "r1", "load", map_index=2)
        assert client.session.request.call_args.kwargs["json"]["task_ids"] == [["load", 2]]


class TestJobCode:

    def test_v1_looks_up_file_token(self):
        client = _client(2)
        client.session.request.side_effect = [
            _response(payload={"dag_id": "etl", "file_token": "Ii9kYWdzL2V0bC5weSI"}),
            _response(payload={"content": "from airflow import DAG\n"}),
        ]
        assert client.get_job_code("etl") == "from airflow import DAG\n"
        urls = [c.args[1] for c in client.session.request.call_args_list]
        assert urls == [
            "http://localhost:8080/api/v1/dags/etl",
            "http://localhost:8080/api/v1/dagSources/Ii9kYWdzL2V0bC5weSI",
        ]

    def test_v1_plain_text_source(self):
        client = _client(2)
        client.session.request.side_effect = [
            _response(payload={"dag_id": "etl", "file_token": "tok"}),
            _response(text="print('hi')\n"),
        ]
        assert client.get_job_code("etl") == "print('hi')\n"

    def test_v1_missing_file_token(self):
        client = _client(2)
        client.session.request.return_value = _response(payload={"dag_id": "etl"})
        with pytest.raises(ServerError):
            client.get_job_code("etl")

    def test_v2_by_dag_id(self):
        client = _client(3)
        client.session.request.return_value = _response(payload={"content": "code", "dag_id": "etl"})
        assert client.get_job_code("etl") == "code"
        assert client.session.request.call_args.args[1] == "http://localhost:8080/api/v2/dagSources/etl"


class TestErrors:

    @pytest.mark.parametrize("status, exc", [
        (401, UnauthorizedError),
        (403, UnauthorizedError),
        (404, NotFoundError),
        (500, ServerError),
        (409, ServerError),
    ])
    def test_status_mapping(self, status, exc):
        client = _client()
        client.session.request.return_value = _response(status=status, text="nope")
        with pytest.raises(exc) as info:
            client.list_jobs()
        assert info.value.status_code == status

    def test_timeout(self):
        client = _client()
        client.session.request.side_effect = requests.Timeout()
        with pytest.raises(ApiTimeoutError):
            client.list_jobs()

    def test_connection_error(self):
        client = _client()
        client.session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(NetworkError):
            client.list_jobs()

    def test_undecodable_body(self):
        client = _client()
        client.session.request.return_value = _response(text="<html>login</html>")
        with pytest.raises(ServerError):
            client.list_jobs()

    def test_invalid_endpoint(self):
        with pytest.raises(ConfigError):
            create_client(ServerConfig("bad", "localhost:8080"))

    def test_trigger_reply_missing_fields(self):
        client = _client()
        client.session.request.return_value = _response(payload={"state": "queued"})
        with pytest.raises(ServerError) as info:
            client.trigger_job_run("etl")
        assert "dag_id" in str(info.value)

    def test_list_entry_missing_fields(self):
        client = _client()
        client.session.request.return_value = _response(payload={"dags": [{"is_paused": False}], "total_entries": 1})
        with pytest.raises(ServerError):
            client.list_jobs()

    def test_list_entry_of_wrong_type(self):
        client = _client()
        client.session.request.return_value = _response(payload={"task_instances": ["load"], "total_entries": 1})
        with pytest.raises(ServerError):
            client.list_task_instances("etl", "r1")


class TestAuth:

    def test_basic_auth_expands_env(self, monkeypatch):
        monkeypatch.setenv("AIRFLOW_PASSWORD", "s3cret")
        client = _client(auth=AuthConfig(method="basic", username="admin", password="${AIRFLOW_PASSWORD}"))
        assert client.session.auth == ("admin", "s3cret")

    def test_static_token(self):
        client = _client(auth=AuthConfig(method="token", token="abc"))
        assert client.session.headers["Authorization"] == "Bearer abc"

    def test_token_cmd_runs_per_request(self):
        client = _client(auth=AuthConfig(method="token", cmd="get-token"))
        client.session.request.return_value = _response(payload={"dag_runs": []})
        done = subprocess.CompletedProcess(["sh"], 0, stdout='"tok123"\n', stderr="")
        with patch("airdeck.client.subprocess.run", return_value=done) as run:
            client.list_job_runs("etl")
        run.assert_called_once()
        assert run.call_args.args[0] == ["sh", "-c", "get-token"]
        headers = client.session.request.call_args.kwargs["headers"]
        assert headers == {"Authorization": "Bearer tok123"}

    def test_token_cmd_failure(self):
        client = _client(auth=AuthConfig(method="token", cmd="false"))
        failed = subprocess.CompletedProcess(["sh"], 1, stdout="", stderr="denied")
        with patch("airdeck.client.subprocess.run", return_value=failed):
            with pytest.raises(UnauthorizedError):
                client.list_jobs()
        client.session.request.assert_not_called()

    def test_conveyor_token(self):
        client = _client(auth=AuthConfig(method="conveyor"))
        client.session.request.return_value = _response(payload={"dag_runs": []})
        with patch("airdeck.managed.conveyor_token", return_value="conv"):
            client.list_job_runs("etl")
        assert client.session.request.call_args.kwargs["headers"] == {"Authorization": "Bearer conv"}

    def test_proxy(self):
        client = _client(proxy="http://proxy:3128")
        assert client.session.proxies == {"http": "http://proxy:3128", "https": "http://proxy:3128"}
