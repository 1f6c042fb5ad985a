"""Tests for the demo-mode client."""

import pytest

from airdeck.demo import DEMO_SERVER, DemoClient
from airdeck.exceptions import NotFoundError


@pytest.fixture
def client():
    return DemoClient(seed=1)


class TestDemoClient:

    def test_jobs_sorted_with_paused_ones(self, client):
        jobs = client.list_jobs()
        ids = [j.job_id for j in jobs]
        assert ids == sorted(ids)
        assert any(j.is_paused for j in jobs)

    def test_runs_newest_first(self, client):
        runs = client.list_job_runs("daily_sales_etl")
        assert len(runs) == 8
        assert runs[0].state == "running"
        assert runs[0].logical_date > runs[1].logical_date

    def test_trigger_then_list(self, client):
        run = client.trigger_job_run("daily_sales_etl", {"full": True})
        runs = client.list_job_runs("daily_sales_etl")
        assert runs[0] == run
        assert run.conf == {"full": True}

    def test_mark_run(self, client):
        run = client.list_job_runs("daily_sales_etl")[1]
        client.set_job_run_state("daily_sales_etl", run.run_id, "queued")
        assert client.list_job_runs("daily_sales_etl")[1].state == "queued"

    def test_pause(self, client):
        client.set_job_paused("daily_sales_etl", True)
        job = next(j for j in client.list_jobs() if j.job_id == "daily_sales_etl")
        assert job.is_paused is True

    def test_unknown_dag(self, client):
        with pytest.raises(NotFoundError):
            client.list_job_runs("nope")

    def test_failed_run_has_retried_task(self, client):
        runs = client.list_job_runs("daily_sales_etl")
        failed = [r for r in runs if r.state == "failed"]
        if not failed:
            client.set_job_run_state("daily_sales_etl", runs[1].run_id, "failed")
            failed = [client.list_job_runs("daily_sales_etl")[1]]
        tasks = client.list_task_instances("daily_sales_etl", failed[0].run_id)
        transform = next(t for t in tasks if t.task_id == "transform")
        assert transform.attempts == 2

    def test_logs(self, client):
        text = client.get_logs("daily_sales_etl", "run", "transform", 1)
        assert "ERROR" in text
        assert "Starting attempt 1" in text

    def test_demo_server(self):
        assert DEMO_SERVER.name == "demo"

    def test_clear_run_requeues(self, client):
        run = client.list_job_runs("daily_sales_etl")[1]
        client.clear_job_run("daily_sales_etl", run.run_id)
        cleared = client.list_job_runs("daily_sales_etl")[1]
        assert cleared.state == "queued"
        assert cleared.end_date is None

    def test_mark_task(self, client):
        run = client.list_job_runs("daily_sales_etl")[0]
        client.set_task_instance_state("daily_sales_etl", run.run_id, "extract", "failed")
        tasks = client.list_task_instances("daily_sales_etl", run.run_id)
        assert tasks[0].state == "failed"

    def test_clear_task_resets_downstream(self, client):
        run = client.list_job_runs("daily_sales_etl")[0]
        client.clear_task_instance("daily_sales_etl", run.run_id, "transform")
        states = {t.task_id: t.state for t in client.list_task_instances("daily_sales_etl", run.run_id)}
        assert states["extract"] == "success"
        assert states["transform"] is None
        assert states["notify"] is None

    def test_unknown_task(self, client):
        run = client.list_job_runs("daily_sales_etl")[0]
        with pytest.raises(NotFoundError):
            client.set_task_instance_state("daily_sales_etl", run.run_id, "nope", "success")

    def test_job_code(self, client):
        code = client.get_job_code("daily_sales_etl")
        assert 'with DAG("daily_sales_etl"' in code
        assert "extract >> validate >> transform >> load >> notify" in code
        with pytest.raises(NotFoundError):
            client.get_job_code("nope")
