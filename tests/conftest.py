"""Shared test fixtures for airdeck tests."""

import queue
import shutil
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from airdeck.config import AuthConfig, ServerConfig
from airdeck.state import AppState, SharedState
from airdeck.worker import Worker


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    tmp = tempfile.mkdtemp()
    yield Path(tmp)
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def config_path(temp_dir, monkeypatch):
    """Point AIRDECK_CONFIG at a file inside temp_dir."""
    path = temp_dir / "airdeck.yaml"
    monkeypatch.setenv("AIRDECK_CONFIG", str(path))
    return path


@pytest.fixture
def servers():
    return [
        ServerConfig(
            name="alpha",
            endpoint="http://alpha:8080",
            auth=AuthConfig(method="basic", username="airflow", password="airflow"),
        ),
        ServerConfig(name="beta", endpoint="http://beta:8080", airflow_version=3),
    ]


@pytest.fixture
def shared(servers):
    return SharedState(AppState.create(servers, refresh_ticks=10))


@pytest.fixture
def clients():
    """One MagicMock API client per server name."""
    return {"alpha": MagicMock(name="alpha-client"), "beta": MagicMock(name="beta-client")}


@pytest.fixture
def worker(shared, clients):
    """A Worker whose thread is never started; tests call drain()/process()."""
    return Worker(shared, lambda name: clients[name])


@pytest.fixture
def drain(worker):
    """Process every queued command on the test thread, in FIFO order."""

    def _drain():
        while True:
            try:
                command = worker.queue.get_nowait()
            except queue.Empty:
                return
            try:
                worker.process(command)
            finally:
                worker.queue.task_done()

    return _drain
