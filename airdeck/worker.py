"""Background worker: runs API calls and folds their results into AppState.

Commands are processed one at a time in FIFO order. The network call runs
without the state lock; only the resulting mutation is applied under it.
A result whose ServerContext or resource ids no longer match what the UI
shows is dropped.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable

from .commands import (
    ClearJobRun,
    ClearTaskInstance,
    Command,
    FetchJobCode,
    FetchJobRuns,
    FetchJobs,
    FetchLogs,
    FetchTaskInstances,
    SetJobRunState,
    SetTaskInstanceState,
    SwitchServer,
    ToggleJobPause,
    TriggerJobRun,
)
from .exceptions import AirdeckError, ApiError, AppError, ConfigError, StatePoisonedError
from .models import CLEARED_RUN_STATE, CLEARED_TASK_STATE
from .state import AppState, SharedState

logger = logging.getLogger(__name__)

_STOP = object()

ClientFactory = Callable[[str], Any]


class Worker:
    """Owns the command queue and the thread draining it."""

    def __init__(self, shared: SharedState, client_factory: ClientFactory, capacity: int = 0):
        self.shared = shared
        self.client_factory = client_factory
        self.queue: queue.Queue = queue.Queue(maxsize=capacity)
        self._clients: dict[str, Any] = {}
        self._thread = threading.Thread(target=self.run, name="airdeck-worker", daemon=True)

    # -- lifecycle ------------------------------------------------------------

    def start(self) -> None:
        self._thread.start()

    def stop(self, timeout: float = 1.0) -> None:
        """Ask the thread to finish after the commands already queued.

        Never blocks longer than ``timeout`` per step: a thread that already
        exited (poisoned state) may have left a bounded queue full.
        """
        if self._thread.is_alive():
            try:
                self.queue.put(_STOP, timeout=timeout)
            except queue.Full:
                logger.warning("Worker queue still full after %.1fs, not waiting for it", timeout)
            else:
                self._thread.join(timeout)
        for client in self._clients.values():
            close = getattr(client, "close", None)
            if close is not None:
                close()
        self._clients.clear()

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()

    def submit(self, command: Command) -> None:
        """Queue a command. Blocks while a bounded queue is full; never drops."""
        self.queue.put(command)

    def run(self) -> None:
        while True:
            command = self.queue.get()
            try:
                if command is _STOP:
                    return
                self.process(command)
            except StatePoisonedError:
                logger.error("State is poisoned, worker stopping")
                return
            except Exception:
                logger.exception("Worker failed while processing %r", command)
            finally:
                self.queue.task_done()

    # -- per command ----------------------------------------------------------

    def process(self, command: Command) -> None:
        logger.debug("Processing %r", command)
        try:
            result = self.execute(command)
        except (ApiError, ConfigError) as exc:
            self.fail(command, exc)
            return
        self.apply(command, result)

    def client_for(self, server_id: str):
        client = self._clients.get(server_id)
        if client is None:
            client = self.client_factory(server_id)
            self._clients[server_id] = client
        return client

    def _server_id(self, command: Command) -> str:
        if command.context is not None and command.context.server_id is not None:
            return command.context.server_id
        if isinstance(command, SwitchServer):
            return command.server_id
        with self.shared.locked() as state:
            server_id = state.active_server_id
        if server_id is None:
            raise ConfigError("No active server")
        return server_id

    def execute(self, command: Command) -> Any:
        """Run the API call for ``command``. Never touches the shared state lock
        except to look up the active server of an unstamped command."""
        client = self.client_for(self._server_id(command))
        if isinstance(command, (SwitchServer, FetchJobs)):
            return client.list_jobs()
        if isinstance(command, FetchJobRuns):
            return client.list_job_runs(command.job_id)
        if isinstance(command, TriggerJobRun):
            return client.trigger_job_run(command.job_id, command.conf)
        if isinstance(command, SetJobRunState):
            return client.set_job_run_state(command.job_id, command.run_id, command.state)
        if isinstance(command, ClearJobRun):
            return client.clear_job_run(command.job_id, command.run_id)
        if isinstance(command, FetchTaskInstances):
            return client.list_task_instances(command.job_id, command.run_id)
        if isinstance(command, SetTaskInstanceState):
            return client.set_task_instance_state(
                command.job_id, command.run_id, command.task_id, command.state, command.map_index,
            )
        if isinstance(command, ClearTaskInstance):
            return client.clear_task_instance(
                command.job_id, command.run_id, command.task_id, command.map_index,
            )
        if isinstance(command, FetchLogs):
            return client.get_logs(command.job_id, command.run_id, command.task_id, command.attempt)
        if isinstance(command, ToggleJobPause):
            return client.set_job_paused(command.job_id, command.paused)
        if isinstance(command, FetchJobCode):
            return client.get_job_code(command.job_id)
        raise TypeError(f"Unknown command: {command!r}")

    def apply(self, command: Command, result: Any) -> bool:
        """Fold a successful result into the state. Returns False if it was stale."""
        with self.shared.locked() as state:
            if not state.is_current(command.context):
                logger.debug("Dropping stale result of %s for %s", command.operation, command.context)
                return False
            applied = _apply_result(state, command, result)
        if not applied:
            logger.debug("Dropping result of %s %s: panel moved on", command.operation, command.target_id)
        return applied

    def fail(self, command: Command, exc: AirdeckError) -> bool:
        """Revert the optimistic change and publish the error. Returns False if stale."""
        logger.warning("%s %s failed: %s", command.operation, command.target_id, exc)
        with self.shared.locked() as state:
            if not state.is_current(command.context):
                logger.debug("Ignoring stale failure of %s for %s", command.operation, command.context)
                return False
            _revert(state, command)
            state.set_error(AppError.from_exception(command.operation, command.target_id, exc))
        return True


def _apply_result(state: AppState, command: Command, result: Any) -> bool:
    if isinstance(command, (SwitchServer, FetchJobs)):
        state.jobs.set_rows(result)
        return True

    if isinstance(command, FetchJobRuns):
        if state.job_runs.job_id != command.job_id:
            return False
        state.job_runs.set_rows(result)
        return True

    if isinstance(command, TriggerJobRun):
        panel = state.job_runs
        if panel.job_id != command.job_id:
            return False
        if command.placeholder_id and panel.replace_run(command.placeholder_id, result):
            return True
        if panel.find_row(result.key) is None:
            panel.rows.insert(0, result)
            panel.refilter()
        return True

    if isinstance(command, FetchTaskInstances):
        panel = state.task_instances
        if not panel.is_for(command.job_id, command.run_id):
            return False
        panel.set_rows(result)
        return True

    if isinstance(command, FetchLogs):
        if not state.logs.is_for(command.job_id, command.run_id, command.task_id):
            return False
        return state.logs.store_text(command.attempt, result)

    if isinstance(command, FetchJobCode):
        popup = state.job_runs.code_popup_for(command.job_id)
        if popup is None:
            return False
        popup.text = result
        return True

    # The optimistic value was shown before the call. A refresh that landed
    # in between may have overwritten it with older server data, so the
    # confirmed value is written again.
    if isinstance(command, SetJobRunState):
        if state.job_runs.job_id != command.job_id:
            return False
        return state.job_runs.set_run_state(command.run_id, command.state)

    if isinstance(command, ClearJobRun):
        if state.job_runs.job_id != command.job_id:
            return False
        return state.job_runs.set_run_state(command.run_id, CLEARED_RUN_STATE)

    if isinstance(command, ToggleJobPause):
        return state.jobs.set_paused(command.job_id, command.paused)

    if isinstance(command, SetTaskInstanceState):
        if not state.task_instances.is_for(command.job_id, command.run_id):
            return False
        return state.task_instances.set_task_state(command.task_key, command.state)

    if isinstance(command, ClearTaskInstance):
        if not state.task_instances.is_for(command.job_id, command.run_id):
            return False
        return state.task_instances.set_task_state(command.task_key, CLEARED_TASK_STATE)

    return True


def _revert(state: AppState, command: Command) -> None:
    if isinstance(command, (SetJobRunState, ClearJobRun)):
        if command.prior_state is not None and state.job_runs.job_id == command.job_id:
            state.job_runs.set_run_state(command.run_id, command.prior_state)
    elif isinstance(command, ToggleJobPause):
        if command.prior_paused is not None:
            state.jobs.set_paused(command.job_id, command.prior_paused)
    elif isinstance(command, TriggerJobRun):
        if command.placeholder_id and state.job_runs.job_id == command.job_id:
            state.job_runs.remove_run(command.placeholder_id)
    elif isinstance(command, (SetTaskInstanceState, ClearTaskInstance)):
        # A task's prior state may legitimately be None (never ran)
        if state.task_instances.is_for(command.job_id, command.run_id):
            state.task_instances.set_task_state(command.task_key, command.prior_state)
    elif isinstance(command, FetchLogs):
        if state.logs.is_for(command.job_id, command.run_id, command.task_id):
            state.logs.store_text(command.attempt, "")
    elif isinstance(command, FetchJobCode):
        if state.job_runs.code_popup_for(command.job_id) is not None:
            state.job_runs.popup = None
