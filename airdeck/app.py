"""The event loop: render, read one event, update state, queue commands."""

from __future__ import annotations

import logging
from typing import Iterable

from .commands import Command, SwitchServer
from .events import Key, Tick, UiEvent
from .exceptions import AppError
from .panels import PanelKind, update_panel
from .state import AppState, SharedState
from .worker import Worker

logger = logging.getLogger(__name__)

QUIT_KEYS = ("q", "ctrl-c")
NEXT_KEYS = ("enter", "right")
PREVIOUS_KEYS = ("esc", "left")


class App:
    """Runs on the main thread. Never performs network I/O itself."""

    def __init__(self, shared: SharedState, worker: Worker, input_source, renderer,
                 tick_interval: float = 0.2):
        self.shared = shared
        self.worker = worker
        self.input_source = input_source
        self.renderer = renderer
        self.tick_interval = tick_interval
        self.running = False

    def start(self, server_id: str | None = None, errors: Iterable[str] = ()) -> None:
        """Connect to ``server_id`` (if any) and show discovery errors."""
        commands: list[Command] = []
        with self.shared.locked() as state:
            for message in errors:
                state.set_error(AppError("Discover", None, "config", message))
            if server_id is not None:
                commands = self._prime(state, [SwitchServer(server_id)])
                state.active_panel = PanelKind.JOBS
        for command in commands:
            self.worker.submit(command)

    def run(self) -> str | None:
        """Loop until quit. Returns the server that was active at the end.

        StatePoisonedError propagates to the caller.
        """
        self.running = True
        logger.info("Event loop started")
        while self.running:
            self.renderer.render(self.shared.snapshot())
            event = self.input_source.next_event(self.tick_interval)
            self.handle_event(event)
        logger.info("Event loop stopped")
        with self.shared.locked() as state:
            return state.active_server_id

    def handle_event(self, event: UiEvent) -> list[Command]:
        """Apply one event to the state and queue the resulting commands."""
        with self.shared.locked() as state:
            kind = state.active_panel
            update = update_panel(kind, state.panels[kind], event)
            state.panels[kind] = update.state
            commands = self._prime(state, update.commands)
            self._apply_global(state, update.fallback)
        for command in commands:
            self.worker.submit(command)
        return commands

    @staticmethod
    def _prime(state: AppState, commands: Iterable[Command]) -> list[Command]:
        stamped = []
        for command in commands:
            state.prime(command)
            stamped.append(command.stamped(state.context()))
        return stamped

    def _apply_global(self, state: AppState, event: UiEvent | None) -> None:
        if isinstance(event, Tick):
            state.ticks += 1
            return
        if not isinstance(event, Key):
            return
        name = event.name
        if name in QUIT_KEYS:
            self.running = False
        elif name in NEXT_KEYS:
            state.next_panel()
        elif name in PREVIOUS_KEYS:
            state.previous_panel()
        elif name == "tab":
            state.cycle_tab()
        elif name == "x":
            state.error_banner = None
