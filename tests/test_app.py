"""Tests for the App event loop."""

from unittest.mock import MagicMock

import pytest

from airdeck.app import App
from airdeck.commands import ServerContext, SwitchServer
from airdeck.events import Key, Tick
from airdeck.exceptions import AppError, StatePoisonedError
from airdeck.panels import PanelKind


@pytest.fixture
def input_source():
    return MagicMock()


@pytest.fixture
def renderer():
    return MagicMock()


@pytest.fixture
def app(shared, worker, input_source, renderer):
    return App(shared, worker, input_source, renderer, tick_interval=0.05)


class TestStart:

    def test_connects_to_configured_server(self, app, shared, worker):
        app.start("beta")
        snap = shared.snapshot()
        assert snap.active_server_id == "beta"
        assert snap.active_panel == PanelKind.JOBS
        queued = worker.queue.get_nowait()
        assert queued == SwitchServer("beta", context=ServerContext("beta", 1))

    def test_without_server_stays_on_config(self, app, shared, worker):
        app.start(None)
        assert shared.snapshot().active_panel == PanelKind.CONFIG
        assert worker.queue.empty()

    def test_discovery_errors_shown(self, app, shared):
        app.start(None, ["Astronomer: ASTRO_API_TOKEN environment variable not set"])
        banner = shared.snapshot().error_banner
        assert banner.kind == "config"
        assert "ASTRO_API_TOKEN" in banner.message


class TestGlobalActions:

    def test_quit(self, app):
        app.running = True
        app.handle_event(Key("q"))
        assert app.running is False

    def test_ctrl_c_quits(self, app):
        app.running = True
        app.handle_event(Key("ctrl-c"))
        assert app.running is False

    def test_q_inside_filter_is_text(self, app, shared):
        app.running = True
        app.handle_event(Key("/"))
        app.handle_event(Key("q"))
        assert app.running is True
        assert shared.snapshot().config.filter_text == "q"

    def test_tick_counts(self, app, shared):
        app.handle_event(Tick())
        app.handle_event(Tick())
        assert shared.snapshot().ticks == 2

    def test_dismiss_error(self, app, shared):
        with shared.locked() as state:
            state.set_error(AppError("FetchJobs", None, "network", "down"))
        app.handle_event(Key("x"))
        assert shared.snapshot().error_banner is None

    def test_tab_cycles_jobs_tabs(self, app, shared):
        app.start("alpha")
        app.handle_event(Key("tab"))
        assert shared.snapshot().jobs.tab_index == 1

    def test_enter_on_config_connects_and_navigates(self, app, shared, worker):
        commands = app.handle_event(Key("enter"))
        assert commands == [SwitchServer("alpha", context=ServerContext("alpha", 1))]
        assert shared.snapshot().active_panel == PanelKind.JOBS

    def test_right_on_config_needs_a_server(self, app, shared):
        app.handle_event(Key("right"))
        assert shared.snapshot().active_panel == PanelKind.CONFIG

    def test_back_navigation(self, app, shared):
        app.start("alpha")
        app.handle_event(Key("left"))
        assert shared.snapshot().active_panel == PanelKind.CONFIG
        app.handle_event(Key("esc"))
        assert shared.snapshot().active_panel == PanelKind.CONFIG

    def test_commands_queued_in_emission_order(self, app, shared, worker):
        app.start("alpha")
        worker.queue.get_nowait()
        with shared.locked() as state:
            state.jobs.set_rows([])
        app.handle_event(Key("r"))
        app.handle_event(Key("r"))
        assert worker.queue.qsize() == 2


class TestRunLoop:

    def test_renders_snapshots_until_quit(self, app, shared, input_source, renderer):
        input_source.next_event.side_effect = [Key("j"), Tick(), Key("q")]
        result = app.run()
        assert result is None
        assert renderer.render.call_count == 3
        input_source.next_event.assert_called_with(0.05)
        rendered = renderer.render.call_args_list[-1][0][0]
        with shared.locked() as live:
            assert rendered is not live
            assert live.config.items.selected().name == "beta"
        assert rendered.config.items.selected().name == "beta"

    def test_returns_active_server(self, app, input_source):
        app.start("beta")
        input_source.next_event.side_effect = [Key("q")]
        assert app.run() == "beta"

    def test_poisoned_state_ends_loop(self, app, shared, input_source):
        with pytest.raises(ValueError):
            with shared.locked():
                raise ValueError("broken writer")
        input_source.next_event.return_value = Tick()
        with pytest.raises(StatePoisonedError):
            app.run()
