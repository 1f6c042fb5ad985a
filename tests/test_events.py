"""Tests for key translation and the curses input source."""

import curses
from unittest.mock import MagicMock

from airdeck.events import TICK, CursesInputSource, Key, Tick, key_from_code


class TestKeyFromCode:

    def test_printable(self):
        assert key_from_code(ord("j")) == Key("j")
        assert key_from_code(ord("P")) == Key("P")

    def test_special(self):
        assert key_from_code(curses.KEY_UP) == Key("up")
        assert key_from_code(ord("\n")) == Key("enter")
        assert key_from_code(27) == Key("esc")
        assert key_from_code(ord("\t")) == Key("tab")
        assert key_from_code(3) == Key("ctrl-c")

    def test_unknown_control_code(self):
        assert key_from_code(1) is None


class TestCursesInputSource:

    def test_timeout_gives_tick(self):
        win = MagicMock()
        win.getch.return_value = -1
        source = CursesInputSource(win)
        assert source.next_event(0.2) == Tick()
        win.timeout.assert_called_once_with(200)

    def test_timeout_set_only_when_changed(self):
        win = MagicMock()
        win.getch.return_value = ord("k")
        source = CursesInputSource(win)
        assert source.next_event(0.2) == Key("k")
        source.next_event(0.2)
        source.next_event(0.1)
        assert [c.args for c in win.timeout.call_args_list] == [(200,), (100,)]

    def test_keyboard_interrupt_is_ctrl_c(self):
        win = MagicMock()
        win.getch.side_effect = KeyboardInterrupt
        assert CursesInputSource(win).next_event(0.2) == Key("ctrl-c")

    def test_unknown_code_is_tick(self):
        win = MagicMock()
        win.getch.return_value = 1
        assert CursesInputSource(win).next_event(0.2) is TICK
