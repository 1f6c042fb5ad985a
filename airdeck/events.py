"""UI events and the curses input source that produces them."""

from __future__ import annotations

import curses
from dataclasses import dataclass


@dataclass(frozen=True)
class Key:
    """A keypress. Printable keys use the character itself ("j", "P", "/"),
    special keys a lowercase name ("enter", "esc", "up", "tab", ...)."""
    name: str


@dataclass(frozen=True)
class Tick:
    """Produced when no key arrived within the poll timeout."""
    pass


UiEvent = Key | Tick

TICK = Tick()

_SPECIAL_KEYS = {
    curses.KEY_UP: "up",
    curses.KEY_DOWN: "down",
    curses.KEY_LEFT: "left",
    curses.KEY_RIGHT: "right",
    curses.KEY_ENTER: "enter",
    curses.KEY_BACKSPACE: "backspace",
    curses.KEY_BTAB: "backtab",
    curses.KEY_HOME: "home",
    curses.KEY_END: "end",
    curses.KEY_NPAGE: "pagedown",
    curses.KEY_PPAGE: "pageup",
    curses.KEY_RESIZE: "resize",
    ord("\n"): "enter",
    ord("\r"): "enter",
    ord("\t"): "tab",
    27: "esc",
    127: "backspace",
    8: "backspace",
    3: "ctrl-c",
}


def key_from_code(code: int) -> Key | None:
    """Translate a curses key code into a Key, or None for unknown codes."""
    if code in _SPECIAL_KEYS:
        return Key(_SPECIAL_KEYS[code])
    if 32 <= code < 0x110000:
        try:
            return Key(chr(code))
        except ValueError:
            return None
    return None


class CursesInputSource:
    """Reads keys from a curses window with a bounded wait."""

    def __init__(self, stdscr):
        self.stdscr = stdscr
        self._timeout_ms: int | None = None

    def next_event(self, timeout: float) -> UiEvent:
        """Wait at most ``timeout`` seconds for a key; return Tick otherwise."""
        timeout_ms = max(1, int(timeout * 1000))
        if timeout_ms != self._timeout_ms:
            self.stdscr.timeout(timeout_ms)
            self._timeout_ms = timeout_ms
        try:
            code = self.stdscr.getch()
        except KeyboardInterrupt:
            return Key("ctrl-c")
        if code == -1:
            return TICK
        key = key_from_code(code)
        return key if key is not None else TICK
