"""Config panel: pick the server to work against."""

from __future__ import annotations

from dataclasses import dataclass

from ..commands import SwitchServer
from ..events import Key, Tick, UiEvent
from .base import COMMON_KEYS, PanelState, PanelUpdate, begin, handle_list_keys, handle_popup


@dataclass
class ConfigState(PanelState):
    KEYS = (("Enter", "Connect to the selected server"),) + COMMON_KEYS

    def search_text(self, row) -> str:
        return f"{row.name} {row.endpoint}"


def update(state: ConfigState, event: UiEvent) -> PanelUpdate:
    state = begin(state)
    if isinstance(event, Tick):
        return PanelUpdate(state, event, [])

    handled = handle_popup(state, event)
    if handled is not None:
        return handled
    if handle_list_keys(state, event):
        return PanelUpdate(state, None, [])

    if event.name == "enter":
        server = state.items.selected()
        if server is None:
            return PanelUpdate(state, None, [])
        return PanelUpdate(state, Key("enter"), [SwitchServer(server.name)])

    return PanelUpdate(state, event, [])
