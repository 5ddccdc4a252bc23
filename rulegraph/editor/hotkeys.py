"""
Keyboard shortcuts for the rule canvas.

    Delete / Backspace          delete selection
    Ctrl/Cmd + Z                undo
    Ctrl/Cmd + Y, Ctrl/Cmd + Shift + Z   redo
    Ctrl/Cmd + S                save
    Ctrl/Cmd + A                select all
    Ctrl/Cmd + C / V            copy / paste
    Escape                      clear selection

While focus is inside a text input only Escape is handled, so typing in a
condition value never deletes nodes.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional


class Shortcut(Enum):
    DELETE = auto()
    UNDO = auto()
    REDO = auto()
    SAVE = auto()
    SELECT_ALL = auto()
    COPY = auto()
    PASTE = auto()
    ESCAPE = auto()


@dataclass(frozen=True)
class KeyEvent:
    key: str
    ctrl: bool = False
    meta: bool = False
    shift: bool = False
    in_text_input: bool = False


@dataclass
class HotkeyHandlers:
    on_delete: Optional[Callable[[], object]] = None
    on_undo: Optional[Callable[[], object]] = None
    on_redo: Optional[Callable[[], object]] = None
    on_save: Optional[Callable[[], object]] = None
    on_select_all: Optional[Callable[[], object]] = None
    on_copy: Optional[Callable[[], object]] = None
    on_paste: Optional[Callable[[], object]] = None
    on_escape: Optional[Callable[[], object]] = None

    def handler_for(self, shortcut: Shortcut) -> Optional[Callable[[], object]]:
        return {
            Shortcut.DELETE: self.on_delete,
            Shortcut.UNDO: self.on_undo,
            Shortcut.REDO: self.on_redo,
            Shortcut.SAVE: self.on_save,
            Shortcut.SELECT_ALL: self.on_select_all,
            Shortcut.COPY: self.on_copy,
            Shortcut.PASTE: self.on_paste,
            Shortcut.ESCAPE: self.on_escape,
        }[shortcut]


def resolve_shortcut(event: KeyEvent, mac: bool = False) -> Optional[Shortcut]:
    if event.key == "Escape":
        return Shortcut.ESCAPE
    if event.in_text_input:
        return None

    modifier = event.meta if mac else event.ctrl
    key = event.key.lower() if len(event.key) == 1 else event.key

    if event.key in ("Delete", "Backspace") and not modifier:
        return Shortcut.DELETE
    if not modifier:
        return None
    if key == "z":
        return Shortcut.REDO if event.shift else Shortcut.UNDO
    if key == "y":
        return Shortcut.REDO
    if key == "s":
        return Shortcut.SAVE
    if key == "a":
        return Shortcut.SELECT_ALL
    if key == "c":
        return Shortcut.COPY
    if key == "v":
        return Shortcut.PASTE
    return None


def dispatch(event: KeyEvent, handlers: HotkeyHandlers, mac: bool = False) -> Optional[Shortcut]:
    """
    Run the handler bound to ``event``.

    Returns the shortcut when one was recognised (the caller should suppress
    the browser default), otherwise None.
    """
    shortcut = resolve_shortcut(event, mac)
    if shortcut is None:
        return None
    handler = handlers.handler_for(shortcut)
    if handler is not None:
        handler()
    return shortcut
