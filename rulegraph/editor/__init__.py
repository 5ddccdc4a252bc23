from .editor import RuleEditor
from .hotkeys import HotkeyHandlers, KeyEvent, Shortcut, dispatch, resolve_shortcut

__all__ = [
    "HotkeyHandlers",
    "KeyEvent",
    "RuleEditor",
    "Shortcut",
    "dispatch",
    "resolve_shortcut",
]
