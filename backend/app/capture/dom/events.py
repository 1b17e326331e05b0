"""
DOM events as seen by the capture engine.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional


class DomEventType(str, Enum):
    """Native event types the listener subscribes to"""
    CLICK = "click"
    MOUSEDOWN = "mousedown"
    DBLCLICK = "dblclick"
    INPUT = "input"
    CHANGE = "change"
    SUBMIT = "submit"
    KEYDOWN = "keydown"
    SCROLL = "scroll"
    POPSTATE = "popstate"
    MOUSEENTER = "mouseenter"
    MOUSELEAVE = "mouseleave"
    FOCUS = "focus"
    BLUR = "blur"
    BEFOREUNLOAD = "beforeunload"


@dataclass
class DomEvent:
    """A dispatched DOM event. target is None for window-level events."""
    type: DomEventType
    target: Optional[Any] = None
    time_stamp: float = 0.0
    client_x: float = 0.0
    client_y: float = 0.0
    button: int = 0
    detail: int = 1
    ctrl_key: bool = False
    shift_key: bool = False
    alt_key: bool = False
    meta_key: bool = False
    key: str = ""
    code: str = ""
    scroll_x: Optional[float] = None
    scroll_y: Optional[float] = None
    is_trusted: bool = True
    default_prevented: bool = False

    def prevent_default(self):
        self.default_prevented = True

    @property
    def modifiers(self) -> List[str]:
        keys = []
        if self.ctrl_key:
            keys.append("ctrl")
        if self.shift_key:
            keys.append("shift")
        if self.alt_key:
            keys.append("alt")
        if self.meta_key:
            keys.append("meta")
        return keys
