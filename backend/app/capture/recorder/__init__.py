"""
Event Capture State Machine

Records semantic actions from the DOM event stream of a page, plus the
helpers it leans on (typing sessions, dropdown tracking, form field rules,
navigation probing) and a ready-made collecting sink.
"""

from .action_log import ActionLog
from .dropdowns import DropdownTracker
from .event_listener import Diagnostic, EventListener
from .navigation_probe import NavigationProbe
from .typing_sessions import TypingSession, TypingSessionArena

__all__ = [
    "ActionLog",
    "DropdownTracker",
    "Diagnostic",
    "EventListener",
    "NavigationProbe",
    "TypingSession",
    "TypingSessionArena",
]
