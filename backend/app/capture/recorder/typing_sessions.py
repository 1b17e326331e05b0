"""
Typing sessions.

One session per field being typed into, from first focus/keystroke until
the value is flushed as an InputAction. Sessions live in an arena keyed by
element handle and are released on flush, stop and destroy.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..core.scheduler import ScheduledTask
from ..dom.document import PageDocument

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_TYPING_DELAY_MS = 50


@dataclass
class TypingSession:
    handle: str
    element: object
    started_at: float
    keystrokes: List[float] = field(default_factory=list)
    debounce: Optional[ScheduledTask] = None

    def record_keystroke(self, now: float):
        self.keystrokes.append(now)

    def typing_delay(self, default: int = DEFAULT_TYPING_DELAY_MS) -> int:
        """Average gap between keystrokes, rounded to whole milliseconds."""
        if len(self.keystrokes) < 2:
            return default
        gaps = [current - previous for previous, current in zip(self.keystrokes, self.keystrokes[1:])]
        return int(round(sum(gaps) / len(gaps)))

    def cancel_debounce(self):
        if self.debounce is not None:
            self.debounce.cancel()
            self.debounce = None


class TypingSessionArena:
    """Active typing sessions, keyed by element handle"""

    def __init__(self, document: PageDocument):
        self.document = document
        self._sessions: Dict[str, TypingSession] = {}

    def begin(self, element, now: float) -> TypingSession:
        """Start (or restart) a session, discarding keystrokes of any previous one."""
        handle = self.document.handle_of(element)
        existing = self._sessions.get(handle)
        if existing is not None:
            existing.cancel_debounce()
        session = TypingSession(handle=handle, element=element, started_at=now)
        self._sessions[handle] = session
        return session

    def get(self, element) -> Optional[TypingSession]:
        return self._sessions.get(self.document.handle_of(element))

    def ensure(self, element, now: float) -> TypingSession:
        session = self.get(element)
        if session is None:
            logger.debug("Input without focus, starting typing session now")
            session = self.begin(element, now)
        return session

    def release(self, element) -> Optional[TypingSession]:
        session = self._sessions.pop(self.document.handle_of(element), None)
        if session is not None:
            session.cancel_debounce()
        return session

    def others(self, element) -> List[TypingSession]:
        handle = self.document.handle_of(element)
        return [session for key, session in self._sessions.items() if key != handle]

    def sessions(self) -> List[TypingSession]:
        return list(self._sessions.values())

    def clear(self):
        for session in self._sessions.values():
            session.cancel_debounce()
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, element) -> bool:
        return self.get(element) is not None
