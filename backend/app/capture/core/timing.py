"""
Action Timing Model

Estimates how long each action takes to perform so every action carries a
completed_at that replay can schedule against. completed_at never goes
backwards across the emitted sequence.
"""

import logging
from typing import Callable, Dict

from ..models import (
    CheckpointAction,
    ClickAction,
    HoverAction,
    InputAction,
    KeypressAction,
    NavigationAction,
    ScrollAction,
    SelectAction,
    SubmitAction,
    assert_exhaustive,
)

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_TYPING_DELAY_MS = 100
ELEMENT_SCROLL_MS = 200
WINDOW_SCROLL_MIN_MS = 200
WINDOW_SCROLL_MAX_MS = 800


def _scroll_estimate(action: ScrollAction) -> int:
    if action.element == "window":
        return int(min(max(abs(action.scroll_y) / 3, WINDOW_SCROLL_MIN_MS), WINDOW_SCROLL_MAX_MS))
    return ELEMENT_SCROLL_MS


ESTIMATORS: Dict[type, Callable] = {
    HoverAction: lambda action: action.duration,
    InputAction: lambda action: len(action.value) * (action.typing_delay or DEFAULT_TYPING_DELAY_MS),
    ScrollAction: _scroll_estimate,
    ClickAction: lambda action: 50,
    SelectAction: lambda action: 100,
    SubmitAction: lambda action: 50,
    KeypressAction: lambda action: 0,
    CheckpointAction: lambda action: 0,
    NavigationAction: lambda action: action.duration,
}

assert_exhaustive(ESTIMATORS, "ActionTimingModel")


class ActionTimingModel:
    """Stamps completed_at = max(timestamp + estimate, previous completed_at)."""

    def __init__(self):
        self.last_completed_at = 0

    def estimate(self, action) -> int:
        return max(0, int(ESTIMATORS[type(action)](action)))

    def preview(self, action):
        """Copy of action with completed_at set, without moving the high-water mark."""
        completed_at = max(action.timestamp + self.estimate(action), self.last_completed_at)
        return action.model_copy(update={"completed_at": completed_at})

    def commit(self, action):
        self.last_completed_at = max(self.last_completed_at, action.completed_at)

    def stamp(self, action):
        stamped = self.preview(action)
        self.commit(stamped)
        return stamped

    def reset(self):
        self.last_completed_at = 0
