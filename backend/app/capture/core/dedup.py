"""
Duplicate gate.

Last line of defence before emission: suppresses an action that repeats
the previously emitted one within its debounce window.
"""

import logging
from typing import Callable, Dict, Optional

from ..config import CaptureConfig
from ..models import (
    CheckpointAction,
    ClickAction,
    HoverAction,
    InputAction,
    KeypressAction,
    NavigationAction,
    ScrollAction,
    SelectAction,
    SelectorStrategy,
    SubmitAction,
    assert_exhaustive,
)

# Configure logging
logger = logging.getLogger(__name__)

# Compared in order; the first field both sides carry decides
IDENTITY_FIELDS = ("id", "css", "xpath", "data_test_id", "aria_label", "name")


def selectors_equal(a: Optional[SelectorStrategy], b: Optional[SelectorStrategy]) -> bool:
    if a is None or b is None:
        return False
    for field_name in IDENTITY_FIELDS:
        left, right = getattr(a, field_name), getattr(b, field_name)
        if left and right:
            return left == right
    return False


def is_submit_click(action) -> bool:
    if not isinstance(action, ClickAction):
        return False
    if action.click_type == "submit":
        return True
    return action.click_intent is not None and action.click_intent.type == "form-submit"


def _same_click(action: ClickAction, previous: ClickAction) -> bool:
    if action.carousel_context is not None:
        return selectors_equal(action.selector, previous.selector)
    if action.click_count != previous.click_count:
        return False
    return action.button == previous.button and selectors_equal(action.selector, previous.selector)


def _never(action, previous) -> bool:
    return False


IDENTITY_CHECKS: Dict[type, Callable] = {
    ClickAction: _same_click,
    InputAction: lambda a, p: selectors_equal(a.selector, p.selector) and a.value == p.value,
    NavigationAction: lambda a, p: a.from_url == p.from_url and a.to_url == p.to_url,
    SubmitAction: lambda a, p: selectors_equal(a.selector, p.selector),
    HoverAction: lambda a, p: selectors_equal(a.selector, p.selector),
    ScrollAction: _never,
    KeypressAction: _never,
    CheckpointAction: _never,
    SelectAction: _never,
}

assert_exhaustive(IDENTITY_CHECKS, "DuplicateGate")


class DuplicateGate:
    """Compares each candidate with the previously emitted action."""

    def __init__(self, config: Optional[CaptureConfig] = None):
        self.config = config or CaptureConfig()
        self.last_action = None

    def window_for(self, action) -> int:
        if is_submit_click(action):
            return self.config.submit_protection_ms
        return self.config.debounce_ms

    def duplicate_of(self, action) -> Optional[str]:
        """Id of the emitted action this one repeats, or None."""
        previous = self.last_action
        if previous is None or type(previous) is not type(action):
            return None
        if action.timestamp - previous.timestamp >= self.window_for(action):
            return None
        if not IDENTITY_CHECKS[type(action)](action, previous):
            return None
        return previous.id

    def accept(self, action) -> bool:
        """True when action should be emitted; records it as the new reference."""
        duplicate = self.duplicate_of(action)
        if duplicate is not None:
            logger.debug(f"Suppressed duplicate {action.type} (repeats {duplicate})")
            return False
        self.last_action = action
        return True

    def replace(self, action):
        """Keep the reference current when an emitted action is patched."""
        if self.last_action is not None and self.last_action.id == action.id:
            self.last_action = action

    def reset(self):
        self.last_action = None
