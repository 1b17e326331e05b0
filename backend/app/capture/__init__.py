"""
WebCapture Action Capture Engine

Observes a user's interaction with a web page and turns raw DOM events into
a replayable log of semantic actions:
- Selector Resolution Engine: ranked, validated selectors per element
- Interaction Classifier: what a click was meant to do
- Event Capture State Machine: whether a gesture is a new recordable action
- Action Timing Model: when each action is expected to have finished
"""

import logging

from .config import CaptureConfig, SelectorConfig
from .core import ActionTimingModel, AsyncioScheduler, DuplicateGate, IntentClassifier, ManualScheduler
from .dom import DomEvent, DomEventType, PageDocument
from .models import Action, SelectorStrategy, SelectorType, parse_action
from .recorder import ActionLog, Diagnostic, EventListener
from .selectors import CarouselDetector, SelectorGenerator

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    """Attach a stream handler to the package logger (for scripts and the CLI)."""
    package_logger = logging.getLogger(__name__)
    package_logger.setLevel(level)
    if not any(getattr(handler, "_capture_handler", False) for handler in package_logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._capture_handler = True
        package_logger.addHandler(handler)
    return package_logger


__all__ = [
    "configure_logging",
    "CaptureConfig",
    "SelectorConfig",
    "ActionTimingModel",
    "AsyncioScheduler",
    "DuplicateGate",
    "IntentClassifier",
    "ManualScheduler",
    "DomEvent",
    "DomEventType",
    "PageDocument",
    "Action",
    "SelectorStrategy",
    "SelectorType",
    "parse_action",
    "ActionLog",
    "Diagnostic",
    "EventListener",
    "CarouselDetector",
    "SelectorGenerator",
]
