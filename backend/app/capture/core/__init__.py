"""
Capture core: scheduling, click classification, timing and dedup.
"""

from .dedup import DuplicateGate, selectors_equal
from .intent_classifier import ClickContext, IntentClassifier
from .interactive_rules import ElementCapabilities, InteractiveRule, InteractiveRuleTable
from .scheduler import AsyncioScheduler, CancellationToken, ManualScheduler, Scheduler
from .timing import ActionTimingModel

__all__ = [
    "DuplicateGate",
    "selectors_equal",
    "ClickContext",
    "IntentClassifier",
    "ElementCapabilities",
    "InteractiveRule",
    "InteractiveRuleTable",
    "AsyncioScheduler",
    "CancellationToken",
    "ManualScheduler",
    "Scheduler",
    "ActionTimingModel",
]
