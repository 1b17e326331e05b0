"""
DOM model: an lxml page document plus the events dispatched through it.
"""

from .document import PageDocument, MutationRecord, Rect, css_to_xpath
from .events import DomEvent, DomEventType

__all__ = [
    "PageDocument",
    "MutationRecord",
    "Rect",
    "css_to_xpath",
    "DomEvent",
    "DomEventType",
]
