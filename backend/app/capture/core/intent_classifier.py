"""
Click Intent Classification

A stateless cascade that labels a click with what the user meant by it.
The first matching tier wins; the tier fixes whether repeated clicks are
legitimate and whether replay should wait afterwards.
"""

import logging
import re
from dataclasses import dataclass

from ..dom.document import PageDocument, class_name, tag_name, text_content
from ..models import ClickIntent

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class ClickContext:
    """Facts the listener already knows about the click"""
    is_carousel: bool = False
    is_form_submit: bool = False
    is_pagination: bool = False


CAROUSEL_INTENT = ClickIntent(type="carousel-navigation", allow_multiple=True, requires_delay=False, confidence=95)
FORM_SUBMIT_INTENT = ClickIntent(type="form-submit", allow_multiple=False, requires_delay=True, confidence=100)
PAGINATION_INTENT = ClickIntent(type="pagination", allow_multiple=True, requires_delay=True, confidence=90)
INCREMENT_INTENT = ClickIntent(type="increment", allow_multiple=True, requires_delay=False, confidence=85)
TOGGLE_INTENT = ClickIntent(type="toggle", allow_multiple=False, requires_delay=False, confidence=90)
NAVIGATION_INTENT = ClickIntent(type="navigation", allow_multiple=False, requires_delay=True, confidence=80)
GENERIC_INTENT = ClickIntent(type="generic-click", allow_multiple=False, requires_delay=False, confidence=70)


class IntentClassifier:
    """
    Classifies clicks into semantic intents.

    Tiers, in order: carousel-navigation, form-submit, pagination,
    increment, toggle, navigation, generic-click.
    """

    PAGINATION_CLASS = re.compile(r"pagination|page[-_]?nav", re.IGNORECASE)
    PAGINATION_ARIA = re.compile(r"page|pagination", re.IGNORECASE)
    PAGINATION_TEXT = re.compile(r"next page|previous page|page \d+", re.IGNORECASE)
    PAGINATION_ANCESTOR = '.pagination, [class*="page-nav"], [class*="pager"]'
    MIN_PAGINATION_INDICATORS = 2

    INCREMENT_TEXT = {"+", "-", "▲", "▼"}
    INCREMENT_ARIA = re.compile(r"increment|decrement|increase|decrease", re.IGNORECASE)
    INCREMENT_CLASS = re.compile(r"stepper|spinner", re.IGNORECASE)

    TOGGLE_CLASS = re.compile(r"toggle|switch", re.IGNORECASE)

    def __init__(self, document: PageDocument):
        self.document = document

    def classify(self, element, context: ClickContext) -> ClickIntent:
        if context.is_carousel:
            return CAROUSEL_INTENT
        if context.is_form_submit:
            return FORM_SUBMIT_INTENT
        if self.is_pagination(element, context):
            return PAGINATION_INTENT
        if self.is_increment(element):
            return INCREMENT_INTENT
        if self.is_toggle(element):
            return TOGGLE_INTENT
        if self.is_navigation(element):
            return NAVIGATION_INTENT
        return GENERIC_INTENT

    def is_pagination(self, element, context: ClickContext) -> bool:
        if context.is_pagination:
            return True
        indicators = [
            bool(self.PAGINATION_CLASS.search(class_name(element))),
            bool(self.PAGINATION_ARIA.search(element.get("aria-label") or "")),
            bool(self.PAGINATION_TEXT.search(text_content(element))),
            self.document.closest(element, self.PAGINATION_ANCESTOR) is not None,
        ]
        return sum(indicators) >= self.MIN_PAGINATION_INDICATORS

    def is_increment(self, element) -> bool:
        if text_content(element) in self.INCREMENT_TEXT:
            return True
        if self.INCREMENT_ARIA.search(element.get("aria-label") or ""):
            return True
        if self.INCREMENT_CLASS.search(class_name(element)):
            return True
        return self.document.closest(element, '[type="number"]') is not None

    def is_toggle(self, element) -> bool:
        if element.get("role") == "switch":
            return True
        if self.TOGGLE_CLASS.search(class_name(element)):
            return True
        return tag_name(element) == "input" and (element.get("type") or "").lower() == "checkbox"

    def is_navigation(self, element) -> bool:
        if tag_name(element) == "a":
            href = element.get("href")
            if href and href != "#" and not href.lower().startswith("javascript:"):
                return True
        if element.get("role") == "link":
            return True
        return self.document.closest(element, "nav") is not None
