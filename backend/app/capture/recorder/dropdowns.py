"""
Dropdown tracking.

Works out whether a clicked element lives inside a dropdown/menu, which
trigger opens that menu, and which recorded click opened it, so replay can
reopen the menu before clicking inside it.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..config import CaptureConfig
from ..core.scheduler import CancellationToken, Scheduler
from ..dom.document import MutationRecord, PageDocument, class_list, parent_element, tag_name
from ..selectors.patterns import css_string
from ..selectors.selector_generator import SelectorGenerator

# Configure logging
logger = logging.getLogger(__name__)

DROPDOWN_PARENT_PATTERNS = ("dropdown", "menu", "nav", "submenu", "popover")
DROPDOWN_PARENT_DEPTH = 5

DROPDOWN_CONTAINER_SELECTORS = [
    '[role="menu"]',
    '[role="listbox"]',
    '[role="combobox"]',
    ".dropdown-menu",
    ".dropdown-content",
    "ul.dropdown",
    ".MuiMenu-paper",
    ".MuiPopover-paper",
    ".ant-dropdown",
    ".ant-select-dropdown",
    ".select-dropdown",
    ".select-menu",
    ".select-options",
    ".menu-items",
    "[data-dropdown]",
    '[class*="dropdown"]',
    '[class*="menu"]',
    '[id*="dropdown"]',
    '[id*="menu"]',
    ".popover",
]

# Attributes whose change can reveal a dropdown
VISIBILITY_ATTRIBUTES = ("class", "style", "aria-expanded", "hidden")

NEARBY_TRIGGER_SELECTORS = (
    "button.dropdown-toggle, button[data-toggle=\"dropdown\"], button[aria-haspopup], "
    ".dropdown-button, [role=\"button\"][aria-haspopup]"
)


def is_dropdown_parent(element) -> bool:
    """Explicit dropdown classes or aria-haspopup; hidden children alone do not count."""
    classes = [cls.lower() for cls in class_list(element)]
    if any(pattern in cls for pattern in DROPDOWN_PARENT_PATTERNS for cls in classes):
        return True
    return element.get("aria-haspopup") is not None


def find_dropdown_parent(element):
    current = element
    for _ in range(DROPDOWN_PARENT_DEPTH):
        if current is None:
            return None
        if is_dropdown_parent(current):
            return current
        current = parent_element(current)
    return None


@dataclass
class DropdownLink:
    action_id: str
    opened_at: float


class DropdownTracker:
    """
    Links opened dropdown containers to the click that opened them.

    The tracker observes attribute mutations; when a dropdown container
    becomes visible, the most recent click (from last_click) is recorded
    as its opener for dropdown_link_timeout_ms.
    """

    def __init__(
        self,
        document: PageDocument,
        selector_generator: SelectorGenerator,
        scheduler: Scheduler,
        config: Optional[CaptureConfig] = None,
        last_click: Optional[Callable[[], Optional[str]]] = None,
    ):
        self.document = document
        self.selector_generator = selector_generator
        self.scheduler = scheduler
        self.config = config or CaptureConfig()
        self.last_click = last_click or (lambda: None)
        self.links: Dict[str, DropdownLink] = {}
        self._token: Optional[CancellationToken] = None

    # ==================== Observer ====================

    def start(self, token: CancellationToken):
        self._token = token
        self.document.observe(self.on_mutations)

    def stop(self):
        self.document.disconnect(self.on_mutations)
        self._token = None

    def clear(self):
        self.links.clear()

    def is_dropdown_container(self, element) -> bool:
        return any(self.document.matches(element, selector) for selector in DROPDOWN_CONTAINER_SELECTORS)

    def is_open(self, element) -> bool:
        if element.get("hidden") is not None or element.get("aria-hidden") == "true":
            return False
        return self.document.is_visible(element)

    def on_mutations(self, records):
        for record in records:
            if not isinstance(record, MutationRecord) or record.attribute_name not in VISIBILITY_ATTRIBUTES:
                continue
            element = record.target
            if not self.is_dropdown_container(element) or not self.is_open(element):
                continue
            action_id = self.last_click()
            if action_id:
                self.on_dropdown_open(element, action_id)

    def on_dropdown_open(self, container, action_id: str):
        handle = self.document.handle_of(container)
        self.links[handle] = DropdownLink(action_id=action_id, opened_at=self.scheduler.now())
        self.scheduler.call_later(
            self.config.dropdown_link_timeout_ms, lambda: self._expire(handle, action_id), self._token
        )
        logger.debug(f"Dropdown {handle} opened by {action_id}")

    def _expire(self, handle: str, action_id: str):
        link = self.links.get(handle)
        if link is not None and link.action_id == action_id:
            del self.links[handle]

    def opening_action(self, container) -> Optional[str]:
        link = self.links.get(self.document.handle_of(container))
        if link is None:
            return None
        if self.scheduler.now() - link.opened_at >= self.config.dropdown_link_timeout_ms:
            return None
        return link.action_id

    # ==================== Click analysis ====================

    def find_container(self, element):
        for selector in DROPDOWN_CONTAINER_SELECTORS:
            container = self.document.closest(element, selector)
            if container is not None:
                return container
        return None

    def find_trigger(self, container):
        """The control that opens container, tried from most to least explicit."""
        container_id = container.get("id")
        if container_id:
            for selector in (
                f"[aria-controls={css_string(container_id)}]",
                f"[data-target={css_string('#' + container_id)}]",
            ):
                trigger = self.document.query(selector)
                if trigger is not None:
                    return trigger

        labelled_by = container.get("aria-labelledby")
        if labelled_by:
            trigger = self.document.query(f"[id={css_string(labelled_by)}]")
            if trigger is not None:
                return trigger

        previous = container.getprevious()
        while previous is not None and not isinstance(previous.tag, str):
            previous = previous.getprevious()
        if previous is not None:
            if previous.get("aria-expanded") is not None:
                return previous
            if tag_name(previous) == "button" or previous.get("role") == "button":
                return previous

        parent = parent_element(container)
        if parent is not None:
            nearby = self.document.query_within(parent, NEARBY_TRIGGER_SELECTORS)
            if nearby:
                return nearby[0]
            buttons = [button for button in self.document.query_within(parent, "button") if button is not container]
            if buttons:
                return buttons[0]
        return None

    def containing_dropdown(self, element):
        """Dropdown container holding element; a container never contains itself."""
        container = self.find_container(element)
        if container is element:
            parent = parent_element(element)
            container = self.find_container(parent) if parent is not None else None
        return container

    def analyze(self, element) -> dict:
        """Dropdown fields for a ClickAction (empty dict when not inside a dropdown)."""
        container = self.containing_dropdown(element)
        if container is None:
            return {}
        trigger = self.find_trigger(container)
        state = {
            "is_in_dropdown": True,
            "requires_parent_open": True,
            "parent_selector": self.selector_generator.generate_selectors(container),
            "related_action": self.opening_action(container),
        }
        if trigger is not None:
            state["parent_trigger"] = self.selector_generator.generate_selectors(trigger)
        logger.debug(f"Click inside dropdown <{tag_name(container)}> (trigger found: {trigger is not None})")
        return state
