"""
Page Document

An lxml-backed model of the live page that the capture engine observes.

Features:
- CSS queries (via cssselect) and XPath evaluation against one tree
- Stable element handles that survive snapshot reloads
- Host-provided computed style, bounding rects and live form values
- Attribute mutation observers and document-level event dispatch
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, Iterable, List, Optional

from cssselect import HTMLTranslator
from lxml import etree
from lxml import html as lxml_html

# Configure logging
logger = logging.getLogger(__name__)

_translator = HTMLTranslator()


@lru_cache(maxsize=1024)
def css_to_xpath(selector: str, prefix: str = "descendant-or-self::") -> str:
    """Translate a CSS selector to XPath. Raises cssselect.SelectorError on bad input."""
    return _translator.css_to_xpath(selector, prefix=prefix)


# ==================== Element helpers ====================

def is_element(node: Any) -> bool:
    """True for real elements (comments and processing instructions have non-str tags)."""
    return isinstance(node, etree._Element) and isinstance(node.tag, str)


def tag_name(element) -> str:
    return element.tag.lower() if is_element(element) else ""


def class_list(element) -> List[str]:
    return (element.get("class") or "").split()


def class_name(element) -> str:
    return " ".join(class_list(element))


def text_content(element) -> str:
    try:
        return (element.text_content() or "").strip()
    except ValueError:
        return ""


def parent_element(element):
    parent = element.getparent()
    return parent if is_element(parent) else None


def child_elements(element) -> List:
    return [child for child in element if is_element(child)]


def ancestors(element, include_self: bool = False) -> Iterable:
    if include_self:
        yield element
    for node in element.iterancestors():
        if is_element(node):
            yield node


def child_index(element) -> int:
    """0-based index among element siblings."""
    parent = parent_element(element)
    if parent is None:
        return 0
    for index, child in enumerate(child_elements(parent)):
        if child is element:
            return index
    return 0


def same_tag_index(element) -> int:
    """1-based index among same-tag siblings, as used by XPath steps."""
    parent = parent_element(element)
    if parent is None:
        return 1
    position = 0
    for child in child_elements(parent):
        if child.tag == element.tag:
            position += 1
            if child is element:
                return position
    return 1


@dataclass
class Rect:
    """Bounding client rect in viewport coordinates."""
    left: float = 0.0
    top: float = 0.0
    width: float = 0.0
    height: float = 0.0
    known: bool = False

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height


@dataclass
class MutationRecord:
    """One attribute change delivered to observers."""
    target: Any
    attribute_name: str
    old_value: Optional[str]
    type: str = "attributes"


MutationCallback = Callable[[List[MutationRecord]], None]


class PageDocument:
    """
    The observed page.

    Host annotations are stripped from the markup on load and kept in side
    tables keyed by element handle:
    - data-computed-style: "prop: value; ..." overrides on top of inline style
    - data-computed-rect: "left,top,width,height"
    - data-capture-value / data-capture-checked: live form state
    """

    HANDLE_ATTRIBUTE = "data-capture-handle"
    STYLE_ATTRIBUTE = "data-computed-style"
    RECT_ATTRIBUTE = "data-computed-rect"
    VALUE_ATTRIBUTE = "data-capture-value"
    CHECKED_ATTRIBUTE = "data-capture-checked"

    DEFAULT_VIEWPORT = (1280, 720)

    def __init__(self, markup: str = "<html><head></head><body></body></html>", url: str = "about:blank"):
        self.url = url
        self.scroll_x = 0.0
        self.scroll_y = 0.0
        self.viewport_width, self.viewport_height = self.DEFAULT_VIEWPORT
        self._observers: List[MutationCallback] = []
        self._event_handlers: Dict[str, List[Callable]] = {}
        self.load(markup)

    # ==================== Loading ====================

    def load(self, markup: str, url: Optional[str] = None):
        """Replace the tree with a new snapshot. Handles present in the markup are kept."""
        self.root = lxml_html.document_fromstring(markup)
        if url is not None:
            self.url = url
        self._host_styles: Dict[str, Dict[str, str]] = {}
        self._rects: Dict[str, Rect] = {}
        self._values: Dict[str, str] = {}
        self._checked: Dict[str, bool] = {}
        self._by_handle: Dict[str, Any] = {}
        # Numbering restarts per snapshot so identical markup yields identical handles
        self._handle_counter = 0

        elements = [element for element in self.root.iter() if is_element(element)]
        for element in elements:
            handle = element.get(self.HANDLE_ATTRIBUTE)
            if handle:
                self._by_handle[handle] = element
        for element in elements:
            handle = element.get(self.HANDLE_ATTRIBUTE)
            if not handle:
                handle = self._new_handle()
                element.set(self.HANDLE_ATTRIBUTE, handle)
                self._by_handle[handle] = element

            style = element.attrib.pop(self.STYLE_ATTRIBUTE, None)
            if style:
                self._host_styles[handle] = parse_style(style)
            rect = element.attrib.pop(self.RECT_ATTRIBUTE, None)
            if rect:
                self._rects[handle] = parse_rect(rect)
            value = element.attrib.pop(self.VALUE_ATTRIBUTE, None)
            if value is not None:
                self._values[handle] = value
            checked = element.attrib.pop(self.CHECKED_ATTRIBUTE, None)
            if checked is not None:
                self._checked[handle] = checked.lower() in ("true", "1", "checked")

        logger.debug(f"Loaded document {self.url} with {len(self._by_handle)} elements")

    @property
    def body(self):
        return self.root.body

    @property
    def document_element(self):
        return self.root

    # ==================== Identity ====================

    def handle_of(self, element) -> str:
        handle = element.get(self.HANDLE_ATTRIBUTE)
        if not handle:
            handle = self._new_handle()
            element.set(self.HANDLE_ATTRIBUTE, handle)
            self._by_handle[handle] = element
        return handle

    def _new_handle(self) -> str:
        self._handle_counter += 1
        while f"h{self._handle_counter}" in self._by_handle:
            self._handle_counter += 1
        return f"h{self._handle_counter}"

    def element_by_handle(self, handle: Optional[str]):
        if not handle:
            return None
        return self._by_handle.get(handle)

    def is_connected(self, element) -> bool:
        return is_element(element) and element.getroottree().getroot() is self.root

    # ==================== Queries ====================

    def query_all(self, selector: str) -> List:
        """All elements matching a CSS selector, in document order."""
        return [node for node in self.root.xpath(css_to_xpath(selector)) if is_element(node)]

    def query(self, selector: str):
        matches = self.query_all(selector)
        return matches[0] if matches else None

    def evaluate_xpath(self, expression: str) -> List:
        result = self.root.xpath(expression)
        if not isinstance(result, list):
            return []
        return [node for node in result if is_element(node)]

    def matches(self, element, selector: str) -> bool:
        return bool(element.xpath(css_to_xpath(selector, prefix="self::")))

    def closest(self, element, selector: str):
        """Nearest ancestor-or-self matching selector; None for bad selectors."""
        try:
            expression = css_to_xpath(selector, prefix="self::")
        except Exception as e:
            logger.debug(f"closest() could not translate {selector!r}: {e}")
            return None
        for node in ancestors(element, include_self=True):
            if node.xpath(expression):
                return node
        return None

    def query_within(self, element, selector: str) -> List:
        return [node for node in element.xpath(css_to_xpath(selector, prefix="descendant::")) if is_element(node)]

    # ==================== Layout and style ====================

    def computed_style(self, element) -> Dict[str, str]:
        """Inline style merged with host-computed style. Detached elements yield {}."""
        if not self.is_connected(element):
            return {}
        style = parse_style(element.get("style") or "")
        style.update(self._host_styles.get(element.get(self.HANDLE_ATTRIBUTE, ""), {}))
        return style

    def bounding_rect(self, element) -> Rect:
        return self._rects.get(element.get(self.HANDLE_ATTRIBUTE, ""), Rect())

    def set_bounding_rect(self, element, left: float, top: float, width: float, height: float):
        self._rects[self.handle_of(element)] = Rect(left, top, width, height, known=True)

    def set_computed_style(self, element, **properties: str):
        styles = self._host_styles.setdefault(self.handle_of(element), {})
        styles.update({key.replace("_", "-"): value for key, value in properties.items()})

    def is_visible(self, element) -> bool:
        """Style-based visibility; unknown layout counts as visible."""
        style = self.computed_style(element)
        if style.get("display") == "none" or style.get("visibility") == "hidden":
            return False
        try:
            if float(style.get("opacity", "1")) == 0:
                return False
        except ValueError:
            pass
        rect = self.bounding_rect(element)
        if rect.known and rect.width == 0 and rect.height == 0:
            return False
        return True

    # ==================== Form state ====================

    def field_value(self, element) -> str:
        handle = element.get(self.HANDLE_ATTRIBUTE, "")
        tag = tag_name(element)
        if tag == "select":
            selected = self.selected_options(element)
            return selected[0].get("value", text_content(selected[0])) if selected else ""
        if handle in self._values:
            return self._values[handle]
        if tag == "textarea":
            return element.text or ""
        return element.get("value", "")

    def set_field_value(self, element, value: str):
        """Change the live value the way typing does: no attribute mutation."""
        self._values[self.handle_of(element)] = value

    def is_checked(self, element) -> bool:
        handle = element.get(self.HANDLE_ATTRIBUTE, "")
        if handle in self._checked:
            return self._checked[handle]
        return element.get("checked") is not None

    def set_checked(self, element, checked: bool):
        self._checked[self.handle_of(element)] = checked

    def options(self, select) -> List:
        return [option for option in select.iter("option")]

    def selected_options(self, select) -> List:
        options = self.options(select)
        selected = [option for option in options if option.get("selected") is not None]
        if selected or select.get("multiple") is not None:
            return selected
        return options[:1]

    def selected_index(self, select) -> int:
        selected = self.selected_options(select)
        if not selected:
            return -1
        return self.options(select).index(selected[0])

    def select_options(self, select, indexes: Iterable[int]):
        """Set the selection without notifying observers (a user pick)."""
        wanted = set(indexes)
        for index, option in enumerate(self.options(select)):
            if index in wanted:
                option.set("selected", "selected")
            elif option.get("selected") is not None:
                del option.attrib["selected"]

    # ==================== Mutations ====================

    def observe(self, callback: MutationCallback):
        if callback not in self._observers:
            self._observers.append(callback)

    def disconnect(self, callback: MutationCallback):
        if callback in self._observers:
            self._observers.remove(callback)

    def set_attribute(self, element, name: str, value: str):
        old_value = element.get(name)
        element.set(name, value)
        if name == "value":
            self._values[self.handle_of(element)] = value
        self.notify([MutationRecord(element, name, old_value)])

    def remove_attribute(self, element, name: str):
        if name not in element.attrib:
            return
        old_value = element.attrib.pop(name)
        self.notify([MutationRecord(element, name, old_value)])

    def notify(self, records: List[MutationRecord]):
        """Deliver mutation records to every observer (also used for host-reported mutations)."""
        for callback in list(self._observers):
            try:
                callback(records)
            except Exception:
                logger.exception("Mutation observer failed")

    # ==================== Events ====================

    def add_event_listener(self, event_type: str, handler: Callable):
        handlers = self._event_handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    def remove_event_listener(self, event_type: str, handler: Callable):
        handlers = self._event_handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def dispatch_event(self, event) -> bool:
        """Deliver an event to document listeners. Returns False if a handler prevented default."""
        event_type = getattr(event.type, "value", event.type)
        for handler in list(self._event_handlers.get(event_type, [])):
            handler(event)
        return not getattr(event, "default_prevented", False)

    def navigate(self, url: str):
        """Record a URL change (history push or full navigation)."""
        logger.debug(f"Document URL {self.url} -> {url}")
        self.url = url


# ==================== Parsing ====================

_STYLE_DECLARATION = re.compile(r"\s*([-a-zA-Z]+)\s*:\s*([^;]+?)\s*(?:;|$)")


def parse_style(style: str) -> Dict[str, str]:
    return {name.lower(): value for name, value in _STYLE_DECLARATION.findall(style or "")}


def parse_rect(value: str) -> Rect:
    try:
        left, top, width, height = (float(part) for part in value.split(","))
    except ValueError:
        logger.debug(f"Ignoring malformed rect annotation {value!r}")
        return Rect()
    return Rect(left, top, width, height, known=True)
