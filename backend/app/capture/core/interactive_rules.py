"""
Interactive element rules.

Decides which element a click "really" targeted. Rules are data: an
ordered table of predicates over an element's capabilities, evaluated
until one matches.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ..dom.document import PageDocument, ancestors, class_name, tag_name
from ..selectors.carousel import CarouselDetector

# Configure logging
logger = logging.getLogger(__name__)

INTERACTIVE_TAGS = {"a", "button", "input", "select", "textarea", "label", "li", "tr", "td"}
INTERACTIVE_ROLES = {"button", "link", "menuitem", "tab", "option", "radio", "checkbox", "switch"}
BUTTON_CLASS_FRAGMENTS = ("btn", "button", "submit")
SVG_TAGS = {"svg", "path", "circle", "rect", "polygon", "line", "polyline", "ellipse", "use", "g"}
MAX_ANCESTOR_DEPTH = 10


@dataclass
class ElementCapabilities:
    """The facts the rule table looks at, extracted once per element"""
    tag: str
    role: str = ""
    class_name: str = ""
    data_attributes: Dict[str, str] = field(default_factory=dict)
    cursor: str = ""
    has_onclick: bool = False
    element: Optional[object] = None

    @classmethod
    def of(cls, document: PageDocument, element) -> "ElementCapabilities":
        return cls(
            tag=tag_name(element),
            role=(element.get("role") or "").lower(),
            class_name=class_name(element).lower(),
            data_attributes={
                name: value for name, value in element.attrib.items()
                if name.startswith("data-") and name != PageDocument.HANDLE_ATTRIBUTE
            },
            cursor=document.computed_style(element).get("cursor", ""),
            has_onclick=element.get("onclick") is not None,
            element=element,
        )


@dataclass
class InteractiveRule:
    name: str
    priority: int
    predicate: Callable[[ElementCapabilities], bool]


class InteractiveRuleTable:
    """
    Ordered interactive-element rules.

    Usage:
        table = InteractiveRuleTable(document)
        target = table.find_interactive_element(event.target)
    """

    def __init__(self, document: PageDocument, carousel_detector: Optional[CarouselDetector] = None):
        self.document = document
        self.carousel = carousel_detector or CarouselDetector(document)
        self.rules: List[InteractiveRule] = []
        for rule in self._default_rules():
            self.add_rule(rule)

    def _default_rules(self) -> List[InteractiveRule]:
        return [
            InteractiveRule("tag", 10, lambda caps: caps.tag in INTERACTIVE_TAGS),
            InteractiveRule("role", 20, lambda caps: caps.role in INTERACTIVE_ROLES),
            InteractiveRule(
                "button-class", 30,
                lambda caps: any(fragment in caps.class_name for fragment in BUTTON_CLASS_FRAGMENTS),
            ),
            InteractiveRule("onclick", 40, lambda caps: caps.has_onclick),
            InteractiveRule("cursor-pointer", 50, lambda caps: caps.cursor == "pointer"),
            InteractiveRule(
                "carousel-control", 60,
                lambda caps: caps.element is not None and self.carousel.looks_interactive(caps.element),
            ),
        ]

    def add_rule(self, rule: InteractiveRule):
        self.rules.append(rule)
        self.rules.sort(key=lambda r: r.priority)

    def matching_rule(self, element) -> Optional[InteractiveRule]:
        caps = ElementCapabilities.of(self.document, element)
        for rule in self.rules:
            if rule.predicate(caps):
                return rule
        return None

    def is_interactive(self, element) -> bool:
        return self.matching_rule(element) is not None

    def is_svg_element(self, element) -> bool:
        if tag_name(element) in SVG_TAGS:
            return True
        return self.document.closest(element, "svg") is not None

    def find_interactive_element(self, element):
        """
        Resolve a click target to the element worth recording.

        SVG parts walk up to the first clickable non-SVG ancestor. Other
        targets are returned as-is when interactive, else the nearest
        interactive ancestor. None when nothing within reach qualifies.
        """
        if element is None:
            return None
        body = self.document.body

        if self.is_svg_element(element):
            for depth, node in enumerate(ancestors(element)):
                if depth >= MAX_ANCESTOR_DEPTH or node is body:
                    break
                if tag_name(node) not in SVG_TAGS and self.is_interactive(node):
                    logger.debug(f"SVG click resolved to <{tag_name(node)}>")
                    return node
            logger.debug("SVG click has no interactive ancestor")
            return None

        if self.is_interactive(element):
            return element
        for depth, node in enumerate(ancestors(element)):
            if depth >= MAX_ANCESTOR_DEPTH or node is body:
                break
            if self.is_interactive(node):
                return node
        return None
