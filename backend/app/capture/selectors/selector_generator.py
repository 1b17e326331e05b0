"""
Selector Generator

Synthesizes a ranked bundle of alternative identifiers for an element and
validates each one against the live document.

Features:
- Independent candidate families (id, test-id, aria, name, CSS, text, XPath, position)
- Dynamic id/class filtering (framework prefixes, hashes, CSS-in-JS)
- nth-child disambiguation with re-validation
- Context-sensitive priority (content first inside dropdowns and menus)
- Container-scoped, direction-aware selectors for carousel controls
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from cssselect import SelectorError
from lxml import etree

from ..config import SelectorConfig
from ..dom.document import (
    PageDocument,
    ancestors,
    child_elements,
    child_index,
    is_element,
    parent_element,
    same_tag_index,
    tag_name,
)
from ..models import (
    PositionSelector,
    SelectorFallback,
    SelectorStrategy,
    SelectorType,
    SelectorValidation,
    VisualPosition,
)
from .carousel import CarouselDetector
from .patterns import (
    DROPDOWN_CONTAINER_SELECTORS,
    TEXT_XPATH_TAGS,
    class_contains,
    css_escape,
    css_string,
    element_selector_part,
    is_direction_class,
    is_dynamic_id,
    stable_classes,
    xpath_literal,
)

# Configure logging
logger = logging.getLogger(__name__)

_SELECTOR_ERRORS = (SelectorError, etree.XPathError, ValueError, TypeError)


def normalized_text(element) -> str:
    try:
        return " ".join((element.text_content() or "").split())
    except ValueError:
        return ""


@dataclass
class ContainerMatch:
    """Nearest ancestor that uniquely identifies a repeated widget"""
    type: Optional[str] = None  # id, data-attribute, nth-child
    selector: Optional[str] = None
    xpath: Optional[str] = None
    element: Optional[object] = None
    index: Optional[int] = None


@dataclass
class SelectorQuality:
    can_record: bool
    should_warn: bool
    message: str


class SelectorGenerator:
    """
    Generates multiple selector strategies for reliable element identification.

    Default replay order: id > dataTestId > ariaLabel > name > css > text >
    xpath > position. Candidates that fail document-wide uniqueness are
    demoted behind every unique candidate.
    """

    DEFAULT_ORDER = [
        SelectorType.ID,
        SelectorType.DATA_TEST_ID,
        SelectorType.ARIA_LABEL,
        SelectorType.NAME,
        SelectorType.CSS,
        SelectorType.TEXT,
        SelectorType.TEXT_CONTAINS,
        SelectorType.XPATH,
        SelectorType.XPATH_ABSOLUTE,
        SelectorType.POSITION,
    ]
    # Stable ids stay ahead of content even in menus
    DROPDOWN_ORDER = [
        SelectorType.ID,
        SelectorType.TEXT,
        SelectorType.TEXT_CONTAINS,
        SelectorType.DATA_TEST_ID,
        SelectorType.ARIA_LABEL,
        SelectorType.NAME,
        SelectorType.CSS,
        SelectorType.XPATH,
        SelectorType.XPATH_ABSOLUTE,
        SelectorType.POSITION,
    ]
    CAROUSEL_ORDER = [
        SelectorType.ID,
        SelectorType.CSS,
        SelectorType.XPATH,
        SelectorType.XPATH_ABSOLUTE,
        SelectorType.POSITION,
    ]

    MAX_TEXT_LENGTH = 50
    TEXT_CONTAINS_LENGTH = 30
    MAX_XPATH_TEXT_LENGTH = 100
    MAX_CSS_CLASSES = 3
    MAX_XPATH_CLASSES = 2
    MAX_CONTAINER_DEPTH = 10
    FALLBACK_TEXT_LENGTH = 100

    ITEM_CLASS_PATTERN = r"(^|[-_])(item|card|tile|entry)s?([-_]|$)"
    DATA_ID_PATTERN = r"^data-([a-z0-9]+-)*id$"

    def __init__(
        self,
        document: PageDocument,
        config: Optional[SelectorConfig] = None,
        carousel_detector: Optional[CarouselDetector] = None,
    ):
        """
        Initialize selector generator.

        Args:
            document: The page being recorded
            config: Candidate family toggles and CSS depth
            carousel_detector: Shared detector (one is created if omitted)
        """
        self.document = document
        self.config = config or SelectorConfig()
        self.carousel = carousel_detector or CarouselDetector(document)
        self._item_class = re.compile(self.ITEM_CLASS_PATTERN, re.IGNORECASE)
        self._data_id = re.compile(self.DATA_ID_PATTERN, re.IGNORECASE)

    # ==================== Public API ====================

    def generate_selectors(self, element) -> SelectorStrategy:
        """Selector strategy for element; carousel controls get scoped variants."""
        control = self.carousel.control_for(element)
        if control is not None:
            return self.generate_carousel_selectors(element, control=control)
        return self._generate_standard(element)

    def generate_carousel_selectors(self, element, control=None) -> SelectorStrategy:
        """
        Container-scoped selectors for a carousel control (or an icon inside one).

        Falls back to standard generation when no uniquely identifying
        container exists.
        """
        if control is None:
            control = self.carousel.control_for(element)
        if control is None:
            control = element
        container = self.find_unique_parent_container(control)
        if container.element is None:
            logger.debug("No unique carousel container found, using standard selectors")
            return self._generate_standard(element)

        below_control = self._path_between(control, element)
        candidates: Dict[SelectorType, object] = {}

        element_id = self._stable_id(element)
        if element_id and self._is_unique(SelectorType.ID, element_id, element):
            candidates[SelectorType.ID] = element_id

        css = f"{container.selector} {self._control_css_part(control)}"
        if below_control:
            css += " > " + " > ".join(f"{tag_name(node)}:nth-child({child_index(node) + 1})" for node in below_control)
        if not self._css_unique(css, element):
            css = self._scoped_nth_path(container, element)
        candidates[SelectorType.CSS] = css

        if self.config.include_xpath:
            absolute = self._safe(self._absolute_xpath, element)
            xpath = f"{container.xpath}//{self._control_xpath_step(control)}"
            xpath += "".join(f"/{tag_name(node)}[{same_tag_index(node)}]" for node in below_control)
            if not self._xpath_unique(xpath, element):
                logger.debug(f"Scoped carousel XPath not unique, using absolute: {xpath}")
                xpath = absolute
            if xpath:
                candidates[SelectorType.XPATH] = xpath
            if absolute:
                candidates[SelectorType.XPATH_ABSOLUTE] = absolute

        if self.config.include_position:
            position = self._safe(self._position_selector, element)
            if position:
                candidates[SelectorType.POSITION] = position

        priority = [selector_type for selector_type in self.CAROUSEL_ORDER if selector_type in candidates]
        return self._assemble(element, candidates, priority)

    def find_unique_parent_container(self, element) -> ContainerMatch:
        """Walk up to the nearest ancestor that identifies exactly one widget instance."""
        body = self.document.body
        for depth, node in enumerate(ancestors(element)):
            if node is body or depth >= self.MAX_CONTAINER_DEPTH:
                break
            match = self._container_candidate(node)
            if match is None:
                continue
            if self._css_unique(match.selector, node):
                return match
            logger.debug(f"Container candidate {match.selector} is not unique, continuing")
        return ContainerMatch()

    def get_element_selector_part(self, element) -> str:
        return element_selector_part(element, self.config.prefer_stable_selectors)

    def validate_selector_quality(self, element, strategy: SelectorStrategy) -> SelectorQuality:
        """Whether a strategy is good enough to record, and whether to warn about it."""
        validation = strategy.validation or self._validate(element, strategy)
        if validation.is_unique:
            return SelectorQuality(True, False, "Selector uniquely identifies the element")
        if validation.css_matches > 1:
            return SelectorQuality(
                True, True, f"Selector is ambiguous: CSS matches {validation.css_matches} elements"
            )
        has_alternative = any(
            strategy.value_for(selector_type)
            for selector_type in (SelectorType.ID, SelectorType.DATA_TEST_ID, SelectorType.ARIA_LABEL, SelectorType.NAME)
        )
        if validation.css_matches == 0 and validation.xpath_matches == 0 and not has_alternative:
            return SelectorQuality(False, True, "Cannot generate reliable selector for this element")
        return SelectorQuality(True, True, "CSS selector did not verify; replay will rely on fallbacks")

    def resolve(self, strategy: SelectorStrategy):
        """Replay contract: first priority entry resolving to exactly one element."""
        for selector_type in strategy.priority:
            try:
                matches = self._matches_for(selector_type, strategy.value_for(selector_type))
            except _SELECTOR_ERRORS as e:
                logger.debug(f"Could not resolve {selector_type.value}: {e}")
                continue
            if len(matches) == 1:
                return matches[0]
        return None

    # ==================== Standard generation ====================

    def _generate_standard(self, element) -> SelectorStrategy:
        candidates: Dict[SelectorType, object] = {}
        builders = [
            (SelectorType.ID, self._stable_id, True),
            (SelectorType.DATA_TEST_ID, lambda el: el.get("data-testid") or None, True),
            (SelectorType.ARIA_LABEL, lambda el: el.get("aria-label") or None, True),
            (SelectorType.NAME, self._name_candidate, True),
            (SelectorType.CSS, self._unique_css, True),
            (SelectorType.XPATH, self._unique_relative_xpath, self.config.include_xpath),
            (SelectorType.XPATH_ABSOLUTE, self._absolute_xpath, self.config.include_xpath),
            (SelectorType.POSITION, self._position_selector, self.config.include_position),
        ]
        for selector_type, builder, enabled in builders:
            if not enabled:
                continue
            value = self._safe(builder, element)
            if value:
                candidates[selector_type] = value

        if self.config.include_text:
            text = normalized_text(element)
            if text and len(text) <= self.MAX_TEXT_LENGTH:
                candidates[SelectorType.TEXT] = text
            elif text:
                candidates[SelectorType.TEXT_CONTAINS] = text[: self.TEXT_CONTAINS_LENGTH]

        # The tag name is always a usable last resort
        candidates.setdefault(SelectorType.CSS, tag_name(element))

        order = self.DROPDOWN_ORDER if self._in_dropdown(element) else self.DEFAULT_ORDER
        unique, ambiguous = [], []
        for selector_type in order:
            if selector_type not in candidates:
                continue
            if self._is_unique(selector_type, candidates[selector_type], element):
                unique.append(selector_type)
            else:
                ambiguous.append(selector_type)
        return self._assemble(element, candidates, unique + ambiguous)

    def _assemble(self, element, candidates: Dict[SelectorType, object], priority: List[SelectorType]) -> SelectorStrategy:
        fields = {selector_type.field_name: value for selector_type, value in candidates.items()}
        if isinstance(fields.get("position"), dict):
            fields["position"] = PositionSelector(**fields["position"])
        strategy = SelectorStrategy(**fields, priority=priority)
        strategy.validation = self._validate(element, strategy)
        strategy.fallback = self._fallback(element)
        return strategy

    # ==================== Candidate builders ====================

    def _stable_id(self, element) -> Optional[str]:
        element_id = element.get("id")
        if not element_id:
            return None
        if self.config.prefer_stable_selectors and is_dynamic_id(element_id):
            return None
        return element_id

    def _name_candidate(self, element) -> Optional[str]:
        if tag_name(element) in ("input", "select"):
            return element.get("name") or None
        return None

    def _own_css_part(self, element, max_classes: Optional[int] = MAX_CSS_CLASSES) -> str:
        classes = stable_classes(element, self.config.prefer_stable_selectors)
        if max_classes is not None:
            classes = classes[:max_classes]
        part = tag_name(element) + "".join(f".{css_escape(cls)}" for cls in classes)
        if tag_name(element) == "input" and element.get("type"):
            part += f"[type={css_string(element.get('type'))}]"
        return part

    def _base_css(self, element) -> str:
        parts = [self._own_css_part(element)]
        body = self.document.body
        current = element
        for _ in range(self.config.max_css_depth):
            parent = parent_element(current)
            if parent is None or parent is body or parent is self.document.document_element:
                break
            parts.insert(0, self.get_element_selector_part(parent))
            current = parent
        return " > ".join(parts)

    def _unique_css(self, element) -> str:
        css = self._base_css(element)
        if self._css_unique(css, element):
            return css
        with_nth = f"{css}:nth-child({child_index(element) + 1})"
        if self._css_unique(with_nth, element):
            return with_nth
        anchored = self._anchored_nth_path(element)
        if self._css_unique(anchored, element):
            return anchored
        logger.debug(f"No unique CSS found for {css}")
        return css

    def _anchored_nth_path(self, element) -> str:
        """Every step carries :nth-child, anchored at a unique id or at body."""
        steps = []
        body = self.document.body
        node = element
        while node is not None:
            if node is body:
                steps.insert(0, "body")
                break
            node_id = self._stable_id(node)
            if node is not element and node_id and self._css_unique(f"#{css_escape(node_id)}", node):
                steps.insert(0, f"{tag_name(node)}#{css_escape(node_id)}")
                break
            steps.insert(0, f"{self._own_css_part(node)}:nth-child({child_index(node) + 1})")
            node = parent_element(node)
        return " > ".join(steps)

    def _relative_xpath(self, element) -> str:
        tag = tag_name(element)
        element_id = self._stable_id(element)
        if element_id:
            return f"//{tag}[@id={xpath_literal(element_id)}]"
        test_id = element.get("data-testid")
        if test_id:
            return f"//{tag}[@data-testid={xpath_literal(test_id)}]"
        if tag == "input" and element.get("name"):
            return f"//{tag}[@name={xpath_literal(element.get('name'))}]"

        text = normalized_text(element)
        if tag in TEXT_XPATH_TAGS and 0 < len(text) < self.MAX_XPATH_TEXT_LENGTH:
            step = f"{tag}[normalize-space()={xpath_literal(text)}]"
            parent = parent_element(element)
            parent_classes = stable_classes(parent, self.config.prefer_stable_selectors)[:1] if parent is not None else []
            if parent_classes:
                return f"//{tag_name(parent)}[{class_contains(parent_classes[0])}]/{step}"
            return f"//{step}"

        conditions = self._class_conditions(element, self.MAX_XPATH_CLASSES)
        if conditions:
            return f"//{tag}[{conditions}]"
        return f"//{tag}[{same_tag_index(element)}]"

    def _unique_relative_xpath(self, element) -> str:
        xpath = self._relative_xpath(element)
        if self._xpath_unique(xpath, element):
            return xpath
        for node in ancestors(element):
            if node is self.document.body:
                break
            node_id = self._stable_id(node)
            if node_id:
                scoped = f"//{tag_name(node)}[@id={xpath_literal(node_id)}]{xpath}"
                if self._xpath_unique(scoped, element):
                    return scoped
                break
        return xpath

    def _absolute_xpath(self, element) -> str:
        parts = []
        root = self.document.document_element
        node = element
        while node is not None and node is not root:
            parts.insert(0, f"{tag_name(node)}[{same_tag_index(node)}]")
            node = parent_element(node)
        return "/html/" + "/".join(parts)

    def _position_selector(self, element) -> Optional[dict]:
        parent = parent_element(element)
        if parent is None:
            return None
        return {"parent": self.get_element_selector_part(parent), "index": child_index(element)}

    def _class_conditions(self, element, limit: Optional[int]) -> str:
        classes = stable_classes(element, self.config.prefer_stable_selectors)
        # Direction classes are what tell sibling controls apart
        classes = sorted(classes, key=lambda cls: not is_direction_class(cls))
        if limit is not None:
            classes = classes[:limit]
        return " and ".join(class_contains(cls) for cls in classes)

    # ==================== Carousel helpers ====================

    def _container_candidate(self, node) -> Optional[ContainerMatch]:
        tag = tag_name(node)
        node_id = self._stable_id(node)
        if node_id:
            return ContainerMatch(
                type="id",
                selector=f"#{css_escape(node_id)}",
                xpath=f"//{tag}[@id={xpath_literal(node_id)}]",
                element=node,
            )
        for attribute, value in node.attrib.items():
            if value and self._data_id.match(attribute) and attribute != PageDocument.HANDLE_ATTRIBUTE:
                return ContainerMatch(
                    type="data-attribute",
                    selector=f"[{attribute}={css_string(value)}]",
                    xpath=f"//{tag}[@{attribute}={xpath_literal(value)}]",
                    element=node,
                )
        classes = stable_classes(node, self.config.prefer_stable_selectors)
        if tag == "li" or any(self._item_class.search(cls) for cls in classes):
            parent = parent_element(node)
            if parent is None:
                return None
            index = child_index(node)
            parent_part = self.get_element_selector_part(parent)
            own_part = tag + "".join(f".{css_escape(cls)}" for cls in classes[:2])
            return ContainerMatch(
                type="nth-child",
                selector=f"{parent_part} > {own_part}:nth-child({index + 1})",
                xpath=f"{self._xpath_anchor(parent)}/{tag}[{same_tag_index(node)}]",
                element=node,
                index=index,
            )
        return None

    def _xpath_anchor(self, element) -> str:
        tag = tag_name(element)
        element_id = self._stable_id(element)
        if element_id:
            return f"//{tag}[@id={xpath_literal(element_id)}]"
        conditions = self._class_conditions(element, 1)
        if conditions:
            return f"//{tag}[{conditions}]"
        return f"//{tag}"

    def _control_css_part(self, control) -> str:
        return self._own_css_part(control, max_classes=None)

    def _control_xpath_step(self, control) -> str:
        conditions = self._class_conditions(control, None)
        if conditions:
            return f"{tag_name(control)}[{conditions}]"
        return f"{tag_name(control)}[{same_tag_index(control)}]"

    def _path_between(self, ancestor, element) -> List:
        """Nodes strictly below ancestor down to element (empty when they are the same)."""
        path = []
        node = element
        while node is not None and node is not ancestor:
            path.insert(0, node)
            node = parent_element(node)
        return path if node is ancestor else []

    def _scoped_nth_path(self, container: ContainerMatch, element) -> str:
        steps = [
            f"{self._own_css_part(node)}:nth-child({child_index(node) + 1})"
            for node in self._path_between(container.element, element)
        ]
        return " > ".join([container.selector] + steps)

    # ==================== Validation ====================

    def _matches_for(self, selector_type: SelectorType, value) -> List:
        if value is None:
            return []
        if selector_type == SelectorType.ID:
            return self.document.query_all(f"#{css_escape(value)}")
        if selector_type == SelectorType.DATA_TEST_ID:
            return self.document.query_all(f"[data-testid={css_string(value)}]")
        if selector_type == SelectorType.ARIA_LABEL:
            return self.document.query_all(f"[aria-label={css_string(value)}]")
        if selector_type == SelectorType.NAME:
            return self.document.query_all(f"[name={css_string(value)}]")
        if selector_type == SelectorType.CSS:
            return self.document.query_all(value)
        if selector_type in (SelectorType.XPATH, SelectorType.XPATH_ABSOLUTE):
            return self.document.evaluate_xpath(value)
        if selector_type in (SelectorType.TEXT, SelectorType.TEXT_CONTAINS):
            return self._text_matches(value, partial=selector_type == SelectorType.TEXT_CONTAINS)
        if selector_type == SelectorType.POSITION:
            parent = value.parent if hasattr(value, "parent") else value["parent"]
            index = value.index if hasattr(value, "index") else value["index"]
            parents = self.document.query_all(parent)
            if len(parents) != 1:
                return []
            children = child_elements(parents[0])
            return [children[index]] if 0 <= index < len(children) else []
        return []

    def _is_unique(self, selector_type: SelectorType, value, element) -> bool:
        try:
            matches = self._matches_for(selector_type, value)
        except _SELECTOR_ERRORS as e:
            logger.debug(f"Uniqueness check failed for {selector_type.value}={value!r}: {e}")
            return False
        return len(matches) == 1 and matches[0] is element

    def _css_unique(self, selector: Optional[str], element) -> bool:
        return bool(selector) and self._is_unique(SelectorType.CSS, selector, element)

    def _xpath_unique(self, expression: Optional[str], element) -> bool:
        return bool(expression) and self._is_unique(SelectorType.XPATH, expression, element)

    def _text_matches(self, text: str, partial: bool) -> List:
        """Innermost elements whose normalized text equals (or contains) text."""
        def hit(node) -> bool:
            content = normalized_text(node)
            return text in content if partial else content == text

        matches = []
        for node in self.document.root.iter():
            if not is_element(node) or tag_name(node) in ("script", "style", "head", "title"):
                continue
            if hit(node) and not any(hit(child) for child in child_elements(node)):
                matches.append(node)
        return matches

    def _validate(self, element, strategy: SelectorStrategy) -> SelectorValidation:
        css_matches: List = []
        xpath_matches: List = []
        try:
            if strategy.css:
                css_matches = self.document.query_all(strategy.css)
        except _SELECTOR_ERRORS as e:
            logger.debug(f"CSS validation failed for {strategy.css!r}: {e}")
        try:
            if strategy.xpath:
                xpath_matches = self.document.evaluate_xpath(strategy.xpath)
        except _SELECTOR_ERRORS as e:
            logger.debug(f"XPath validation failed for {strategy.xpath!r}: {e}")
        return SelectorValidation(
            css_matches=len(css_matches),
            xpath_matches=len(xpath_matches),
            strategy=strategy.priority[0].value if strategy.priority else "none",
            is_unique=len(css_matches) == 1 and css_matches[0] is element,
        )

    def _fallback(self, element) -> SelectorFallback:
        rect = self.document.bounding_rect(element)
        return SelectorFallback(
            visual_position=VisualPosition(
                x=rect.left + self.document.scroll_x,
                y=rect.top + self.document.scroll_y,
                viewport_x=rect.left,
                viewport_y=rect.top,
            ),
            text_content=normalized_text(element)[: self.FALLBACK_TEXT_LENGTH],
            sibling_index=child_index(element),
        )

    def _in_dropdown(self, element) -> bool:
        return any(self.document.closest(element, selector) is not None for selector in DROPDOWN_CONTAINER_SELECTORS)

    def _safe(self, builder, element):
        try:
            return builder(element)
        except _SELECTOR_ERRORS as e:
            logger.debug(f"Selector builder {getattr(builder, '__name__', builder)} failed: {e}")
            return None
