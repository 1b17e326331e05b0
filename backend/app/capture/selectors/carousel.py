"""
Carousel Control Detection

Recognizes the arrow/next/prev controls of rotating content panels so that
repeated clicks on them are treated as intentional navigation and their
selectors are scoped to the owning carousel.

Detection tiers (only their ordering matters):
- framework: known library class signatures (swiper, slick, bootstrap, ...)
- pattern: arrow-style classes or "next/previous slide" aria labels
- heuristic: a bare direction class inside a carousel-like ancestor
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from ..dom.document import PageDocument, ancestors, class_list, class_name, parent_element
from ..models import CarouselContext
from .patterns import element_selector_part, is_direction_class

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class CarouselDetection:
    """Result of carousel detection for a single element"""
    is_carousel: bool
    confidence: int = 0
    detection_method: Optional[str] = None
    library: Optional[str] = None


class CarouselDetector:
    """
    Classifies elements as carousel controls.

    Features:
    - Confidence-tiered detection (framework > pattern > heuristic)
    - Disabled controls are never carousel controls
    - Direction and carousel-type inference for click metadata
    """

    FRAMEWORK_CONFIDENCE = 95
    PATTERN_CONFIDENCE = 90
    ARIA_CONFIDENCE = 85
    PATTERN_NO_DIRECTION_CONFIDENCE = 75
    HEURISTIC_CONFIDENCE = 70

    FRAMEWORK_SIGNATURES = [
        ("swiper", re.compile(r"swiper-button")),
        ("slick", re.compile(r"slick-(arrow|next|prev)")),
        ("bootstrap", re.compile(r"carousel-control")),
        ("owl", re.compile(r"owl-(next|prev)")),
        ("flickity", re.compile(r"flickity-(prev-next-)?button")),
        ("glide", re.compile(r"glide__arrow")),
        ("splide", re.compile(r"splide__arrow")),
    ]

    ARROW_CLASS = re.compile(r"arrow|(carousel|slider|slide|gallery)[-_](next|prev)", re.IGNORECASE)
    ARIA_SLIDE = re.compile(r"\b(next|previous|prev)\s+(slide|image|photo|picture|item)", re.IGNORECASE)
    CAROUSEL_ANCESTOR = re.compile(r"carousel|swiper|slider|slick|gallery|slideshow|owl|flickity", re.IGNORECASE)
    ANCESTOR_DEPTH = 5
    NESTED_CONTROL_DEPTH = 3

    # Class fragments that make an element look clickable as a carousel arrow
    INTERACTIVE_CAROUSEL_CLASSES = (
        "carousel-control",
        "carousel-arrow",
        "slider-arrow",
        "item-img-arrow",
        "slick-arrow",
        "swiper-button",
    )

    def __init__(self, document: PageDocument):
        self.document = document

    def detect(self, element) -> CarouselDetection:
        if element is None or self.is_disabled(element):
            return CarouselDetection(False)

        classes = class_name(element).lower()

        for library, signature in self.FRAMEWORK_SIGNATURES:
            if signature.search(classes):
                return CarouselDetection(True, self.FRAMEWORK_CONFIDENCE, "framework", library)

        has_direction = any(is_direction_class(cls) for cls in class_list(element))
        if self.ARROW_CLASS.search(classes):
            confidence = self.PATTERN_CONFIDENCE if has_direction else self.PATTERN_NO_DIRECTION_CONFIDENCE
            return CarouselDetection(True, confidence, "pattern")

        if self.ARIA_SLIDE.search(element.get("aria-label") or ""):
            return CarouselDetection(True, self.ARIA_CONFIDENCE, "pattern")

        if has_direction and self._has_carousel_ancestor(element):
            return CarouselDetection(True, self.HEURISTIC_CONFIDENCE, "heuristic")

        return CarouselDetection(False)

    def is_carousel_control(self, element) -> bool:
        return self.detect(element).is_carousel

    def control_for(self, element):
        """The carousel control that element is, or sits inside (icon/SVG children)."""
        current = element
        for _ in range(self.NESTED_CONTROL_DEPTH + 1):
            if current is None or current is self.document.body:
                return None
            if self.is_carousel_control(current):
                return current
            current = parent_element(current)
        return None

    def looks_interactive(self, element) -> bool:
        """Loose class check used by the interactive-element rule table."""
        classes = class_name(element).lower()
        if any(fragment in classes for fragment in self.INTERACTIVE_CAROUSEL_CLASSES):
            return True
        if any(is_direction_class(cls) for cls in class_list(element)):
            return True
        return self.is_carousel_control(element)

    def is_disabled(self, element) -> bool:
        if element.get("disabled") is not None:
            return True
        if element.get("aria-disabled") == "true":
            return True
        return any(cls == "disabled" or cls.endswith("-disabled") for cls in class_list(element))

    def _has_carousel_ancestor(self, element) -> bool:
        for depth, node in enumerate(ancestors(element)):
            if depth >= self.ANCESTOR_DEPTH or node is self.document.body:
                break
            if self.CAROUSEL_ANCESTOR.search(class_name(node)) or self.CAROUSEL_ANCESTOR.search(node.get("id") or ""):
                return True
        return False

    # ==================== Click metadata ====================

    def direction(self, element) -> str:
        parent = parent_element(element)
        combined = f"{class_name(element)} {class_name(parent) if parent is not None else ''}".lower()
        aria = (element.get("aria-label") or "").lower()
        if any(token in combined for token in ("prev", "back", "left")) or "prev" in aria:
            return "prev"
        return "next"

    def carousel_type(self, element) -> str:
        for depth, node in enumerate(ancestors(element)):
            if depth >= self.ANCESTOR_DEPTH:
                break
            classes = class_name(node)
            if re.search(r"product|listing|item", classes, re.IGNORECASE):
                return "product-gallery"
            if re.search(r"hero|banner", classes, re.IGNORECASE):
                return "hero-slider"
            if re.search(r"testimonial|review", classes, re.IGNORECASE):
                return "testimonial-slider"
        return "image-gallery"

    def affected_element(self, element) -> Optional[str]:
        """Selector part of the slide/image content the control rotates."""
        for depth, node in enumerate(ancestors(element)):
            if depth >= self.ANCESTOR_DEPTH:
                break
            for selector in (".swiper-slide", ".carousel-item", ".slick-slide", '[class*="slide"]', "img"):
                found = self.document.query_within(node, selector)
                if found:
                    return element_selector_part(found[0])
        return None

    def build_context(self, element, container_selector: Optional[str] = None) -> CarouselContext:
        detection = self.detect(element)
        context = CarouselContext(
            is_carousel_control=True,
            direction=self.direction(element),
            library=detection.library,
            confidence=detection.confidence,
            container_selector=container_selector,
            carousel_type=self.carousel_type(element),
            detection_method=detection.detection_method or "heuristic",
            is_custom_implementation=detection.library is None,
            is_disabled=self.is_disabled(element),
            affects_element=self.affected_element(element),
        )
        logger.debug(
            f"Carousel control {element_selector_part(element)}: {context.direction} "
            f"via {context.detection_method} ({context.confidence})"
        )
        return context
